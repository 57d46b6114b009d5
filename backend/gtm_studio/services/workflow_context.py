"""
Per-run mutable state shared by every node of a workflow run.

`results` is write-once per node. `variables` is a scratchpad for values one
node leaves for a later one (the last generated prompt, the last image URL).
Writes made inside a splitter branch land in that branch's own namespace,
so parallel branches never overwrite each other; reads fall back from the
innermost branch to the run-wide scope.
"""

from __future__ import annotations

from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Any

from gtm_studio.models.workflow import BatchItem, NodeStatus, WorkflowDefinition
from gtm_studio.services.progress import ProgressCallback, ProgressReporter

# Stack of splitter branch root ids the current task runs under.
_branch_scope: ContextVar[tuple[str, ...]] = ContextVar("branch_scope", default=())


def current_branch_scope() -> tuple[str, ...]:
    return _branch_scope.get()


def enter_branch(branch_id: str):
    """Push a branch onto the scope of the current task. Returns a reset token."""
    return _branch_scope.set(_branch_scope.get() + (branch_id,))


def exit_branch(token) -> None:
    _branch_scope.reset(token)


@dataclass
class WorkflowContext:
    workflow: WorkflowDefinition
    task: Any = None
    variables: dict[str, Any] = field(default_factory=dict)
    results: dict[str, Any] = field(default_factory=dict)
    parallel_branches: dict[str, list[str]] = field(default_factory=dict)
    branch_variables: dict[str, dict[str, Any]] = field(default_factory=dict)
    batch_items: list[BatchItem] = field(default_factory=list)
    node_statuses: dict[str, NodeStatus] = field(default_factory=dict)
    on_progress: ProgressCallback | None = None

    def __post_init__(self) -> None:
        self.progress = ProgressReporter(self.on_progress)

    def record_result(self, node_id: str, result: Any) -> None:
        if node_id in self.results:
            raise RuntimeError(f"Result for node {node_id} was already recorded")
        self.results[node_id] = result

    def set_variable(self, key: str, value: Any) -> None:
        scope = current_branch_scope()
        if not scope:
            self.variables[key] = value
            return
        self.branch_variables.setdefault(scope[-1], {})[key] = value

    def get_variable(self, key: str, default: Any = None) -> Any:
        for branch_id in reversed(current_branch_scope()):
            scoped = self.branch_variables.get(branch_id, {})
            if key in scoped:
                return scoped[key]
        return self.variables.get(key, default)

    def results_of_type(self, result_type: str) -> list[dict[str, Any]]:
        return [
            r for r in self.results.values()
            if isinstance(r, dict) and r.get("type") == result_type
        ]

    def snapshot_variables(self) -> dict[str, Any]:
        """Run-wide variables plus each branch namespace under `branches`."""
        snapshot = dict(self.variables)
        if self.branch_variables:
            snapshot["branches"] = {
                branch_id: dict(values)
                for branch_id, values in self.branch_variables.items()
            }
        return snapshot
