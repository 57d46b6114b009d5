"""
Error taxonomy for workflow execution.

Node-level errors (validation, provider, timeout) fail the enclosing run.
Batch item failures are captured on the item and never propagate.
"""

from __future__ import annotations


class WorkflowError(Exception):
    """Base class for every error raised by the workflow engine."""

    def __init__(self, message: str, node_id: str | None = None):
        self.node_id = node_id
        super().__init__(message)


class NodeValidationError(WorkflowError):
    """A node is malformed or lacks the upstream input its action needs."""


class GraphBuildError(NodeValidationError):
    """The node/edge lists do not form a usable execution graph."""

    def __init__(self, problems: list[str]):
        self.problems = problems
        super().__init__("Invalid workflow graph: " + "; ".join(problems))


class ProviderError(WorkflowError):
    """An external model provider call failed."""

    def __init__(
        self,
        message: str,
        node_id: str | None = None,
        provider: str | None = None,
        status_code: int | None = None,
    ):
        self.provider = provider
        self.status_code = status_code
        super().__init__(message, node_id=node_id)


class ProviderTimeoutError(ProviderError):
    """A provider call exceeded its time budget."""

    def __init__(
        self,
        message: str,
        timeout_s: float | None = None,
        node_id: str | None = None,
        provider: str | None = None,
    ):
        self.timeout_s = timeout_s
        super().__init__(message, node_id=node_id, provider=provider)


class CycleDetected(WorkflowError):
    """A node was requested again while it is an ancestor on the current path."""

    def __init__(self, node_id: str, path: tuple[str, ...] = ()):
        self.path = path
        trail = " -> ".join(path + (node_id,)) if path else node_id
        super().__init__(f"Cycle detected at node {node_id} ({trail})", node_id=node_id)


class BatchItemError(WorkflowError):
    """A single batch variation failed. Recorded on the item, never raised past the batch."""

    def __init__(self, item_id: str, cause: BaseException):
        self.item_id = item_id
        self.cause = cause
        super().__init__(f"Batch item {item_id} failed: {cause}")
