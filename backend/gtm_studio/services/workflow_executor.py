"""
Workflow execution engine.

Takes a workflow definition, builds its execution graph, and walks it from
every trigger node depth-first. Each node is dispatched to the executor
registered for its kind; successors run in edge order once the node has
recorded its result.

Key concepts:
- Splitter nodes fan out into branches. The parallel strategy runs every
  branch as its own asyncio task; a failing branch cancels its siblings.
- Merge nodes wait for every in-flight predecessor. A predecessor that has
  not started yet defers the merge; the next predecessor to finish requests
  it again. Merges still deferred at the end are flushed with what arrived.
- Batch nodes expand into prompt variations (see batch_variations.py).
- A node reached twice returns its recorded result; a node reached while in
  flight is awaited, never dispatched twice.
- Cyclic graphs are rejected with CycleDetected before any node runs; the
  call-path check below only guards graphs built by other means.

Errors stop the run. Completed nodes keep their results and the caller gets
a failed WorkflowExecutionResult carrying them.
"""

from __future__ import annotations

import asyncio
import json
import logging
import random
import time
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Awaitable, Callable

from pydantic import ValidationError

from gtm_studio.models.workflow import (
    NodeExecutionResult,
    WorkflowDefinition,
    WorkflowExecutionResult,
    WorkflowNode,
)
from gtm_studio.services.action_invoker import ActionInvoker, Invoker
from gtm_studio.services.batch_variations import execute_batch, expand_batch
from gtm_studio.services.errors import CycleDetected, NodeValidationError, WorkflowError
from gtm_studio.services.graph_builder import ExecutionGraph, build_execution_graph
from gtm_studio.services.progress import ProgressCallback, summarize_results
from gtm_studio.services.workflow_context import WorkflowContext, enter_branch, exit_branch

logger = logging.getLogger(__name__)

# Returned by an executor that cannot run yet (a merge missing predecessors).
_DEFERRED = object()

BATCH_ACTION_ID = "generate-variation"
DEFAULT_TRIGGER_BATCH_SIZE = 10


# ---------------------------------------------------------------------------
# Executor registry
# ---------------------------------------------------------------------------

# Maps node kinds to their async executor functions.
# Each executor receives (run, node, path) and returns the node's result payload.
# `path` holds the ancestors of the node on the current call path.
NodeExecutor = Callable[["WorkflowRun", WorkflowNode, tuple[str, ...]], Awaitable[Any]]
_registry: dict[str, NodeExecutor] = {}


def executor(kind: str):
    """
    Decorator that registers an async executor function for a node kind.

    Usage:
        @executor("delay")
        async def _exec_delay(run: WorkflowRun, node: WorkflowNode, path) -> dict[str, Any]:
            await asyncio.sleep(node.config.get("seconds", 1))
            return {"type": "delay"}
    """
    def decorator(fn: NodeExecutor):
        _registry[kind] = fn
        return fn
    return decorator


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Scheduler
# ---------------------------------------------------------------------------


class WorkflowRun:
    """One execution of a workflow graph. Not reusable across runs."""

    def __init__(
        self,
        graph: ExecutionGraph,
        context: WorkflowContext,
        invoker: Invoker,
        rng: random.Random | None = None,
    ):
        self.graph = graph
        self.context = context
        self.invoker = invoker
        self.rng = rng or random.Random()
        self.visited: set[str] = set()
        self.node_results: list[NodeExecutionResult] = []
        self.failed_node_id: str | None = None
        self._in_flight: dict[str, asyncio.Task] = {}
        self._deferred: dict[str, None] = {}
        self._flushing = False

    async def run(self) -> None:
        if not self.graph.trigger_ids:
            logger.warning("Workflow %s has no trigger nodes; nothing to run", self.context.workflow.id)
        for trigger_id in self.graph.trigger_ids:
            await self.execute_node(trigger_id)
        await self._flush_deferred_merges()

    async def execute_node(self, node_id: str, path: tuple[str, ...] = ()) -> Any:
        """
        Run a node, then its successors.

        Returns the node's result, or None when the node was deferred.
        """
        if node_id in path:
            raise CycleDetected(node_id, path)
        if node_id in self.visited:
            logger.debug("Node %s already executed; reusing result", node_id)
            return self.context.results[node_id]

        pending = self._in_flight.get(node_id)
        if pending is not None:
            logger.debug("Node %s is in flight; awaiting it", node_id)
            result = await asyncio.shield(pending)
            return None if result is _DEFERRED else result

        node = self.graph.node_map[node_id]
        task = asyncio.create_task(self._dispatch(node, path))
        self._in_flight[node_id] = task
        try:
            result = await task
        finally:
            self._in_flight.pop(node_id, None)

        if result is _DEFERRED:
            return None

        if node.kind != "splitter":
            child_path = path + (node_id,)
            for successor in self.graph.successors(node_id):
                await self.execute_node(successor, child_path)
        return result

    async def _dispatch(self, node: WorkflowNode, path: tuple[str, ...]) -> Any:
        exec_fn = _registry.get(node.kind)
        self.context.node_statuses[node.id] = "running"
        node_start = time.perf_counter()

        try:
            if exec_fn is None:
                raise NodeValidationError(
                    f"No executor for node kind '{node.kind}'", node_id=node.id
                )
            result = await exec_fn(self, node, path)

        except asyncio.CancelledError:
            self.context.node_statuses[node.id] = "skipped"
            self.node_results.append(
                NodeExecutionResult(
                    node_id=node.id,
                    kind=node.kind,
                    status="skipped",
                    error="Execution cancelled due to upstream error",
                    execution_time_ms=int((time.perf_counter() - node_start) * 1000),
                )
            )
            raise

        except Exception as e:
            elapsed_ms = int((time.perf_counter() - node_start) * 1000)
            if isinstance(e, WorkflowError) and e.node_id is None:
                e.node_id = node.id
            if self.failed_node_id is None:
                self.failed_node_id = node.id
                logger.exception("Node %s failed: %s: %s", node.id, type(e).__name__, e)
            else:
                logger.debug("Node %s stopped by failure in %s", node.id, self.failed_node_id)
            self.context.node_statuses[node.id] = "error"
            self.node_results.append(
                NodeExecutionResult(
                    node_id=node.id,
                    kind=node.kind,
                    status="error",
                    error=f"{type(e).__name__}: {e}",
                    error_type=type(e).__name__,
                    execution_time_ms=elapsed_ms,
                )
            )
            raise

        if result is _DEFERRED:
            self.context.node_statuses[node.id] = "pending"
            self._deferred[node.id] = None
            logger.debug("Node %s deferred until its predecessors finish", node.id)
            return _DEFERRED

        self.context.record_result(node.id, result)
        self.visited.add(node.id)
        self._deferred.pop(node.id, None)
        self.context.node_statuses[node.id] = "completed"
        self.node_results.append(
            NodeExecutionResult(
                node_id=node.id,
                kind=node.kind,
                status="completed",
                execution_time_ms=int((time.perf_counter() - node_start) * 1000),
            )
        )
        return result

    # -- splitter support -------------------------------------------------

    async def execute_branch(self, branch_id: str, path: tuple[str, ...]) -> Any:
        """Run a branch root and its descendants with their own variable namespace."""
        token = enter_branch(branch_id)
        try:
            return await self.execute_node(branch_id, path)
        finally:
            exit_branch(token)

    async def execute_branches(self, branch_ids: list[str], path: tuple[str, ...]) -> list[Any]:
        """Run branches concurrently. The first failure cancels the rest and is re-raised."""
        tasks = [
            asyncio.create_task(self.execute_branch(branch_id, path))
            for branch_id in branch_ids
        ]
        try:
            return list(await asyncio.gather(*tasks))
        except BaseException:
            for task in tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    # -- merge support ----------------------------------------------------

    async def predecessors_settled(self, node: WorkflowNode, path: tuple[str, ...]) -> bool:
        """
        Wait for in-flight predecessors of `node`.

        False when some predecessor has not started yet (or is still running
        as an ancestor of this call), meaning the node must be deferred.
        """
        if self._flushing:
            return True
        for pred in self.graph.predecessors(node.id):
            if pred in self.visited:
                continue
            if pred in path:
                return False
            pending = self._in_flight.get(pred)
            if pending is None:
                return False
            await asyncio.shield(pending)
            if pred not in self.visited:
                return False
        return True

    def predecessor_results(self, node_id: str) -> list[Any]:
        results = self.context.results
        return [results[pred] for pred in self.graph.predecessors(node_id) if pred in results]

    async def _flush_deferred_merges(self) -> None:
        if not self._deferred:
            return
        self._flushing = True
        try:
            for node_id in list(self._deferred):
                if node_id in self.visited:
                    continue
                missing = [
                    p for p in self.graph.predecessors(node_id) if p not in self.visited
                ]
                logger.warning(
                    "Merge %s never received results from %s; merging what is available",
                    node_id,
                    ", ".join(missing),
                )
                await self.execute_node(node_id)
        finally:
            self._flushing = False


# ---------------------------------------------------------------------------
# Node executors
# ---------------------------------------------------------------------------


@executor("trigger")
async def _exec_trigger(run: WorkflowRun, node: WorkflowNode, path) -> dict[str, Any]:
    result: dict[str, Any] = {"type": "trigger", "triggered": True, "timestamp": _now()}
    if node.trigger_id == "schedule":
        result["schedule"] = node.config.get("schedule")
    elif node.trigger_id == "webhook":
        result["data"] = run.context.task
    elif node.trigger_id == "batch":
        size = int(node.config.get("batchSize") or DEFAULT_TRIGGER_BATCH_SIZE)
        result["batch"] = [{"id": f"batch-{i}", "variation": i + 1} for i in range(size)]
    return result


@executor("action")
async def _exec_action(run: WorkflowRun, node: WorkflowNode, path) -> dict[str, Any]:
    if not node.action_id:
        raise NodeValidationError(f"Action node {node.id} has no action id", node_id=node.id)

    await run.context.progress.report(node.id, 0, 1)
    result = await run.invoker.invoke(
        node.action_id,
        node.model_id,
        node.model_provider,
        node.config,
        run.context,
    )
    await run.context.progress.report(node.id, 1, 1)
    return result


@executor("splitter")
async def _exec_splitter(run: WorkflowRun, node: WorkflowNode, path) -> dict[str, Any]:
    strategy = node.config.get("strategy") or "parallel"
    branches = list(run.graph.successors(node.id))
    branch_path = path + (node.id,)

    if strategy == "parallel":
        run.context.parallel_branches[node.id] = branches
        logger.info("Splitter %s running %d branches in parallel", node.id, len(branches))
        results = await run.execute_branches(branches, branch_path)
        return {
            "type": "splitter",
            "strategy": strategy,
            "branches": len(branches),
            "results": results,
        }

    if strategy == "random":
        if not branches:
            return {"type": "splitter", "strategy": strategy, "selected": None, "results": []}
        selected = run.rng.choice(branches)
        logger.info("Splitter %s picked branch %s", node.id, selected)
        result = await run.execute_branch(selected, branch_path)
        return {"type": "splitter", "strategy": strategy, "selected": selected, "results": [result]}

    if strategy == "conditional":
        logger.warning(
            "Splitter %s uses the conditional strategy, which has no condition "
            "evaluator; no branch runs",
            node.id,
        )
        return {"type": "splitter", "strategy": strategy, "branches": 0, "results": []}

    raise NodeValidationError(
        f"Unknown splitter strategy '{strategy}' on node {node.id}", node_id=node.id
    )


_MERGE_STRATEGIES = ("collect", "first", "best")


@executor("merge")
async def _exec_merge(run: WorkflowRun, node: WorkflowNode, path) -> Any:
    strategy = node.config.get("strategy") or "collect"
    if strategy not in _MERGE_STRATEGIES:
        raise NodeValidationError(
            f"Unknown merge strategy '{strategy}' on node {node.id}", node_id=node.id
        )
    if not await run.predecessors_settled(node, path):
        return _DEFERRED

    collected = run.predecessor_results(node.id)
    if strategy == "collect":
        return {"type": "merge", "strategy": strategy, "collected": collected, "count": len(collected)}
    # "best" has no scoring function; it takes the first result like "first"
    return {"type": "merge", "strategy": strategy, "result": collected[0] if collected else None}


@executor("batch")
async def _exec_batch(run: WorkflowRun, node: WorkflowNode, path) -> dict[str, Any]:
    strategy = node.strategy or "parallel"
    items = expand_batch(node)
    run.context.batch_items.extend(items)
    logger.info(
        "Batch %s expanded into %d variations (%s)", node.id, len(items), strategy
    )

    async def _invoke_item(item):
        return await run.invoker.invoke(
            BATCH_ACTION_ID,
            node.model_id,
            node.model_provider,
            {
                "prompt": item.prompt,
                "variant": item.variant,
                "pipeline_type": item.pipeline_type,
            },
            run.context,
        )

    async def _report(completed: int, total: int) -> None:
        await run.context.progress.report(node.id, completed, total)

    outcome = await execute_batch(items, strategy, _invoke_item, _report)
    return {
        "type": "batch",
        "total_variations": len(items),
        "strategy": strategy,
        "results": outcome.grouped_by_pipeline(),
        "summary": outcome.summary,
    }


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------


def _as_definition(definition: WorkflowDefinition | dict[str, Any]) -> WorkflowDefinition:
    if isinstance(definition, WorkflowDefinition):
        return definition
    return WorkflowDefinition.model_validate(definition)


def _failure_message(error: BaseException, failed_node_id: str | None) -> str:
    node_id = failed_node_id or getattr(error, "node_id", None)
    if node_id:
        return f"Execution stopped at node {node_id}: {type(error).__name__}: {error}"
    return f"{type(error).__name__}: {error}"


async def execute_workflow(
    definition: WorkflowDefinition | dict[str, Any],
    *,
    task: Any = None,
    variables: dict[str, Any] | None = None,
    on_progress: ProgressCallback | None = None,
    invoker: Invoker | None = None,
    timeout: float | None = None,
    rng: random.Random | None = None,
) -> WorkflowExecutionResult:
    """
    Execute a workflow from all of its trigger nodes.

    Never raises for workflow failures: any error ends the run and comes
    back as success=False with the partial results recorded so far.
    """
    start_time = time.perf_counter()

    try:
        workflow = _as_definition(definition)
    except ValidationError as e:
        logger.warning("Rejected invalid workflow definition: %s", e)
        return WorkflowExecutionResult(
            success=False,
            error=f"Invalid workflow definition: {e}",
            error_type="NodeValidationError",
        )

    context = WorkflowContext(
        workflow=workflow,
        task=task,
        variables=dict(variables or {}),
        on_progress=on_progress,
    )
    run: WorkflowRun | None = None
    error: BaseException | None = None

    logger.info(
        "Executing workflow %s (%s): %d nodes, %d edges",
        workflow.id,
        workflow.name,
        len(workflow.nodes),
        len(workflow.edges),
    )
    try:
        graph = build_execution_graph(workflow.nodes, workflow.edges)
        run = WorkflowRun(graph, context, invoker or ActionInvoker(), rng=rng)
        if timeout is not None:
            await asyncio.wait_for(run.run(), timeout)
        else:
            await run.run()
    except Exception as e:
        error = e
        if run is None or run.failed_node_id is None:
            logger.exception("Workflow %s failed: %s", workflow.id, e)

    node_results = run.node_results if run is not None else []
    total_ms = int((time.perf_counter() - start_time) * 1000)
    result = WorkflowExecutionResult(
        success=error is None,
        workflow_id=workflow.id,
        results=context.results,
        variables=context.snapshot_variables(),
        summary=summarize_results(context.results, node_results),
        node_results=node_results,
        batch_items=context.batch_items,
        total_execution_time_ms=total_ms,
    )
    if error is not None:
        result.error = _failure_message(error, run.failed_node_id if run else None)
        result.error_type = type(error).__name__

    logger.info(
        "Workflow %s finished in %dms (success=%s, %d nodes)",
        workflow.id,
        total_ms,
        result.success,
        len(context.results),
    )
    return result


# ---------------------------------------------------------------------------
# Streaming execution (SSE)
# ---------------------------------------------------------------------------


async def execute_workflow_streaming(
    definition: WorkflowDefinition | dict[str, Any],
    *,
    task: Any = None,
    variables: dict[str, Any] | None = None,
    invoker: Invoker | None = None,
    timeout: float | None = None,
) -> AsyncIterator[str]:
    """
    Execute a workflow and yield SSE events as it progresses.

    Yields JSON events:
    - {"event": "workflow_start", "workflow_id": "...", "total_nodes": N}
    - {"event": "node_progress", "node_id": "...", "progress": 40, "completed": 2, "total": 5}
    - {"event": "workflow_complete", "result": {...}}
    - {"event": "workflow_error", "error": "...", "error_type": "...", "result": {...}}
    """
    try:
        workflow = _as_definition(definition)
    except ValidationError as e:
        event = {
            "event": "workflow_error",
            "error": f"Invalid workflow definition: {e}",
            "error_type": "NodeValidationError",
        }
        yield f"data: {json.dumps(event)}\n\n"
        return

    # Event queue for SSE - decouples execution from streaming
    event_queue: asyncio.Queue = asyncio.Queue()

    async def _on_progress(node_id: str, percent: int, completed: int, total: int) -> None:
        await event_queue.put({
            "event": "node_progress",
            "node_id": node_id,
            "progress": percent,
            "completed": completed,
            "total": total,
        })

    async def coordinator():
        try:
            result = await execute_workflow(
                workflow,
                task=task,
                variables=variables,
                on_progress=_on_progress,
                invoker=invoker,
                timeout=timeout,
            )
            payload = result.model_dump(mode="json")
            if result.success:
                await event_queue.put({"event": "workflow_complete", "result": payload})
            else:
                await event_queue.put({
                    "event": "workflow_error",
                    "error": result.error,
                    "error_type": result.error_type,
                    "result": payload,
                })
        except Exception as e:
            logger.exception("Coordinator error: %s", e)
            await event_queue.put({
                "event": "workflow_error",
                "error": f"Internal error: {type(e).__name__}: {e}",
                "error_type": type(e).__name__,
            })
        finally:
            # Signal end of events
            await event_queue.put(None)

    start_event = {
        "event": "workflow_start",
        "workflow_id": workflow.id,
        "total_nodes": len(workflow.nodes),
    }
    yield f"data: {json.dumps(start_event)}\n\n"

    coordinator_task = asyncio.create_task(coordinator())

    try:
        while True:
            event = await event_queue.get()
            if event is None:  # Sentinel for completion
                break
            yield f"data: {json.dumps(event, default=str)}\n\n"
    finally:
        if not coordinator_task.done():
            coordinator_task.cancel()
            try:
                await coordinator_task
            except asyncio.CancelledError:
                pass
