"""
Workflow execution API endpoints.

Definitions arrive as raw editor graphs (nodes and edges). They are validated
and run immediately; nothing about the workflow itself is stored. When
execution logging is enabled, a summary row per run goes to Supabase.
"""

import json
import logging
from fastapi import APIRouter, HTTPException, Depends
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field, ValidationError
from typing import Optional, List, Dict, Any

from gtm_studio.models.model_catalog import recommended_model
from gtm_studio.models.workflow import WorkflowDefinition, WorkflowExecutionResult
from gtm_studio.services.action_invoker import ActionInvoker, Invoker, registered_actions
from gtm_studio.services.cost_estimator import estimate_workflow_cost
from gtm_studio.services.errors import CycleDetected, GraphBuildError
from gtm_studio.services.execution_log import save_execution_log
from gtm_studio.services.graph_builder import build_execution_graph
from gtm_studio.services.workflow_executor import execute_workflow, execute_workflow_streaming

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/workflows", tags=["workflows"])


class WorkflowData(BaseModel):
    """Workflow structure as exported by the editor."""
    nodes: List[Dict[str, Any]] = Field(..., description="Editor nodes")
    edges: List[Dict[str, Any]] = Field(default_factory=list, description="Editor edges (connections)")
    workflow_id: Optional[str] = None
    workflow_name: Optional[str] = None


class ExecuteRequest(WorkflowData):
    """Execute a raw (unsaved) workflow."""
    task: Optional[Dict[str, Any]] = None
    variables: Dict[str, Any] = Field(default_factory=dict)
    timeout_s: Optional[float] = Field(default=None, gt=0)


_default_invoker: Optional[ActionInvoker] = None


def get_invoker() -> Invoker:
    """Shared action invoker; provider clients are created on first use."""
    global _default_invoker
    if _default_invoker is None:
        _default_invoker = ActionInvoker()
    return _default_invoker


def _to_definition(request: WorkflowData) -> WorkflowDefinition:
    try:
        definition = WorkflowDefinition.model_validate(
            {
                "id": request.workflow_id,
                "name": request.workflow_name or "Unsaved Workflow",
                "nodes": request.nodes,
                "edges": request.edges,
            }
        )
    except ValidationError as e:
        raise HTTPException(
            status_code=422,
            detail={
                "message": "Invalid workflow definition",
                "errors": json.loads(e.json(include_url=False)),
            },
        )

    try:
        build_execution_graph(definition.nodes, definition.edges)
    except GraphBuildError as e:
        raise HTTPException(
            status_code=422,
            detail={"message": "Invalid workflow graph", "diagnostics": e.problems},
        )
    except CycleDetected as e:
        raise HTTPException(
            status_code=422,
            detail={"message": "Invalid workflow graph", "diagnostics": [str(e)]},
        )
    return definition


@router.get("/actions")
async def list_actions():
    """Registered action ids with the model each one uses by default."""
    return {
        "actions": [
            {"id": action_id, "default_model": recommended_model(action_id).id}
            for action_id in registered_actions()
        ]
    }


@router.post("/estimate-cost")
async def estimate_cost(workflow_data: WorkflowData):
    """Rough USD cost of running the workflow once."""
    definition = _to_definition(workflow_data)
    return estimate_workflow_cost(definition).model_dump()


@router.post("/execute")
async def execute_workflow_raw(
    request: ExecuteRequest,
    invoker: Invoker = Depends(get_invoker),
):
    """
    Execute a raw (unsaved) editor graph.
    Returns the execution result; a failed run still answers 200 with success=false.
    """
    definition = _to_definition(request)

    try:
        execution_result = await execute_workflow(
            definition,
            task=request.task,
            variables=request.variables,
            invoker=invoker,
            timeout=request.timeout_s,
        )
    except Exception as e:
        logger.exception("Workflow execution crashed: %s", e)
        raise HTTPException(status_code=500, detail=f"Failed to execute workflow: {str(e)}")

    _, warning = save_execution_log(execution_result, request.workflow_id)
    execution_result.persistence_warning = warning

    return execution_result.model_dump(mode="json")


@router.post("/execute/stream")
async def execute_workflow_stream(
    request: ExecuteRequest,
    invoker: Invoker = Depends(get_invoker),
):
    """
    Execute a workflow with Server-Sent Events (SSE) streaming.

    Returns a stream of events:
    - workflow_start: Execution is starting
    - node_progress: A node reported progress
    - workflow_complete: The run finished successfully
    - workflow_error: The run stopped due to an error
    """
    # Validate first (not streamed)
    definition = _to_definition(request)

    async def event_generator():
        async for event in execute_workflow_streaming(
            definition,
            task=request.task,
            variables=request.variables,
            invoker=invoker,
            timeout=request.timeout_s,
        ):
            if not event.startswith("data: "):
                yield event
                continue

            payload = event[len("data: "):].strip()
            try:
                parsed = json.loads(payload)
            except json.JSONDecodeError:
                yield event
                continue

            if parsed.get("event") in ("workflow_complete", "workflow_error") and parsed.get("result"):
                workflow_result = WorkflowExecutionResult.model_validate(parsed["result"])
                _, warning = save_execution_log(workflow_result, request.workflow_id)
                if warning:
                    parsed["persistence_warning"] = warning
                yield f"data: {json.dumps(parsed)}\n\n"
                continue

            yield event

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",  # Disable nginx buffering
        },
    )
