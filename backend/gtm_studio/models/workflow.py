"""
Workflow models: the execution-ready representation of a GTM Studio workflow.

The editor saves nodes with positions, styling and labels; none of that
matters to the engine. These models keep only the semantic fields and
ignore the rest, so an editor export can be validated directly.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator


BatchStrategy = Literal["parallel", "sequential", "adaptive"]
NodeStatus = Literal["pending", "running", "completed", "error", "skipped"]

DEFAULT_BATCH_TEMPLATES = ["jesus", "bible", "testimony", "prayer"]

# Semantic keys the editor may nest under `data` instead of the node root.
_DATA_KEYS = (
    "actionId",
    "triggerId",
    "flowId",
    "config",
    "modelId",
    "modelProvider",
    "variations",
    "strategy",
    "basePrompt",
    "varyTone",
    "varyStyle",
    "varyHook",
    "varyLength",
    "templates",
)


class WorkflowNode(BaseModel):
    model_config = ConfigDict(
        populate_by_name=True,
        extra="ignore",
        frozen=True,
        protected_namespaces=(),
    )

    id: str
    # trigger | action | splitter | merge | batch, or any kind registered with @executor
    kind: str = Field(alias="type")
    action_id: str | None = Field(default=None, alias="actionId")
    trigger_id: str | None = Field(default=None, alias="triggerId")
    flow_id: str | None = Field(default=None, alias="flowId")
    config: dict[str, Any] = Field(default_factory=dict)
    model_id: str | None = Field(default=None, alias="modelId")
    model_provider: str | None = Field(default=None, alias="modelProvider")

    # Batch-only attributes
    variations: int = Field(default=10, ge=0)
    strategy: str | None = None  # batch nodes only; checked when the batch runs
    base_prompt: str = Field(default="", alias="basePrompt")
    vary_tone: bool = Field(default=False, alias="varyTone")
    vary_style: bool = Field(default=False, alias="varyStyle")
    vary_hook: bool = Field(default=False, alias="varyHook")
    vary_length: bool = Field(default=False, alias="varyLength")
    templates: list[str] = Field(default_factory=lambda: list(DEFAULT_BATCH_TEMPLATES))

    @model_validator(mode="before")
    @classmethod
    def _flatten_editor_data(cls, value: Any) -> Any:
        """Lift semantic fields out of the editor's `data` payload."""
        if not isinstance(value, dict):
            return value
        data = value.get("data")
        if not isinstance(data, dict):
            return value
        flattened = dict(value)
        for key in _DATA_KEYS:
            if key in data and key not in flattened:
                flattened[key] = data[key]
        return flattened


class WorkflowEdge(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    source: str
    target: str
    source_handle: str | None = Field(default=None, alias="sourceHandle")
    target_handle: str | None = Field(default=None, alias="targetHandle")


class WorkflowDefinition(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str | None = None
    name: str = "Untitled Workflow"
    nodes: list[WorkflowNode] = Field(default_factory=list)
    edges: list[WorkflowEdge] = Field(default_factory=list)


class BatchItem(BaseModel):
    id: str
    variant: int
    prompt: str
    pipeline_type: str
    tone: str
    style: str
    hook: str
    length: str


class NodeExecutionResult(BaseModel):
    node_id: str
    kind: str | None = None
    status: Literal["completed", "error", "skipped"]
    error: str | None = None
    error_type: str | None = None
    execution_time_ms: int = 0


class WorkflowExecutionResult(BaseModel):
    success: bool
    workflow_id: str | None = None
    results: dict[str, Any] = Field(default_factory=dict)
    variables: dict[str, Any] = Field(default_factory=dict)
    summary: dict[str, Any] = Field(default_factory=dict)
    node_results: list[NodeExecutionResult] = Field(default_factory=list)
    batch_items: list[BatchItem] = Field(default_factory=list)
    total_execution_time_ms: int = 0
    error: str | None = None
    error_type: str | None = None
    persistence_warning: str | None = None
