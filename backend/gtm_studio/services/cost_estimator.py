"""
Rough USD cost estimate for running a workflow once.

Language-model actions are charged a flat per-call figure; media actions
use the catalog cost of their model. Batch nodes are charged per variation
plus one image, video and audio generation per target template.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from gtm_studio.models.model_catalog import MediaType, estimate_media_cost, recommended_model
from gtm_studio.models.workflow import WorkflowDefinition, WorkflowNode

# Rough estimate for one GPT-4o Mini class completion
TEXT_CALL_COST = 0.001

_MEDIA_ACTIONS: dict[str, MediaType] = {
    "generate-image": "image",
    "contextual-image": "contextual",
    "create-video": "video",
    "generate-audio": "audio",
}

_TEXT_ACTIONS = {
    "generate-script",
    "generate-variation",
    "post-social",
    "analyze-metrics",
    "generate-report",
}


class CostEstimate(BaseModel):
    total: float = 0.0
    per_node: dict[str, float] = Field(default_factory=dict)


def _action_cost(node: WorkflowNode) -> float:
    action_id = node.action_id or ""
    media_type = _MEDIA_ACTIONS.get(action_id)
    if media_type is not None:
        model_id = node.model_id or node.config.get("model") or recommended_model(action_id).id
        return estimate_media_cost(model_id, media_type)
    if action_id in _TEXT_ACTIONS:
        return TEXT_CALL_COST
    return 0.0


def _batch_cost(node: WorkflowNode) -> float:
    cost = node.variations * TEXT_CALL_COST
    per_template = (
        estimate_media_cost(recommended_model("generate-image").id, "image")
        + estimate_media_cost(recommended_model("create-video").id, "video")
        + estimate_media_cost(recommended_model("generate-audio").id, "audio")
    )
    return cost + per_template * len(node.templates)


def estimate_workflow_cost(definition: WorkflowDefinition | dict[str, Any]) -> CostEstimate:
    if not isinstance(definition, WorkflowDefinition):
        definition = WorkflowDefinition.model_validate(definition)

    estimate = CostEstimate()
    for node in definition.nodes:
        if node.kind == "action":
            cost = _action_cost(node)
        elif node.kind == "batch":
            cost = _batch_cost(node)
        else:
            continue
        estimate.per_node[node.id] = round(cost, 6)
        estimate.total += cost
    estimate.total = round(estimate.total, 6)
    return estimate
