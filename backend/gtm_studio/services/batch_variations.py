"""
Batch variation generator.

A batch node expands into N prompt variations by walking the tone, style,
hook and length axes like a mixed-radix counter (tone changes fastest), and
assigns each variation to a target pipeline round-robin. The variations are
then run with one of three strategies:

- parallel:   every item at once
- sequential: one item at a time
- adaptive:   groups of ADAPTIVE_CHUNK_SIZE items, one group at a time

An item that fails is recorded with an `error` field; the batch carries on.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, get_args

from gtm_studio.models.workflow import BatchItem, BatchStrategy, WorkflowNode
from gtm_studio.services.errors import BatchItemError, NodeValidationError

logger = logging.getLogger(__name__)

TONES = ["uplifting", "emotional", "direct", "conversational", "inspiring"]
STYLES = ["cinematic", "testimonial", "documentary", "viral", "traditional"]
HOOKS = [
    "start with a question",
    "start with a bold statement",
    "start with a story",
    "start with a statistic",
    "start with a challenge",
]
LENGTHS = ["15 seconds", "30 seconds", "60 seconds", "90 seconds"]

DEFAULT_AXIS_VALUE = "default"
DEFAULT_LENGTH = "30 seconds"
ADAPTIVE_CHUNK_SIZE = 5
BATCH_STRATEGIES = get_args(BatchStrategy)

PIPELINE_FRAMING = {
    "jesus": "Create content about Jesus.",
    "bible": "Create Bible verse content.",
    "testimony": "Create testimony content.",
    "prayer": "Create prayer content.",
}

InvokeItem = Callable[[BatchItem], Awaitable[Any]]
ReportProgress = Callable[[int, int], Awaitable[None]]


@dataclass
class BatchOutcome:
    strategy: BatchStrategy
    items: list[dict[str, Any]] = field(default_factory=list)

    @property
    def summary(self) -> dict[str, int]:
        failed = sum(1 for item in self.items if item.get("error"))
        return {
            "total": len(self.items),
            "successful": len(self.items) - failed,
            "failed": failed,
        }

    def grouped_by_pipeline(self) -> dict[str, list[dict[str, Any]]]:
        grouped: dict[str, list[dict[str, Any]]] = {}
        for item in self.items:
            grouped.setdefault(item["pipeline_type"], []).append(item)
        return grouped


def _framing_for(pipeline_type: str) -> str:
    return PIPELINE_FRAMING.get(pipeline_type, f"Create {pipeline_type} content.")


def compose_prompt(
    base_prompt: str,
    pipeline_type: str,
    tone: str,
    style: str,
    hook: str,
    length: str,
) -> str:
    tags: list[str] = []
    if tone != DEFAULT_AXIS_VALUE:
        tags.append(f"[Tone: {tone}]")
    if style != DEFAULT_AXIS_VALUE:
        tags.append(f"[Style: {style}]")
    if hook != DEFAULT_AXIS_VALUE:
        tags.append(f"[Hook: {hook}]")
    if length != DEFAULT_LENGTH:
        tags.append(f"[Length: {length}]")
    parts = [_framing_for(pipeline_type), *tags]
    if base_prompt:
        parts.append(base_prompt)
    return " ".join(parts)


def expand_batch(node: WorkflowNode) -> list[BatchItem]:
    """Expand a batch node into its variation items. Pure function of the node."""
    if node.kind != "batch":
        raise NodeValidationError(
            f"Node {node.id} is a {node.kind} node, not a batch node", node_id=node.id
        )

    tones = TONES if node.vary_tone else [DEFAULT_AXIS_VALUE]
    styles = STYLES if node.vary_style else [DEFAULT_AXIS_VALUE]
    hooks = HOOKS if node.vary_hook else [DEFAULT_AXIS_VALUE]
    lengths = LENGTHS if node.vary_length else [DEFAULT_LENGTH]
    templates = node.templates
    if not templates:
        raise NodeValidationError(
            f"Batch node {node.id} has no target templates", node_id=node.id
        )

    items: list[BatchItem] = []
    for i in range(node.variations):
        tone = tones[i % len(tones)]
        style = styles[(i // len(tones)) % len(styles)]
        hook = hooks[(i // (len(tones) * len(styles))) % len(hooks)]
        length = lengths[(i // (len(tones) * len(styles) * len(hooks))) % len(lengths)]
        pipeline_type = templates[i % len(templates)]

        items.append(
            BatchItem(
                id=f"batch-{i}",
                variant=i + 1,
                prompt=compose_prompt(node.base_prompt, pipeline_type, tone, style, hook, length),
                pipeline_type=pipeline_type,
                tone=tone,
                style=style,
                hook=hook,
                length=length,
            )
        )
    return items


async def _run_item(item: BatchItem, invoke_item: InvokeItem) -> dict[str, Any]:
    try:
        result = await invoke_item(item)
    except asyncio.CancelledError:
        raise
    except Exception as e:
        failure = BatchItemError(item.id, e)
        logger.warning("%s", failure)
        return {**item.model_dump(), "error": str(e), "error_type": type(e).__name__}
    return {**item.model_dump(), "result": result}


async def execute_batch(
    items: list[BatchItem],
    strategy: BatchStrategy,
    invoke_item: InvokeItem,
    report_progress: ReportProgress | None = None,
) -> BatchOutcome:
    """Run every item with the given strategy. Item failures never raise."""
    if strategy not in BATCH_STRATEGIES:
        raise NodeValidationError(f"Unknown batch strategy '{strategy}'")
    outcome = BatchOutcome(strategy=strategy)
    total = len(items)

    async def _report(completed: int) -> None:
        if report_progress is not None:
            await report_progress(completed, total)

    await _report(0)

    if strategy == "parallel":
        completed = 0

        async def _tracked(item: BatchItem) -> dict[str, Any]:
            nonlocal completed
            entry = await _run_item(item, invoke_item)
            completed += 1
            await _report(completed)
            return entry

        outcome.items = list(await asyncio.gather(*(_tracked(item) for item in items)))

    elif strategy == "sequential":
        for index, item in enumerate(items, start=1):
            outcome.items.append(await _run_item(item, invoke_item))
            await _report(index)

    elif strategy == "adaptive":
        for start in range(0, total, ADAPTIVE_CHUNK_SIZE):
            chunk = items[start:start + ADAPTIVE_CHUNK_SIZE]
            outcome.items.extend(
                await asyncio.gather(*(_run_item(item, invoke_item) for item in chunk))
            )
            await _report(min(start + ADAPTIVE_CHUNK_SIZE, total))

    logger.info(
        "Batch finished (%s): %d/%d successful",
        strategy,
        outcome.summary["successful"],
        total,
    )
    return outcome
