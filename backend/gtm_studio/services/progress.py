"""
Progress reporting and end-of-run result aggregation.
"""

from __future__ import annotations

import inspect
import logging
from typing import Any, Awaitable, Callable, Iterable, Union

from gtm_studio.models.workflow import NodeExecutionResult

logger = logging.getLogger(__name__)

# (node_id, progress_percent, completed_count, total_count)
ProgressCallback = Callable[[str, int, int, int], Union[None, Awaitable[None]]]


def progress_percent(completed: int, total: int) -> int:
    if total <= 0:
        return 100
    return round(completed / total * 100)


class ProgressReporter:
    """Passes progress updates through to an optional caller callback."""

    def __init__(self, callback: ProgressCallback | None = None):
        self._callback = callback

    async def report(self, node_id: str, completed: int, total: int) -> None:
        percent = progress_percent(completed, total)
        logger.debug("Progress %s: %d%% (%d/%d)", node_id, percent, completed, total)
        if self._callback is None:
            return
        try:
            outcome = self._callback(node_id, percent, completed, total)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception:
            # A broken subscriber must not fail the run it is observing.
            logger.exception("Progress callback failed for node %s", node_id)


def summarize_results(
    results: dict[str, Any],
    node_results: Iterable[NodeExecutionResult] = (),
) -> dict[str, Any]:
    """
    Count results by their `type` tag plus errors.

    An error is any result payload carrying an `error` field, any batch
    item that failed, or any node whose execution raised.
    """
    by_type: dict[str, int] = {}
    errors = 0

    for payload in results.values():
        if not isinstance(payload, dict):
            continue
        result_type = payload.get("type") or "unknown"
        by_type[result_type] = by_type.get(result_type, 0) + 1
        if payload.get("error"):
            errors += 1
        if result_type == "batch":
            errors += int(payload.get("summary", {}).get("failed", 0))

    errors += sum(1 for nr in node_results if nr.status == "error")

    return {
        "total_nodes": len(results),
        "by_type": by_type,
        "media_generated": {
            "images": by_type.get("image", 0),
            "videos": by_type.get("video", 0),
            "audio": by_type.get("audio", 0),
        },
        "scripts_generated": by_type.get("script", 0),
        "errors": errors,
    }
