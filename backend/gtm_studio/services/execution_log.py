"""
Execution log persistence.

After a run the HTTP layer may store a summary row in the Supabase
`executions` table. Saving is optional (WORKFLOW_PERSIST_EXECUTIONS) and
never fails a run: problems come back as a persistence warning.
"""

from __future__ import annotations

import logging
from typing import Any

from gtm_studio.config import PersistenceConfig
from gtm_studio.db.supabase import get_supabase
from gtm_studio.models.workflow import WorkflowExecutionResult

logger = logging.getLogger(__name__)


def build_execution_row(
    result: WorkflowExecutionResult,
    workflow_id: str | None,
) -> dict[str, Any]:
    node_summaries = [
        {
            "node_id": nr.node_id,
            "kind": nr.kind,
            "status": nr.status,
            "error": nr.error,
            "execution_time_ms": nr.execution_time_ms,
        }
        for nr in result.node_results
    ]

    return {
        "workflow_id": workflow_id,
        "success": result.success,
        "error": result.error,
        "error_type": result.error_type,
        "total_execution_time_ms": result.total_execution_time_ms,
        "node_count": len(result.node_results),
        "nodes_completed": sum(1 for nr in result.node_results if nr.status == "completed"),
        "nodes_errored": sum(1 for nr in result.node_results if nr.status == "error"),
        "node_summaries": node_summaries,
        "summary": result.summary,
    }


def save_execution_log(
    result: WorkflowExecutionResult,
    workflow_id: str | None,
    enabled: bool | None = None,
) -> tuple[str | None, str | None]:
    """
    Persist an execution summary.

    Returns:
        (execution_id, persistence_warning)
    """
    if enabled is None:
        enabled = PersistenceConfig.PERSIST_EXECUTIONS
    if not enabled:
        return None, None

    try:
        insert_result = get_supabase().executions().insert(
            build_execution_row(result, workflow_id)
        ).execute()
        if not insert_result.data:
            logger.warning(
                "Execution log insert returned no data for workflow %s", workflow_id
            )
            return None, "Execution completed but the log entry was not confirmed."
        return str(insert_result.data[0]["id"]), None
    except Exception as e:
        logger.exception("Failed to save execution log for workflow %s: %s", workflow_id, str(e))
        return None, "Execution completed but could not be saved to history."
