"""
Tests for the workflow scheduler.

Covers trigger dispatch, re-visit caching, merge timing, splitter fan-out,
failure propagation, cycles and the batch node.
"""

import asyncio
import json
import random
import pytest
from typing import Any

import sys
from pathlib import Path

backend_root = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(backend_root))

from gtm_studio.services.action_invoker import ActionInvoker, Providers
from gtm_studio.services.workflow_executor import (
    _registry,
    execute_workflow,
    execute_workflow_streaming,
    executor,
)


# ---------------------------------------------------------------------------
# Helper functions
# ---------------------------------------------------------------------------


def trigger(node_id: str = "T", trigger_id: str = "manual", **config) -> dict[str, Any]:
    return {"id": node_id, "type": "trigger", "triggerId": trigger_id, "config": config}


def action(node_id: str, action_id: str = "generate-script", **config) -> dict[str, Any]:
    return {
        "id": node_id,
        "type": "action",
        "actionId": action_id,
        "config": {"name": node_id, **config},
    }


def splitter(node_id: str = "S", strategy: str = "parallel") -> dict[str, Any]:
    return {"id": node_id, "type": "splitter", "config": {"strategy": strategy}}


def merge(node_id: str = "M", strategy: str = "collect") -> dict[str, Any]:
    return {"id": node_id, "type": "merge", "config": {"strategy": strategy}}


def edge(source: str, target: str) -> dict[str, str]:
    return {"source": source, "target": target}


def workflow(nodes: list[dict], edges: list[dict]) -> dict[str, Any]:
    return {"id": "wf-test", "name": "Test Workflow", "nodes": nodes, "edges": edges}


def node_result(result, node_id: str):
    matches = [nr for nr in result.node_results if nr.node_id == node_id]
    assert len(matches) == 1, f"expected one result for {node_id}, got {len(matches)}"
    return matches[0]


@executor("MockEcho")
async def _exec_mock_echo(run, node, path) -> dict[str, Any]:
    """Custom node kind registered the same way the built-ins are."""
    return {"type": "echo", "value": node.config.get("value")}


# ---------------------------------------------------------------------------
# Triggers and basic traversal
# ---------------------------------------------------------------------------


class TestTriggers:
    """Tests for trigger nodes and traversal order."""

    @pytest.mark.asyncio
    async def test_manual_trigger_result(self, make_invoker):
        result = await execute_workflow(workflow([trigger()], []), invoker=make_invoker())

        assert result.success
        assert result.results["T"]["type"] == "trigger"
        assert result.results["T"]["triggered"] is True
        assert "timestamp" in result.results["T"]

    @pytest.mark.asyncio
    async def test_webhook_trigger_carries_task(self, make_invoker):
        task = {"id": "task-9", "name": "Launch"}
        result = await execute_workflow(
            workflow([trigger(trigger_id="webhook")], []),
            task=task,
            invoker=make_invoker(),
        )

        assert result.results["T"]["data"] == task

    @pytest.mark.asyncio
    async def test_schedule_trigger_carries_schedule(self, make_invoker):
        result = await execute_workflow(
            workflow([trigger(trigger_id="schedule", schedule="0 9 * * 1")], []),
            invoker=make_invoker(),
        )

        assert result.results["T"]["schedule"] == "0 9 * * 1"

    @pytest.mark.asyncio
    async def test_batch_trigger_generates_entries(self, make_invoker):
        result = await execute_workflow(
            workflow([trigger(trigger_id="batch", batchSize=3)], []),
            invoker=make_invoker(),
        )

        assert result.results["T"]["batch"] == [
            {"id": "batch-0", "variation": 1},
            {"id": "batch-1", "variation": 2},
            {"id": "batch-2", "variation": 3},
        ]

    @pytest.mark.asyncio
    async def test_zero_triggers_is_success(self, make_invoker):
        invoker = make_invoker()
        result = await execute_workflow(workflow([action("A")], []), invoker=invoker)

        assert result.success
        assert result.results == {}
        assert invoker.calls == []

    @pytest.mark.asyncio
    async def test_successors_run_in_edge_order(self, make_invoker):
        invoker = make_invoker()
        wf = workflow(
            [trigger(), action("A"), action("B"), action("C")],
            [edge("T", "B"), edge("T", "A"), edge("A", "C")],
        )

        result = await execute_workflow(wf, invoker=invoker)

        assert result.success
        assert [config["name"] for _, config in invoker.calls] == ["B", "A", "C"]

    @pytest.mark.asyncio
    async def test_editor_nodes_with_data_payload(self, make_invoker):
        """Nodes exported by the editor keep semantic fields under `data`."""
        invoker = make_invoker()
        wf = workflow(
            [
                {"id": "T", "type": "trigger", "position": {"x": 0, "y": 0},
                 "data": {"label": "Start", "triggerId": "manual"}},
                {"id": "A", "type": "action", "position": {"x": 200, "y": 0},
                 "data": {"label": "Script", "actionId": "generate-script",
                          "config": {"name": "A"}}},
            ],
            [{"id": "e1", "source": "T", "target": "A", "animated": True}],
        )

        result = await execute_workflow(wf, invoker=invoker)

        assert result.success
        assert invoker.count("A") == 1

    @pytest.mark.asyncio
    async def test_custom_kind_from_registry(self, make_invoker):
        assert "MockEcho" in _registry
        wf = workflow(
            [trigger(), {"id": "E", "type": "MockEcho", "config": {"value": 7}}],
            [edge("T", "E")],
        )

        result = await execute_workflow(wf, invoker=make_invoker())

        assert result.success
        assert result.results["E"] == {"type": "echo", "value": 7}

    @pytest.mark.asyncio
    async def test_unknown_kind_fails_run(self, make_invoker):
        wf = workflow(
            [trigger(), {"id": "X", "type": "teleport"}],
            [edge("T", "X")],
        )

        result = await execute_workflow(wf, invoker=make_invoker())

        assert not result.success
        assert result.error_type == "NodeValidationError"
        assert "teleport" in result.error
        assert result.results["T"]["type"] == "trigger"


# ---------------------------------------------------------------------------
# Re-visits and merges
# ---------------------------------------------------------------------------


class TestRevisitsAndMerges:
    """Tests for node caching and merge timing."""

    @pytest.mark.asyncio
    async def test_diamond_node_runs_once(self, make_invoker):
        """T -> A, T -> B, A -> C, B -> C: C is dispatched exactly once."""
        invoker = make_invoker()
        wf = workflow(
            [trigger(), action("A"), action("B"), action("C")],
            [edge("T", "A"), edge("T", "B"), edge("A", "C"), edge("B", "C")],
        )

        result = await execute_workflow(wf, invoker=invoker)

        assert result.success
        assert invoker.count("C") == 1
        assert set(result.results) == {"T", "A", "B", "C"}
        assert node_result(result, "C").status == "completed"

    @pytest.mark.asyncio
    async def test_in_flight_node_is_awaited_not_redispatched(self, make_invoker):
        """Two parallel branches reach C while it is still running."""
        invoker = make_invoker(delays={"C": 0.05})
        wf = workflow(
            [trigger(), splitter(), action("A"), action("B"), action("C")],
            [edge("T", "S"), edge("S", "A"), edge("S", "B"), edge("A", "C"), edge("B", "C")],
        )

        result = await execute_workflow(wf, invoker=invoker)

        assert result.success
        assert invoker.count("C") == 1
        assert result.results["C"] == {"type": "script", "content": "C"}

    @pytest.mark.asyncio
    async def test_merge_waits_for_slow_branch(self, make_invoker):
        invoker = make_invoker(delays={"A": 0.05, "B": 0.0})
        wf = workflow(
            [trigger(), splitter(), action("A"), action("B"), merge()],
            [edge("T", "S"), edge("S", "A"), edge("S", "B"), edge("A", "M"), edge("B", "M")],
        )

        result = await execute_workflow(wf, invoker=invoker)

        assert result.success
        merged = result.results["M"]
        assert merged["type"] == "merge"
        assert merged["count"] == 2
        assert {"type": "script", "content": "A"} in merged["collected"]
        assert {"type": "script", "content": "B"} in merged["collected"]
        node_result(result, "M")

    @pytest.mark.asyncio
    async def test_merge_deferred_until_later_sibling(self, make_invoker):
        """Sequential siblings: the merge must not fire after only the first one."""
        wf = workflow(
            [trigger(), action("A"), action("B"), merge()],
            [edge("T", "A"), edge("T", "B"), edge("A", "M"), edge("B", "M")],
        )

        result = await execute_workflow(wf, invoker=make_invoker())

        assert result.success
        assert result.results["M"]["count"] == 2
        node_result(result, "M")

    @pytest.mark.asyncio
    async def test_merge_with_unreachable_predecessor_is_flushed(self, make_invoker):
        invoker = make_invoker()
        wf = workflow(
            [trigger(), action("A"), action("X"), merge()],
            [edge("T", "A"), edge("A", "M"), edge("X", "M")],
        )

        result = await execute_workflow(wf, invoker=invoker)

        assert result.success
        assert result.results["M"]["count"] == 1
        assert invoker.count("X") == 0

    @pytest.mark.asyncio
    async def test_merge_successors_run_after_merge(self, make_invoker):
        invoker = make_invoker()
        wf = workflow(
            [trigger(), action("A"), action("B"), merge(), action("Z")],
            [edge("T", "A"), edge("T", "B"), edge("A", "M"), edge("B", "M"), edge("M", "Z")],
        )

        result = await execute_workflow(wf, invoker=invoker)

        assert result.success
        assert invoker.count("Z") == 1
        assert [config["name"] for _, config in invoker.calls][-1] == "Z"

    @pytest.mark.asyncio
    async def test_first_merge_strategy(self, make_invoker):
        wf = workflow(
            [trigger(), action("A"), action("B"), merge(strategy="first")],
            [edge("T", "A"), edge("T", "B"), edge("A", "M"), edge("B", "M")],
        )

        result = await execute_workflow(wf, invoker=make_invoker())

        assert result.results["M"] == {
            "type": "merge",
            "strategy": "first",
            "result": {"type": "script", "content": "A"},
        }

    @pytest.mark.asyncio
    async def test_unknown_merge_strategy(self, make_invoker):
        wf = workflow([trigger(), merge(strategy="vote")], [edge("T", "M")])

        result = await execute_workflow(wf, invoker=make_invoker())

        assert not result.success
        assert result.error_type == "NodeValidationError"


# ---------------------------------------------------------------------------
# Splitters
# ---------------------------------------------------------------------------


class TestSplitters:
    """Tests for splitter fan-out."""

    @pytest.mark.asyncio
    async def test_parallel_splitter_runs_every_branch(self, make_invoker):
        invoker = make_invoker(delays={b: 0.05 for b in "ABCD"})
        wf = workflow(
            [trigger(), splitter()] + [action(b) for b in "ABCD"],
            [edge("T", "S")] + [edge("S", b) for b in "ABCD"],
        )

        result = await execute_workflow(wf, invoker=invoker)

        assert result.success
        assert result.results["S"]["branches"] == 4
        assert len(result.results["S"]["results"]) == 4
        for b in "ABCD":
            assert invoker.count(b) == 1

        # All branches start before any finishes
        starts = [i for i, (_, ev) in enumerate(invoker.events) if ev == "start"]
        ends = [i for i, (_, ev) in enumerate(invoker.events) if ev == "end"]
        assert max(starts) < min(ends)

    @pytest.mark.asyncio
    async def test_splitter_does_not_run_successors_twice(self, make_invoker):
        invoker = make_invoker()
        wf = workflow(
            [trigger(), splitter(), action("A"), action("B")],
            [edge("T", "S"), edge("S", "A"), edge("S", "B")],
        )

        result = await execute_workflow(wf, invoker=invoker)

        assert result.success
        assert invoker.count("A") == 1
        assert invoker.count("B") == 1

    @pytest.mark.asyncio
    async def test_random_splitter_runs_one_branch(self, make_invoker):
        invoker = make_invoker()
        wf = workflow(
            [trigger(), splitter(strategy="random"), action("A"), action("B"), action("C")],
            [edge("T", "S"), edge("S", "A"), edge("S", "B"), edge("S", "C")],
        )

        result = await execute_workflow(wf, invoker=invoker, rng=random.Random(0))

        assert result.success
        selected = result.results["S"]["selected"]
        assert selected in {"A", "B", "C"}
        assert len(invoker.calls) == 1
        assert invoker.count(selected) == 1

    @pytest.mark.asyncio
    async def test_conditional_splitter_runs_nothing(self, make_invoker):
        invoker = make_invoker()
        wf = workflow(
            [trigger(), splitter(strategy="conditional"), action("A")],
            [edge("T", "S"), edge("S", "A")],
        )

        result = await execute_workflow(wf, invoker=invoker)

        assert result.success
        assert result.results["S"]["results"] == []
        assert invoker.calls == []

    @pytest.mark.asyncio
    async def test_unknown_splitter_strategy(self, make_invoker):
        wf = workflow([trigger(), splitter(strategy="round-robin")], [edge("T", "S")])

        result = await execute_workflow(wf, invoker=make_invoker())

        assert not result.success
        assert result.error_type == "NodeValidationError"

    @pytest.mark.asyncio
    async def test_branch_failure_cancels_siblings(self, make_invoker):
        invoker = make_invoker(delays={"A": 0.01, "B": 0.5}, failures={"A"})
        wf = workflow(
            [trigger(), splitter(), action("A"), action("B")],
            [edge("T", "S"), edge("S", "A"), edge("S", "B")],
        )

        result = await execute_workflow(wf, invoker=invoker)

        assert not result.success
        assert result.error_type == "ProviderError"
        assert "A" in result.error
        assert node_result(result, "A").status == "error"
        assert node_result(result, "B").status == "skipped"
        assert "B" not in result.results
        assert ("B", "end") not in invoker.events

    @pytest.mark.asyncio
    async def test_branch_variables_are_isolated(self, make_invoker):
        invoker = make_invoker(
            sets={"A": {"image_url": "https://img/a.png"}, "B": {"image_url": "https://img/b.png"}}
        )
        wf = workflow(
            [trigger(), splitter(), action("A"), action("B")],
            [edge("T", "S"), edge("S", "A"), edge("S", "B")],
        )

        result = await execute_workflow(wf, invoker=invoker, variables={"campaign": "easter"})

        assert result.success
        assert result.variables["campaign"] == "easter"
        assert "image_url" not in {k for k in result.variables if k != "branches"}
        assert result.variables["branches"] == {
            "A": {"image_url": "https://img/a.png"},
            "B": {"image_url": "https://img/b.png"},
        }


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------


class TestFailures:
    """Tests for failure handling."""

    @pytest.mark.asyncio
    async def test_cycle_is_detected(self, make_invoker):
        wf = workflow(
            [trigger(), action("A"), action("B")],
            [edge("T", "A"), edge("A", "B"), edge("B", "A")],
        )

        invoker = make_invoker()

        result = await execute_workflow(wf, invoker=invoker)

        assert not result.success
        assert result.error_type == "CycleDetected"
        assert "A -> B -> A" in result.error
        assert result.results == {}
        assert invoker.calls == []

    @pytest.mark.asyncio
    async def test_cycle_between_parallel_branches(self, make_invoker):
        """A and B sit in sibling branches and point at each other."""
        invoker = make_invoker()
        wf = workflow(
            [trigger(), splitter(), action("A"), action("B")],
            [edge("T", "S"), edge("S", "A"), edge("S", "B"), edge("A", "B"), edge("B", "A")],
        )

        result = await execute_workflow(wf, invoker=invoker)

        assert not result.success
        assert result.error_type == "CycleDetected"
        assert "A -> B -> A" in result.error
        assert invoker.calls == []

    @pytest.mark.asyncio
    async def test_cycle_through_nested_splitters_does_not_hang(self, make_invoker):
        """P and Q each split into a node that leads to the other."""
        wf = workflow(
            [
                trigger(),
                splitter("R"),
                splitter("P"),
                splitter("Q"),
                action("M"),
                action("N"),
            ],
            [
                edge("T", "R"),
                edge("R", "P"),
                edge("R", "Q"),
                edge("P", "M"),
                edge("M", "Q"),
                edge("Q", "N"),
                edge("N", "P"),
            ],
        )

        result = await asyncio.wait_for(execute_workflow(wf, invoker=make_invoker()), 3)

        assert not result.success
        assert result.error_type == "CycleDetected"
        assert "P -> M -> Q -> N -> P" in result.error

    @pytest.mark.asyncio
    async def test_failure_stops_downstream(self, make_invoker):
        invoker = make_invoker(failures={"A"})
        wf = workflow(
            [trigger(), action("A"), action("B")],
            [edge("T", "A"), edge("A", "B")],
        )

        result = await execute_workflow(wf, invoker=invoker)

        assert not result.success
        assert result.error.startswith("Execution stopped at node A")
        assert invoker.count("B") == 0
        assert "T" in result.results
        assert node_result(result, "A").error_type == "ProviderError"
        assert result.summary["errors"] == 1

    @pytest.mark.asyncio
    async def test_missing_edge_endpoint(self, make_invoker):
        wf = workflow([trigger()], [edge("T", "ghost")])

        result = await execute_workflow(wf, invoker=make_invoker())

        assert not result.success
        assert result.error_type == "GraphBuildError"
        assert "ghost" in result.error

    @pytest.mark.asyncio
    async def test_unknown_action_with_default_invoker(self):
        wf = workflow(
            [trigger(), action("A", action_id="summon-llama")],
            [edge("T", "A")],
        )

        result = await execute_workflow(wf, invoker=ActionInvoker(Providers()))

        assert not result.success
        assert result.error_type == "NodeValidationError"
        assert "summon-llama" in result.error

    @pytest.mark.asyncio
    async def test_invalid_definition(self):
        result = await execute_workflow({"nodes": [{"type": "trigger"}]})

        assert not result.success
        assert result.error_type == "NodeValidationError"

    @pytest.mark.asyncio
    async def test_timeout(self, make_invoker):
        invoker = make_invoker(delays={"A": 1.0})
        wf = workflow([trigger(), action("A")], [edge("T", "A")])

        result = await execute_workflow(wf, invoker=invoker, timeout=0.05)

        assert not result.success
        assert result.error_type == "TimeoutError"
        assert node_result(result, "A").status == "skipped"


# ---------------------------------------------------------------------------
# Batch nodes, progress and the end-to-end scenario
# ---------------------------------------------------------------------------


class TestBatchAndProgress:
    """Tests for batch nodes and progress callbacks."""

    @pytest.mark.asyncio
    async def test_batch_node_isolates_item_failures(self, make_invoker):
        invoker = make_invoker(fail_variants={3})
        wf = workflow(
            [trigger(), {"id": "B", "type": "batch", "variations": 5,
                         "strategy": "sequential", "basePrompt": "Hope for Monday"}],
            [edge("T", "B")],
        )

        result = await execute_workflow(wf, invoker=invoker)

        assert result.success
        batch = result.results["B"]
        assert batch["type"] == "batch"
        assert batch["total_variations"] == 5
        assert batch["summary"] == {"total": 5, "successful": 4, "failed": 1}
        assert set(batch["results"]) == {"jesus", "bible", "testimony", "prayer"}
        assert len(result.batch_items) == 5
        assert result.summary["errors"] == 1
        assert all(action_id == "generate-variation" for action_id, _ in invoker.calls)

    @pytest.mark.asyncio
    async def test_progress_callback_receives_updates(self, make_invoker):
        events = []
        wf = workflow([trigger(), action("A")], [edge("T", "A")])

        result = await execute_workflow(
            wf,
            invoker=make_invoker(),
            on_progress=lambda node_id, pct, done, total: events.append((node_id, pct, done, total)),
        )

        assert result.success
        assert events == [("A", 0, 0, 1), ("A", 100, 1, 1)]

    @pytest.mark.asyncio
    async def test_batch_progress_reaches_total(self, make_invoker):
        events = []

        async def on_progress(node_id, pct, done, total):
            events.append((node_id, done, total))

        wf = workflow(
            [trigger(), {"id": "B", "type": "batch", "variations": 4, "strategy": "parallel"}],
            [edge("T", "B")],
        )

        await execute_workflow(wf, invoker=make_invoker(), on_progress=on_progress)

        assert events[0] == ("B", 0, 4)
        assert sorted(done for _, done, _ in events) == [0, 1, 2, 3, 4]
        assert all(total == 4 for _, _, total in events)

    @pytest.mark.asyncio
    async def test_unknown_batch_strategy_fails_node(self, make_invoker):
        invoker = make_invoker()
        wf = workflow(
            [trigger(), {"id": "B", "type": "batch", "variations": 2, "strategy": "eventually"}],
            [edge("T", "B")],
        )

        result = await execute_workflow(wf, invoker=invoker)

        assert not result.success
        assert result.error_type == "NodeValidationError"
        assert "eventually" in result.error
        assert invoker.calls == []

    @pytest.mark.asyncio
    async def test_strategy_in_editor_data_of_other_kinds(self, make_invoker):
        """Splitter and merge nodes exported with data.strategy still validate."""
        wf = workflow(
            [
                trigger(),
                {"id": "S", "type": "splitter", "config": {"strategy": "parallel"},
                 "data": {"strategy": "random"}},
                action("A"),
                action("B"),
                {"id": "M", "type": "merge", "data": {"strategy": "collect"}},
            ],
            [edge("T", "S"), edge("S", "A"), edge("S", "B"), edge("A", "M"), edge("B", "M")],
        )

        result = await execute_workflow(wf, invoker=make_invoker())

        assert result.success
        assert result.results["S"]["branches"] == 2
        assert result.results["M"]["count"] == 2

    @pytest.mark.asyncio
    async def test_broken_progress_callback_does_not_fail_run(self, make_invoker):
        def on_progress(*args):
            raise RuntimeError("subscriber went away")

        wf = workflow([trigger(), action("A")], [edge("T", "A")])

        result = await execute_workflow(wf, invoker=make_invoker(), on_progress=on_progress)

        assert result.success

    @pytest.mark.asyncio
    async def test_script_image_video_pipeline(self):
        """trigger -> generate-script -> generate-image -> create-video on the real handlers."""

        class FakeOpenRouter:
            async def generate_video_script(self, details, model=None):
                return "HOOK: Hope starts today"

        class FakeReplicate:
            def __init__(self):
                self.video_calls = []

            async def generate_image(self, prompt, model_id=None, options=None):
                return ["https://cdn.example/img-1.png"]

            async def generate_video(self, image_url, model_id=None, options=None):
                self.video_calls.append(image_url)
                return "https://cdn.example/vid-1.mp4"

        replicate = FakeReplicate()
        invoker = ActionInvoker(Providers(openrouter=FakeOpenRouter(), replicate=replicate))
        wf = workflow(
            [
                trigger(),
                {"id": "script", "type": "action", "actionId": "generate-script",
                 "config": {"type": "viral_hook"}},
                {"id": "image", "type": "action", "actionId": "generate-image"},
                {"id": "video", "type": "action", "actionId": "create-video"},
            ],
            [edge("T", "script"), edge("script", "image"), edge("image", "video")],
        )

        result = await execute_workflow(wf, invoker=invoker)

        assert result.success
        assert len(result.results) == 4
        assert result.results["image"]["prompt"] == "HOOK: Hope starts today"
        assert result.results["video"]["url"] == "https://cdn.example/vid-1.mp4"
        assert result.results["video"]["source_image"] == result.results["image"]["url"]
        assert replicate.video_calls == ["https://cdn.example/img-1.png"]
        assert result.summary["media_generated"] == {"images": 1, "videos": 1, "audio": 0}
        assert result.summary["scripts_generated"] == 1
        assert result.variables["image_url"] == "https://cdn.example/img-1.png"


class TestStreaming:
    """Tests for the SSE stream."""

    @pytest.mark.asyncio
    async def test_stream_events(self, make_invoker):
        wf = workflow([trigger(), action("A")], [edge("T", "A")])

        events = []
        async for line in execute_workflow_streaming(wf, invoker=make_invoker()):
            assert line.startswith("data: ") and line.endswith("\n\n")
            events.append(json.loads(line[len("data: "):]))

        assert events[0] == {"event": "workflow_start", "workflow_id": "wf-test", "total_nodes": 2}
        assert [e["event"] for e in events[1:-1]] == ["node_progress", "node_progress"]
        assert events[-1]["event"] == "workflow_complete"
        assert events[-1]["result"]["success"] is True

    @pytest.mark.asyncio
    async def test_stream_reports_failure(self, make_invoker):
        wf = workflow([trigger(), action("A")], [edge("T", "A")])

        events = []
        async for line in execute_workflow_streaming(wf, invoker=make_invoker(failures={"A"})):
            events.append(json.loads(line[len("data: "):]))

        assert events[-1]["event"] == "workflow_error"
        assert events[-1]["error_type"] == "ProviderError"
        assert events[-1]["result"]["results"]["T"]["type"] == "trigger"
