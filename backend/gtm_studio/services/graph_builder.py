"""
Graph builder: turns a workflow's node/edge lists into an execution graph.

The graph is built once per run and is read-only afterwards. Successor
lists keep edge-declaration order, which is the order siblings run in.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

from gtm_studio.models.workflow import WorkflowEdge, WorkflowNode
from gtm_studio.services.errors import CycleDetected, GraphBuildError


@dataclass(frozen=True)
class ExecutionGraph:
    adjacency: dict[str, list[str]]
    node_map: dict[str, WorkflowNode]
    trigger_ids: list[str] = field(default_factory=list)

    def successors(self, node_id: str) -> list[str]:
        return self.adjacency.get(node_id, [])

    def predecessors(self, node_id: str) -> list[str]:
        """Every node with an edge into `node_id`, in adjacency order."""
        return [
            source
            for source, targets in self.adjacency.items()
            if node_id in targets
        ]


_WHITE, _GREY, _BLACK = 0, 1, 2


def find_cycle(adjacency: dict[str, list[str]]) -> tuple[str, ...] | None:
    """
    Return the nodes of the first directed cycle found, or None for a DAG.

    Three-colour DFS over every node, so cycles that a run would only reach
    through parallel splitter branches are found too. The returned tuple
    starts at the node that closes the loop.
    """
    colour = dict.fromkeys(adjacency, _WHITE)
    for root in adjacency:
        if colour[root] != _WHITE:
            continue
        colour[root] = _GREY
        trail = [root]
        stack = [iter(adjacency[root])]
        while stack:
            target = next(stack[-1], None)
            if target is None:
                colour[trail.pop()] = _BLACK
                stack.pop()
            elif colour[target] == _GREY:
                return tuple(trail[trail.index(target):])
            elif colour[target] == _WHITE:
                colour[target] = _GREY
                trail.append(target)
                stack.append(iter(adjacency[target]))
    return None


def build_execution_graph(
    nodes: Iterable[WorkflowNode],
    edges: Iterable[WorkflowEdge],
) -> ExecutionGraph:
    """
    Build the adjacency map, node lookup and trigger list for a workflow.

    Every node gets an entry in the adjacency map, so isolated nodes are
    valid lookups. Duplicate node ids and edges pointing at unknown nodes
    raise GraphBuildError listing every problem found. A graph that is
    otherwise valid but contains a directed cycle raises CycleDetected.
    """
    node_map: dict[str, WorkflowNode] = {}
    adjacency: dict[str, list[str]] = {}
    problems: list[str] = []

    for node in nodes:
        if node.id in node_map:
            problems.append(f"duplicate node id '{node.id}'")
            continue
        node_map[node.id] = node
        adjacency[node.id] = []

    for edge in edges:
        missing = [nid for nid in (edge.source, edge.target) if nid not in node_map]
        if missing:
            problems.append(
                f"edge {edge.source} -> {edge.target} references unknown node(s) "
                + ", ".join(repr(m) for m in missing)
            )
            continue
        adjacency[edge.source].append(edge.target)

    if problems:
        raise GraphBuildError(problems)

    cycle = find_cycle(adjacency)
    if cycle is not None:
        raise CycleDetected(cycle[0], cycle)

    trigger_ids = [nid for nid, node in node_map.items() if node.kind == "trigger"]
    return ExecutionGraph(adjacency=adjacency, node_map=node_map, trigger_ids=trigger_ids)
