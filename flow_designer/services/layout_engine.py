# flow_designer/services/layout_engine.py
"""
Tiered auto-layout for prompt flows.

Both the import layout and the interactive re-layout rank nodes by their
longest path from a source node and then spread each rank into lanes.
"""
import math
from collections import deque
from collections.abc import Iterable, Sequence
from enum import Enum

from flow_designer.models.flow import CanonicalGraph, FlowEdge, FlowNode, Position
from flow_designer.services.list_model import normalize_list_items

START_X = 100
START_Y = 100
GAP_X = 320
GAP_Y = 220


class LayoutMode(str, Enum):
    VERTICAL = "vertical"
    HORIZONTAL = "horizontal"
    GRID = "grid"


def compute_levels(node_ids: Sequence[str], edges: Iterable[tuple[str, str]]) -> dict[str, int]:
    """
    Longest-path leveling over a DAG.

    `node_ids` must already be in tie-break order: it decides the order sources
    are seeded and the order in which nodes left unreached (cycles) are
    appended after the deepest processed level.
    """
    known = set(node_ids)
    indegree = {node_id: 0 for node_id in node_ids}
    outgoing: dict[str, list[str]] = {node_id: [] for node_id in node_ids}
    for source, target in edges:
        if source not in known or target not in known:
            continue
        outgoing[source].append(target)
        indegree[target] += 1

    levels: dict[str, int] = {}
    queue: deque[str] = deque()
    for node_id in node_ids:
        if indegree[node_id] == 0:
            levels[node_id] = 0
            queue.append(node_id)

    max_level = 0
    while queue:
        current = queue.popleft()
        current_level = levels[current]
        max_level = max(max_level, current_level)
        for target in outgoing[current]:
            levels[target] = max(levels.get(target, 0), current_level + 1)
            indegree[target] -= 1
            if indegree[target] == 0:
                queue.append(target)

    unresolved = [node_id for node_id in node_ids if node_id not in levels]
    for offset, node_id in enumerate(unresolved):
        levels[node_id] = max_level + 1 + offset
    return levels


def _group_by_level(ordered_ids: Sequence[str], levels: dict[str, int]) -> list[list[str]]:
    grouped: dict[int, list[str]] = {}
    for node_id in ordered_ids:
        grouped.setdefault(levels.get(node_id, 0), []).append(node_id)
    return [grouped[level] for level in sorted(grouped)]


def _tier_position(level: int, lane: int, mode: LayoutMode) -> Position:
    if mode is LayoutMode.HORIZONTAL:
        return Position(x=START_X + level * GAP_X, y=START_Y + lane * GAP_Y)
    return Position(x=START_X + lane * GAP_X, y=START_Y + level * GAP_Y)


def _tier_positions(ordered_ids: Sequence[str], levels: dict[str, int], mode: LayoutMode) -> dict[str, Position]:
    positions: dict[str, Position] = {}
    for lanes in _group_by_level(ordered_ids, levels):
        for lane, node_id in enumerate(lanes):
            positions[node_id] = _tier_position(levels[node_id], lane, mode)
    return positions


def layout_graph(graph: CanonicalGraph) -> tuple[list[FlowNode], list[FlowEdge]]:
    """Places a validated canonical graph on the canvas, top to bottom."""
    node_ids = [node.id for node in graph.nodes]
    levels = compute_levels(node_ids, [(edge.source, edge.target) for edge in graph.edges])
    positions = _tier_positions(node_ids, levels, LayoutMode.VERTICAL)

    nodes_by_id = {node.id: node for node in graph.nodes}
    flow_nodes = []
    for lanes in _group_by_level(node_ids, levels):
        for node_id in lanes:
            node = nodes_by_id[node_id]
            flow_nodes.append(
                FlowNode(
                    id=node.id,
                    role=node.role,
                    label=node.label,
                    list_items=normalize_list_items([], node.content),
                    position=positions[node_id],
                )
            )

    flow_edges = [
        FlowEdge(id=f"e-{edge.source}-{edge.target}-{index}", source=edge.source, target=edge.target)
        for index, edge in enumerate(graph.edges)
    ]
    return flow_nodes, flow_edges


def auto_layout_nodes(nodes: Sequence[FlowNode], edges: Iterable[FlowEdge], mode: LayoutMode | str) -> list[FlowNode]:
    """
    Re-positions existing canvas nodes. Only `position` changes; node order,
    ids and content are preserved.
    """
    if not nodes:
        return []
    mode = LayoutMode(mode)

    by_canvas = sorted(nodes, key=lambda node: node.canvas_key())
    ordered_ids = [node.id for node in by_canvas]
    levels = compute_levels(ordered_ids, [(edge.source, edge.target) for edge in edges])

    if mode is LayoutMode.GRID:
        tiled = sorted(by_canvas, key=lambda node: (levels[node.id], node.position.y, node.position.x))
        columns = max(1, math.ceil(math.sqrt(len(tiled))))
        positions = {
            node.id: Position(x=START_X + (index % columns) * GAP_X, y=START_Y + (index // columns) * GAP_Y)
            for index, node in enumerate(tiled)
        }
    else:
        positions = _tier_positions(ordered_ids, levels, mode)

    return [node.model_copy(update={"position": positions.get(node.id, node.position)}, deep=True) for node in nodes]
