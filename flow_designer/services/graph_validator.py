# flow_designer/services/graph_validator.py
from collections import deque
from typing import Any

from pydantic import ValidationError

from flow_designer.core.exceptions import FlowValidationError
from flow_designer.models.flow import CANONICAL_ROLES, CanonicalGraph


def _is_non_empty_string(value: Any) -> bool:
    return isinstance(value, str) and bool(value)


def _validate_nodes(nodes: list[Any]) -> str | None:
    seen: set[str] = set()
    for node in nodes:
        node_id = node.get("id") if isinstance(node, dict) else None
        if not _is_non_empty_string(node_id):
            return "Invalid node: every node must have a string `id`."
        if node_id in seen:
            return f"Invalid flow: duplicate node id '{node_id}'."
        role = node.get("role")
        if not isinstance(role, str) or role not in CANONICAL_ROLES:
            return f"Invalid node '{node_id}': role must be system, user, or assistant."
        if not isinstance(node.get("label"), str):
            return f"Invalid node '{node_id}': label must be a string."
        content = node.get("content")
        if not isinstance(content, str) or not content.strip():
            return f"Invalid node '{node_id}': content cannot be empty."
        seen.add(node_id)
    return None


def validate_graph(candidate: Any) -> str | None:
    """
    Checks a canonical graph candidate ({nodes, edges} with from/to edges).

    Returns None when the graph is acceptable, otherwise a human readable
    reason. Shape problems are reported before structural ones, and the
    function never raises on malformed input.
    """
    if not isinstance(candidate, dict):
        return "Invalid JSON: root must be an object."
    nodes = candidate.get("nodes")
    edges = candidate.get("edges")
    if not isinstance(nodes, list) or not isinstance(edges, list):
        return "Invalid JSON: `nodes` and `edges` must be arrays."
    if not nodes:
        return "Invalid flow: at least one node is required."

    node_error = _validate_nodes(nodes)
    if node_error:
        return node_error

    node_ids = [node["id"] for node in nodes]
    degree = {node_id: 0 for node_id in node_ids}
    indegree = {node_id: 0 for node_id in node_ids}
    outgoing: dict[str, list[str]] = {node_id: [] for node_id in node_ids}

    for edge in edges:
        source = edge.get("from") if isinstance(edge, dict) else None
        target = edge.get("to") if isinstance(edge, dict) else None
        if not _is_non_empty_string(source) or not _is_non_empty_string(target):
            return "Invalid edge: each edge must include string `from` and `to`."
        if source not in degree or target not in degree:
            return f"Invalid edge: '{source}' -> '{target}' references missing node ids."
        if source == target:
            return f"Invalid edge: self-loop found on '{source}'."
        degree[source] += 1
        degree[target] += 1
        indegree[target] += 1
        outgoing[source].append(target)

    if len(node_ids) > 1:
        orphan = next((node_id for node_id in node_ids if degree[node_id] == 0), None)
        if orphan is not None:
            return f"Invalid flow: orphan node '{orphan}' has no edges."

    # Kahn's algorithm; a leftover node means a cycle.
    queue = deque(node_id for node_id in node_ids if indegree[node_id] == 0)
    visited = 0
    while queue:
        current = queue.popleft()
        visited += 1
        for target in outgoing[current]:
            indegree[target] -= 1
            if indegree[target] == 0:
                queue.append(target)
    if visited != len(node_ids):
        return "Invalid flow: graph must be directed and acyclic."

    return None


def ensure_valid_graph(candidate: Any) -> CanonicalGraph:
    """Validates a candidate and returns it typed, raising FlowValidationError on rejection."""
    reason = validate_graph(candidate)
    if reason:
        raise FlowValidationError(reason)
    try:
        return CanonicalGraph.model_validate(candidate)
    except ValidationError as exc:
        raise FlowValidationError(f"Invalid JSON: {exc.errors()[0]['msg']}") from exc
