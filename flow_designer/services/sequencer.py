# flow_designer/services/sequencer.py
from collections.abc import Sequence

from flow_designer.models.flow import (
    CanonicalEdge,
    CanonicalGraph,
    CanonicalNode,
    FlowEdge,
    FlowNode,
    PromptOutput,
    SequenceStep,
)

EMPTY_PROMPT_TEXT = "No prompt steps yet."


def _linearize(nodes: Sequence[FlowNode], edges: Sequence[FlowEdge]) -> list[FlowNode]:
    """
    Depth-first order starting from source nodes. Sources and siblings are
    visited top-to-bottom then left-to-right on the canvas; nodes unreachable
    from any source are swept up afterwards in their original order.

    Nodes are tracked by position in `nodes`, so every entry is emitted exactly
    once even when ids repeat.
    """
    indices_by_id: dict[str, list[int]] = {}
    for index, node in enumerate(nodes):
        indices_by_id.setdefault(node.id, []).append(index)

    indegree: dict[str, int] = {}
    outgoing: dict[str, list[str]] = {}
    for edge in edges:
        outgoing.setdefault(edge.source, []).append(edge.target)
        indegree[edge.target] = indegree.get(edge.target, 0) + 1

    def canvas_order(index: int) -> tuple[float, float]:
        return nodes[index].canvas_key()

    starts = sorted((i for i, node in enumerate(nodes) if indegree.get(node.id, 0) == 0), key=canvas_order)

    visited: set[int] = set()
    ordered: list[FlowNode] = []

    def walk(root: int) -> None:
        stack = [root]
        while stack:
            index = stack.pop()
            if index in visited:
                continue
            visited.add(index)
            ordered.append(nodes[index])
            targets = [i for target in outgoing.get(nodes[index].id, []) for i in indices_by_id.get(target, [])]
            stack.extend(reversed(sorted(targets, key=canvas_order)))

    for start in starts:
        walk(start)
    for index in range(len(nodes)):
        walk(index)
    return ordered


def build_prompt_output(nodes: Sequence[FlowNode], edges: Sequence[FlowEdge]) -> PromptOutput:
    """Compiles the canvas into the numbered transcript and the canonical graph JSON."""
    if not nodes:
        return PromptOutput()

    sequence = [
        SequenceStep(step=index, id=node.id, role=node.role, label=node.label, content=node.content)
        for index, node in enumerate(_linearize(nodes, edges), start=1)
    ]
    structured_prompt = "\n\n".join(
        f"[{step.step}] {step.role.value.upper()}\n{step.content or '(empty)'}" for step in sequence
    )
    graph = CanonicalGraph(
        nodes=[CanonicalNode(id=node.id, role=node.role, label=node.label, content=node.content) for node in nodes],
        edges=[CanonicalEdge(source=edge.source, target=edge.target) for edge in edges],
    )
    return PromptOutput(sequence=sequence, structured_prompt=structured_prompt, graph=graph)


def prompt_text(output: PromptOutput) -> str:
    return output.structured_prompt if output.structured_prompt.strip() else EMPTY_PROMPT_TEXT


def render_markdown(output: PromptOutput) -> str:
    return f"# Generated Prompt\n\n{prompt_text(output)}\n"
