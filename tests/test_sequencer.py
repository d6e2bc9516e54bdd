from flow_designer.models.flow import FlowEdge, FlowNode, NodeRole, Position
from flow_designer.services.sequencer import build_prompt_output, prompt_text, render_markdown


def make_node(node_id, x=0, y=0, role=NodeRole.USER, items=None):
    return FlowNode(
        id=node_id,
        role=role,
        label=node_id.upper(),
        list_items=items if items is not None else [f"{node_id} text"],
        position=Position(x=x, y=y),
    )


def make_edge(source, target):
    return FlowEdge(id=f"e-{source}-{target}", source=source, target=target)


def test_empty_canvas_short_circuits():
    output = build_prompt_output([], [])
    assert output.sequence == []
    assert output.structured_prompt == ""
    assert output.graph.to_json_dict() == {"nodes": [], "edges": []}


def test_two_step_chain():
    a = make_node("a", y=0, role=NodeRole.SYSTEM)
    b = make_node("b", y=100)
    output = build_prompt_output([b, a], [make_edge("a", "b")])

    assert [(step.step, step.id) for step in output.sequence] == [(1, "a"), (2, "b")]
    assert output.structured_prompt == f"[1] SYSTEM\n{a.content}\n\n[2] USER\n{b.content}"
    assert output.structured_prompt == "[1] SYSTEM\n1 a text\n\n[2] USER\n1 b text"


def test_children_are_visited_by_canvas_position_not_edge_order():
    root = make_node("root", y=0)
    late = make_node("late", x=0, y=500)
    early = make_node("early", x=300, y=200)
    left = make_node("left", x=0, y=200)
    edges = [make_edge("root", "late"), make_edge("root", "early"), make_edge("root", "left"), make_edge("left", "late")]

    output = build_prompt_output([root, late, early, left], edges)
    assert [step.id for step in output.sequence] == ["root", "left", "late", "early"]


def test_multiple_starts_sorted_top_then_left():
    s2 = make_node("s2", x=400, y=0)
    s1 = make_node("s1", x=0, y=0)
    s3 = make_node("s3", x=0, y=50)
    output = build_prompt_output([s3, s2, s1], [])
    assert [step.id for step in output.sequence] == ["s1", "s2", "s3"]


def test_cycle_and_dangling_edges_still_cover_every_node():
    a = make_node("a", y=0)
    b = make_node("b", y=100)
    c = make_node("c", y=200)
    edges = [make_edge("a", "b"), make_edge("b", "a"), make_edge("c", "ghost")]

    output = build_prompt_output([a, b, c], edges)
    ids = [step.id for step in output.sequence]
    assert sorted(ids) == ["a", "b", "c"]
    assert len(ids) == len(set(ids))
    # a and b form a cycle with no source, so c is the only start
    assert ids == ["c", "a", "b"]
    assert [step.step for step in output.sequence] == [1, 2, 3]


def test_duplicate_ids_each_get_their_own_step():
    first = make_node("a", y=0, items=["x"])
    second = make_node("a", y=100, items=["y"])
    tail = make_node("t", y=200)

    output = build_prompt_output([first, second, tail], [make_edge("a", "t")])
    assert len(output.sequence) == 3
    assert [(step.id, step.content) for step in output.sequence] == [("a", "1 x"), ("t", "1 t text"), ("a", "1 y")]


def test_empty_node_renders_placeholder():
    blank = make_node("blank", items=[""])
    output = build_prompt_output([blank], [])
    assert output.structured_prompt == "[1] USER\n(empty)"


def test_graph_export_is_canonical_and_position_free():
    a = make_node("a", x=10, y=10, role=NodeRole.SYSTEM)
    b = make_node("b", x=10, y=300)
    exported = build_prompt_output([a, b], [make_edge("a", "b")]).graph.to_json_dict()
    assert exported == {
        "nodes": [
            {"id": "a", "role": "system", "label": "A", "content": "1 a text"},
            {"id": "b", "role": "user", "label": "B", "content": "1 b text"},
        ],
        "edges": [{"from": "a", "to": "b"}],
    }


def test_markdown_export():
    output = build_prompt_output([make_node("a")], [])
    assert render_markdown(output) == "# Generated Prompt\n\n[1] USER\n1 a text\n"


def test_markdown_export_of_empty_canvas_uses_placeholder():
    output = build_prompt_output([], [])
    assert prompt_text(output) == "No prompt steps yet."
    assert render_markdown(output) == "# Generated Prompt\n\nNo prompt steps yet.\n"
