import asyncio

import pytest

from flow_designer.core.exceptions import (
    ConfirmationRequiredError,
    FlowValidationError,
    NoGeneratedFlowError,
    NodeNotFoundException,
    PromptTextEmptyError,
    StaleGenerationError,
)
from flow_designer.db.repositories.flow_repository import InMemoryFlowStore
from flow_designer.models.flow import CanonicalGraph, GenerationRequest, NodeCreate, NodeRole, NodeUpdate, Position
from flow_designer.services.flow_service import FlowService
from flow_designer.services.layout_engine import LayoutMode

WS = "workspace-1"

PROMPT_TEXT = """[1] SYSTEM
1.1 Be concise.

[2] USER
2.1 Summarize the meeting."""


def make_graph(first_id: str = "a") -> CanonicalGraph:
    return CanonicalGraph.model_validate(
        {
            "nodes": [
                {"id": first_id, "role": "system", "label": "S", "content": "Rules"},
                {"id": "b", "role": "user", "label": "U", "content": "Ask"},
            ],
            "edges": [{"from": first_id, "to": "b"}],
        }
    )


class FakeAIService:
    """Returns queued graphs; each call can be held until its gate is released."""

    def __init__(self, *graphs: CanonicalGraph):
        self.graphs = list(graphs)
        self.gates: list[asyncio.Event] = []

    def hold_next(self) -> asyncio.Event:
        gate = asyncio.Event()
        self.gates.append(gate)
        return gate

    async def generate_flow(self, request: GenerationRequest) -> CanonicalGraph:
        graph = self.graphs.pop(0)
        if self.gates:
            await self.gates.pop(0).wait()
        return graph


class FailingStore(InMemoryFlowStore):
    async def save(self, workspace_id, state):
        raise OSError("disk full")


def build_service(store=None, ai_service=None) -> FlowService:
    return FlowService(store or InMemoryFlowStore(), ai_service or FakeAIService())


@pytest.mark.asyncio
async def test_new_workspace_starts_with_default_flow():
    service = build_service()
    state = await service.get_state(WS)

    assert [node.id for node in state.nodes] == ["n1", "n2"]
    assert [(edge.source, edge.target) for edge in state.edges] == [("n1", "n2")]
    assert state.selected_node_id == "n1"


@pytest.mark.asyncio
async def test_corrupt_persisted_state_falls_back_to_default():
    store = InMemoryFlowStore()
    store.states[WS] = {"nodes": "not-a-list", "edges": []}
    service = build_service(store=store)

    state = await service.get_state(WS)
    assert [node.id for node in state.nodes] == ["n1", "n2"]


@pytest.mark.asyncio
async def test_persisted_state_is_restored_and_selection_repaired():
    store = InMemoryFlowStore()
    store.states[WS] = {
        "nodes": [{"id": "x", "role": "assistant", "label": "A", "content": "1. Reply"}],
        "edges": [],
        "selectedNodeId": "gone",
    }
    service = build_service(store=store)

    state = await service.get_state(WS)
    assert state.nodes[0].content == "1 Reply"
    assert state.selected_node_id == "x"


@pytest.mark.asyncio
async def test_import_requires_confirmation():
    service = build_service()
    with pytest.raises(ConfirmationRequiredError):
        await service.import_text(WS, PROMPT_TEXT)

    state = await service.get_state(WS)
    assert [node.id for node in state.nodes] == ["n1", "n2"]


@pytest.mark.asyncio
async def test_import_replaces_graph_and_persists():
    store = InMemoryFlowStore()
    service = build_service(store=store)

    state = await service.import_text(WS, PROMPT_TEXT, confirm=True)

    assert [node.id for node in state.nodes] == ["import-1", "import-2"]
    assert [node.role for node in state.nodes] == [NodeRole.SYSTEM, NodeRole.USER]
    assert [(edge.source, edge.target) for edge in state.edges] == [("import-1", "import-2")]
    assert state.selected_node_id == "import-1"
    assert [node.position.y for node in state.nodes] == [100, 320]
    assert store.states[WS]["nodes"][1]["content"] == "1 Summarize the meeting."


@pytest.mark.asyncio
async def test_rejected_import_leaves_state_unchanged():
    service = build_service()
    before = (await service.get_state(WS)).to_persisted()

    with pytest.raises(PromptTextEmptyError):
        await service.import_text(WS, "   \n ", confirm=True)

    cyclic = '{"nodes":[{"id":"a","role":"user","label":"A","content":"x"},' \
             '{"id":"b","role":"user","label":"B","content":"y"}],' \
             '"edges":[{"from":"a","to":"b"},{"from":"b","to":"a"}]}'
    with pytest.raises(FlowValidationError) as exc:
        await service.import_text(WS, cyclic, confirm=True)
    assert exc.value.message == "Invalid flow: graph must be directed and acyclic."

    assert (await service.get_state(WS)).to_persisted() == before


@pytest.mark.asyncio
async def test_failing_store_does_not_block_edits():
    service = build_service(store=FailingStore())
    node = await service.add_node(WS, NodeCreate(role=NodeRole.ASSISTANT, position=Position(x=10, y=20)))

    state = await service.get_state(WS)
    assert state.find_node(node.id) is not None
    assert state.selected_node_id == node.id


@pytest.mark.asyncio
async def test_add_node_uses_template_label_and_blank_item():
    service = build_service()
    node = await service.add_node(WS, NodeCreate(role=NodeRole.CONDITION))

    assert node.label == "Condition"
    assert len(node.list_items) == 1
    assert node.content == ""
    assert node.id.startswith("n-")


@pytest.mark.asyncio
async def test_update_node_list_regenerates_content():
    service = build_service()
    node = await service.update_node_list(
        WS,
        "n1",
        [{"text": "Top", "level": 1}, {"text": "Child", "level": 2}, {"text": "Deep", "level": 7}],
    )

    assert [item.level for item in node.list_items] == [1, 2, 3]
    assert node.content == "1 Top\n1.1 Child\n1.1.1 Deep"
    output = await service.get_output(WS)
    assert output.sequence[0].content == node.content


@pytest.mark.asyncio
async def test_update_node_label_and_missing_node():
    service = build_service()
    node = await service.update_node(WS, "n2", NodeUpdate(label="Question"))
    assert node.label == "Question"

    with pytest.raises(NodeNotFoundException):
        await service.update_node(WS, "missing", NodeUpdate(label="x"))


@pytest.mark.asyncio
async def test_remove_node_drops_incident_edges():
    service = build_service()
    await service.remove_node(WS, "n1")

    state = await service.get_state(WS)
    assert [node.id for node in state.nodes] == ["n2"]
    assert state.edges == []
    assert state.selected_node_id is None


@pytest.mark.asyncio
async def test_connect_rules():
    service = build_service()

    with pytest.raises(FlowValidationError):
        await service.connect(WS, "n1", "n1")
    with pytest.raises(NodeNotFoundException):
        await service.connect(WS, "n1", "ghost")

    existing = await service.connect(WS, "n1", "n2")
    assert existing.id == "e-n1-n2"

    edge = await service.connect(WS, "n2", "n1")
    assert (edge.source, edge.target) == ("n2", "n1")
    assert len((await service.get_state(WS)).edges) == 2


@pytest.mark.asyncio
async def test_select_node():
    service = build_service()
    state = await service.select_node(WS, "n2")
    assert state.selected_node_id == "n2"

    state = await service.select_node(WS, None)
    assert state.selected_node_id is None

    with pytest.raises(NodeNotFoundException):
        await service.select_node(WS, "ghost")


@pytest.mark.asyncio
async def test_apply_layout_positions_by_level():
    service = build_service()
    state = await service.apply_layout(WS, LayoutMode.VERTICAL)

    positions = {node.id: (node.position.x, node.position.y) for node in state.nodes}
    assert positions == {"n1": (100, 100), "n2": (100, 320)}

    state = await service.apply_layout(WS, LayoutMode.HORIZONTAL)
    positions = {node.id: (node.position.x, node.position.y) for node in state.nodes}
    assert positions == {"n1": (100, 100), "n2": (420, 100)}


@pytest.mark.asyncio
async def test_reset_requires_confirmation_and_clears_graph():
    store = InMemoryFlowStore()
    service = build_service(store=store)

    with pytest.raises(ConfirmationRequiredError):
        await service.reset(WS)

    state = await service.reset(WS, confirm=True)
    assert state.nodes == [] and state.edges == []
    assert store.states[WS] == {"nodes": [], "edges": [], "selectedNodeId": None}
    assert (await service.get_output(WS)).structured_prompt == ""
    assert "No prompt steps yet." in await service.export_markdown(WS)


@pytest.mark.asyncio
async def test_generate_then_draw():
    service = build_service(ai_service=FakeAIService(make_graph()))
    graph = await service.generate(WS, GenerationRequest(prompt="make it"))
    assert [node.id for node in graph.nodes] == ["a", "b"]

    with pytest.raises(ConfirmationRequiredError):
        await service.draw_generated(WS)

    state = await service.draw_generated(WS, confirm=True)
    assert [node.id for node in state.nodes] == ["a", "b"]
    assert state.selected_node_id == "a"

    with pytest.raises(NoGeneratedFlowError):
        await service.draw_generated(WS, confirm=True)


@pytest.mark.asyncio
async def test_stale_generation_is_discarded():
    ai_service = FakeAIService(make_graph("old"), make_graph("new"))
    service = build_service(ai_service=ai_service)
    first_gate = ai_service.hold_next()

    first = asyncio.create_task(service.generate(WS, GenerationRequest(prompt="first")))
    await asyncio.sleep(0)
    latest = await service.generate(WS, GenerationRequest(prompt="second"))
    first_gate.set()

    with pytest.raises(StaleGenerationError):
        await first

    assert latest.nodes[0].id == "new"
    state = await service.draw_generated(WS, confirm=True)
    assert state.nodes[0].id == "new"


@pytest.mark.asyncio
async def test_closing_generator_discards_pending_result():
    ai_service = FakeAIService(make_graph())
    service = build_service(ai_service=ai_service)
    gate = ai_service.hold_next()

    pending = asyncio.create_task(service.generate(WS, GenerationRequest(prompt="slow")))
    await asyncio.sleep(0)
    await service.close_generator(WS)
    gate.set()

    with pytest.raises(StaleGenerationError):
        await pending
    with pytest.raises(NoGeneratedFlowError):
        await service.draw_generated(WS, confirm=True)
