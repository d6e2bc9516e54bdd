# flow_designer/services/flow_service.py
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any

from flow_designer.core.exceptions import (
    ConfirmationRequiredError,
    FlowValidationError,
    GenerationError,
    NoGeneratedFlowError,
    NodeNotFoundException,
    StaleGenerationError,
)
from flow_designer.db.repositories.flow_repository import FlowStore
from flow_designer.models.flow import (
    TEMPLATE_NODES,
    CanonicalGraph,
    FlowEdge,
    FlowNode,
    FlowState,
    GenerationRequest,
    NodeCreate,
    NodeUpdate,
    PromptOutput,
    new_node_id,
)
from flow_designer.services.ai_service import AIService
from flow_designer.services.graph_validator import ensure_valid_graph
from flow_designer.services.layout_engine import LayoutMode, auto_layout_nodes, layout_graph
from flow_designer.services.list_model import create_list_item, normalize_list_items
from flow_designer.services.sequencer import build_prompt_output, render_markdown
from flow_designer.services.text_importer import parse_prompt_text_to_graph

logger = logging.getLogger(__name__)


@dataclass
class FlowSession:
    """Working graph of one workspace plus the state of its generator."""
    state: FlowState
    generated_graph: CanonicalGraph | None = None
    generation_id: int = 0
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)


def _require_confirmation(confirm: bool, message: str) -> None:
    if not confirm:
        raise ConfirmationRequiredError(message)


class FlowService:
    def __init__(self, store: FlowStore, ai_service: AIService | None = None):
        self.store = store
        self.ai_service = ai_service or AIService()
        self._sessions: dict[str, FlowSession] = {}

    async def get_state(self, workspace_id: str) -> FlowState:
        return (await self._session(workspace_id)).state

    async def get_output(self, workspace_id: str) -> PromptOutput:
        state = await self.get_state(workspace_id)
        return build_prompt_output(state.nodes, state.edges)

    async def export_markdown(self, workspace_id: str) -> str:
        return render_markdown(await self.get_output(workspace_id))

    async def import_text(self, workspace_id: str, text: str, confirm: bool = False) -> FlowState:
        _require_confirmation(
            confirm, "Importing will replace the current canvas nodes and edges. Confirm to continue."
        )
        graph = ensure_valid_graph(parse_prompt_text_to_graph(text))
        session = await self._session(workspace_id)
        async with session.lock:
            self._replace_graph(session, graph)
            await self._persist(workspace_id, session)
        logger.info("Imported %d nodes into workspace %s", len(graph.nodes), workspace_id)
        return session.state

    async def generate(self, workspace_id: str, request: GenerationRequest) -> CanonicalGraph:
        """
        Asks the generation model for a flow. Only the result of the most recent
        request is kept; an older response, or one arriving after the generator
        was closed, is discarded.
        """
        session = await self._session(workspace_id)
        session.generation_id += 1
        request_id = session.generation_id
        session.generated_graph = None

        graph = await self.ai_service.generate_flow(request)

        if request_id != session.generation_id:
            logger.info("Discarding stale generation result %d for workspace %s", request_id, workspace_id)
            raise StaleGenerationError()
        session.generated_graph = graph
        return graph

    async def close_generator(self, workspace_id: str) -> None:
        session = await self._session(workspace_id)
        session.generation_id += 1
        session.generated_graph = None

    async def draw_generated(self, workspace_id: str, confirm: bool = False) -> FlowState:
        session = await self._session(workspace_id)
        if session.generated_graph is None:
            raise NoGeneratedFlowError()
        _require_confirmation(confirm, "Drawing will replace the current canvas nodes and edges. Confirm to continue.")
        try:
            graph = ensure_valid_graph(session.generated_graph.to_json_dict())
        except FlowValidationError as exc:
            raise GenerationError(exc.message) from exc

        async with session.lock:
            self._replace_graph(session, graph)
            session.generated_graph = None
            session.generation_id += 1
            await self._persist(workspace_id, session)
        return session.state

    async def reset(self, workspace_id: str, confirm: bool = False) -> FlowState:
        _require_confirmation(confirm, "Deleting all nodes and edges cannot be undone. Confirm to continue.")
        session = await self._session(workspace_id)
        async with session.lock:
            session.state = FlowState()
            await self._persist(workspace_id, session)
        return session.state

    async def apply_layout(self, workspace_id: str, mode: LayoutMode) -> FlowState:
        session = await self._session(workspace_id)
        async with session.lock:
            state = session.state
            state.nodes = auto_layout_nodes(state.nodes, state.edges, mode)
            await self._persist(workspace_id, session)
        return session.state

    async def add_node(self, workspace_id: str, node_data: NodeCreate) -> FlowNode:
        template = next(template for template in TEMPLATE_NODES if template.role == node_data.role)
        node = FlowNode(
            id=new_node_id(),
            role=template.role,
            label=template.label,
            list_items=[create_list_item()],
            position=node_data.position,
        )
        session = await self._session(workspace_id)
        async with session.lock:
            session.state.nodes.append(node)
            session.state.selected_node_id = node.id
            await self._persist(workspace_id, session)
        return node

    async def update_node(self, workspace_id: str, node_id: str, node_update: NodeUpdate) -> FlowNode:
        session = await self._session(workspace_id)
        async with session.lock:
            node = self._get_node(session, node_id)
            if node_update.label is not None:
                node.label = node_update.label
            await self._persist(workspace_id, session)
        return node

    async def update_node_list(self, workspace_id: str, node_id: str, items: list[Any]) -> FlowNode:
        """Replaces a node's list items; its content is re-rendered from them."""
        session = await self._session(workspace_id)
        async with session.lock:
            node = self._get_node(session, node_id)
            node.list_items = normalize_list_items(items)
            await self._persist(workspace_id, session)
        return node

    async def remove_node(self, workspace_id: str, node_id: str) -> None:
        session = await self._session(workspace_id)
        async with session.lock:
            state = session.state
            self._get_node(session, node_id)
            state.nodes = [node for node in state.nodes if node.id != node_id]
            state.edges = [edge for edge in state.edges if node_id not in (edge.source, edge.target)]
            state.selected_node_id = None
            await self._persist(workspace_id, session)

    async def connect(self, workspace_id: str, source: str, target: str) -> FlowEdge:
        session = await self._session(workspace_id)
        async with session.lock:
            self._get_node(session, source)
            self._get_node(session, target)
            if source == target:
                raise FlowValidationError(f"Invalid edge: self-loop found on '{source}'.")
            state = session.state
            existing = next((e for e in state.edges if e.source == source and e.target == target), None)
            if existing:
                return existing
            edge = FlowEdge(id=f"e-{source}-{target}", source=source, target=target)
            state.edges.append(edge)
            await self._persist(workspace_id, session)
        return edge

    async def select_node(self, workspace_id: str, node_id: str | None) -> FlowState:
        session = await self._session(workspace_id)
        async with session.lock:
            if node_id is not None:
                self._get_node(session, node_id)
            session.state.selected_node_id = node_id
            await self._persist(workspace_id, session)
        return session.state

    async def _session(self, workspace_id: str) -> FlowSession:
        session = self._sessions.get(workspace_id)
        if session is None:
            try:
                raw = await self.store.load(workspace_id)
            except OSError as exc:
                logger.debug("Could not load stored flow for %s: %s", workspace_id, exc)
                raw = None
            session = self._sessions.setdefault(workspace_id, FlowSession(state=FlowState.from_persisted(raw)))
        return session

    @staticmethod
    def _get_node(session: FlowSession, node_id: str) -> FlowNode:
        node = session.state.find_node(node_id)
        if node is None:
            raise NodeNotFoundException(f"Node '{node_id}' not found.")
        return node

    @staticmethod
    def _replace_graph(session: FlowSession, graph: CanonicalGraph) -> None:
        nodes, edges = layout_graph(graph)
        session.state = FlowState(nodes=nodes, edges=edges, selected_node_id=nodes[0].id if nodes else None)

    async def _persist(self, workspace_id: str, session: FlowSession) -> None:
        # Storage failures never undo or block an edit.
        try:
            await self.store.save(workspace_id, session.state.to_persisted())
        except (OSError, TypeError, ValueError) as exc:
            logger.debug("Failed to persist flow for %s: %s", workspace_id, exc)
