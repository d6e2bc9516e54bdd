# flow_designer/models/flow.py
from enum import Enum
from typing import Any
from uuid import uuid4
from pydantic import BaseModel, ConfigDict, Field, ValidationError, computed_field, model_validator

from flow_designer.models.list_item import ListItem
from flow_designer.services.list_model import create_list_item, format_numbered_list, normalize_list_items


class Role(str, Enum):
    """Roles allowed in the canonical export JSON."""
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class NodeRole(str, Enum):
    """Roles a canvas node may carry. CONDITION only exists as a palette template."""
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    CONDITION = "condition"


CANONICAL_ROLES = frozenset(role.value for role in Role)

# Presentation style per role; every NodeRole must have an entry.
ROLE_STYLES: dict[NodeRole, str] = {
    NodeRole.SYSTEM: "bold magenta",
    NodeRole.USER: "bold cyan",
    NodeRole.ASSISTANT: "bold green",
    NodeRole.CONDITION: "bold yellow",
}


class NodeTemplate(BaseModel):
    role: NodeRole
    label: str
    hint: str


TEMPLATE_NODES: list[NodeTemplate] = [
    NodeTemplate(role=NodeRole.SYSTEM, label="System", hint="Global rules and behavior"),
    NodeTemplate(role=NodeRole.USER, label="User", hint="User intent or inputs"),
    NodeTemplate(role=NodeRole.ASSISTANT, label="Assistant", hint="Assistant response template"),
    NodeTemplate(role=NodeRole.CONDITION, label="Condition", hint="Branching rule for next step"),
]


def new_node_id() -> str:
    return f"n-{uuid4().hex[:8]}"


class Position(BaseModel):
    x: float = 0.0
    y: float = 0.0


class FlowNode(BaseModel):
    """A prompt step as it lives on the canvas."""
    model_config = ConfigDict(populate_by_name=True)

    id: str
    role: NodeRole = NodeRole.USER
    label: str = ""
    list_items: list[ListItem] = Field(default_factory=lambda: [create_list_item()], alias="listItems")
    position: Position = Field(default_factory=Position)

    @model_validator(mode="before")
    @classmethod
    def _normalize_list_items(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        raw_items = data.pop("listItems", None)
        if raw_items is None:
            raw_items = data.pop("list_items", None)
        if not isinstance(raw_items, list):
            raw_items = []
        content = data.pop("content", "")
        data["listItems"] = normalize_list_items(raw_items, content if isinstance(content, str) else "")
        return data

    @computed_field
    @property
    def content(self) -> str:
        return format_numbered_list(self.list_items)

    def canvas_key(self) -> tuple[float, float]:
        return (self.position.y, self.position.x)


class FlowEdge(BaseModel):
    id: str
    source: str
    target: str


class CanonicalNode(BaseModel):
    id: str
    role: NodeRole
    label: str
    content: str


class CanonicalEdge(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    source: str = Field(alias="from")
    target: str = Field(alias="to")


class CanonicalGraph(BaseModel):
    """The export/import/generation JSON shape: {nodes:[...], edges:[{from,to}]}."""
    nodes: list[CanonicalNode] = Field(default_factory=list)
    edges: list[CanonicalEdge] = Field(default_factory=list)

    def to_json_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class SequenceStep(BaseModel):
    step: int
    id: str
    role: NodeRole
    label: str
    content: str


class PromptOutput(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    sequence: list[SequenceStep] = Field(default_factory=list)
    structured_prompt: str = Field(default="", alias="structuredPrompt")
    graph: CanonicalGraph = Field(default_factory=CanonicalGraph)


def _default_nodes() -> list[FlowNode]:
    return [
        FlowNode(
            id="n1",
            role=NodeRole.SYSTEM,
            label="System",
            list_items=[
                create_list_item("You are a careful assistant."),
                create_list_item("Always provide structured output."),
            ],
            position=Position(x=120, y=120),
        ),
        FlowNode(
            id="n2",
            role=NodeRole.USER,
            label="User",
            list_items=[
                create_list_item("Summarize the latest ticket updates."),
                create_list_item("Suggest next actions."),
            ],
            position=Position(x=420, y=300),
        ),
    ]


class FlowState(BaseModel):
    """The working graph, in the form it is persisted and served."""
    model_config = ConfigDict(populate_by_name=True)

    nodes: list[FlowNode] = Field(default_factory=list)
    edges: list[FlowEdge] = Field(default_factory=list)
    selected_node_id: str | None = Field(default=None, alias="selectedNodeId")

    @classmethod
    def default(cls) -> "FlowState":
        nodes = _default_nodes()
        return cls(
            nodes=nodes,
            edges=[FlowEdge(id="e-n1-n2", source="n1", target="n2")],
            selected_node_id=nodes[0].id,
        )

    @classmethod
    def from_persisted(cls, raw: Any) -> "FlowState":
        """Accepts a stored {nodes, edges, selectedNodeId} payload or falls back to the default graph."""
        if not isinstance(raw, dict):
            return cls.default()
        if not isinstance(raw.get("nodes"), list) or not isinstance(raw.get("edges"), list):
            return cls.default()
        try:
            nodes = [FlowNode.model_validate(node) for node in raw["nodes"]]
            edges = [FlowEdge.model_validate(edge) for edge in raw["edges"]]
        except ValidationError:
            return cls.default()

        selected = raw.get("selectedNodeId")
        if not isinstance(selected, str) or not any(node.id == selected for node in nodes):
            selected = nodes[0].id if nodes else None
        return cls(nodes=nodes, edges=edges, selected_node_id=selected)

    def to_persisted(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)

    def find_node(self, node_id: str) -> FlowNode | None:
        return next((node for node in self.nodes if node.id == node_id), None)


class NodeUpdate(BaseModel):
    label: str | None = None


class NodeCreate(BaseModel):
    role: NodeRole
    position: Position = Field(default_factory=Position)


class GenerationRequest(BaseModel):
    prompt: str
    api_key: str | None = None
