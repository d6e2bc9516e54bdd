# flow_designer/api/router.py
from pathlib import Path
from typing import Any
from fastapi import APIRouter, Body, Depends, Header, HTTPException, Request, Response, status
from pydantic import BaseModel
from flow_designer.core.config import settings
from flow_designer.core.limiter import limiter
from flow_designer.db.repositories.flow_repository import JsonFileFlowStore
from flow_designer.models.flow import (
    TEMPLATE_NODES,
    CanonicalGraph,
    FlowEdge,
    FlowNode,
    FlowState,
    GenerationRequest,
    NodeCreate,
    NodeTemplate,
    NodeUpdate,
    PromptOutput,
)
from flow_designer.services.ai_service import AIService
from flow_designer.services.flow_service import FlowService
from flow_designer.services.graph_validator import validate_graph
from flow_designer.services.layout_engine import LayoutMode

router = APIRouter()

_flow_service: FlowService | None = None


# --- Request Models ---
class ImportRequest(BaseModel):
    text: str
    confirm: bool = False


class ConfirmRequest(BaseModel):
    confirm: bool = False


class LayoutRequest(BaseModel):
    mode: LayoutMode = LayoutMode.VERTICAL


class ListItemsUpdate(BaseModel):
    items: list[Any]


class EdgeCreate(BaseModel):
    source: str
    target: str


class SelectionUpdate(BaseModel):
    node_id: str | None = None


class ValidationResult(BaseModel):
    valid: bool
    error: str | None = None


# Dependency to extract the workspace ID from a header
def get_user_id(x_user_id: str = Header(..., description="Client-generated unique ID for the user workspace.")) -> str:
    if not x_user_id.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="X-User-ID header is required.")
    return x_user_id


def get_service() -> FlowService:
    global _flow_service
    if _flow_service is None:
        store_dir = Path(settings.FLOW_STORE_DIR) if settings.FLOW_STORE_DIR else None
        _flow_service = FlowService(
            JsonFileFlowStore(store_dir),
            AIService(api_key=settings.GEMINI_API_KEY),
        )
    return _flow_service


@router.get("/templates", response_model=list[NodeTemplate], tags=["Flow"])
async def list_templates():
    return TEMPLATE_NODES


@router.get("/flow", response_model=FlowState, tags=["Flow"])
async def get_flow(
    user_id: str = Depends(get_user_id),
    service: FlowService = Depends(get_service)
):
    return await service.get_state(user_id)


@router.delete("/flow", response_model=FlowState, tags=["Flow"])
@limiter.limit("10/minute")
async def reset_flow(
    request: Request,
    confirm: bool = False,
    user_id: str = Depends(get_user_id),
    service: FlowService = Depends(get_service)
):
    """Deletes all nodes and edges of the workspace."""
    return await service.reset(user_id, confirm)


@router.get("/flow/output", response_model=PromptOutput, tags=["Output"])
async def get_output(
    user_id: str = Depends(get_user_id),
    service: FlowService = Depends(get_service)
):
    return await service.get_output(user_id)


@router.get("/flow/output/markdown", tags=["Output"])
async def get_markdown(
    user_id: str = Depends(get_user_id),
    service: FlowService = Depends(get_service)
):
    markdown = await service.export_markdown(user_id)
    return Response(content=markdown, media_type="text/markdown; charset=utf-8")


@router.post("/flow/import", response_model=FlowState, tags=["Flow"])
@limiter.limit("30/minute")
async def import_flow(
    request: Request,
    import_request: ImportRequest,
    user_id: str = Depends(get_user_id),
    service: FlowService = Depends(get_service)
):
    """Parses pasted prompt text and replaces the canvas with it."""
    return await service.import_text(user_id, import_request.text, import_request.confirm)


@router.post("/flow/validate", response_model=ValidationResult, tags=["Flow"])
async def validate_flow(candidate: Any = Body(None)):
    error = validate_graph(candidate)
    return ValidationResult(valid=error is None, error=error)


@router.post("/flow/generate", status_code=status.HTTP_201_CREATED, response_model=CanonicalGraph, tags=["Generation"])
@limiter.limit("15/minute")
async def generate_flow(
    request: Request,
    generation_request: GenerationRequest,
    user_id: str = Depends(get_user_id),
    service: FlowService = Depends(get_service)
):
    graph = await service.generate(user_id, generation_request)
    return graph


@router.delete("/flow/generate", status_code=status.HTTP_204_NO_CONTENT, tags=["Generation"])
async def close_generator(
    user_id: str = Depends(get_user_id),
    service: FlowService = Depends(get_service)
):
    await service.close_generator(user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/flow/generate/draw", response_model=FlowState, tags=["Generation"])
async def draw_generated_flow(
    confirm_request: ConfirmRequest,
    user_id: str = Depends(get_user_id),
    service: FlowService = Depends(get_service)
):
    return await service.draw_generated(user_id, confirm_request.confirm)


@router.post("/flow/layout", response_model=FlowState, tags=["Flow"])
async def apply_layout(
    layout_request: LayoutRequest,
    user_id: str = Depends(get_user_id),
    service: FlowService = Depends(get_service)
):
    return await service.apply_layout(user_id, layout_request.mode)


@router.post("/flow/nodes", status_code=status.HTTP_201_CREATED, response_model=FlowNode, tags=["Nodes"])
@limiter.limit("60/minute")
async def add_node(
    request: Request,
    node_data: NodeCreate,
    user_id: str = Depends(get_user_id),
    service: FlowService = Depends(get_service)
):
    return await service.add_node(user_id, node_data)


@router.put("/flow/nodes/{node_id}", response_model=FlowNode, tags=["Nodes"])
async def update_node(
    node_id: str,
    node_update: NodeUpdate,
    user_id: str = Depends(get_user_id),
    service: FlowService = Depends(get_service)
):
    return await service.update_node(user_id, node_id, node_update)


@router.put("/flow/nodes/{node_id}/items", response_model=FlowNode, tags=["Nodes"])
async def update_node_items(
    node_id: str,
    items_update: ListItemsUpdate,
    user_id: str = Depends(get_user_id),
    service: FlowService = Depends(get_service)
):
    return await service.update_node_list(user_id, node_id, items_update.items)


@router.delete("/flow/nodes/{node_id}", status_code=status.HTTP_204_NO_CONTENT, tags=["Nodes"])
async def delete_node(
    node_id: str,
    user_id: str = Depends(get_user_id),
    service: FlowService = Depends(get_service)
):
    await service.remove_node(user_id, node_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.put("/flow/selection", response_model=FlowState, tags=["Nodes"])
async def select_node(
    selection: SelectionUpdate,
    user_id: str = Depends(get_user_id),
    service: FlowService = Depends(get_service)
):
    return await service.select_node(user_id, selection.node_id)


@router.post("/flow/edges", status_code=status.HTTP_201_CREATED, response_model=FlowEdge, tags=["Edges"])
@limiter.limit("120/minute")
async def add_edge(
    request: Request,
    edge: EdgeCreate,
    user_id: str = Depends(get_user_id),
    service: FlowService = Depends(get_service)
):
    return await service.connect(user_id, edge.source, edge.target)
