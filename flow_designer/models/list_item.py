# flow_designer/models/list_item.py
from uuid import uuid4
from pydantic import BaseModel, Field

MIN_LEVEL = 1
MAX_LEVEL = 3


def new_list_item_id() -> str:
    return f"li-{uuid4().hex[:12]}"


class ListItem(BaseModel):
    """One numbered line of a node's prompt list."""
    id: str = Field(default_factory=new_list_item_id)
    text: str = ""
    level: int = MIN_LEVEL
