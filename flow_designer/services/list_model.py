# flow_designer/services/list_model.py
import re
from collections.abc import Iterable
from typing import Any

from flow_designer.models.list_item import ListItem, MAX_LEVEL, MIN_LEVEL

_NUMBERED_LINE_RE = re.compile(r"^(\d+(?:\.\d+)*)\.?\s+(.+)$")


def clamp_level(level: Any) -> int:
    """Coerces anything into a list level in [1, 3]; non-numeric values become 1."""
    if isinstance(level, bool):
        return MIN_LEVEL
    try:
        value = int(float(level))
    except (TypeError, ValueError, OverflowError):
        return MIN_LEVEL
    if value < MIN_LEVEL:
        return MIN_LEVEL
    return min(MAX_LEVEL, value)


def create_list_item(text: str = "", level: Any = MIN_LEVEL) -> ListItem:
    return ListItem(text=text, level=clamp_level(level))


def _coerce_item(raw: Any) -> ListItem:
    if isinstance(raw, ListItem):
        return ListItem(id=raw.id, text=raw.text, level=clamp_level(raw.level))
    if isinstance(raw, str):
        return create_list_item(raw, MIN_LEVEL)
    if isinstance(raw, dict):
        item_id = raw.get("id")
        text = raw.get("text")
        item = create_list_item("" if text is None else str(text), raw.get("level"))
        if isinstance(item_id, str) and item_id:
            item.id = item_id
        return item
    return create_list_item()


def normalize_list_items(raw_items: Iterable[Any] | None, fallback_text: str = "") -> list[ListItem]:
    """
    Turns strings, partial records or (when no items are given) a block of
    numbered text into typed list items. The result is never empty.
    """
    items = list(raw_items or [])
    if items:
        return [_coerce_item(raw) for raw in items]

    normalized: list[ListItem] = []
    for line in (fallback_text or "").split("\n"):
        line = line.strip()
        if not line:
            continue
        match = _NUMBERED_LINE_RE.match(line)
        if match:
            normalized.append(create_list_item(match.group(2), len(match.group(1).split("."))))
        else:
            normalized.append(create_list_item(line, MIN_LEVEL))

    return normalized or [create_list_item()]


def format_numbered_list(items: Iterable[Any] | None) -> str:
    """
    Renders list items as "<token> <text>" lines, e.g. "2.3 Ask" for the third
    level-2 child under the second level-1 item. Blank items keep their slot in
    the numbering but are not rendered.
    """
    counters = [0] * MAX_LEVEL
    lines: list[str] = []
    for item in normalize_list_items(items):
        level = clamp_level(item.level)
        counters[level - 1] += 1
        for index in range(level, MAX_LEVEL):
            counters[index] = 0
        text = (item.text or "").strip()
        if not text:
            continue
        token = ".".join(str(counter) for counter in counters[:level])
        lines.append(f"{token} {text}")
    return "\n".join(lines)
