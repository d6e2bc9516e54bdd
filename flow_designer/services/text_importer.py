# flow_designer/services/text_importer.py
import re
from collections.abc import Callable
from typing import Any

from flow_designer.core.exceptions import PromptTextEmptyError
from flow_designer.services.ai_response_parser import extract_json_object

GraphDict = dict[str, Any]

_PARENT_RE = re.compile(r"^\[(\d+)\]\s*(SYSTEM|USER|ASSISTANT)\s*$", re.IGNORECASE)
_OUTLINE_RE = re.compile(r"^(\d+(?:\.\d+)*)[.)]?\s+(.+)$")
_ROLE_BLOCK_RE = re.compile(
    r"\[\d+\]\s*(SYSTEM|USER|ASSISTANT|CONDITION)\s*\n([\s\S]*?)"
    r"(?=\n\[\d+\]\s*(?:SYSTEM|USER|ASSISTANT|CONDITION)\s*\n|\Z)",
    re.IGNORECASE,
)
_ROLE_LINE_RE = re.compile(r"^(system|user|assistant|condition)\s*:\s*(.+)$", re.IGNORECASE)


def _non_empty_lines(text: str) -> list[str]:
    return [line.strip() for line in text.split("\n") if line.strip()]


def _role_label(role: str) -> str:
    return role[:1].upper() + role[1:]


def _chain_graph(steps: list[dict[str, str]]) -> GraphDict:
    """Assigns import-N ids in order and links each step to the next one."""
    nodes = [
        {"id": f"import-{index}", "role": step["role"], "label": step["label"], "content": step["content"]}
        for index, step in enumerate(steps, start=1)
    ]
    edges = [{"from": current["id"], "to": following["id"]} for current, following in zip(nodes, nodes[1:])]
    return {"nodes": nodes, "edges": edges}


def parse_json_graph(text: str) -> GraphDict | None:
    candidate = extract_json_object(text)
    if isinstance(candidate, dict) and isinstance(candidate.get("nodes"), list) and isinstance(candidate.get("edges"), list):
        return candidate
    return None


def parse_bracket_blocks(text: str) -> GraphDict | None:
    """
    `[1] SYSTEM` headers followed by `1.1 ...` children. Lines that are neither
    continue the previous child.
    """
    parents: list[dict[str, Any]] = []
    current: dict[str, Any] | None = None

    for line in text.split("\n"):
        line = line.strip()
        if not line:
            continue

        parent_match = _PARENT_RE.match(line)
        if parent_match:
            current = {"number": parent_match.group(1), "role": parent_match.group(2).lower(), "children": []}
            parents.append(current)
            continue

        if current is None:
            continue

        child_match = re.match(rf"^{current['number']}\.\d+\s+(.+)$", line)
        if child_match:
            current["children"].append(child_match.group(1).strip())
        elif current["children"]:
            current["children"][-1] = f"{current['children'][-1]} {line}".strip()

    if not parents:
        return None

    steps = []
    for parent in parents:
        children = parent["children"]
        content = "\n".join(f"{index}. {child}" for index, child in enumerate(children, start=1)) if children else "No content"
        steps.append({"role": parent["role"], "label": _role_label(parent["role"]), "content": content})
    return _chain_graph(steps)


def parse_numbered_outline(text: str) -> GraphDict | None:
    steps = []
    section = ""
    for line in _non_empty_lines(text):
        match = _OUTLINE_RE.match(line)
        if not match:
            section = line
            continue
        number, step_text = match.group(1), match.group(2).strip()
        if not step_text:
            continue
        steps.append({
            "role": "user",
            "label": f"{section} ({number})" if section else f"Step {number}",
            "content": f"{section}: {step_text}" if section else step_text,
        })
    return _chain_graph(steps) if steps else None


def parse_role_blocks(text: str) -> GraphDict | None:
    steps = []
    for match in _ROLE_BLOCK_RE.finditer(text.strip()):
        role, body = match.group(1).lower(), match.group(2).strip()
        if body:
            steps.append({"role": role, "label": _role_label(role), "content": body})
    return _chain_graph(steps) if steps else None


def parse_role_lines(text: str) -> GraphDict | None:
    steps = []
    for line in _non_empty_lines(text):
        match = _ROLE_LINE_RE.match(line)
        if match:
            role = match.group(1).lower()
            steps.append({"role": role, "label": _role_label(role), "content": match.group(2).strip()})
    return _chain_graph(steps) if steps else None


def parse_raw_text(text: str) -> GraphDict | None:
    raw = text.strip()
    if not raw:
        return None
    return _chain_graph([{"role": "user", "label": "User", "content": raw}])


# Tried in order; the first parser returning a graph wins.
IMPORT_PARSERS: tuple[Callable[[str], GraphDict | None], ...] = (
    parse_json_graph,
    parse_bracket_blocks,
    parse_numbered_outline,
    parse_role_blocks,
    parse_role_lines,
    parse_raw_text,
)


def parse_prompt_text_to_graph(text: str | None) -> GraphDict:
    """
    Converts pasted prompt text into a canonical graph dict.

    The result is not validated here; callers pass it through the graph
    validator before drawing it.
    """
    raw = (text or "").strip()
    if not raw:
        raise PromptTextEmptyError("Prompt text is empty.")

    for parser in IMPORT_PARSERS:
        graph = parser(raw)
        if graph is not None:
            return graph
    # parse_raw_text always matches non-blank input
    raise PromptTextEmptyError("Prompt text is empty.")
