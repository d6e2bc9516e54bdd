# flow_designer/core/prompts.py
# This file is the single source of truth for the flow generation contract.
import json

FLOW_SCHEMA = {
    "type": "object",
    "additionalProperties": False,
    "properties": {
        "nodes": {
            "type": "array",
            "items": {
                "type": "object",
                "additionalProperties": False,
                "properties": {
                    "id": {"type": "string"},
                    "role": {"type": "string", "enum": ["system", "user", "assistant"]},
                    "label": {"type": "string"},
                    "content": {"type": "string"},
                },
                "required": ["id", "role", "label", "content"],
            },
        },
        "edges": {
            "type": "array",
            "items": {
                "type": "object",
                "additionalProperties": False,
                "properties": {
                    "from": {"type": "string"},
                    "to": {"type": "string"},
                },
                "required": ["from", "to"],
            },
        },
    },
    "required": ["nodes", "edges"],
}

# Example shape embedded in the instruction text.
FLOW_SCHEMA_EXAMPLE = {
    "nodes": [{"id": "string", "role": "system | user | assistant", "label": "string", "content": "string"}],
    "edges": [{"from": "string", "to": "string"}],
}

GENERATION_RULES = (
    "Each node must have a unique id.",
    "Edges must reference valid node ids.",
    "The flow must be sequential unless branching is explicitly requested.",
    "Do not create empty content nodes unless explicitly required.",
    "Preserve logical order of conversation.",
    "Ensure the graph is a valid directed flow (no orphan nodes).",
)


def build_system_instruction() -> str:
    lines = [
        "You are an assistant that converts instructions into prompt-flow JSON.",
        "Return JSON only. No markdown.",
        "Schema:",
        json.dumps(FLOW_SCHEMA_EXAMPLE, indent=2),
        "Rules:",
    ]
    lines.extend(f"{index}. {rule}" for index, rule in enumerate(GENERATION_RULES, start=1))
    return "\n".join(lines)


SYSTEM_INSTRUCTION = build_system_instruction()
