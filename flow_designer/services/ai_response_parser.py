import logging
import re
from json import JSONDecodeError, JSONDecoder
from typing import Any

logger = logging.getLogger(__name__)

_CODE_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL | re.IGNORECASE)
_JSON_FENCE_RE = re.compile(r"```json\s*([\s\S]*?)\s*```", re.IGNORECASE)
_BRACE_SPAN_RE = re.compile(r"(\{[\s\S]*\})")
_INVALID_ESCAPE_RE = re.compile(r'\\([^"\\/bfnrtu])')
_FORBIDDEN_KEYS = {
    "thought",
    "thoughts",
    "thought_signature",
    "thought-signature",
    "thoughtSignature",
}
_CONTROL_CHAR_REPLACEMENTS = {
    "\u2028": "\\u2028",
    "\u2029": "\\u2029",
}


def _strip_code_fence(text: str) -> str:
    stripped = text.strip()
    match = _CODE_FENCE_RE.match(stripped)
    return match.group(1) if match else stripped


def _escape_invalid_backslashes(text: str) -> str:
    def _replace(match: re.Match) -> str:
        return "\\\\" + match.group(1)

    return _INVALID_ESCAPE_RE.sub(_replace, text)


def _normalize_control_characters(text: str) -> str:
    for needle, replacement in _CONTROL_CHAR_REPLACEMENTS.items():
        text = text.replace(needle, replacement)
    return text


def _generate_candidates(base_text: str) -> list[str]:
    candidates: list[str] = []
    for candidate in (base_text, _escape_invalid_backslashes(base_text)):
        candidate = candidate.strip()
        if candidate and candidate not in candidates:
            candidates.append(candidate)
    return candidates


def _remove_forbidden_fields(payload: Any):
    if isinstance(payload, dict):
        return {
            key: _remove_forbidden_fields(value)
            for key, value in payload.items()
            if key not in _FORBIDDEN_KEYS
        }
    if isinstance(payload, list):
        return [_remove_forbidden_fields(item) for item in payload]
    return payload


def parse_ai_response_text(raw_text: str, strip_thought_fields: bool = True) -> Any:
    """
    Sanitize and parse a JSON document, optionally wrapped in a single code fence.
    Model "thought" keys are dropped unless `strip_thought_fields` is False.
    Raises JSONDecodeError when no sanitized candidate decodes.
    """
    cleaned = _strip_code_fence(raw_text or "")
    if not cleaned.strip():
        raise JSONDecodeError("JSON payload is empty", raw_text or "", 0)
    cleaned = cleaned.lstrip("\ufeff")
    cleaned = _normalize_control_characters(cleaned)

    decoders = (JSONDecoder(), JSONDecoder(strict=False))

    last_error: JSONDecodeError | None = None
    for candidate in _generate_candidates(cleaned):
        for decoder in decoders:
            try:
                payload = decoder.decode(candidate)
                return _remove_forbidden_fields(payload) if strip_thought_fields else payload
            except JSONDecodeError as exc:
                last_error = exc

    raise last_error if last_error else JSONDecodeError("Unable to parse JSON payload", raw_text, 0)


def extract_json_object(text: str | None, strip_thought_fields: bool = False) -> Any | None:
    """
    Finds the JSON document embedded in free text.

    The whole trimmed text is tried first; failing that, the first ```json
    fenced block, or else the widest "{...}" span. Returns None instead of
    raising when nothing decodes. Thought keys are only removed for model
    output, so pasted documents come back as written.
    """
    if not text or not text.strip():
        return None
    trimmed = text.strip()
    try:
        return parse_ai_response_text(trimmed, strip_thought_fields)
    except JSONDecodeError:
        pass

    match = _JSON_FENCE_RE.search(trimmed) or _BRACE_SPAN_RE.search(trimmed)
    if not match:
        return None
    try:
        return parse_ai_response_text(match.group(1), strip_thought_fields)
    except JSONDecodeError as exc:
        logger.debug("Embedded JSON candidate did not decode: %s", exc)
        return None