# flow_designer/services/ai_service.py
import asyncio
import logging
from collections.abc import Callable
from typing import Any
from google.genai import types
import google.genai as genai
from flow_designer.core.config import settings
from flow_designer.core.exceptions import FlowValidationError, GenerationError
from flow_designer.core.prompts import SYSTEM_INSTRUCTION
from flow_designer.models.flow import CanonicalGraph, GenerationRequest
from flow_designer.services.ai_response_parser import extract_json_object
from flow_designer.services.graph_validator import ensure_valid_graph

logger = logging.getLogger(__name__)


class AIService:
    """Talks to the text-generation model and turns its reply into a validated flow graph."""

    def __init__(
        self,
        api_key: str = "",
        model: str | None = None,
        client_factory: Callable[[str], Any] | None = None,
    ):
        self.api_key = api_key
        self.model = model or settings.GENERATION_MODEL
        self._client_factory = client_factory or (lambda key: genai.Client(api_key=key))

    async def generate_flow(self, request: GenerationRequest) -> CanonicalGraph:
        api_key = (request.api_key or self.api_key or "").strip()
        if not api_key:
            raise GenerationError("API key is required.")
        user_prompt = (request.prompt or "").strip()
        if not user_prompt:
            raise GenerationError("Please describe the flow you want to generate.")

        generation_config = types.GenerateContentConfig(
            system_instruction=SYSTEM_INSTRUCTION,
            response_mime_type="application/json",
        )

        try:
            client = self._client_factory(api_key)
            response = await asyncio.to_thread(
                client.models.generate_content,
                model=self.model,
                contents=user_prompt,
                config=generation_config,
            )
        except Exception as e:
            logger.error("Generation request failed: %s", e)
            raise GenerationError(f"Generation request failed: {e}") from e

        raw_text = self._extract_structured_text(response)
        if not raw_text:
            logger.error("Generation response did not contain any text output.")
            raise GenerationError("Generation response was empty.")

        candidate = extract_json_object(raw_text, strip_thought_fields=True)
        try:
            return ensure_valid_graph(candidate)
        except FlowValidationError as e:
            logger.error("Generated flow rejected: %s", e.message)
            logger.debug("Raw generation response text: %s", raw_text)
            raise GenerationError(e.message) from e

    @staticmethod
    def _extract_structured_text(response: Any) -> str:
        """
        Attempt to extract the JSON payload emitted via structured output from the SDK response.
        """
        if response is None:
            return ""

        try:
            candidates = getattr(response, "candidates", None) or []
            for candidate in candidates:
                content = getattr(candidate, "content", None)
                parts = getattr(content, "parts", None) or []
                for part in parts:
                    inline_data = getattr(part, "inline_data", None)
                    part_mime = getattr(part, "mime_type", None)
                    inline_mime = getattr(inline_data, "mime_type", None) if inline_data else None
                    mime_type = (part_mime or inline_mime or "").lower()
                    if mime_type.startswith("application/x-thought"):
                        logger.debug("Skipping thought-signature part in candidate.")
                        continue
                    if mime_type.startswith("application/json") or mime_type.startswith("text/"):
                        text = AIService._part_text(part, inline_data)
                        if text:
                            return text
        except Exception as exc:
            logger.debug("Falling back to response.text due to extraction error: %s", exc)

        return getattr(response, "text", "") or ""

    @staticmethod
    def _part_text(part: Any, inline_data: Any) -> str:
        text_part = getattr(part, "text", None)
        if text_part:
            return text_part
        if inline_data:
            data = getattr(inline_data, "data", None)
            if isinstance(data, bytes):
                return data.decode("utf-8")
            if data:
                return str(data)
        return ""
