from __future__ import annotations

import json
import logging
import os
import re
from typing import Any, Dict, Optional

from google import genai
from google.genai import types

from .errors import GradingProviderError

logger = logging.getLogger(__name__)

PROVIDER = "fallback_llm"


class LLMClient:
    """Minimal async wrapper around the Gemini API with lenient JSON parsing."""

    def __init__(self, model: str, api_key: Optional[str] = None, client: Any = None):
        self.model_name = model
        self.api_key = api_key or os.environ.get("GEMINI_API_KEY")
        if client is None:
            if not self.api_key:
                raise RuntimeError("GEMINI_API_KEY is required.")
            client = genai.Client(api_key=self.api_key)
        self._client = client

    async def generate_text(
        self,
        prompt: str,
        *,
        temperature: float = 0.0,
        max_output_tokens: int = 2048,
    ) -> str:
        try:
            response = await self._client.aio.models.generate_content(
                model=self.model_name,
                contents=prompt,
                config=types.GenerateContentConfig(
                    temperature=temperature,
                    max_output_tokens=max_output_tokens,
                    response_mime_type="application/json",
                ),
            )
        except Exception as exc:  # noqa: BLE001
            raise GradingProviderError(PROVIDER, f"Gemini generation failed: {exc}") from exc

        text = getattr(response, "text", None)
        if not text or not text.strip():
            raise GradingProviderError(PROVIDER, "Gemini returned an empty response")
        return text

    async def generate_json(self, prompt: str, **kwargs: Any) -> Dict[str, Any]:
        text = await self.generate_text(prompt, **kwargs)
        try:
            return parse_json_payload(text)
        except ValueError as exc:
            logger.debug("Unparsable Gemini response: %s", text)
            raise GradingProviderError(PROVIDER, f"Gemini returned invalid JSON: {exc}") from exc


def strip_code_fences(text: str) -> str:
    candidate = text.strip()
    if candidate.startswith("```"):
        candidate = re.sub(r"^```(?:json)?\s*", "", candidate)
        candidate = re.sub(r"\s*```$", "", candidate)
    return candidate


def parse_json_payload(text: str) -> Dict[str, Any]:
    candidate = strip_code_fences(text)

    try:
        payload = json.loads(candidate)
        if not isinstance(payload, dict):
            raise ValueError("Expected top-level JSON object.")
        return payload
    except json.JSONDecodeError:
        pass

    match = re.search(r"\{[\s\S]*\}", text)
    if not match:
        raise ValueError("Unable to parse JSON object from model response.")
    payload = json.loads(match.group(0))
    if not isinstance(payload, dict):
        raise ValueError("Expected top-level JSON object.")
    return payload
