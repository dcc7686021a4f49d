"""Generative content service.

``ContentGenerator`` is what the pipeline calls; ``GeminiForgeGenerator`` is
the production implementation on google-genai through ``ResilientClient``.
Every failure mode (network, timeout, empty or malformed response) surfaces as
``GenerationFailed``.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Optional, Protocol

from google.genai import types

from worldforge.config import get_settings
from worldforge.forge.context import PromptContext, build_prompts
from worldforge.forge.errors import GenerationFailed
from worldforge.schemas import ForgeInput
from worldforge.utils.json_extractor import extract_json_object
from worldforge.utils.logging_config import get_logger

_logger = get_logger("worldforge.generator")


class ContentGenerator(Protocol):
    async def generate(self, forge_type: str, input: ForgeInput, context: PromptContext) -> dict[str, Any]:
        """Return the raw generated JSON object for one entity."""
        ...


class GeminiForgeGenerator:
    def __init__(self, client=None, model: Optional[str] = None, timeout: Optional[float] = None):
        settings = get_settings()
        self._client = client
        self.model = model or settings.model_forge
        self.timeout = timeout or settings.forge_timeout_seconds

    @property
    def client(self):
        if self._client is None:
            from worldforge.utils.resilient_client import ResilientClient
            self._client = ResilientClient()
        return self._client

    async def generate(self, forge_type: str, input: ForgeInput, context: PromptContext) -> dict[str, Any]:
        settings = get_settings()
        system_prompt, user_prompt = build_prompts(forge_type, input, context)
        start = time.monotonic()

        try:
            response = await asyncio.wait_for(
                self.client.aio.models.generate_content(
                    model=self.model,
                    contents=user_prompt,
                    config=types.GenerateContentConfig(
                        system_instruction=system_prompt,
                        temperature=settings.forge_temperature,
                        max_output_tokens=settings.forge_max_output_tokens,
                        response_mime_type="application/json",
                    ),
                ),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as exc:
            raise GenerationFailed(f"Generation timed out after {self.timeout:.0f}s") from exc
        except Exception as exc:
            _logger.error("generation request failed: %s", exc, extra={"forge_type": forge_type})
            raise GenerationFailed(f"Generation failed: {exc}") from exc

        text = getattr(response, "text", None)
        if not text or not text.strip():
            raise GenerationFailed("Generation returned an empty response")

        payload = extract_json_object(text, required_keys=("name",))
        if payload is None:
            raise GenerationFailed("Generation returned malformed JSON")

        _logger.info(
            "generated %s %r", forge_type, payload.get("name"),
            extra={"forge_type": forge_type, "duration_ms": int((time.monotonic() - start) * 1000)},
        )
        return payload
