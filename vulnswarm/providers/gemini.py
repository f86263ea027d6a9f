"""Gemini provider using google-genai SDK with native async."""

import asyncio
import logging
import os
import time

from google import genai
from google.genai import types as genai_types

from config.config_loader import ModelConfig
from vulnswarm.models import ModelResponse, Turn
from vulnswarm.providers.base import AIProvider, ProviderError

logger = logging.getLogger(__name__)


def _to_contents(prompt: str, history: list[Turn] | None) -> list[genai_types.Content]:
    contents = [
        genai_types.Content(
            role="model" if t.role == "assistant" else "user",
            parts=[genai_types.Part(text=t.content)],
        )
        for t in history or []
    ]
    contents.append(genai_types.Content(role="user", parts=[genai_types.Part(text=prompt)]))
    return contents


class GeminiProvider(AIProvider):
    """Google Gemini provider via google-genai SDK."""

    def __init__(self, config: ModelConfig) -> None:
        self._config = config
        api_key = os.environ.get(config.api_key_env, "").strip()
        if not api_key:
            raise ProviderError(config.name, f"Missing API key: {config.api_key_env}")
        self._client = genai.Client(api_key=api_key)

    def name(self) -> str:
        return self._config.name

    def model_string(self) -> str:
        return self._config.model

    async def generate(
        self,
        prompt: str,
        *,
        system: str = "",
        history: list[Turn] | None = None,
        temperature: float | None = None,
    ) -> ModelResponse:
        start = time.monotonic()
        try:
            response = await asyncio.wait_for(
                self._client.aio.models.generate_content(
                    model=self._config.model,
                    contents=_to_contents(prompt, history),
                    config=genai_types.GenerateContentConfig(
                        max_output_tokens=self._config.max_tokens,
                        system_instruction=system or None,
                        temperature=temperature,
                    ),
                ),
                timeout=self._config.timeout_sec,
            )
        except TimeoutError as exc:
            raise ProviderError(self._config.name, f"Request timed out after {self._config.timeout_sec}s") from exc
        except Exception as exc:
            raise ProviderError(self._config.name, f"API call failed: {exc}") from exc

        latency = time.monotonic() - start

        if not response.text:
            raise ProviderError(self._config.name, "Empty response text")

        input_tokens = output_tokens = 0
        if response.usage_metadata:
            input_tokens = response.usage_metadata.prompt_token_count or 0
            output_tokens = response.usage_metadata.candidates_token_count or 0

        logger.debug(
            "Gemini call: %.2fs, %d in / %d out tokens",
            latency,
            input_tokens,
            output_tokens,
        )

        return ModelResponse(
            provider=self._config.name,
            model=self._config.model,
            content=response.text,
            latency_sec=latency,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
        )
