"""Gemini provider using google-genai SDK with native async."""

import asyncio
import json
import logging
import os
import time

from google import genai
from google.genai import errors as genai_errors
from google.genai import types as genai_types

from config.config_loader import ProviderConfig
from deliberation.models import ChatMessage, ErrorKind
from deliberation.providers.base import AIProvider, ProviderError
from deliberation.providers.errors import classify_error

logger = logging.getLogger(__name__)


def fold_messages(messages: list[ChatMessage]) -> tuple[str | None, str]:
    """Split a role-tagged list into (system_instruction, combined user text).

    Gemini takes the system prompt as a separate field and a single user turn,
    so all non-system content is joined into one instruction.
    """
    system = "\n".join(m.content for m in messages if m.role == "system")
    combined = "\n".join(m.content for m in messages if m.role != "system")
    return system or None, combined


def _error_body(exc: genai_errors.APIError) -> str:
    if isinstance(exc.details, dict):
        return json.dumps(exc.details)
    return str(exc)


class GeminiProvider(AIProvider):
    """Google Gemini provider via google-genai SDK."""

    label = "Gemini"

    def __init__(self, config: ProviderConfig, model: str, timeout_sec: float) -> None:
        self._config = config
        self._model = model
        self._timeout_sec = timeout_sec
        env_name = config.api_key_env or ""
        api_key = os.environ.get(env_name, "").strip() if env_name else ""
        if not api_key:
            raise ProviderError(config.name, f"Missing API key: {env_name or 'not configured'}", ErrorKind.CONFIGURATION)
        self._client = genai.Client(api_key=api_key)

    def name(self) -> str:
        return self._config.name

    def model_string(self) -> str:
        return self._model

    async def generate(self, messages: list[ChatMessage]) -> str:
        system_instruction, contents = fold_messages(messages)
        start = time.monotonic()
        try:
            response = await asyncio.wait_for(
                self._client.aio.models.generate_content(
                    model=self._model,
                    contents=contents,
                    config=genai_types.GenerateContentConfig(
                        system_instruction=system_instruction,
                        max_output_tokens=self._config.max_tokens,
                    ),
                ),
                timeout=self._timeout_sec,
            )
        except TimeoutError as exc:
            raise ProviderError(
                self._config.name, f"Request timed out after {self._timeout_sec:g}s", ErrorKind.TIMEOUT
            ) from exc
        except genai_errors.APIError as exc:
            kind, message = classify_error(self.label, exc.code, _error_body(exc))
            raise ProviderError(self._config.name, message, kind) from exc
        except Exception as exc:
            raise ProviderError(self._config.name, f"API call failed: {exc}") from exc

        latency = time.monotonic() - start

        token_count: int | None = None
        if response.usage_metadata:
            token_count = response.usage_metadata.total_token_count

        logger.info(
            "Gemini %s: %.2fs, %s tokens",
            self._model,
            latency,
            token_count,
        )
        return response.text or ""
