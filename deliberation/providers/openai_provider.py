"""OpenAI provider using openai SDK with native async. Base for OpenAI-compatible APIs."""

import asyncio
import logging
import os
import time

from openai import APIStatusError, APITimeoutError, AsyncOpenAI

from config.config_loader import ProviderConfig
from deliberation.models import ChatMessage, ErrorKind
from deliberation.providers.base import AIProvider, ProviderError
from deliberation.providers.errors import classify_error

logger = logging.getLogger(__name__)


class OpenAIProvider(AIProvider):
    """OpenAI provider via openai SDK.

    Subclasses point the same client at other OpenAI-compatible endpoints by
    overriding `label` and, where needed, `_api_key` / `_base_url`.
    """

    label = "OpenAI"

    def __init__(self, config: ProviderConfig, model: str, timeout_sec: float) -> None:
        self._config = config
        self._model = model
        self._timeout_sec = timeout_sec
        self._client = AsyncOpenAI(
            api_key=self._api_key(),
            base_url=self._base_url(),
            default_headers=config.headers or None,
            max_retries=0,
        )

    def _api_key(self) -> str:
        env_name = self._config.api_key_env
        if not env_name:
            raise ProviderError(self._config.name, "No API key variable configured", ErrorKind.CONFIGURATION)
        api_key = os.environ.get(env_name, "").strip()
        if not api_key:
            raise ProviderError(self._config.name, f"Missing API key: {env_name}", ErrorKind.CONFIGURATION)
        return api_key

    def _base_url(self) -> str | None:
        if self._config.base_url_env:
            override = os.environ.get(self._config.base_url_env, "").strip()
            if override:
                return override
        return self._config.base_url

    def name(self) -> str:
        return self._config.name

    def model_string(self) -> str:
        return self._model

    async def generate(self, messages: list[ChatMessage]) -> str:
        start = time.monotonic()
        kwargs: dict = {
            "model": self._model,
            "messages": [{"role": m.role, "content": m.content} for m in messages],
        }
        if self._config.max_tokens:
            kwargs["max_tokens"] = self._config.max_tokens

        try:
            response = await asyncio.wait_for(
                self._client.chat.completions.create(**kwargs),
                timeout=self._timeout_sec,
            )
        except (TimeoutError, APITimeoutError) as exc:
            raise ProviderError(
                self._config.name, f"Request timed out after {self._timeout_sec:g}s", ErrorKind.TIMEOUT
            ) from exc
        except APIStatusError as exc:
            kind, message = classify_error(self.label, exc.status_code, exc.response.text)
            logger.debug("%s error %d: %s", self.label, exc.status_code, exc.response.text[:500])
            raise ProviderError(self._config.name, message, kind) from exc
        except Exception as exc:
            raise ProviderError(self._config.name, f"API call failed: {exc}") from exc

        latency = time.monotonic() - start

        choice = response.choices[0] if response.choices else None
        content = choice.message.content if choice is not None else None

        token_count: int | None = None
        if response.usage:
            token_count = response.usage.total_tokens

        logger.info(
            "%s %s: %.2fs, %s tokens",
            self.label,
            self._model,
            latency,
            token_count,
        )
        return content or ""
