"""Provider dispatch boundary: model id -> provider -> DispatchSuccess | DispatchFailure."""

import logging
import time
from collections.abc import Callable

from config.config_loader import AppConfig, ProviderConfig
from deliberation.models import (
    ChatMessage,
    DeliberationRequest,
    DispatchFailure,
    DispatchResult,
    DispatchSuccess,
    ErrorKind,
    HistoryEntry,
    ProviderKind,
)
from deliberation.prompts import build_messages
from deliberation.providers.base import AIProvider, ProviderError
from deliberation.providers.gemini import GeminiProvider
from deliberation.providers.local import LocalProvider
from deliberation.providers.openai_provider import OpenAIProvider
from deliberation.providers.openrouter import OpenRouterProvider
from deliberation.providers.perplexity import PerplexityProvider
from deliberation.registry import ModelRegistry, derive_provider

logger = logging.getLogger(__name__)

PROVIDER_CLASSES: dict[ProviderKind, type[AIProvider]] = {
    ProviderKind.OPENAI: OpenAIProvider,
    ProviderKind.OPENROUTER: OpenRouterProvider,
    ProviderKind.PERPLEXITY: PerplexityProvider,
    ProviderKind.GEMINI: GeminiProvider,
    ProviderKind.LOCAL: LocalProvider,
}

ProviderFactory = Callable[[str, AppConfig, ModelRegistry], AIProvider]


def build_provider(model_id: str, config: AppConfig, registry: ModelRegistry) -> AIProvider:
    """Instantiate the provider for a model id.

    Raises:
        ProviderError: ConfigurationError kind for unknown ids or missing credentials.
    """
    kind = derive_provider(model_id)
    provider_cls = PROVIDER_CLASSES.get(kind)
    if provider_cls is None:
        raise ProviderError(kind.value, f"No provider for model id '{model_id}'", ErrorKind.CONFIGURATION)
    provider_cfg = config.providers.get(kind.value) or ProviderConfig(name=kind.value)
    return provider_cls(provider_cfg, registry.api_model(model_id), config.defaults.timeout_sec)


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


def http_status(result: DispatchResult) -> int:
    """HTTP status a dispatch outcome maps to: 200, 504 for timeouts, else 500."""
    if isinstance(result, DispatchSuccess):
        return 200
    if result.kind is ErrorKind.TIMEOUT:
        return 504
    return 500


class Dispatcher:
    """Issues one chat request per call and normalizes every outcome.

    No retries are attempted; callers decide what to do with a failure.
    """

    def __init__(
        self,
        config: AppConfig,
        registry: ModelRegistry,
        provider_factory: ProviderFactory = build_provider,
    ) -> None:
        self._config = config
        self._registry = registry
        self._provider_factory = provider_factory

    async def dispatch(self, model_id: str, messages: list[ChatMessage]) -> DispatchResult:
        """Call the model behind model_id. Never raises."""
        start = time.monotonic()
        try:
            provider = self._provider_factory(model_id, self._config, self._registry)
            text = await provider.generate(messages)
        except ProviderError as exc:
            logger.warning("Dispatch to %s failed [%s]: %s", model_id, exc.kind.value, exc.message)
            return DispatchFailure(kind=exc.kind, message=exc.message, duration_ms=_elapsed_ms(start))
        except Exception as exc:
            logger.warning("Dispatch to %s failed unexpectedly: %s", model_id, exc)
            return DispatchFailure(
                kind=ErrorKind.UPSTREAM,
                message=f"Unexpected error: {exc}",
                duration_ms=_elapsed_ms(start),
            )
        return DispatchSuccess(text=text, duration_ms=_elapsed_ms(start))

    async def deliberate(self, request: DeliberationRequest) -> DispatchResult:
        """Build the model's message list for this round and dispatch it."""
        messages = build_messages(request, self._registry, self._config.prompts, self._config.defaults)
        return await self.dispatch(request.model_id, messages)


def _history_from_payload(items: list) -> list[HistoryEntry]:
    entries: list[HistoryEntry] = []
    for item in items or []:
        if not isinstance(item, dict):
            continue
        entries.append(
            HistoryEntry(
                model_name=str(item.get("modelName", item.get("modelId", ""))),
                round=item.get("round", ""),
                text=str(item.get("text", "")),
                model_id=item.get("modelId"),
            )
        )
    return entries


async def handle_request(body: dict, dispatcher: Dispatcher) -> tuple[int, dict]:
    """Serve the deliberation endpoint contract.

    Accepts {prompt, round, model, previousResponses, systemPrompt, roundNote}
    and returns (status, {"text": ...}) or (status, {"error": ...}).
    """
    prompt = body.get("prompt")
    model_id = body.get("model") or body.get("modelId")
    if not prompt or not model_id:
        return 400, {"error": "Missing required values: prompt and model"}

    try:
        round_number = int(body.get("round") or 1)
    except (TypeError, ValueError):
        return 400, {"error": "round must be an integer"}

    request = DeliberationRequest(
        prompt=str(prompt),
        round=round_number,
        model_id=str(model_id),
        previous_responses=_history_from_payload(body.get("previousResponses") or []),
        system_prompt=body.get("systemPrompt") or None,
        round_note=body.get("roundNote") or None,
    )
    result = await dispatcher.deliberate(request)
    if isinstance(result, DispatchSuccess):
        return 200, {"text": result.text}
    return http_status(result), {"error": result.message}
