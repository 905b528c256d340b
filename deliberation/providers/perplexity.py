"""Perplexity Sonar provider using openai SDK (OpenAI-compatible API)."""

from config.config_loader import ProviderConfig
from deliberation.models import ErrorKind
from deliberation.providers.base import ProviderError
from deliberation.providers.openai_provider import OpenAIProvider


class PerplexityProvider(OpenAIProvider):
    """Perplexity chat completions (web-grounded Sonar models)."""

    label = "Perplexity"

    def __init__(self, config: ProviderConfig, model: str, timeout_sec: float) -> None:
        if not config.base_url:
            raise ProviderError(config.name, "base_url is required for Perplexity", ErrorKind.CONFIGURATION)
        super().__init__(config, model, timeout_sec)
