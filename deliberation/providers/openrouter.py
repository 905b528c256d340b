"""OpenRouter provider using openai SDK (OpenAI-compatible API)."""

from config.config_loader import ProviderConfig
from deliberation.models import ErrorKind
from deliberation.providers.base import ProviderError
from deliberation.providers.openai_provider import OpenAIProvider


class OpenRouterProvider(OpenAIProvider):
    """OpenRouter gateway. Requires a base_url and attribution headers from settings."""

    label = "OpenRouter"

    def __init__(self, config: ProviderConfig, model: str, timeout_sec: float) -> None:
        if not config.base_url:
            raise ProviderError(config.name, "base_url is required for OpenRouter", ErrorKind.CONFIGURATION)
        super().__init__(config, model, timeout_sec)
