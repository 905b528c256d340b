"""Local OpenAI-compatible server (LM Studio and similar). No credential required."""

from deliberation.providers.openai_provider import OpenAIProvider

DEFAULT_LOCAL_BASE_URL = "http://localhost:1234/v1"

# Local servers ignore the key, but the SDK requires a non-empty value.
_PLACEHOLDER_KEY = "lm-studio"


class LocalProvider(OpenAIProvider):
    """Model served by a local runtime at LOCAL_BASE_URL (default localhost:1234)."""

    label = "Local server"

    def _api_key(self) -> str:
        return _PLACEHOLDER_KEY

    def _base_url(self) -> str:
        return super()._base_url() or DEFAULT_LOCAL_BASE_URL
