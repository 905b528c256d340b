"""Abstract base for all AI model providers."""

from abc import ABC, abstractmethod

from deliberation.models import ChatMessage, ErrorKind


class ProviderError(Exception):
    """Raised when a provider call fails. Carries a classified ErrorKind."""

    def __init__(self, provider_name: str, message: str, kind: ErrorKind = ErrorKind.UPSTREAM) -> None:
        self.provider_name = provider_name
        self.message = message
        self.kind = kind
        super().__init__(f"[{provider_name}] {message}")


class AIProvider(ABC):
    """Abstract base for all AI model providers."""

    @abstractmethod
    def name(self) -> str:
        """Return the short provider name (e.g. 'gemini', 'openrouter')."""
        ...

    @abstractmethod
    def model_string(self) -> str:
        """Return the upstream model identifier string."""
        ...

    @abstractmethod
    async def generate(self, messages: list[ChatMessage]) -> str:
        """Send a chat-style request and return the completion text.

        Args:
            messages: Ordered role-tagged messages (system first, then user).

        Returns:
            The completion text, possibly empty.

        Raises:
            ProviderError: On missing credentials, timeout, or upstream failure.
        """
        ...
