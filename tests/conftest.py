"""Shared pytest fixtures."""

import asyncio
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from config.config_loader import AppConfig, DefaultsConfig, PromptsConfig, ProviderConfig
from deliberation.models import (
    ChatMessage,
    CostTier,
    DeliberationRequest,
    DeliberationResponse,
    DispatchResult,
    DispatchSuccess,
    ModelInfo,
    ProviderKind,
)
from deliberation.providers.base import AIProvider
from deliberation.registry import ModelRegistry

MODEL_A = "openai/gpt-a"
MODEL_B = "openrouter/vendor/model-b"
MODEL_GEMINI = "gemini-flash-test"
MODEL_LOCAL = "local/tiny-llm"


def structured(analysis: str, conclusion: str) -> str:
    return f"## Analysis\n{analysis}\n\n## Final Conclusion\n{conclusion}"


@pytest.fixture
def sample_prompts_config() -> PromptsConfig:
    return PromptsConfig(
        system="You are a deliberation expert.",
        persona="\n\nFocus on: {strengths}.",
        contextual="Problem: {prompt}\nYours: {own_position}\nPeers:\n{peer_perspectives}",
        local_contextual="Problem: {prompt}\nHistory:\n{history}",
        summary="Summarize:\n{history}",
        judge="Judge problem: {prompt}\nTranscript:\n{transcript}",
        round_note="\n\nNote: {note}",
        truncation_notice="...(history truncated)",
    )


@pytest.fixture
def sample_defaults_config(tmp_path: Path) -> DefaultsConfig:
    return DefaultsConfig(
        timeout_sec=5,
        truncation_budget_chars=1000,
        local_history_chars=60,
        summarizer_hint="gemini",
        default_judge=MODEL_GEMINI,
        default_selected=[MODEL_A, MODEL_B],
        default_active=[MODEL_A, MODEL_B, MODEL_GEMINI],
        output_dir=tmp_path / "output",
        state_file=tmp_path / "state" / "session.json",
    )


@pytest.fixture
def sample_app_config(
    sample_defaults_config: DefaultsConfig,
    sample_prompts_config: PromptsConfig,
) -> AppConfig:
    providers = {
        "openai": ProviderConfig(name="openai", api_key_env="TEST_OPENAI_KEY"),
        "openrouter": ProviderConfig(
            name="openrouter",
            api_key_env="TEST_OPENROUTER_KEY",
            base_url="https://openrouter.example/api/v1",
        ),
        "gemini": ProviderConfig(name="gemini", api_key_env="TEST_GEMINI_KEY"),
        "local": ProviderConfig(name="local", base_url="http://localhost:1234/v1"),
    }
    return AppConfig(
        defaults=sample_defaults_config,
        providers=providers,
        prompts=sample_prompts_config,
        available_providers={"local"},
    )


@pytest.fixture
def sample_registry() -> ModelRegistry:
    return ModelRegistry(
        [
            ModelInfo(
                id=MODEL_A,
                name="Model A",
                provider=ProviderKind.OPENAI,
                free=False,
                cost_tier=CostTier.EXPENSIVE,
                strengths=("Logic", "Math", "Code", "Poetry"),
            ),
            ModelInfo(
                id=MODEL_B,
                name="Model B",
                provider=ProviderKind.OPENROUTER,
                free=True,
                cost_tier=CostTier.FREE,
                strengths=("Speed",),
            ),
            ModelInfo(
                id=MODEL_GEMINI,
                name="Gemini Test",
                provider=ProviderKind.GEMINI,
                free=True,
                cost_tier=CostTier.FREE,
                api_model="gemini-upstream",
            ),
        ]
    )


def make_response(
    model_id: str,
    round_number: int,
    text: str = "",
    *,
    model_name: str | None = None,
    error: str | None = None,
    response_id: str | None = None,
) -> DeliberationResponse:
    return DeliberationResponse(
        id=response_id or f"{round_number}-{model_id}-0",
        round=round_number,
        model_id=model_id,
        model_name=model_name or model_id,
        text=text,
        analysis="" if error else f"analysis of {model_id}",
        conclusion="" if error else f"conclusion of {model_id}",
        error=error,
    )


class MockProvider(AIProvider):
    """Test double AIProvider."""

    def __init__(self, provider_name: str = "mock", response_content: str = "Mock response") -> None:
        self._name = provider_name
        self._response_content = response_content
        # Shadow the class method with an AsyncMock at the instance level.
        # ABC check passes because generate is defined in the class body below.
        self.generate = AsyncMock(return_value=response_content)  # type: ignore[assignment]

    def name(self) -> str:
        return self._name

    def model_string(self) -> str:
        return "mock-model"

    async def generate(self, messages: list[ChatMessage]) -> str:  # type: ignore[override]
        """Default implementation; replaced by AsyncMock in __init__."""
        return self._response_content


class FakeDispatcher:
    """Stands in for Dispatcher: scripted results per model id, records every call.

    `events` keeps the call order as ("dispatch" | "deliberate", model_id).
    A model id present in `gates` waits on that asyncio.Event before replying.
    """

    def __init__(self, replies: dict[str, DispatchResult] | None = None) -> None:
        self.replies: dict[str, DispatchResult] = dict(replies or {})
        self.gates: dict[str, asyncio.Event] = {}
        self.events: list[tuple[str, str]] = []
        self.dispatched: list[tuple[str, list[ChatMessage]]] = []
        self.requests: list[DeliberationRequest] = []

    def _reply(self, model_id: str) -> DispatchResult:
        return self.replies.get(
            model_id,
            DispatchSuccess(text=structured(f"{model_id} thinks", f"{model_id} concludes"), duration_ms=10),
        )

    async def dispatch(self, model_id: str, messages: list[ChatMessage]) -> DispatchResult:
        self.events.append(("dispatch", model_id))
        self.dispatched.append((model_id, messages))
        return self._reply(model_id)

    async def deliberate(self, request: DeliberationRequest) -> DispatchResult:
        self.events.append(("deliberate", request.model_id))
        self.requests.append(request)
        gate = self.gates.get(request.model_id)
        if gate is not None:
            await gate.wait()
        return self._reply(request.model_id)


@pytest.fixture
def fake_dispatcher() -> FakeDispatcher:
    return FakeDispatcher()
