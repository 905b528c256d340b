"""Load settings.yaml into typed dataclasses. Reports provider credentials at startup."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)

_SETTINGS_PATH = Path(__file__).parent / "settings.yaml"
_REGISTRY_PATH = Path(__file__).parent / "models_registry.yaml"


@dataclass
class ProviderConfig:
    name: str
    api_key_env: str | None = None     # None for providers without credentials (local)
    base_url: str | None = None
    base_url_env: str | None = None    # env var that overrides base_url when set
    headers: dict[str, str] = field(default_factory=dict)
    max_tokens: int | None = None


@dataclass
class PromptsConfig:
    system: str
    persona: str
    contextual: str
    local_contextual: str
    summary: str
    judge: str
    round_note: str = "\n\n{note}"
    truncation_notice: str = "...(history truncated)"


@dataclass
class DefaultsConfig:
    timeout_sec: float = 55.0
    truncation_budget_chars: int = 45_000
    local_history_chars: int = 3_000
    summarizer_hint: str = "gemini"
    default_judge: str | None = None
    default_selected: list[str] = field(default_factory=list)
    default_active: list[str] = field(default_factory=list)
    output_dir: Path = Path("./output")
    state_file: Path = Path("./.deliberation/session.json")
    registry_file: Path = _REGISTRY_PATH


@dataclass
class AppConfig:
    defaults: DefaultsConfig
    providers: dict[str, ProviderConfig]
    prompts: PromptsConfig
    available_providers: set[str] = field(default_factory=set)


def load_config(settings_path: Path = _SETTINGS_PATH) -> AppConfig:
    """Load and validate configuration from settings.yaml.

    Raises FileNotFoundError if settings file missing.
    Logs which providers have credentials but does not raise; a missing key
    surfaces as a ConfigurationError when that provider is dispatched to.
    """
    if not settings_path.exists():
        raise FileNotFoundError(f"Settings file not found: {settings_path}")

    with settings_path.open("r", encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}

    defaults_raw = raw.get("defaults", {})
    defaults = DefaultsConfig(
        timeout_sec=float(defaults_raw.get("timeout_sec", 55)),
        truncation_budget_chars=int(defaults_raw.get("truncation_budget_chars", 45_000)),
        local_history_chars=int(defaults_raw.get("local_history_chars", 3_000)),
        summarizer_hint=str(defaults_raw.get("summarizer_hint", "gemini")),
        default_judge=defaults_raw.get("default_judge"),
        default_selected=list(defaults_raw.get("default_selected", [])),
        default_active=list(defaults_raw.get("default_active", [])),
        output_dir=Path(defaults_raw.get("output_dir", "./output")),
        state_file=Path(defaults_raw.get("state_file", "./.deliberation/session.json")),
        registry_file=Path(defaults_raw["registry_file"]) if defaults_raw.get("registry_file") else _REGISTRY_PATH,
    )

    prompts_raw = raw["prompts"]
    prompts = PromptsConfig(
        system=prompts_raw["system"],
        persona=prompts_raw["persona"],
        contextual=prompts_raw["contextual"],
        local_contextual=prompts_raw["local_contextual"],
        summary=prompts_raw["summary"],
        judge=prompts_raw["judge"],
        round_note=prompts_raw.get("round_note", "\n\n{note}"),
        truncation_notice=prompts_raw.get("truncation_notice", "...(history truncated)"),
    )

    providers: dict[str, ProviderConfig] = {}
    available_providers: set[str] = set()

    for provider_name, provider_raw in (raw.get("providers") or {}).items():
        provider_raw = provider_raw or {}
        provider_cfg = ProviderConfig(
            name=provider_name,
            api_key_env=provider_raw.get("api_key_env"),
            base_url=provider_raw.get("base_url"),
            base_url_env=provider_raw.get("base_url_env"),
            headers={str(k): str(v) for k, v in (provider_raw.get("headers") or {}).items()},
            max_tokens=int(provider_raw["max_tokens"]) if provider_raw.get("max_tokens") else None,
        )
        providers[provider_name] = provider_cfg

        if provider_cfg.api_key_env is None:
            available_providers.add(provider_name)
            logger.info("Provider available (no credential required): %s", provider_name)
            continue

        api_key = os.environ.get(provider_cfg.api_key_env, "").strip()
        if api_key:
            available_providers.add(provider_name)
            logger.info("Provider available: %s", provider_name)
        else:
            logger.info(
                "Provider without credentials: %s (set %s in .env)",
                provider_name,
                provider_cfg.api_key_env,
            )

    return AppConfig(
        defaults=defaults,
        providers=providers,
        prompts=prompts,
        available_providers=available_providers,
    )
