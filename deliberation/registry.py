"""Model catalog lookup and provider derivation from model ids."""

import logging
from pathlib import Path

import yaml

from deliberation.models import CostTier, ModelInfo, ProviderKind

logger = logging.getLogger(__name__)

MAX_SURFACED_STRENGTHS = 3

_PREFIXED_KINDS: list[tuple[str, ProviderKind]] = [
    ("openai/", ProviderKind.OPENAI),
    ("perplexity/", ProviderKind.PERPLEXITY),
    ("openrouter/", ProviderKind.OPENROUTER),
    ("local/", ProviderKind.LOCAL),
]


def derive_provider(model_id: str) -> ProviderKind:
    """Map a model id to its provider kind.

    Prefix rules are checked first, then content markers ("lmstudio" -> local,
    "gemini" -> gemini). Anything else is UNKNOWN.
    """
    for prefix, kind in _PREFIXED_KINDS:
        if model_id.startswith(prefix):
            return kind
    if "lmstudio" in model_id:
        return ProviderKind.LOCAL
    if "gemini" in model_id:
        return ProviderKind.GEMINI
    return ProviderKind.UNKNOWN


def strip_provider_prefix(model_id: str) -> str:
    """Return the upstream model string: the id without its routing prefix."""
    for prefix, _kind in _PREFIXED_KINDS:
        if model_id.startswith(prefix):
            return model_id[len(prefix):]
    return model_id


class ModelRegistry:
    """Read-only catalog of known models, keyed by id."""

    def __init__(self, models: list[ModelInfo] | None = None) -> None:
        self._models: dict[str, ModelInfo] = {m.id: m for m in models or []}

    @classmethod
    def from_yaml(cls, path: Path) -> "ModelRegistry":
        """Load the catalog file. A missing file yields an empty registry."""
        if not path.exists():
            logger.warning("Model registry not found: %s", path)
            return cls()

        with path.open("r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}

        models: list[ModelInfo] = []
        for entry in raw.get("models", []):
            model_id = str(entry["id"])
            models.append(
                ModelInfo(
                    id=model_id,
                    name=str(entry.get("name", model_id)),
                    provider=derive_provider(model_id),
                    free=bool(entry.get("free", False)),
                    cost_tier=CostTier(entry.get("cost_tier", "moderate")),
                    strengths=tuple(str(s) for s in entry.get("strengths", [])),
                    best_for=str(entry.get("best_for", "")),
                    description=str(entry.get("description", "")),
                    api_model=entry.get("api_model"),
                )
            )
        logger.debug("Loaded %d models from %s", len(models), path)
        return cls(models)

    def all(self) -> list[ModelInfo]:
        return list(self._models.values())

    def lookup(self, model_id: str) -> ModelInfo | None:
        return self._models.get(model_id)

    def display_name(self, model_id: str) -> str:
        if derive_provider(model_id) is ProviderKind.LOCAL and model_id not in self._models:
            return f"{strip_provider_prefix(model_id)} (Local)"
        info = self._models.get(model_id)
        return info.name if info else model_id

    def strengths(self, model_id: str) -> list[str]:
        info = self._models.get(model_id)
        if info is None:
            return []
        return list(info.strengths[:MAX_SURFACED_STRENGTHS])

    def api_model(self, model_id: str) -> str:
        info = self._models.get(model_id)
        if info is not None and info.api_model:
            return info.api_model
        return strip_provider_prefix(model_id)
