"""Session state owned by the orchestrator, plus JSON snapshot save/load."""

import json
import logging
from dataclasses import asdict, dataclass, field
from pathlib import Path

from config.config_loader import AppConfig
from deliberation.models import ColumnStatus, DeliberationResponse, DeliberationStatus

logger = logging.getLogger(__name__)

# Statuses that only make sense while a process is awaiting model calls
_IN_FLIGHT = (DeliberationStatus.DELIBERATING, DeliberationStatus.LOADING)


@dataclass
class SessionState:
    prompt: str = ""
    system_prompt: str = ""                 # persisted default
    active_system_prompt: str = ""          # snapshot used by the current run
    round_prompt: str = ""                  # draft moderator note for the next round
    round_note: str | None = None           # note captured for the current round
    round: int = 1
    responses: list[DeliberationResponse] = field(default_factory=list)
    selected_models: list[str] = field(default_factory=list)
    active_models: list[str] = field(default_factory=list)
    status: DeliberationStatus = DeliberationStatus.IDLE
    column_status: dict[str, ColumnStatus] = field(default_factory=dict)
    round_models: list[str] = field(default_factory=list)   # captured when the round started
    summarization_enabled: bool = False
    selected_response_ids: list[str] = field(default_factory=list)
    synthesis_result: str | None = None
    full_transcript_result: str | None = None
    is_judging: bool = False
    alert: str | None = None                # session-level message (judge failures)


def new_session(config: AppConfig, system_prompt: str | None = None) -> SessionState:
    """Fresh state seeded from configuration defaults."""
    system = system_prompt or config.prompts.system
    active = list(config.defaults.default_active)
    selected = [m for m in config.defaults.default_selected if m in active]
    return SessionState(
        system_prompt=system,
        active_system_prompt=system,
        selected_models=selected,
        active_models=active,
    )


def state_to_dict(state: SessionState) -> dict:
    data = asdict(state)
    data["status"] = state.status.value
    data["column_status"] = {k: v.value for k, v in state.column_status.items()}
    return data


def state_from_dict(data: dict) -> SessionState:
    known = set(SessionState.__dataclass_fields__)
    kwargs = {k: v for k, v in data.items() if k in known}
    kwargs["responses"] = [DeliberationResponse(**r) for r in data.get("responses", [])]
    kwargs["status"] = DeliberationStatus(data.get("status", DeliberationStatus.IDLE.value))
    kwargs["column_status"] = {k: ColumnStatus(v) for k, v in (data.get("column_status") or {}).items()}
    return SessionState(**kwargs)


def normalize_on_load(state: SessionState) -> SessionState:
    """Reset a status caught mid-flight back to idle.

    A restored session never resumes a deliberation; per-model column
    statuses are cleared and no responses are added or removed.
    """
    if state.status in _IN_FLIGHT:
        logger.info("Restored session was %s, resetting to idle", state.status.value)
        state.status = DeliberationStatus.IDLE
        state.column_status = {}
        state.round_models = []
    state.is_judging = False
    return state


def save_snapshot(state: SessionState, path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(state_to_dict(state), indent=2, ensure_ascii=False), encoding="utf-8")
    logger.debug("Session snapshot saved to %s", path)
    return path


def load_snapshot(path: Path) -> SessionState | None:
    """Load and normalize a snapshot. Returns None when the file does not exist.

    A corrupt file raises ValueError (bad JSON or enum values) or TypeError
    (response records with missing or unknown fields).
    """
    if not path.exists():
        return None
    data = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError(f"expected a JSON object, got {type(data).__name__}")
    return normalize_on_load(state_from_dict(data))
