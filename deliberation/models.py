"""Pure dataclasses and enums for the deliberation pipeline. No logic, no deps."""

from dataclasses import dataclass, field
from enum import Enum


class ProviderKind(str, Enum):
    OPENAI = "openai"
    PERPLEXITY = "perplexity"
    OPENROUTER = "openrouter"
    LOCAL = "local"
    GEMINI = "gemini"
    UNKNOWN = "unknown"


class ErrorKind(str, Enum):
    CONFIGURATION = "ConfigurationError"
    TIMEOUT = "Timeout"
    AUTH_INVALID = "AuthInvalid"
    QUOTA_EXCEEDED = "QuotaExceeded"
    SERVER_OVERLOADED = "ServerOverloaded"
    INSUFFICIENT_CREDITS = "InsufficientCredits"
    UPSTREAM_RATE_LIMITED = "UpstreamRateLimited"
    UPSTREAM = "UpstreamError"
    PARSE_FALLBACK = "ParseFallback"   # parser placeholders only, never a dispatch failure


class DeliberationStatus(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    DELIBERATING = "deliberating"
    COMPLETED = "completed"


class ColumnStatus(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    SUCCESS = "success"
    ERROR = "error"


class CostTier(str, Enum):
    FREE = "free"
    CHEAP = "cheap"
    MODERATE = "moderate"
    EXPENSIVE = "expensive"


# Ascending price order
COST_TIER_ORDER: list[CostTier] = [CostTier.FREE, CostTier.CHEAP, CostTier.MODERATE, CostTier.EXPENSIVE]


@dataclass(frozen=True)
class ModelInfo:
    id: str
    name: str
    provider: ProviderKind
    free: bool
    cost_tier: CostTier
    strengths: tuple[str, ...] = ()
    best_for: str = ""
    description: str = ""
    api_model: str | None = None


@dataclass(frozen=True)
class DeliberationResponse:
    id: str                     # "{round}-{model_id}-{epoch_ms}"
    round: int
    model_id: str
    model_name: str
    text: str
    analysis: str
    conclusion: str
    error: str | None = None
    duration_ms: int | None = None


@dataclass(frozen=True)
class HistoryEntry:
    model_name: str
    round: int | str            # "Previous" for the synthetic summary entry
    text: str
    model_id: str | None = None


@dataclass(frozen=True)
class ChatMessage:
    role: str                   # "system" or "user"
    content: str


@dataclass
class DeliberationRequest:
    prompt: str
    round: int
    model_id: str
    previous_responses: list[HistoryEntry] = field(default_factory=list)
    system_prompt: str | None = None
    round_note: str | None = None


@dataclass(frozen=True)
class DispatchSuccess:
    text: str
    duration_ms: int = 0


@dataclass(frozen=True)
class DispatchFailure:
    kind: ErrorKind
    message: str
    duration_ms: int = 0


DispatchResult = DispatchSuccess | DispatchFailure
