"""Classify non-2xx upstream responses into ErrorKind values."""

import json

from deliberation.models import ErrorKind

_AUTH_MARKERS = ("invalid_api_key", "invalid api key", "api key not valid", "incorrect api key")
_CREDIT_MARKERS = ("insufficient_quota", "payment required", "credits", "can only afford")
_UPSTREAM_RATE_LIMIT_MARKERS = ("rate-limited upstream",)
_QUOTA_MARKERS = ("quota", "resource_exhausted")
_OVERLOAD_MARKERS = ("unavailable", "overloaded")


def extract_error_message(body_text: str) -> str:
    """Pull a human-readable message out of a JSON error envelope.

    Looks at error.metadata.raw, error.message, detail and message in that
    order; falls back to the raw body when it is not JSON.
    """
    try:
        data = json.loads(body_text)
    except (ValueError, TypeError):
        return body_text

    if not isinstance(data, dict):
        return body_text

    error = data.get("error")
    if isinstance(error, dict):
        metadata = error.get("metadata")
        if isinstance(metadata, dict) and metadata.get("raw"):
            return str(metadata["raw"])
        if error.get("message"):
            return str(error["message"])
    elif isinstance(error, str) and error:
        return error

    for key in ("detail", "message"):
        if data.get(key):
            return str(data[key])
    return body_text


def classify_error(provider_label: str, status_code: int | None, body_text: str) -> tuple[ErrorKind, str]:
    """Map an HTTP status and response body to (ErrorKind, user-facing message)."""
    body_text = body_text or ""
    lowered = body_text.lower()

    if status_code == 401 or any(m in lowered for m in _AUTH_MARKERS):
        return ErrorKind.AUTH_INVALID, f"{provider_label} API key is invalid."

    if status_code == 402 or any(m in lowered for m in _CREDIT_MARKERS):
        return (
            ErrorKind.INSUFFICIENT_CREDITS,
            f"Insufficient credits or token allowance on {provider_label} for this model.",
        )

    if any(m in lowered for m in _UPSTREAM_RATE_LIMIT_MARKERS):
        return (
            ErrorKind.UPSTREAM_RATE_LIMITED,
            "Free option temporarily exhausted: this model hit the host's global request limit. "
            "Wait a few seconds or try another model.",
        )

    if status_code == 429 or any(m in lowered for m in _QUOTA_MARKERS):
        return (
            ErrorKind.QUOTA_EXCEEDED,
            f"{provider_label} request quota exceeded. Wait a few minutes or add billing credits.",
        )

    if status_code == 503 or any(m in lowered for m in _OVERLOAD_MARKERS):
        return ErrorKind.SERVER_OVERLOADED, f"{provider_label} is overloaded right now. Try again shortly."

    status = f" ({status_code})" if status_code is not None else ""
    return ErrorKind.UPSTREAM, f"{provider_label} error{status}: {extract_error_message(body_text)}"
