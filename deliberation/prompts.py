"""Assemble the per-model message list for a deliberation request."""

from config.config_loader import DefaultsConfig, PromptsConfig
from deliberation.models import ChatMessage, DeliberationRequest, HistoryEntry, ProviderKind
from deliberation.registry import ModelRegistry, derive_provider

_NONE = "None"


def format_history(entries: list[HistoryEntry]) -> str:
    """Render history entries as "[name - Round N]:" blocks separated by blank lines."""
    return "\n\n".join(f"[{e.model_name} - Round {e.round}]:\n{e.text}" for e in entries)


def truncate_for_local(text: str, limit: int, notice: str) -> str:
    """Keep the last `limit` characters of text, prefixed with a truncation notice."""
    if len(text) <= limit:
        return text
    return f"{notice}\n\n{text[-limit:]}"


def build_system_prompt(
    model_id: str,
    system_prompt: str | None,
    registry: ModelRegistry,
    prompts: PromptsConfig,
) -> str:
    base = system_prompt or prompts.system
    strengths = registry.strengths(model_id)
    if strengths:
        base += prompts.persona.format(strengths=", ".join(strengths))
    return base


def _own_position(entries: list[HistoryEntry], model_id: str) -> str | None:
    own = [e for e in entries if e.model_id == model_id]
    return own[-1].text if own else None


def build_messages(
    request: DeliberationRequest,
    registry: ModelRegistry,
    prompts: PromptsConfig,
    defaults: DefaultsConfig,
) -> list[ChatMessage]:
    """Build [system, user] messages for one model in one round.

    Round 1 sends the raw prompt. Later rounds embed the original problem and
    prior perspectives; local models get the history cut to its tail since
    their context window is much smaller than the hosted providers'.
    """
    system = build_system_prompt(request.model_id, request.system_prompt, registry, prompts)
    messages = [ChatMessage(role="system", content=system)]

    if request.round == 1:
        messages.append(ChatMessage(role="user", content=request.prompt))
        return messages

    history = request.previous_responses
    if derive_provider(request.model_id) is ProviderKind.LOCAL:
        history_text = truncate_for_local(
            format_history(history),
            defaults.local_history_chars,
            prompts.truncation_notice,
        )
        user = prompts.local_contextual.format(prompt=request.prompt, history=history_text)
    else:
        peers = [e for e in history if e.model_id != request.model_id]
        user = prompts.contextual.format(
            prompt=request.prompt,
            own_position=_own_position(history, request.model_id) or _NONE,
            peer_perspectives=format_history(peers) or _NONE,
        )

    if request.round_note:
        user += prompts.round_note.format(note=request.round_note)

    messages.append(ChatMessage(role="user", content=user))
    return messages
