"""Build the prior-round history each model sees in rounds after the first.

Two strategies:
    summarization: one extra model call condenses the curated responses into
        a single "System Summary" entry; falls back to truncation on failure.
    truncation: newest curated responses are kept greedily under a character
        budget and returned in chronological order.
"""

import logging

from config.config_loader import PromptsConfig
from deliberation.dispatcher import Dispatcher
from deliberation.models import (
    ChatMessage,
    DeliberationResponse,
    DispatchSuccess,
    HistoryEntry,
)
from deliberation.prompts import format_history

logger = logging.getLogger(__name__)

SUMMARY_MODEL_NAME = "System Summary"
SUMMARY_ROUND = "Previous"


def eligible_responses(
    responses: list[DeliberationResponse],
    selected_ids: list[str] | set[str],
    before_round: int,
) -> list[DeliberationResponse]:
    """Error-free responses from earlier rounds that the user kept selected."""
    selected = set(selected_ids)
    return [r for r in responses if r.round < before_round and not r.error and r.id in selected]


def truncate_history(responses: list[DeliberationResponse], budget: int) -> list[DeliberationResponse]:
    """Keep the newest responses whose cumulative text length stays under budget.

    Accumulation stops at the first response that would reach the budget.
    The kept list is returned in ascending round order.
    """
    newest_first = sorted(responses, key=lambda r: r.round, reverse=True)
    kept: list[DeliberationResponse] = []
    total = 0
    for response in newest_first:
        if total + len(response.text) >= budget:
            break
        kept.append(response)
        total += len(response.text)
    kept.sort(key=lambda r: r.round)
    return kept


def to_history(responses: list[DeliberationResponse]) -> list[HistoryEntry]:
    return [HistoryEntry(r.model_name, r.round, r.text, r.model_id) for r in responses]


def pick_summarizer(selected: list[str], dispatchable: list[str], hint: str) -> str | None:
    """First selected model whose id contains hint, else the first dispatchable model."""
    for model_id in selected:
        if hint and hint in model_id:
            return model_id
    return dispatchable[0] if dispatchable else None


async def summarize_history(
    eligible: list[DeliberationResponse],
    summarizer_id: str,
    dispatcher: Dispatcher,
    prompts: PromptsConfig,
) -> str | None:
    """Ask summarizer_id for a convergence/divergence summary. None on any failure."""
    summary_prompt = prompts.summary.format(history=format_history(to_history(eligible)))
    result = await dispatcher.dispatch(summarizer_id, [ChatMessage(role="user", content=summary_prompt)])
    if not isinstance(result, DispatchSuccess):
        logger.warning("Summarization via %s failed: %s", summarizer_id, result.message)
        return None
    if not result.text.strip():
        logger.warning("Summarization via %s returned empty text", summarizer_id)
        return None
    return result.text


async def build_history(
    round_number: int,
    responses: list[DeliberationResponse],
    selected_ids: list[str] | set[str],
    *,
    summarize: bool,
    summarizer_id: str | None,
    dispatcher: Dispatcher,
    prompts: PromptsConfig,
    budget: int,
) -> list[HistoryEntry]:
    """Return the history payload shared by every model in round_number."""
    if round_number <= 1:
        return []

    eligible = eligible_responses(responses, selected_ids, round_number)

    if summarize:
        if not eligible:
            logger.info("No prior responses selected, round %d runs without context", round_number)
            return []
        if summarizer_id is not None:
            summary = await summarize_history(eligible, summarizer_id, dispatcher, prompts)
            if summary is not None:
                logger.info("Round %d context summarized by %s", round_number, summarizer_id)
                return [HistoryEntry(SUMMARY_MODEL_NAME, SUMMARY_ROUND, summary)]
        logger.warning("Falling back to truncated history for round %d", round_number)

    kept = truncate_history(eligible, budget)
    if len(kept) < len(eligible):
        logger.info(
            "Round %d history truncated: kept %d/%d responses under %d chars",
            round_number,
            len(kept),
            len(eligible),
            budget,
        )
    return to_history(kept)
