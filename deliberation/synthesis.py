"""Final synthesis: compile the curated transcript, call the judge model."""

import logging

from config.config_loader import PromptsConfig
from deliberation.dispatcher import Dispatcher, http_status
from deliberation.models import (
    ChatMessage,
    DeliberationResponse,
    DispatchFailure,
    DispatchResult,
    DispatchSuccess,
    ErrorKind,
)

logger = logging.getLogger(__name__)

EMPTY_TRANSCRIPT = "No responses selected."
_SEPARATOR = "\n\n---\n\n"


def selected_for_transcript(
    responses: list[DeliberationResponse],
    selected_ids: list[str] | set[str],
) -> list[DeliberationResponse]:
    """Error-free selected responses, sorted by round then model name."""
    selected = set(selected_ids)
    chosen = [r for r in responses if not r.error and r.id in selected]
    return sorted(chosen, key=lambda r: (r.round, r.model_name))


def format_transcript(responses: list[DeliberationResponse]) -> str:
    """Format responses into one markdown transcript, one block per response."""
    blocks = [
        f"## {r.model_name} — Round {r.round}\n\n"
        f"### Analysis\n{r.analysis}\n\n"
        f"### Final Conclusion\n{r.conclusion}"
        for r in responses
    ]
    return _SEPARATOR.join(blocks) or EMPTY_TRANSCRIPT


async def synthesize(
    prompt: str,
    transcript: str,
    judge_model_id: str,
    dispatcher: Dispatcher,
    prompts: PromptsConfig,
) -> DispatchResult:
    """Run the judge over a transcript.

    Returns the dispatch outcome; a successful call with empty text is
    reported as a failure since there is no verdict to show.
    """
    judge_prompt = prompts.judge.format(prompt=prompt, transcript=transcript)

    logger.info("Running synthesis via %s", judge_model_id)

    result = await dispatcher.dispatch(judge_model_id, [ChatMessage(role="user", content=judge_prompt)])

    if isinstance(result, DispatchSuccess) and not result.text.strip():
        return DispatchFailure(
            kind=ErrorKind.UPSTREAM,
            message=f"Judge {judge_model_id} returned empty content",
            duration_ms=result.duration_ms,
        )
    return result


async def handle_judge_request(body: dict, dispatcher: Dispatcher, prompts: PromptsConfig) -> tuple[int, dict]:
    """Serve the judge endpoint contract: {prompt, transcript, judgeModel} -> {text} | {error}."""
    prompt = body.get("prompt")
    transcript = body.get("transcript")
    judge_model_id = body.get("judgeModel")
    if not prompt or not transcript or not judge_model_id:
        return 400, {"error": "Missing required values: prompt, transcript and judgeModel"}

    result = await synthesize(str(prompt), str(transcript), str(judge_model_id), dispatcher, prompts)
    if isinstance(result, DispatchSuccess):
        return 200, {"text": result.text}
    return http_status(result), {"error": result.message}
