"""Round orchestration: session transitions, parallel model calls, finalization."""

import asyncio
import logging
import time

from config.config_loader import AppConfig
from deliberation.context import build_history, eligible_responses, pick_summarizer, to_history
from deliberation.dispatcher import Dispatcher
from deliberation.models import (
    ColumnStatus,
    DeliberationRequest,
    DeliberationResponse,
    DeliberationStatus,
    DispatchResult,
    DispatchSuccess,
    HistoryEntry,
)
from deliberation.parser import parse_response
from deliberation.registry import ModelRegistry
from deliberation.session import SessionState, new_session
from deliberation.synthesis import format_transcript, selected_for_transcript, synthesize

logger = logging.getLogger(__name__)


def _response_id(round_number: int, model_id: str) -> str:
    return f"{round_number}-{model_id}-{int(time.time() * 1000)}"


class Orchestrator:
    """Single writer of a SessionState.

    Every mutation goes through a method here. Each started run gets a token;
    model calls that settle after the token changed (reset or a newer run)
    are discarded instead of being written into the new session.
    """

    def __init__(
        self,
        config: AppConfig,
        registry: ModelRegistry,
        dispatcher: Dispatcher,
        state: SessionState | None = None,
    ) -> None:
        self._config = config
        self._registry = registry
        self._dispatcher = dispatcher
        self.state = state if state is not None else new_session(config)
        self._run_token = 0

    @property
    def registry(self) -> ModelRegistry:
        return self._registry

    # --- inputs and selection -------------------------------------------

    def set_prompt(self, prompt: str) -> None:
        self.state.prompt = prompt

    def set_system_prompt(self, system_prompt: str) -> None:
        self.state.system_prompt = system_prompt

    def set_round_prompt(self, round_prompt: str) -> None:
        self.state.round_prompt = round_prompt

    def set_summarization_enabled(self, enabled: bool) -> None:
        self.state.summarization_enabled = enabled

    def toggle_model(self, model_id: str) -> None:
        selected = self.state.selected_models
        if model_id in selected:
            selected.remove(model_id)
        else:
            selected.append(model_id)

    def toggle_active_model(self, model_id: str) -> None:
        """Enable or disable a model; disabling also drops it from the selection."""
        active = self.state.active_models
        if model_id in active:
            active.remove(model_id)
            if model_id in self.state.selected_models:
                self.state.selected_models.remove(model_id)
        else:
            active.append(model_id)

    def select_models(self, model_ids: list[str]) -> None:
        """Replace the selection, enabling any model not yet active."""
        for model_id in model_ids:
            if model_id not in self.state.active_models:
                self.state.active_models.append(model_id)
        self.state.selected_models = list(dict.fromkeys(model_ids))

    def toggle_response_selection(self, response_id: str) -> None:
        ids = self.state.selected_response_ids
        if response_id in ids:
            ids.remove(response_id)
        else:
            ids.append(response_id)

    def select_all_responses(self) -> None:
        self.state.selected_response_ids = [r.id for r in self.state.responses if not r.error]

    def clear_response_selection(self) -> None:
        self.state.selected_response_ids = []

    def dispatchable_models(self) -> list[str]:
        """Selected models that are also enabled, in selection order."""
        active = set(self.state.active_models)
        return [m for m in self.state.selected_models if m in active]

    # --- round lifecycle ------------------------------------------------

    def _begin_run(self, draft_system_prompt: str | None) -> None:
        state = self.state
        self._run_token += 1
        state.status = DeliberationStatus.DELIBERATING
        state.round_models = self.dispatchable_models()
        state.column_status = {m: ColumnStatus.LOADING for m in state.round_models}
        state.active_system_prompt = draft_system_prompt or state.system_prompt
        state.alert = None

    def start_deliberation(self, draft_system_prompt: str | None = None) -> bool:
        """Start round 1. Returns False (state untouched) without a prompt or models."""
        state = self.state
        if state.status is DeliberationStatus.DELIBERATING:
            logger.warning("A round is already in progress")
            return False
        if not state.prompt.strip() or not state.selected_models:
            logger.warning("Cannot start: a prompt and at least one selected model are required")
            return False

        state.round = 1
        state.responses = []
        state.selected_response_ids = []
        state.synthesis_result = None
        state.full_transcript_result = None
        state.round_prompt = ""
        state.round_note = None
        self._begin_run(draft_system_prompt)
        return True

    def start_next_round(self, draft_system_prompt: str | None = None) -> bool:
        """Advance to the next round. The pending round prompt becomes this round's note.

        With no selected and enabled model left the session completes instead;
        that still counts as accepted, so check `state.status` afterwards.
        """
        state = self.state
        if state.status is DeliberationStatus.DELIBERATING:
            logger.warning("A round is already in progress")
            return False
        if not state.prompt.strip():
            logger.warning("Cannot start next round without a prompt")
            return False
        if not self.dispatchable_models():
            logger.info("No active models left after round %d, deliberation completed", state.round)
            state.status = DeliberationStatus.COMPLETED
            state.column_status = {}
            state.round_models = []
            return True

        state.round += 1
        state.round_note = state.round_prompt.strip() or None
        state.round_prompt = ""
        self._begin_run(draft_system_prompt)
        return True

    async def run_round(self) -> list[DeliberationResponse]:
        """Execute the round that start_deliberation/start_next_round opened.

        Returns the responses recorded by this call (empty when the run was
        superseded or nothing was dispatched).
        """
        state = self.state
        if state.status is not DeliberationStatus.DELIBERATING:
            logger.warning("run_round called while %s", state.status.value)
            return []

        token = self._run_token
        round_number = state.round
        models = list(state.round_models)

        if not models:
            # Only reachable in round 1, when every selected model is disabled
            logger.warning("Round %d has no enabled models to dispatch", round_number)
            state.status = DeliberationStatus.IDLE
            state.column_status = {}
            return []

        summarizer_id = None
        if state.summarization_enabled:
            summarizer_id = pick_summarizer(state.selected_models, models, self._config.defaults.summarizer_hint)

        history = await build_history(
            round_number,
            state.responses,
            state.selected_response_ids,
            summarize=state.summarization_enabled,
            summarizer_id=summarizer_id,
            dispatcher=self._dispatcher,
            prompts=self._config.prompts,
            budget=self._config.defaults.truncation_budget_chars,
        )
        if token != self._run_token:
            logger.warning("Round %d superseded while building context", round_number)
            return []

        requests = [
            DeliberationRequest(
                prompt=state.prompt,
                round=round_number,
                model_id=model_id,
                previous_responses=list(history),
                system_prompt=state.active_system_prompt,
                round_note=state.round_note,
            )
            for model_id in models
        ]

        logger.info("Starting round %d with %d models", round_number, len(models))

        results = await asyncio.gather(*(self._run_model(token, req) for req in requests))

        if token != self._run_token:
            return []

        recorded = [r for r in results if r is not None]
        succeeded = sum(1 for r in recorded if not r.error)
        logger.info(
            "Round %d complete: %d/%d models succeeded",
            round_number,
            succeeded,
            len(models),
        )
        state.status = DeliberationStatus.IDLE
        return recorded

    async def _run_model(self, token: int, request: DeliberationRequest) -> DeliberationResponse | None:
        """Dispatch one model and record its outcome. Never raises."""
        self.state.column_status[request.model_id] = ColumnStatus.LOADING
        result = await self._dispatcher.deliberate(request)

        if token != self._run_token:
            logger.warning(
                "Discarding stale response from %s for round %d",
                request.model_id,
                request.round,
            )
            return None

        response = self._to_response(request.round, request.model_id, result)
        self.state.column_status[request.model_id] = (
            ColumnStatus.ERROR if response.error else ColumnStatus.SUCCESS
        )
        self._add_response(response)
        return response

    def _to_response(self, round_number: int, model_id: str, result: DispatchResult) -> DeliberationResponse:
        model_name = self._registry.display_name(model_id)
        if isinstance(result, DispatchSuccess):
            parsed = parse_response(result.text)
            return DeliberationResponse(
                id=_response_id(round_number, model_id),
                round=round_number,
                model_id=model_id,
                model_name=model_name,
                text=result.text,
                analysis=parsed.analysis,
                conclusion=parsed.conclusion,
                duration_ms=result.duration_ms,
            )
        return DeliberationResponse(
            id=_response_id(round_number, model_id),
            round=round_number,
            model_id=model_id,
            model_name=model_name,
            text="",
            analysis="",
            conclusion="",
            error=result.message or result.kind.value,
            duration_ms=result.duration_ms,
        )

    def _add_response(self, response: DeliberationResponse) -> None:
        self.state.responses.append(response)
        self.state.selected_response_ids.append(response.id)

    async def deliberate(self, draft_system_prompt: str | None = None) -> list[DeliberationResponse]:
        """Start round 1 and run it."""
        if not self.start_deliberation(draft_system_prompt):
            return []
        return await self.run_round()

    async def next_round(self, draft_system_prompt: str | None = None) -> list[DeliberationResponse]:
        """Start the next round and run it."""
        if not self.start_next_round(draft_system_prompt):
            return []
        if self.state.status is DeliberationStatus.COMPLETED:
            return []
        return await self.run_round()

    # --- finalization ---------------------------------------------------

    def end_deliberation(self, synthesis_result: str | None = None) -> None:
        self.state.status = DeliberationStatus.COMPLETED
        self.state.synthesis_result = synthesis_result
        self.state.column_status = {}

    def end_with_full_transcript(self) -> str:
        """Complete the session with a raw transcript of the selected responses. No model call."""
        chosen = selected_for_transcript(self.state.responses, self.state.selected_response_ids)
        transcript = format_transcript(chosen)
        self.state.status = DeliberationStatus.COMPLETED
        self.state.full_transcript_result = transcript
        self.state.column_status = {}
        return transcript

    async def request_judge_synthesis(self, judge_model_id: str) -> DispatchResult | None:
        """Ask a judge model for a final verdict over the selected responses.

        On failure the session keeps its status and the message is stored in
        state.alert. Returns None when no responses are selected.
        """
        state = self.state
        if not state.selected_response_ids:
            logger.warning("Judge synthesis skipped: no responses selected")
            return None

        token = self._run_token
        state.is_judging = True
        transcript = format_transcript(selected_for_transcript(state.responses, state.selected_response_ids))

        result = await synthesize(state.prompt, transcript, judge_model_id, self._dispatcher, self._config.prompts)

        if token != self._run_token:
            return None

        state.is_judging = False
        if isinstance(result, DispatchSuccess):
            state.synthesis_result = result.text
            state.status = DeliberationStatus.COMPLETED
            state.column_status = {}
            state.alert = None
        else:
            logger.warning("Judge synthesis via %s failed: %s", judge_model_id, result.message)
            state.alert = result.message
        return result

    def clear_synthesis(self) -> None:
        self.state.synthesis_result = None
        self.state.status = DeliberationStatus.IDLE

    def clear_full_transcript(self) -> None:
        self.state.full_transcript_result = None
        self.state.status = DeliberationStatus.IDLE

    def reset(self) -> None:
        """Start a fresh session. In-flight calls from the old one are discarded on arrival.

        The saved system prompt, enabled models and summarization toggle carry over.
        """
        previous = self.state
        self._run_token += 1
        fresh = new_session(self._config, system_prompt=previous.system_prompt)
        fresh.active_models = list(previous.active_models)
        fresh.selected_models = [m for m in fresh.selected_models if m in fresh.active_models]
        fresh.summarization_enabled = previous.summarization_enabled
        self.state = fresh
        logger.info("Session reset")

    def history_preview(self) -> list[HistoryEntry]:
        """Responses that would feed the next round's context, before compaction."""
        eligible = eligible_responses(self.state.responses, self.state.selected_response_ids, self.state.round + 1)
        return to_history(eligible)
