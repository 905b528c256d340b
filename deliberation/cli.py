"""Click CLI: config loading, session snapshots, round execution and output."""

import asyncio
import logging
import sys
from pathlib import Path

import click
from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn

from config.config_loader import AppConfig, load_config
from deliberation.dispatcher import Dispatcher
from deliberation.models import DeliberationResponse, DeliberationStatus, DispatchSuccess
from deliberation.orchestrator import Orchestrator
from deliberation.output import print_models, print_round, print_synthesis, print_transcript, save_to_file
from deliberation.question_file import parse_file
from deliberation.registry import ModelRegistry
from deliberation.session import SessionState, load_snapshot, new_session, save_snapshot

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )


def _build_dispatcher(config: AppConfig, registry: ModelRegistry) -> Dispatcher:
    return Dispatcher(config, registry)


def _build_orchestrator(config: AppConfig, state: SessionState | None = None) -> Orchestrator:
    registry = ModelRegistry.from_yaml(config.defaults.registry_file)
    return Orchestrator(config, registry, _build_dispatcher(config, registry), state=state)


def _state_path(config: AppConfig, state_file: str | None) -> Path:
    return Path(state_file) if state_file else config.defaults.state_file


def _resolve_judge(config: AppConfig, judge: str | None) -> str | None:
    """`--judge` without a value means the configured default judge."""
    if judge is None:
        return None
    return judge or config.defaults.default_judge


def _load_or_exit(path: Path) -> SessionState:
    try:
        state = load_snapshot(path)
    except (ValueError, TypeError) as e:
        console.print(f"[bold red]Error:[/bold red] Could not read session snapshot at {path}: {e}")
        sys.exit(1)
    if state is None:
        console.print(f"[bold red]Error:[/bold red] No saved session at {path}. Start one with `run`.")
        sys.exit(1)
    return state


def _progress() -> Progress:
    return Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        TimeElapsedColumn(),
        console=console,
        transient=True,
    )


async def _run_one_round(
    orch: Orchestrator,
    first: bool,
    draft_system_prompt: str | None = None,
) -> list[DeliberationResponse] | None:
    """Start and run a round. Returns None when the round could not start."""
    started = (
        orch.start_deliberation(draft_system_prompt)
        if first
        else orch.start_next_round(draft_system_prompt)
    )
    if not started:
        return None
    if orch.state.status is DeliberationStatus.COMPLETED:
        return []

    with _progress() as progress:
        progress.add_task(
            f"Round {orch.state.round}: waiting on {len(orch.state.round_models)} models...", total=None
        )
        return await orch.run_round()


async def _run_rounds(
    orch: Orchestrator,
    rounds: int,
    first: bool,
    draft_system_prompt: str | None = None,
) -> bool:
    """Run `rounds` rounds, printing each. Returns False if a round could not start."""
    for i in range(rounds):
        responses = await _run_one_round(orch, first and i == 0, draft_system_prompt)
        if responses is None:
            return False
        if orch.state.status is DeliberationStatus.COMPLETED:
            console.print("[yellow]No active models left, deliberation completed.[/yellow]")
            break
        print_round(orch.state.round, responses)
    return True


async def _finalize(orch: Orchestrator, judge: str | None, transcript: bool) -> bool:
    """Judge and/or transcript finalization. Returns False when the judge failed."""
    ok = True
    if judge:
        with _progress() as progress:
            progress.add_task(f"Judging with {judge}...", total=None)
            result = await orch.request_judge_synthesis(judge)
        if result is None:
            console.print("[yellow]No responses selected, skipping judge synthesis.[/yellow]")
        elif isinstance(result, DispatchSuccess):
            print_synthesis(result.text, orch.registry.display_name(judge))
        else:
            console.print(f"[bold red]Judge failed:[/bold red] {orch.state.alert}")
            ok = False
    if transcript:
        print_transcript(orch.end_with_full_transcript())
    return ok


def _save(orch: Orchestrator, state_path: Path, output_dir: Path | None, slug: str | None = None) -> None:
    save_snapshot(orch.state, state_path)
    console.print(f"[dim]Session saved to: {state_path}[/dim]")
    if output_dir is not None:
        saved = save_to_file(orch.state, output_dir, slug_override=slug)
        console.print(f"[dim]Saved to: {saved}[/dim]")


@click.group()
@click.option("--verbose", is_flag=True, help="Enable DEBUG-level logging")
@click.option("--settings", "settings_path", type=click.Path(exists=True, dir_okay=False), default=None,
              help="Alternate settings.yaml")
@click.pass_context
def main(ctx: click.Context, verbose: bool, settings_path: str | None) -> None:
    """LLM Deliberation -- iterative multi-model deliberation with a judge.

    \b
    Examples:
      llm-deliberation run "Should we shard the orders table?" --rounds 2
      llm-deliberation run --file question.md --judge gemini-3-pro-preview-high
      llm-deliberation next --drop openrouter/upstage/solar-pro-3:free --note "Focus on cost"
      llm-deliberation finalize --judge
      llm-deliberation models
    """
    # Model responses may contain characters the Windows console codepage cannot encode
    if sys.platform == "win32":
        if hasattr(sys.stdout, "reconfigure"):
            sys.stdout.reconfigure(encoding="utf-8", errors="replace")
        if hasattr(sys.stderr, "reconfigure"):
            sys.stderr.reconfigure(encoding="utf-8", errors="replace")

    load_dotenv()
    _setup_logging(verbose)

    try:
        config = load_config(Path(settings_path)) if settings_path else load_config()
    except FileNotFoundError as exc:
        console.print(f"[bold red]Config error:[/bold red] {exc}")
        sys.exit(1)

    ctx.obj = config


@main.command()
@click.argument("prompt", required=False)
@click.option("--file", "question_file", type=click.Path(exists=True, dir_okay=False),
              help="Read the problem from a .md file (frontmatter: models, rounds, summarize, judge, system_prompt)")
@click.option("--models", default=None, help="Comma-separated model ids, overrides the default selection")
@click.option("--rounds", default=None, type=click.IntRange(min=1), help="Rounds to run (default: 1)")
@click.option("--summarize/--truncate", "summarize", default=None,
              help="Summarize prior rounds with a model call, or truncate them")
@click.option("--system-prompt", default=None, help="Replace the default system prompt")
@click.option("--judge", default=None, is_flag=False, flag_value="",
              help="Finish with a judge synthesis (no value: configured default judge)")
@click.option("--transcript", is_flag=True, help="Finish with the full transcript of selected responses")
@click.option("--state-file", default=None, help="Session snapshot path (default: from config)")
@click.option("--output", "output_path", default=None, help="Output directory (default: from config)")
@click.pass_obj
def run(
    config: AppConfig,
    prompt: str | None,
    question_file: str | None,
    models: str | None,
    rounds: int | None,
    summarize: bool | None,
    system_prompt: str | None,
    judge: str | None,
    transcript: bool,
    state_file: str | None,
    output_path: str | None,
) -> None:
    """Start a new deliberation and run its first round(s).

    Precedence for settings: CLI flag > file frontmatter > config default.
    """
    meta: dict = {}
    slug = None
    if question_file:
        prompt, meta = parse_file(Path(question_file))
        slug = Path(question_file).stem
    if not prompt:
        console.print("[bold red]Error:[/bold red] Provide a PROMPT argument or --file.")
        sys.exit(1)

    orch = _build_orchestrator(config, new_session(config))
    orch.set_prompt(prompt)

    effective_models = (
        [m.strip() for m in models.split(",") if m.strip()] if models is not None
        else meta.get("models")
    )
    if effective_models:
        orch.select_models(effective_models)
    effective_summarize = summarize if summarize is not None else meta.get("summarize")
    if effective_summarize is not None:
        orch.set_summarization_enabled(effective_summarize)
    effective_system = system_prompt or meta.get("system_prompt")
    if effective_system:
        orch.set_system_prompt(effective_system)
    effective_rounds = rounds if rounds is not None else int(meta.get("rounds", 1))
    effective_judge = _resolve_judge(config, judge if judge is not None else meta.get("judge"))

    if not orch.dispatchable_models():
        console.print("[bold red]Error:[/bold red] No models selected. Use --models or set default_selected.")
        sys.exit(1)

    selected = orch.state.selected_models
    console.print(
        f"\n[bold cyan]LLM Deliberation[/bold cyan] — {len(selected)} models, {effective_rounds} rounds"
    )
    console.print(f"Models: {', '.join(orch.registry.display_name(m) for m in selected)}")
    console.print(f"Problem: [italic]{prompt[:80]}{'...' if len(prompt) > 80 else ''}[/italic]\n")

    async def _session() -> bool:
        if not await _run_rounds(orch, effective_rounds, first=True):
            console.print("[bold red]Error:[/bold red] Could not start the deliberation.")
            return False
        return await _finalize(orch, effective_judge, transcript)

    ok = asyncio.run(_session())

    output_dir = Path(output_path) if output_path else config.defaults.output_dir
    _save(orch, _state_path(config, state_file), output_dir, slug)
    if not ok:
        sys.exit(1)


@main.command(name="next")
@click.option("--drop", multiple=True, help="Deselect a model before this round (repeatable)")
@click.option("--note", default=None, help="Moderator note appended to every model's prompt this round")
@click.option("--summarize/--truncate", "summarize", default=None,
              help="Summarize prior rounds with a model call, or truncate them")
@click.option("--system-prompt", default=None, help="System prompt for this round only")
@click.option("--state-file", default=None, help="Session snapshot path (default: from config)")
@click.pass_obj
def next_round(
    config: AppConfig,
    drop: tuple[str, ...],
    note: str | None,
    summarize: bool | None,
    system_prompt: str | None,
    state_file: str | None,
) -> None:
    """Resume the saved session and run one more round."""
    path = _state_path(config, state_file)
    orch = _build_orchestrator(config, _load_or_exit(path))

    for model_id in drop:
        if model_id in orch.state.selected_models:
            orch.toggle_model(model_id)
        else:
            logger.warning("Model not selected, nothing to drop: %s", model_id)
    if note:
        orch.set_round_prompt(note)
    if summarize is not None:
        orch.set_summarization_enabled(summarize)

    ok = asyncio.run(_run_rounds(orch, 1, first=False, draft_system_prompt=system_prompt))
    save_snapshot(orch.state, path)
    if not ok:
        console.print("[bold red]Error:[/bold red] Could not start the next round.")
        sys.exit(1)


@main.command()
@click.option("--judge", default=None, is_flag=False, flag_value="",
              help="Judge model id (no value: configured default judge)")
@click.option("--transcript", is_flag=True, help="Produce the full transcript of selected responses")
@click.option("--state-file", default=None, help="Session snapshot path (default: from config)")
@click.option("--output", "output_path", default=None, help="Output directory (default: from config)")
@click.pass_obj
def finalize(
    config: AppConfig,
    judge: str | None,
    transcript: bool,
    state_file: str | None,
    output_path: str | None,
) -> None:
    """End the saved session with a judge synthesis, a transcript, or neither."""
    path = _state_path(config, state_file)
    orch = _build_orchestrator(config, _load_or_exit(path))

    effective_judge = _resolve_judge(config, judge)
    if effective_judge or transcript:
        ok = asyncio.run(_finalize(orch, effective_judge, transcript))
    else:
        orch.end_deliberation()
        ok = True

    output_dir = Path(output_path) if output_path else config.defaults.output_dir
    _save(orch, path, output_dir)
    if not ok:
        sys.exit(1)


@main.command(name="models")
@click.pass_obj
def list_models(config: AppConfig) -> None:
    """List the model catalog."""
    registry = ModelRegistry.from_yaml(config.defaults.registry_file)
    print_models(registry, active=config.defaults.default_active)
    console.print(f"[dim]Providers with credentials: {', '.join(sorted(config.available_providers)) or 'none'}[/dim]")


if __name__ == "__main__":
    main()
