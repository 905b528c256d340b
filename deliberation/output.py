"""Rich console output and markdown file save for deliberation sessions."""

import logging
import re
from datetime import datetime
from pathlib import Path

from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.text import Text

from deliberation.models import COST_TIER_ORDER, DeliberationResponse
from deliberation.registry import ModelRegistry
from deliberation.session import SessionState

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)


def _slug(text: str, max_len: int = 40) -> str:
    """Convert text to a filename-safe slug."""
    slug = re.sub(r"[^\w\s-]", "", text.lower())
    slug = re.sub(r"[\s_-]+", "-", slug).strip("-")
    return slug[:max_len] or "deliberation"


def _duration_label(response: DeliberationResponse) -> str:
    if response.duration_ms is None:
        return ""
    return f"{response.duration_ms / 1000:.1f}s"


def print_round(round_number: int, responses: list[DeliberationResponse]) -> None:
    """Print one panel per model: analysis and conclusion, or the error."""
    console.print(Rule(f"[bold cyan]Round {round_number}[/bold cyan]"))
    for resp in responses:
        if resp.error:
            console.print(
                Panel(
                    Text(resp.error, style="red"),
                    title=f"[bold]{resp.model_name}[/bold]",
                    subtitle=_duration_label(resp),
                    border_style="red",
                )
            )
            continue
        body = f"### Analysis\n{resp.analysis}\n\n### Final Conclusion\n{resp.conclusion}"
        console.print(
            Panel(
                Markdown(body),
                title=f"[bold]{resp.model_name}[/bold]",
                subtitle=_duration_label(resp),
                border_style="dim",
            )
        )


def print_synthesis(synthesis: str, judge_model_name: str) -> None:
    """Print the judge's verdict using Rich markdown."""
    console.print(Rule("[bold green]Final Synthesis[/bold green]"))
    console.print(Text(f"Judged by: {judge_model_name}", style="dim"))
    console.print(Markdown(synthesis))


def print_transcript(transcript: str) -> None:
    console.print(Rule("[bold green]Full Transcript[/bold green]"))
    console.print(Markdown(transcript))


def print_models(registry: ModelRegistry, active: list[str] | None = None) -> None:
    """Print the model catalog as a table, cheapest tier first."""
    table = Table(title="Available models")
    table.add_column("Id", style="cyan", no_wrap=True)
    table.add_column("Name")
    table.add_column("Provider")
    table.add_column("Cost")
    table.add_column("Strengths")
    if active is not None:
        table.add_column("Active", justify="center")

    models = sorted(registry.all(), key=lambda m: COST_TIER_ORDER.index(m.cost_tier))
    for info in models:
        cost = "free" if info.free else info.cost_tier.value
        row = [info.id, info.name, info.provider.value, cost, ", ".join(registry.strengths(info.id))]
        if active is not None:
            row.append("yes" if info.id in active else "")
        table.add_row(*row)
    console.print(table)


def render_markdown(state: SessionState) -> str:
    """Render a session (rounds, then synthesis or transcript) as markdown."""
    models = list(dict.fromkeys(r.model_name for r in state.responses))
    last_round = max((r.round for r in state.responses), default=0)

    lines: list[str] = [
        f"# LLM Deliberation: {state.prompt[:80]}",
        "",
        f"**Date:** {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}",
        f"**Models:** {', '.join(models) or 'none'}",
        f"**Rounds:** {last_round}",
        f"**Status:** {state.status.value}",
        "",
        "## Problem",
        "",
        state.prompt,
        "",
        "---",
        "",
    ]

    for round_number in range(1, last_round + 1):
        round_responses = [r for r in state.responses if r.round == round_number]
        if not round_responses:
            continue
        lines.append(f"## Round {round_number}")
        lines.append("")
        for resp in round_responses:
            lines.append(f"### {resp.model_name}")
            lines.append("")
            if resp.error:
                lines.append(f"> Error: {resp.error}")
            else:
                lines.append("#### Analysis")
                lines.append("")
                lines.append(resp.analysis)
                lines.append("")
                lines.append("#### Final Conclusion")
                lines.append("")
                lines.append(resp.conclusion)
            lines.append("")
            if resp.duration_ms is not None:
                lines.append(f"*Latency: {resp.duration_ms / 1000:.2f}s*")
                lines.append("")

    if state.synthesis_result:
        lines += ["## Final Synthesis", "", state.synthesis_result, ""]
    if state.full_transcript_result:
        lines += ["## Full Transcript", "", state.full_transcript_result, ""]

    return "\n".join(lines)


def save_to_file(state: SessionState, output_dir: Path, slug_override: str | None = None) -> Path:
    """Save the session as a markdown file.

    Args:
        state: The session to export.
        output_dir: Directory to save the file in.
        slug_override: If provided, use this as the filename stem instead of
            deriving one from the prompt. Used for --file questions.

    Returns:
        Path to the saved file.
    """
    output_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    slug = slug_override if slug_override is not None else _slug(state.prompt)
    filepath = output_dir / f"{timestamp}_{slug}.md"

    filepath.write_text(render_markdown(state), encoding="utf-8")
    logger.info("Deliberation saved to: %s", filepath)
    return filepath
