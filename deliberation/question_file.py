"""Markdown question files with optional YAML frontmatter."""

from pathlib import Path

import frontmatter


def _as_model_list(value) -> list[str]:
    if isinstance(value, str):
        return [m.strip() for m in value.split(",") if m.strip()]
    return [str(m).strip() for m in value if str(m).strip()]


def parse_file(file_path: Path) -> tuple[str, dict]:
    """Parse a markdown question file.

    Returns:
        (prompt, metadata) where prompt is the body text and metadata holds
        only the recognised keys: models (list[str]), rounds (int),
        summarize (bool), judge (str), system_prompt (str).
        If no frontmatter, metadata is {}.
    """
    post = frontmatter.load(str(file_path))
    prompt = post.content.strip()
    raw = dict(post.metadata)

    metadata: dict = {}
    if raw.get("models"):
        metadata["models"] = _as_model_list(raw["models"])
    if raw.get("rounds") is not None:
        metadata["rounds"] = int(raw["rounds"])
    if "summarize" in raw:
        metadata["summarize"] = bool(raw["summarize"])
    if raw.get("judge"):
        metadata["judge"] = str(raw["judge"])
    if raw.get("system_prompt"):
        metadata["system_prompt"] = str(raw["system_prompt"])
    return prompt, metadata
