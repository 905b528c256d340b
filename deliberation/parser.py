"""Split a raw model completion into its Analysis and Conclusion sections."""

import logging
import re
from dataclasses import dataclass

logger = logging.getLogger(__name__)

ANALYSIS_PLACEHOLDER = "Analysis not returned in structured form."
CONCLUSION_PLACEHOLDER = "Conclusion not stated by the model."

_EMPHASIS = r"(?:\*{1,2}|_{1,2})?"

# Heading at the start of the text or of a line, with optional markdown
# heading/emphasis markers, e.g. "## Conclusão Final", "**Conclusion:**".
_CONCLUSION_HEADING = re.compile(
    r"(?:\n|^)\s*(?:#+\s*)?" + _EMPHASIS
    + r"(?:Conclusão\s+Final|Final\s+Conclusion|Conclusão|Conclusion)(?:\s+Final)?"
    + _EMPHASIS + r"(?!\w)[:*\-\s]*",
    re.IGNORECASE,
)

_ANALYSIS_HEADING = re.compile(
    r"^(?:#+\s*)?" + _EMPHASIS
    + r"(?:Análise(?:\s+Detalhada)?|Detailed\s+Analysis|Analysis)"
    + _EMPHASIS + r"(?!\w)[:*\-\s]*",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class ParsedResponse:
    analysis: str
    conclusion: str

    @property
    def used_fallback(self) -> bool:
        return self.analysis == ANALYSIS_PLACEHOLDER or self.conclusion == CONCLUSION_PLACEHOLDER


def _strip_analysis_heading(text: str) -> str:
    return _ANALYSIS_HEADING.sub("", text, count=1).strip()


def parse_response(text: str) -> ParsedResponse:
    """Split text at the first conclusion heading.

    Everything after the heading is the conclusion; everything before it,
    minus a leading Analysis heading, is the analysis. Never raises: missing
    sections are replaced by fixed placeholders.
    """
    text = text or ""
    conclusion = CONCLUSION_PLACEHOLDER

    match = _CONCLUSION_HEADING.search(text)
    if match:
        conclusion = text[match.end():].strip() or CONCLUSION_PLACEHOLDER
        analysis = _strip_analysis_heading(text[:match.start()].strip())
    elif _ANALYSIS_HEADING.match(text.lstrip()):
        analysis = _strip_analysis_heading(text.strip())
    else:
        analysis = text.strip()

    if not analysis:
        analysis = ANALYSIS_PLACEHOLDER

    parsed = ParsedResponse(analysis=analysis, conclusion=conclusion)
    if parsed.used_fallback:
        logger.debug("Response did not match the Analysis/Conclusion structure, placeholders used")
    return parsed
