"""Remove ungrounded sections from a generated summary without touching the rest."""

import re
import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Tuple

from .grounding import derive_violations
from .sections import VIOLATION_SECTIONS, find_headings, heading_matches, section_span

logger = logging.getLogger(__name__)

BLANK_RUN_RE = re.compile(r'\n{3,}')


@dataclass
class SanitizationResult:
    sanitized_content: str
    was_sanitized: bool
    removed_sections: List[str] = field(default_factory=list)
    violations: List[str] = field(default_factory=list)


def _collapse_seam(before: str, after: str) -> str:
    """Join two pieces, collapsing a newline run that spans the join to one blank line."""
    head = before.rstrip("\n")
    tail = after.lstrip("\n")
    newlines = (len(before) - len(head)) + (len(after) - len(tail))
    if not head:
        return tail
    return head + BLANK_RUN_RE.sub("\n\n", "\n" * newlines) + tail


def _spans_to_remove(summary: str, violations: Iterable[str]) -> Tuple[List[Tuple[int, int]], List[str]]:
    headings = find_headings(summary)
    spans: List[Tuple[int, int]] = []
    removed: List[str] = []

    for code in violations:
        section = VIOLATION_SECTIONS.get(code)
        if section is None:
            continue
        for heading in headings:
            if heading_matches(heading, section):
                spans.append(section_span(summary, heading, headings))
                if section.display_name not in removed:
                    removed.append(section.display_name)

    # Merge overlapping spans (a section nested inside another removed one)
    spans.sort()
    merged: List[Tuple[int, int]] = []
    for start, end in spans:
        if merged and start <= merged[-1][1]:
            merged[-1] = (merged[-1][0], max(merged[-1][1], end))
        else:
            merged.append((start, end))
    return merged, removed


def sanitize_summary(
    summary: str,
    ocr_text: str,
    violations: Optional[List[str]] = None
) -> SanitizationResult:
    """
    Strip every section invalidated by a violation.

    When ``violations`` is None they are derived from the summary and the
    source text. Each offending section is cut from its heading up to the
    next heading of the same or a higher level. Only the newline run at each
    cut is normalised; every other byte of the summary is kept.
    """
    summary = summary or ""
    if violations is None:
        violations = derive_violations(summary, ocr_text)
    violations = list(violations)

    spans, removed = _spans_to_remove(summary, violations)
    if not spans:
        return SanitizationResult(
            sanitized_content=summary,
            was_sanitized=False,
            removed_sections=[],
            violations=violations,
        )

    content = summary
    # Cut from the end so earlier offsets stay valid
    for start, end in reversed(spans):
        content = _collapse_seam(content[:start], content[end:])

    logger.info(f"Sanitized summary: removed {removed} for violations {violations}")
    return SanitizationResult(
        sanitized_content=content,
        was_sanitized=True,
        removed_sections=removed,
        violations=violations,
    )
