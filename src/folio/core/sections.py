"""Canonical summary sections and markdown heading utilities.

Prompt templates, the grounding validator and the sanitizer all refer to
sections through this table, so a heading only has to be spelled once per
language.
"""

import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from .models import SummaryStructured, ViolationCode


@dataclass(frozen=True)
class SectionSpec:
    """A canonical summary section."""
    key: str
    display_name: str
    headings: Dict[str, str]  # language -> heading title (without the leading #'s)

    @property
    def titles(self) -> Tuple[str, ...]:
        return tuple(self.headings.values())

    def heading(self, lang: str, level: int = 2) -> str:
        title = self.headings.get(lang, self.headings["en"])
        return f"{'#' * level} {title}"


OVERVIEW = SectionSpec(
    key="overview",
    display_name="Overview",
    headings={"en": "Overview", "ar": "نظرة عامة"},
)
CONCEPTS_DEFINITIONS = SectionSpec(
    key="concepts_definitions",
    display_name="Concepts & Definitions",
    headings={"en": "Concepts & Definitions", "ar": "المفاهيم والتعاريف"},
)
QUESTIONS_ANSWERS = SectionSpec(
    key="questions_answers",
    display_name="Questions & Answers",
    headings={"en": "Questions & Answers", "ar": "الأسئلة والحلول الكاملة"},
)
EXAMPLES_APPLICATIONS = SectionSpec(
    key="examples_applications",
    display_name="Examples & Applications",
    headings={"en": "Examples & Applications", "ar": "التطبيقات والأمثلة"},
)
FORMULAS_EQUATIONS = SectionSpec(
    key="formulas_equations",
    display_name="Formulas & Equations",
    headings={"en": "Formulas & Equations", "ar": "الصيغ والمعادلات"},
)

# Skeleton order for content pages
SECTION_ORDER: Tuple[SectionSpec, ...] = (
    OVERVIEW,
    CONCEPTS_DEFINITIONS,
    QUESTIONS_ANSWERS,
    EXAMPLES_APPLICATIONS,
    FORMULAS_EQUATIONS,
)

# Which section a violation invalidates
VIOLATION_SECTIONS: Dict[str, SectionSpec] = {
    ViolationCode.FORMULAS_NOT_IN_OCR.value: FORMULAS_EQUATIONS,
    ViolationCode.APPLICATIONS_NOT_IN_OCR.value: EXAMPLES_APPLICATIONS,
}

HEADING_RE = re.compile(r'^(#{1,6})[ \t]+(.+?)[ \t#]*$', re.MULTILINE)


@dataclass(frozen=True)
class Heading:
    """A markdown ATX heading located in a document."""
    level: int
    title: str
    start: int  # offset of the first '#'
    end: int    # offset just past the heading line


def find_headings(markdown: str) -> List[Heading]:
    """Return every ATX heading in document order."""
    return [
        Heading(level=len(m.group(1)), title=m.group(2).strip(), start=m.start(), end=m.end())
        for m in HEADING_RE.finditer(markdown)
    ]


def _normalise_title(title: str) -> str:
    return re.sub(r'[*_`]', '', title).strip()


def heading_matches(heading: Heading, section: SectionSpec) -> bool:
    """True if the heading carries one of the section's canonical titles."""
    title = _normalise_title(heading.title)
    return any(canonical in title for canonical in section.titles)


def find_section_headings(markdown: str, section: SectionSpec) -> List[Heading]:
    return [h for h in find_headings(markdown) if heading_matches(h, section)]


def has_section(markdown: str, section: SectionSpec) -> bool:
    return bool(markdown) and bool(find_section_headings(markdown, section))


def section_span(markdown: str, heading: Heading, headings: Optional[List[Heading]] = None) -> Tuple[int, int]:
    """Span of a section: its heading up to the next heading of equal or higher level."""
    headings = headings if headings is not None else find_headings(markdown)
    for other in headings:
        if other.start > heading.start and other.level <= heading.level:
            return heading.start, other.start
    return heading.start, len(markdown)


def outline(markdown: str) -> SummaryStructured:
    """Structured breakdown of a summary: heading titles and word count."""
    return SummaryStructured(
        sections=[_normalise_title(h.title) for h in find_headings(markdown)],
        word_count=len(markdown.split()),
    )
