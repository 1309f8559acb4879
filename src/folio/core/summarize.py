"""Summary generation strictly from the page's own text; no content beyond what is written."""

import re
import time
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple

from pydantic import BaseModel, Field, ValidationError

from .config import CompletionConfig
from .errors import ProviderError
from .logging_config import get_audit_logger, log_summary_generated
from .providers import CompletionProvider, CompletionRequest
from .sections import (
    CONCEPTS_DEFINITIONS, EXAMPLES_APPLICATIONS, FORMULAS_EQUATIONS,
    OVERVIEW, QUESTIONS_ANSWERS, SectionSpec
)

logger = logging.getLogger(__name__)
audit_logger = get_audit_logger("summarize")

MAX_CONTINUATIONS = 2
MIN_CONTENT_LENGTH = 300
MIN_KEYWORD_HITS = 2

# Vocabulary of instructional pages, Arabic and English
CONTENT_KEYWORDS = (
    'مثال', 'تعريف', 'قانون', 'معادلة', 'حل', 'مسألة', 'نظرية', 'خاصية',
    'example', 'definition', 'law', 'equation', 'solution', 'problem', 'theorem', 'property',
    'الأهداف', 'المفاهيم', 'التعاريف', 'الصيغ', 'الخطوات',
    'objectives', 'concepts', 'definitions', 'formulas', 'steps',
    'اشرح', 'وضح', 'قارن', 'حدد', 'لماذا', 'كيف', 'ماذا',
    'explain', 'describe', 'compare', 'why', 'how',
)

TABLE_OF_CONTENTS_MARKERS = ('فهرس', 'جدول المحتويات', 'table of contents', 'contents')

NUMBERED_QUESTION_RE = re.compile(r'^\s*[\d٠-٩]+\s*[.)\-]\s+\S', re.MULTILINE)
SECTION_MARKER_RE = re.compile(r'---\s*SECTION:')
SELF_CHECK_RE = re.compile(r'<!--\s*self-check:\s*(\{.*?\})\s*-->', re.DOTALL)


class PageKind(str, Enum):
    CONTENT = "content"
    NON_CONTENT = "non_content"


class SelfCheck(BaseModel):
    """Trailer the model appends about its own output."""
    confidence: Optional[float] = Field(default=None, ge=0, le=100)
    violations: List[str] = Field(default_factory=list)


@dataclass
class SummaryDraft:
    raw_summary: str
    provider_used: str
    self_reported_violations: List[str] = field(default_factory=list)
    self_reported_confidence: Optional[float] = None
    continuation_calls: int = 0
    page_kind: PageKind = PageKind.CONTENT
    truncated: bool = False


def is_table_of_contents(text: str) -> bool:
    lowered = text.lower()
    return any(marker in lowered for marker in TABLE_OF_CONTENTS_MARKERS)


def has_numbered_questions(text: str) -> bool:
    return bool(NUMBERED_QUESTION_RE.search(text or ""))


def keyword_hits(text: str) -> int:
    lowered = text.lower()
    return sum(1 for keyword in CONTENT_KEYWORDS if keyword in lowered)


def classify_page(text: str) -> PageKind:
    """Decide whether a page warrants the full structured summary."""
    text = text or ""
    if len(text) <= MIN_CONTENT_LENGTH or is_table_of_contents(text):
        return PageKind.NON_CONTENT

    if (keyword_hits(text) >= MIN_KEYWORD_HITS
            or has_numbered_questions(text)
            or SECTION_MARKER_RE.search(text)):
        return PageKind.CONTENT
    return PageKind.NON_CONTENT


SELF_CHECK_INSTRUCTION = """End your answer with exactly one line of the form:
<!-- self-check: {"confidence": N, "violations": [...]} -->
where N (0-100) is how confident you are that every statement is taken from the page, and
violations lists FORMULAS_NOT_IN_OCR if you wrote formulas that are not on the page and
APPLICATIONS_NOT_IN_OCR if you wrote examples or applications that are not on the page."""


def build_system_prompt(kind: PageKind, lang: str = "ar", include_questions: bool = False) -> str:
    """System prompt for a page; content pages get the faithfulness mandate and skeleton."""
    language = "Arabic" if lang == "ar" else "English"

    if kind == PageKind.NON_CONTENT:
        return f"""You summarize pages of an educational book in {language}.
This page has little instructional content. Write a short summary in {language} under
the single heading "{OVERVIEW.heading(lang, 3)}" describing what the page contains.
Do not add information that is not on the page.

{SELF_CHECK_INSTRUCTION}"""

    sections: List[Tuple[SectionSpec, str]] = [
        (OVERVIEW, "two or three sentences on what the page covers"),
        (CONCEPTS_DEFINITIONS, "concepts and definitions exactly as the page states them"),
    ]
    if include_questions:
        sections.append((QUESTIONS_ANSWERS, "every numbered question in order, each with a complete answer"))
    sections.append((EXAMPLES_APPLICATIONS, "ONLY if the page itself contains examples or applications"))
    sections.append((FORMULAS_EQUATIONS, "ONLY if the page itself contains formulas; use $$...$$"))

    skeleton = "\n".join(f"{section.heading(lang)}\n({guidance})" for section, guidance in sections)

    return f"""You are an expert teacher summarizing one page of an educational book in {language}.

FAITHFULNESS MANDATE:
1. Only extract what is explicitly written on the page. Never invent formulas, examples,
   applications, numbers or definitions.
2. If a section has no material on the page, omit the section entirely, heading included.
3. Keep the page's own terminology and notation.

Use this structure, in this order:
{skeleton}

{SELF_CHECK_INSTRUCTION}"""


def build_user_prompt(page_text: str, context_block: str = "", title: Optional[str] = None) -> str:
    """Context from earlier pages (if any), then the page verbatim, then the task."""
    parts = []
    if context_block:
        parts.append(
            "Context from earlier pages of the same book (for terminology only; "
            "do not summarize it):\n" + context_block.rstrip()
        )
    header = f"Current page ({title}):" if title else "Current page:"
    parts.append(f"{header}\n{page_text}")
    parts.append("Summarize the current page following the required structure.")
    return "\n\n".join(parts)


def build_continuation_prompt(user_prompt: str, partial: str) -> str:
    return (
        f"{user_prompt}\n\n"
        f"Your previous answer was cut off. Here is everything written so far:\n"
        f"{partial}\n\n"
        "Continue exactly where it left off. Do not repeat anything already written "
        "and do not start over."
    )


def extract_self_check(text: str) -> Tuple[str, Optional[SelfCheck]]:
    """Strip self-check trailers from the text and parse the last one, if valid."""
    matches = list(SELF_CHECK_RE.finditer(text))
    if not matches:
        return text, None

    cleaned = SELF_CHECK_RE.sub("", text).rstrip() + "\n"
    try:
        check = SelfCheck.model_validate_json(matches[-1].group(1))
    except ValidationError as e:
        logger.warning(f"Ignoring malformed self-check trailer: {e.error_count()} errors")
        return cleaned, None
    return cleaned, check


def request_summary(
    provider: CompletionProvider,
    page_text: str,
    context_block: str = "",
    lang: str = "ar",
    title: Optional[str] = None,
    config: Optional[CompletionConfig] = None,
    book_id: Optional[str] = None,
    page_number: Optional[int] = None
) -> SummaryDraft:
    """
    Ask the completion provider for a summary of one page.

    A reply cut off by the output limit is followed by up to two sequential
    continuation calls. A failed continuation keeps what was already written;
    a failed first call raises.

    Raises:
        ProviderError: the initial completion call failed
    """
    config = config or CompletionConfig()
    kind = classify_page(page_text)
    system_prompt = build_system_prompt(kind, lang, include_questions=has_numbered_questions(page_text))
    user_prompt = build_user_prompt(page_text, context_block, title)

    start_time = time.time()
    response = provider.complete(CompletionRequest(
        system_prompt=system_prompt,
        user_prompt=user_prompt,
        temperature=config.temperature,
        max_tokens=config.max_tokens
    ))
    text = response.content
    truncated = response.truncated
    continuation_calls = 0

    while truncated and continuation_calls < MAX_CONTINUATIONS:
        continuation_calls += 1
        logger.info(f"Summary truncated, continuation {continuation_calls}/{MAX_CONTINUATIONS}")
        try:
            response = provider.complete(CompletionRequest(
                system_prompt=system_prompt,
                user_prompt=build_continuation_prompt(user_prompt, text),
                temperature=config.temperature,
                max_tokens=config.max_tokens
            ))
        except ProviderError as e:
            logger.warning(f"Continuation {continuation_calls} failed, keeping partial summary: {e}")
            break
        text += response.content
        truncated = response.truncated

    summary, check = extract_self_check(text)
    generation_time_ms = (time.time() - start_time) * 1000

    log_summary_generated(
        audit_logger,
        book_id=book_id,
        page_number=page_number,
        provider=provider.name,
        page_kind=kind.value,
        continuation_calls=continuation_calls,
        summary_chars=len(summary),
        generation_time_ms=generation_time_ms
    )

    return SummaryDraft(
        raw_summary=summary,
        provider_used=provider.name,
        self_reported_violations=list(check.violations) if check else [],
        self_reported_confidence=check.confidence if check else None,
        continuation_calls=continuation_calls,
        page_kind=kind,
        truncated=truncated
    )
