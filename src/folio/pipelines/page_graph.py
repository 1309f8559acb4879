import logging
from dataclasses import dataclass
from typing import TypedDict, Optional, List

from langgraph.graph import StateGraph, END

from ..core.compliance import ComplianceStrategy, build_strategy, stored_confidence
from ..core.config import CompletionConfig, CompliancePolicy, RAGOptions
from ..core.embed import Embedder
from ..core.errors import MalformedInput
from ..core.gate import GateOutcome, PersistenceGate
from ..core.grounding import derive_violations
from ..core.models import OcrInput, PageSummary, ValidationMeta
from ..core.providers import CompletionProvider
from ..core.retrieve import context_for_page
from ..core.sanitizer import SanitizationResult, sanitize_summary
from ..core.sections import outline
from ..core.store import PageStore
from ..core.summarize import SummaryDraft, request_summary

logger = logging.getLogger(__name__)


# ---- State definition (keep small & explicit)
class PageRunState(TypedDict, total=False):
    book_id: str
    page_number: int
    lang: str
    ocr: OcrInput
    context_block: str              # RAG context from earlier pages ("" when none)
    draft: SummaryDraft             # raw model output + self-check
    violations: List[str]           # validator findings unioned with self-reported codes
    sanitization: SanitizationResult
    compliance_score: float
    candidate: PageSummary          # row the gate decides on
    outcome: GateOutcome


@dataclass
class PipelineDeps:
    """Collaborators one compiled graph is bound to."""
    completion: CompletionProvider
    store: PageStore
    gate: PersistenceGate
    policy: CompliancePolicy
    rag_options: RAGOptions
    embedder: Optional[Embedder] = None
    completion_config: Optional[CompletionConfig] = None


def validate_page_request(book_id: str, page_number: int, ocr: Optional[OcrInput]) -> None:
    """Reject malformed requests before any provider is called."""
    if not isinstance(book_id, str) or not book_id.strip():
        raise MalformedInput("book_id is required")
    if not isinstance(page_number, int) or isinstance(page_number, bool) or page_number < 1:
        raise MalformedInput(f"page_number must be a positive integer, got {page_number!r}")
    if ocr is None or not ocr.ocr_text or not ocr.ocr_text.strip():
        raise MalformedInput(f"no OCR text for book={book_id} page={page_number}")


# ---- Step functions
def step_retrieve(state: PageRunState, *, deps: PipelineDeps) -> PageRunState:
    """Context from similar earlier pages; empty when disabled or unavailable."""
    state["context_block"] = context_for_page(
        state["book_id"],
        state["page_number"],
        state["ocr"].ocr_text,
        deps.rag_options,
        deps.embedder,
        deps.store
    )
    return state


def step_summarize(state: PageRunState, *, deps: PipelineDeps) -> PageRunState:
    ocr = state["ocr"]
    state["draft"] = request_summary(
        deps.completion,
        ocr.ocr_text,
        context_block=state.get("context_block", ""),
        lang=state.get("lang", "ar"),
        title=ocr.title,
        config=deps.completion_config,
        book_id=state["book_id"],
        page_number=state["page_number"]
    )
    return state


def step_ground(state: PageRunState) -> PageRunState:
    draft = state["draft"]
    state["violations"] = derive_violations(
        draft.raw_summary,
        state["ocr"].ocr_text,
        draft.self_reported_violations
    )
    if state["violations"]:
        logger.info(f"Grounding violations for page {state['page_number']}: {state['violations']}")
    return state


def step_sanitize(state: PageRunState) -> PageRunState:
    state["sanitization"] = sanitize_summary(
        state["draft"].raw_summary,
        state["ocr"].ocr_text,
        violations=state["violations"]
    )
    return state


def step_score(state: PageRunState, *, strategy: ComplianceStrategy, policy: CompliancePolicy) -> PageRunState:
    """Score the sanitized result and assemble the candidate row."""
    draft = state["draft"]
    ocr = state["ocr"]
    sanitization = state["sanitization"]

    score = strategy.score(sanitization.violations, draft.self_reported_confidence)
    state["compliance_score"] = score
    state["candidate"] = PageSummary(
        book_id=state["book_id"],
        page_number=state["page_number"],
        title=ocr.title,
        ocr_text=ocr.ocr_text,
        ocr_confidence=ocr.ocr_confidence,
        ocr_structured=ocr.ocr_structured,
        summary_markdown=sanitization.sanitized_content,
        summary_structured=outline(sanitization.sanitized_content),
        confidence=stored_confidence(policy, draft.self_reported_confidence),
        compliance_score=score,
        validation_meta=ValidationMeta(
            violations=sanitization.violations,
            removed_sections=sanitization.removed_sections,
            was_sanitized=sanitization.was_sanitized
        ),
        provider_used=draft.provider_used
    )
    return state


def step_gate(state: PageRunState, *, gate: PersistenceGate) -> PageRunState:
    state["outcome"] = gate.submit(state["candidate"])
    return state


# ---- Build the LangGraph (linear, branching on the compliance score)
def build_page_graph(deps: PipelineDeps):
    strategy = build_strategy(deps.policy)
    g = StateGraph(PageRunState)

    # nodes are closures that carry their collaborators
    g.add_node("retrieve", lambda s: step_retrieve(s, deps=deps))
    g.add_node("summarize", lambda s: step_summarize(s, deps=deps))
    g.add_node("ground", step_ground)
    g.add_node("sanitize", step_sanitize)
    g.add_node("score", lambda s: step_score(s, strategy=strategy, policy=deps.policy))
    g.add_node("publish", lambda s: step_gate(s, gate=deps.gate))
    g.add_node("reject", lambda s: step_gate(s, gate=deps.gate))

    g.set_entry_point("retrieve")
    g.add_edge("retrieve", "summarize")
    g.add_edge("summarize", "ground")
    g.add_edge("ground", "sanitize")
    g.add_edge("sanitize", "score")
    # branch: the gate either writes the row or records the rejection
    g.add_conditional_edges(
        "score",
        lambda s: "publish" if deps.gate.accepts(s.get("compliance_score")) else "reject",
        {"publish": "publish", "reject": "reject"}
    )
    g.add_edge("publish", END)
    g.add_edge("reject", END)

    return g.compile()


def run_page_pipeline(graph, book_id: str, page_number: int, ocr: OcrInput, lang: str = "ar") -> PageRunState:
    """
    Run one page through the compiled graph.

    Raises:
        MalformedInput: the request is missing keys or source text
        ProviderError: the initial completion call failed
        StoreError: the gate could not write
    """
    validate_page_request(book_id, page_number, ocr)
    return graph.invoke({
        "book_id": book_id,
        "page_number": page_number,
        "lang": lang,
        "ocr": ocr,
    })
