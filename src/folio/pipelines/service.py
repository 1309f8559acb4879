"""Page-level entry points: lazy generation, regeneration and dirty marks."""

import logging
from typing import Callable, Optional, Union

from ..core.cache import CacheInvalidator
from ..core.errors import MalformedInput
from ..core.gate import Published, ValidationRejected
from ..core.models import OcrInput, PageRejection, PageSummary
from ..core.page_state import PageState, state_of, transition
from ..core.store import PageStore
from .page_graph import PipelineDeps, build_page_graph, run_page_pipeline

logger = logging.getLogger(__name__)

# Supplies the OCR collaborator's output for (book_id, page_number)
OcrSource = Callable[[str, int], Optional[OcrInput]]

PageResult = Union[PageSummary, ValidationRejected]


def _rejection_outcome(rejection: PageRejection) -> ValidationRejected:
    return ValidationRejected(
        book_id=rejection.book_id,
        page_number=rejection.page_number,
        compliance_score=rejection.compliance_score,
        minimum_score=rejection.minimum_score,
        violations=list(rejection.violations),
    )


class PageLifecycle:
    """Lifecycle operations on stored pages; needs no provider."""

    def __init__(self, store: PageStore, invalidator: Optional[CacheInvalidator] = None):
        self.store = store
        self.invalidator = invalidator

    def page_state(self, book_id: str, page_number: int) -> PageState:
        return state_of(
            self.store.get_page(book_id, page_number),
            self.store.get_rejection(book_id, page_number)
        )

    def regenerate(self, book_id: str, page_number: int) -> bool:
        """Delete the stored row and any rejection so the next request generates afresh."""
        deleted = self.store.delete_page(book_id, page_number)
        if self.invalidator is not None:
            self.invalidator.invalidate(book_id, page_number, "regenerate")
        logger.info(f"Regenerate requested for {book_id}:{page_number} (deleted={deleted})")
        return deleted

    def mark_stale(self, book_id: str, page_number: int) -> bool:
        """Flag a published page so the next request regenerates it."""
        state = self.page_state(book_id, page_number)
        if state == PageState.STALE:
            return True
        transition(state, PageState.STALE)
        return self.store.mark_stale(book_id, page_number)


class PageSummaryService(PageLifecycle):
    """Serves stored summaries and generates missing or stale ones on demand."""

    def __init__(self, deps: PipelineDeps, invalidator: Optional[CacheInvalidator] = None):
        super().__init__(deps.store, invalidator)
        self.deps = deps
        self.graph = build_page_graph(deps)

    def generate(self, book_id: str, page_number: int, ocr: OcrInput, lang: str = "ar") -> PageResult:
        """Run the pipeline for one page and return the stored row or the rejection."""
        result = run_page_pipeline(self.graph, book_id, page_number, ocr, lang)
        outcome = result["outcome"]
        if isinstance(outcome, Published):
            return outcome.page
        return outcome

    def get_page(self, book_id: str, page_number: int, ocr_source: OcrSource, lang: str = "ar") -> PageResult:
        """
        Return the published summary, generating it first when absent or stale.

        A page the gate rejected is not regenerated here; the recorded
        rejection is returned until someone calls ``regenerate``.
        """
        page = self.store.get_page(book_id, page_number)
        rejection = self.store.get_rejection(book_id, page_number)
        state = state_of(page, rejection)

        if state == PageState.PUBLISHED:
            return page
        if state == PageState.REJECTED_BY_GATE:
            logger.info(f"Page {book_id}:{page_number} was rejected by the gate; not regenerating")
            return _rejection_outcome(rejection)

        transition(state, PageState.GENERATING)
        ocr = ocr_source(book_id, page_number)
        if ocr is None:
            raise MalformedInput(f"no OCR text available for book={book_id} page={page_number}")
        return self.generate(book_id, page_number, ocr, lang)
