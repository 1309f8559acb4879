"""Persistence gate: only summaries at or above the minimum compliance score are written."""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Union

from .cache import CacheInvalidator
from .errors import StoreError
from .logging_config import get_audit_logger, log_gate_decision
from .models import PageRejection, PageSummary
from .store import PageStore

logger = logging.getLogger(__name__)
audit_logger = get_audit_logger("gate")


@dataclass
class Published:
    """The summary was written and caches were told to drop the old copy."""
    page: PageSummary


@dataclass
class ValidationRejected:
    """The summary scored below the minimum and was not written."""
    book_id: str
    page_number: int
    compliance_score: float
    minimum_score: float
    violations: List[str] = field(default_factory=list)

    @property
    def message(self) -> str:
        return (
            f"grounding gate blocked: compliance score {self.compliance_score:.1f} "
            f"is below the minimum {self.minimum_score:.1f} "
            f"(violations: {', '.join(self.violations) or 'none'})"
        )


GateOutcome = Union[Published, ValidationRejected]


class PersistenceGate:
    """Writes a candidate summary only when its compliance score clears the minimum."""

    def __init__(
        self,
        store: PageStore,
        min_compliance_score: float,
        invalidator: Optional[CacheInvalidator] = None
    ):
        self.store = store
        self.min_compliance_score = min_compliance_score
        self.invalidator = invalidator

    def accepts(self, compliance_score: Optional[float]) -> bool:
        return compliance_score is not None and compliance_score >= self.min_compliance_score

    def submit(self, candidate: PageSummary) -> GateOutcome:
        """
        Publish or reject a candidate.

        Raises:
            StoreError: the write itself failed
        """
        violations = list(candidate.validation_meta.violations)
        score = candidate.compliance_score

        if not self.accepts(score):
            rejection = ValidationRejected(
                book_id=candidate.book_id,
                page_number=candidate.page_number,
                compliance_score=score if score is not None else 0.0,
                minimum_score=self.min_compliance_score,
                violations=violations,
            )
            self.store.record_rejection(PageRejection(
                book_id=candidate.book_id,
                page_number=candidate.page_number,
                compliance_score=rejection.compliance_score,
                minimum_score=self.min_compliance_score,
                violations=violations,
                provider_used=candidate.provider_used,
            ))
            log_gate_decision(
                audit_logger,
                book_id=candidate.book_id,
                page_number=candidate.page_number,
                accepted=False,
                compliance_score=rejection.compliance_score,
                minimum_score=self.min_compliance_score,
                violations=violations,
                removed_sections=candidate.validation_meta.removed_sections
            )
            logger.warning(rejection.message)
            return rejection

        stored = self.store.upsert_page(candidate)
        self.store.clear_rejection(candidate.book_id, candidate.page_number)
        log_gate_decision(
            audit_logger,
            book_id=candidate.book_id,
            page_number=candidate.page_number,
            accepted=True,
            compliance_score=score,
            minimum_score=self.min_compliance_score,
            violations=violations,
            removed_sections=candidate.validation_meta.removed_sections
        )

        if self.invalidator is not None:
            try:
                self.invalidator.invalidate(candidate.book_id, candidate.page_number, "published")
            except StoreError as e:
                # Row is already committed
                logger.error(f"Cache invalidation failed for book={candidate.book_id} page={candidate.page_number}: {e}")

        return Published(page=stored)
