"""
Tests for the persistence gate.
"""

from unittest.mock import MagicMock

import pytest

from folio.core.errors import StoreError
from folio.core.gate import PersistenceGate, Published, ValidationRejected
from folio.core.models import ValidationMeta

from fakes import InMemoryPageStore, RecordingInvalidator, make_page


def candidate(score, page_number=7, violations=()):
    return make_page(
        page_number=page_number,
        summary_markdown="## Overview\nText.\n",
        compliance_score=score,
        validation_meta=ValidationMeta(violations=list(violations)),
        provider_used="fake:completion",
    )


class TestScenarioC:
    """The minimum is inclusive."""

    def test_score_at_minimum_is_published(self, store, invalidator):
        gate = PersistenceGate(store, 70, invalidator)
        outcome = gate.submit(candidate(70))

        assert isinstance(outcome, Published)
        assert store.get_page("chem-101", 7).compliance_score == 70

    def test_score_one_below_is_rejected(self, store, invalidator):
        gate = PersistenceGate(store, 70, invalidator)
        outcome = gate.submit(candidate(69, violations=["FORMULAS_NOT_IN_OCR"]))

        assert isinstance(outcome, ValidationRejected)
        assert outcome.message.startswith("grounding gate blocked")
        assert store.get_page("chem-101", 7) is None
        assert invalidator.signals == []


class TestPublish:

    def test_invalidation_signal(self, store, invalidator):
        PersistenceGate(store, 70, invalidator).submit(candidate(90))
        assert invalidator.signals == [("chem-101", 7, "published")]

    def test_replaces_prior_content(self, store):
        gate = PersistenceGate(store, 70)
        gate.submit(candidate(80))
        second = candidate(95).model_copy(update={"summary_markdown": "## Overview\nNew.\n"})
        gate.submit(second)

        stored = store.get_page("chem-101", 7)
        assert stored.summary_markdown == "## Overview\nNew.\n"
        assert stored.compliance_score == 95
        assert len(store.pages) == 1

    def test_publish_clears_previous_rejection(self, store):
        gate = PersistenceGate(store, 70)
        gate.submit(candidate(10))
        assert store.get_rejection("chem-101", 7) is not None

        gate.submit(candidate(90))
        assert store.get_rejection("chem-101", 7) is None

    def test_publish_clears_stale_mark(self, store):
        gate = PersistenceGate(store, 70)
        gate.submit(candidate(90))
        store.mark_stale("chem-101", 7)
        gate.submit(candidate(90))
        assert not store.get_page("chem-101", 7).is_stale

    def test_failed_invalidation_does_not_undo_publish(self, store):
        invalidator = MagicMock()
        invalidator.invalidate.side_effect = StoreError("notify failed")
        outcome = PersistenceGate(store, 70, invalidator).submit(candidate(90))

        assert isinstance(outcome, Published)
        assert store.get_page("chem-101", 7) is not None

    def test_store_failure_propagates(self):
        store = MagicMock()
        store.upsert_page.side_effect = StoreError("upsert_page failed")
        with pytest.raises(StoreError):
            PersistenceGate(store, 70).submit(candidate(90))


class TestReject:

    def test_rejection_is_recorded(self, store):
        PersistenceGate(store, 70).submit(candidate(40, violations=["APPLICATIONS_NOT_IN_OCR"]))
        rejection = store.get_rejection("chem-101", 7)

        assert rejection.compliance_score == 40
        assert rejection.minimum_score == 70
        assert rejection.violations == ["APPLICATIONS_NOT_IN_OCR"]
        assert rejection.provider_used == "fake:completion"

    def test_missing_score_is_rejected(self, store):
        outcome = PersistenceGate(store, 0).submit(candidate(None))
        assert isinstance(outcome, ValidationRejected)


class TestGateInvariant:
    """No stored row ever sits below the minimum."""

    @pytest.mark.parametrize("minimum", [0, 50, 70, 100])
    def test_no_row_below_minimum(self, minimum):
        store = InMemoryPageStore()
        gate = PersistenceGate(store, minimum, RecordingInvalidator())
        for page_number, score in enumerate([0, 15, 49.5, 50, 69.9, 70, 85, 100], start=1):
            gate.submit(candidate(score, page_number=page_number))

        assert all(page.compliance_score >= minimum for page in store.pages.values())
