"""Batch embedding backfill for stored pages, rate limited and cooperatively cancellable."""

import random
import threading
import time
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict, dataclass, field
from typing import Callable, List, Optional

from .embed import Embedder
from .logging_config import get_audit_logger, log_backfill_completed
from .models import PageSummary
from .store import PageStore

logger = logging.getLogger(__name__)
audit_logger = get_audit_logger("backfill")


class CancellationToken:
    """Thread-safe flag checked between batches; in-flight calls are never interrupted."""

    def __init__(self) -> None:
        self._is_cancelled = threading.Event()

    def cancel(self) -> None:
        self._is_cancelled.set()

    def is_cancelled(self) -> bool:
        return self._is_cancelled.is_set()


@dataclass
class PartialBatchFailure:
    """One page that failed inside an otherwise completed batch."""
    page_number: int
    error: str


@dataclass
class BackfillReport:
    book_id: str
    total_pages: int
    processed: int = 0
    errors: int = 0
    success_rate: float = 1.0
    cancelled: bool = False
    failures: List[PartialBatchFailure] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


def pages_needing_embeddings(pages: List[PageSummary], model: str, force_regenerate: bool = False) -> List[PageSummary]:
    """Pages with no embedding, or one made by another model; every page when forced."""
    if force_regenerate:
        return list(pages)
    return [
        page for page in pages
        if page.embedding is None or page.embedding_model != model
    ]


def _embed_page(page: PageSummary, embedder: Embedder, store: PageStore) -> None:
    vector = embedder.embed(page.ocr_text)
    store.update_embedding(page.book_id, page.page_number, vector, embedder.model)


def backfill_embeddings(
    book_id: str,
    store: PageStore,
    embedder: Embedder,
    force_regenerate: bool = False,
    batch_size: int = 5,
    cancel_token: Optional[CancellationToken] = None,
    delay_min_seconds: float = 1.0,
    delay_max_seconds: float = 2.0,
    sleep: Callable[[float], None] = time.sleep,
    rng: Optional[random.Random] = None
) -> BackfillReport:
    """
    Compute embeddings for a book's stored pages.

    Pages are processed in batches of ``batch_size`` with at most that many
    concurrent embedding calls. A randomised delay separates consecutive
    batches. One page failing never stops its siblings; it is recorded in
    ``failures`` and counted in ``errors``.

    Args:
        book_id: Book to backfill
        store: Page store
        embedder: Embedding generator for the current model
        force_regenerate: Re-embed pages that already have a current vector
        batch_size: Pages per batch and maximum concurrency
        cancel_token: Checked before each batch
        delay_min_seconds: Lower bound of the inter-batch delay
        delay_max_seconds: Upper bound of the inter-batch delay
        sleep: Sleep function (injected by tests)
        rng: Random source for the delay jitter

    Returns:
        BackfillReport with counts and per-page failures
    """
    if batch_size < 1:
        raise ValueError("batch_size must be at least 1")
    rng = rng or random.Random()
    start_time = time.time()

    pages = store.list_pages(book_id)
    todo = pages_needing_embeddings(pages, embedder.model, force_regenerate)
    report = BackfillReport(book_id=book_id, total_pages=len(pages))

    logger.info(f"Backfilling {len(todo)} of {len(pages)} pages for book {book_id} (batch size {batch_size})")

    batches = [todo[i:i + batch_size] for i in range(0, len(todo), batch_size)]
    with ThreadPoolExecutor(max_workers=batch_size) as executor:
        for batch_index, batch in enumerate(batches):
            if cancel_token is not None and cancel_token.is_cancelled():
                logger.info(f"Backfill cancelled before batch {batch_index + 1}/{len(batches)}")
                report.cancelled = True
                break

            futures = [
                (page, executor.submit(_embed_page, page, embedder, store))
                for page in batch
            ]
            for page, future in futures:
                try:
                    future.result()
                except Exception as e:
                    logger.error(f"Embedding failed for book={book_id} page={page.page_number}: {e}")
                    report.errors += 1
                    report.failures.append(PartialBatchFailure(page_number=page.page_number, error=str(e)))
                else:
                    report.processed += 1

            logger.info(f"Batch {batch_index + 1}/{len(batches)} done: {report.processed} processed, {report.errors} errors")

            if batch_index < len(batches) - 1:
                sleep(rng.uniform(delay_min_seconds, delay_max_seconds))

    attempted = report.processed + report.errors
    report.success_rate = report.processed / attempted if attempted else 1.0

    execution_time_ms = (time.time() - start_time) * 1000
    log_backfill_completed(audit_logger, report.to_dict(), execution_time_ms)
    return report
