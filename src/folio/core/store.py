"""PostgreSQL persistence for page summaries and gate rejections."""

import functools
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Protocol

import psycopg
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from .errors import StoreError
from .models import PageRejection, PageSummary

logger = logging.getLogger(__name__)

PAGE_COLUMNS = (
    "book_id, page_number, title, ocr_text, ocr_confidence, ocr_structured, "
    "summary_markdown, summary_structured, confidence, compliance_score, validation_meta, "
    "embedding, embedding_model, embedding_updated_at, provider_used, is_stale, updated_at"
)


class PageStore(Protocol):
    """Storage operations the pipeline, gate and backfill rely on."""

    def get_page(self, book_id: str, page_number: int) -> Optional[PageSummary]: ...

    def upsert_page(self, page: PageSummary) -> PageSummary: ...

    def delete_page(self, book_id: str, page_number: int) -> bool: ...

    def mark_stale(self, book_id: str, page_number: int) -> bool: ...

    def record_rejection(self, rejection: PageRejection) -> PageRejection: ...

    def get_rejection(self, book_id: str, page_number: int) -> Optional[PageRejection]: ...

    def clear_rejection(self, book_id: str, page_number: int) -> None: ...

    def list_pages(self, book_id: str) -> List[PageSummary]: ...

    def update_embedding(self, book_id: str, page_number: int, embedding: List[float], model: str) -> None: ...

    def similar_page_candidates(self, book_id: str, before_page: int, model: str) -> List[PageSummary]: ...

    def embedding_stats(self, book_id: str) -> Dict[str, Any]: ...


def _store_operation(func):
    """Retry transient connection failures, then surface anything else as StoreError."""
    retrying = retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
        retry=retry_if_exception_type(psycopg.OperationalError),
        reraise=True,
    )(func)

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return retrying(*args, **kwargs)
        except psycopg.Error as e:
            logger.error(f"{func.__name__} failed: {e}")
            raise StoreError(f"{func.__name__} failed: {e}") from e

    return wrapper


def _jsonb(model) -> Optional[Jsonb]:
    return Jsonb(model.model_dump()) if model is not None else None


def _row_to_page(row: Dict[str, Any]) -> PageSummary:
    data = dict(row)
    data["validation_meta"] = data.get("validation_meta") or {}
    if data.get("embedding") is not None:
        data["embedding"] = [float(v) for v in data["embedding"]]
    return PageSummary(**data)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class PostgresPageStore:
    """Page store backed by the ``page_summaries`` and ``page_summary_rejections`` tables."""

    def __init__(self, db_url: str):
        self.db_url = db_url

    @_store_operation
    def get_page(self, book_id: str, page_number: int) -> Optional[PageSummary]:
        with psycopg.connect(self.db_url) as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(f"""
                    SELECT {PAGE_COLUMNS}
                    FROM page_summaries
                    WHERE book_id = %s AND page_number = %s
                """, (book_id, page_number))
                row = cur.fetchone()
        return _row_to_page(row) if row else None

    @_store_operation
    def upsert_page(self, page: PageSummary) -> PageSummary:
        """
        Insert or replace the row for (book_id, page_number) in one statement.

        A stored embedding survives only when the OCR text it was computed
        from is unchanged and the candidate carries no embedding of its own.
        """
        page = page.model_copy(update={"updated_at": _now(), "is_stale": False})
        with psycopg.connect(self.db_url) as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(f"""
                    INSERT INTO page_summaries ({PAGE_COLUMNS})
                    VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s,
                            %s::double precision[], %s, %s, %s, %s, %s)
                    ON CONFLICT (book_id, page_number) DO UPDATE SET
                        title = EXCLUDED.title,
                        ocr_text = EXCLUDED.ocr_text,
                        ocr_confidence = EXCLUDED.ocr_confidence,
                        ocr_structured = EXCLUDED.ocr_structured,
                        summary_markdown = EXCLUDED.summary_markdown,
                        summary_structured = EXCLUDED.summary_structured,
                        confidence = EXCLUDED.confidence,
                        compliance_score = EXCLUDED.compliance_score,
                        validation_meta = EXCLUDED.validation_meta,
                        embedding = CASE
                            WHEN EXCLUDED.embedding IS NULL AND page_summaries.ocr_text = EXCLUDED.ocr_text
                            THEN page_summaries.embedding ELSE EXCLUDED.embedding END,
                        embedding_model = CASE
                            WHEN EXCLUDED.embedding IS NULL AND page_summaries.ocr_text = EXCLUDED.ocr_text
                            THEN page_summaries.embedding_model ELSE EXCLUDED.embedding_model END,
                        embedding_updated_at = CASE
                            WHEN EXCLUDED.embedding IS NULL AND page_summaries.ocr_text = EXCLUDED.ocr_text
                            THEN page_summaries.embedding_updated_at ELSE EXCLUDED.embedding_updated_at END,
                        provider_used = EXCLUDED.provider_used,
                        is_stale = EXCLUDED.is_stale,
                        updated_at = EXCLUDED.updated_at
                    RETURNING {PAGE_COLUMNS}
                """, (
                    page.book_id,
                    page.page_number,
                    page.title,
                    page.ocr_text,
                    page.ocr_confidence,
                    _jsonb(page.ocr_structured),
                    page.summary_markdown,
                    _jsonb(page.summary_structured),
                    page.confidence,
                    page.compliance_score,
                    _jsonb(page.validation_meta),
                    page.embedding,
                    page.embedding_model,
                    page.embedding_updated_at,
                    page.provider_used,
                    page.is_stale,
                    page.updated_at,
                ))
                row = cur.fetchone()
            conn.commit()
        logger.info(f"Stored summary for book={page.book_id} page={page.page_number}")
        return _row_to_page(row)

    @_store_operation
    def delete_page(self, book_id: str, page_number: int) -> bool:
        """Remove the stored row and any recorded rejection. True if anything was deleted."""
        with psycopg.connect(self.db_url) as conn:
            with conn.cursor() as cur:
                cur.execute("""
                    DELETE FROM page_summaries WHERE book_id = %s AND page_number = %s
                """, (book_id, page_number))
                deleted = cur.rowcount
                cur.execute("""
                    DELETE FROM page_summary_rejections WHERE book_id = %s AND page_number = %s
                """, (book_id, page_number))
                deleted += cur.rowcount
            conn.commit()
        return deleted > 0

    @_store_operation
    def mark_stale(self, book_id: str, page_number: int) -> bool:
        with psycopg.connect(self.db_url) as conn:
            with conn.cursor() as cur:
                cur.execute("""
                    UPDATE page_summaries SET is_stale = TRUE
                    WHERE book_id = %s AND page_number = %s
                """, (book_id, page_number))
                updated = cur.rowcount
            conn.commit()
        return updated > 0

    @_store_operation
    def record_rejection(self, rejection: PageRejection) -> PageRejection:
        rejection = rejection.model_copy(update={"rejected_at": rejection.rejected_at or _now()})
        with psycopg.connect(self.db_url) as conn:
            with conn.cursor() as cur:
                cur.execute("""
                    INSERT INTO page_summary_rejections
                        (book_id, page_number, compliance_score, minimum_score, violations, provider_used, rejected_at)
                    VALUES (%s, %s, %s, %s, %s, %s, %s)
                    ON CONFLICT (book_id, page_number) DO UPDATE SET
                        compliance_score = EXCLUDED.compliance_score,
                        minimum_score = EXCLUDED.minimum_score,
                        violations = EXCLUDED.violations,
                        provider_used = EXCLUDED.provider_used,
                        rejected_at = EXCLUDED.rejected_at
                """, (
                    rejection.book_id,
                    rejection.page_number,
                    rejection.compliance_score,
                    rejection.minimum_score,
                    Jsonb(rejection.violations),
                    rejection.provider_used,
                    rejection.rejected_at,
                ))
            conn.commit()
        return rejection

    @_store_operation
    def get_rejection(self, book_id: str, page_number: int) -> Optional[PageRejection]:
        with psycopg.connect(self.db_url) as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute("""
                    SELECT book_id, page_number, compliance_score, minimum_score, violations, provider_used, rejected_at
                    FROM page_summary_rejections
                    WHERE book_id = %s AND page_number = %s
                """, (book_id, page_number))
                row = cur.fetchone()
        return PageRejection(**row) if row else None

    @_store_operation
    def clear_rejection(self, book_id: str, page_number: int) -> None:
        with psycopg.connect(self.db_url) as conn:
            with conn.cursor() as cur:
                cur.execute("""
                    DELETE FROM page_summary_rejections WHERE book_id = %s AND page_number = %s
                """, (book_id, page_number))
            conn.commit()

    @_store_operation
    def list_pages(self, book_id: str) -> List[PageSummary]:
        """Stored pages of a book that have OCR text, in page order."""
        with psycopg.connect(self.db_url) as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(f"""
                    SELECT {PAGE_COLUMNS}
                    FROM page_summaries
                    WHERE book_id = %s AND ocr_text IS NOT NULL
                    ORDER BY page_number
                """, (book_id,))
                rows = cur.fetchall()
        return [_row_to_page(row) for row in rows]

    @_store_operation
    def update_embedding(self, book_id: str, page_number: int, embedding: List[float], model: str) -> None:
        with psycopg.connect(self.db_url) as conn:
            with conn.cursor() as cur:
                cur.execute("""
                    UPDATE page_summaries
                    SET embedding = %s::double precision[],
                        embedding_model = %s,
                        embedding_updated_at = %s
                    WHERE book_id = %s AND page_number = %s
                """, (embedding, model, _now(), book_id, page_number))
            conn.commit()

    @_store_operation
    def similar_page_candidates(self, book_id: str, before_page: int, model: str) -> List[PageSummary]:
        """Pages of the same book before ``before_page`` embedded with ``model``."""
        with psycopg.connect(self.db_url) as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(f"""
                    SELECT {PAGE_COLUMNS}
                    FROM page_summaries
                    WHERE book_id = %s
                      AND page_number < %s
                      AND embedding IS NOT NULL
                      AND embedding_model = %s
                    ORDER BY page_number
                """, (book_id, before_page, model))
                rows = cur.fetchall()
        return [_row_to_page(row) for row in rows]

    @_store_operation
    def embedding_stats(self, book_id: str) -> Dict[str, Any]:
        with psycopg.connect(self.db_url) as conn:
            with conn.cursor() as cur:
                cur.execute("""
                    SELECT COUNT(*), COUNT(embedding)
                    FROM page_summaries
                    WHERE book_id = %s AND ocr_text IS NOT NULL
                """, (book_id,))
                total, embedded = cur.fetchone()
                cur.execute("""
                    SELECT embedding_model, COUNT(*)
                    FROM page_summaries
                    WHERE book_id = %s AND embedding IS NOT NULL
                    GROUP BY embedding_model
                """, (book_id,))
                models = {model: count for model, count in cur.fetchall()}
        return embedding_stats_from_counts(book_id, total, embedded, models)


def embedding_stats_from_counts(book_id: str, total: int, embedded: int, models: Dict[str, int]) -> Dict[str, Any]:
    """Shape embedding coverage counts into the reported stats."""
    return {
        "book_id": book_id,
        "total_pages": total,
        "embedded_pages": embedded,
        "pending_pages": total - embedded,
        "completion_rate": (embedded / total) if total else 0.0,
        "models": models,
    }
