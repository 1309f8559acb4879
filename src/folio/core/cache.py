"""Client cache keys and the invalidation signal sent after a page changes."""

import json
import logging
from typing import List, Protocol

import psycopg

from .errors import StoreError

logger = logging.getLogger(__name__)

INVALIDATION_CHANNEL = "page_summary_invalidated"


def cache_keys(book_id: str, page_number: int) -> List[str]:
    """Keys under which clients cache a page's OCR text and summary."""
    return [
        f"book:ocr:{book_id}:{page_number}",
        f"book:summary:{book_id}:{page_number}",
        f"book:ocr-timestamp:{book_id}:{page_number}",
        f"book:summary-timestamp:{book_id}:{page_number}",
    ]


class CacheInvalidator(Protocol):
    def invalidate(self, book_id: str, page_number: int, reason: str) -> None: ...


class PgNotifyInvalidator:
    """Publishes invalidations on a PostgreSQL NOTIFY channel for cache holders to consume."""

    def __init__(self, db_url: str, channel: str = INVALIDATION_CHANNEL):
        self.db_url = db_url
        self.channel = channel

    def invalidate(self, book_id: str, page_number: int, reason: str) -> None:
        payload = json.dumps({
            "book_id": book_id,
            "page_number": page_number,
            "reason": reason,
            "keys": cache_keys(book_id, page_number),
        }, ensure_ascii=False)

        try:
            with psycopg.connect(self.db_url) as conn:
                with conn.cursor() as cur:
                    cur.execute("SELECT pg_notify(%s, %s)", (self.channel, payload))
                conn.commit()
        except psycopg.Error as e:
            raise StoreError(f"cache invalidation failed: {e}") from e

        logger.debug(f"Invalidated cache for book={book_id} page={page_number} ({reason})")
