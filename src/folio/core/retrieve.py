"""Context retrieval: similar earlier pages of the same book, within a character budget."""

import time
import logging
from typing import List, Optional

from .config import RAGOptions
from .embed import Embedder
from .logging_config import get_audit_logger, log_context_retrieval
from .models import RAGContext
from .store import PageStore
from .vector_index import PageVectorIndex

logger = logging.getLogger(__name__)
audit_logger = get_audit_logger("retrieve")

ELLIPSIS = "..."


def rank_candidates(
    query_vector: List[float],
    candidates: list,
    options: RAGOptions,
    dimensions: int
) -> List[RAGContext]:
    """Score stored pages against the query; keep those above threshold, best first."""
    index = PageVectorIndex(dimensions)
    index.add(
        [page.page_number for page in candidates],
        [page.embedding for page in candidates]
    )
    by_number = {page.page_number: page for page in candidates}

    contexts = []
    for page_number, similarity in index.search(query_vector):
        if similarity < options.similarity_threshold:
            continue
        page = by_number[page_number]
        contexts.append(RAGContext(
            page_id=f"{page.book_id}:{page.page_number}",
            page_number=page.page_number,
            title=page.title,
            content=page.ocr_text,
            summary=page.summary_markdown,
            similarity=similarity,
        ))

    # Stable tie-break on page number keeps results deterministic
    contexts.sort(key=lambda c: (-c.similarity, c.page_number))
    return contexts[:options.max_context_pages]


def retrieve_context(
    book_id: str,
    page_number: int,
    query_text: str,
    options: RAGOptions,
    embedder: Embedder,
    store: PageStore
) -> List[RAGContext]:
    """
    Find similar pages before ``page_number`` in the same book.

    Returns an empty list when retrieval is disabled or when anything fails;
    retrieval never fails the calling pipeline.
    """
    if not options.enabled:
        return []

    start_time = time.time()
    try:
        query_vector = embedder.embed(query_text)
        candidates = store.similar_page_candidates(book_id, page_number, embedder.model)
        contexts = rank_candidates(query_vector, candidates, options, embedder.dimensions)
    except Exception as e:
        logger.warning(f"Context retrieval failed for book={book_id} page={page_number}: {e}")
        return []

    execution_time_ms = (time.time() - start_time) * 1000
    log_context_retrieval(
        audit_logger,
        book_id=book_id,
        page_number=page_number,
        candidates=len(candidates),
        pages_used=[c.page_number for c in contexts],
        context_chars=sum(len(c.content) for c in contexts),
        execution_time_ms=execution_time_ms
    )
    return contexts


def format_context_entry(context: RAGContext) -> str:
    if context.title:
        return f"Page {context.page_number} ({context.title}): {context.content}\n\n"
    return f"Page {context.page_number}: {context.content}\n\n"


def build_context_block(contexts: List[RAGContext], max_length: int) -> str:
    """
    Concatenate context entries without exceeding ``max_length`` characters.

    The first entry that does not fit is cut to the remaining budget and ends
    with an ellipsis; nothing is added after it.
    """
    parts = []
    used = 0
    for context in contexts:
        entry = format_context_entry(context)
        remaining = max_length - used
        if len(entry) <= remaining:
            parts.append(entry)
            used += len(entry)
            continue

        if remaining > len(ELLIPSIS):
            parts.append(entry[:remaining - len(ELLIPSIS)] + ELLIPSIS)
        break

    return "".join(parts)


def context_for_page(
    book_id: str,
    page_number: int,
    query_text: str,
    options: RAGOptions,
    embedder: Optional[Embedder],
    store: Optional[PageStore]
) -> str:
    """Retrieve and assemble the context block in one step. Empty when unavailable."""
    if embedder is None or store is None:
        return ""
    contexts = retrieve_context(book_id, page_number, query_text, options, embedder, store)
    return build_context_block(contexts, options.max_context_length)
