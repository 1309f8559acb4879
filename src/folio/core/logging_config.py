"""Structured logging configuration for Folio."""

from typing import Dict, Any, List, Optional
import structlog
from structlog.stdlib import LoggerFactory
import logging


def configure_logging(log_level: str = "INFO", json_logs: bool = True) -> None:
    """Configure structured logging with audit capabilities."""

    # Set log level
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)
    logging.basicConfig(level=numeric_level)

    # Configure structlog processors
    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
    ]

    if json_logs:
        # JSON output for production/audit
        processors.append(structlog.processors.JSONRenderer())
    else:
        # Human-readable for development
        processors.extend([
            structlog.dev.ConsoleRenderer(colors=True),
        ])

    structlog.configure(
        processors=processors,
        logger_factory=LoggerFactory(),
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        cache_logger_on_first_use=True,
    )


def get_audit_logger(component: str) -> structlog.BoundLogger:
    """Get a logger with audit context for a specific component."""
    logger = structlog.get_logger(component)
    return logger.bind(component=component, audit=True)


def log_context_retrieval(
    logger: structlog.BoundLogger,
    book_id: str,
    page_number: int,
    candidates: int,
    pages_used: List[int],
    context_chars: int,
    execution_time_ms: float
) -> None:
    """Log RAG context assembly for a page."""
    logger.info(
        "context_retrieval_completed",
        book_id=book_id,
        page_number=page_number,
        candidates=candidates,
        pages_used=pages_used,
        context_chars=context_chars,
        execution_time_ms=execution_time_ms,
        event_type="context_retrieval"
    )


def log_summary_generated(
    logger: structlog.BoundLogger,
    book_id: str,
    page_number: int,
    provider: str,
    page_kind: str,
    continuation_calls: int,
    summary_chars: int,
    generation_time_ms: float
) -> None:
    """Log a completed summarization request."""
    logger.info(
        "summary_generated",
        book_id=book_id,
        page_number=page_number,
        provider=provider,
        page_kind=page_kind,
        continuation_calls=continuation_calls,
        summary_chars=summary_chars,
        generation_time_ms=generation_time_ms,
        event_type="summary_generation"
    )


def log_gate_decision(
    logger: structlog.BoundLogger,
    book_id: str,
    page_number: int,
    accepted: bool,
    compliance_score: float,
    minimum_score: float,
    violations: List[str],
    removed_sections: Optional[List[str]] = None
) -> None:
    """Log persistence gate decisions with full context."""
    logger.info(
        "persistence_gate_decision",
        book_id=book_id,
        page_number=page_number,
        accepted=accepted,
        compliance_score=compliance_score,
        minimum_score=minimum_score,
        violations=violations,
        removed_sections=removed_sections or [],
        event_type="persistence_gate"
    )


def log_backfill_completed(
    logger: structlog.BoundLogger,
    report: Dict[str, Any],
    execution_time_ms: float
) -> None:
    """Log an embedding backfill run."""
    logger.info(
        "embedding_backfill_completed",
        execution_time_ms=execution_time_ms,
        event_type="embedding_backfill",
        **report
    )
