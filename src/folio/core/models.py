"""Data model for stored page summaries and transient retrieval context."""

from datetime import datetime
from enum import Enum
from typing import List, Optional, Dict, Any
from dataclasses import dataclass
from pydantic import BaseModel, Field


class ViolationCode(str, Enum):
    """Named grounding failures."""
    FORMULAS_NOT_IN_OCR = "FORMULAS_NOT_IN_OCR"
    APPLICATIONS_NOT_IN_OCR = "APPLICATIONS_NOT_IN_OCR"


class OcrStructured(BaseModel):
    """Structured breakdown supplied by the OCR collaborator. Stored, never trusted for grounding."""
    sections: List[Dict[str, Any]] = Field(default_factory=list)
    has_questions: bool = False
    has_formulas: bool = False
    has_examples: bool = False


class OcrInput(BaseModel):
    """What the OCR collaborator hands over for one page."""
    ocr_text: str
    ocr_confidence: float = Field(default=0.0, ge=0, le=100)
    ocr_structured: Optional[OcrStructured] = None
    title: Optional[str] = None


class SummaryStructured(BaseModel):
    """Outline of a generated summary."""
    sections: List[str] = Field(default_factory=list)
    word_count: int = 0


class ValidationMeta(BaseModel):
    """Grounding findings stored next to the summary."""
    violations: List[str] = Field(default_factory=list)
    removed_sections: List[str] = Field(default_factory=list)
    was_sanitized: bool = False


class PageSummary(BaseModel):
    """One row per (book_id, page_number)."""
    book_id: str
    page_number: int
    title: Optional[str] = None
    ocr_text: str
    ocr_confidence: float = Field(default=0.0, ge=0, le=100)
    ocr_structured: Optional[OcrStructured] = None
    summary_markdown: Optional[str] = None
    summary_structured: Optional[SummaryStructured] = None
    confidence: float = Field(default=0.0, ge=0, le=100)
    compliance_score: Optional[float] = Field(default=None, ge=0, le=100)
    validation_meta: ValidationMeta = Field(default_factory=ValidationMeta)
    embedding: Optional[List[float]] = None
    embedding_model: Optional[str] = None
    embedding_updated_at: Optional[datetime] = None
    provider_used: Optional[str] = None
    is_stale: bool = False
    updated_at: Optional[datetime] = None


class PageRejection(BaseModel):
    """Record of a summary the persistence gate refused to write."""
    book_id: str
    page_number: int
    compliance_score: float
    minimum_score: float
    violations: List[str] = Field(default_factory=list)
    provider_used: Optional[str] = None
    rejected_at: Optional[datetime] = None


@dataclass
class RAGContext:
    """A similar earlier page retrieved for prompt augmentation."""
    page_id: str
    page_number: int
    content: str
    similarity: float
    title: Optional[str] = None
    summary: Optional[str] = None
