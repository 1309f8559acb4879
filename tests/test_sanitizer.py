"""
Tests for section-scoped sanitization.
"""

from folio.core.models import ViolationCode
from folio.core.sanitizer import sanitize_summary

from fakes import FORMULA_OCR, PLAIN_OCR, SUMMARY_WITH_UNGROUNDED_SECTIONS


OVERVIEW = "## Overview\nMixtures keep the properties of their parts.\n\n"
FORMULAS = "## Formulas & Equations\n$$E=mc^2$$\n\n"
QUESTIONS = "## Questions & Answers\n**Q1:** What is a solute?\n**A:** The dissolved substance.\n"


class TestSectionScopedRemoval:
    """Only the offending section is removed; its neighbours are untouched."""

    def test_neighbours_are_byte_identical(self):
        summary = OVERVIEW + FORMULAS + QUESTIONS
        result = sanitize_summary(summary, PLAIN_OCR, [ViolationCode.FORMULAS_NOT_IN_OCR.value])

        assert result.was_sanitized
        assert result.sanitized_content == OVERVIEW + QUESTIONS
        assert result.removed_sections == ["Formulas & Equations"]

    def test_section_at_document_end(self):
        summary = OVERVIEW + FORMULAS
        result = sanitize_summary(summary, PLAIN_OCR, ["FORMULAS_NOT_IN_OCR"])
        assert result.sanitized_content == OVERVIEW

    def test_section_at_document_start(self):
        summary = FORMULAS + QUESTIONS
        result = sanitize_summary(summary, PLAIN_OCR, ["FORMULAS_NOT_IN_OCR"])
        assert result.sanitized_content == QUESTIONS

    def test_nested_subsections_are_removed_with_their_parent(self):
        summary = OVERVIEW + "## Formulas & Equations\n### Motion\nF = ma\n\n### Energy\nE = mc^2\n\n" + QUESTIONS
        result = sanitize_summary(summary, PLAIN_OCR, ["FORMULAS_NOT_IN_OCR"])
        assert result.sanitized_content == OVERVIEW + QUESTIONS

    def test_seam_collapses_to_one_blank_line(self):
        summary = "## Overview\nText.\n\n\n\n" + FORMULAS + "\n\n\n" + QUESTIONS
        result = sanitize_summary(summary, PLAIN_OCR, ["FORMULAS_NOT_IN_OCR"])
        assert result.sanitized_content == "## Overview\nText.\n\n" + QUESTIONS

    def test_blank_runs_away_from_the_seam_are_preserved(self):
        overview = "## Overview\nFirst paragraph.\n\n\n\nSecond paragraph.\n\n"
        result = sanitize_summary(overview + FORMULAS + QUESTIONS, PLAIN_OCR, ["FORMULAS_NOT_IN_OCR"])
        assert result.sanitized_content == overview + QUESTIONS

    def test_every_matching_heading_is_removed(self):
        summary = OVERVIEW + FORMULAS + QUESTIONS + "\n" + FORMULAS
        result = sanitize_summary(summary, PLAIN_OCR, ["FORMULAS_NOT_IN_OCR"])
        assert "Formulas & Equations" not in result.sanitized_content
        assert result.removed_sections == ["Formulas & Equations"]

    def test_arabic_section_is_removed(self):
        summary = "## نظرة عامة\nنص عن المخاليط.\n\n## التطبيقات والأمثلة\n- تطبيق مخترع\n\n## الأسئلة والحلول الكاملة\nس١\n"
        result = sanitize_summary(summary, PLAIN_OCR, ["APPLICATIONS_NOT_IN_OCR"])
        assert result.sanitized_content == "## نظرة عامة\nنص عن المخاليط.\n\n## الأسئلة والحلول الكاملة\nس١\n"
        assert result.removed_sections == ["Examples & Applications"]


class TestScenarioA:
    """Ungrounded formulas and applications are both stripped."""

    def test_both_sections_removed(self):
        result = sanitize_summary(SUMMARY_WITH_UNGROUNDED_SECTIONS, PLAIN_OCR)

        assert result.was_sanitized
        assert set(result.removed_sections) == {"Formulas & Equations", "Examples & Applications"}
        assert "## Formulas & Equations" not in result.sanitized_content
        assert "## Examples & Applications" not in result.sanitized_content
        assert "$$E=mc^2$$" not in result.sanitized_content
        assert result.sanitized_content.startswith("## Overview\nThe page introduces mixtures and solutions.\n\n")
        assert result.sanitized_content.endswith(QUESTIONS)


class TestNoOp:
    """Cases where nothing is removed."""

    def test_grounded_summary_is_unchanged(self):
        result = sanitize_summary(SUMMARY_WITH_UNGROUNDED_SECTIONS, FORMULA_OCR)
        assert not result.was_sanitized
        assert result.sanitized_content == SUMMARY_WITH_UNGROUNDED_SECTIONS
        assert result.removed_sections == []
        assert result.violations == []

    def test_violation_without_matching_section(self):
        result = sanitize_summary(OVERVIEW, PLAIN_OCR, ["FORMULAS_NOT_IN_OCR"])
        assert not result.was_sanitized
        assert result.sanitized_content == OVERVIEW
        assert result.violations == ["FORMULAS_NOT_IN_OCR"]

    def test_unknown_violation_code_is_kept_but_removes_nothing(self):
        result = sanitize_summary(OVERVIEW + FORMULAS, FORMULA_OCR, ["CUSTOM_CODE"])
        assert not result.was_sanitized
        assert result.violations == ["CUSTOM_CODE"]

    def test_empty_summary(self):
        result = sanitize_summary("", PLAIN_OCR)
        assert result.sanitized_content == ""
        assert not result.was_sanitized

    def test_deterministic(self):
        first = sanitize_summary(SUMMARY_WITH_UNGROUNDED_SECTIONS, PLAIN_OCR)
        second = sanitize_summary(SUMMARY_WITH_UNGROUNDED_SECTIONS, PLAIN_OCR)
        assert first == second

    def test_reaction_equation_section_is_kept(self):
        ocr = "Water forms when hydrogen burns:\n2H2 + O2 → 2H2O\nThe reaction releases heat."
        summary = OVERVIEW + "## Formulas & Equations\n$$2H_2 + O_2 \\rightarrow 2H_2O$$\n"
        result = sanitize_summary(summary, ocr)

        assert not result.was_sanitized
        assert result.violations == []
        assert result.sanitized_content == summary

    def test_arabic_formula_section_is_kept(self):
        ocr = "القوة تساوي الكتلة في التسارع:\nق = ك × ت"
        summary = "## نظرة عامة\nقانون نيوتن.\n\n## الصيغ والمعادلات\n$$ق = ك × ت$$\n"
        result = sanitize_summary(summary, ocr)

        assert not result.was_sanitized
        assert result.sanitized_content == summary
