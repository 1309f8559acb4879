"""
Tests for the grounding rule tables and violation derivation.
"""

import pytest

from folio.core.grounding import (
    EXAMPLE_RULES,
    FORMULA_RULES,
    classify_source,
    derive_violations,
    detect_has_examples,
    detect_has_formulas,
)
from folio.core.models import ViolationCode

from fakes import FORMULA_OCR, PLAIN_OCR, SUMMARY_WITH_UNGROUNDED_SECTIONS


class TestRuleTables:
    """Tests for the documented rule tables."""

    def test_every_rule_is_documented(self):
        for rule in FORMULA_RULES + EXAMPLE_RULES:
            assert rule.name
            assert rule.description

    def test_rule_names_are_unique(self):
        names = [rule.name for rule in FORMULA_RULES + EXAMPLE_RULES]
        assert len(names) == len(set(names))


class TestDetectHasFormulas:
    """Tests for formula detection in source text."""

    @pytest.mark.parametrize("text", [
        "F = ma",
        "The speed is given by v = d/t for constant motion.",
        "3 × 4 = 12",
        "the integral ∫ f(x) dx",
        "$$E=mc^2$$",
        "use \\frac{a}{b}",
        "Ohm's law of resistance",
        "The quadratic formula gives both roots.",
        "قانون نيوتن الثاني",
        "معادلة الحالة للغاز المثالي",
        "Hydrogen burns in oxygen: 2H2 + O2 → 2H2O",
        "NaCl(s) ⇌ Na+ + Cl-",
        "CaCO3 -> CaO + CO2",
        "ق = ك × ت",
        "السرعة = المسافة ÷ الزمن",
        "هيدروجين + أكسجين → ماء",
    ])
    def test_detects_formula_markers(self, text):
        assert detect_has_formulas(text)

    @pytest.mark.parametrize("text,rule", [
        ("2H2 + O2 → 2H2O", "chemical_reaction"),
        ("ق = ك × ت", "arabic_symbolic_assignment"),
        ("ق = ك × ت", "multiply_divide"),
    ])
    def test_equation_forms_match_their_rule(self, text, rule):
        assert rule in classify_source(text).formula_markers

    @pytest.mark.parametrize("text", [
        "",
        PLAIN_OCR,
        "A mixture is a combination of substances.",
        "المخلوط هو مزيج من مادتين أو أكثر.",
        "Ice melts: Solid → liquid when heated.",
    ])
    def test_plain_prose_has_no_formulas(self, text):
        assert not detect_has_formulas(text)

    def test_reports_matching_rules(self):
        facts = classify_source(FORMULA_OCR)
        assert facts.has_formulas
        assert "symbolic_assignment" in facts.formula_markers
        assert "formula_keyword" in facts.formula_markers


class TestDetectHasExamples:
    """Tests for example detection in source text."""

    @pytest.mark.parametrize("text", [
        "Example 1: a cart on a ramp",
        "See the examples below.",
        "Sample problem 2 shows the method.",
        "Problem 7",
        "مثال: احسب القوة",
        "أمثلة محلولة",
        "مسألة ٣",
        "مسألة 12",
    ])
    def test_detects_example_markers(self, text):
        assert detect_has_examples(text)

    @pytest.mark.parametrize("text", [
        "",
        PLAIN_OCR,
        "This is an exemplary page.",
        "There is no problem here.",
    ])
    def test_no_examples(self, text):
        assert not detect_has_examples(text)


class TestDeriveViolations:
    """Tests for comparing a summary against its source."""

    def test_ungrounded_sections_are_flagged(self):
        violations = derive_violations(SUMMARY_WITH_UNGROUNDED_SECTIONS, PLAIN_OCR)
        assert violations == [
            ViolationCode.FORMULAS_NOT_IN_OCR.value,
            ViolationCode.APPLICATIONS_NOT_IN_OCR.value,
        ]

    def test_grounded_sections_are_not_flagged(self):
        assert derive_violations(SUMMARY_WITH_UNGROUNDED_SECTIONS, FORMULA_OCR) == []

    def test_arabic_headings_are_recognised(self):
        summary = "## نظرة عامة\nنص\n\n## الصيغ والمعادلات\n$$x$$\n"
        assert derive_violations(summary, PLAIN_OCR) == [ViolationCode.FORMULAS_NOT_IN_OCR.value]

    def test_bold_heading_is_recognised(self):
        summary = "## **Formulas & Equations**\n$$x$$\n"
        assert derive_violations(summary, PLAIN_OCR) == [ViolationCode.FORMULAS_NOT_IN_OCR.value]

    def test_self_reported_codes_are_unioned_in_order(self):
        violations = derive_violations(
            SUMMARY_WITH_UNGROUNDED_SECTIONS,
            PLAIN_OCR,
            ["APPLICATIONS_NOT_IN_OCR", "CUSTOM_CODE", "CUSTOM_CODE"],
        )
        assert violations == [
            "FORMULAS_NOT_IN_OCR",
            "APPLICATIONS_NOT_IN_OCR",
            "CUSTOM_CODE",
        ]

    def test_self_reported_only(self):
        summary = "## Overview\nFine.\n"
        assert derive_violations(summary, PLAIN_OCR, [ViolationCode.FORMULAS_NOT_IN_OCR]) == [
            "FORMULAS_NOT_IN_OCR"
        ]

    def test_empty_summary(self):
        assert derive_violations("", PLAIN_OCR) == []
