"""Independent grounding checks: does the source text actually contain formulas or examples?

The classifiers are plain rule tables. A rule is a name, a compiled regex and
a human-readable description; a source "has formulas" when any formula rule
matches it. The self-check a model reports about its own output is never
trusted on its own, only unioned with what these rules find.
"""

import re
from dataclasses import dataclass, field
from typing import Iterable, List, Pattern, Tuple

from .models import ViolationCode
from .sections import EXAMPLES_APPLICATIONS, FORMULAS_EQUATIONS, has_section


@dataclass(frozen=True)
class MarkerRule:
    """One documented pattern that counts as evidence in the source text."""
    name: str
    pattern: Pattern[str]
    description: str

    def matches(self, text: str) -> bool:
        return bool(self.pattern.search(text))


ARABIC_LETTER = '[ء-ي]'

# A chemical formula term with optional coefficient and state, e.g. '2H2O', 'NaCl(aq)'
CHEMICAL_TERM = r'\d*(?:[A-Z][a-z]?[0-9₀-₉]*)+(?:\((?:s|l|g|aq)\))?'
REACTION_ARROW = r'(?:→|←|⇌|⟶|->|<-)'

FORMULA_RULES: Tuple[MarkerRule, ...] = (
    MarkerRule(
        name="symbolic_assignment",
        pattern=re.compile(r'(?<![\w=<>!])[A-Za-zα-ωΑ-Ω][\w]{0,3}\s*=\s*[-+(]?\s*[A-Za-zα-ωΑ-Ω0-9(]'),
        description="A short symbol set equal to a term, e.g. 'F = ma' or 'v = d/t'",
    ),
    MarkerRule(
        name="arabic_symbolic_assignment",
        pattern=re.compile(
            r'(?<![\w=<>!])' + ARABIC_LETTER + ARABIC_LETTER + r'{0,15}\s*=\s*[-+(]?\s*(?:'
            + ARABIC_LETTER + r'|[A-Za-z0-9(])'
        ),
        description="An Arabic symbol or word set equal to a term, e.g. 'ق = ك × ت'",
    ),
    MarkerRule(
        name="chemical_reaction",
        pattern=re.compile(
            r'\b' + CHEMICAL_TERM + r'(?:\s*\+\s*' + CHEMICAL_TERM + r')*\s*' + REACTION_ARROW + r'\s*' + CHEMICAL_TERM
            + r'|' + ARABIC_LETTER + r'+\s*\+\s*' + ARABIC_LETTER + r'+\s*' + REACTION_ARROW
        ),
        description="Reactants joined by '+' and a reaction arrow, e.g. '2H2 + O2 → 2H2O'",
    ),
    MarkerRule(
        name="multiply_divide",
        pattern=re.compile(r'[\w)\]]\s*[×÷]\s*[\w(\[]'),
        description="Two terms joined by × or ÷, e.g. 'ك × ت' or 'm ÷ V'",
    ),
    MarkerRule(
        name="numeric_operation",
        pattern=re.compile(r'\d+(?:\.\d+)?\s*[+\-×x*/÷^]\s*\d+(?:\.\d+)?\s*='),
        description="Arithmetic with an equals sign, e.g. '3 × 4 = 12'",
    ),
    MarkerRule(
        name="math_symbol",
        pattern=re.compile(r'[∫∑∏√∂∇∆≤≥≠≈∝]'),
        description="A mathematical operator symbol",
    ),
    MarkerRule(
        name="latex",
        pattern=re.compile(r'\$\$.+?\$\$|\\(?:frac|sqrt|sum|int)\b', re.DOTALL),
        description="LaTeX math markup",
    ),
    MarkerRule(
        name="formula_keyword",
        pattern=re.compile(r'\b(?:equations?|formulas?|formulae|law of)\b|قانون|معادلة|صيغة', re.IGNORECASE),
        description="The words equation/formula/law of, or their Arabic equivalents",
    ),
)

EXAMPLE_RULES: Tuple[MarkerRule, ...] = (
    MarkerRule(
        name="example_keyword",
        pattern=re.compile(r'\bexamples?\b', re.IGNORECASE),
        description="The word 'example' or 'examples'",
    ),
    MarkerRule(
        name="arabic_example_keyword",
        pattern=re.compile(r'مثال|أمثلة'),
        description="The Arabic words for example/examples",
    ),
    MarkerRule(
        name="numbered_problem",
        pattern=re.compile(r'\b(?:sample\s+)?problem\s+\d+', re.IGNORECASE),
        description="A numbered problem, e.g. 'Problem 3' or 'Sample problem 2'",
    ),
    MarkerRule(
        name="arabic_numbered_problem",
        pattern=re.compile(r'مسألة\s*[\d٠-٩]+'),
        description="A numbered problem in Arabic, Western or Arabic-Indic digits",
    ),
)


@dataclass
class GroundingFacts:
    """What the rule tables found in a source text."""
    has_formulas: bool
    has_examples: bool
    formula_markers: List[str] = field(default_factory=list)
    example_markers: List[str] = field(default_factory=list)


def _matching_rules(rules: Iterable[MarkerRule], text: str) -> List[str]:
    return [rule.name for rule in rules if rule.matches(text)]


def classify_source(ocr_text: str) -> GroundingFacts:
    """Evaluate every rule table against the source text."""
    text = ocr_text or ""
    formula_markers = _matching_rules(FORMULA_RULES, text)
    example_markers = _matching_rules(EXAMPLE_RULES, text)
    return GroundingFacts(
        has_formulas=bool(formula_markers),
        has_examples=bool(example_markers),
        formula_markers=formula_markers,
        example_markers=example_markers,
    )


def detect_has_formulas(ocr_text: str) -> bool:
    return classify_source(ocr_text).has_formulas


def detect_has_examples(ocr_text: str) -> bool:
    return classify_source(ocr_text).has_examples


def derive_violations(summary: str, ocr_text: str, self_reported: Iterable[str] = ()) -> List[str]:
    """
    Compare a summary against its source and return violation codes.

    Findings of the rule tables come first, then any self-reported codes not
    already present, in the order reported.
    """
    facts = classify_source(ocr_text)
    violations: List[str] = []

    if has_section(summary, FORMULAS_EQUATIONS) and not facts.has_formulas:
        violations.append(ViolationCode.FORMULAS_NOT_IN_OCR.value)
    if has_section(summary, EXAMPLES_APPLICATIONS) and not facts.has_examples:
        violations.append(ViolationCode.APPLICATIONS_NOT_IN_OCR.value)

    for code in self_reported:
        code = str(code.value if isinstance(code, ViolationCode) else code)
        if code not in violations:
            violations.append(code)

    return violations
