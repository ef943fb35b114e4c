"""
scoring.py — Final score per student.

Partial-completion normalization: only graded components count, and the
weighted sum is rescaled to the weight actually covered. A student graded on
70% of the weight is scored as if those components were the whole grade;
ungraded components are excluded from the denominator, not treated as zeros.
"""

from typing import Dict, Iterable, Mapping, Optional

from core.qualitative import CATEGORY_THRESHOLDS, QualitativeCategory


def compute_final_score(components: Iterable, scores: Mapping[str, Optional[float]]) -> float:
    """
    Weighted, coverage-normalized score for one student.

    `scores` maps component id → value (None = ungraded). Returns 0 when no
    component is graded.
    """
    weighted_sum = 0.0
    covered_weight = 0.0
    for component in components:
        value = scores.get(component.id)
        if value is None:
            continue
        weighted_sum += float(value) * (component.weight_percent / 100)
        covered_weight += component.weight_percent

    if covered_weight == 0:
        return 0.0
    return round(weighted_sum * (100 / covered_weight), 2)


def compute_qualitative_category(score: float) -> QualitativeCategory:
    """Map a computed score to its category (top-down thresholds)."""
    for min_score, category in CATEGORY_THRESHOLDS:
        if score >= min_score:
            return category
    return QualitativeCategory.SP


def compute_final_scores(components: Iterable, ledger) -> Dict[str, float]:
    """Final score for every student in the ledger."""
    components = list(components)
    return {
        sid: compute_final_score(components, ledger.scores_for(sid))
        for sid in ledger.students
    }


def covered_weight(components: Iterable, scores: Mapping[str, Optional[float]]) -> float:
    """Sum of the weights of the graded components."""
    return round(
        sum(c.weight_percent for c in components if scores.get(c.id) is not None), 2
    )


def format_score(value: Optional[float]) -> str:
    """Scores render with 1 decimal; ungraded renders as '-'."""
    return "-" if value is None else f"{value:.1f}"


def format_weight(value: float) -> str:
    """Weights render with 1 decimal, or 2 when the second one matters."""
    text = f"{value:.2f}"
    return text[:-1] if text.endswith("0") else text
