"""
qualitative.py — Qualitative (categorical) grading helpers.

Preschool grades are graded with performance categories instead of weighted
numeric activities:
  DS (Superior), DA (High), DB (Basic), SP (Not yet / Sin Presentar)

Two fixed tables live here and are deliberately NOT inverses of each other:
  - CATEGORY_VALUES: category picked by the teacher → number stored
  - CATEGORY_THRESHOLDS: computed score → category shown
"""

import os
import unicodedata
from enum import Enum
from typing import Iterable, Optional, Set, Union


class GradingMode(str, Enum):
    QUANTITATIVE = "quantitative"
    QUALITATIVE = "qualitative"


class QualitativeCategory(str, Enum):
    DS = "DS"
    DA = "DA"
    DB = "DB"
    SP = "SP"


# Input conversion: selected category → stored numeric value.
CATEGORY_VALUES = {
    QualitativeCategory.DS: 5.0,
    QualitativeCategory.DA: 4.0,
    QualitativeCategory.DB: 3.5,
    QualitativeCategory.SP: 3.0,
}

# Output thresholds (min_score, category), evaluated top-down.
CATEGORY_THRESHOLDS = [
    (4.6, QualitativeCategory.DS),
    (4.0, QualitativeCategory.DA),
    (3.5, QualitativeCategory.DB),
]

CATEGORY_LABELS = {
    QualitativeCategory.DS: "Superior",
    QualitativeCategory.DA: "High",
    QualitativeCategory.DB: "Basic",
    QualitativeCategory.SP: "Not yet",
}

DEFAULT_QUALITATIVE_GRADES = ("Prejardín", "Jardín", "Transición")

UNIQUE_SCORE_ID = "unique"
UNIQUE_SCORE_NAME = "Unique Score"


def _normalize_name(value: str) -> str:
    """Lowercase and strip accents so 'Transición' == 'transicion'."""
    decomposed = unicodedata.normalize("NFKD", str(value).strip().lower())
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def qualitative_grades() -> Set[str]:
    """Grade names graded qualitatively, from QUALITATIVE_GRADES or the defaults."""
    raw = os.getenv("QUALITATIVE_GRADES", "")
    names: Iterable[str] = [n for n in raw.split(",") if n.strip()] or DEFAULT_QUALITATIVE_GRADES
    return {_normalize_name(n) for n in names}


def grading_mode_for(grade_name: Optional[str]) -> GradingMode:
    """Derive the grading mode from the grade's name."""
    if grade_name and _normalize_name(grade_name) in qualitative_grades():
        return GradingMode.QUALITATIVE
    return GradingMode.QUANTITATIVE


def parse_category(value: Union[str, QualitativeCategory]) -> QualitativeCategory:
    """Accept an enum member or its code ('ds', ' DA ')."""
    if isinstance(value, QualitativeCategory):
        return value
    try:
        return QualitativeCategory(str(value).strip().upper())
    except ValueError:
        raise ValueError(f"Unknown qualitative category: {value!r}") from None


def category_to_value(category: Union[str, QualitativeCategory]) -> float:
    return CATEGORY_VALUES[parse_category(category)]


def category_label(category: Union[str, QualitativeCategory]) -> str:
    return CATEGORY_LABELS[parse_category(category)]


def get_category_scale():
    """Full category legend: stored value and minimum computed score per category."""
    thresholds = {category: min_score for min_score, category in CATEGORY_THRESHOLDS}
    return [
        {
            "category": category.value,
            "label": CATEGORY_LABELS[category],
            "stored_value": CATEGORY_VALUES[category],
            "min_score": thresholds.get(category, 0.0),
        }
        for category in QualitativeCategory
    ]
