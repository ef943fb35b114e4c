"""
Summary routes — read-only views over saved grades (student report card).
"""

from fastapi import APIRouter, HTTPException

from core.errors import ValidationError
from core.gradebook import validate_period
from core.qualitative import get_category_scale
from core.report_card import PERFORMANCE_BANDS, performance_label, summarize_period
from core.scoring import compute_qualitative_category

router = APIRouter()


@router.post("/period")
async def period_summary(payload: dict):
    """
    Per-area totals, average and band counts for one student and period.
    Expects: { "records": [{ area_id, area_name, period, notes: [...] }],
               "period": 1, "area_id": optional }
    """
    records = payload.get("records")
    if records is None:
        raise HTTPException(400, "No records provided.")
    try:
        period = validate_period(payload.get("period", 1))
    except ValidationError as exc:
        raise HTTPException(400, str(exc))
    return summarize_period(records, period, area_id=payload.get("area_id"))


@router.post("/performance")
async def performance(payload: dict):
    """Performance label and qualitative category for a score."""
    try:
        score = float(payload.get("score"))
    except (TypeError, ValueError):
        raise HTTPException(400, "Provide a numeric 'score'.")
    return {
        "score": round(score, 2),
        "performance": performance_label(score),
        "category": compute_qualitative_category(score).value,
    }


@router.get("/scales")
async def scales():
    """Performance bands and the qualitative category legend."""
    return {
        "performance": [{"min": m, "label": label} for m, label in PERFORMANCE_BANDS],
        "categories": get_category_scale(),
    }
