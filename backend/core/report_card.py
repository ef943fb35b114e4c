"""
report_card.py — Read-only summaries of saved grades.

Computes:
- Server-side weighted totals (missing values count as 0, no normalization)
- Performance labels (Superior / High / Basic / Low)
- Per-period summaries for a student: per-area totals, average, band counts
- The gradebook as a pandas table and as a styled Excel workbook
"""

from typing import Any, Dict, Iterable, List, Optional

import numpy as np
import pandas as pd
from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils.dataframe import dataframe_to_rows

from core.qualitative import GradingMode
from core.scoring import format_weight


# Performance bands (min_score, label), ordered high to low.
PERFORMANCE_BANDS = [
    (4.5, "Superior"),
    (4.0, "High"),
    (3.0, "Basic"),
    (0.0, "Low"),
]

EXCELLENT_MIN = 4.0
GOOD_MIN = 3.0


# ── Helpers ─────────────────────────────────────────────────────────

def _field(note, *names, default=None):
    for name in names:
        if isinstance(note, dict):
            if name in note:
                return note[name]
        elif hasattr(note, name):
            return getattr(note, name)
    return default


def _safe_float(val) -> Optional[float]:
    try:
        v = float(val)
        return None if np.isnan(v) or np.isinf(v) else round(v, 2)
    except (TypeError, ValueError):
        return None


# ── Scores ──────────────────────────────────────────────────────────

def weighted_total(notes: Iterable) -> float:
    """
    Final score the way the server stores it: sum(value × weight / 100).
    Accepts Note objects or dicts with value/weight_percent keys.
    """
    notes = list(notes or [])
    if not notes:
        return 0.0
    total_weight = sum(_safe_float(_field(n, "weight_percent", "porcentaje")) or 0.0 for n in notes)
    if total_weight == 0:
        return 0.0
    total = sum(
        (_safe_float(_field(n, "value", "valor")) or 0.0)
        * (_safe_float(_field(n, "weight_percent", "porcentaje")) or 0.0) / 100
        for n in notes
    )
    return round(total, 2)


def performance_label(score: Optional[float]) -> str:
    value = _safe_float(score)
    if value is None:
        return "-"
    for min_score, label in PERFORMANCE_BANDS:
        if value >= min_score:
            return label
    return "Low"


def summarize_period(
    records: List[Dict[str, Any]],
    period: int,
    area_id: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Summarize one student's saved grades for a period.

    Each record: {"area_id", "area_name", "period", "notes": [...]}.
    """
    rows = [
        {
            "area_id": str(r.get("area_id", "")),
            "area_name": r.get("area_name") or str(r.get("area_id", "")),
            "period": int(r.get("period") or 0),
            "final_score": weighted_total(r.get("notes")),
        }
        for r in records
    ]
    df = pd.DataFrame(rows, columns=["area_id", "area_name", "period", "final_score"])
    df = df[df["period"] == int(period)]
    if area_id is not None:
        df = df[df["area_id"] == str(area_id)]

    if df.empty:
        return {
            "period": int(period),
            "areas": [],
            "average": 0.0,
            "bands": {"excellent": 0, "good": 0, "needs_improvement": 0},
        }

    scores = df["final_score"]
    return {
        "period": int(period),
        "areas": [
            {
                "area_id": row.area_id,
                "area_name": row.area_name,
                "final_score": _safe_float(row.final_score),
                "performance": performance_label(row.final_score),
            }
            for row in df.itertuples(index=False)
        ],
        "average": _safe_float(scores.mean()),
        "bands": {
            "excellent": int((scores >= EXCELLENT_MIN).sum()),
            "good": int(((scores >= GOOD_MIN) & (scores < EXCELLENT_MIN)).sum()),
            "needs_improvement": int((scores < GOOD_MIN).sum()),
        },
    }


# ── Gradebook table ─────────────────────────────────────────────────

def _component_headers(components) -> Dict[str, str]:
    """Column header per component id; repeated names get the id appended."""
    counts: Dict[str, int] = {}
    for c in components:
        counts[c.name] = counts.get(c.name, 0) + 1
    return {
        c.id: (
            f"{c.name} [{c.id}] ({format_weight(c.weight_percent)}%)"
            if counts[c.name] > 1
            else f"{c.name} ({format_weight(c.weight_percent)}%)"
        )
        for c in components
    }


def gradebook_frame(gradebook, student_names: Optional[Dict[str, str]] = None) -> pd.DataFrame:
    """One row per student, one column per component, then the final score."""
    student_names = student_names or {}
    components = gradebook.schema.components
    finals = gradebook.final_scores()
    categories = gradebook.categories()
    headers = _component_headers(components)

    rows = []
    for sid in gradebook.ledger.students:
        row: Dict[str, Any] = {"student_id": sid, "name": student_names.get(sid, "")}
        for c in components:
            row[headers[c.id]] = gradebook.ledger.get_score(sid, c.id)
        row["final_score"] = finals.get(sid, 0.0)
        if gradebook.mode == GradingMode.QUALITATIVE:
            row["category"] = categories.get(sid)
        else:
            row["performance"] = performance_label(row["final_score"])
        rows.append(row)

    columns = ["student_id", "name"] + [headers[c.id] for c in components] + [
        "final_score", "category" if gradebook.mode == GradingMode.QUALITATIVE else "performance",
    ]
    return pd.DataFrame(rows, columns=columns)


def export_gradebook_excel(
    output_path: str,
    gradebook,
    school_name: str,
    student_names: Optional[Dict[str, str]] = None,
):
    """Write the gradebook to an .xlsx with a colour per performance band."""
    df = gradebook_frame(gradebook, student_names)
    # Ungraded cells stay empty instead of NaN.
    df = df.astype(object).where(df.notna(), None)

    header_font = Font(bold=True, color="FFFFFF", size=11)
    header_fill = PatternFill(start_color="1a1a2e", end_color="1a1a2e", fill_type="solid")
    red_fill = PatternFill(start_color="fadbd8", end_color="fadbd8", fill_type="solid")
    green_fill = PatternFill(start_color="d5f5e3", end_color="d5f5e3", fill_type="solid")
    yellow_fill = PatternFill(start_color="fef9e7", end_color="fef9e7", fill_type="solid")
    thin_border = Border(
        left=Side(style="thin"), right=Side(style="thin"),
        top=Side(style="thin"), bottom=Side(style="thin"),
    )

    wb = Workbook()
    ws = wb.active
    ws.title = f"Period {gradebook.period}"
    ws.append([school_name])
    ws.append([f"Grade {gradebook.grade_id} · Area {gradebook.area_id} · Period {gradebook.period}"])
    ws["A1"].font = Font(bold=True, size=13)
    header_row = 3

    for row in dataframe_to_rows(df, index=False, header=True):
        ws.append(row)

    for cell in ws[header_row]:
        cell.font = header_font
        cell.fill = header_fill
        cell.alignment = Alignment(horizontal="center")
        cell.border = thin_border

    final_idx = list(df.columns).index("final_score")
    for row in ws.iter_rows(min_row=header_row + 1, max_row=ws.max_row):
        for cell in row:
            cell.border = thin_border
            cell.alignment = Alignment(horizontal="center")
        value = row[final_idx].value
        if value is not None:
            fill = green_fill if value >= EXCELLENT_MIN else (yellow_fill if value >= GOOD_MIN else red_fill)
            for cell in row:
                cell.fill = fill

    ws.freeze_panes = ws.cell(row=header_row + 1, column=1)
    for col_cells in ws.iter_cols(min_row=header_row):
        max_len = max(len(str(cell.value or "")) for cell in col_cells)
        ws.column_dimensions[col_cells[0].column_letter].width = min(max_len + 4, 30)

    wb.save(output_path)
