"""
Gradebook routes — teacher grading sessions.

One in-memory Gradebook per session, hydrated from the GraphQL backend and
saved back to it in a single mutation.
"""

import os
import re
import uuid
from pathlib import Path
from time import time
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import FileResponse
from starlette.background import BackgroundTask

from core.errors import (
    GradebookLocked,
    NotFoundError,
    PersistenceError,
    SchemaInvariantWarning,
    ValidationError,
)
from core.gradebook import Gradebook
from core.persistence import GraphQLClient
from core.report_card import export_gradebook_excel

router = APIRouter()

# In-memory session store: session_id → { gradebook, students, student_names, created_at }
sessions: Dict[str, Dict[str, Any]] = {}
SESSION_TTL_SECONDS = int(os.getenv("SESSION_TTL_SECONDS", str(60 * 60 * 8)))
SCHOOL_NAME = os.getenv("SCHOOL_NAME", "My School")

EXPORT_DIR = Path(__file__).resolve().parent.parent / "exports"
EXPORT_DIR.mkdir(exist_ok=True)


def get_client() -> GraphQLClient:
    return GraphQLClient()


# ── Helpers ─────────────────────────────────────────────────────────

def _guard(fn, *args, **kwargs):
    """Run a gradebook operation, mapping engine errors to HTTP errors."""
    try:
        return fn(*args, **kwargs)
    except ValidationError as exc:
        raise HTTPException(400, str(exc))
    except NotFoundError as exc:
        raise HTTPException(404, str(exc))
    except (GradebookLocked, SchemaInvariantWarning) as exc:
        raise HTTPException(409, str(exc))
    except PersistenceError as exc:
        raise HTTPException(502, str(exc))


def _purge_expired_sessions():
    now = time()
    expired = [
        sid for sid, s in sessions.items()
        if (now - float(s.get("created_at", now))) > SESSION_TTL_SECONDS
    ]
    for sid in expired:
        sessions.pop(sid, None)


def _get_session(session_id: str) -> Dict[str, Any]:
    session = sessions.get(session_id)
    if not session:
        raise HTTPException(404, "Session not found. Load the gradebook again.")
    return session


def _state(session_id: str, gradebook: Gradebook) -> Dict[str, Any]:
    state = gradebook.to_dict()
    state["session_id"] = session_id
    state["events"] = [e.to_dict() for e in gradebook.pop_events()]
    return state


def _hydrate(gradebook: Gradebook, client: GraphQLClient, students):
    records = client.fetch_scores(gradebook.grade_id, gradebook.area_id, gradebook.period)
    indicators = client.fetch_indicators(gradebook.grade_id, gradebook.area_id, gradebook.period)
    gradebook.hydrate(records, indicators, students=students)


def _safe_token(value: str, fallback: str = "item") -> str:
    token = re.sub(r"[^A-Za-z0-9._-]+", "_", str(value)).strip("._-")
    return token or fallback


def _safe_unlink(path: str):
    try:
        Path(path).unlink(missing_ok=True)
    except OSError:
        pass


# ── Session lifecycle ───────────────────────────────────────────────

@router.post("/sessions")
async def open_session(payload: dict, client: GraphQLClient = Depends(get_client)):
    """
    Load a gradebook for a grade/area/period.
    Expects: { "grade_id", "area_id", "period", "grade_name", "students": [ids],
               "student_names": { id: name } }
    """
    grade_id = payload.get("grade_id")
    area_id = payload.get("area_id")
    if not grade_id or not area_id:
        raise HTTPException(400, "Provide 'grade_id' and 'area_id'.")

    _purge_expired_sessions()
    gradebook = _guard(
        Gradebook,
        grade_id,
        area_id,
        period=payload.get("period", 1),
        grade_name=payload.get("grade_name"),
    )
    students = [str(s) for s in payload.get("students") or []]

    gradebook.begin_hydration()
    _guard(_hydrate, gradebook, client, students)

    session_id = str(uuid.uuid4())
    sessions[session_id] = {
        "gradebook": gradebook,
        "students": students,
        "student_names": {str(k): v for k, v in (payload.get("student_names") or {}).items()},
        "created_at": time(),
    }
    return _state(session_id, gradebook)


@router.get("/sessions/{session_id}")
async def get_session(session_id: str):
    gradebook = _get_session(session_id)["gradebook"]
    return _state(session_id, gradebook)


@router.delete("/sessions/{session_id}")
async def close_session(session_id: str):
    sessions.pop(session_id, None)
    return {"message": "Session closed."}


@router.post("/sessions/{session_id}/period")
async def change_period(session_id: str, payload: dict, client: GraphQLClient = Depends(get_client)):
    """
    Switch to another period (or area). Edits are refused until the new
    period has loaded; if loading fails, the gradebook stays locked.
    """
    session = _get_session(session_id)
    gradebook: Gradebook = session["gradebook"]
    _guard(
        gradebook.begin_hydration,
        period=payload.get("period", gradebook.period),
        area_id=payload.get("area_id"),
    )
    _guard(_hydrate, gradebook, client, session["students"])
    return _state(session_id, gradebook)


# ── Components ──────────────────────────────────────────────────────

@router.post("/sessions/{session_id}/components")
async def add_component(session_id: str, payload: dict):
    gradebook = _get_session(session_id)["gradebook"]
    component_id = _guard(gradebook.add_component, payload.get("name", ""))
    state = _state(session_id, gradebook)
    state["component_id"] = component_id
    return state


@router.patch("/sessions/{session_id}/components/{component_id}")
async def rename_component(session_id: str, component_id: str, payload: dict):
    gradebook = _get_session(session_id)["gradebook"]
    _guard(gradebook.rename_component, component_id, payload.get("name", ""))
    return _state(session_id, gradebook)


@router.delete("/sessions/{session_id}/components/{component_id}")
async def remove_component(session_id: str, component_id: str):
    gradebook = _get_session(session_id)["gradebook"]
    _guard(gradebook.remove_component, component_id)
    return _state(session_id, gradebook)


@router.put("/sessions/{session_id}/final")
async def toggle_final_evaluation(session_id: str, payload: dict):
    """Expects: { "include": true | false }"""
    if "include" not in payload:
        raise HTTPException(400, "Provide 'include'.")
    gradebook = _get_session(session_id)["gradebook"]
    _guard(gradebook.set_final_evaluation_enabled, bool(payload["include"]))
    return _state(session_id, gradebook)


@router.post("/sessions/{session_id}/redistribute")
async def redistribute(session_id: str):
    gradebook = _get_session(session_id)["gradebook"]
    _guard(gradebook.redistribute)
    return _state(session_id, gradebook)


@router.get("/sessions/{session_id}/validate")
async def validate(session_id: str):
    gradebook = _get_session(session_id)["gradebook"]
    return gradebook.validate().to_dict()


# ── Scores ──────────────────────────────────────────────────────────

@router.put("/sessions/{session_id}/scores")
async def set_score(session_id: str, payload: dict):
    """
    Expects: { "student_id", "component_id", "value" }.
    value is a number/string in [0, 5] ("" clears it), or DS/DA/DB/SP in
    qualitative mode.
    """
    gradebook = _get_session(session_id)["gradebook"]
    student_id = payload.get("student_id")
    component_id = payload.get("component_id")
    if student_id is None or component_id is None:
        raise HTTPException(400, "Provide 'student_id' and 'component_id'.")

    stored = _guard(gradebook.set_score, student_id, component_id, payload.get("value"))
    scores = gradebook.final_scores()
    return {
        "student_id": str(student_id),
        "component_id": str(component_id),
        "value": stored,
        "final_score": scores.get(str(student_id)),
        "category": gradebook.categories().get(str(student_id)),
        "has_incomplete_scores": gradebook.has_incomplete_scores(),
    }


# ── Indicators ──────────────────────────────────────────────────────

@router.post("/sessions/{session_id}/indicators")
async def add_indicator(session_id: str, payload: dict = None):
    gradebook = _get_session(session_id)["gradebook"]
    indicator = _guard(gradebook.add_indicator, (payload or {}).get("text", ""))
    return indicator.to_dict()


@router.patch("/sessions/{session_id}/indicators/{indicator_id}")
async def update_indicator(session_id: str, indicator_id: str, payload: dict):
    gradebook = _get_session(session_id)["gradebook"]
    indicator = _guard(gradebook.update_indicator, indicator_id, payload.get("text", ""))
    return indicator.to_dict()


@router.delete("/sessions/{session_id}/indicators/{indicator_id}")
async def remove_indicator(session_id: str, indicator_id: str):
    gradebook = _get_session(session_id)["gradebook"]
    _guard(gradebook.remove_indicator, indicator_id)
    return {"indicators": gradebook.indicators.to_list()}


# ── Save / export ───────────────────────────────────────────────────

@router.post("/sessions/{session_id}/save")
async def save(session_id: str, client: GraphQLClient = Depends(get_client)):
    """Send schema, scores and indicators in one mutation. Disabled while weights are invalid."""
    gradebook = _get_session(session_id)["gradebook"]
    result = _guard(gradebook.save, client)
    state = _state(session_id, gradebook)
    state["result"] = result
    return state


@router.post("/sessions/{session_id}/excel")
async def excel_export(session_id: str):
    """Export the current gradebook as an Excel workbook."""
    session = _get_session(session_id)
    gradebook: Gradebook = session["gradebook"]
    report_id = str(uuid.uuid4())[:8]
    token = _safe_token(f"{gradebook.grade_id}_{gradebook.area_id}_p{gradebook.period}", fallback="gradebook")
    output_path = EXPORT_DIR / f"gradebook_{token}_{report_id}.xlsx"

    export_gradebook_excel(
        output_path=str(output_path),
        gradebook=gradebook,
        school_name=SCHOOL_NAME,
        student_names=session["student_names"],
    )

    return FileResponse(
        str(output_path),
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        filename=f"Gradebook_{token}_{report_id}.xlsx",
        background=BackgroundTask(_safe_unlink, str(output_path)),
    )
