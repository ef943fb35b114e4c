"""
ledger.py — Per-student, per-component raw score storage.

Values are floats in [0, 5] or None. None means "ungraded", which is NOT the
same as 0: ungraded components are left out of the final-score denominator.
"""

import logging
import math
from typing import Dict, Iterable, List, Optional

from core.errors import ValidationError
from core.qualitative import GradingMode, QualitativeCategory, category_to_value

logger = logging.getLogger(__name__)

MIN_SCORE = 0.0
MAX_SCORE = 5.0


def parse_score(raw) -> Optional[float]:
    """
    Parse a quantitative score entry.
    Empty input → None. Anything non-numeric or outside [0, 5] raises.
    """
    if raw is None:
        return None
    if isinstance(raw, str):
        raw = raw.strip()
        if raw == "":
            return None
    if isinstance(raw, bool):
        raise ValidationError(f"Score must be a number, got {raw!r}.")
    try:
        value = float(raw)
    except (TypeError, ValueError):
        raise ValidationError(f"Score must be a number, got {raw!r}.") from None
    if math.isnan(value) or not (MIN_SCORE <= value <= MAX_SCORE):
        raise ValidationError(
            f"Score must be between {MIN_SCORE:g} and {MAX_SCORE:g}, got {raw!r}."
        )
    return value


class ScoreLedger:
    """Scores keyed by student id, then component id."""

    def __init__(self, mode: GradingMode = GradingMode.QUANTITATIVE):
        self.mode = mode
        self._students: List[str] = []
        self._component_ids: List[str] = []
        self._entries: Dict[str, Dict[str, Optional[float]]] = {}

    # ── Structure ──────────────────────────────────────────────────

    @property
    def students(self) -> List[str]:
        return list(self._students)

    def set_students(self, student_ids: Iterable[str]):
        """Replace the roster; scores of students that remain are kept."""
        ids: List[str] = []
        for sid in student_ids:
            sid = str(sid)
            if sid not in ids:
                ids.append(sid)
        self._students = ids
        self._entries = {
            sid: {cid: self._entries.get(sid, {}).get(cid) for cid in self._component_ids}
            for sid in ids
        }

    def sync_components(self, components):
        """
        Make every (student, component) pair exist and drop pairs whose
        component is gone. Accepts components or bare ids.
        """
        self._component_ids = [getattr(c, "id", c) for c in components]
        self._entries = {
            sid: {cid: row.get(cid) for cid in self._component_ids}
            for sid, row in ((s, self._entries.get(s, {})) for s in self._students)
        }

    def drop_component(self, component_id: str):
        """Delete the entries of one component for all students."""
        self._component_ids = [cid for cid in self._component_ids if cid != component_id]
        for row in self._entries.values():
            row.pop(component_id, None)

    def clear_period(self):
        """Wipe every entry (period change)."""
        self._students = []
        self._component_ids = []
        self._entries = {}

    # ── Reads / writes ─────────────────────────────────────────────

    def _check_key(self, student_id: str, component_id: str):
        if student_id not in self._entries:
            raise ValidationError(f"Unknown student '{student_id}'.")
        if component_id not in self._entries[student_id]:
            raise ValidationError(f"Unknown component '{component_id}'.")

    def set_score(self, student_id, component_id, raw_input) -> Optional[float]:
        """Validate and store one entry. Returns the stored value."""
        student_id, component_id = str(student_id), str(component_id)
        self._check_key(student_id, component_id)

        if self.mode == GradingMode.QUALITATIVE:
            value = self._parse_category_input(raw_input)
        else:
            try:
                value = parse_score(raw_input)
            except ValidationError:
                logger.debug("Rejected score %r for %s/%s", raw_input, student_id, component_id)
                raise

        self._entries[student_id][component_id] = value
        return value

    @staticmethod
    def _parse_category_input(raw_input) -> Optional[float]:
        if raw_input is None or (isinstance(raw_input, str) and raw_input.strip() == ""):
            return None
        try:
            return category_to_value(raw_input)
        except ValueError as exc:
            codes = ", ".join(c.value for c in QualitativeCategory)
            raise ValidationError(f"{exc} Expected one of: {codes}.") from None

    def load_value(self, student_id, component_id, value: Optional[float]):
        """Store a persisted value during hydration, growing the key set as needed."""
        student_id, component_id = str(student_id), str(component_id)
        if student_id not in self._entries:
            self._students.append(student_id)
            self._entries[student_id] = {cid: None for cid in self._component_ids}
        if component_id not in self._component_ids:
            self._component_ids.append(component_id)
            for row in self._entries.values():
                row.setdefault(component_id, None)
        self._entries[student_id][component_id] = None if value is None else float(value)

    def get_score(self, student_id, component_id) -> Optional[float]:
        return self._entries.get(str(student_id), {}).get(str(component_id))

    def scores_for(self, student_id) -> Dict[str, Optional[float]]:
        return dict(self._entries.get(str(student_id), {}))

    def has_incomplete_scores(self) -> bool:
        """True when any student still has an ungraded component."""
        return any(v is None for row in self._entries.values() for v in row.values())

    def to_dict(self) -> Dict[str, Dict[str, Optional[float]]]:
        return {sid: dict(row) for sid, row in self._entries.items()}
