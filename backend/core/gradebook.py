"""
gradebook.py — One teacher's gradebook for a (grade, area, period) selection.

Ties the schema, the score ledger and the indicator list together:
- hydration from persisted records, with an explicit default-schema fallback
- an edit lock while a new selection is being hydrated
- feedback events for the presentation layer
- the save payload (a snapshot, so later edits never touch an in-flight save)
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from core.errors import GradebookLocked, SchemaInvariantWarning, ValidationError
from core.indicators import Indicator, IndicatorRegistry
from core.ledger import ScoreLedger
from core.qualitative import GradingMode, UNIQUE_SCORE_ID, grading_mode_for
from core.schema import (
    FINAL_COMPONENT_ID,
    MAX_REGULAR_COMPONENTS,
    GradeComponent,
    GradebookEvent,
    GradeSchema,
    WeightCheck,
    default_component,
)
from core.scoring import compute_final_scores, compute_qualitative_category, covered_weight

logger = logging.getLogger(__name__)

PERIODS = (1, 2, 3, 4)


@dataclass(frozen=True)
class Note:
    component_id: str
    name: str
    value: Optional[float]
    weight_percent: float


@dataclass(frozen=True)
class ScoreRecord:
    student_id: str
    notes: List[Note] = field(default_factory=list)


def validate_period(period) -> int:
    try:
        value = int(period)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid period: {period!r}.") from None
    if value not in PERIODS:
        raise ValidationError(f"Period must be one of {list(PERIODS)}, got {value}.")
    return value


def components_from_records(records: Iterable[ScoreRecord]) -> List[GradeComponent]:
    """Unique component ids, in first-seen order, regular ones before the final."""
    seen: Dict[str, GradeComponent] = {}
    for record in records:
        for note in record.notes:
            cid = str(note.component_id)
            if cid in seen:
                continue
            seen[cid] = GradeComponent(
                id=cid,
                name=note.name or cid,
                weight_percent=float(note.weight_percent or 0),
                is_final=cid == FINAL_COMPONENT_ID,
            )
    regular = [c for c in seen.values() if not c.is_final]
    finals = [c for c in seen.values() if c.is_final]
    return regular + finals


class Gradebook:
    def __init__(
        self,
        grade_id,
        area_id,
        period: int = 1,
        grade_name: Optional[str] = None,
        mode: Optional[GradingMode] = None,
    ):
        self.grade_id = str(grade_id)
        self.area_id = str(area_id)
        self.period = validate_period(period)
        self.grade_name = grade_name
        self.mode = mode or grading_mode_for(grade_name)

        self.ledger = ScoreLedger(self.mode)
        self.schema = GradeSchema(self.mode, ledger=self.ledger)
        self.indicators = IndicatorRegistry(self.grade_id, self.area_id, self.period)
        self._hydrating = False
        self._events: List[GradebookEvent] = []

    # ── Hydration ──────────────────────────────────────────────────

    @property
    def is_hydrating(self) -> bool:
        return self._hydrating

    def begin_hydration(self, period=None, area_id=None, grade_id=None):
        """Switch selection and block edits until hydrate() completes."""
        if period is not None:
            self.period = validate_period(period)
        if area_id is not None:
            self.area_id = str(area_id)
        if grade_id is not None:
            self.grade_id = str(grade_id)
        self._hydrating = True
        self.ledger.clear_period()
        logger.info(
            "Hydrating gradebook grade=%s area=%s period=%s",
            self.grade_id, self.area_id, self.period,
        )

    def hydrate(
        self,
        records: Iterable[ScoreRecord],
        indicators: Iterable[Indicator] = (),
        students: Iterable[str] = (),
    ):
        """Rebuild schema, ledger and indicators from persisted data."""
        records = list(records)
        roster = [str(s) for s in students] + [r.student_id for r in records]

        self._events.extend(self.schema.pop_events())
        self.ledger.clear_period()
        self.ledger.set_students(roster)

        if self.mode == GradingMode.QUALITATIVE:
            self.schema = GradeSchema(self.mode, ledger=self.ledger)
            for record in records:
                if record.notes:
                    self.ledger.load_value(record.student_id, UNIQUE_SCORE_ID, record.notes[0].value)
        else:
            components = components_from_records(records)
            if not components:
                # Nothing saved for this period yet.
                self.schema = GradeSchema(self.mode, [default_component()], ledger=self.ledger)
            else:
                needs_redistribution = all(c.is_final for c in components)
                if needs_redistribution:
                    components = [default_component(weight=0.0)] + components
                self.schema = GradeSchema(self.mode, components, ledger=self.ledger)
                if needs_redistribution:
                    self.schema.redistribute()
            known = {c.id for c in self.schema.components}
            for record in records:
                for note in record.notes:
                    if str(note.component_id) in known:
                        self.ledger.load_value(record.student_id, note.component_id, note.value)

        self.indicators.load(
            indicators, grade_id=self.grade_id, area_id=self.area_id, period=self.period
        )
        self._hydrating = False

        check = self.schema.validate()
        if not check.is_valid:
            logger.warning("Hydrated weights total %.2f%%", check.total)
            self._emit(
                "warning",
                f"Saved weights add up to {check.total:.1f}%; redistribute before saving.",
            )

        regular = [c for c in self.schema.components if not c.is_final]
        if len(regular) > MAX_REGULAR_COMPONENTS:
            logger.warning("Hydrated %d activities, limit is %d", len(regular), MAX_REGULAR_COMPONENTS)
            self._emit(
                "warning",
                f"This period has {len(regular)} activities but at most "
                f"{MAX_REGULAR_COMPONENTS} are supported; remove some before editing weights.",
            )

    def _ensure_editable(self):
        if self._hydrating:
            raise GradebookLocked("The gradebook is loading a new period; try again shortly.")

    # ── Schema edits ───────────────────────────────────────────────

    def add_component(self, name: str) -> str:
        self._ensure_editable()
        return self.schema.add_component(name)

    def remove_component(self, component_id: str):
        self._ensure_editable()
        self.schema.remove_component(component_id)

    def rename_component(self, component_id: str, new_name: str):
        self._ensure_editable()
        self.schema.rename_component(component_id, new_name)

    def set_final_evaluation_enabled(self, include: bool):
        self._ensure_editable()
        self.schema.set_final_evaluation_enabled(include)

    def redistribute(self) -> List[GradeComponent]:
        self._ensure_editable()
        components = self.schema.redistribute()
        if self.mode == GradingMode.QUANTITATIVE:
            self._emit("success", "Weights redistributed evenly.")
        return components

    def validate(self) -> WeightCheck:
        return self.schema.validate()

    # ── Scores and indicators ──────────────────────────────────────

    def set_score(self, student_id, component_id, raw_input) -> Optional[float]:
        self._ensure_editable()
        return self.ledger.set_score(student_id, component_id, raw_input)

    def add_indicator(self, text: str = "") -> Indicator:
        self._ensure_editable()
        return self.indicators.add(text)

    def update_indicator(self, indicator_id: str, text: str) -> Indicator:
        self._ensure_editable()
        return self.indicators.update(indicator_id, text)

    def remove_indicator(self, indicator_id: str):
        self._ensure_editable()
        self.indicators.remove(indicator_id)

    # ── Derived values ─────────────────────────────────────────────

    def final_scores(self) -> Dict[str, float]:
        return compute_final_scores(self.schema.components, self.ledger)

    def categories(self) -> Dict[str, Optional[str]]:
        """
        Category per student; only meaningful in qualitative mode.
        Students with nothing graded get None rather than SP.
        """
        if self.mode != GradingMode.QUALITATIVE:
            return {}
        components = self.schema.components
        return {
            sid: (
                compute_qualitative_category(score).value
                if covered_weight(components, self.ledger.scores_for(sid)) > 0
                else None
            )
            for sid, score in self.final_scores().items()
        }

    def has_incomplete_scores(self) -> bool:
        return self.ledger.has_incomplete_scores()

    def can_save(self) -> bool:
        return not self._hydrating and self.validate().is_valid

    # ── Save ───────────────────────────────────────────────────────

    def save_payload(self) -> Dict[str, Any]:
        """
        Snapshot for the save mutation.
        Ungraded entries go out as 0; the server has no notion of "ungraded".
        """
        self._ensure_editable()
        check = self.validate()
        if not check.is_valid:
            raise SchemaInvariantWarning(
                f"Weights add up to {check.total:.2f}% instead of 100%. "
                "Redistribute them before saving."
            )
        if self.has_incomplete_scores():
            self._emit("warning", "Some scores are empty and will be saved as 0.")

        components = self.schema.components
        scores = [
            {
                "student_id": sid,
                "notes": [
                    {
                        "component_id": c.id,
                        "name": c.name,
                        "value": self.ledger.get_score(sid, c.id) or 0.0,
                        "weight_percent": c.weight_percent,
                    }
                    for c in components
                ],
            }
            for sid in self.ledger.students
        ]
        return {
            "grade_id": self.grade_id,
            "area_id": self.area_id,
            "period": self.period,
            "scores": scores,
            "indicators": self.indicators.to_list(skip_blank=True),
        }

    def save(self, client) -> Dict[str, Any]:
        """Send the snapshot through the persistence client. No retry, no rollback."""
        payload = self.save_payload()
        result = client.save_grades(payload)
        self._emit("success", result.get("message") or "Grades saved successfully.")
        return result

    # ── Events / snapshot ──────────────────────────────────────────

    def _emit(self, level: str, message: str):
        self._events.append(GradebookEvent(level=level, message=message))

    def pop_events(self) -> List[GradebookEvent]:
        events = self.schema.pop_events() + self._events
        self._events = []
        return events

    def to_dict(self) -> Dict[str, Any]:
        return {
            "grade_id": self.grade_id,
            "area_id": self.area_id,
            "period": self.period,
            "mode": self.mode.value,
            "hydrating": self._hydrating,
            "components": [c.to_dict() for c in self.schema.components],
            "validation": self.validate().to_dict(),
            "scores": self.ledger.to_dict(),
            "final_scores": self.final_scores(),
            "categories": self.categories(),
            "indicators": self.indicators.to_list(),
            "has_incomplete_scores": self.has_incomplete_scores(),
            "can_save": self.can_save(),
        }
