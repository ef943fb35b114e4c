"""
schema.py — Graded components and their percentage weights.

Weights are derived, never typed in by the teacher:
- with a final evaluation: final = 30%, the other 70% split evenly
- without one: 100% split evenly across the regular activities

Every structural change (add / remove / toggle final) computes the whole next
component list first and commits it in one assignment, then redistributes.
Nothing here reacts to its own output.
"""

import logging
import re
from dataclasses import asdict, dataclass, replace
from typing import Dict, List, Optional

from core.errors import ValidationError
from core.qualitative import GradingMode, UNIQUE_SCORE_ID, UNIQUE_SCORE_NAME

logger = logging.getLogger(__name__)

TOTAL_WEIGHT = 100.0
FINAL_WEIGHT = 30.0
WEIGHT_TOLERANCE = 0.1
# 20 × 0.005 rounding drift is the most the 0.1 tolerance can absorb.
MAX_REGULAR_COMPONENTS = 20

FINAL_COMPONENT_ID = "final"
FINAL_COMPONENT_NAME = "Final Evaluation"
DEFAULT_COMPONENT_NAME = "Activity 1"

_ID_PATTERN = re.compile(r"^act(\d+)$")


@dataclass(frozen=True)
class GradeComponent:
    id: str
    name: str
    weight_percent: float = 0.0
    is_final: bool = False

    def to_dict(self) -> Dict:
        return asdict(self)


@dataclass(frozen=True)
class GradebookEvent:
    """Feedback for the presentation layer (what used to be a toast)."""
    level: str
    message: str

    def to_dict(self) -> Dict:
        return asdict(self)


@dataclass(frozen=True)
class WeightCheck:
    is_valid: bool
    total_regular: float
    total_final: float
    total: float

    def to_dict(self) -> Dict:
        return asdict(self)


def distribute_weights(components: List[GradeComponent]) -> List[GradeComponent]:
    """Return regular components (evenly weighted) followed by the final ones at 30%."""
    regular = [c for c in components if not c.is_final]
    finals = [c for c in components if c.is_final]
    pool = TOTAL_WEIGHT - FINAL_WEIGHT if finals else TOTAL_WEIGHT
    share = round(pool / len(regular), 2) if regular else 0.0
    return (
        [replace(c, weight_percent=share) for c in regular]
        + [replace(c, weight_percent=FINAL_WEIGHT) for c in finals]
    )


def default_component(weight: float = TOTAL_WEIGHT) -> GradeComponent:
    return GradeComponent(id="act1", name=DEFAULT_COMPONENT_NAME, weight_percent=weight)


def unique_score_component() -> GradeComponent:
    return GradeComponent(id=UNIQUE_SCORE_ID, name=UNIQUE_SCORE_NAME, weight_percent=TOTAL_WEIGHT)


class GradeSchema:
    """
    The ordered component list for one grade/area/period.

    When a ledger is attached, removals delete the matching ledger entries and
    every structural change re-syncs the ledger keys.
    """

    def __init__(
        self,
        mode: GradingMode = GradingMode.QUANTITATIVE,
        components: Optional[List[GradeComponent]] = None,
        ledger=None,
    ):
        self.mode = mode
        self.ledger = ledger
        self.events: List[GradebookEvent] = []
        if mode == GradingMode.QUALITATIVE:
            self._components = [unique_score_component()]
        elif components:
            self._components = list(components)
        else:
            self._components = [default_component()]
        # High-water mark of actN suffixes; only ever grows.
        self._last_id_number = self._max_id_number()
        self._sync_ledger()

    # ── Reads ──────────────────────────────────────────────────────

    @property
    def components(self) -> List[GradeComponent]:
        return list(self._components)

    @property
    def final_component(self) -> Optional[GradeComponent]:
        return next((c for c in self._components if c.is_final), None)

    @property
    def has_final(self) -> bool:
        return self.final_component is not None

    def get(self, component_id: str) -> GradeComponent:
        for c in self._components:
            if c.id == component_id:
                return c
        raise ValidationError(f"Unknown component '{component_id}'.")

    def validate(self) -> WeightCheck:
        """Read-only weight check. Qualitative schemas are always valid."""
        total_regular = sum(c.weight_percent for c in self._components if not c.is_final)
        total_final = sum(c.weight_percent for c in self._components if c.is_final)
        total = total_regular + total_final
        if self.mode == GradingMode.QUALITATIVE:
            is_valid = True
        else:
            finals = sum(1 for c in self._components if c.is_final)
            is_valid = finals <= 1 and round(abs(total - TOTAL_WEIGHT), 6) <= WEIGHT_TOLERANCE
        return WeightCheck(
            is_valid=is_valid,
            total_regular=round(total_regular, 2),
            total_final=round(total_final, 2),
            total=round(total, 2),
        )

    # ── Transitions ────────────────────────────────────────────────

    def add_component(self, name: str) -> str:
        self._require_quantitative("add activities")
        name = self._clean_name(name)
        regular = [c for c in self._components if not c.is_final]
        if len(regular) >= MAX_REGULAR_COMPONENTS:
            raise ValidationError(
                f"A period can have at most {MAX_REGULAR_COMPONENTS} activities."
            )

        component = GradeComponent(id=self._next_id(), name=name, weight_percent=0.0)
        finals = [c for c in self._components if c.is_final]
        self._commit(regular + [component] + finals)
        logger.info("Added component %s (%s)", component.id, name)
        self._emit("success", f'Activity "{name}" added. Weights redistributed automatically.')
        return component.id

    def remove_component(self, component_id: str):
        self._require_quantitative("remove activities")
        component = self.get(component_id)
        if component.is_final:
            raise ValidationError(
                "The final evaluation cannot be removed directly; disable it instead."
            )
        if len(self._components) <= 1:
            raise ValidationError("There must be at least one activity.")
        remaining = [c for c in self._components if c.id != component_id]
        if not any(not c.is_final for c in remaining):
            raise ValidationError("There must be at least one regular activity.")

        if self.ledger is not None:
            self.ledger.drop_component(component_id)
        self._commit(remaining)
        logger.info("Removed component %s", component_id)
        self._emit("success", "Activity removed. Weights redistributed automatically.")

    def rename_component(self, component_id: str, new_name: str):
        self._require_quantitative("rename activities")
        new_name = self._clean_name(new_name)
        self.get(component_id)
        self._components = [
            replace(c, name=new_name) if c.id == component_id else c
            for c in self._components
        ]

    def set_final_evaluation_enabled(self, include: bool):
        """Create or remove the fixed-weight final evaluation."""
        self._require_quantitative("toggle the final evaluation")
        regular = [c for c in self._components if not c.is_final]
        finals = [c for c in self._components if c.is_final]

        if include:
            if not finals:
                finals = [
                    GradeComponent(
                        id=FINAL_COMPONENT_ID,
                        name=FINAL_COMPONENT_NAME,
                        weight_percent=FINAL_WEIGHT,
                        is_final=True,
                    )
                ]
                self._emit("success", "Final evaluation enabled (30%).")
            elif len(finals) > 1:
                for extra in finals[1:]:
                    if self.ledger is not None and extra.id != finals[0].id:
                        self.ledger.drop_component(extra.id)
                logger.warning("Collapsed %d final components into %s", len(finals), finals[0].id)
                self._emit(
                    "warning",
                    f"Found {len(finals)} final evaluations; kept only \"{finals[0].name}\".",
                )
                finals = finals[:1]
            if not regular:
                regular = [default_component(weight=0.0)]
            self._commit(regular + finals)
        else:
            for final in finals:
                if self.ledger is not None:
                    self.ledger.drop_component(final.id)
            if not regular:
                regular = [default_component()]
            self._commit(regular)
            if finals:
                self._emit("success", "Final evaluation removed. Weights redistributed automatically.")
        logger.info("Final evaluation %s", "enabled" if include else "disabled")

    def redistribute(self) -> List[GradeComponent]:
        """Recompute every weight from the current structure."""
        if self.mode == GradingMode.QUANTITATIVE:
            self._components = distribute_weights(self._components)
        return self.components

    # ── Internals ──────────────────────────────────────────────────

    def _commit(self, components: List[GradeComponent]):
        self._components = distribute_weights(components)
        self._sync_ledger()

    def _sync_ledger(self):
        if self.ledger is not None:
            self.ledger.sync_components(self._components)

    def _max_id_number(self) -> int:
        numbers = [0]
        for c in self._components:
            match = _ID_PATTERN.match(c.id)
            if match:
                numbers.append(int(match.group(1)))
        return max(numbers)

    def _next_id(self) -> str:
        self._last_id_number = max(self._last_id_number, self._max_id_number()) + 1
        return f"act{self._last_id_number}"

    def _require_quantitative(self, action: str):
        if self.mode == GradingMode.QUALITATIVE:
            raise ValidationError(f"Cannot {action} in qualitative grading mode.")

    @staticmethod
    def _clean_name(name) -> str:
        cleaned = str(name or "").strip()
        if not cleaned:
            raise ValidationError("Enter a name for the activity.")
        return cleaned

    def _emit(self, level: str, message: str):
        self.events.append(GradebookEvent(level=level, message=message))

    def pop_events(self) -> List[GradebookEvent]:
        events, self.events = self.events, []
        return events
