"""
indicators.py — Achievement indicators for one grade/area/period.

A plain ordered list of free-text descriptors saved next to the grades.
They take no part in scoring.
"""

import uuid
from dataclasses import asdict, dataclass, replace
from typing import Dict, Iterable, List, Optional

from core.errors import NotFoundError


@dataclass(frozen=True)
class Indicator:
    id: str
    text: str
    period: int
    area_id: str
    grade_id: str

    def to_dict(self) -> Dict:
        return asdict(self)


class IndicatorRegistry:
    def __init__(self, grade_id: str = "", area_id: str = "", period: int = 1):
        self.grade_id = str(grade_id)
        self.area_id = str(area_id)
        self.period = period
        self._items: List[Indicator] = []

    def __len__(self):
        return len(self._items)

    @property
    def items(self) -> List[Indicator]:
        return list(self._items)

    def load(self, indicators: Iterable[Indicator], grade_id=None, area_id=None, period=None):
        """Replace the list with hydrated indicators, optionally re-scoping it."""
        if grade_id is not None:
            self.grade_id = str(grade_id)
        if area_id is not None:
            self.area_id = str(area_id)
        if period is not None:
            self.period = period
        self._items = list(indicators)

    def add(self, text: str = "") -> Indicator:
        """Append an entry (blank by default) and return it."""
        item = Indicator(
            id=f"new-{uuid.uuid4().hex[:8]}",
            text=text,
            period=self.period,
            area_id=self.area_id,
            grade_id=self.grade_id,
        )
        self._items.append(item)
        return item

    def update(self, indicator_id: str, text: str) -> Indicator:
        index = self._index(indicator_id)
        self._items[index] = replace(self._items[index], text=text)
        return self._items[index]

    def remove(self, indicator_id: str):
        del self._items[self._index(indicator_id)]

    def get(self, indicator_id: str) -> Optional[Indicator]:
        for item in self._items:
            if item.id == indicator_id:
                return item
        return None

    def _index(self, indicator_id: str) -> int:
        for i, item in enumerate(self._items):
            if item.id == str(indicator_id):
                return i
        raise NotFoundError(f"Indicator '{indicator_id}' not found.")

    def to_list(self, skip_blank: bool = False) -> List[Dict]:
        return [
            item.to_dict() for item in self._items
            if not (skip_blank and not item.text.strip())
        ]
