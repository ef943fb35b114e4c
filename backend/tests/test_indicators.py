"""
Tests for core/indicators.py — ordered indicator list.
"""

import os
import sys

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from core.errors import NotFoundError
from core.indicators import Indicator, IndicatorRegistry


@pytest.fixture
def registry():
    registry = IndicatorRegistry(grade_id="7", area_id="3", period=2)
    registry.load([
        Indicator("10", "Reads fluently", 2, "3", "7"),
        Indicator("11", "Writes short essays", 2, "3", "7"),
    ])
    return registry


class TestIndicatorRegistry:

    def test_add_appends_blank_scoped_entry(self, registry):
        item = registry.add()
        assert registry.items[-1] == item
        assert item.text == ""
        assert (item.grade_id, item.area_id, item.period) == ("7", "3", 2)

    def test_update(self, registry):
        registry.update("11", "Writes essays")
        assert registry.get("11").text == "Writes essays"
        assert [i.id for i in registry.items] == ["10", "11"]

    def test_remove(self, registry):
        registry.remove("10")
        assert [i.id for i in registry.items] == ["11"]

    def test_unknown_id(self, registry):
        with pytest.raises(NotFoundError):
            registry.update("99", "x")
        with pytest.raises(NotFoundError):
            registry.remove("99")
        assert len(registry) == 2

    def test_to_list_skips_blank(self, registry):
        registry.add()
        assert len(registry.to_list()) == 3
        assert [i["id"] for i in registry.to_list(skip_blank=True)] == ["10", "11"]
