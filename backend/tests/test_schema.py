"""
Tests for core/schema.py — weight redistribution, final evaluation toggle, invariants.
"""

import os
import random
import sys

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from core.errors import ValidationError
from core.ledger import ScoreLedger
from core.qualitative import GradingMode
from core.schema import (
    FINAL_COMPONENT_ID,
    MAX_REGULAR_COMPONENTS,
    GradeComponent,
    GradeSchema,
)


def _weights(schema):
    return [c.weight_percent for c in schema.components]


@pytest.fixture
def ledger():
    ledger = ScoreLedger()
    ledger.set_students(["S001", "S002"])
    return ledger


@pytest.fixture
def two_activities(ledger):
    schema = GradeSchema(ledger=ledger)
    schema.add_component("Quiz")
    return schema


class TestRedistribution:
    """Weights follow the 70/30 and 100 split rules."""

    def test_default_schema_is_single_full_weight_activity(self):
        schema = GradeSchema()
        assert len(schema.components) == 1
        assert schema.components[0].weight_percent == 100.0
        assert not schema.has_final

    def test_two_activities_split_evenly(self, two_activities):
        assert _weights(two_activities) == [50.0, 50.0]

    def test_two_activities_and_final(self, two_activities):
        two_activities.set_final_evaluation_enabled(True)
        assert _weights(two_activities) == [35.0, 35.0, 30.0]
        assert two_activities.components[-1].id == FINAL_COMPONENT_ID

    def test_third_activity_with_final(self, two_activities):
        two_activities.set_final_evaluation_enabled(True)
        two_activities.add_component("Essay")
        assert _weights(two_activities) == [23.33, 23.33, 23.33, 30.0]
        check = two_activities.validate()
        assert check.total == 99.99
        assert check.is_valid

    def test_new_activity_goes_before_final(self, two_activities):
        two_activities.set_final_evaluation_enabled(True)
        new_id = two_activities.add_component("Essay")
        ids = [c.id for c in two_activities.components]
        assert ids.index(new_id) == len(ids) - 2

    def test_redistribute_is_idempotent(self, two_activities):
        two_activities.set_final_evaluation_enabled(True)
        two_activities.add_component("Essay")
        first = two_activities.redistribute()
        second = two_activities.redistribute()
        assert first == second

    def test_redistribute_repairs_persisted_weights(self):
        schema = GradeSchema(components=[
            GradeComponent("act1", "Quiz", 40.0),
            GradeComponent("act2", "Essay", 40.0),
        ])
        assert not schema.validate().is_valid
        schema.redistribute()
        assert _weights(schema) == [50.0, 50.0]
        assert schema.validate().is_valid

    def test_ids_stay_stable_across_redistribution(self, two_activities):
        before = [c.id for c in two_activities.components]
        two_activities.set_final_evaluation_enabled(True)
        after = [c.id for c in two_activities.components if not c.is_final]
        assert before == after


class TestFinalEvaluationToggle:
    """Enabling and disabling the fixed 30% final evaluation."""

    def test_toggle_symmetry(self, two_activities):
        two_activities.set_final_evaluation_enabled(True)
        two_activities.set_final_evaluation_enabled(False)
        assert _weights(two_activities) == [50.0, 50.0]
        assert not two_activities.has_final

    def test_enabling_twice_keeps_one_final(self, two_activities):
        two_activities.set_final_evaluation_enabled(True)
        two_activities.set_final_evaluation_enabled(True)
        assert sum(1 for c in two_activities.components if c.is_final) == 1

    def test_disabling_drops_final_scores(self, two_activities, ledger):
        two_activities.set_final_evaluation_enabled(True)
        ledger.set_score("S001", FINAL_COMPONENT_ID, "4")
        two_activities.set_final_evaluation_enabled(False)
        assert FINAL_COMPONENT_ID not in ledger.scores_for("S001")

    def test_disabling_with_only_final_synthesizes_default(self):
        schema = GradeSchema(components=[
            GradeComponent(FINAL_COMPONENT_ID, "Final", 30.0, is_final=True),
        ])
        schema.set_final_evaluation_enabled(False)
        assert len(schema.components) == 1
        assert schema.components[0].weight_percent == 100.0
        assert not schema.components[0].is_final

    def test_duplicate_finals_collapse_to_first(self, ledger):
        schema = GradeSchema(
            components=[
                GradeComponent("act1", "Quiz", 40.0),
                GradeComponent(FINAL_COMPONENT_ID, "Final A", 30.0, is_final=True),
                GradeComponent("final-b", "Final B", 30.0, is_final=True),
            ],
            ledger=ledger,
        )
        ledger.set_score("S001", "final-b", "3")
        schema.set_final_evaluation_enabled(True)

        finals = [c for c in schema.components if c.is_final]
        assert [c.id for c in finals] == [FINAL_COMPONENT_ID]
        assert _weights(schema) == [70.0, 30.0]
        assert "final-b" not in ledger.scores_for("S001")
        events = schema.pop_events()
        assert any(e.level == "warning" for e in events)


class TestStructuralEdits:
    """Add / remove / rename rules."""

    def test_blank_name_rejected(self, two_activities):
        before = two_activities.components
        with pytest.raises(ValidationError):
            two_activities.add_component("   ")
        assert two_activities.components == before

    def test_cannot_remove_final_directly(self, two_activities):
        two_activities.set_final_evaluation_enabled(True)
        before = two_activities.components
        with pytest.raises(ValidationError):
            two_activities.remove_component(FINAL_COMPONENT_ID)
        assert two_activities.components == before

    def test_cannot_remove_last_component(self):
        schema = GradeSchema()
        with pytest.raises(ValidationError):
            schema.remove_component(schema.components[0].id)

    def test_cannot_remove_last_regular_next_to_final(self):
        schema = GradeSchema()
        schema.set_final_evaluation_enabled(True)
        with pytest.raises(ValidationError):
            schema.remove_component("act1")

    def test_remove_unknown_component(self, two_activities):
        with pytest.raises(ValidationError):
            two_activities.remove_component("nope")

    def test_remove_deletes_ledger_entries(self, two_activities, ledger):
        ledger.set_score("S001", "act2", "4.5")
        two_activities.remove_component("act2")
        assert "act2" not in ledger.scores_for("S001")
        assert _weights(two_activities) == [100.0]

    def test_ids_are_not_reused(self, two_activities):
        two_activities.add_component("Essay")
        two_activities.remove_component("act2")
        assert two_activities.add_component("Lab") == "act4"

    def test_highest_id_not_reused_after_removal(self, two_activities):
        assert two_activities.add_component("Essay") == "act3"
        two_activities.remove_component("act3")
        new_id = two_activities.add_component("Lab")
        assert new_id == "act4"
        assert [c.id for c in two_activities.components] == ["act1", "act2", "act4"]

    def test_id_counter_starts_after_hydrated_ids(self):
        schema = GradeSchema(components=[
            GradeComponent("act7", "Quiz", 50.0),
            GradeComponent("act2", "Essay", 50.0),
        ])
        schema.remove_component("act7")
        assert schema.add_component("Lab") == "act8"

    def test_rename(self, two_activities):
        two_activities.rename_component("act2", "  Oral exam ")
        assert two_activities.get("act2").name == "Oral exam"

    def test_rename_blank_rejected(self, two_activities):
        with pytest.raises(ValidationError):
            two_activities.rename_component("act2", "")

    def test_activity_limit(self):
        schema = GradeSchema()
        for i in range(MAX_REGULAR_COMPONENTS - 1):
            schema.add_component(f"Activity {i + 2}")
        assert schema.validate().is_valid
        with pytest.raises(ValidationError):
            schema.add_component("One too many")

    def test_add_emits_success_event(self):
        schema = GradeSchema()
        schema.add_component("Quiz")
        events = schema.pop_events()
        assert events[0].level == "success"
        assert "Quiz" in events[0].message
        assert schema.pop_events() == []

    def test_ledger_keys_follow_schema(self, two_activities, ledger):
        two_activities.set_final_evaluation_enabled(True)
        assert set(ledger.scores_for("S002")) == {"act1", "act2", FINAL_COMPONENT_ID}


class TestInvariants:
    """Properties that must hold after any sequence of edits."""

    def test_random_edit_sequences_stay_valid(self):
        rng = random.Random(20240601)
        for _ in range(20):
            ledger = ScoreLedger()
            ledger.set_students(["S001"])
            schema = GradeSchema(ledger=ledger)
            for step in range(40):
                op = rng.choice(["add", "remove", "final_on", "final_off"])
                try:
                    if op == "add":
                        schema.add_component(f"A{step}")
                    elif op == "remove":
                        regular = [c for c in schema.components if not c.is_final]
                        schema.remove_component(rng.choice(regular).id)
                    else:
                        schema.set_final_evaluation_enabled(op == "final_on")
                except ValidationError:
                    pass
                assert schema.validate().is_valid
                assert sum(1 for c in schema.components if c.is_final) <= 1
                assert set(ledger.scores_for("S001")) == {c.id for c in schema.components}


class TestQualitativeSchema:
    """Qualitative mode collapses to a single Unique Score component."""

    def test_single_unique_component(self):
        schema = GradeSchema(GradingMode.QUALITATIVE)
        assert len(schema.components) == 1
        assert schema.components[0].name == "Unique Score"
        assert schema.components[0].weight_percent == 100.0

    def test_structural_edits_rejected(self):
        schema = GradeSchema(GradingMode.QUALITATIVE)
        with pytest.raises(ValidationError):
            schema.add_component("Quiz")
        with pytest.raises(ValidationError):
            schema.set_final_evaluation_enabled(True)

    def test_always_valid(self):
        schema = GradeSchema(GradingMode.QUALITATIVE)
        assert schema.validate().is_valid
        assert schema.redistribute() == schema.components
