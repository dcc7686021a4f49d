"""Tests for the quest objective unlock engine and its persistence wrapper."""

import asyncio

import pytest

from conftest import InMemoryEntityStore, make_entity
from worldforge.forge.errors import InvalidTransition, ObjectiveNotFound, ObjectivePersistenceFailed
from worldforge.quests.objectives import (
    ObjectiveTracker,
    activate_objective,
    apply_transition,
    complete_objective,
    condition_met,
    fail_objective,
    normalize_objectives,
    parse_objectives,
)
from worldforge.schemas import Objective


def _temple_quest():
    return [
        Objective(id="A", title="Meet the abbot", state="active"),
        Objective(id="B", title="Recover the key", state="locked", parent_id="A"),
        Objective(id="C", title="Light the altar", state="locked", unlock_condition="after entering the temple"),
        Objective(id="D", title="Enter the Temple", state="active"),
    ]


def _states(objectives):
    return {o.id: o.state for o in objectives}


class TestCompleteObjective:

    def test_parent_completion_unlocks_child(self):
        updated, unlocked = complete_objective(_temple_quest(), "A")
        assert _states(updated) == {"A": "completed", "B": "active", "C": "locked", "D": "active"}
        assert [o.id for o in unlocked] == ["B"]

    def test_condition_matches_completed_title(self):
        objectives, _ = complete_objective(_temple_quest(), "A")
        updated, unlocked = complete_objective(objectives, "D")
        assert _states(updated)["C"] == "active"
        assert [o.id for o in unlocked] == ["C"]

    def test_condition_matches_completed_id(self):
        objectives = [
            Objective(id="obj_bell", title="Something unrelated", state="active"),
            Objective(id="x", title="Next", state="locked", unlock_condition="once OBJ_BELL is done"),
        ]
        updated, unlocked = complete_objective(objectives, "obj_bell")
        assert [o.id for o in unlocked] == ["x"]

    def test_only_locked_objectives_unlock(self):
        objectives = [
            Objective(id="A", title="Meet the abbot", state="active"),
            Objective(id="B", title="Recover the key", state="failed", parent_id="A"),
        ]
        updated, unlocked = complete_objective(objectives, "A")
        assert _states(updated)["B"] == "failed"
        assert unlocked == []

    def test_input_untouched(self):
        objectives = _temple_quest()
        complete_objective(objectives, "A")
        assert _states(objectives)["A"] == "active"

    def test_unknown_objective(self):
        with pytest.raises(ObjectiveNotFound):
            complete_objective(_temple_quest(), "Z")


class TestConditionMet:

    def test_short_ids_do_not_match_by_substring(self):
        done = Objective(id="A", title="Zzz", state="completed")
        assert not condition_met("after a long rest", done)

    def test_title_words(self):
        done = Objective(id="q1", title="Enter the Temple", state="completed")
        assert condition_met("after entering the temple", done)


class TestActivateAndFail:

    def test_reactivation_relocks_children(self):
        objectives = [
            Objective(id="A", title="Meet the abbot", state="completed"),
            Objective(id="B", title="Recover the key", state="active", parent_id="A"),
            Objective(id="C", title="Done already", state="completed", parent_id="A"),
        ]
        updated = activate_objective(objectives, "A")
        assert _states(updated) == {"A": "active", "B": "locked", "C": "completed"}

    def test_fail(self):
        updated = fail_objective(_temple_quest(), "D")
        assert _states(updated)["D"] == "failed"

    def test_apply_transition_dispatch(self):
        updated, unlocked = apply_transition(_temple_quest(), "A", "completed")
        assert [o.id for o in unlocked] == ["B"]
        updated, unlocked = apply_transition(updated, "A", "active")
        assert _states(updated)["B"] == "locked"
        assert unlocked == []

    def test_locked_is_not_a_target(self):
        with pytest.raises(InvalidTransition):
            apply_transition(_temple_quest(), "A", "locked")


class TestParseAndNormalize:

    def test_parse_fills_ids_and_skips_garbage(self):
        parsed = parse_objectives([
            {"title": "Find the bell"},
            "not an objective",
            {"id": 7, "description": "Ring it"},
            {"id": "bad", "title": "Bad type", "type": "mandatory"},
        ])
        assert [(o.id, o.title) for o in parsed] == [("obj_1", "Find the bell"), ("7", "Ring it")]

    def test_parse_non_list(self):
        assert parse_objectives(None) == []

    def test_normalize(self):
        objectives = normalize_objectives([
            Objective(id="a", title="Start", state="locked"),
            Objective(id="b", title="Gated", state="active", unlock_condition="after start"),
            Objective(id="c", title="Side", type="optional", state="locked"),
        ])
        assert _states(objectives) == {"a": "active", "b": "locked", "c": "locked"}


class TestObjectiveTracker:

    def _store(self):
        quest = make_entity(
            "The Sunken Temple", "quest", id="quest-1",
            attributes={"objectives": [o.model_dump() for o in _temple_quest()]},
        )
        return InMemoryEntityStore([quest])

    def test_transition_persists_and_notifies(self):
        store = self._store()
        seen = []

        async def scenario():
            tracker = await ObjectiveTracker.load(store, "quest-1")
            tracker.on_unlock(seen.append)
            return tracker, await tracker.transition("A", "completed")

        tracker, unlocked = asyncio.run(scenario())
        assert [o.id for o in unlocked] == ["B"]
        assert [[o.id for o in batch] for batch in seen] == [["B"]]
        assert _states(tracker.objectives)["B"] == "active"

        saved = store.entities["quest-1"].attributes
        assert {o["id"]: o["state"] for o in saved["objectives"]}["B"] == "active"
        assert saved["history"][-1]["event"] == "objective_changed"
        assert saved["history"][-1]["note"] == "A -> completed"

    def test_unsubscribe(self):
        store = self._store()
        seen = []

        async def scenario():
            tracker = await ObjectiveTracker.load(store, "quest-1")
            unsubscribe = tracker.on_unlock(seen.append)
            unsubscribe()
            await tracker.transition("A", "completed")

        asyncio.run(scenario())
        assert seen == []

    def test_failing_listener_does_not_undo_saved_transition(self):
        store = self._store()
        seen = []

        def broken(_unlocked):
            raise RuntimeError("listener blew up")

        async def scenario():
            tracker = await ObjectiveTracker.load(store, "quest-1")
            tracker.on_unlock(broken)
            tracker.on_unlock(seen.append)
            return tracker, await tracker.transition("A", "completed")

        tracker, unlocked = asyncio.run(scenario())
        assert [o.id for o in unlocked] == ["B"]
        assert [[o.id for o in batch] for batch in seen] == [["B"]]
        assert _states(tracker.objectives)["A"] == "completed"
        saved = store.entities["quest-1"].attributes
        assert {o["id"]: o["state"] for o in saved["objectives"]}["A"] == "completed"

    def test_rollback_on_persistence_failure(self):
        store = self._store()
        store.fail_updates = True
        seen = []

        async def scenario():
            tracker = await ObjectiveTracker.load(store, "quest-1")
            tracker.on_unlock(seen.append)
            with pytest.raises(ObjectivePersistenceFailed):
                await tracker.transition("A", "completed")
            return tracker

        tracker = asyncio.run(scenario())
        assert _states(tracker.objectives) == _states(_temple_quest())
        assert seen == []

    def test_load_unknown_entity(self, store):
        with pytest.raises(LookupError):
            asyncio.run(ObjectiveTracker.load(store, "missing"))
