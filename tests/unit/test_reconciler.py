"""
Tests for ViewReconciler: snapshot replacement, idempotent change folding and
optimistic entries.
"""
import random
from datetime import datetime, timedelta, timezone

import pytest

from mingleo.chat.read_models import ChatReadModel, MessageReadModel
from mingleo.sync.core.types import ChangeEvent, ChangeOutcome
from mingleo.sync.reconciler import ViewReconciler, ViewSpec, new_local_id

BASE = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def message(message_id, seconds, content="x", chat_id="c1"):
    return {
        "id": message_id,
        "chat_id": chat_id,
        "sender_id": "u1",
        "content": content,
        "content_type": "text",
        "created_at": (BASE + timedelta(seconds=seconds)).isoformat(),
    }


@pytest.fixture
def view():
    return ViewReconciler(ViewSpec("messages", MessageReadModel))


def ids(view):
    return [m.id for m in view.entities]


# =============================================================================
# Snapshot
# =============================================================================

class TestSnapshot:

    def test_snapshot_is_sorted(self, view):
        view.apply_snapshot([message("b", 2), message("a", 1), message("c", 3)])
        assert ids(view) == ["a", "b", "c"]

    def test_duplicate_keys_last_wins(self, view):
        view.apply_snapshot([message("a", 1, "old"), message("a", 1, "new")])
        assert len(view) == 1
        assert view.get("a").content == "new"

    def test_snapshot_replaces_wholesale(self, view):
        view.apply_snapshot([message("a", 1), message("b", 2)])
        view.apply_snapshot([message("c", 3)])
        assert ids(view) == ["c"]

    def test_snapshot_keeps_pending_entries(self, view):
        local_id = view.apply_optimistic(MessageReadModel.model_validate(message(new_local_id(), 10)))
        view.apply_snapshot([message("a", 1)])
        assert local_id in view
        assert view.is_pending(local_id)

    def test_descending_view(self):
        chats = ViewReconciler(ViewSpec("chats", ChatReadModel, descending=True))
        rows = [
            {"id": f"c{i}", "name": f"chat {i}", "created_by": "u1",
             "created_at": (BASE + timedelta(minutes=i)).isoformat()}
            for i in range(3)
        ]
        chats.apply_snapshot(rows)
        assert [c.id for c in chats.entities] == ["c2", "c1", "c0"]


# =============================================================================
# Change events
# =============================================================================

class TestApplyChange:

    def test_insert_lands_at_sorted_position(self, view):
        view.apply_snapshot([message("a", 1), message("c", 3)])
        delta = view.apply_change(ChangeEvent.insert("messages", message("b", 2)))
        assert delta.outcome is ChangeOutcome.INSERTED
        assert ids(view) == ["a", "b", "c"]

    def test_insert_for_present_key_refreshes_in_place(self, view):
        view.apply_snapshot([message("a", 1, "old"), message("b", 2)])
        delta = view.apply_change(ChangeEvent.insert("messages", message("a", 1, "new")))
        assert delta.outcome is ChangeOutcome.UPDATED
        assert ids(view) == ["a", "b"]
        assert view.get("a").content == "new"

    def test_update_before_insert_is_an_insert(self, view):
        delta = view.apply_change(ChangeEvent.update("messages", message("a", 1, "edited")))
        assert delta.outcome is ChangeOutcome.INSERTED
        view.apply_change(ChangeEvent.insert("messages", message("a", 1, "edited")))
        assert ids(view) == ["a"]

    def test_update_merges_partial_record(self, view):
        view.apply_snapshot([message("a", 1, "hello")])
        view.apply_change(ChangeEvent.update("messages", {"id": "a", "content": "hello!"}))
        entity = view.get("a")
        assert entity.content == "hello!"
        assert entity.chat_id == "c1"

    def test_update_keeps_position_unless_sort_value_changes(self, view):
        view.apply_snapshot([message("a", 1), message("b", 2), message("c", 3)])
        view.apply_change(ChangeEvent.update("messages", message("a", 1, "edited")))
        assert ids(view) == ["a", "b", "c"]

        view.apply_change(ChangeEvent.update("messages", message("a", 4)))
        assert ids(view) == ["b", "c", "a"]

    def test_delete_twice_equals_delete_once(self, view):
        view.apply_snapshot([message("a", 1), message("b", 2)])
        first = view.apply_change(ChangeEvent.delete("messages", {"id": "a"}))
        second = view.apply_change(ChangeEvent.delete("messages", {"id": "a"}))
        assert first.outcome is ChangeOutcome.REMOVED
        assert second.outcome is ChangeOutcome.IGNORED
        assert ids(view) == ["b"]

    def test_delete_for_absent_key_is_noop(self, view):
        view.apply_snapshot([message("a", 1)])
        version = view.version
        delta = view.apply_change(ChangeEvent.delete("messages", {"id": "zzz"}))
        assert not delta.changed
        assert view.version == version

    def test_event_without_key_is_ignored(self, view):
        delta = view.apply_change(ChangeEvent.insert("messages", {"content": "no id"}))
        assert delta.outcome is ChangeOutcome.IGNORED
        assert len(view) == 0

    def test_listener_receives_deltas(self):
        seen = []
        view = ViewReconciler(ViewSpec("messages", MessageReadModel), on_change=seen.append)
        view.apply_change(ChangeEvent.insert("messages", message("a", 1)))
        view.apply_change(ChangeEvent.delete("messages", {"id": "a"}))
        assert [d.outcome for d in seen] == [ChangeOutcome.INSERTED, ChangeOutcome.REMOVED]

    def test_failing_listener_does_not_break_the_view(self):
        def explode(delta):
            raise RuntimeError("render failed")

        view = ViewReconciler(ViewSpec("messages", MessageReadModel), on_change=explode)
        view.apply_change(ChangeEvent.insert("messages", message("a", 1)))
        assert ids(view) == ["a"]


# =============================================================================
# Interleavings
# =============================================================================

class TestInterleavings:

    @pytest.mark.parametrize("seed", range(25))
    def test_no_duplicate_keys_after_any_interleaving(self, seed):
        rng = random.Random(seed)
        snapshot = [message(f"m{i}", i) for i in range(5)]

        events = []
        for i in range(8):
            row = message(f"m{rng.randrange(10)}", rng.randrange(20), content=f"v{i}")
            kind = rng.choice(["insert", "update", "update", "delete"])
            events.append(getattr(ChangeEvent, kind)("messages", row))
        # At-least-once delivery
        events += rng.sample(events, 3)
        rng.shuffle(events)

        view = ViewReconciler(ViewSpec("messages", MessageReadModel))
        view.apply_snapshot(snapshot)
        for event in events:
            view.apply_change(event)

        keys = view.keys()
        assert len(keys) == len(set(keys))
        tokens = [view.spec.sort_token(m) for m in view.entities]
        assert tokens == sorted(tokens)

    @pytest.mark.parametrize("seed", range(10))
    def test_redelivery_is_idempotent(self, seed):
        rng = random.Random(seed)
        events = [ChangeEvent.insert("messages", message(f"m{i}", rng.randrange(50))) for i in range(10)]

        once = ViewReconciler(ViewSpec("messages", MessageReadModel))
        for event in events:
            once.apply_change(event)

        twice = ViewReconciler(ViewSpec("messages", MessageReadModel))
        for event in events + rng.sample(events, len(events)):
            twice.apply_change(event)

        assert ids(once) == ids(twice)


# =============================================================================
# Optimistic entries
# =============================================================================

class TestOptimistic:

    def _pending(self, view, content="hi", seconds=10):
        local_id = new_local_id()
        view.apply_optimistic(MessageReadModel.model_validate(message(local_id, seconds, content)))
        return local_id

    def test_pending_entry_is_visible_immediately(self, view):
        local_id = self._pending(view)
        assert view.is_pending(local_id)
        assert view.pending_count == 1

    def test_confirm_rekeys_in_place(self, view):
        view.apply_snapshot([message("a", 1)])
        local_id = self._pending(view)
        view.apply_change(ChangeEvent.insert("messages", message("b", 20)))

        view.confirm_optimistic(local_id, message("srv", 30, "hi"))

        assert ids(view) == ["a", "srv", "b"]
        assert not view.is_pending("srv")
        assert local_id not in view

    def test_echo_after_confirm_does_not_duplicate(self, view):
        local_id = self._pending(view)
        view.confirm_optimistic(local_id, message("srv", 10, "hi"))
        view.apply_change(ChangeEvent.insert("messages", message("srv", 10, "hi")))
        assert ids(view) == ["srv"]

    def test_echo_before_confirm_does_not_duplicate(self, view):
        local_id = self._pending(view)
        view.apply_change(ChangeEvent.insert("messages", message("srv", 10, "hi")))
        confirmed = view.confirm_optimistic(local_id, message("srv", 10, "hi"))
        assert ids(view) == ["srv"]
        assert confirmed.content == "hi"
        assert view.pending_count == 0

    def test_revert_removes_pending_entry(self, view):
        view.apply_snapshot([message("a", 1)])
        local_id = self._pending(view)
        assert view.revert_optimistic(local_id)
        assert ids(view) == ["a"]
        assert not view.revert_optimistic(local_id)

    def test_revert_never_touches_confirmed_entries(self, view):
        view.apply_snapshot([message("a", 1)])
        assert not view.revert_optimistic("a")
        assert ids(view) == ["a"]

    def test_optimistic_key_collision_is_rejected(self, view):
        view.apply_snapshot([message("a", 1)])
        with pytest.raises(ValueError):
            view.apply_optimistic(MessageReadModel.model_validate(message("a", 2)))

    def test_prune_disabled_by_default(self, view):
        self._pending(view)
        assert view.prune_pending(datetime.now(timezone.utc) + timedelta(days=1)) == 0
        assert view.pending_count == 1

    def test_prune_drops_stale_pending_entries(self):
        view = ViewReconciler(ViewSpec("messages", MessageReadModel), pending_timeout_seconds=30)
        self._pending(view)
        assert view.prune_pending(datetime.now(timezone.utc) + timedelta(seconds=5)) == 0
        assert view.prune_pending(datetime.now(timezone.utc) + timedelta(seconds=60)) == 1
        assert len(view) == 0
