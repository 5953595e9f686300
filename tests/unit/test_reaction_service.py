"""
Tests for ReactionService.toggle: flip semantics and concurrent double taps.
"""
import asyncio

import pytest

from mingleo.chat.enums import ToggleOutcome
from mingleo.chat.services.reaction_service import ReactionService
from mingleo.common.exceptions.exceptions import ConflictError, TransientError, ValidationError
from mingleo.sync.aggregator import ReactionAggregator


@pytest.fixture
def message_id(store, alice):
    chat = store.seed("chats", {"name": "Team", "created_by": alice.id})
    return store.seed("messages", {"chat_id": chat["id"], "sender_id": alice.id, "content": "hi"})["id"]


@pytest.fixture
def aggregator(alice, message_id):
    aggregator = ReactionAggregator(viewer_id=alice.id)
    aggregator.apply_snapshot([message_id], [])
    return aggregator


@pytest.fixture
def service(store, aggregator):
    return ReactionService(store, aggregator)


async def test_toggle_adds_then_removes(service, aggregator, store, alice, message_id):
    assert await service.toggle(message_id, alice.id, "👍") is ToggleOutcome.ADDED
    assert aggregator.summaries(message_id)[0].viewer_has_reacted
    assert len(store.rows("reactions")) == 1

    assert await service.toggle(message_id, alice.id, "👍") is ToggleOutcome.REMOVED
    assert aggregator.summaries(message_id) == []
    assert store.rows("reactions") == []


async def test_toggle_never_both_inserts_and_deletes(service, store, alice, message_id):
    await service.toggle(message_id, alice.id, "❤️")
    assert store.get_call_count("insert") == 1
    assert store.get_call_count("delete") == 0


async def test_concurrent_double_toggle_flips_once(service, store, aggregator, alice, message_id):
    results = await asyncio.gather(
        service.toggle(message_id, alice.id, "😂"),
        service.toggle(message_id, alice.id, "😂"),
    )

    assert sorted(r.value for r in results) == ["added", "skipped"]
    assert len(store.rows("reactions")) == 1
    assert aggregator.summaries(message_id)[0].count == 1


async def test_concurrent_toggles_for_different_emojis_both_apply(service, store, alice, message_id):
    results = await asyncio.gather(
        service.toggle(message_id, alice.id, "👍"),
        service.toggle(message_id, alice.id, "🙏"),
    )
    assert all(r is ToggleOutcome.ADDED for r in results)
    assert len(store.rows("reactions")) == 2


async def test_uniqueness_violation_is_benign(service, store, aggregator, alice, message_id):
    store.configure_failure("insert", ConflictError("23505"), times=1)
    assert await service.toggle(message_id, alice.id, "👍") is ToggleOutcome.ADDED
    assert not service.is_in_flight(message_id, alice.id, "👍")


async def test_transient_failure_propagates_and_releases_lock(service, store, alice, message_id):
    store.configure_failure("insert", TransientError("network"), times=1)
    with pytest.raises(TransientError):
        await service.toggle(message_id, alice.id, "👍")

    assert await service.toggle(message_id, alice.id, "👍") is ToggleOutcome.ADDED


async def test_empty_emoji_rejected(service, alice, message_id):
    with pytest.raises(ValidationError):
        await service.toggle(message_id, alice.id, "")
