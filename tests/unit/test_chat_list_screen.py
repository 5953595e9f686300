"""
Tests for ChatListScreen: snapshot ordering and live membership changes.
"""
import asyncio

import pytest

from mingleo.chat.services.chat_service import ChatService
from mingleo.sync.screens import ChatListScreen, ScreenStatus


async def settle(condition, rounds=50):
    for _ in range(rounds):
        await asyncio.sleep(0)
        if condition():
            return


@pytest.fixture
def alice_chats(store, alice):
    return ChatService(store, alice)


@pytest.fixture
def bob_chats(store, bob):
    return ChatService(store, bob)


@pytest.fixture
async def screen(deps, alice):
    screen = ChatListScreen(deps, alice)
    await screen.mount()
    yield screen
    screen.unmount()


def names(screen):
    return [c.name for c in screen.entities]


async def test_snapshot_is_newest_first(deps, alice, alice_chats, bob_chats, store):
    await alice_chats.create_chat("First")
    joined = await bob_chats.create_chat("Bob's")
    await alice_chats.join_chat(joined.id)
    await bob_chats.create_chat("Not mine")
    await alice_chats.create_chat("Latest")

    screen = ChatListScreen(deps, alice)
    assert await screen.mount() is ScreenStatus.READY
    try:
        assert names(screen) == ["Latest", "Bob's", "First"]
    finally:
        screen.unmount()


async def test_created_chat_appears_on_top(screen, alice_chats):
    await alice_chats.create_chat("One")
    await alice_chats.create_chat("Two")
    assert names(screen) == ["Two", "One"]


async def test_other_users_chats_stay_hidden(screen, bob_chats):
    await bob_chats.create_chat("Private")
    assert names(screen) == []


async def test_chat_appears_when_user_is_added(screen, bob_chats, store, alice):
    chat = await bob_chats.create_chat("Invited")
    await store.insert("chat_participants", {"chat_id": chat.id, "user_id": alice.id})

    await settle(lambda: names(screen) == ["Invited"])
    assert names(screen) == ["Invited"]


async def test_chat_deleted_while_fetching_does_not_come_back(screen, deps, bob_chats, store, alice, monkeypatch):
    chat = await bob_chats.create_chat("Short-lived")
    fetch_chat = deps.fetcher.fetch_chat
    fetched = []

    async def fetch_then_delete(chat_id):
        row = await fetch_chat(chat_id)
        await bob_chats.delete_chat(chat_id)
        fetched.append(chat_id)
        return row

    monkeypatch.setattr(deps.fetcher, "fetch_chat", fetch_then_delete)
    await store.insert("chat_participants", {"chat_id": chat.id, "user_id": alice.id})

    await settle(lambda: fetched)
    await settle(lambda: False, rounds=10)
    assert fetched == [chat.id]
    assert names(screen) == []


async def test_deleted_chat_disappears(screen, alice_chats):
    chat = await alice_chats.create_chat("Doomed")
    await alice_chats.create_chat("Kept")

    await alice_chats.delete_chat(chat.id)

    assert names(screen) == ["Kept"]


async def test_leaving_removes_joined_chat(screen, alice_chats, bob_chats):
    chat = await bob_chats.create_chat("Bob's")
    await alice_chats.join_chat(chat.id)
    await settle(lambda: names(screen) == ["Bob's"])

    await alice_chats.leave_chat(chat.id)

    assert names(screen) == []


async def test_settings_change_updates_in_place(screen, alice_chats):
    first = await alice_chats.create_chat("One")
    await alice_chats.create_chat("Two")

    await alice_chats.update_settings(first.id, participants_can_invite=False)

    assert names(screen) == ["Two", "One"]
    assert screen.chats.get(first.id).participants_can_invite is False


async def test_refresh_replaces_the_list(screen, store, alice):
    store.seed("chats", {"name": "Seeded", "created_by": alice.id})
    assert names(screen) == []

    assert await screen.refresh()
    assert names(screen) == ["Seeded"]


async def test_unmount_closes_subscriptions(screen, alice_chats, hub):
    screen.unmount()
    await alice_chats.create_chat("After")

    assert names(screen) == []
    assert hub.open_count == 0
    assert screen.status is ScreenStatus.UNMOUNTED
