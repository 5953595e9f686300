"""
End-to-end tests for ChatThreadScreen over the in-memory store and realtime hub.
"""
import asyncio

import pytest

from mingleo.chat.enums import ContentType, ToggleOutcome
from mingleo.chat.exceptions import AttachmentRejectedError
from mingleo.chat.services.chat_service import ChatService
from mingleo.common.exceptions.exceptions import NotFoundError, TransientError, ValidationError
from mingleo.config.chat_config import ChatConfig
from mingleo.sync.reconciler import LOCAL_ID_PREFIX
from mingleo.sync.screens import Attachment, ChatThreadScreen, ScreenStatus


async def settle(condition=None, rounds=20):
    """Let scheduled callbacks and tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)
        if condition is not None and condition():
            return


@pytest.fixture
async def chat(store, alice):
    return await ChatService(store, alice).create_chat("Team")


@pytest.fixture
async def screen(deps, alice, chat):
    screen = ChatThreadScreen(deps, alice, chat.id)
    await screen.mount()
    yield screen
    screen.unmount()


def contents(screen):
    return [m.content for m in screen.messages.entities]


# =============================================================================
# Mount
# =============================================================================

async def test_new_chat_opens_empty(screen, chat):
    assert screen.status is ScreenStatus.READY
    assert screen.chat.name == "Team"
    assert contents(screen) == []


async def test_mount_missing_chat_reports_deleted(deps, alice):
    screen = ChatThreadScreen(deps, alice, "no-such-chat")
    assert await screen.mount() is ScreenStatus.DELETED
    assert not screen.mounted


async def test_chat_deleted_during_snapshot_read_stays_deleted(deps, store, alice, chat, monkeypatch):
    fetch_display_names = deps.fetcher.fetch_display_names

    async def names_then_delete(user_ids):
        names = await fetch_display_names(user_ids)
        await store.delete("chats", {"id": chat.id})
        return names

    monkeypatch.setattr(deps.fetcher, "fetch_display_names", names_then_delete)
    screen = ChatThreadScreen(deps, alice, chat.id)

    assert await screen.mount() is ScreenStatus.DELETED
    assert not screen.mounted
    assert not await screen.refresh()


async def test_unmount_during_snapshot_read_stays_unmounted(deps, alice, chat, monkeypatch):
    screen = ChatThreadScreen(deps, alice, chat.id)
    fetch_messages = deps.fetcher.fetch_messages

    async def messages_then_unmount(chat_id):
        messages = await fetch_messages(chat_id)
        screen.unmount()
        return messages

    monkeypatch.setattr(deps.fetcher, "fetch_messages", messages_then_unmount)

    assert await screen.mount() is ScreenStatus.UNMOUNTED
    assert not screen.mounted


async def test_opening_a_chat_joins_it(deps, store, bob, chat):
    screen = ChatThreadScreen(deps, bob, chat.id)
    await screen.mount()
    try:
        members = [p for p in store.rows("chat_participants") if p["user_id"] == bob.id]
        assert len(members) == 1
        assert members[0]["role"] == "member"
    finally:
        screen.unmount()


async def test_snapshot_includes_existing_messages_and_reactions(deps, store, alice, bob, chat):
    message = await store.insert("messages", {"chat_id": chat.id, "sender_id": bob.id, "content": "earlier"})
    await store.insert("reactions", {"message_id": message["id"], "user_id": bob.id, "emoji": "👍"})

    screen = ChatThreadScreen(deps, alice, chat.id)
    await screen.mount()
    try:
        assert contents(screen) == ["earlier"]
        summary = screen.reaction_summaries(message["id"])[0]
        assert (summary.emoji, summary.count, summary.viewer_has_reacted) == ("👍", 1, False)
        assert summary.reactor_names == ["Bob"]
    finally:
        screen.unmount()


# =============================================================================
# Sending
# =============================================================================

async def test_send_shows_exactly_one_message(screen):
    sent = await screen.send_message("hi")

    assert contents(screen) == ["hi"]
    assert screen.messages.pending_count == 0
    assert not sent.id.startswith(LOCAL_ID_PREFIX)
    assert screen.messages.keys() == [sent.id]


async def test_echo_after_acknowledgement_does_not_duplicate(screen, store):
    store.hold_events = True
    sent = await screen.send_message("hi")
    assert contents(screen) == ["hi"]

    store.hold_events = False
    store.flush_events()

    assert contents(screen) == ["hi"]
    assert screen.messages.keys() == [sent.id]


async def test_echo_before_acknowledgement_is_adopted(screen, store, monkeypatch):
    insert = store.insert
    seen = []

    async def insert_and_look(table, values):
        row = await insert(table, values)
        seen.append((contents(screen), screen.messages.pending_count))
        return row

    monkeypatch.setattr(store, "insert", insert_and_look)
    sent = await screen.send_message("hi")

    assert seen == [(["hi"], 0)]
    assert screen.messages.keys() == [sent.id]


async def test_own_message_from_another_device_is_kept_apart(screen, store, alice, chat, monkeypatch):
    insert = store.insert
    pending_seen = []

    async def other_device_first(table, values):
        if table == "messages" and values.get("content") == "hi":
            await insert("messages", {"chat_id": chat.id, "sender_id": alice.id, "content": "from phone"})
            pending_seen.append(screen.messages.pending_count)
        return await insert(table, values)

    monkeypatch.setattr(store, "insert", other_device_first)
    await screen.send_message("hi")

    assert pending_seen == [1]
    assert sorted(contents(screen)) == ["from phone", "hi"]
    assert screen.messages.pending_count == 0


async def test_pending_message_is_visible_before_acknowledgement(screen, store):
    task = asyncio.ensure_future(screen.send_message("hi"))
    await asyncio.sleep(0)

    assert contents(screen) == ["hi"]
    assert screen.messages.pending_count == 1
    assert screen.sending

    await task
    assert screen.messages.pending_count == 0
    assert not screen.sending


async def test_messages_from_others_arrive_live(screen, store, bob, chat):
    await screen.send_message("one")
    await store.insert("messages", {"chat_id": chat.id, "sender_id": bob.id, "content": "two"})
    await screen.send_message("three")

    assert contents(screen) == ["one", "two", "three"]


async def test_messages_of_other_chats_are_not_shown(screen, store, bob):
    other = await ChatService(store, bob).create_chat("Elsewhere")
    await store.insert("messages", {"chat_id": other.id, "sender_id": bob.id, "content": "nope"})
    assert contents(screen) == []


async def test_second_send_while_in_flight_is_ignored(screen):
    results = await asyncio.gather(screen.send_message("a"), screen.send_message("b"))

    assert results[1] is None
    assert contents(screen) == ["a"]


async def test_empty_message_is_rejected(screen):
    with pytest.raises(ValidationError):
        await screen.send_message("   ")
    assert len(screen.messages) == 0


async def test_failed_send_reverts_pending_entry(screen, store):
    store.configure_failure("insert", TransientError("network down"), times=1)

    with pytest.raises(TransientError):
        await screen.send_message("hi")

    assert contents(screen) == []
    assert not screen.sending
    assert screen.status is ScreenStatus.READY


async def test_send_into_silently_deleted_chat_closes_screen(screen, store, chat):
    store.hold_events = True
    await store.delete("chats", {"id": chat.id})

    with pytest.raises(NotFoundError):
        await screen.send_message("anyone?")

    assert screen.status is ScreenStatus.DELETED
    assert screen.messages.pending_count == 0


# =============================================================================
# Attachments
# =============================================================================

async def test_image_attachment_is_uploaded_and_linked(screen, storage):
    sent = await screen.send_message("look", Attachment("cat.png", b"\x89PNG....", "image/png"))

    assert sent.content_type is ContentType.IMAGE
    assert storage.was_called("upload")
    bucket, key = storage.get_last_call("upload").args[:2]
    assert bucket == "chat-images"
    assert key.endswith(".png")
    assert screen.media_url(sent) == f"https://storage.test/chat-images/{key}"


async def test_document_attachment_goes_to_file_bucket(screen, storage):
    sent = await screen.send_message("", Attachment("notes.pdf", b"%PDF", "application/pdf"))

    assert sent.content_type is ContentType.FILE
    assert storage.get_last_call("upload").args[0] == "chat-files"


async def test_oversized_attachment_is_rejected(screen, deps, storage):
    deps.chat_config = ChatConfig(max_attachment_bytes=8)

    with pytest.raises(AttachmentRejectedError):
        await screen.send_message("big", Attachment("big.png", b"0123456789", "image/png"))

    assert not storage.was_called("upload")
    assert len(screen.messages) == 0


async def test_unsupported_attachment_type_is_rejected(screen):
    with pytest.raises(AttachmentRejectedError):
        await screen.send_message("run me", Attachment("setup.exe", b"MZ", "application/x-msdownload"))


async def test_failed_upload_reverts(screen, storage):
    storage.configure_failure("upload", TransientError("storage down"), times=1)

    with pytest.raises(TransientError):
        await screen.send_message("look", Attachment("cat.png", b"png", "image/png"))
    assert contents(screen) == []


# =============================================================================
# Reactions
# =============================================================================

async def test_toggle_reaction_adds_and_removes(screen):
    sent = await screen.send_message("hi")

    assert await screen.toggle_reaction(sent.id, "👍") is ToggleOutcome.ADDED
    await settle(lambda: screen.reaction_summaries(sent.id)[0].reactor_names == ["Alice"])
    summary = screen.reaction_summaries(sent.id)[0]
    assert (summary.count, summary.viewer_has_reacted) == (1, True)
    assert summary.reactor_names == ["Alice"]

    assert await screen.toggle_reaction(sent.id, "👍") is ToggleOutcome.REMOVED
    assert screen.reaction_summaries(sent.id) == []


async def test_reactions_from_others_arrive_live(screen, store, bob):
    sent = await screen.send_message("hi")
    await store.insert("reactions", {"message_id": sent.id, "user_id": bob.id, "emoji": "❤️"})
    await settle(lambda: screen.reaction_summaries(sent.id)[0].reactor_names == ["Bob"])

    summary = screen.reaction_summaries(sent.id)[0]
    assert (summary.emoji, summary.count, summary.viewer_has_reacted) == ("❤️", 1, False)
    assert summary.reactor_names == ["Bob"]


async def test_cannot_react_to_pending_message(screen):
    with pytest.raises(ValidationError):
        await screen.toggle_reaction(f"{LOCAL_ID_PREFIX}abc", "👍")


# =============================================================================
# Lifecycle
# =============================================================================

async def test_chat_deleted_by_owner_closes_viewers(deps, store, alice, bob, chat):
    screen = ChatThreadScreen(deps, bob, chat.id)
    await screen.mount()

    await ChatService(store, alice).delete_chat(chat.id)

    assert screen.status is ScreenStatus.DELETED
    assert not screen.mounted
    with pytest.raises(ValidationError):
        await screen.send_message("hello?")


async def test_unmount_stops_updates(screen, store, bob, chat, hub):
    screen.unmount()

    await store.insert("messages", {"chat_id": chat.id, "sender_id": bob.id, "content": "late"})

    assert screen.status is ScreenStatus.UNMOUNTED
    assert contents(screen) == []
    assert hub.open_count == 0


async def test_resync_after_connection_loss(screen, store, hub, bob, chat):
    hub.drop_all()
    # Committed while no channel is open
    await store.insert("messages", {"chat_id": chat.id, "sender_id": bob.id, "content": "missed"})

    await settle(lambda: contents(screen) == ["missed"], rounds=200)

    assert contents(screen) == ["missed"]
    assert hub.open_count == 3
    assert screen.status is ScreenStatus.READY


async def test_chat_rename_is_applied(screen, store, chat):
    await store.update("chats", {"id": chat.id}, {"name": "Renamed"})
    assert screen.chat.name == "Renamed"
