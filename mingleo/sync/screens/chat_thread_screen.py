# =============================================================================
# File: mingleo/sync/screens/chat_thread_screen.py
# Description: Message thread of one chat with reactions and optimistic sends
# =============================================================================

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass
from typing import Dict, List, Optional

from mingleo.chat.enums import ContentType, ParticipantRole, Table, ToggleOutcome
from mingleo.chat.exceptions import AttachmentRejectedError
from mingleo.chat.ports.auth_port import AuthUser
from mingleo.chat.read_models import ChatReadModel, MessageReadModel, ReactionSummary
from mingleo.chat.services.reaction_service import ReactionService
from mingleo.common.exceptions.exceptions import MingleoException, NotFoundError, ValidationError
from mingleo.sync.aggregator import ReactionAggregator
from mingleo.sync.core.types import ChangeEvent, ChangeKind, Topic, utc_now
from mingleo.sync.reconciler import LOCAL_ID_PREFIX, ViewReconciler, ViewSpec, new_local_id
from mingleo.sync.screens.base_screen import BaseScreen, ScreenDependencies, ScreenStatus

log = logging.getLogger("mingleo.sync.screens.thread")

MESSAGE_VIEW = ViewSpec(name="messages", model=MessageReadModel)


@dataclass(frozen=True)
class Attachment:
    """A file picked for sending"""
    filename: str
    data: bytes
    content_type: str

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def extension(self) -> str:
        return self.filename.rsplit(".", 1)[-1] if "." in self.filename else ""


class ChatThreadScreen(BaseScreen):
    """
    One chat's messages, live.

    Example Usage:
        ```python
        screen = ChatThreadScreen(deps, user, chat_id)
        await screen.mount()
        await screen.send_message("hi")
        ...
        screen.unmount()
        ```
    """

    name = "thread"

    def __init__(self, deps: ScreenDependencies, user: AuthUser, chat_id: str):
        super().__init__(deps)
        self.user = user
        self.chat_id = chat_id
        self.chat: Optional[ChatReadModel] = None
        self.sending = False
        self._in_flight: Optional[str] = None

        self.messages: ViewReconciler[MessageReadModel] = ViewReconciler(
            MESSAGE_VIEW,
            pending_timeout_seconds=deps.sync_config.optimistic_timeout_seconds,
        )
        self.reactions = ReactionAggregator(
            viewer_id=user.id,
            vocabulary=deps.chat_config.emoji_vocabulary,
            orphan_limit=deps.sync_config.orphan_reaction_limit,
        )
        self._reaction_service = ReactionService(deps.store, self.reactions)
        self._name_lookups: set = set()

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def mount(self) -> ScreenStatus:
        self.status = ScreenStatus.LOADING

        self._subscribe(Topic(Table.CHATS.value, {"id": self.chat_id}), self._on_chat_change)
        self._subscribe(Topic(Table.MESSAGES.value, {"chat_id": self.chat_id}), self._on_message_change)
        # Reactions carry no chat column; rows for other chats end up in the bounded orphan buffer
        self._subscribe(Topic(Table.REACTIONS.value), self._on_reaction_change)

        loaded = await self._load(self._load_thread)
        if not loaded and self.status is not ScreenStatus.DELETED:
            self._close_subscriptions()
        log.info(f"Thread {self.chat_id} mounted: {self.status.value}, {len(self.messages)} messages")
        return self.status

    async def refresh(self) -> bool:
        if self.status in (ScreenStatus.UNMOUNTED, ScreenStatus.DELETED):
            return False
        return await self._load(self._load_thread)

    async def _load_thread(self) -> None:
        fetcher = self._deps.fetcher

        self.chat = await fetcher.fetch_chat(self.chat_id)
        await self._ensure_participation()

        messages = await fetcher.fetch_messages(self.chat_id)
        message_ids = [m.id for m in messages]
        reactions = await fetcher.fetch_reactions(message_ids)
        names = await fetcher.fetch_display_names(r.user_id for r in reactions)

        self.messages.apply_snapshot(messages)
        self.reactions.set_display_names(names)
        self.reactions.apply_snapshot(self._confirmed_message_ids(), reactions)

    async def _ensure_participation(self) -> None:
        rows = await self._deps.store.select(
            Table.CHAT_PARTICIPANTS.value,
            {"chat_id": self.chat_id, "user_id": self.user.id},
        )
        if rows and rows[0].get("left_at") is None:
            return

        role = ParticipantRole.OWNER if self.chat and self.chat.created_by == self.user.id else ParticipantRole.MEMBER
        await self._deps.store.upsert(
            Table.CHAT_PARTICIPANTS.value,
            {
                "chat_id": self.chat_id,
                "user_id": self.user.id,
                "role": role.value,
                "joined_at": utc_now().isoformat(),
                "left_at": None,
            },
            on_conflict="chat_id,user_id",
        )
        log.info(f"User {self.user.id} (re)joined chat {self.chat_id} on open")

    # =========================================================================
    # Change handlers
    # =========================================================================

    def _on_chat_change(self, event: ChangeEvent) -> None:
        if event.kind is ChangeKind.DELETE:
            self._mark_deleted()
            return
        if self.chat is not None:
            merged = self.chat.model_dump()
            merged.update(event.record)
            self.chat = ChatReadModel.model_validate(merged)

    def _on_message_change(self, event: ChangeEvent) -> None:
        if self._adopt_own_echo(event):
            return
        delta = self.messages.apply_change(event)
        if not delta.changed:
            return
        if event.kind is ChangeKind.DELETE:
            self.reactions.message_removed(str(delta.key))
        else:
            self.reactions.message_added(str(delta.key))

    def _adopt_own_echo(self, event: ChangeEvent) -> bool:
        """Confirm the in-flight send from its echo when that lands before the write returns."""
        local_id = self._in_flight
        record = event.record
        if local_id is None or event.kind is not ChangeKind.INSERT:
            return False
        if record.get("sender_id") != self.user.id or record.get("id") is None or record["id"] in self.messages:
            return False
        pending = self.messages.get(local_id)
        if pending is None or not self.messages.is_pending(local_id) or record.get("content") != pending.content:
            return False

        message = self.messages.confirm_optimistic(local_id, record)
        self._in_flight = None
        self.reactions.message_added(message.id)
        return True

    def _on_reaction_change(self, event: ChangeEvent) -> None:
        affected = self.reactions.apply_change(event)
        user_id = event.record.get("user_id")
        if affected and event.kind is not ChangeKind.DELETE and user_id:
            self._lookup_name(user_id)

    def _lookup_name(self, user_id: str) -> None:
        if user_id in self._name_lookups:
            return
        self._name_lookups.add(user_id)
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return
        asyncio.ensure_future(self._load_names([user_id]))

    async def _load_names(self, user_ids: List[str]) -> None:
        try:
            names = await self._deps.fetcher.fetch_display_names(user_ids)
        except MingleoException as e:
            log.debug(f"Display name lookup failed for {user_ids}: {e}")
            self._name_lookups.difference_update(user_ids)
            return
        self.reactions.set_display_names(names)

    # =========================================================================
    # Sending
    # =========================================================================

    def _validate_attachment(self, attachment: Attachment) -> ContentType:
        config = self._deps.chat_config
        if attachment.size > config.max_attachment_bytes:
            raise AttachmentRejectedError(attachment.filename, "file is too large (max 10MB)")
        if attachment.content_type in config.image_types:
            return ContentType.IMAGE
        if attachment.content_type in config.document_types:
            return ContentType.FILE
        raise AttachmentRejectedError(attachment.filename, f"unsupported type {attachment.content_type}")

    def _bucket_for(self, content_type: ContentType) -> str:
        config = self._deps.chat_config
        return config.image_bucket if content_type is ContentType.IMAGE else config.file_bucket

    async def send_message(self, content: str, attachment: Optional[Attachment] = None) -> Optional[MessageReadModel]:
        """
        Send a message, showing it immediately.

        Returns None when a send is already in flight. On failure the pending
        entry is removed and the error re-raised for the caller to surface.
        """
        if self.sending:
            log.debug(f"Send ignored for chat {self.chat_id}: previous send in flight")
            return None

        content = (content or "").strip()
        if not content and attachment is None:
            raise ValidationError("Message is empty")
        if self.status is not ScreenStatus.READY:
            raise ValidationError(f"Chat is not available ({self.status.value})")

        content_type = self._validate_attachment(attachment) if attachment else ContentType.TEXT

        self.sending = True
        local_id = new_local_id()
        self.messages.apply_optimistic(MessageReadModel(
            id=local_id,
            chat_id=self.chat_id,
            sender_id=self.user.id,
            content=content,
            content_type=content_type,
            created_at=utc_now(),
        ))
        self._in_flight = local_id

        try:
            media_path = None
            if attachment is not None:
                key = f"{int(utc_now().timestamp() * 1000)}-{uuid.uuid4().hex[:8]}"
                if attachment.extension:
                    key = f"{key}.{attachment.extension}"
                media_path = await self._deps.storage.upload(
                    self._bucket_for(content_type), key, attachment.data, attachment.content_type,
                )

            values = {
                "chat_id": self.chat_id,
                "sender_id": self.user.id,
                "content": content,
                "content_type": content_type.value,
            }
            if media_path:
                values["media_url"] = media_path
            row = await self._deps.store.insert(Table.MESSAGES.value, values)

        except NotFoundError as e:
            self.messages.revert_optimistic(local_id)
            self.last_error = e
            self._mark_deleted()
            raise
        except MingleoException as e:
            self.messages.revert_optimistic(local_id)
            self.last_error = e
            log.warning(f"Send failed in chat {self.chat_id}: {e}")
            raise
        finally:
            self.sending = False
            self._in_flight = None

        message = self.messages.confirm_optimistic(local_id, row)
        self.reactions.message_added(message.id)
        return message

    def media_url(self, message: MessageReadModel) -> Optional[str]:
        if not message.media_url:
            return None
        return self._deps.storage.public_url(self._bucket_for(message.content_type), message.media_url)

    # =========================================================================
    # Reactions
    # =========================================================================

    async def toggle_reaction(self, message_id: str, emoji: str) -> ToggleOutcome:
        if message_id.startswith(LOCAL_ID_PREFIX):
            raise ValidationError("Message is not sent yet")
        return await self._reaction_service.toggle(message_id, self.user.id, emoji)

    def reaction_summaries(self, message_id: str) -> List[ReactionSummary]:
        return self.reactions.summaries(message_id)

    def all_reaction_summaries(self) -> Dict[str, List[ReactionSummary]]:
        return self.reactions.all_summaries()

    # =========================================================================
    # Helpers
    # =========================================================================

    def _confirmed_message_ids(self) -> List[str]:
        return [str(entry.key) for entry in self.messages.entries if not entry.is_pending]

    def prune_pending(self) -> int:
        return self.messages.prune_pending()
