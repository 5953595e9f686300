# =============================================================================
# File: mingleo/sync/screens/chat_list_screen.py
# Description: Lobby list of the chats a user created or takes part in
# =============================================================================

from __future__ import annotations

import asyncio
import logging
from typing import List, Set

from mingleo.chat.enums import Table
from mingleo.chat.ports.auth_port import AuthUser
from mingleo.chat.read_models import ChatReadModel
from mingleo.common.exceptions.exceptions import MingleoException
from mingleo.sync.core.types import ChangeEvent, ChangeKind, Topic
from mingleo.sync.reconciler import ViewReconciler, ViewSpec
from mingleo.sync.screens.base_screen import BaseScreen, ScreenDependencies, ScreenStatus

log = logging.getLogger("mingleo.sync.screens.list")

CHAT_LIST_VIEW = ViewSpec(name="chats", model=ChatReadModel, descending=True)


class ChatListScreen(BaseScreen):
    """Newest-first chat list with live inserts, updates and deletes"""

    name = "chat_list"

    def __init__(self, deps: ScreenDependencies, user: AuthUser):
        super().__init__(deps)
        self.user = user
        self.chats: ViewReconciler[ChatReadModel] = ViewReconciler(CHAT_LIST_VIEW)
        self._pending_fetches: Set[asyncio.Task] = set()
        # Chats deleted while this screen is open; a membership fetch must not bring them back
        self._deleted: Set[str] = set()

    @property
    def entities(self) -> List[ChatReadModel]:
        return self.chats.entities

    async def mount(self) -> ScreenStatus:
        self.status = ScreenStatus.LOADING
        self._subscribe(Topic(Table.CHATS.value), self._on_chat_change)
        self._subscribe(
            Topic(Table.CHAT_PARTICIPANTS.value, {"user_id": self.user.id}),
            self._on_membership_change,
        )
        await self._load(self._load_chats)
        log.info(f"Chat list mounted for {self.user.id}: {len(self.chats)} chats")
        return self.status

    async def refresh(self) -> bool:
        """Pull-to-refresh: replace the list with a fresh snapshot."""
        if self.status is ScreenStatus.UNMOUNTED:
            return False
        return await self._load(self._load_chats)

    async def _load_chats(self) -> None:
        chats = await self._deps.fetcher.fetch_chat_list(self.user.id)
        self.chats.apply_snapshot(chats)

    def unmount(self) -> None:
        for task in self._pending_fetches:
            task.cancel()
        self._pending_fetches.clear()
        super().unmount()

    # =========================================================================
    # Change handlers
    # =========================================================================

    def _on_chat_change(self, event: ChangeEvent) -> None:
        chat_id = event.record.get("id")
        if event.kind is ChangeKind.DELETE:
            if chat_id is not None:
                self._deleted.add(chat_id)
            self.chats.apply_change(event)
            return

        # Only chats this user owns or already lists belong here
        if chat_id in self.chats or event.record.get("created_by") == self.user.id:
            self.chats.apply_change(event)

    def _on_membership_change(self, event: ChangeEvent) -> None:
        chat_id = event.record.get("chat_id")
        if chat_id is None:
            return

        left = event.kind is ChangeKind.DELETE or event.record.get("left_at") is not None
        if left:
            chat = self.chats.get(chat_id)
            if chat is not None and chat.created_by != self.user.id:
                self.chats.discard(chat_id)
            return

        if chat_id not in self.chats and chat_id not in self._deleted:
            self._fetch_chat(chat_id)

    def _fetch_chat(self, chat_id: str) -> None:
        try:
            task = asyncio.ensure_future(self._add_chat(chat_id))
        except RuntimeError:
            log.debug(f"No running loop to fetch chat {chat_id}")
            return
        self._pending_fetches.add(task)
        task.add_done_callback(self._pending_fetches.discard)

    async def _add_chat(self, chat_id: str) -> None:
        try:
            chat = await self._deps.fetcher.fetch_chat(chat_id)
        except MingleoException as e:
            log.debug(f"Joined chat {chat_id} not readable: {e}")
            return
        if chat_id in self._deleted:
            log.debug(f"Chat {chat_id} was deleted while it was being fetched")
            return
        if self.status is ScreenStatus.READY:
            self.chats.apply_change(ChangeEvent.insert(Table.CHATS.value, chat.model_dump(mode="json")))
