# =============================================================================
# File: mingleo/sync/snapshot_fetcher.py
# Description: Point-in-time reads of the collections a screen renders
# =============================================================================

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Type, TypeVar

from pydantic import BaseModel

from mingleo.chat.enums import Table
from mingleo.chat.exceptions import ChatNotFoundError
from mingleo.chat.ports.store_port import DurableStorePort, OrderBy, Row
from mingleo.chat.read_models import (
    ChatParticipantReadModel,
    ChatReadModel,
    MessageReadModel,
    ReactionReadModel,
    UserReadModel,
)
from mingleo.common.exceptions.exceptions import NotFoundError, TransientError
from mingleo.config.reliability_config import ReliabilityConfigs, RetryConfig
from mingleo.infra.reliability.retry import retry_async
from mingleo.sync.core.types import Topic

log = logging.getLogger("mingleo.sync.fetcher")

M = TypeVar("M", bound=BaseModel)


def _is_transient(error: Exception) -> bool:
    return isinstance(error, TransientError)


class SnapshotFetcher:
    """
    Reads an authoritative snapshot for a topic.

    Reads retry on TransientError only. NotFoundError (parent gone) and
    AccessDeniedError (policy) surface immediately as distinct types so the
    screen can tell "chat deleted" from a generic failure.
    """

    def __init__(self, store: DurableStorePort, retry_config: Optional[RetryConfig] = None):
        self._store = store
        retry_config = retry_config or ReliabilityConfigs.store_read_retry()
        self._retry_config = retry_config.model_copy(update={"retry_condition": _is_transient})

    async def _select(self, table: str, filters: Optional[Mapping[str, Any]], order: Optional[OrderBy]) -> List[Row]:
        return await retry_async(
            self._store.select,
            table,
            filters,
            order,
            retry_config=self._retry_config,
            context=f"snapshot {table}",
        )

    async def fetch(
            self,
            topic: Topic,
            model: Type[M],
            order: Optional[OrderBy] = None,
    ) -> List[M]:
        """Rows matching the topic's filter, parsed and ordered."""
        rows = await self._select(topic.table, topic.filters, order or OrderBy("created_at"))
        return [model.model_validate(row) for row in rows]

    async def fetch_chat(self, chat_id: str) -> ChatReadModel:
        try:
            row = await retry_async(
                self._store.select_one,
                Table.CHATS.value,
                {"id": chat_id},
                retry_config=self._retry_config,
                context=f"chat {chat_id}",
            )
        except NotFoundError:
            raise ChatNotFoundError(chat_id)
        return ChatReadModel.model_validate(row)

    async def fetch_chat_list(self, user_id: str) -> List[ChatReadModel]:
        """Chats the user created or takes part in, newest first."""
        created = await self._select(
            Table.CHATS.value,
            {"created_by": user_id},
            OrderBy("created_at", ascending=False),
        )

        memberships = await self._select(
            Table.CHAT_PARTICIPANTS.value,
            {"user_id": user_id, "left_at": None},
            None,
        )
        member_of = [
            ChatParticipantReadModel.model_validate(row).chat_id for row in memberships
        ]

        participated: List[Row] = []
        if member_of:
            participated = await self._select(
                Table.CHATS.value,
                {"id": {"$in": member_of}},
                OrderBy("created_at", ascending=False),
            )

        merged: Dict[str, ChatReadModel] = {}
        for row in list(created) + list(participated):
            chat = ChatReadModel.model_validate(row)
            merged[chat.id] = chat

        chats = sorted(merged.values(), key=lambda c: c.created_at, reverse=True)
        log.debug(f"Chat list for {user_id}: {len(chats)} chats")
        return chats

    async def fetch_messages(self, chat_id: str) -> List[MessageReadModel]:
        return await self.fetch(Topic(Table.MESSAGES.value, {"chat_id": chat_id}), MessageReadModel)

    async def fetch_reactions(self, message_ids: Sequence[str]) -> List[ReactionReadModel]:
        if not message_ids:
            return []
        rows = await self._select(
            Table.REACTIONS.value,
            {"message_id": {"$in": list(message_ids)}},
            OrderBy("created_at"),
        )
        return [ReactionReadModel.model_validate(row) for row in rows]

    async def fetch_participants(self, chat_id: str, active_only: bool = True) -> List[ChatParticipantReadModel]:
        filters: Dict[str, Any] = {"chat_id": chat_id}
        if active_only:
            filters["left_at"] = None
        rows = await self._select(Table.CHAT_PARTICIPANTS.value, filters, OrderBy("joined_at"))
        return [ChatParticipantReadModel.model_validate(row) for row in rows]

    async def fetch_display_names(self, user_ids: Iterable[str]) -> Dict[str, str]:
        ids = sorted(set(user_ids))
        if not ids:
            return {}
        rows = await self._select(Table.USERS.value, {"id": {"$in": ids}}, None)
        users = [UserReadModel.model_validate(row) for row in rows]
        return {user.id: user.display_name for user in users if user.display_name}
