# =============================================================================
# File: mingleo/chat/services/push_registry.py
# Description: Device push token registration
# =============================================================================

import logging
from typing import List

from mingleo.chat.enums import Table
from mingleo.chat.ports.store_port import DurableStorePort
from mingleo.common.exceptions.exceptions import ValidationError
from mingleo.sync.core.types import utc_now

log = logging.getLogger("mingleo.chat.push_registry")


class PushRegistry:
    """One push token per user; registering again replaces it."""

    def __init__(self, store: DurableStorePort):
        self._store = store

    async def register_token(self, user_id: str, push_token: str) -> None:
        if not push_token:
            raise ValidationError("Push token is required")

        await self._store.upsert(
            Table.USER_PUSH_TOKENS.value,
            {
                "user_id": user_id,
                "push_token": push_token,
                "created_at": utc_now().isoformat(),
            },
            on_conflict="user_id",
        )
        log.info(f"Push token registered for user {user_id}")

    async def tokens_for(self, user_ids: List[str]) -> List[str]:
        if not user_ids:
            return []
        rows = await self._store.select(
            Table.USER_PUSH_TOKENS.value,
            {"user_id": {"$in": list(user_ids)}},
        )
        return [row["push_token"] for row in rows if row.get("push_token")]
