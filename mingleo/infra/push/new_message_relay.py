# =============================================================================
# File: mingleo/infra/push/new_message_relay.py
# Description: Turns message inserts into push notifications for participants
# =============================================================================

"""
NewMessageRelay

Server-side trigger target. The backend posts every row change as
``{type, table, record}``; only message inserts produce notifications.

    INSERT messages ─→ sender name, chat name, participants
                     ─→ push tokens of everyone but the sender
                     ─→ PushGatewayPort.send() per token
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from mingleo.chat.enums import Table
from mingleo.chat.ports.push_port import PushGatewayPort
from mingleo.chat.ports.store_port import DurableStorePort
from mingleo.chat.services.push_registry import PushRegistry
from mingleo.common.exceptions.exceptions import NotFoundError
from mingleo.config.push_config import PushConfig, get_push_config
from mingleo.sync.core.types import ChangeEvent, ChangeKind

log = logging.getLogger("mingleo.infra.push.relay")


@dataclass
class RelayResult:
    status: str
    attempted: int = 0
    delivered: int = 0


class NewMessageRelay:
    """Fan a new message out to the other participants' devices"""

    def __init__(
            self,
            store: DurableStorePort,
            gateway: PushGatewayPort,
            config: Optional[PushConfig] = None,
    ):
        self._store = store
        self._gateway = gateway
        self._registry = PushRegistry(store)
        self._config = config or get_push_config()

    async def handle(self, payload: Mapping[str, Any]) -> RelayResult:
        try:
            event = ChangeEvent.from_raw(payload)
        except ValueError:
            return RelayResult(status="ignored")

        if event.kind is not ChangeKind.INSERT or event.table != Table.MESSAGES.value or not event.record:
            return RelayResult(status="ignored")

        record = event.record
        chat_id = record.get("chat_id")
        sender_id = record.get("sender_id")

        try:
            chat = await self._store.select_one(Table.CHATS.value, {"id": chat_id}, columns="name")
        except NotFoundError:
            log.warning(f"Message {record.get('id')} references missing chat {chat_id}")
            raise

        sender_name = "Someone"
        try:
            sender = await self._store.select_one(Table.USERS.value, {"id": sender_id}, columns="display_name")
            sender_name = sender.get("display_name") or sender_name
        except NotFoundError:
            log.debug(f"Sender {sender_id} has no profile row")

        participants = await self._store.select(
            Table.CHAT_PARTICIPANTS.value,
            {"chat_id": chat_id},
            columns="user_id",
        )
        recipients = [p["user_id"] for p in participants if p.get("user_id") != sender_id]

        tokens = await self._registry.tokens_for(recipients)
        if not tokens:
            return RelayResult(status="no_tokens")

        title = f"{sender_name} in {chat.get('name', '')}"
        click_action = f"{self._config.public_site_url.rstrip('/')}/chat/{chat_id}"

        results = await asyncio.gather(*[
            self._gateway.send(
                token,
                title,
                record.get("content") or "",
                data={"chatId": chat_id},
                click_action=click_action,
            )
            for token in tokens
        ], return_exceptions=True)

        delivered = sum(1 for r in results if r is True)
        for r in results:
            if isinstance(r, Exception):
                log.error(f"Push send failed: {r}")

        log.info(f"Relayed message {record.get('id')} to {delivered}/{len(tokens)} devices")
        return RelayResult(status="sent", attempted=len(tokens), delivered=delivered)
