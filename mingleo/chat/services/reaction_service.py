# =============================================================================
# File: mingleo/chat/services/reaction_service.py
# Description: Reaction toggle with in-flight de-duplication
# =============================================================================

from __future__ import annotations

import logging
from typing import Set, Tuple

from mingleo.chat.enums import Table, ToggleOutcome
from mingleo.chat.ports.store_port import DurableStorePort
from mingleo.common.exceptions.exceptions import ConflictError, NotFoundError, ValidationError
from mingleo.sync.aggregator import ReactionAggregator
from mingleo.sync.core.types import ChangeEvent

log = logging.getLogger("mingleo.chat.reactions")


class ReactionService:
    """
    Toggles the viewer's reaction on a message.

    Delete if the viewer already reacted with the emoji, insert otherwise.
    A second toggle for the same (message, user, emoji) while the first is
    still in flight is skipped, so a double tap flips exactly once.
    """

    def __init__(self, store: DurableStorePort, aggregator: ReactionAggregator):
        self._store = store
        self._aggregator = aggregator
        self._in_flight: Set[Tuple[str, str, str]] = set()

    def is_in_flight(self, message_id: str, user_id: str, emoji: str) -> bool:
        return (message_id, user_id, emoji) in self._in_flight

    async def toggle(self, message_id: str, user_id: str, emoji: str) -> ToggleOutcome:
        if not emoji:
            raise ValidationError("Emoji is required")

        key = (message_id, user_id, emoji)
        if key in self._in_flight:
            log.debug(f"Toggle {emoji} on {message_id} already in flight")
            return ToggleOutcome.SKIPPED

        self._in_flight.add(key)
        try:
            existing = self._aggregator.find_viewer_reaction(message_id, emoji, user_id)
            if existing is not None:
                await self._remove(message_id, user_id, emoji)
                self._aggregator.apply_change(
                    ChangeEvent.delete(Table.REACTIONS.value, existing.model_dump(mode="json"))
                )
                return ToggleOutcome.REMOVED

            try:
                row = await self._store.insert(Table.REACTIONS.value, {
                    "message_id": message_id,
                    "user_id": user_id,
                    "emoji": emoji,
                })
            except ConflictError:
                # Row already exists; the realtime echo brings it into view
                log.debug(f"Reaction {emoji} on {message_id} by {user_id} already exists")
                return ToggleOutcome.ADDED

            self._aggregator.apply_change(ChangeEvent.insert(Table.REACTIONS.value, row))
            return ToggleOutcome.ADDED

        finally:
            self._in_flight.discard(key)

    async def _remove(self, message_id: str, user_id: str, emoji: str) -> None:
        try:
            await self._store.delete(Table.REACTIONS.value, {
                "message_id": message_id,
                "user_id": user_id,
                "emoji": emoji,
            })
        except NotFoundError:
            log.debug(f"Reaction {emoji} on {message_id} already gone")
