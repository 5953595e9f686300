# =============================================================================
# File: mingleo/sync/aggregator.py
# Description: Per-message reaction summaries derived from reaction rows
# =============================================================================

"""
ReactionAggregator

Keeps the raw reaction rows for the messages in view (through a
ViewReconciler, so the same idempotency rules apply) and derives per-message
summaries on demand.

Reactions can arrive before their message: a reaction event races the
message Insert on a different topic. Those rows are held in a bounded
orphan buffer and adopted when the message shows up.
"""

from __future__ import annotations

import logging
from collections import OrderedDict, defaultdict, deque
from typing import Deque, Dict, Hashable, Iterable, List, Mapping, Optional, Sequence, Set

from mingleo.chat.enums import Table
from mingleo.chat.read_models import ReactionReadModel, ReactionSummary
from mingleo.config.chat_config import DEFAULT_EMOJI_VOCABULARY
from mingleo.sync.core.types import ChangeEvent, ChangeKind
from mingleo.sync.reconciler import ViewReconciler, ViewSpec

log = logging.getLogger("mingleo.sync.aggregator")

UNKNOWN_USER = "Unknown User"

REACTION_VIEW = ViewSpec(name="reactions", model=ReactionReadModel)


def summarize(
        reactions: Iterable[ReactionReadModel],
        viewer_id: Optional[str],
        display_names: Optional[Mapping[str, str]] = None,
        vocabulary: Sequence[str] = DEFAULT_EMOJI_VOCABULARY,
) -> List[ReactionSummary]:
    """
    Summaries for one message's reactions.

    Vocabulary emojis come first in vocabulary order, other emojis follow in
    first-seen order. Emojis with no reactions are omitted.
    """
    display_names = display_names or {}
    grouped: "OrderedDict[str, List[ReactionReadModel]]" = OrderedDict()
    for reaction in reactions:
        grouped.setdefault(reaction.emoji, []).append(reaction)

    ordered = [emoji for emoji in vocabulary if emoji in grouped]
    ordered += [emoji for emoji in grouped if emoji not in vocabulary]

    summaries = []
    for emoji in ordered:
        rows = grouped[emoji]
        summaries.append(ReactionSummary(
            emoji=emoji,
            count=len(rows),
            viewer_has_reacted=viewer_id is not None and any(r.user_id == viewer_id for r in rows),
            reactor_names=[display_names.get(r.user_id, UNKNOWN_USER) for r in rows],
        ))
    return summaries


class ReactionAggregator:
    """Reaction rows for the messages in view plus derived summaries"""

    def __init__(
            self,
            viewer_id: Optional[str],
            vocabulary: Sequence[str] = DEFAULT_EMOJI_VOCABULARY,
            orphan_limit: int = 1000,
    ):
        self.viewer_id = viewer_id
        self.vocabulary = list(vocabulary)
        self.orphan_limit = orphan_limit

        self.rows: ViewReconciler[ReactionReadModel] = ViewReconciler(REACTION_VIEW)
        self._by_message: Dict[str, Set[Hashable]] = defaultdict(set)
        self._messages: Set[str] = set()
        self._orphans: Deque[ChangeEvent] = deque()
        self._display_names: Dict[str, str] = {}

        self.orphans_dropped = 0

    # =========================================================================
    # Message membership
    # =========================================================================

    @property
    def message_ids(self) -> Set[str]:
        return set(self._messages)

    @property
    def orphan_count(self) -> int:
        return len(self._orphans)

    def message_added(self, message_id: str) -> Set[str]:
        """Track a message in view and adopt any reactions that arrived early."""
        if message_id in self._messages:
            return set()
        self._messages.add(message_id)

        adopted = [event for event in self._orphans if event.record.get("message_id") == message_id]
        if not adopted:
            return set()

        self._orphans = deque(event for event in self._orphans if event.record.get("message_id") != message_id)
        for event in adopted:
            self._fold(event)
        log.debug(f"Adopted {len(adopted)} buffered reactions for message {message_id}")
        return {message_id}

    def message_removed(self, message_id: str) -> None:
        """Forget a message and its reactions."""
        self._messages.discard(message_id)
        for key in self._by_message.pop(message_id, set()):
            self.rows.discard(key)

    # =========================================================================
    # Reaction rows
    # =========================================================================

    def set_display_names(self, names: Mapping[str, str]) -> None:
        self._display_names.update(names)

    def apply_snapshot(self, message_ids: Iterable[str], reactions: Iterable[ReactionReadModel]) -> None:
        """Replace tracked messages and their reactions wholesale."""
        self._messages = set(message_ids)
        rows = [r for r in reactions if r.message_id in self._messages]
        self.rows.apply_snapshot(rows)

        self._by_message = defaultdict(set)
        for reaction in self.rows.entities:
            self._by_message[reaction.message_id].add(reaction.id)

        # Orphans whose message is now known are adopted
        pending, self._orphans = list(self._orphans), deque()
        for event in pending:
            self.apply_change(event)

    def apply_change(self, event: ChangeEvent) -> Set[str]:
        """Fold one reaction change. Returns the message ids whose summaries changed."""
        if event.table and event.table != Table.REACTIONS.value:
            return set()

        message_id = event.record.get("message_id")
        if message_id is None:
            # Delete payloads may carry only the key
            existing = self.rows.get(event.record.get("id"))
            message_id = existing.message_id if existing else None

        if message_id is None:
            return set()

        if message_id not in self._messages:
            if event.kind is not ChangeKind.DELETE:
                self._buffer_orphan(event)
            else:
                self._drop_orphan(event.record.get("id"))
            return set()

        return self._fold(event, message_id)

    # =========================================================================
    # Derived summaries
    # =========================================================================

    def reactions_for(self, message_id: str) -> List[ReactionReadModel]:
        return [r for r in self.rows.entities if r.message_id == message_id]

    def summaries(self, message_id: str) -> List[ReactionSummary]:
        return summarize(
            self.reactions_for(message_id),
            self.viewer_id,
            self._display_names,
            self.vocabulary,
        )

    def all_summaries(self) -> Dict[str, List[ReactionSummary]]:
        grouped: Dict[str, List[ReactionReadModel]] = defaultdict(list)
        for reaction in self.rows.entities:
            grouped[reaction.message_id].append(reaction)
        return {
            message_id: summarize(rows, self.viewer_id, self._display_names, self.vocabulary)
            for message_id, rows in grouped.items()
        }

    def find_viewer_reaction(self, message_id: str, emoji: str, user_id: Optional[str] = None) -> Optional[ReactionReadModel]:
        user_id = user_id or self.viewer_id
        for reaction in self.reactions_for(message_id):
            if reaction.user_id == user_id and reaction.emoji == emoji:
                return reaction
        return None

    # =========================================================================
    # Internal
    # =========================================================================

    def _fold(self, event: ChangeEvent, message_id: Optional[str] = None) -> Set[str]:
        message_id = message_id or event.record.get("message_id")
        delta = self.rows.apply_change(event)
        if not delta.changed:
            return set()

        if event.kind is ChangeKind.DELETE:
            self._by_message[message_id].discard(delta.key)
        else:
            self._by_message[message_id].add(delta.key)
        return {message_id}

    def _buffer_orphan(self, event: ChangeEvent) -> None:
        if self.orphan_limit <= 0:
            self.orphans_dropped += 1
            return
        if len(self._orphans) >= self.orphan_limit:
            self._orphans.popleft()
            self.orphans_dropped += 1
            log.warning(f"Orphan reaction buffer full ({self.orphan_limit}), oldest dropped")
        self._orphans.append(event)

    def _drop_orphan(self, reaction_id: Optional[str]) -> None:
        if reaction_id is None:
            return
        self._orphans = deque(event for event in self._orphans if event.record.get("id") != reaction_id)
