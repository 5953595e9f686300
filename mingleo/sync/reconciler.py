# =============================================================================
# File: mingleo/sync/reconciler.py
# Description: View-state reconciliation of snapshots, change events and
#              optimistic local writes
# =============================================================================

"""
ViewReconciler - the only writer of a View

A View is an ordered, key-unique projection of one entity collection (chat
list, message thread, reaction rows). The reconciler folds three sources into
it:

    apply_snapshot  authoritative point-in-time read (screen mount / refresh)
    apply_change    realtime Insert / Update / Delete notifications
    *_optimistic    local writes shown before the backend acknowledges them

Rules:
    - At most one entry per key; last write wins by arrival order.
    - Insert for a present key refreshes the entry in place.
    - Update for an absent key is an Insert.
    - Delete for an absent key is a no-op.
    - Update keeps the entry's position unless its sort value changed.
    - A pending entry is re-keyed to the server key on confirmation without
      moving; if the remote echo arrived first the pending entry is dropped.

Each apply call holds the view's lock for its whole duration, so a view can
be fed from a transport thread as well as from the event loop.
"""

from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import (
    Any,
    Callable,
    Dict,
    Generic,
    Hashable,
    Iterable,
    List,
    Mapping,
    Optional,
    Tuple,
    Type,
    TypeVar,
    Union,
)

from pydantic import BaseModel

from mingleo.sync.core.types import (
    ChangeEvent,
    ChangeKind,
    ChangeOutcome,
    EntryState,
    ViewDelta,
    ViewEntry,
    utc_now,
)

log = logging.getLogger("mingleo.sync.reconciler")

M = TypeVar("M", bound=BaseModel)

LOCAL_ID_PREFIX = "local:"


def new_local_id() -> str:
    """Client-side placeholder key for an optimistic entry (never sent to the backend)"""
    return f"{LOCAL_ID_PREFIX}{uuid.uuid4().hex}"


@dataclass(frozen=True)
class ViewSpec(Generic[M]):
    """Identity and ordering contract of a View"""
    name: str
    model: Type[M]
    key_fields: Tuple[str, ...] = ("id",)
    sort_field: str = "created_at"
    descending: bool = False

    def key_of(self, record: Union[Mapping[str, Any], BaseModel]) -> Optional[Hashable]:
        """Key of a raw record or entity; None when a key column is missing"""
        values = []
        for column in self.key_fields:
            if isinstance(record, BaseModel):
                value = getattr(record, column, None)
            else:
                value = record.get(column)
            if value is None:
                return None
            values.append(value)
        return values[0] if len(values) == 1 else tuple(values)

    def sort_token(self, entity: M) -> Tuple[bool, Any]:
        # Missing sort values order after present ones
        value = getattr(entity, self.sort_field, None)
        return (value is None, value if value is not None else 0)


class ViewReconciler(Generic[M]):
    """
    Single-writer owner of one View.

    Example Usage:
        ```python
        thread = ViewReconciler(ViewSpec("messages", MessageReadModel))
        thread.apply_snapshot(await fetcher.fetch_messages(chat_id))

        handle = subscriber.subscribe(topic, thread.apply_change)
        ```
    """

    def __init__(
            self,
            spec: ViewSpec[M],
            pending_timeout_seconds: Optional[float] = None,
            on_change: Optional[Callable[[ViewDelta[M]], None]] = None,
    ):
        self.spec = spec
        self.pending_timeout_seconds = pending_timeout_seconds
        self._on_change = on_change

        self._entries: List[ViewEntry[M]] = []
        self._index: Dict[Hashable, ViewEntry[M]] = {}
        self._lock = threading.Lock()
        self._version = 0

    # =========================================================================
    # Read access
    # =========================================================================

    @property
    def entities(self) -> List[M]:
        """Ordered entities as rendered, pending ones included"""
        with self._lock:
            return [entry.entity for entry in self._entries]

    @property
    def entries(self) -> List[ViewEntry[M]]:
        with self._lock:
            return list(self._entries)

    @property
    def version(self) -> int:
        """Incremented on every change; lets renderers skip no-op redraws"""
        return self._version

    @property
    def pending_count(self) -> int:
        with self._lock:
            return sum(1 for entry in self._entries if entry.is_pending)

    def keys(self) -> List[Hashable]:
        with self._lock:
            return [entry.key for entry in self._entries]

    def get(self, key: Hashable) -> Optional[M]:
        with self._lock:
            entry = self._index.get(key)
            return entry.entity if entry else None

    def is_pending(self, key: Hashable) -> bool:
        with self._lock:
            entry = self._index.get(key)
            return bool(entry and entry.is_pending)

    def __contains__(self, key: Hashable) -> bool:
        with self._lock:
            return key in self._index

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    # =========================================================================
    # Snapshot
    # =========================================================================

    def apply_snapshot(self, rows: Iterable[Union[M, Mapping[str, Any]]]) -> None:
        """Replace the View wholesale. Pending optimistic entries survive."""
        with self._lock:
            confirmed: Dict[Hashable, ViewEntry[M]] = {}
            for row in rows:
                entity = self._parse(row)
                key = self.spec.key_of(entity)
                if key is None:
                    log.warning(f"[{self.spec.name}] snapshot row without key skipped")
                    continue
                # Duplicate keys in one snapshot: last wins
                confirmed[key] = ViewEntry(key=key, entity=entity)

            pending = [entry for entry in self._entries if entry.is_pending and entry.key not in confirmed]

            self._entries = sorted(
                confirmed.values(),
                key=lambda entry: self.spec.sort_token(entry.entity),
                reverse=self.spec.descending,
            )
            self._index = {entry.key: entry for entry in self._entries}

            for entry in pending:
                self._insert_sorted(entry)

            self._version += 1
            log.debug(f"[{self.spec.name}] snapshot applied: {len(confirmed)} rows, {len(pending)} pending kept")

        self._notify(ViewDelta(outcome=ChangeOutcome.UPDATED))

    # =========================================================================
    # Change events
    # =========================================================================

    def apply_change(self, event: ChangeEvent) -> ViewDelta[M]:
        """Fold one change notification into the View (idempotent per key)."""
        key = self.spec.key_of(event.record)
        if key is None:
            log.warning(f"[{self.spec.name}] {event.kind.value} event without key ignored")
            return ViewDelta(outcome=ChangeOutcome.IGNORED)

        with self._lock:
            if event.kind is ChangeKind.DELETE:
                delta = self._remove(key)
            else:
                # Insert and Update converge: present -> refresh, absent -> insert
                delta = self._upsert(key, event.record)

        if delta.changed:
            self._notify(delta)
        return delta

    # =========================================================================
    # Optimistic writes
    # =========================================================================

    def apply_optimistic(self, entity: M) -> Hashable:
        """
        Show a local write immediately as a Pending entry.

        The entity's own key (normally a ``new_local_id()``) identifies the
        pending entry until confirm/revert.
        """
        key = self.spec.key_of(entity)
        if key is None:
            raise ValueError(f"Optimistic {self.spec.name} entity has no key")

        with self._lock:
            if key in self._index:
                raise ValueError(f"Key {key!r} already present in {self.spec.name}")
            entry = ViewEntry(key=key, entity=entity, state=EntryState.PENDING)
            self._index[key] = entry
            self._insert_sorted(entry)
            self._version += 1

        delta = ViewDelta(outcome=ChangeOutcome.INSERTED, key=key, entity=entity)
        self._notify(delta)
        return key

    def confirm_optimistic(self, local_key: Hashable, row: Union[M, Mapping[str, Any]]) -> M:
        """
        Turn a Pending entry into a Confirmed one under the server key.

        Authoritative fields win; the entry keeps its position. When the
        remote echo already inserted the server key, the pending entry is
        discarded instead.
        """
        server_entity = self._parse(row)
        server_key = self.spec.key_of(server_entity)
        if server_key is None:
            raise ValueError(f"Confirmed {self.spec.name} row has no key")

        with self._lock:
            pending = self._index.get(local_key)
            if pending is not None and not pending.is_pending:
                pending = None

            if server_key in self._index:
                if pending is not None:
                    self._detach(pending)
                delta = self._upsert(server_key, server_entity.model_dump())
            elif pending is not None:
                del self._index[local_key]
                pending.key = server_key
                pending.entity = server_entity
                pending.state = EntryState.CONFIRMED
                self._index[server_key] = pending
                self._version += 1
                delta = ViewDelta(outcome=ChangeOutcome.UPDATED, key=server_key, entity=server_entity)
            else:
                # Pending entry already reverted or pruned: the write still happened
                delta = self._upsert(server_key, server_entity.model_dump())

            confirmed = self._index[server_key].entity

        self._notify(delta)
        return confirmed

    def revert_optimistic(self, local_key: Hashable) -> bool:
        """Remove a Pending entry after its write failed."""
        with self._lock:
            entry = self._index.get(local_key)
            if entry is None or not entry.is_pending:
                return False
            self._detach(entry)

        self._notify(ViewDelta(outcome=ChangeOutcome.REMOVED, key=local_key, previous=entry.entity))
        return True

    def prune_pending(self, now: Optional[datetime] = None) -> int:
        """Drop Pending entries older than the configured timeout; 0 when disabled."""
        if self.pending_timeout_seconds is None:
            return 0

        cutoff = (now or utc_now()) - timedelta(seconds=self.pending_timeout_seconds)
        with self._lock:
            expired = [entry for entry in self._entries if entry.is_pending and entry.created_at < cutoff]
            for entry in expired:
                self._detach(entry)

        for entry in expired:
            log.info(f"[{self.spec.name}] pending entry {entry.key} expired unconfirmed")
            self._notify(ViewDelta(outcome=ChangeOutcome.REMOVED, key=entry.key, previous=entry.entity))
        return len(expired)

    def discard(self, key: Hashable) -> Optional[M]:
        """Locally drop an entry (buffer eviction, parent removal)."""
        with self._lock:
            delta = self._remove(key)
        if delta.changed:
            self._notify(delta)
        return delta.previous

    # =========================================================================
    # Internal helpers (lock held)
    # =========================================================================

    def _parse(self, row: Union[M, Mapping[str, Any]]) -> M:
        if isinstance(row, self.spec.model):
            return row
        return self.spec.model.model_validate(row)

    def _upsert(self, key: Hashable, record: Mapping[str, Any]) -> ViewDelta[M]:
        entry = self._index.get(key)

        if entry is None:
            entity = self._parse(record)
            entry = ViewEntry(key=key, entity=entity)
            self._index[key] = entry
            self._insert_sorted(entry)
            self._version += 1
            return ViewDelta(outcome=ChangeOutcome.INSERTED, key=key, entity=entity)

        previous = entry.entity
        merged = previous.model_dump()
        merged.update(record)
        entity = self.spec.model.model_validate(merged)

        entry.entity = entity
        entry.state = EntryState.CONFIRMED
        if self.spec.sort_token(entity) != self.spec.sort_token(previous):
            self._entries.remove(entry)
            self._insert_sorted(entry)
        self._version += 1
        return ViewDelta(outcome=ChangeOutcome.UPDATED, key=key, entity=entity, previous=previous)

    def _remove(self, key: Hashable) -> ViewDelta[M]:
        entry = self._index.get(key)
        if entry is None:
            return ViewDelta(outcome=ChangeOutcome.IGNORED, key=key)
        self._detach(entry)
        return ViewDelta(outcome=ChangeOutcome.REMOVED, key=key, previous=entry.entity)

    def _detach(self, entry: ViewEntry[M]) -> None:
        self._entries.remove(entry)
        self._index.pop(entry.key, None)
        self._version += 1

    def _insert_sorted(self, entry: ViewEntry[M]) -> None:
        # Scan from the tail: live inserts land at the end of ascending views
        token = self.spec.sort_token(entry.entity)
        position = len(self._entries)
        while position > 0:
            other = self.spec.sort_token(self._entries[position - 1].entity)
            if (other < token) if self.spec.descending else (other > token):
                position -= 1
            else:
                break
        self._entries.insert(position, entry)

    def _notify(self, delta: ViewDelta[M]) -> None:
        if self._on_change is None:
            return
        try:
            self._on_change(delta)
        except Exception as e:
            log.error(f"[{self.spec.name}] change listener failed: {e}", exc_info=True)
