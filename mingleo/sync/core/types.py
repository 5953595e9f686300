# =============================================================================
# File: mingleo/sync/core/types.py
# Description: Sync Type Definitions (Enums, Dataclasses)
# =============================================================================

"""
Sync Core Types

Type definitions for realtime synchronization:
- ChangeKind: Insert / Update / Delete
- ChangeEvent: One change notification for one row
- Topic: Logical channel for one (table, filter) pair
- EntryState / ViewEntry: Confirmed vs Pending (optimistic) view entries
- ChangeOutcome / ViewDelta: What an apply call did to a view
- SubscriptionStats: Per-subscription counters
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Generic, Hashable, Mapping, Optional, TypeVar

from mingleo.sync.core.event_filters import RowFilter


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ─────────────────────────────────────────────────────────────────────────────
# Enums
# ─────────────────────────────────────────────────────────────────────────────

class ChangeKind(str, Enum):
    """Change notification kinds"""
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class EntryState(str, Enum):
    """View entry state"""
    CONFIRMED = "confirmed"
    PENDING = "pending"  # optimistic, write not yet acknowledged


class ChangeOutcome(str, Enum):
    """What an apply call did to a view"""
    INSERTED = "inserted"
    UPDATED = "updated"
    REMOVED = "removed"
    IGNORED = "ignored"


# ─────────────────────────────────────────────────────────────────────────────
# Dataclasses
# ─────────────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ChangeEvent:
    """One change notification. ``record`` is the new row, or the old row for deletes."""
    kind: ChangeKind
    table: str
    record: Dict[str, Any]
    received_at: datetime = field(default_factory=utc_now)

    @classmethod
    def from_raw(cls, raw: Mapping[str, Any]) -> "ChangeEvent":
        """Build from a backend payload ({type, table, record, old_record})."""
        kind = ChangeKind(str(raw.get("type") or raw.get("eventType", "")).upper())
        if kind is ChangeKind.DELETE:
            record = raw.get("old_record") or raw.get("old") or raw.get("record") or {}
        else:
            record = raw.get("record") or raw.get("new") or {}
        return cls(kind=kind, table=str(raw.get("table", "")), record=dict(record))

    @classmethod
    def insert(cls, table: str, record: Mapping[str, Any]) -> "ChangeEvent":
        return cls(kind=ChangeKind.INSERT, table=table, record=dict(record))

    @classmethod
    def update(cls, table: str, record: Mapping[str, Any]) -> "ChangeEvent":
        return cls(kind=ChangeKind.UPDATE, table=table, record=dict(record))

    @classmethod
    def delete(cls, table: str, record: Mapping[str, Any]) -> "ChangeEvent":
        return cls(kind=ChangeKind.DELETE, table=table, record=dict(record))


@dataclass(frozen=True)
class Topic:
    """A logical channel of change events for one table/filter pair"""
    table: str
    filters: Mapping[str, Any] = field(default_factory=dict, compare=False, hash=False)
    name: str = field(init=False)

    def __post_init__(self):
        object.__setattr__(self, "name", f"{self.table}:{RowFilter.describe(self.filters)}")

    def __str__(self) -> str:
        return self.name


M = TypeVar("M")


@dataclass
class ViewEntry(Generic[M]):
    """One entity in a view, tagged Confirmed or Pending"""
    key: Hashable
    entity: M
    state: EntryState = EntryState.CONFIRMED
    created_at: datetime = field(default_factory=utc_now)

    @property
    def is_pending(self) -> bool:
        return self.state is EntryState.PENDING


@dataclass(frozen=True)
class ViewDelta(Generic[M]):
    """Result of one apply call"""
    outcome: ChangeOutcome
    key: Optional[Hashable] = None
    entity: Optional[M] = None
    previous: Optional[M] = None

    @property
    def changed(self) -> bool:
        return self.outcome is not ChangeOutcome.IGNORED


@dataclass
class SubscriptionStats:
    """Statistics for a subscription"""
    events_received: int = 0
    events_delivered: int = 0
    events_filtered: int = 0
    events_failed: int = 0
    dropped_after_close: int = 0
    reconnects: int = 0
    transport_errors: int = 0
    last_event_at: Optional[datetime] = None

    def as_dict(self) -> Dict[str, Any]:
        return {
            "events_received": self.events_received,
            "events_delivered": self.events_delivered,
            "events_filtered": self.events_filtered,
            "events_failed": self.events_failed,
            "dropped_after_close": self.dropped_after_close,
            "reconnects": self.reconnects,
            "transport_errors": self.transport_errors,
        }


# =============================================================================
# EOF
# =============================================================================
