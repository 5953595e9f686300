# =============================================================================
# File: mingleo/sync/core/__init__.py
# Description: Sync Core Module
# =============================================================================

"""
Sync Core - change events, topics and view entries

Components:
- ChangeEvent / ChangeKind: change notifications
- Topic: (table, filter) channel identity
- RowFilter: column criteria matching
- ViewEntry / EntryState: Confirmed vs Pending view entries
"""

from mingleo.sync.core.event_filters import RowFilter
from mingleo.sync.core.types import (
    ChangeEvent,
    ChangeKind,
    ChangeOutcome,
    EntryState,
    SubscriptionStats,
    Topic,
    ViewDelta,
    ViewEntry,
)

__all__ = [
    "ChangeEvent",
    "ChangeKind",
    "ChangeOutcome",
    "EntryState",
    "RowFilter",
    "SubscriptionStats",
    "Topic",
    "ViewDelta",
    "ViewEntry",
]
