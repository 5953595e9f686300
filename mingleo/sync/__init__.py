# =============================================================================
# File: mingleo/sync/__init__.py
# Description: Realtime client synchronization
# =============================================================================

"""
Mingleo Sync

    SnapshotFetcher       point-in-time reads
    ChangeEventSubscriber realtime topic subscriptions
    ViewReconciler        single writer of each View
    ReactionAggregator    derived per-message reaction summaries
    PresenceReporter      online heartbeat

Screen controllers live in ``mingleo.sync.screens``.
"""

from mingleo.sync.aggregator import ReactionAggregator, summarize
from mingleo.sync.core import ChangeEvent, ChangeKind, Topic
from mingleo.sync.presence import PresenceReporter, is_online
from mingleo.sync.reconciler import ViewReconciler, ViewSpec, new_local_id
from mingleo.sync.snapshot_fetcher import SnapshotFetcher
from mingleo.sync.subscriber import ChangeEventSubscriber, SubscriptionHandle

__all__ = [
    "ChangeEvent",
    "ChangeEventSubscriber",
    "ChangeKind",
    "PresenceReporter",
    "ReactionAggregator",
    "SnapshotFetcher",
    "SubscriptionHandle",
    "Topic",
    "ViewReconciler",
    "ViewSpec",
    "is_online",
    "new_local_id",
    "summarize",
]
