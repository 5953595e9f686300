# =============================================================================
# File: mingleo/infra/realtime/local_hub.py
# Description: In-process realtime channel fan-out
# =============================================================================

"""
LocalRealtimeHub - RealtimePort without a network

Fan-out of row changes to every open channel whose table and filter match.
Used for local development (paired with an in-memory store) and tests.

    publish(change) ─→ channels on change.table
                     ─→ RowFilter.matches(record, channel.filters)?
                     ─→ on_event(change)

``drop_all()`` simulates a transport failure: every channel is closed and
its ``on_error`` invoked; reconnection is the subscriber's job.
"""

import itertools
import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Mapping, Optional

from mingleo.chat.ports.realtime_port import RawChange
from mingleo.common.exceptions.exceptions import TransientError
from mingleo.sync.core.event_filters import RowFilter

log = logging.getLogger("mingleo.infra.realtime.local")


@dataclass
class _Channel:
    channel_id: int
    table: str
    filters: Mapping[str, Any]
    on_event: Callable[[RawChange], None]
    on_error: Callable[[Exception], None]
    delivered: int = 0


@dataclass
class LocalLease:
    """Handle for one open channel"""
    hub: "LocalRealtimeHub"
    channel_id: int
    closed: bool = field(default=False)

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self.hub._release(self.channel_id)


class LocalRealtimeHub:
    """
    Example Usage:
        ```python
        hub = LocalRealtimeHub()
        lease = hub.open_channel("messages", {"chat_id": "c1"}, on_event, on_error)
        hub.publish({"type": "INSERT", "table": "messages", "record": {...}})
        lease.close()
        ```
    """

    def __init__(self):
        self._channels: Dict[int, _Channel] = {}
        self._ids = itertools.count(1)
        self._lock = threading.Lock()
        self._refuse_opens = 0

        self.published = 0
        self.opened = 0

    @property
    def open_count(self) -> int:
        return len(self._channels)

    def refuse_next_opens(self, count: int) -> None:
        """Make the next ``count`` open_channel calls fail (reconnect testing)."""
        self._refuse_opens = count

    def open_channel(
            self,
            table: str,
            filters: Optional[Mapping[str, Any]],
            on_event: Callable[[RawChange], None],
            on_error: Callable[[Exception], None],
    ) -> LocalLease:
        if self._refuse_opens > 0:
            self._refuse_opens -= 1
            raise TransientError(f"Realtime channel for {table} unavailable")

        with self._lock:
            channel_id = next(self._ids)
            self._channels[channel_id] = _Channel(
                channel_id=channel_id,
                table=table,
                filters=dict(filters or {}),
                on_event=on_event,
                on_error=on_error,
            )
            self.opened += 1

        log.debug(f"Channel {channel_id} opened on {table} {RowFilter.describe(filters)}")
        return LocalLease(hub=self, channel_id=channel_id)

    def publish(self, change: RawChange) -> int:
        """Deliver one change to matching channels. Returns the delivery count."""
        table = change.get("table")
        is_delete = str(change.get("type", "")).upper() == "DELETE"
        record = (change.get("old_record") if is_delete else change.get("record")) or change.get("record") or {}

        with self._lock:
            targets = [
                c for c in self._channels.values()
                if c.table == table and (
                    RowFilter.matches(record, c.filters)
                    or (is_delete and not RowFilter.covers(record, c.filters))
                )
            ]
            self.published += 1

        for channel in targets:
            channel.delivered += 1
            try:
                channel.on_event(change)
            except Exception as e:
                log.error(f"Channel {channel.channel_id} listener failed: {e}", exc_info=True)
        return len(targets)

    def drop_all(self, error: Optional[Exception] = None) -> int:
        """Close every channel and report the failure to its owner."""
        error = error or TransientError("Realtime connection lost")
        with self._lock:
            dropped = list(self._channels.values())
            self._channels.clear()

        for channel in dropped:
            channel.on_error(error)
        log.info(f"Dropped {len(dropped)} realtime channels")
        return len(dropped)

    def _release(self, channel_id: int) -> None:
        with self._lock:
            self._channels.pop(channel_id, None)
