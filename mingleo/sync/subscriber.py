# =============================================================================
# File: mingleo/sync/subscriber.py
# Description: Change-event subscriptions over the realtime channel
# =============================================================================

"""
ChangeEventSubscriber - topic subscriptions with reconnection

Architecture:
    RealtimePort.open_channel(table, filters)
                    ↓ raw payload
          SubscriptionHandle._dispatch
                    ↓ ChangeEvent (closed? -> dropped)
               screen handler  →  ViewReconciler.apply_change

Delivery is at-least-once and unordered across topics; the reconciler makes
re-delivery harmless. When the transport drops, the handle reopens the
channel with exponential backoff and jitter and then calls ``on_reconnect``
so the owner can take a fresh snapshot of whatever it missed.

Handler and transport failures are logged and counted; they never propagate
into the screen.
"""

from __future__ import annotations

import asyncio
import inspect
import itertools
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from mingleo.chat.ports.realtime_port import ChannelLease, RawChange, RealtimePort
from mingleo.config.logging_config import log_metrics_table
from mingleo.config.reliability_config import ReliabilityConfigs, RetryConfig
from mingleo.infra.reliability.retry import backoff_delay_seconds
from mingleo.sync.core.event_filters import RowFilter
from mingleo.sync.core.types import ChangeEvent, SubscriptionStats, Topic, utc_now

log = logging.getLogger("mingleo.sync.subscriber")

ChangeHandler = Callable[[ChangeEvent], Union[None, Awaitable[None], Any]]
ReconnectHandler = Callable[[], Union[None, Awaitable[None]]]

_handle_ids = itertools.count(1)


class SubscriptionHandle:
    """One open topic subscription. ``close()`` is idempotent."""

    def __init__(
            self,
            topic: Topic,
            handler: ChangeHandler,
            realtime: RealtimePort,
            retry_config: RetryConfig,
            on_reconnect: Optional[ReconnectHandler] = None,
            on_closed: Optional[Callable[["SubscriptionHandle"], None]] = None,
    ):
        self.topic = topic
        self.subscription_id = f"{topic.name}::{next(_handle_ids)}"
        self.stats = SubscriptionStats()

        self._handler = handler
        self._realtime = realtime
        self._retry_config = retry_config
        self._on_reconnect = on_reconnect
        self._on_closed = on_closed

        self._lease: Optional[ChannelLease] = None
        self._closed = False
        self._reconnect_task: Optional[asyncio.Task] = None
        self._handler_tasks: set = set()
        self.last_error: Optional[Exception] = None
        self.gave_up = False

        try:
            self._loop: Optional[asyncio.AbstractEventLoop] = asyncio.get_running_loop()
        except RuntimeError:
            self._loop = None

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def reconnecting(self) -> bool:
        return self._reconnect_task is not None and not self._reconnect_task.done()

    def open(self) -> "SubscriptionHandle":
        self._lease = self._realtime.open_channel(
            self.topic.table,
            self.topic.filters,
            self._dispatch,
            self._on_transport_error,
        )
        log.debug(f"Subscribed to {self.topic.name}")
        return self

    def close(self) -> None:
        """Release the channel. Events arriving afterwards are dropped."""
        if self._closed:
            return
        self._closed = True

        if self._reconnect_task is not None:
            self._reconnect_task.cancel()
            self._reconnect_task = None

        lease, self._lease = self._lease, None
        if lease is not None:
            try:
                lease.close()
            except Exception as e:
                log.warning(f"Error releasing channel for {self.topic.name}: {e}")

        if self._on_closed is not None:
            self._on_closed(self)
        log.debug(f"Unsubscribed from {self.topic.name}")

    # Alias for compatibility
    unsubscribe = close

    # =========================================================================
    # Delivery
    # =========================================================================

    def _dispatch(self, raw: RawChange) -> None:
        if self._closed:
            self.stats.dropped_after_close += 1
            return

        self.stats.events_received += 1
        self.stats.last_event_at = utc_now()

        try:
            event = raw if isinstance(raw, ChangeEvent) else ChangeEvent.from_raw(raw)
        except (ValueError, TypeError) as e:
            self.stats.events_failed += 1
            log.warning(f"Malformed change payload on {self.topic.name}: {e}")
            return

        # Only filter when the payload carries the filtered columns
        if RowFilter.covers(event.record, self.topic.filters) and not RowFilter.matches(event.record, self.topic.filters):
            self.stats.events_filtered += 1
            return

        try:
            result = self._handler(event)
        except Exception as e:
            self.stats.events_failed += 1
            log.error(f"Handler failed for {event.kind.value} on {self.topic.name}: {e}", exc_info=True)
            return

        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._handler_tasks.add(task)
            task.add_done_callback(self._handler_done)
        else:
            self.stats.events_delivered += 1

    def _handler_done(self, task: "asyncio.Future") -> None:
        self._handler_tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            self.stats.events_failed += 1
            log.error(f"Async handler failed on {self.topic.name}: {error}")
        else:
            self.stats.events_delivered += 1

    # =========================================================================
    # Reconnection
    # =========================================================================

    def _on_transport_error(self, error: Exception) -> None:
        self.stats.transport_errors += 1
        self.last_error = error
        if self._closed:
            return

        log.warning(f"Realtime channel {self.topic.name} dropped: {error}")

        lease, self._lease = self._lease, None
        if lease is not None:
            try:
                lease.close()
            except Exception as e:
                log.debug(f"Error releasing dropped channel {self.topic.name}: {e}")

        if self._loop is None:
            log.error(f"No event loop to reconnect {self.topic.name}; subscription is idle")
            self.gave_up = True
            return

        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is self._loop:
            self._start_reconnect()
        else:
            # Transport thread
            self._loop.call_soon_threadsafe(self._start_reconnect)

    def _start_reconnect(self) -> None:
        if self._closed or self.reconnecting:
            return
        self._reconnect_task = self._loop.create_task(
            self._reconnect_loop(), name=f"reconnect-{self.topic.name}"
        )

    async def _reconnect_loop(self) -> None:
        max_attempts = self._retry_config.max_attempts

        for attempt in range(1, max_attempts + 1):
            delay = backoff_delay_seconds(self._retry_config, attempt)
            log.info(
                f"Reconnecting {self.topic.name} (attempt {attempt}/{max_attempts}) in {delay:.2f}s"
            )
            await asyncio.sleep(delay)

            if self._closed:
                return

            try:
                self.open()
            except Exception as e:
                self.last_error = e
                log.warning(f"Reconnect attempt {attempt} for {self.topic.name} failed: {e}")
                continue

            self.stats.reconnects += 1
            log.info(f"Realtime channel {self.topic.name} restored")
            await self._notify_reconnected()
            return

        self.gave_up = True
        log.error(f"Giving up on {self.topic.name} after {max_attempts} reconnect attempts")

    async def _notify_reconnected(self) -> None:
        if self._on_reconnect is None:
            return
        try:
            result = self._on_reconnect()
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            log.error(f"Resync after reconnect failed for {self.topic.name}: {e}", exc_info=True)


class ChangeEventSubscriber:
    """
    Opens and tracks topic subscriptions for one client.

    Example Usage:
        ```python
        subscriber = ChangeEventSubscriber(hub)
        handle = subscriber.subscribe(
            Topic("messages", {"chat_id": chat_id}),
            thread.apply_change,
            on_reconnect=screen.refresh,
        )
        ...
        handle.close()
        ```
    """

    def __init__(self, realtime: RealtimePort, retry_config: Optional[RetryConfig] = None):
        self._realtime = realtime
        self._retry_config = retry_config or ReliabilityConfigs.realtime_reconnect_retry()
        self._handles: Dict[str, SubscriptionHandle] = {}

    @property
    def active_count(self) -> int:
        return len(self._handles)

    def handles(self) -> List[SubscriptionHandle]:
        return list(self._handles.values())

    def subscribe(
            self,
            topic: Topic,
            handler: ChangeHandler,
            on_reconnect: Optional[ReconnectHandler] = None,
    ) -> SubscriptionHandle:
        handle = SubscriptionHandle(
            topic=topic,
            handler=handler,
            realtime=self._realtime,
            retry_config=self._retry_config,
            on_reconnect=on_reconnect,
            on_closed=self._forget,
        )
        self._handles[handle.subscription_id] = handle
        try:
            handle.open()
        except Exception as e:
            log.warning(f"Could not open {topic.name}: {e}")
            handle._on_transport_error(e)
        return handle

    def close_all(self) -> None:
        for handle in list(self._handles.values()):
            handle.close()
        self._handles.clear()

    def stats(self) -> Dict[str, Any]:
        totals = SubscriptionStats()
        for handle in self._handles.values():
            for name, value in handle.stats.as_dict().items():
                setattr(totals, name, getattr(totals, name) + value)
        summary = {"active_subscriptions": len(self._handles)}
        summary.update(totals.as_dict())
        return summary

    def log_stats(self) -> None:
        log_metrics_table(log, "Realtime Subscriptions", self.stats())

    def _forget(self, handle: SubscriptionHandle) -> None:
        self._handles.pop(handle.subscription_id, None)
