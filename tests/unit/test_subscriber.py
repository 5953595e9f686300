"""
Tests for ChangeEventSubscriber: filtering, close semantics and reconnection.
"""
import asyncio

from mingleo.chat.read_models import MessageReadModel
from mingleo.common.exceptions.exceptions import TransientError
from mingleo.config.reliability_config import RetryConfig
from mingleo.sync.core.types import ChangeKind, Topic
from mingleo.sync.reconciler import ViewReconciler, ViewSpec
from mingleo.sync.subscriber import ChangeEventSubscriber

NO_WAIT = RetryConfig(max_attempts=3, initial_delay_ms=0, max_delay_ms=0, jitter=False)


class CapturingRealtime:
    """RealtimePort that keeps channel callbacks reachable after close."""

    def __init__(self):
        self.channels = []

    def open_channel(self, table, filters, on_event, on_error):
        channel = {"table": table, "filters": filters, "on_event": on_event, "on_error": on_error, "closed": 0}

        class Lease:
            def close(self_inner):
                channel["closed"] += 1

        self.channels.append(channel)
        return Lease()


def insert_payload(message_id, chat_id="c1", content="x"):
    return {
        "type": "INSERT",
        "table": "messages",
        "record": {
            "id": message_id,
            "chat_id": chat_id,
            "sender_id": "u1",
            "content": content,
            "created_at": "2024-05-01T12:00:00+00:00",
        },
    }


async def test_events_reach_handler(hub, subscriber):
    received = []
    subscriber.subscribe(Topic("messages", {"chat_id": "c1"}), received.append)

    hub.publish(insert_payload("m1"))

    assert [e.kind for e in received] == [ChangeKind.INSERT]
    assert received[0].record["id"] == "m1"


async def test_topic_filter_is_enforced():
    realtime = CapturingRealtime()
    subscriber = ChangeEventSubscriber(realtime, NO_WAIT)
    received = []
    handle = subscriber.subscribe(Topic("messages", {"chat_id": "c1"}), received.append)

    on_event = realtime.channels[0]["on_event"]
    on_event(insert_payload("m1", chat_id="c2"))
    on_event(insert_payload("m2", chat_id="c1"))
    # Key-only delete payloads pass through
    on_event({"type": "DELETE", "table": "messages", "old_record": {"id": "m3"}})

    assert [e.record["id"] for e in received] == ["m2", "m3"]
    assert handle.stats.events_filtered == 1


async def test_late_events_after_close_never_mutate_view():
    realtime = CapturingRealtime()
    subscriber = ChangeEventSubscriber(realtime, NO_WAIT)
    view = ViewReconciler(ViewSpec("messages", MessageReadModel))
    handle = subscriber.subscribe(Topic("messages", {"chat_id": "c1"}), view.apply_change)

    on_event = realtime.channels[0]["on_event"]
    on_event(insert_payload("m1"))
    handle.close()
    on_event(insert_payload("m2"))

    assert [m.id for m in view.entities] == ["m1"]
    assert handle.stats.dropped_after_close == 1


async def test_close_is_idempotent(subscriber, hub):
    handle = subscriber.subscribe(Topic("messages"), lambda e: None)
    assert hub.open_count == 1
    handle.close()
    handle.close()
    handle.unsubscribe()
    assert hub.open_count == 0
    assert subscriber.active_count == 0


async def test_close_all(subscriber, hub):
    subscriber.subscribe(Topic("messages"), lambda e: None)
    subscriber.subscribe(Topic("reactions"), lambda e: None)
    subscriber.close_all()
    assert hub.open_count == 0


async def test_handler_failure_is_contained(subscriber, hub):
    def explode(event):
        raise RuntimeError("boom")

    handle = subscriber.subscribe(Topic("messages"), explode)
    hub.publish(insert_payload("m1"))
    assert handle.stats.events_failed == 1


async def test_async_handler_is_awaited(subscriber, hub):
    received = []

    async def handler(event):
        received.append(event.record["id"])

    handle = subscriber.subscribe(Topic("messages"), handler)
    hub.publish(insert_payload("m1"))
    await asyncio.sleep(0)
    await asyncio.sleep(0)
    await asyncio.sleep(0)
    assert received == ["m1"]
    assert handle.stats.events_delivered == 1


async def test_malformed_payload_is_counted(subscriber, hub):
    handle = subscriber.subscribe(Topic("messages"), lambda e: None)
    hub.publish({"type": "TRUNCATE", "table": "messages", "record": {}})
    assert handle.stats.events_failed == 1


async def test_reconnects_and_resyncs_after_drop(subscriber, hub):
    resyncs = []
    received = []

    async def resync():
        resyncs.append(True)

    handle = subscriber.subscribe(Topic("messages"), received.append, on_reconnect=resync)
    hub.refuse_next_opens(1)
    hub.drop_all()

    for _ in range(20):
        await asyncio.sleep(0)
        if resyncs:
            break

    assert resyncs == [True]
    assert handle.stats.reconnects == 1
    assert hub.open_count == 1

    hub.publish(insert_payload("m1"))
    assert [e.record["id"] for e in received] == ["m1"]


async def test_gives_up_after_max_attempts(subscriber, hub):
    handle = subscriber.subscribe(Topic("messages"), lambda e: None)
    hub.refuse_next_opens(10)
    hub.drop_all()

    for _ in range(30):
        await asyncio.sleep(0)

    assert handle.gave_up
    assert isinstance(handle.last_error, TransientError)
    assert hub.open_count == 0


async def test_close_during_reconnect_stops_it(subscriber, hub):
    handle = subscriber.subscribe(Topic("messages"), lambda e: None)
    hub.drop_all()
    handle.close()

    for _ in range(10):
        await asyncio.sleep(0)

    assert hub.open_count == 0
    assert handle.stats.reconnects == 0


async def test_stats_summary(subscriber, hub):
    subscriber.subscribe(Topic("messages"), lambda e: None)
    hub.publish(insert_payload("m1"))
    stats = subscriber.stats()
    assert stats["active_subscriptions"] == 1
    assert stats["events_received"] == 1
    assert stats["events_delivered"] == 1
    subscriber.log_stats()
