# =============================================================================
# File: mingleo/sync/screens/base_screen.py
# Description: Shared mount/unmount and subscription plumbing for screens
# =============================================================================

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, List, Optional, Tuple

from mingleo.chat.ports.realtime_port import RealtimePort
from mingleo.chat.ports.store_port import DurableStorePort, ObjectStoragePort
from mingleo.common.exceptions.exceptions import AccessDeniedError, MingleoException, NotFoundError
from mingleo.config.chat_config import ChatConfig, get_chat_config
from mingleo.config.sync_config import SyncConfig, get_sync_config
from mingleo.sync.core.types import ChangeEvent, Topic
from mingleo.sync.snapshot_fetcher import SnapshotFetcher
from mingleo.sync.subscriber import ChangeEventSubscriber, SubscriptionHandle

log = logging.getLogger("mingleo.sync.screens")

Apply = Callable[[ChangeEvent], None]


class ScreenStatus(str, Enum):
    LOADING = "loading"
    READY = "ready"
    DELETED = "deleted"      # parent chat removed
    FORBIDDEN = "forbidden"  # authorization policy rejected the viewer
    ERROR = "error"
    UNMOUNTED = "unmounted"


@dataclass
class ScreenDependencies:
    """Collaborators shared by the screens of one signed-in client"""
    store: DurableStorePort
    storage: ObjectStoragePort
    subscriber: ChangeEventSubscriber
    fetcher: SnapshotFetcher
    sync_config: SyncConfig = field(default_factory=get_sync_config)
    chat_config: ChatConfig = field(default_factory=get_chat_config)

    @classmethod
    def create(
            cls,
            store: DurableStorePort,
            storage: ObjectStoragePort,
            realtime: RealtimePort,
            sync_config: Optional[SyncConfig] = None,
            chat_config: Optional[ChatConfig] = None,
    ) -> "ScreenDependencies":
        sync_config = sync_config or get_sync_config()
        return cls(
            store=store,
            storage=storage,
            subscriber=ChangeEventSubscriber(realtime, sync_config.reconnect_retry()),
            fetcher=SnapshotFetcher(store),
            sync_config=sync_config,
            chat_config=chat_config or get_chat_config(),
        )


class BaseScreen:
    """
    Screen lifecycle: mount -> (events, user actions) -> unmount.

    Events that arrive while a snapshot is being read are held and replayed
    on top of the snapshot, so nothing committed during the read is lost.
    """

    name = "screen"

    def __init__(self, deps: ScreenDependencies):
        self._deps = deps
        self.status = ScreenStatus.LOADING
        self.last_error: Optional[Exception] = None

        self._handles: List[SubscriptionHandle] = []
        self._held: Optional[List[Tuple[Apply, ChangeEvent]]] = None
        self._loads = 0

    @property
    def mounted(self) -> bool:
        return not self.closed and bool(self._handles)

    @property
    def closed(self) -> bool:
        return self.status in (ScreenStatus.UNMOUNTED, ScreenStatus.DELETED)

    def _subscribe(self, topic: Topic, apply: Apply) -> SubscriptionHandle:
        handle = self._deps.subscriber.subscribe(
            topic,
            lambda event: self._route(apply, event),
            on_reconnect=self.refresh,
        )
        self._handles.append(handle)
        return handle

    def _route(self, apply: Apply, event: ChangeEvent) -> None:
        if self._held is not None:
            self._held.append((apply, event))
            return
        apply(event)

    async def _load(self, loader: Callable[[], Awaitable[None]]) -> bool:
        """Run a snapshot load, mapping failures onto the screen status."""
        # Overlapping loads (one per reconnected topic) share one hold buffer
        self._loads += 1
        if self._held is None:
            self._held = []
        try:
            await loader()
        except NotFoundError as e:
            self.last_error = e
            self._mark_deleted()
            return False
        except AccessDeniedError as e:
            self.last_error = e
            self.status = ScreenStatus.FORBIDDEN
            log.warning(f"[{self.name}] access denied: {e.detail or e}")
            return False
        except MingleoException as e:
            self.last_error = e
            self.status = ScreenStatus.ERROR
            log.error(f"[{self.name}] snapshot failed: {e}")
            return False
        finally:
            self._loads -= 1
            if self._loads == 0:
                held, self._held = self._held or [], None
                for apply, event in held:
                    if self.closed:
                        break
                    apply(event)

        # A replayed delete or an unmount during the read ends the screen
        if self.closed:
            return False
        self.last_error = None
        self.status = ScreenStatus.READY
        return True

    async def refresh(self) -> bool:
        raise NotImplementedError

    def _mark_deleted(self) -> None:
        self.status = ScreenStatus.DELETED
        self._close_subscriptions()
        log.info(f"[{self.name}] parent removed; screen closed")

    def _close_subscriptions(self) -> None:
        for handle in self._handles:
            handle.close()
        self._handles.clear()

    def unmount(self) -> None:
        """Close every subscription synchronously. Late events are dropped."""
        self._close_subscriptions()
        if self.status is not ScreenStatus.DELETED:
            self.status = ScreenStatus.UNMOUNTED
