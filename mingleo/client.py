# =============================================================================
# File: mingleo/client.py
# Description: Client composition root - wiring, screen factories and shutdown
# =============================================================================

from __future__ import annotations

import asyncio
import logging
from typing import Any, List, Optional

from mingleo.chat.ports.auth_port import AuthPort
from mingleo.chat.ports.realtime_port import RealtimePort
from mingleo.chat.ports.store_port import DurableStorePort, ObjectStoragePort
from mingleo.chat.services.chat_service import ChatService
from mingleo.chat.services.profile_service import ProfileService
from mingleo.config.backend_config import BackendConfig, get_backend_config
from mingleo.config.chat_config import ChatConfig, get_chat_config
from mingleo.config.logging_config import setup_logging
from mingleo.config.push_config import PushConfig, get_push_config
from mingleo.config.sync_config import SyncConfig, get_sync_config
from mingleo.infra.supabase import SupabaseAuthClient, SupabaseRestStore, SupabaseStorageClient
from mingleo.session.session_context import SessionContext
from mingleo.sync.screens import ChatListScreen, ChatThreadScreen, ScreenDependencies

log = logging.getLogger("mingleo.client")


class MingleoClient:
    """
    One signed-in (or signing-in) client process.

    Holds the backend adapters, the session and the screens it opened.
    Screens are created through the factories so ``shutdown()`` can close
    every subscription they hold.

    Example Usage:
        ```python
        client = MingleoClient.from_config(realtime=hub, push_token=token)
        await client.session.init()
        await client.session.sign_in("ann@example.com", "secret")

        lobby = await client.open_chat_list()
        thread = await client.open_thread(lobby.entities[0].id)
        await thread.send_message("hi")

        await client.shutdown()
        ```
    """

    def __init__(
            self,
            store: DurableStorePort,
            storage: ObjectStoragePort,
            auth: AuthPort,
            realtime: RealtimePort,
            sync_config: Optional[SyncConfig] = None,
            chat_config: Optional[ChatConfig] = None,
            push_config: Optional[PushConfig] = None,
            push_token: Optional[str] = None,
    ):
        self.store = store
        self.storage = storage
        self.auth = auth
        self.realtime = realtime

        self.sync_config = sync_config or get_sync_config()
        self.chat_config = chat_config or get_chat_config()
        self.push_config = push_config or get_push_config()

        self.session = SessionContext(auth, store, self.sync_config, push_token=push_token)
        self.deps = ScreenDependencies.create(
            store, storage, realtime,
            sync_config=self.sync_config,
            chat_config=self.chat_config,
        )
        self._screens: List[Any] = []
        self._shutdown_in_progress = False

    @classmethod
    def from_config(
            cls,
            realtime: RealtimePort,
            backend_config: Optional[BackendConfig] = None,
            push_token: Optional[str] = None,
            configure_logging: bool = True,
    ) -> "MingleoClient":
        """Build the HTTP adapters from environment configuration."""
        if configure_logging:
            setup_logging(service_name="mingleo")

        backend_config = backend_config or get_backend_config()
        store = SupabaseRestStore(backend_config)
        storage = SupabaseStorageClient(backend_config)
        auth = SupabaseAuthClient(backend_config).link(store, storage)

        log.info(f"Client configured for {backend_config.url}")
        log.debug(f"Backend config: {backend_config.to_dict()}")
        return cls(store, storage, auth, realtime, push_token=push_token)

    # =========================================================================
    # Services and screens
    # =========================================================================

    def chat_service(self) -> ChatService:
        return ChatService(self.store, self.session.require_user(), self.push_config.public_site_url)

    def profile_service(self) -> ProfileService:
        return ProfileService(self.store, self.storage, self.session.require_user(), self.chat_config)

    async def open_chat_list(self) -> ChatListScreen:
        screen = ChatListScreen(self.deps, self.session.require_user())
        self._screens.append(screen)
        await screen.mount()
        return screen

    async def open_thread(self, chat_id: str) -> ChatThreadScreen:
        screen = ChatThreadScreen(self.deps, self.session.require_user(), chat_id)
        self._screens.append(screen)
        await screen.mount()
        return screen

    def close_screen(self, screen: Any) -> None:
        screen.unmount()
        if screen in self._screens:
            self._screens.remove(screen)

    # =========================================================================
    # Shutdown
    # =========================================================================

    async def shutdown(self, timeout: float = 10.0) -> None:
        """Close screens, stop the session's background work and release HTTP clients."""
        if self._shutdown_in_progress:
            log.warning("Shutdown already in progress, skipping")
            return
        self._shutdown_in_progress = True

        for screen in list(self._screens):
            self.close_screen(screen)
        self.deps.subscriber.log_stats()
        self.deps.subscriber.close_all()

        self.session.teardown()

        for name, adapter in (("store", self.store), ("storage", self.storage), ("auth", self.auth)):
            await self._close_adapter(adapter, name, timeout)

        log.info("Client shut down")

    async def _close_adapter(self, adapter: Any, name: str, timeout: float) -> None:
        close = getattr(adapter, "close", None)
        if close is None:
            return
        try:
            await asyncio.wait_for(close(), timeout)
            log.debug(f"{name} closed")
        except asyncio.TimeoutError:
            log.error(f"{name} close timed out after {timeout}s, continuing...")
        except Exception as e:
            log.error(f"Error closing {name}: {e}")
