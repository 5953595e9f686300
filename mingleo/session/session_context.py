# =============================================================================
# File: mingleo/session/session_context.py
# Description: Signed-in session state, presence heartbeat and push setup
# =============================================================================

"""
SessionContext

States:
    LOGGED_OUT -> LOGGING_IN -> ACTIVE -> LOGGED_OUT

Entering ACTIVE makes sure the profile row exists, registers the device push
token (when one was supplied) and starts the presence heartbeat. Leaving
ACTIVE cancels the heartbeat.

sign_out() and teardown() also cancel an activation still in flight: it
stops at its next step and never reaches ACTIVE.
"""

from __future__ import annotations

import inspect
import logging
from enum import Enum
from typing import Awaitable, Callable, Optional, Union

from mingleo.chat.enums import Table
from mingleo.chat.ports.auth_port import AuthPort, AuthSession, AuthUser
from mingleo.chat.ports.store_port import DurableStorePort
from mingleo.chat.services.chat_service import ChatService
from mingleo.chat.services.push_registry import PushRegistry
from mingleo.common.exceptions.exceptions import (
    AuthenticationError,
    ConflictError,
    MingleoException,
    ValidationError,
)
from mingleo.config.sync_config import SyncConfig, get_sync_config
from mingleo.sync.presence import PresenceReporter

log = logging.getLogger("mingleo.session")

StateListener = Callable[["SessionState", Optional[AuthUser]], Union[None, Awaitable[None]]]


class SessionState(str, Enum):
    LOGGED_OUT = "logged_out"
    LOGGING_IN = "logging_in"
    ACTIVE = "active"


class SessionContext:
    """Owns the auth session and everything that lives only while it is active"""

    def __init__(
            self,
            auth: AuthPort,
            store: DurableStorePort,
            config: Optional[SyncConfig] = None,
            push_token: Optional[str] = None,
    ):
        self._auth = auth
        self._store = store
        self.config = config or get_sync_config()
        self.push_token = push_token

        self.state = SessionState.LOGGED_OUT
        self.session: Optional[AuthSession] = None
        self.presence: Optional[PresenceReporter] = None
        self._listener: Optional[StateListener] = None
        # Bumped whenever a started activation must not complete
        self._epoch = 0

    @property
    def user(self) -> Optional[AuthUser]:
        return self.session.user if self.session else None

    @property
    def is_active(self) -> bool:
        return self.state is SessionState.ACTIVE

    def require_user(self) -> AuthUser:
        if self.user is None or not self.is_active:
            raise AuthenticationError("Not signed in")
        return self.user

    # =========================================================================
    # Entry points
    # =========================================================================

    async def init(self, on_change: Optional[StateListener] = None) -> SessionState:
        """Restore a persisted session, if any."""
        self._listener = on_change
        epoch = self._next_epoch()
        session = await self._auth.get_session()
        if session is None:
            await self._set_state(SessionState.LOGGED_OUT)
            return self.state
        await self._activate(session, epoch)
        return self.state

    async def sign_in(self, email: str, password: str) -> AuthUser:
        if self.is_active:
            await self.sign_out()

        epoch = self._next_epoch()
        await self._set_state(SessionState.LOGGING_IN)
        try:
            session = await self._auth.sign_in(email, password)
        except MingleoException:
            if epoch == self._epoch:
                await self._set_state(SessionState.LOGGED_OUT)
            raise

        if await self._activate(session, epoch):
            log.info(f"User {session.user.id} signed in")
        return session.user

    async def sign_up(self, email: str, password: str, display_name: str) -> AuthUser:
        """Create the account and profile row, then sign in."""
        display_name = (display_name or "").strip()
        if not display_name:
            raise ValidationError("Display name is required")

        user = await self._auth.sign_up(email, password, display_name)
        try:
            await self._store.insert(Table.USERS.value, {
                "id": user.id,
                "email": email,
                "display_name": display_name,
            })
        except ConflictError:
            log.debug(f"Profile row for {user.id} already exists")

        log.info(f"User {user.id} signed up")
        return await self.sign_in(email, password)

    async def sign_out(self) -> None:
        self._next_epoch()
        self._deactivate()
        try:
            await self._auth.sign_out()
        finally:
            self.session = None
            await self._set_state(SessionState.LOGGED_OUT)
        log.info("Signed out")

    def teardown(self) -> None:
        """Stop background work without touching the auth provider."""
        self._next_epoch()
        self._deactivate()
        self._listener = None
        self.state = SessionState.LOGGED_OUT

    # =========================================================================
    # Internal
    # =========================================================================

    async def _activate(self, session: AuthSession, epoch: int) -> bool:
        """Bring up the signed-in state; False when sign-out or teardown ran meanwhile."""
        user = session.user
        if self._abandoned(epoch, user):
            return False

        try:
            await ChatService(self._store, user).ensure_user_row()
        except MingleoException as e:
            log.warning(f"Could not ensure profile row for {user.id}: {e}")

        if self.push_token and not self._abandoned(epoch, user):
            try:
                await PushRegistry(self._store).register_token(user.id, self.push_token)
            except MingleoException as e:
                log.warning(f"Push registration failed for {user.id}: {e}")

        if self._abandoned(epoch, user):
            return False

        self._deactivate()
        self.presence = presence = PresenceReporter(self._store, user.id, self.config.presence_interval_seconds)
        await presence.start()
        if self._abandoned(epoch, user):
            presence.stop()
            if self.presence is presence:
                self.presence = None
            return False

        self.session = session
        await self._set_state(SessionState.ACTIVE)
        return True

    def _abandoned(self, epoch: int, user: AuthUser) -> bool:
        if epoch == self._epoch:
            return False
        log.info(f"Activation for user {user.id} abandoned: session ended meanwhile")
        return True

    def _next_epoch(self) -> int:
        self._epoch += 1
        return self._epoch

    def _deactivate(self) -> None:
        if self.presence is not None:
            self.presence.stop()
            self.presence = None

    async def _set_state(self, state: SessionState) -> None:
        if state is self.state:
            return
        log.debug(f"Session state {self.state.value} -> {state.value}")
        self.state = state

        if self._listener is None:
            return
        try:
            result = self._listener(state, self.user)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            log.error(f"Session listener failed: {e}", exc_info=True)
