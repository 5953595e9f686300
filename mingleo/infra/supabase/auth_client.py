# =============================================================================
# File: mingleo/infra/supabase/auth_client.py
# Description: AuthPort over the GoTrue password endpoints
# =============================================================================

from typing import List, Optional

from mingleo.chat.ports.auth_port import AuthSession, AuthUser
from mingleo.common.exceptions.exceptions import AuthenticationError, MingleoException
from mingleo.config.logging_config import get_logger
from mingleo.infra.supabase.base_client import SupabaseBaseClient, raise_for_auth

log = get_logger("mingleo.infra.supabase.auth")


class SupabaseAuthClient(SupabaseBaseClient):
    """
    Password sign-up / sign-in with an in-memory session cache.

    Linked clients (store, storage) receive the access token on sign-in so
    their requests run under the user's row policies.
    """

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._session: Optional[AuthSession] = None
        self._linked: List[SupabaseBaseClient] = []

    def link(self, *clients: SupabaseBaseClient) -> "SupabaseAuthClient":
        self._linked.extend(clients)
        token = self._session.access_token if self._session else None
        for client in clients:
            client.set_access_token(token)
        return self

    async def sign_up(self, email: str, password: str, display_name: str) -> AuthUser:
        try:
            response = await self._request(
                "POST", f"{self.config.auth_url}/signup", "sign up",
                json={"email": email, "password": password, "data": {"display_name": display_name}},
            )
        except MingleoException as e:
            raise_for_auth(e)

        body = response.json()
        user = body.get("user") or body
        if not user.get("id"):
            raise AuthenticationError("Sign-up returned no user")

        log.info(f"Account created for {email}")
        return AuthUser.model_validate(user)

    async def sign_in(self, email: str, password: str) -> AuthSession:
        try:
            response = await self._request(
                "POST", f"{self.config.auth_url}/token", "sign in",
                params={"grant_type": "password"},
                json={"email": email, "password": password},
            )
        except MingleoException as e:
            raise_for_auth(e)

        session = AuthSession.model_validate(response.json())
        self._set_session(session)
        return session

    async def sign_out(self) -> None:
        if self._session is None:
            return
        try:
            await self._request("POST", f"{self.config.auth_url}/logout", "sign out")
        finally:
            self._set_session(None)

    async def get_session(self) -> Optional[AuthSession]:
        return self._session

    def _set_session(self, session: Optional[AuthSession]) -> None:
        self._session = session
        token = session.access_token if session else None
        self.set_access_token(token)
        for client in self._linked:
            client.set_access_token(token)
