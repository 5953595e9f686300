# =============================================================================
# File: mingleo/chat/ports/auth_port.py
# Description: Port interface for the auth provider
# Pattern: Hexagonal Architecture / Ports & Adapters
# =============================================================================

from __future__ import annotations

from typing import Any, Dict, Optional, Protocol, runtime_checkable

from pydantic import BaseModel, Field


class AuthUser(BaseModel):
    """Opaque user identity; ownership checks key off ``id``"""
    id: str
    email: Optional[str] = None
    user_metadata: Dict[str, Any] = Field(default_factory=dict)

    @property
    def display_name(self) -> str:
        return self.user_metadata.get("display_name") or self.email or ""


class AuthSession(BaseModel):
    """Signed-in session"""
    access_token: str
    refresh_token: Optional[str] = None
    user: AuthUser


@runtime_checkable
class AuthPort(Protocol):
    """
    Port: Auth Provider

    Implemented by: SupabaseAuthClient (mingleo/infra/supabase/auth_client.py)
    """

    async def sign_up(self, email: str, password: str, display_name: str) -> AuthUser:
        ...

    async def sign_in(self, email: str, password: str) -> AuthSession:
        ...

    async def sign_out(self) -> None:
        ...

    async def get_session(self) -> Optional[AuthSession]:
        ...
