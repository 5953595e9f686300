# =============================================================================
# File: mingleo/infra/supabase/base_client.py
# Description: Shared HTTP plumbing and error mapping for the Supabase adapters
# =============================================================================

from typing import Any, Dict, Optional

import httpx

from mingleo.common.exceptions.exceptions import (
    AccessDeniedError,
    AuthenticationError,
    ConflictError,
    MingleoException,
    NotFoundError,
    TransientError,
    ValidationError,
)
from mingleo.config.backend_config import BackendConfig, get_backend_config
from mingleo.config.logging_config import get_logger

log = get_logger("mingleo.infra.supabase")

# PostgREST / Postgres error codes
NOT_FOUND_CODES = {"PGRST116", "23503"}   # no rows for single(), FK parent missing
ACCESS_DENIED_CODES = {"42501"}           # RLS / insufficient privilege
CONFLICT_CODES = {"23505"}                # unique violation


def _error_body(response: httpx.Response) -> Dict[str, Any]:
    try:
        body = response.json()
    except ValueError:
        return {"message": response.text[:200]}
    return body if isinstance(body, dict) else {"message": str(body)[:200]}


def map_http_error(response: httpx.Response, context: str) -> MingleoException:
    """Translate an error response into the common exception taxonomy."""
    body = _error_body(response)
    code = str(body.get("code") or body.get("error_code") or body.get("error") or "")
    message = body.get("message") or body.get("msg") or body.get("error_description") or response.reason_phrase
    status = response.status_code

    if code in NOT_FOUND_CODES or status == 404:
        return NotFoundError(f"{context}: {message}")
    if code in ACCESS_DENIED_CODES or status == 403:
        return AccessDeniedError(detail=f"{context}: {message}")
    if status == 401:
        return AccessDeniedError(detail=f"{context}: {message}")
    if code in CONFLICT_CODES or status == 409:
        return ConflictError(f"{context}: {message}")
    if status >= 500 or status == 429:
        return TransientError(f"{context}: HTTP {status} {message}")
    return ValidationError(f"{context}: {message}")


class SupabaseBaseClient:
    """
    Lazily created ``httpx.AsyncClient`` with the project's API key headers.

    Subclasses call ``_request``; every non-2xx response and transport error
    surfaces as a MingleoException subclass.
    """

    def __init__(
            self,
            config: Optional[BackendConfig] = None,
            http_client: Optional[httpx.AsyncClient] = None,
            access_token: Optional[str] = None,
    ):
        self.config = config or get_backend_config()
        self._client: Optional[httpx.AsyncClient] = http_client
        self._owns_client = http_client is None
        self.access_token = access_token

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client"""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.config.timeout_seconds)
        return self._client

    async def close(self):
        """Close HTTP client"""
        if self._client and self._owns_client:
            await self._client.aclose()
        self._client = None

    def set_access_token(self, access_token: Optional[str]) -> None:
        """Use the signed-in user's JWT instead of the anon key for row policies."""
        self.access_token = access_token

    def _headers(self, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        anon_key = self.config.get_anon_key()
        headers = {
            "apikey": anon_key,
            "Authorization": f"Bearer {self.access_token or anon_key}",
        }
        if extra:
            headers.update(extra)
        return headers

    async def _request(
            self,
            method: str,
            url: str,
            context: str,
            *,
            params: Any = None,
            json: Any = None,
            content: Optional[bytes] = None,
            headers: Optional[Dict[str, str]] = None,
    ) -> httpx.Response:
        client = await self._get_client()
        log.debug(f"{method} {url} ({context})")

        try:
            response = await client.request(
                method,
                url,
                params=params,
                json=json,
                content=content,
                headers=self._headers(headers),
            )
        except httpx.TimeoutException as e:
            log.warning(f"Timeout during {context}: {e}")
            raise TransientError(f"Timeout during {context}") from e
        except httpx.TransportError as e:
            log.warning(f"Network error during {context}: {e}")
            raise TransientError(f"Network error during {context}: {e}") from e

        if response.status_code >= 400:
            error = map_http_error(response, context)
            log.debug(f"{context} failed with HTTP {response.status_code}: {type(error).__name__}")
            raise error

        return response


def raise_for_auth(error: MingleoException) -> None:
    """Auth endpoints report bad credentials as 400/401; surface them as AuthenticationError."""
    if isinstance(error, (AccessDeniedError, ValidationError)):
        raise AuthenticationError(str(error.detail if isinstance(error, AccessDeniedError) else error)) from error
    raise error
