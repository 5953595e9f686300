# =============================================================================
# File: mingleo/infra/push/fcm_gateway.py
# Description: FCM legacy HTTP push gateway
# =============================================================================

import logging
from typing import Any, Dict, Optional

import httpx

from mingleo.common.exceptions.exceptions import InfrastructureError
from mingleo.config.push_config import PushConfig, get_push_config

log = logging.getLogger("mingleo.infra.push.fcm")


class FcmPushGateway:
    """Adapter for the FCM legacy send endpoint"""

    def __init__(self, config: Optional[PushConfig] = None, http_client: Optional[httpx.AsyncClient] = None):
        self._config = config or get_push_config()
        self._client: Optional[httpx.AsyncClient] = http_client

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client"""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._config.timeout_seconds)
        return self._client

    async def close(self):
        """Close HTTP client"""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def send(
            self,
            token: str,
            title: str,
            body: str,
            data: Optional[Dict[str, Any]] = None,
            click_action: Optional[str] = None,
    ) -> bool:
        """
        Send one notification.

        Returns:
            True when FCM accepted the message, False otherwise
        """
        server_key = self._config.get_server_key()
        if not server_key:
            raise InfrastructureError("FCM server key not configured")

        notification = {"title": title, "body": body}
        if click_action:
            notification["click_action"] = click_action

        payload = {"to": token, "notification": notification, "data": data or {}}

        try:
            client = await self._get_client()
            response = await client.post(
                self._config.fcm_url,
                json=payload,
                headers={
                    "Content-Type": "application/json",
                    "Authorization": f"key={server_key}",
                },
            )
        except httpx.HTTPError as e:
            log.error(f"FCM request failed: {e}")
            return False

        if response.status_code != 200:
            log.error(f"FCM API error: {response.status_code} {response.text[:200]}")
            return False

        result = response.json()
        if result.get("failure"):
            log.warning(f"FCM rejected token {token[:12]}...: {result.get('results')}")
            return False

        log.debug(f"Push sent: {title}")
        return True
