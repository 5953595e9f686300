# =============================================================================
# File: mingleo/chat/ports/push_port.py
# Description: Port interface for the push-notification gateway
# Pattern: Hexagonal Architecture / Ports & Adapters
# =============================================================================

from __future__ import annotations

from typing import Any, Dict, Optional, Protocol, runtime_checkable


@runtime_checkable
class PushGatewayPort(Protocol):
    """
    Port: Push Gateway

    Implemented by: FcmPushGateway (mingleo/infra/push/fcm_gateway.py)
    """

    async def send(
        self,
        token: str,
        title: str,
        body: str,
        data: Optional[Dict[str, Any]] = None,
        click_action: Optional[str] = None,
    ) -> bool:
        """Send one notification; True when the gateway accepted it."""
        ...
