# =============================================================================
# File: mingleo/chat/ports/realtime_port.py
# Description: Port interface for the realtime change-event channel
# Pattern: Hexagonal Architecture / Ports & Adapters
# =============================================================================

from __future__ import annotations

from typing import Any, Callable, Dict, Mapping, Optional, Protocol, runtime_checkable


# Raw change payload as pushed by the backend:
#   {"type": "INSERT" | "UPDATE" | "DELETE", "table": str, "record": {...}, "old_record": {...}}
RawChange = Dict[str, Any]


@runtime_checkable
class ChannelLease(Protocol):
    """Transport resource held for one open channel"""

    def close(self) -> None:
        """Release the channel. Must tolerate repeated calls."""
        ...


@runtime_checkable
class RealtimePort(Protocol):
    """
    Port: Realtime Channel

    Implemented by: LocalRealtimeHub (mingleo/infra/realtime/local_hub.py)

    Delivery is at-least-once, unordered across channels, and not guaranteed
    to be ordered per row. ``on_error`` is invoked when the channel drops;
    the caller owns reconnection.
    """

    def open_channel(
        self,
        table: str,
        filters: Optional[Mapping[str, Any]],
        on_event: Callable[[RawChange], None],
        on_error: Callable[[Exception], None],
    ) -> ChannelLease:
        ...
