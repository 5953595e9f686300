# =============================================================================
# File: mingleo/chat/ports/__init__.py
# Description: Chat domain ports (interfaces to external collaborators)
# =============================================================================

from mingleo.chat.ports.auth_port import AuthPort, AuthSession, AuthUser
from mingleo.chat.ports.push_port import PushGatewayPort
from mingleo.chat.ports.realtime_port import ChannelLease, RawChange, RealtimePort
from mingleo.chat.ports.store_port import DurableStorePort, ObjectStoragePort, OrderBy, Row

__all__ = [
    "AuthPort",
    "AuthSession",
    "AuthUser",
    "ChannelLease",
    "DurableStorePort",
    "ObjectStoragePort",
    "OrderBy",
    "PushGatewayPort",
    "RawChange",
    "RealtimePort",
    "Row",
]
