# Realtime channel adapters
from mingleo.infra.realtime.local_hub import LocalLease, LocalRealtimeHub

__all__ = ["LocalLease", "LocalRealtimeHub"]
