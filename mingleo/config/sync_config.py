# =============================================================================
# File: mingleo/config/sync_config.py
# Description: Realtime synchronization and presence configuration
# =============================================================================

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import SettingsConfigDict

from mingleo.common.base.base_config import BaseConfig, BASE_CONFIG_DICT
from mingleo.config.reliability_config import ReliabilityConfigs, RetryConfig


class SyncConfig(BaseConfig):
    """
    Realtime sync configuration (SYNC_ prefix).

    Usage:
        from mingleo.config.sync_config import get_sync_config

        config = get_sync_config()
        interval = config.presence_interval_seconds
    """

    model_config = SettingsConfigDict(
        **BASE_CONFIG_DICT,
        env_prefix='SYNC_',
    )

    # =========================================================================
    # Presence
    # =========================================================================

    presence_interval_seconds: float = Field(
        default=240.0,
        gt=0,
        description="Heartbeat interval while the session is active"
    )

    presence_window_seconds: float = Field(
        default=300.0,
        gt=0,
        description="A user is online when the last report is younger than this"
    )

    # =========================================================================
    # Reconciliation
    # =========================================================================

    optimistic_timeout_seconds: Optional[float] = Field(
        default=None,
        description="Drop pending optimistic entries older than this (None = keep until confirmed)"
    )

    orphan_reaction_limit: int = Field(
        default=1000,
        ge=0,
        description="Reactions held for messages not yet in view"
    )

    # =========================================================================
    # Realtime reconnection
    # =========================================================================

    reconnect_max_attempts: int = Field(default=8, ge=1)
    reconnect_initial_delay_ms: int = Field(default=500, ge=0)
    reconnect_max_delay_ms: int = Field(default=30000, ge=0)

    def reconnect_retry(self) -> RetryConfig:
        return ReliabilityConfigs.realtime_reconnect_retry(
            max_attempts=self.reconnect_max_attempts,
            initial_delay_ms=self.reconnect_initial_delay_ms,
            max_delay_ms=self.reconnect_max_delay_ms,
        )


@lru_cache(maxsize=1)
def get_sync_config() -> SyncConfig:
    """Get sync configuration singleton (cached)."""
    return SyncConfig()


def reset_sync_config() -> None:
    """Reset config singleton (for testing)."""
    get_sync_config.cache_clear()
