# =============================================================================
# File: mingleo/config/reliability_config.py
# Description: Retry/backoff configuration for backend calls and realtime
#              reconnection
# =============================================================================

from typing import Callable, Optional

from pydantic import BaseModel, ConfigDict


class RetryConfig(BaseModel):
    """Retry configuration."""
    max_attempts: int = 3
    initial_delay_ms: int = 100
    max_delay_ms: int = 10000
    backoff_factor: float = 2.0
    jitter: bool = True
    jitter_type: str = "full"
    retry_condition: Optional[Callable[[Exception], bool]] = None

    model_config = ConfigDict(arbitrary_types_allowed=True)


class ReliabilityConfigs:
    """Pre-configured reliability settings for the client collaborators"""

    # =========================================================================
    # Realtime channel
    # =========================================================================
    @staticmethod
    def realtime_reconnect_retry(
            max_attempts: int = 8,
            initial_delay_ms: int = 500,
            max_delay_ms: int = 30000,
    ) -> RetryConfig:
        return RetryConfig(
            max_attempts=max_attempts,
            initial_delay_ms=initial_delay_ms,
            max_delay_ms=max_delay_ms,
            backoff_factor=1.5,
            jitter=True,
            jitter_type="equal",
        )

    # =========================================================================
    # Durable store reads (writes are never retried automatically)
    # =========================================================================
    @staticmethod
    def store_read_retry() -> RetryConfig:
        return RetryConfig(
            max_attempts=3,
            initial_delay_ms=200,
            max_delay_ms=2000,
            backoff_factor=2.0,
            jitter=True,
        )
