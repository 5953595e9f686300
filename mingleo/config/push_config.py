# =============================================================================
# File: mingleo/config/push_config.py
# Description: Push gateway (FCM) and relay configuration
# =============================================================================

from functools import lru_cache

from pydantic import Field, SecretStr
from pydantic_settings import SettingsConfigDict

from mingleo.common.base.base_config import BaseConfig, BASE_CONFIG_DICT


class PushConfig(BaseConfig):
    """
    Push configuration (PUSH_ prefix).
    """

    model_config = SettingsConfigDict(
        **BASE_CONFIG_DICT,
        env_prefix='PUSH_',
    )

    fcm_url: str = Field(default="https://fcm.googleapis.com/fcm/send", description="FCM legacy send endpoint")
    fcm_server_key: SecretStr = Field(default=SecretStr(""), description="FCM server key")
    public_site_url: str = Field(default="http://localhost:5173", description="Base URL for click actions and invite links")
    timeout_seconds: float = Field(default=10.0, gt=0)

    def get_server_key(self) -> str:
        """Get FCM server key as plain string"""
        return self.fcm_server_key.get_secret_value()


@lru_cache(maxsize=1)
def get_push_config() -> PushConfig:
    """Get push configuration singleton (cached)."""
    return PushConfig()


def reset_push_config() -> None:
    """Reset config singleton (for testing)."""
    get_push_config.cache_clear()
