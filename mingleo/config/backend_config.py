# =============================================================================
# File: mingleo/config/backend_config.py
# Description: Managed backend (Supabase-compatible REST surface) configuration
# =============================================================================

from functools import lru_cache

from pydantic import Field, SecretStr
from pydantic_settings import SettingsConfigDict

from mingleo.common.base.base_config import BaseConfig, BASE_CONFIG_DICT


class BackendConfig(BaseConfig):
    """
    Backend configuration (SUPABASE_ prefix).
    """

    model_config = SettingsConfigDict(
        **BASE_CONFIG_DICT,
        env_prefix='SUPABASE_',
    )

    url: str = Field(default="http://localhost:54321", description="Project base URL")
    anon_key: SecretStr = Field(default=SecretStr(""), description="Public anon API key")
    timeout_seconds: float = Field(default=10.0, gt=0, description="HTTP request timeout")

    @property
    def rest_url(self) -> str:
        return f"{self.url.rstrip('/')}/rest/v1"

    @property
    def auth_url(self) -> str:
        return f"{self.url.rstrip('/')}/auth/v1"

    @property
    def storage_url(self) -> str:
        return f"{self.url.rstrip('/')}/storage/v1"

    def get_anon_key(self) -> str:
        """Get anon key as plain string"""
        return self.anon_key.get_secret_value()


@lru_cache(maxsize=1)
def get_backend_config() -> BackendConfig:
    """Get backend configuration singleton (cached)."""
    return BackendConfig()


def reset_backend_config() -> None:
    """Reset config singleton (for testing)."""
    get_backend_config.cache_clear()
