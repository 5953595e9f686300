# mingleo/common/base/base_config.py
# =============================================================================
# BaseConfig - Foundation for all Mingleo configuration classes
#
# Pydantic v2 settings:
# - SettingsConfigDict
# - Automatic .env file loading
# - Case-insensitive environment variables
# - Nested config support via __ delimiter
# - SecretStr for sensitive values
# - @lru_cache singleton pattern for factory functions
#
# Usage:
#     from mingleo.common.base.base_config import BaseConfig, BASE_CONFIG_DICT
#     from pydantic_settings import SettingsConfigDict
#     from pydantic import SecretStr
#     from functools import lru_cache
#
#     class MyConfig(BaseConfig):
#         model_config = SettingsConfigDict(
#             **BASE_CONFIG_DICT,
#             env_prefix="MY_"
#         )
#         api_key: SecretStr
#         timeout_ms: int = 5000
#
#     @lru_cache(maxsize=1)
#     def get_my_config() -> MyConfig:
#         return MyConfig()
# =============================================================================

from typing import Any, Dict

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


BASE_CONFIG_DICT = SettingsConfigDict(
    env_file=".env",
    env_file_encoding="utf-8",
    case_sensitive=False,
    extra="ignore",
    env_nested_delimiter="__",
)


class BaseConfig(BaseSettings):
    """Base configuration class for all Mingleo configs.

    All configuration classes inherit from this base to get:
    1. Consistent .env file loading
    2. Case-insensitive environment variable matching
    3. Nested configs via __ delimiter
    4. Serialization with secrets masked

    Environment Variable Naming:
    - Use area-specific prefixes (SYNC_, SUPABASE_, PUSH_, CHAT_)
    - Nested values use __ delimiter

    Secrets Handling:
    - Sensitive fields (keys, tokens) use SecretStr
    - Access raw value via .get_secret_value() when needed

    Singleton Pattern:
    - Each config has a factory function with @lru_cache(maxsize=1)
    - Each factory has a reset_* companion that clears the cache (tests)
    """

    model_config = BASE_CONFIG_DICT

    def to_dict(self, mask_secrets: bool = True) -> Dict[str, Any]:
        """Convert config to dictionary.

        Args:
            mask_secrets: If True (default), SecretStr values are masked.
                         If False, raw values are exposed.

        Returns:
            Dictionary representation of the config.
        """
        if mask_secrets:
            return self.model_dump()

        data = {}
        for field_name in type(self).model_fields:
            value = getattr(self, field_name)
            if isinstance(value, SecretStr):
                data[field_name] = value.get_secret_value()
            else:
                data[field_name] = value
        return data

    def __repr__(self) -> str:
        """Safe repr that masks secrets."""
        class_name = self.__class__.__name__
        fields = []
        for field_name in type(self).model_fields:
            value = getattr(self, field_name)
            if isinstance(value, SecretStr):
                fields.append(f"{field_name}=SecretStr('**********')")
            else:
                fields.append(f"{field_name}={value!r}")
        return f"{class_name}({', '.join(fields)})"
