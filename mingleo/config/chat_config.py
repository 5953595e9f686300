# =============================================================================
# File: mingleo/config/chat_config.py
# Description: Chat behaviour configuration (attachments, reactions)
# =============================================================================

from functools import lru_cache
from typing import List

from pydantic import Field
from pydantic_settings import SettingsConfigDict

from mingleo.common.base.base_config import BaseConfig, BASE_CONFIG_DICT


DEFAULT_EMOJI_VOCABULARY = ["👍", "❤️", "😂", "😮", "😢", "🙏"]


class ChatConfig(BaseConfig):
    """
    Chat configuration (CHAT_ prefix).
    """

    model_config = SettingsConfigDict(
        **BASE_CONFIG_DICT,
        env_prefix='CHAT_',
    )

    max_attachment_bytes: int = Field(default=10 * 1024 * 1024, gt=0, description="10MB")

    image_types: List[str] = Field(default_factory=lambda: [
        "image/jpeg",
        "image/png",
        "image/gif",
        "image/webp",
    ])

    document_types: List[str] = Field(default_factory=lambda: [
        "application/pdf",
        "application/msword",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        "application/vnd.ms-excel",
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        "text/plain",
        "application/zip",
    ])

    image_bucket: str = Field(default="chat-images")
    file_bucket: str = Field(default="chat-files")
    avatar_bucket: str = Field(default="avatars")

    emoji_vocabulary: List[str] = Field(default_factory=lambda: list(DEFAULT_EMOJI_VOCABULARY))


@lru_cache(maxsize=1)
def get_chat_config() -> ChatConfig:
    """Get chat configuration singleton (cached)."""
    return ChatConfig()


def reset_chat_config() -> None:
    """Reset config singleton (for testing)."""
    get_chat_config.cache_clear()
