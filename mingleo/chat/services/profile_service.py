# =============================================================================
# File: mingleo/chat/services/profile_service.py
# Description: Profile read/update and avatar storage
# =============================================================================

from __future__ import annotations

import logging
import time
from typing import Optional

from mingleo.chat.enums import Table
from mingleo.chat.exceptions import AttachmentRejectedError
from mingleo.chat.ports.auth_port import AuthUser
from mingleo.chat.ports.store_port import DurableStorePort, ObjectStoragePort
from mingleo.chat.read_models import UserReadModel
from mingleo.common.exceptions.exceptions import NotFoundError, ValidationError
from mingleo.config.chat_config import ChatConfig, get_chat_config

log = logging.getLogger("mingleo.chat.profile")


class ProfileService:
    """Profile of the signed-in user"""

    def __init__(
            self,
            store: DurableStorePort,
            storage: ObjectStoragePort,
            user: AuthUser,
            config: Optional[ChatConfig] = None,
    ):
        self._store = store
        self._storage = storage
        self.user = user
        self.config = config or get_chat_config()

    async def get(self) -> UserReadModel:
        try:
            row = await self._store.select_one(Table.USERS.value, {"id": self.user.id})
        except NotFoundError:
            # Profile row not created yet; fall back to the auth identity
            return UserReadModel(id=self.user.id, email=self.user.email, display_name=self.user.display_name)
        return UserReadModel.model_validate(row)

    async def update(
            self,
            display_name: Optional[str] = None,
            bio: Optional[str] = None,
            avatar_url: Optional[str] = None,
    ) -> UserReadModel:
        current = await self.get()

        if display_name is not None and not display_name.strip():
            raise ValidationError("Display name cannot be empty")

        row = await self._store.upsert(Table.USERS.value, {
            "id": self.user.id,
            "email": current.email or self.user.email,
            "display_name": display_name.strip() if display_name is not None else current.display_name,
            "bio": bio if bio is not None else current.bio,
            "avatar_url": avatar_url if avatar_url is not None else current.avatar_url,
        }, on_conflict="id")

        log.info(f"Profile updated for user {self.user.id}")
        return UserReadModel.model_validate(row)

    def avatar_url(self, path: Optional[str]) -> Optional[str]:
        if not path:
            return None
        if path.startswith(("http://", "https://")):
            return path
        return self._storage.public_url(self.config.avatar_bucket, path)

    async def upload_avatar(self, filename: str, data: bytes, content_type: str) -> UserReadModel:
        """Store a new avatar, remove the previous object and point the profile at it."""
        if content_type not in self.config.image_types:
            raise AttachmentRejectedError(filename, f"unsupported type {content_type}")
        if len(data) > self.config.max_attachment_bytes:
            raise AttachmentRejectedError(filename, "file is too large")

        current = await self.get()
        if current.avatar_url:
            old_key = current.avatar_url.split("/")[-1]
            try:
                await self._storage.remove(self.config.avatar_bucket, [old_key])
            except NotFoundError:
                log.debug(f"Previous avatar {old_key} already removed")

        extension = filename.rsplit(".", 1)[-1] if "." in filename else ""
        key = f"{self.user.id}-{int(time.time() * 1000)}"
        if extension:
            key = f"{key}.{extension}"

        path = await self._storage.upload(
            self.config.avatar_bucket, key, data, content_type, upsert=True
        )
        log.info(f"Avatar uploaded for user {self.user.id}: {path}")
        return await self.update(avatar_url=path)

    async def delete_profile(self) -> None:
        """Remove the user's avatar, messages, participations, owned chats and profile row."""
        current = await self.get()
        if current.avatar_url:
            await self._storage.remove(self.config.avatar_bucket, [current.avatar_url.split("/")[-1]])

        # Child rows first
        await self._store.delete(Table.MESSAGES.value, {"sender_id": self.user.id})
        await self._store.delete(Table.CHAT_PARTICIPANTS.value, {"user_id": self.user.id})
        await self._store.delete(Table.CHATS.value, {"created_by": self.user.id})
        await self._store.delete(Table.USERS.value, {"id": self.user.id})

        log.info(f"Profile deleted for user {self.user.id}")
