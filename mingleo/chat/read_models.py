# =============================================================================
# File: mingleo/chat/read_models.py
# Description: Row models for the backend tables the client renders
# =============================================================================

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from mingleo.chat.enums import ContentType, InvitationStatus, ParticipantRole


_ROW_CONFIG = ConfigDict(
    from_attributes=True,
    populate_by_name=True,
    extra='ignore',
)


class UserReadModel(BaseModel):
    """Profile row (table: users)"""
    id: str
    email: Optional[str] = None
    display_name: str = ""
    avatar_url: Optional[str] = None
    bio: Optional[str] = None
    online_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    model_config = _ROW_CONFIG


class ChatReadModel(BaseModel):
    """Chat row (table: chats)"""
    id: str
    name: str
    is_group: bool = False
    created_by: str
    created_at: datetime
    # Settings
    participants_can_invite: bool = True
    invitation_expiry_hours: Optional[int] = None
    only_admins_can_remove_messages: bool = False
    only_admins_can_edit_settings: bool = True

    model_config = _ROW_CONFIG


class ChatParticipantReadModel(BaseModel):
    """Participant row (table: chat_participants), keyed by (chat_id, user_id)"""
    chat_id: str
    user_id: str
    role: ParticipantRole = ParticipantRole.MEMBER
    joined_at: Optional[datetime] = None
    left_at: Optional[datetime] = None

    model_config = _ROW_CONFIG

    @property
    def is_active(self) -> bool:
        return self.left_at is None


class MessageReadModel(BaseModel):
    """Message row (table: messages)"""
    id: str
    chat_id: str
    sender_id: str
    content: str = ""
    content_type: ContentType = ContentType.TEXT
    media_url: Optional[str] = None
    created_at: datetime

    model_config = _ROW_CONFIG


class ReactionReadModel(BaseModel):
    """Reaction row (table: reactions); unique on (message_id, user_id, emoji)"""
    id: str
    message_id: str
    user_id: str
    emoji: str
    created_at: Optional[datetime] = None

    model_config = _ROW_CONFIG


class InvitationReadModel(BaseModel):
    """Invitation row (table: invitations)"""
    id: str
    chat_id: str
    inviter_id: str
    invitee_email: str
    status: InvitationStatus = InvitationStatus.PENDING
    created_at: Optional[datetime] = None

    model_config = _ROW_CONFIG


# =============================================================================
# Derived / composite models
# =============================================================================

class ReactionSummary(BaseModel):
    """Per-emoji reaction summary for one message"""
    emoji: str
    count: int
    viewer_has_reacted: bool
    reactor_names: List[str] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True)


class InvitePreview(BaseModel):
    """Chat and inviter shown on the invitation page"""
    chat: ChatReadModel
    inviter: Optional[UserReadModel] = None
