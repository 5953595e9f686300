# =============================================================================
# File: mingleo/chat/enums.py
# Description: Chat domain enumerations
# =============================================================================

from enum import Enum


class ContentType(str, Enum):
    """Types of message content"""
    TEXT = "text"
    IMAGE = "image"
    VIDEO = "video"
    FILE = "file"


class ParticipantRole(str, Enum):
    """Participant roles in chat"""
    OWNER = "owner"
    ADMIN = "admin"
    MEMBER = "member"


class InvitationStatus(str, Enum):
    """Invitation lifecycle"""
    PENDING = "pending"
    ACCEPTED = "accepted"


class ToggleOutcome(str, Enum):
    """Result of a reaction toggle"""
    ADDED = "added"
    REMOVED = "removed"
    SKIPPED = "skipped"  # same toggle already in flight


class Table(str, Enum):
    """Backend tables consumed by the client"""
    USERS = "users"
    CHATS = "chats"
    CHAT_PARTICIPANTS = "chat_participants"
    MESSAGES = "messages"
    REACTIONS = "reactions"
    INVITATIONS = "invitations"
    USER_PUSH_TOKENS = "user_push_tokens"
