# =============================================================================
# File: mingleo/chat/exceptions.py
# Description: Chat domain exceptions
# =============================================================================

from typing import List

from mingleo.common.exceptions.exceptions import (
    AccessDeniedError,
    ResourceNotFoundError,
    ValidationError,
)


class ChatNotFoundError(ResourceNotFoundError):
    """Chat not found (deleted or never existed)"""
    def __init__(self, chat_id: str):
        super().__init__(f"Chat not found: {chat_id}")
        self.chat_id = chat_id


class NotChatOwnerError(AccessDeniedError):
    """Only the chat creator may perform this action"""
    def __init__(self, chat_id: str, user_id: str, action: str):
        super().__init__(f"Only the chat owner can {action}")
        self.chat_id = chat_id
        self.user_id = user_id
        self.action = action


class InvalidEmailError(ValidationError):
    """One or more invitee emails are malformed"""
    def __init__(self, emails: List[str]):
        super().__init__(f"Invalid email format: {', '.join(emails)}")
        self.emails = emails


class NoNewInviteesError(ValidationError):
    """Every invitee is already a participant"""
    def __init__(self, chat_id: str):
        super().__init__("All these users are already participants in the chat")
        self.chat_id = chat_id


class AttachmentRejectedError(ValidationError):
    """Attachment is too large or of an unsupported type"""
    def __init__(self, filename: str, reason: str):
        super().__init__(f"Attachment {filename} rejected: {reason}")
        self.filename = filename
        self.reason = reason
