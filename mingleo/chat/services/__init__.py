from mingleo.chat.services.chat_service import ChatService, parse_invitee_emails
from mingleo.chat.services.profile_service import ProfileService
from mingleo.chat.services.push_registry import PushRegistry
from mingleo.chat.services.reaction_service import ReactionService

__all__ = [
    "ChatService",
    "ProfileService",
    "PushRegistry",
    "ReactionService",
    "parse_invitee_emails",
]
