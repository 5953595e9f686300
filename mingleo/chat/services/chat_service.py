# =============================================================================
# File: mingleo/chat/services/chat_service.py
# Description: Chat lifecycle, participant and invitation operations
# =============================================================================

from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Optional

from mingleo.chat.enums import InvitationStatus, ParticipantRole, Table
from mingleo.chat.exceptions import (
    ChatNotFoundError,
    InvalidEmailError,
    NoNewInviteesError,
    NotChatOwnerError,
)
from mingleo.chat.ports.auth_port import AuthUser
from mingleo.chat.ports.store_port import DurableStorePort, OrderBy
from mingleo.chat.read_models import (
    ChatParticipantReadModel,
    ChatReadModel,
    InvitationReadModel,
    InvitePreview,
    UserReadModel,
)
from mingleo.common.exceptions.exceptions import NotFoundError, ValidationError
from mingleo.sync.core.types import utc_now

log = logging.getLogger("mingleo.chat.service")

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
EMAIL_SEPARATORS = re.compile(r"[,;\n]")

SETTINGS_FIELDS = (
    "participants_can_invite",
    "invitation_expiry_hours",
    "only_admins_can_remove_messages",
    "only_admins_can_edit_settings",
)


def parse_invitee_emails(raw: str) -> List[str]:
    """Split a free-form list on commas, semicolons and newlines; reject malformed entries."""
    emails = [email.strip() for email in EMAIL_SEPARATORS.split(raw or "")]
    emails = [email for email in emails if email]

    invalid = [email for email in emails if not EMAIL_PATTERN.match(email)]
    if invalid:
        raise InvalidEmailError(invalid)

    # Keep first occurrence order
    return list(dict.fromkeys(emails))


class ChatService:
    """Chat operations on behalf of the signed-in user"""

    def __init__(self, store: DurableStorePort, user: AuthUser, public_site_url: str = ""):
        self._store = store
        self.user = user
        self.public_site_url = public_site_url.rstrip("/")

    # =========================================================================
    # Profile row
    # =========================================================================

    async def ensure_user_row(self) -> UserReadModel:
        """Create the users row for the signed-in account if it is missing."""
        try:
            row = await self._store.select_one(Table.USERS.value, {"id": self.user.id})
            return UserReadModel.model_validate(row)
        except NotFoundError:
            pass

        log.info(f"Creating profile row for user {self.user.id}")
        row = await self._store.insert(Table.USERS.value, {
            "id": self.user.id,
            "email": self.user.email,
            "display_name": self.user.display_name,
            "online_at": utc_now().isoformat(),
        })
        return UserReadModel.model_validate(row)

    # =========================================================================
    # Chat lifecycle
    # =========================================================================

    async def create_chat(self, name: str, is_group: bool = False) -> ChatReadModel:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Chat name is required")

        await self.ensure_user_row()

        log.info(f"Creating chat '{name}' for user {self.user.id}")
        row = await self._store.insert(Table.CHATS.value, {
            "name": name,
            "created_by": self.user.id,
            "is_group": is_group,
        })
        chat = ChatReadModel.model_validate(row)

        await self._store.insert(Table.CHAT_PARTICIPANTS.value, {
            "chat_id": chat.id,
            "user_id": self.user.id,
            "role": ParticipantRole.OWNER.value,
            "joined_at": utc_now().isoformat(),
        })

        log.info(f"Chat created: {chat.id}")
        return chat

    async def get_chat(self, chat_id: str) -> ChatReadModel:
        try:
            row = await self._store.select_one(Table.CHATS.value, {"id": chat_id})
        except NotFoundError:
            raise ChatNotFoundError(chat_id)
        return ChatReadModel.model_validate(row)

    async def join_chat(self, chat_id: str) -> ChatParticipantReadModel:
        """Join as member. Idempotent for an active participant; a former one rejoins."""
        await self.get_chat(chat_id)

        existing = await self._store.select(
            Table.CHAT_PARTICIPANTS.value,
            {"chat_id": chat_id, "user_id": self.user.id},
        )
        if existing:
            participant = ChatParticipantReadModel.model_validate(existing[0])
            if participant.is_active:
                log.debug(f"User {self.user.id} already in chat {chat_id}")
                return participant
            rows = await self._store.update(
                Table.CHAT_PARTICIPANTS.value,
                {"chat_id": chat_id, "user_id": self.user.id},
                {"left_at": None, "joined_at": utc_now().isoformat()},
            )
            participant = ChatParticipantReadModel.model_validate(rows[0])
        else:
            row = await self._store.insert(Table.CHAT_PARTICIPANTS.value, {
                "chat_id": chat_id,
                "user_id": self.user.id,
                "role": ParticipantRole.MEMBER.value,
                "joined_at": utc_now().isoformat(),
            })
            participant = ChatParticipantReadModel.model_validate(row)

        if self.user.email:
            await self._store.update(
                Table.INVITATIONS.value,
                {"chat_id": chat_id, "invitee_email": self.user.email},
                {"status": InvitationStatus.ACCEPTED.value},
            )

        log.info(f"User {self.user.id} joined chat {chat_id}")
        return participant

    async def leave_chat(self, chat_id: str) -> None:
        """Mark the participation as ended; the row is kept."""
        log.info(f"User {self.user.id} leaving chat {chat_id}")
        await self._store.update(
            Table.CHAT_PARTICIPANTS.value,
            {"chat_id": chat_id, "user_id": self.user.id},
            {"left_at": utc_now().isoformat()},
        )

    async def delete_chat(self, chat_id: str) -> None:
        """Owner only. Participants, messages and reactions go with the chat."""
        chat = await self.get_chat(chat_id)
        if chat.created_by != self.user.id:
            raise NotChatOwnerError(chat_id, self.user.id, "delete this chat")

        log.info(f"Deleting chat {chat_id}")
        await self._store.delete(Table.CHATS.value, {"id": chat_id})

    async def update_settings(self, chat_id: str, **settings: Any) -> ChatReadModel:
        unknown = set(settings) - set(SETTINGS_FIELDS)
        if unknown:
            raise ValidationError(f"Unknown chat settings: {', '.join(sorted(unknown))}")

        hours = settings.get("invitation_expiry_hours")
        if "invitation_expiry_hours" in settings and not hours:
            settings["invitation_expiry_hours"] = None

        rows = await self._store.update(Table.CHATS.value, {"id": chat_id}, settings)
        if not rows:
            raise ChatNotFoundError(chat_id)

        log.info(f"Settings updated for chat {chat_id}: {sorted(settings)}")
        return ChatReadModel.model_validate(rows[0])

    # =========================================================================
    # Participants
    # =========================================================================

    async def list_participants(self, chat_id: str, active_only: bool = True) -> List[ChatParticipantReadModel]:
        filters: Dict[str, Any] = {"chat_id": chat_id}
        if active_only:
            filters["left_at"] = None
        rows = await self._store.select(Table.CHAT_PARTICIPANTS.value, filters, OrderBy("joined_at"))
        return [ChatParticipantReadModel.model_validate(row) for row in rows]

    async def remove_participant(self, chat_id: str, user_id: str) -> None:
        log.info(f"Removing participant {user_id} from chat {chat_id}")
        await self._store.delete(
            Table.CHAT_PARTICIPANTS.value,
            {"chat_id": chat_id, "user_id": user_id},
        )

    async def set_participant_role(self, chat_id: str, user_id: str, role: ParticipantRole) -> ChatParticipantReadModel:
        role = ParticipantRole(role)
        rows = await self._store.update(
            Table.CHAT_PARTICIPANTS.value,
            {"chat_id": chat_id, "user_id": user_id},
            {"role": role.value},
        )
        if not rows:
            raise NotFoundError(f"User {user_id} is not a participant of chat {chat_id}")

        log.info(f"Role changed for {user_id} in chat {chat_id} to {role.value}")
        return ChatParticipantReadModel.model_validate(rows[0])

    # =========================================================================
    # Invitations
    # =========================================================================

    def invite_link(self, chat_id: str) -> str:
        return f"{self.public_site_url}/invite/{chat_id}"

    async def invite(self, chat_id: str, raw_emails: str) -> List[InvitationReadModel]:
        """Create pending invitations for every address that is not yet a participant."""
        emails = parse_invitee_emails(raw_emails)
        if not emails:
            raise ValidationError("No email addresses given")

        participants = await self.list_participants(chat_id, active_only=False)
        existing_emails = set()
        if participants:
            rows = await self._store.select(
                Table.USERS.value,
                {"id": {"$in": [p.user_id for p in participants]}},
            )
            existing_emails = {row.get("email") for row in rows if row.get("email")}

        new_emails = [email for email in emails if email not in existing_emails]
        if not new_emails:
            raise NoNewInviteesError(chat_id)

        now = utc_now().isoformat()
        rows = await self._store.insert_many(Table.INVITATIONS.value, [
            {
                "chat_id": chat_id,
                "inviter_id": self.user.id,
                "invitee_email": email,
                "status": InvitationStatus.PENDING.value,
                "created_at": now,
            }
            for email in new_emails
        ])

        log.info(f"Invited {len(new_emails)} users to chat {chat_id}")
        return [InvitationReadModel.model_validate(row) for row in rows]

    async def invite_preview(self, chat_id: str) -> InvitePreview:
        """Chat plus inviting user, for the invitation page."""
        chat = await self.get_chat(chat_id)

        inviter: Optional[UserReadModel] = None
        try:
            row = await self._store.select_one(Table.USERS.value, {"id": chat.created_by})
            inviter = UserReadModel.model_validate(row)
        except NotFoundError:
            log.warning(f"Creator {chat.created_by} of chat {chat_id} has no profile row")

        return InvitePreview(chat=chat, inviter=inviter)
