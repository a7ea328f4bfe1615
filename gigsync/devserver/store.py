"""In-memory records for the development server."""
from __future__ import annotations

import itertools
from datetime import datetime, timezone
from typing import Dict, List, Optional, Set

from gigsync.schemas import (
    ChatMessage, Conversation, Notification, NotificationType, Participant, Role, User,
)

DEMO_PASSWORD = "password123"

DEMO_USERS = [
    User(id="1", email="freelancer@gigsync.dev", name="Fran Freelancer", role=Role.FREELANCER,
         title="Python developer", skills=["python", "fastapi"], hourly_rate=60),
    User(id="2", email="client@gigsync.dev", name="Carl Client", role=Role.CLIENT),
    User(id="3", email="admin@gigsync.dev", name="Ada Admin", role=Role.ADMIN),
]


class DevStore:
    def __init__(self) -> None:
        self.users: Dict[str, User] = {}
        self.password_hashes: Dict[str, str] = {}
        self.messages: List[ChatMessage] = []
        self.notifications: Dict[str, List[Notification]] = {}
        self.revoked_tokens: Set[str] = set()
        self._ids = itertools.count(1)

    def _next_id(self, prefix: str) -> str:
        return f"{prefix}{next(self._ids)}"

    # --- users ---
    def add_user(self, user: User, password_hash: str) -> User:
        self.users[user.id] = user
        self.password_hashes[user.id] = password_hash
        return user

    def get_user(self, user_id: str) -> Optional[User]:
        return self.users.get(str(user_id))

    def find_by_email(self, email: str) -> Optional[User]:
        email = email.strip().lower()
        for user in self.users.values():
            if (user.email or "").lower() == email:
                return user
        return None

    def _participant(self, user_id: str) -> Optional[Participant]:
        user = self.get_user(user_id)
        if user is None:
            return None
        return Participant(id=user.id, name=user.name, image=user.image)

    # --- messages ---
    def add_message(self, sender_id: str, recipient_id: str, content: str) -> ChatMessage:
        message = ChatMessage(
            id=self._next_id("m"),
            sender_id=sender_id,
            recipient_id=recipient_id,
            content=content,
            created_at=datetime.now(timezone.utc),
            read=False,
            sender=self._participant(sender_id),
            recipient=self._participant(recipient_id),
        )
        self.messages.append(message)
        return message

    def get_message(self, message_id: str) -> Optional[ChatMessage]:
        for message in self.messages:
            if message.id == message_id:
                return message
        return None

    def conversation(self, user_id: str, partner_id: str) -> List[ChatMessage]:
        pairs = {(user_id, partner_id), (partner_id, user_id)}
        found = [m for m in self.messages if (m.sender_id, m.recipient_id) in pairs]
        return sorted(found, key=lambda m: m.created_at)

    def conversations_for(self, user_id: str) -> List[Conversation]:
        partners: Dict[str, List[ChatMessage]] = {}
        for m in self.messages:
            if m.sender_id == user_id:
                partners.setdefault(m.recipient_id, []).append(m)
            elif m.recipient_id == user_id:
                partners.setdefault(m.sender_id, []).append(m)

        results = []
        for partner_id, messages in partners.items():
            last = max(messages, key=lambda m: m.created_at)
            partner = self.get_user(partner_id)
            results.append(Conversation(
                id=partner_id,
                recipient_id=partner_id,
                recipient_name=partner.name if partner else None,
                recipient_image=partner.image if partner else None,
                last_message=last.content,
                last_message_time=last.created_at,
                unread_count=sum(1 for m in messages if m.recipient_id == user_id and not m.read),
            ))
        results.sort(key=lambda c: c.last_message_time, reverse=True)
        return results

    def mark_message_read(self, message_id: str) -> Optional[ChatMessage]:
        for i, m in enumerate(self.messages):
            if m.id == message_id:
                self.messages[i] = m.model_copy(update={"read": True})
                return self.messages[i]
        return None

    def mark_conversation_read(self, user_id: str, partner_id: str) -> int:
        count = 0
        for i, m in enumerate(self.messages):
            if m.sender_id == partner_id and m.recipient_id == user_id and not m.read:
                self.messages[i] = m.model_copy(update={"read": True})
                count += 1
        return count

    def unread_message_count(self, user_id: str) -> int:
        return sum(1 for m in self.messages if m.recipient_id == user_id and not m.read)

    def delete_message(self, message_id: str) -> None:
        self.messages = [m for m in self.messages if m.id != message_id]

    # --- notifications ---
    def add_notification(
        self,
        user_id: str,
        type: NotificationType,
        *,
        sender_id: Optional[str] = None,
        title: Optional[str] = None,
        message: Optional[str] = None,
    ) -> Notification:
        notification = Notification(
            id=self._next_id("n"),
            type=type,
            sender_id=sender_id,
            read=False,
            created_at=datetime.now(timezone.utc),
            title=title,
            message=message,
        )
        self.notifications.setdefault(user_id, []).append(notification)
        return notification

    def notifications_for(self, user_id: str) -> List[Notification]:
        return sorted(self.notifications.get(user_id, []), key=lambda n: n.created_at, reverse=True)

    def mark_notification_read(self, user_id: str, notification_id: str) -> Optional[Notification]:
        items = self.notifications.get(user_id, [])
        for i, n in enumerate(items):
            if n.id == notification_id:
                items[i] = n.model_copy(update={"read": True})
                return items[i]
        return None

    def mark_all_notifications_read(self, user_id: str) -> None:
        items = self.notifications.get(user_id, [])
        self.notifications[user_id] = [n.model_copy(update={"read": True}) for n in items]

    def delete_notification(self, user_id: str, notification_id: str) -> bool:
        items = self.notifications.get(user_id, [])
        kept = [n for n in items if n.id != notification_id]
        self.notifications[user_id] = kept
        return len(kept) != len(items)
