"""Direct messages between two users.

Only friends may message each other, but that gate belongs to the caller:
``MessageService.send`` assumes it has already been checked.
"""
import logging
import uuid
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import and_, func, or_, select
from sqlalchemy.orm import Session, joinedload

from campusnet.errors import ValidationError
from campusnet.models import Message, utcnow

logger = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 500
MAX_MEDIA_URL_LENGTH = 512


def _conversation(user_id1: str, user_id2: str):
    return or_(
        and_(Message.sender_id == user_id1, Message.receiver_id == user_id2),
        and_(Message.sender_id == user_id2, Message.receiver_id == user_id1),
    )


class MessageService:
    def __init__(self, db: Session):
        self.db = db

    def send(self, sender_id: str, receiver_id: str, content: Optional[str], media_url: Optional[str] = None) -> Message:
        has_content = content is not None and content.strip()
        has_media = media_url is not None and media_url.strip()
        if not has_content and not has_media:
            raise ValidationError("Message must have content or media")
        if content is not None and len(content) > MAX_MESSAGE_LENGTH:
            raise ValidationError(f"Message exceeds maximum length of {MAX_MESSAGE_LENGTH} characters")
        if media_url is not None and len(media_url) > MAX_MEDIA_URL_LENGTH:
            raise ValidationError(f"Media URL exceeds maximum length of {MAX_MEDIA_URL_LENGTH} characters")

        message = Message(
            sender_id=sender_id,
            receiver_id=receiver_id,
            content=content or "",
            media_url=media_url or None,
            sent_at=utcnow(),
            is_read=False,
        )
        self.db.add(message)
        self.db.commit()
        logger.debug("Message %s sent from %s to %s", message.id, sender_id, receiver_id)

        return self.db.scalars(
            select(Message)
            .options(joinedload(Message.sender), joinedload(Message.receiver))
            .where(Message.id == message.id)
        ).one()

    def get_conversation(self, user_id1: str, user_id2: str, count: int = 50) -> List[Message]:
        stmt = (
            select(Message)
            .options(joinedload(Message.sender), joinedload(Message.receiver))
            .where(_conversation(user_id1, user_id2))
            .order_by(Message.sent_at.desc())
            .limit(count)
        )
        return list(self.db.scalars(stmt))

    def get_unread(self, user_id: str) -> List[Message]:
        stmt = (
            select(Message)
            .options(joinedload(Message.sender))
            .where(Message.receiver_id == user_id, Message.is_read.is_(False))
            .order_by(Message.sent_at.desc())
        )
        return list(self.db.scalars(stmt))

    def get_message(self, message_id: uuid.UUID) -> Optional[Message]:
        return self.db.get(Message, message_id)

    def mark_read(self, message_id: uuid.UUID) -> bool:
        message = self.db.get(Message, message_id)
        if message is None:
            return False

        message.is_read = True
        self.db.commit()
        return True

    def get_last_message(self, user_id1: str, user_id2: str) -> Optional[Message]:
        stmt = select(Message).where(_conversation(user_id1, user_id2)).order_by(Message.sent_at.desc()).limit(1)
        return self.db.scalars(stmt).first()

    def count_unread_from(self, user_id: str, other_id: str) -> int:
        stmt = select(func.count(Message.id)).where(
            Message.receiver_id == user_id,
            Message.sender_id == other_id,
            Message.is_read.is_(False),
        )
        return self.db.scalar(stmt)

    def get_new_messages(self, user_id: str, other_id: str, since: datetime, count: int = 50) -> List[Message]:
        """Messages ``other_id`` sent to ``user_id`` after ``since``, oldest first.

        The web client polls this while a conversation is open.
        """
        if since.tzinfo is None:
            since = since.replace(tzinfo=timezone.utc)
        since = since.astimezone(timezone.utc)
        stmt = (
            select(Message)
            .options(joinedload(Message.sender))
            .where(
                Message.sender_id == other_id,
                Message.receiver_id == user_id,
                Message.sent_at > since,
            )
            .order_by(Message.sent_at.asc())
            .limit(count)
        )
        return list(self.db.scalars(stmt))
