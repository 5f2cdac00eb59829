"""Friend requests and the friendship relation derived from them.

A request moves from ``Pending`` to ``Accepted`` or ``Declined`` exactly once.
Only one request row may ever exist for a pair of users, whichever of them
sent it, so an answered request also blocks any later request between them.
"""
import logging
import uuid
from typing import List

from sqlalchemy import and_, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from campusnet.models import FriendRequest, FriendRequestStatus, User, utcnow

logger = logging.getLogger(__name__)

FRIEND_LIST_LIMIT = 20


def _between(user_id1: str, user_id2: str):
    return or_(
        and_(FriendRequest.sender_id == user_id1, FriendRequest.receiver_id == user_id2),
        and_(FriendRequest.sender_id == user_id2, FriendRequest.receiver_id == user_id1),
    )


class FriendService:
    def __init__(self, db: Session):
        self.db = db

    def send_request(self, sender_id: str, receiver_id: str) -> bool:
        if sender_id == receiver_id:
            return False

        if self.find_request(sender_id, receiver_id) is not None:
            return False

        self.db.add(
            FriendRequest(
                sender_id=sender_id,
                receiver_id=receiver_id,
                status=FriendRequestStatus.Pending,
                created_at=utcnow(),
            )
        )
        try:
            self.db.commit()
        except IntegrityError:
            # The pair constraint caught a request racing in from the other side
            self.db.rollback()
            logger.debug("Friend request between %s and %s already exists", sender_id, receiver_id)
            return False

        logger.info("Friend request sent from %s to %s", sender_id, receiver_id)
        return True

    def _respond(self, request_id: uuid.UUID, status: FriendRequestStatus) -> bool:
        request = self.db.get(FriendRequest, request_id)
        if request is None or request.status != FriendRequestStatus.Pending:
            return False

        request.status = status
        request.responded_at = utcnow()
        self.db.commit()
        logger.info("Friend request %s %s", request_id, status.value.lower())
        return True

    def accept(self, request_id: uuid.UUID) -> bool:
        return self._respond(request_id, FriendRequestStatus.Accepted)

    def decline(self, request_id: uuid.UUID) -> bool:
        return self._respond(request_id, FriendRequestStatus.Declined)

    def get_request(self, request_id: uuid.UUID):
        return self.db.get(FriendRequest, request_id)

    def find_request(self, user_id1: str, user_id2: str):
        """Return the request between the two users, whichever of them sent it."""
        return self.db.scalars(select(FriendRequest).where(_between(user_id1, user_id2))).first()

    def list_friends(self, user_id: str) -> List[User]:
        accepted = FriendRequest.status == FriendRequestStatus.Accepted
        sent = select(FriendRequest.receiver_id).where(FriendRequest.sender_id == user_id, accepted)
        received = select(FriendRequest.sender_id).where(FriendRequest.receiver_id == user_id, accepted)

        # No ordering is promised beyond the cap
        stmt = select(User).where(or_(User.id.in_(sent), User.id.in_(received))).limit(FRIEND_LIST_LIMIT)
        return list(self.db.scalars(stmt))

    def list_pending(self, user_id: str) -> List[FriendRequest]:
        stmt = (
            select(FriendRequest)
            .options(joinedload(FriendRequest.sender))
            .where(
                FriendRequest.receiver_id == user_id,
                FriendRequest.status == FriendRequestStatus.Pending,
            )
            .order_by(FriendRequest.created_at.desc())
        )
        return list(self.db.scalars(stmt))

    def are_friends(self, user_id1: str, user_id2: str) -> bool:
        stmt = (
            select(FriendRequest.id)
            .where(FriendRequest.status == FriendRequestStatus.Accepted, _between(user_id1, user_id2))
            .limit(1)
        )
        return self.db.scalar(stmt) is not None
