import logging
import uuid
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from campusnet.errors import ConflictError, NotFoundError, ValidationError
from campusnet.models import Group, MembershipRole, User, UserGroup, utcnow

logger = logging.getLogger(__name__)

MAX_NAME_LENGTH = 50
MAX_CODE_LENGTH = 20
MAX_DESCRIPTION_LENGTH = 150


class GroupService:
    def __init__(self, db: Session):
        self.db = db

    def create_group(self, name: str, code: str, description: Optional[str], owner_id: str) -> Group:
        """Create a group with ``owner_id`` as its Owner.

        The group and the owner's membership are committed together.
        """
        if not name or not name.strip() or len(name) > MAX_NAME_LENGTH:
            raise ValidationError(f"Group name must be between 1 and {MAX_NAME_LENGTH} characters")
        if not code or not code.strip() or len(code) > MAX_CODE_LENGTH:
            raise ValidationError(f"Group code must be between 1 and {MAX_CODE_LENGTH} characters")
        if description is not None and len(description) > MAX_DESCRIPTION_LENGTH:
            raise ValidationError(f"Group description exceeds {MAX_DESCRIPTION_LENGTH} characters")

        if self.code_taken(code):
            raise ConflictError(f"Group code '{code}' is already taken")

        now = utcnow()
        group = Group(name=name, code=code, description=description or None, created_at=now)
        group.memberships.append(UserGroup(user_id=owner_id, role=MembershipRole.Owner, joined_at=now))
        self.db.add(group)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            # Only a code claimed concurrently is a conflict; a missing owner is not
            if self.code_taken(code):
                raise ConflictError(f"Group code '{code}' is already taken")
            raise

        logger.info("Group %s (%s) created by %s", group.id, code, owner_id)
        return group

    def join(self, group_id: uuid.UUID, user_id: str) -> bool:
        if self.db.get(Group, group_id) is None:
            raise NotFoundError("Group not found")
        if self.is_member(group_id, user_id):
            return False

        self.db.add(UserGroup(group_id=group_id, user_id=user_id, role=MembershipRole.Member, joined_at=utcnow()))
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            return False
        return True

    def leave(self, group_id: uuid.UUID, user_id: str) -> bool:
        # TODO: decide what happens to a group whose only owner leaves
        membership = self.db.get(UserGroup, (group_id, user_id))
        if membership is None:
            return False

        self.db.delete(membership)
        self.db.commit()
        return True

    def code_taken(self, code: str) -> bool:
        return self.db.scalars(select(Group.id).where(Group.code == code)).first() is not None

    def is_member(self, group_id: uuid.UUID, user_id: str) -> bool:
        return self.db.get(UserGroup, (group_id, user_id)) is not None

    def get_by_code(self, code: str) -> Optional[Group]:
        stmt = (
            select(Group)
            .options(selectinload(Group.memberships).joinedload(UserGroup.user))
            .where(Group.code == code)
        )
        return self.db.scalars(stmt).first()

    def get_group(self, group_id: uuid.UUID) -> Optional[Group]:
        return self.db.get(Group, group_id)

    def list_user_groups(self, user_id: str) -> List[Group]:
        stmt = select(Group).join(UserGroup).where(UserGroup.user_id == user_id).order_by(Group.name)
        return list(self.db.scalars(stmt))

    def list_members(self, group_id: uuid.UUID) -> List[User]:
        stmt = select(User).join(UserGroup).where(UserGroup.group_id == group_id)
        return list(self.db.scalars(stmt))
