import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    String,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import relationship

from campusnet.database import Base


def utcnow():
    return datetime.now(timezone.utc)


class Role(str, enum.Enum):
    Student = "Student"
    Teacher = "Teacher"
    Admin = "Admin"


class FriendRequestStatus(str, enum.Enum):
    Pending = "Pending"
    Accepted = "Accepted"
    Declined = "Declined"


class MembershipRole(str, enum.Enum):
    Owner = "Owner"
    Member = "Member"


class ContentType(str, enum.Enum):
    Post = "Post"
    Comment = "Comment"


class ReportStatus(str, enum.Enum):
    Pending = "Pending"


def _enum(cls, name):
    return Enum(cls, name=name, native_enum=False, length=20, validate_strings=True)


class User(Base):
    __tablename__ = "users"

    id = Column(String(128), primary_key=True)
    first_name = Column(String(30), nullable=False)
    last_name = Column(String(30), nullable=False)
    avatar_url = Column(String(2048))
    bio = Column(String(150))
    role = Column(_enum(Role, "user_role"), nullable=False, default=Role.Student)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    last_login = Column(DateTime(timezone=True))

    # Authored posts go with the user; everything else blocks deletion at the database
    posts = relationship("Post", back_populates="author", cascade="all, delete-orphan", passive_deletes=True)
    comments = relationship("Comment", back_populates="author", passive_deletes="all")
    likes = relationship("Like", back_populates="user", passive_deletes="all")
    memberships = relationship("UserGroup", back_populates="user", cascade="all, delete-orphan", passive_deletes=True)

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}"


class Post(Base):
    __tablename__ = "posts"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    author_id = Column(String(128), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    content = Column(String(2000), nullable=False, default="")
    media_url = Column(String(512))
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    edited = Column(Boolean, nullable=False, default=False)

    author = relationship("User", back_populates="posts")
    comments = relationship(
        "Comment", back_populates="post", cascade="all, delete-orphan", passive_deletes=True
    )
    likes = relationship("Like", back_populates="post", cascade="all, delete-orphan", passive_deletes=True)


class Comment(Base):
    __tablename__ = "comments"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    post_id = Column(Uuid, ForeignKey("posts.id", ondelete="CASCADE"), nullable=False, index=True)
    author_id = Column(String(128), ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True)
    content = Column(String(200), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    post = relationship("Post", back_populates="comments")
    author = relationship("User", back_populates="comments")


class Like(Base):
    __tablename__ = "likes"
    __table_args__ = (UniqueConstraint("post_id", "user_id", name="uq_like_post_user"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    post_id = Column(Uuid, ForeignKey("posts.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(128), ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    post = relationship("Post", back_populates="likes")
    user = relationship("User", back_populates="likes")


class FriendRequest(Base):
    """A friend request; friendship is an Accepted row in either direction.

    ``pair_low``/``pair_high`` hold the two user ids in sorted order so the
    unordered pair is unique in the schema itself, not only in the service.
    """

    __tablename__ = "friend_requests"
    __table_args__ = (
        UniqueConstraint("sender_id", "receiver_id", name="uq_friend_request_sender_receiver"),
        UniqueConstraint("pair_low", "pair_high", name="uq_friend_request_pair"),
        CheckConstraint("sender_id <> receiver_id", name="ck_friend_request_not_self"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    sender_id = Column(String(128), ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True)
    receiver_id = Column(String(128), ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True)
    pair_low = Column(String(128), nullable=False)
    pair_high = Column(String(128), nullable=False)
    status = Column(
        _enum(FriendRequestStatus, "friend_request_status"),
        nullable=False,
        default=FriendRequestStatus.Pending,
    )
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    responded_at = Column(DateTime(timezone=True))

    sender = relationship("User", foreign_keys=[sender_id])
    receiver = relationship("User", foreign_keys=[receiver_id])

    def __init__(self, **kwargs):
        sender_id, receiver_id = kwargs.get("sender_id"), kwargs.get("receiver_id")
        if sender_id is not None and receiver_id is not None:
            kwargs.setdefault("pair_low", min(sender_id, receiver_id))
            kwargs.setdefault("pair_high", max(sender_id, receiver_id))
        super().__init__(**kwargs)


class Message(Base):
    __tablename__ = "messages"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    sender_id = Column(String(128), ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True)
    receiver_id = Column(String(128), ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True)
    content = Column(String(500), nullable=False, default="")
    media_url = Column(String(512))
    sent_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    is_read = Column(Boolean, nullable=False, default=False)

    sender = relationship("User", foreign_keys=[sender_id])
    receiver = relationship("User", foreign_keys=[receiver_id])


class Group(Base):
    __tablename__ = "groups"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(50), nullable=False)
    code = Column(String(20), nullable=False, unique=True, index=True)
    description = Column(String(150))
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    memberships = relationship(
        "UserGroup", back_populates="group", cascade="all, delete-orphan", passive_deletes=True
    )


class UserGroup(Base):
    __tablename__ = "user_groups"

    group_id = Column(Uuid, ForeignKey("groups.id", ondelete="CASCADE"), primary_key=True)
    user_id = Column(String(128), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    role = Column(_enum(MembershipRole, "membership_role"), nullable=False, default=MembershipRole.Member)
    joined_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    group = relationship("Group", back_populates="memberships")
    user = relationship("User", back_populates="memberships")


class Report(Base):
    __tablename__ = "reports"
    __table_args__ = (
        UniqueConstraint("reporter_id", "content_id", "content_type", name="uq_report_reporter_content"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    reporter_id = Column(String(128), ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True)
    content_id = Column(Uuid, nullable=False, index=True)
    content_type = Column(_enum(ContentType, "report_content_type"), nullable=False)
    reason = Column(String(500))
    status = Column(_enum(ReportStatus, "report_status"), nullable=False, default=ReportStatus.Pending)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    reporter = relationship("User")
