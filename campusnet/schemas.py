import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from campusnet.models import ContentType, FriendRequestStatus, MembershipRole, ReportStatus, Role


class ORMModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class UserCreate(BaseModel):
    first_name: str = Field(min_length=1, max_length=30)
    last_name: str = Field(min_length=1, max_length=30)


class ProfileUpdate(BaseModel):
    bio: Optional[str] = Field(default=None, max_length=150)
    avatar_url: Optional[str] = Field(default=None, max_length=512)


class UserOut(ORMModel):
    id: str
    first_name: str
    last_name: str
    avatar_url: Optional[str] = None
    bio: Optional[str] = None
    role: Role
    created_at: datetime
    last_login: Optional[datetime] = None


class CommentCreate(BaseModel):
    content: str


class CommentOut(ORMModel):
    id: uuid.UUID
    post_id: uuid.UUID
    content: str
    created_at: datetime
    author: UserOut
    can_delete: bool = False


class PostOut(ORMModel):
    id: uuid.UUID
    content: str
    media_url: Optional[str] = None
    created_at: datetime
    edited: bool
    author: UserOut
    like_count: int = 0
    comment_count: int = 0
    has_liked: bool = False


class PostDetail(PostOut):
    comments: List[CommentOut] = []


class LikeState(BaseModel):
    post_id: uuid.UUID
    liked: bool
    like_count: int


class FriendRequestCreate(BaseModel):
    receiver_id: str


class FriendRequestOut(ORMModel):
    id: uuid.UUID
    sender_id: str
    receiver_id: str
    status: FriendRequestStatus
    created_at: datetime
    responded_at: Optional[datetime] = None
    sender: Optional[UserOut] = None


class FriendshipStatus(BaseModel):
    user_id: str
    are_friends: bool


class MessageCreate(BaseModel):
    content: Optional[str] = None
    media_url: Optional[str] = None


class MessageOut(ORMModel):
    id: uuid.UUID
    sender_id: str
    receiver_id: str
    content: str
    media_url: Optional[str] = None
    sent_at: datetime
    is_read: bool


class ConversationPreview(BaseModel):
    user: UserOut
    last_message: Optional[str] = None
    last_message_time: Optional[datetime] = None
    unread_count: int = 0


class GroupCreate(BaseModel):
    name: str
    code: str
    description: Optional[str] = None


class GroupOut(ORMModel):
    id: uuid.UUID
    name: str
    code: str
    description: Optional[str] = None
    created_at: datetime


class MembershipOut(ORMModel):
    user: UserOut
    role: MembershipRole
    joined_at: datetime


class GroupDetail(GroupOut):
    memberships: List[MembershipOut] = []


class ReportCreate(BaseModel):
    reason: Optional[str] = None


class ReportOut(ORMModel):
    id: uuid.UUID
    reporter_id: str
    content_id: uuid.UUID
    content_type: ContentType
    reason: Optional[str] = None
    status: ReportStatus
    created_at: datetime
