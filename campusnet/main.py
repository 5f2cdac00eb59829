import logging
import uuid
from contextlib import asynccontextmanager
from datetime import datetime
from typing import List, Optional

from fastapi import Depends, FastAPI, File, Form, Header, HTTPException, Query, Request, UploadFile, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy.orm import Session

from campusnet import errors
from campusnet.config import settings
from campusnet.content import CommentService, PostService
from campusnet.database import get_db, init_db
from campusnet.friends import FriendService
from campusnet.groups import GroupService
from campusnet.messaging import MessageService
from campusnet.models import Role
from campusnet.moderation import ModerationService
from campusnet.permissions import can_delete
from campusnet.schemas import (
    CommentCreate,
    CommentOut,
    ConversationPreview,
    FriendRequestCreate,
    FriendRequestOut,
    FriendshipStatus,
    GroupCreate,
    GroupDetail,
    GroupOut,
    LikeState,
    MessageCreate,
    MessageOut,
    PostDetail,
    PostOut,
    ProfileUpdate,
    ReportCreate,
    ReportOut,
    UserCreate,
    UserOut,
)
from campusnet.storage import LocalFileStore, get_file_store
from campusnet.users import UserService

logger = logging.getLogger(__name__)


def configure_logging():
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    init_db()
    yield


app = FastAPI(title="campusnet", lifespan=lifespan)

_ERROR_STATUS = [
    (errors.NotFoundError, status.HTTP_404_NOT_FOUND),
    (errors.ConflictError, status.HTTP_409_CONFLICT),
    (errors.AuthorizationError, status.HTTP_403_FORBIDDEN),
    (errors.ValidationError, status.HTTP_400_BAD_REQUEST),
    (errors.SelfActionError, status.HTTP_400_BAD_REQUEST),
]


@app.exception_handler(errors.CampusError)
async def campus_error_handler(request: Request, exc: errors.CampusError):
    code = next((code for cls, code in _ERROR_STATUS if isinstance(exc, cls)), status.HTTP_400_BAD_REQUEST)
    logger.info("%s %s -> %d: %s", request.method, request.url.path, code, exc.message)
    return JSONResponse(status_code=code, content={"detail": exc.message})


class Identity(BaseModel):
    user_id: str
    role: Role = Role.Student


def get_identity(x_user_id: Optional[str] = Header(None), x_user_role: Role = Header(Role.Student)) -> Identity:
    # The identity proxy in front of the app authenticates and sets these headers
    if not x_user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    return Identity(user_id=x_user_id, role=x_user_role)


def require_user(identity: Identity = Depends(get_identity), db: Session = Depends(get_db)) -> Identity:
    # Rows reference the user, so an identity must be provisioned through PUT /users/me first
    if UserService(db).get_user(identity.user_id) is None:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="User not provisioned")
    return identity


def _post_out(post, viewer_id: str, schema=PostOut):
    out = schema.model_validate(post)
    return out.model_copy(
        update={
            "like_count": len(post.likes),
            "comment_count": len(post.comments),
            "has_liked": any(like.user_id == viewer_id for like in post.likes),
        }
    )


def _comment_out(comment, viewer_id: str, viewer_role):
    out = CommentOut.model_validate(comment)
    return out.model_copy(update={"can_delete": can_delete(comment.author_id, viewer_id, viewer_role)})


def _live_role(db: Session, user_id: str):
    user = UserService(db).get_user(user_id)
    return user.role if user is not None else None


@app.put("/users/me", response_model=UserOut, tags=['Users'])
def provision_user(body: UserCreate, identity: Identity = Depends(get_identity), db: Session = Depends(get_db)):
    users = UserService(db)
    users.ensure_user(identity.user_id, body.first_name, body.last_name, identity.role)
    users.touch_last_login(identity.user_id)
    return users.get_user(identity.user_id)


@app.get("/users/me", response_model=UserOut, tags=['Users'])
def read_users_me(identity: Identity = Depends(get_identity), db: Session = Depends(get_db)):
    user = UserService(db).get_user(identity.user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return user


@app.patch("/users/me", response_model=UserOut, tags=['Users'])
def update_profile(body: ProfileUpdate, identity: Identity = Depends(require_user), db: Session = Depends(get_db)):
    users = UserService(db)
    if not users.update_profile(identity.user_id, body.bio, body.avatar_url):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return users.get_user(identity.user_id)


@app.get("/users/{user_id}", response_model=UserOut, tags=['Users'])
def get_user(user_id: str, identity: Identity = Depends(require_user), db: Session = Depends(get_db)):
    user = UserService(db).get_user(user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return user


@app.get("/users/{user_id}/posts", response_model=List[PostOut], tags=['Users'])
def get_user_posts(
    user_id: str,
    count: int = Query(10, ge=1, le=100),
    identity: Identity = Depends(require_user),
    db: Session = Depends(get_db),
):
    posts = PostService(db).list_posts_by_user(user_id, count)
    return [_post_out(post, identity.user_id) for post in posts]


@app.get("/posts", response_model=List[PostOut], tags=['Posts'])
def get_feed(
    page: int = Query(1, ge=1),
    page_size: int = Query(settings.FEED_PAGE_SIZE, ge=1, le=100),
    identity: Identity = Depends(require_user),
    db: Session = Depends(get_db),
):
    posts = PostService(db).list_feed(page, page_size)
    return [_post_out(post, identity.user_id) for post in posts]


@app.post("/posts", response_model=PostOut, status_code=status.HTTP_201_CREATED, tags=['Posts'])
def create_post(
    content: str = Form(""),
    media: Optional[UploadFile] = File(None),
    identity: Identity = Depends(require_user),
    db: Session = Depends(get_db),
    store: LocalFileStore = Depends(get_file_store),
):
    media_url = None
    if media is not None and media.filename:
        media_url = store.save(media, "posts")
    try:
        post = PostService(db).create_post(identity.user_id, content, media_url)
    except errors.ValidationError:
        if media_url:
            store.delete(media_url)
        raise
    return _post_out(post, identity.user_id)


@app.get("/posts/{post_id}", response_model=PostDetail, tags=['Posts'])
def get_post(post_id: uuid.UUID, identity: Identity = Depends(require_user), db: Session = Depends(get_db)):
    post = PostService(db).get_post(post_id)
    if not post:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Post not found")

    role = _live_role(db, identity.user_id)
    comments = sorted(post.comments, key=lambda c: c.created_at, reverse=True)
    out = _post_out(post, identity.user_id, PostDetail)
    return out.model_copy(update={"comments": [_comment_out(c, identity.user_id, role) for c in comments]})


@app.delete("/posts/{post_id}", tags=['Posts'])
def delete_post(
    post_id: uuid.UUID,
    identity: Identity = Depends(require_user),
    db: Session = Depends(get_db),
    store: LocalFileStore = Depends(get_file_store),
):
    posts = PostService(db)
    post = posts.get_post(post_id)
    if not post:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Post not found")
    media_url = post.media_url

    if not posts.delete_post(post_id, identity.user_id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not enough privileges")
    if media_url:
        store.delete(media_url)
    return {"message": "Post deleted successfully"}


@app.get("/posts/{post_id}/comments", response_model=List[CommentOut], tags=['Comments & Likes'])
def get_comments(
    post_id: uuid.UUID,
    skip: int = Query(0, ge=0),
    take: int = Query(100, ge=1, le=100),
    identity: Identity = Depends(require_user),
    db: Session = Depends(get_db),
):
    role = _live_role(db, identity.user_id)
    comments = CommentService(db).list_comments(post_id, skip, take)
    return [_comment_out(c, identity.user_id, role) for c in comments]


@app.post("/posts/{post_id}/comments", response_model=CommentOut, status_code=status.HTTP_201_CREATED, tags=['Comments & Likes'])
def create_comment(
    post_id: uuid.UUID, body: CommentCreate, identity: Identity = Depends(require_user), db: Session = Depends(get_db)
):
    comment = CommentService(db).create_comment(post_id, identity.user_id, body.content)
    return _comment_out(comment, identity.user_id, _live_role(db, identity.user_id))


@app.delete("/comments/{comment_id}", tags=['Comments & Likes'])
def delete_comment(comment_id: uuid.UUID, identity: Identity = Depends(require_user), db: Session = Depends(get_db)):
    if not CommentService(db).delete_comment(comment_id, identity.user_id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Comment not found or not yours to delete")
    return {"message": "Comment deleted successfully"}


@app.post("/posts/{post_id}/like", response_model=LikeState, tags=['Comments & Likes'])
def like_post(post_id: uuid.UUID, identity: Identity = Depends(require_user), db: Session = Depends(get_db)):
    posts = PostService(db)
    if posts.has_liked(post_id, identity.user_id):
        posts.unlike(post_id, identity.user_id)
        liked = False
    else:
        # A concurrent like from the same user still leaves the post liked
        posts.like(post_id, identity.user_id)
        liked = True
    return LikeState(post_id=post_id, liked=liked, like_count=posts.like_count(post_id))


@app.delete("/posts/{post_id}/like", response_model=LikeState, tags=['Comments & Likes'])
def unlike_post(post_id: uuid.UUID, identity: Identity = Depends(require_user), db: Session = Depends(get_db)):
    posts = PostService(db)
    if not posts.unlike(post_id, identity.user_id):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="You have not liked this post")
    return LikeState(post_id=post_id, liked=False, like_count=posts.like_count(post_id))


@app.post("/friends/requests", status_code=status.HTTP_201_CREATED, tags=['Friends'])
def send_friend_request(
    body: FriendRequestCreate, identity: Identity = Depends(require_user), db: Session = Depends(get_db)
):
    if UserService(db).get_user(body.receiver_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    if not FriendService(db).send_request(identity.user_id, body.receiver_id):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Friend request not allowed")
    return {"message": "Friend request sent"}


@app.get("/friends/requests", response_model=List[FriendRequestOut], tags=['Friends'])
def get_pending_requests(identity: Identity = Depends(require_user), db: Session = Depends(get_db)):
    return FriendService(db).list_pending(identity.user_id)


def _answer_request(request_id: uuid.UUID, identity: Identity, db: Session, accept: bool):
    friends = FriendService(db)
    request = friends.get_request(request_id)
    if request is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Friend request not found")
    if request.receiver_id != identity.user_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not your friend request")

    answered = friends.accept(request_id) if accept else friends.decline(request_id)
    if not answered:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Friend request already answered")
    return friends.get_request(request_id)


@app.post("/friends/requests/{request_id}/accept", response_model=FriendRequestOut, tags=['Friends'])
def accept_friend_request(request_id: uuid.UUID, identity: Identity = Depends(require_user), db: Session = Depends(get_db)):
    return _answer_request(request_id, identity, db, accept=True)


@app.post("/friends/requests/{request_id}/decline", response_model=FriendRequestOut, tags=['Friends'])
def decline_friend_request(request_id: uuid.UUID, identity: Identity = Depends(require_user), db: Session = Depends(get_db)):
    return _answer_request(request_id, identity, db, accept=False)


@app.get("/friends", response_model=List[UserOut], tags=['Friends'])
def get_friends(identity: Identity = Depends(require_user), db: Session = Depends(get_db)):
    return FriendService(db).list_friends(identity.user_id)


@app.get("/friends/{user_id}/status", response_model=FriendshipStatus, tags=['Friends'])
def get_friendship_status(user_id: str, identity: Identity = Depends(require_user), db: Session = Depends(get_db)):
    return FriendshipStatus(user_id=user_id, are_friends=FriendService(db).are_friends(identity.user_id, user_id))


@app.get("/messages", response_model=List[ConversationPreview], tags=['Messages'])
def get_conversations(identity: Identity = Depends(require_user), db: Session = Depends(get_db)):
    messages = MessageService(db)
    previews = []
    for friend in FriendService(db).list_friends(identity.user_id):
        last = messages.get_last_message(identity.user_id, friend.id)
        previews.append(
            ConversationPreview(
                user=UserOut.model_validate(friend),
                last_message=last.content if last else None,
                last_message_time=last.sent_at if last else None,
                unread_count=messages.count_unread_from(identity.user_id, friend.id),
            )
        )
    # Conversations without messages go last
    previews.sort(key=lambda p: (p.last_message_time is not None, p.last_message_time or datetime.min), reverse=True)
    return previews


@app.get("/messages/unread", response_model=List[MessageOut], tags=['Messages'])
def get_unread_messages(identity: Identity = Depends(require_user), db: Session = Depends(get_db)):
    return MessageService(db).get_unread(identity.user_id)


@app.get("/messages/{user_id}", response_model=List[MessageOut], tags=['Messages'])
def get_conversation(user_id: str, identity: Identity = Depends(require_user), db: Session = Depends(get_db)):
    return MessageService(db).get_conversation(identity.user_id, user_id, settings.CONVERSATION_LIMIT)


@app.get("/messages/{user_id}/new", response_model=List[MessageOut], tags=['Messages'])
def get_new_messages(
    user_id: str, since: datetime, identity: Identity = Depends(require_user), db: Session = Depends(get_db)
):
    return MessageService(db).get_new_messages(identity.user_id, user_id, since)


@app.post("/messages/{user_id}", response_model=MessageOut, status_code=status.HTTP_201_CREATED, tags=['Messages'])
def send_message(
    user_id: str, body: MessageCreate, identity: Identity = Depends(require_user), db: Session = Depends(get_db)
):
    if not FriendService(db).are_friends(identity.user_id, user_id):
        raise errors.AuthorizationError("You can only message friends")
    return MessageService(db).send(identity.user_id, user_id, body.content, body.media_url)


@app.post("/messages/{message_id}/read", tags=['Messages'])
def mark_message_read(message_id: uuid.UUID, identity: Identity = Depends(require_user), db: Session = Depends(get_db)):
    messages = MessageService(db)
    message = messages.get_message(message_id)
    if message is None or message.receiver_id != identity.user_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Message not found")
    messages.mark_read(message_id)
    return {"message": "Message marked as read"}


@app.post("/groups", response_model=GroupOut, status_code=status.HTTP_201_CREATED, tags=['Groups'])
def create_group(body: GroupCreate, identity: Identity = Depends(require_user), db: Session = Depends(get_db)):
    return GroupService(db).create_group(body.name, body.code, body.description, identity.user_id)


@app.get("/groups/mine", response_model=List[GroupOut], tags=['Groups'])
def get_my_groups(identity: Identity = Depends(require_user), db: Session = Depends(get_db)):
    return GroupService(db).list_user_groups(identity.user_id)


@app.get("/groups/code/{code}", response_model=GroupDetail, tags=['Groups'])
def get_group_by_code(code: str, identity: Identity = Depends(require_user), db: Session = Depends(get_db)):
    group = GroupService(db).get_by_code(code)
    if group is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Group not found")
    return group


@app.get("/groups/{group_id}/members", response_model=List[UserOut], tags=['Groups'])
def get_group_members(group_id: uuid.UUID, identity: Identity = Depends(require_user), db: Session = Depends(get_db)):
    groups = GroupService(db)
    if groups.get_group(group_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Group not found")
    return groups.list_members(group_id)


@app.post("/groups/{group_id}/join", tags=['Groups'])
def join_group(group_id: uuid.UUID, identity: Identity = Depends(require_user), db: Session = Depends(get_db)):
    if not GroupService(db).join(group_id, identity.user_id):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="You are already a member of this group")
    return {"message": "Joined group"}


@app.delete("/groups/{group_id}/membership", tags=['Groups'])
def leave_group(group_id: uuid.UUID, identity: Identity = Depends(require_user), db: Session = Depends(get_db)):
    if not GroupService(db).leave(group_id, identity.user_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="You are not a member of this group")
    return {"message": "Left group"}


@app.post("/reports/posts/{post_id}", response_model=ReportOut, status_code=status.HTTP_201_CREATED, tags=['Reports'])
def report_post(post_id: uuid.UUID, body: ReportCreate, identity: Identity = Depends(require_user), db: Session = Depends(get_db)):
    return ModerationService(db).report_post(identity.user_id, post_id, body.reason)


@app.post("/reports/comments/{comment_id}", response_model=ReportOut, status_code=status.HTTP_201_CREATED, tags=['Reports'])
def report_comment(
    comment_id: uuid.UUID, body: ReportCreate, identity: Identity = Depends(require_user), db: Session = Depends(get_db)
):
    return ModerationService(db).report_comment(identity.user_id, comment_id, body.reason)
