"""Posts, comments and likes."""
import logging
import uuid
from typing import List, Optional

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload, joinedload

from campusnet.errors import NotFoundError, ValidationError
from campusnet.models import Comment, Like, Post, User, utcnow
from campusnet.permissions import can_delete

logger = logging.getLogger(__name__)

MAX_POST_LENGTH = 2000
MAX_COMMENT_LENGTH = 200
MAX_MEDIA_URL_LENGTH = 512


def _blank(value: Optional[str]) -> bool:
    return value is None or not value.strip()


def _requester_role(db: Session, requester_id: str):
    # Read the live row so a role change applies on the very next call
    user = db.get(User, requester_id)
    return user.role if user is not None else None


class PostService:
    def __init__(self, db: Session):
        self.db = db

    def create_post(self, author_id: str, content: Optional[str], media_url: Optional[str] = None) -> Post:
        if _blank(content) and _blank(media_url):
            raise ValidationError("Post must have either content or media")
        if content is not None and len(content) > MAX_POST_LENGTH:
            raise ValidationError(f"Post content exceeds maximum length of {MAX_POST_LENGTH} characters")
        if media_url is not None and len(media_url) > MAX_MEDIA_URL_LENGTH:
            raise ValidationError(f"Media URL exceeds maximum length of {MAX_MEDIA_URL_LENGTH} characters")

        post = Post(
            author_id=author_id,
            content=content or "",
            media_url=media_url or None,
            created_at=utcnow(),
        )
        self.db.add(post)
        self.db.commit()
        logger.info("Post %s created by %s", post.id, author_id)

        return self.db.scalars(
            select(Post).options(joinedload(Post.author)).where(Post.id == post.id)
        ).one()

    def _listing(self):
        return (
            select(Post)
            .options(joinedload(Post.author), selectinload(Post.likes), selectinload(Post.comments))
            .order_by(Post.created_at.desc())
        )

    def list_feed(self, page: int = 1, page_size: int = 20) -> List[Post]:
        page = max(page, 1)
        stmt = self._listing().offset((page - 1) * page_size).limit(page_size)
        return list(self.db.scalars(stmt).unique())

    def list_posts_by_user(self, user_id: str, count: int = 10) -> List[Post]:
        stmt = self._listing().where(Post.author_id == user_id).limit(count)
        return list(self.db.scalars(stmt).unique())

    def get_post(self, post_id: uuid.UUID) -> Optional[Post]:
        stmt = (
            select(Post)
            .options(
                joinedload(Post.author),
                selectinload(Post.likes),
                selectinload(Post.comments).joinedload(Comment.author),
            )
            .where(Post.id == post_id)
        )
        return self.db.scalars(stmt).unique().one_or_none()

    def delete_post(self, post_id: uuid.UUID, requester_id: str) -> bool:
        post = self.db.get(Post, post_id)
        if post is None:
            return False
        if not can_delete(post.author_id, requester_id, _requester_role(self.db, requester_id)):
            logger.warning("User %s may not delete post %s", requester_id, post_id)
            return False

        self.db.delete(post)
        self.db.commit()
        logger.info("Post %s deleted by %s", post_id, requester_id)
        return True

    def like(self, post_id: uuid.UUID, user_id: str) -> bool:
        if self.db.get(Post, post_id) is None:
            raise NotFoundError("Post not found")
        if self.has_liked(post_id, user_id):
            return False

        self.db.add(Like(post_id=post_id, user_id=user_id, created_at=utcnow()))
        try:
            self.db.commit()
        except IntegrityError:
            # A concurrent request inserted the same like first
            self.db.rollback()
            logger.debug("Duplicate like on post %s by %s", post_id, user_id)
            return False
        return True

    def unlike(self, post_id: uuid.UUID, user_id: str) -> bool:
        like = self.db.scalars(
            select(Like).where(Like.post_id == post_id, Like.user_id == user_id)
        ).first()
        if like is None:
            return False

        self.db.delete(like)
        self.db.commit()
        return True

    def has_liked(self, post_id: uuid.UUID, user_id: str) -> bool:
        stmt = select(Like.id).where(Like.post_id == post_id, Like.user_id == user_id).limit(1)
        return self.db.scalar(stmt) is not None

    def like_count(self, post_id: uuid.UUID) -> int:
        return self.db.scalar(select(func.count(Like.id)).where(Like.post_id == post_id))


class CommentService:
    def __init__(self, db: Session):
        self.db = db

    def create_comment(self, post_id: uuid.UUID, author_id: str, content: Optional[str]) -> Comment:
        if _blank(content) or len(content) > MAX_COMMENT_LENGTH:
            raise ValidationError(f"Comment must be between 1 and {MAX_COMMENT_LENGTH} characters")
        if self.db.get(Post, post_id) is None:
            raise NotFoundError("Post not found")

        comment = Comment(post_id=post_id, author_id=author_id, content=content, created_at=utcnow())
        self.db.add(comment)
        self.db.commit()
        logger.info("Comment %s added to post %s by %s", comment.id, post_id, author_id)

        return self.db.scalars(
            select(Comment).options(joinedload(Comment.author)).where(Comment.id == comment.id)
        ).one()

    def list_comments(self, post_id: uuid.UUID, skip: int = 0, take: int = 10) -> List[Comment]:
        stmt = (
            select(Comment)
            .options(joinedload(Comment.author))
            .where(Comment.post_id == post_id)
            .order_by(Comment.created_at.desc())
            .offset(skip)
            .limit(take)
        )
        return list(self.db.scalars(stmt))

    def delete_comment(self, comment_id: uuid.UUID, requester_id: str) -> bool:
        comment = self.db.get(Comment, comment_id)
        if comment is None:
            return False
        if not can_delete(comment.author_id, requester_id, _requester_role(self.db, requester_id)):
            logger.warning("User %s may not delete comment %s", requester_id, comment_id)
            return False

        self.db.delete(comment)
        self.db.commit()
        logger.info("Comment %s deleted by %s", comment_id, requester_id)
        return True
