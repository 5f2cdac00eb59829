import logging
import uuid
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from campusnet.errors import ConflictError, NotFoundError, SelfReportError, ValidationError
from campusnet.models import Comment, ContentType, Post, Report, ReportStatus, utcnow

logger = logging.getLogger(__name__)

MAX_REASON_LENGTH = 500


class ModerationService:
    def __init__(self, db: Session):
        self.db = db

    def report_post(self, reporter_id: str, post_id: uuid.UUID, reason: Optional[str] = None) -> Report:
        post = self.db.get(Post, post_id)
        if post is None:
            raise NotFoundError("Post not found")
        if post.author_id == reporter_id:
            raise SelfReportError("You cannot report your own post")
        return self._file(reporter_id, post_id, ContentType.Post, reason)

    def report_comment(self, reporter_id: str, comment_id: uuid.UUID, reason: Optional[str] = None) -> Report:
        comment = self.db.get(Comment, comment_id)
        if comment is None:
            raise NotFoundError("Comment not found")
        if comment.author_id == reporter_id:
            raise SelfReportError("You cannot report your own comment")
        return self._file(reporter_id, comment_id, ContentType.Comment, reason)

    def _file(self, reporter_id, content_id, content_type, reason):
        if reason is not None and len(reason) > MAX_REASON_LENGTH:
            raise ValidationError(f"Reason exceeds maximum length of {MAX_REASON_LENGTH} characters")

        report = Report(
            reporter_id=reporter_id,
            content_id=content_id,
            content_type=content_type,
            reason=reason or None,
            status=ReportStatus.Pending,
            created_at=utcnow(),
        )
        self.db.add(report)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise ConflictError(f"You have already reported this {content_type.value.lower()}")

        logger.info("%s %s reported by %s", content_type.value, content_id, reporter_id)
        return report
