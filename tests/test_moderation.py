import uuid

import pytest

from campusnet.content import CommentService, PostService
from campusnet.errors import ConflictError, NotFoundError, SelfActionError, SelfReportError, ValidationError
from campusnet.models import ContentType, Report, ReportStatus
from campusnet.moderation import ModerationService


@pytest.fixture()
def moderation(db):
    return ModerationService(db)


@pytest.fixture()
def post(db, make_user):
    make_user("author")
    make_user("reporter")
    return PostService(db).create_post("author", "Hello", None)


def test_report_post_is_pending(moderation, post):
    report = moderation.report_post("reporter", post.id, "spam")
    assert report.status == ReportStatus.Pending
    assert report.content_type == ContentType.Post
    assert report.content_id == post.id
    assert report.reason == "spam"


def test_reporting_own_post_creates_nothing(moderation, post, db):
    with pytest.raises(SelfActionError):
        moderation.report_post("author", post.id, "oops")
    assert db.query(Report).count() == 0


def test_report_missing_content(moderation, post):
    with pytest.raises(NotFoundError):
        moderation.report_post("reporter", uuid.uuid4(), None)
    with pytest.raises(NotFoundError):
        moderation.report_comment("reporter", uuid.uuid4(), None)


def test_report_comment(moderation, post, db):
    comment = CommentService(db).create_comment(post.id, "author", "rude")

    with pytest.raises(SelfReportError):
        moderation.report_comment("author", comment.id, None)

    report = moderation.report_comment("reporter", comment.id, None)
    assert report.content_type == ContentType.Comment
    assert report.reason is None


def test_duplicate_report_conflicts(moderation, post, db):
    moderation.report_post("reporter", post.id, "spam")
    with pytest.raises(ConflictError):
        moderation.report_post("reporter", post.id, "still spam")
    assert db.query(Report).count() == 1


def test_reason_length(moderation, post):
    with pytest.raises(ValidationError):
        moderation.report_post("reporter", post.id, "x" * 501)
