import uuid
from datetime import timedelta

import pytest

from campusnet.content import CommentService, PostService
from campusnet.errors import NotFoundError, ValidationError
from campusnet.models import Comment, Like, Post, Role


@pytest.fixture()
def posts(db):
    return PostService(db)


@pytest.fixture()
def comments(db):
    return CommentService(db)


def test_create_post_returns_author(posts, make_user):
    make_user("u1", first_name="Ada", last_name="Lovelace")
    post = posts.create_post("u1", "Hello", None)
    assert post.content == "Hello"
    assert post.media_url is None
    assert post.edited is False
    assert post.author.first_name == "Ada"


def test_create_post_with_media_only(posts, make_user):
    make_user("u1")
    post = posts.create_post("u1", "", "/uploads/posts/pic.png")
    assert post.content == ""
    assert post.media_url == "/uploads/posts/pic.png"


def test_create_post_rejects_empty_post(posts, make_user):
    make_user("u1")
    with pytest.raises(ValidationError):
        posts.create_post("u1", "   ", None)


def test_create_post_rejects_long_content(posts, make_user, db):
    make_user("u1")
    posts.create_post("u1", "x" * 2000, None)
    with pytest.raises(ValidationError):
        posts.create_post("u1", "x" * 2001, None)
    assert db.query(Post).count() == 1


def test_feed_is_newest_first_and_paginated(posts, make_user, db):
    make_user("u1")
    older = posts.create_post("u1", "first", None)
    older.created_at = older.created_at - timedelta(minutes=5)
    db.commit()
    newest = posts.create_post("u1", "Hello", None)

    feed = posts.list_feed(1, 20)
    assert [p.id for p in feed] == [newest.id, older.id]
    assert [p.id for p in posts.list_feed(2, 1)] == [older.id]
    assert posts.list_feed(3, 1) == []


def test_list_posts_by_user_filters_and_caps(posts, make_user):
    make_user("u1")
    make_user("u2")
    for i in range(3):
        posts.create_post("u1", f"post {i}", None)
    posts.create_post("u2", "other", None)

    mine = posts.list_posts_by_user("u1", 2)
    assert len(mine) == 2
    assert all(p.author_id == "u1" for p in mine)


def test_get_post_missing_returns_none(posts):
    assert posts.get_post(uuid.uuid4()) is None


@pytest.mark.parametrize("role", [Role.Admin, Role.Teacher])
def test_moderators_can_delete_any_post(posts, make_user, db, role):
    make_user("author")
    make_user("mod", role=role)
    post = posts.create_post("author", "Hello", None)
    assert posts.delete_post(post.id, "mod") is True
    assert posts.get_post(post.id) is None


def test_student_cannot_delete_someone_elses_post(posts, make_user):
    make_user("author")
    make_user("other")
    post = posts.create_post("author", "Hello", None)
    assert posts.delete_post(post.id, "other") is False
    assert posts.get_post(post.id) is not None


def test_author_can_delete_own_post(posts, make_user):
    make_user("author")
    post = posts.create_post("author", "Hello", None)
    assert posts.delete_post(post.id, "author") is True
    assert posts.delete_post(post.id, "author") is False


def test_role_change_applies_on_next_call(posts, make_user, db):
    make_user("author")
    other = make_user("other")
    post = posts.create_post("author", "Hello", None)
    assert posts.delete_post(post.id, "other") is False

    other.role = Role.Teacher
    db.commit()
    assert posts.delete_post(post.id, "other") is True


def test_delete_post_cascades_comments_and_likes(posts, comments, make_user, db):
    make_user("author")
    make_user("fan")
    post = posts.create_post("author", "Hello", None)
    comments.create_comment(post.id, "fan", "nice")
    posts.like(post.id, "fan")

    assert posts.delete_post(post.id, "author") is True
    assert db.query(Comment).count() == 0
    assert db.query(Like).count() == 0


def test_like_and_unlike_are_idempotent(posts, make_user):
    make_user("author")
    make_user("fan")
    post = posts.create_post("author", "Hello", None)

    assert posts.like(post.id, "fan") is True
    assert posts.like(post.id, "fan") is False
    assert posts.has_liked(post.id, "fan") is True
    assert posts.like_count(post.id) == 1

    assert posts.unlike(post.id, "fan") is True
    assert posts.unlike(post.id, "fan") is False
    assert posts.has_liked(post.id, "fan") is False
    assert posts.like_count(post.id) == 0


def test_like_missing_post(posts, make_user):
    make_user("fan")
    with pytest.raises(NotFoundError):
        posts.like(uuid.uuid4(), "fan")


def test_duplicate_like_row_is_rejected_by_schema(posts, make_user, db):
    from sqlalchemy.exc import IntegrityError

    make_user("author")
    make_user("fan")
    post = posts.create_post("author", "Hello", None)
    posts.like(post.id, "fan")

    db.add(Like(post_id=post.id, user_id="fan"))
    with pytest.raises(IntegrityError):
        db.commit()
    db.rollback()
    assert posts.like_count(post.id) == 1


def test_like_racing_a_concurrent_like_returns_false(posts, make_user, db, session_factory, monkeypatch):
    make_user("author")
    make_user("fan")
    make_user("other")
    post = posts.create_post("author", "Hello", None)

    with session_factory() as other:
        other.add(Like(post_id=post.id, user_id="fan"))
        other.commit()
    monkeypatch.setattr(posts, "has_liked", lambda post_id, user_id: False)

    assert posts.like(post.id, "fan") is False
    assert db.query(Like).count() == 1
    monkeypatch.undo()
    assert posts.like(post.id, "other") is True
    assert posts.like_count(post.id) == 2


def test_comment_bounds(comments, posts, make_user):
    make_user("author")
    post = posts.create_post("author", "Hello", None)

    with pytest.raises(ValidationError):
        comments.create_comment(post.id, "author", "")
    with pytest.raises(ValidationError):
        comments.create_comment(post.id, "author", "x" * 201)

    comment = comments.create_comment(post.id, "author", "x" * 200)
    assert comment.author.id == "author"


def test_comment_on_missing_post(comments, make_user):
    make_user("author")
    with pytest.raises(NotFoundError):
        comments.create_comment(uuid.uuid4(), "author", "hi")


def test_list_comments_newest_first(comments, posts, make_user, db):
    make_user("author")
    post = posts.create_post("author", "Hello", None)
    first = comments.create_comment(post.id, "author", "one")
    first.created_at = first.created_at - timedelta(seconds=30)
    db.commit()
    second = comments.create_comment(post.id, "author", "two")

    listed = comments.list_comments(post.id)
    assert [c.id for c in listed] == [second.id, first.id]
    assert [c.id for c in comments.list_comments(post.id, skip=1, take=1)] == [first.id]


def test_delete_comment_permissions(comments, posts, make_user):
    make_user("author")
    make_user("commenter")
    make_user("stranger")
    make_user("admin", role=Role.Admin)
    post = posts.create_post("author", "Hello", None)
    c1 = comments.create_comment(post.id, "commenter", "one")
    c2 = comments.create_comment(post.id, "commenter", "two")

    assert comments.delete_comment(c1.id, "stranger") is False
    assert comments.delete_comment(c1.id, "commenter") is True
    assert comments.delete_comment(c2.id, "admin") is True
    assert comments.delete_comment(uuid.uuid4(), "admin") is False
