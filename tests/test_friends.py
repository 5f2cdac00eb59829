import uuid
from datetime import timedelta

import pytest
from sqlalchemy.exc import IntegrityError

from campusnet.friends import FRIEND_LIST_LIMIT, FriendService
from campusnet.models import FriendRequest, FriendRequestStatus


@pytest.fixture()
def friends(db):
    return FriendService(db)


@pytest.fixture()
def pair(make_user):
    make_user("u1")
    make_user("u2")


def _request(db, sender_id, receiver_id):
    return db.query(FriendRequest).filter_by(sender_id=sender_id, receiver_id=receiver_id).one()


def test_send_request_creates_pending_row(friends, pair, db):
    assert friends.send_request("u1", "u2") is True
    request = _request(db, "u1", "u2")
    assert request.status == FriendRequestStatus.Pending
    assert request.responded_at is None


def test_self_request_is_refused(friends, make_user, db):
    make_user("u1")
    assert friends.send_request("u1", "u1") is False
    assert db.query(FriendRequest).count() == 0


def test_one_request_per_unordered_pair(friends, pair, db):
    assert friends.send_request("u1", "u2") is True
    assert friends.send_request("u1", "u2") is False
    assert friends.send_request("u2", "u1") is False
    assert db.query(FriendRequest).count() == 1


def test_reverse_insert_is_rejected_by_schema(friends, pair, db):
    friends.send_request("u1", "u2")
    db.add(FriendRequest(sender_id="u2", receiver_id="u1"))
    with pytest.raises(IntegrityError):
        db.commit()
    db.rollback()


@pytest.mark.parametrize("status", [FriendRequestStatus.Accepted, FriendRequestStatus.Declined])
def test_answered_request_blocks_new_requests(friends, pair, db, status):
    friends.send_request("u1", "u2")
    request = _request(db, "u1", "u2")
    if status == FriendRequestStatus.Accepted:
        friends.accept(request.id)
    else:
        friends.decline(request.id)

    assert friends.send_request("u2", "u1") is False


def test_accept_scenario(friends, pair, db):
    friends.send_request("u1", "u2")
    request = _request(db, "u1", "u2")

    assert friends.accept(request.id) is True
    assert request.status == FriendRequestStatus.Accepted
    assert request.responded_at is not None
    assert friends.are_friends("u1", "u2") is True
    assert [u.id for u in friends.list_friends("u1")] == ["u2"]
    assert [u.id for u in friends.list_friends("u2")] == ["u1"]


def test_decline_does_not_make_friends(friends, pair, db):
    friends.send_request("u1", "u2")
    request = _request(db, "u1", "u2")

    assert friends.decline(request.id) is True
    assert request.status == FriendRequestStatus.Declined
    assert friends.are_friends("u1", "u2") is False
    assert friends.list_friends("u1") == []


def test_answering_twice_keeps_first_answer(friends, pair, db):
    friends.send_request("u1", "u2")
    request = _request(db, "u1", "u2")
    friends.accept(request.id)
    responded_at = request.responded_at

    assert friends.accept(request.id) is False
    assert friends.decline(request.id) is False
    db.refresh(request)
    assert request.status == FriendRequestStatus.Accepted
    assert request.responded_at == responded_at


def test_answer_missing_request(friends):
    assert friends.accept(uuid.uuid4()) is False
    assert friends.decline(uuid.uuid4()) is False


def test_are_friends_is_symmetric(friends, make_user, db):
    for user_id in ("a", "b", "c"):
        make_user(user_id)
    friends.send_request("b", "a")
    friends.accept(_request(db, "b", "a").id)
    friends.send_request("a", "c")

    for x in ("a", "b", "c"):
        for y in ("a", "b", "c"):
            assert friends.are_friends(x, y) == friends.are_friends(y, x)
    assert friends.are_friends("a", "b") is True
    assert friends.are_friends("a", "c") is False


def test_list_pending_newest_first_with_sender(friends, make_user, db):
    make_user("me")
    make_user("early", first_name="Early")
    make_user("late", first_name="Late")
    friends.send_request("early", "me")
    early = _request(db, "early", "me")
    early.created_at = early.created_at - timedelta(minutes=1)
    db.commit()
    friends.send_request("late", "me")
    assert friends.send_request("me", "early") is False

    pending = friends.list_pending("me")
    assert [r.sender.first_name for r in pending] == ["Late", "Early"]
    assert friends.list_pending("early") == []


def test_friend_list_is_capped(friends, make_user, db):
    make_user("hub")
    for i in range(FRIEND_LIST_LIMIT + 3):
        make_user(f"f{i:02d}")
        if i % 2:
            friends.send_request("hub", f"f{i:02d}")
            friends.accept(_request(db, "hub", f"f{i:02d}").id)
        else:
            friends.send_request(f"f{i:02d}", "hub")
            friends.accept(_request(db, f"f{i:02d}", "hub").id)

    listed = friends.list_friends("hub")
    assert len(listed) == FRIEND_LIST_LIMIT
    assert len({u.id for u in listed}) == FRIEND_LIST_LIMIT


def test_send_request_racing_a_reverse_request_returns_false(friends, pair, make_user, db, session_factory, monkeypatch):
    make_user("u3")
    with session_factory() as other:
        other.add(FriendRequest(sender_id="u2", receiver_id="u1", status=FriendRequestStatus.Pending))
        other.commit()
    monkeypatch.setattr(friends, "find_request", lambda user_id1, user_id2: None)

    assert friends.send_request("u1", "u2") is False
    assert db.query(FriendRequest).count() == 1
    monkeypatch.undo()
    assert friends.send_request("u1", "u3") is True
    assert db.query(FriendRequest).count() == 2
