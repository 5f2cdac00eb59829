import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from campusnet.database import get_db, init_db, make_engine
from campusnet.main import app
from campusnet.models import Role, User
from campusnet.storage import LocalFileStore, get_file_store


@pytest.fixture()
def engine():
    # One shared in-memory connection so every session sees the same tables
    engine = make_engine("sqlite://", poolclass=StaticPool)
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def make_user(db):
    def _make_user(user_id, role=Role.Student, first_name="Test", last_name="User"):
        user = User(id=user_id, first_name=first_name, last_name=last_name, role=role)
        db.add(user)
        db.commit()
        return user

    return _make_user


@pytest.fixture()
def store(tmp_path):
    return LocalFileStore(root=str(tmp_path / "uploads"), max_bytes=1024)


@pytest.fixture()
def client(session_factory, store):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_file_store] = lambda: store
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture()
def auth():
    def _auth(user_id, role="Student"):
        return {"X-User-Id": user_id, "X-User-Role": role}

    return _auth
