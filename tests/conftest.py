import pytest
from werkzeug.security import generate_password_hash

from app.feedback import create_app
from app.feedback.auth import issue_token, reset_login_attempts
from app.feedback.db import session_scope
from app.feedback.models import Base, User


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    for k in ("JWT_SECRET", "JWT_ALGORITHM", "TOKEN_TTL_HOURS", "REVIEW_REPLACE_POLICY", "USER_DELETE_POLICY"):
        monkeypatch.delenv(k, raising=False)

    app = create_app()
    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)
    reset_login_attempts()
    return app


@pytest.fixture()
def client(app):
    return app.test_client()


def make_user(app, username: str, role: str, password: str = "secret1") -> int:
    with session_scope(app) as s:
        u = User(username=username, password_hash=generate_password_hash(password), role=role)
        s.add(u)
        s.flush()
        return u.id


def auth_header(app, user_id: int, role: str) -> dict:
    with app.app_context():
        token = issue_token(User(id=user_id, username="x", password_hash="x", role=role))
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def users(app):
    """ids + auth headers for one admin, two professors and three students."""
    out = {}
    for name, role in (
        ("admin", "admin"),
        ("prof", "professor"),
        ("prof2", "professor"),
        ("alice", "student"),
        ("bob", "student"),
        ("carol", "student"),
    ):
        uid = make_user(app, name, role)
        out[name] = {"id": uid, "headers": auth_header(app, uid, role)}
    return out
