from datetime import datetime, timedelta, timezone

from app.feedback import auth
from app.feedback.auth import issue_token
from app.feedback.modules.accounts import service as accounts_service
from app.feedback.db import session_scope
from app.feedback.models import AuditEvent, User

from conftest import make_user


def test_register_returns_token_and_hashes_password(app, client):
    r = client.post("/user/register", json={"username": "pat", "password": "abcdef", "role": "professor"})
    assert r.status_code == 200
    assert r.json["token"]

    with session_scope(app) as s:
        u = s.query(User).filter(User.username == "pat").one()
        assert u.role == "professor"
        assert u.password_hash != "abcdef"


def test_register_validation_errors_are_field_level(client):
    r = client.post("/user/register", json={"username": "", "password": "123", "role": "dean"})
    assert r.status_code == 400
    fields = {e["field"] for e in r.json["errors"]}
    assert fields == {"username", "password", "role"}


def test_register_duplicate_username_conflicts(client):
    body = {"username": "pat", "password": "abcdef", "role": "student"}
    assert client.post("/user/register", json=body).status_code == 200
    r = client.post("/user/register", json=body)
    assert r.status_code == 400
    assert r.json["message"] == "User already exists"


def test_login_ok_and_generic_failure(app, client):
    make_user(app, "lee", "student", password="correct-horse")

    r = client.post("/user/login", json={"username": "lee", "password": "correct-horse"})
    assert r.status_code == 200
    assert r.json["token"]

    wrong_pw = client.post("/user/login", json={"username": "lee", "password": "nope-nope"})
    no_user = client.post("/user/login", json={"username": "ghost", "password": "nope-nope"})
    assert wrong_pw.status_code == no_user.status_code == 400
    assert wrong_pw.json == no_user.json == {"message": "Invalid credentials."}

    with session_scope(app) as s:
        actions = [e.action for e in s.query(AuditEvent).order_by(AuditEvent.id.asc()).all()]
    assert actions.count("auth.login_failed") == 2
    assert "auth.login" in actions


def test_login_rate_limited_after_repeated_failures(app, client):
    make_user(app, "lee", "student", password="correct-horse")
    for _ in range(5):
        client.post("/user/login", json={"username": "lee", "password": "wrong-one"})
    r = client.post("/user/login", json={"username": "lee", "password": "correct-horse"})
    assert r.status_code == 429


def test_missing_malformed_and_bad_tokens_are_401(client):
    assert client.get("/outlet").status_code == 401
    assert client.get("/outlet", headers={"Authorization": "Token abc"}).status_code == 401
    r = client.get("/outlet", headers={"Authorization": "Bearer not-a-jwt"})
    assert r.status_code == 401
    assert r.json["message"] == "Invalid token"


def test_token_signed_with_other_secret_is_rejected(app, client):
    from jose import jwt

    token = jwt.encode({"sub": "1", "id": 1, "role": "admin"}, "other-secret", algorithm="HS256")
    r = client.get("/users", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 401


def test_expired_token_is_401(app, client):
    uid = make_user(app, "lee", "student")
    with app.app_context():
        with session_scope(app) as s:
            user = s.get(User, uid)
        token = issue_token(user, now=datetime.now(timezone.utc) - timedelta(days=2))
    r = client.get("/outlet", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 401
    assert r.json["message"] == "Token has expired"


def test_token_expires_after_one_day_by_default(app):
    from jose import jwt

    with app.app_context():
        token = issue_token(User(id=7, username="x", password_hash="x", role="student"))
    claims = jwt.get_unverified_claims(token)
    assert claims["id"] == 7
    assert claims["role"] == "student"
    assert claims["exp"] - claims["iat"] == 24 * 3600


def test_role_change_applies_on_next_login(app, client):
    make_user(app, "admin", "admin", password="admin-pw")
    uid = make_user(app, "lee", "student", password="student-pw")

    old = client.post("/user/login", json={"username": "lee", "password": "student-pw"}).json["token"]
    admin = client.post("/user/login", json={"username": "admin", "password": "admin-pw"}).json["token"]

    r = client.put(f"/users/change/professor/{uid}", headers={"Authorization": f"Bearer {admin}"})
    assert r.status_code == 200
    assert r.json["role"] == "professor"

    # Old token still carries the student role snapshot.
    course = {"title": "T", "description": "D"}
    r = client.post("/outlet", json=course, headers={"Authorization": f"Bearer {old}"})
    assert r.status_code == 403

    new = client.post("/user/login", json={"username": "lee", "password": "student-pw"}).json["token"]
    r = client.post("/outlet", json=course, headers={"Authorization": f"Bearer {new}"})
    assert r.status_code == 201


def test_logout_requires_token(client):
    assert client.get("/user/logout").status_code == 401
    r = client.post("/user/register", json={"username": "pat", "password": "abcdef", "role": "student"})
    r = client.get("/user/logout", headers={"Authorization": f"Bearer {r.json['token']}"})
    assert r.status_code == 200
    assert r.json["message"] == "Logged out successfully"


def test_register_role_is_case_sensitive(client):
    r = client.post("/user/register", json={"username": "mal", "password": "abcdef", "role": "ADMIN"})
    assert r.status_code == 400
    assert [e["field"] for e in r.json["errors"]] == ["role"]


def test_register_race_on_same_username_is_conflict(monkeypatch, client):
    body = {"username": "pat", "password": "abcdef", "role": "student"}
    assert client.post("/user/register", json=body).status_code == 200

    # Second request passes the existence check, as if both ran at once.
    monkeypatch.setattr(accounts_service, "get_user_by_username", lambda s, username: None)
    r = client.post("/user/register", json=body)
    assert r.status_code == 400
    assert r.json["message"] == "User already exists"


def test_login_attempts_do_not_accumulate_per_ip(app, client):
    make_user(app, "lee", "student", password="correct-horse")
    auth._login_attempts["10.9.9.9"].append(datetime.utcnow() - timedelta(hours=1))

    client.post("/user/login", json={"username": "lee", "password": "wrong-one"})
    assert "10.9.9.9" not in auth._login_attempts
    assert len(auth._login_attempts) == 1

    r = client.post("/user/login", json={"username": "lee", "password": "correct-horse"})
    assert r.status_code == 200
    assert dict(auth._login_attempts) == {}
