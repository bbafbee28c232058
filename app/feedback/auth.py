from __future__ import annotations

import uuid
from collections import defaultdict
from datetime import datetime, timedelta, timezone

from flask import Blueprint, current_app, g, jsonify, request
from jose import ExpiredSignatureError, JWTError, jwt

from app.feedback.db import db_session
from app.feedback.errors import InvalidCredentials, RateLimited, Unauthenticated, ValidationError
from app.feedback.models import VALID_ROLES, User
from app.feedback.modules.accounts.service import authenticate, create_user
from app.feedback.rbac import Principal, require_authenticated
from app.feedback.schemas import LoginPayload, RegisterPayload

bp = Blueprint("auth", __name__)
_login_attempts: dict[str, list[datetime]] = defaultdict(list)
_LOGIN_RATE_LIMIT = 5
_LOGIN_RATE_WINDOW = 300  # seconds


def _prune_attempts(cutoff: datetime) -> None:
    for ip in list(_login_attempts):
        recent = [t for t in _login_attempts[ip] if t > cutoff]
        if recent:
            _login_attempts[ip] = recent
        else:
            del _login_attempts[ip]


def _check_rate_limit(ip: str) -> bool:
    _prune_attempts(datetime.utcnow() - timedelta(seconds=_LOGIN_RATE_WINDOW))
    return len(_login_attempts.get(ip, ())) >= _LOGIN_RATE_LIMIT


def _record_attempt(ip: str) -> None:
    _login_attempts[ip].append(datetime.utcnow())


def reset_login_attempts() -> None:
    _login_attempts.clear()


# ---------- Tokens ----------


def issue_token(user: User, *, now: datetime | None = None) -> str:
    """Signed {id, role} token; the role is a snapshot valid until expiry."""
    cfg = current_app.config
    issued = now or datetime.now(timezone.utc)
    claims = {
        "sub": str(user.id),
        "id": user.id,
        "role": user.role,
        "iat": int(issued.timestamp()),
        "exp": int((issued + timedelta(hours=int(cfg["TOKEN_TTL_HOURS"]))).timestamp()),
    }
    return jwt.encode(claims, cfg["JWT_SECRET"], algorithm=cfg["JWT_ALGORITHM"])


def decode_token(token: str) -> Principal:
    cfg = current_app.config
    try:
        claims = jwt.decode(token, cfg["JWT_SECRET"], algorithms=[cfg["JWT_ALGORITHM"]])
    except ExpiredSignatureError as e:
        raise Unauthenticated("Token has expired") from e
    except JWTError as e:
        raise Unauthenticated("Invalid token") from e

    user_id = claims.get("id")
    role = claims.get("role")
    if not isinstance(user_id, int) or role not in VALID_ROLES:
        raise Unauthenticated("Invalid token")
    return Principal(id=user_id, role=role)


def _bearer_token() -> str | None:
    header = (request.headers.get("Authorization") or "").strip()
    if not header:
        return None
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise Unauthenticated("Malformed Authorization header")
    return token.strip()


def load_current_principal() -> None:
    """
    Loads g.principal from the bearer token. No directory lookup: the role in
    the token is trusted as-is. Also assigns a per-request request_id.
    """
    if not getattr(g, "request_id", None):
        g.request_id = uuid.uuid4().hex
    g.principal = None
    try:
        token = _bearer_token()
        if token:
            g.principal = decode_token(token)
    except Unauthenticated as e:
        # Public endpoints ignore a bad header; protected ones raise via current_principal().
        current_app.logger.info("Rejected bearer token (request_id=%s): %s", g.request_id, e.message)
        g.auth_error = e.message


def _json_body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


# ---------- Routes ----------


@bp.post("/register")
def register():
    payload, errors = RegisterPayload.from_json(_json_body())
    if errors:
        raise ValidationError(errors)

    s = db_session()
    user = create_user(s, payload)
    s.commit()
    current_app.logger.info("Registered user id=%s role=%s", user.id, user.role)
    return jsonify({"token": issue_token(user)})


@bp.post("/login")
def login():
    payload, errors = LoginPayload.from_json(_json_body())
    if errors:
        raise ValidationError(errors)

    ip = request.remote_addr or "unknown"
    if _check_rate_limit(ip):
        raise RateLimited()
    _record_attempt(ip)

    s = db_session()
    try:
        user = authenticate(s, payload)
    except InvalidCredentials:
        # Keep the failed-login audit event.
        s.commit()
        raise
    s.commit()
    _login_attempts.pop(ip, None)
    return jsonify({"token": issue_token(user)})


@bp.get("/logout")
@require_authenticated
def logout():
    # Tokens are stateless; the client drops its copy.
    return jsonify({"message": "Logged out successfully"})
