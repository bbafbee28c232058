from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from werkzeug.security import check_password_hash, generate_password_hash

from app.feedback.audit import record_event
from app.feedback.errors import Conflict, InvalidCredentials, NotFound, ValidationError
from app.feedback.models import User
from app.feedback.schemas import LoginPayload, RegisterPayload, validate_role

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.feedback.rbac import Principal


def get_user_by_username(s: "Session", username: str) -> User | None:
    return s.scalars(select(User).where(User.username == username)).one_or_none()


def create_user(s: "Session", payload: RegisterPayload) -> User:
    """Registers a user. Password is stored only as a werkzeug hash."""
    if get_user_by_username(s, payload.username) is not None:
        raise Conflict("User already exists")

    user = User(
        username=payload.username,
        password_hash=generate_password_hash(payload.password),
        role=payload.role,
    )
    s.add(user)
    try:
        s.flush()
    except IntegrityError as e:
        # Lost a race with a concurrent registration of the same username.
        s.rollback()
        raise Conflict("User already exists") from e

    record_event(
        s,
        actor=None,
        action="user.register",
        entity_type="User",
        entity_id=str(user.id),
        metadata={"username": user.username, "role": user.role},
    )
    return user


def authenticate(s: "Session", payload: LoginPayload) -> User:
    # Same error for unknown user and wrong password.
    user = get_user_by_username(s, payload.username)
    if user is None or not check_password_hash(user.password_hash, payload.password):
        record_event(
            s,
            actor=None,
            action="auth.login_failed",
            entity_type="User",
            entity_id=payload.username,
            reason="Invalid credentials",
        )
        raise InvalidCredentials()

    record_event(s, actor=None, action="auth.login", entity_type="User", entity_id=str(user.id))
    return user


def list_users(s: "Session") -> list[User]:
    return list(s.scalars(select(User).order_by(User.username.asc())))


def get_user(s: "Session", user_id: int) -> User:
    user = s.get(User, user_id)
    if user is None:
        raise NotFound("User not found")
    return user


def change_role(s: "Session", user_id: int, new_role: str, *, actor: "Principal | None" = None) -> User:
    """Takes effect on the user's next login; issued tokens keep their role."""
    errors = validate_role(new_role)
    if errors:
        raise ValidationError(errors)
    user = get_user(s, user_id)
    old_role = user.role
    user.role = new_role

    record_event(
        s,
        actor=actor,
        action="user.change_role",
        entity_type="User",
        entity_id=str(user.id),
        metadata={"before": old_role, "after": new_role},
    )
    return user


def delete_user(s: "Session", user_id: int, *, policy: str = "retain", actor: "Principal | None" = None) -> dict[str, int]:
    """
    Removes the account. With policy "retain" authored courses and reviews keep
    their (now dangling) ids; "cascade" removes them as well.
    """
    user = get_user(s, user_id)
    purged = {"courses_deleted": 0, "reviews_deleted": 0}
    if policy == "cascade":
        from app.feedback.modules.courses.service import purge_user_content

        purged = purge_user_content(s, user.id)

    record_event(
        s,
        actor=actor,
        action="user.delete",
        entity_type="User",
        entity_id=str(user.id),
        metadata={"username": user.username, "role": user.role, "policy": policy, **purged},
    )
    s.delete(user)
    s.flush()
    return purged
