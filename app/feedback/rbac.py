"""
Authorization predicates.

Decisions use only the Principal decoded from the bearer token (id + role at
issuance time) and the owning id of the resource. No database access here.
"""
from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from functools import wraps
from typing import Any

from flask import g

from app.feedback.errors import Forbidden, Unauthenticated
from app.feedback.models import ROLE_ADMIN, ROLE_PROFESSOR, ROLE_STUDENT


@dataclass(frozen=True)
class Principal:
    id: int
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN


class Action:
    COURSE_READ = "course.read"
    COURSE_CREATE = "course.create"
    COURSE_DELETE = "course.delete"
    REVIEW_SUBMIT = "review.submit"
    REVIEW_REPLY = "review.reply"
    REVIEW_PENDING = "review.pending"
    REVIEW_DELETE = "review.delete"
    USER_LIST = "user.list"
    USER_CHANGE_ROLE = "user.change_role"
    USER_DELETE = "user.delete"


ALL_ACTIONS = frozenset(v for k, v in vars(Action).items() if k.isupper())

# Actions that additionally require ownership unless the caller is admin.
OWNED_ACTIONS = frozenset({Action.COURSE_DELETE, Action.REVIEW_REPLY, Action.REVIEW_PENDING})

ROLE_ACTIONS: dict[str, frozenset[str]] = {
    ROLE_STUDENT: frozenset({Action.COURSE_READ, Action.REVIEW_SUBMIT}),
    ROLE_PROFESSOR: frozenset(
        {
            Action.COURSE_READ,
            Action.COURSE_CREATE,
            Action.COURSE_DELETE,
            Action.REVIEW_REPLY,
            Action.REVIEW_PENDING,
        }
    ),
    ROLE_ADMIN: ALL_ACTIONS,
}


def role_allows(role: str | None, action: str) -> bool:
    return action in ROLE_ACTIONS.get(role or "", frozenset())


def is_owner_or_admin(principal: Principal | None, owner_id: int | None) -> bool:
    if principal is None:
        return False
    if principal.is_admin:
        return True
    return owner_id is not None and principal.id == owner_id


def can(principal: Principal | None, action: str, owner_id: int | None = None) -> bool:
    """
    Single decision point: role must allow the action, and owned actions
    also need principal == owner (admin bypasses ownership).
    """
    if principal is None or not role_allows(principal.role, action):
        return False
    if action in OWNED_ACTIONS:
        return is_owner_or_admin(principal, owner_id)
    return True


def current_principal() -> Principal:
    p: Principal | None = getattr(g, "principal", None)
    if p is None:
        raise Unauthenticated(getattr(g, "auth_error", None))
    return p


def require_authenticated(fn: Callable[..., Any]) -> Callable[..., Any]:
    @wraps(fn)
    def wrapped(*args: Any, **kwargs: Any):
        current_principal()
        return fn(*args, **kwargs)

    return wrapped


def require_role(*roles: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(fn)
        def wrapped(*args: Any, **kwargs: Any):
            principal = current_principal()
            if principal.role not in roles:
                raise Forbidden()
            return fn(*args, **kwargs)

        return wrapped

    return decorator


def require_action(action: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Role-level gate only; ownership is checked in the handler once the resource is loaded."""

    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(fn)
        def wrapped(*args: Any, **kwargs: Any):
            principal = current_principal()
            if not role_allows(principal.role, action):
                g.missing_permission = action
                raise Forbidden()
            return fn(*args, **kwargs)

        return wrapped

    return decorator
