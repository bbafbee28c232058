"""
Request payloads and response shapes for the JSON API.

Payloads validate in from_json() and return (payload, errors); errors are
{"field", "message"} dicts ready for ValidationError.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from app.feedback.models import VALID_ROLES

if TYPE_CHECKING:
    from app.feedback.models import User
    from app.feedback.modules.courses.models import Course, Review


MIN_PASSWORD_LENGTH = 6
MIN_RATING = 1
MAX_RATING = 5

FieldErrors = list[dict[str, str]]


def _err(field: str, message: str) -> dict[str, str]:
    return {"field": field, "message": message}


def _text(data: dict[str, Any], key: str) -> str:
    value = data.get(key)
    if value is None:
        return ""
    return str(value).strip()


def parse_rating(value: Any) -> int | None:
    """Integer 1..5, also accepting digit strings from form-style clients."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        rating = value
    elif isinstance(value, str) and value.strip().isdigit():
        rating = int(value.strip())
    else:
        return None
    if MIN_RATING <= rating <= MAX_RATING:
        return rating
    return None


def validate_role(role: str | None, field: str = "role") -> FieldErrors:
    if role not in VALID_ROLES:
        return [_err(field, f"Role must be either {', '.join(VALID_ROLES[:-1])}, or {VALID_ROLES[-1]}")]
    return []


@dataclass(frozen=True)
class RegisterPayload:
    username: str
    password: str
    role: str

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> tuple["RegisterPayload", FieldErrors]:
        payload = cls(
            username=_text(data, "username"),
            password=str(data.get("password") or ""),
            role=_text(data, "role"),
        )
        errors: FieldErrors = []
        if not payload.username:
            errors.append(_err("username", "Username is required"))
        if len(payload.password) < MIN_PASSWORD_LENGTH:
            errors.append(_err("password", f"Please enter a password with {MIN_PASSWORD_LENGTH} or more characters"))
        errors.extend(validate_role(payload.role))
        return payload, errors


@dataclass(frozen=True)
class LoginPayload:
    username: str
    password: str

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> tuple["LoginPayload", FieldErrors]:
        payload = cls(username=_text(data, "username"), password=str(data.get("password") or ""))
        errors: FieldErrors = []
        if not payload.username:
            errors.append(_err("username", "Username is required"))
        if not payload.password:
            errors.append(_err("password", "Password is required"))
        return payload, errors


@dataclass(frozen=True)
class CoursePayload:
    title: str
    description: str

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> tuple["CoursePayload", FieldErrors]:
        payload = cls(title=_text(data, "title"), description=_text(data, "description"))
        errors: FieldErrors = []
        if not payload.title:
            errors.append(_err("title", "Title is required"))
        if not payload.description:
            errors.append(_err("description", "Description is required"))
        return payload, errors


@dataclass(frozen=True)
class ReviewPayload:
    rating: int | None
    comment: str

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> tuple["ReviewPayload", FieldErrors]:
        payload = cls(rating=parse_rating(data.get("rating")), comment=_text(data, "comment"))
        errors: FieldErrors = []
        if payload.rating is None:
            errors.append(_err("rating", f"Rating must be between {MIN_RATING} and {MAX_RATING}"))
        if not payload.comment:
            errors.append(_err("comment", "Comment is required"))
        return payload, errors


@dataclass(frozen=True)
class ReplyPayload:
    reply: str

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> tuple["ReplyPayload", FieldErrors]:
        payload = cls(reply=_text(data, "reply"))
        errors: FieldErrors = []
        if not payload.reply:
            errors.append(_err("reply", "Reply is required"))
        return payload, errors


# ---------- Responses ----------


def _iso(value) -> str | None:
    return value.isoformat() if value is not None else None


def user_to_dict(user: "User") -> dict[str, Any]:
    # Never include password_hash.
    return {
        "id": user.id,
        "username": user.username,
        "role": user.role,
        "created_at": _iso(user.created_at),
    }


def review_to_dict(review: "Review", names: dict[int, str] | None = None) -> dict[str, Any]:
    out: dict[str, Any] = {
        "id": review.id,
        "student_id": review.student_id,
        "rating": review.rating,
        "comment": review.comment,
        "reply": review.reply,
        "replied_at": _iso(review.replied_at),
        "created_at": _iso(review.created_at),
    }
    if names is not None:
        out["student_username"] = names.get(review.student_id)
    return out


def course_to_dict(course: "Course", names: dict[int, str] | None = None) -> dict[str, Any]:
    """
    names maps user id -> username; when given, professor and reviewer ids are
    resolved. Dangling ids (deleted users) resolve to None.
    """
    out: dict[str, Any] = {
        "id": course.id,
        "title": course.title,
        "description": course.description,
        "professor_id": course.professor_id,
        "average_rating": course.average_rating,
        "review_count": len(course.reviews),
        "reviews": [review_to_dict(r, names) for r in course.reviews],
        "created_at": _iso(course.created_at),
    }
    if names is not None:
        out["professor_username"] = names.get(course.professor_id)
    return out
