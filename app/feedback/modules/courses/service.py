from __future__ import annotations

import time
from datetime import datetime
from typing import TYPE_CHECKING

import regex
from sqlalchemy import select

from app.feedback.audit import record_event
from app.feedback.errors import AlreadyReplied, InvalidPattern, NotFound, ValidationError
from app.feedback.models import User
from app.feedback.modules.courses.models import Course, Review
from app.feedback.schemas import MAX_RATING, MIN_RATING, parse_rating

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.feedback.rbac import Principal


MAX_PATTERN_LENGTH = 200
SEARCH_TIMEOUT_SECONDS = 0.5

POLICY_DISCARD_REPLY = "discard_reply"
POLICY_PRESERVE_REPLY = "preserve_reply"
POLICY_REJECT = "reject"


def recompute_average_rating(course: Course) -> float:
    """Full recompute from the current review collection; 0.0 when empty."""
    ratings = [r.rating for r in course.reviews]
    course.average_rating = (sum(ratings) / len(ratings)) if ratings else 0.0
    return course.average_rating


def _touch(course: Course) -> None:
    # Always dirty the course row so the version_id check runs on flush.
    course.updated_at = datetime.utcnow()


def _require_text(field: str, value: str | None, message: str) -> str:
    value = (value or "").strip()
    if not value:
        raise ValidationError.single(field, message)
    return value


def _load_course(s: "Session", course_id: int) -> Course:
    course = s.get(Course, course_id)
    if course is None:
        raise NotFound("Course not found")
    return course


def _load_owned_course(s: "Session", course_id: int, professor_id: int) -> Course:
    # Not-owned reads as not found.
    course = s.get(Course, course_id)
    if course is None or course.professor_id != professor_id:
        raise NotFound("Course not found")
    return course


def _find_review(course: Course, review_id: int) -> Review:
    for review in course.reviews:
        if review.id == review_id:
            return review
    raise NotFound("Review not found")


# ---------- Reads ----------


def list_courses(s: "Session") -> list[Course]:
    return list(s.scalars(select(Course).order_by(Course.average_rating.desc(), Course.id.asc())))


def list_courses_by_professor(s: "Session", professor_id: int) -> list[Course]:
    return list(s.scalars(select(Course).where(Course.professor_id == professor_id)))


def get_course(s: "Session", course_id: int) -> Course:
    return _load_course(s, course_id)


def compile_search_pattern(pattern: str | None) -> regex.Pattern:
    pattern = (pattern or "").strip()
    if not pattern:
        raise InvalidPattern("Search pattern is required")
    if len(pattern) > MAX_PATTERN_LENGTH:
        raise InvalidPattern(f"Search pattern must be at most {MAX_PATTERN_LENGTH} characters")
    try:
        return regex.compile(pattern, regex.IGNORECASE)
    except regex.error as e:
        raise InvalidPattern(f"Invalid search pattern: {e}") from e


def search_courses(s: "Session", pattern: str, *, timeout: float = SEARCH_TIMEOUT_SECONDS) -> list[Course]:
    """
    Unanchored, case-insensitive match against title or description.

    timeout bounds the whole scan, not each field; running out of time is
    reported as InvalidPattern.
    """
    rx = compile_search_pattern(pattern)
    deadline = time.monotonic() + timeout

    def matches(text: str) -> bool:
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise InvalidPattern("Search pattern is too expensive")
        try:
            return rx.search(text, timeout=remaining) is not None
        except TimeoutError as e:
            raise InvalidPattern("Search pattern is too expensive") from e

    return [c for c in s.scalars(select(Course).order_by(Course.id.asc())) if matches(c.title) or matches(c.description)]


def resolve_usernames(s: "Session", courses: list[Course]) -> dict[int, str]:
    ids: set[int] = set()
    for c in courses:
        ids.add(c.professor_id)
        ids.update(r.student_id for r in c.reviews)
    if not ids:
        return {}
    rows = s.execute(select(User.id, User.username).where(User.id.in_(ids))).all()
    return {uid: name for uid, name in rows}


def list_pending_reviews(s: "Session", course_id: int, professor_id: int) -> list[Review]:
    course = _load_owned_course(s, course_id, professor_id)
    return [r for r in course.reviews if not r.reply]


# ---------- Writes ----------


def create_course(s: "Session", professor_id: int, title: str, description: str, *, actor: "Principal | None" = None) -> Course:
    errors = []
    if not (title or "").strip():
        errors.append({"field": "title", "message": "Title is required"})
    if not (description or "").strip():
        errors.append({"field": "description", "message": "Description is required"})
    if errors:
        raise ValidationError(errors)

    now = datetime.utcnow()
    course = Course(
        title=title.strip(),
        description=description.strip(),
        professor_id=professor_id,
        average_rating=0.0,
        created_at=now,
        updated_at=now,
    )
    s.add(course)
    s.flush()

    record_event(
        s,
        actor=actor,
        action="course.create",
        entity_type="Course",
        entity_id=str(course.id),
        metadata={"title": course.title, "professor_id": professor_id},
    )
    return course


def submit_or_replace_review(
    s: "Session",
    course_id: int,
    student_id: int,
    rating: int,
    comment: str,
    *,
    policy: str = POLICY_DISCARD_REPLY,
    actor: "Principal | None" = None,
) -> Course:
    """
    One review per (course, student): an existing review is replaced in place,
    otherwise a new one is appended. What happens to an existing reply on
    replacement is governed by policy.
    """
    parsed = parse_rating(rating)
    if parsed is None:
        raise ValidationError.single("rating", f"Rating must be between {MIN_RATING} and {MAX_RATING}")
    comment = _require_text("comment", comment, "Comment is required")

    course = _load_course(s, course_id)
    now = datetime.utcnow()

    existing = next((r for r in course.reviews if r.student_id == student_id), None)
    if existing is not None:
        if existing.reply and policy == POLICY_REJECT:
            raise AlreadyReplied("Review already has a reply and can no longer be replaced")
        before = {"rating": existing.rating, "had_reply": existing.reply is not None}
        existing.rating = parsed
        existing.comment = comment
        existing.created_at = now
        if policy == POLICY_DISCARD_REPLY:
            existing.reply = None
            existing.replied_at = None
        review = existing
        action = "review.replace"
    else:
        review = Review(student_id=student_id, rating=parsed, comment=comment, created_at=now)
        course.reviews.append(review)
        before = None
        action = "review.submit"

    recompute_average_rating(course)
    _touch(course)
    s.flush()

    record_event(
        s,
        actor=actor,
        action=action,
        entity_type="Review",
        entity_id=str(review.id),
        metadata={"course_id": course.id, "rating": parsed, "before": before, "policy": policy},
    )
    return course


def reply_to_review(
    s: "Session",
    course_id: int,
    review_id: int,
    professor_id: int,
    reply_text: str,
    *,
    actor: "Principal | None" = None,
) -> Course:
    reply_text = _require_text("reply", reply_text, "Reply is required")
    course = _load_owned_course(s, course_id, professor_id)
    review = _find_review(course, review_id)
    if review.reply:
        raise AlreadyReplied()

    review.reply = reply_text
    review.replied_at = datetime.utcnow()
    _touch(course)
    s.flush()

    record_event(
        s,
        actor=actor,
        action="review.reply",
        entity_type="Review",
        entity_id=str(review.id),
        metadata={"course_id": course.id},
    )
    return course


def delete_course(s: "Session", course: Course, *, actor: "Principal | None" = None) -> None:
    """Course and its reviews go in the caller's transaction."""
    record_event(
        s,
        actor=actor,
        action="course.delete",
        entity_type="Course",
        entity_id=str(course.id),
        metadata={"title": course.title, "professor_id": course.professor_id, "review_count": len(course.reviews)},
    )
    s.delete(course)
    s.flush()


def delete_review(s: "Session", course_id: int, review_id: int, *, actor: "Principal | None" = None) -> Course:
    course = _load_course(s, course_id)
    review = _find_review(course, review_id)

    course.reviews.remove(review)
    recompute_average_rating(course)
    _touch(course)
    s.flush()

    record_event(
        s,
        actor=actor,
        action="review.delete",
        entity_type="Review",
        entity_id=str(review_id),
        metadata={"course_id": course.id, "student_id": review.student_id, "rating": review.rating},
    )
    return course


def purge_user_content(s: "Session", user_id: int) -> dict[str, int]:
    """
    Cascade for deleted users: drop their courses, drop their reviews elsewhere
    and recompute the affected averages.
    """
    owned = list_courses_by_professor(s, user_id)
    for course in owned:
        s.delete(course)

    touched = 0
    authored = list(s.scalars(select(Review).where(Review.student_id == user_id)))
    for review in authored:
        course = review.course
        if course in owned:
            continue
        course.reviews.remove(review)
        recompute_average_rating(course)
        _touch(course)
        touched += 1
    s.flush()
    return {"courses_deleted": len(owned), "reviews_deleted": touched}
