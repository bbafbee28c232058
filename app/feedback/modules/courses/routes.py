from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request
from sqlalchemy.exc import SQLAlchemyError

from app.feedback.db import db_session
from app.feedback.errors import Forbidden, ValidationError
from app.feedback.models import ROLE_PROFESSOR, ROLE_STUDENT
from app.feedback.modules.courses.service import (
    create_course,
    delete_course,
    delete_review,
    get_course,
    list_courses,
    list_courses_by_professor,
    list_pending_reviews,
    reply_to_review,
    resolve_usernames,
    search_courses,
    submit_or_replace_review,
)
from app.feedback.rbac import Action, can, current_principal, require_action, require_authenticated, require_role
from app.feedback.schemas import CoursePayload, ReplyPayload, ReviewPayload, course_to_dict, review_to_dict

bp = Blueprint("courses", __name__)


def _json_body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _courses_json(s, courses):
    names = resolve_usernames(s, courses)
    return jsonify([course_to_dict(c, names) for c in courses])


def _course_json(s, course):
    return jsonify(course_to_dict(course, resolve_usernames(s, [course])))


# ---------- List / Read ----------
@bp.get("")
@require_authenticated
def courses_list():
    s = db_session()
    return _courses_json(s, list_courses(s))


@bp.get("/<int:professor_id>")
@require_authenticated
def courses_by_professor(professor_id: int):
    s = db_session()
    return _courses_json(s, list_courses_by_professor(s, professor_id))


@bp.get("/outletId/<int:course_id>")
@require_authenticated
def course_detail(course_id: int):
    s = db_session()
    return _course_json(s, get_course(s, course_id))


@bp.get("/to_reply/<int:course_id>")
@require_role(ROLE_PROFESSOR)
def course_pending_reviews(course_id: int):
    s = db_session()
    principal = current_principal()
    try:
        pending = list_pending_reviews(s, course_id, principal.id)
    except SQLAlchemyError as e:
        # Read-only aggregation; degrade to empty rather than fail the page.
        current_app.logger.warning(
            "Pending reviews fetch failed (course_id=%s request_id=%s): %s", course_id, getattr(g, "request_id", None), e
        )
        s.rollback()
        pending = []
    return jsonify([review_to_dict(r) for r in pending])


@bp.get("/regex/<path:pattern>")
@require_authenticated
def courses_search(pattern: str):
    s = db_session()
    return _courses_json(s, search_courses(s, pattern, timeout=current_app.config["SEARCH_TIMEOUT_SECONDS"]))


# ---------- Create ----------
@bp.post("")
@require_role(ROLE_PROFESSOR)
def courses_create():
    payload, errors = CoursePayload.from_json(_json_body())
    if errors:
        raise ValidationError(errors)

    s = db_session()
    principal = current_principal()
    course = create_course(s, principal.id, payload.title, payload.description, actor=principal)
    s.commit()
    return _course_json(s, course), 201


# ---------- Reviews ----------
@bp.put("/review/<int:course_id>")
@require_role(ROLE_STUDENT)
def course_review(course_id: int):
    payload, errors = ReviewPayload.from_json(_json_body())
    if errors:
        raise ValidationError(errors)

    s = db_session()
    principal = current_principal()
    course = submit_or_replace_review(
        s,
        course_id,
        principal.id,
        payload.rating,
        payload.comment,
        policy=current_app.config["REVIEW_REPLACE_POLICY"],
        actor=principal,
    )
    s.commit()
    return _course_json(s, course)


@bp.put("/reply/<int:course_id>/<int:review_id>")
@require_role(ROLE_PROFESSOR)
def course_reply(course_id: int, review_id: int):
    payload, errors = ReplyPayload.from_json(_json_body())
    if errors:
        raise ValidationError(errors)

    s = db_session()
    principal = current_principal()
    course = reply_to_review(s, course_id, review_id, principal.id, payload.reply, actor=principal)
    s.commit()
    return _course_json(s, course)


# ---------- Delete ----------
@bp.delete("/<int:course_id>")
@require_authenticated
def courses_delete(course_id: int):
    s = db_session()
    principal = current_principal()
    # 404 before 403.
    course = get_course(s, course_id)
    if not can(principal, Action.COURSE_DELETE, owner_id=course.professor_id):
        raise Forbidden("Not authorized")
    delete_course(s, course, actor=principal)
    s.commit()
    return jsonify({"message": "Course deleted"})


@bp.delete("/review/<int:course_id>/<int:review_id>")
@require_action(Action.REVIEW_DELETE)
def course_review_delete(course_id: int, review_id: int):
    s = db_session()
    course = delete_review(s, course_id, review_id, actor=current_principal())
    s.commit()
    return _course_json(s, course)
