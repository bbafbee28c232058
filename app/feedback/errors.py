"""
Typed application errors and their JSON rendering.

Every error body is {"message": ...}; validation failures add
{"errors": [{"field": ..., "message": ...}]}.
"""
from __future__ import annotations

from typing import Any

from flask import Flask, g, jsonify
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError
from werkzeug.exceptions import HTTPException


class AppError(Exception):
    status_code: int = 500
    default_message: str = "Server error"

    def __init__(self, message: str | None = None, status_code: int | None = None):
        self.message = message or self.default_message
        if status_code:
            self.status_code = status_code
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        return {"message": self.message}


class ValidationError(AppError):
    status_code = 400
    default_message = "Validation failed"

    def __init__(self, errors: list[dict[str, str]] | None = None, message: str | None = None):
        self.errors = errors or []
        if message is None and len(self.errors) == 1:
            message = self.errors[0]["message"]
        super().__init__(message)

    @classmethod
    def single(cls, field: str, message: str) -> "ValidationError":
        return cls([{"field": field, "message": message}])

    def to_dict(self) -> dict[str, Any]:
        return {"message": self.message, "errors": self.errors}


class Unauthenticated(AppError):
    status_code = 401
    default_message = "Authentication required"


class Forbidden(AppError):
    status_code = 403
    default_message = "You do not have permission to perform this action"


class NotFound(AppError):
    status_code = 404
    default_message = "Resource not found"


class Conflict(AppError):
    status_code = 400
    default_message = "User already exists"


class AlreadyReplied(AppError):
    status_code = 400
    default_message = "Review already has a reply"


class InvalidPattern(AppError):
    status_code = 400
    default_message = "Invalid search pattern"


class InvalidCredentials(AppError):
    status_code = 400
    default_message = "Invalid credentials."


class ConcurrentUpdate(AppError):
    status_code = 409
    default_message = "Resource was modified concurrently; reload and try again"


class RateLimited(AppError):
    status_code = 429
    default_message = "Too many login attempts. Please wait 5 minutes."


def _rollback_request_session() -> None:
    s = getattr(g, "db_session", None)
    if s is not None:
        s.rollback()


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(AppError)
    def _app_error(e: AppError):  # type: ignore[no-redef]
        _rollback_request_session()
        if e.status_code == 403:
            app.logger.warning(
                "Forbidden: %s missing_permission=%s request_id=%s",
                e.message,
                getattr(g, "missing_permission", None),
                getattr(g, "request_id", None),
            )
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(StaleDataError)
    @app.errorhandler(IntegrityError)
    def _concurrent(e: Exception):  # type: ignore[no-redef]
        _rollback_request_session()
        app.logger.warning("Concurrent write rejected (request_id=%s): %s", getattr(g, "request_id", None), e)
        err = ConcurrentUpdate()
        return jsonify(err.to_dict()), err.status_code

    @app.errorhandler(HTTPException)
    def _http_error(e: HTTPException):  # type: ignore[no-redef]
        return jsonify({"message": e.description or e.name}), e.code

    @app.errorhandler(Exception)
    def _unexpected(e: Exception):  # type: ignore[no-redef]
        _rollback_request_session()
        app.logger.exception("Unhandled 500 (request_id=%s)", getattr(g, "request_id", None))
        return jsonify({"message": "Server error"}), 500
