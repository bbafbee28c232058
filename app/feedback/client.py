"""
Python client for the course feedback API.

The client holds one current session token and attaches it to every call;
register()/login() set it and logout() clears it.
"""
from __future__ import annotations

import json
import urllib.error
import urllib.parse
import urllib.request
from dataclasses import dataclass, field
from typing import Any


class ApiError(RuntimeError):
    def __init__(self, status: int, message: str, errors: list[dict[str, str]] | None = None):
        self.status = status
        self.message = message
        self.errors = errors or []
        super().__init__(f"HTTP {status}: {message}")


@dataclass
class FeedbackClient:
    base_url: str
    token: str | None = None
    timeout_seconds: int = 30
    opener: Any = field(default=None, repr=False)

    def _open(self, req: urllib.request.Request):
        if self.opener is not None:
            return self.opener(req, timeout=self.timeout_seconds)
        return urllib.request.urlopen(req, timeout=self.timeout_seconds)

    def request_json(self, method: str, path: str, *, body: dict[str, Any] | None = None, auth: bool = True) -> Any:
        url = self.base_url.rstrip("/") + path
        data = json.dumps(body).encode("utf-8") if body is not None else None
        req = urllib.request.Request(url, data=data, method=method)
        req.add_header("Accept", "application/json")
        if data is not None:
            req.add_header("Content-Type", "application/json")
        if auth and self.token:
            req.add_header("Authorization", f"Bearer {self.token}")

        try:
            with self._open(req) as resp:
                raw = resp.read()
        except urllib.error.HTTPError as e:
            try:
                payload = json.loads(e.read().decode("utf-8") or "{}")
            except ValueError:
                payload = {}
            raise ApiError(e.code, payload.get("message") or e.reason, payload.get("errors")) from e

        if not raw:
            return None
        try:
            return json.loads(raw.decode("utf-8"))
        except ValueError as e:
            raise ApiError(0, f"Invalid JSON from API ({path})") from e

    # ---------- Session ----------

    def register(self, username: str, password: str, role: str) -> str:
        j = self.request_json("POST", "/user/register", body={"username": username, "password": password, "role": role}, auth=False)
        self.token = j["token"]
        return self.token

    def login(self, username: str, password: str) -> str:
        j = self.request_json("POST", "/user/login", body={"username": username, "password": password}, auth=False)
        self.token = j["token"]
        return self.token

    def logout(self) -> None:
        try:
            if self.token:
                self.request_json("GET", "/user/logout")
        finally:
            self.token = None

    # ---------- Users (admin) ----------

    def list_users(self) -> list[dict[str, Any]]:
        return self.request_json("GET", "/users")

    def change_role(self, user_id: int, role: str) -> dict[str, Any]:
        return self.request_json("PUT", f"/users/change/{urllib.parse.quote(role)}/{int(user_id)}")

    def delete_user(self, user_id: int) -> dict[str, Any]:
        return self.request_json("DELETE", f"/users/{int(user_id)}")

    # ---------- Courses ----------

    def list_courses(self) -> list[dict[str, Any]]:
        return self.request_json("GET", "/outlet")

    def list_courses_by_professor(self, professor_id: int) -> list[dict[str, Any]]:
        return self.request_json("GET", f"/outlet/{int(professor_id)}")

    def get_course(self, course_id: int) -> dict[str, Any]:
        return self.request_json("GET", f"/outlet/outletId/{int(course_id)}")

    def pending_reviews(self, course_id: int) -> list[dict[str, Any]]:
        return self.request_json("GET", f"/outlet/to_reply/{int(course_id)}")

    def search_courses(self, pattern: str) -> list[dict[str, Any]]:
        return self.request_json("GET", "/outlet/regex/" + urllib.parse.quote(pattern, safe=""))

    def create_course(self, title: str, description: str) -> dict[str, Any]:
        return self.request_json("POST", "/outlet", body={"title": title, "description": description})

    def submit_review(self, course_id: int, rating: int, comment: str) -> dict[str, Any]:
        return self.request_json("PUT", f"/outlet/review/{int(course_id)}", body={"rating": rating, "comment": comment})

    def reply_to_review(self, course_id: int, review_id: int, reply: str) -> dict[str, Any]:
        return self.request_json("PUT", f"/outlet/reply/{int(course_id)}/{int(review_id)}", body={"reply": reply})

    def delete_course(self, course_id: int) -> dict[str, Any]:
        return self.request_json("DELETE", f"/outlet/{int(course_id)}")

    def delete_review(self, course_id: int, review_id: int) -> dict[str, Any]:
        return self.request_json("DELETE", f"/outlet/review/{int(course_id)}/{int(review_id)}")
