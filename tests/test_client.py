import io
import urllib.error
from urllib.parse import urlsplit

import pytest

from app.feedback.client import ApiError, FeedbackClient


class _Resp(io.BytesIO):
    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()


def _flask_opener(test_client):
    """Routes urllib Requests into the Flask test client."""

    def opener(req, timeout=None):
        path = urlsplit(req.full_url).path
        r = test_client.open(path, method=req.get_method(), data=req.data, headers=dict(req.header_items()))
        if r.status_code >= 400:
            raise urllib.error.HTTPError(req.full_url, r.status_code, r.status, {}, io.BytesIO(r.data))
        return _Resp(r.data)

    return opener


@pytest.fixture()
def api(client):
    return FeedbackClient("http://testserver", opener=_flask_opener(client))


def test_client_holds_and_passes_session_token(api):
    prof = FeedbackClient(api.base_url, opener=api.opener)
    prof.register("prof", "prof-pw", "professor")
    course = prof.create_course("Compilers", "Parsing")

    api.register("stu", "stu-pw", "student")
    assert api.token
    updated = api.submit_review(course["id"], 4, "solid")
    assert updated["average_rating"] == 4.0

    assert [c["title"] for c in api.search_courses("comp")] == ["Compilers"]
    assert api.get_course(course["id"])["professor_username"] == "prof"

    pending = prof.pending_reviews(course["id"])
    replied = prof.reply_to_review(course["id"], pending[0]["id"], "Thanks")
    assert replied["reviews"][0]["reply"] == "Thanks"

    api.logout()
    assert api.token is None
    with pytest.raises(ApiError) as exc:
        api.list_courses()
    assert exc.value.status == 401


def test_client_surfaces_field_errors(api):
    with pytest.raises(ApiError) as exc:
        api.register("", "x", "dean")
    assert exc.value.status == 400
    assert {e["field"] for e in exc.value.errors} == {"username", "password", "role"}


def test_client_search_quotes_pattern(api):
    api.register("stu", "stu-pw", "student")
    with pytest.raises(ApiError) as exc:
        api.search_courses("(")
    assert exc.value.status == 400
