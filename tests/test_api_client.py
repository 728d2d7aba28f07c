import asyncio
import json

import pytest
import requests

from tracker_client.api import ApiClient, ApiError, error_message
from tracker_client.config import build_client, make_cache


def make_response(status, body=b"", content_type=None, reason="OK"):
    resp = requests.Response()
    resp.status_code = status
    resp._content = body
    resp.reason = reason
    resp.encoding = "utf-8"
    if content_type:
        resp.headers["content-type"] = content_type
    return resp


def json_response(status, payload, reason="OK"):
    return make_response(status, json.dumps(payload).encode(), "application/json", reason)


class FakeSession:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    def request(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        if self.error is not None:
            raise self.error
        return self.response


# --- error_message ---
def test_html_error_page():
    resp = make_response(502, b"<!DOCTYPE html><html>Bad gateway</html>", "text/html", "Bad Gateway")
    assert error_message(resp) == "Server error (502). Please check the server logs."


def test_json_message_field():
    resp = json_response(400, {"message": "Validation error", "errors": []}, "Bad Request")
    assert error_message(resp) == "Validation error"


def test_json_error_field():
    assert error_message(json_response(401, {"error": "Not signed in"}, "Unauthorized")) == "Not signed in"


def test_json_without_message_uses_reason():
    assert error_message(json_response(409, {"detail": "x"}, "Conflict")) == "Conflict"


def test_plain_text_body():
    assert error_message(make_response(503, b"maintenance", "text/plain", "Service Unavailable")) == "maintenance"


def test_empty_body_uses_reason():
    assert error_message(make_response(503, b"", None, "Service Unavailable")) == "Service Unavailable"


# --- ApiClient ---
def test_request_sends_json_and_parses_reply():
    session = FakeSession(json_response(200, {"id": "srv-1"}))
    api = ApiClient("http://api.test/", session=session, timeout=3)
    assert api.request_sync("POST", "/api/organizations/o1/students", {"name": "Ada"}) == {"id": "srv-1"}
    assert session.calls == [
        ("POST", "http://api.test/api/organizations/o1/students", {"timeout": 3, "json": {"name": "Ada"}}),
    ]


def test_request_without_body_sends_no_json():
    session = FakeSession(make_response(204))
    assert ApiClient("http://api.test", session=session).request_sync("DELETE", "/x") is None
    assert "json" not in session.calls[0][2]


def test_non_2xx_raises_api_error():
    session = FakeSession(json_response(404, {"message": "Student with id s9 not found"}, "Not Found"))
    with pytest.raises(ApiError) as exc:
        ApiClient("http://api.test", session=session).request_sync("GET", "/x")
    assert exc.value.status == 404
    assert exc.value.message == "Student with id s9 not found"


def test_unparsable_body_raises_api_error():
    session = FakeSession(make_response(200, b"not json", "text/plain"))
    with pytest.raises(ApiError) as exc:
        ApiClient("http://api.test", session=session).request_sync("GET", "/x")
    assert exc.value.message == "Could not parse server response"


def test_network_failure_raises_api_error():
    session = FakeSession(error=requests.ConnectionError("connection refused"))
    with pytest.raises(ApiError) as exc:
        ApiClient("http://api.test", session=session).request_sync("GET", "/x")
    assert exc.value.status == 0
    assert exc.value.message.startswith("Network error:")


def test_async_request_runs_off_loop():
    session = FakeSession(json_response(200, [{"id": "a"}]))
    api = ApiClient("http://api.test", session=session)
    assert asyncio.run(api.request("GET", "/x")) == [{"id": "a"}]


def test_fetch_joins_query_key():
    session = FakeSession(json_response(200, []))
    api = ApiClient("http://api.test", session=session)
    asyncio.run(api.fetch(("/api/organizations", "o1", "students", "s1", "behavior-logs")))
    assert session.calls[0][1] == "http://api.test/api/organizations/o1/students/s1/behavior-logs"


def test_fetch_unauthorized_behavior():
    session = FakeSession(json_response(401, {"message": "Unauthorized"}, "Unauthorized"))
    api = ApiClient("http://api.test", session=session)
    assert asyncio.run(api.fetch(("/api/me",), on401="return_none")) is None
    with pytest.raises(ApiError):
        asyncio.run(api.fetch(("/api/me",)))


def test_config_wires_cache_to_client():
    api = build_client("http://api.test")
    assert api.base_url == "http://api.test"
    cache = make_cache(api)
    assert cache.fetcher == api.fetch
    assert cache.gc_ttl_s == 600
    assert make_cache().fetcher is None
