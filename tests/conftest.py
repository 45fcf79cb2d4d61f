"""Shared fixtures: client configuration files and an in-memory Calendar service."""

import copy
import json
import threading
import time
from http.server import BaseHTTPRequestHandler, HTTPServer
from urllib.parse import parse_qs

import httplib2
import pytest
import requests
from googleapiclient.errors import HttpError

from gcal_demo.auth.token_store import Token
from gcal_demo.config import ClientConfiguration

CALENDAR_SCOPE = "https://www.googleapis.com/auth/calendar"


def make_http_error(status: int, message: str) -> HttpError:
    resp = httplib2.Response({"status": status})
    content = json.dumps({"error": {"code": status, "message": message}}).encode()
    return HttpError(resp, content, uri="https://www.googleapis.com/calendar/v3/test")


class _Request:
    def __init__(self, func):
        self._func = func

    def execute(self):
        return self._func()


class _Events:
    def __init__(self, service):
        self._service = service

    def insert(self, calendarId, body):
        return self._service._request("insert", calendarId, None, body)

    def get(self, calendarId, eventId):
        return self._service._request("get", calendarId, eventId, None)

    def update(self, calendarId, eventId, body):
        return self._service._request("update", calendarId, eventId, body)

    def delete(self, calendarId, eventId):
        return self._service._request("delete", calendarId, eventId, None)


class FakeCalendarService:
    """Stores events in memory and echoes them back like the Calendar API."""

    def __init__(self):
        self.store: dict[str, dict] = {}
        self.calls: list[tuple[str, str, str | None, dict | None]] = []
        self.failures: dict[str, Exception] = {}
        self._next_id = 1

    def events(self):
        return _Events(self)

    def _request(self, method, calendar_id, event_id, body):
        body = copy.deepcopy(body)
        self.calls.append((method, calendar_id, event_id, body))
        return _Request(lambda: self._handle(method, event_id, body))

    def _handle(self, method, event_id, body):
        if method in self.failures:
            raise self.failures[method]

        if method == "insert":
            event_id = f"evt{self._next_id}"
            self._next_id += 1
            event = dict(body, id=event_id, status="confirmed")
            event["htmlLink"] = f"https://calendar.example/event?eid={event_id}"
            self.store[event_id] = event
            return copy.deepcopy(event)

        if event_id not in self.store:
            raise make_http_error(404, "Not Found")

        if method == "get":
            return copy.deepcopy(self.store[event_id])
        if method == "update":
            self.store[event_id] = dict(body, id=event_id)
            return copy.deepcopy(self.store[event_id])
        if method == "delete":
            del self.store[event_id]
            return ""
        raise AssertionError(f"unexpected method {method}")

    def methods(self):
        return [call[0] for call in self.calls]


@pytest.fixture
def fake_service():
    return FakeCalendarService()


@pytest.fixture
def client_config():
    return ClientConfiguration(
        client_id="test-client-id.apps.googleusercontent.com",
        client_secret="test-client-secret",
        auth_uri="https://accounts.google.com/o/oauth2/auth",
        token_uri="https://oauth2.googleapis.com/token",
        redirect_uris=("http://localhost",),
        scopes=(CALENDAR_SCOPE,),
    )


@pytest.fixture
def mock_credentials(tmp_path):
    """Create a mock credentials file."""
    creds = {
        "installed": {
            "client_id": "test-client-id.apps.googleusercontent.com",
            "client_secret": "test-client-secret",
            "auth_uri": "https://accounts.google.com/o/oauth2/auth",
            "token_uri": "https://oauth2.googleapis.com/token",
            "redirect_uris": ["http://localhost"],
        }
    }
    creds_path = tmp_path / "credentials.json"
    with open(creds_path, "w") as f:
        json.dump(creds, f)
    return creds_path


@pytest.fixture
def valid_token():
    return Token(
        access_token="test-access-token",
        refresh_token="test-refresh-token",
        expires_at=float(int(time.time()) + 3600),
        scopes=[CALENDAR_SCOPE],
    )


@pytest.fixture
def expired_token():
    return Token(
        access_token="old-access-token",
        refresh_token="test-refresh-token",
        expires_at=float(int(time.time()) - 3600),
        scopes=[CALENDAR_SCOPE],
    )


@pytest.fixture
def browser_get():
    """GET against the loopback listener, ignoring proxy environment variables."""

    def get(url, **params):
        with requests.Session() as session:
            session.trust_env = False
            return session.get(url, params=params, timeout=5)

    return get


@pytest.fixture
def http_error():
    """Factory for googleapiclient HttpError instances."""
    return make_http_error


class TokenEndpoint:
    """Loopback token endpoint that records each form body it receives."""

    def __init__(self):
        self.requests: list[dict[str, list[str]]] = []
        self.response: dict = {
            "access_token": "AT",
            "refresh_token": "RT",
            "token_type": "Bearer",
            "expires_in": 3600,
        }
        endpoint = self

        class Handler(BaseHTTPRequestHandler):
            def do_POST(self):
                length = int(self.headers.get("Content-Length", 0))
                form = parse_qs(self.rfile.read(length).decode("utf-8"), keep_blank_values=True)
                endpoint.requests.append(form)
                body = json.dumps(endpoint.response).encode("utf-8")
                self.send_response(200)
                self.send_header("Content-Type", "application/json")
                self.send_header("Content-Length", str(len(body)))
                self.end_headers()
                self.wfile.write(body)

            def log_message(self, format, *args):
                pass

        self._httpd = HTTPServer(("127.0.0.1", 0), Handler)
        self.url = f"http://127.0.0.1:{self._httpd.server_address[1]}/token"
        self._thread = threading.Thread(target=self._httpd.serve_forever, daemon=True)
        self._thread.start()

    def close(self):
        self._httpd.shutdown()
        self._httpd.server_close()
        self._thread.join()


@pytest.fixture
def token_endpoint():
    endpoint = TokenEndpoint()
    yield endpoint
    endpoint.close()
