"""Tests for the gcal-demo command line."""

import json
import time
from unittest.mock import patch
from urllib.parse import parse_qs, urlparse

import pytest

from gcal_demo.auth import AuthorizationAgent, load_token, persist_token
from gcal_demo.cli import main

CALENDAR_SCOPE = "https://www.googleapis.com/auth/calendar"


@pytest.fixture(autouse=True)
def isolated_env(tmp_path, monkeypatch):
    """Run each CLI test from an empty directory with no GCAL_DEMO_* overrides."""
    monkeypatch.chdir(tmp_path)
    for name in (
        "GCAL_DEMO_CREDENTIALS",
        "GCAL_DEMO_TOKEN",
        "GCAL_DEMO_HOST",
        "GCAL_DEMO_PORT",
        "GCAL_DEMO_TIME_ZONE",
        "GCAL_DEMO_CALENDAR",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def example_credentials(tmp_path):
    creds = {
        "installed": {
            "client_id": "c1",
            "client_secret": "s1",
            "auth_uri": "https://auth.example/authorize",
            "token_uri": "https://auth.example/token",
            "redirect_uris": ["http://localhost:8080"],
        }
    }
    path = tmp_path / "credentials.json"
    path.write_text(json.dumps(creds))
    return path


@pytest.fixture
def token_path(tmp_path):
    return tmp_path / "home" / ".credentials" / "calendar-token.json"


def base_args(credentials, token_path):
    return ["--credentials", str(credentials), "--token", str(token_path)]


class TestRunCommand:
    """Test the full workflow."""

    def test_end_to_end_first_run(
        self, example_credentials, token_path, fake_service, browser_get, capsys
    ):
        """No cache: authorize via callback, persist, then run the event lifecycle."""
        callback_status = []

        def open_url(url):
            query = parse_qs(urlparse(url).query)
            resp = browser_get(query["redirect_uri"][0], state=query["state"][0], code="ABC123")
            callback_status.append(resp.status_code)
            return True

        token = {
            "access_token": "ya29.example",
            "refresh_token": "1//refresh",
            "token_type": "Bearer",
            "expires_at": int(time.time()) + 3600,
            "scope": CALENDAR_SCOPE,
        }

        with (
            patch("gcal_demo.auth.oauth.webbrowser.open", side_effect=open_url),
            patch("gcal_demo.auth.oauth.OAuth2Session.fetch_token", return_value=token) as fetch,
            patch.object(AuthorizationAgent, "build_service", return_value=fake_service),
        ):
            rc = main(
                base_args(example_credentials, token_path)
                + ["run", "--host", "127.0.0.1", "--port", "0"]
            )

        assert rc == 0
        assert callback_status == [200]
        assert fetch.call_args.args[0] == "https://auth.example/token"
        assert fetch.call_args.kwargs["code"] == "ABC123"
        assert load_token(token_path).access_token == "ya29.example"

        out = capsys.readouterr().out
        assert "https://auth.example/authorize?" in out
        assert "state=" in out
        assert f"Token saved to {token_path}" in out
        assert "Event created:" in out
        assert "Event updated:" in out
        assert "Event deleted successfully." in out

        assert fake_service.methods() == ["insert", "get", "update", "get", "delete"]
        created = fake_service.calls[0][3]
        assert created["summary"] == "Test Event"
        assert created["location"] == "Online"
        assert created["start"]["timeZone"] == "Asia/Kolkata"
        updated = fake_service.calls[2][3]
        assert updated["summary"] == "Updated Test Event"
        assert updated["location"] == "Updated Location"
        assert updated["description"] == "Updated Description"
        assert fake_service.store == {}

    def test_default_command_uses_cache(
        self, example_credentials, token_path, valid_token, fake_service, capsys
    ):
        """With a cached token no authorization URL is printed."""
        persist_token(token_path, valid_token)

        with patch.object(AuthorizationAgent, "build_service", return_value=fake_service):
            rc = main(base_args(example_credentials, token_path))

        assert rc == 0
        out = capsys.readouterr().out
        assert "Open the following URL" not in out
        assert "Event deleted successfully." in out

    def test_skip_get(self, example_credentials, token_path, valid_token, fake_service):
        persist_token(token_path, valid_token)

        with patch.object(AuthorizationAgent, "build_service", return_value=fake_service):
            rc = main(base_args(example_credentials, token_path) + ["run", "--skip-get"])

        assert rc == 0
        assert fake_service.methods() == ["insert", "get", "update", "delete"]

    def test_remote_failure_exits_nonzero(
        self, example_credentials, token_path, valid_token, fake_service, http_error, capsys
    ):
        persist_token(token_path, valid_token)
        fake_service.failures["delete"] = http_error(500, "Backend Error")

        with patch.object(AuthorizationAgent, "build_service", return_value=fake_service):
            rc = main(base_args(example_credentials, token_path))

        assert rc == 1
        assert "Error: Unable to delete event (HTTP 500)" in capsys.readouterr().err

    def test_state_mismatch_exits_nonzero(
        self, example_credentials, token_path, browser_get, capsys
    ):
        def forged(url):
            query = parse_qs(urlparse(url).query)
            browser_get(query["redirect_uri"][0], state="forged", code="ABC123")
            return True

        with (
            patch("gcal_demo.auth.oauth.webbrowser.open", side_effect=forged),
            patch("gcal_demo.auth.oauth.OAuth2Session.fetch_token") as fetch,
        ):
            rc = main(
                base_args(example_credentials, token_path)
                + ["run", "--host", "127.0.0.1", "--port", "0"]
            )

        assert rc == 1
        fetch.assert_not_called()
        assert not token_path.exists()
        assert "State does not match" in capsys.readouterr().err

    def test_missing_credentials(self, tmp_path, token_path, capsys):
        rc = main(base_args(tmp_path / "missing.json", token_path))

        assert rc == 1
        assert "Error: Credentials file not found" in capsys.readouterr().err


class TestTokenCommands:
    """Test login, status and revoke."""

    def test_status_without_token(self, example_credentials, token_path, capsys):
        rc = main(base_args(example_credentials, token_path) + ["status"])

        assert rc == 1
        assert "not authorized" in capsys.readouterr().out

    def test_status_with_token(self, example_credentials, token_path, valid_token, capsys):
        persist_token(token_path, valid_token)

        rc = main(base_args(example_credentials, token_path) + ["status"])

        out = capsys.readouterr().out
        assert rc == 0
        assert "valid" in out
        assert CALENDAR_SCOPE in out

    def test_login_manual(self, example_credentials, token_path, capsys):
        token = {
            "access_token": "ya29.manual",
            "token_type": "Bearer",
            "expires_at": int(time.time()) + 3600,
            "scope": CALENDAR_SCOPE,
        }
        with (
            patch("builtins.input", return_value="ABC123"),
            patch("gcal_demo.auth.oauth.OAuth2Session.fetch_token", return_value=token),
        ):
            rc = main(
                base_args(example_credentials, token_path) + ["login", "--manual", "--no-browser"]
            )

        assert rc == 0
        assert load_token(token_path).access_token == "ya29.manual"
        assert "Authorized." in capsys.readouterr().out

    def test_revoke(self, example_credentials, token_path, valid_token):
        persist_token(token_path, valid_token)

        with patch("gcal_demo.auth.oauth.requests.post") as post:
            rc = main(base_args(example_credentials, token_path) + ["revoke"])

        assert rc == 0
        post.assert_called_once()
        assert not token_path.exists()

    def test_port_from_env(self, example_credentials, token_path, monkeypatch):
        """GCAL_DEMO_PORT overrides the port from the redirect URI."""
        monkeypatch.setenv("GCAL_DEMO_PORT", "9123")
        seen = {}

        def fake_obtain(self, manual=False, timeout=None):
            seen["port"] = self.port
            raise KeyboardInterrupt

        with patch.object(AuthorizationAgent, "obtain_token", fake_obtain):
            rc = main(base_args(example_credentials, token_path))

        assert rc == 130
        assert seen["port"] == 9123
