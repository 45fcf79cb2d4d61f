"""Runtime configuration for gcal-demo.

Two sources of configuration are combined here:

    credentials.json                  - OAuth client configuration downloaded
                                        from Google Cloud Console
    ~/.credentials/calendar-token.json - cached OAuth token

Paths, the callback port and the demo time zone can be overridden through
environment variables (optionally loaded from a ``.env`` file in the
working directory):

    GCAL_DEMO_CREDENTIALS, GCAL_DEMO_TOKEN, GCAL_DEMO_HOST,
    GCAL_DEMO_PORT, GCAL_DEMO_TIME_ZONE, GCAL_DEMO_CALENDAR
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import urlparse

from gcal_demo.exceptions import ConfigurationError, CredentialsNotFoundError

logger = logging.getLogger(__name__)

# Credential file paths
ENV_FILE = Path(".env")
DEFAULT_CREDENTIALS = Path("credentials.json")
CREDENTIALS_DIR = Path.home() / ".credentials"
DEFAULT_TOKEN = CREDENTIALS_DIR / "calendar-token.json"

DEFAULT_HOST = "localhost"
DEFAULT_PORT = 8080
DEFAULT_TIME_ZONE = "Asia/Kolkata"
DEFAULT_CALENDAR = "primary"

GOOGLE_AUTH_URI = "https://accounts.google.com/o/oauth2/auth"
GOOGLE_TOKEN_URI = "https://oauth2.googleapis.com/token"

# Common Google Calendar OAuth scopes
SCOPES = {
    "calendar": "https://www.googleapis.com/auth/calendar",
    "calendar_readonly": "https://www.googleapis.com/auth/calendar.readonly",
    "calendar_events": "https://www.googleapis.com/auth/calendar.events",
}

LOOPBACK_HOSTS = {"localhost", "127.0.0.1", "::1"}


@dataclass(frozen=True)
class ClientConfiguration:
    """OAuth client configuration, loaded once per process."""

    client_id: str
    client_secret: str
    auth_uri: str = GOOGLE_AUTH_URI
    token_uri: str = GOOGLE_TOKEN_URI
    redirect_uris: tuple[str, ...] = ()
    scopes: tuple[str, ...] = (SCOPES["calendar"],)

    @property
    def loopback_port(self) -> int | None:
        """Port of the first loopback redirect URI, if it names one."""
        for uri in self.redirect_uris:
            parsed = urlparse(uri)
            if parsed.hostname in LOOPBACK_HOSTS and parsed.port:
                return parsed.port
        return None


def resolve_scopes(scopes: list[str]) -> list[str]:
    """Resolve scope names to full URLs."""
    resolved = []
    for scope in scopes:
        if scope.startswith("https://"):
            resolved.append(scope)
        elif scope in SCOPES:
            resolved.append(SCOPES[scope])
        else:
            raise ValueError(
                f"Unknown scope: {scope}. Use full URL or one of: {list(SCOPES.keys())}"
            )
    return resolved


def load_client_config(
    path: str | Path = DEFAULT_CREDENTIALS,
    scopes: list[str] | None = None,
) -> ClientConfiguration:
    """Load OAuth client configuration from a client-secret file.

    Args:
        path: Path to credentials.json as downloaded from Google Cloud Console.
        scopes: Scope names or full URLs. Defaults to ["calendar"].

    Returns:
        Immutable ClientConfiguration.

    Raises:
        CredentialsNotFoundError: If the file does not exist.
        ConfigurationError: If the file cannot be read or parsed.
    """
    path = Path(path)
    if not path.exists():
        raise CredentialsNotFoundError(str(path))

    try:
        with open(path) as f:
            creds = json.load(f)
    except (OSError, ValueError) as e:
        raise ConfigurationError(f"Unable to read client secret file {path}: {e}") from e

    if not isinstance(creds, dict):
        raise ConfigurationError(f"Invalid client secret file {path}: expected a JSON object")

    # Handle both web and installed app credential formats
    if "installed" in creds:
        app_creds = creds["installed"]
    elif "web" in creds:
        app_creds = creds["web"]
    else:
        raise ConfigurationError(
            "Invalid credentials.json format. Expected 'installed' or 'web' key."
        )

    try:
        client_id = app_creds["client_id"]
        client_secret = app_creds["client_secret"]
    except (KeyError, TypeError) as e:
        raise ConfigurationError(f"Unable to parse client secret file to config: missing {e}") from e

    try:
        resolved = resolve_scopes(scopes or ["calendar"])
    except ValueError as e:
        raise ConfigurationError(str(e)) from e

    return ClientConfiguration(
        client_id=client_id,
        client_secret=client_secret,
        auth_uri=app_creds.get("auth_uri") or GOOGLE_AUTH_URI,
        token_uri=app_creds.get("token_uri") or GOOGLE_TOKEN_URI,
        redirect_uris=tuple(app_creds.get("redirect_uris", [])),
        scopes=tuple(resolved),
    )


def load_env_file(env_path: Path = ENV_FILE) -> dict[str, str]:
    """Load environment variables from a file.

    Args:
        env_path: Path to .env file.

    Returns:
        Dictionary of loaded variables.
    """
    loaded: dict[str, str] = {}
    if not env_path.exists():
        return loaded

    with open(env_path) as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            if "=" not in line:
                continue

            key, _, value = line.partition("=")
            key = key.strip()
            value = value.strip()

            # Remove surrounding quotes
            if (value.startswith('"') and value.endswith('"')) or (
                value.startswith("'") and value.endswith("'")
            ):
                value = value[1:-1]

            # Only set if not already in environment (env vars take precedence)
            if key and key not in os.environ:
                os.environ[key] = value
                loaded[key] = value

    if loaded:
        logger.info(f"Loaded {len(loaded)} variable(s) from {env_path}")
    return loaded


@dataclass
class Settings:
    """Per-run settings. Port is None until resolved against the client config."""

    credentials_path: Path = DEFAULT_CREDENTIALS
    token_path: Path = DEFAULT_TOKEN
    host: str = DEFAULT_HOST
    port: int | None = None
    time_zone: str = DEFAULT_TIME_ZONE
    calendar_id: str = DEFAULT_CALENDAR
    scopes: list[str] = field(default_factory=lambda: ["calendar"])

    @classmethod
    def from_env(cls) -> Settings:
        """Build settings from GCAL_DEMO_* environment variables."""
        port = os.environ.get("GCAL_DEMO_PORT")
        try:
            port_value = int(port) if port else None
        except ValueError as e:
            raise ConfigurationError(f"GCAL_DEMO_PORT must be an integer, got {port!r}") from e

        return cls(
            credentials_path=Path(os.environ.get("GCAL_DEMO_CREDENTIALS", DEFAULT_CREDENTIALS)),
            token_path=Path(os.environ.get("GCAL_DEMO_TOKEN", DEFAULT_TOKEN)).expanduser(),
            host=os.environ.get("GCAL_DEMO_HOST", DEFAULT_HOST),
            port=port_value,
            time_zone=os.environ.get("GCAL_DEMO_TIME_ZONE", DEFAULT_TIME_ZONE),
            calendar_id=os.environ.get("GCAL_DEMO_CALENDAR", DEFAULT_CALENDAR),
        )

    def resolve_port(self, config: ClientConfiguration) -> int:
        """Explicit port, else the config's loopback redirect port, else 8080."""
        if self.port is not None:
            return self.port
        return config.loopback_port or DEFAULT_PORT
