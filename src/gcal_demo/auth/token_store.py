"""OAuth token type and on-disk cache.

The cache file uses the Google authorized-user layout, so it can also be
read with ``google.oauth2.credentials.Credentials.from_authorized_user_file``.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from google.oauth2.credentials import Credentials as GoogleCredentials

from gcal_demo.config import ClientConfiguration
from gcal_demo.exceptions import PersistenceError

logger = logging.getLogger(__name__)


@dataclass
class Token:
    """Represents an OAuth access/refresh token pair."""

    access_token: str
    refresh_token: str | None = None
    expires_at: float | None = None
    token_type: str = "Bearer"
    scopes: list[str] = field(default_factory=list)

    def is_expired(self, leeway: float = 60) -> bool:
        """Check if the access token expires within ``leeway`` seconds."""
        if not self.expires_at:
            return False
        return self.expires_at - leeway < time.time()

    @classmethod
    def from_authlib(cls, token: dict[str, Any]) -> Token:
        """Build from an Authlib token dict."""
        expires_at = token.get("expires_at")
        return cls(
            access_token=token["access_token"],
            refresh_token=token.get("refresh_token"),
            expires_at=float(expires_at) if expires_at else None,
            token_type=token.get("token_type", "Bearer"),
            scopes=token.get("scope", "").split(),
        )

    def to_authlib(self) -> dict[str, Any]:
        """Convert to the dict layout Authlib sessions expect."""
        token: dict[str, Any] = {
            "access_token": self.access_token,
            "token_type": self.token_type,
            "scope": " ".join(self.scopes),
        }
        if self.refresh_token:
            token["refresh_token"] = self.refresh_token
        if self.expires_at:
            token["expires_at"] = self.expires_at
        return token

    def to_credentials(self, config: ClientConfiguration) -> GoogleCredentials:
        """Get Google Credentials object for API client libraries."""
        expiry = None
        if self.expires_at:
            # google-auth compares against naive UTC datetimes
            expiry = datetime.fromtimestamp(self.expires_at, tz=timezone.utc).replace(tzinfo=None)
        return GoogleCredentials(
            token=self.access_token,
            refresh_token=self.refresh_token,
            token_uri=config.token_uri,
            client_id=config.client_id,
            client_secret=config.client_secret,
            scopes=self.scopes or list(config.scopes),
            expiry=expiry,
        )


def _format_expiry(expires_at: float | None) -> str | None:
    if not expires_at:
        return None
    dt = datetime.fromtimestamp(expires_at, tz=timezone.utc)
    return dt.isoformat().replace("+00:00", "Z")


def _parse_expiry(expiry: Any) -> float | None:
    if expiry is None:
        return None
    if isinstance(expiry, (int, float)):
        return float(expiry)
    dt = datetime.fromisoformat(str(expiry).replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.timestamp()


def load_token(path: str | Path) -> Token | None:
    """Load a token from the cache file.

    Any read or parse failure is reported as a cache miss.

    Args:
        path: Token cache file.

    Returns:
        The cached Token, or None if absent or unreadable.
    """
    path = Path(path)
    if not path.exists():
        logger.info("No existing token found")
        return None

    try:
        with open(path) as f:
            token_data = json.load(f)

        if not isinstance(token_data, dict):
            raise ValueError("token file is not a JSON object")

        access_token = token_data.get("token")
        if not access_token or not isinstance(access_token, str):
            raise ValueError("token file has no access token")

        scopes = token_data.get("scopes") or []
        if isinstance(scopes, str):
            scopes = scopes.split()

        return Token(
            access_token=access_token,
            refresh_token=token_data.get("refresh_token"),
            expires_at=_parse_expiry(token_data.get("expiry")),
            token_type=token_data.get("type", "Bearer"),
            scopes=list(scopes),
        )

    except (OSError, ValueError, TypeError) as e:
        logger.warning(f"Ignoring unreadable token cache {path}: {e}")
        return None


def persist_token(
    path: str | Path,
    token: Token,
    config: ClientConfiguration | None = None,
) -> Path:
    """Write the token to the cache file.

    The file is written to a temporary sibling and renamed into place, so a
    crash leaves either the previous file or none at all.

    Args:
        path: Token cache file. Its directory is created with mode 0700.
        token: Token to store.
        config: Client configuration, recorded so the file is a complete
            authorized-user file.

    Returns:
        The path written.

    Raises:
        PersistenceError: If the directory or file cannot be written.
    """
    path = Path(path)

    # Convert to Google token format for compatibility
    google_token = {
        "token": token.access_token,
        "refresh_token": token.refresh_token,
        "token_uri": config.token_uri if config else None,
        "client_id": config.client_id if config else None,
        "client_secret": config.client_secret if config else None,
        "scopes": token.scopes,
        "type": token.token_type,
        "expiry": _format_expiry(token.expires_at),
    }

    tmp_name = None
    try:
        path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{path.name}.", suffix=".tmp", dir=path.parent
        )
        with os.fdopen(fd, "w") as f:
            json.dump(google_token, f, indent=2)
            f.flush()
            os.fsync(f.fileno())
        os.chmod(tmp_name, 0o600)
        os.replace(tmp_name, path)
        tmp_name = None
    except OSError as e:
        raise PersistenceError(str(path), e) from e
    finally:
        if tmp_name is not None:
            try:
                os.unlink(tmp_name)
            except OSError:
                logger.debug(f"Could not remove temporary token file {tmp_name}")

    logger.info(f"Token saved with scopes: {token.scopes}")
    return path
