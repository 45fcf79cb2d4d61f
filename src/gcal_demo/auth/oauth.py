"""Google OAuth management using Authlib.

This module provides the authorization-code flow for the Calendar demo:
- Cached token loading, with silent refresh of expired tokens
- Interactive authorization through a local redirect listener or manual
  code entry
- Atomic token persistence
- Google API service creation

Example:
    >>> config = load_client_config("credentials.json")
    >>> agent = AuthorizationAgent(config, token_path="~/.credentials/calendar-token.json")
    >>> token = agent.obtain_token()
    >>> service = agent.build_service("calendar", "v3")
"""

from __future__ import annotations

import logging
import time
import webbrowser
from collections.abc import Callable
from datetime import timedelta
from pathlib import Path
from typing import Any

import requests
from authlib.common.errors import AuthlibBaseError
from authlib.common.security import generate_token
from authlib.integrations.requests_client import OAuth2Session
from google.oauth2.credentials import Credentials as GoogleCredentials
from googleapiclient.discovery import build

from gcal_demo.auth.callback import LocalCallbackServer
from gcal_demo.auth.token_store import Token, load_token, persist_token
from gcal_demo.config import DEFAULT_HOST, DEFAULT_PORT, DEFAULT_TOKEN, ClientConfiguration
from gcal_demo.exceptions import AuthorizationError, TokenError, TokenExchangeError

logger = logging.getLogger(__name__)


class AuthorizationAgent:
    """Obtains a fresh OAuth token for one calendar session.

    Loads the cached token when it is usable, otherwise drives one
    interactive authorization-code exchange and caches the result.

    Args:
        config: OAuth client configuration.
        token_path: Token cache file.
        host: Loopback host for the redirect listener.
        port: Port for the redirect listener. 0 picks a free port.
        open_browser: Open the authorization URL with ``webbrowser``.
        input_func: Reads the code in the manual-entry flow.
    """

    REVOKE_URL = "https://oauth2.googleapis.com/revoke"

    def __init__(
        self,
        config: ClientConfiguration,
        token_path: str | Path = DEFAULT_TOKEN,
        host: str = DEFAULT_HOST,
        port: int = DEFAULT_PORT,
        open_browser: bool = False,
        input_func: Callable[[str], str] | None = None,
    ):
        self.config = config
        self.token_path = Path(token_path).expanduser()
        self.host = host
        self.port = port
        self.open_browser = open_browser
        self.input_func = input_func or input
        self.required_scopes = list(config.scopes)
        self.token: Token | None = None
        self._state: str | None = None

        self.session = OAuth2Session(
            client_id=config.client_id,
            client_secret=config.client_secret,
            scope=" ".join(self.required_scopes),
            token_endpoint=config.token_uri,
            token_endpoint_auth_method="client_secret_post",
        )

    # =========================================================================
    # Token lifecycle
    # =========================================================================

    def obtain_token(self, manual: bool = False, timeout: float | None = None) -> Token:
        """Return a fresh token, authorizing interactively on a cache miss.

        Args:
            manual: Read the code from stdin instead of running a local listener.
            timeout: Seconds to wait for the redirect callback. None waits forever.

        Returns:
            A Token that is not expired.

        Raises:
            AuthorizationError: If interactive authorization or the exchange fails.
            PersistenceError: If the new token cannot be cached.
        """
        cached = self.load_token()
        if cached is not None:
            if not cached.is_expired():
                logger.info("Using cached token")
                self.token = cached
                return cached

            if cached.refresh_token:
                try:
                    refreshed = self.refresh(cached)
                except TokenError as e:
                    logger.warning(f"{e}; starting new authorization flow")
                else:
                    self.persist_token(refreshed)
                    self.token = refreshed
                    return refreshed
            else:
                logger.info("Cached token expired and has no refresh token")

        if manual:
            token = self.exchange_code_for_token(self.authorize_manual())
        else:
            token = self.exchange_code_for_token(self.authorize_local(timeout=timeout))

        self.persist_token(token)
        self.token = token
        return token

    def load_token(self) -> Token | None:
        """Load token from storage, discarding it if scopes are missing."""
        token = load_token(self.token_path)
        if token is None:
            return None

        current_scopes = set(token.scopes)
        required_scopes = set(self.required_scopes)
        if not required_scopes.issubset(current_scopes):
            missing = required_scopes - current_scopes
            logger.warning(f"Token missing required scopes: {missing}")
            return None

        logger.info(f"Loaded token with scopes: {current_scopes}")
        return token

    def persist_token(self, token: Token) -> Path:
        """Save token to storage and report where it went."""
        path = persist_token(self.token_path, token, self.config)
        print(f"Token saved to {path}")
        return path

    def refresh(self, token: Token) -> Token:
        """Exchange the refresh token for a new access token.

        Raises:
            TokenError: If the refresh is rejected.
        """
        logger.info("Token expired, refreshing...")
        self.session.token = token.to_authlib()
        try:
            new_token = self.session.refresh_token(
                self.config.token_uri,
                refresh_token=token.refresh_token,
            )
        except (AuthlibBaseError, requests.RequestException, ValueError) as e:
            raise TokenError(f"Failed to refresh token: {e}") from e

        refreshed = Token.from_authlib(new_token)
        if not refreshed.refresh_token:
            refreshed.refresh_token = token.refresh_token
        if not refreshed.scopes:
            refreshed.scopes = token.scopes
        return refreshed

    # =========================================================================
    # Interactive authorization
    # =========================================================================

    def get_authorization_url(self, redirect_uri: str, state: str | None = None) -> tuple[str, str]:
        """Build the authorization URL.

        Args:
            redirect_uri: Where the provider sends the user back.
            state: CSRF state. A fresh one is generated when omitted.

        Returns:
            Tuple of (authorization URL, state).
        """
        self.session.redirect_uri = redirect_uri
        url, state = self.session.create_authorization_url(
            self.config.auth_uri,
            state=state or generate_token(30),
            access_type="offline",
            prompt="consent",
        )
        self._state = state
        return url, state

    def authorize_local(self, timeout: float | None = None) -> str:
        """Run the local-redirect flow and return the authorization code."""
        state = generate_token(30)
        with LocalCallbackServer(self.host, self.port, expected_state=state) as server:
            url, _ = self.get_authorization_url(server.redirect_uri, state=state)
            self._announce(url)
            code = server.wait_for_code(timeout=timeout)
        logger.info("Received authorization code from callback")
        return code

    def authorize_manual(self) -> str:
        """Run the manual-entry flow.

        The user may paste either the bare code or the full redirect URL.
        A pasted URL is returned as is and its state is checked on exchange.
        """
        if self.config.redirect_uris:
            redirect_uri = self.config.redirect_uris[0]
        else:
            redirect_uri = f"http://{self.host}:{self.port}"
        url, _ = self.get_authorization_url(redirect_uri)
        self._announce(url)

        code = self.input_func("Enter authorization code: ").strip()
        if not code:
            raise AuthorizationError("No authorization code provided")
        return code

    def _announce(self, url: str) -> None:
        print(f"Open the following URL in the browser:\n{url}")
        if self.open_browser:
            webbrowser.open(url)

    def exchange_code_for_token(self, code: str) -> Token:
        """Exchange an authorization code (or full redirect URL) for a token.

        Raises:
            TokenExchangeError: If the token endpoint rejects the exchange.
        """
        kwargs: dict[str, Any] = {}
        if code.startswith(("http://", "https://")):
            kwargs["authorization_response"] = code
            kwargs["state"] = self._state
        else:
            kwargs["code"] = code

        try:
            token = self.session.fetch_token(self.config.token_uri, **kwargs)
        except (AuthlibBaseError, requests.RequestException, ValueError) as e:
            raise TokenExchangeError(f"Unable to exchange code for token: {e}") from e

        if not token or "access_token" not in token:
            raise TokenExchangeError("Unable to exchange code for token: no access token returned")

        logger.info("Authorization code exchanged for token")
        exchanged = Token.from_authlib(token)
        # RFC 6749 5.1: scope is omitted when it equals the requested scope
        if not exchanged.scopes:
            exchanged.scopes = list(self.required_scopes)
        return exchanged

    # =========================================================================
    # Authenticated capability
    # =========================================================================

    def get_credentials(self, token: Token | None = None) -> GoogleCredentials:
        """Get Google Credentials object for API client libraries.

        Raises:
            TokenError: If no token has been obtained yet.
        """
        token = token or self.token
        if token is None:
            raise TokenError("Not authorized; call obtain_token() first")
        return token.to_credentials(self.config)

    def build_service(self, service_name: str = "calendar", version: str = "v3"):
        """Build a Google API service with current credentials."""
        creds = self.get_credentials()
        return build(service_name, version, credentials=creds, cache_discovery=False)

    def revoke_token(self) -> None:
        """Revoke the cached token and clear local storage."""
        token = load_token(self.token_path)
        if token is None:
            logger.warning("No token to revoke")
            return

        try:
            requests.post(
                self.REVOKE_URL,
                params={"token": token.refresh_token or token.access_token},
                headers={"Content-Type": "application/x-www-form-urlencoded"},
                timeout=30,
            )
        except requests.RequestException as e:
            logger.warning(f"Failed to revoke token remotely: {e}")

        if self.token_path.exists():
            self.token_path.unlink()
        self.token = None

        logger.info("Token revoked successfully")

    def get_token_info(self) -> dict[str, Any]:
        """Get information about the cached token.

        Returns:
            Dictionary with token status, scopes, expiry, etc.
        """
        token = load_token(self.token_path)
        if token is None:
            return {"status": "no_token", "path": str(self.token_path)}

        if token.expires_at:
            expires_in = token.expires_at - time.time()
            expires_str = str(timedelta(seconds=int(max(0, expires_in))))
        else:
            expires_str = "unknown"

        return {
            "status": "expired" if token.is_expired(leeway=0) else "valid",
            "path": str(self.token_path),
            "scopes": token.scopes,
            "expires_in": expires_str,
            "has_refresh_token": bool(token.refresh_token),
        }
