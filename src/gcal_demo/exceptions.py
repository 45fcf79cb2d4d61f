"""Exceptions raised by gcal-demo."""

from __future__ import annotations


class CalendarDemoError(Exception):
    """Base exception for all gcal-demo errors."""

    pass


class ConfigurationError(CalendarDemoError):
    """Raised when the OAuth client configuration is missing or malformed."""

    pass


class CredentialsNotFoundError(ConfigurationError):
    """Raised when OAuth credentials file is not found."""

    def __init__(self, path: str):
        self.path = path
        super().__init__(
            f"Credentials file not found at {path}. "
            "Please download OAuth credentials from Google Cloud Console."
        )


class AuthorizationError(CalendarDemoError):
    """Raised when the authorization-code flow cannot complete."""

    pass


class CallbackServerError(AuthorizationError):
    """Raised when the local redirect listener cannot be started."""

    def __init__(self, host: str, port: int, cause: Exception):
        self.host = host
        self.port = port
        super().__init__(f"Unable to start local server on {host}:{port}: {cause}")


class StateMismatchError(AuthorizationError):
    """Raised when the callback state does not match the one we generated."""

    def __init__(self, received: str | None):
        self.received = received
        super().__init__("State does not match; refusing to exchange authorization code")


class TokenExchangeError(AuthorizationError):
    """Raised when the token endpoint rejects the authorization code."""

    pass


class TokenError(AuthorizationError):
    """Raised when there's an issue with the OAuth token."""

    pass


class PersistenceError(CalendarDemoError):
    """Raised when the token cache cannot be written."""

    def __init__(self, path: str, cause: Exception):
        self.path = path
        super().__init__(f"Unable to cache OAuth token at {path}: {cause}")


class RemoteAPIError(CalendarDemoError):
    """Raised when a Calendar API call fails."""

    def __init__(self, operation: str, message: str, status: int | None = None):
        self.operation = operation
        self.status = status
        detail = f" (HTTP {status})" if status else ""
        super().__init__(f"Unable to {operation}{detail}: {message}")


class EventNotFoundError(RemoteAPIError):
    """Raised when the requested event does not exist or was deleted."""

    pass
