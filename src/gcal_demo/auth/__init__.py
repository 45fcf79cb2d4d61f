"""OAuth authorization for the Calendar demo."""

from gcal_demo.auth.callback import LocalCallbackServer
from gcal_demo.auth.oauth import AuthorizationAgent
from gcal_demo.auth.token_store import Token, load_token, persist_token

__all__ = [
    "AuthorizationAgent",
    "LocalCallbackServer",
    "Token",
    "load_token",
    "persist_token",
]
