"""Local HTTP listener for the OAuth redirect.

The listener runs in one background thread and hands exactly one
authorization code back to the waiting caller through a Future.

Example:
    >>> with LocalCallbackServer("localhost", 8080, expected_state=state) as server:
    ...     url, _ = agent.get_authorization_url(server.redirect_uri, state=state)
    ...     print(f"Visit: {url}")
    ...     code = server.wait_for_code()
"""

from __future__ import annotations

import logging
import socketserver
import threading
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeoutError
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, HTTPServer
from urllib.parse import parse_qs, urlparse

from gcal_demo.exceptions import AuthorizationError, CallbackServerError, StateMismatchError

logger = logging.getLogger(__name__)

SUCCESS_MESSAGE = "Authorization successful! You can close this tab."


class _CallbackHandler(BaseHTTPRequestHandler):
    """Handles the single redirect request for ``server.callback``."""

    server: _CallbackHTTPServer

    def do_GET(self) -> None:
        parsed = urlparse(self.path)
        if parsed.path not in ("", "/"):
            self._respond(HTTPStatus.NOT_FOUND, "Not found")
            return

        callback = self.server.callback
        if callback.handoff.done():
            self._respond(HTTPStatus.GONE, "Authorization already handled.")
            return

        params = parse_qs(parsed.query)
        state = params.get("state", [None])[0]
        code = params.get("code", [None])[0]
        error = params.get("error", [None])[0]

        if state != callback.expected_state:
            logger.warning("Rejected OAuth callback with mismatching state")
            self._respond(HTTPStatus.BAD_REQUEST, "State does not match")
            callback.fail(StateMismatchError(state))
            return

        if error:
            description = params.get("error_description", [error])[0]
            self._respond(HTTPStatus.BAD_REQUEST, f"Authorization failed: {description}")
            callback.fail(AuthorizationError(f"Authorization denied: {description}"))
            return

        if not code:
            self._respond(HTTPStatus.BAD_REQUEST, "Missing authorization code")
            callback.fail(AuthorizationError("Callback did not include an authorization code"))
            return

        self._respond(HTTPStatus.OK, SUCCESS_MESSAGE)
        callback.deliver(code)

    def _respond(self, status: HTTPStatus, message: str) -> None:
        body = message.encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "text/plain; charset=utf-8")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def log_message(self, format: str, *args) -> None:
        logger.debug(f"callback {self.address_string()} - {format % args}")


class _CallbackHTTPServer(HTTPServer):
    callback: LocalCallbackServer

    def server_bind(self) -> None:
        # HTTPServer.server_bind does a reverse DNS lookup we don't need
        socketserver.TCPServer.server_bind(self)
        self.server_name, self.server_port = self.server_address[:2]


class LocalCallbackServer:
    """One-shot loopback listener for the authorization redirect.

    Binding happens on ``__enter__``; the listener thread is stopped and the
    socket closed on ``__exit__``, whether or not a code arrived.

    Args:
        host: Loopback host to bind.
        port: Port to bind. 0 picks a free port.
        expected_state: CSRF state that the callback must echo back.
    """

    def __init__(self, host: str = "localhost", port: int = 8080, expected_state: str | None = None):
        self.host = host
        self.port = port
        self.expected_state = expected_state
        self.handoff: Future[str] = Future()
        self._lock = threading.Lock()
        self._httpd: _CallbackHTTPServer | None = None
        self._thread: threading.Thread | None = None

    @property
    def redirect_uri(self) -> str:
        return f"http://{self.host}:{self.port}"

    def deliver(self, code: str) -> None:
        with self._lock:
            if not self.handoff.done():
                self.handoff.set_result(code)

    def fail(self, error: Exception) -> None:
        with self._lock:
            if not self.handoff.done():
                self.handoff.set_exception(error)

    def start(self) -> LocalCallbackServer:
        """Bind the socket and start serving in a background thread.

        Raises:
            CallbackServerError: If the address cannot be bound.
        """
        try:
            httpd = _CallbackHTTPServer((self.host, self.port), _CallbackHandler)
        except OSError as e:
            raise CallbackServerError(self.host, self.port, e) from e

        httpd.callback = self
        self._httpd = httpd
        self.port = httpd.server_address[1]

        self._thread = threading.Thread(
            target=httpd.serve_forever,
            name=f"oauth-callback-{self.port}",
            daemon=True,
        )
        self._thread.start()
        logger.info(f"Listening for OAuth callback on {self.redirect_uri}")
        return self

    def stop(self) -> None:
        if self._httpd is None:
            return
        self._httpd.shutdown()
        self._httpd.server_close()
        if self._thread is not None:
            self._thread.join()
        self._httpd = None
        self._thread = None
        logger.info("OAuth callback listener stopped")

    def wait_for_code(self, timeout: float | None = None) -> str:
        """Block until the callback delivers a code.

        Args:
            timeout: Seconds to wait. None waits indefinitely.

        Returns:
            The authorization code.

        Raises:
            StateMismatchError: If the callback carried the wrong state.
            AuthorizationError: If the provider reported an error or the wait timed out.
        """
        try:
            return self.handoff.result(timeout=timeout)
        except FutureTimeoutError:
            raise AuthorizationError(
                f"Timed out after {timeout}s waiting for the OAuth callback"
            ) from None

    def __enter__(self) -> LocalCallbackServer:
        return self.start()

    def __exit__(self, *exc_info) -> None:
        self.stop()
