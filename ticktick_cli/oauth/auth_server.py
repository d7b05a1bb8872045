"""
OAuth callback server for the TickTick CLI.

This module provides a short-lived local HTTP server that receives the
authorization redirect during ``tt auth login``. It listens on the host and
port of the configured redirect URI, accepts exactly one callback, and shuts
down again.

Waiting for the user is a single blocking call with a bounded timeout; it can
also be cancelled (Ctrl-C in the terminal).
"""

import hmac
import logging
import threading
import webbrowser
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlparse

from flask import Flask, Response, request
from werkzeug.serving import make_server

from .exceptions import AuthorizationError

logger = logging.getLogger(__name__)

_PAGE = """<html>
<head><title>{title}</title></head>
<body style="font-family: Arial, sans-serif; max-width: 600px; margin: 50px auto; padding: 20px;">
    <h1>{title}</h1>
    <p>{message}</p>
    <p style="margin-top: 30px; color: #666;">You can close this window and return to the terminal.</p>
</body>
</html>"""


@dataclass
class AuthorizationResult:
    """
    Result of the browser authorization step.

    Attributes:
        success: Whether authorization succeeded
        authorization_code: Authorization code from callback (if successful)
        error: Error code (provider error, "state_mismatch", "timeout", "cancelled")
        error_description: Human-readable error description (if failed)
    """

    success: bool
    authorization_code: Optional[str] = None
    error: Optional[str] = None
    error_description: Optional[str] = None


class OAuthCallbackServer:
    """
    Local HTTP server that handles the OAuth redirect.

    The server:
    1. Binds to the redirect URI's host and port
    2. Waits for a single callback on the redirect URI's path
    3. Verifies the ``state`` parameter
    4. Records the authorization code (or error) and wakes the waiter
    """

    def __init__(self, redirect_uri: str, expected_state: str):
        """
        Initialize callback server.

        Args:
            redirect_uri: Registered redirect URI (e.g. http://localhost:8080/callback)
            expected_state: CSRF state sent in the authorization request
        """
        parsed = urlparse(redirect_uri)
        self.host = parsed.hostname or "localhost"
        self.port = parsed.port or (443 if parsed.scheme == "https" else 80)
        self.callback_path = parsed.path or "/"
        self.expected_state = expected_state

        self.app = Flask(__name__)
        self.app.logger.setLevel(logging.WARNING)
        self.result: Optional[AuthorizationResult] = None
        self._server = None
        self._thread: Optional[threading.Thread] = None
        self._done = threading.Event()

        self.app.add_url_rule(
            self.callback_path,
            "oauth_callback",
            self._handle_callback,
            methods=["GET"],
        )

    def _finish(self, result: AuthorizationResult) -> None:
        if not self._done.is_set():
            self.result = result
            self._done.set()

    def _handle_callback(self) -> Response:
        """Handle the OAuth redirect from TickTick."""
        logger.info("Received OAuth callback")

        error = request.args.get("error")
        if error:
            error_desc = request.args.get("error_description", "Unknown error")
            logger.error(f"OAuth error: {error} - {error_desc}")
            self._finish(
                AuthorizationResult(success=False, error=error, error_description=error_desc)
            )
            return self._page("Authorization Failed", "TickTick reported an error.", 400)

        state = request.args.get("state", "")
        if not hmac.compare_digest(state.encode(), self.expected_state.encode()):
            logger.error("OAuth state mismatch in callback")
            self._finish(
                AuthorizationResult(
                    success=False,
                    error="state_mismatch",
                    error_description="Invalid OAuth state parameter",
                )
            )
            return self._page("Authorization Failed", "Invalid state parameter.", 400)

        code = request.args.get("code")
        if not code:
            logger.error("No authorization code in callback")
            self._finish(
                AuthorizationResult(
                    success=False,
                    error="missing_code",
                    error_description="No authorization code received",
                )
            )
            return self._page(
                "Authorization Failed", "No authorization code received from TickTick.", 400
            )

        logger.info("Authorization code received")
        self._finish(AuthorizationResult(success=True, authorization_code=code))
        return self._page("Authentication complete", "The TickTick CLI is now authorized.", 200)

    @staticmethod
    def _page(title: str, message: str, status: int) -> Response:
        return Response(
            _PAGE.format(title=title, message=message), status=status, content_type="text/html"
        )

    def start(self) -> None:
        """
        Start serving in a background thread.

        Raises:
            AuthorizationError: If the port cannot be bound
        """
        try:
            self._server = make_server(self.host, self.port, self.app, threaded=True)
        except (OSError, SystemExit) as e:
            # werkzeug exits instead of raising when the port is taken
            raise AuthorizationError(
                f"Could not start local callback server on {self.host}:{self.port}: {e}"
            ) from e

        self._thread = threading.Thread(target=self._server.serve_forever, daemon=True)
        self._thread.start()
        logger.info(f"OAuth callback server listening on {self.host}:{self.port}")

    def wait_for_callback(self, timeout: float) -> AuthorizationResult:
        """
        Block until the callback arrives, the wait is cancelled, or it times out.

        Args:
            timeout: Maximum seconds to wait

        Returns:
            AuthorizationResult with code or error
        """
        logger.info(f"Waiting for OAuth callback (timeout: {timeout}s)")

        if self._done.wait(timeout=timeout):
            return self.result

        logger.warning(f"Timeout waiting for callback after {timeout}s")
        return AuthorizationResult(
            success=False,
            error="timeout",
            error_description=f"No callback received within {timeout:g} seconds",
        )

    def cancel(self) -> None:
        """Abort a pending wait (user pressed Ctrl-C)."""
        self._finish(
            AuthorizationResult(
                success=False, error="cancelled", error_description="Login cancelled"
            )
        )

    def stop(self) -> None:
        """Shut the server down and release the port."""
        if self._server is not None:
            logger.debug("OAuth callback server shutting down")
            self._server.shutdown()
            self._server.server_close()
            self._server = None


def run_authorization_flow(
    auth_url: str,
    redirect_uri: str,
    state: str,
    open_browser: bool = True,
    timeout: float = 120,
) -> str:
    """
    Run the interactive browser step of the login flow.

    This function:
    1. Starts the local callback server
    2. Opens the browser at the authorization URL (or prints it)
    3. Waits for the user to authorize
    4. Returns the authorization code

    Args:
        auth_url: Complete TickTick authorization URL
        redirect_uri: Redirect URI the callback server listens on
        state: Expected CSRF state value
        open_browser: Whether to open the browser automatically
        timeout: Seconds to wait for the callback

    Returns:
        Authorization code

    Raises:
        AuthorizationError: On provider error, state mismatch, timeout or cancellation
    """
    server = OAuthCallbackServer(redirect_uri, state)
    server.start()

    try:
        print("TickTick CLI Authentication")
        print("=========================")
        print()

        opened = False
        if open_browser:
            print("Opening browser for authorization...")
            try:
                opened = webbrowser.open(auth_url)
            except webbrowser.Error as e:
                logger.warning(f"Could not open browser automatically: {e}")

        if not opened:
            print("Open this URL in your browser:")
            print(auth_url)

        print("\nWaiting for authorization (press Ctrl-C to cancel)...")

        try:
            result = server.wait_for_callback(timeout)
        except KeyboardInterrupt:
            server.cancel()
            result = server.result

        if not result.success:
            logger.error(
                f"Authorization flow failed: {result.error} - {result.error_description}"
            )
            raise AuthorizationError(
                f"Authorization failed ({result.error}): {result.error_description}"
            )

        logger.info("Authorization flow completed successfully")
        return result.authorization_code

    finally:
        server.stop()
