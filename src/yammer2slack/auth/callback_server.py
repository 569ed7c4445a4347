"""
OAuth callback server for the first-run authorization handshake.

Provides a lightweight Flask server on a loopback port that captures the
``code`` query parameter Yammer sends back after the user grants access.
"""

import html
import threading
from dataclasses import dataclass
from queue import Empty, Queue
from typing import Optional

from flask import Flask, request
from werkzeug.serving import BaseWSGIServer, make_server

from ..error_handling import HandshakeError, HandshakeTimeoutError
from ..monitoring import get_logger
from .browser import BrowserOpener, ManualOpener, default_opener
from .oauth import AuthConfig

logger = get_logger(__name__, "auth")

DEFAULT_TIMEOUT = 300

SUCCESS_PAGE = """<!doctype html>
<html>
<head><meta charset="utf-8"></head>
<body onload="window.open('about:blank','_self').close();">
<h1>Authorization Successful!</h1>
<p>You can close this window and return to the terminal.</p>
</body>
</html>
"""


@dataclass
class RedirectResult:
    """Outcome of one browser redirect."""

    code: Optional[str] = None
    error: Optional[str] = None


class CallbackServer:
    """
    Single-purpose OAuth callback server.

    Runs a Flask server in a background thread. Each redirect puts one
    RedirectResult on a queue; the handshake consumes exactly one.
    """

    def __init__(
        self,
        port: int = 8080,
        callback_path: str = "/",
        timeout: float = DEFAULT_TIMEOUT,
        host: str = "localhost",
    ):
        """
        Initialize callback server.

        Args:
            port: Port to run server on (default: 8080)
            callback_path: URL path for callback (default: /)
            timeout: Seconds to wait for callback (default: 300)
            host: Loopback host to bind
        """
        self.port = port
        self.callback_path = callback_path
        self.timeout = timeout
        self.host = host

        self.app = Flask(__name__)
        self.server: Optional[BaseWSGIServer] = None
        self.server_thread: Optional[threading.Thread] = None
        self.results: Queue = Queue()

        self._setup_routes()

    def _setup_routes(self) -> None:
        @self.app.route(self.callback_path)
        def callback():
            code = request.args.get("code")
            if code:
                self.results.put(RedirectResult(code=code))
                return SUCCESS_PAGE

            error = request.args.get("error", "missing code")
            error_description = request.args.get("error_description", "")
            message = f"{error}: {error_description}" if error_description else error
            self.results.put(RedirectResult(error=message))

            return (
                f"""
                <h1>Authorization Failed</h1>
                <p>Error: {html.escape(error)}</p>
                <p>Description: {html.escape(error_description)}</p>
                <p>You can close this window and return to the terminal.</p>
                """,
                400,
            )

    def start(self) -> None:
        """Start the callback server in a background thread."""
        if self.server_thread and self.server_thread.is_alive():
            return

        self.server = make_server(self.host, self.port, self.app, threaded=True)
        self.server_thread = threading.Thread(target=self.server.serve_forever, daemon=True)
        self.server_thread.start()
        logger.info("Callback server listening", url=self.get_redirect_uri())

    def stop(self) -> None:
        """Stop the callback server and wait for cleanup."""
        if self.server:
            self.server.shutdown()
            self.server.server_close()

        if self.server_thread:
            self.server_thread.join(timeout=5)
            if self.server_thread.is_alive():
                logger.warning("Callback server thread did not stop within timeout")

        self.server = None
        self.server_thread = None

    def wait_for_code(self, timeout: Optional[float] = None) -> str:
        """
        Wait for the redirect carrying the authorization code.

        Args:
            timeout: Seconds to wait (default: use instance timeout)

        Returns:
            The authorization code

        Raises:
            HandshakeTimeoutError: If no redirect arrives in time
            HandshakeError: If the redirect carries an error instead of a code
        """
        timeout = self.timeout if timeout is None else timeout
        try:
            result: RedirectResult = self.results.get(timeout=timeout)
        except Empty:
            raise HandshakeTimeoutError("yammer", timeout) from None

        if result.error or not result.code:
            raise HandshakeError("yammer", f"Redirect error: {result.error}")
        return result.code

    def get_redirect_uri(self) -> str:
        """Full redirect URI, e.g. http://localhost:8080/."""
        return f"http://{self.host}:{self.port}{self.callback_path}"

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()


def obtain_authorization_code(
    config: AuthConfig,
    port: int,
    timeout: float = DEFAULT_TIMEOUT,
    opener: Optional[BrowserOpener] = None,
) -> str:
    """
    Run the interactive handshake and return the authorization code.

    Starts the callback server, sends the user's browser to the
    authorization URL and blocks until a redirect arrives or ``timeout``
    elapses.

    Args:
        config: OAuth configuration; its redirect URL must point at ``port``
        port: Loopback port for the callback server
        timeout: Seconds to wait for the redirect
        opener: Browser opener (platform default when omitted)

    Raises:
        HandshakeTimeoutError: If no redirect arrives in time
        HandshakeError: If the redirect reports an error
    """
    opener = opener or default_opener()
    url = config.authorization_url()

    with CallbackServer(port=port, timeout=timeout) as server:
        try:
            opener.open(url)
        except OSError as e:
            logger.warning("Cannot launch browser", error=e)
            ManualOpener().open(url)

        code = server.wait_for_code()

    logger.info("Got authorization code")
    return code
