"""Tests for the authorization handshake."""

import socket
from unittest.mock import MagicMock, patch

import pytest
import requests

from yammer2slack.auth import AuthConfig, CallbackServer, obtain_authorization_code
from yammer2slack.auth.browser import (
    CommandOpener,
    ManualOpener,
    WindowsOpener,
    default_opener,
)
from yammer2slack.error_handling import HandshakeError, HandshakeTimeoutError


def free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


def test_callback_captures_code():
    server = CallbackServer(port=8080)
    client = server.app.test_client()

    response = client.get("/?code=abc123&state=s")

    assert response.status_code == 200
    assert b"Authorization Successful" in response.data
    assert server.wait_for_code(timeout=1) == "abc123"


def test_callback_error_redirect():
    server = CallbackServer(port=8080)
    client = server.app.test_client()

    response = client.get("/?error=access_denied&error_description=<b>nope</b>")

    assert response.status_code == 400
    assert b"&lt;b&gt;nope&lt;/b&gt;" in response.data
    with pytest.raises(HandshakeError, match="access_denied"):
        server.wait_for_code(timeout=1)


@pytest.mark.parametrize(
    "query, expected",
    [
        (
            "error=invalid_request&error_description=Missing%20scope:",
            "invalid_request: Missing scope:",
        ),
        ("error=access_denied", "access_denied"),
        ("state=s", "missing code"),
    ],
)
def test_callback_error_message(query, expected):
    server = CallbackServer(port=8080)

    server.app.test_client().get(f"/?{query}")

    assert server.results.get_nowait().error == expected


def test_wait_times_out():
    server = CallbackServer(port=8080, timeout=0.05)

    with pytest.raises(HandshakeTimeoutError) as exc_info:
        server.wait_for_code()

    assert exc_info.value.timeout == 0.05


def test_redirect_uri():
    assert CallbackServer(port=9123).get_redirect_uri() == "http://localhost:9123/"


class RedirectingOpener:
    """Plays the browser: follows the authorization URL straight to the callback."""

    def __init__(self, port: int, query: str):
        self.port = port
        self.query = query
        self.opened: list[str] = []

    def open(self, url: str) -> None:
        self.opened.append(url)
        requests.get(f"http://127.0.0.1:{self.port}/?{self.query}", timeout=5)


def test_obtain_authorization_code_over_loopback():
    port = free_port()
    config = AuthConfig.for_yammer("cid", "secret", port)
    opener = RedirectingOpener(port, "code=loopback-code")

    code = obtain_authorization_code(config, port, timeout=5, opener=opener)

    assert code == "loopback-code"
    assert opener.opened == [config.authorization_url()]


def test_obtain_authorization_code_times_out():
    port = free_port()
    config = AuthConfig.for_yammer("cid", "secret", port)
    opener = MagicMock()

    with pytest.raises(HandshakeTimeoutError):
        obtain_authorization_code(config, port, timeout=0.1, opener=opener)

    opener.open.assert_called_once()


def test_obtain_falls_back_to_manual_opener(capsys):
    port = free_port()
    config = AuthConfig.for_yammer("cid", "secret", port)
    opener = MagicMock()
    opener.open.side_effect = OSError("no browser")

    with pytest.raises(HandshakeTimeoutError):
        obtain_authorization_code(config, port, timeout=0.1, opener=opener)

    assert config.authorization_url() in capsys.readouterr().out


def test_default_opener_per_platform():
    assert isinstance(default_opener("darwin"), CommandOpener)
    assert default_opener("darwin").command == ["open"]
    assert isinstance(default_opener("win32"), WindowsOpener)
    with patch("yammer2slack.auth.browser.shutil.which", return_value=None):
        assert isinstance(default_opener("linux"), ManualOpener)
    with patch("yammer2slack.auth.browser.shutil.which", return_value="/usr/bin/xdg-open"):
        assert default_opener("linux").command == ["xdg-open"]


def test_windows_opener_escapes_ampersands():
    with patch("yammer2slack.auth.browser.subprocess.run") as run:
        WindowsOpener().open("https://x.example/?a=1&b=2")

    assert run.call_args.args[0] == ["cmd", "/c", "start", "https://x.example/?a=1^&b=2"]


def test_command_opener_waits_for_launcher():
    with patch("yammer2slack.auth.browser.subprocess.run") as run:
        CommandOpener(["xdg-open"]).open("https://x.example/")

    run.assert_called_once()
    assert run.call_args.args[0] == ["xdg-open", "https://x.example/"]
    assert run.call_args.kwargs["check"] is False
