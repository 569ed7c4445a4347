"""
Opening the authorization URL in the user's browser.

The handshake only needs something with an ``open(url)`` method; the
platform-specific openers below are picked by ``default_opener``.
"""

import shutil
import subprocess
import sys
from typing import Protocol, Sequence

import click


class BrowserOpener(Protocol):
    """Something that can show a URL to the user."""

    def open(self, url: str) -> None:
        """Open ``url``; raise OSError if that is impossible."""
        ...


class CommandOpener:
    """Launches an external command with the URL as last argument."""

    def __init__(self, command: Sequence[str]):
        self.command = list(command)

    def open(self, url: str) -> None:
        # The launchers hand the URL off and exit
        subprocess.run(
            [*self.command, url],
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            check=False,
        )


class WindowsOpener(CommandOpener):
    """Uses ``cmd /c start``, which treats a bare ``&`` as a separator."""

    def __init__(self):
        super().__init__(["cmd", "/c", "start"])

    def open(self, url: str) -> None:
        super().open(url.replace("&", "^&"))


class ManualOpener:
    """Prints the URL for the operator to open by hand."""

    def open(self, url: str) -> None:
        click.echo("Open the following URL in your browser and authorize the app:")
        click.echo(url)


def default_opener(platform: str | None = None) -> BrowserOpener:
    """
    Pick an opener for the running platform.

    Args:
        platform: Value of ``sys.platform`` to decide for (defaults to current)
    """
    platform = platform or sys.platform
    if platform == "darwin":
        return CommandOpener(["open"])
    if platform.startswith("win"):
        return WindowsOpener()
    if shutil.which("xdg-open"):
        return CommandOpener(["xdg-open"])
    return ManualOpener()
