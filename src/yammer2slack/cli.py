"""
Command-line entry point.

Usage:
    yammer2slack                         # relay until interrupted
    yammer2slack --loops 1 --debug       # one cycle with debug logging
    yammer2slack --feed received --feed inbox --sleep 30
"""

from pathlib import Path
from typing import Optional

import click
from rich.console import Console

from . import __version__
from .auth import (
    CredentialStore,
    TokenExchanger,
    TokenTransport,
    default_opener,
    obtain_authorization_code,
)
from .auth.callback_server import DEFAULT_TIMEOUT
from .config import RelayConfig
from .error_handling import CommunicationError, ConfigurationError, RetryConfig
from .monitoring import configure_logging, get_logger
from .relay import DEFAULT_FEEDS, DEFAULT_SLEEP, RelayLoop
from .resolver import ThreadChannelResolver
from .slack import SlackDestination
from .state import FileLock, LockError, ThreadCache, WatermarkTracker
from .yammer import FEEDS, YammerClient

logger = get_logger(__name__, "relay")
console = Console(stderr=True)


def build_relay(
    config: RelayConfig,
    port: int,
    timeout: float,
    feeds: tuple[str, ...],
    sleep: float,
) -> RelayLoop:
    """
    Wire up the relay from its configuration and authorize against Yammer.

    Raises:
        CommunicationError: If state cannot be loaded or authorization fails
    """
    auth_config = config.auth_config(port)
    transport = TokenTransport(TokenExchanger(auth_config), CredentialStore(config.token_file))
    opener = default_opener()

    def obtain_code() -> str:
        return obtain_authorization_code(auth_config, port, timeout=timeout, opener=opener)

    def reauthorize() -> None:
        transport.authorize(obtain_code)

    state = transport.authorize(obtain_code)
    logger.info("Authorized", state=state.value)

    source = YammerClient(transport)
    destination = SlackDestination.from_token(config.slack_token)
    cache = ThreadCache.load(config.cache_file)
    resolver = ThreadChannelResolver(
        source,
        destination,
        cache,
        network_name_filter=config.network_name_filter,
    )
    return RelayLoop(
        source,
        resolver,
        destination,
        WatermarkTracker(config.watermark_file),
        feeds=feeds,
        sleep=sleep,
        retry_config=RetryConfig(initial_delay=max(sleep, 1.0)),
        reauthorize=reauthorize,
    )


@click.command()
@click.version_option(__version__)
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.option("--port", default=8080, show_default=True, help="Local OAuth callback port")
@click.option(
    "--timeout",
    default=DEFAULT_TIMEOUT,
    show_default=True,
    type=float,
    help="Seconds to wait for the browser redirect",
)
@click.option(
    "--loops", default=0, show_default=True, help="Number of cycles (0 = until interrupted)"
)
@click.option(
    "--sleep",
    default=DEFAULT_SLEEP,
    show_default=True,
    type=float,
    help="Seconds between cycles",
)
@click.option(
    "--feed",
    "feeds",
    multiple=True,
    type=click.Choice(sorted(FEEDS)),
    help="Feed to relay (repeatable; default: received and private)",
)
@click.option(
    "--state-dir",
    type=click.Path(file_okay=False, path_type=Path),
    help="Directory for token, cache and watermark files",
)
@click.option(
    "--config",
    "config_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="YAML config file",
)
@click.option("--log-file", type=click.Path(dir_okay=False, path_type=Path), help="Also log here")
def main(
    debug: bool,
    port: int,
    timeout: float,
    loops: int,
    sleep: float,
    feeds: tuple[str, ...],
    state_dir: Optional[Path],
    config_file: Optional[Path],
    log_file: Optional[Path],
) -> None:
    """Relay Yammer conversations into Slack channels."""
    configure_logging("DEBUG" if debug else "INFO", log_file=log_file)

    try:
        config = RelayConfig(config_file=config_file)
    except ConfigurationError as e:
        raise click.ClickException(str(e)) from e
    if state_dir is not None:
        config.state_dir = state_dir
    ok, message = config.validate()
    if not ok:
        raise click.ClickException(message)

    logger.debug("Configuration loaded", **config.to_dict())
    config.state_dir.mkdir(parents=True, exist_ok=True)
    console.print(f"[bold]yammer2slack[/bold] {__version__} state: {config.state_dir}")

    lock = FileLock(config.lock_file, timeout=1)
    try:
        lock.acquire()
    except LockError as e:
        raise click.ClickException(f"Another relay is running ({e})") from e

    try:
        relay = build_relay(config, port, timeout, feeds or DEFAULT_FEEDS, sleep)
        relay.run(loops)
    except CommunicationError as e:
        raise click.ClickException(f"{e.platform}: {e}") from e
    except KeyboardInterrupt:
        console.print("Interrupted")
    finally:
        lock.release()


if __name__ == "__main__":
    main()
