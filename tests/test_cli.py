"""Tests for the command-line entry point."""

from unittest.mock import MagicMock, patch

import pytest
from click.testing import CliRunner

from yammer2slack import __version__
from yammer2slack.cli import main
from yammer2slack.error_handling import PersistenceError
from yammer2slack.state import FileLock

CREDENTIALS = {
    "YAMMER_CLIENT_ID": "id",
    "YAMMER_CLIENT_SECRET": "secret",
    "SLACK_TOKEN": "xoxb-test",
    "NETWORK_NAME_FILTER": None,
    "Y2S_STATE_DIR": None,
}


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture(autouse=True)
def no_logging_setup():
    with patch("yammer2slack.cli.configure_logging") as configure:
        yield configure


@pytest.fixture
def build_relay():
    with patch("yammer2slack.cli.build_relay") as build:
        build.return_value = MagicMock()
        yield build


def test_version(runner):
    result = runner.invoke(main, ["--version"])

    assert result.exit_code == 0
    assert __version__ in result.output


def test_missing_credentials(runner, tmp_path):
    env = {key: None for key in CREDENTIALS}
    with runner.isolated_filesystem(temp_dir=tmp_path):
        result = runner.invoke(main, ["--state-dir", str(tmp_path)], env=env)

    assert result.exit_code != 0
    assert "Missing settings" in result.output


def test_runs_relay(runner, tmp_path, build_relay, no_logging_setup):
    with runner.isolated_filesystem(temp_dir=tmp_path):
        result = runner.invoke(
            main,
            [
                "--debug",
                "--state-dir",
                str(tmp_path / "state"),
                "--port",
                "9191",
                "--timeout",
                "5",
                "--loops",
                "2",
                "--sleep",
                "0.5",
                "--feed",
                "inbox",
            ],
            env=CREDENTIALS,
        )

    assert result.exit_code == 0, result.output
    no_logging_setup.assert_called_once_with("DEBUG", log_file=None)
    config, port, timeout, feeds, sleep = build_relay.call_args.args
    assert config.state_dir == tmp_path / "state"
    assert (port, timeout, feeds, sleep) == (9191, 5.0, ("inbox",), 0.5)
    build_relay.return_value.run.assert_called_once_with(2)
    assert (tmp_path / "state").is_dir()


def test_default_feeds(runner, tmp_path, build_relay):
    with runner.isolated_filesystem(temp_dir=tmp_path):
        result = runner.invoke(main, ["--state-dir", str(tmp_path)], env=CREDENTIALS)

    assert result.exit_code == 0, result.output
    assert build_relay.call_args.args[3] == ("received", "private")
    build_relay.return_value.run.assert_called_once_with(0)


def test_unknown_feed_rejected(runner, tmp_path, build_relay):
    result = runner.invoke(main, ["--feed", "everything"], env=CREDENTIALS)

    assert result.exit_code == 2
    build_relay.assert_not_called()


def test_unrecoverable_error_exits_nonzero(runner, tmp_path, build_relay):
    build_relay.side_effect = PersistenceError(str(tmp_path / "cache.json"), "Malformed")
    with runner.isolated_filesystem(temp_dir=tmp_path):
        result = runner.invoke(main, ["--state-dir", str(tmp_path)], env=CREDENTIALS)

    assert result.exit_code == 1
    assert "Malformed" in result.output
    # Lock released on the way out
    lock = FileLock(tmp_path / "relay.lock", timeout=0.2)
    assert lock.acquire()
    lock.release()


def test_second_instance_refused(runner, tmp_path, build_relay):
    with FileLock(tmp_path / "relay.lock"):
        with runner.isolated_filesystem(temp_dir=tmp_path):
            result = runner.invoke(main, ["--state-dir", str(tmp_path)], env=CREDENTIALS)

    assert result.exit_code == 1
    assert "Another relay is running" in result.output
    build_relay.assert_not_called()


def test_logs_configuration_without_secrets(runner, tmp_path, build_relay):
    with patch("yammer2slack.cli.logger") as logger:
        with runner.isolated_filesystem(temp_dir=tmp_path):
            result = runner.invoke(main, ["--state-dir", str(tmp_path)], env=CREDENTIALS)

    assert result.exit_code == 0, result.output
    calls = [c for c in logger.debug.call_args_list if c.args == ("Configuration loaded",)]
    assert len(calls) == 1
    assert calls[0].kwargs["state_dir"] == str(tmp_path)
    assert "xoxb-test" not in str(calls[0].kwargs)
