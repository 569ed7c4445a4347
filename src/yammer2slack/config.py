"""
Configuration for the relay.

Values come from, in priority order: the process environment, a ``.env``
file in the workspace directory, and an optional YAML file. The YAML file
uses the lower-case setting names::

    yammer:
      client_id: ...
      client_secret: ...
    slack:
      token: ...
    network_name_filter: "\\(.*\\)"
    state_dir: ~/.local/share/yammer2slack
"""

import os
import re
from pathlib import Path
from typing import Any, Dict

import yaml
from dotenv import dotenv_values

from .auth.oauth import AuthConfig
from .error_handling import ConfigurationError

DEFAULT_STATE_DIR = Path("~/.local/share/yammer2slack")

TOKEN_FILE = "token.json"
CACHE_FILE = "cache.json"
WATERMARK_FILE = "watermark.json"
LOCK_FILE = "relay.lock"


class BaseConfig:
    """
    Base configuration with environment, ``.env`` and YAML lookups.

    Features:
    - Automatic .env loading from workspace
    - Support for default values
    - Type conversion
    - Validation hooks
    """

    def __init__(
        self,
        workspace_dir: Path | None = None,
        env_file: str | None = None,
        config_file: Path | None = None,
    ):
        """
        Initialize configuration.

        Args:
            workspace_dir: Workspace directory (defaults to current dir)
            env_file: Name of .env file
            config_file: Path to YAML config file (optional)

        Raises:
            ConfigurationError: If a config file cannot be parsed
        """
        self.workspace_dir = workspace_dir or Path.cwd()
        self.env_file = env_file or ".env"
        self.config_file = Path(config_file) if config_file else None

        self._env_vars: Dict[str, str] = {}
        self._yaml_config: Dict[str, Any] = {}

        self._load_config()

    def _load_config(self) -> None:
        """Load configuration from .env and/or YAML files."""
        env_path = self.workspace_dir / self.env_file
        if env_path.exists():
            self._env_vars = {
                k: v for k, v in dotenv_values(env_path).items() if v is not None
            }

        if self.config_file is None:
            return
        if not self.config_file.exists():
            raise ConfigurationError("config", f"Config file not found: {self.config_file}")
        try:
            with open(self.config_file) as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(
                "config", f"Cannot read {self.config_file}: {e}"
            ) from e
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigurationError("config", f"{self.config_file} is not a mapping")
        self._yaml_config = data

    def get_env(
        self, key: str, default: str | None = None, required: bool = False
    ) -> str | None:
        """
        Get environment variable with fallback to .env file.

        Args:
            key: Environment variable name
            default: Default value if not found
            required: Raise ConfigurationError if not found and no default

        Returns:
            Value from environment or .env file, or default

        Raises:
            ConfigurationError: If required=True and no value found
        """
        value = os.environ.get(key)
        if value is None:
            value = self._env_vars.get(key)
        if value is None:
            value = default

        if value is None and required:
            raise ConfigurationError("config", f"Required environment variable not set: {key}")

        return value

    def get_yaml(self, path: str, default: Any = None) -> Any:
        """
        Get value from YAML config using dot notation.

        Args:
            path: Dot-separated path (e.g., "yammer.client_id")
            default: Default value if path not found

        Returns:
            Value at path, or default if not found
        """
        if not self._yaml_config:
            return default

        value: Any = self._yaml_config
        for key in path.split("."):
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default

        return value

    def get(self, env_key: str, yaml_path: str, default: str = "") -> str:
        """Look a setting up in the environment first, then in YAML."""
        value = self.get_env(env_key)
        if value is None:
            value = self.get_yaml(yaml_path)
        if value is None:
            return default
        return str(value)

    def validate(self) -> tuple[bool, str]:
        """
        Validate configuration.

        Returns:
            Tuple of (is_valid, error_message)
        """
        return True, ""


class RelayConfig(BaseConfig):
    """Credentials and file locations of a relay instance."""

    def __init__(
        self,
        workspace_dir: Path | None = None,
        env_file: str | None = None,
        config_file: Path | None = None,
    ):
        super().__init__(workspace_dir, env_file, config_file)

        self.yammer_client_id = self.get("YAMMER_CLIENT_ID", "yammer.client_id")
        self.yammer_client_secret = self.get("YAMMER_CLIENT_SECRET", "yammer.client_secret")
        self.slack_token = self.get("SLACK_TOKEN", "slack.token")
        self.network_name_filter = self.get("NETWORK_NAME_FILTER", "network_name_filter")
        self.state_dir = Path(
            self.get("Y2S_STATE_DIR", "state_dir", str(DEFAULT_STATE_DIR))
        ).expanduser()

    @property
    def token_file(self) -> Path:
        return self.state_dir / TOKEN_FILE

    @property
    def cache_file(self) -> Path:
        return self.state_dir / CACHE_FILE

    @property
    def watermark_file(self) -> Path:
        return self.state_dir / WATERMARK_FILE

    @property
    def lock_file(self) -> Path:
        return self.state_dir / LOCK_FILE

    def validate(self) -> tuple[bool, str]:
        """Check that both platforms' credentials are present."""
        missing = [
            name
            for name, value in (
                ("YAMMER_CLIENT_ID", self.yammer_client_id),
                ("YAMMER_CLIENT_SECRET", self.yammer_client_secret),
                ("SLACK_TOKEN", self.slack_token),
            )
            if not value
        ]
        if missing:
            return False, f"Missing settings: {', '.join(missing)}"

        if self.network_name_filter:
            try:
                re.compile(self.network_name_filter)
            except re.error as e:
                return False, f"Invalid NETWORK_NAME_FILTER: {e}"

        return True, ""

    def auth_config(self, port: int) -> AuthConfig:
        """Yammer OAuth settings for a callback on ``port``."""
        return AuthConfig.for_yammer(self.yammer_client_id, self.yammer_client_secret, port)

    def to_dict(self) -> Dict[str, Any]:
        """Settings without secrets."""
        return {
            "workspace_dir": str(self.workspace_dir),
            "config_file": str(self.config_file) if self.config_file else None,
            "yammer_client_id": self.yammer_client_id,
            "network_name_filter": self.network_name_filter,
            "state_dir": str(self.state_dir),
        }
