"""Durable storage for the OAuth token."""

import os
from pathlib import Path
from typing import Optional

from ..error_handling import PersistenceError
from ..state.storage import read_json, write_json_atomic
from .tokens import Token


class CredentialStore:
    """
    Keeps a Token in a JSON file.

    The file holds ``AccessToken``, ``RefreshToken``, ``Expiry`` and
    ``Extra`` and is rewritten atomically on every change.
    """

    def __init__(self, path: str | Path):
        """
        Initialize credential store.

        Args:
            path: Path to the token file
        """
        self.path = Path(path)

    def load(self) -> Optional[Token]:
        """
        Load the stored token.

        Returns:
            The token, or None if nothing usable is stored

        Raises:
            PersistenceError: If the file exists but is malformed
        """
        data = read_json(self.path)
        if data is None:
            return None
        if not isinstance(data, dict):
            raise PersistenceError(str(self.path), "Token file is not a JSON object")
        try:
            token = Token.from_dict(data)
        except ValueError as e:
            raise PersistenceError(str(self.path), f"Bad token expiry ({e})") from e
        if not token.access_token:
            return None
        return token

    def save(self, token: Token) -> None:
        """
        Persist the token, readable by the owner only.

        Raises:
            PersistenceError: If the file cannot be written
        """
        write_json_atomic(self.path, token.to_dict())
        try:
            os.chmod(self.path, 0o600)
        except OSError as e:
            raise PersistenceError(str(self.path), f"Cannot restrict permissions ({e})") from e
