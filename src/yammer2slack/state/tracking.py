"""
Per-feed watermarks.

A watermark is the id of the newest Yammer message whose relay is
complete. The watermark file maps feed names to ids::

    {"received": 1234, "private": 1180}
"""

import threading
from pathlib import Path

from ..error_handling import PersistenceError
from .storage import read_json, write_json_atomic


class WatermarkTracker:
    """Tracks the last processed message id of each feed."""

    def __init__(self, path: str | Path):
        """
        Initialize tracker, loading existing watermarks.

        Args:
            path: Path to the watermark file

        Raises:
            PersistenceError: If the file is malformed
        """
        self.path = Path(path)
        self._lock = threading.Lock()
        data = read_json(self.path, default={})
        if not isinstance(data, dict):
            raise PersistenceError(str(self.path), "Watermark file is not a JSON object")
        try:
            self._marks: dict[str, int] = {feed: int(mark) for feed, mark in data.items()}
        except (TypeError, ValueError) as e:
            raise PersistenceError(str(self.path), f"Malformed watermark ({e})") from e

    def get(self, feed: str) -> int:
        """Watermark of ``feed``; 0 when nothing was processed yet."""
        with self._lock:
            return self._marks.get(feed, 0)

    def advance(self, feed: str, message_id: int) -> bool:
        """
        Move the watermark forward; it never moves back.

        Returns:
            True if the watermark changed
        """
        with self._lock:
            if message_id <= self._marks.get(feed, 0):
                return False
            self._marks[feed] = message_id
            return True

    def save(self) -> None:
        """Persist all watermarks."""
        with self._lock:
            data = dict(self._marks)
        write_json_atomic(self.path, data)

    def to_dict(self) -> dict[str, int]:
        with self._lock:
            return dict(self._marks)
