"""
Persistent map from Yammer threads to Slack threads.

The cache file holds the known networks and one entry per resolved
thread::

    {"Networks": [{"ID": 1, "Name": "Contoso"}],
     "ThreadMap": {"42": {"ChannelID": "C1", "ChannelName": "contoso-dm", "TS": "1.2"}}}

Entries are never removed automatically.
"""

import threading
from pathlib import Path
from typing import Optional

from ..error_handling import PersistenceError
from ..models import Network, Thread
from .storage import read_json, write_json_atomic


class ThreadCache:
    """
    Thread map and network list, saved after every change.

    All access goes through an internal lock; the resolver adds its own
    per-thread serialization on top.
    """

    def __init__(self, path: str | Path):
        """
        Initialize thread cache.

        Args:
            path: Path to the cache file
        """
        self.path = Path(path)
        self._lock = threading.RLock()
        self.networks: list[Network] = []
        self.thread_map: dict[int, Thread] = {}

    @classmethod
    def load(cls, path: str | Path) -> "ThreadCache":
        """
        Load the cache, empty if the file does not exist.

        Raises:
            PersistenceError: If the file is malformed
        """
        cache = cls(path)
        data = read_json(cache.path, default={})
        try:
            cache.networks = [Network.from_dict(n) for n in data.get("Networks") or []]
            cache.thread_map = {
                int(thread_id): Thread.from_dict(entry)
                for thread_id, entry in (data.get("ThreadMap") or {}).items()
            }
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise PersistenceError(str(cache.path), f"Malformed thread cache ({e})") from e
        return cache

    def to_dict(self) -> dict:
        with self._lock:
            return {
                "Networks": [n.to_dict() for n in self.networks],
                "ThreadMap": {
                    str(thread_id): thread.to_dict()
                    for thread_id, thread in sorted(self.thread_map.items())
                },
            }

    def save(self) -> None:
        """Write the cache to disk atomically."""
        write_json_atomic(self.path, self.to_dict())

    def get_thread(self, thread_id: int) -> Optional[Thread]:
        with self._lock:
            return self.thread_map.get(thread_id)

    def put_thread(self, thread_id: int, thread: Thread) -> None:
        """Record a resolved thread and persist before returning."""
        with self._lock:
            self.thread_map[thread_id] = thread
            self.save()

    def find_network(self, network_id: int) -> Optional[Network]:
        with self._lock:
            for network in self.networks:
                if network.id == network_id:
                    return network
            return None

    def replace_networks(self, networks: list[Network]) -> None:
        """Swap in a freshly fetched network list and persist it."""
        with self._lock:
            self.networks = list(networks)
            self.save()
