"""
State management for the relay.

Provides the thread cache, per-feed watermarks, atomic JSON files and
the locks that keep concurrent work consistent.
"""

from .locks import FileLock, KeyedLock, LockError
from .storage import read_json, write_json_atomic
from .thread_cache import ThreadCache
from .tracking import WatermarkTracker

__all__ = [
    "FileLock",
    "KeyedLock",
    "LockError",
    "ThreadCache",
    "WatermarkTracker",
    "read_json",
    "write_json_atomic",
]
