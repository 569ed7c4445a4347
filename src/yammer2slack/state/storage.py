"""JSON state files written atomically."""

import json
import os
import tempfile
from pathlib import Path
from typing import Any

from ..error_handling import PersistenceError


def read_json(path: Path, default: Any = None) -> Any:
    """Read a JSON file.

    Args:
        path: File to read
        default: Value returned when the file does not exist

    Raises:
        PersistenceError: If the file exists but cannot be read or parsed
    """
    try:
        with open(path, encoding="utf-8") as f:
            return json.load(f)
    except FileNotFoundError:
        return default
    except (OSError, ValueError) as e:
        raise PersistenceError(str(path), f"Cannot load state ({e})") from e


def write_json_atomic(path: Path, data: Any) -> None:
    """Write JSON file atomically using temporary file.

    Readers see either the previous content or the new one, never a
    partial write.

    Raises:
        PersistenceError: If the file cannot be written
    """
    tmp_path = None
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(
            mode="w",
            delete=False,
            dir=path.parent,
            prefix=f".{path.name}.tmp",
            encoding="utf-8",
        ) as tmp_file:
            tmp_path = Path(tmp_file.name)
            json.dump(data, tmp_file, indent=2)
            tmp_file.flush()
            os.fsync(tmp_file.fileno())

        os.replace(tmp_path, path)
    except (OSError, TypeError, ValueError) as e:
        if tmp_path and tmp_path.exists():
            tmp_path.unlink()
        raise PersistenceError(str(path), f"Cannot save state ({e})") from e
