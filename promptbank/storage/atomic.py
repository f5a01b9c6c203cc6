"""Atomic file replacement for JSON documents."""

import fcntl
import json
import os
import tempfile
from pathlib import Path
from typing import Any

from promptbank.errors import StorageError


def atomic_write_text(path: Path, content: str) -> None:
    """Write text to ``path`` atomically.

    Writes to a temporary file in the same directory, fsyncs it and renames it
    over the target, so readers see either the old or the new document.

    Raises:
        StorageError: The file could not be written
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    try:
        fd, temp_path = tempfile.mkstemp(
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
            text=True,
        )

        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                fcntl.flock(f.fileno(), fcntl.LOCK_EX)
                try:
                    f.write(content)
                    f.flush()
                    os.fsync(f.fileno())
                finally:
                    fcntl.flock(f.fileno(), fcntl.LOCK_UN)

            os.replace(temp_path, path)
        except Exception:
            try:
                os.unlink(temp_path)
            except OSError:
                pass
            raise

    except OSError as e:
        raise StorageError(f"Failed to write {path}: {e}") from e


def atomic_write_json(path: Path, data: Any) -> None:
    atomic_write_text(path, json.dumps(data, indent=2, ensure_ascii=False) + "\n")


def read_json(path: Path) -> Any:
    """Read a JSON document under a shared lock. Returns None if missing."""
    if not path.exists():
        return None
    with open(path, "r", encoding="utf-8") as f:
        fcntl.flock(f.fileno(), fcntl.LOCK_SH)
        try:
            return json.load(f)
        finally:
            fcntl.flock(f.fileno(), fcntl.LOCK_UN)
