"""File-backed local prompt store.

All prompts live in a single JSON document. Every mutation is a full
read-modify-write under an exclusive lock, finished with an atomic replace,
so concurrent writers never interleave and a crash never leaves a torn file.
"""

import fcntl
import json
import logging
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from promptbank.errors import StorageError
from promptbank.models import Prompt
from promptbank.storage.atomic import atomic_write_json, read_json

logger = logging.getLogger(__name__)

PROMPTS_FILENAME = "prompts.json"
STORE_FORMAT_VERSION = 1


class FilePromptStore:
    """Local prompt collection stored as <storage_dir>/prompts.json."""

    def __init__(self, storage_dir: Path):
        self.storage_dir = Path(storage_dir)
        self.prompts_file = self.storage_dir / PROMPTS_FILENAME
        self.lock_file = self.storage_dir / f".{PROMPTS_FILENAME}.lock"
        self._lock = threading.Lock()

    def list(self) -> list[Prompt]:
        """Load all prompts in stored order."""
        return [Prompt.from_dict(item) for item in self._read()["prompts"]]

    def get(self, prompt_id: str) -> Prompt | None:
        for item in self._read()["prompts"]:
            if item.get("id") == prompt_id:
                return Prompt.from_dict(item)
        return None

    def save(self, prompt: Prompt) -> Prompt:
        """Insert or replace a prompt by id."""
        with self._exclusive():
            document = self._read()
            items = document["prompts"]
            for index, item in enumerate(items):
                if item.get("id") == prompt.id:
                    items[index] = prompt.to_dict()
                    break
            else:
                items.append(prompt.to_dict())
            atomic_write_json(self.prompts_file, document)
        return prompt

    def delete(self, prompt_id: str) -> bool:
        """Remove a prompt.

        Returns:
            True if the prompt existed
        """
        with self._exclusive():
            document = self._read()
            remaining = [item for item in document["prompts"] if item.get("id") != prompt_id]
            if len(remaining) == len(document["prompts"]):
                return False
            document["prompts"] = remaining
            atomic_write_json(self.prompts_file, document)
        logger.debug(f"Deleted prompt {prompt_id}")
        return True

    def _read(self) -> dict:
        try:
            document = read_json(self.prompts_file)
        except (OSError, json.JSONDecodeError) as e:
            raise StorageError(f"Failed to read {self.prompts_file}: {e}") from e
        if document is None:
            return {"version": STORE_FORMAT_VERSION, "prompts": []}
        if isinstance(document, list):
            # Early files were a bare list of prompts
            return {"version": STORE_FORMAT_VERSION, "prompts": document}
        document.setdefault("prompts", [])
        return document

    @contextmanager
    def _exclusive(self) -> Iterator[None]:
        """Serialize writers across threads and processes."""
        self.storage_dir.mkdir(parents=True, exist_ok=True)
        with self._lock:
            with open(self.lock_file, "a") as lock:
                fcntl.flock(lock.fileno(), fcntl.LOCK_EX)
                try:
                    yield
                finally:
                    fcntl.flock(lock.fileno(), fcntl.LOCK_UN)
