"""Content hashing for change detection.

The hash covers exactly title, content and category after trimming
whitespace, serialized as compact JSON in that key order and digested with
SHA-256. Every device and every client must produce the same digest for the
same semantic content, so the canonical form must not change.
"""

import hashlib
import json

from promptbank.models import Prompt


def _canonical(title: str, content: str, category: str | None) -> str:
    return json.dumps(
        {
            "title": title.strip(),
            "content": content.strip(),
            "category": (category or "").strip(),
        },
        separators=(",", ":"),
        ensure_ascii=False,
    )


def compute_content_hash(prompt: Prompt) -> str:
    """Compute the content hash of a prompt.

    Args:
        prompt: Prompt to hash

    Returns:
        64-character lowercase hex SHA-256 digest
    """
    canonical = _canonical(prompt.title, prompt.content, prompt.category)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def matches_hash(prompt: Prompt, expected_hash: str) -> bool:
    """Check whether a prompt's current content matches a known hash."""
    return compute_content_hash(prompt) == expected_hash
