"""Conflict materialization.

Conflicting edits are never merged. Both sides are kept as two new prompts
whose titles name the device each edit came from.
"""

import re
from dataclasses import replace
from datetime import datetime

from promptbank.models import Prompt, new_prompt_id
from promptbank.sync.protocol import RemotePrompt

_MONTHS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")

# " (from <device> - Oct 27)" or " (from <device> - Oct 27 14:05)"
_CONFLICT_SUFFIX = re.compile(r" \(from .+ - \w{3} \d{1,2}( \d{2}:\d{2})?\)$")


def format_conflict_time(when: datetime) -> str:
    """Format as ``"Oct 27 14:05"`` in local time."""
    local = when.astimezone()
    return f"{_MONTHS[local.month - 1]} {local.day} {local:%H:%M}"


def strip_conflict_suffix(title: str) -> str:
    return _CONFLICT_SUFFIX.sub("", title)


def conflict_title(title: str, device_name: str, when: datetime) -> str:
    """Build a fork title, replacing any earlier conflict suffix.

    "Review (from Laptop - Oct 1 09:00)" forked on Desktop becomes
    "Review (from Desktop - Oct 2 10:30)", never a nested suffix.
    """
    base = strip_conflict_suffix(title)
    return f"{base} (from {device_name} - {format_conflict_time(when)})"


def fork_conflict(
    local: Prompt, remote: RemotePrompt, local_device_name: str
) -> tuple[Prompt, Prompt]:
    """Create the two fork copies for a conflicting prompt.

    Both copies get fresh ids. Titles derive from the local title so that
    both forks share one base name.

    Args:
        local: The local side of the conflict
        remote: The remote side of the conflict
        local_device_name: Name of this device

    Returns:
        Tuple of (local_copy, remote_copy)
    """
    base_title = strip_conflict_suffix(local.title)

    local_copy = replace(
        local,
        id=new_prompt_id(),
        title=conflict_title(base_title, local_device_name, local.metadata.modified),
    )

    remote_copy = remote.to_prompt(new_prompt_id())
    remote_copy.title = conflict_title(base_title, remote.device_name, remote.updated_at)

    return local_copy, remote_copy
