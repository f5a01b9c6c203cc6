"""Pre-flight quota checks.

Uploads are all-or-nothing: when a plan would exceed the remote prompt count or
storage limit, the whole sync fails before the first mutation.
"""

import json
import logging
from dataclasses import dataclass
from typing import Iterable

from promptbank.errors import QuotaExceededError
from promptbank.models import Prompt
from promptbank.sync.protocol import UserQuota

logger = logging.getLogger(__name__)

DEFAULT_WARNING_THRESHOLD = 90.0


def payload_size(prompt: Prompt) -> int:
    """UTF-8 size in bytes of a prompt's JSON representation."""
    return len(json.dumps(prompt.to_dict(), ensure_ascii=False).encode("utf-8"))


def measure_uploads(prompts: Iterable[Prompt]) -> int:
    return sum(payload_size(prompt) for prompt in prompts)


@dataclass
class QuotaCheck:
    """Outcome of a successful quota check."""

    prospective_count: int
    prospective_bytes: int
    percentage_used: float
    warning: bool = False

    @property
    def warning_percentage(self) -> float | None:
        return self.percentage_used if self.warning else None


class QuotaGuard:
    """Validate that a batch of uploads fits in the remote quota."""

    def __init__(self, warning_threshold: float = DEFAULT_WARNING_THRESHOLD):
        self.warning_threshold = warning_threshold

    def check(self, quota: UserQuota, create_count: int, upload_bytes: int) -> QuotaCheck:
        """Check prospective usage against the quota.

        Args:
            quota: Usage and limits reported by the backend
            create_count: Number of uploads that create new remote prompts
            upload_bytes: Total payload size of all uploads

        Returns:
            QuotaCheck describing prospective usage

        Raises:
            QuotaExceededError: Either limit would be exceeded
        """
        prospective_count = quota.prompt_count + create_count
        prospective_bytes = quota.storage_bytes + upload_bytes

        if prospective_count > quota.prompt_limit:
            raise QuotaExceededError(
                "promptLimit", quota.prompt_limit, quota.prompt_count, create_count
            )
        if prospective_bytes > quota.storage_limit:
            raise QuotaExceededError(
                "storageLimit", quota.storage_limit, quota.storage_bytes, upload_bytes
            )

        percentage = max(
            _percent(prospective_count, quota.prompt_limit),
            _percent(prospective_bytes, quota.storage_limit),
        )
        check = QuotaCheck(
            prospective_count=prospective_count,
            prospective_bytes=prospective_bytes,
            percentage_used=percentage,
            warning=percentage >= self.warning_threshold,
        )
        if check.warning:
            logger.warning(f"Sync quota at {percentage:.1f}% after this sync")
        return check


def _percent(used: int, limit: int) -> float:
    if limit <= 0:
        return 100.0
    return used / limit * 100.0
