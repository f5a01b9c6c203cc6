"""HTTP client for the prompt sync backend.

The backend exposes named functions, each invoked with a JSON POST to
``<base_url>/functions/v1/<name>``.
"""

import logging
from typing import Any, Optional

import httpx

from promptbank.errors import (
    AuthError,
    ConflictError,
    NetworkError,
    PermissionDeniedError,
    SyncConflictType,
)

logger = logging.getLogger(__name__)

FUNCTIONS_PATH = "/functions/v1"


class PromptBankClient:
    """Client for the prompt sync backend functions."""

    def __init__(
        self,
        base_url: str,
        token: str,
        timeout: float = 30,
        verify_ssl: bool = True,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        """Initialize client.

        Args:
            base_url: Backend URL
            token: Bearer access token
            timeout: Request timeout in seconds
            verify_ssl: Whether to verify SSL certificates
            transport: Optional httpx transport (used by tests)
        """
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout

        self.client = httpx.Client(
            timeout=timeout,
            verify=verify_ssl,
            headers={"Authorization": f"Bearer {token}"},
            transport=transport,
        )

    def invoke(self, function: str, body: dict[str, Any]) -> Any:
        """Invoke a backend function.

        Args:
            function: Function name, e.g. "sync-prompt"
            body: JSON request body

        Returns:
            Decoded JSON response, or None for an empty body

        Raises:
            AuthError: 401
            PermissionDeniedError: 403
            ConflictError: 409
            NetworkError: Transport failure or any other error status
        """
        url = f"{self.base_url}{FUNCTIONS_PATH}/{function}"
        try:
            response = self.client.post(url, json=body)
        except httpx.HTTPError as e:
            raise NetworkError(f"{function} failed: {e}") from e

        if response.is_success:
            if not response.content:
                return None
            return response.json()

        payload = _error_payload(response)
        message = payload.get("message") or payload.get("error") or response.reason_phrase

        if response.status_code == 401:
            raise AuthError("Your session has expired. Sign in again and retry the sync.")
        if response.status_code == 403:
            raise PermissionDeniedError(
                f"{function} denied: {message}", code=payload.get("error")
            )
        if response.status_code == 409:
            raise parse_conflict(payload, message)

        raise NetworkError(
            f"{function} failed with HTTP {response.status_code}: {message}",
            status_code=response.status_code,
            body=payload,
        )

    def close(self):
        """Close HTTP client."""
        self.client.close()

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()


def parse_conflict(payload: dict, message: str = "") -> ConflictError:
    """Build a ConflictError from a 409 body.

    Bodies look like ``{"error": "VERSION_CONFLICT", "message": ...,
    "details": {"expectedVersion": 3, "actualVersion": 4}}``. Older servers
    send a generic "conflict" error, which always meant the prompt had been
    deleted.
    """
    code = payload.get("error")
    details = payload.get("details") or {}
    try:
        conflict_type = SyncConflictType(code)
    except ValueError:
        logger.warning("Received legacy 409 conflict format, assuming PROMPT_DELETED")
        conflict_type = SyncConflictType.PROMPT_DELETED
        message = "Conflict detected (legacy format)"
    return ConflictError(conflict_type, message or "Sync conflict", details)


def _error_payload(response: httpx.Response) -> dict:
    try:
        payload = response.json()
    except ValueError:
        return {"message": response.text} if response.text else {}
    return payload if isinstance(payload, dict) else {}
