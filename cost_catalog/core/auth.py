"""
Privileged-caller check for write operations.
"""

import hmac
from typing import Optional

from .errors import UnauthorizedError


def require_admin_key(provided: Optional[str], expected: Optional[str]) -> None:
    """Ensure a write is made with the configured admin key.

    Writes are refused outright when no admin key is configured.

    Raises:
        UnauthorizedError: If the key is missing, unconfigured or wrong
    """
    if not expected:
        raise UnauthorizedError("Writes are disabled: no admin key configured")
    if not provided:
        raise UnauthorizedError("Missing API key")
    if not hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8")):
        raise UnauthorizedError("Invalid API key")
