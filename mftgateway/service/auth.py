from __future__ import annotations

import hashlib
import hmac
import re
from typing import Any, Optional

from mftgateway.logging import get_logger

logger = get_logger(__name__)

_UUID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$",
    re.IGNORECASE,
)
MIN_IDENTITY_LENGTH = 8


def _digest(value: str) -> bytes:
    return hashlib.sha256(value.encode("utf-8")).digest()


class CredentialValidator:
    """Checks the shared API secret presented in the ``x-api-key`` header.

    Both sides are reduced to fixed-size SHA-256 digests before the
    constant-time comparison, so neither the position of the first differing
    byte nor a length mismatch changes how long the check takes.
    """

    def __init__(self, secret: Optional[str]) -> None:
        self._secret_digest = _digest(secret) if secret else None

    @property
    def is_configured(self) -> bool:
        return self._secret_digest is not None

    def validate(self, presented: Any) -> bool:
        if self._secret_digest is None:
            logger.error(
                "api_secret_not_configured",
                message="API_SECRET_KEY is not set; rejecting all credentials",
            )
            return False
        if not isinstance(presented, str) or not presented:
            return False
        return hmac.compare_digest(_digest(presented), self._secret_digest)


def validate_identity(value: Any) -> bool:
    """Accept a canonical UUID or any identifier of at least 8 characters."""
    if not isinstance(value, str) or not value:
        return False
    return bool(_UUID_PATTERN.match(value)) or len(value) >= MIN_IDENTITY_LENGTH
