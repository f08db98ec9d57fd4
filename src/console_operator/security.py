"""Secret generation and redaction.

SECURITY INVARIANTS:
1. Credentials are generated from the ``secrets`` CSPRNG only
2. Generated credentials carry a fixed 256 bits of entropy
3. Secret values never reach a log record in clear text
"""

from __future__ import annotations

import secrets
from collections.abc import Callable

SECRET_BITS = 256
SECRET_BYTES = SECRET_BITS // 8

SecretGenerator = Callable[[], str]


def random_secret() -> str:
    """Return a URL-safe string encoding 256 random bits."""
    return secrets.token_urlsafe(SECRET_BYTES)


def redact(value: str | None) -> str:
    """Mask a secret value for logging.

    Only the length is reported; no character of the value is kept.
    """
    if not value:
        return "<empty>"
    return f"<redacted len={len(value)}>"
