"""SHA-256 password digests as stored in the students and teachers tables."""

from __future__ import annotations

import hashlib
import hmac
import re

_SHA256_HEX_RE = re.compile(r"^[0-9a-f]{64}$")


def hash_password(password: str) -> str:
    """Return the lower-case hex SHA-256 digest of ``password``."""
    return hashlib.sha256(password.encode("utf-8")).hexdigest()


def is_password_hash(value: str) -> bool:
    return bool(_SHA256_HEX_RE.match(value))


def normalize_password(value: str) -> str:
    """Keep stored digests as-is and hash anything else."""
    candidate = value.strip()
    if is_password_hash(candidate.lower()):
        return candidate.lower()
    return hash_password(value)


def verify_password(password: str, stored_hash: str | None) -> bool:
    """Constant-time comparison of ``password`` against a stored digest."""
    supplied = hash_password(password)
    expected = stored_hash if isinstance(stored_hash, str) else ""
    # Always run the comparison, even when no digest is stored.
    return hmac.compare_digest(supplied, expected.lower()) and bool(expected)
