"""
Deterministic hashing for idempotency keys.

Execution names and object keys must be reproducible from the same inputs
so that a redelivered event maps to the same downstream identity.

Examples:
    >>> compute_hash("o-1", 1700000000000) == compute_hash("o-1", 1700000000000)
    True
    >>> compute_hash("a", "b") != compute_hash("b", "a")
    True
    >>> len(compute_hash("test", length=16))
    16

Tags:
    hashing, deduplication, idempotency, orderstream
"""

import hashlib
from typing import Any


def compute_hash(*values: Any, length: int = 32) -> str:
    """
    Compute a deterministic hash from values.

    Values are stringified and joined with ``|`` before SHA-256, so the hash
    is order-dependent and type-agnostic.

    Args:
        *values: Values to hash (converted to strings)
        length: Hex digest length (default 32 = 128 bits)

    Returns:
        Hex string of specified length
    """
    content = "|".join(str(v) for v in values)
    return hashlib.sha256(content.encode()).hexdigest()[:length]
