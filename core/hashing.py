"""
Content digests for evidence artifacts.

Evidence is content-addressed: the digest is taken over the raw bytes as
received, before storage or timestamping, so identical uploads always
produce identical digests.
"""

import hashlib
import re

DIGEST_LENGTH = 64
_DIGEST_RE = re.compile(r"^[0-9a-f]{64}$")


def compute_digest(content: bytes) -> str:
    """
    Calculate the SHA-256 digest of raw bytes.

    Args:
        content: Artifact bytes; empty input is allowed

    Returns:
        Lowercase hex digest (64 characters)
    """
    return hashlib.sha256(content).hexdigest()


def is_valid_digest(value) -> bool:
    """Check that a caller-supplied digest has the SHA-256 hex shape."""
    return isinstance(value, str) and bool(_DIGEST_RE.match(value))
