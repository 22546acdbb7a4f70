"""Content fingerprints for chunks.

Fingerprints identify a chunk by its text rather than its location, so
feedback keyed on them survives file renames and re-indexing.
"""

import hashlib
import re

FINGERPRINT_LENGTH = 16

_WHITESPACE = re.compile(r"\s+")


def normalize_text_for_fingerprint(text: str) -> str:
    """Lowercase, collapse whitespace runs, and trim."""
    return _WHITESPACE.sub(" ", text.lower()).strip()


def generate_chunk_fingerprint(text: str) -> str:
    """
    Compute a stable fingerprint for chunk text.

    Args:
        text: Raw chunk text

    Returns:
        First 16 hex characters (64 bits) of the SHA-256 digest of the
        normalized text
    """
    normalized = normalize_text_for_fingerprint(text)
    digest = hashlib.sha256(normalized.encode("utf-8")).hexdigest()
    return digest[:FINGERPRINT_LENGTH]
