"""SHA-256 content fingerprints used to detect duplicate processing requests."""

import hashlib
import re

_WHITESPACE = re.compile(r"\s+")
_SHA256_HEX = re.compile(r"^[a-f0-9]{64}$", re.IGNORECASE)


def generate_content_hash(content: str | bytes) -> str:
    """Fingerprint content after trimming and collapsing whitespace.

    Text that differs only in spacing hashes identically. Bytes are hashed
    verbatim.
    """
    if not content:
        raise ValueError("Content cannot be empty for hash generation")

    if isinstance(content, bytes):
        return hashlib.sha256(content).hexdigest()

    normalized = _WHITESPACE.sub(" ", content.strip())
    return hashlib.sha256(normalized.encode("utf-8")).hexdigest()


def is_valid_hash(value: str) -> bool:
    return bool(_SHA256_HEX.match(value or ""))
