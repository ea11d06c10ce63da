"""Stable content hashes for cache keys."""

import hashlib


def sha256_hex(text: str) -> str:
    """Hex SHA-256 of UTF-8 text. Same text always yields same digest."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()
