# src/cache/fingerprint.py — v3
"""Order-independent fingerprinting of discovered URL sets.

A fingerprint identifies *which* pages were analyzed, independent of the order
the crawler returned them in. It is half of the cache key; the other half is
the site domain.

Algorithm: de-duplicate, sort lexicographically, join with ``|``, hash the UTF-8
bytes with 32-bit FNV-1a and render the unsigned result in base 36.
FNV-1a is not cryptographic; collisions are acceptable for cache addressing.
"""

from __future__ import annotations

from collections.abc import Iterable
from urllib.parse import urlsplit

FNV_OFFSET_BASIS = 2166136261
FNV_PRIME = 16777619
URL_SEPARATOR = "|"

_BASE36_ALPHABET = "0123456789abcdefghijklmnopqrstuvwxyz"
_UINT32_MASK = 0xFFFFFFFF


def compute_fingerprint(urls: Iterable[str]) -> str:
    """Compute the fingerprint of a URL set.

    Args:
        urls: Any iterable of URL strings. Order and duplicates are ignored.

    Returns:
        Base-36 encoded 32-bit FNV-1a hash of the canonical URL list.
    """
    canonical = URL_SEPARATOR.join(sorted(set(urls)))
    return to_base36(fnv1a_32(canonical.encode("utf-8")))


def fnv1a_32(data: bytes) -> int:
    """32-bit FNV-1a over raw bytes."""
    h = FNV_OFFSET_BASIS
    for byte in data:
        h ^= byte
        h = (h * FNV_PRIME) & _UINT32_MASK
    return h


def to_base36(value: int) -> str:
    """Render a non-negative integer in lowercase base 36."""
    if value < 0:
        raise ValueError(f"base36 requires a non-negative value, got {value}")
    if value == 0:
        return "0"
    digits: list[str] = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36_ALPHABET[remainder])
    return "".join(reversed(digits))


def extract_domain(url: str) -> str:
    """Return the host of ``url``, or ``url`` itself when it has none."""
    try:
        host = urlsplit(url).hostname
    except ValueError:
        return url
    return host or url


def make_cache_key(prefix: str, domain: str, fingerprint: str) -> str:
    """Build the storage key for a (domain, fingerprint) pair."""
    return f"{prefix}:{domain}:{fingerprint}"
