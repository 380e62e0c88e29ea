"""Short key derivation for bookmarks.

A URL maps to a ladder of candidate keys: successive prefixes of the
url-safe base64 SHA-256 digest of the URL string, shortest first. The
resolver takes the first free rung; a longer rung is only used when a
shorter one already belongs to a different URL.

Example::

    >>> generate_key_candidates("https://example.com/a")[:3]
    ['Lc4', 'Lc4K', 'Lc4KT']
"""

import base64
import hashlib

__all__ = ["DEFAULT_CANDIDATE_COUNT", "DEFAULT_MIN_LENGTH", "generate_key_candidates"]

DEFAULT_MIN_LENGTH = 3
DEFAULT_CANDIDATE_COUNT = 12

# base64 characters that are not safe inside a URL path segment
_URL_UNSAFE = str.maketrans("", "", "/+")


def _encoded_digest(url: str) -> str:
    digest = hashlib.sha256(url.encode("utf-8")).digest()
    return base64.b64encode(digest).decode("ascii").translate(_URL_UNSAFE)


def generate_key_candidates(
    url: str,
    min_length: int = DEFAULT_MIN_LENGTH,
    count: int = DEFAULT_CANDIDATE_COUNT,
) -> list[str]:
    """Return the candidate keys for ``url``, strictly increasing in length.

    Args:
        url: Raw URL string, hashed exactly as given.
        min_length: Width of the first candidate.
        count: Number of candidates.

    Raises:
        ValueError: If ``min_length`` or ``count`` is not positive.
    """
    if min_length < 1 or count < 1:
        raise ValueError("min_length and count must be positive")

    encoded = _encoded_digest(url)
    widths = range(min_length, min(min_length + count, len(encoded) + 1))
    return [encoded[:width] for width in widths]
