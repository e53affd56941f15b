"""
Normalization and keyed hashing for searchable fields.

Hashed fields are stored as an HMAC-SHA256 digest of their normalized value,
so equality lookups match regardless of case, surrounding whitespace or
diacritics. Digests are one-way; there is no decode path.
"""

import hashlib
import hmac
import re
import unicodedata
from typing import Iterable


DIGEST_PATTERN = re.compile(r"^[0-9a-f]{64}$")

DEFAULT_NORMALIZATION = ("trim", "diacritics", "lowercase")


def _strip_diacritics(text: str) -> str:
    decomposed = unicodedata.normalize("NFKD", text)
    return "".join(c for c in decomposed if not unicodedata.combining(c))


NORMALIZATION_STEPS = {
    "trim": str.strip,
    "diacritics": _strip_diacritics,
    "lowercase": str.lower,
    "uppercase": str.upper,
}


def normalize(text: str, steps: Iterable[str] = DEFAULT_NORMALIZATION) -> str:
    """
    Normalize text before hashing.

    The default steps trim surrounding whitespace, strip diacritical marks
    and lower-case, so " François" and "FRANCOIS" normalize identically.

    Args:
        text: The text to normalize
        steps: Names of the steps to apply, in order

    Returns:
        The normalized text
    """
    for step in steps:
        text = NORMALIZATION_STEPS[step](text)
    return text


def digest(normalized: str, key: bytes) -> str:
    """
    Compute the keyed digest of a normalized value.

    Args:
        normalized: Output of :func:`normalize`
        key: Hashing key

    Returns:
        64-character lowercase hex DigestString
    """
    return hmac.new(key, normalized.encode("utf-8"), hashlib.sha256).hexdigest()


def is_digest_string(value: object) -> bool:
    """Check whether a value looks like a DigestString."""
    return isinstance(value, str) and DIGEST_PATTERN.match(value) is not None
