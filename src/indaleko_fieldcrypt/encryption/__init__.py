"""
Encryption utilities for FieldCrypt.

This package provides the codecs used to protect individual field values:
authenticated encryption for encrypted fields and normalized keyed
digests for hashed fields. ``FieldCipher`` (in ``field_cipher``) binds
them to per-field keys.
"""

from .cipher import (
    CIPHER_STRING_PATTERN,
    EncryptionAlgorithm,
    decrypt,
    encrypt,
    is_cipher_string,
)
from .digest import DIGEST_PATTERN, digest, is_digest_string, normalize

__all__ = [
    "CIPHER_STRING_PATTERN",
    "DIGEST_PATTERN",
    "EncryptionAlgorithm",
    "decrypt",
    "digest",
    "encrypt",
    "is_cipher_string",
    "is_digest_string",
    "normalize",
]
