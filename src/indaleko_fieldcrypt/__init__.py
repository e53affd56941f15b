"""
FieldCrypt - transparent field-level encryption for query trees.

This package sits between an application and its data-access engine:
fields declared as encrypted are stored as authenticated ciphertext and
decrypted on read, fields declared as hashed are stored as normalized
keyed digests that can still be matched by equality.
"""

from .config import FieldCryptConfig
from .encryption.field_cipher import FieldCipher
from .errors import (
    ConfigurationError,
    DecryptionError,
    FieldCryptError,
    UnsupportedFieldQueryError,
)
from .field_crypt_service import FieldCryptService, ModelDelegate, Operation
from .models import Encrypted, Hashed, ProtectedModel
from .registry import FieldMode, FieldRegistry, FieldSpec

__version__ = "0.1.0"

__all__ = [
    "ConfigurationError",
    "DecryptionError",
    "Encrypted",
    "FieldCipher",
    "FieldCryptConfig",
    "FieldCryptError",
    "FieldCryptService",
    "FieldMode",
    "FieldRegistry",
    "FieldSpec",
    "Hashed",
    "ModelDelegate",
    "Operation",
    "ProtectedModel",
    "UnsupportedFieldQueryError",
]
