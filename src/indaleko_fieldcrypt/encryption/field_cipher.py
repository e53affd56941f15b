"""
Per-field encryption and hashing.

FieldCipher binds the caller's secrets to the codecs in ``cipher`` and
``digest``: each protected field gets its own derived key, so the same
value stored in two fields never yields the same ciphertext or digest.
"""

import hashlib
from functools import lru_cache

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from ..config import FieldCryptConfig
from ..errors import ConfigurationError, DecryptionError
from ..registry.field_registry import FieldMode, FieldSpec
from . import cipher
from .digest import digest as compute_digest, normalize
from .cipher import EncryptionAlgorithm


@lru_cache(maxsize=1024)
def derive_key(secret: str, purpose: str, context: str, iterations: int) -> bytes:
    """
    Derive a 256-bit key for one field and purpose.

    PBKDF2 stretches the secret with a salt bound to the purpose and the
    field context, so encryption and hashing keys differ per field.

    Args:
        secret: Caller-supplied secret
        purpose: "encrypt" or "hash"
        context: Field context, "<model>.<field>"
        iterations: PBKDF2 iteration count

    Returns:
        The derived key
    """
    salt = hashlib.sha256(f"{purpose}:{context}".encode("utf-8")).digest()[:16]
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=32,
        salt=salt,
        iterations=iterations,
    )
    return kdf.derive(secret.encode("utf-8"))


class FieldCipher:
    """
    Encodes and decodes protected field values.

    Encrypted fields go through the AEAD codec; hashed fields are normalized
    and digested. Non-string values always pass through unchanged.
    """

    def __init__(
        self,
        encryption_key: str,
        hash_key: str,
        algorithm: EncryptionAlgorithm | str = EncryptionAlgorithm.AES_GCM,
        key_iterations: int = 100000,
        deterministic: bool = True,
    ) -> None:
        """
        Initialize the field cipher.

        Args:
            encryption_key: Secret used for encrypted fields
            hash_key: Secret used for hashed fields, distinct from encryption_key
            algorithm: AEAD algorithm for new ciphertext
            key_iterations: PBKDF2 iteration count
            deterministic: Derive nonces from plaintext so equality filters match

        Raises:
            ConfigurationError: If a secret is missing, the secrets are equal
                or the algorithm is unknown
        """
        if not encryption_key or not hash_key:
            raise ConfigurationError("Both an encryption key and a hashing key are required")
        if encryption_key == hash_key:
            raise ConfigurationError("The encryption key and the hashing key must be distinct")
        try:
            self.algorithm = EncryptionAlgorithm(algorithm)
        except ValueError as e:
            raise ConfigurationError(f"Unsupported encryption algorithm: {algorithm}") from e
        if key_iterations < 1:
            raise ConfigurationError("key_iterations must be positive")

        self._encryption_key = encryption_key
        self._hash_key = hash_key
        self.key_iterations = key_iterations
        self.deterministic = deterministic

    @classmethod
    def from_config(cls) -> "FieldCipher":
        """Create a FieldCipher from FieldCryptConfig."""
        return cls(
            encryption_key=FieldCryptConfig.get_encryption_key(),
            hash_key=FieldCryptConfig.get_hash_key(),
            algorithm=FieldCryptConfig.get("encryption.algorithm", EncryptionAlgorithm.AES_GCM.value),
            key_iterations=int(FieldCryptConfig.get("encryption.key_iterations", 100000)),
            deterministic=bool(FieldCryptConfig.get("encryption.deterministic", True)),
        )

    def encryption_key_for(self, spec: FieldSpec) -> bytes:
        return derive_key(self._encryption_key, "encrypt", spec.context, self.key_iterations)

    def hash_key_for(self, spec: FieldSpec) -> bytes:
        return derive_key(self._hash_key, "hash", spec.context, self.key_iterations)

    def encode(self, spec: FieldSpec, value: object) -> object:
        """
        Convert a plaintext value to its stored form.

        Args:
            spec: The field being written or compared
            value: Plaintext value

        Returns:
            CipherString for encrypted fields, DigestString for hashed fields,
            the value itself for read-only fields and non-strings
        """
        if not isinstance(value, str):
            return value
        if spec.mode == FieldMode.HASHED:
            return compute_digest(normalize(value, spec.normalize), self.hash_key_for(spec))
        if spec.read_only:
            return value
        return cipher.encrypt(
            value,
            self.encryption_key_for(spec),
            algorithm=self.algorithm,
            deterministic=self.deterministic,
        )

    def decode(self, spec: FieldSpec, value: object) -> object:
        """
        Convert a stored encrypted value back to plaintext.

        Hashed fields have no inverse and are returned unchanged.

        Raises:
            DecryptionError: If the value is not valid ciphertext for this field
        """
        if spec.mode != FieldMode.ENCRYPTED or not isinstance(value, str):
            return value
        try:
            return cipher.decrypt(value, self.encryption_key_for(spec))
        except DecryptionError as e:
            raise DecryptionError(str(e), model=spec.model, field=spec.field) from e
