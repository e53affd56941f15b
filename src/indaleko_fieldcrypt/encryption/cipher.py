"""
Authenticated encryption of individual string values.

Ciphertext is serialized as a self-describing CipherString::

    v1:<algorithm-id>:<nonce-base64>:<ciphertext-base64>

so a stored value can be recognized as ciphertext (versus legacy plaintext)
without any external hint, and round-trips through text columns.
"""

import base64
import binascii
import hashlib
import hmac
import os
import re
from enum import Enum

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM, ChaCha20Poly1305
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from ..errors import DecryptionError


CIPHER_VERSION = "v1"

NONCE_SIZE = 12

# HKDF info for the subkey that derives synthetic nonces
NONCE_KEY_INFO = b"fieldcrypt v1 nonce"

_B64 = r"[A-Za-z0-9+/]+={0,2}"

CIPHER_STRING_PATTERN = re.compile(
    rf"^{CIPHER_VERSION}:(AES-GCM|ChaCha20-Poly1305):({_B64}):({_B64})$"
)


class EncryptionAlgorithm(str, Enum):
    """Supported encryption algorithms."""

    AES_GCM = "AES-GCM"
    CHACHA20_POLY1305 = "ChaCha20-Poly1305"


def _aead(algorithm: EncryptionAlgorithm, key: bytes) -> AESGCM | ChaCha20Poly1305:
    if algorithm == EncryptionAlgorithm.AES_GCM:
        return AESGCM(key)
    return ChaCha20Poly1305(key)


def _header(algorithm: EncryptionAlgorithm) -> bytes:
    return f"{CIPHER_VERSION}:{algorithm.value}".encode("utf-8")


def nonce_key(key: bytes) -> bytes:
    """Derive the subkey used for synthetic nonces, separate from the AEAD key."""
    return HKDF(algorithm=hashes.SHA256(), length=32, salt=None, info=NONCE_KEY_INFO).derive(key)


def is_cipher_string(value: object) -> bool:
    """Check whether a value looks like a CipherString."""
    return isinstance(value, str) and CIPHER_STRING_PATTERN.match(value) is not None


def encrypt(
    plaintext: object,
    key: bytes,
    algorithm: EncryptionAlgorithm = EncryptionAlgorithm.AES_GCM,
    deterministic: bool = True,
) -> object:
    """
    Encrypt a string value.

    With ``deterministic`` set, the nonce is an HMAC of the plaintext under
    a subkey derived from ``key`` (a synthetic IV), so equal plaintexts produce equal
    CipherStrings and can be matched by equality filters. Otherwise a random
    nonce is used.

    Args:
        plaintext: The value to encrypt; non-strings are returned unchanged
        key: 32-byte encryption key
        algorithm: The AEAD algorithm to use
        deterministic: Derive the nonce from the plaintext

    Returns:
        The CipherString, or the original value if it is not a string
    """
    if not isinstance(plaintext, str):
        return plaintext

    data = plaintext.encode("utf-8")
    if deterministic:
        nonce = hmac.new(nonce_key(key), data, hashlib.sha256).digest()[:NONCE_SIZE]
    else:
        nonce = os.urandom(NONCE_SIZE)

    # AEAD output is ciphertext followed by the 16-byte tag
    ciphertext = _aead(algorithm, key).encrypt(nonce, data, _header(algorithm))

    return ":".join([
        CIPHER_VERSION,
        algorithm.value,
        base64.b64encode(nonce).decode("ascii"),
        base64.b64encode(ciphertext).decode("ascii"),
    ])


def decrypt(cipher_string: object, key: bytes) -> object:
    """
    Decrypt a CipherString.

    Args:
        cipher_string: The serialized ciphertext; non-strings are returned unchanged
        key: 32-byte encryption key

    Returns:
        The plaintext string

    Raises:
        DecryptionError: If the value is not a CipherString or fails authentication
    """
    if not isinstance(cipher_string, str):
        return cipher_string

    match = CIPHER_STRING_PATTERN.match(cipher_string)
    if match is None:
        raise DecryptionError("value is not in the expected ciphertext format")

    algorithm = EncryptionAlgorithm(match.group(1))
    try:
        nonce = base64.b64decode(match.group(2), validate=True)
        ciphertext = base64.b64decode(match.group(3), validate=True)
    except binascii.Error as e:
        raise DecryptionError(f"invalid base64 in ciphertext: {e}") from e

    if len(nonce) != NONCE_SIZE:
        raise DecryptionError("invalid nonce length")

    try:
        data = _aead(algorithm, key).decrypt(nonce, ciphertext, _header(algorithm))
    except InvalidTag as e:
        raise DecryptionError("authentication failed") from e

    try:
        return data.decode("utf-8")
    except UnicodeDecodeError as e:
        raise DecryptionError("decrypted value is not valid UTF-8") from e
