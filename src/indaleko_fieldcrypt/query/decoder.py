"""
Result decoder.

Walks result payloads returned by the storage engine, including relation
sub-payloads pulled in by ``include`` or ``select``, and decrypts every
encrypted field back to plaintext. Hashed fields are returned as stored.
"""

import logging
from typing import Any, Mapping

from ..encryption.cipher import is_cipher_string
from ..encryption.field_cipher import FieldCipher
from ..errors import DecryptionError
from ..registry.field_registry import FieldMode, FieldRegistry, FieldSpec
from .traversal import rebuild_sequence


logger = logging.getLogger(__name__)

# Aggregate groups whose values are field values of the same model
AGGREGATE_KEYS = frozenset({"_min", "_max"})


class ResultDecoder:
    """Decrypts encrypted fields in result payloads."""

    def __init__(self, registry: FieldRegistry, cipher: FieldCipher) -> None:
        self.registry = registry
        self.cipher = cipher

    def decode(self, model: str, payload: Any) -> Any:
        """
        Decode a result payload of ``model``.

        Args:
            model: Model the payload belongs to
            payload: A record, a list of records, or any other result value

        Returns:
            A new payload with encrypted fields decrypted

        Raises:
            DecryptionError: If a strict field holds a value that cannot be decrypted
        """
        if isinstance(payload, (list, tuple)):
            return rebuild_sequence(payload, [self.decode(model, item) for item in payload])
        if not isinstance(payload, Mapping):
            return payload

        out = {}
        for key, value in payload.items():
            spec = self.registry.resolve(model, key)
            if spec is not None:
                out[key] = self._decode_field(spec, value)
                continue
            target = self.registry.relation(model, key)
            if target is not None:
                out[key] = self.decode(target, value)
            elif key in AGGREGATE_KEYS:
                out[key] = self.decode(model, value)
            else:
                out[key] = value
        return out

    def _decode_field(self, spec: FieldSpec, value: Any) -> Any:
        if spec.mode != FieldMode.ENCRYPTED:
            return value
        if spec.read_only and not is_cipher_string(value):
            return value
        try:
            return self.cipher.decode(spec, value)
        except DecryptionError:
            if spec.strict:
                raise
            logger.warning("Could not decrypt %s.%s, returning the stored value", spec.model, spec.field)
            return value
