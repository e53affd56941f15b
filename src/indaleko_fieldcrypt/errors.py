"""
Exception types for FieldCrypt.

Initialization problems raise ConfigurationError, per-query decode failures
raise DecryptionError, and unsupported ordering or range operators on
protected fields are reported as UnsupportedFieldQueryError diagnostics.
"""


class FieldCryptError(Exception):
    """Base class for all FieldCrypt errors."""


class ConfigurationError(FieldCryptError):
    """Raised when field registrations, keys or settings are invalid."""


class DecryptionError(FieldCryptError):
    """Raised when a stored value is not valid ciphertext or fails authentication."""

    def __init__(self, message: str, model: str | None = None, field: str | None = None) -> None:
        self.model = model
        self.field = field
        if model and field:
            message = f"{model}.{field}: {message}"
        super().__init__(message)


class UnsupportedFieldQueryError(FieldCryptError):
    """
    An ordering or range directive targets an encrypted or hashed field.

    Instances are handed to the diagnostic reporter rather than raised;
    the offending directive is dropped and the query proceeds.
    """

    def __init__(self, model: str, field: str, operator: str) -> None:
        self.model = model
        self.field = field
        self.operator = operator
        super().__init__(
            f"Unsupported '{operator}' on protected field {model}.{field}: "
            "encrypted and hashed values cannot be ordered or range-compared, "
            "the directive was dropped"
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, UnsupportedFieldQueryError):
            return NotImplemented
        return (self.model, self.field, self.operator) == (other.model, other.field, other.operator)

    def __hash__(self) -> int:
        return hash((self.model, self.field, self.operator))
