"""
Base model interfaces for FieldCrypt.

This module provides the Pydantic base class and markers for declaring
encrypted and hashed fields on application models.
"""

from .protected_model import Encrypted, Hashed, ProtectedModel

__all__ = ["Encrypted", "Hashed", "ProtectedModel"]
