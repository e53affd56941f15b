"""
Field registry for FieldCrypt.

This package resolves, per model and field, whether a value is encrypted,
hashed or passed through, and which model a relation key leads to.
"""

from .field_registry import FieldDeclaration, FieldMode, FieldRegistry, FieldSpec, RelationDeclaration

__all__ = ["FieldDeclaration", "FieldMode", "FieldRegistry", "FieldSpec", "RelationDeclaration"]
