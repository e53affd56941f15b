"""
Base protected model implementation.

This module lets applications declare field protection directly on
Pydantic models, using ``Annotated`` markers::

    class User(ProtectedModel):
        id: int | None = None
        email: str
        name: Annotated[str, Encrypted(strict=True)]
        posts: list["Post"] = []

Annotations that refer to other ProtectedModel classes are relations.
"""

import types
from dataclasses import dataclass
from typing import Annotated, Any, ClassVar, TypeVar, Union, get_args, get_origin

from pydantic import BaseModel, ConfigDict

from ..encryption.digest import DEFAULT_NORMALIZATION
from ..registry.field_registry import FieldDeclaration, FieldSpec


@dataclass(frozen=True)
class Encrypted:
    """Marks a field as encrypted at rest."""

    strict: bool = False
    read_only: bool = False

    def declaration(self) -> FieldDeclaration:
        return FieldDeclaration(mode="encrypt", strict=self.strict, read_only=self.read_only)


@dataclass(frozen=True)
class Hashed:
    """Marks a field as stored as a normalized keyed digest."""

    normalize: tuple[str, ...] = DEFAULT_NORMALIZATION

    def declaration(self) -> FieldDeclaration:
        return FieldDeclaration(mode="hash", normalize=self.normalize)


T = TypeVar("T", bound="ProtectedModel")


def _related_model(annotation: Any) -> type["ProtectedModel"] | None:
    """Find the ProtectedModel class referenced by an annotation, if any."""
    origin = get_origin(annotation)
    if origin is None:
        if isinstance(annotation, type) and issubclass(annotation, ProtectedModel):
            return annotation
        return None
    if origin is Annotated:
        return _related_model(get_args(annotation)[0])
    if origin in (list, tuple, set, Union, types.UnionType):
        for arg in get_args(annotation):
            related = _related_model(arg)
            if related is not None:
                return related
    return None


class ProtectedModel(BaseModel):
    """
    Base class for models with encrypted or hashed fields.

    The class name is the model name used in query trees unless
    ``__model_name__`` overrides it.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    __model_name__: ClassVar[str | None] = None

    @classmethod
    def model_name(cls) -> str:
        return cls.__model_name__ or cls.__name__

    @classmethod
    def field_declarations(cls) -> dict[str, FieldDeclaration]:
        """
        Collect the Encrypted/Hashed markers declared on this model.

        Returns:
            Dictionary mapping field names to their declaration
        """
        declarations: dict[str, FieldDeclaration] = {}
        for name, info in cls.model_fields.items():
            for marker in info.metadata:
                if isinstance(marker, (Encrypted, Hashed)):
                    declarations[name] = marker.declaration()
        return declarations

    @classmethod
    def field_specs(cls) -> list[FieldSpec]:
        """Bind this model's declarations to FieldSpecs."""
        model = cls.model_name()
        return [declaration.to_spec(model, name) for name, declaration in cls.field_declarations().items()]

    @classmethod
    def relation_targets(cls) -> dict[str, str]:
        """
        Collect relation fields.

        Returns:
            Dictionary mapping relation names to the related model name
        """
        relations: dict[str, str] = {}
        for name, info in cls.model_fields.items():
            related = _related_model(info.annotation)
            if related is not None:
                relations[name] = related.model_name()
        return relations

    @classmethod
    def from_result(cls: type[T], payload: dict[str, object]) -> T:
        """
        Create a model instance from a decoded result payload.

        Args:
            payload: Record returned through FieldCryptService

        Returns:
            A validated model instance
        """
        return cls.model_validate(payload)
