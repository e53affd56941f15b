"""
Field registry for FieldCrypt.

The registry answers two questions while a query tree is walked: how a
given model field is protected, and which model a relation key leads to.
It is built once from declared metadata and never modified afterwards.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Literal, Mapping

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from ..encryption.digest import DEFAULT_NORMALIZATION, NORMALIZATION_STEPS
from ..errors import ConfigurationError


class FieldMode(str, Enum):
    """How a field is protected at rest."""

    # Reversible ciphertext, decrypted on read
    ENCRYPTED = "encrypt"

    # One-way keyed digest, equality search only
    HASHED = "hash"


@dataclass(frozen=True)
class FieldSpec:
    """Protection settings for one model field."""

    model: str
    field: str
    mode: FieldMode

    # Whether a decode failure is fatal (True) or returns the raw value
    strict: bool = False

    # Decrypt on read but write and compare plaintext (migration mode)
    read_only: bool = False

    # Normalization steps applied before hashing
    normalize: tuple[str, ...] = DEFAULT_NORMALIZATION

    @property
    def context(self) -> str:
        """Key derivation context for this field."""
        return f"{self.model}.{self.field}"


class FieldDeclaration(BaseModel):
    """Declared metadata for a protected field, as supplied by the caller."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    mode: Literal["encrypt", "hash"]
    strict: bool = False
    read_only: bool = False
    normalize: tuple[str, ...] = DEFAULT_NORMALIZATION

    @field_validator("normalize")
    @classmethod
    def _known_steps(cls, steps: tuple[str, ...]) -> tuple[str, ...]:
        unknown = [step for step in steps if step not in NORMALIZATION_STEPS]
        if unknown:
            raise ValueError(f"unknown normalization steps: {', '.join(unknown)}")
        return steps

    def to_spec(self, model: str, field: str) -> FieldSpec:
        """Bind this declaration to a model field."""
        mode = FieldMode(self.mode)
        if self.read_only and mode != FieldMode.ENCRYPTED:
            raise ConfigurationError(f"{model}.{field}: read_only applies to encrypted fields only")
        return FieldSpec(
            model=model,
            field=field,
            mode=mode,
            strict=self.strict,
            read_only=self.read_only,
            normalize=self.normalize,
        )


class RelationDeclaration(BaseModel):
    """
    Declared relation, as supplied by the caller.

    A bare model name is shorthand for ``{"target": name}``. The in-memory
    engine also needs ``inverse``, the relation name on the target pointing
    back, and ``many`` for to-many sides.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    target: str
    inverse: str | None = None
    many: bool = False

    @classmethod
    def parse(cls, model: str, name: str, declaration: object) -> "RelationDeclaration":
        """
        Parse one relation declaration.

        Raises:
            ConfigurationError: If the declaration is malformed or names no target
        """
        if isinstance(declaration, str):
            declaration = {"target": declaration}
        if not isinstance(declaration, Mapping) or not declaration.get("target"):
            raise ConfigurationError(f"Relation {model}.{name} must name a target model")
        try:
            return cls.model_validate(declaration)
        except ValidationError as e:
            raise ConfigurationError(f"Malformed relation {model}.{name}: {e}") from e


class FieldRegistry:
    """
    Lookup table from (model, field) to FieldSpec.

    Lookups for unregistered fields or relations return None; the walker
    treats that as pass-through.
    """

    def __init__(
        self,
        fields: Mapping[str, Mapping[str, Mapping[str, object]]] | None = None,
        relations: Mapping[str, Mapping[str, object]] | None = None,
    ) -> None:
        """
        Build a registry from declared metadata.

        Args:
            fields: model -> field -> {"mode": "encrypt"|"hash", "strict": bool, ...}
            relations: model -> relation name -> target model or RelationDeclaration mapping

        Raises:
            ConfigurationError: If a declaration is malformed or inconsistent
        """
        specs = []
        for model, model_fields in (fields or {}).items():
            if not isinstance(model_fields, Mapping):
                raise ConfigurationError(f"Field declarations for {model} must be a mapping")
            for field, declaration in model_fields.items():
                try:
                    parsed = FieldDeclaration.model_validate(declaration)
                except ValidationError as e:
                    raise ConfigurationError(f"Malformed declaration for {model}.{field}: {e}") from e
                specs.append(parsed.to_spec(model, field))

        self._specs: dict[tuple[str, str], FieldSpec] = {}
        self._relations: dict[tuple[str, str], str] = {}
        self._register(specs, relations or {})

    def _register(self, specs: Iterable[FieldSpec], relations: Mapping[str, Mapping[str, object]]) -> None:
        for spec in specs:
            key = (spec.model, spec.field)
            if key in self._specs:
                raise ConfigurationError(f"Duplicate registration for {spec.model}.{spec.field}")
            self._specs[key] = spec

        models = {model for model, _ in self._specs} | set(relations)
        for model, model_relations in relations.items():
            for name, target in model_relations.items():
                if (model, name) in self._specs:
                    raise ConfigurationError(f"{model}.{name} is declared both as a field and a relation")
                target = RelationDeclaration.parse(model, name, target).target
                if target not in models:
                    raise ConfigurationError(f"Relation {model}.{name} targets unknown model {target}")
                self._relations[(model, name)] = target
        self._models = frozenset(models)

    @classmethod
    def from_specs(
        cls,
        specs: Iterable[FieldSpec],
        relations: Mapping[str, Mapping[str, object]] | None = None,
    ) -> "FieldRegistry":
        """
        Build a registry from already constructed FieldSpecs.

        Raises:
            ConfigurationError: On duplicate (model, field) pairs
        """
        registry = cls.__new__(cls)
        registry._specs = {}
        registry._relations = {}
        registry._register(specs, relations or {})
        return registry

    @classmethod
    def from_config(cls) -> "FieldRegistry":
        """
        Build a registry from the ``fields`` and ``relations`` configuration sections.

        Hashed fields without their own ``normalize`` list use ``hashing.normalize``.
        """
        from ..config import FieldCryptConfig

        declarations = FieldCryptConfig.get_field_declarations()
        default_steps = FieldCryptConfig.get("hashing.normalize")
        if default_steps is not None:
            for fields in declarations.values():
                for declaration in fields.values():
                    if isinstance(declaration, dict) and declaration.get("mode") == "hash":
                        declaration.setdefault("normalize", list(default_steps))
        return cls(declarations, FieldCryptConfig.get_relations())

    @classmethod
    def from_models(cls, *models: type) -> "FieldRegistry":
        """
        Build a registry from ProtectedModel classes.

        Args:
            *models: ProtectedModel subclasses

        Raises:
            ConfigurationError: If two classes share a model name
        """
        specs: list[FieldSpec] = []
        relations: dict[str, dict[str, str]] = {}
        for model in models:
            name = model.model_name()
            if name in relations:
                raise ConfigurationError(f"Model {name} is registered twice")
            specs.extend(model.field_specs())
            relations[name] = model.relation_targets()
        return cls.from_specs(specs, relations)

    def resolve(self, model: str, field: str) -> FieldSpec | None:
        """
        Resolve the protection spec for a model field.

        Returns:
            The FieldSpec, or None if the field is not protected
        """
        return self._specs.get((model, field))

    def relation(self, model: str, name: str) -> str | None:
        """
        Resolve a relation key to its target model.

        Returns:
            The target model name, or None if ``name`` is not a relation of ``model``
        """
        return self._relations.get((model, name))

    def fields_of(self, model: str) -> list[FieldSpec]:
        """List the protected fields of a model."""
        return [spec for (owner, _), spec in self._specs.items() if owner == model]

    @property
    def models(self) -> frozenset[str]:
        """All model names known to the registry."""
        return self._models

    def __len__(self) -> int:
        return len(self._specs)

    def __contains__(self, key: object) -> bool:
        return key in self._specs
