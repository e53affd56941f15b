"""
Tests for the FieldRegistry class.
"""

from pathlib import Path

import pytest
import yaml
from pydantic import ValidationError

from indaleko_fieldcrypt.config import FieldCryptConfig
from indaleko_fieldcrypt.errors import ConfigurationError
from indaleko_fieldcrypt.registry.field_registry import (
    FieldDeclaration,
    FieldMode,
    FieldRegistry,
    FieldSpec,
)


class TestFieldRegistry:
    """Tests for the FieldRegistry class."""

    def test_resolve(self, registry: FieldRegistry) -> None:
        email = registry.resolve("User", "email")

        assert email == FieldSpec("User", "email", FieldMode.ENCRYPTED, strict=True)
        assert email.context == "User.email"
        assert registry.resolve("User", "nickname").mode == FieldMode.HASHED
        assert registry.resolve("User", "nickname").normalize == ("trim", "diacritics", "lowercase")
        assert registry.resolve("Post", "content").strict is False

    def test_resolve_unregistered(self, registry: FieldRegistry) -> None:
        assert registry.resolve("User", "id") is None
        assert registry.resolve("Post", "title") is None
        assert registry.resolve("Unknown", "email") is None
        # Fields are scoped to their model
        assert registry.resolve("Post", "email") is None

    def test_relations(self, registry: FieldRegistry) -> None:
        assert registry.relation("User", "posts") == "Post"
        assert registry.relation("Post", "author") == "User"
        assert registry.relation("Post", "categories") == "Category"
        assert registry.relation("User", "email") is None
        assert registry.relation("Category", "author") is None

    def test_models(self, registry: FieldRegistry) -> None:
        assert registry.models == frozenset({"User", "Post", "Category"})
        assert len(registry) == 4
        assert ("User", "email") in registry
        assert ("User", "id") not in registry
        assert [spec.field for spec in registry.fields_of("User")] == ["name", "email", "nickname"]
        assert registry.fields_of("Category") == []

    def test_empty_registry(self) -> None:
        registry = FieldRegistry()

        assert len(registry) == 0
        assert registry.resolve("User", "email") is None
        assert registry.models == frozenset()

    def test_declaration_options(self) -> None:
        registry = FieldRegistry({
            "User": {
                "legacy": {"mode": "encrypt", "read_only": True},
                "code": {"mode": "hash", "normalize": ["trim", "uppercase"]},
            }
        })

        assert registry.resolve("User", "legacy").read_only is True
        assert registry.resolve("User", "code").normalize == ("trim", "uppercase")

    @pytest.mark.parametrize("declaration", [
        {"mode": "obfuscate"},
        {},
        {"mode": "encrypt", "strict": "sometimes"},
        {"mode": "encrypt", "colour": "blue"},
        {"mode": "hash", "normalize": ["soundex"]},
        {"mode": "hash", "read_only": True},
        "encrypt",
    ])
    def test_malformed_declaration(self, declaration: object) -> None:
        with pytest.raises(ConfigurationError):
            FieldRegistry({"User": {"email": declaration}})

    def test_model_declarations_must_be_mapping(self) -> None:
        with pytest.raises(ConfigurationError, match="must be a mapping"):
            FieldRegistry({"User": ["email"]})

    def test_field_and_relation(self) -> None:
        with pytest.raises(ConfigurationError, match="both as a field and a relation"):
            FieldRegistry({"User": {"posts": {"mode": "encrypt"}}}, {"User": {"posts": "Post"}, "Post": {}})

    def test_unknown_relation_target(self) -> None:
        with pytest.raises(ConfigurationError, match="unknown model Post"):
            FieldRegistry({"User": {"email": {"mode": "encrypt"}}}, {"User": {"posts": "Post"}})

    def test_empty_relation_target(self) -> None:
        with pytest.raises(ConfigurationError, match="must name a target"):
            FieldRegistry(relations={"User": {"posts": ""}})

    def test_relation_declaration_mapping(self) -> None:
        registry = FieldRegistry(relations={
            "User": {"posts": {"target": "Post", "inverse": "author", "many": True}},
            "Post": {"author": "User"},
        })

        assert registry.relation("User", "posts") == "Post"
        assert registry.relation("Post", "author") == "User"

    def test_malformed_relation_declaration(self) -> None:
        with pytest.raises(ConfigurationError, match="Malformed relation User.posts"):
            FieldRegistry(relations={"User": {"posts": {"target": "User", "cardinality": "many"}}})
        with pytest.raises(ConfigurationError, match="must name a target"):
            FieldRegistry(relations={"User": {"posts": {"inverse": "author"}}})

    def test_from_specs(self) -> None:
        specs = [
            FieldSpec("User", "email", FieldMode.ENCRYPTED),
            FieldSpec("Post", "content", FieldMode.ENCRYPTED, strict=True),
        ]
        registry = FieldRegistry.from_specs(specs, {"User": {"posts": "Post"}, "Post": {"author": "User"}})

        assert registry.resolve("Post", "content").strict is True
        assert registry.relation("User", "posts") == "Post"

    def test_duplicate_registration(self) -> None:
        specs = [
            FieldSpec("User", "email", FieldMode.ENCRYPTED),
            FieldSpec("User", "email", FieldMode.HASHED),
        ]
        with pytest.raises(ConfigurationError, match="Duplicate registration"):
            FieldRegistry.from_specs(specs)

    def test_from_config(self, tmp_path: Path) -> None:
        config_path = tmp_path / "fieldcrypt.yaml"
        with open(config_path, "w") as f:
            yaml.dump({
                "fields": {
                    "User": {"email": {"mode": "encrypt", "strict": True}},
                    "Post": {"content": {"mode": "encrypt"}},
                },
                "relations": {"User": {"posts": "Post"}, "Post": {"author": "User"}},
            }, f)
        FieldCryptConfig.initialize(str(config_path))

        registry = FieldRegistry.from_config()

        assert registry.resolve("User", "email").strict is True
        assert registry.relation("Post", "author") == "User"

    def test_from_config_default_normalization(self, tmp_path: Path) -> None:
        config_path = tmp_path / "fieldcrypt.yaml"
        with open(config_path, "w") as f:
            yaml.dump({
                "hashing": {"normalize": ["trim", "uppercase"]},
                "fields": {"User": {
                    "nickname": {"mode": "hash"},
                    "handle": {"mode": "hash", "normalize": ["trim"]},
                }},
            }, f)
        FieldCryptConfig.initialize(str(config_path))

        registry = FieldRegistry.from_config()

        assert registry.resolve("User", "nickname").normalize == ("trim", "uppercase")
        assert registry.resolve("User", "handle").normalize == ("trim",)

    def test_declaration_is_frozen(self) -> None:
        declaration = FieldDeclaration(mode="encrypt")
        with pytest.raises(ValidationError):
            declaration.strict = True

    def test_declaration_to_spec(self) -> None:
        spec = FieldDeclaration(mode="hash", normalize=("lowercase",)).to_spec("User", "nickname")

        assert spec == FieldSpec("User", "nickname", FieldMode.HASHED, normalize=("lowercase",))
