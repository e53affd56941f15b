"""
Pytest configuration for FieldCrypt tests.
"""

import os
from typing import Any, Dict, Generator, List

import pytest

from indaleko_fieldcrypt.config import FieldCryptConfig
from indaleko_fieldcrypt.db.memory import MemoryEngine, RelationDef
from indaleko_fieldcrypt.encryption.field_cipher import FieldCipher
from indaleko_fieldcrypt.errors import UnsupportedFieldQueryError
from indaleko_fieldcrypt.field_crypt_service import FieldCryptService
from indaleko_fieldcrypt.registry.field_registry import FieldRegistry


ENV_KEYS = [
    "INDALEKO_MODE",
    "INDALEKO_ENCRYPTION_KEY",
    "INDALEKO_ENCRYPTION_ALGORITHM",
    "INDALEKO_HASH_KEY",
    "INDALEKO_DB_BACKEND",
    "INDALEKO_DB_URL",
    "INDALEKO_DB_USERNAME",
    "INDALEKO_DB_PASSWORD",
]

# Blog schema: users write posts, posts belong to categories
RELATIONS = {
    "User": {"posts": RelationDef("Post", "author", many=True)},
    "Post": {
        "author": RelationDef("User", "posts", many=False),
        "categories": RelationDef("Category", "posts", many=True),
    },
    "Category": {"posts": RelationDef("Post", "categories", many=True)},
}

FIELDS = {
    "User": {
        "name": {"mode": "encrypt"},
        "email": {"mode": "encrypt", "strict": True},
        "nickname": {"mode": "hash"},
    },
    "Post": {"content": {"mode": "encrypt"}},
}

# Low iteration count keeps key derivation fast in tests
TEST_ITERATIONS = 1000


@pytest.fixture(autouse=True)
def clean_config() -> Generator[None, None, None]:
    """
    Isolate every test from the caller's environment and from each other.

    INDALEKO_* variables are removed for the duration of the test and the
    class-level configuration is reset before and after.
    """
    original = {key: os.environ.pop(key) for key in ENV_KEYS if key in os.environ}
    FieldCryptConfig._config = {}
    FieldCryptConfig._initialized = False

    yield

    for key in ENV_KEYS:
        os.environ.pop(key, None)
    os.environ.update(original)
    FieldCryptConfig._config = {}
    FieldCryptConfig._initialized = False


@pytest.fixture
def dev_mode_env() -> Generator[None, None, None]:
    """Run the test in development mode."""
    os.environ["INDALEKO_MODE"] = "DEV"
    FieldCryptConfig.initialize()
    yield


@pytest.fixture
def prod_mode_env() -> Generator[None, None, None]:
    """Run the test in production mode."""
    os.environ["INDALEKO_MODE"] = "PROD"
    FieldCryptConfig.initialize()
    yield


@pytest.fixture
def engine() -> MemoryEngine:
    """An empty in-memory engine with the blog schema."""
    return MemoryEngine(RELATIONS)


@pytest.fixture
def registry(engine: MemoryEngine) -> FieldRegistry:
    """Registry for the blog schema."""
    return FieldRegistry(FIELDS, engine.relation_targets())


@pytest.fixture
def cipher() -> FieldCipher:
    """Field cipher with test secrets."""
    return FieldCipher("test-encryption-secret", "test-hash-secret", key_iterations=TEST_ITERATIONS)


@pytest.fixture
def diagnostics() -> List[UnsupportedFieldQueryError]:
    """Collects the diagnostics reported by the service."""
    return []


@pytest.fixture
def service(
    engine: MemoryEngine,
    registry: FieldRegistry,
    cipher: FieldCipher,
    diagnostics: List[UnsupportedFieldQueryError],
) -> FieldCryptService:
    """FieldCrypt service over the in-memory engine."""
    return FieldCryptService(engine, registry, cipher, reporter=diagnostics.append)


@pytest.fixture
def encode(registry: FieldRegistry, cipher: FieldCipher):
    """Encode a plaintext value the way it is stored for ``model.field``."""

    def _encode(model: str, field: str, value: Any) -> Any:
        return cipher.encode(registry.resolve(model, field), value)

    return _encode


@pytest.fixture
def sample_user() -> Dict[str, Any]:
    return {"email": "007@hmss.gov.uk", "name": "James Bond", "nickname": "Bond"}
