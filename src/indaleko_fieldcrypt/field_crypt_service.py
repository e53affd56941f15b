# field_crypt_service.py: Transparent field encryption service

"""
This module defines the FieldCrypt service, the entry point applications use
instead of talking to the storage engine directly.

Every operation runs the same pipeline: the guard strips ordering and range
directives on protected fields and reports them, the walker encodes
plaintext into ciphertext or digests, the engine executes, and the decoder
turns ciphertext in the result back into plaintext. Transactions run the
same pipeline for every operation issued inside them.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, TypeVar

from .config import FieldCryptConfig
from .db.engine import ACTIONS, Engine
from .encryption.field_cipher import FieldCipher
from .errors import ConfigurationError, UnsupportedFieldQueryError
from .query.decoder import ResultDecoder
from .query.guard import OrderingGuard
from .query.walker import QueryWalker
from .registry.field_registry import FieldRegistry


logger = logging.getLogger(__name__)

T = TypeVar("T")

Reporter = Callable[[UnsupportedFieldQueryError], None]


def log_diagnostic(diagnostic: UnsupportedFieldQueryError) -> None:
    """Default diagnostic reporter: log through the standard logging channel."""
    logger.error("%s", diagnostic)


@dataclass(frozen=True)
class Operation:
    """One operation of a batch transaction."""

    model: str
    action: str
    args: dict[str, Any] = field(default_factory=dict)


class ModelDelegate:
    """Operations bound to one model, e.g. ``service.model("User").find_many(...)``."""

    def __init__(self, service: "FieldCryptService", model: str) -> None:
        self._service = service
        self.model = model

    def _run(self, action: str, args: dict[str, Any]) -> Any:
        return self._service.execute(self.model, action, args)

    def create(self, **args: Any) -> Any:
        return self._run("create", args)

    def create_many(self, **args: Any) -> Any:
        return self._run("create_many", args)

    def find_unique(self, **args: Any) -> Any:
        return self._run("find_unique", args)

    def find_first(self, **args: Any) -> Any:
        return self._run("find_first", args)

    def find_many(self, **args: Any) -> Any:
        return self._run("find_many", args)

    def update(self, **args: Any) -> Any:
        return self._run("update", args)

    def update_many(self, **args: Any) -> Any:
        return self._run("update_many", args)

    def upsert(self, **args: Any) -> Any:
        return self._run("upsert", args)

    def delete(self, **args: Any) -> Any:
        return self._run("delete", args)

    def delete_many(self, **args: Any) -> Any:
        return self._run("delete_many", args)

    def count(self, **args: Any) -> Any:
        return self._run("count", args)

    def aggregate(self, **args: Any) -> Any:
        return self._run("aggregate", args)

    def group_by(self, **args: Any) -> Any:
        return self._run("group_by", args)


class FieldCryptService:
    """
    Main service class for FieldCrypt.

    Wraps a storage engine so that applications read and write plaintext
    while the engine only ever sees ciphertext and digests for protected
    fields.
    """

    def __init__(
        self,
        engine: Engine,
        registry: FieldRegistry,
        cipher: FieldCipher,
        reporter: Reporter | None = None,
    ) -> None:
        """
        Initialize the FieldCrypt service.

        Args:
            engine: Storage engine executing the transformed operations
            registry: Protected field declarations
            cipher: Per-field encryption and hashing
            reporter: Receives one diagnostic per stripped directive;
                defaults to logging them
        """
        self.engine = engine
        self.registry = registry
        self.cipher = cipher
        self.reporter = reporter or log_diagnostic
        self._guard = OrderingGuard(registry)
        self._walker = QueryWalker(registry, cipher)
        self._decoder = ResultDecoder(registry, cipher)

    @classmethod
    def from_config(cls, engine: Engine | None = None, reporter: Reporter | None = None) -> "FieldCryptService":
        """
        Create a service from FieldCryptConfig.

        Args:
            engine: Engine to wrap; built from ``database.backend`` when omitted
            reporter: Optional diagnostic reporter

        Raises:
            ConfigurationError: If the configuration is invalid
        """
        registry = FieldRegistry.from_config()
        cipher = FieldCipher.from_config()

        if engine is None:
            backend = FieldCryptConfig.get("database.backend", "memory")
            if backend == "memory":
                from .db.memory import MemoryEngine

                engine = MemoryEngine.from_declarations(FieldCryptConfig.get_relations())
            elif backend == "arangodb":
                from .db.arangodb import ArangoEngine

                engine = ArangoEngine(collections=sorted(registry.models))
            else:
                raise ConfigurationError(f"Unknown database backend: {backend}")

        return cls(engine, registry, cipher, reporter=reporter)

    def model(self, name: str) -> ModelDelegate:
        """Get the operations bound to model ``name``."""
        return ModelDelegate(self, name)

    def prepare(self, model: str, args: dict[str, Any] | None) -> dict[str, Any]:
        """
        Run the guard and the walker over an operation's arguments.

        Diagnostics for stripped directives are sent to the reporter.

        Returns:
            The arguments as the engine should receive them
        """
        guarded = self._guard.apply(model, args)
        for diagnostic in guarded.diagnostics:
            self.reporter(diagnostic)
        return self._walker.walk(model, guarded.args)

    def execute(self, model: str, action: str, args: dict[str, Any] | None = None) -> Any:
        """
        Execute one operation through the encryption pipeline.

        Args:
            model: Model the operation targets
            action: One of the engine actions, e.g. "create" or "find_many"
            args: Operation arguments with plaintext values; not modified

        Returns:
            The engine's result with encrypted fields decrypted

        Raises:
            ValueError: If the action is unknown
            DecryptionError: If a strict field cannot be decrypted
        """
        if action not in ACTIONS:
            raise ValueError(f"Unsupported action '{action}'")
        result = self.engine.execute(model, action, self.prepare(model, args))
        return self._decoder.decode(model, result)

    def decode(self, model: str, payload: Any) -> Any:
        """Decode a raw result payload obtained outside ``execute``."""
        return self._decoder.decode(model, payload)

    def _bind(self, engine: Engine) -> "FieldCryptService":
        return FieldCryptService(engine, self.registry, self.cipher, reporter=self.reporter)

    def transaction(self, work: Callable[["FieldCryptService"], T] | Iterable[Operation]) -> Any:
        """
        Run several operations in one engine transaction.

        ``work`` is either a callback receiving a service bound to the
        transaction, or a sequence of Operations run in order. Atomicity is
        the engine's: if anything raises, the engine discards the whole
        transaction and the exception propagates.

        Returns:
            The callback's return value, or the list of operation results
        """
        if callable(work):
            return self.engine.transaction(lambda tx: work(self._bind(tx)))

        operations = list(work)

        def run(tx: Engine) -> list:
            bound = self._bind(tx)
            return [bound.execute(op.model, op.action, op.args) for op in operations]

        return self.engine.transaction(run)
