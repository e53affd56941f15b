"""
Query tree walker.

Rewrites operation arguments so every protected field value reaches the
storage engine in its stored form: write payloads and equality operands
are encrypted or hashed, everything else is left as it was.
"""

from typing import Any, Mapping

from ..encryption.field_cipher import FieldCipher
from ..registry.field_registry import FieldRegistry, FieldSpec
from .traversal import QueryTraversal, rebuild_sequence


# Operators whose operand is compared for equality against the stored form
EQUALITY_OPERATORS = frozenset({"equals"})

# Operators whose operand is a list of equality candidates
LIST_OPERATORS = frozenset({"in", "notIn"})


class QueryWalker(QueryTraversal):
    """
    Encodes plaintext in query arguments for one operation.

    The walker holds no per-call state, so one instance can serve
    concurrent operations.
    """

    def __init__(self, registry: FieldRegistry, cipher: FieldCipher) -> None:
        super().__init__(registry)
        self.cipher = cipher

    def walk(self, model: str, args: Mapping[str, Any] | None) -> dict[str, Any]:
        """
        Encode the arguments of an operation on ``model``.

        Args:
            model: Model the operation targets
            args: Operation arguments; not modified

        Returns:
            A new argument tree with protected values encoded
        """
        if args is None:
            return {}
        return self.visit_args(model, args)

    def data_field(self, spec: FieldSpec, value: Any) -> Any:
        if isinstance(value, Mapping):
            if "set" not in value:
                return value
            return {**value, "set": self.cipher.encode(spec, value["set"])}
        return self.cipher.encode(spec, value)

    def filter_field(self, spec: FieldSpec, value: Any) -> Any:
        if not isinstance(value, Mapping):
            # shorthand for {equals: value}
            return self.cipher.encode(spec, value)

        out = {}
        for op, operand in value.items():
            if op in EQUALITY_OPERATORS:
                out[op] = self.cipher.encode(spec, operand)
            elif op == "not":
                out[op] = self.filter_field(spec, operand)
            elif op in LIST_OPERATORS and isinstance(operand, (list, tuple)):
                out[op] = rebuild_sequence(operand, [self.cipher.encode(spec, item) for item in operand])
            else:
                out[op] = operand
        return out
