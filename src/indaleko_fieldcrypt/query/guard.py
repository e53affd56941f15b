"""
Unsupported-operation guard.

Encrypted and hashed values have no meaningful order, so ordering by them
or range-comparing them would silently return wrong results. The guard
removes such directives before the walker runs and reports one
UnsupportedFieldQueryError per offending field and operator. A stripped
filter predicate is replaced so the filter only ever narrows.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Mapping

from ..errors import UnsupportedFieldQueryError
from ..registry.field_registry import FieldRegistry, FieldSpec
from .traversal import DROP, ORDER_ARG, QueryTraversal, rebuild_sequence


# Filter operators that need ordering or substring access to the plaintext
RANGE_OPERATORS = frozenset({"lt", "lte", "gt", "gte", "contains", "startsWith", "endsWith", "search"})

# A field condition no row satisfies
MATCH_NONE = object()


def normalize_order_by(node: Any) -> list:
    """Bring both ``orderBy`` call shapes (mapping or sequence) to a list of mappings."""
    if isinstance(node, Mapping):
        return [node]
    if isinstance(node, (list, tuple)):
        return list(node)
    return [node]


@dataclass
class GuardResult:
    """Guarded arguments and the diagnostics raised while guarding them."""

    args: dict[str, Any]
    diagnostics: list[UnsupportedFieldQueryError] = field(default_factory=list)


class _GuardPass(QueryTraversal):
    """A single guarding pass; collects diagnostics for one operation."""

    def __init__(self, registry: FieldRegistry) -> None:
        super().__init__(registry)
        self.diagnostics: list[UnsupportedFieldQueryError] = []
        # True under an odd number of enclosing negations
        self.negated = False

    def _report(self, spec: FieldSpec, operator: str) -> None:
        diagnostic = UnsupportedFieldQueryError(spec.model, spec.field, operator)
        if diagnostic not in self.diagnostics:
            self.diagnostics.append(diagnostic)

    def order_field(self, spec: FieldSpec, direction: Any) -> Any:
        self._report(spec, ORDER_ARG)
        return DROP

    def visit_negated(self, visit: Callable[[], Any]) -> Any:
        self.negated = not self.negated
        try:
            return visit()
        finally:
            self.negated = not self.negated

    def filter_field(self, spec: FieldSpec, value: Any) -> Any:
        if not isinstance(value, Mapping):
            return value

        guarded = self._guard_condition(spec, value, self.negated)
        if guarded is MATCH_NONE:
            return {"in": []}
        if value and not guarded:
            return DROP
        return guarded

    def _guard_condition(self, spec: FieldSpec, condition: Mapping, negated: bool) -> Any:
        """
        Strip range operators from one field condition.

        The result never matches more rows than ``condition`` in a positive
        position, and never fewer under negation, so the enclosing filter
        only ever narrows. Returns MATCH_NONE when no row can match.
        """
        out = {}
        match_none = False
        for op, operand in condition.items():
            if op in RANGE_OPERATORS:
                self._report(spec, op)
                if not negated:
                    match_none = True
                continue
            if op == "not" and isinstance(operand, Mapping):
                inner = self._guard_condition(spec, operand, not negated)
                if inner is MATCH_NONE:
                    # not(nothing) holds everywhere
                    continue
                if operand and not inner:
                    match_none = True
                    continue
                operand = inner
            out[op] = operand
        return MATCH_NONE if match_none else out

    def visit_order_by(self, model: str, node: Any) -> Any:
        if not isinstance(node, (Mapping, list, tuple)) or not node:
            return node

        entries = []
        for entry in normalize_order_by(node):
            guarded = super().visit_order_by(model, entry)
            # an entry emptied by stripping is removed, not sent as {}
            if isinstance(guarded, Mapping) and not guarded and entry:
                continue
            entries.append(guarded)

        if not entries:
            return DROP
        if isinstance(node, Mapping):
            return entries[0]
        return rebuild_sequence(node, entries)


class OrderingGuard:
    """Strips ordering and range directives that target protected fields."""

    def __init__(self, registry: FieldRegistry) -> None:
        self.registry = registry

    def apply(self, model: str, args: Mapping[str, Any] | None) -> GuardResult:
        """
        Guard the arguments of an operation on ``model``.

        Args:
            model: Model the operation targets
            args: Operation arguments; not modified

        Returns:
            GuardResult with the effective arguments and the diagnostics
        """
        if args is None:
            return GuardResult(args={})
        guard_pass = _GuardPass(self.registry)
        return GuardResult(args=guard_pass.visit_args(model, args), diagnostics=guard_pass.diagnostics)
