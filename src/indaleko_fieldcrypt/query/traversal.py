"""
Structural recursion over query-description trees.

A query tree is made of scalars, sequences and mappings. QueryTraversal
knows which reserved keys move the walk into a filter, a write payload, a
selection or an ordering, and which keys cross a relation into another
model. What happens to a protected field once it is reached is left to the
``filter_field``, ``data_field`` and ``order_field`` hooks of subclasses.

Traversal never mutates its input: every visited container is rebuilt and
untouched values are shared with the original tree.
"""

from typing import Any, Callable, Mapping

from ..registry.field_registry import FieldRegistry, FieldSpec


# Returned by a hook to remove the key from the rebuilt mapping
DROP = object()

COMBINATORS = frozenset({"AND", "OR", "NOT"})

# Relation filter operators: to-many then to-one
RELATION_FILTERS = frozenset({"some", "every", "none", "is", "isNot"})

# Relation filters that hold when their operand does not
NEGATING_RELATION_FILTERS = frozenset({"none", "isNot"})

# Top-level and nested argument keys
FILTER_ARGS = frozenset({"where", "cursor", "having"})
DATA_ARGS = frozenset({"data", "create", "update"})
SELECTION_ARGS = frozenset({"select", "include"})
ORDER_ARG = "orderBy"

# Nested writes whose operand is a unique filter on the related model
NESTED_FILTER_WRITES = frozenset({"connect", "disconnect", "set", "delete", "deleteMany"})

# Nested writes whose operand is {where?, data?, create?, update?}
NESTED_COMPOUND_WRITES = frozenset({"connectOrCreate", "updateMany", "upsert"})


def rebuild_sequence(node: list | tuple, items: list) -> list | tuple:
    """Rebuild a sequence with the same container type as ``node``."""
    return tuple(items) if isinstance(node, tuple) else items


class QueryTraversal:
    """
    Base walker over query arguments for a given model.

    Subclasses override the field hooks; the structural recursion and the
    model context switching at relation boundaries live here.
    """

    def __init__(self, registry: FieldRegistry) -> None:
        self.registry = registry

    # Hooks

    def filter_field(self, spec: FieldSpec, value: Any) -> Any:
        """Transform the filter operand of a protected field."""
        return value

    def data_field(self, spec: FieldSpec, value: Any) -> Any:
        """Transform the written value of a protected field."""
        return value

    def order_field(self, spec: FieldSpec, direction: Any) -> Any:
        """Transform an ordering directive on a protected field."""
        return direction

    def visit_negated(self, visit: Callable[[], Any]) -> Any:
        """Run ``visit`` on a filter operand that the enclosing directive negates."""
        return visit()

    # Structure

    def _rebuild(self, node: Mapping, visit) -> dict:
        out = {}
        for key, value in node.items():
            result = visit(key, value)
            if result is not DROP:
                out[key] = result
        return out

    def visit_args(self, model: str, args: Any) -> Any:
        """
        Visit the arguments of an operation (or of a nested include/select).

        Args:
            model: Model the arguments apply to
            args: Argument mapping, e.g. {"where": ..., "data": ..., "orderBy": ...}
        """
        if not isinstance(args, Mapping):
            return args

        def visit(key: str, value: Any) -> Any:
            if key in FILTER_ARGS:
                return self.visit_filter(model, value)
            if key in DATA_ARGS:
                return self.visit_data(model, value)
            if key in SELECTION_ARGS:
                return self.visit_selection(model, value)
            if key == ORDER_ARG:
                return self.visit_order_by(model, value)
            return value

        return self._rebuild(args, visit)

    def visit_filter(self, model: str, node: Any) -> Any:
        """Visit a filter (``where``) node of ``model``."""
        if isinstance(node, (list, tuple)):
            return rebuild_sequence(node, [self.visit_filter(model, item) for item in node])
        if not isinstance(node, Mapping):
            return node

        def visit(key: str, value: Any) -> Any:
            if key == "NOT":
                return self.visit_negated(lambda: self.visit_filter(model, value))
            if key in COMBINATORS:
                return self.visit_filter(model, value)
            spec = self.registry.resolve(model, key)
            if spec is not None:
                return self.filter_field(spec, value)
            target = self.registry.relation(model, key)
            if target is not None:
                return self.visit_relation_filter(target, value)
            return value

        return self._rebuild(node, visit)

    def visit_relation_filter(self, target: str, node: Any) -> Any:
        """Visit a filter that crosses into the related model ``target``."""
        if not isinstance(node, Mapping):
            return node
        if node and all(key in RELATION_FILTERS for key in node):
            def visit(key: str, value: Any) -> Any:
                if key in NEGATING_RELATION_FILTERS:
                    return self.visit_negated(lambda: self.visit_filter(target, value))
                return self.visit_filter(target, value)

            return self._rebuild(node, visit)
        # to-one shorthand: {author: {name: ...}}
        return self.visit_filter(target, node)

    def visit_data(self, model: str, node: Any) -> Any:
        """Visit a write payload of ``model`` (single mapping or list for createMany)."""
        if isinstance(node, (list, tuple)):
            return rebuild_sequence(node, [self.visit_data(model, item) for item in node])
        if not isinstance(node, Mapping):
            return node

        def visit(key: str, value: Any) -> Any:
            spec = self.registry.resolve(model, key)
            if spec is not None:
                return self.data_field(spec, value)
            target = self.registry.relation(model, key)
            if target is not None:
                return self.visit_nested_write(target, value)
            return value

        return self._rebuild(node, visit)

    def visit_nested_write(self, target: str, node: Any) -> Any:
        """Visit nested write directives on a relation leading to ``target``."""
        if not isinstance(node, Mapping):
            return node

        def visit(op: str, value: Any) -> Any:
            if op == "create":
                return self.visit_data(target, value)
            if op == "createMany":
                return self.visit_compound(target, value)
            if op in NESTED_FILTER_WRITES:
                return self.visit_filter(target, value)
            if op in NESTED_COMPOUND_WRITES:
                return self.visit_compound(target, value)
            if op == "update":
                return self.visit_nested_update(target, value)
            return value

        return self._rebuild(node, visit)

    def visit_nested_update(self, target: str, node: Any) -> Any:
        """Visit a nested ``update``: {where, data} items (to-many) or a bare payload (to-one)."""
        if isinstance(node, (list, tuple)):
            return rebuild_sequence(node, [self.visit_nested_update(target, item) for item in node])
        if isinstance(node, Mapping) and "data" in node and set(node) <= {"where", "data"}:
            return self.visit_compound(target, node)
        return self.visit_data(target, node)

    def visit_compound(self, target: str, node: Any) -> Any:
        """Visit {where, data, create, update} write operands, singly or in a list."""
        if isinstance(node, (list, tuple)):
            return rebuild_sequence(node, [self.visit_compound(target, item) for item in node])
        if not isinstance(node, Mapping):
            return node

        def visit(key: str, value: Any) -> Any:
            if key == "where":
                return self.visit_filter(target, value)
            if key in DATA_ARGS:
                return self.visit_data(target, value)
            return value

        return self._rebuild(node, visit)

    def visit_selection(self, model: str, node: Any) -> Any:
        """Visit an ``include`` or ``select`` tree of ``model``."""
        if not isinstance(node, Mapping):
            return node

        def visit(key: str, value: Any) -> Any:
            target = self.registry.relation(model, key)
            if target is not None and isinstance(value, Mapping):
                return self.visit_args(target, value)
            return value

        return self._rebuild(node, visit)

    def visit_order_by(self, model: str, node: Any) -> Any:
        """Visit an ``orderBy`` directive (single mapping or sequence of mappings)."""
        if isinstance(node, (list, tuple)):
            return rebuild_sequence(node, [self.visit_order_by(model, item) for item in node])
        if not isinstance(node, Mapping):
            return node

        def visit(key: str, value: Any) -> Any:
            spec = self.registry.resolve(model, key)
            if spec is not None:
                return self.order_field(spec, value)
            target = self.registry.relation(model, key)
            if target is not None and isinstance(value, Mapping):
                return self.visit_order_by(target, value)
            return value

        return self._rebuild(node, visit)
