"""
In-memory relational engine.

A small engine that understands the same query trees as FieldCrypt:
filters with combinators and relation filters, nested writes, includes and
selects, ordering, cursors and paging. Tables keep insertion order, which
is the natural order returned when no ordering is requested.

It backs the test suite, the demo and the DEV service.
"""

import threading
from copy import deepcopy
from dataclasses import dataclass
from typing import Any, Callable, Mapping, TypeVar

from ..errors import ConfigurationError
from ..registry.field_registry import RelationDeclaration
from .engine import ACTIONS


T = TypeVar("T")


@dataclass(frozen=True)
class RelationDef:
    """One side of a relation between two models."""

    target: str
    inverse: str
    many: bool


def _as_list(node: Any) -> list:
    if node is None:
        return []
    if isinstance(node, (list, tuple)):
        return list(node)
    return [node]


def _sort_key(value: Any) -> tuple:
    # None sorts first, like most SQL engines in ascending order
    return (value is not None, value)


def match_value(value: Any, condition: Any) -> bool:
    """Evaluate a scalar field filter against a stored value."""
    if not isinstance(condition, Mapping):
        return value == condition

    for op, operand in condition.items():
        if op == "equals":
            ok = value == operand
        elif op == "not":
            ok = not match_value(value, operand) if isinstance(operand, Mapping) else value != operand
        elif op == "in":
            ok = value in operand
        elif op == "notIn":
            ok = value not in operand
        elif op in ("lt", "lte", "gt", "gte"):
            if value is None or operand is None:
                ok = False
            elif op == "lt":
                ok = value < operand
            elif op == "lte":
                ok = value <= operand
            elif op == "gt":
                ok = value > operand
            else:
                ok = value >= operand
        elif op == "contains":
            ok = isinstance(value, str) and operand in value
        elif op == "startsWith":
            ok = isinstance(value, str) and value.startswith(operand)
        elif op == "endsWith":
            ok = isinstance(value, str) and value.endswith(operand)
        elif op == "mode":
            ok = True
        else:
            raise ValueError(f"Unsupported filter operator '{op}'")
        if not ok:
            return False
    return True


class MemoryEngine:
    """
    Engine keeping tables and relation links in process memory.

    Relations are declared per model as {name: RelationDef}; both sides of a
    relation must be declared, each naming the other as its inverse.
    """

    def __init__(self, relations: Mapping[str, Mapping[str, RelationDef]] | None = None) -> None:
        """
        Initialize the engine.

        Args:
            relations: model -> relation name -> RelationDef

        Raises:
            ValueError: If a relation's inverse is not declared
        """
        self._relations: dict[str, dict[str, RelationDef]] = {
            model: dict(defs) for model, defs in (relations or {}).items()
        }
        for model, defs in self._relations.items():
            for name, rel in defs.items():
                inverse = self._relations.get(rel.target, {}).get(rel.inverse)
                if inverse is None or inverse.target != model or inverse.inverse != name:
                    raise ValueError(f"Relation {model}.{name} has no matching inverse {rel.target}.{rel.inverse}")

        self._tables: dict[str, list[dict[str, Any]]] = {}
        # (model, relation, id, related id) for both directions, insertion ordered
        self._links: dict[tuple[str, str, Any, Any], None] = {}
        self._next_id: dict[str, int] = {}
        self._lock = threading.RLock()

    @classmethod
    def from_declarations(cls, relations: Mapping[str, Mapping[str, object]] | None) -> "MemoryEngine":
        """
        Build an engine from relation declarations such as the config ``relations`` section.

        Raises:
            ConfigurationError: If a relation lacks its inverse or the two sides disagree
        """
        defs: dict[str, dict[str, RelationDef]] = {}
        for model, model_relations in (relations or {}).items():
            defs[model] = {}
            for name, declaration in model_relations.items():
                parsed = RelationDeclaration.parse(model, name, declaration)
                if parsed.inverse is None:
                    raise ConfigurationError(
                        f"Relation {model}.{name} needs an 'inverse' for the memory backend"
                    )
                defs[model][name] = RelationDef(parsed.target, parsed.inverse, parsed.many)
        try:
            return cls(defs)
        except ValueError as e:
            raise ConfigurationError(str(e)) from e

    def relation_targets(self) -> dict[str, dict[str, str]]:
        """Relation map in the form FieldRegistry expects."""
        return {
            model: {name: rel.target for name, rel in defs.items()}
            for model, defs in self._relations.items()
        }

    # Engine protocol

    def execute(self, model: str, action: str, args: dict[str, Any] | None = None) -> Any:
        """
        Run one operation.

        Raises:
            ValueError: For unknown actions or unsupported arguments
            LookupError: When a unique record required by the operation is missing
        """
        if action not in ACTIONS:
            raise ValueError(f"Unsupported action '{action}'")
        args = args or {}
        with self._lock:
            return getattr(self, f"_{action}")(model, args)

    def transaction(self, callback: Callable[["MemoryEngine"], T]) -> T:
        """Run ``callback`` atomically; any exception restores the previous state."""
        with self._lock:
            snapshot = deepcopy((self._tables, self._links, self._next_id))
            try:
                return callback(self)
            except BaseException:
                self._tables, self._links, self._next_id = snapshot
                raise

    def raw_rows(self, model: str) -> list[dict[str, Any]]:
        """Return copies of the stored rows of ``model``, as the storage holds them."""
        with self._lock:
            return deepcopy(self._tables.get(model, []))

    # Actions

    def _create(self, model: str, args: dict) -> dict:
        row = self._insert(model, args.get("data") or {})
        return self._shape(model, row, args)

    def _create_many(self, model: str, args: dict) -> dict:
        items = _as_list(args.get("data"))
        for item in items:
            self._insert(model, item)
        return {"count": len(items)}

    def _find_many(self, model: str, args: dict) -> list:
        rows = self._select(model, self._table(model), args)
        return [self._shape(model, row, args) for row in rows]

    def _find_first(self, model: str, args: dict) -> dict | None:
        rows = self._select(model, self._table(model), {**args, "take": 1})
        return self._shape(model, rows[0], args) if rows else None

    def _find_unique(self, model: str, args: dict) -> dict | None:
        row = self._first_match(model, args.get("where") or {})
        return self._shape(model, row, args) if row is not None else None

    def _update(self, model: str, args: dict) -> dict:
        row = self._require(model, args.get("where") or {}, "update")
        self._write(model, row, args.get("data") or {})
        return self._shape(model, row, args)

    def _update_many(self, model: str, args: dict) -> dict:
        rows = self._matches(model, self._table(model), args.get("where"))
        for row in rows:
            self._write(model, row, args.get("data") or {})
        return {"count": len(rows)}

    def _upsert(self, model: str, args: dict) -> dict:
        row = self._first_match(model, args.get("where") or {})
        if row is None:
            row = self._insert(model, args.get("create") or {})
        else:
            self._write(model, row, args.get("update") or {})
        return self._shape(model, row, args)

    def _delete(self, model: str, args: dict) -> dict:
        row = self._require(model, args.get("where") or {}, "delete")
        result = self._shape(model, row, args)
        self._remove(model, row)
        return result

    def _delete_many(self, model: str, args: dict) -> dict:
        rows = self._matches(model, self._table(model), args.get("where"))
        for row in rows:
            self._remove(model, row)
        return {"count": len(rows)}

    def _count(self, model: str, args: dict) -> int:
        return len(self._select(model, self._table(model), args))

    def _aggregate(self, model: str, args: dict) -> dict:
        rows = self._select(model, self._table(model), args)
        return self._aggregate_rows(rows, args)

    def _group_by(self, model: str, args: dict) -> list:
        by = _as_list(args.get("by"))
        if not by:
            raise ValueError("group_by requires 'by'")
        groups: dict[tuple, list] = {}
        for row in self._matches(model, self._table(model), args.get("where")):
            groups.setdefault(tuple(row.get(field) for field in by), []).append(row)

        results = []
        for key, rows in groups.items():
            result = dict(zip(by, key))
            result.update(self._aggregate_rows(rows, args))
            results.append(result)
        if args.get("having"):
            results = [result for result in results if self._matches_record(result, args["having"])]
        return results

    # Reads

    def _table(self, model: str) -> list[dict[str, Any]]:
        return self._tables.setdefault(model, [])

    def _relation(self, model: str, name: str) -> RelationDef | None:
        return self._relations.get(model, {}).get(name)

    def _related(self, model: str, name: str, row: dict) -> list[dict]:
        rel = self._relations[model][name]
        ids = {related for (m, r, source, related) in self._links if m == model and r == name and source == row["id"]}
        return [candidate for candidate in self._table(rel.target) if candidate["id"] in ids]

    def _matches(self, model: str, rows: list[dict], where: Any) -> list[dict]:
        if not where:
            return list(rows)
        return [row for row in rows if self._match(model, row, where)]

    def _first_match(self, model: str, where: Any) -> dict | None:
        rows = self._matches(model, self._table(model), where)
        return rows[0] if rows else None

    def _require(self, model: str, where: Any, action: str) -> dict:
        row = self._first_match(model, where)
        if row is None:
            raise LookupError(f"Record to {action} not found in {model}")
        return row

    def _match(self, model: str, row: dict, where: Any) -> bool:
        if isinstance(where, (list, tuple)):
            return all(self._match(model, row, item) for item in where)
        for key, condition in where.items():
            if key == "AND":
                ok = all(self._match(model, row, item) for item in _as_list(condition))
            elif key == "OR":
                ok = any(self._match(model, row, item) for item in _as_list(condition))
            elif key == "NOT":
                ok = not any(self._match(model, row, item) for item in _as_list(condition))
            elif self._relation(model, key) is not None:
                ok = self._match_relation(model, key, row, condition)
            else:
                ok = match_value(row.get(key), condition)
            if not ok:
                return False
        return True

    def _match_relation(self, model: str, name: str, row: dict, condition: Any) -> bool:
        rel = self._relations[model][name]
        related = self._related(model, name, row)
        if rel.many:
            if not isinstance(condition, Mapping):
                raise ValueError(f"Invalid filter on relation {model}.{name}")
            for op, nested in condition.items():
                hits = [self._match(rel.target, item, nested or {}) for item in related]
                if op == "some":
                    ok = any(hits)
                elif op == "every":
                    ok = all(hits)
                elif op == "none":
                    ok = not any(hits)
                else:
                    raise ValueError(f"Unsupported relation filter '{op}'")
                if not ok:
                    return False
            return True

        target = related[0] if related else None
        if condition is None:
            return target is None
        if isinstance(condition, Mapping) and set(condition) <= {"is", "isNot"} and condition:
            for op, nested in condition.items():
                matched = target is None if nested is None else (
                    target is not None and self._match(rel.target, target, nested)
                )
                if matched != (op == "is"):
                    return False
            return True
        return target is not None and self._match(rel.target, target, condition)

    def _matches_record(self, record: dict, where: Mapping) -> bool:
        return all(match_value(record.get(key), condition) for key, condition in where.items())

    def _select(self, model: str, rows: list[dict], args: Mapping) -> list[dict]:
        rows = self._matches(model, rows, args.get("where"))
        rows = self._order(model, rows, args.get("orderBy"))

        cursor = args.get("cursor")
        if cursor:
            start = next((i for i, row in enumerate(rows) if self._match(model, row, cursor)), None)
            rows = rows[start:] if start is not None else []

        skip = args.get("skip") or 0
        if skip:
            rows = rows[skip:]
        take = args.get("take")
        if take is not None:
            rows = rows[:take] if take >= 0 else rows[take:]
        return rows

    def _order(self, model: str, rows: list[dict], order_by: Any) -> list[dict]:
        entries = [(field, direction) for entry in _as_list(order_by) for field, direction in entry.items()]
        for field, direction in reversed(entries):
            if isinstance(direction, Mapping):
                raise ValueError(f"Ordering by relation {model}.{field} is not supported")
            rows = sorted(rows, key=lambda row: _sort_key(row.get(field)), reverse=direction == "desc")
        return rows

    def _aggregate_rows(self, rows: list[dict], args: Mapping) -> dict:
        result: dict[str, Any] = {}
        if args.get("_count"):
            result["_count"] = len(rows)
        for op, pick in (("_min", min), ("_max", max)):
            fields = args.get(op)
            if fields:
                result[op] = {}
                for field, wanted in fields.items():
                    if wanted:
                        values = [row.get(field) for row in rows if row.get(field) is not None]
                        result[op][field] = pick(values) if values else None
        return result

    def _shape(self, model: str, row: dict, args: Mapping) -> dict:
        select = args.get("select")
        if select:
            out = {}
            for key, wanted in select.items():
                if not wanted:
                    continue
                if self._relation(model, key) is not None:
                    out[key] = self._related_payload(model, key, row, wanted)
                else:
                    out[key] = deepcopy(row.get(key))
            return out

        out = deepcopy(row)
        for key, wanted in (args.get("include") or {}).items():
            if wanted and self._relation(model, key) is not None:
                out[key] = self._related_payload(model, key, row, wanted)
        return out

    def _related_payload(self, model: str, name: str, row: dict, wanted: Any) -> Any:
        rel = self._relations[model][name]
        sub_args = wanted if isinstance(wanted, Mapping) else {}
        related = self._related(model, name, row)
        if rel.many:
            return [self._shape(rel.target, item, sub_args) for item in self._select(rel.target, related, sub_args)]
        return self._shape(rel.target, related[0], sub_args) if related else None

    # Writes

    def _insert(self, model: str, data: Mapping) -> dict:
        row: dict[str, Any] = {}
        nested = {}
        for key, value in data.items():
            if self._relation(model, key) is not None:
                nested[key] = value
            else:
                row[key] = self._scalar(None, value)

        if row.get("id") is None:
            self._next_id[model] = self._next_id.get(model, 0) + 1
            row["id"] = self._next_id[model]
        elif any(existing["id"] == row["id"] for existing in self._table(model)):
            raise ValueError(f"Duplicate id {row['id']} in {model}")
        elif isinstance(row["id"], int):
            self._next_id[model] = max(self._next_id.get(model, 0), row["id"])

        self._table(model).append(row)
        for name, ops in nested.items():
            self._nested_write(model, name, row, ops)
        return row

    def _write(self, model: str, row: dict, data: Mapping) -> None:
        for key, value in data.items():
            if self._relation(model, key) is not None:
                self._nested_write(model, key, row, value)
            else:
                row[key] = self._scalar(row.get(key), value)

    def _scalar(self, current: Any, value: Any) -> Any:
        if not isinstance(value, Mapping) or len(value) != 1:
            return deepcopy(value)
        op, operand = next(iter(value.items()))
        if op == "set":
            return deepcopy(operand)
        if op == "increment":
            return (current or 0) + operand
        if op == "decrement":
            return (current or 0) - operand
        if op == "multiply":
            return (current or 0) * operand
        if op == "divide":
            return (current or 0) / operand
        return deepcopy(value)

    def _remove(self, model: str, row: dict) -> None:
        table = self._table(model)
        table[:] = [item for item in table if item["id"] != row["id"]]
        for name, rel in self._relations.get(model, {}).items():
            for related in self._related(model, name, row):
                self._unlink(model, name, row["id"], related["id"])

    def _link(self, model: str, name: str, source: Any, related: Any) -> None:
        rel = self._relations[model][name]
        if not rel.many:
            for (m, r, s, other) in list(self._links):
                if m == model and r == name and s == source:
                    self._unlink(model, name, source, other)
        inverse = self._relations[rel.target][rel.inverse]
        if not inverse.many:
            for (m, r, s, other) in list(self._links):
                if m == rel.target and r == rel.inverse and s == related:
                    self._unlink(rel.target, rel.inverse, related, other)
        self._links[(model, name, source, related)] = None
        self._links[(rel.target, rel.inverse, related, source)] = None

    def _unlink(self, model: str, name: str, source: Any, related: Any) -> None:
        rel = self._relations[model][name]
        self._links.pop((model, name, source, related), None)
        self._links.pop((rel.target, rel.inverse, related, source), None)

    def _nested_write(self, model: str, name: str, row: dict, ops: Any) -> None:
        rel = self._relations[model][name]
        if not isinstance(ops, Mapping):
            raise ValueError(f"Invalid nested write on {model}.{name}")

        for op, operand in ops.items():
            if op == "create":
                for item in _as_list(operand):
                    self._link(model, name, row["id"], self._insert(rel.target, item)["id"])
            elif op == "createMany":
                for item in _as_list(operand.get("data")):
                    self._link(model, name, row["id"], self._insert(rel.target, item)["id"])
            elif op == "connect":
                for where in _as_list(operand):
                    self._link(model, name, row["id"], self._require(rel.target, where, "connect")["id"])
            elif op == "connectOrCreate":
                for item in _as_list(operand):
                    target = self._first_match(rel.target, item.get("where") or {})
                    if target is None:
                        target = self._insert(rel.target, item.get("create") or {})
                    self._link(model, name, row["id"], target["id"])
            elif op == "disconnect":
                for related in self._nested_targets(model, name, row, operand):
                    self._unlink(model, name, row["id"], related["id"])
            elif op == "set":
                for related in self._related(model, name, row):
                    self._unlink(model, name, row["id"], related["id"])
                for where in _as_list(operand):
                    self._link(model, name, row["id"], self._require(rel.target, where, "connect")["id"])
            elif op in ("delete", "deleteMany"):
                for related in self._nested_targets(model, name, row, operand):
                    self._remove(rel.target, related)
            elif op in ("update", "updateMany"):
                for item in _as_list(operand):
                    if rel.many or "data" in item and set(item) <= {"where", "data"}:
                        targets = self._nested_targets(model, name, row, item.get("where") or {})
                        data = item.get("data") or {}
                    else:
                        targets, data = self._related(model, name, row), item
                    for related in targets:
                        self._write(rel.target, related, data)
            else:
                raise ValueError(f"Unsupported nested write '{op}' on {model}.{name}")

    def _nested_targets(self, model: str, name: str, row: dict, operand: Any) -> list[dict]:
        related = self._related(model, name, row)
        if operand is True:
            return related
        if not operand:
            return [] if operand is False else related
        matched: list[dict] = []
        for where in _as_list(operand):
            matched.extend(item for item in self._matches(self._relations[model][name].target, related, where)
                           if item not in matched)
        return matched
