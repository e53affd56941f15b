"""
ArangoDB engine for FieldCrypt.

This module executes FieldCrypt query trees against ArangoDB using the
python-arango driver. Each model is stored in a collection of the same
name as flat documents; filters are compiled to AQL with bind variables.
Nested relation writes and includes are not supported by this engine.
"""

import logging
import sys
from typing import Any, Callable, Iterable, Mapping, TypeVar

from arango import ArangoClient
from arango.database import StandardDatabase
from arango.exceptions import ArangoError, CollectionCreateError, DocumentInsertError

from ..config import FieldCryptConfig
from .engine import ACTIONS


logger = logging.getLogger(__name__)

T = TypeVar("T")

_COMPARISONS = {
    "equals": "==",
    "lt": "<",
    "lte": "<=",
    "gt": ">",
    "gte": ">=",
    "in": "IN",
    "notIn": "NOT IN",
}

_SYSTEM_KEYS = ("_key", "_id", "_rev")

_NESTED_WRITES = frozenset({"create", "createMany", "connect", "connectOrCreate", "disconnect", "set", "update", "delete"})


class AqlBuilder:
    """Accumulates AQL fragments and their bind variables."""

    def __init__(self) -> None:
        self.bind_vars: dict[str, Any] = {}

    def bind(self, prefix: str, value: Any) -> str:
        name = f"{prefix}{len(self.bind_vars)}"
        self.bind_vars[name] = value
        return name

    def attribute(self, field: str) -> str:
        if field == "id":
            return "doc._key"
        return f"doc.@{self.bind('f', field)}"

    def filter(self, where: Any) -> str:
        """
        Compile a filter tree to an AQL boolean expression.

        Raises:
            ValueError: For relation filters or unknown operators
        """
        if isinstance(where, (list, tuple)):
            return self._join([self.filter(item) for item in where], "AND")
        if not where:
            return "true"

        clauses = []
        for key, condition in where.items():
            if key == "AND":
                clauses.append(self._join([self.filter(item) for item in _as_list(condition)], "AND"))
            elif key == "OR":
                clauses.append(self._join([self.filter(item) for item in _as_list(condition)], "OR", empty="false"))
            elif key == "NOT":
                clauses.append(f"NOT ({self._join([self.filter(item) for item in _as_list(condition)], 'OR', empty='false')})")
            else:
                clauses.append(self.field(key, condition))
        return self._join(clauses, "AND")

    def field(self, field: str, condition: Any) -> str:
        attribute = self.attribute(field)
        if not isinstance(condition, Mapping):
            return f"{attribute} == @{self.bind('v', _key_value(field, condition))}"

        clauses = []
        for op, operand in condition.items():
            if op == "not":
                if isinstance(operand, Mapping):
                    clauses.append(f"NOT ({self.field(field, operand)})")
                else:
                    clauses.append(f"{attribute} != @{self.bind('v', _key_value(field, operand))}")
            elif op in _COMPARISONS:
                value = [_key_value(field, item) for item in operand] if op in ("in", "notIn") else _key_value(field, operand)
                clauses.append(f"{attribute} {_COMPARISONS[op]} @{self.bind('v', value)}")
            elif op == "contains":
                clauses.append(f"CONTAINS({attribute}, @{self.bind('v', operand)})")
            elif op == "startsWith":
                clauses.append(f"STARTS_WITH({attribute}, @{self.bind('v', operand)})")
            elif op == "endsWith":
                clauses.append(f"LIKE({attribute}, CONCAT('%', @{self.bind('v', operand)}))")
            elif op == "mode":
                continue
            else:
                raise ValueError(f"Unsupported filter operator '{op}' for ArangoDB")
        return self._join(clauses, "AND")

    def sort(self, order_by: Any) -> str:
        fields = []
        for entry in _as_list(order_by):
            for field, direction in entry.items():
                if isinstance(direction, Mapping):
                    raise ValueError(f"Ordering by relation '{field}' is not supported by ArangoDB engine")
                fields.append(f"{self.attribute(field)} {'DESC' if direction == 'desc' else 'ASC'}")
        return f"SORT {', '.join(fields)}" if fields else ""

    @staticmethod
    def _join(clauses: list[str], operator: str, empty: str = "true") -> str:
        clauses = [clause for clause in clauses if clause]
        if not clauses:
            return empty
        if len(clauses) == 1:
            return clauses[0]
        return "(" + f" {operator} ".join(clauses) + ")"


def _as_list(node: Any) -> list:
    if node is None:
        return []
    if isinstance(node, (list, tuple)):
        return list(node)
    return [node]


def _key_value(field: str, value: Any) -> Any:
    # document keys are strings in ArangoDB
    if field == "id" and value is not None and not isinstance(value, str):
        return str(value)
    return value


def _to_record(doc: Mapping[str, Any]) -> dict[str, Any]:
    record = {key: value for key, value in doc.items() if key not in _SYSTEM_KEYS}
    record["id"] = doc["_key"]
    return record


def _to_document(data: Mapping[str, Any]) -> dict[str, Any]:
    document = {}
    for key, value in data.items():
        if isinstance(value, Mapping) and set(value) == {"set"}:
            value = value["set"]
        elif isinstance(value, Mapping) and _NESTED_WRITES.intersection(value):
            raise ValueError(f"Nested write on '{key}' is not supported by the ArangoDB engine")
        if key == "id":
            document["_key"] = str(value)
        else:
            document[key] = value
    return document


class ArangoEngine:
    """
    Engine executing query trees against ArangoDB.

    One collection per model, created on first use.
    """

    def __init__(self, db: StandardDatabase | None = None, collections: list[str] | None = None) -> None:
        """
        Initialize the ArangoDB engine.

        Args:
            db: Database handle; connects using FieldCryptConfig when omitted
            collections: Model collections to ensure exist
        """
        self.client: ArangoClient | None = None
        self.db = db if db is not None else self._connect()
        self._known: set[str] = set()
        self._in_transaction = False
        for name in collections or []:
            self._ensure_collection(name)

    def _connect(self) -> StandardDatabase:
        db_config = FieldCryptConfig.get_database_credentials()
        db_url = FieldCryptConfig.get_database_url()

        try:
            self.client = ArangoClient(hosts=db_url)
            db = self.client.db(
                name=db_config["database"],
                username=db_config["username"],
                password=db_config["password"],
                auth_method="basic",
                verify=True,
            )
        except ArangoError as e:
            logger.critical("Failed to connect to ArangoDB at %s: %s", db_url, e)
            sys.exit(1)
        return db

    def _ensure_collection(self, name: str) -> None:
        if name in self._known:
            return
        if self._in_transaction:
            raise ValueError(f"Collection {name} was not declared for this transaction")
        try:
            if not self.db.has_collection(name):
                logger.info("Creating collection: %s", name)
                self.db.create_collection(name)
        except CollectionCreateError as e:
            raise ValueError(f"Failed to create collection {name}: {e}") from e
        self._known.add(name)

    def execute(self, model: str, action: str, args: dict[str, Any] | None = None) -> Any:
        """
        Run one operation.

        Raises:
            ValueError: For unsupported actions or arguments
            LookupError: When a unique record required by the operation is missing
        """
        if action not in ACTIONS or action in ("aggregate", "group_by", "upsert"):
            raise ValueError(f"Unsupported action '{action}' for ArangoDB engine")
        args = args or {}
        for key in ("include", "cursor"):
            if args.get(key):
                raise ValueError(f"'{key}' is not supported by the ArangoDB engine")
        self._ensure_collection(model)
        return getattr(self, f"_{action}")(model, args)

    def transaction(self, callback: Callable[["ArangoEngine"], T], collections: Iterable[str] = ()) -> T:
        """
        Run ``callback`` in an ArangoDB stream transaction.

        Stream transactions declare their collections up front, so the
        callback may only touch collections already known to this engine
        (those passed at construction or used before) or listed in
        ``collections``; these are created before the transaction begins.

        Raises:
            ValueError: If the callback uses an undeclared collection
        """
        for name in collections:
            self._ensure_collection(name)
        txn_db = self.db.begin_transaction(write=sorted(self._known))
        bound = ArangoEngine.__new__(ArangoEngine)
        bound.client = None
        bound.db = txn_db
        bound._known = set(self._known)
        bound._in_transaction = True
        try:
            result = callback(bound)
        except BaseException:
            txn_db.abort_transaction()
            raise
        txn_db.commit_transaction()
        return result

    def close(self) -> None:
        """Close the database connection."""
        if self.client is not None:
            self.client.close()

    # Actions

    def _query(self, model: str, args: Mapping[str, Any], tail: str = "RETURN doc") -> list:
        aql = AqlBuilder()
        aql.bind_vars["@col"] = model
        lines = ["FOR doc IN @@col", f"FILTER {aql.filter(args.get('where'))}"]
        sort = aql.sort(args.get("orderBy"))
        if sort:
            lines.append(sort)
        take, skip = args.get("take"), args.get("skip") or 0
        if take is not None or skip:
            lines.append(f"LIMIT {int(skip)}, {int(take) if take is not None else 2 ** 31}")
        lines.append(tail)
        return list(self.db.aql.execute("\n".join(lines), bind_vars=aql.bind_vars))

    def _project(self, doc: Mapping[str, Any], args: Mapping[str, Any]) -> dict[str, Any]:
        record = _to_record(doc)
        select = args.get("select")
        if select:
            return {key: record.get(key) for key, wanted in select.items() if wanted}
        return record

    def _create(self, model: str, args: dict) -> dict:
        try:
            result = self.db.collection(model).insert(_to_document(args.get("data") or {}), return_new=True)
        except DocumentInsertError as e:
            raise ValueError(f"Failed to insert into {model}: {e}") from e
        return self._project(result["new"], args)

    def _create_many(self, model: str, args: dict) -> dict:
        documents = [_to_document(item) for item in _as_list(args.get("data"))]
        results = self.db.collection(model).insert_many(documents)
        errors = [result for result in results if isinstance(result, ArangoError)]
        if errors:
            raise ValueError(f"Failed to insert {len(errors)} documents into {model}: {errors[0]}")
        return {"count": len(documents)}

    def _find_many(self, model: str, args: dict) -> list:
        return [self._project(doc, args) for doc in self._query(model, args)]

    def _find_first(self, model: str, args: dict) -> dict | None:
        docs = self._query(model, {**args, "take": 1})
        return self._project(docs[0], args) if docs else None

    def _find_unique(self, model: str, args: dict) -> dict | None:
        return self._find_first(model, {"where": args.get("where"), "select": args.get("select")})

    def _update(self, model: str, args: dict) -> dict:
        docs = self._mutate(model, args, "UPDATE doc WITH @data IN @@col RETURN NEW", take=1)
        if not docs:
            raise LookupError(f"Record to update not found in {model}")
        return self._project(docs[0], args)

    def _update_many(self, model: str, args: dict) -> dict:
        return {"count": len(self._mutate(model, args, "UPDATE doc WITH @data IN @@col RETURN NEW"))}

    def _delete(self, model: str, args: dict) -> dict:
        docs = self._mutate(model, args, "REMOVE doc IN @@col RETURN OLD", take=1)
        if not docs:
            raise LookupError(f"Record to delete not found in {model}")
        return self._project(docs[0], args)

    def _delete_many(self, model: str, args: dict) -> dict:
        return {"count": len(self._mutate(model, args, "REMOVE doc IN @@col RETURN OLD"))}

    def _count(self, model: str, args: dict) -> int:
        return len(self._query(model, args, tail="RETURN 1"))

    def _mutate(self, model: str, args: Mapping[str, Any], tail: str, take: int | None = None) -> list:
        aql = AqlBuilder()
        aql.bind_vars["@col"] = model
        lines = ["FOR doc IN @@col", f"FILTER {aql.filter(args.get('where'))}"]
        if take is not None:
            lines.append(f"LIMIT {take}")
        if "@data" in tail:
            aql.bind_vars["data"] = _to_document(args.get("data") or {})
        lines.append(tail)
        return list(self.db.aql.execute("\n".join(lines), bind_vars=aql.bind_vars))
