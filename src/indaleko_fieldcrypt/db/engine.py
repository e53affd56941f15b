"""
Storage engine interface.

FieldCrypt does not execute queries itself. It hands transformed query
trees to an engine implementing this protocol and decodes what comes back.
"""

from typing import Any, Callable, Protocol, TypeVar


T = TypeVar("T")

# Operations understood by the bundled engines
ACTIONS = frozenset({
    "create",
    "create_many",
    "find_unique",
    "find_first",
    "find_many",
    "update",
    "update_many",
    "upsert",
    "delete",
    "delete_many",
    "count",
    "aggregate",
    "group_by",
})


class Engine(Protocol):
    """A data-access client that executes query trees."""

    def execute(self, model: str, action: str, args: dict[str, Any]) -> Any:
        """Run one operation and return its result payload."""
        ...

    def transaction(self, callback: Callable[["Engine"], T]) -> T:
        """
        Run ``callback`` inside a transaction.

        The callback receives an engine bound to the transaction. If it
        raises, nothing it did is committed and the exception propagates.
        """
        ...
