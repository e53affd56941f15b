"""
Query interception for FieldCrypt.

This package walks query-description trees and result payloads: the guard
strips directives that cannot work on protected fields, the walker encodes
plaintext on the way to storage, and the decoder restores plaintext on the
way back.
"""

from .decoder import ResultDecoder
from .guard import GuardResult, OrderingGuard, normalize_order_by
from .traversal import QueryTraversal
from .walker import QueryWalker

__all__ = [
    "GuardResult",
    "OrderingGuard",
    "QueryTraversal",
    "QueryWalker",
    "ResultDecoder",
    "normalize_order_by",
]
