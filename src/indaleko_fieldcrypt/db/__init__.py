"""
Storage engines for FieldCrypt.

This module provides the engine protocol FieldCrypt talks to, an
in-memory relational engine, and an ArangoDB engine.
"""

from .arangodb import ArangoEngine
from .engine import ACTIONS, Engine
from .memory import MemoryEngine, RelationDef

__all__ = ["ACTIONS", "ArangoEngine", "Engine", "MemoryEngine", "RelationDef"]
