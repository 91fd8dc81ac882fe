"""Durable stores for executions and audit entries."""

from .memory import InMemoryStore
from .sqlite import SqliteStore
from .state_config import StateConfig
from .store import Store

__all__ = ["InMemoryStore", "SqliteStore", "StateConfig", "Store"]
