"""
Graph layer for the memory engine.

Provides the FalkorDB client, the session/transaction abstraction every
store call goes through, structured error kinds and the transient-retry
policy.
"""

from .client import GraphClient
from .errors import ErrorKind, InvalidIdentifier, InvalidTransition, StoreError
from .retry import retry_on_transient
from .schema import ENTITY_RELATION_TYPES
from .session import GraphSession, GraphTransaction

__all__ = [
    "ENTITY_RELATION_TYPES",
    "ErrorKind",
    "GraphClient",
    "GraphSession",
    "GraphTransaction",
    "InvalidIdentifier",
    "InvalidTransition",
    "StoreError",
    "retry_on_transient",
]
