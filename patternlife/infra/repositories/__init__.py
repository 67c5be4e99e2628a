"""Pattern registries and observation stores.

This package provides two families of storage adapters:
- memory.py: Lock-guarded in-process stores (default)
- pattern.py / observation.py: KùzuDB-backed persistent stores
- approval.py: KùzuDB-backed approval queue
- base.py: Shared embedding text and similarity ranking helpers
"""

from .approval import KuzuApprovalQueue
from .memory import (
    InMemoryApprovalQueue,
    InMemoryObservationStore,
    InMemoryPatternRegistry,
)
from .observation import KuzuObservationStore
from .pattern import KuzuPatternRegistry

__all__ = [
    "InMemoryApprovalQueue",
    "KuzuApprovalQueue",
    "InMemoryPatternRegistry",
    "InMemoryObservationStore",
    "KuzuPatternRegistry",
    "KuzuObservationStore",
]
