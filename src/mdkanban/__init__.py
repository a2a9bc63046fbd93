from __future__ import annotations

from typing import TYPE_CHECKING

__all__ = [
    "__version__",
    "BoardConfig",
    "BoardStore",
    "CycleError",
    "DependencyGraph",
    "StatusHistoryEntry",
    "ValidationResult",
    "WorkItem",
]

__version__ = "0.1.0"

if TYPE_CHECKING:
    from .board import (
        BoardConfig,
        CycleError,
        StatusHistoryEntry,
        ValidationResult,
        WorkItem,
    )
    from .graph import DependencyGraph
    from .store import BoardStore


def __getattr__(name: str):
    if name in {
        "BoardConfig",
        "CycleError",
        "StatusHistoryEntry",
        "ValidationResult",
        "WorkItem",
    }:
        from . import board

        return getattr(board, name)
    if name == "DependencyGraph":
        from .graph import DependencyGraph

        return DependencyGraph
    if name == "BoardStore":
        from .store import BoardStore

        return BoardStore
    raise AttributeError(f"module 'mdkanban' has no attribute {name!r}")
