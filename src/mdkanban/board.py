"""Board data model: work items, status history entries, board config."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping


TERMINAL_STATUS = "done"
ITEM_KINDS = ("card", "initiative")


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class StatusHistoryEntry:
    status: str
    entered_at: int
    left_at: int | None = None
    duration: int | None = None

    @property
    def is_open(self) -> bool:
        return self.left_at is None


@dataclass
class WorkItem:
    """A card or initiative tracked on the board.

    ``extra`` holds frontmatter keys the board does not interpret, so they
    survive a load/save cycle untouched.
    """

    id: str
    status: str
    title: str = ""
    kind: str = "card"
    predecessors: list[str] = field(default_factory=list)
    successors: list[str] = field(default_factory=list)
    history: list[StatusHistoryEntry] = field(default_factory=list)
    created_at: int | None = None
    updated_date: str | None = None
    initiative: str | None = None
    priority: str | None = None
    tags: list[str] = field(default_factory=list)
    body: str = ""
    extra: dict[str, Any] = field(default_factory=dict)

    def open_entry(self) -> StatusHistoryEntry | None:
        for entry in reversed(self.history):
            if entry.is_open:
                return entry
        return None


@dataclass(frozen=True)
class ValidationResult:
    is_valid: bool
    errors: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_valid": self.is_valid,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
        }


class CycleError(ValueError):
    def __init__(self, cycle: list[str]) -> None:
        super().__init__(f"dependency cycle detected: {' -> '.join(cycle)}")
        self.cycle = cycle


@dataclass(frozen=True)
class BoardColumn:
    id: str
    title: str
    color: str = ""
    order: int = 0
    wip_limit: int | None = None


@dataclass(frozen=True)
class DependencyRules:
    enforce_predecessors: bool = False
    # Reserved: parsed and preserved, not consulted by any check.
    allow_parallel_work: bool = False


@dataclass(frozen=True)
class BoardConfig:
    columns: tuple[BoardColumn, ...] = ()
    wip_limits: Mapping[str, int] = field(default_factory=dict)
    dependency_rules: DependencyRules = field(default_factory=DependencyRules)
    settings: Mapping[str, Any] = field(default_factory=dict)

    def column(self, status: str) -> BoardColumn | None:
        for column in self.columns:
            if column.id == status:
                return column
        return None

    def statuses(self) -> list[str]:
        return [column.id for column in sorted(self.columns, key=lambda c: c.order)]

    def wip_limit_for(self, status: str) -> int | None:
        if status in self.wip_limits:
            # an explicit 0 means unlimited, not "use the column limit"
            return self.wip_limits[status] or None
        column = self.column(status)
        if column is not None and column.wip_limit:
            return column.wip_limit
        return None


DEFAULT_COLUMNS = (
    BoardColumn("backlog", "Backlog", "#8b5cf6", 0),
    BoardColumn("in-progress", "In Progress", "#3b82f6", 1),
    BoardColumn("review", "Review", "#f59e0b", 2),
    BoardColumn(TERMINAL_STATUS, "Done", "#10b981", 3),
)


def default_board_config() -> BoardConfig:
    return BoardConfig(
        columns=DEFAULT_COLUMNS,
        wip_limits={"in-progress": 5, "review": 3},
        dependency_rules=DependencyRules(
            enforce_predecessors=True,
            allow_parallel_work=False,
        ),
    )


def index_items(
    items: Mapping[str, WorkItem] | Iterable[WorkItem],
) -> dict[str, WorkItem]:
    """Return an ``id -> item`` dict, preserving input order."""
    if isinstance(items, Mapping):
        return dict(items)
    return {item.id: item for item in items}
