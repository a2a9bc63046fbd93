"""Directory-backed board store: board.toml plus one markdown file per item."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable

from .board import ITEM_KINDS, BoardConfig, ValidationResult, WorkItem, now_ms
from .config import CONFIG_FILENAME, DEFAULT_CONFIG_TOML, load_board_config
from .frontmatter import (
    DEFAULT_STATUS,
    FrontmatterError,
    parse_item,
    render_item,
    to_day,
)
from .graph import DependencyGraph
from .history import initialize_history, record_transition

logger = logging.getLogger(__name__)

KIND_DIRS = {"card": "cards", "initiative": "initiatives"}
_UPDATABLE_FIELDS = {"title", "initiative", "priority", "tags", "body", "extra"}


class BoardError(RuntimeError):
    pass


@dataclass(frozen=True)
class MoveResult:
    item_id: str
    from_status: str
    to_status: str
    validation: ValidationResult
    moved: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.item_id,
            "from": self.from_status,
            "to": self.to_status,
            "moved": self.moved,
            **self.validation.to_dict(),
        }


def _initiative_suffix(n: int) -> str:
    letters = ""
    while n > 0:
        n, rem = divmod(n - 1, 26)
        letters = chr(ord("A") + rem) + letters
    return letters


def _write_atomic(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(".tmp")
    tmp.write_text(text, encoding="utf-8")
    os.replace(tmp, path)


class BoardStore:
    """Loads and persists a board directory.

    Every read goes back to disk, so the store holds no state beyond the
    board config; callers work on the snapshot ``load`` returns and hand
    mutated items back through ``save``.
    """

    def __init__(self, board_dir: Path, config: BoardConfig) -> None:
        self.board_dir = board_dir
        self.config = config

    @classmethod
    def open(cls, board_dir: Path) -> BoardStore:
        loaded = load_board_config(board_dir)
        if loaded.config is None:
            raise BoardError(loaded.error or f"cannot load board at {board_dir}")
        return cls(board_dir, loaded.config)

    @classmethod
    def init(cls, board_dir: Path) -> BoardStore:
        """Create the board layout, keeping any existing board.toml."""
        board_dir.mkdir(parents=True, exist_ok=True)
        for dirname in KIND_DIRS.values():
            (board_dir / dirname).mkdir(exist_ok=True)
        config_path = board_dir / CONFIG_FILENAME
        if not config_path.exists():
            config_path.write_text(DEFAULT_CONFIG_TOML, encoding="utf-8")
        return cls.open(board_dir)

    def _kind_dir(self, kind: str) -> Path:
        if kind not in KIND_DIRS:
            raise ValueError(f"invalid item kind: {kind}")
        return self.board_dir / KIND_DIRS[kind]

    def path_for(self, item: WorkItem) -> Path:
        return self._kind_dir(item.kind) / f"{item.id}.md"

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    def load(self) -> dict[str, WorkItem]:
        """Read every card and initiative. Malformed files are skipped."""
        items: dict[str, WorkItem] = {}
        for kind in ITEM_KINDS:
            directory = self._kind_dir(kind)
            if not directory.is_dir():
                continue
            for path in sorted(directory.glob("*.md")):
                try:
                    item = parse_item(path.read_text(encoding="utf-8"), path.stem, kind=kind)
                except (OSError, UnicodeDecodeError, FrontmatterError) as exc:
                    logger.warning("Skipping %s: %s", path, exc)
                    continue
                if item.id in items:
                    logger.warning("Skipping %s: duplicate id %s", path, item.id)
                    continue
                if not item.history:
                    if item.created_at is None:
                        item.created_at = int(path.stat().st_mtime * 1000)
                    initialize_history(item)
                items[item.id] = item
        return items

    def items(self, *, kind: str | None = None, status: str | None = None) -> list[WorkItem]:
        rows = list(self.load().values())
        if kind:
            rows = [item for item in rows if item.kind == kind]
        if status:
            rows = [item for item in rows if item.status == status]
        return rows

    def get(self, item_id: str) -> WorkItem | None:
        return self.load().get(item_id)

    def items_for_initiative(self, initiative_id: str) -> list[WorkItem]:
        return [
            item
            for item in self.load().values()
            if item.kind == "card" and item.initiative == initiative_id
        ]

    def graph(self, items: dict[str, WorkItem] | None = None) -> DependencyGraph:
        return DependencyGraph(items if items is not None else self.load())

    # ------------------------------------------------------------------
    # Writing
    # ------------------------------------------------------------------

    def save(self, item: WorkItem) -> Path:
        path = self.path_for(item)
        _write_atomic(path, render_item(item))
        return path

    def _require(self, items: dict[str, WorkItem], item_id: str) -> WorkItem:
        item = items.get(item_id)
        if item is None:
            raise KeyError(item_id)
        return item

    def _next_id(self, kind: str, existing: Iterable[str]) -> str:
        taken = set(existing)
        counter = 1
        while True:
            if kind == "initiative":
                candidate = f"Initiative{_initiative_suffix(counter)}"
            else:
                candidate = f"{counter:04d}"
            if candidate not in taken:
                return candidate
            counter += 1

    def _check_status(self, status: str) -> None:
        statuses = self.config.statuses()
        if statuses and status not in statuses:
            raise ValueError(
                f"unknown status {status!r} (expected one of: {', '.join(statuses)})"
            )

    def create(
        self,
        title: str,
        *,
        kind: str = "card",
        status: str | None = None,
        predecessors: Iterable[str] = (),
        successors: Iterable[str] = (),
        initiative: str | None = None,
        priority: str | None = None,
        tags: Iterable[str] = (),
        body: str = "",
        now: int | None = None,
    ) -> WorkItem:
        self._kind_dir(kind)
        if status is None:
            statuses = self.config.statuses()
            if kind == "card" and statuses:
                status = statuses[0]
            else:
                status = DEFAULT_STATUS[kind]
        if kind == "card":
            self._check_status(status)

        items = self.load()
        for ref in (*predecessors, *successors):
            self._require(items, ref)

        created_at = now if now is not None else now_ms()
        item = WorkItem(
            id=self._next_id(kind, items),
            status=status,
            title=title,
            kind=kind,
            predecessors=list(dict.fromkeys(predecessors)),
            successors=list(dict.fromkeys(successors)),
            created_at=created_at,
            updated_date=to_day(created_at),
            initiative=initiative,
            priority=priority,
            tags=list(dict.fromkeys(tags)),
            body=body,
        )
        initialize_history(item, now=created_at)

        # mirror the new edges onto the other endpoints
        for pred_id in item.predecessors:
            pred = items[pred_id]
            if item.id not in pred.successors:
                pred.successors.append(item.id)
                self.save(pred)
        for succ_id in item.successors:
            succ = items[succ_id]
            if item.id not in succ.predecessors:
                succ.predecessors.append(item.id)
                self.save(succ)

        self.save(item)
        logger.info("Created %s %s (%s)", kind, item.id, status)
        return item

    def update(self, item_id: str, **fields: Any) -> WorkItem:
        items = self.load()
        item = self._require(items, item_id)
        for key, value in fields.items():
            if key == "id":
                continue
            if key not in _UPDATABLE_FIELDS:
                raise ValueError(f"field {key!r} cannot be updated directly")
            setattr(item, key, value)
        item.updated_date = to_day(now_ms())
        self.save(item)
        return item

    def delete(self, item_id: str) -> WorkItem:
        """Remove an item and strip it from every other item's edges."""
        items = self.load()
        item = self._require(items, item_id)
        self.path_for(item).unlink(missing_ok=True)

        for other in items.values():
            if other.id == item_id:
                continue
            if item_id in other.predecessors or item_id in other.successors:
                other.predecessors = [ref for ref in other.predecessors if ref != item_id]
                other.successors = [ref for ref in other.successors if ref != item_id]
                self.save(other)

        logger.info("Deleted %s %s", item.kind, item_id)
        return item

    def validate_move(self, item_id: str, status: str) -> ValidationResult:
        items = self.load()
        item = self._require(items, item_id)
        return self.graph(items).validate_transition(item, status, items, self.config)

    def move(
        self,
        item_id: str,
        status: str,
        *,
        force: bool = False,
        now: int | None = None,
    ) -> MoveResult:
        """Validate and apply a status change.

        A move with validation errors is refused unless ``force`` is set;
        warnings never block it.
        """
        items = self.load()
        item = self._require(items, item_id)
        if item.kind == "card":
            self._check_status(status)

        validation = self.graph(items).validate_transition(
            item, status, items, self.config
        )
        from_status = item.status
        moved = False
        if validation.is_valid or force:
            moved = record_transition(item, status, now=now)
            if moved:
                item.updated_date = to_day(item.history[-1].entered_at)
                self.save(item)
                logger.info("Moved %s %s -> %s", item_id, from_status, status)
        else:
            logger.info(
                "Refused move of %s to %s: %s",
                item_id,
                status,
                "; ".join(validation.errors),
            )

        return MoveResult(
            item_id=item_id,
            from_status=from_status,
            to_status=status,
            validation=validation,
            moved=moved,
        )

    def add_dependency(self, from_id: str, to_id: str) -> None:
        """Record that ``from_id`` blocks ``to_id`` on both items."""
        if from_id == to_id:
            raise ValueError("an item cannot depend on itself")
        items = self.load()
        source = self._require(items, from_id)
        target = self._require(items, to_id)

        if to_id not in source.successors:
            source.successors.append(to_id)
            self.save(source)
        if from_id not in target.predecessors:
            target.predecessors.append(from_id)
            self.save(target)

    def remove_dependency(self, from_id: str, to_id: str) -> bool:
        """Drop the ``from_id`` -> ``to_id`` edge. Returns True if anything changed.

        One endpoint may be missing from the board, which clears a reference
        left behind by a file deleted outside the store.
        """
        items = self.load()
        source = items.get(from_id)
        target = items.get(to_id)
        if source is None and target is None:
            raise KeyError(from_id)

        changed = False
        if source is not None and to_id in source.successors:
            source.successors = [ref for ref in source.successors if ref != to_id]
            self.save(source)
            changed = True
        if target is not None and from_id in target.predecessors:
            target.predecessors = [ref for ref in target.predecessors if ref != from_id]
            self.save(target)
            changed = True
        return changed
