from __future__ import annotations

from pathlib import Path

import pytest

from mdkanban.board import WorkItem
from mdkanban.store import BoardStore

T0 = 1_760_000_000_000


def make_item(
    item_id: str,
    status: str = "backlog",
    *,
    predecessors: list[str] | None = None,
    successors: list[str] | None = None,
    tags: list[str] | None = None,
    created_at: int | None = T0,
) -> WorkItem:
    return WorkItem(
        id=item_id,
        status=status,
        title=f"Item {item_id}",
        predecessors=predecessors or [],
        successors=successors or [],
        tags=tags or [],
        created_at=created_at,
    )


@pytest.fixture
def board(tmp_path: Path) -> BoardStore:
    return BoardStore.init(tmp_path / "board")
