from __future__ import annotations

import logging
from pathlib import Path

import pytest

from conftest import T0
from mdkanban.board import now_ms
from mdkanban.config import CONFIG_FILENAME
from mdkanban.frontmatter import to_day
from mdkanban.store import BoardError, BoardStore


def test_init_creates_layout(tmp_path: Path) -> None:
    store = BoardStore.init(tmp_path / "board")

    assert (tmp_path / "board" / CONFIG_FILENAME).is_file()
    assert (tmp_path / "board" / "cards").is_dir()
    assert (tmp_path / "board" / "initiatives").is_dir()
    assert store.config.statuses() == ["backlog", "in-progress", "review", "done"]
    assert store.load() == {}


def test_init_keeps_existing_config(tmp_path: Path) -> None:
    board_dir = tmp_path / "board"
    board_dir.mkdir()
    (board_dir / CONFIG_FILENAME).write_text('[[columns]]\nid = "todo"\n', encoding="utf-8")

    store = BoardStore.init(board_dir)

    assert store.config.statuses() == ["todo"]


def test_open_without_config_raises(tmp_path: Path) -> None:
    with pytest.raises(BoardError, match="no board config found"):
        BoardStore.open(tmp_path)


def test_create_assigns_sequential_ids(board: BoardStore) -> None:
    first = board.create("First", now=T0)
    second = board.create("Second", now=T0)
    initiative = board.create("Big push", kind="initiative", now=T0)

    assert (first.id, second.id, initiative.id) == ("0001", "0002", "InitiativeA")
    assert first.status == "backlog"
    assert initiative.status == "planning"
    assert (board.board_dir / "cards" / "0001.md").is_file()
    assert (board.board_dir / "initiatives" / "InitiativeA.md").is_file()


def test_create_reuses_gaps_in_ids(board: BoardStore) -> None:
    board.create("First", now=T0)
    board.create("Second", now=T0)
    board.delete("0001")

    assert board.create("Third", now=T0).id == "0001"


def test_create_seeds_history(board: BoardStore) -> None:
    board.create("First", status="review", now=T0)
    item = board.get("0001")

    assert item is not None
    assert item.created_at == T0
    assert [(e.status, e.entered_at, e.left_at) for e in item.history] == [
        ("review", T0, None)
    ]


def test_create_mirrors_edges(board: BoardStore) -> None:
    board.create("A", now=T0)
    board.create("C", now=T0)
    board.create("B", predecessors=["0001"], successors=["0002"], now=T0)

    items = board.load()
    assert items["0001"].successors == ["0003"]
    assert items["0002"].predecessors == ["0003"]
    assert items["0003"].predecessors == ["0001"]
    assert items["0003"].successors == ["0002"]


def test_create_rejects_missing_reference(board: BoardStore) -> None:
    with pytest.raises(KeyError):
        board.create("Orphan", predecessors=["0042"], now=T0)
    assert board.load() == {}


def test_create_rejects_unknown_status(board: BoardStore) -> None:
    with pytest.raises(ValueError, match="unknown status"):
        board.create("Nope", status="someday", now=T0)


def test_create_rejects_unknown_kind(board: BoardStore) -> None:
    with pytest.raises(ValueError, match="invalid item kind"):
        board.create("Nope", kind="epic", now=T0)


def test_move_refused_while_predecessor_open(board: BoardStore) -> None:
    board.create("A", now=T0)
    board.create("B", predecessors=["0001"], now=T0)

    result = board.move("0002", "in-progress", now=T0 + 1000)

    assert result.moved is False
    assert result.validation.is_valid is False
    assert board.get("0002").status == "backlog"


def test_forced_move_applies_anyway(board: BoardStore) -> None:
    board.create("A", now=T0)
    board.create("B", predecessors=["0001"], now=T0)

    result = board.move("0002", "in-progress", force=True, now=T0 + 1000)

    assert result.moved is True
    assert result.validation.errors
    assert board.get("0002").status == "in-progress"


def test_move_after_predecessor_done(board: BoardStore) -> None:
    board.create("A", now=T0)
    board.create("B", predecessors=["0001"], now=T0)

    assert board.move("0001", "done", now=T0 + 500).moved is True
    result = board.move("0002", "in-progress", now=T0 + 1000)

    assert result.moved is True
    assert result.to_dict() == {
        "id": "0002",
        "from": "backlog",
        "to": "in-progress",
        "moved": True,
        "is_valid": True,
        "errors": [],
        "warnings": [],
    }


def test_move_persists_history(board: BoardStore) -> None:
    board.create("A", now=T0)
    board.move("0001", "in-progress", now=T0 + 1000)
    board.move("0001", "done", now=T0 + 4000)

    item = board.get("0001")
    assert [(e.status, e.duration) for e in item.history] == [
        ("backlog", 1000),
        ("in-progress", 3000),
        ("done", None),
    ]


def test_move_to_same_status_is_noop(board: BoardStore) -> None:
    board.create("A", now=T0)

    result = board.move("0001", "backlog", now=T0 + 1000)

    assert result.moved is False
    assert len(board.get("0001").history) == 1


def test_move_over_wip_limit_warns_but_moves(board: BoardStore) -> None:
    for n in range(3):
        board.create(f"R{n}", status="review", now=T0)
    board.create("N", now=T0)

    result = board.move("0004", "review", now=T0 + 10)

    assert result.moved is True
    assert result.validation.warnings == ("WIP limit for 'review' (3) would be exceeded",)


def test_move_unknown_item(board: BoardStore) -> None:
    with pytest.raises(KeyError):
        board.move("0099", "done")


def test_delete_strips_references(board: BoardStore) -> None:
    board.create("A", now=T0)
    board.create("B", predecessors=["0001"], now=T0)
    board.create("C", predecessors=["0002"], now=T0)

    board.delete("0002")

    items = board.load()
    assert "0002" not in items
    assert items["0001"].successors == []
    assert items["0003"].predecessors == []
    assert not (board.board_dir / "cards" / "0002.md").exists()


def test_add_and_remove_dependency(board: BoardStore) -> None:
    board.create("A", now=T0)
    board.create("B", now=T0)

    board.add_dependency("0001", "0002")
    board.add_dependency("0001", "0002")
    items = board.load()
    assert items["0001"].successors == ["0002"]
    assert items["0002"].predecessors == ["0001"]

    assert board.remove_dependency("0001", "0002") is True
    assert board.remove_dependency("0001", "0002") is False
    items = board.load()
    assert items["0001"].successors == []
    assert items["0002"].predecessors == []


def test_self_dependency_rejected(board: BoardStore) -> None:
    board.create("A", now=T0)
    with pytest.raises(ValueError):
        board.add_dependency("0001", "0001")


def test_cycle_surfaces_in_graph(board: BoardStore) -> None:
    board.create("A", now=T0)
    board.create("B", predecessors=["0001"], now=T0)
    board.add_dependency("0002", "0001")

    graph = board.graph()
    assert graph.has_cycle("0001") is True
    assert "Circular dependency detected" in board.validate_move("0001", "review").errors


def test_update_changes_allowed_fields(board: BoardStore) -> None:
    board.create("A", now=T0)

    board.update("0001", title="Renamed", tags=["ops"], id="ignored")

    item = board.get("0001")
    assert item.title == "Renamed"
    assert item.tags == ["ops"]


def test_update_rejects_status(board: BoardStore) -> None:
    board.create("A", now=T0)
    with pytest.raises(ValueError, match="cannot be updated"):
        board.update("0001", status="done")


def test_items_filters(board: BoardStore) -> None:
    board.create("Push", kind="initiative", now=T0)
    board.create("A", initiative="InitiativeA", now=T0)
    board.create("B", status="done", now=T0)

    assert [i.id for i in board.items(kind="card")] == ["0001", "0002"]
    assert [i.id for i in board.items(status="done")] == ["0002"]
    assert [i.id for i in board.items_for_initiative("InitiativeA")] == ["0001"]


def test_malformed_file_is_skipped(
    board: BoardStore, caplog: pytest.LogCaptureFixture
) -> None:
    board.create("A", now=T0)
    (board.board_dir / "cards" / "0002.md").write_text(
        "---\ntitle: [broken\n---\n", encoding="utf-8"
    )

    with caplog.at_level(logging.WARNING, logger="mdkanban.store"):
        items = board.load()

    assert list(items) == ["0001"]
    assert "0002.md" in caplog.text


def test_legacy_card_gets_history_on_load(board: BoardStore) -> None:
    (board.board_dir / "cards" / "0007.md").write_text(
        '---\ntitle: Old\nstatus: review\ndate: "2025-10-09T08:53:20.000Z"\n---\n\nNotes\n',
        encoding="utf-8",
    )

    item = board.get("0007")

    assert item is not None
    assert item.status == "review"
    assert [(e.status, e.entered_at) for e in item.history] == [("review", T0)]
    assert item.body == "Notes\n"


def test_unknown_frontmatter_survives_save(board: BoardStore) -> None:
    path = board.board_dir / "cards" / "0001.md"
    path.write_text(
        "---\ntitle: Keep\nstatus: backlog\nassignee: sam\n---\n", encoding="utf-8"
    )

    board.move("0001", "in-progress", now=T0)

    assert board.get("0001").extra == {"assignee": "sam"}
    assert "assignee: sam" in path.read_text(encoding="utf-8")


def test_title_with_dashes_survives_reload(board: BoardStore) -> None:
    board.create("A", now=T0)
    board.create("Fix a --- b", status="review", predecessors=["0001"], now=T0)

    item = board.load()["0002"]

    assert item.title == "Fix a --- b"
    assert item.status == "review"
    assert item.predecessors == ["0001"]
    assert len(item.history) == 1


def test_remove_dependency_clears_dangling_reference(board: BoardStore) -> None:
    board.create("A", now=T0)
    board.create("B", predecessors=["0001"], now=T0)
    (board.board_dir / "cards" / "0001.md").unlink()
    assert board.validate_move("0002", "review").errors == (
        "Predecessor card '0001' does not exist",
    )

    assert board.remove_dependency("0001", "0002") is True

    assert board.get("0002").predecessors == []
    assert board.validate_move("0002", "review").is_valid is True


def test_remove_dependency_between_unknown_items(board: BoardStore) -> None:
    with pytest.raises(KeyError):
        board.remove_dependency("0001", "0002")


def test_mutations_stamp_updated_date(board: BoardStore) -> None:
    created = board.create("A", now=T0)
    assert created.updated_date == "2025-10-09"

    board.move("0001", "in-progress", now=T0 + 86_400_000)
    assert board.get("0001").updated_date == "2025-10-10"

    board.update("0001", title="Renamed")
    assert board.get("0001").updated_date == to_day(now_ms())
