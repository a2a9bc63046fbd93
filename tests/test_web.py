from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from mdkanban.store import BoardStore
from mdkanban.web import create_app


@pytest.fixture
def client(board: BoardStore) -> TestClient:
    return TestClient(create_app(board.board_dir))


def test_board_lists_columns(client: TestClient, board: BoardStore) -> None:
    board.create("A", tags=["api"])

    resp = client.get("/api/board")

    assert resp.status_code == 200
    payload = resp.json()
    assert [column["id"] for column in payload["columns"]] == [
        "backlog",
        "in-progress",
        "review",
        "done",
    ]
    assert payload["columns"][0]["items"][0]["id"] == "0001"
    assert payload["columns"][2]["wip_limit"] == 3


def test_create_and_fetch_item(client: TestClient) -> None:
    resp = client.post("/api/items", json={"title": "Ship it", "tags": ["ops"]})
    assert resp.status_code == 200
    assert resp.json()["id"] == "0001"

    item = client.get("/api/items/0001").json()
    assert item["title"] == "Ship it"
    assert item["tags"] == ["ops"]
    assert client.get("/api/items", params={"status": "backlog"}).json()[0]["id"] == "0001"


def test_create_with_unknown_reference(client: TestClient) -> None:
    resp = client.post("/api/items", json={"title": "x", "predecessors": ["0042"]})
    assert resp.status_code == 404


def test_create_with_unknown_status(client: TestClient) -> None:
    resp = client.post("/api/items", json={"title": "x", "status": "someday"})
    assert resp.status_code == 422


def test_unknown_item_is_404(client: TestClient) -> None:
    assert client.get("/api/items/0404").status_code == 404
    assert client.get("/api/items/0404/history").status_code == 404
    assert client.post("/api/items/0404/move", json={"status": "done"}).status_code == 404


def test_validate_and_move(client: TestClient, board: BoardStore) -> None:
    board.create("A")
    board.create("B", predecessors=["0001"])

    check = client.post("/api/items/0002/validate", json={"status": "in-progress"}).json()
    assert check["is_valid"] is False
    assert len(check["errors"]) == 1

    refused = client.post("/api/items/0002/move", json={"status": "in-progress"}).json()
    assert refused["moved"] is False
    assert board.get("0002").status == "backlog"

    forced = client.post(
        "/api/items/0002/move", json={"status": "in-progress", "force": True}
    ).json()
    assert forced["moved"] is True
    assert forced["from"] == "backlog"

    history = client.get("/api/items/0002/history").json()
    assert [row["status"] for row in history["history"]] == ["backlog", "in-progress"]
    assert history["history"][-1]["open"] is True


def test_graph_queries(client: TestClient, board: BoardStore) -> None:
    board.create("A", tags=["api"])
    board.create("B", predecessors=["0001"], tags=["api", "docs"])

    assert client.get("/api/ready").json() == ["0001"]
    assert client.get("/api/blocking").json() == ["0001"]
    assert client.get("/api/order").json() == ["0001", "0002"]
    assert client.get("/api/cycles").json() == []
    assert client.get("/api/tags").json() == ["api", "docs"]
    assert client.get("/api/tags", params={"prefix": "#d"}).json() == ["docs"]


def test_order_conflict_on_cycle(client: TestClient, board: BoardStore) -> None:
    board.create("A")
    board.create("B", predecessors=["0001"])
    board.add_dependency("0002", "0001")

    resp = client.get("/api/order")

    assert resp.status_code == 409
    assert set(resp.json()["detail"]["cycle"]) == {"0001", "0002"}
    assert client.get("/api/cycles").json()
