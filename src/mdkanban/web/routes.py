"""JSON API routes for the mdkanban web interface."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

from .. import __version__
from ..board import CycleError, WorkItem, now_ms
from ..history import current_status_duration, history_rows, status_summary
from ..store import BoardStore
from ..tags import TagIndex

router = APIRouter()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _store(req: Request) -> BoardStore:
    return req.app.state.store


def _item_json(item: WorkItem, now: int) -> dict[str, Any]:
    return {
        "id": item.id,
        "kind": item.kind,
        "title": item.title,
        "status": item.status,
        "initiative": item.initiative,
        "priority": item.priority,
        "tags": item.tags,
        "predecessors": item.predecessors,
        "successors": item.successors,
        "created_at": item.created_at,
        "updated_date": item.updated_date,
        "time_in_status_ms": current_status_duration(item, now=now),
        "extra": item.extra,
    }


def _require(store: BoardStore, item_id: str) -> WorkItem:
    item = store.get(item_id)
    if item is None:
        raise HTTPException(status_code=404, detail=f"item not found: {item_id}")
    return item


# ---------------------------------------------------------------------------
# Data API (JSON, read-only)
# ---------------------------------------------------------------------------


@router.get("/api/board")
async def api_board(request: Request):
    store = _store(request)
    items = store.load()
    now = now_ms()
    columns = []
    for column in sorted(store.config.columns, key=lambda c: c.order):
        columns.append({
            "id": column.id,
            "title": column.title,
            "color": column.color,
            "wip_limit": store.config.wip_limit_for(column.id),
            "items": [
                _item_json(item, now)
                for item in items.values()
                if item.status == column.id
            ],
        })
    return {"version": __version__, "columns": columns}


@router.get("/api/items")
async def api_items(
    request: Request,
    kind: str | None = None,
    status: str | None = None,
):
    now = now_ms()
    return [
        _item_json(item, now)
        for item in _store(request).items(kind=kind, status=status)
    ]


@router.get("/api/items/{item_id}")
async def api_item(request: Request, item_id: str):
    return _item_json(_require(_store(request), item_id), now_ms())


@router.get("/api/items/{item_id}/history")
async def api_history(request: Request, item_id: str):
    item = _require(_store(request), item_id)
    now = now_ms()
    return {
        "id": item.id,
        "history": history_rows(item, now=now),
        "summary": status_summary(item, now=now),
    }


@router.get("/api/ready")
async def api_ready(request: Request):
    store = _store(request)
    items = store.load()
    return store.graph(items).ready_items(items)


@router.get("/api/blocking")
async def api_blocking(request: Request):
    store = _store(request)
    items = store.load()
    return store.graph(items).blocking_items(items)


@router.get("/api/cycles")
async def api_cycles(request: Request):
    return _store(request).graph().all_cycles()


@router.get("/api/order")
async def api_order(request: Request):
    store = _store(request)
    items = store.load()
    try:
        return store.graph(items).topological_order(items)
    except CycleError as exc:
        raise HTTPException(
            status_code=409,
            detail={"error": str(exc), "cycle": exc.cycle},
        ) from exc


@router.get("/api/tags")
async def api_tags(request: Request, prefix: str = "", limit: int = 10):
    items = list(_store(request).load().values())
    index = TagIndex()
    if prefix:
        return index.matching_tags(items, prefix, limit=limit)
    return index.popular_tags(items, limit=limit)


# ---------------------------------------------------------------------------
# Actions API (JSON, mutating)
# ---------------------------------------------------------------------------


class ItemCreate(BaseModel):
    title: str
    kind: str = "card"
    status: str | None = None
    initiative: str | None = None
    priority: str | None = None
    predecessors: list[str] = []
    successors: list[str] = []
    tags: list[str] = []
    body: str = ""


class StatusChange(BaseModel):
    status: str
    force: bool = False


@router.post("/api/items")
async def api_create(request: Request, body: ItemCreate):
    try:
        item = _store(request).create(
            body.title,
            kind=body.kind,
            status=body.status,
            predecessors=body.predecessors,
            successors=body.successors,
            initiative=body.initiative,
            priority=body.priority,
            tags=body.tags,
            body=body.body,
        )
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=f"item not found: {exc.args[0]}") from exc
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return _item_json(item, now_ms())


@router.post("/api/items/{item_id}/validate")
async def api_validate(request: Request, item_id: str, body: StatusChange):
    try:
        result = _store(request).validate_move(item_id, body.status)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=f"item not found: {item_id}") from exc
    return result.to_dict()


@router.post("/api/items/{item_id}/move")
async def api_move(request: Request, item_id: str, body: StatusChange):
    try:
        result = _store(request).move(item_id, body.status, force=body.force)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=f"item not found: {item_id}") from exc
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return result.to_dict()
