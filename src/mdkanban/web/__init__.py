"""mdkanban web interface: FastAPI app factory."""

from __future__ import annotations

from pathlib import Path

from fastapi import FastAPI

from ..config import resolve_board_dir
from ..store import BoardStore


def create_app(board_dir: Path | None = None) -> FastAPI:
    store = BoardStore.open(resolve_board_dir(board_dir))

    app = FastAPI(title="mdkanban")
    app.state.store = store

    from .routes import router

    app.include_router(router)

    return app
