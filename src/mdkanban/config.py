from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import tomllib

from .board import BoardColumn, BoardConfig, DependencyRules


CONFIG_FILENAME = "board.toml"
BOARD_ENV_VAR = "MDKANBAN_BOARD"

DEFAULT_CONFIG_TOML = """\
[[columns]]
id = "backlog"
title = "Backlog"
color = "#8b5cf6"
order = 0

[[columns]]
id = "in-progress"
title = "In Progress"
color = "#3b82f6"
order = 1

[[columns]]
id = "review"
title = "Review"
color = "#f59e0b"
order = 2

[[columns]]
id = "done"
title = "Done"
color = "#10b981"
order = 3

[settings.wip_limits]
"in-progress" = 5
review = 3

[settings.dependency_rules]
enforce_predecessors = true
allow_parallel_work = false
"""


@dataclass(frozen=True)
class BoardConfigFile:
    board_dir: Path
    path: Path
    config: BoardConfig | None = None
    error: str | None = None


class ConfigValidationError(ValueError):
    pass


def _as_str(value: object) -> str | None:
    if not isinstance(value, str):
        return None
    stripped = value.strip()
    if not stripped:
        return None
    return stripped


def _as_limit(value: object, *, field: str) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigValidationError(f"{field} must be an integer")
    if value < 0:
        raise ConfigValidationError(f"{field} must not be negative")
    return value or None


def _as_bool(value: object, *, field: str, default: bool) -> bool:
    if value is None:
        return default
    if not isinstance(value, bool):
        raise ConfigValidationError(f"{field} must be true or false")
    return value


def _parse_columns(raw: object) -> tuple[BoardColumn, ...]:
    if raw is None:
        return ()
    if not isinstance(raw, list):
        raise ConfigValidationError("columns must be an array of tables")

    columns: list[BoardColumn] = []
    seen: set[str] = set()
    for idx, item in enumerate(raw):
        if not isinstance(item, dict):
            raise ConfigValidationError(f"columns[{idx}] must be a table")
        column_id = _as_str(item.get("id"))
        if column_id is None:
            raise ConfigValidationError(f"columns[{idx}].id is required")
        if column_id in seen:
            raise ConfigValidationError(f"duplicate column id {column_id!r}")
        seen.add(column_id)

        order = item.get("order", idx)
        if isinstance(order, bool) or not isinstance(order, int):
            raise ConfigValidationError(f"columns[{idx}].order must be an integer")

        columns.append(
            BoardColumn(
                id=column_id,
                title=_as_str(item.get("title")) or column_id,
                color=_as_str(item.get("color")) or "",
                order=order,
                wip_limit=_as_limit(
                    item.get("wip_limit"), field=f"columns[{idx}].wip_limit"
                ),
            )
        )
    return tuple(columns)


def _parse_wip_limits(raw: object) -> dict[str, int]:
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ConfigValidationError("settings.wip_limits must be a table")
    limits: dict[str, int] = {}
    for status, value in raw.items():
        limit = _as_limit(value, field=f"settings.wip_limits.{status}")
        if limit:
            limits[status] = limit
    return limits


def _parse_rules(raw: object) -> DependencyRules:
    if raw is None:
        return DependencyRules()
    if not isinstance(raw, dict):
        raise ConfigValidationError("settings.dependency_rules must be a table")
    return DependencyRules(
        enforce_predecessors=_as_bool(
            raw.get("enforce_predecessors"),
            field="settings.dependency_rules.enforce_predecessors",
            default=False,
        ),
        allow_parallel_work=_as_bool(
            raw.get("allow_parallel_work"),
            field="settings.dependency_rules.allow_parallel_work",
            default=False,
        ),
    )


def parse_board_config(raw: dict[str, Any]) -> BoardConfig:
    """Turn decoded TOML into a BoardConfig. Raises ConfigValidationError."""
    settings = raw.get("settings") or {}
    if not isinstance(settings, dict):
        raise ConfigValidationError("settings must be a table")

    return BoardConfig(
        columns=_parse_columns(raw.get("columns")),
        wip_limits=_parse_wip_limits(settings.get("wip_limits")),
        dependency_rules=_parse_rules(settings.get("dependency_rules")),
        settings={
            key: value
            for key, value in settings.items()
            if key not in ("wip_limits", "dependency_rules")
        },
    )


def load_board_config(board_dir: Path) -> BoardConfigFile:
    path = board_dir / CONFIG_FILENAME
    if not path.exists():
        return BoardConfigFile(
            board_dir=board_dir,
            path=path,
            error=f"no board config found: expected {path}",
        )

    try:
        raw = tomllib.loads(path.read_text(encoding="utf-8"))
    except (OSError, tomllib.TOMLDecodeError) as exc:
        return BoardConfigFile(
            board_dir=board_dir,
            path=path,
            error=f"invalid TOML in {path}: {exc}",
        )

    try:
        config = parse_board_config(raw)
    except ConfigValidationError as exc:
        return BoardConfigFile(board_dir=board_dir, path=path, error=f"{path}: {exc}")

    return BoardConfigFile(board_dir=board_dir, path=path, config=config)


def resolve_board_dir(explicit: str | Path | None = None, cwd: Path | None = None) -> Path:
    """Return the board directory.

    Resolution order:
    1. explicit path (``--board``)
    2. MDKANBAN_BOARD
    3. nearest directory holding board.toml from cwd upward
    4. cwd
    """
    if explicit:
        return Path(explicit).expanduser().resolve()

    raw = os.environ.get(BOARD_ENV_VAR, "").strip()
    if raw:
        return Path(raw).expanduser().resolve()

    start = (cwd or Path.cwd()).resolve()
    for base in (start, *start.parents):
        if (base / CONFIG_FILENAME).is_file():
            return base
    return start
