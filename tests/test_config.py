from __future__ import annotations

from pathlib import Path

import pytest

from mdkanban.config import (
    BOARD_ENV_VAR,
    CONFIG_FILENAME,
    DEFAULT_CONFIG_TOML,
    load_board_config,
    resolve_board_dir,
)


def _write_config(board_dir: Path, body: str) -> None:
    board_dir.mkdir(parents=True, exist_ok=True)
    (board_dir / CONFIG_FILENAME).write_text(body.strip() + "\n", encoding="utf-8")


def test_missing_config_reports_error(tmp_path: Path) -> None:
    loaded = load_board_config(tmp_path)
    assert loaded.config is None
    assert loaded.error is not None
    assert "board.toml" in loaded.error


def test_default_config_matches_default_board(tmp_path: Path) -> None:
    _write_config(tmp_path, DEFAULT_CONFIG_TOML)
    loaded = load_board_config(tmp_path)

    assert loaded.error is None
    config = loaded.config
    assert config is not None
    assert config.statuses() == ["backlog", "in-progress", "review", "done"]
    assert dict(config.wip_limits) == {"in-progress": 5, "review": 3}
    assert config.dependency_rules.enforce_predecessors is True
    assert config.dependency_rules.allow_parallel_work is False
    assert config.column("review").color == "#f59e0b"


def test_columns_sort_by_order_and_carry_wip_limits(tmp_path: Path) -> None:
    _write_config(
        tmp_path,
        """
[[columns]]
id = "done"
order = 9

[[columns]]
id = "doing"
title = "Doing"
order = 1
wip_limit = 2

[settings]
theme = "dark"
""",
    )
    config = load_board_config(tmp_path).config

    assert config is not None
    assert config.statuses() == ["doing", "done"]
    assert config.column("done").title == "done"
    assert config.wip_limit_for("doing") == 2
    assert config.wip_limit_for("done") is None
    assert config.dependency_rules.enforce_predecessors is False
    assert dict(config.settings) == {"theme": "dark"}


def test_settings_wip_limit_wins_over_column(tmp_path: Path) -> None:
    _write_config(
        tmp_path,
        """
[[columns]]
id = "doing"
wip_limit = 2

[settings.wip_limits]
doing = 4
""",
    )
    config = load_board_config(tmp_path).config
    assert config is not None
    assert config.wip_limit_for("doing") == 4


def test_zero_limit_means_unlimited(tmp_path: Path) -> None:
    _write_config(tmp_path, '[settings.wip_limits]\nreview = 0\n')
    config = load_board_config(tmp_path).config
    assert config is not None
    assert config.wip_limit_for("review") is None


@pytest.mark.parametrize(
    ("body", "needle"),
    [
        ("columns = [", "invalid TOML"),
        ('[settings.wip_limits]\nreview = "three"\n', "settings.wip_limits.review must be an integer"),
        ('[settings.dependency_rules]\nenforce_predecessors = "yes"\n', "must be true or false"),
        ('[[columns]]\ntitle = "No id"\n', "columns[0].id is required"),
        ('[[columns]]\nid = "a"\n\n[[columns]]\nid = "a"\n', "duplicate column id 'a'"),
        ("settings = 3\n", "settings must be a table"),
    ],
)
def test_invalid_config_reports_error(tmp_path: Path, body: str, needle: str) -> None:
    _write_config(tmp_path, body)
    loaded = load_board_config(tmp_path)

    assert loaded.config is None
    assert loaded.error is not None
    assert needle in loaded.error


def test_resolve_board_dir_prefers_explicit(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv(BOARD_ENV_VAR, str(tmp_path / "from-env"))
    assert resolve_board_dir(tmp_path / "explicit") == (tmp_path / "explicit").resolve()


def test_resolve_board_dir_uses_env(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv(BOARD_ENV_VAR, str(tmp_path / "from-env"))
    assert resolve_board_dir(cwd=tmp_path) == (tmp_path / "from-env").resolve()


def test_resolve_board_dir_walks_up(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.delenv(BOARD_ENV_VAR, raising=False)
    _write_config(tmp_path / "board", DEFAULT_CONFIG_TOML)
    nested = tmp_path / "board" / "cards"
    nested.mkdir()

    assert resolve_board_dir(cwd=nested) == (tmp_path / "board").resolve()


def test_resolve_board_dir_falls_back_to_cwd(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.delenv(BOARD_ENV_VAR, raising=False)
    empty = tmp_path / "empty"
    empty.mkdir()
    assert resolve_board_dir(cwd=empty) in {empty.resolve(), *empty.resolve().parents}
