"""Markdown card files: YAML frontmatter <-> WorkItem."""

from __future__ import annotations

import re
from datetime import date, datetime, timedelta, timezone
from typing import Any

import yaml

from .board import StatusHistoryEntry, WorkItem


KNOWN_KEYS = (
    "title",
    "status",
    "initiative",
    "predecessors",
    "successors",
    "priority",
    "tags",
    "date",
    "updated_date",
    "history",
)
DEFAULT_STATUS = {"card": "backlog", "initiative": "planning"}
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
# closing fence must sit on its own line; "---" inside a value does not end the block
_FRONTMATTER_RE = re.compile(r"\A---[ \t]*\r?\n(.*?)^---[ \t]*(?:\r?\n|\Z)", re.S | re.M)


class FrontmatterError(ValueError):
    pass


def split_frontmatter(text: str) -> tuple[dict, str] | None:
    """Split YAML frontmatter from a markdown body.

    Returns None when the text has no frontmatter block. Raises
    FrontmatterError when the block is present but is not a YAML mapping.
    """
    match = _FRONTMATTER_RE.match(text)
    if match is None:
        return None
    try:
        meta = yaml.safe_load(match.group(1)) or {}
    except yaml.YAMLError as exc:
        raise FrontmatterError(f"invalid YAML frontmatter: {exc}") from exc
    if not isinstance(meta, dict):
        raise FrontmatterError("frontmatter must be a mapping")
    return meta, text[match.end():].lstrip("\n")


def to_ms(value: object) -> int | None:
    """Coerce a frontmatter timestamp (ISO string, datetime, date, epoch ms)."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value)
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        dt = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    delta = dt - _EPOCH
    return delta.days * 86_400_000 + delta.seconds * 1000 + delta.microseconds // 1000


def to_iso(ms: int) -> str:
    dt = _EPOCH + timedelta(milliseconds=ms)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


def to_day(ms: int) -> str:
    """UTC calendar day of ``ms`` as ``YYYY-MM-DD``."""
    return (_EPOCH + timedelta(milliseconds=ms)).date().isoformat()


def _day(value: object) -> str | None:
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _id_list(value: object) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        raw = [part.strip() for part in value.strip("[]").split(",")]
    elif isinstance(value, list):
        raw = [str(part).strip() for part in value if part is not None]
    else:
        raw = [str(value).strip()]

    out: list[str] = []
    for part in raw:
        if part and part not in out:
            out.append(part)
    return out


def _parse_history(value: object) -> list[StatusHistoryEntry]:
    if not isinstance(value, list):
        return []
    entries: list[StatusHistoryEntry] = []
    for raw in value:
        if not isinstance(raw, dict):
            continue
        status = raw.get("status")
        entered_at = to_ms(raw.get("enteredAt"))
        if not isinstance(status, str) or entered_at is None:
            continue
        left_at = to_ms(raw.get("leftAt"))
        duration = raw.get("duration") if left_at is not None else None
        if duration is not None and not isinstance(duration, int):
            duration = None
        entries.append(
            StatusHistoryEntry(
                status=status,
                entered_at=entered_at,
                left_at=left_at,
                duration=duration,
            )
        )
    entries.sort(key=lambda entry: entry.entered_at)
    return entries


def parse_item(text: str, item_id: str, *, kind: str = "card") -> WorkItem:
    """Build a WorkItem from card file text. Raises FrontmatterError."""
    split = split_frontmatter(text)
    if split is None:
        raise FrontmatterError(f"no frontmatter found in {kind} {item_id}")
    meta, body = split

    status = meta.get("status")
    if not isinstance(status, str) or not status.strip():
        status = DEFAULT_STATUS.get(kind, "backlog")

    title = meta.get("title")
    initiative = meta.get("initiative")
    priority = meta.get("priority")

    return WorkItem(
        id=item_id,
        status=status.strip(),
        title=str(title) if title is not None else "",
        kind=kind,
        predecessors=_id_list(meta.get("predecessors")),
        successors=_id_list(meta.get("successors")),
        history=_parse_history(meta.get("history")),
        created_at=to_ms(meta.get("date")),
        updated_date=_day(meta.get("updated_date")),
        initiative=str(initiative) if initiative else None,
        priority=str(priority) if priority else None,
        tags=_id_list(meta.get("tags")),
        body=body,
        extra={key: value for key, value in meta.items() if key not in KNOWN_KEYS},
    )


def item_metadata(item: WorkItem) -> dict[str, Any]:
    meta: dict[str, Any] = {"title": item.title, "status": item.status}
    if item.initiative:
        meta["initiative"] = item.initiative
    meta["predecessors"] = list(item.predecessors)
    meta["successors"] = list(item.successors)
    if item.priority:
        meta["priority"] = item.priority
    if item.tags:
        meta["tags"] = list(item.tags)
    if item.created_at is not None:
        meta["date"] = to_iso(item.created_at)
    if item.updated_date:
        meta["updated_date"] = item.updated_date

    history: list[dict[str, Any]] = []
    for entry in item.history:
        row: dict[str, Any] = {
            "status": entry.status,
            "enteredAt": to_iso(entry.entered_at),
        }
        if entry.left_at is not None:
            row["leftAt"] = to_iso(entry.left_at)
            if entry.duration is not None:
                row["duration"] = entry.duration
        history.append(row)
    meta["history"] = history

    for key, value in item.extra.items():
        if key not in meta:
            meta[key] = value
    return meta


def render_item(item: WorkItem) -> str:
    """Serialize a WorkItem back to markdown with frontmatter."""
    front = yaml.safe_dump(
        item_metadata(item),
        sort_keys=False,
        allow_unicode=True,
        default_flow_style=None,
    )
    body = item.body.lstrip("\n")
    return f"---\n{front}---\n\n{body}"
