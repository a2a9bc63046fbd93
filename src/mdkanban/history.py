"""Per-item status history: an append-only log of status intervals.

Every item has at most one open interval (no ``left_at``) and it is always the
last entry. A status change closes it and opens the next one. The readers in
this module never raise on malformed history; they fall back to zero so one
bad card cannot break a board display.
"""

from __future__ import annotations

from typing import Any

from .board import StatusHistoryEntry, WorkItem, now_ms


def initialize_history(item: WorkItem, *, now: int | None = None) -> None:
    """Seed an empty history with one open entry for the current status."""
    if item.history:
        return
    entered_at = item.created_at
    if entered_at is None:
        entered_at = now if now is not None else now_ms()
        item.created_at = entered_at
    item.history.append(StatusHistoryEntry(status=item.status, entered_at=entered_at))


def record_transition(
    item: WorkItem, new_status: str, *, now: int | None = None
) -> bool:
    """Move ``item`` to ``new_status``, closing the open interval.

    Returns False (and changes nothing) when the status is unchanged.
    """
    if new_status == item.status:
        return False
    if now is None:
        now = now_ms()

    initialize_history(item, now=now)

    current = item.open_entry()
    if current is not None:
        current.left_at = now
        current.duration = max(0, now - current.entered_at)

    item.history.append(StatusHistoryEntry(status=new_status, entered_at=now))
    item.status = new_status
    return True


def _entry_duration(entry: StatusHistoryEntry, now: int) -> int:
    if entry.left_at is None:
        return max(0, now - entry.entered_at)
    if entry.duration is not None:
        return max(0, entry.duration)
    return max(0, entry.left_at - entry.entered_at)


def time_in_status(item: WorkItem, status: str, *, now: int | None = None) -> int:
    """Total milliseconds ``item`` has spent in ``status``, open interval included."""
    if now is None:
        now = now_ms()
    return sum(
        _entry_duration(entry, now) for entry in item.history if entry.status == status
    )


def current_status_duration(item: WorkItem, *, now: int | None = None) -> int:
    current = item.open_entry()
    if current is None:
        return 0
    if now is None:
        now = now_ms()
    return max(0, now - current.entered_at)


def status_summary(item: WorkItem, *, now: int | None = None) -> dict[str, int]:
    """Accumulated milliseconds per status, in order of first appearance."""
    if now is None:
        now = now_ms()
    summary: dict[str, int] = {}
    for entry in item.history:
        summary[entry.status] = summary.get(entry.status, 0) + _entry_duration(
            entry, now
        )
    return summary


def history_rows(item: WorkItem, *, now: int | None = None) -> list[dict[str, Any]]:
    if now is None:
        now = now_ms()
    return [
        {
            "status": entry.status,
            "entered_at": entry.entered_at,
            "left_at": entry.left_at,
            "duration": _entry_duration(entry, now),
            "open": entry.is_open,
        }
        for entry in item.history
    ]


def format_duration(milliseconds: int | float) -> str:
    """Render a span as its one or two coarsest units, e.g. ``2d 5h`` or ``45m``."""
    seconds = max(0, int(milliseconds)) // 1000
    minutes = seconds // 60
    hours = minutes // 60
    days = hours // 24

    if days > 0:
        return f"{days}d {hours % 24}h"
    if hours > 0:
        return f"{hours}h {minutes % 60}m"
    if minutes > 0:
        return f"{minutes}m"
    return f"{seconds}s"
