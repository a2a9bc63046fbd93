"""CLI entry point for mdkanban."""

from __future__ import annotations

import argparse
import json
import os
import sys
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from . import __version__
from .board import TERMINAL_STATUS, CycleError, WorkItem, now_ms
from .config import BOARD_ENV_VAR, resolve_board_dir
from .frontmatter import to_iso
from .history import (
    current_status_duration,
    format_duration,
    history_rows,
    status_summary,
)
from .store import BoardError, BoardStore
from .tags import TagIndex, format_tag, parse_tag_input


def _parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="mdkanban", add_help=False)
    p.add_argument("--board", default=None)
    sub = p.add_subparsers(dest="command")

    sub.add_parser("init", add_help=False)

    for name in ("show", "ready", "blocking", "cycles", "order"):
        q = sub.add_parser(name, add_help=False)
        q.add_argument("--json", action="store_true")

    new = sub.add_parser("new", add_help=False)
    new.add_argument("title", nargs="+")
    new.add_argument("--kind", default="card", choices=["card", "initiative"])
    new.add_argument("--status", default=None)
    new.add_argument("--initiative", default=None)
    new.add_argument("--priority", default=None)
    new.add_argument("--after", action="append", default=[], metavar="ID")
    new.add_argument("--before", action="append", default=[], metavar="ID")
    new.add_argument("--tag", action="append", default=[])
    new.add_argument("--json", action="store_true")

    move = sub.add_parser("move", add_help=False)
    move.add_argument("id")
    move.add_argument("status")
    move.add_argument("--force", action="store_true")
    move.add_argument("--json", action="store_true")

    for name in ("link", "unlink"):
        edge = sub.add_parser(name, add_help=False)
        edge.add_argument("src")
        edge.add_argument("dst")

    rm = sub.add_parser("rm", add_help=False)
    rm.add_argument("id")

    hist = sub.add_parser("history", add_help=False)
    hist.add_argument("id")
    hist.add_argument("--json", action="store_true")

    tags = sub.add_parser("tags", add_help=False)
    tags.add_argument("prefix", nargs="?", default="")
    tags.add_argument("--json", action="store_true")

    serve = sub.add_parser("serve", add_help=False)
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8420)
    serve.add_argument("--reload", action="store_true")

    return p


def _status_style(status: str) -> str:
    return {
        "backlog": "dim",
        "planning": "dim",
        "in-progress": "cyan",
        "review": "yellow",
        TERMINAL_STATUS: "green",
    }.get(status, "white")


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
        "time_in_status_ms": current_status_duration(item, now=now),
    }


def _emit_json(payload: Any) -> None:
    json.dump(payload, sys.stdout, indent=2)
    print()


def _open_store(args: argparse.Namespace, console: Console) -> BoardStore | None:
    board_dir = resolve_board_dir(args.board)
    try:
        return BoardStore.open(board_dir)
    except BoardError as exc:
        console.print(Text(str(exc), style="red"))
        console.print(Text("Run `mdkanban init` to create a board.", style="dim"))
        return None


def _id_table(title: str, items: list[WorkItem]) -> Table:
    table = Table(title=title, expand=False, show_edge=False, pad_edge=False)
    table.add_column("ID", style="bold")
    table.add_column("Status")
    table.add_column("Title")
    for item in items:
        table.add_row(
            item.id,
            Text(item.status, style=_status_style(item.status)),
            item.title[:60],
        )
    return table


def cmd_init(args: argparse.Namespace, console: Console) -> int:
    board_dir = resolve_board_dir(args.board or Path.cwd())
    store = BoardStore.init(board_dir)
    console.print(Panel(
        f"Initialized board in [bold]{store.board_dir}[/bold]",
        style="green",
        expand=False,
    ))
    return 0


def cmd_show(args: argparse.Namespace, console: Console, store: BoardStore) -> int:
    items = store.load()
    now = now_ms()
    graph = store.graph(items)

    if args.json:
        _emit_json({
            "columns": [
                {
                    "id": column.id,
                    "title": column.title,
                    "wip_limit": store.config.wip_limit_for(column.id),
                    "items": [
                        _item_json(item, now)
                        for item in items.values()
                        if item.status == column.id
                    ],
                }
                for column in sorted(store.config.columns, key=lambda c: c.order)
            ],
        })
        return 0

    ready = set(graph.ready_items(items))
    for column in sorted(store.config.columns, key=lambda c: c.order):
        in_column = [item for item in items.values() if item.status == column.id]
        limit = store.config.wip_limit_for(column.id)
        count = f"{len(in_column)}/{limit}" if limit else str(len(in_column))
        over = limit is not None and len(in_column) > limit

        table = Table(
            title=f"{column.title} ({count})",
            title_style="bold red" if over else "bold",
            expand=False,
            show_edge=False,
            pad_edge=False,
        )
        table.add_column("ID", style="bold")
        table.add_column("Title")
        table.add_column("In status", style="dim", justify="right")
        table.add_column("Deps", style="dim")
        for item in in_column:
            preds = sorted(graph.predecessors_of(item.id))
            if item.status == TERMINAL_STATUS or not preds:
                deps = ""
            elif item.id in ready:
                deps = "ready"
            else:
                deps = "blocked by " + ", ".join(
                    pred for pred in preds if items[pred].status != TERMINAL_STATUS
                )
            table.add_row(
                item.id,
                item.title[:50],
                format_duration(current_status_duration(item, now=now)),
                deps,
            )
        console.print(table)
        console.print()
    return 0


def cmd_new(args: argparse.Namespace, console: Console, store: BoardStore) -> int:
    tags: list[str] = []
    for raw in args.tag:
        tags.extend(tag for tag in parse_tag_input(raw) if tag not in tags)
    try:
        item = store.create(
            " ".join(args.title),
            kind=args.kind,
            status=args.status,
            predecessors=args.after,
            successors=args.before,
            initiative=args.initiative,
            priority=args.priority,
            tags=tags,
        )
    except KeyError as exc:
        console.print(Text(f"Item not found: {exc.args[0]}", style="red"))
        return 1
    except ValueError as exc:
        console.print(Text(str(exc), style="red"))
        return 1

    if args.json:
        _emit_json(_item_json(item, now_ms()))
        return 0
    console.print(Panel(
        f"[bold]{item.id}[/bold] {item.title[:80]}",
        title=f"New {item.kind}",
        style="cyan",
        expand=False,
    ))
    return 0


def cmd_move(args: argparse.Namespace, console: Console, store: BoardStore) -> int:
    try:
        result = store.move(args.id, args.status, force=args.force)
    except KeyError:
        console.print(Text(f"Item not found: {args.id}", style="red"))
        return 1
    except ValueError as exc:
        console.print(Text(str(exc), style="red"))
        return 1

    if args.json:
        _emit_json(result.to_dict())
    else:
        for error in result.validation.errors:
            console.print(Text(f"error: {error}", style="red"))
        for warning in result.validation.warnings:
            console.print(Text(f"warning: {warning}", style="yellow"))
        if result.moved:
            console.print(
                f"[green]Moved[/green] [bold]{result.item_id}[/bold] "
                f"{result.from_status} -> {result.to_status}"
            )
        elif result.validation.is_valid or args.force:
            console.print(f"[dim]{result.item_id} already in {result.to_status}[/dim]")
        else:
            console.print(Text("Move refused (use --force to override).", style="red"))

    return 0 if result.validation.is_valid or args.force else 1


def cmd_link(args: argparse.Namespace, console: Console, store: BoardStore) -> int:
    try:
        if args.command == "link":
            store.add_dependency(args.src, args.dst)
            console.print(f"[green]{args.src}[/green] now blocks [bold]{args.dst}[/bold]")
        elif store.remove_dependency(args.src, args.dst):
            console.print(f"Removed {args.src} -> {args.dst}")
        else:
            console.print(f"[dim]No edge {args.src} -> {args.dst}[/dim]")
    except KeyError as exc:
        console.print(Text(f"Item not found: {exc.args[0]}", style="red"))
        return 1
    except ValueError as exc:
        console.print(Text(str(exc), style="red"))
        return 1
    return 0


def cmd_rm(args: argparse.Namespace, console: Console, store: BoardStore) -> int:
    try:
        item = store.delete(args.id)
    except KeyError:
        console.print(Text(f"Item not found: {args.id}", style="red"))
        return 1
    console.print(f"Deleted [bold]{item.id}[/bold] {item.title[:60]}")
    return 0


def cmd_query(args: argparse.Namespace, console: Console, store: BoardStore) -> int:
    items = store.load()
    graph = store.graph(items)

    if args.command == "cycles":
        cycles = graph.all_cycles()
        if args.json:
            _emit_json(cycles)
        elif not cycles:
            console.print("[green]No dependency cycles.[/green]")
        else:
            for cycle in cycles:
                console.print(Text(" -> ".join(cycle), style="red"))
        return 0

    if args.command == "order":
        try:
            ids = graph.topological_order(items)
        except CycleError as exc:
            if args.json:
                _emit_json({"error": str(exc), "cycle": exc.cycle})
            else:
                console.print(Text(str(exc), style="red"))
            return 1
    elif args.command == "ready":
        ids = graph.ready_items(items)
    else:
        ids = graph.blocking_items(items)

    if args.json:
        _emit_json(ids)
        return 0
    title = {"order": "Dependency Order", "ready": "Ready", "blocking": "Blocking"}
    console.print(_id_table(title[args.command], [items[item_id] for item_id in ids]))
    return 0


def cmd_history(args: argparse.Namespace, console: Console, store: BoardStore) -> int:
    item = store.get(args.id)
    if item is None:
        console.print(Text(f"Item not found: {args.id}", style="red"))
        return 1

    now = now_ms()
    rows = history_rows(item, now=now)
    summary = status_summary(item, now=now)
    if args.json:
        _emit_json({"id": item.id, "history": rows, "summary": summary})
        return 0

    table = Table(title=f"{item.id} {item.title[:50]}", expand=False, show_edge=False, pad_edge=False)
    table.add_column("Status")
    table.add_column("Entered", style="dim")
    table.add_column("Left", style="dim")
    table.add_column("Duration", justify="right")
    for row in rows:
        table.add_row(
            Text(row["status"], style=_status_style(row["status"])),
            to_iso(row["entered_at"]),
            "" if row["open"] else to_iso(row["left_at"]),
            format_duration(row["duration"]) + (" (current)" if row["open"] else ""),
        )
    console.print(table)
    console.print()

    totals = Table(show_header=False, expand=False, show_edge=False, pad_edge=False, box=None)
    totals.add_column("Status", style="bold")
    totals.add_column("Total", justify="right")
    for status, duration in summary.items():
        totals.add_row(status, format_duration(duration))
    console.print(totals)
    return 0


def cmd_tags(args: argparse.Namespace, console: Console, store: BoardStore) -> int:
    items = list(store.load().values())
    index = TagIndex()
    if args.prefix:
        tags = index.matching_tags(items, args.prefix)
    else:
        tags = index.popular_tags(items)
    if args.json:
        _emit_json(tags)
    else:
        console.print(" ".join(format_tag(tag) for tag in tags) or "[dim]No tags.[/dim]")
    return 0


def cmd_serve(args: argparse.Namespace, console: Console, store: BoardStore) -> int:
    import uvicorn

    # the app factory resolves the board from the environment, also under --reload
    os.environ[BOARD_ENV_VAR] = str(store.board_dir)
    console.print(Panel(
        f"Serving [bold]{store.board_dir}[/bold] at [bold]http://{args.host}:{args.port}[/bold]",
        title="mdkanban serve",
        style="cyan",
        expand=False,
    ))
    uvicorn.run(
        "mdkanban.web:create_app",
        factory=True,
        host=args.host,
        port=args.port,
        reload=args.reload,
    )
    return 0


def _print_help(console: Console) -> None:
    help_text = Text()
    help_text.append("mdkanban", style="bold")
    help_text.append(f" {__version__}", style="dim")
    help_text.append(": markdown kanban boards with dependencies and status history")
    console.print(help_text)
    console.print()

    cmds = Table(show_header=False, expand=False, show_edge=False, pad_edge=False, box=None)
    cmds.add_column("Command", style="bold cyan")
    cmds.add_column("Description")
    cmds.add_row("mdkanban init", "Scaffold board.toml, cards/ and initiatives/")
    cmds.add_row("mdkanban show", "Show the board column by column")
    cmds.add_row("mdkanban new <title>", "Create a card (--after/--before ID for deps)")
    cmds.add_row("mdkanban move <id> <status>", "Validate and apply a status change")
    cmds.add_row("mdkanban link <from> <to>", "Record that <from> blocks <to>")
    cmds.add_row("mdkanban unlink <from> <to>", "Remove a dependency")
    cmds.add_row("mdkanban rm <id>", "Delete an item")
    cmds.add_row("mdkanban ready", "Unfinished items with all predecessors done")
    cmds.add_row("mdkanban blocking", "Unfinished items others depend on")
    cmds.add_row("mdkanban cycles", "List dependency cycles")
    cmds.add_row("mdkanban order", "Dependency order of all items")
    cmds.add_row("mdkanban history <id>", "Time spent in each status")
    cmds.add_row("mdkanban tags [prefix]", "Popular or matching tags")
    cmds.add_row("mdkanban serve", "Serve the JSON API (--host, --port, --reload)")
    console.print(cmds)
    console.print()

    opts = Table(show_header=False, expand=False, show_edge=False, pad_edge=False, box=None)
    opts.add_column("Option", style="bold")
    opts.add_column("Description", style="dim")
    opts.add_row("--board DIR", "Board directory (default: $MDKANBAN_BOARD or nearest board.toml)")
    opts.add_row("--json", "JSON output")
    opts.add_row("--force", "Apply a move despite validation errors")
    opts.add_row("--version", "Show version")
    console.print(opts)


_STORE_COMMANDS = {
    "show": cmd_show,
    "new": cmd_new,
    "move": cmd_move,
    "link": cmd_link,
    "unlink": cmd_link,
    "rm": cmd_rm,
    "ready": cmd_query,
    "blocking": cmd_query,
    "cycles": cmd_query,
    "order": cmd_query,
    "history": cmd_history,
    "tags": cmd_tags,
    "serve": cmd_serve,
}


def main(argv: list[str] | None = None) -> None:
    raw = argv if argv is not None else sys.argv[1:]
    console = Console()

    if "--version" in raw:
        console.print(Text(f"mdkanban {__version__}", style="bold"))
        sys.exit(0)
    if not raw or "--help" in raw or "-h" in raw:
        _print_help(console)
        sys.exit(0)

    args = _parser().parse_args(raw)
    if args.command is None:
        _print_help(console)
        sys.exit(0)

    if args.command == "init":
        sys.exit(cmd_init(args, console))

    store = _open_store(args, console)
    if store is None:
        sys.exit(1)
    sys.exit(_STORE_COMMANDS[args.command](args, console, store))


if __name__ == "__main__":
    main()
