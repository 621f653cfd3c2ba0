"""panerelay reconcile — replay a conversation history through the reconciler."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.table import Table

from panerelay.core.conversation.messages import CanonicalMessage, MessageKind
from panerelay.core.conversation.reconciler import EventReconciler
from panerelay.core.tracking.tools import ToolExecution, ToolStatus

_KIND_STYLE = {
    MessageKind.HUMAN: ("You", "bold green"),
    MessageKind.ASSISTANT: ("Assistant", "bold cyan"),
    MessageKind.SYSTEM: ("System", "yellow"),
}

_STATUS_STYLE = {
    ToolStatus.RUNNING: "yellow",
    ToolStatus.COMPLETED: "green",
    ToolStatus.ERROR: "red",
}


def load_records(path: Path) -> tuple[list[Any], int]:
    """Read *path* as a JSON array or as JSON lines. Returns (records, malformed_lines)."""
    text = path.read_text(encoding="utf-8")
    if text.lstrip().startswith("["):
        data = json.loads(text)
        return (data if isinstance(data, list) else [data]), 0

    records: list[Any] = []
    malformed = 0
    for line in text.splitlines():
        if not line.strip():
            continue
        try:
            records.append(json.loads(line))
        except json.JSONDecodeError:
            malformed += 1
    return records, malformed


def cmd_reconcile(
    *,
    path: Path,
    as_json: bool,
    show_tools: bool,
    show_all: bool,
    console: Console,
    err_console: Console,
) -> None:
    """Replay *path* and print the resulting conversation."""
    try:
        records, malformed = load_records(path)
    except (OSError, ValueError) as exc:
        err_console.print(f"[red]Error:[/red] cannot read {path}: {exc}")
        raise SystemExit(1) from exc

    if malformed:
        err_console.print(f"[yellow]Skipped {malformed} malformed line(s).[/yellow]")

    reconciler = EventReconciler()
    reconciler.reconcile_history(records)
    messages = reconciler.messages if show_all else reconciler.displayable_messages()

    if as_json:
        data: dict[str, Any] = {"messages": [m.to_dict() for m in messages]}
        if show_tools:
            data["tools"] = reconciler.tracker.snapshot()
        print(json.dumps(data, indent=2, default=str))
        return

    if not messages:
        console.print("[dim]No messages.[/dim]")
    for message in messages:
        _print_message(message, console)

    if show_tools:
        console.print()
        _print_tools(reconciler, console)


def _print_message(message: CanonicalMessage, console: Console) -> None:
    if message.kind in _KIND_STYLE:
        label, style = _KIND_STYLE[message.kind]
        console.print(f"[{style}]{label}:[/{style}] ", end="")
        console.print(message.text or "", markup=False, highlight=False)
    elif message.tool_use is not None:
        tool_use = message.tool_use
        result = tool_use.result
        if result is None:
            state = "[yellow]…[/yellow]"
        elif result.is_error:
            state = "[red]✗[/red]"
        else:
            state = "[green]✓[/green]"
        console.print(f"[magenta]⚙ {tool_use.name}[/magenta] [dim]{tool_use.id}[/dim] {state}")
    elif message.tool_result is not None:
        console.print(f"[dim]↳ result for {message.tool_result.tool_use_id or '?'}[/dim]")
    elif message.context is not None:
        console.print(f"[dim]context: {json.dumps(message.context.usage)}[/dim]")
    elif message.session is not None:
        console.print(f"[dim]session {message.session.id} in {message.session.cwd}[/dim]")


def _print_tools(reconciler: EventReconciler, console: Console) -> None:
    tracker = reconciler.tracker
    table = Table(title="Tools", show_lines=False)
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Tool", style="bold")
    table.add_column("Status")
    table.add_column("Duration", justify="right")
    table.add_column("Agent")

    rows: list[ToolExecution] = tracker.running_tools + tracker.completed_tools
    for execution in rows:
        style = _STATUS_STYLE.get(execution.status, "")
        duration = f"{execution.duration} ms" if execution.duration is not None else "-"
        agent = ""
        if execution.is_agent:
            agent = f"{execution.agent_type} ({execution.tool_count or 0} tools)"
        elif execution.parent_agent:
            agent = f"[dim]{execution.parent_agent}[/dim]"
        table.add_row(
            execution.id,
            execution.name,
            f"[{style}]{execution.status}[/{style}]",
            duration,
            agent,
        )

    console.print(table)
    console.print(
        f"Total tools used: [bold]{tracker.total_tools_used}[/bold]  "
        f"running: {tracker.running_count()}"
    )
