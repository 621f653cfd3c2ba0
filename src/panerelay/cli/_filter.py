"""panerelay filter — run the output filter over captured pane text."""

from __future__ import annotations

import json

from rich.console import Console

from panerelay.core.capture.filter import filter_output


def cmd_filter(*, raw: str, as_json: bool, console: Console) -> None:
    filtered = filter_output(raw)

    if as_json:
        print(json.dumps(filtered.to_dict()))
        return

    if filtered.is_empty:
        console.print("[dim]No content.[/dim]")
    else:
        console.print(filtered.content, markup=False, highlight=False)

    if filtered.context_percent is not None:
        console.print(f"\n[dim]Context left until auto-compact:[/dim] {filtered.context_percent}%")
