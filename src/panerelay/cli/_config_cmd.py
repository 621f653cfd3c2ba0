"""panerelay config — show or initialize the configuration file."""

from __future__ import annotations

import json

from rich.console import Console

from panerelay.core.config import PaneRelayConfig, config_file_path, load_config, save_config
from panerelay.core.exceptions import ConfigError


def cmd_config_show(*, as_json: bool, console: Console, err_console: Console) -> None:
    try:
        config = load_config(missing_ok=True)
    except ConfigError as exc:
        err_console.print(f"[red]Config error:[/red] {exc}")
        raise SystemExit(1) from exc

    data = config.model_dump()
    if as_json:
        print(json.dumps(data, indent=2))
        return

    source = str(config.config_path) if config.config_path else "defaults (no config file)"
    console.print(f"[bold]Config:[/bold] {source}\n")
    for section, values in data.items():
        if not isinstance(values, dict):
            console.print(f"{section} = {values}")
            continue
        console.print(f"[cyan]\\[{section}][/cyan]")
        for key, value in values.items():
            console.print(f"  {key} = {value!r}", highlight=False)


def cmd_config_init(*, force: bool, console: Console, err_console: Console) -> None:
    path = config_file_path()
    if path.exists() and not force:
        err_console.print(f"[yellow]Config already exists:[/yellow] {path} (use --force)")
        raise SystemExit(1)

    try:
        written = save_config(PaneRelayConfig().model_dump(), path)
    except ConfigError as exc:
        err_console.print(f"[red]Error:[/red] {exc}")
        raise SystemExit(1) from exc
    console.print(f"[green]Wrote[/green] {written}")
