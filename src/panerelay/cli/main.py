"""
panerelay CLI entry point.

Commands:
  panerelay filter [FILE|-]          — clean a captured pane (box lines, prompts, marker)
  panerelay reconcile FILE           — replay a JSONL conversation history
  panerelay attach [--cwd] [--instance] — run an assistant session, stdin → keys, events → stdout
  panerelay config show              — print the effective configuration
  panerelay config init              — write a default config file
  panerelay --version
"""

from __future__ import annotations

from pathlib import Path
from typing import TextIO

import click
from rich.console import Console

from panerelay import __version__

console = Console()
err_console = Console(stderr=True)


# ---------------------------------------------------------------------------
# Root group
# ---------------------------------------------------------------------------


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(__version__, "--version", "-V", message="panerelay %(version)s")
@click.option("--log-level", default=None, hidden=True, help="Log level (overrides config).")
@click.option("--log-json", is_flag=True, default=False, hidden=True, help="Emit JSON log lines.")
@click.pass_context
def cli(ctx: click.Context, log_level: str | None, log_json: bool) -> None:
    """panerelay — drive an interactive coding assistant through a terminal multiplexer."""
    from panerelay.core.logging import configure_logging

    ctx.ensure_object(dict)["log_overridden"] = log_level is not None or log_json
    configure_logging(level=log_level or "WARNING", json_output=log_json)


# ---------------------------------------------------------------------------
# filter
# ---------------------------------------------------------------------------


@cli.command("filter")
@click.argument("source", type=click.File("r", encoding="utf-8"), default="-")
@click.option("--json", "as_json", is_flag=True, default=False, help="Output as JSON")
def filter_cmd(source: TextIO, as_json: bool) -> None:
    """Filter captured terminal text (a file, or stdin with -)."""
    from panerelay.cli._filter import cmd_filter

    cmd_filter(raw=source.read(), as_json=as_json, console=console)


# ---------------------------------------------------------------------------
# reconcile
# ---------------------------------------------------------------------------


@cli.command("reconcile")
@click.argument("history", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--json", "as_json", is_flag=True, default=False, help="Output as JSON")
@click.option("--tools", "show_tools", is_flag=True, default=False, help="Show tracked tools")
@click.option("--all", "show_all", is_flag=True, default=False, help="Include matched results")
def reconcile_cmd(history: Path, as_json: bool, show_tools: bool, show_all: bool) -> None:
    """Replay a conversation history file (JSON lines or a JSON array)."""
    from panerelay.cli._reconcile import cmd_reconcile

    cmd_reconcile(
        path=history,
        as_json=as_json,
        show_tools=show_tools,
        show_all=show_all,
        console=console,
        err_console=err_console,
    )


# ---------------------------------------------------------------------------
# attach
# ---------------------------------------------------------------------------


@cli.command("attach")
@click.option("--cwd", default="", help="Working directory for the assistant")
@click.option("--instance", "instance_id", default="default", show_default=True)
@click.pass_context
def attach_cmd(ctx: click.Context, cwd: str, instance_id: str) -> None:
    """Start an assistant session; each stdin line is sent, events print as JSON lines."""
    from panerelay.cli._attach import cmd_attach

    cmd_attach(
        instance_id=instance_id,
        cwd=cwd or str(Path.cwd()),
        err_console=err_console,
        apply_log_config=not ctx.obj.get("log_overridden", False),
    )


# ---------------------------------------------------------------------------
# config
# ---------------------------------------------------------------------------


@cli.group("config")
def config_group() -> None:
    """Inspect or create the configuration file."""


@config_group.command("show")
@click.option("--json", "as_json", is_flag=True, default=False, help="Output as JSON")
def config_show(as_json: bool) -> None:
    """Print the effective configuration (file + environment)."""
    from panerelay.cli._config_cmd import cmd_config_show

    cmd_config_show(as_json=as_json, console=console, err_console=err_console)


@config_group.command("init")
@click.option("--force", is_flag=True, default=False, help="Overwrite an existing file")
def config_init(force: bool) -> None:
    """Write a config file with default values."""
    from panerelay.cli._config_cmd import cmd_config_init

    cmd_config_init(force=force, console=console, err_console=err_console)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
