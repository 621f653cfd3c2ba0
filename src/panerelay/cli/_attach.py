"""panerelay attach — run one assistant session from the terminal."""

from __future__ import annotations

import asyncio
import json
import sys
from typing import TextIO

import structlog
from rich.console import Console

from panerelay.core.config import PaneRelayConfig, load_config
from panerelay.core.coordinator import SessionCoordinator
from panerelay.core.events import RelayEvent
from panerelay.core.exceptions import ConfigError
from panerelay.core.logging import configure_logging_from
from panerelay.os.multiplexer.base import BaseMultiplexer

logger = structlog.get_logger()


def _print_event(event: RelayEvent, out: TextIO) -> None:
    out.write(json.dumps(event.to_dict()) + "\n")
    out.flush()


async def run_attach(
    *,
    instance_id: str,
    cwd: str,
    config: PaneRelayConfig,
    multiplexer: BaseMultiplexer | None = None,
    stdin: TextIO | None = None,
    stdout: TextIO | None = None,
) -> bool:
    """
    Start the session, forward stdin lines until EOF, then stop it.

    One capture delay is waited out after EOF so the reply to the last
    line is still reported. Returns False if the session could not start.
    """
    src = stdin or sys.stdin
    out = stdout or sys.stdout
    coordinator = SessionCoordinator(
        config, multiplexer=multiplexer, sink=lambda e: _print_event(e, out)
    )

    if not await coordinator.create_instance(instance_id, cwd):
        return False

    try:
        while True:
            line = await asyncio.to_thread(src.readline)
            if not line:
                break
            text = line.rstrip("\n")
            if not text:
                continue
            if not await coordinator.send(instance_id, text):
                logger.warning("attach_send_failed", instance_id=instance_id)
                break
        await asyncio.sleep(config.session.capture_delay_s)
    finally:
        await coordinator.shutdown()
    return True


def cmd_attach(
    *,
    instance_id: str,
    cwd: str,
    err_console: Console,
    apply_log_config: bool = False,
    multiplexer: BaseMultiplexer | None = None,
    stdin: TextIO | None = None,
    stdout: TextIO | None = None,
) -> None:
    try:
        config = load_config(missing_ok=True)
    except ConfigError as exc:
        err_console.print(f"[red]Config error:[/red] {exc}")
        raise SystemExit(1) from exc

    if apply_log_config:
        configure_logging_from(config.logging)

    started = asyncio.run(
        run_attach(
            instance_id=instance_id,
            cwd=cwd,
            config=config,
            multiplexer=multiplexer,
            stdin=stdin,
            stdout=stdout,
        )
    )
    if not started:
        err_console.print(
            f"[red]Error:[/red] could not start session for instance {instance_id!r}."
            " Is tmux installed?"
        )
        raise SystemExit(1)
