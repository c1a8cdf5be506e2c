# SPDX-License-Identifier: BSD-2-Clause
# Copyright (c) deftio llc

"""Rich output formatters for the CLI."""

from __future__ import annotations

import json
import sys
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from dockstream.errors import DockStreamError
    from dockstream.types import ExecResult

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

_console = Console()
_err_console = Console(stderr=True)


def format_version(info: dict[str, Any], *, json_output: bool = False) -> None:
    """Print engine version info as a rich table or JSON."""
    if json_output:
        click_echo_json(info)
        return

    table = Table(title="Engine", show_header=False)
    table.add_column("Key", style="cyan")
    table.add_column("Value")
    for key in ("Version", "ApiVersion", "MinAPIVersion", "Os", "Arch", "KernelVersion", "GoVersion"):
        if key in info:
            table.add_row(key, str(info[key]))
    _console.print(table)


def format_event(event: Any, *, json_output: bool = False) -> None:  # noqa: ANN401
    """Print one engine event as a single line."""
    if json_output or not isinstance(event, dict):
        sys.stdout.write(json.dumps(event, default=str) + "\n")
        sys.stdout.flush()
        return

    actor = event.get("Actor", {})
    name = actor.get("Attributes", {}).get("name") or actor.get("ID", "")[:12]
    _console.print(
        f"[dim]{event.get('time', '')}[/dim] "
        f"[cyan]{event.get('Type', '?')}[/cyan] "
        f"{event.get('Action', event.get('status', ''))} {name}"
    )


def format_exec_result(result: ExecResult) -> None:
    """Print exec result stdout/stderr to their respective streams."""
    if result.stdout:
        sys.stdout.write(result.stdout)
        if not result.stdout.endswith("\n"):
            sys.stdout.write("\n")
    if result.stderr:
        sys.stderr.write(result.stderr)
        if not result.stderr.endswith("\n"):
            sys.stderr.write("\n")
    if result.timed_out:
        _err_console.print("[yellow]Command timed out.[/yellow]")
    if result.truncated:
        _err_console.print("[yellow]Output truncated.[/yellow]")


def format_error(err: DockStreamError) -> None:
    """Print a library error as a rich panel with suggestions."""
    title, suggestion = _error_info(err)
    lines = [str(err)]
    if suggestion:
        lines.append(f"\n[dim]{suggestion}[/dim]")

    panel = Panel(
        "\n".join(lines),
        title=f"[red]{title}[/red]",
        expand=False,
    )
    _err_console.print(panel)


def _error_info(err: DockStreamError) -> tuple[str, str]:
    """Map a library error to a title and suggestion string."""
    from dockstream.errors import (  # noqa: PLC0415
        EngineNotFound,
        HTTPError,
        NotFound,
        ResponseTimeout,
        SocketConnectionError,
    )

    if isinstance(err, EngineNotFound):
        return "Engine Not Found", "Start Podman or Docker and try again."
    if isinstance(err, SocketConnectionError):
        return "Connection Failed", "Check --host or DOCKSTREAM_HOST."
    if isinstance(err, ResponseTimeout):
        return "Timeout", "Increase --timeout and try again."
    if isinstance(err, NotFound):
        return "Not Found", ""
    if isinstance(err, HTTPError):
        return f"HTTP {err.status}", ""
    return "Error", ""


def print_success(msg: str) -> None:
    """Print a success message with a checkmark."""
    _console.print(f"[green]✓[/green] {msg}")


def click_echo_json(data: object) -> None:
    """Serialize data to JSON and echo to stdout."""
    sys.stdout.write(json.dumps(data, indent=2, default=str) + "\n")
