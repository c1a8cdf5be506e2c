# SPDX-License-Identifier: BSD-2-Clause
# Copyright (c) deftio llc

"""CLI command implementations."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any, TypeVar

import click

from dockstream._socket_client import Client
from dockstream.cli._output import (
    click_echo_json,
    format_error,
    format_event,
    format_exec_result,
    format_version,
    print_success,
)
from dockstream.errors import DockStreamError

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from dockstream.cli.main import CliContext

_T = TypeVar("_T")


def _get_ctx(ctx: click.Context) -> CliContext:
    """Extract the CliContext from Click's context object."""
    return ctx.obj  # type: ignore[no-any-return]


def _run(ctx: click.Context, operation: Callable[[Client], Awaitable[_T]]) -> _T:
    """Open a client, run *operation* on it and map library errors to exit code 1."""
    cli_ctx = _get_ctx(ctx)

    async def _main() -> _T:
        async with Client.from_config(cli_ctx.config) as client:
            return await operation(client)

    try:
        return asyncio.run(_main())
    except DockStreamError as exc:
        format_error(exc)
        raise SystemExit(1) from exc
    except ValueError as exc:
        raise click.UsageError(str(exc)) from exc


# ---------------------------------------------------------------------------
# Engine info
# ---------------------------------------------------------------------------


@click.command("ping")
@click.pass_context
def ping_cmd(ctx: click.Context) -> None:
    """Check that the engine answers."""
    reply = _run(ctx, lambda client: client.ping())
    print_success(f"Engine replied {reply}")


@click.command("version")
@click.pass_context
def version_cmd(ctx: click.Context) -> None:
    """Show engine version information."""
    info = _run(ctx, lambda client: client.version())
    format_version(info, json_output=_get_ctx(ctx).json_output)


@click.command("get")
@click.argument("path")
@click.pass_context
def get_cmd(ctx: click.Context, path: str) -> None:
    """GET an arbitrary API PATH and print the result."""
    result = _run(ctx, lambda client: client.get(path))
    if isinstance(result, bytes):
        click.get_binary_stream("stdout").write(result)
    elif isinstance(result, str):
        click.echo(result, nl=not result.endswith("\n"))
    else:
        click_echo_json(result)


# ---------------------------------------------------------------------------
# Streaming commands
# ---------------------------------------------------------------------------


@click.command("logs")
@click.argument("container")
@click.option("--follow", "-f", is_flag=True, help="Keep streaming new output.")
@click.option("--tail", default=None, help="Number of lines from the end (or 'all').")
@click.option("--timestamps", "-t", is_flag=True, help="Prefix lines with timestamps.")
@click.pass_context
def logs_cmd(
    ctx: click.Context,
    container: str,
    tail: str | None,
    *,
    follow: bool,
    timestamps: bool,
) -> None:
    """Print a container's stdout and stderr."""
    stdout = click.get_binary_stream("stdout")
    stderr = click.get_binary_stream("stderr")

    async def _logs(client: Client) -> None:
        inspected = await client.get(f"/containers/{container}/json")
        tty = bool(inspected.get("Config", {}).get("Tty", False))
        await client.container_logs(
            container,
            _flushing(stdout),
            _flushing(stderr),
            follow=follow,
            tail=tail,
            timestamps=timestamps,
            tty=tty,
        )

    try:
        _run(ctx, _logs)
    except KeyboardInterrupt:
        return


def _flushing(stream: Any) -> Callable[[bytes], None]:  # noqa: ANN401
    def _write(data: bytes) -> None:
        stream.write(data)
        stream.flush()

    return _write


@click.command("exec")
@click.argument("container")
@click.argument("command", nargs=-1, required=True)
@click.option("--timeout", "exec_timeout", type=float, default=None, help="Exec timeout in seconds.")
@click.option("--max-output", type=int, default=10 * 1024 * 1024, help="Max output bytes.")
@click.option("--workdir", "-w", default=None, help="Working directory inside the container.")
@click.option("--env", "-e", multiple=True, help="Environment entry KEY=value.")
@click.pass_context
def exec_cmd(  # noqa: PLR0913
    ctx: click.Context,
    container: str,
    command: tuple[str, ...],
    exec_timeout: float | None,
    max_output: int,
    workdir: str | None,
    env: tuple[str, ...],
) -> None:
    """Execute COMMAND inside CONTAINER and exit with its status."""
    result = _run(
        ctx,
        lambda client: client.exec_run(
            container,
            list(command),
            timeout=exec_timeout,
            max_output=max_output,
            env=list(env) or None,
            workdir=workdir,
        ),
    )
    if _get_ctx(ctx).json_output:
        click_echo_json(
            {
                "exit_code": result.exit_code,
                "stdout": result.stdout,
                "stderr": result.stderr,
                "duration_ms": result.duration_ms,
                "timed_out": result.timed_out,
                "truncated": result.truncated,
            }
        )
    else:
        format_exec_result(result)
    raise SystemExit(result.exit_code if result.exit_code >= 0 else 1)


@click.command("events")
@click.option("--since", type=int, default=None, help="Show events since this Unix timestamp.")
@click.option("--until", type=int, default=None, help="Stop at this Unix timestamp.")
@click.option("--filter", "filters", multiple=True, help="Filter KEY=VALUE (repeatable).")
@click.pass_context
def events_cmd(
    ctx: click.Context,
    since: int | None,
    until: int | None,
    filters: tuple[str, ...],
) -> None:
    """Stream engine events."""
    json_output = _get_ctx(ctx).json_output
    parsed: dict[str, list[str]] = {}
    for item in filters:
        key, sep, value = item.partition("=")
        if not sep:
            msg = f"filter must be KEY=VALUE, got {item!r}"
            raise click.BadParameter(msg, param_hint="--filter")
        parsed.setdefault(key, []).append(value)

    try:
        _run(
            ctx,
            lambda client: client.system_events(
                lambda event: format_event(event, json_output=json_output),
                since=since,
                until=until,
                filters=parsed or None,
            ),
        )
    except KeyboardInterrupt:
        return
