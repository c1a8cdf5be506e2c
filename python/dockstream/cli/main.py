# SPDX-License-Identifier: BSD-2-Clause
# Copyright (c) deftio llc

"""CLI entry point for dockstream."""

from __future__ import annotations

import dataclasses
import logging

import click
from rich.logging import RichHandler

from dockstream import __version__
from dockstream._config import ClientConfig, load_config


@dataclasses.dataclass
class CliContext:
    """Shared state passed through Click's context object."""

    config: ClientConfig = dataclasses.field(default_factory=ClientConfig)
    verbose: bool = False
    json_output: bool = False


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(show_path=False)],
        force=True,
    )


@click.group()
@click.option(
    "--host",
    envvar="DOCKSTREAM_HOST",
    default=None,
    help="Engine address (unix:///path, tcp://host:port, https://host:port).",
)
@click.option("--timeout", type=float, default=None, help="Response timeout in seconds.")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
@click.option("--json", "json_output", is_flag=True, help="Output as JSON.")
@click.version_option(version=__version__, prog_name="dockstream")
@click.pass_context
def cli(
    ctx: click.Context,
    host: str | None,
    timeout: float | None,
    *,
    verbose: bool,
    json_output: bool,
) -> None:
    """Talk to a Docker or Podman engine over its HTTP API."""
    config = load_config()
    _configure_logging("debug" if verbose else config.log_level)
    config = dataclasses.replace(
        config,
        host=host or config.host,
        timeout=timeout if timeout is not None else config.timeout,
    )
    ctx.obj = CliContext(config=config, verbose=verbose, json_output=json_output)


# --- Register commands ---

from dockstream.cli._commands import (  # noqa: E402
    events_cmd,
    exec_cmd,
    get_cmd,
    logs_cmd,
    ping_cmd,
    version_cmd,
)

cli.add_command(ping_cmd)
cli.add_command(version_cmd)
cli.add_command(get_cmd)
cli.add_command(logs_cmd)
cli.add_command(exec_cmd)
cli.add_command(events_cmd)
