# SPDX-License-Identifier: BSD-2-Clause
# Copyright (c) deftio llc

"""Quickstart: Run a command in a running container.

Creates an exec instance, reads its multiplexed output over the hijacked
connection, and prints stdout, stderr and the exit code.

Usage:
    python examples/quickstart_exec.py <container> [command ...]
"""

import asyncio
import sys

import dockstream


async def run(container: str, command: list[str]) -> dockstream.ExecResult:
    async with dockstream.Client() as client:
        return await client.exec_run(container, command, timeout=30)


def main() -> None:
    if len(sys.argv) < 2:  # noqa: PLR2004
        print(__doc__)
        raise SystemExit(2)
    command = sys.argv[2:] or ["uname", "-a"]
    result = asyncio.run(run(sys.argv[1], command))

    if result.stdout:
        print(result.stdout, end="")
    if result.stderr:
        print(result.stderr, end="", file=sys.stderr)
    print(f"exit code {result.exit_code} in {result.duration_ms:.0f}ms")
    raise SystemExit(result.exit_code)


if __name__ == "__main__":
    main()
