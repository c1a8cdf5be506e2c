# SPDX-License-Identifier: BSD-2-Clause
# Copyright (c) deftio llc

"""Quickstart: Follow a container's logs line by line.

Connects to the local engine, prints its version, then streams the
demultiplexed stdout/stderr of a container until it stops (or Ctrl-C).

Usage:
    python examples/quickstart_logs.py <container>
"""

import asyncio
import sys

import dockstream


async def follow(container: str) -> None:
    async with dockstream.Client() as client:
        info = await client.version()
        print(f"Engine {info.get('Version')} (API {info.get('ApiVersion')})")

        out = dockstream.LineWriter(lambda line: print(f"[out] {line}"))
        err = dockstream.LineWriter(lambda line: print(f"[err] {line}", file=sys.stderr))
        try:
            await client.container_logs(container, out, err, follow=True, tail=20)
        finally:
            out.close()
            err.close()


def main() -> None:
    if len(sys.argv) != 2:  # noqa: PLR2004
        print(__doc__)
        raise SystemExit(2)
    try:
        asyncio.run(follow(sys.argv[1]))
    except dockstream.NotFound:
        print(f"No such container: {sys.argv[1]}", file=sys.stderr)
        raise SystemExit(1) from None
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
