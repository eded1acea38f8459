"""Run a resolver against a JSON inventory file and print membership events.

Usage::

    python -m vmresolver --config resolver.json --inventory vms.json [--duration 30] [-v]

Each added/removed event is printed as one JSON line. The resolver is
stopped (retracting every backend) after ``--duration`` seconds or on Ctrl-C.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import Any, TextIO

from vmresolver.config import ResolverConfig
from vmresolver.errors import ConfigError
from vmresolver.providers.static import StaticInventoryProvider
from vmresolver.resolver import Resolver
from vmresolver.state import Event


def _print_event(out: TextIO, kind: str, key: str, backend: dict[str, Any] | None = None) -> None:
    record: dict[str, Any] = {"event": kind, "key": key}
    if backend is not None:
        record["backend"] = backend
    out.write(json.dumps(record) + "\n")
    out.flush()


async def run(
    config: ResolverConfig,
    inventory: str,
    duration: float | None = None,
    out: TextIO | None = None,
) -> Resolver:
    """Resolve backends from *inventory* until *duration* elapses (or forever)."""
    out = out if out is not None else sys.stdout
    resolver = Resolver(config, StaticInventoryProvider.from_file(inventory))
    resolver.on_added(lambda key, backend: _print_event(out, "added", key, backend.to_dict()))
    resolver.on_removed(lambda key: _print_event(out, "removed", key))

    await resolver.start()
    try:
        if duration is None:
            await asyncio.Event().wait()
        else:
            await asyncio.sleep(duration)
    finally:
        if resolver.machine.can(Event.STOP):
            await resolver.stop()
        await resolver.provider.aclose()
    return resolver


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="python -m vmresolver",
        description="Poll a VM inventory and print backend add/remove events",
    )
    parser.add_argument("--config", metavar="PATH", required=True, help="Resolver config (JSON)")
    parser.add_argument("--inventory", metavar="PATH", required=True, help="VM inventory (JSON list)")
    parser.add_argument(
        "--duration",
        metavar="SECONDS",
        type=float,
        default=None,
        help="Stop after this many seconds (default: run until interrupted)",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Log at INFO level")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    try:
        config = ResolverConfig.load(args.config)
    except ConfigError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2

    try:
        asyncio.run(run(config, args.inventory, args.duration))
    except KeyboardInterrupt:
        print("\nResolver interrupted.", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
