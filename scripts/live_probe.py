#!/usr/bin/env python3
"""Passive live update probe.

Connects to a live update server, subscribes to properties of one object
and logs every value change until Ctrl+C (or ``--duration`` expires).

    python scripts/live_probe.py screen2:surface_1 object.offset object.rotation

The director defaults to ``LIVEUPDATE_DIRECTOR``; see
:meth:`pyliveupdate.LiveUpdateConfig.from_env` for the other variables.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
import time
from pathlib import Path
from typing import Any

# Allow running from repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from pyliveupdate import ConnectionStatus, LiveUpdateClient, LiveUpdateConfig, LiveUpdateError  # noqa: E402

_LOG = logging.getLogger("live_probe")


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Passive probe for a live update server.")
    parser.add_argument("object_path", help="Object to subscribe to, e.g. screen2:surface_1.")
    parser.add_argument("properties", nargs="+", help="Property paths, e.g. object.offset.")
    parser.add_argument("--director", help="host:port of the server (overrides LIVEUPDATE_DIRECTOR).")
    parser.add_argument("--secure", action="store_true", help="Use wss:// instead of ws://.")
    parser.add_argument(
        "--duration",
        type=int,
        default=0,
        help="Maximum runtime in seconds (0 = run until Ctrl+C).",
    )
    parser.add_argument(
        "--reconnect-seconds",
        type=float,
        default=5.0,
        help="Delay before reconnecting after the connection closes.",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logs.")
    return parser.parse_args()


def _config_from_args(args: argparse.Namespace) -> LiveUpdateConfig:
    overrides: dict[str, Any] = {}
    if args.director:
        overrides["director"] = args.director
    if args.secure:
        overrides["secure"] = True
    return LiveUpdateConfig.from_env(**overrides)


def _format(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, sort_keys=True)


async def _probe(config: LiveUpdateConfig, args: argparse.Namespace) -> int:
    started_at = time.monotonic()
    changes = 0

    async with LiveUpdateClient(config) as client:
        client.add_status_listener(lambda status: _LOG.info("status=%s info=%s", status, client.connection_info))

        with client.auto_subscribe(args.object_path, args.properties) as props:
            for name, binding in props.items():

                def _on_change(value: Any, name: str = name) -> None:
                    nonlocal changes
                    changes += 1
                    print(f"[probe] {name} = {_format(value)}")

                binding.watch(_on_change)

            while True:
                if args.duration and time.monotonic() - started_at >= args.duration:
                    break
                if client.status == ConnectionStatus.CLOSED:
                    await asyncio.sleep(args.reconnect_seconds)
                    _LOG.info("Reconnecting to %s", config.url)
                    await client.reconnect()
                    continue
                await asyncio.sleep(1.0)

            info = client.debug_info()

    print("[probe] Summary")
    print(f"[probe]   runtime_s     : {time.monotonic() - started_at:.1f}")
    print(f"[probe]   value_changes : {changes}")
    print(f"[probe]   subscriptions : {len(info.subscriptions)}")
    if info.last_error:
        print(f"[probe]   last_error    : {info.last_error}")
    return 0


def _main() -> int:
    args = _parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        config = _config_from_args(args)
    except LiveUpdateError as exc:
        print(f"[probe] {exc}", file=sys.stderr)
        return 2

    try:
        return asyncio.run(_probe(config, args))
    except KeyboardInterrupt:
        print("[probe] Interrupted")
        return 130


if __name__ == "__main__":
    raise SystemExit(_main())
