#!/usr/bin/env python3
"""Watch one device's live telemetry from the command line.

Lists the devices in the database, or subscribes to one of them and prints
every reconciled change (current location, motion, alerts, status) along
with derived metrics.

Usage
-----
Set environment variables and run::

    export WILDTRACK_DATABASE_URL="https://example-default-rtdb.firebaseio.com"
    export WILDTRACK_AUTH_TOKEN="..."        # optional
    python scripts/watch_device.py --list
    python scripts/watch_device.py --device collar-07

Options::

    --list               List devices and exit
    --device ID          Device to watch (default: first listed device)
    --history            Print the last N records of each feed and exit
    --duration SECONDS   Stop watching after SECONDS (default: run until Ctrl-C)
    --track              Record a path while watching and print it on exit
    --json               Print events as JSON lines
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import json
import logging
import sys
import time
from datetime import UTC, datetime
from typing import Any

from wildtrack import (
    DeviceStatus,
    ErrorKind,
    Feed,
    LocationSample,
    TelemetryClient,
    TelemetryObserver,
    TelemetryRecord,
    WildtrackConfig,
    WildtrackError,
)


def _fmt_ts(timestamp: float) -> str:
    return datetime.fromtimestamp(timestamp, UTC).isoformat(timespec="seconds")


def _record_summary(record: TelemetryRecord) -> dict[str, Any]:
    summary = record.model_dump(exclude={"raw", "defaulted_fields"})
    summary["time"] = _fmt_ts(record.timestamp)
    if record.defaulted_fields:
        summary["defaulted_fields"] = sorted(record.defaulted_fields)
    return summary


class _PrintingObserver(TelemetryObserver):
    def __init__(self, client: TelemetryClient, *, json_mode: bool) -> None:
        self._client = client
        self._json_mode = json_mode

    def _emit(self, kind: str, device_id: str, payload: dict[str, Any]) -> None:
        if self._json_mode:
            print(json.dumps({"event": kind, "device_id": device_id, **payload}, default=str), flush=True)
            return
        details = ", ".join(f"{key}={value}" for key, value in payload.items())
        print(f"[{_fmt_ts(time.time())}] {device_id} {kind}: {details}", flush=True)

    def on_current_change(self, device_id: str, feed: Feed, record: TelemetryRecord | None) -> None:
        if record is None:
            return
        payload = {"feed": str(feed), **_record_summary(record)}
        if isinstance(record, LocationSample):
            metrics = self._client.metrics(device_id)
            payload["distance_m"] = round(metrics.distance_m, 1)
            payload["average_speed"] = f"{metrics.average_speed:.2f} {metrics.speed_unit}"
        self._emit("current", device_id, payload)

    def on_error(self, device_id: str, kind: ErrorKind) -> None:
        self._emit("notice", device_id, {"kind": str(kind)})

    def on_status_change(self, device_id: str, status: DeviceStatus) -> None:
        self._emit(
            "status",
            device_id,
            {
                "connected": status.connected,
                "stale": status.stale,
                "empty_feeds": sorted(str(feed) for feed in status.empty_feeds),
            },
        )


async def _print_history(client: TelemetryClient, device_id: str, *, json_mode: bool) -> None:
    for feed in Feed:
        records = await client.get_history(device_id, feed)
        if json_mode:
            print(json.dumps({"feed": str(feed), "records": [_record_summary(r) for r in records]}, default=str))
            continue
        print(f"\n== {feed} ({len(records)} records, newest first) ==")
        for record in records:
            print(f"  {_record_summary(record)}")


async def main() -> None:
    parser = argparse.ArgumentParser(
        description="Watch live telemetry for one device.",
    )
    parser.add_argument("--list", action="store_true", dest="list_mode", help="List devices and exit")
    parser.add_argument("--device", help="Device to watch (default: first listed device)")
    parser.add_argument("--history", action="store_true", help="Print recent records of each feed and exit")
    parser.add_argument("--duration", type=float, help="Stop watching after this many seconds")
    parser.add_argument("--track", action="store_true", help="Record a path while watching")
    parser.add_argument("--json", action="store_true", dest="json_mode", help="Output JSON lines")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")
    else:
        logging.basicConfig(level=logging.WARNING)

    try:
        config = WildtrackConfig.from_env()
    except WildtrackError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        sys.exit(2)

    async with TelemetryClient(config) as client:
        devices = await client.list_devices()
        if args.list_mode:
            for device in devices:
                print(f"{device.device_id}\t{device.name}\t{device.device_type}")
            return

        device_id = args.device or (devices[0].device_id if devices else None)
        if device_id is None:
            print("No devices found", file=sys.stderr)
            sys.exit(1)

        if args.history:
            await _print_history(client, device_id, json_mode=args.json_mode)
            return

        client.add_observer(_PrintingObserver(client, json_mode=args.json_mode))
        await client.watch(device_id)
        if args.track:
            client.start_tracking()

        try:
            if args.duration is not None:
                await asyncio.sleep(args.duration)
            else:
                await asyncio.Event().wait()
        finally:
            if args.track:
                session = client.stop_tracking()
                if session is not None:
                    print(
                        f"Recorded {len(session.points)} points, "
                        f"{session.distance_m:.1f} m over {session.duration_s:.0f} s",
                    )


if __name__ == "__main__":
    with contextlib.suppress(KeyboardInterrupt):
        asyncio.run(main())
