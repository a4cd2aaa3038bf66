from __future__ import annotations

import argparse
import asyncio
import json
import sys
from typing import Any, List, Optional

from ekostudio.eventlog.adapter import ReplayMetadata, ReplaySinkAdapter, ReplayStartInfo
from ekostudio.eventlog.errors import EventLogError
from ekostudio.eventlog.locator import latest_log_file, list_log_files, resolve_log_file
from ekostudio.eventlog.player import ReplayMode, ReplayOptions
from ekostudio.eventlog.reader import summarize_log_file
from ekostudio.logging_setup import configure_logging
from ekostudio.settings import Settings


def _print_json(obj: Any) -> None:
    sys.stdout.write(json.dumps(obj, ensure_ascii=False) + "\n")
    sys.stdout.flush()


def cmd_list(settings: Settings, args: argparse.Namespace) -> int:
    for name in list_log_files(settings.log_dir):
        print(name)
    return 0


def cmd_latest(settings: Settings, args: argparse.Namespace) -> int:
    name = latest_log_file(settings.log_dir)
    if name is None:
        print(f"no recordings in {settings.log_dir}", file=sys.stderr)
        return 1
    print(name)
    return 0


def cmd_summary(settings: Settings, args: argparse.Namespace) -> int:
    summary = summarize_log_file(resolve_log_file(settings.log_dir, args.file))
    if summary is None:
        print("log has no readable entries", file=sys.stderr)
        return 1
    _print_json(
        {
            "path": summary.path,
            "totalMessages": summary.total_entries,
            "firstTimestamp": summary.first_timestamp,
            "lastTimestamp": summary.last_timestamp,
            "duration": summary.duration_ms,
        }
    )
    return 0


def cmd_replay(settings: Settings, args: argparse.Namespace) -> int:
    path = resolve_log_file(settings.log_dir, args.file)
    options = ReplayOptions(
        mode=ReplayMode(args.mode),
        speed=float(args.speed),
        fixed_interval_ms=float(args.fixed_interval),
    )

    def _on_start(info: ReplayStartInfo) -> None:
        print(f"replaying {path}: {info.total_entries} entries, {info.duration_ms}ms recorded", file=sys.stderr)

    def _on_message(payload: Any, meta: ReplayMetadata) -> None:
        _print_json({"replay": {"count": meta.sequence, "timeDiff": meta.time_diff, "progress": meta.progress}, "content": payload})

    adapter = ReplaySinkAdapter(path, options, on_message=_on_message, on_start=_on_start)
    try:
        asyncio.run(adapter.start())
    except KeyboardInterrupt:
        print("replay interrupted", file=sys.stderr)
        return 130
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="ekostudio-logs", description="Inspect and replay recorded agent event logs.")
    p.add_argument("--log-dir", default=None, help="Recording directory (default: EKO_LOG_DIR or ./agent-log)")
    p.add_argument("--log-level", default=None)
    sub = p.add_subparsers(dest="command", required=True)

    sub.add_parser("list", help="List recordings, newest first").set_defaults(func=cmd_list)
    sub.add_parser("latest", help="Print the newest recording").set_defaults(func=cmd_latest)

    ps = sub.add_parser("summary", help="Entry count and recorded duration")
    ps.add_argument("file", nargs="?", default=None, help="Recording filename (default: latest)")
    ps.set_defaults(func=cmd_summary)

    pr = sub.add_parser("replay", help="Replay a recording to stdout as JSON lines")
    pr.add_argument("file", nargs="?", default=None, help="Recording filename (default: latest)")
    pr.add_argument("--mode", choices=[m.value for m in ReplayMode], default=ReplayMode.realtime.value)
    pr.add_argument("--speed", type=float, default=1.0)
    pr.add_argument("--fixed-interval", type=float, default=1000.0, help="Milliseconds between entries in fixed mode")
    pr.set_defaults(func=cmd_replay)
    return p


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)
    settings = Settings()
    if args.log_dir:
        settings = settings.model_copy(update={"log_dir": args.log_dir})
    try:
        return int(args.func(settings, args))
    except (EventLogError, ValueError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
