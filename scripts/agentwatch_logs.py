"""agentwatch process log reader CLI."""

from __future__ import annotations

import argparse
import json
from dataclasses import asdict
from datetime import datetime, timezone

from agentwatch.config import WatchSettings
from agentwatch.storage import ProcessLogger


def load_logger(settings: WatchSettings) -> ProcessLogger:
    log_dir = settings.log_dir.expanduser()
    if not log_dir.is_dir():
        print(f"Log directory not found: {log_dir}")
        raise SystemExit(1)
    return ProcessLogger(
        log_dir,
        snapshot_interval=settings.snapshot_interval,
        max_age_days=settings.log_max_age_days,
        max_files=settings.log_max_files,
    )


def _today() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%d")


def _date_range(args: argparse.Namespace) -> tuple[str, str]:
    if args.since:
        return args.since, args.until or _today()
    start = args.date or _today()
    return start, args.until or start


def cmd_files(args: argparse.Namespace) -> None:
    process_logger = load_logger(WatchSettings())
    files = [*process_logger.list_snapshot_files(), *process_logger.list_event_files()]
    if args.json:
        payload = [
            {
                "filename": info.filename,
                "kind": info.kind,
                "date": info.date,
                "size_bytes": info.size_bytes,
                "modified_at": info.modified_at,
            }
            for info in files
        ]
        print(json.dumps(payload, indent=2))
    else:
        for info in files:
            print(f"{info.filename} [{info.kind}] {info.size_bytes}B")


def cmd_snapshots(args: argparse.Namespace) -> None:
    process_logger = load_logger(WatchSettings())
    start, end = _date_range(args)
    records = process_logger.read_snapshots_in_range(start, end)
    if args.label:
        records = [record for record in records if record.label == args.label]
    if args.pid is not None:
        records = [record for record in records if record.pid == args.pid]
    if args.limit is not None and args.limit > 0:
        records = records[-args.limit :]
    print(json.dumps([record.model_dump(by_alias=True, exclude_none=True) for record in records], indent=2))


def cmd_events(args: argparse.Namespace) -> None:
    process_logger = load_logger(WatchSettings())
    start, end = _date_range(args)
    records = process_logger.read_events_in_range(start, end)
    if args.type:
        records = [record for record in records if record.type == args.type]
    if args.limit is not None and args.limit > 0:
        records = records[-args.limit :]
    if args.json:
        print(json.dumps([record.model_dump(by_alias=True, exclude_none=True) for record in records], indent=2))
    else:
        for record in records:
            stamp = datetime.fromtimestamp(record.timestamp / 1000, tz=timezone.utc).isoformat()
            duration = f" ({record.duration_ms}ms)" if record.duration_ms is not None else ""
            print(f"{stamp} {record.type} {record.label} pid={record.pid}{duration}")


def cmd_summary(args: argparse.Namespace) -> None:
    process_logger = load_logger(WatchSettings())
    print(json.dumps(asdict(process_logger.summary()), indent=2))


def _add_range_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--date", help="UTC day (YYYY-MM-DD); defaults to today")
    parser.add_argument("--since", help="First UTC day of an inclusive range")
    parser.add_argument("--until", help="Last UTC day of an inclusive range")
    parser.add_argument(
        "--limit",
        type=int,
        default=None,
        help="If provided, show only the latest N records",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="agentwatch process log reader")
    sub = parser.add_subparsers(dest="cmd")

    p_files = sub.add_parser("files", help="List snapshot and event log files")
    p_files.add_argument("--json", action="store_true", help="Output JSON")
    p_files.set_defaults(func=cmd_files)

    p_snapshots = sub.add_parser("snapshots", help="Print process snapshots")
    _add_range_arguments(p_snapshots)
    p_snapshots.add_argument("--label")
    p_snapshots.add_argument("--pid", type=int, default=None)
    p_snapshots.set_defaults(func=cmd_snapshots)

    p_events = sub.add_parser("events", help="Print process start/end events")
    _add_range_arguments(p_events)
    p_events.add_argument("--type", choices=["process_start", "process_end"])
    p_events.add_argument("--json", action="store_true", help="Output JSON")
    p_events.set_defaults(func=cmd_events)

    p_summary = sub.add_parser("summary", help="Show file counts, record counts and date span")
    p_summary.set_defaults(func=cmd_summary)

    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not hasattr(args, "func"):
        parser.print_help()
        return
    args.func(args)


if __name__ == "__main__":
    main()
