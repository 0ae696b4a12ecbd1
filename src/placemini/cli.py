"""Place Mini CLI — command-line interface for the voting canvas.

Usage:
    python -m placemini.cli status --session post-1
    python -m placemini.cli open --session post-1
    python -m placemini.cli select --session post-1 --voter alice --row 0 --col 0
    python -m placemini.cli vote --session post-1 --voter alice --row 0 --col 0 --color "#E50000"
    python -m placemini.cli tick --session post-1
    python -m placemini.cli frame --session post-1 --current 3 --delta -1
    python -m placemini.cli run --session post-1 --seconds 600
    python -m placemini.cli check-invariants
"""

from __future__ import annotations

import argparse
import json
import os
import sys
import time
from pathlib import Path

from dotenv import load_dotenv

from placemini.countdown.ticker import SettlementTicker
from placemini.logging_cfg import setup_logging
from placemini.persistence.event_log import EventLog
from placemini.persistence.kv_store import SqliteStore
from placemini.policy.resolver import PolicyResolver
from placemini.service import CanvasService, ServiceResult


ROOT = Path(__file__).resolve().parents[2]
DEFAULT_CONFIG = ROOT / "config"
DEFAULT_DATA = ROOT / "data"
DOTENV_PATH = ROOT / ".env"


def _make_service(args: argparse.Namespace) -> CanvasService:
    """Create a CanvasService with durable persistence."""
    resolver = PolicyResolver.from_config_dir(args.config).with_env_overrides(
        dotenv_path=DOTENV_PATH,
    )
    data_dir = Path(args.data or os.getenv("PLACEMINI_DATA_DIR") or DEFAULT_DATA)
    data_dir.mkdir(parents=True, exist_ok=True)
    return CanvasService(
        resolver.canvas_policy(),
        SqliteStore(data_dir / "canvas.db"),
        event_log=EventLog(storage_path=data_dir / "events.jsonl"),
    )


def _emit(result: ServiceResult) -> int:
    if result.success:
        print(json.dumps(result.data, indent=2))
        return 0
    print(f"Failed: {'; '.join(result.errors)}", file=sys.stderr)
    return 1


def cmd_status(args: argparse.Namespace) -> int:
    service = _make_service(args)
    print(json.dumps(service.status(args.session), indent=2))
    return 0


def cmd_open(args: argparse.Namespace) -> int:
    return _emit(_make_service(args).open_session(args.session))


def cmd_select(args: argparse.Namespace) -> int:
    service = _make_service(args)
    return _emit(service.select_cell(args.session, args.voter, args.row, args.col))


def cmd_vote(args: argparse.Namespace) -> int:
    service = _make_service(args)
    result = service.cast_vote(args.session, args.voter, args.row, args.col, args.color)
    if result.success:
        print(f"Vote recorded: {args.color} on ({args.row}, {args.col})")
        return 0
    print(f"Failed: {'; '.join(result.errors)}", file=sys.stderr)
    return 1


def cmd_tick(args: argparse.Namespace) -> int:
    return _emit(_make_service(args).tick(args.session))


def cmd_frame(args: argparse.Namespace) -> int:
    service = _make_service(args)
    return _emit(service.navigate_frame(args.session, args.current, args.delta))


def cmd_run(args: argparse.Namespace) -> int:
    """Open the session and tick until it stops being live."""
    service = _make_service(args)
    opened = service.open_session(args.session)
    if not opened.success:
        return _emit(opened)

    def _report(result: ServiceResult) -> None:
        if result.data.get("settled"):
            print(f"Settled frame {result.data['frame_index']}", flush=True)

    ticker = SettlementTicker(service, args.session, on_tick=_report)
    if not ticker.start():
        print("Voting has concluded", file=sys.stderr)
        return 1
    deadline = time.monotonic() + args.seconds if args.seconds else None
    try:
        while ticker.running:
            if deadline is not None and time.monotonic() >= deadline:
                break
            time.sleep(0.2)
    except KeyboardInterrupt:
        pass
    finally:
        ticker.stop()
    return 0


def cmd_check_invariants(args: argparse.Namespace) -> int:
    """Run configuration invariant checks."""
    tools_dir = ROOT / "tools"
    sys.path.insert(0, str(tools_dir))
    from check_invariants import check
    return check(args.config)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="placemini",
        description="Place Mini — collaborative voting canvas CLI",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=DEFAULT_CONFIG,
        help="Path to config directory (default: config/)",
    )
    parser.add_argument("--data", type=Path, help="Data directory (default: data/)")
    parser.add_argument(
        "--log-level",
        default=os.getenv("PLACEMINI_LOG_LEVEL", "WARNING"),
        help="Logging level (default: $PLACEMINI_LOG_LEVEL or WARNING)",
    )
    parser.add_argument(
        "--log-dir",
        type=Path,
        default=os.getenv("PLACEMINI_LOG_DIR") or None,
        help="Also append logs to placemini.log in this directory",
    )
    sub = parser.add_subparsers(dest="command")

    p_status = sub.add_parser("status", help="Show session status")
    p_status.add_argument("--session", required=True, help="Session key")

    p_open = sub.add_parser("open", help="Bootstrap a session")
    p_open.add_argument("--session", required=True, help="Session key")

    p_select = sub.add_parser("select", help="Show vote counts for a cell")
    p_select.add_argument("--session", required=True, help="Session key")
    p_select.add_argument("--voter", required=True, help="Voter identity")
    p_select.add_argument("--row", type=int, required=True)
    p_select.add_argument("--col", type=int, required=True)

    p_vote = sub.add_parser("vote", help="Vote for a cell color")
    p_vote.add_argument("--session", required=True, help="Session key")
    p_vote.add_argument("--voter", required=True, help="Voter identity")
    p_vote.add_argument("--row", type=int, required=True)
    p_vote.add_argument("--col", type=int, required=True)
    p_vote.add_argument("--color", required=True, help="Palette color, e.g. #E50000")

    p_tick = sub.add_parser("tick", help="Run one settlement check")
    p_tick.add_argument("--session", required=True, help="Session key")

    p_frame = sub.add_parser("frame", help="Navigate the history log")
    p_frame.add_argument("--session", required=True, help="Session key")
    p_frame.add_argument("--current", type=int, required=True, help="Current frame index")
    p_frame.add_argument("--delta", type=int, required=True, help="Frames to move")

    p_run = sub.add_parser("run", help="Tick a session until voting concludes")
    p_run.add_argument("--session", required=True, help="Session key")
    p_run.add_argument("--seconds", type=float, help="Stop after this many seconds")

    sub.add_parser("check-invariants", help="Run configuration invariant checks")

    return parser


def main(argv: list[str] | None = None) -> int:
    load_dotenv(DOTENV_PATH)
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    setup_logging(args.log_level, args.log_dir)

    commands = {
        "status": cmd_status,
        "open": cmd_open,
        "select": cmd_select,
        "vote": cmd_vote,
        "tick": cmd_tick,
        "frame": cmd_frame,
        "run": cmd_run,
        "check-invariants": cmd_check_invariants,
    }

    handler = commands.get(args.command)
    if handler is None:
        print(f"Unknown command: {args.command}", file=sys.stderr)
        return 1

    return handler(args)


if __name__ == "__main__":
    raise SystemExit(main())
