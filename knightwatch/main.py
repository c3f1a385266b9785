#!/usr/bin/env python3
# ==============================================================================
#  KnightWatch - main.py
#  Purpose: follow one broadcast round from the command line
#           (start round → track games → serve / report until Ctrl+C)
# ==============================================================================

from __future__ import annotations

import argparse
import logging
import time
from typing import Callable, List, Optional, Sequence

from knightwatch.api.app import create_app
from knightwatch.session.broadcast_session import BroadcastSession
from knightwatch.utils.clock_codec import format_clock
from knightwatch.utils.config_utils import METRICS_ENABLED, METRICS_PORT
from knightwatch.utils.display import format_evaluation, result_label
from knightwatch.utils.logging_utils import set_level, setup_logger
from knightwatch.utils.metrics import start_metrics_server
from knightwatch.utils.pgn_parser import Identity, split_identity_key

logger = setup_logger("knightwatch.main")

STATUS_INTERVAL = 10.0  # seconds

# ------------------------------------------------------------------------------
# Stage Wrapper
# ------------------------------------------------------------------------------


def _stage(title: str, fn: Callable[[], object]) -> object:
    """
    Run one startup step with start → finish logging and a stacktrace on error.
    """
    logger.info("%s – started", title)
    try:
        result = fn()
        logger.info("%s – finished", title)
        return result
    except Exception:
        logger.exception("%s – failed", title)
        raise


# ------------------------------------------------------------------------------
# CLI
# ------------------------------------------------------------------------------


def _track_pair(value: str) -> Identity:
    pair = split_identity_key(value)
    if pair is None:
        raise argparse.ArgumentTypeError(f'expected "White - Black", got {value!r}')
    return pair


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="knightwatch",
        description="Live evaluation overlay sync for Lichess broadcasts.",
    )
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--round", dest="round_id", help="Broadcast round ID")
    source.add_argument("--share", help="Share token to restore")
    parser.add_argument("--tournament", dest="tournament_id", help="Tournament ID")
    parser.add_argument(
        "--track",
        action="append",
        default=[],
        type=_track_pair,
        metavar='"WHITE - BLACK"',
        help="Game to track (repeatable)",
    )
    parser.add_argument("--serve", action="store_true", help="Run the HTTP API")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=5000)
    parser.add_argument(
        "--metrics-port",
        type=int,
        default=METRICS_PORT if METRICS_ENABLED else None,
        help="Expose Prometheus metrics on this port",
    )
    parser.add_argument("--log-level", default="INFO")
    return parser.parse_args(argv)


# ------------------------------------------------------------------------------
# Status
# ------------------------------------------------------------------------------


def status_lines(session: BroadcastSession) -> List[str]:
    lines = []
    for game in session.games():
        if not game.has_data:
            lines.append(f"{game.identity}: waiting for data")
            continue
        state = result_label(game.result) or f"move {game.move_number}"
        lines.append(
            f"{game.identity}: {format_evaluation(game.evaluation) or '…'} | "
            f"{format_clock(game.white_clock)} / {format_clock(game.black_clock)} | "
            f"{state}{' (stale)' if game.is_stale(session.stale_after) else ''}"
        )
    return lines


def _report_forever(session: BroadcastSession, interval: float = STATUS_INTERVAL) -> None:
    while True:
        time.sleep(interval)
        status = session.status()
        logger.info(
            "Round %s (%s) – %d tracked / %d available",
            status["roundId"], status["mode"], status["tracked"], status["available"],
        )
        for line in status_lines(session):
            logger.info("  %s", line)


# ------------------------------------------------------------------------------
# Entry point
# ------------------------------------------------------------------------------


def run(args: argparse.Namespace, session: Optional[BroadcastSession] = None) -> int:
    set_level(getattr(logging, str(args.log_level).upper(), logging.INFO))
    session = session or BroadcastSession()

    if args.metrics_port:
        start_metrics_server(args.metrics_port)

    try:
        if args.share:
            if not _stage("Load share token", lambda: session.load_share_token(args.share)):
                return 2
        else:
            _stage(
                "Start round",
                lambda: session.start_round(args.round_id, args.tournament_id),
            )

        for white, black in args.track:
            session.add_game(white, black)

        if args.serve:
            app = create_app(session)
            _stage("HTTP API", lambda: app.run(host=args.host, port=args.port, use_reloader=False))
        else:
            _report_forever(session)
    except KeyboardInterrupt:
        logger.info("Interrupted – shutting down")
    finally:
        session.close()
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    return run(parse_args(argv))


if __name__ == "__main__":
    raise SystemExit(main())
