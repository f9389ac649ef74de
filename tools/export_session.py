from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

import chess

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from board_core import BoardCoreError, Session, SessionConfig
from board_core.logging_config import parse_level, setup_logging

logger = logging.getLogger(__name__)


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Replay moves through a board session and export its state.")
    parser.add_argument(
        "--fen",
        default=chess.STARTING_FEN,
        help="FEN string to start from. Defaults to the starting position.",
    )
    parser.add_argument(
        "--moves",
        default="",
        help="Comma-separated coordinate moves to play (example: e2e4,e7e5,a7a8Q).",
    )
    parser.add_argument(
        "--undo",
        type=int,
        default=0,
        help="Number of moves to take back after replaying --moves.",
    )
    parser.add_argument(
        "--minutes",
        type=float,
        default=10.0,
        help="Starting clock allotment per side, in minutes.",
    )
    parser.add_argument(
        "--output",
        default="session_state.json",
        help="Output JSON file path.",
    )
    parser.add_argument("--log-level", default="WARNING", help="Logging level (DEBUG, INFO, ...).")
    return parser.parse_args(argv)


def _parse_moves(raw: str) -> list[str]:
    if not raw.strip():
        return []
    return [token.strip() for token in raw.split(",") if token.strip()]


def _apply_moves(session: Session, moves: list[str]) -> None:
    for idx, move in enumerate(moves, start=1):
        try:
            session.play(move)
        except ValueError as exc:
            raise ValueError(f"Move {idx} rejected: {exc}") from exc


def build_session(fen: str, moves: list[str], undo: int = 0, minutes: float = 10.0) -> Session:
    session = Session(config=SessionConfig.from_minutes(minutes))
    update = session.submit_fen(fen)
    if not update.board_changed:
        raise ValueError(f"Invalid --fen value: {fen}")
    _apply_moves(session, moves)
    for _ in range(undo):
        if not session.undo().history_changed:
            break
    return session


def main(argv: Optional[Sequence[str]] = None) -> None:
    args = parse_args(argv)
    try:
        setup_logging(log_level=parse_level(args.log_level))
        session = build_session(args.fen, _parse_moves(args.moves), args.undo, args.minutes)
    except (ValueError, BoardCoreError) as exc:
        raise SystemExit(str(exc)) from exc

    payload = session.export_payload()
    output_path = Path(args.output)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
    logger.info("Exported %d positions", len(session.history))
    print(f"Wrote state to {output_path.resolve()}")


if __name__ == "__main__":
    main()
