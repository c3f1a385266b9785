# ==============================================================================
# game_data.py  –  Derived per-game state from one PGN record
# ------------------------------------------------------------------------------
# Turns the latest PGN text of a broadcast game into the fields the overlay
# shows: final position (FEN), side to move, both clocks, move number and
# result.
#
# Steps:
#   1. Replay the mainline with python-chess, stopping at the first illegal move
#   2. Collect `[%clk H:MM:SS]` annotations in ply order
#   3. Assign the last two clocks to White / Black by parity
#   4. Map the Result header (or trailing result token) to `GameResult`
# ==============================================================================

from __future__ import annotations

import io
import re
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple, Union

import chess
import chess.pgn

from knightwatch.utils.clock_codec import clock_to_seconds
from knightwatch.utils.logging_utils import setup_logger
from knightwatch.utils.pgn_parser import parse_pgn_text

LOGGER = setup_logger("knightwatch.game_data")

CLK_PATTERN = re.compile(r"\[%clk\s+(\d+:\d{1,2}:\d{1,2}(?:\.\d+)?)\s*\]")
_TRAILING_RESULT_RE = re.compile(r"(1-0|0-1|1/2-1/2|\*)\s*$")


# ------------------------------------------------------------------------------
# Types
# ------------------------------------------------------------------------------


class Side(str, Enum):
    WHITE = "white"
    BLACK = "black"
    UNKNOWN = ""


class GameResult(str, Enum):
    WHITE_WINS = "1-0"
    BLACK_WINS = "0-1"
    DRAW = "1/2-1/2"


ResultValue = Union[GameResult, str, None]

_RESULT_TOKENS = {
    "1-0": GameResult.WHITE_WINS,
    "0-1": GameResult.BLACK_WINS,
    "1/2-1/2": GameResult.DRAW,
    "½-½": GameResult.DRAW,
}


@dataclass(frozen=True)
class GameState:
    """Derived state of one game, as produced from PGN or a JSON snapshot."""

    position: str
    active_side: Side = Side.UNKNOWN
    white_clock: int = 0
    black_clock: int = 0
    move_number: int = 1
    result: ResultValue = None

    @property
    def finished(self) -> bool:
        return self.result is not None


def parse_result(token: Optional[str]) -> ResultValue:
    """
    Map a PGN result token to `GameResult`.

    `*`, empty and None mean the game is still going (None). Tokens outside
    the standard set are returned unchanged.
    """
    if token is None:
        return None
    token = token.strip()
    if not token or token == "*":
        return None
    return _RESULT_TOKENS.get(token, token)


# ------------------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------------------


def collect_clocks(pgn_text: str) -> List[int]:
    """Clock annotations in ply order, as seconds."""
    clocks: List[int] = []
    for raw in CLK_PATTERN.findall(pgn_text):
        try:
            clocks.append(clock_to_seconds(raw))
        except ValueError:
            LOGGER.debug("Skipping malformed clock %s", raw)
    return clocks


def assign_clocks(clocks: List[int]) -> Tuple[int, int, Side]:
    """
    Return `(white_clock, black_clock, side_to_move)` from ply-ordered clocks.

    Clocks alternate White, Black, White, … so after an even number of plies
    the last clock is Black's and White is to move; after an odd number the
    last clock is White's and Black is to move.
    """
    count = len(clocks)
    if count == 0:
        return 0, 0, Side.UNKNOWN
    if count == 1:
        return clocks[0], 0, Side.BLACK
    if count % 2 == 0:
        return clocks[-2], clocks[-1], Side.WHITE
    return clocks[-1], clocks[-2], Side.BLACK


def replay_position(game: chess.pgn.Game) -> str:
    """FEN after the last legal mainline move."""
    board = game.board()
    for move in game.mainline_moves():
        if not board.is_legal(move):
            LOGGER.debug("Illegal move %s at ply %d – replay truncated", move, board.ply())
            break
        board.push(move)
    return board.fen()


def _result_from(pgn_text: str) -> ResultValue:
    parsed = parse_pgn_text(pgn_text)
    if "result" in parsed:
        return parse_result(parsed["result"])
    trailing = _TRAILING_RESULT_RE.search(parsed["moves"])
    return parse_result(trailing.group(1)) if trailing else None


# ------------------------------------------------------------------------------
# Public API
# ------------------------------------------------------------------------------


def extract_game_data(pgn_text: str) -> Optional[GameState]:
    """
    Derive a `GameState` from one game's PGN text.

    Returns None when the record cannot be read at all; a single bad game
    never raises into the caller's batch.
    """
    try:
        game = chess.pgn.read_game(io.StringIO(pgn_text))
        if game is None:
            return None

        position = replay_position(game)
        clocks = collect_clocks(pgn_text)
        white_clock, black_clock, side = assign_clocks(clocks)

        return GameState(
            position=position,
            active_side=side,
            white_clock=white_clock,
            black_clock=black_clock,
            move_number=len(clocks) // 2 + 1,
            result=_result_from(pgn_text),
        )
    except Exception as exc:
        LOGGER.warning("Could not extract game data – %s", exc)
        return None
