# ==============================================================================
# display.py  –  Overlay-ready values for tracked games
#
# Pure formatting: evaluation text, evaluation-bar fill and the JSON view of
# a tracked game served to the overlay renderer.
# ==============================================================================

from __future__ import annotations

from typing import Any, Dict, Optional

from knightwatch.extraction.game_data import GameResult, ResultValue
from knightwatch.share.share_codec import short_name
from knightwatch.state.tracked_games import TrackedGame
from knightwatch.utils.clock_codec import format_clock

EVAL_CLAMP = 10.0  # pawns
BAR_MIN, BAR_MAX = 5.0, 95.0


def format_evaluation(evaluation: Optional[float]) -> str:
    if evaluation is None:
        return ""
    if evaluation > 0:
        return f"+{evaluation:.1f}"
    if evaluation < 0:
        return f"{evaluation:.1f}"
    return "0.0"


def eval_bar_percent(evaluation: Optional[float], result: ResultValue = None) -> float:
    """
    White's share of the evaluation bar, in percent.

    Running games: 50 + 5 per pawn, clamped to ±10 pawns and kept within
    [5, 95] so neither side disappears. Finished games freeze on the outcome.
    """
    if result is GameResult.WHITE_WINS:
        return 100.0
    if result is GameResult.BLACK_WINS:
        return 0.0
    if result is not None:
        return 50.0
    if evaluation is None:
        return 50.0

    clamped = max(-EVAL_CLAMP, min(EVAL_CLAMP, evaluation))
    return max(BAR_MIN, min(BAR_MAX, 50.0 + clamped * 5.0))


def result_label(result: ResultValue) -> Optional[str]:
    if result is None:
        return None
    if result is GameResult.DRAW:
        return "Draw"
    return result.value if isinstance(result, GameResult) else str(result)


def game_to_dict(game: TrackedGame, stale_after: Optional[float] = None) -> Dict[str, Any]:
    """JSON-ready view of one tracked game."""
    return {
        "white": game.white,
        "black": game.black,
        "whiteShort": short_name(game.white),
        "blackShort": short_name(game.black),
        "evaluation": game.evaluation,
        "evaluationText": format_evaluation(game.evaluation),
        "barPercent": eval_bar_percent(game.evaluation, game.result),
        "fen": game.last_position,
        "result": result_label(game.result),
        "whiteClock": format_clock(game.white_clock),
        "blackClock": format_clock(game.black_clock),
        "turn": game.active_side.value,
        "moveNumber": game.move_number,
        "hasData": game.has_data,
        "stale": game.is_stale(stale_after) if stale_after is not None else False,
    }
