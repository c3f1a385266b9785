# ==============================================================================
# test_snapshot_mapper.py  –  JSON round snapshot → GameState
# ==============================================================================

from knightwatch.extraction.game_data import GameResult, Side
from knightwatch.extraction.snapshot_mapper import (
    map_snapshot_game,
    map_snapshot_games,
    snapshot_game_names,
)
from knightwatch.tests.fakes import AFTER_E4_E5

BLACK_TO_MOVE = "rnbqkbnr/pppppppp/8/8/4P3/8/PPPP1PPP/RNBQKBNR b KQkq - 0 1"

PAYLOAD = {
    "games": [
        {
            "name": "A - B",
            "fen": AFTER_E4_E5,
            "players": [{"name": "A", "clock": 30000}, {"name": "B", "clock": 29850}],
        },
        {
            "name": "C - D",
            "fen": BLACK_TO_MOVE,
            "status": "0-1",
            "players": [{"name": "C"}, {"name": "D", "clock": "bad"}],
        },
        {"name": "E - F"},
        {"fen": AFTER_E4_E5},
        "garbage",
    ]
}


def test_map_snapshot_game_clocks_in_centiseconds():
    state = map_snapshot_game(PAYLOAD["games"][0])
    assert state.position == AFTER_E4_E5
    assert state.active_side is Side.WHITE
    assert state.move_number == 2
    assert (state.white_clock, state.black_clock) == (300, 298)
    assert state.result is None


def test_map_snapshot_game_status_and_missing_clocks():
    state = map_snapshot_game(PAYLOAD["games"][1])
    assert state.active_side is Side.BLACK
    assert state.move_number == 1
    assert (state.white_clock, state.black_clock) == (0, 0)
    assert state.result is GameResult.BLACK_WINS


def test_map_snapshot_game_requires_position():
    assert map_snapshot_game({"name": "E - F"}) is None
    assert map_snapshot_game({"name": "E - F", "fen": "  "}) is None


def test_map_snapshot_games_skips_unusable_entries():
    states = map_snapshot_games(PAYLOAD)
    assert set(states) == {"A - B", "C - D"}


def test_snapshot_game_names_lists_all_named_games():
    assert snapshot_game_names(PAYLOAD) == ["A - B", "C - D", "E - F"]
    assert snapshot_game_names({}) == []


def test_non_string_names_are_skipped():
    payload = {
        "games": [
            {"name": ["bad"], "fen": AFTER_E4_E5},
            {"name": {"white": "X"}, "fen": AFTER_E4_E5},
            {"name": "A - B", "fen": AFTER_E4_E5},
        ]
    }
    assert set(map_snapshot_games(payload)) == {"A - B"}
    assert snapshot_game_names(payload) == ["A - B"]
