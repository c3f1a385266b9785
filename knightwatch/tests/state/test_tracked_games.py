# ==============================================================================
# test_tracked_games.py  –  Displayed game set and its state transitions
# ==============================================================================

from knightwatch.extraction.game_data import GameResult, GameState, Side
from knightwatch.state.tracked_games import StateChange, TrackedGame, TrackedGameSet
from knightwatch.tests.fakes import AFTER_E4_E5, START_FEN

STATE = GameState(
    position=AFTER_E4_E5,
    active_side=Side.WHITE,
    white_clock=300,
    black_clock=298,
    move_number=2,
)


def _tracked(*pairs):
    games = TrackedGameSet()
    for white, black in pairs:
        games.add(white, black)
    return games


# ------------------------------------------------------------------------------
# Membership
# ------------------------------------------------------------------------------
def test_add_rejects_duplicates():
    games = _tracked(("A", "B"))
    assert games.add("A", "B") is False
    assert games.add("a", "B") is True
    assert len(games) == 2


def test_remove_by_index_and_identity():
    games = _tracked(("A", "B"), ("C", "D"), ("E", "F"))
    assert games.remove(1) is True
    assert games.identities() == ["A - B", "E - F"]
    assert games.remove("E - F") is True
    assert games.remove("X - Y") is False
    assert games.remove(5) is False
    assert games.identities() == ["A - B"]


def test_snapshot_returns_copies():
    games = _tracked(("A", "B"))
    copy = games.snapshot()[0]
    copy.evaluation = 9.9
    assert games.get("A - B").evaluation is None


def test_reset_derived_state_keeps_identities():
    games = _tracked(("A", "B"))
    games.apply_state("A - B", STATE)
    games.reset_derived_state()
    game = games.get("A - B")
    assert game.identity == "A - B"
    assert not game.has_data
    assert game.updated_at is None


# ------------------------------------------------------------------------------
# State transitions
# ------------------------------------------------------------------------------
def test_apply_state_new_position():
    games = _tracked(("A", "B"))
    assert games.apply_state("A - B", STATE) is StateChange.POSITION
    game = games.get("A - B")
    assert game.last_position == AFTER_E4_E5
    assert (game.white_clock, game.black_clock) == (300, 298)
    assert game.active_side is Side.WHITE
    assert game.move_number == 2
    assert game.updated_at is not None


def test_apply_state_same_position_is_noop():
    games = _tracked(("A", "B"))
    games.apply_state("A - B", STATE)
    assert games.apply_state("A - B", STATE) is StateChange.NONE


def test_apply_state_result_only():
    games = _tracked(("A", "B"))
    games.apply_state("A - B", STATE)
    resigned = GameState(position=AFTER_E4_E5, result=GameResult.BLACK_WINS)
    assert games.apply_state("A - B", resigned) is StateChange.RESULT
    game = games.get("A - B")
    assert game.result is GameResult.BLACK_WINS
    assert game.white_clock == 300


def test_apply_state_untracked_identity():
    games = _tracked(("A", "B"))
    assert games.apply_state("C - D", STATE) is StateChange.NONE


def test_apply_evaluation_drops_stale_positions():
    games = _tracked(("A", "B"))
    games.apply_state("A - B", STATE)
    assert games.apply_evaluation("A - B", START_FEN, 1.0) is False
    assert games.apply_evaluation("A - B", AFTER_E4_E5, 0.4) is True
    game = games.get("A - B")
    assert game.evaluation == 0.4
    assert game.evaluated_position == AFTER_E4_E5


# ------------------------------------------------------------------------------
# Staleness
# ------------------------------------------------------------------------------
def test_is_stale():
    game = TrackedGame(white="A", black="B")
    assert game.is_stale(10, now=1000.0) is False

    game.updated_at = 100.0
    assert game.is_stale(10, now=105.0) is False
    assert game.is_stale(10, now=200.0) is True

    game.result = GameResult.DRAW
    assert game.is_stale(10, now=200.0) is False
