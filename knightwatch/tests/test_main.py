# ==============================================================================
# test_main.py  –  Command-line runner
# ==============================================================================

from unittest.mock import MagicMock, patch

import pytest

from knightwatch import main as runner
from knightwatch.extraction.game_data import GameResult
from knightwatch.session.broadcast_session import BroadcastSession
from knightwatch.tests.fakes import FakeEvaluator, FakeLichessClient, ImmediateExecutor


@pytest.fixture
def session():
    return BroadcastSession(
        client=FakeLichessClient(),
        evaluator=FakeEvaluator(),
        executor=ImmediateExecutor(),
        reconnect_delay=0.01,
    )


def test_parse_args_track_pairs():
    args = runner.parse_args(["--round", "R1", "--track", "A - B", "--track", "C, D - E, F"])
    assert args.round_id == "R1"
    assert args.track == [("A", "B"), ("C, D", "E, F")]
    assert args.serve is False


def test_parse_args_rejects_bad_pair():
    with pytest.raises(SystemExit):
        runner.parse_args(["--round", "R1", "--track", "A vs B"])


def test_parse_args_requires_source():
    with pytest.raises(SystemExit):
        runner.parse_args([])


def test_run_tracks_games_and_shuts_down(session):
    args = runner.parse_args(["--round", "R1", "--track", "A - B"])

    with patch("knightwatch.main._report_forever", side_effect=KeyboardInterrupt):
        assert runner.run(args, session) == 0

    assert [g.identity for g in session.games()] == ["A - B"]
    assert session.round.round_id == "R1"
    assert not session.ingestor.running


def test_run_with_bad_share_token(session):
    args = runner.parse_args(["--share", "!!!"])
    with patch("knightwatch.main._report_forever") as mock_report:
        assert runner.run(args, session) == 2
    mock_report.assert_not_called()


def test_run_serves_api(session):
    args = runner.parse_args(["--round", "R1", "--serve", "--port", "5050"])
    app = MagicMock()
    with patch("knightwatch.main.create_app", return_value=app) as mock_create:
        assert runner.run(args, session) == 0
    mock_create.assert_called_once_with(session)
    app.run.assert_called_once_with(host="127.0.0.1", port=5050, use_reloader=False)


def test_status_lines(session):
    session.add_game("A", "B")
    session.add_game("C", "D")
    session.tracked._games[1].last_position = "fen"
    session.tracked._games[1].result = GameResult.DRAW

    lines = runner.status_lines(session)
    assert lines[0] == "A - B: waiting for data"
    assert lines[1].startswith("C - D: ")
    assert lines[1].endswith("Draw")
