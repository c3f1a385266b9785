# ==============================================================================
# test_config_utils.py  –  Environment parsing and endpoint helpers
# ==============================================================================

from knightwatch.utils import config_utils
from knightwatch.utils.config_utils import (
    get_lichess_token,
    round_snapshot_url,
    round_stream_url,
)


def test_get_lichess_token(monkeypatch):
    monkeypatch.setenv("LICHESS_TOKEN", "test_token")
    assert get_lichess_token() == "test_token"


def test_get_lichess_token_missing(monkeypatch):
    monkeypatch.delenv("LICHESS_TOKEN", raising=False)
    assert get_lichess_token() is None


def test_round_urls():
    assert (
        round_stream_url("AbCd1234", "https://lichess.org")
        == "https://lichess.org/api/stream/broadcast/round/AbCd1234.pgn"
    )
    assert (
        round_snapshot_url("AbCd1234", "https://lichess.org")
        == "https://lichess.org/api/broadcast/-/-/AbCd1234"
    )


def test_numeric_env_helpers(monkeypatch):
    monkeypatch.setenv("KW_TEST_INT", "7")
    monkeypatch.setenv("KW_TEST_FLOAT", "2.5")
    monkeypatch.setenv("KW_TEST_BAD", "seven")
    assert config_utils._int_env("KW_TEST_INT", 1) == 7
    assert config_utils._float_env("KW_TEST_FLOAT", 1.0) == 2.5
    assert config_utils._int_env("KW_TEST_BAD", 3) == 3
    assert config_utils._float_env("KW_TEST_BAD", 1.5) == 1.5
    assert config_utils._int_env("KW_TEST_UNSET", 4) == 4


def test_bool_env(monkeypatch):
    monkeypatch.setenv("KW_TEST_FLAG", "TRUE")
    assert config_utils._bool_env("KW_TEST_FLAG") is True
    monkeypatch.setenv("KW_TEST_FLAG", "0")
    assert config_utils._bool_env("KW_TEST_FLAG") is False
    assert config_utils._bool_env("KW_TEST_FLAG_UNSET", "yes") is True


def test_defaults_are_sane():
    assert config_utils.SNAPSHOT_TIMEOUT > 0
    assert config_utils.EVAL_TIMEOUT > 0
    assert config_utils.EVAL_MAX_WORKERS >= 1
    assert not config_utils.LICHESS_BASE_URL.endswith("/")
