# ==============================================================================
# test_share_codec.py  –  Share token encoding / decoding
# ==============================================================================

import base64
import json

import pytest

from knightwatch.share.share_codec import (
    BackgroundMode,
    decode_share_state,
    encode_share_state,
    short_name,
)

GAMES = [("Carlsen, Magnus", "Nakamura, Hikaru"), ("Ding Liren", "Gukesh D")]


def _b64(text):
    return base64.b64encode(text.encode("utf-8")).decode("ascii")


def test_short_name():
    assert short_name("Carlsen, Magnus") == "Magnus"
    assert short_name("Ding Liren") == "Liren"
    assert short_name("Gukesh") == "Gukesh"
    assert short_name("  ") == "  "


def test_encode_is_url_safe():
    token = encode_share_state("r1?/+", GAMES, BackgroundMode.DARK)
    assert "=" not in token
    assert "+" not in token
    assert "/" not in token


def test_compact_round_trip():
    token = encode_share_state("AbCd1234", GAMES, BackgroundMode.TRANSPARENT)
    state = decode_share_state(token)
    assert state.round_id == "AbCd1234"
    assert state.games == [("Magnus", "Hikaru"), ("Liren", "D")]
    assert state.background_mode is BackgroundMode.TRANSPARENT
    assert state.style_overrides == {}
    assert state.compact is True


def test_compact_round_trip_with_styles():
    styles = {"barHeight": 20, "whiteBarColor": "#eeeeee"}
    token = encode_share_state("AbCd1234", GAMES[:1], "chroma", styles)
    state = decode_share_state(token)
    assert state.background_mode is BackgroundMode.CHROMA
    assert state.style_overrides == styles


def test_compact_without_games():
    state = decode_share_state(encode_share_state("AbCd1234", [], BackgroundMode.DARK))
    assert state.games == []
    assert state.background_mode is BackgroundMode.DARK


def test_compact_unknown_mode_char_is_dark():
    state = decode_share_state(_b64("AbCd1234|A~B|x"))
    assert state.background_mode is BackgroundMode.DARK
    assert state.games == [("A", "B")]


def test_structured_record():
    record = json.dumps(
        {
            "tournamentId": "T1",
            "roundId": "R1",
            "gameIDs": ["Carlsen, Magnus-vs-Nakamura, Hikaru", "broken", 7],
            "customStyles": {"fontSize": 18},
            "backgroundMode": "transparent",
        }
    )
    state = decode_share_state(_b64(record))
    assert state.round_id == "R1"
    assert state.tournament_id == "T1"
    assert state.games == [("Carlsen, Magnus", "Nakamura, Hikaru")]
    assert state.style_overrides == {"fontSize": 18}
    assert state.background_mode is BackgroundMode.TRANSPARENT
    assert state.compact is False


def test_structured_record_defaults_mode():
    state = decode_share_state(_b64(json.dumps({"roundId": "R1"})))
    assert state.background_mode is BackgroundMode.CHROMA
    assert state.games == []


@pytest.mark.parametrize(
    "token",
    [
        "",
        "!!!not base64!!!",
        _b64("just some text"),
        _b64(json.dumps({"tournamentId": "T1"})),
        _b64(json.dumps(["R1"])),
        _b64("|A~B|c"),
        base64.b64encode(b"\xff\xfe").decode("ascii"),
    ],
)
def test_malformed_tokens_decode_to_none(token):
    assert decode_share_state(token) is None


def test_background_mode_helpers():
    assert BackgroundMode.TRANSPARENT.char == "t"
    assert BackgroundMode.from_char("c") is BackgroundMode.CHROMA
    assert BackgroundMode.parse("nope") is BackgroundMode.CHROMA
    assert BackgroundMode.parse(None) is BackgroundMode.CHROMA
