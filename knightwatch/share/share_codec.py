# ==============================================================================
# share_codec.py  –  Viewing state ↔ URL-safe share token
# ------------------------------------------------------------------------------
# Compact record (what `encode_share_state` writes):
#
#     <roundId>|<w~b>,<w~b>,…|<c|t|d>[|<style JSON>]
#
# with short player names, base64-encoded, `+`→`-`, `/`→`_`, `=` stripped.
#
# Structured record (still accepted by `decode_share_state`):
#
#     {"tournamentId", "roundId", "gameIDs": ["White-vs-Black"],
#      "customStyles", "backgroundMode"}
# ==============================================================================

from __future__ import annotations

import base64
import binascii
import json
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple

from knightwatch.utils.logging_utils import setup_logger

LOGGER = setup_logger("knightwatch.share_codec")

_NAME_SPLIT_RE = re.compile(r"[,\s]+")
_FIELD_SEP = "|"
_GAME_SEP = ","
_PAIR_SEP = "~"
_FULL_PAIR_SEP = "-vs-"


class BackgroundMode(str, Enum):
    CHROMA = "chroma"
    TRANSPARENT = "transparent"
    DARK = "dark"

    @property
    def char(self) -> str:
        return {"chroma": "c", "transparent": "t", "dark": "d"}[self.value]

    @classmethod
    def from_char(cls, char: str) -> "BackgroundMode":
        if char == "c":
            return cls.CHROMA
        if char == "t":
            return cls.TRANSPARENT
        return cls.DARK

    @classmethod
    def parse(cls, value: Any) -> "BackgroundMode":
        """Enum value for `value`, CHROMA when missing or unknown."""
        try:
            return cls(value)
        except ValueError:
            return cls.CHROMA


@dataclass
class ShareState:
    round_id: str
    games: List[Tuple[str, str]] = field(default_factory=list)
    background_mode: BackgroundMode = BackgroundMode.CHROMA
    tournament_id: Optional[str] = None
    style_overrides: Dict[str, Any] = field(default_factory=dict)
    compact: bool = True


def short_name(name: str) -> str:
    """Last whitespace/comma-delimited token of a player name."""
    tokens = [t for t in _NAME_SPLIT_RE.split(name.strip()) if t]
    return tokens[-1] if tokens else name


# ------------------------------------------------------------------------------
# Encoding
# ------------------------------------------------------------------------------


def _urlsafe_b64encode(text: str) -> str:
    encoded = base64.b64encode(text.encode("utf-8")).decode("ascii")
    return encoded.replace("=", "").replace("+", "-").replace("/", "_")


def encode_share_state(
    round_id: str,
    games: Iterable[Tuple[str, str]],
    background_mode: BackgroundMode = BackgroundMode.CHROMA,
    style_overrides: Optional[Dict[str, Any]] = None,
) -> str:
    """
    Build the compact share token.

    Parameters
    ----------
    round_id : str
        Broadcast round being followed.
    games : Iterable[Tuple[str, str]]
        Tracked `(white, black)` pairs in display order; full names are
        shortened to their last token.
    background_mode : BackgroundMode
        Overlay background.
    style_overrides : dict | None
        Non-default overlay styles, carried as an optional fourth field.
    """
    pairs = _GAME_SEP.join(
        f"{short_name(white)}{_PAIR_SEP}{short_name(black)}" for white, black in games
    )
    fields = [round_id, pairs, BackgroundMode(background_mode).char]
    if style_overrides:
        fields.append(json.dumps(style_overrides, separators=(",", ":"), sort_keys=True))
    return _urlsafe_b64encode(_FIELD_SEP.join(fields))


# ------------------------------------------------------------------------------
# Decoding
# ------------------------------------------------------------------------------


def _b64decode_text(token: str) -> str:
    restored = token.replace("-", "+").replace("_", "/")
    restored += "=" * (-len(restored) % 4)
    try:
        raw = base64.b64decode(restored, validate=True)
    except (binascii.Error, ValueError):
        raw = base64.b64decode(token, validate=True)
    return raw.decode("utf-8")


def _decode_compact(record: str) -> Optional[ShareState]:
    parts = record.split(_FIELD_SEP, 3)
    round_id = parts[0]
    if not round_id:
        return None

    games: List[Tuple[str, str]] = []
    if len(parts) > 1 and parts[1]:
        for item in parts[1].split(_GAME_SEP):
            white, sep, black = item.partition(_PAIR_SEP)
            if sep and white and black:
                games.append((white, black))

    mode = BackgroundMode.from_char(parts[2] if len(parts) > 2 else "")
    styles: Dict[str, Any] = {}
    if len(parts) > 3 and parts[3]:
        loaded = json.loads(parts[3])
        if isinstance(loaded, dict):
            styles = loaded

    return ShareState(round_id=round_id, games=games, background_mode=mode, style_overrides=styles)


def _decode_structured(record: str) -> Optional[ShareState]:
    data = json.loads(record)
    if not isinstance(data, dict) or not data.get("roundId"):
        return None

    games: List[Tuple[str, str]] = []
    for game_id in data.get("gameIDs") or []:
        if not isinstance(game_id, str):
            continue
        white, sep, black = game_id.partition(_FULL_PAIR_SEP)
        if sep and white and black:
            games.append((white, black))

    styles = data.get("customStyles")
    return ShareState(
        round_id=str(data["roundId"]),
        games=games,
        background_mode=BackgroundMode.parse(data.get("backgroundMode")),
        tournament_id=data.get("tournamentId"),
        style_overrides=styles if isinstance(styles, dict) else {},
        compact=False,
    )


def decode_share_state(token: str) -> Optional[ShareState]:
    """
    Decode a share token in either format.

    Returns None for anything malformed; never raises.
    """
    if not token:
        return None
    try:
        record = _b64decode_text(token.strip())
        if _FIELD_SEP in record and not record.startswith("{"):
            return _decode_compact(record)
        return _decode_structured(record)
    except (binascii.Error, ValueError, TypeError, AttributeError) as exc:
        # json.JSONDecodeError and UnicodeDecodeError are ValueErrors
        LOGGER.info("Rejected share token – %s", exc)
        return None
