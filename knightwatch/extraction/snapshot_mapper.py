# ==============================================================================
# snapshot_mapper.py  –  JSON round snapshot → derived game state
# ------------------------------------------------------------------------------
# The polling fallback receives
#
#   { "games": [ { "name", "fen"?, "status"?, "lastMove"?,
#                  "players"?: [ { "name", "clock"?, "rating"? }, … ] } ] }
#
# where clocks are centiseconds. Each entry already carries the final
# position, so it maps straight onto `GameState` without any PGN replay.
# ==============================================================================

from __future__ import annotations

from typing import Any, Dict, List, Optional

from knightwatch.extraction.game_data import GameState, Side, parse_result
from knightwatch.utils.logging_utils import setup_logger

LOGGER = setup_logger("knightwatch.snapshot_mapper")

_FEN_FIELDS = 6


def _clock_seconds(player: Any) -> int:
    """Centiseconds → whole seconds; missing / bad values count as 0."""
    if not isinstance(player, dict):
        return 0
    raw = player.get("clock")
    try:
        return max(0, int(raw) // 100) if raw else 0
    except (TypeError, ValueError):
        return 0


def map_snapshot_game(entry: Dict[str, Any]) -> Optional[GameState]:
    """Map one snapshot entry, or None when it has no usable position."""
    fen = entry.get("fen")
    if not isinstance(fen, str) or not fen.strip():
        return None

    fields = fen.split()
    side = Side.UNKNOWN
    move_number = 1
    if len(fields) == _FEN_FIELDS:
        side = Side.WHITE if fields[1] == "w" else Side.BLACK
        try:
            move_number = max(1, int(fields[5]))
        except ValueError:
            move_number = 1

    white_clock = black_clock = 0
    players = entry.get("players") or []
    if isinstance(players, list) and len(players) >= 2:
        white_clock = _clock_seconds(players[0])
        black_clock = _clock_seconds(players[1])

    return GameState(
        position=fen,
        active_side=side,
        white_clock=white_clock,
        black_clock=black_clock,
        move_number=move_number,
        result=parse_result(entry.get("status")),
    )


def map_snapshot_games(payload: Dict[str, Any]) -> Dict[str, GameState]:
    """
    Map every usable entry of a snapshot payload, keyed by game name.

    Entries without a name or position, or with unexpected shapes, are
    skipped; the rest of the snapshot is still mapped.
    """
    states: Dict[str, GameState] = {}
    for entry in payload.get("games") or []:
        try:
            name = entry.get("name")
            if not isinstance(name, str) or not name:
                continue
            state = map_snapshot_game(entry)
            if state is not None:
                states[name] = state
        except (AttributeError, TypeError) as exc:
            LOGGER.debug("Skipping malformed snapshot entry – %s", exc)
    return states


def snapshot_game_names(payload: Dict[str, Any]) -> List[str]:
    """All game names listed in a snapshot, in feed order."""
    names: List[str] = []
    for entry in payload.get("games") or []:
        if isinstance(entry, dict) and isinstance(entry.get("name"), str) and entry["name"]:
            names.append(entry["name"])
    return names
