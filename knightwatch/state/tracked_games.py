# ==============================================================================
# tracked_games.py  –  The games currently shown on the overlay
# ------------------------------------------------------------------------------
# A small ordered set of `TrackedGame` rows keyed by (White, Black). Rows are
# added and removed on request; their derived fields are only written by the
# reconciliation engine through `apply_state` / `apply_evaluation`.
# ==============================================================================

from __future__ import annotations

import time
from dataclasses import dataclass, replace
from enum import Enum
from threading import Lock
from typing import List, Optional, Union

from knightwatch.extraction.game_data import GameState, ResultValue, Side
from knightwatch.utils.logging_utils import setup_logger
from knightwatch.utils.pgn_parser import identity_key

LOGGER = setup_logger("knightwatch.tracked_games")


class StateChange(Enum):
    NONE = "none"
    RESULT = "result"
    POSITION = "position"


@dataclass
class TrackedGame:
    white: str
    black: str
    evaluation: Optional[float] = None
    evaluated_position: str = ""
    last_position: str = ""
    result: ResultValue = None
    white_clock: int = 0
    black_clock: int = 0
    active_side: Side = Side.UNKNOWN
    move_number: int = 1
    updated_at: Optional[float] = None

    @property
    def identity(self) -> str:
        return identity_key(self.white, self.black)

    @property
    def has_data(self) -> bool:
        """False until the first position has been extracted."""
        return bool(self.last_position)

    def seconds_since_update(self, now: Optional[float] = None) -> Optional[float]:
        if self.updated_at is None:
            return None
        return (time.monotonic() if now is None else now) - self.updated_at

    def is_stale(self, max_age: float, now: Optional[float] = None) -> bool:
        """
        True for a game that had data but has not changed for `max_age`
        seconds. Finished games and games without data are never stale.
        """
        if self.result is not None:
            return False
        age = self.seconds_since_update(now)
        return age is not None and age > max_age

    def clear_derived(self) -> None:
        self.evaluation = None
        self.evaluated_position = ""
        self.last_position = ""
        self.result = None
        self.white_clock = 0
        self.black_clock = 0
        self.active_side = Side.UNKNOWN
        self.move_number = 1
        self.updated_at = None


class TrackedGameSet:
    """Ordered, lock-guarded collection of tracked games."""

    def __init__(self) -> None:
        self._games: List[TrackedGame] = []
        self._lock = Lock()

    # --------------------------------------------------------------------------
    # Membership
    # --------------------------------------------------------------------------

    def add(self, white: str, black: str) -> bool:
        """Track a new game. Returns False if the identity is already tracked."""
        with self._lock:
            if any(g.white == white and g.black == black for g in self._games):
                LOGGER.info("Game %s already tracked", identity_key(white, black))
                return False
            self._games.append(TrackedGame(white=white, black=black))
        LOGGER.info("Tracking %s", identity_key(white, black))
        return True

    def remove(self, target: Union[int, str]) -> bool:
        """Stop tracking a game, by list index or identity string."""
        with self._lock:
            if isinstance(target, int):
                if not 0 <= target < len(self._games):
                    return False
                removed = self._games.pop(target)
            else:
                match = next((g for g in self._games if g.identity == target), None)
                if match is None:
                    return False
                self._games.remove(match)
                removed = match
        LOGGER.info("Stopped tracking %s", removed.identity)
        return True

    def clear(self) -> None:
        with self._lock:
            self._games.clear()

    def reset_derived_state(self) -> None:
        """Forget positions, clocks and evaluations; keep the identities."""
        with self._lock:
            for game in self._games:
                game.clear_derived()

    # --------------------------------------------------------------------------
    # Reads
    # --------------------------------------------------------------------------

    def identities(self) -> List[str]:
        with self._lock:
            return [g.identity for g in self._games]

    def get(self, identity: str) -> Optional[TrackedGame]:
        """Copy of the tracked row, or None."""
        with self._lock:
            game = self._find(identity)
            return replace(game) if game else None

    def snapshot(self) -> List[TrackedGame]:
        """Copies of all rows in display order."""
        with self._lock:
            return [replace(g) for g in self._games]

    def __len__(self) -> int:
        with self._lock:
            return len(self._games)

    # --------------------------------------------------------------------------
    # Writes (reconciliation only)
    # --------------------------------------------------------------------------

    def apply_state(self, identity: str, state: GameState) -> StateChange:
        """
        Copy derived fields onto the tracked row.

        A new position updates every field. A result arriving without a new
        position (resignation, agreed draw) updates the result only.
        Anything else leaves the row untouched.
        """
        with self._lock:
            game = self._find(identity)
            if game is None:
                return StateChange.NONE

            if game.last_position == state.position:
                if state.result is None or game.result == state.result:
                    return StateChange.NONE
                game.result = state.result
                game.updated_at = time.monotonic()
                return StateChange.RESULT

            game.last_position = state.position
            game.active_side = state.active_side
            game.white_clock = state.white_clock
            game.black_clock = state.black_clock
            game.move_number = state.move_number
            game.result = state.result
            game.updated_at = time.monotonic()
            return StateChange.POSITION

    def apply_evaluation(self, identity: str, position: str, score: float) -> bool:
        """
        Store `score` if it was computed for the row's current position.
        Scores for superseded positions are dropped.
        """
        with self._lock:
            game = self._find(identity)
            if game is None or game.last_position != position:
                return False
            game.evaluation = score
            game.evaluated_position = position
            return True

    def _find(self, identity: str) -> Optional[TrackedGame]:
        return next((g for g in self._games if g.identity == identity), None)
