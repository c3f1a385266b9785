# ==============================================================================
# broadcast_session.py  –  One overlay's live state
# ------------------------------------------------------------------------------
# Owns everything that changes while an overlay is on air:
#   • the active round (RoundSession) and its ingestion worker
#   • the PGN accumulator and the tracked games
#   • background mode and style overrides
#   • games queued from a share token until the feed names them
#
# The runner and the Flask app only talk to this object.
# ==============================================================================

from __future__ import annotations

import threading
import time
from concurrent.futures import Executor
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from knightwatch.clients.evaluation_client import EvaluationClient
from knightwatch.clients.lichess_client import LichessClient
from knightwatch.extraction.game_data import GameState
from knightwatch.ingestion.stream_ingestor import IngestionMode, StreamIngestor
from knightwatch.share.share_codec import (
    BackgroundMode,
    decode_share_state,
    encode_share_state,
)
from knightwatch.state.game_accumulator import GameAccumulator
from knightwatch.state.tracked_games import TrackedGame, TrackedGameSet
from knightwatch.sync.reconciliation import Evaluator, ReconciliationEngine
from knightwatch.utils.config_utils import SHARE_RESOLVE_GRACE, STALE_AFTER
from knightwatch.utils.logging_utils import setup_logger
from knightwatch.utils.pgn_parser import identity_key, split_identity_key

LOGGER = setup_logger("knightwatch.broadcast_session")

DEFAULT_STYLES: Dict[str, Any] = {
    "evalContainerBg": "#1a1a2e",
    "blackBarColor": "#E79D29",
    "whiteBarColor": "#ffffff",
    "whitePlayerColor": "transparent",
    "blackPlayerColor": "transparent",
    "whitePlayerNameColor": "#ffffff",
    "blackPlayerNameColor": "#E79D29",
    "evalContainerBorderColor": "#3a3a5e",
    "moveIndicatorColor": "#FFA500",
    "barHeight": 14,
    "barBorderRadius": 4,
    "fontSize": 14,
    "showClocks": True,
    "showMoveNumber": True,
}

Pair = Tuple[str, str]


@dataclass
class RoundSession:
    round_id: str
    tournament_id: Optional[str] = None
    mode: IngestionMode = IngestionMode.STREAMING
    started_at: float = field(default_factory=time.time)


def match_identity(white: str, black: str, available: Iterable[str]) -> Optional[Pair]:
    """
    Find the feed game whose player names contain `white` and `black`
    (case-insensitive), e.g. ("Carlsen", "Nakamura") → "Carlsen, Magnus -
    Nakamura, Hikaru".
    """
    w, b = white.lower(), black.lower()
    for key in available:
        players = split_identity_key(key)
        if players and w in players[0].lower() and b in players[1].lower():
            return players
    return None


class BroadcastSession:
    def __init__(
        self,
        client: Optional[LichessClient] = None,
        evaluator: Optional[Evaluator] = None,
        executor: Optional[Executor] = None,
        share_resolve_grace: float = SHARE_RESOLVE_GRACE,
        stale_after: float = STALE_AFTER,
        **ingestor_options: float,
    ) -> None:
        self.client = client or LichessClient()
        self.evaluator = evaluator or EvaluationClient()
        self.accumulator = GameAccumulator()
        self.tracked = TrackedGameSet()
        self.reconciler = ReconciliationEngine(
            self.tracked, self.evaluator, executor=executor
        )
        self.ingestor = StreamIngestor(
            self.client,
            self.accumulator,
            on_games_updated=self._on_games_updated,
            on_snapshot=self._on_snapshot,
            on_mode_change=self._on_mode_change,
            **ingestor_options,
        )
        self.share_resolve_grace = share_resolve_grace
        self.stale_after = stale_after

        self.round: Optional[RoundSession] = None
        self.background_mode = BackgroundMode.CHROMA
        self.style_overrides: Dict[str, Any] = {}
        self.broadcast_mode = False

        self._snapshot_states: Dict[str, GameState] = {}
        self._snapshot_names: List[str] = []
        self._pending: List[Pair] = []
        self._pending_timer: Optional[threading.Timer] = None
        self._lock = threading.RLock()

    # ==========================================================================
    # Round control
    # ==========================================================================

    def start_round(
        self,
        round_id: str,
        tournament_id: Optional[str] = None,
        clear_games: bool = False,
    ) -> None:
        """
        Follow `round_id`.

        A different round resets the accumulator and the tracked games'
        derived state (identities stay unless `clear_games`). The same round
        restarts ingestion and keeps everything.
        """
        self._begin_round(round_id, tournament_id, clear_games, pending=())

    def stop(self) -> None:
        """Stop ingestion; tracked games keep their last known state."""
        self.ingestor.stop()
        self._cancel_pending_timer()

    def close(self) -> None:
        self.stop()
        self.reconciler.shutdown()

    def _begin_round(
        self,
        round_id: str,
        tournament_id: Optional[str],
        clear_games: bool,
        pending: Iterable[Pair],
    ) -> None:
        # Ingestion callbacks take the session lock; never stop while holding it.
        self.stop()

        with self._lock:
            new_round = self.round is None or self.round.round_id != round_id
            if new_round:
                self.accumulator.reset()
                self.reconciler.reset()
                self._snapshot_states = {}
                self._snapshot_names = []
                self.tracked.reset_derived_state()
                LOGGER.info("New round %s – state reset", round_id)
            else:
                LOGGER.info("Restarting round %s", round_id)

            if clear_games:
                self.tracked.clear()

            self._pending = list(pending)
            self.round = RoundSession(round_id=round_id, tournament_id=tournament_id)

        if self._pending:
            self._pending_timer = threading.Timer(
                self.share_resolve_grace, self._flush_pending
            )
            self._pending_timer.daemon = True
            self._pending_timer.start()

        self.ingestor.start(round_id)

    # ==========================================================================
    # Tracked games
    # ==========================================================================

    def add_game(self, white: str, black: str) -> bool:
        """Track a game and fill it from data already received."""
        if not self.tracked.add(white, black):
            return False

        identity = identity_key(white, black)
        self.reconciler.forget(identity)
        with self._lock:
            state = self._snapshot_states.get(identity)
        if state is not None:
            self.reconciler.apply_state(identity, state)
        else:
            self.reconciler.reconcile_accumulator(self.accumulator, [identity])
        return True

    def remove_game(self, target: Union[int, str]) -> bool:
        return self.tracked.remove(target)

    def clear_games(self) -> None:
        self.tracked.clear()
        with self._lock:
            self._pending = []

    def games(self) -> List[TrackedGame]:
        return self.tracked.snapshot()

    def available_games(self) -> List[str]:
        """Games present in the feed (not only tracked ones)."""
        with self._lock:
            if self.round and self.round.mode is IngestionMode.POLLING:
                return list(self._snapshot_names)
        return self.accumulator.all_identities()

    # ==========================================================================
    # Appearance
    # ==========================================================================

    def set_background_mode(self, mode: Union[BackgroundMode, str]) -> None:
        self.background_mode = BackgroundMode(mode)

    def set_styles(self, **overrides: Any) -> None:
        """Override overlay styles; unknown keys are ignored."""
        known = {k: v for k, v in overrides.items() if k in DEFAULT_STYLES}
        self.style_overrides.update(known)

    def reset_styles(self) -> None:
        self.style_overrides = {}

    @property
    def styles(self) -> Dict[str, Any]:
        return {**DEFAULT_STYLES, **self.style_overrides}

    # ==========================================================================
    # Share tokens
    # ==========================================================================

    def share_token(self) -> str:
        """Token for the current view; empty when no round is active."""
        if self.round is None:
            return ""
        pairs = [(g.white, g.black) for g in self.tracked.snapshot()]
        return encode_share_state(
            self.round.round_id,
            pairs,
            self.background_mode,
            self.style_overrides or None,
        )

    def load_share_token(self, token: str) -> bool:
        """
        Restore a shared view: round, background, styles and games.

        Games are matched to the feed's full player names as data arrives;
        whatever is still unmatched after the grace period is tracked under
        the names from the token.
        """
        state = decode_share_state(token)
        if state is None or not state.round_id:
            LOGGER.warning("Failed to load broadcast data from share token")
            return False

        self.background_mode = state.background_mode
        self.style_overrides = {
            k: v for k, v in state.style_overrides.items() if k in DEFAULT_STYLES
        }
        self.broadcast_mode = True
        self._begin_round(
            state.round_id, state.tournament_id, clear_games=True, pending=state.games
        )
        LOGGER.info(
            "Loaded share token: round %s, %d game(s)", state.round_id, len(state.games)
        )
        return True

    def pending_games(self) -> List[Pair]:
        with self._lock:
            return list(self._pending)

    # ==========================================================================
    # Status
    # ==========================================================================

    def status(self) -> Dict[str, Any]:
        with self._lock:
            round_info = self.round
            pending = len(self._pending)
        return {
            "roundId": round_info.round_id if round_info else None,
            "tournamentId": round_info.tournament_id if round_info else None,
            "mode": round_info.mode.value if round_info else None,
            "ingestor": self.ingestor.state.value,
            "tracked": len(self.tracked),
            "available": len(self.available_games()),
            "pending": pending,
            "backgroundMode": self.background_mode.value,
            "broadcastMode": self.broadcast_mode,
        }

    # ==========================================================================
    # Ingestion callbacks
    # ==========================================================================

    def _on_games_updated(self, identities: List[str]) -> None:
        self._resolve_pending(self.accumulator.all_identities())
        self.reconciler.reconcile_accumulator(self.accumulator, identities)

    def _on_snapshot(self, states: Dict[str, GameState], names: List[str]) -> None:
        with self._lock:
            self._snapshot_states = states
            self._snapshot_names = names
        self._resolve_pending(names)
        self.reconciler.reconcile_states(states)

    def _on_mode_change(self, mode: IngestionMode) -> None:
        with self._lock:
            if self.round is not None:
                self.round.mode = mode
        LOGGER.info("Ingestion mode: %s", mode.value)

    # ==========================================================================
    # Pending share games
    # ==========================================================================

    def _resolve_pending(self, available: Iterable[str], flush: bool = False) -> None:
        available = list(available)
        to_add: List[Pair] = []
        with self._lock:
            if not self._pending:
                return
            remaining: List[Pair] = []
            for white, black in self._pending:
                match = match_identity(white, black, available)
                if match:
                    to_add.append(match)
                else:
                    remaining.append((white, black))
            if flush:
                to_add.extend(remaining)
                remaining = []
            self._pending = remaining

        for white, black in to_add:
            self.add_game(white, black)

    def _flush_pending(self) -> None:
        self._resolve_pending(self.available_games(), flush=True)

    def _cancel_pending_timer(self) -> None:
        timer, self._pending_timer = self._pending_timer, None
        if timer is not None:
            timer.cancel()
