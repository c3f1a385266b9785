# ==============================================================================
# reconciliation.py  –  Fold new game data into the tracked games
# ------------------------------------------------------------------------------
# For every tracked game:
#   1. Look up its latest derived state (PGN replay or snapshot entry)
#   2. If the position moved, copy clocks / turn / result / move number now
#   3. Ask the evaluation service for the new position in the background
#   4. Store the score only if the game is still on that position
# ==============================================================================

from __future__ import annotations

from concurrent.futures import Executor, Future, ThreadPoolExecutor
from threading import Lock
from typing import Dict, Iterable, Mapping, Optional, Protocol

from knightwatch.clients.evaluation_client import EvaluationError, EvaluationTimeoutError
from knightwatch.extraction.game_data import GameState, extract_game_data
from knightwatch.state.game_accumulator import GameAccumulator
from knightwatch.state.tracked_games import StateChange, TrackedGameSet
from knightwatch.utils.config_utils import EVAL_MAX_WORKERS
from knightwatch.utils.logging_utils import setup_logger

LOGGER = setup_logger("knightwatch.reconciliation")


class Evaluator(Protocol):
    def evaluate(self, position: str) -> float: ...


class ReconciliationEngine:
    """
    Applies derived state to a `TrackedGameSet` and schedules evaluations.

    Parameters
    ----------
    tracked : TrackedGameSet
        The displayed games; the only thing this engine writes to.
    evaluator : Evaluator
        Anything with `evaluate(fen) -> float`, normally `EvaluationClient`.
    executor : Executor | None
        Where evaluations run. Defaults to a bounded thread pool.
    """

    def __init__(
        self,
        tracked: TrackedGameSet,
        evaluator: Evaluator,
        executor: Optional[Executor] = None,
        max_workers: int = EVAL_MAX_WORKERS,
    ) -> None:
        self.tracked = tracked
        self.evaluator = evaluator
        self._executor = executor or ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="knightwatch-eval"
        )
        self._owns_executor = executor is None
        self._seen_pgn: Dict[str, str] = {}
        self._seen_lock = Lock()

    # --------------------------------------------------------------------------
    # Entry points
    # --------------------------------------------------------------------------

    def reconcile_accumulator(
        self,
        accumulator: GameAccumulator,
        identities: Optional[Iterable[str]] = None,
    ) -> int:
        """
        Reconcile tracked games against the accumulated PGN.

        `identities` narrows the pass to games that just arrived; None checks
        every tracked game. Games whose PGN text is unchanged since the last
        pass are not replayed again. Returns the number of games updated.
        """
        wanted = set(identities) if identities is not None else None
        updated = 0

        for identity in self.tracked.identities():
            if wanted is not None and identity not in wanted:
                continue
            pgn = accumulator.get(identity)
            if pgn is None or not self._pgn_changed(identity, pgn):
                continue

            state = extract_game_data(pgn)
            if state is None:
                LOGGER.warning("No usable data for %s – keeping last state", identity)
                continue
            if self.apply_state(identity, state) is not StateChange.NONE:
                updated += 1

        return updated

    def reconcile_states(self, states: Mapping[str, GameState]) -> int:
        """Reconcile tracked games against pre-derived (snapshot) states."""
        updated = 0
        for identity in self.tracked.identities():
            state = states.get(identity)
            if state is None:
                continue
            if self.apply_state(identity, state) is not StateChange.NONE:
                updated += 1
        return updated

    def apply_state(self, identity: str, state: GameState) -> StateChange:
        """Apply one derived state; evaluate new positions of running games."""
        change = self.tracked.apply_state(identity, state)
        if change is StateChange.POSITION:
            LOGGER.info(
                "%s → move %d, %s to play", identity, state.move_number,
                state.active_side.value or "?",
            )
            if state.finished:
                LOGGER.info("%s finished (%s) – evaluation frozen", identity, state.result)
            else:
                self.request_evaluation(identity, state.position)
        elif change is StateChange.RESULT:
            LOGGER.info("%s finished (%s)", identity, state.result)
        return change

    # --------------------------------------------------------------------------
    # Evaluation
    # --------------------------------------------------------------------------

    def request_evaluation(self, identity: str, position: str) -> Optional[Future]:
        """Queue an evaluation of `position` for `identity`."""
        try:
            return self._executor.submit(self._evaluate, identity, position)
        except RuntimeError:
            LOGGER.debug("Evaluation pool closed – skipping %s", identity)
            return None

    def _evaluate(self, identity: str, position: str) -> Optional[float]:
        try:
            score = self.evaluator.evaluate(position)
        except EvaluationTimeoutError:
            LOGGER.warning("Evaluation timeout for %s", identity)
            return None
        except EvaluationError as exc:
            LOGGER.warning("Failed to fetch evaluation for %s: %s", identity, exc)
            return None

        if not self.tracked.apply_evaluation(identity, position, score):
            LOGGER.debug("Dropped stale evaluation for %s", identity)
            return None
        LOGGER.debug("%s evaluated at %+.2f", identity, score)
        return score

    # --------------------------------------------------------------------------
    # Lifecycle
    # --------------------------------------------------------------------------

    def forget(self, identity: str) -> None:
        """Force the next pass to replay `identity` even if its PGN is unchanged."""
        with self._seen_lock:
            self._seen_pgn.pop(identity, None)

    def reset(self) -> None:
        """Forget every PGN fingerprint (new round)."""
        with self._seen_lock:
            self._seen_pgn.clear()

    def shutdown(self) -> None:
        if self._owns_executor:
            self._executor.shutdown(wait=False, cancel_futures=True)

    def _pgn_changed(self, identity: str, pgn: str) -> bool:
        with self._seen_lock:
            if self._seen_pgn.get(identity) == pgn:
                return False
            self._seen_pgn[identity] = pgn
            return True
