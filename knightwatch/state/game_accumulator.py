# ==============================================================================
# game_accumulator.py  –  Latest PGN per game for the active round
# ------------------------------------------------------------------------------
# Responsibilities:
#   • Keep the most recent PGN text for every game seen in the feed
#   • Replace on every upsert (last write wins, no merging)
#   • Reset when a new round starts, never on a stream reconnect
#
# Only the active ingestion worker writes; the reconciliation pass may read
# concurrently and sees either the old or the new text for a key.
# ==============================================================================

from __future__ import annotations

from threading import Lock
from typing import Dict, Iterable, List, Optional, Tuple

from knightwatch.utils.logging_utils import setup_logger
from knightwatch.utils.metrics import count_upserts
from knightwatch.utils.pgn_parser import extract_identity, identity_key, iter_pgn_games

LOGGER = setup_logger("knightwatch.game_accumulator")


class GameAccumulator:
    """Thread-safe identity → latest PGN map."""

    def __init__(self) -> None:
        self._games: Dict[str, str] = {}
        self._lock = Lock()

    def upsert(self, identity: str, pgn_text: str) -> bool:
        """
        Store `pgn_text` for `identity`.

        Returns
        -------
        bool
            True if an existing entry was replaced, False on insert.
        """
        with self._lock:
            existed = identity in self._games
            self._games[identity] = pgn_text
        LOGGER.debug("%s game %s", "Updated" if existed else "Inserted", identity)
        return existed

    def upsert_many(self, records: Iterable[Tuple[str, str]]) -> List[str]:
        """Upsert `(identity, pgn_text)` pairs; returns identities in order."""
        identities: List[str] = []
        for identity, pgn_text in records:
            self.upsert(identity, pgn_text)
            identities.append(identity)
        count_upserts(len(identities))
        return identities

    def ingest_text(self, text: str) -> List[str]:
        """
        Split a multi-game PGN blob and upsert every game that names both
        players. Records without White/Black tags are skipped.
        """
        records = []
        for game in iter_pgn_games(text):
            players = extract_identity(game)
            if players is None:
                LOGGER.debug("Skipping record without White/Black tags")
                continue
            records.append((identity_key(*players), game))
        return self.upsert_many(records)

    def get(self, identity: str) -> Optional[str]:
        with self._lock:
            return self._games.get(identity)

    def all_identities(self) -> List[str]:
        """Current identities; ordering is not part of the contract."""
        with self._lock:
            return list(self._games)

    def reset(self) -> None:
        with self._lock:
            dropped = len(self._games)
            self._games.clear()
        LOGGER.info("Accumulator reset (%d game(s) dropped)", dropped)

    def __len__(self) -> int:
        with self._lock:
            return len(self._games)

    def __contains__(self, identity: object) -> bool:
        with self._lock:
            return identity in self._games
