# ==============================================================================
# lichess_client.py  –  HTTP access to Lichess broadcast endpoints
# ------------------------------------------------------------------------------
# Endpoints:
#   • /api/stream/broadcast/round/{id}.pgn   long-lived PGN stream
#   • /api/broadcast/-/-/{id}                JSON round snapshot (fallback)
#   • /api/broadcast?nb=N                    NDJSON list of broadcasts
#   • /api/broadcast/{id}                    one tournament with its rounds
#
# Transport problems are raised as `BroadcastFetchError`; timeouts as the
# more specific `FetchTimeoutError`. Callers decide how to recover.
# ==============================================================================

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional

import requests

from knightwatch.utils.config_utils import (
    LICHESS_BASE_URL,
    SNAPSHOT_TIMEOUT,
    STREAM_CONNECT_TIMEOUT,
    get_lichess_token,
    round_snapshot_url,
    round_stream_url,
)
from knightwatch.utils.logging_utils import setup_logger

LOGGER = setup_logger("knightwatch.lichess_client")

USER_AGENT = "knightwatch/0.1 (live evaluation overlay)"


class BroadcastFetchError(RuntimeError):
    """A broadcast endpoint could not be read."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class FetchTimeoutError(BroadcastFetchError):
    """A bounded broadcast request ran out of time."""


class LichessClient:
    """Thin wrapper over a shared `requests.Session`."""

    def __init__(
        self,
        base_url: str = LICHESS_BASE_URL,
        token: Optional[str] = None,
        session: Optional[requests.Session] = None,
        snapshot_timeout: float = SNAPSHOT_TIMEOUT,
        connect_timeout: float = STREAM_CONNECT_TIMEOUT,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.snapshot_timeout = snapshot_timeout
        self.connect_timeout = connect_timeout

        self.http = session or requests.Session()
        self.http.headers.update({"User-Agent": USER_AGENT})
        token = token or get_lichess_token()
        if token:
            self.http.headers["Authorization"] = f"Bearer {token}"

    # --------------------------------------------------------------------------
    # Round data
    # --------------------------------------------------------------------------

    def open_round_stream(self, round_id: str) -> requests.Response:
        """
        Open the PGN stream for a round.

        Only the connection is bounded; reads have no timeout so a stream can
        stay open for the whole round. The caller owns (and must close) the
        returned response.
        """
        url = round_stream_url(round_id, self.base_url)
        try:
            resp = self.http.get(url, stream=True, timeout=(self.connect_timeout, None))
        except requests.Timeout as exc:
            raise FetchTimeoutError(f"Stream connect timeout for round {round_id}") from exc
        except requests.RequestException as exc:
            raise BroadcastFetchError(f"Stream request failed: {exc}") from exc

        if not resp.ok:
            status = resp.status_code
            resp.close()
            raise BroadcastFetchError(f"Stream returned {status}", status)
        if resp.raw is None:
            resp.close()
            raise BroadcastFetchError("Stream response has no body")
        return resp

    def fetch_round_snapshot(self, round_id: str) -> Dict[str, Any]:
        """
        Fetch the JSON snapshot of a round.

        Returns
        -------
        Dict[str, Any]
            The payload, with `games` defaulted to an empty list.
        """
        url = round_snapshot_url(round_id, self.base_url)
        payload = self._get_json(url, timeout=self.snapshot_timeout)
        if not isinstance(payload, dict):
            raise BroadcastFetchError("Snapshot payload is not an object")
        if not isinstance(payload.get("games"), list):
            payload["games"] = []
        return payload

    # --------------------------------------------------------------------------
    # Tournaments
    # --------------------------------------------------------------------------

    def fetch_broadcasts(self, limit: int = 50) -> List[Dict[str, Any]]:
        """Official broadcasts, newest first. Unparsable lines are skipped."""
        url = f"{self.base_url}/api/broadcast"
        try:
            resp = self.http.get(url, params={"nb": limit}, timeout=self.snapshot_timeout)
        except requests.Timeout as exc:
            raise FetchTimeoutError("Broadcast list timeout") from exc
        except requests.RequestException as exc:
            raise BroadcastFetchError(f"Broadcast list request failed: {exc}") from exc
        if not resp.ok:
            raise BroadcastFetchError(
                f"Failed to fetch broadcasts: {resp.status_code}", resp.status_code
            )

        tournaments: List[Dict[str, Any]] = []
        for line in resp.text.strip().splitlines():
            if not line.strip():
                continue
            try:
                tournaments.append(json.loads(line))
            except json.JSONDecodeError as exc:
                LOGGER.warning("Failed to parse broadcast line: %s", exc)
        return tournaments

    def fetch_tournament(self, tournament_id: str) -> Optional[Dict[str, Any]]:
        """One broadcast tournament, or None if Lichess does not know it."""
        url = f"{self.base_url}/api/broadcast/{tournament_id}"
        try:
            return self._get_json(url, timeout=self.snapshot_timeout)
        except FetchTimeoutError:
            raise
        except BroadcastFetchError as exc:
            LOGGER.info("Tournament %s unavailable – %s", tournament_id, exc)
            return None

    # --------------------------------------------------------------------------
    # Helpers
    # --------------------------------------------------------------------------

    def _get_json(self, url: str, timeout: float) -> Any:
        try:
            resp = self.http.get(
                url, headers={"Accept": "application/json"}, timeout=timeout
            )
        except requests.Timeout as exc:
            raise FetchTimeoutError(f"Request timeout: {url}") from exc
        except requests.RequestException as exc:
            raise BroadcastFetchError(f"Request failed: {exc}") from exc

        if not resp.ok:
            raise BroadcastFetchError(
                f"Lichess API error: {resp.status_code}", resp.status_code
            )
        try:
            return resp.json()
        except ValueError as exc:
            raise BroadcastFetchError(f"Invalid JSON from {url}") from exc
