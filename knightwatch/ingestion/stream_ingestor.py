# ==============================================================================
# stream_ingestor.py
# ------------------------------------------------------------------------------
# Follows a Lichess broadcast round, keeps the per-game PGN accumulator
# current and tells the session when games changed.
#
# Execution flow (one worker thread per round):
#   1. CONNECTING        open the round's PGN stream
#   2. STREAMING         decode chunks, cut complete games at the blank-line
#                        boundary, upsert them, notify `on_games_updated`
#   3. RECONNECTING      stream ended / broke → wait, reconnect, same round
#   4. POLLING_FALLBACK  stream refused → poll the JSON snapshot every
#                        POLL_INTERVAL seconds and notify `on_snapshot`
#
# `stop()` cancels the run token, shuts down the open stream's socket and
# joins the worker briefly; once it returns no callback fires, the
# accumulator is not written and no reconnect is scheduled.
# ==============================================================================

from __future__ import annotations

import codecs
import socket
import threading
from enum import Enum
from typing import Callable, Dict, List, Optional

import requests

from knightwatch.clients.lichess_client import BroadcastFetchError, LichessClient
from knightwatch.extraction.game_data import GameState
from knightwatch.extraction.snapshot_mapper import map_snapshot_games, snapshot_game_names
from knightwatch.state.game_accumulator import GameAccumulator
from knightwatch.utils.config_utils import (
    POLL_INTERVAL,
    STREAM_ERROR_RECONNECT_DELAY,
    STREAM_RECONNECT_DELAY,
)
from knightwatch.utils.logging_utils import setup_logger
from knightwatch.utils.metrics import (
    count_poll_tick,
    count_polling_fallback,
    count_stream_connect,
)
from knightwatch.utils.pgn_parser import GAME_BOUNDARY

LOGGER = setup_logger("knightwatch.stream_ingestor")

JOIN_TIMEOUT = 2.0  # seconds


class IngestorState(Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    STREAMING = "streaming"
    RECONNECTING = "reconnecting"
    POLLING_FALLBACK = "polling_fallback"


class IngestionMode(Enum):
    STREAMING = "streaming"
    POLLING = "polling"


GamesCallback = Callable[[List[str]], None]
SnapshotCallback = Callable[[Dict[str, GameState], List[str]], None]
ModeCallback = Callable[[IngestionMode], None]


class CancelToken:
    """Per-run cancellation flag; `wait` doubles as an interruptible sleep."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, seconds: float) -> bool:
        """Sleep up to `seconds`; True if cancelled meanwhile."""
        return self._event.wait(seconds)


class StreamIngestor:
    """
    Single-worker ingestion of one broadcast round.

    Parameters
    ----------
    client : LichessClient
        Stream + snapshot access.
    accumulator : GameAccumulator
        Receives every complete game record from the stream.
    on_games_updated : callable(list[str])
        Identities upserted by the latest batch.
    on_snapshot : callable(dict[str, GameState], list[str])
        Mapped snapshot states and all snapshot game names (polling mode).
    on_mode_change : callable(IngestionMode) | None
        Called when the worker settles on streaming or polling.
    """

    def __init__(
        self,
        client: LichessClient,
        accumulator: GameAccumulator,
        on_games_updated: GamesCallback,
        on_snapshot: SnapshotCallback,
        on_mode_change: Optional[ModeCallback] = None,
        poll_interval: float = POLL_INTERVAL,
        reconnect_delay: float = STREAM_RECONNECT_DELAY,
        error_reconnect_delay: float = STREAM_ERROR_RECONNECT_DELAY,
    ) -> None:
        self.client = client
        self.accumulator = accumulator
        self.on_games_updated = on_games_updated
        self.on_snapshot = on_snapshot
        self.on_mode_change = on_mode_change
        self.poll_interval = poll_interval
        self.reconnect_delay = reconnect_delay
        self.error_reconnect_delay = error_reconnect_delay

        self.state = IngestorState.IDLE
        self.round_id: Optional[str] = None

        self._token: Optional[CancelToken] = None
        self._thread: Optional[threading.Thread] = None
        self._response: Optional[requests.Response] = None
        self._response_lock = threading.Lock()
        self._emit_lock = threading.RLock()

    # ==========================================================================
    # Control
    # ==========================================================================

    def start(self, round_id: str) -> None:
        """Stop any running worker, then follow `round_id`."""
        self.stop()

        token = CancelToken()
        self._token = token
        self.round_id = round_id
        self._thread = threading.Thread(
            target=self._run,
            args=(round_id, token),
            name=f"knightwatch-ingest-{round_id}",
            daemon=True,
        )
        LOGGER.info("Starting ingestion for round %s", round_id)
        self._thread.start()

    def stop(self) -> None:
        """
        Cancel the worker; safe to call when idle.

        Never waits on a blocked stream read: the socket is shut down so the
        read fails at once. A worker that still has not exited after
        JOIN_TIMEOUT is left behind; its token is cancelled, so it can no
        longer touch shared state.
        """
        token, thread = self._token, self._thread
        if token is None:
            return

        token.cancel()
        # Any upsert or callback already running finishes before we return.
        with self._emit_lock:
            pass
        self._abort_response()

        if thread is not None and thread is not threading.current_thread():
            thread.join(JOIN_TIMEOUT)
            if thread.is_alive():
                LOGGER.warning(
                    "Ingestion worker for %s did not exit in time; detached", self.round_id
                )

        self._token = None
        self._thread = None
        self.state = IngestorState.IDLE
        LOGGER.info("Ingestion stopped for round %s", self.round_id)

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    # ==========================================================================
    # Worker
    # ==========================================================================

    def _run(self, round_id: str, token: CancelToken) -> None:
        while not token.cancelled:
            self._set_state(IngestorState.CONNECTING, token)
            try:
                resp = self.client.open_round_stream(round_id)
            except BroadcastFetchError as exc:
                count_stream_connect("refused")
                LOGGER.info("%s – falling back to polling", exc)
                self._poll(round_id, token)
                return

            count_stream_connect("ok")
            if not self._hold_response(resp, token):
                return

            self._set_state(IngestorState.STREAMING, token)
            self._emit_mode(IngestionMode.STREAMING, token)
            delay = self.reconnect_delay
            try:
                self._consume(resp, token)
                if token.cancelled:
                    return
                LOGGER.info("Stream ended, restarting…")
            except Exception as exc:
                # A closed response can surface as almost any error mid-read.
                if token.cancelled:
                    return
                LOGGER.error("Stream error: %s", exc)
                delay = self.error_reconnect_delay
            finally:
                self._release_response(resp)

            self._set_state(IngestorState.RECONNECTING, token)
            if token.wait(delay):
                return

    def _consume(self, resp: requests.Response, token: CancelToken) -> None:
        """Read the stream to its end, handing over complete games as they arrive."""
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        buffer = ""

        for chunk in resp.iter_content(chunk_size=None):
            if token.cancelled:
                return
            if not chunk:
                continue
            buffer += decoder.decode(chunk)
            if GAME_BOUNDARY in buffer:
                complete, buffer = buffer.rsplit(GAME_BOUNDARY, 1)
                self._ingest(complete, token)

        buffer += decoder.decode(b"", final=True)
        if buffer.strip() and not token.cancelled:
            self._ingest(buffer, token)

    def _ingest(self, text: str, token: CancelToken) -> None:
        # Upsert and notify under the emit lock so `stop()` orders after both.
        with self._emit_lock:
            if token.cancelled:
                return
            identities = self.accumulator.ingest_text(text)
            if identities:
                LOGGER.debug("Batch done – %d game(s) upserted", len(identities))
                self._emit(token, self.on_games_updated, identities)

    def _poll(self, round_id: str, token: CancelToken) -> None:
        self._set_state(IngestorState.POLLING_FALLBACK, token)
        count_polling_fallback()
        LOGGER.info("Starting JSON API polling fallback (every %.1f s)", self.poll_interval)
        self._emit_mode(IngestionMode.POLLING, token)

        while not token.cancelled:
            try:
                payload = self.client.fetch_round_snapshot(round_id)
            except BroadcastFetchError as exc:
                count_poll_tick("error")
                LOGGER.warning("Polling error: %s", exc)
            else:
                try:
                    states = map_snapshot_games(payload)
                    names = snapshot_game_names(payload)
                except Exception:
                    count_poll_tick("error")
                    LOGGER.exception("Could not map snapshot for round %s", round_id)
                else:
                    count_poll_tick("ok")
                    self._emit(token, self.on_snapshot, states, names)

            if token.wait(self.poll_interval):
                return

    # ==========================================================================
    # Helpers
    # ==========================================================================

    def _emit(self, token: CancelToken, callback: Callable, *args) -> None:
        with self._emit_lock:
            if token.cancelled:
                return
            try:
                callback(*args)
            except Exception:
                LOGGER.exception("Ingestion callback failed")

    def _emit_mode(self, mode: IngestionMode, token: CancelToken) -> None:
        if self.on_mode_change is not None:
            self._emit(token, self.on_mode_change, mode)

    def _set_state(self, state: IngestorState, token: CancelToken) -> None:
        with self._emit_lock:
            if not token.cancelled:
                self.state = state

    def _hold_response(self, resp: requests.Response, token: CancelToken) -> bool:
        with self._response_lock:
            if token.cancelled:
                resp.close()
                return False
            self._response = resp
        return True

    def _release_response(self, resp: requests.Response) -> None:
        """Worker side: drop and close its own response once reading is over."""
        with self._response_lock:
            if self._response is resp:
                self._response = None
        _close_quietly(resp)

    def _abort_response(self) -> None:
        """
        Caller side: break a blocked read on the in-flight response.

        `Response.close()` waits for the reader's lock, so it would block until
        the server sends more bytes. Shutting down the socket wakes the read
        immediately; the close itself is handed to a helper thread.
        """
        with self._response_lock:
            resp, self._response = self._response, None
        if resp is None:
            return

        sock = _response_socket(resp)
        if sock is not None:
            try:
                sock.shutdown(socket.SHUT_RDWR)
            except OSError as exc:
                LOGGER.debug("Socket shutdown failed – %s", exc)

        threading.Thread(
            target=_close_quietly,
            args=(resp,),
            name="knightwatch-stream-close",
            daemon=True,
        ).start()


def _response_socket(resp: requests.Response) -> Optional[socket.socket]:
    """Socket behind a streamed response, or None when it cannot be reached."""
    raw = getattr(resp, "raw", None)
    # urllib3 keeps the socket on the pooled connection; once http.client hands
    # the connection over, only the response's buffered reader still holds it.
    reader = getattr(getattr(raw, "_fp", None), "fp", None)
    candidates = (
        getattr(getattr(raw, "connection", None), "sock", None),
        getattr(getattr(reader, "raw", None), "_sock", None),
    )
    for sock in candidates:
        if isinstance(sock, socket.socket):
            return sock
    return None


def _close_quietly(resp: requests.Response) -> None:
    try:
        resp.close()
    except Exception as exc:
        LOGGER.debug("Closing stream response failed – %s", exc)
