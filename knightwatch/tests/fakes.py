# ==============================================================================
# fakes.py  –  Test doubles and sample records
#   HTTP responses, the evaluation service and the thread pool, faked so the
#   sync engine can be driven deterministically.
# ==============================================================================

import threading
import time
from concurrent.futures import Executor, Future

from knightwatch.clients.lichess_client import BroadcastFetchError

START_FEN = "rnbqkbnr/pppppppp/8/8/8/8/PPPPPPPP/RNBQKBNR w KQkq - 0 1"
AFTER_E4_E5 = "rnbqkbnr/pppp1ppp/8/4p3/4P3/8/PPPP1PPP/RNBQKBNR w KQkq - 0 2"

GAME_AB = '[White "A"]\n[Black "B"]\n1. e4 {[%clk 0:05:00]} e5 {[%clk 0:04:58]}\n\n\n'


def pgn_record(white, black, moves="", result=None):
    """Small PGN record with optional Result header."""
    headers = [f'[White "{white}"]', f'[Black "{black}"]']
    if result:
        headers.append(f'[Result "{result}"]')
    return "\n".join(headers) + "\n\n" + moves + "\n\n\n"


class ImmediateExecutor(Executor):
    """Runs every submitted call inline."""

    def __init__(self):
        self.submitted = []
        self.closed = False

    def submit(self, fn, *args, **kwargs):
        if self.closed:
            raise RuntimeError("cannot schedule new futures after shutdown")
        self.submitted.append(args)
        future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as exc:
            future.set_exception(exc)
        return future

    def shutdown(self, wait=True, *, cancel_futures=False):
        self.closed = True


class FakeEvaluator:
    """Returns a fixed score per position (default 0.3) and records calls."""

    def __init__(self, scores=None, default=0.3, error=None):
        self.scores = scores or {}
        self.default = default
        self.error = error
        self.calls = []

    def evaluate(self, position):
        self.calls.append(position)
        if self.error is not None:
            raise self.error
        return self.scores.get(position, self.default)


class FakeStreamResponse:
    """Minimal `requests.Response` stand-in for streamed bodies."""

    def __init__(self, chunks, status_code=200, block=None):
        self.chunks = list(chunks)
        self.status_code = status_code
        self.ok = status_code < 400
        self.raw = object()
        self.closed = False
        self.block = block

    def iter_content(self, chunk_size=None):
        for chunk in self.chunks:
            if self.closed:
                raise ConnectionError("response closed")
            yield chunk
        if self.block is not None:
            # Hold the stream open until closed, like a live round.
            while not self.closed:
                self.block.wait(0.01)
            raise ConnectionError("response closed")

    def close(self):
        self.closed = True


class FakeJsonResponse:
    def __init__(self, payload=None, status_code=200, text=None):
        self.payload = payload
        self.status_code = status_code
        self.ok = status_code < 400
        self.text = text if text is not None else ""
        self.raw = object()

    def json(self):
        if isinstance(self.payload, Exception):
            raise self.payload
        return self.payload

    def close(self):
        pass


class FakeLichessClient:
    """
    Scripted broadcast client. `streams` are handed out in order; once they
    run out every reconnect gets a stream that stays open until closed.
    """

    def __init__(
        self,
        streams=None,
        refuse=False,
        snapshot=None,
        snapshot_error=None,
        broadcasts=None,
        tournaments=None,
    ):
        self.streams = list(streams or [])
        self.refuse = refuse
        self.snapshot = snapshot if snapshot is not None else {"games": []}
        self.snapshot_error = snapshot_error
        self.opened = []
        self.responses = []
        self.snapshot_calls = 0
        self.broadcasts = broadcasts or []
        self.tournaments = tournaments or {}
        self.listing_error = None

    def open_round_stream(self, round_id):
        self.opened.append(round_id)
        if self.refuse:
            raise BroadcastFetchError("Stream returned 404", 404)
        if self.streams:
            resp = self.streams.pop(0)
        else:
            resp = FakeStreamResponse([], block=threading.Event())
        self.responses.append(resp)
        return resp

    def fetch_round_snapshot(self, round_id):
        self.snapshot_calls += 1
        if self.snapshot_error is not None:
            raise self.snapshot_error
        return self.snapshot

    def fetch_broadcasts(self, limit=50):
        if self.listing_error is not None:
            raise self.listing_error
        return self.broadcasts[:limit]

    def fetch_tournament(self, tournament_id):
        if self.listing_error is not None:
            raise self.listing_error
        return self.tournaments.get(tournament_id)


def wait_for(predicate, timeout=2.0):
    """Poll `predicate` until true or `timeout` seconds pass."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.005)
    return predicate()
