# ==============================================================================
# config_utils.py  –  Environment-driven settings for the sync engine
#
# Centralizes:
#   • Lichess broadcast + evaluation endpoints
#   • Timeouts, polling / reconnect intervals, worker counts
#   • Lichess API token retrieval
#
# Values come from the process environment, optionally seeded from
# <repo>/.env and <repo>/.env.local (env values override the files).
# ==============================================================================

from __future__ import annotations

import os
from pathlib import Path
from typing import Final, Optional

from dotenv import load_dotenv

PROJECT_ROOT = Path(__file__).resolve().parents[2]
load_dotenv(dotenv_path=PROJECT_ROOT / ".env.local", override=False)
load_dotenv(dotenv_path=PROJECT_ROOT / ".env", override=False)


# ------------------------------------------------------------------------------
# Internal helpers
# ------------------------------------------------------------------------------


def _bool_env(var_name: str, default: str = "false") -> bool:
    """Convert TRUE / true / 1 style env vars to bool."""
    return os.getenv(var_name, default).strip().lower() in {"1", "true", "yes"}


def _int_env(var_name: str, default: int) -> int:
    """Integer env var; unparsable values fall back to `default`."""
    raw = os.getenv(var_name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _float_env(var_name: str, default: float) -> float:
    raw = os.getenv(var_name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        return default


# ------------------------------------------------------------------------------
# Settings
# ------------------------------------------------------------------------------

LICHESS_BASE_URL: Final[str] = os.getenv(
    "LICHESS_BASE_URL", "https://lichess.org"
).rstrip("/")
EVAL_BASE_URL: Final[str] = os.getenv(
    "EVAL_BASE_URL", "https://eval.plc.hadron43.in/eval-bars"
).rstrip("/")

SNAPSHOT_TIMEOUT: Final[float] = _float_env("SNAPSHOT_TIMEOUT", 15.0)  # seconds
EVAL_TIMEOUT: Final[float] = _float_env("EVAL_TIMEOUT", 10.0)  # seconds
STREAM_CONNECT_TIMEOUT: Final[float] = _float_env("STREAM_CONNECT_TIMEOUT", 10.0)

POLL_INTERVAL: Final[float] = _float_env("POLL_INTERVAL", 5.0)
STREAM_RECONNECT_DELAY: Final[float] = _float_env("STREAM_RECONNECT_DELAY", 1.0)
STREAM_ERROR_RECONNECT_DELAY: Final[float] = _float_env(
    "STREAM_ERROR_RECONNECT_DELAY", 3.0
)

EVAL_MAX_WORKERS: Final[int] = _int_env("EVAL_MAX_WORKERS", 4)
SHARE_RESOLVE_GRACE: Final[float] = _float_env("SHARE_RESOLVE_GRACE", 2.0)
STALE_AFTER: Final[float] = _float_env("STALE_AFTER", 120.0)

METRICS_PORT: Final[int] = _int_env("METRICS_PORT", 8000)
METRICS_ENABLED: Final[bool] = _bool_env("METRICS_ENABLED", "false")


# ------------------------------------------------------------------------------
# Public API
# ------------------------------------------------------------------------------


def get_lichess_token() -> Optional[str]:
    """Return the bearer token for Lichess API calls (or None)."""
    return os.getenv("LICHESS_TOKEN") or None


def round_stream_url(round_id: str, base_url: str = LICHESS_BASE_URL) -> str:
    """
    Streaming PGN endpoint for a broadcast round.

    Example
    -------
    https://lichess.org/api/stream/broadcast/round/AbCd1234.pgn
    """
    return f"{base_url}/api/stream/broadcast/round/{round_id}.pgn"


def round_snapshot_url(round_id: str, base_url: str = LICHESS_BASE_URL) -> str:
    """JSON snapshot endpoint for a broadcast round (polling fallback)."""
    return f"{base_url}/api/broadcast/-/-/{round_id}"
