# ==============================================================================
# evaluation_client.py  –  Position scores from the external evaluation service
# ------------------------------------------------------------------------------
#   GET {EVAL_BASE_URL}/?fen=<url-encoded FEN>  →  {"evaluation": <pawns>}
#
# Positive scores favour White. Every failure is raised (timeouts as
# `EvaluationTimeoutError`); callers treat them as "keep the old score".
# ==============================================================================

from __future__ import annotations

from typing import Optional

import requests

from knightwatch.utils.config_utils import EVAL_BASE_URL, EVAL_TIMEOUT
from knightwatch.utils.metrics import count_evaluation, evaluation_timer


class EvaluationError(RuntimeError):
    """The evaluation service did not return a usable score."""


class EvaluationTimeoutError(EvaluationError):
    """The evaluation service did not answer within the timeout."""


class EvaluationClient:
    def __init__(
        self,
        base_url: str = EVAL_BASE_URL,
        timeout: float = EVAL_TIMEOUT,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.http = session or requests.Session()

    def evaluate(self, position: str) -> float:
        """Score for `position` (a FEN), in pawns."""
        if not position:
            raise EvaluationError("FEN parameter required")

        with evaluation_timer():
            try:
                resp = self.http.get(
                    f"{self.base_url}/", params={"fen": position}, timeout=self.timeout
                )
            except requests.Timeout as exc:
                count_evaluation("timeout")
                raise EvaluationTimeoutError("Evaluation timeout") from exc
            except requests.RequestException as exc:
                count_evaluation("error")
                raise EvaluationError(f"Evaluation request failed: {exc}") from exc

        if not resp.ok:
            count_evaluation("error")
            raise EvaluationError(f"Evaluation API error: {resp.status_code}")

        try:
            data = resp.json()
        except ValueError as exc:
            count_evaluation("error")
            raise EvaluationError("Evaluation response is not JSON") from exc

        value = data.get("evaluation") if isinstance(data, dict) else None
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            count_evaluation("error")
            raise EvaluationError(f"Evaluation missing from response: {data!r}")

        count_evaluation("ok")
        return float(value)
