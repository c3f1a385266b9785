# ==============================================================================
# conftest.py  –  Shared fixtures for the KnightWatch test suite
# ==============================================================================

import os
import threading

import pytest

# Loggers are built at import time; keep test runs off the filesystem.
os.environ.setdefault("KNIGHTWATCH_LOG_TO_FILE", "false")

from knightwatch.tests.fakes import (  # noqa: E402
    FakeEvaluator,
    FakeJsonResponse,
    FakeStreamResponse,
    ImmediateExecutor,
)


@pytest.fixture
def immediate_executor():
    return ImmediateExecutor()


@pytest.fixture
def fake_evaluator():
    return FakeEvaluator()


@pytest.fixture
def stream_response():
    """Factory: stream_response(chunks, status_code=200, hold_open=False)."""

    def _make(chunks, status_code=200, hold_open=False):
        return FakeStreamResponse(
            chunks, status_code, block=threading.Event() if hold_open else None
        )

    return _make


@pytest.fixture
def json_response():
    def _make(payload=None, status_code=200, text=None):
        return FakeJsonResponse(payload, status_code, text)

    return _make
