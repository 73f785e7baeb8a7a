"""Unit tests for the timeout and retry helpers."""

from __future__ import annotations

import threading

import httpx
import openai
import pytest

from docqa.resilience import CallTimeout, TimedCaller, is_permanent_error


def test_stalled_call_does_not_block_the_next_one() -> None:
    release = threading.Event()
    caller = TimedCaller(0.05, max_workers=2, name="test")
    try:
        with pytest.raises(CallTimeout, match="test call exceeded"):
            caller(release.wait, 5)
        # One worker is still held by the stalled call; the other serves this.
        assert caller(lambda: "fast") == "fast"
    finally:
        release.set()
        caller.shutdown()


def test_exhausted_pool_times_out_instead_of_hanging() -> None:
    release = threading.Event()
    caller = TimedCaller(0.05, max_workers=1)
    try:
        with pytest.raises(CallTimeout):
            caller(release.wait, 5)
        with pytest.raises(CallTimeout):
            caller(lambda: "queued")
    finally:
        release.set()
        caller.shutdown()


@pytest.mark.parametrize(
    ("status", "permanent"),
    [(400, True), (401, True), (404, True), (408, False), (429, False), (500, False), (503, False)],
)
def test_permanent_error_classification(status: int, permanent: bool) -> None:
    request = httpx.Request("POST", "https://api.openai.com/v1/embeddings")
    exc = openai.APIStatusError("failed", response=httpx.Response(status, request=request), body=None)
    assert is_permanent_error(exc) is permanent


def test_non_api_errors_are_not_permanent() -> None:
    assert is_permanent_error(ConnectionError("reset")) is False
    assert is_permanent_error(TimeoutError()) is False
