from __future__ import annotations
import pytest

import retryflow.core as core
import retryflow.delays as delays


@pytest.fixture
def sleeps(monkeypatch):
    """Record the delays the engine sleeps for instead of actually sleeping."""
    recorded: list[int] = []

    async def fake_sleep_async(ms):
        recorded.append(ms)

    monkeypatch.setattr(core, "_sleep", recorded.append)
    monkeypatch.setattr(core, "_sleep_async", fake_sleep_async)
    return recorded


@pytest.fixture
def clock(monkeypatch):
    """Manual millisecond clock driving `expiry`."""
    now = {"t": 1_000}
    monkeypatch.setattr(delays, "_now_ms", lambda: now["t"])
    return now
