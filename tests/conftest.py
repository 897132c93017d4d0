"""Shared fixtures for relaunch tests."""

import sys
import time

import pytest

from src.relaunch.config import RelaunchConfig


linux_only = pytest.mark.skipif(
    not sys.platform.startswith("linux"),
    reason="inotify backend requires Linux",
)

kqueue_only = pytest.mark.skipif(
    not (sys.platform == "darwin" or "bsd" in sys.platform),
    reason="kqueue backend requires macOS or BSD",
)


def wait_for(predicate, timeout=5.0, interval=0.01):
    """Poll ``predicate`` until it is true or the timeout expires."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


@pytest.fixture
def config():
    return RelaunchConfig(backend="memory", poll_interval_ms=20)


@pytest.fixture
def watched_file(tmp_path):
    path = tmp_path / "a.txt"
    path.write_text("initial")
    return path
