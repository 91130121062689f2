"""
Shared pytest configuration and fixtures.

On Windows CI runners, a spurious KeyboardInterrupt is delivered to the
main thread during long-running tests. The workaround: ignore SIGINT
entirely on Windows CI.
"""

import os
import signal

import pytest

from sprig.repo import Repository

_WINDOWS_CI = os.name == "nt" and os.environ.get("CI") == "true"


def pytest_configure(config):
    """Ignore SIGINT on Windows CI to prevent spurious KeyboardInterrupt."""
    if _WINDOWS_CI:
        try:
            signal.signal(signal.SIGINT, signal.SIG_IGN)
        except (OSError, ValueError):
            pass


class FakeClock:
    """Deterministic clock: every call is one second after the previous."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        self.now += 1.0
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def repo(tmp_path, clock):
    """Freshly initialized repository with a deterministic clock."""
    r = Repository.init(tmp_path / "project", clock=clock)
    yield r
    r.close()


def write(repo, name, content):
    """Write a working file (text) relative to the repo root."""
    path = repo.root / name
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)


def read(repo, name):
    return (repo.root / name).read_text()


def commit_file(repo, name, content, message=None):
    """Write, add and commit one file. Returns the commit hash."""
    write(repo, name, content)
    repo.add(name)
    return repo.commit(message or f"set {name} to {content}")
