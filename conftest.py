"""
Root-level shared test fixtures.

Inherited by the store, databag, and CLI test suites.
"""

from __future__ import annotations

import pytest

from bagsmith.config import reset_config


class FakeStore:
    """In-memory stand-in for TrousseauStore."""

    def __init__(self, data: dict[str, str] | None = None):
        self.data: dict[str, str] = dict(data or {})
        self.writes: list[tuple[str, str]] = []
        self.set_ok = True

    def keys(self) -> set[str]:
        return set(self.data)

    def get(self, key: str) -> str | None:
        return self.data.get(key)

    def set(self, key: str, value: str) -> bool:
        self.writes.append((key, value))
        if self.set_ok:
            self.data[key] = value
        return self.set_ok


@pytest.fixture
def fake_store():
    """Empty in-memory secret store; tests fill .data as needed."""
    return FakeStore()


@pytest.fixture
def clean_env(monkeypatch):
    """Remove bagsmith env vars that leak between tests."""
    for key in [
        "BAGSMITH_CONFIG",
        "BAGSMITH_TROUSSEAU_BIN",
        "BAGSMITH_KNIFE_BIN",
        "BAGSMITH_SSH_BIN",
        "BAGSMITH_SSH_OPTIONS",
        "BAGSMITH_TIMEOUT",
        "BAGSMITH_SECRET_OWNER",
        "BAGSMITH_SECRET_LENGTH",
    ]:
        monkeypatch.delenv(key, raising=False)
    reset_config()
    yield
    reset_config()
