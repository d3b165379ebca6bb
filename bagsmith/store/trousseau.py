"""Trousseau client — keys, get, set against one encrypted store file."""

from __future__ import annotations

import logging
import os
import subprocess
from pathlib import Path

logger = logging.getLogger(__name__)

# stderr fragments trousseau prints when a key simply isn't there
_NOT_FOUND_MARKERS = ("not found", "no such key", "unable to find", "does not exist")


class StoreError(RuntimeError):
    """The secret store could not be queried (as opposed to a missing key)."""


class TrousseauStore:
    """Handle on a single trousseau store file.

    The store is selected by setting TROUSSEAU_STORE in the child process
    environment only; the parent environment is left untouched.
    """

    def __init__(
        self,
        store_path: Path | str,
        binary: str = "trousseau",
        timeout: float = 60.0,
    ):
        self.store_path = Path(store_path)
        self.binary = binary
        self.timeout = timeout

    def keys(self) -> set[str]:
        """Return every key path in the store."""
        proc = self._run("keys")
        if proc.returncode != 0:
            raise StoreError(f"trousseau keys failed: {proc.stderr.strip()}")
        return {line.strip() for line in proc.stdout.splitlines() if line.strip()}

    def get(self, key: str) -> str | None:
        """Return the value stored under key (trailing newline removed), or None."""
        proc = self._run("get", key)
        if proc.returncode == 0:
            return _chomp(proc.stdout)
        if _is_not_found(proc.stderr):
            logger.debug("Key %s not found in %s", key, self.store_path)
            return None
        raise StoreError(f"trousseau get {key} failed: {proc.stderr.strip()}")

    def set(self, key: str, value: str) -> bool:
        """Store value under key. Returns True on success."""
        proc = self._run("set", key, value)
        if proc.returncode != 0:
            logger.error("trousseau set %s failed: %s", key, proc.stderr.strip())
            return False
        return True

    def _run(self, *args: str) -> subprocess.CompletedProcess[str]:
        if not self.store_path.exists():
            raise StoreError(f"Trousseau store not found: {self.store_path}")

        env = os.environ.copy()
        env["TROUSSEAU_STORE"] = str(self.store_path)

        try:
            return subprocess.run(
                [self.binary, *args],
                env=env,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except FileNotFoundError as e:
            raise StoreError(f"trousseau binary not found: {self.binary}") from e
        except subprocess.TimeoutExpired as e:
            raise StoreError(f"trousseau {args[0]} timed out after {self.timeout}s") from e

    def __repr__(self) -> str:
        return f"TrousseauStore({str(self.store_path)!r})"


def _chomp(value: str) -> str:
    """Remove one trailing line ending, like Ruby String#chomp."""
    for ending in ("\r\n", "\n", "\r"):
        if value.endswith(ending):
            return value[: -len(ending)]
    return value


def _is_not_found(stderr: str) -> bool:
    lowered = stderr.lower()
    return any(marker in lowered for marker in _NOT_FOUND_MARKERS)
