"""Copy an item's data_bag_secret to remote hosts over ssh."""

from __future__ import annotations

import logging
import re
import shlex
import subprocess
from collections.abc import Callable, Iterable, Sequence

from bagsmith.databag.models import DistributionResult, SecretStore
from bagsmith.databag.secret import secret_key
from bagsmith.store.trousseau import StoreError

logger = logging.getLogger(__name__)

DEFAULT_SECRET_PATH = "/etc/chef/encrypted_data_bag_secret"

_TARGET_RE = re.compile(r"^[A-Za-z0-9_][A-Za-z0-9._-]*@[A-Za-z0-9_\[][A-Za-z0-9._:\[\]-]*$")

# Path, mode and owner arrive as positional args; the secret arrives on stdin.
# umask keeps the file private from the moment it is created.
_INSTALL_SCRIPT = 'umask 077 && cat > "$1" && chmod "$2" "$1" && chown "$3" "$1"'


def is_valid_target(target: str) -> bool:
    return bool(_TARGET_RE.match(target))


def parse_targets(values: Iterable[str] | None) -> list[str]:
    """Flatten repeated and comma-separated --target values."""
    targets: list[str] = []
    for value in values or []:
        targets.extend(t.strip() for t in value.split(",") if t.strip())
    return targets


class SecretDistributor:
    """Write an item's secret to a fixed path on each target, owner-only."""

    def __init__(
        self,
        store: SecretStore,
        path: str = DEFAULT_SECRET_PATH,
        owner: str = "root:root",
        mode: str = "0600",
        ssh_binary: str = "ssh",
        ssh_options: Sequence[str] = (),
        timeout: float = 60.0,
        progress: Callable[[str], None] | None = None,
    ):
        self.store = store
        self.path = path
        self.owner = owner
        self.mode = mode
        self.ssh_binary = ssh_binary
        self.ssh_options = tuple(ssh_options)
        self.timeout = timeout
        self.progress = progress

    def remote_command(self) -> str:
        """The single command run on each target (via sudo)."""
        return shlex.join(
            ["sudo", "sh", "-c", _INSTALL_SCRIPT, "sh", self.path, self.mode, self.owner]
        )

    def ssh_argv(self, target: str) -> list[str]:
        return [self.ssh_binary, *self.ssh_options, "--", target, self.remote_command()]

    def distribute(self, item: str, targets: Sequence[str]) -> list[DistributionResult]:
        """Copy the secret to every target, one at a time.

        A failing target never stops the remaining ones; every outcome is
        returned. A partially completed copy is not rolled back.
        """
        if not targets:
            return []

        secret = self.store.get(secret_key(item))
        if not secret:
            raise StoreError(f"No data_bag_secret stored for {item}")

        return [self._copy(target, secret) for target in targets]

    def _copy(self, target: str, secret: str) -> DistributionResult:
        result = self._run_copy(target, secret)
        if not result.ok:
            self._emit(f"  {target} failed: {result.error}")
        return result

    def _emit(self, message: str) -> None:
        if self.progress is not None:
            self.progress(message)

    def _run_copy(self, target: str, secret: str) -> DistributionResult:
        if not is_valid_target(target):
            logger.error("Refusing invalid target %r", target)
            return DistributionResult(target, ok=False, error="invalid target, expected user@host")

        logger.info("Copying data_bag_secret to %s", target)
        self._emit(f"Copying data_bag_secret to {target}")
        try:
            proc = subprocess.run(
                self.ssh_argv(target),
                input=secret + "\n",
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except FileNotFoundError:
            logger.error("ssh binary not found: %s", self.ssh_binary)
            return DistributionResult(target, ok=False, error=f"ssh not found: {self.ssh_binary}")
        except subprocess.TimeoutExpired:
            logger.error("Copy to %s timed out", target)
            return DistributionResult(target, ok=False, error=f"timed out after {self.timeout}s")

        if proc.returncode != 0:
            error = proc.stderr.strip() or f"exit status {proc.returncode}"
            logger.error("Copy to %s failed: %s", target, error)
            return DistributionResult(target, ok=False, error=error)

        return DistributionResult(target, ok=True)
