"""
Data bag assembly — final id, JSON rendering, and the knife upload.

The secret and the rendered item are written into a private temporary
directory that is removed whether knife succeeds, fails, or is never run.
"""

from __future__ import annotations

import json
import logging
import os
import subprocess
import tempfile
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from bagsmith.databag.models import SecretStore, UploadResult
from bagsmith.databag.resolver import prune
from bagsmith.databag.secret import secret_key
from bagsmith.store.trousseau import StoreError

logger = logging.getLogger(__name__)


def normalize_id(value: str) -> str:
    """Data bag ids may not contain dots; replace them with underscores."""
    return value.replace(".", "_")


def resolve_id(document: Mapping[str, Any], item: str, id_option: str | None = None) -> str:
    """Pick the id: one already in the document, then --id, then the item."""
    existing = document.get("id")
    if isinstance(existing, str) and existing:
        return existing
    return id_option or item


def render_document(document: Mapping[str, Any]) -> str:
    return json.dumps(document, indent=2) + "\n"


class KnifeUploader:
    """Encrypt and upload a data bag item with `knife data bag from file`."""

    def __init__(self, binary: str = "knife", timeout: float = 60.0):
        self.binary = binary
        self.timeout = timeout

    def upload(self, data_bag: str, item_path: Path, secret_path: Path) -> subprocess.CompletedProcess[str]:
        return subprocess.run(
            [
                self.binary, "data", "bag", "from", "file",
                data_bag, str(item_path),
                "--secret-file", str(secret_path),
            ],
            capture_output=True,
            text=True,
            timeout=self.timeout,
        )


def assemble_and_upload(
    data_bag: str,
    item: str,
    document: Mapping[str, Any],
    store: SecretStore,
    uploader: KnifeUploader,
    id_option: str | None = None,
) -> UploadResult:
    """Finalize the document for item and hand it to knife.

    The item's data_bag_secret must already be in the store. Knife failures
    (non-zero exit, timeout, missing binary) come back as an unsuccessful
    UploadResult; a missing secret raises StoreError.
    """
    element = prune(document)
    item_id = normalize_id(resolve_id(element, item, id_option))
    element["id"] = item_id

    secret = store.get(secret_key(item))
    if not secret:
        raise StoreError(f"No data_bag_secret stored for {item}")

    with tempfile.TemporaryDirectory(prefix="bagsmith-") as tmp:
        item_path = Path(tmp) / "item.json"
        secret_path = Path(tmp) / "data_bag_secret"
        _write_private(item_path, render_document(element))
        _write_private(secret_path, secret)

        try:
            proc = uploader.upload(data_bag, item_path, secret_path)
        except FileNotFoundError:
            logger.error("knife binary not found: %s", uploader.binary)
            return UploadResult(data_bag, item_id, ok=False, error=f"knife not found: {uploader.binary}")
        except subprocess.TimeoutExpired:
            logger.error("knife upload of %s/%s timed out", data_bag, item_id)
            return UploadResult(data_bag, item_id, ok=False, error=f"timed out after {uploader.timeout}s")

    if proc.returncode != 0:
        logger.error("knife upload of %s/%s failed: %s", data_bag, item_id, proc.stderr.strip())
        return UploadResult(
            data_bag, item_id, ok=False, returncode=proc.returncode, error=proc.stderr.strip()
        )

    logger.info("Uploaded data bag item %s/%s", data_bag, item_id)
    return UploadResult(data_bag, item_id, ok=True, returncode=0)


def _write_private(path: Path, content: str) -> None:
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
    with os.fdopen(fd, "w") as fp:
        fp.write(content)
