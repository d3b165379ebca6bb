"""
One provisioning run for a (data bag, item) pair.

    resolve template → (stop if empty) → ensure secret → upload → distribute

Distribution only follows a successful upload unless the data bag entry
sets always_distribute. StoreError propagates to the caller; anything
already reported through `report` stays reported.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence

from bagsmith.databag.assembler import KnifeUploader, assemble_and_upload
from bagsmith.databag.distributor import SecretDistributor
from bagsmith.databag.models import DataBagEntry, ExitCode, InvocationResult, SecretStore
from bagsmith.databag.resolver import resolve
from bagsmith.databag.secret import DEFAULT_SECRET_LENGTH, ensure_secret

logger = logging.getLogger(__name__)


def run(
    entry: DataBagEntry,
    item: str,
    *,
    store: SecretStore,
    uploader: KnifeUploader,
    distributor: SecretDistributor,
    id_option: str | None = None,
    targets: Sequence[str] = (),
    secret_length: int = DEFAULT_SECRET_LENGTH,
    report: Callable[[str], None] | None = None,
) -> InvocationResult:
    """Run every step for item, sending each progress line to `report` as it happens."""
    emit = report or (lambda message: None)
    result = InvocationResult(data_bag=entry.name, item=item, exit_code=ExitCode.OK)

    document = resolve(entry.data_bag, item, store)
    if not document:
        logger.info("No data bag elements found for %s/%s", entry.name, item)
        emit("No data bag elements found.")
        result.exit_code = ExitCode.EMPTY
        return result

    result.secret_generated = ensure_secret(store, item, secret_length)
    if result.secret_generated:
        emit(f"Generated data_bag_secret for {item}")

    upload = assemble_and_upload(entry.name, item, document, store, uploader, id_option)
    result.upload = upload
    result.item_id = upload.item_id

    if upload.ok:
        emit(f"Uploaded {upload.data_bag}/{upload.item_id}")
    else:
        emit(f"Upload of {upload.data_bag}/{upload.item_id} failed: {upload.error}")
        result.exit_code = ExitCode.UPLOAD_FAILED
        if not entry.always_distribute:
            result.distribution_skipped = bool(targets)
            if targets:
                emit("Skipping data_bag_secret copy because the upload failed.")
            return result

    result.distribution = distributor.distribute(item, targets)
    if upload.ok and result.failed_targets:
        result.exit_code = ExitCode.DISTRIBUTION_FAILED
    return result
