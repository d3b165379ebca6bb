"""
Per-item secrets — the data_bag_secret used by knife, and helper passphrases.

Both are generated with the `secrets` module and written to the store only
when absent. The check-then-write is not atomic: two first-time runs for the
same item at once may both generate a secret, and the store keeps the last.
"""

from __future__ import annotations

import base64
import logging
import secrets
import string

from bagsmith.databag.models import SecretStore
from bagsmith.store.trousseau import StoreError

logger = logging.getLogger(__name__)

DEFAULT_SECRET_LENGTH = 512
DEFAULT_PASSPHRASE_LENGTH = 50

_PASSPHRASE_ALPHABET = string.ascii_letters + string.digits


def secret_key(item: str) -> str:
    return f"{item}/data_bag_secret"


def passphrase_key(item: str) -> str:
    return f"{item}.passphrase"


def generate_secret(length: int = DEFAULT_SECRET_LENGTH) -> str:
    """Return `length` random bytes, base64-encoded on a single line."""
    return base64.b64encode(secrets.token_bytes(length)).decode("ascii").strip()


def generate_passphrase(length: int = DEFAULT_PASSPHRASE_LENGTH) -> str:
    """Return a random alphanumeric passphrase containing at least one digit."""
    while True:
        phrase = "".join(secrets.choice(_PASSPHRASE_ALPHABET) for _ in range(length))
        if any(c.isdigit() for c in phrase):
            return phrase


def ensure_secret(store: SecretStore, item: str, length: int = DEFAULT_SECRET_LENGTH) -> bool:
    """Create <item>/data_bag_secret unless the store already lists it.

    Returns True if a new secret was written, False if one already existed.
    """
    key = secret_key(item)
    if key in store.keys():
        logger.debug("%s already present", key)
        return False

    if not store.set(key, generate_secret(length)):
        raise StoreError(f"Failed to store {key}")
    logger.info("Generated %s", key)
    return True


def ensure_passphrase(
    store: SecretStore,
    item: str,
    length: int = DEFAULT_PASSPHRASE_LENGTH,
    *,
    force: bool = False,
) -> bool:
    """Create <item>.passphrase unless present (or always, with force)."""
    key = passphrase_key(item)
    if not force and key in store.keys():
        logger.debug("%s already present", key)
        return False

    if not store.set(key, generate_passphrase(length)):
        raise StoreError(f"Failed to store {key}")
    logger.info("Generated %s", key)
    return True
