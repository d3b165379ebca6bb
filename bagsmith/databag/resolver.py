"""Resolve a data bag template against the secret store for one item."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from bagsmith.databag.models import ITEM_PLACEHOLDER, SecretStore

logger = logging.getLogger(__name__)


def substitute(pattern: str, item: str) -> str:
    """Put the item into the pattern's %s slot. Patterns without a slot are literal keys."""
    return pattern.replace(ITEM_PLACEHOLDER, item, 1)


def prune(document: Mapping[str, Any]) -> dict[str, Any]:
    """Drop keys whose value is an empty string or an empty mapping."""
    return {key: value for key, value in document.items() if value != "" and value != {}}


def resolve(template: Mapping[str, Any], item: str, store: SecretStore) -> dict[str, Any]:
    """Fill a template with store values for item.

    Nested mappings are resolved recursively. Keys missing from the store
    resolve to "" and are pruned at their own level, so the result never
    contains an empty value at any depth. StoreError from the store is
    propagated untouched.
    """
    result: dict[str, Any] = {}
    for key, value in template.items():
        if isinstance(value, Mapping):
            result[key] = resolve(value, item, store)
            continue

        store_key = substitute(value, item)
        found = store.get(store_key)
        if found is None:
            logger.debug("No value for %s (field %s)", store_key, key)
        result[key] = found or ""

    return prune(result)
