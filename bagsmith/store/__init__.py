"""
bagsmith store — client for the Trousseau key-value secret store.

Public API:
    store = TrousseauStore(path)
    store.keys()             → set of key paths
    store.get(key)           → value or None if the key is missing
    store.set(key, value)    → True on success

Transport problems (binary missing, store file missing, timeouts,
unexpected failures) raise StoreError and are never reported as a missing key.
"""

from __future__ import annotations

from bagsmith.store.trousseau import StoreError, TrousseauStore

__all__ = ["StoreError", "TrousseauStore"]
