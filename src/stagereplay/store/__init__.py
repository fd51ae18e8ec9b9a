"""
Local persistent storage for Stagereplay.

The player and the live-session transition cache only need a namespaced
key/value store. This module provides that capability with three backends.

Backends:
    - SqliteStore: a single-file SQLite database (the CLI default)
    - MemoryStore: process-local dict, for tests and one-off sessions
    - NullStore: accepts every write and reads nothing back; used when no
      store can be opened so save/load degrade to no-ops

Keys are plain strings namespaced by callers, e.g.
``stagereplay:saves:<room>`` and ``stagereplay:stage-events:<room>``.
Values are strings (callers store JSON).
"""

from stagereplay.store.db import LocalStore, MemoryStore, NullStore, SqliteStore, open_store

__all__ = [
    "LocalStore",
    "MemoryStore",
    "NullStore",
    "SqliteStore",
    "open_store",
]
