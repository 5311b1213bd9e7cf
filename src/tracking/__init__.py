"""
Progress tracking for resumable pipeline runs.
"""

from config.settings import TrackingConfig

from .ledger import (
    FailedEntry,
    InMemoryLedgerStore,
    JsonFileLedgerStore,
    LedgerState,
    LedgerStatus,
    LedgerStore,
    ProgressLedger,
)
from .sqlite_store import SqliteLedgerStore


def create_ledger(config: TrackingConfig, name: str) -> ProgressLedger:
    """Ledger for one entity type using the configured backend."""
    if config.backend == "memory" or not config.enabled:
        store: LedgerStore = InMemoryLedgerStore()
    elif config.backend == "sqlite":
        store = SqliteLedgerStore(config.ledger_path(name))
    else:
        store = JsonFileLedgerStore(config.ledger_path(name))
    return ProgressLedger(store)


__all__ = [
    "FailedEntry",
    "InMemoryLedgerStore",
    "JsonFileLedgerStore",
    "LedgerState",
    "LedgerStatus",
    "LedgerStore",
    "ProgressLedger",
    "SqliteLedgerStore",
    "create_ledger",
]
