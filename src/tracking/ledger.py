"""
Progress ledger: durable per-entity outcomes for resumable runs.

The ledger is the only record of whether an entity has been handled. It is
saved after every entity, so a crash loses at most the entity in flight.
"""

import json
import os
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from rich.console import Console

console = Console()


class LedgerStatus(str, Enum):
    PROCESSED = "processed"  # Handled, nothing to change
    UPDATED = "updated"
    SKIPPED = "skipped"
    FAILED = "failed"


TERMINAL_STATUSES = {LedgerStatus.PROCESSED, LedgerStatus.UPDATED, LedgerStatus.SKIPPED}


class FailedEntry(BaseModel):
    id: str
    reason: str = ""


class LedgerState(BaseModel):
    """
    Ledger document.

    processedIds lists every entity that reached a terminal outcome;
    updatedIds / skippedIds / failedIds refine it.
    """

    model_config = ConfigDict(populate_by_name=True)

    processed_ids: list[str] = Field(default_factory=list, alias="processedIds")
    failed_ids: list[FailedEntry] = Field(default_factory=list, alias="failedIds")
    updated_ids: list[str] = Field(default_factory=list, alias="updatedIds")
    skipped_ids: list[str] = Field(default_factory=list, alias="skippedIds")
    last_update: Optional[str] = Field(None, alias="lastUpdate")

    def status(self, entity_id: str) -> Optional[LedgerStatus]:
        if any(entry.id == entity_id for entry in self.failed_ids):
            return LedgerStatus.FAILED
        if entity_id in self.updated_ids:
            return LedgerStatus.UPDATED
        if entity_id in self.skipped_ids:
            return LedgerStatus.SKIPPED
        if entity_id in self.processed_ids:
            return LedgerStatus.PROCESSED
        return None

    def failure_reason(self, entity_id: str) -> Optional[str]:
        for entry in self.failed_ids:
            if entry.id == entity_id:
                return entry.reason
        return None

    def remove_failed(self, entity_id: str) -> bool:
        before = len(self.failed_ids)
        self.failed_ids = [entry for entry in self.failed_ids if entry.id != entity_id]
        return len(self.failed_ids) != before

    def mark(self, entity_id: str, status: LedgerStatus, reason: Optional[str] = None) -> None:
        """Set the outcome for an entity, replacing any previous one."""
        self.remove_failed(entity_id)
        for ids in (self.updated_ids, self.skipped_ids):
            if entity_id in ids:
                ids.remove(entity_id)

        if status is LedgerStatus.FAILED:
            self.failed_ids.append(FailedEntry(id=entity_id, reason=reason or "unknown error"))
        elif status is LedgerStatus.UPDATED:
            self.updated_ids.append(entity_id)
        elif status is LedgerStatus.SKIPPED:
            self.skipped_ids.append(entity_id)

        if entity_id not in self.processed_ids:
            self.processed_ids.append(entity_id)
        self.last_update = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")

    def to_document(self) -> dict:
        return self.model_dump(by_alias=True)


# ============================================
# Stores
# ============================================


class LedgerStore(ABC):
    """Persistence backend for a LedgerState."""

    @abstractmethod
    def load(self) -> LedgerState:
        ...

    @abstractmethod
    def save(self, state: LedgerState) -> None:
        ...

    @abstractmethod
    def clear(self) -> None:
        ...


class InMemoryLedgerStore(LedgerStore):
    """Keeps a serialized copy so saved state is isolated from later mutation."""

    def __init__(self, document: Optional[dict] = None):
        self.document = document
        self.saves = 0

    def load(self):
        if self.document is None:
            return LedgerState()
        return LedgerState.model_validate(self.document)

    def save(self, state):
        self.document = json.loads(json.dumps(state.to_document()))
        self.saves += 1

    def clear(self):
        self.document = None


class JsonFileLedgerStore(LedgerStore):
    """JSON document on disk, replaced atomically on every save."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def load(self):
        if not self.path.exists():
            return LedgerState()
        try:
            return LedgerState.model_validate(json.loads(self.path.read_text(encoding="utf-8")))
        except (json.JSONDecodeError, ValidationError) as e:
            backup = self.path.with_suffix(self.path.suffix + ".corrupt")
            self.path.replace(backup)
            console.print(
                f"[yellow]Ledger {self.path} was unreadable ({e.__class__.__name__}); "
                f"moved to {backup.name} and starting fresh[/yellow]"
            )
            return LedgerState()

    def save(self, state):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(state.to_document(), ensure_ascii=False, indent=2), encoding="utf-8")
        os.replace(tmp, self.path)

    def clear(self):
        if self.path.exists():
            self.path.unlink()


# ============================================
# Ledger
# ============================================


class ProgressLedger:
    """
    load / record / save over a pluggable store.

    Entities in a terminal state (processed, updated, skipped) are not
    processed again. Failed entities are retried: begin_retry() drops the
    old failure so a repeat failure is recorded fresh.
    """

    def __init__(self, store: LedgerStore):
        self.store = store
        self.state = LedgerState()

    def load(self) -> LedgerState:
        self.state = self.store.load()
        return self.state

    def save(self, state: Optional[LedgerState] = None) -> None:
        if state is not None:
            self.state = state
        self.store.save(self.state)

    def record(self, entity_id: str, outcome: LedgerStatus, reason: Optional[str] = None) -> None:
        """Record an outcome and persist immediately."""
        self.state.mark(entity_id, LedgerStatus(outcome), reason)
        self.save()

    def status(self, entity_id: str) -> Optional[LedgerStatus]:
        return self.state.status(entity_id)

    def should_process(self, entity_id: str) -> bool:
        return self.status(entity_id) not in TERMINAL_STATUSES

    def begin_retry(self, entity_id: str) -> bool:
        """Promote an entity out of failedIds before retrying it."""
        if self.state.remove_failed(entity_id):
            if entity_id in self.state.processed_ids:
                self.state.processed_ids.remove(entity_id)
            self.save()
            return True
        return False

    def reset(self) -> None:
        self.store.clear()
        self.state = LedgerState()

    def stats(self) -> dict:
        return {
            "processed": len(self.state.processed_ids),
            "updated": len(self.state.updated_ids),
            "skipped": len(self.state.skipped_ids),
            "failed": len(self.state.failed_ids),
            "last_update": self.state.last_update,
        }

    def print_stats(self) -> None:
        """Print ledger statistics to console."""
        stats = self.stats()
        if stats["processed"] == 0 and stats["failed"] == 0:
            console.print("[dim]No entities tracked yet.[/dim]")
            return

        console.print("\n[bold cyan]Progress Ledger Stats[/bold cyan]")
        console.print(f"  Processed: [green]{stats['processed']}[/green]")
        console.print(f"  Updated:   [green]{stats['updated']}[/green]")
        console.print(f"  Skipped:   {stats['skipped']}")
        console.print(f"  Failed:    [red]{stats['failed']}[/red]")
        if stats["last_update"]:
            console.print(f"  Last update: {stats['last_update']}")
