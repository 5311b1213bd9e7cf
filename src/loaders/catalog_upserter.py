"""
Idempotent create-or-update of catalog entities, keyed by slug.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from rich.console import Console

from src.loaders.catalog_store import CatalogStore
from src.transformers.record_transformer import CatalogEntity

console = Console()

# Never patched on an existing row
IMMUTABLE_COLUMNS = {"id", "slug", "createdAt"}


class UpsertAction(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    UNCHANGED = "unchanged"


@dataclass
class UpsertResult:
    action: UpsertAction
    id: str
    patch: dict = field(default_factory=dict)


def is_empty(value) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, dict, tuple, set)):
        return len(value) == 0
    return False


def build_patch(existing: dict, record: dict, fill_only: frozenset = frozenset()) -> dict:
    """
    Columns to write onto an existing row.

    Only non-empty values that differ from what is stored; an empty value
    never overwrites stored data. Columns in fill_only are written only
    when the stored value is empty.
    """
    return {
        column: value
        for column, value in record.items()
        if column not in IMMUTABLE_COLUMNS
        and not is_empty(value)
        and existing.get(column) != value
        and not (column in fill_only and not is_empty(existing.get(column)))
    }


def _now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class CatalogUpserter:
    """
    Upserts entities into one catalog table.

    Lookup order is id, then slug, then name (zh, then en). A name match
    must also agree on the entity's edition columns (a wine's vintage), so
    two vintages sharing a name stay separate rows. Existing rows receive a
    non-destructive patch; new rows get the id '<prefix>_<slug>'.
    """

    def __init__(
        self,
        store: CatalogStore,
        table: str,
        timestamps: bool = True,
        fill_only: tuple = (),
    ):
        self.store = store
        self.table = table
        self.timestamps = timestamps
        self.fill_only = frozenset(fill_only)

    def find_existing(self, entity: CatalogEntity) -> Optional[dict]:
        existing = self.store.get_by_id(self.table, entity.id) if entity.id else None
        if existing is None:
            existing = self.store.find_by_slug(self.table, entity.slug)
        if existing is None:
            existing = self.store.find_by_name(
                self.table, entity.name_zh, entity.name_en, match=entity.edition()
            )
        return existing

    def upsert(self, entity: CatalogEntity) -> UpsertResult:
        """
        Create or patch the row for an entity.

        Raises:
            PersistenceError: the store rejected the read or write
        """
        record = entity.to_record()
        existing = self.find_existing(entity)

        if existing:
            patch = build_patch(existing, record, self.fill_only)
            if not patch:
                return UpsertResult(UpsertAction.UNCHANGED, existing["id"])
            if self.timestamps:
                patch["updatedAt"] = _now()
            self.store.update(self.table, existing["id"], patch)
            return UpsertResult(UpsertAction.UPDATED, existing["id"], patch)

        record["id"] = entity.stable_id()
        if self.timestamps:
            record["createdAt"] = record["updatedAt"] = _now()
        self.store.insert(self.table, record)
        return UpsertResult(UpsertAction.CREATED, record["id"], record)
