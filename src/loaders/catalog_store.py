"""
Catalog store interface and the in-memory implementation used by tests
and dry runs.
"""

import copy
from abc import ABC, abstractmethod
from typing import Optional

from src.errors import PersistenceError


class CatalogStore(ABC):
    """Minimal relational contract: select by slug/name/id, insert, update."""

    @abstractmethod
    def find_by_slug(self, table: str, slug: str) -> Optional[dict]:
        ...

    @abstractmethod
    def find_by_name(
        self,
        table: str,
        name_zh: Optional[str],
        name_en: Optional[str] = None,
        match: Optional[dict] = None,
    ) -> Optional[dict]:
        """First row with this name whose columns in match are equal (None matches NULL)."""
        ...

    @abstractmethod
    def get_by_id(self, table: str, entity_id: str) -> Optional[dict]:
        ...

    @abstractmethod
    def insert(self, table: str, record: dict) -> dict:
        ...

    @abstractmethod
    def update(self, table: str, entity_id: str, patch: dict) -> dict:
        ...

    @abstractmethod
    def list_entities(self, table: str, limit: Optional[int] = None) -> list[dict]:
        ...


class InMemoryCatalogStore(CatalogStore):
    """Dict-backed store. Enforces unique id and slug like the real tables."""

    def __init__(self, tables: Optional[dict[str, list[dict]]] = None):
        self.tables: dict[str, dict[str, dict]] = {}
        self.writes = 0
        for table, rows in (tables or {}).items():
            for row in rows:
                self.tables.setdefault(table, {})[row["id"]] = copy.deepcopy(row)

    def _rows(self, table: str) -> dict[str, dict]:
        return self.tables.setdefault(table, {})

    def find_by_slug(self, table, slug):
        for row in self._rows(table).values():
            if row.get("slug") == slug:
                return copy.deepcopy(row)
        return None

    def find_by_name(self, table, name_zh, name_en=None, match=None):
        match = match or {}
        for column, value in (("nameZh", name_zh), ("nameEn", name_en)):
            if not value:
                continue
            for row in self._rows(table).values():
                if row.get(column) == value and all(row.get(k) == v for k, v in match.items()):
                    return copy.deepcopy(row)
        return None

    def get_by_id(self, table, entity_id):
        row = self._rows(table).get(entity_id)
        return copy.deepcopy(row) if row else None

    def insert(self, table, record):
        rows = self._rows(table)
        if record["id"] in rows:
            raise PersistenceError(f"duplicate id {record['id']} in {table}")
        if record.get("slug") and self.find_by_slug(table, record["slug"]):
            raise PersistenceError(f"duplicate slug {record['slug']} in {table}")
        rows[record["id"]] = copy.deepcopy(record)
        self.writes += 1
        return copy.deepcopy(record)

    def update(self, table, entity_id, patch):
        rows = self._rows(table)
        if entity_id not in rows:
            raise PersistenceError(f"{entity_id} not found in {table}")
        rows[entity_id].update(copy.deepcopy(patch))
        self.writes += 1
        return copy.deepcopy(rows[entity_id])

    def list_entities(self, table, limit=None):
        rows = [copy.deepcopy(r) for r in self._rows(table).values()]
        return rows[:limit] if limit else rows

    def count(self, table: str) -> int:
        return len(self._rows(table))
