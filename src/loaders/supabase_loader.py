"""
Supabase catalog store and image CDN.

Catalog rows live in the PostgreSQL tables (wines, wineries) and images in a
Supabase Storage bucket.
"""

import re
from typing import Optional

from rich.console import Console
from supabase import Client, create_client

from config.settings import StorageConfig
from src.errors import PersistenceError
from src.loaders.catalog_store import CatalogStore

console = Console()

# Columns that older deployments of the schema may not have yet
OPTIONAL_COLUMNS = {"sourceUrl", "ratings", "tastingNotes", "foodPairing", "storyZh", "storyEn", "logoUrl"}

MISSING_COLUMN = re.compile(r"'(\w+)' column")


def create_supabase_client(config: Optional[StorageConfig] = None) -> Client:
    """
    Create a Supabase client from settings / environment.

    Raises:
        ValueError: SUPABASE_URL or SUPABASE_KEY is not set
    """
    config = config or StorageConfig()
    if not config.supabase_url or not config.supabase_key:
        raise ValueError(
            "Supabase credentials not found. Set SUPABASE_URL and SUPABASE_KEY in .env"
        )
    return create_client(config.supabase_url, config.supabase_key)


def _missing_optional_column(error: Exception, record: dict) -> Optional[str]:
    """Name of an optional column PostgREST rejected (PGRST204), if any."""
    text = str(error)
    code = str(getattr(error, "code", "") or "")
    if code.upper() != "PGRST204" and "pgrst204" not in text.lower():
        return None
    match = MISSING_COLUMN.search(text)
    if match and match.group(1) in OPTIONAL_COLUMNS and match.group(1) in record:
        return match.group(1)
    return None


class SupabaseCatalogStore(CatalogStore):
    """
    CatalogStore backed by Supabase tables.

    All errors surface as PersistenceError so the pipeline can record them
    against the entity and move on.
    """

    def __init__(self, client: Optional[Client] = None, config: Optional[StorageConfig] = None):
        self.config = config or StorageConfig()
        self.client: Client = client or create_supabase_client(self.config)

    def _select_one(
        self, table: str, column: str, value: str, match: Optional[dict] = None
    ) -> Optional[dict]:
        try:
            query = self.client.table(table).select("*").eq(column, value)
            for key, expected in (match or {}).items():
                query = query.is_(key, "null") if expected is None else query.eq(key, expected)
            result = query.limit(1).execute()
        except Exception as e:
            raise PersistenceError(f"select {table}.{column} failed: {e}") from e
        return result.data[0] if result.data else None

    def find_by_slug(self, table, slug):
        return self._select_one(table, "slug", slug)

    def find_by_name(self, table, name_zh, name_en=None, match=None):
        for column, value in (("nameZh", name_zh), ("nameEn", name_en)):
            if value:
                row = self._select_one(table, column, value, match)
                if row:
                    return row
        return None

    def get_by_id(self, table, entity_id):
        return self._select_one(table, "id", entity_id)

    def _write(self, table: str, record: dict, operation) -> dict:
        """Run a write, dropping optional columns the schema doesn't know yet."""
        record = dict(record)
        while True:
            try:
                result = operation(record).execute()
                return result.data[0] if result.data else record
            except Exception as e:
                column = _missing_optional_column(e, record)
                if column is None:
                    raise PersistenceError(f"write to {table} failed: {e}") from e
                # Schema not migrated yet: save without the optional column
                record.pop(column)
                console.print(f"[dim]Column '{column}' missing on {table}, saved without it[/dim]")

    def insert(self, table, record):
        return self._write(table, record, lambda r: self.client.table(table).insert(r))

    def update(self, table, entity_id, patch):
        return self._write(
            table, patch, lambda r: self.client.table(table).update(r).eq("id", entity_id)
        )

    def list_entities(self, table, limit=None):
        """All rows, paged in page_size chunks."""
        rows: list[dict] = []
        page = 0
        size = self.config.page_size
        while True:
            try:
                result = (
                    self.client.table(table)
                    .select("*")
                    .order("createdAt", desc=True)
                    .range(page * size, (page + 1) * size - 1)
                    .execute()
                )
            except Exception as e:
                raise PersistenceError(f"listing {table} failed: {e}") from e
            batch = result.data or []
            rows.extend(batch)
            if len(batch) < size or (limit and len(rows) >= limit):
                break
            page += 1
        return rows[:limit] if limit else rows

    def get_stats(self) -> dict:
        """Row counts per table."""
        stats = {}
        for table in (self.config.wines_table, self.config.wineries_table):
            try:
                result = self.client.table(table).select("id", count="exact").limit(1).execute()
            except Exception as e:
                raise PersistenceError(f"counting {table} failed: {e}") from e
            stats[table] = result.count or 0
        return stats


class SupabaseAssetUploader:
    """Uploads images to Supabase Storage and returns their public URL."""

    def __init__(self, client: Optional[Client] = None, config: Optional[StorageConfig] = None):
        self.config = config or StorageConfig()
        self.client: Client = client or create_supabase_client(self.config)
        self.bucket_name = self.config.bucket_name

    def upload(
        self, data: bytes, folder: str, name: str, source_url: str = "", content_type: str = "image/jpeg"
    ) -> Optional[str]:
        """
        Upload one image.

        Args:
            data: Image bytes
            folder: Folder inside the bucket (e.g. prowine/wines)
            name: File name without extension (usually the entity slug)
            source_url: Original URL, used to pick the extension
            content_type: MIME type of the payload

        Returns:
            Public URL, or None if the upload failed
        """
        storage_path = f"{folder.strip('/')}/{name}{self._get_extension(source_url, content_type)}"
        try:
            self.client.storage.from_(self.bucket_name).upload(
                storage_path,
                data,
                {"content-type": content_type, "upsert": "true"},
            )
            url = self.client.storage.from_(self.bucket_name).get_public_url(storage_path)
        except Exception as e:
            console.print(f"[yellow]  Warning: Failed to upload {storage_path}: {e}[/yellow]")
            return None

        console.print(f"[dim]  Uploaded: {storage_path}[/dim]")
        return url

    def _get_extension(self, url: str, content_type: str) -> str:
        """Get file extension from URL or content-type."""
        path = url.lower().split("?", 1)[0]
        for ext in (".png", ".webp", ".gif", ".svg"):
            if path.endswith(ext):
                return ext
        if path.endswith((".jpg", ".jpeg")):
            return ".jpg"

        if "png" in content_type:
            return ".png"
        elif "webp" in content_type:
            return ".webp"
        elif "gif" in content_type:
            return ".gif"
        elif "svg" in content_type:
            return ".svg"

        return ".jpg"
