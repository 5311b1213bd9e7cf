"""
Record transformer: reconciles source records and shapes catalog entities.

The source files overlap heavily (the same wine appears in the URL database,
the wine list and the JSON exports with slightly different spellings).
reconcile() merges them into one winery list and one de-duplicated wine list;
the *_entity() helpers turn records into validated catalog rows.
"""

import re
from dataclasses import dataclass, field
from typing import ClassVar, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from src.extractors.source_files import WineRecord, WineryRecord
from src.matching.keywords import normalize_text
from src.matching.slugs import make_slug


class CatalogEntity(BaseModel):
    """A catalog row. Field aliases are the store's camelCase column names."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id_prefix: ClassVar[str] = "entity"
    edition_columns: ClassVar[tuple] = ()

    id: Optional[str] = None
    slug: str
    name_zh: str = Field(alias="nameZh")
    name_en: Optional[str] = Field(None, alias="nameEn")
    description_zh: Optional[str] = Field(None, alias="descriptionZh")
    description_en: Optional[str] = Field(None, alias="descriptionEn")
    region: Optional[str] = None
    country: Optional[str] = None
    source_url: Optional[str] = Field(None, alias="sourceUrl")

    @field_validator("name_zh", "name_en")
    @classmethod
    def clean_name(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return re.sub(r"\s+", " ", v).strip()

    @field_validator("description_zh", "description_en")
    @classmethod
    def clean_description(cls, v: Optional[str]) -> Optional[str]:
        if not v:
            return None
        v = re.sub(r"[ \t]+", " ", v).strip()
        return v if v else None

    def edition(self) -> dict:
        """Columns a name match must also agree on to be the same row."""
        return {column: getattr(self, column) for column in self.edition_columns}

    def stable_id(self) -> str:
        return self.id or f"{self.id_prefix}_{self.slug}"

    def to_record(self) -> dict:
        """Column dict for the store (unset fields omitted)."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class Wine(CatalogEntity):
    id_prefix: ClassVar[str] = "wine"
    edition_columns: ClassVar[tuple] = ("vintage",)

    winery_id: Optional[str] = Field(None, alias="wineryId")
    main_image_url: Optional[str] = Field(None, alias="mainImageUrl")
    price: Optional[float] = None
    vintage: Optional[int] = None
    category: Optional[str] = None
    ratings: Optional[dict] = None
    tasting_notes: Optional[dict] = Field(None, alias="tastingNotes")
    food_pairing: Optional[dict] = Field(None, alias="foodPairing")


class Winery(CatalogEntity):
    id_prefix: ClassVar[str] = "winery"

    website: Optional[str] = None
    logo_url: Optional[str] = Field(None, alias="logoUrl")
    story_zh: Optional[str] = Field(None, alias="storyZh")
    story_en: Optional[str] = Field(None, alias="storyEn")


# ============================================
# Category inference
# ============================================

CATEGORY_RULES = (
    ("WHITE_WINE", ("白酒", "white", "blanc", "blanco", "bianco")),
    ("ROSE_WINE", ("粉紅", "rosé", "rose", "rosado")),
    ("SPARKLING_WINE", ("氣泡", "sparkling", "brut", "cava", "crémant", "cremant")),
    ("CHAMPAGNE", ("香檳", "champagne")),
)


def infer_category(name: str) -> str:
    """Wine category from its name; red unless a keyword says otherwise."""
    lower = (name or "").lower()
    for category, keywords in CATEGORY_RULES:
        if any(keyword in lower for keyword in keywords):
            return category
    return "RED_WINE"


# ============================================
# Reconciliation
# ============================================


@dataclass
class SourceCatalog:
    """Merged view of every source file."""

    wineries: list[WineryRecord] = field(default_factory=list)
    wines: list[WineRecord] = field(default_factory=list)

    def winery_for(self, wine: WineRecord) -> Optional[WineryRecord]:
        if not wine.winery_name:
            return None
        for winery in self.wineries:
            if winery.name_zh == wine.winery_name:
                return winery
        return None


def _wine_key(wine: WineRecord) -> tuple:
    return (normalize_text(wine.name_zh), wine.vintage)


def _match_winery(name: str, wineries: list[WineryRecord]) -> Optional[WineryRecord]:
    lower = name.lower()
    for winery in wineries:
        for candidate in (winery.name_zh, winery.name_en):
            if candidate and candidate.lower() in lower:
                return winery
    return None


def reconcile(
    csv_wineries: list[WineryRecord],
    url_database: dict[str, WineryRecord],
    listed_wines: list[WineRecord] = (),
    json_wines: list[WineRecord] = (),
    winery_links: Optional[dict[str, str]] = None,
) -> SourceCatalog:
    """
    Merge the source files into one catalog view.

    Args:
        csv_wineries: Rows of the winery CSV
        url_database: Winery sections of the URL database Markdown
        listed_wines: Wines from the wine list Markdown
        json_wines: Wines from the JSON exports (may carry known URLs)
        winery_links: Official site links keyed by winery name

    Returns:
        SourceCatalog with de-duplicated wineries and wines
    """
    winery_links = winery_links or {}
    catalog = SourceCatalog()
    seen_wineries = set()

    def add_winery(winery: WineryRecord) -> None:
        key = normalize_text(winery.name_zh)
        if key in seen_wineries:
            return
        seen_wineries.add(key)
        if not winery.website and winery.name_zh in winery_links:
            winery.website = winery_links[winery.name_zh]
        catalog.wineries.append(winery)

    # CSV rows first; the URL database wins for region and website
    for row in csv_wineries:
        details = url_database.get(row.name_zh)
        if details:
            row = row.model_copy(
                update={
                    "name_en": details.name_en or row.name_en,
                    "region": details.region or row.region,
                    "country": row.country or details.country,
                    "website": details.website or row.website,
                    "wine_shop_url": details.wine_shop_url,
                    "wines": details.wines,
                }
            )
        add_winery(row)
    for details in url_database.values():
        add_winery(details)

    wines_by_key: dict[tuple, WineRecord] = {}
    for winery in catalog.wineries:
        for wine in winery.wines:
            wines_by_key.setdefault(_wine_key(wine), wine)

    for wine in list(listed_wines) + list(json_wines):
        key = _wine_key(wine)
        existing = wines_by_key.get(key)
        if existing:
            # JSON exports carry storefront URLs and prices the lists lack
            if wine.known_url and not existing.known_url:
                existing.known_url = wine.known_url
            if wine.price and not existing.price:
                existing.price = wine.price
            continue
        if not wine.winery_name:
            winery = _match_winery(wine.name_zh, catalog.wineries)
            if winery:
                wine = wine.model_copy(
                    update={
                        "winery_name": winery.name_zh,
                        "region": wine.region or winery.region,
                        "country": wine.country or winery.country,
                    }
                )
        wines_by_key[key] = wine

    catalog.wines = list(wines_by_key.values())
    return catalog


# ============================================
# Entity shaping
# ============================================


def winery_entity(record: WineryRecord, **content) -> Winery:
    """Catalog row for a winery record plus generated content fields."""
    return Winery(
        slug=make_slug(record.name_en or record.name_zh),
        name_zh=record.name_zh,
        name_en=record.name_en or record.name_zh,
        region=record.region,
        country=record.country,
        website=record.website,
        **content,
    )


def wine_entity(record: WineRecord, winery_id: Optional[str] = None, **content) -> Wine:
    """Catalog row for a wine record plus generated content fields."""
    base_name = record.name_en or record.name_zh
    name = f"{base_name} {record.vintage}" if record.vintage else base_name
    return Wine(
        slug=make_slug(name),
        name_zh=record.name_zh,
        name_en=base_name,
        winery_id=winery_id,
        vintage=record.vintage,
        region=record.region,
        country=record.country,
        price=record.price,
        category=infer_category(f"{record.name_zh} {record.name_en}"),
        source_url=record.known_url,
        **content,
    )
