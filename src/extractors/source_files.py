"""
Parsers for the importer's raw source files.

The source material is a set of hand-maintained spreadsheets and notes:

- wineries_url_table.csv: one winery per row (zh name, region, country,
  official site, marketplace links)
- URL database Markdown: "## N. Winery ⭐" sections with **產區**:,
  **官方網站**:, **酒款商店**: lines and a **ProWine 清單酒款** list
- wine list Markdown: "N. Wine name 2020" lines under country headings
- all_wines_list.json: plain list of wine names
- wines_sample_data.json: wine records carrying a known prowine_url
- winery links Markdown: "**Winery** - https://..." pairs
"""

import csv
import json
import re
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, field_validator
from rich.console import Console

console = Console()

NO_WEBSITE_MARKERS = {"", "無", "無獨立官網", "n/a", "-"}

COUNTRY_KEYWORDS = {
    "美國": "USA",
    "法國": "France",
    "西班牙": "Spain",
}

WINERY_HEADING = re.compile(r"^##\s+\d+\.\s+(.+?)\s*(?:⭐+)?\s*$")
URL_PATTERN = re.compile(r"https?://[^\s)>\]]+")
VINTAGE_PATTERN = re.compile(r"\b(\d{4})(?:/\d{2,4})*\b|\bNV\b")
LIST_LINE = re.compile(r"^\d+\.\s+(.+?)\s+(\d{4}|NV)\b")
WINERY_LINK = re.compile(r"\*\*([^*]+)\*\*\s*-\s*(https?://[^\s)]+)")


class WineRecord(BaseModel):
    """A wine as described by the source files."""

    name_zh: str
    name_en: str = ""
    vintage: Optional[int] = None
    country: Optional[str] = None
    region: Optional[str] = None
    winery_name: Optional[str] = None
    known_url: Optional[str] = None
    price: Optional[int] = None

    @field_validator("name_zh", "name_en")
    @classmethod
    def clean_name(cls, v: str) -> str:
        return re.sub(r"\s+", " ", v or "").strip()


class WineryRecord(BaseModel):
    """A winery as described by the source files."""

    name_zh: str
    name_en: str = ""
    region: Optional[str] = None
    country: Optional[str] = None
    website: Optional[str] = None
    wine_shop_url: Optional[str] = None
    marketplace_urls: dict[str, str] = Field(default_factory=dict)
    wines: list[WineRecord] = Field(default_factory=list)

    @field_validator("name_zh", "name_en")
    @classmethod
    def clean_name(cls, v: str) -> str:
        return re.sub(r"\s+", " ", v or "").strip()

    @field_validator("website")
    @classmethod
    def clean_website(cls, v: Optional[str]) -> Optional[str]:
        if v is None or v.strip().lower() in NO_WEBSITE_MARKERS:
            return None
        return v.strip()


def _country_from_heading(line: str) -> Optional[str]:
    for keyword, country in COUNTRY_KEYWORDS.items():
        if keyword in line:
            return country
    return None


def _read_text(path: Path) -> Optional[str]:
    if not path.exists():
        console.print(f"[yellow]Source file not found: {path}[/yellow]")
        return None
    return path.read_text(encoding="utf-8")


def parse_wineries_csv(path: Path) -> list[WineryRecord]:
    """
    Parse the winery CSV (header row skipped, quoted commas honored).

    Columns: nameZh, region, country, website, wine.com, Vivino,
    Wine-Searcher, other.
    """
    content = _read_text(path)
    if content is None:
        return []

    marketplaces = ("wine.com", "vivino", "wine-searcher", "other")
    wineries = []
    rows = csv.reader(content.splitlines())
    next(rows, None)
    for row in rows:
        values = [v.strip() for v in row]
        if len(values) < 3 or not values[0]:
            continue
        links = {
            name: values[4 + i]
            for i, name in enumerate(marketplaces)
            if len(values) > 4 + i and values[4 + i].startswith("http")
        }
        wineries.append(
            WineryRecord(
                name_zh=values[0],
                region=values[1] or None,
                country=values[2] or None,
                website=values[3] if len(values) > 3 else None,
                marketplace_urls=links,
            )
        )
    return wineries


def _parse_listed_wine(line: str) -> Optional[WineRecord]:
    """'- 2022/2021 Signature Cabernet Sauvignon (note)' -> WineRecord."""
    text = re.sub(r"\s*\([^)]*\)\s*$", "", line.lstrip("-* ").strip())
    match = VINTAGE_PATTERN.search(text)
    if not match:
        return None
    vintage = int(match.group(1)) if match.group(1) else None
    name = VINTAGE_PATTERN.sub(" ", text).strip(" -/")
    if not name:
        return None
    return WineRecord(name_zh=name, name_en=name, vintage=vintage)


def parse_url_database(path: Path) -> dict[str, WineryRecord]:
    """
    Parse the URL database Markdown.

    Returns:
        Winery records keyed by name, each with its listed wines
    """
    content = _read_text(path)
    if content is None:
        return {}

    wineries: dict[str, WineryRecord] = {}
    current: Optional[WineryRecord] = None
    country: Optional[str] = None
    in_wine_list = False

    for raw in content.splitlines():
        line = raw.strip()
        if not line:
            continue

        heading = WINERY_HEADING.match(line)
        if heading:
            name = heading.group(1).strip()
            current = WineryRecord(name_zh=name, name_en=name, country=country)
            wineries[name] = current
            in_wine_list = False
            continue

        if line.startswith("#"):
            heading_country = _country_from_heading(line)
            if heading_country:
                country = heading_country
                current = None
            in_wine_list = False
            continue

        if current is None:
            continue

        if line.startswith("---"):
            in_wine_list = False
        elif line.startswith("**產區**"):
            current.region = line.split(":", 1)[-1].split("：", 1)[-1].strip() or None
        elif line.startswith("**官方網站**"):
            url = URL_PATTERN.search(line)
            current.website = url.group(0) if url else None
        elif line.startswith("**酒款商店**"):
            url = URL_PATTERN.search(line)
            current.wine_shop_url = url.group(0) if url else None
        elif line.startswith("**ProWine 清單酒款**"):
            in_wine_list = True
        elif in_wine_list and line.startswith("-"):
            wine = _parse_listed_wine(line)
            if wine:
                wine.country = current.country
                wine.region = current.region
                wine.winery_name = current.name_zh
                current.wines.append(wine)
        elif line.startswith("**"):
            in_wine_list = False

    return wineries


def parse_wine_list(path: Path) -> list[WineRecord]:
    """Parse 'N. Name 2020' lines, tagging each with the current country heading."""
    content = _read_text(path)
    if content is None:
        return []

    wines = []
    country: Optional[str] = None
    for raw in content.splitlines():
        line = raw.strip()
        if line.startswith("#"):
            country = _country_from_heading(line) or country
            continue
        match = LIST_LINE.match(line)
        if not match:
            continue
        vintage = None if match.group(2) == "NV" else int(match.group(2))
        name = match.group(1).strip()
        wines.append(WineRecord(name_zh=name, name_en=name, vintage=vintage, country=country))
    return wines


def load_wines_json(names_path: Path, sample_path: Path) -> list[WineRecord]:
    """
    Load wine names and sample records.

    Sample records win over bare names since they carry a known storefront URL.
    """
    by_name: dict[str, WineRecord] = {}

    names = _read_text(names_path)
    if names is not None:
        for name in json.loads(names):
            if isinstance(name, str) and name.strip():
                by_name[name.strip()] = WineRecord(name_zh=name, name_en=name)

    samples = _read_text(sample_path)
    if samples is not None:
        for item in json.loads(samples):
            name = (item.get("wine_name") or item.get("name") or "").strip()
            if not name:
                continue
            price = item.get("price")
            by_name[name] = WineRecord(
                name_zh=name,
                name_en=item.get("name_en") or name,
                known_url=item.get("prowine_url") or item.get("prowineUrl"),
                price=int(price) if isinstance(price, (int, float)) else None,
            )

    return list(by_name.values())


def parse_winery_links(path: Path) -> dict[str, str]:
    """'**Winery** - https://...' pairs, keyed by winery name."""
    content = _read_text(path)
    if content is None:
        return {}
    return {m.group(1).strip(): m.group(2).strip() for m in WINERY_LINK.finditer(content)}
