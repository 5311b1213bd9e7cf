"""
Configuration settings for the ProWine catalog ETL pipeline.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Load .env file from project root (SUPABASE_URL, SUPABASE_KEY, OPENAI_API_KEY)
load_dotenv(Path(__file__).parent.parent / ".env")


@dataclass
class ScraperConfig:
    """Configuration for the HTTP fetcher and candidate URL builder."""

    # Target site (WordPress storefront, no API)
    base_url: str = "http://prowine.com.tw"
    entity_param: str = "wine"  # ?wine=<slug> direct page
    search_param: str = "s"  # ?s=<query> search results
    category_param: str = "wine_area"  # ?wine_area=<country> browse

    # Country -> category browse value
    country_slugs: dict = field(
        default_factory=lambda: {
            "france": "france",
            "法國": "france",
            "usa": "usa",
            "united states": "usa",
            "美國": "usa",
            "spain": "spain",
            "西班牙": "spain",
        }
    )

    # Retry policy
    max_retries: int = 3
    retry_backoff_seconds: float = 2.0  # Linear: backoff * attempt

    # Rate limiting (one request at a time, process-wide)
    request_delay_seconds: float = 2.0
    timeout_seconds: float = 60.0

    user_agent: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    )
    accept: str = "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"
    accept_language: str = "zh-TW,zh;q=0.9,en;q=0.8"

    @property
    def headers(self) -> dict:
        """Headers sent with every request."""
        return {
            "User-Agent": self.user_agent,
            "Accept": self.accept,
            "Accept-Language": self.accept_language,
        }


@dataclass
class MatchingConfig:
    """Scoring weights and acceptance thresholds for page matching.

    The numbers were tuned by hand against the storefront; treat them as
    knobs, not constants.
    """

    keyword_min_length: int = 4  # Tokens of length <= 3 are discarded
    max_keywords: int = 8

    # Direct page acceptance
    leading_text_length: int = 500
    keyword_hit_weight: int = 15
    prefix_bonus: int = 50
    prefix_length: int = 10
    min_prefix_length: int = 4
    page_acceptance_score: int = 30  # 2 keyword hits, or a prefix match

    # Link scoring on search / category pages
    link_keyword_weight: int = 15
    link_min_keyword_hits: int = 2
    link_slug_bonus: int = 80
    link_slug_min_length: int = 10
    link_prefix_length: int = 20
    link_prefix_length_zh: int = 10
    link_href_keyword_weight: int = 20
    parent_bonus: int = 25
    parent_mismatch_penalty: int = 100
    link_min_score: int = 40

    # Image scoring
    content_asset_markers: tuple = ("/uploads/",)
    image_path_bonus: int = 100
    image_slug_bonus: int = 50
    image_extension_bonus: int = 20
    image_large_bonus: int = 15
    image_small_penalty: int = 50
    image_large_px: int = 300
    image_small_px: int = 100
    image_min_score: int = 100
    image_exclude_keywords: tuple = (
        "logo",
        "logotype",
        "brand",
        "warning",
        "blog",
        "kv-",
        "theme",
        "icon",
        "banner",
        "header",
        "footer",
        "favicon",
        "avatar",
        "profile",
        "user",
        "admin",
        "ajax-loader",
        "g.gif",
    )
    image_alt_exclude_keywords: tuple = ("logo", "brand", "傳送中")

    # Text extraction
    description_marker: str = "酒品介紹"
    description_selectors: tuple = (".single-wine-content", ".entry-content")
    description_max_length: int = 5000
    price_pattern: str = r"品酩價\s*[：:]\s*([\d,]+)\s*元"
    region_pattern: str = r"(?:產區|Region)\s*[：:]\s*([^\n|]{2,60})"
    rating_sources: tuple = (
        "Decanter",
        "James Suckling",
        "Wine Spectator",
        "Wine Enthusiast",
        "Robert Parker",
    )

    # Probing
    stop_at_first_match: bool = True  # False: probe every candidate, keep the best


@dataclass
class StorageConfig:
    """Configuration for the catalog store and image CDN."""

    supabase_url: Optional[str] = field(default_factory=lambda: os.getenv("SUPABASE_URL"))
    supabase_key: Optional[str] = field(default_factory=lambda: os.getenv("SUPABASE_KEY"))

    wines_table: str = "wines"
    wineries_table: str = "wineries"
    page_size: int = 100

    # Image CDN (Supabase Storage)
    upload_images: bool = True
    bucket_name: str = "catalog-images"
    wine_folder: str = "prowine/wines"
    winery_folder: str = "prowine/logos"

    # Images already coming from the storefront are not re-scraped
    source_image_markers: tuple = ("prowine.com.tw", "prowine")


@dataclass
class TrackingConfig:
    """Configuration for the progress ledger."""

    enabled: bool = True
    backend: str = "json"  # json | sqlite | memory
    base_dir: Path = field(
        default_factory=lambda: Path(__file__).parent.parent / "data"
    )

    def ledger_path(self, name: str) -> Path:
        """Ledger location for one entity type (e.g. 'wines')."""
        suffix = ".db" if self.backend == "sqlite" else ".json"
        return self.base_dir / f"{name}-progress{suffix}"

    def ensure_dirs(self) -> None:
        """Create tracking directory if it doesn't exist."""
        self.base_dir.mkdir(parents=True, exist_ok=True)


@dataclass
class SourceConfig:
    """Location of the raw source files used by the import mode."""

    base_dir: Path = field(
        default_factory=lambda: Path(__file__).parent.parent / "data" / "sources"
    )
    wineries_csv: str = "wineries_url_table.csv"
    url_database_md: str = "wineries_url_database.md"
    wine_list_md: str = "wine_list.md"
    wines_list_json: str = "all_wines_list.json"
    wines_sample_json: str = "wines_sample_data.json"
    winery_links_md: str = "wineries_complete_list.md"

    def path(self, name: str) -> Path:
        return self.base_dir / name


@dataclass
class AIConfig:
    """Optional OpenAI features (vision validation, copy generation)."""

    enabled: bool = field(default_factory=lambda: bool(os.getenv("OPENAI_API_KEY")))
    vision_validation: bool = True
    copywriting: bool = True
    vision_min_quality: int = 70


@dataclass
class PipelineConfig:
    """Main configuration combining all settings."""

    scraper: ScraperConfig = field(default_factory=ScraperConfig)
    matching: MatchingConfig = field(default_factory=MatchingConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    tracking: TrackingConfig = field(default_factory=TrackingConfig)
    sources: SourceConfig = field(default_factory=SourceConfig)
    ai: AIConfig = field(default_factory=AIConfig)

    def __post_init__(self):
        """Ensure all necessary directories exist."""
        if self.tracking.enabled and self.tracking.backend != "memory":
            self.tracking.ensure_dirs()


# Default configuration instance
config = PipelineConfig()
