"""
Catalog pipeline orchestrating source import, storefront enrichment and logo scraping.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from config.settings import PipelineConfig, config
from src.ai.copywriter import Copywriter
from src.ai.openai_client import OpenAIClient
from src.errors import FetchError
from src.extractors.http_fetcher import Fetcher
from src.extractors.logo_extractor import LogoExtractor
from src.extractors.source_files import (
    load_wines_json,
    parse_url_database,
    parse_wine_list,
    parse_wineries_csv,
    parse_winery_links,
)
from src.loaders.catalog_store import CatalogStore
from src.loaders.catalog_upserter import CatalogUpserter, UpsertAction, UpsertResult
from src.loaders.supabase_loader import SupabaseAssetUploader, SupabaseCatalogStore
from src.matching.models import MatchCandidate, MatchTarget
from src.matching.slugs import make_slug
from src.matching.urls import CandidateUrlBuilder
from src.processing.entity_processor import EntityOutcome, EntityProcessor, EntityState
from src.tracking import LedgerStatus, ProgressLedger, create_ledger
from src.transformers.record_transformer import Wine, Winery, reconcile, wine_entity, winery_entity
from src.validation.asset_validator import AssetValidator

console = Console()


@dataclass
class RunSummary:
    """Counters for one pipeline run."""

    mode: str
    total: int = 0
    created: int = 0
    updated: int = 0
    unchanged: int = 0
    skipped: int = 0
    already_done: int = 0
    failures: list[tuple[str, str]] = field(default_factory=list)

    @property
    def failed(self) -> int:
        return len(self.failures)

    def count_upsert(self, result: UpsertResult) -> None:
        if result.action is UpsertAction.CREATED:
            self.created += 1
        elif result.action is UpsertAction.UPDATED:
            self.updated += 1
        else:
            self.unchanged += 1

    def to_dict(self) -> dict:
        return {
            "mode": self.mode,
            "total": self.total,
            "created": self.created,
            "updated": self.updated,
            "unchanged": self.unchanged,
            "skipped": self.skipped,
            "already_done": self.already_done,
            "failed": self.failed,
            "failures": list(self.failures),
        }


def ledger_status(result: UpsertResult) -> LedgerStatus:
    """A write means 'updated'; an identical row means 'processed'."""
    if result.action is UpsertAction.UNCHANGED:
        return LedgerStatus.PROCESSED
    return LedgerStatus.UPDATED


def _names(row: dict) -> list[str]:
    return [n for n in (row.get("nameEn"), row.get("nameZh")) if n]


class CatalogPipeline:
    """
    ETL pipeline for the ProWine catalog.

    Modes:
    - import: reconcile the source files and upsert wineries, then wines
    - enrich wines: match catalog wines against the storefront (image, text, price)
    - enrich wineries: scrape logos from the official winery websites

    Every mode records per-entity outcomes in a progress ledger so an
    interrupted run resumes where it stopped.
    """

    def __init__(
        self,
        pipeline_config: Optional[PipelineConfig] = None,
        store: Optional[CatalogStore] = None,
        fetcher: Optional[Fetcher] = None,
        uploader: Optional[SupabaseAssetUploader] = None,
        ai_client: Optional[OpenAIClient] = None,
        use_ai: bool = True,
        ledgers: Optional[dict[str, ProgressLedger]] = None,
    ):
        self.config = pipeline_config or config
        self.store = store or SupabaseCatalogStore(config=self.config.storage)
        self.fetcher = fetcher or Fetcher(self.config.scraper)
        self._ledgers = dict(ledgers or {})

        # CDN uploads only make sense against the real store
        self.uploader = uploader
        if (
            self.uploader is None
            and self.config.storage.upload_images
            and isinstance(self.store, SupabaseCatalogStore)
        ):
            self.uploader = SupabaseAssetUploader(self.store.client, self.config.storage)

        self.ai_client = ai_client
        if self.ai_client is None and use_ai and self.config.ai.enabled:
            client = OpenAIClient()
            if client.is_available():
                self.ai_client = client
                console.print("[green]✓ OpenAI client initialized[/green]")
            else:
                console.print("[yellow]OpenAI not available, using heuristics and template copy[/yellow]")

        vision = self.ai_client if self.config.ai.vision_validation else None
        self.validator = AssetValidator(
            self.fetcher, vision_client=vision, min_quality=self.config.ai.vision_min_quality
        )
        self.copywriter = Copywriter(self.ai_client if self.config.ai.copywriting else None)

    def ledger(self, name: str) -> ProgressLedger:
        """Loaded ledger for one entity type, created on first use."""
        if name not in self._ledgers:
            ledger = create_ledger(self.config.tracking, name)
            ledger.load()
            self._ledgers[name] = ledger
        return self._ledgers[name]

    def close(self) -> None:
        self.fetcher.close()

    # ============================================
    # Wine enrichment
    # ============================================

    def wine_targets(self, wines: list[dict], wineries: list[dict]) -> list[MatchTarget]:
        """MatchTargets for catalog wine rows, with their winery as parent."""
        by_id = {row["id"]: row for row in wineries}
        targets = []
        for row in wines:
            winery = by_id.get(row.get("wineryId")) or {}
            own = set(_names(winery))
            others = [
                name
                for other in wineries
                if other is not winery
                for name in _names(other)
                if name not in own
            ]
            targets.append(
                MatchTarget(
                    entity_id=row["id"],
                    name_en=row.get("nameEn") or "",
                    name_zh=row.get("nameZh") or "",
                    slug=row.get("slug"),
                    known_url=row.get("sourceUrl"),
                    parent_name_en=winery.get("nameEn"),
                    parent_name_zh=winery.get("nameZh"),
                    country=row.get("country") or winery.get("country"),
                    other_parents=others,
                )
            )
        return targets

    def has_source_image(self, row: dict) -> bool:
        image = (row.get("mainImageUrl") or "").lower()
        return any(marker in image for marker in self.config.storage.source_image_markers)

    def _wine_from_match(
        self, target: MatchTarget, match: MatchCandidate, image_url: Optional[str]
    ) -> Wine:
        return Wine(
            id=target.entity_id,
            slug=target.slug or make_slug(target.name_en or target.name_zh),
            name_zh=target.name_zh or target.name_en,
            main_image_url=image_url,
            description_zh=match.text,
            price=match.price,
            region=match.region,
            ratings=match.ratings or None,
            source_url=match.url,
        )

    def wine_processor(self) -> EntityProcessor:
        upserter = CatalogUpserter(
            self.store, self.config.storage.wines_table, fill_only=("region",)
        )
        return EntityProcessor(
            fetcher=self.fetcher,
            upserter=upserter,
            entity_factory=self._wine_from_match,
            url_builder=CandidateUrlBuilder(self.config.scraper),
            validator=self.validator,
            uploader=self.uploader,
            matching=self.config.matching,
            scraper=self.config.scraper,
            image_folder=self.config.storage.wine_folder,
        )

    def _record_outcome(self, ledger: ProgressLedger, outcome: EntityOutcome, summary: RunSummary) -> None:
        entity_id = outcome.target.entity_id
        name = outcome.target.display_name

        if outcome.state is EntityState.DONE:
            summary.count_upsert(outcome.upsert)
            ledger.record(entity_id, ledger_status(outcome.upsert))
            source = outcome.match.url if outcome.match else ""
            console.print(
                f"[green]  ✓ {name}: {outcome.upsert.action.value}[/green] [dim]{source}[/dim]"
            )
        elif outcome.state is EntityState.SKIPPED:
            summary.skipped += 1
            ledger.record(entity_id, LedgerStatus.SKIPPED)
            console.print(f"[dim]  ⏭️  {name}: {outcome.reason}[/dim]")
        else:
            summary.failures.append((entity_id, outcome.reason))
            ledger.record(entity_id, LedgerStatus.FAILED, outcome.reason)
            console.print(f"[red]  ✗ {name}: {outcome.reason}[/red]")

    def enrich_wines(self, limit: Optional[int] = None) -> dict:
        """
        Match catalog wines against the storefront and patch their rows.

        Args:
            limit: Stop after this many entities were actually processed

        Returns:
            Summary dict (see RunSummary.to_dict)
        """
        start_time = datetime.now()
        self._print_header("Wine enrichment")
        summary = RunSummary(mode="enrich-wines")
        ledger = self.ledger("wines")

        wines = self.store.list_entities(self.config.storage.wines_table)
        wineries = self.store.list_entities(self.config.storage.wineries_table)
        rows = {row["id"]: row for row in wines}
        processor = self.wine_processor()
        console.print(f"[cyan]{len(wines)} wines in catalog[/cyan]")

        for target in self.wine_targets(wines, wineries):
            if limit and summary.total >= limit:
                break
            entity_id = target.entity_id
            if not ledger.should_process(entity_id):
                summary.already_done += 1
                continue
            if ledger.begin_retry(entity_id):
                console.print(f"[dim]  Retrying {target.display_name}[/dim]")

            summary.total += 1
            console.print(f"\n[bold magenta]{summary.total}. {target.display_name}[/bold magenta]")
            try:
                if self.has_source_image(rows[entity_id]):
                    outcome = processor.skip(target, "image already from storefront")
                else:
                    outcome = processor.process(target)
            except Exception as e:
                outcome = EntityOutcome(EntityState.FAILED, target, reason=f"{e.__class__.__name__}: {e}")
            self._record_outcome(ledger, outcome, summary)

        self._print_summary(summary, (datetime.now() - start_time).total_seconds())
        return summary.to_dict()

    # ============================================
    # Winery logos
    # ============================================

    def _mirror_image(self, image_url: str, folder: str, name: str) -> str:
        """Copy an image to the CDN; the source URL is kept when that fails."""
        if self.uploader is None:
            return image_url
        try:
            image = self.fetcher.fetch(image_url)
        except FetchError as e:
            console.print(f"[yellow]    Image download failed, keeping source URL: {e}[/yellow]")
            return image_url
        public_url = self.uploader.upload(
            image.content,
            folder,
            name,
            source_url=image_url,
            content_type=image.content_type or "image/png",
        )
        return public_url or image_url

    def _enrich_winery(
        self, row: dict, extractor: LogoExtractor, upserter: CatalogUpserter
    ) -> tuple[LedgerStatus, str, Optional[UpsertResult]]:
        if row.get("logoUrl"):
            return LedgerStatus.SKIPPED, "logo already set", None
        website = row.get("website")
        if not website:
            return LedgerStatus.SKIPPED, "no official website", None

        logo_url = extractor.extract(website)
        if not logo_url:
            return LedgerStatus.FAILED, f"no logo found on {website}", None

        slug = row.get("slug") or make_slug(row.get("nameEn") or row["nameZh"])
        winery = Winery(
            id=row["id"],
            slug=slug,
            name_zh=row["nameZh"],
            logo_url=self._mirror_image(logo_url, self.config.storage.winery_folder, slug),
        )
        result = upserter.upsert(winery)
        return ledger_status(result), logo_url, result

    def enrich_wineries(self, limit: Optional[int] = None) -> dict:
        """Scrape winery logos from their official websites."""
        start_time = datetime.now()
        self._print_header("Winery logos")
        summary = RunSummary(mode="enrich-wineries")
        ledger = self.ledger("wineries")
        upserter = CatalogUpserter(self.store, self.config.storage.wineries_table)
        extractor = LogoExtractor(self.fetcher)

        wineries = self.store.list_entities(self.config.storage.wineries_table)
        console.print(f"[cyan]{len(wineries)} wineries in catalog[/cyan]")

        for row in wineries:
            if limit and summary.total >= limit:
                break
            entity_id = row["id"]
            if not ledger.should_process(entity_id):
                summary.already_done += 1
                continue
            ledger.begin_retry(entity_id)
            summary.total += 1
            name = row.get("nameZh") or entity_id
            console.print(f"\n[bold magenta]{summary.total}. {name}[/bold magenta]")

            try:
                status, detail, result = self._enrich_winery(row, extractor, upserter)
            except Exception as e:
                status, detail, result = LedgerStatus.FAILED, f"{e.__class__.__name__}: {e}", None

            if status is LedgerStatus.FAILED:
                summary.failures.append((entity_id, detail))
                ledger.record(entity_id, status, detail)
                console.print(f"[red]  ✗ {detail}[/red]")
            elif status is LedgerStatus.SKIPPED:
                summary.skipped += 1
                ledger.record(entity_id, status)
                console.print(f"[dim]  ⏭️  {detail}[/dim]")
            else:
                summary.count_upsert(result)
                ledger.record(entity_id, status)
                console.print(f"[green]  ✓ Logo: {detail}[/green]")

        self._print_summary(summary, (datetime.now() - start_time).total_seconds())
        return summary.to_dict()

    # ============================================
    # Source import
    # ============================================

    def load_sources(self):
        """Parse and reconcile every configured source file."""
        sources = self.config.sources
        return reconcile(
            parse_wineries_csv(sources.path(sources.wineries_csv)),
            parse_url_database(sources.path(sources.url_database_md)),
            parse_wine_list(sources.path(sources.wine_list_md)),
            load_wines_json(
                sources.path(sources.wines_list_json),
                sources.path(sources.wines_sample_json),
            ),
            parse_winery_links(sources.path(sources.winery_links_md)),
        )

    def _import_entity(
        self, entity, upserter: CatalogUpserter, ledger: ProgressLedger, summary: RunSummary
    ) -> Optional[str]:
        """Upsert one entity; returns its id, or None when it failed."""
        entity_id = entity.stable_id()
        try:
            result = upserter.upsert(entity)
        except Exception as e:
            reason = f"{e.__class__.__name__}: {e}"
            summary.failures.append((entity_id, reason))
            ledger.record(entity_id, LedgerStatus.FAILED, reason)
            console.print(f"[red]  ✗ {entity.name_zh}: {reason}[/red]")
            return None
        summary.count_upsert(result)
        ledger.record(entity_id, ledger_status(result))
        console.print(f"[green]  ✓ {entity.name_zh}: {result.action.value}[/green]")
        return result.id

    def import_sources(self, limit: Optional[int] = None) -> dict:
        """
        Import the source files into the catalog.

        Wineries are upserted first so wines can reference them. Entities
        already recorded in the ledger are not regenerated (copy generation
        is the expensive part).

        Args:
            limit: Maximum wineries, and separately wines, to import
        """
        start_time = datetime.now()
        self._print_header("Source import")
        summary = RunSummary(mode="import")
        catalog = self.load_sources()
        console.print(
            f"[cyan]Reconciled {len(catalog.wineries)} wineries and {len(catalog.wines)} wines[/cyan]"
        )

        ledger = self.ledger("import")
        winery_upserter = CatalogUpserter(self.store, self.config.storage.wineries_table)
        wine_upserter = CatalogUpserter(self.store, self.config.storage.wines_table)
        winery_ids: dict[str, str] = {}

        console.print("\n[bold blue]═══ WINERIES ═══[/bold blue]")
        for record in catalog.wineries[:limit] if limit else catalog.wineries:
            stub = winery_entity(record)
            if not ledger.should_process(stub.stable_id()):
                winery_ids[record.name_zh] = stub.stable_id()
                summary.already_done += 1
                continue
            ledger.begin_retry(stub.stable_id())
            summary.total += 1
            copy = self.copywriter.winery_copy(record)
            entity = winery_entity(record, **copy.model_dump(exclude_none=True))
            entity_id = self._import_entity(entity, winery_upserter, ledger, summary)
            if entity_id:
                winery_ids[record.name_zh] = entity_id

        console.print("\n[bold blue]═══ WINES ═══[/bold blue]")
        for record in catalog.wines[:limit] if limit else catalog.wines:
            winery = catalog.winery_for(record)
            stub = wine_entity(record)
            if not ledger.should_process(stub.stable_id()):
                summary.already_done += 1
                continue
            ledger.begin_retry(stub.stable_id())
            summary.total += 1
            winery_id = winery_ids.get(winery.name_zh) if winery else None
            copy = self.copywriter.wine_copy(record, winery.name_zh if winery else "")
            content = copy.model_dump(exclude_none=True)
            content["ratings"] = content.get("ratings") or None
            entity = wine_entity(record, winery_id, **content)
            self._import_entity(entity, wine_upserter, ledger, summary)

        self._print_summary(summary, (datetime.now() - start_time).total_seconds())
        return summary.to_dict()

    # ============================================
    # Output
    # ============================================

    def _print_header(self, title: str):
        """Print pipeline header."""
        store_name = self.store.__class__.__name__
        header = Panel(
            f"[bold white]PROWINE CATALOG ETL: {title.upper()}[/bold white]\n"
            f"[dim]Storefront: {self.config.scraper.base_url}[/dim]\n"
            f"[dim]Catalog store: {store_name}[/dim]\n"
            f"[dim]CDN uploads: {'on' if self.uploader else 'off'} | "
            f"AI: {'on' if self.ai_client else 'off'} | "
            f"Ledger: {self.config.tracking.backend}[/dim]",
            title="🍷 Catalog ETL",
            border_style="blue",
        )
        console.print(header)

    def _print_summary(self, summary: RunSummary, elapsed: float):
        """Print final run summary and the aggregate failure list."""
        table = Table(title="Pipeline Results", show_header=True)
        table.add_column("Metric", style="cyan")
        table.add_column("Value", style="green")

        table.add_row("Processed", str(summary.total))
        table.add_row("Created", str(summary.created))
        table.add_row("Updated", str(summary.updated))
        table.add_row("Unchanged", str(summary.unchanged))
        table.add_row("Skipped", str(summary.skipped))
        table.add_row("Already done (ledger)", str(summary.already_done))
        table.add_row("Failed", f"[red]{summary.failed}[/red]" if summary.failed else "0")
        table.add_row("HTTP requests", str(self.fetcher.request_count))
        table.add_row("Time Elapsed", f"{elapsed:.1f} seconds")

        console.print("\n")
        console.print(table)

        if summary.failures:
            console.print("\n[bold red]Failures:[/bold red]")
            for entity_id, reason in summary.failures:
                console.print(f"  • [cyan]{entity_id}[/cyan]: {reason}")
