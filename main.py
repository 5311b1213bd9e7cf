#!/usr/bin/env python3
"""
ProWine Catalog ETL - Main Entry Point

Imports the importer's source files into the Supabase catalog and enriches
catalog wines and wineries with data scraped from prowine.com.tw and the
official winery websites.

Usage:
    python main.py import                 # Source files -> catalog
    python main.py enrich                 # Wines: image, description, price
    python main.py enrich wineries        # Wineries: logos
    python main.py --stats                # Ledger statistics
"""
import argparse
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent))

from rich.console import Console

from config.settings import MatchingConfig, PipelineConfig, StorageConfig, TrackingConfig

console = Console()

LEDGER_NAMES = {
    ("enrich", "wines"): "wines",
    ("enrich", "wineries"): "wineries",
    ("import", "wines"): "import",
    ("import", "wineries"): "import",
}


class CustomHelpFormatter(argparse.RawDescriptionHelpFormatter):
    """Custom formatter that preserves formatting and adds width."""

    def __init__(self, prog):
        super().__init__(prog, max_help_position=40, width=100)


def parse_args(argv=None):
    """Parse command line arguments."""

    epilog = """
━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
EXAMPLES
━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
  Import:
    python main.py import                   Reconcile source files, upsert catalog
    python main.py import --no-ai           Template copy instead of OpenAI
    python main.py import --dry-run         Import into an in-memory catalog

  Enrichment:
    python main.py enrich                   Match every wine on the storefront
    python main.py enrich -n 5              Quick test: 5 wines
    python main.py enrich --exhaustive      Probe every candidate URL, keep the best
    python main.py enrich --no-upload       Keep storefront image URLs (no CDN)
    python main.py enrich wineries          Scrape winery logos

  Progress Ledger:
    python main.py --stats                  Show ledger statistics
    python main.py enrich --reset-ledger    Forget progress, process everything again
    python main.py enrich --ledger-backend sqlite

━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
NOTES
━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
  • Interrupted runs resume from the ledger (data/<name>-progress.json)
  • Failed entities are retried on the next run
  • Requires .env file with SUPABASE_URL and SUPABASE_KEY
  • OPENAI_API_KEY enables vision validation and generated copy
"""

    parser = argparse.ArgumentParser(
        prog="python main.py",
        description="""
━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
                          PROWINE CATALOG ETL PIPELINE
━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
Keeps the wine catalog in Supabase in sync with:
  • The importer's source files (CSV, Markdown, JSON)
  • The prowine.com.tw storefront (images, descriptions, prices, ratings)
  • Official winery websites (logos)
""",
        epilog=epilog,
        formatter_class=CustomHelpFormatter,
    )

    parser.add_argument(
        "command",
        nargs="?",
        choices=["enrich", "import"],
        default="enrich",
        help="enrich catalog rows from the web, or import source files (default: enrich)",
    )
    parser.add_argument(
        "entity",
        nargs="?",
        choices=["wines", "wineries"],
        default="wines",
        help="Entity type to enrich (default: wines)",
    )

    # Run options group
    run_group = parser.add_argument_group("Run Options", "Control what and how much to process")

    run_group.add_argument(
        "--limit",
        "-n",
        type=int,
        default=None,
        metavar="NUM",
        help="Process at most NUM entities (default: all)",
    )

    run_group.add_argument(
        "--exhaustive",
        action="store_true",
        help="Probe every candidate URL and keep the best match (default: stop at first match)",
    )

    run_group.add_argument(
        "--delay",
        type=float,
        default=None,
        metavar="SEC",
        help="Minimum seconds between requests (default: 2.0)",
    )

    # Storage options group
    storage_group = parser.add_argument_group("Storage Options", "Control where data is saved")

    storage_group.add_argument(
        "--no-upload",
        action="store_true",
        help="Don't copy images to Supabase Storage (keep source URLs)",
    )

    storage_group.add_argument(
        "--dry-run",
        action="store_true",
        help="Write to an in-memory catalog instead of Supabase (nothing is saved)",
    )

    # Ledger group
    ledger_group = parser.add_argument_group("Progress Ledger", "Manage resumable progress tracking")

    ledger_group.add_argument(
        "--stats",
        action="store_true",
        help="Show ledger statistics and exit",
    )

    ledger_group.add_argument(
        "--reset-ledger",
        action="store_true",
        help="Clear the ledger before running",
    )

    ledger_group.add_argument(
        "--ledger",
        type=str,
        default=None,
        metavar="DIR",
        help="Ledger directory (default: ./data)",
    )

    ledger_group.add_argument(
        "--ledger-backend",
        type=str,
        default="json",
        choices=["json", "sqlite", "memory"],
        help="Ledger storage backend (default: json)",
    )

    # AI group
    ai_group = parser.add_argument_group(
        "AI Features", "AI-powered features (requires OPENAI_API_KEY in .env)"
    )

    ai_group.add_argument(
        "--no-ai",
        action="store_true",
        help="Disable vision validation and generated copy",
    )

    return parser.parse_args(argv)


def create_config(args) -> PipelineConfig:
    """Create pipeline configuration from arguments."""
    matching = MatchingConfig(stop_at_first_match=not args.exhaustive)
    storage = StorageConfig(upload_images=not args.no_upload)

    # Dry runs never touch the ledger files
    tracking = TrackingConfig(backend="memory" if args.dry_run else args.ledger_backend)
    if args.ledger:
        tracking.base_dir = Path(args.ledger)

    pipeline_config = PipelineConfig(matching=matching, storage=storage, tracking=tracking)
    if args.delay is not None:
        pipeline_config.scraper.request_delay_seconds = args.delay
    if args.no_ai:
        pipeline_config.ai.enabled = False
    return pipeline_config


def show_stats(pipeline_config: PipelineConfig) -> int:
    """Print statistics for every ledger."""
    from src.tracking import create_ledger

    for name in sorted(set(LEDGER_NAMES.values())):
        ledger = create_ledger(pipeline_config.tracking, name)
        ledger.load()
        console.print(f"\n[bold cyan]Ledger: {name}[/bold cyan]")
        ledger.print_stats()

    storage = pipeline_config.storage
    if storage.supabase_url and storage.supabase_key:
        from src.errors import PersistenceError
        from src.loaders.supabase_loader import SupabaseCatalogStore

        try:
            counts = SupabaseCatalogStore(config=storage).get_stats()
        except PersistenceError as e:
            console.print(f"[yellow]Could not read catalog counts: {e}[/yellow]")
        else:
            console.print("\n[bold cyan]Catalog[/bold cyan]")
            for table, count in counts.items():
                console.print(f"  {table}: {count}")
    return 0


def run(args, pipeline_config: PipelineConfig) -> dict:
    """Build the pipeline and run the selected command."""
    from src.loaders.catalog_store import InMemoryCatalogStore
    from src.pipeline import CatalogPipeline

    store = InMemoryCatalogStore() if args.dry_run else None
    pipeline = CatalogPipeline(pipeline_config, store=store, use_ai=not args.no_ai)

    try:
        if args.reset_ledger:
            name = LEDGER_NAMES[(args.command, args.entity)]
            pipeline.ledger(name).reset()
            console.print(f"[yellow]Cleared ledger '{name}'[/yellow]")

        if args.command == "import":
            return pipeline.import_sources(limit=args.limit)
        if args.entity == "wineries":
            return pipeline.enrich_wineries(limit=args.limit)
        return pipeline.enrich_wines(limit=args.limit)
    finally:
        pipeline.close()


def main(argv=None):
    """Main entry point."""
    args = parse_args(argv)
    pipeline_config = create_config(args)

    if args.stats:
        return show_stats(pipeline_config)

    console.print(f"[dim]Command:[/dim] {args.command} {args.entity}")
    console.print(f"[dim]Limit:[/dim] {args.limit or 'all'}")
    console.print(f"[dim]Exhaustive probing:[/dim] {args.exhaustive}")
    console.print(f"[dim]Upload images:[/dim] {not args.no_upload}")
    console.print(f"[dim]Dry run:[/dim] {args.dry_run}")
    console.print(f"[dim]Ledger backend:[/dim] {args.ledger_backend}")

    try:
        result = run(args, pipeline_config)
    except KeyboardInterrupt:
        console.print("\n[yellow]Pipeline cancelled by user (progress is saved in the ledger)[/yellow]")
        return 130
    except ValueError as e:
        # Missing credentials
        console.print(f"\n[bold red]Configuration error: {e}[/bold red]")
        return 2
    except Exception as e:
        console.print(f"\n[bold red]Unexpected error: {e}[/bold red]")
        return 1

    if result["failed"]:
        console.print(f"\n[yellow]Completed with {result['failed']} failure(s)[/yellow]")
        return 1

    console.print("\n[bold green]✓ Pipeline completed successfully![/bold green]")
    return 0


if __name__ == "__main__":
    sys.exit(main())
