"""
Winery logo extraction from official winery websites.
"""

from typing import Optional
from urllib.parse import urljoin

from bs4 import BeautifulSoup
from rich.console import Console

from src.errors import FetchError
from src.extractors.http_fetcher import Fetcher

console = Console()

# Most specific first
LOGO_SELECTORS = (
    'img[alt*="logo" i]',
    'img[class*="logo" i]',
    'img[id*="logo" i]',
    'img[src*="logo" i]',
    ".logo img",
    "#logo img",
    ".site-logo img",
    ".custom-logo",
    "header img",
    ".header img",
    "nav img",
)


def find_logo_urls(html: str, page_url: str) -> list[str]:
    """Candidate logo URLs on a page, in selector priority order."""
    soup = BeautifulSoup(html or "", "html.parser")
    urls = []
    for selector in LOGO_SELECTORS:
        for img in soup.select(selector):
            src = img.get("src") or img.get("data-src")
            if not src or src.startswith("data:"):
                continue
            url = urljoin(page_url, src.strip())
            if url not in urls:
                urls.append(url)
    return urls


class LogoExtractor:
    """Finds a reachable logo image on a winery's official site."""

    def __init__(self, fetcher: Fetcher, max_checks: int = 3):
        self.fetcher = fetcher
        self.max_checks = max_checks

    def extract(self, website: str) -> Optional[str]:
        """
        Fetch the homepage and return the first logo URL that serves an image.

        Args:
            website: Official site URL

        Returns:
            Absolute logo URL, or None
        """
        if not website:
            return None
        try:
            page = self.fetcher.fetch(website)
        except FetchError as e:
            console.print(f"[yellow]    Could not load {website}: {e}[/yellow]")
            return None

        for url in find_logo_urls(page.body, page.url)[: self.max_checks]:
            try:
                response = self.fetcher.head(url)
            except FetchError:
                continue
            if response.content_type.startswith("image/"):
                return url
        return None
