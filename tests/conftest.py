"""
Shared fixtures: zero-delay configs, mock HTTP transport, in-memory stores.
"""

from typing import Callable

import httpx
import pytest

from config.settings import MatchingConfig, PipelineConfig, ScraperConfig, StorageConfig, TrackingConfig
from src.extractors.http_fetcher import Fetcher, RequestThrottle
from src.matching.models import MatchTarget

BASE_URL = "http://prowine.test"


def html_page(title: str, body: str = "") -> str:
    return f"<html><head><title>{title}</title></head><body><h1>{title}</h1>{body}</body></html>"


class FakeSite:
    """
    Routes requests by full URL to canned responses.

    Unrouted URLs return 404. Every request is recorded in `requests`.
    """

    def __init__(self):
        self.routes: dict[str, Callable[[httpx.Request], httpx.Response]] = {}
        self.requests: list[httpx.Request] = []

    def html(self, url: str, html: str, status: int = 200) -> None:
        self.routes[url] = lambda request: httpx.Response(
            status, text=html, headers={"content-type": "text/html; charset=utf-8"}
        )

    def image(self, url: str, content_type: str = "image/jpeg", data: bytes = b"\xff\xd8img") -> None:
        self.routes[url] = lambda request: httpx.Response(
            200, content=data, headers={"content-type": content_type}
        )

    def status(self, url: str, status: int) -> None:
        self.routes[url] = lambda request: httpx.Response(status)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get(str(request.url))
        if route is None:
            return httpx.Response(404, text="not found")
        return route(request)

    def urls(self, method: str = "GET") -> list[str]:
        return [str(r.url) for r in self.requests if r.method == method]


@pytest.fixture
def scraper_config():
    return ScraperConfig(
        base_url=BASE_URL,
        max_retries=3,
        retry_backoff_seconds=0.5,
        request_delay_seconds=0.0,
        timeout_seconds=5.0,
    )


@pytest.fixture
def matching_config():
    return MatchingConfig()


@pytest.fixture
def site():
    return FakeSite()


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def fetcher(scraper_config, site, sleeps):
    client = httpx.Client(transport=httpx.MockTransport(site.handler))
    fetcher = Fetcher(
        scraper_config,
        client=client,
        throttle=RequestThrottle(0),
        sleep=sleeps.append,
    )
    yield fetcher
    client.close()


@pytest.fixture
def pipeline_config(scraper_config, tmp_path):
    return PipelineConfig(
        scraper=scraper_config,
        storage=StorageConfig(supabase_url=None, supabase_key=None, upload_images=False),
        tracking=TrackingConfig(backend="memory", base_dir=tmp_path),
    )


@pytest.fixture
def wine_target():
    return MatchTarget(
        entity_id="wine_chateau-exemple-2020",
        name_en="Château Exemple",
        name_zh="",
        slug="chateau-exemple-2020",
    )
