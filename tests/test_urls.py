"""
Tests for the candidate URL builder.
"""

from urllib.parse import parse_qs, urlparse

from src.matching.models import CandidateKind, MatchTarget
from src.matching.urls import CandidateUrlBuilder


def _param(url: str, name: str) -> str:
    return parse_qs(urlparse(url).query)[name][0]


class TestCandidateUrlBuilder:
    def test_known_url_comes_first(self, scraper_config):
        target = MatchTarget(
            entity_id="w1",
            name_en="Opus One",
            known_url="http://prowine.test/?wine=opus-one-2019",
        )
        candidates = CandidateUrlBuilder(scraper_config).build(target)

        assert candidates[0].url == "http://prowine.test/?wine=opus-one-2019"
        assert candidates[0].known
        assert not any(c.known for c in candidates[1:])

    def test_order_search_then_direct_then_category(self, scraper_config):
        target = MatchTarget(
            entity_id="w1",
            name_en="Château Exemple Grand Vin 2020",
            country="France",
        )
        kinds = [c.kind for c in CandidateUrlBuilder(scraper_config).build(target)]

        first_direct = kinds.index(CandidateKind.DIRECT_PAGE)
        assert all(k is CandidateKind.SEARCH for k in kinds[:first_direct])
        assert kinds[-1] is CandidateKind.CATEGORY_BROWSE
        assert CandidateKind.SEARCH not in kinds[first_direct:]

    def test_direct_urls_use_slug_variants(self, scraper_config):
        target = MatchTarget(entity_id="w1", name_en="Château Exemple 2020 Rouge")
        builder = CandidateUrlBuilder(scraper_config)
        slugs = [
            _param(c.url, "wine")
            for c in builder.build(target)
            if c.kind is CandidateKind.DIRECT_PAGE
        ]

        assert slugs[:3] == ["chateau-exemple-2020-rouge", "chateau-exemple-rouge", "chateau-exemple"]

    def test_stored_slug_probed_before_variants(self, scraper_config):
        target = MatchTarget(entity_id="w1", name_en="Opus One", slug="opus-one-napa")
        direct = [
            c for c in CandidateUrlBuilder(scraper_config).build(target)
            if c.kind is CandidateKind.DIRECT_PAGE
        ]

        assert _param(direct[0].url, "wine") == "opus-one-napa"

    def test_parent_compound_slug(self, scraper_config):
        target = MatchTarget(entity_id="w1", name_en="Reserve Cabernet", parent_name_en="Lusty Winery")
        labels = [c.label for c in CandidateUrlBuilder(scraper_config).build(target)]

        assert "lusty-winery-reserve-cabernet" in labels

    def test_search_queries(self, scraper_config):
        target = MatchTarget(entity_id="w1", name_en="Château d'Exemple Grand Cru Classé", name_zh="樂事酒莊 特級")
        queries = CandidateUrlBuilder(scraper_config).search_queries(target)

        assert queries[0] == "Chateau d'Exemple Grand"
        assert "樂事酒莊 特級" in queries
        assert "Chateau dExemple Grand" in queries
        assert queries[-1] == "Chateau"

    def test_search_query_is_url_encoded(self, scraper_config):
        target = MatchTarget(entity_id="w1", name_en="Opus Overture")
        search = [
            c for c in CandidateUrlBuilder(scraper_config).build(target)
            if c.kind is CandidateKind.SEARCH
        ]

        assert search[0].url == "http://prowine.test/?s=Opus+Overture"

    def test_no_duplicate_urls(self, scraper_config):
        target = MatchTarget(
            entity_id="w1",
            name_en="Opus One",
            slug="opus-one",
            known_url="http://prowine.test/?wine=opus-one",
        )
        urls = [c.url for c in CandidateUrlBuilder(scraper_config).build(target)]

        assert len(urls) == len(set(urls))
        assert urls[0] == "http://prowine.test/?wine=opus-one"

    def test_unknown_country_has_no_category_url(self, scraper_config):
        target = MatchTarget(entity_id="w1", name_en="Opus One", country="Atlantis")
        kinds = {c.kind for c in CandidateUrlBuilder(scraper_config).build(target)}

        assert CandidateKind.CATEGORY_BROWSE not in kinds

    def test_chinese_country_name(self, scraper_config):
        target = MatchTarget(entity_id="w1", name_en="Opus One", country="美國")
        candidates = CandidateUrlBuilder(scraper_config).build(target)

        assert candidates[-1].url == "http://prowine.test/?wine_area=usa"
