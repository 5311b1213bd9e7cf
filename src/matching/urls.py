"""
Candidate URL builder.

Expands a MatchTarget into the ordered list of storefront URLs to probe:
known URL first, then search pages, then direct slug guesses, then
category browsing.
"""

import re
from typing import Optional
from urllib.parse import urlencode

from config.settings import ScraperConfig
from src.matching.keywords import APOSTROPHES, fold_accents
from src.matching.models import CandidateKind, CandidateUrl, MatchTarget
from src.matching.slugs import CJK_PATTERN, generate_slug_variants

SEARCH_WORDS = 3
MIN_SEARCH_WORD_LENGTH = 4


def _long_words(name: str) -> list[str]:
    words = re.findall(r"[\w'’-]+", CJK_PATTERN.sub(" ", fold_accents(name or "")))
    return [w for w in words if len(w) >= MIN_SEARCH_WORD_LENGTH and not w.isdigit()]


class CandidateUrlBuilder:
    """Builds probe URLs for the storefront's three URL shapes."""

    def __init__(self, config: Optional[ScraperConfig] = None):
        self.config = config or ScraperConfig()

    def _url(self, param: str, value: str) -> str:
        return f"{self.config.base_url.rstrip('/')}/?{urlencode({param: value})}"

    def direct_url(self, slug: str) -> str:
        return self._url(self.config.entity_param, slug)

    def search_url(self, query: str) -> str:
        return self._url(self.config.search_param, query)

    def category_url(self, value: str) -> str:
        return self._url(self.config.category_param, value)

    def search_queries(self, target: MatchTarget) -> list[str]:
        """Search strings, most specific first."""
        queries = []
        words = _long_words(target.name_en)
        if words:
            queries.append(" ".join(words[:SEARCH_WORDS]))

        cjk_runs = CJK_PATTERN.findall(target.name_zh or "")
        if cjk_runs:
            queries.append(" ".join(cjk_runs[:2]))

        plain = [APOSTROPHES.sub("", w) for w in words[:SEARCH_WORDS]]
        if plain:
            queries.append(" ".join(plain))

        # Leading brand word
        if words:
            queries.append(words[0])

        return queries

    def direct_slugs(self, target: MatchTarget) -> list[str]:
        """Slug guesses: stored slug, name variants, parent+name compounds."""
        slugs = []
        if target.slug:
            slugs.append(target.slug)
        slugs.extend(generate_slug_variants(target.name_en))
        slugs.extend(generate_slug_variants(target.name_zh))

        wine_slug = next(iter(generate_slug_variants(target.name_en)), "")
        parent_slug = next(iter(generate_slug_variants(target.parent_name_en or "")), "")
        if wine_slug and parent_slug and not wine_slug.startswith(parent_slug):
            slugs.append(f"{parent_slug}-{wine_slug}")
        return slugs

    def category_value(self, target: MatchTarget) -> Optional[str]:
        if not target.country:
            return None
        return self.config.country_slugs.get(target.country.strip().lower())

    def build(self, target: MatchTarget) -> list[CandidateUrl]:
        """
        Build the ordered, de-duplicated probe list for a target.

        Args:
            target: The entity being matched

        Returns:
            CandidateUrl list in probe order
        """
        candidates: list[CandidateUrl] = []
        if target.known_url:
            candidates.append(
                CandidateUrl(target.known_url, CandidateKind.DIRECT_PAGE, known=True, label="known")
            )
        for query in self.search_queries(target):
            candidates.append(CandidateUrl(self.search_url(query), CandidateKind.SEARCH, label=query))
        for slug in self.direct_slugs(target):
            candidates.append(CandidateUrl(self.direct_url(slug), CandidateKind.DIRECT_PAGE, label=slug))
        category = self.category_value(target)
        if category:
            candidates.append(
                CandidateUrl(self.category_url(category), CandidateKind.CATEGORY_BROWSE, label=category)
            )

        seen = set()
        ordered = []
        for candidate in candidates:
            if candidate.url in seen:
                continue
            seen.add(candidate.url)
            ordered.append(candidate)
        return ordered
