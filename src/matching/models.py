"""
Data structures shared by the URL builder, the scorer and the entity processor.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class CandidateKind(str, Enum):
    """How a candidate URL is expected to lead to the entity."""

    DIRECT_PAGE = "direct-page"
    SEARCH = "search"
    CATEGORY_BROWSE = "category-browse"

    @property
    def is_listing(self) -> bool:
        return self is not CandidateKind.DIRECT_PAGE


@dataclass
class MatchTarget:
    """What we are looking for on the storefront."""

    entity_id: str
    name_en: str = ""
    name_zh: str = ""
    slug: Optional[str] = None
    known_url: Optional[str] = None
    parent_name_en: Optional[str] = None
    parent_name_zh: Optional[str] = None
    country: Optional[str] = None
    other_parents: list[str] = field(default_factory=list)

    @property
    def display_name(self) -> str:
        return self.name_zh or self.name_en or self.entity_id

    @property
    def names(self) -> list[str]:
        return [n for n in (self.name_en, self.name_zh) if n]

    @property
    def parent_names(self) -> list[str]:
        return [n for n in (self.parent_name_en, self.parent_name_zh) if n]


@dataclass
class CandidateUrl:
    """A URL to probe, in probe order."""

    url: str
    kind: CandidateKind
    known: bool = False
    label: str = ""


@dataclass
class ScoredLink:
    """An in-page link on a search or category page."""

    url: str
    text: str
    score: int
    position: int


@dataclass
class ScoredImage:
    url: str
    score: int
    alt: str = ""
    width: Optional[int] = None
    height: Optional[int] = None


@dataclass
class PageMatch:
    """Outcome of the direct-page acceptance check."""

    accepted: bool
    score: int
    keyword_hits: int
    prefix_matched: bool
    heading: str = ""


@dataclass
class MatchCandidate:
    """Data extracted from one accepted page."""

    url: str
    kind: CandidateKind
    score: int
    probe_index: int = 0
    heading: str = ""
    image_url: Optional[str] = None
    text: Optional[str] = None
    price: Optional[int] = None
    region: Optional[str] = None
    ratings: dict = field(default_factory=dict)
    known: bool = False

    @property
    def has_data(self) -> bool:
        return bool(self.image_url or self.text or self.price is not None)


@dataclass
class PageScore:
    """Result of scoring one fetched page."""

    match: Optional[MatchCandidate] = None
    links: list[ScoredLink] = field(default_factory=list)
    reason: str = ""
