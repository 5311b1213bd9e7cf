"""
Per-entity processing as an explicit state machine.

    PROBE_NEXT -> FETCH -> SCORE -> ACCEPT | NEXT_CANDIDATE
    ACCEPT -> VALIDATE -> UPLOAD -> PERSIST -> DONE
    (candidates exhausted, nothing accepted) -> NO_MATCH
    (store failure) -> FAILED
    (enrichment not needed) -> SKIPPED

Each state is a method that inspects the probe context and returns the next
state, so every exhaustion and fallback path can be tested in isolation.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional

from rich.console import Console

from config.settings import MatchingConfig, ScraperConfig
from src.errors import (
    FetchError,
    NoMatchError,
    NotFoundError,
    PersistenceError,
    ValidationRejectedError,
)
from src.extractors.http_fetcher import Fetcher, FetchResult
from src.loaders.catalog_upserter import CatalogUpserter, UpsertResult
from src.loaders.supabase_loader import SupabaseAssetUploader
from src.matching.models import CandidateKind, CandidateUrl, MatchCandidate, MatchTarget, PageScore
from src.matching.scorer import score_page
from src.matching.urls import CandidateUrlBuilder
from src.transformers.record_transformer import CatalogEntity
from src.validation.asset_validator import AssetValidator, ValidationResult

console = Console()


class EntityState(str, Enum):
    PROBE_NEXT = "probe_next"
    FETCH = "fetch"
    SCORE = "score"
    ACCEPT = "accept"
    NEXT_CANDIDATE = "next_candidate"
    VALIDATE = "validate"
    UPLOAD = "upload"
    PERSIST = "persist"
    DONE = "done"
    NO_MATCH = "no_match"
    FAILED = "failed"
    SKIPPED = "skipped"


TERMINAL_STATES = {
    EntityState.DONE,
    EntityState.NO_MATCH,
    EntityState.FAILED,
    EntityState.SKIPPED,
}


@dataclass
class ProbeAttempt:
    """What happened to one probed URL."""

    url: str
    kind: CandidateKind
    outcome: str  # fetched | not-found | fetch-error | no-match | accepted
    detail: str = ""


@dataclass
class ProbeContext:
    target: MatchTarget
    candidates: list[CandidateUrl]
    index: int = 0
    current: Optional[CandidateUrl] = None
    page: Optional[FetchResult] = None
    pending: Optional[MatchCandidate] = None
    best: Optional[MatchCandidate] = None
    image_url: Optional[str] = None
    validation: Optional[ValidationResult] = None
    upsert: Optional[UpsertResult] = None
    reason: str = ""
    visited: set = field(default_factory=set)
    attempts: list[ProbeAttempt] = field(default_factory=list)
    trace: list[EntityState] = field(default_factory=list)

    def note(self, outcome: str, detail: str = "", url: Optional[str] = None) -> None:
        self.attempts.append(
            ProbeAttempt(url or self.current.url, self.current.kind, outcome, detail)
        )


@dataclass
class EntityOutcome:
    state: EntityState
    target: MatchTarget
    match: Optional[MatchCandidate] = None
    image_url: Optional[str] = None
    validation: Optional[ValidationResult] = None
    upsert: Optional[UpsertResult] = None
    reason: str = ""
    attempts: list[ProbeAttempt] = field(default_factory=list)
    trace: list[EntityState] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.state is EntityState.DONE


EntityFactory = Callable[[MatchTarget, MatchCandidate, Optional[str]], CatalogEntity]


class EntityProcessor:
    """
    Resolves one MatchTarget against the storefront and persists the result.

    Probing is strictly sequential. With stop_at_first_match the first
    accepted page ends probing; otherwise every candidate is probed and the
    highest score wins (earliest probe on ties). A known URL that matches
    always ends probing.
    """

    def __init__(
        self,
        fetcher: Fetcher,
        upserter: CatalogUpserter,
        entity_factory: EntityFactory,
        url_builder: Optional[CandidateUrlBuilder] = None,
        validator: Optional[AssetValidator] = None,
        uploader: Optional[SupabaseAssetUploader] = None,
        matching: Optional[MatchingConfig] = None,
        scraper: Optional[ScraperConfig] = None,
        image_folder: str = "prowine/wines",
    ):
        self.fetcher = fetcher
        self.upserter = upserter
        self.entity_factory = entity_factory
        self.scraper = scraper or fetcher.config
        self.url_builder = url_builder or CandidateUrlBuilder(self.scraper)
        self.validator = validator
        self.uploader = uploader
        self.matching = matching or MatchingConfig()
        self.image_folder = image_folder

        self._handlers = {
            EntityState.PROBE_NEXT: self._probe_next,
            EntityState.FETCH: self._fetch,
            EntityState.SCORE: self._score,
            EntityState.ACCEPT: self._accept,
            EntityState.NEXT_CANDIDATE: self._next_candidate,
            EntityState.VALIDATE: self._validate,
            EntityState.UPLOAD: self._upload,
            EntityState.PERSIST: self._persist,
        }

    def process(self, target: MatchTarget) -> EntityOutcome:
        """Run the state machine for one entity until a terminal state."""
        ctx = ProbeContext(target=target, candidates=self.url_builder.build(target))
        state = EntityState.PROBE_NEXT
        while state not in TERMINAL_STATES:
            ctx.trace.append(state)
            state = self._handlers[state](ctx)
        ctx.trace.append(state)

        return EntityOutcome(
            state=state,
            target=target,
            match=ctx.best,
            image_url=ctx.image_url,
            validation=ctx.validation,
            upsert=ctx.upsert,
            reason=ctx.reason,
            attempts=ctx.attempts,
            trace=ctx.trace,
        )

    def skip(self, target: MatchTarget, reason: str) -> EntityOutcome:
        """Terminal outcome for an entity that needs no enrichment."""
        return EntityOutcome(
            state=EntityState.SKIPPED,
            target=target,
            reason=reason,
            trace=[EntityState.SKIPPED],
        )

    # ---- probing -------------------------------------------------------

    def _probe_next(self, ctx: ProbeContext) -> EntityState:
        if ctx.index >= len(ctx.candidates):
            if ctx.best is not None:
                return EntityState.VALIDATE
            ctx.reason = f"no match in {len(ctx.candidates)} candidate URL(s)"
            return EntityState.NO_MATCH
        ctx.current = ctx.candidates[ctx.index]
        ctx.index += 1
        ctx.page = None
        ctx.pending = None
        return EntityState.FETCH

    def _fetch(self, ctx: ProbeContext) -> EntityState:
        url = ctx.current.url
        if url in ctx.visited:
            return EntityState.NEXT_CANDIDATE
        ctx.visited.add(url)
        try:
            ctx.page = self.fetcher.fetch(url)
        except NotFoundError:
            ctx.note("not-found")
            return EntityState.NEXT_CANDIDATE
        except FetchError as e:
            ctx.note("fetch-error", str(e))
            return EntityState.NEXT_CANDIDATE
        ctx.note("fetched")
        return EntityState.SCORE

    def _score_html(self, page: FetchResult, kind: CandidateKind, target: MatchTarget) -> PageScore:
        return score_page(page.body, page.url, kind, target, self.matching, self.scraper)

    def _follow_best_link(self, ctx: ProbeContext, listing: PageScore) -> PageScore:
        """Fetch the best unvisited link of a listing page and re-check it as a direct page."""
        link = next((l for l in listing.links if l.url not in ctx.visited), None)
        if link is None:
            return PageScore(reason=listing.reason or "no unvisited link to follow")
        ctx.visited.add(link.url)
        try:
            page = self.fetcher.fetch(link.url)
        except FetchError as e:
            return PageScore(reason=f"link {link.url} failed: {e}")
        result = self._score_html(page, CandidateKind.DIRECT_PAGE, ctx.target)
        if result.match is None:
            result.reason = f"followed {link.url}: {result.reason}"
        return result

    def _match_page(self, ctx: ProbeContext) -> MatchCandidate:
        """Score the fetched page; raises NoMatchError when it is not the target."""
        result = self._score_html(ctx.page, ctx.current.kind, ctx.target)
        if ctx.current.kind.is_listing:
            result = self._follow_best_link(ctx, result)
        if result.match is None:
            raise NoMatchError(ctx.current.url, result.reason)
        result.match.probe_index = ctx.index - 1
        result.match.known = ctx.current.known
        return result.match

    def _score(self, ctx: ProbeContext) -> EntityState:
        try:
            ctx.pending = self._match_page(ctx)
        except NoMatchError as e:
            ctx.note("no-match", e.reason)
            return EntityState.NEXT_CANDIDATE
        ctx.note("accepted", f"score {ctx.pending.score}", url=ctx.pending.url)
        return EntityState.ACCEPT

    def _accept(self, ctx: ProbeContext) -> EntityState:
        match = ctx.pending
        # Strictly greater: earlier probes win ties
        if ctx.best is None or match.score > ctx.best.score:
            ctx.best = match
        if match.known or self.matching.stop_at_first_match:
            return EntityState.VALIDATE
        return EntityState.NEXT_CANDIDATE

    def _next_candidate(self, ctx: ProbeContext) -> EntityState:
        return EntityState.PROBE_NEXT

    # ---- commit --------------------------------------------------------

    def _check_image(self, ctx: ProbeContext, image_url: str) -> None:
        ctx.validation = self.validator.validate(image_url, ctx.target.display_name)
        if not ctx.validation.accepted:
            raise ValidationRejectedError(image_url, ctx.validation.reason)

    def _validate(self, ctx: ProbeContext) -> EntityState:
        best = ctx.best
        if best.image_url and self.validator is not None:
            try:
                self._check_image(ctx, best.image_url)
            except ValidationRejectedError as e:
                console.print(f"[yellow]    {e}[/yellow]")
                best.image_url = None
                if not best.has_data:
                    ctx.reason = f"image rejected: {e.reason}"
                    return EntityState.NO_MATCH
        ctx.image_url = best.image_url
        return EntityState.UPLOAD

    def _upload(self, ctx: ProbeContext) -> EntityState:
        if not ctx.image_url or self.uploader is None:
            return EntityState.PERSIST
        try:
            image = self.fetcher.fetch(ctx.image_url)
        except FetchError as e:
            console.print(f"[yellow]    Image download failed, keeping source URL: {e}[/yellow]")
            return EntityState.PERSIST

        name = ctx.target.slug or ctx.target.entity_id
        public_url = self.uploader.upload(
            image.content,
            self.image_folder,
            name,
            source_url=ctx.image_url,
            content_type=image.content_type or "image/jpeg",
        )
        if public_url:
            ctx.image_url = public_url
        return EntityState.PERSIST

    def _persist(self, ctx: ProbeContext) -> EntityState:
        entity = self.entity_factory(ctx.target, ctx.best, ctx.image_url)
        try:
            ctx.upsert = self.upserter.upsert(entity)
        except PersistenceError as e:
            ctx.reason = f"persistence failed: {e}"
            return EntityState.FAILED
        return EntityState.DONE
