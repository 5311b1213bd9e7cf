"""
Page scoring and content extraction.

Everything here is a pure function over a parsed BeautifulSoup tree so the
matching rules can be exercised without network access.

Direct pages are accepted by keyword overlap between the target name and the
page heading / leading text. Search and category pages yield scored links
that the caller follows and re-checks with the direct-page rule.
"""

import re
from typing import Iterable, Optional
from urllib.parse import parse_qs, urljoin, urlparse

from bs4 import BeautifulSoup, Tag

from config.settings import MatchingConfig, ScraperConfig
from src.matching.keywords import (
    count_keyword_hits,
    extract_keywords,
    name_prefix,
    normalize_text,
)
from src.matching.models import (
    CandidateKind,
    MatchCandidate,
    MatchTarget,
    PageMatch,
    PageScore,
    ScoredImage,
    ScoredLink,
)
from src.matching.slugs import generate_slug_variants

HEADING_TAGS = ("h1", "h2", "h3", "h4", "h5", "h6")
IMAGE_SOURCE_ATTRS = ("src", "data-src", "data-lazy-src", "data-original")
PHOTO_EXTENSIONS = (".jpg", ".jpeg", ".png", ".webp")


def parse_html(html: str) -> BeautifulSoup:
    return BeautifulSoup(html or "", "html.parser")


def _clean(text: str) -> str:
    return re.sub(r"\s+", " ", text or "").strip()


def page_heading(soup: BeautifulSoup) -> str:
    """Primary heading, falling back to <title>."""
    h1 = soup.find("h1")
    if h1:
        return _clean(h1.get_text(" ", strip=True))
    if soup.title and soup.title.string:
        return _clean(soup.title.string)
    return ""


def page_text(soup: BeautifulSoup) -> str:
    root = soup.body or soup
    return _clean(root.get_text(" ", strip=True))


def _target_keywords(target: MatchTarget, config: MatchingConfig) -> tuple[list[str], list[str]]:
    return (
        extract_keywords(target.name_en, config.keyword_min_length, config.max_keywords),
        extract_keywords(target.name_zh, config.keyword_min_length, config.max_keywords),
    )


def _prefix_in(text: str, names: Iterable[str], length: int, min_length: int) -> bool:
    normalized = normalize_text(text)
    for name in names:
        prefix = name_prefix(name, length)
        if len(prefix) >= min_length and prefix in normalized:
            return True
    return False


# ============================================
# Direct page acceptance
# ============================================


def evaluate_direct_page(
    soup: BeautifulSoup, target: MatchTarget, config: Optional[MatchingConfig] = None
) -> PageMatch:
    """
    Decide whether a page is about the target entity.

    Score is keyword_hit_weight * hits (best of the two languages) plus
    prefix_bonus when a long enough prefix of a target name appears in the
    heading or leading text.
    """
    config = config or MatchingConfig()
    heading = page_heading(soup)
    leading = f"{heading} {page_text(soup)[: config.leading_text_length]}"

    found = extract_keywords(leading, config.keyword_min_length)
    keywords_en, keywords_zh = _target_keywords(target, config)
    hits = max(count_keyword_hits(keywords_en, found), count_keyword_hits(keywords_zh, found))

    prefix_matched = _prefix_in(
        leading, target.names, config.prefix_length, config.min_prefix_length
    )

    score = hits * config.keyword_hit_weight + (config.prefix_bonus if prefix_matched else 0)
    return PageMatch(
        accepted=score >= config.page_acceptance_score,
        score=score,
        keyword_hits=hits,
        prefix_matched=prefix_matched,
        heading=heading,
    )


# ============================================
# Link scoring (search / category pages)
# ============================================


def _entity_value(href: str, entity_param: str) -> Optional[str]:
    values = parse_qs(urlparse(href).query).get(entity_param)
    return values[0] if values else None


def score_links(
    soup: BeautifulSoup,
    page_url: str,
    target: MatchTarget,
    config: Optional[MatchingConfig] = None,
    entity_param: str = "wine",
) -> list[ScoredLink]:
    """
    Score every entity link on a listing page.

    Returns links with score >= link_min_score, best first. Ties keep
    document order.
    """
    config = config or MatchingConfig()
    keywords_en, keywords_zh = _target_keywords(target, config)
    slug_variants = [
        v for v in generate_slug_variants(target.name_en)[:3] if len(v) > config.link_slug_min_length
    ]
    parents = target.parent_names
    others = [
        name for name in target.other_parents
        if name and name not in parents
    ]

    best: dict[str, ScoredLink] = {}
    for position, anchor in enumerate(soup.find_all("a", href=True)):
        href = urljoin(page_url, anchor["href"])
        value = _entity_value(href, entity_param)
        if not value:
            continue

        text = _clean(f"{anchor.get_text(' ', strip=True)} {anchor.get('title', '')}")
        found = extract_keywords(text, config.keyword_min_length)
        hits = max(count_keyword_hits(keywords_en, found), count_keyword_hits(keywords_zh, found))

        score = 0
        if hits >= config.link_min_keyword_hits:
            score += hits * config.link_keyword_weight

        value_lower = value.lower()
        if any(variant in value_lower for variant in slug_variants):
            score += config.link_slug_bonus

        if _prefix_in(text, [target.name_en], config.link_prefix_length, config.min_prefix_length) or _prefix_in(
            text, [target.name_zh], config.link_prefix_length_zh, config.min_prefix_length
        ):
            score += config.prefix_bonus

        href_found = extract_keywords(value_lower.replace("-", " "), config.keyword_min_length)
        href_hits = count_keyword_hits(keywords_en, href_found)
        if href_hits >= config.link_min_keyword_hits:
            score += href_hits * config.link_href_keyword_weight

        if parents and _prefix_in(text, parents, config.link_prefix_length, config.min_prefix_length):
            score += config.parent_bonus
        elif others and _prefix_in(text, others, config.link_prefix_length, config.min_prefix_length):
            score -= config.parent_mismatch_penalty

        if score < config.link_min_score:
            continue
        previous = best.get(href)
        if previous is None or score > previous.score:
            best[href] = ScoredLink(
                url=href,
                text=text,
                score=score,
                position=previous.position if previous else position,
            )

    return sorted(best.values(), key=lambda link: (-link.score, link.position))


# ============================================
# Images
# ============================================


def _dimension(value) -> Optional[int]:
    if value is None:
        return None
    match = re.match(r"\s*(\d+)", str(value))
    return int(match.group(1)) if match else None


def _image_source(img: Tag) -> Optional[str]:
    for attr in IMAGE_SOURCE_ATTRS:
        value = img.get(attr)
        if value and not value.startswith("data:"):
            return value.strip()
    return None


def score_image(
    url: str,
    alt: str,
    width: Optional[int],
    height: Optional[int],
    slugs: list[str],
    config: Optional[MatchingConfig] = None,
) -> Optional[int]:
    """
    Score one image URL. Returns None when the image is excluded outright.
    """
    config = config or MatchingConfig()
    lower = url.lower()
    if any(keyword in lower for keyword in config.image_exclude_keywords):
        return None
    if any(keyword in (alt or "").lower() for keyword in config.image_alt_exclude_keywords):
        return None

    path = urlparse(lower).path
    if not any(marker in path for marker in config.content_asset_markers):
        return None

    score = config.image_path_bonus
    filename = path.rsplit("/", 1)[-1]
    if any(slug in filename for slug in slugs if len(slug) >= 5):
        score += config.image_slug_bonus
    if filename.endswith(PHOTO_EXTENSIONS) and "thumb" not in filename:
        score += config.image_extension_bonus
    if width is not None and height is not None:
        if width > config.image_large_px and height > config.image_large_px:
            score += config.image_large_bonus
        elif width < config.image_small_px and height < config.image_small_px:
            score -= config.image_small_penalty
    return score


def extract_images(
    soup: BeautifulSoup,
    page_url: str,
    target: MatchTarget,
    config: Optional[MatchingConfig] = None,
) -> list[ScoredImage]:
    """All eligible images on a page, best first."""
    config = config or MatchingConfig()
    slugs = generate_slug_variants(target.name_en)
    if target.slug:
        slugs.insert(0, target.slug)

    images: dict[str, ScoredImage] = {}
    for img in soup.find_all("img"):
        src = _image_source(img)
        if not src:
            continue
        url = urljoin(page_url, src)
        alt = img.get("alt", "") or ""
        width, height = _dimension(img.get("width")), _dimension(img.get("height"))
        score = score_image(url, alt, width, height, slugs, config)
        if score is None:
            continue
        if url not in images or score > images[url].score:
            images[url] = ScoredImage(url=url, score=score, alt=alt, width=width, height=height)

    # sorted() is stable so ties keep document order
    return sorted(images.values(), key=lambda image: -image.score)


def select_image(images: list[ScoredImage], config: Optional[MatchingConfig] = None) -> Optional[str]:
    config = config or MatchingConfig()
    if images and images[0].score >= config.image_min_score:
        return images[0].url
    return None


# ============================================
# Text fields
# ============================================


def extract_description(soup: BeautifulSoup, config: Optional[MatchingConfig] = None) -> Optional[str]:
    """
    Text of the labelled description section.

    Takes everything between the heading containing the marker phrase and
    the next heading. Falls back to the content selectors, then to the body
    text following the marker.
    """
    config = config or MatchingConfig()
    marker = config.description_marker
    text = ""

    heading = soup.find(
        lambda tag: tag.name in HEADING_TAGS and marker in tag.get_text()
    )
    if heading:
        parts = []
        for sibling in heading.find_next_siblings():
            if sibling.name in HEADING_TAGS:
                break
            parts.append(sibling.get_text(" ", strip=True))
        text = _clean(" ".join(parts))

    if not text:
        for selector in config.description_selectors:
            node = soup.select_one(selector)
            if node:
                text = _clean(node.get_text(" ", strip=True))
                if text:
                    break

    if not text:
        body = page_text(soup)
        index = body.find(marker)
        if index >= 0:
            text = body[index + len(marker) :].lstrip(" ：:")

    text = text[: config.description_max_length].strip()
    return text or None


def extract_price(text: str, config: Optional[MatchingConfig] = None) -> Optional[int]:
    """Label-anchored price (e.g. 品酩價：840元). None when absent."""
    config = config or MatchingConfig()
    match = re.search(config.price_pattern, text or "")
    if not match:
        return None
    return int(match.group(1).replace(",", ""))


def extract_ratings(text: str, config: Optional[MatchingConfig] = None) -> dict[str, int]:
    """Critic scores such as 'Decanter: 95' or 'James Suckling 93分'."""
    config = config or MatchingConfig()
    ratings = {}
    for source in config.rating_sources:
        match = re.search(
            rf"{re.escape(source)}\s*[：:]?\s*(\d{{2,3}})", text or "", re.IGNORECASE
        )
        if match:
            value = int(match.group(1))
            if 50 <= value <= 100:
                ratings[source] = value
    return ratings


def extract_region(text: str, config: Optional[MatchingConfig] = None) -> Optional[str]:
    config = config or MatchingConfig()
    match = re.search(config.region_pattern, text or "")
    if not match:
        return None
    return _clean(match.group(1)) or None


def extract_page_data(
    soup: BeautifulSoup,
    page_url: str,
    target: MatchTarget,
    config: Optional[MatchingConfig] = None,
) -> dict:
    """Every extractable field of an accepted page."""
    config = config or MatchingConfig()
    text = page_text(soup)
    return {
        "image_url": select_image(extract_images(soup, page_url, target, config), config),
        "text": extract_description(soup, config),
        "price": extract_price(text, config),
        "ratings": extract_ratings(text, config),
        "region": extract_region(text, config),
    }


# ============================================
# Entry point
# ============================================


def score_page(
    html: str,
    page_url: str,
    kind: CandidateKind,
    target: MatchTarget,
    config: Optional[MatchingConfig] = None,
    scraper_config: Optional[ScraperConfig] = None,
) -> PageScore:
    """
    Score a fetched page against a target.

    Direct pages produce at most one MatchCandidate. Listing pages produce
    the scored links to follow.
    """
    config = config or MatchingConfig()
    scraper_config = scraper_config or ScraperConfig()
    soup = parse_html(html)

    if kind.is_listing:
        links = score_links(soup, page_url, target, config, scraper_config.entity_param)
        reason = "" if links else "no link scored above the minimum"
        return PageScore(links=links, reason=reason)

    page = evaluate_direct_page(soup, target, config)
    if not page.accepted:
        return PageScore(
            reason=f"heading '{page.heading[:60]}' matched {page.keyword_hits} keyword(s)"
        )

    data = extract_page_data(soup, page_url, target, config)
    candidate = MatchCandidate(url=page_url, kind=kind, score=page.score, heading=page.heading, **data)
    if not candidate.has_data:
        return PageScore(reason="page matched but yielded no image, text or price")
    return PageScore(match=candidate)
