"""
Slug generation for free-text wine and winery names.

A storefront slug is rarely the plain hyphenated name: vintages, appellation
qualifiers and colour words come and go. generate_slug_variants() returns
every plausible normalization in the order they should be tried.
"""

import re

from slugify import slugify

MAX_SLUG_LENGTH = 150

STOP_WORDS = {
    "the", "of", "and", "a", "an", "in", "on", "at", "to", "for",
    "de", "du", "des", "la", "le", "les", "del", "di", "y",
}

# Trailing tokens that qualify a wine rather than name it
STYLE_SUFFIXES = {
    "nv", "aoc", "aop", "igp", "doc", "docg",
    "rouge", "red", "blanc", "white", "rose", "rosado", "tinto", "blanco",
}

YEAR_PATTERN = re.compile(r"\b(?:19|20)\d{2}\b")
CJK_PATTERN = re.compile(
    r"[\u2e80-\u2fff\u3000-\u303f\u3040-\u30ff\u3400-\u4dbf\u4e00-\u9fff\uf900-\ufaff\uff00-\uffef]+"
)
NON_ALNUM_PATTERN = re.compile(r"[^a-z0-9\s]+")
WHITESPACE_PATTERN = re.compile(r"\s+")
LETTER_PATTERN = re.compile(r"[a-z]")

FIRST_TOKENS = 5


def _slug(text: str) -> str:
    """Transliterate, lowercase and hyphenate. CJK text is dropped."""
    text = CJK_PATTERN.sub(" ", text or "")
    return slugify(text, max_length=MAX_SLUG_LENGTH, word_boundary=True)


def _is_year(token: str) -> bool:
    return bool(YEAR_PATTERN.fullmatch(token))


def _strip_suffixes(tokens: list[str]) -> list[str]:
    stripped = list(tokens)
    while len(stripped) > 1 and (stripped[-1] in STYLE_SUFFIXES or _is_year(stripped[-1])):
        stripped.pop()
    return stripped


def _clamp(slug: str) -> str:
    return slug[:MAX_SLUG_LENGTH].strip("-")


def generate_slug_variants(name: str) -> list[str]:
    """
    Generate candidate slugs for a name, most specific first.

    Args:
        name: Free-text name (may contain accents, vintages, CJK text)

    Returns:
        Ordered, de-duplicated list of non-empty [a-z0-9-] slugs
    """
    if not name or not name.strip():
        return []

    direct = _slug(name)
    tokens = [t for t in direct.split("-") if t]

    variants = [
        direct,
        _slug(YEAR_PATTERN.sub(" ", name)),
        "-".join(_strip_suffixes(tokens)),
        "-".join(
            t for t in tokens
            if len(t) > 2 and t not in STOP_WORDS and not t.isdigit()
        ),
        WHITESPACE_PATTERN.sub("-", NON_ALNUM_PATTERN.sub("", CJK_PATTERN.sub(" ", name).lower()).strip()),
        "-".join(tokens[:FIRST_TOKENS]),
    ]

    seen = set()
    result = []
    for variant in variants:
        variant = _clamp(variant)
        if not variant or variant in seen:
            continue
        seen.add(variant)
        result.append(variant)
    return result


def make_slug(name: str) -> str:
    """
    Stable catalog slug for a name.

    Uses the direct variant for Latin names. Names with CJK text, or whose
    direct variant has no letters left, are transliterated whole so two
    wines that differ only in their Chinese name never share a slug.
    """
    variants = generate_slug_variants(name)
    if variants and not CJK_PATTERN.search(name) and LETTER_PATTERN.search(variants[0]):
        return variants[0]
    return slugify(name or "", max_length=MAX_SLUG_LENGTH, word_boundary=True)
