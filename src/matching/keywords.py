"""
Keyword normalization used for fuzzy name matching.
"""

import re
import unicodedata

WORD_SPLIT = re.compile(r"[^\w]+", re.UNICODE)
APOSTROPHES = re.compile(r"['’`´]")


def fold_accents(text: str) -> str:
    """Strip combining marks (é -> e). CJK text passes through unchanged."""
    decomposed = unicodedata.normalize("NFKD", text or "")
    return "".join(c for c in decomposed if not unicodedata.combining(c))


def normalize_text(text: str) -> str:
    """Lowercase, fold accents, drop apostrophes and collapse punctuation to spaces."""
    text = APOSTROPHES.sub("", fold_accents(text).lower())
    return " ".join(t for t in WORD_SPLIT.split(text) if t and t != "_")


def extract_keywords(text: str, min_length: int = 4, limit: int = 0) -> list[str]:
    """
    Extract the distinctive keywords from a name or page fragment.

    Args:
        text: Free text
        min_length: Tokens shorter than this are discarded
        limit: Keep at most this many keywords (0 = all)

    Returns:
        Ordered, de-duplicated keyword list
    """
    keywords = []
    seen = set()
    for token in normalize_text(text).split():
        if len(token) < min_length or token.isdigit() or token in seen:
            continue
        seen.add(token)
        keywords.append(token)
        if limit and len(keywords) >= limit:
            break
    return keywords


def count_keyword_hits(target: list[str], found: list[str]) -> int:
    """
    Count target keywords present among the found keywords.

    Containment in either direction counts as a hit so that inflected
    forms and unsegmented CJK runs still match.
    """
    hits = 0
    for keyword in target:
        if any(keyword == other or keyword in other or other in keyword for other in found):
            hits += 1
    return hits


def name_prefix(name: str, length: int) -> str:
    """Normalized leading slice of a name."""
    return normalize_text(name)[:length].strip()
