# Copyright (c) 2026 Harsh Dwivedi
# Licensed under the Harsh Non-Commercial Attribution License (HNCAL) v1.0
# Commercial use requires written permission. See LICENSE for details.

"""
LabelPair — Text Normalisation
Canonical forms for every free-text signal the vision step produces,
so later Jaccard and equality checks are robust to wording noise.

All functions are pure and total: empty / missing input yields the
empty normal form, never an exception.
"""

from __future__ import annotations

import re
from typing import Optional

from labelpair.models.features import PackagingHint

# Corporate / marketing suffixes that never identify a brand on their own
_BRAND_SUFFIX_RE = re.compile(
    r"\b(inc|llc|ltd|corp|co|company|brands|supplements|nutrition|wellness|fuel)\b\.?",
    re.IGNORECASE,
)
_BRAND_GENERIC = {"by", "from", "the", "a", "an"}

_TOKEN_SPLIT_RE = re.compile(r"[^a-z0-9+.-]+")

STOP_WORDS = frozenset({
    "a", "an", "and", "the", "of", "for", "with", "in", "on", "to", "by",
    "or", "at", "from", "per", "&", "-", "+", ".",
})

# Categories whose sizes are conventionally printed in metric on one side
_METRIC_CATEGORY_RE = re.compile(
    r"supplement|vitamin|nutrition|food|beverage|hair|cosmetic|skin", re.IGNORECASE
)

# First match wins: dropper before bottle, tub before tube
_PACKAGING_PATTERNS: list[tuple[re.Pattern, PackagingHint]] = [
    (re.compile(r"resealable|stand-up|pouch|\bbag\b"), PackagingHint.POUCH),
    (re.compile(r"dropper|pipette|tincture"), PackagingHint.DROPPER_BOTTLE),
    (re.compile(r"sachet|stick pack|packet"), PackagingHint.SACHET),
    (re.compile(r"\bbottle\b"), PackagingHint.BOTTLE),
    (re.compile(r"\bjar\b"), PackagingHint.JAR),
    (re.compile(r"canister|\btub\b"), PackagingHint.TUB),
    (re.compile(r"\btube\b"), PackagingHint.TUBE),
    (re.compile(r"\bbox\b|carton"), PackagingHint.BOX),
]

_COLOR_SHADE_RE = re.compile(r"^(light|dark|deep|bright|pale|dim)-")


def canonical_url(raw: Optional[str]) -> str:
    """Identity key: trimmed, forward slashes, no query string, lower-case."""
    if not raw:
        return ""
    url = raw.strip().replace("\\", "/")
    url = url.split("?", 1)[0].split("#", 1)[0]
    return url.lower()


def basename(url: str) -> str:
    return url.rsplit("/", 1)[-1]


def normalize_brand(raw: Optional[str]) -> str:
    """
    Reduce a brand string to its core identifier.
    "Jocko Fuel" → "jocko", "Root Brands Inc." → "root", "Unknown" → "".
    """
    if not raw or raw.strip().lower() in {"unknown", "n/a", "none"}:
        return ""
    text = _BRAND_SUFFIX_RE.sub(" ", raw.lower())
    text = re.sub(r"[^a-z0-9]+", " ", text).strip()
    tokens = [t for t in text.split() if t not in _BRAND_GENERIC]
    return tokens[0] if tokens else ""


def tokenize(text: Optional[str]) -> frozenset[str]:
    """Lower-case word set with punctuation stripped and stop-words removed."""
    if not text:
        return frozenset()
    tokens = set()
    for tok in _TOKEN_SPLIT_RE.split(text.lower()):
        tok = tok.strip(".-+")
        if tok and tok not in STOP_WORDS:
            tokens.add(tok)
    return frozenset(tokens)


def canonicalize_size(size: Optional[str], category_path: Optional[str]) -> Optional[str]:
    """
    Normalise a size/quantity string. Metric-leaning categories convert
    fl oz → ml and oz → g so front and back labels compare equal.
    """
    if not size or not size.strip():
        return None
    cleaned = re.sub(r"\s+", " ", size.strip().lower())

    if not _METRIC_CATEGORY_RE.search(category_path or ""):
        return cleaned

    grams = re.search(r"(\d+(?:\.\d+)?)\s*g\b", cleaned)
    if grams:
        return f"{round(float(grams.group(1)))}g"

    fl_oz = re.search(r"(\d+(?:\.\d+)?)\s*fl\.?\s*oz", cleaned)
    if fl_oz:
        return f"{round(float(fl_oz.group(1)) * 29.573)}ml"

    oz = re.search(r"(\d+(?:\.\d+)?)\s*oz\b", cleaned)
    if oz:
        return f"{round(float(oz.group(1)) * 28.35)}g"

    return cleaned


def extract_packaging(*texts: Optional[str]) -> PackagingHint:
    """Pick the packaging type from the first text that names one."""
    for text in texts:
        if not text:
            continue
        lower = text.lower()
        for pattern, hint in _PACKAGING_PATTERNS:
            if pattern.search(lower):
                return hint
    return PackagingHint.UNKNOWN


def category_tail(category_path: Optional[str]) -> str:
    """Last two '>'-separated segments of a category path."""
    if not category_path:
        return ""
    parts = [p.strip() for p in category_path.split(">") if p.strip()]
    return " > ".join(parts[-2:])


def normalize_color(color: Optional[str]) -> str:
    if not color:
        return ""
    return re.sub(r"\s+", "-", color.strip().lower())


def base_color(color_key: str) -> str:
    """Drop shade modifiers: "dark-green" → "green"."""
    return _COLOR_SHADE_RE.sub("", color_key)


def truncate(text: Optional[str], limit: int) -> str:
    if not text:
        return ""
    text = " ".join(text.split())
    return text[:limit]
