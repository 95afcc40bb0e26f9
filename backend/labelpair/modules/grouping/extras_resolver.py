# Copyright (c) 2026 Harsh Dwivedi
# Licensed under the Harsh Non-Commercial Attribution License (HNCAL) v1.0
# Commercial use requires written permission. See LICENSE for details.

"""
LabelPair — Extras Resolver
Builds one Product per accepted pair and attaches unclaimed "other"
images (side / detail angles) to the product they most resemble.

Attachment score (extra vs the pair's front or back):
  +3  brand match          (known brands that disagree → never attach)
  +2  packaging match
  +1  category-tail overlap
  +1  same folder
An extra needs ≥ 2 to attach and goes to the product it scores highest
against (ties: earlier pair). Each product keeps its best
MAX_EXTRAS_PER_PRODUCT.
"""

from __future__ import annotations

import re
from collections import defaultdict
from dataclasses import dataclass
from typing import Optional

from labelpair.config import Settings, get_settings
from labelpair.models.features import ImageFeatureRow, ImageRole, PackagingHint
from labelpair.models.pairing import Pair, Product
from labelpair.modules.matching.candidate_generator import category_tail_overlap
from labelpair.utils.logger import get_logger

log = get_logger(__name__)

_MIN_EXTRA_SCORE = 2.0
_PRODUCT_ID_RE = re.compile(r"[^a-z0-9]+")


@dataclass(frozen=True)
class ExtraMatch:
    url: str
    score: float
    reasons: tuple[str, ...]


def _folder(url: str) -> str:
    return url.rsplit("/", 1)[0] if "/" in url else ""


def make_product_id(brand: str, product: str, taken: set[str]) -> str:
    """Slug of brand_product, suffixed when already taken in this run."""
    base = _PRODUCT_ID_RE.sub("_", f"{brand}_{product}".lower()).strip("_") or "product"
    product_id = base
    n = 2
    while product_id in taken:
        product_id = f"{base}_{n}"
        n += 1
    taken.add(product_id)
    return product_id


def score_extra(
    front: ImageFeatureRow,
    back: Optional[ImageFeatureRow],
    extra: ImageFeatureRow,
) -> Optional[ExtraMatch]:
    """Score one extra against a product; None when it must not attach."""
    sides = [front] if back is None else [front, back]
    reasons: list[str] = []
    score = 0.0

    brand_match = any(s.brand_norm and s.brand_norm == extra.brand_norm for s in sides)
    brand_unknown = not extra.brand_norm or any(not s.brand_norm for s in sides)
    if brand_match:
        reasons.append("brandMatch")
        score += 3
    elif not brand_unknown:
        return None

    if any(
        s.packaging_hint != PackagingHint.UNKNOWN and s.packaging_hint == extra.packaging_hint
        for s in sides
    ):
        reasons.append("packagingMatch")
        score += 2

    if any(category_tail_overlap(s.category_tail, extra.category_tail) for s in sides):
        reasons.append("categoryMatch")
        score += 1

    extra_folder = _folder(extra.url)
    if extra_folder and any(_folder(s.url) == extra_folder for s in sides):
        reasons.append("sameFolder")
        score += 1

    if score < _MIN_EXTRA_SCORE:
        return None
    return ExtraMatch(url=extra.url, score=score, reasons=tuple(reasons))


def _best_products(
    pool: list[ImageFeatureRow],
    sides: list[tuple[Optional[ImageFeatureRow], Optional[ImageFeatureRow]]],
) -> dict[int, list[ExtraMatch]]:
    """Pair index → extras that score highest against it, in pool order."""
    claims: dict[int, list[ExtraMatch]] = defaultdict(list)
    for extra in pool:
        best_idx, best_match = -1, None
        for idx, (front, back) in enumerate(sides):
            if front is None:
                continue
            match = score_extra(front, back, extra)
            # Strictly greater, so ties stay with the earlier pair
            if match is not None and (best_match is None or match.score > best_match.score):
                best_idx, best_match = idx, match
        if best_match is not None:
            claims[best_idx].append(best_match)
    return claims


def group_extras(
    pairs: list[Pair],
    features: dict[str, ImageFeatureRow],
    claimed: set[str] | None = None,
    settings: Settings | None = None,
) -> list[Product]:
    """
    Turn pairs into Products and attach matching extras.

    Each pooled extra is scored against every product and goes to the one
    it scores highest against. A product over its cap keeps its best
    extras; the rest stay unattached for the singleton resolver.

    Args:
        pairs:    Accepted pairs in stage order
        features: Feature collection
        claimed:  URLs already used as a pair front or back
        settings: Defaults to the cached application settings

    Returns:
        One Product per pair, in pair order.
    """
    if settings is None:
        settings = get_settings()
    if claimed is None:
        claimed = {p.front_url for p in pairs} | {p.back_url for p in pairs}

    pool = [
        f for f in features.values()
        if f.role == ImageRole.OTHER and f.url not in claimed
    ]
    sides = [(features.get(p.front_url), features.get(p.back_url)) for p in pairs]
    for pair, (front, _) in zip(pairs, sides):
        if front is None:
            log.warning("extras_pair_front_missing", front=pair.front_url)

    claims = _best_products(pool, sides)
    attached = 0
    taken_ids: set[str] = set()
    products: list[Product] = []

    for idx, pair in enumerate(pairs):
        # Stable sort keeps feature order among equal scores
        matches = sorted(claims.get(idx, []), key=lambda m: m.score, reverse=True)
        kept = matches[: settings.max_extras_per_product]
        for match in kept:
            log.debug(
                "extra_attached",
                front=pair.front_url,
                extra=match.url,
                score=match.score,
                reasons="+".join(match.reasons),
            )
        for match in matches[settings.max_extras_per_product:]:
            log.debug("extra_over_cap", front=pair.front_url, extra=match.url)
        attached += len(kept)

        products.append(Product(
            product_id=make_product_id(pair.brand, pair.product, taken_ids),
            front_url=pair.front_url,
            back_url=pair.back_url,
            extras=[m.url for m in kept],
            brand=pair.brand,
            product=pair.product,
            variant=pair.variant,
            match_score=pair.match_score,
            confidence=pair.confidence,
            source=pair.source,
            triggers=list(pair.evidence),
        ))

    log.info("extras_grouped", products=len(products), extras=attached)
    return products
