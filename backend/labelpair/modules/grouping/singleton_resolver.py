# Copyright (c) 2026 Harsh Dwivedi
# Licensed under the Harsh Non-Commercial Attribution License (HNCAL) v1.0
# Commercial use requires written permission. See LICENSE for details.

"""
LabelPair — Singleton Resolver
Final decision for every image no earlier stage placed:

  1. an original front with a brand no product has yet → solo Product
  2. an image whose brand matches a product (brand +2, filename
     prefix +1, needs ≥ 2) → extra on that product
  3. otherwise → Singleton, carrying the reason recorded by an earlier
     stage or "no matching product or unique brand"

Fronts rejected by the tie-breaker skip rules 1 and 2.
"""

from __future__ import annotations

from labelpair.config import Settings, get_settings
from labelpair.core.pairing_state import PairingState
from labelpair.models.features import ImageFeatureRow, ImageRole
from labelpair.models.pairing import PairSource, Product, Singleton
from labelpair.modules.features.normalizer import basename, normalize_brand
from labelpair.utils.logger import get_logger

log = get_logger(__name__)

DEFAULT_SINGLETON_REASON = "no matching product or unique brand"
SOLO_CONFIDENCE = 0.5
_FILENAME_PREFIX_CHARS = 9


def _shares_filename_prefix(url: str, product: Product) -> bool:
    prefix = basename(url)[:_FILENAME_PREFIX_CHARS]
    return len(prefix) == _FILENAME_PREFIX_CHARS and basename(product.front_url).startswith(prefix)


def _attach_target(
    row: ImageFeatureRow,
    products: list[Product],
    max_extras: int,
) -> Product | None:
    best: Product | None = None
    best_score = 0
    for product in products:
        if len(product.extras) >= max_extras:
            continue
        score = 0
        if row.brand_norm and normalize_brand(product.brand) == row.brand_norm:
            score += 2
        if _shares_filename_prefix(row.url, product):
            score += 1
        if score > best_score:
            best, best_score = product, score
    return best if best_score >= 2 else None


def resolve_singletons(
    leftovers: list[ImageFeatureRow],
    products: list[Product],
    state: PairingState,
    settings: Settings | None = None,
) -> tuple[list[Product], list[Singleton]]:
    """
    Place every leftover image.

    Args:
        leftovers: Unplaced images, in feature order
        products:  Products built from pairs; extended and mutated in place
        state:     Source of pending / rejection reasons
        settings:  Defaults to the cached application settings

    Returns:
        (products, singletons)
    """
    if settings is None:
        settings = get_settings()

    singletons: list[Singleton] = []
    solos = 0
    attached = 0

    for row in leftovers:
        if state.is_rejected(row.url):
            singletons.append(Singleton(url=row.url, reason=state.rejected[row.url]))
            continue

        product_brands = {normalize_brand(p.brand) for p in products} - {""}
        if (
            row.original_role == ImageRole.FRONT
            and row.brand_norm
            and row.brand_norm not in product_brands
        ):
            products.append(Product(
                product_id=f"solo:{row.output_url}",
                front_url=row.url,
                back_url=None,
                brand=row.brand_raw or row.brand_norm,
                product=" ".join(sorted(row.product_tokens)),
                variant=" ".join(sorted(row.variant_tokens)) or None,
                match_score=0.0,
                confidence=SOLO_CONFIDENCE,
                source=PairSource.SOLO,
                triggers=["solo-product-unique-brand"],
            ))
            solos += 1
            log.info("solo_product_created", front=row.url, brand=row.brand_norm)
            continue

        target = _attach_target(row, products, settings.max_extras_per_product)
        if target is not None:
            target.extras.append(row.url)
            attached += 1
            log.info("singleton_attached_as_extra", url=row.url, product_id=target.product_id)
            continue

        reason = state.pending_reasons.get(row.url, DEFAULT_SINGLETON_REASON)
        singletons.append(Singleton(url=row.url, reason=reason))

    state.debug(
        f"Singleton resolution: {solos} solo products, {attached} attached, "
        f"{len(singletons)} singletons"
    )
    log.info(
        "singletons_resolved",
        solo_products=solos,
        attached=attached,
        singletons=len(singletons),
    )
    return products, singletons
