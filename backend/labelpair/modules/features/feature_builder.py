# Copyright (c) 2026 Harsh Dwivedi
# Licensed under the Harsh Non-Commercial Attribution License (HNCAL) v1.0
# Commercial use requires written permission. See LICENSE for details.

"""
LabelPair — Feature Builder
Turns raw vision records into ImageFeatureRows keyed by canonical URL.
The uploaded URL rides along on each row for the final result.

Records without a usable URL are dropped with a log line; the batch
never fails because of one bad record. Duplicate URLs (after
canonicalisation) keep the first occurrence.
"""

from __future__ import annotations

from typing import Any, Iterable, Mapping, Optional

from pydantic import ValidationError

from labelpair.config import Settings, get_settings
from labelpair.models.features import ImageFeatureRow, ImageRole, VisionRecord
from labelpair.modules.features.normalizer import (
    canonical_url,
    canonicalize_size,
    category_tail,
    extract_packaging,
    normalize_brand,
    normalize_color,
    tokenize,
    truncate,
)
from labelpair.utils.logger import get_logger

log = get_logger(__name__)


def parse_role(raw: Optional[str]) -> ImageRole:
    """Map a free-form vision role onto the closed role set."""
    value = (raw or "").strip().lower()
    if value == "front":
        return ImageRole.FRONT
    if value == "back":
        return ImageRole.BACK
    # side / detail / unknown all collapse to other
    return ImageRole.OTHER


def build_feature_row(record: VisionRecord, settings: Settings) -> Optional[ImageFeatureRow]:
    """Normalise one vision record. Returns None when it has no usable URL."""
    url = canonical_url(record.url)
    if not url:
        return None

    role = parse_role(record.role)
    return ImageFeatureRow(
        url=url,
        source_url=record.url.strip(),
        role=role,
        original_role=role,
        brand_norm=normalize_brand(record.brand),
        brand_raw=(record.brand or "").strip(),
        product_tokens=tokenize(record.product),
        variant_tokens=tokenize(record.variant),
        size_canonical=canonicalize_size(record.size, record.category_path),
        text_extracted=truncate(record.ocr_text, settings.ocr_snippet_chars),
        color_key=normalize_color(record.color),
        packaging_hint=extract_packaging(record.packaging, record.visual_description),
        category_path=(record.category_path or None),
        category_tail=category_tail(record.category_path),
        group_id=record.group_id,
    )


def build_features(
    records: Iterable[VisionRecord | Mapping[str, Any]],
    settings: Settings | None = None,
) -> tuple[dict[str, ImageFeatureRow], int]:
    """
    Build the feature collection for one batch.

    Args:
        records:  Vision records (models or raw dicts), in upload order
        settings: Defaults to the cached application settings

    Returns:
        (features, dropped)
        features: canonical URL → ImageFeatureRow, insertion-ordered
        dropped:  number of records discarded (no URL, invalid, duplicate)
    """
    if settings is None:
        settings = get_settings()

    features: dict[str, ImageFeatureRow] = {}
    dropped = 0

    for idx, raw in enumerate(records):
        try:
            record = raw if isinstance(raw, VisionRecord) else VisionRecord.model_validate(raw)
        except ValidationError as exc:
            log.warning("vision_record_invalid", index=idx, error=str(exc))
            dropped += 1
            continue

        row = build_feature_row(record, settings)
        if row is None:
            log.warning("vision_record_dropped", index=idx, reason="missing url")
            dropped += 1
            continue

        if row.url in features:
            log.warning("vision_record_duplicate", index=idx, url=row.url)
            dropped += 1
            continue

        features[row.url] = row

    log.info(
        "features_built",
        images=len(features),
        dropped=dropped,
        fronts=sum(1 for f in features.values() if f.is_front),
        backs=sum(1 for f in features.values() if f.is_back),
    )

    return features, dropped
