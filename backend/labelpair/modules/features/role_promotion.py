# Copyright (c) 2026 Harsh Dwivedi
# Licensed under the Harsh Non-Commercial Attribution License (HNCAL) v1.0
# Commercial use requires written permission. See LICENSE for details.

"""
LabelPair — Role Transitions
The only role change in the whole pipeline: inside a vision group with
exactly one front, no back and exactly one "other" image, that other
image is the product's back and is promoted to role=back.

original_role is never touched, so the transition stays auditable.
"""

from __future__ import annotations

from collections import defaultdict

from labelpair.models.features import ImageFeatureRow, ImageRole
from labelpair.utils.logger import get_logger

log = get_logger(__name__)


def promote_other_to_back(row: ImageFeatureRow, reason: str) -> ImageFeatureRow:
    """Return a copy of an "other" row with role=back. Logs the transition."""
    if row.role != ImageRole.OTHER:
        raise ValueError(
            f"only role=other can be promoted to back (url={row.url} role={row.role.value})"
        )
    log.info(
        "role_promoted",
        url=row.url,
        from_role=row.role.value,
        to_role=ImageRole.BACK.value,
        reason=reason,
    )
    return row.model_copy(update={"role": ImageRole.BACK})


def promote_lone_fronts(features: dict[str, ImageFeatureRow]) -> list[str]:
    """
    Apply the lone-front promotion rule to every vision group in place.

    Returns:
        URLs that were promoted, in feature order.
    """
    groups: dict[str, list[ImageFeatureRow]] = defaultdict(list)
    for row in features.values():
        if row.group_id:
            groups[row.group_id].append(row)

    promoted: list[str] = []
    for group_id, rows in groups.items():
        fronts = [r for r in rows if r.role == ImageRole.FRONT]
        backs = [r for r in rows if r.role == ImageRole.BACK]
        others = [r for r in rows if r.role == ImageRole.OTHER]

        if len(fronts) == 1 and not backs and len(others) == 1:
            other = others[0]
            features[other.url] = promote_other_to_back(
                other, reason=f"lone front in group {group_id}"
            )
            promoted.append(other.url)

    order = {url: i for i, url in enumerate(features)}
    promoted.sort(key=order.__getitem__)
    return promoted
