# Copyright (c) 2026 Harsh Dwivedi
# Licensed under the Harsh Non-Commercial Attribution License (HNCAL) v1.0
# Commercial use requires written permission. See LICENSE for details.

"""
LabelPair — Visual Confirmation
Last pairing stage, used once text signals are exhausted: each remaining
front takes its most similar remaining back by image embedding, if the
cosine similarity clears EMBEDDING_MIN_SIMILARITY.

Fronts are processed in feature order and backs are consumed as they are
claimed, so the stage is deterministic for deterministic embeddings.
Ties on similarity go to the earlier back.
Unclaimed role=other images compete as backs.
"""

from __future__ import annotations

from labelpair.config import Settings, get_settings
from labelpair.core.pairing_state import PairingState
from labelpair.models.features import ImageFeatureRow, ImageRole
from labelpair.models.pairing import Pair, PairSource
from labelpair.modules.similarity.embedding_client import EmbeddingCache
from labelpair.utils.logger import get_logger

log = get_logger(__name__)


def confirm_visual_pairs(
    features: dict[str, ImageFeatureRow],
    state: PairingState,
    cache: EmbeddingCache,
    settings: Settings | None = None,
) -> list[Pair]:
    """
    Pair leftover fronts and backs by embedding similarity.

    Returns:
        Accepted pairs (claimed on state), confidence = cosine similarity.
    """
    if settings is None:
        settings = get_settings()

    fronts = [
        f for f in features.values()
        if f.role == ImageRole.FRONT and state.is_open_front(f.url)
    ]
    backs = [
        f for f in features.values()
        if f.is_back_side and not state.is_back_used(f.url)
    ]
    if not fronts or not backs:
        return []

    log.info("visual_confirm_start", fronts=len(fronts), backs=len(backs))
    accepted: list[Pair] = []

    for front in fronts:
        best_url = None
        best_sim = settings.embedding_min_similarity
        for back in backs:
            if state.is_back_used(back.url):
                continue
            sim = cache.similarity(front.url, back.url)
            if sim is None:
                continue
            if sim >= best_sim and (best_url is None or sim > best_sim):
                best_url, best_sim = back.url, sim

        if best_url is None:
            continue

        back = features[best_url]
        pair = Pair(
            front_url=front.url,
            back_url=best_url,
            match_score=round(best_sim * 10, 2),
            brand=front.brand_raw or back.brand_raw,
            product=" ".join(sorted(front.product_tokens)),
            variant=" ".join(sorted(front.variant_tokens)) or None,
            size_front=front.size_canonical,
            size_back=back.size_canonical,
            evidence=[f"VISUAL-CONFIRMED: cosine={best_sim:.3f}"],
            confidence=max(0.0, min(1.0, best_sim)),
            source=PairSource.VISUAL,
        )
        state.claim(pair)
        accepted.append(pair)

    state.debug(f"Visual confirmation paired {len(accepted)}")
    log.info(
        "visual_confirm_complete",
        pairs=len(accepted),
        embeddings=len(cache),
        remote_calls=cache.remote_calls,
    )
    return accepted
