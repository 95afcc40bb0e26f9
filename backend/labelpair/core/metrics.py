# Copyright (c) 2026 Harsh Dwivedi
# Licensed under the Harsh Non-Commercial Attribution License (HNCAL) v1.0
# Commercial use requires written permission. See LICENSE for details.

"""
LabelPair — Run Metrics
Per-stage counts, per-brand pair rates, a singleton-reason histogram and
the threshold snapshot in force, so any run can be reproduced and audited.
"""

from __future__ import annotations

from collections import Counter

from labelpair.config import ENGINE_VERSION, Settings
from labelpair.models.features import ImageFeatureRow, ImageRole
from labelpair.models.output import BrandStats, PairingMetrics, StageTotals, ThresholdSnapshot
from labelpair.models.pairing import CandidateScore, Pair, PairSource, Product, Singleton

_UNKNOWN_BRAND = "unknown"


def threshold_snapshot(settings: Settings) -> ThresholdSnapshot:
    return ThresholdSnapshot(
        candidate_top_k=settings.candidate_top_k,
        min_pre_score=settings.min_pre_score,
        auto_pair_score=settings.auto_pair_score,
        auto_pair_gap=settings.auto_pair_gap,
        auto_pair_hair_score=settings.auto_pair_hair_score,
        auto_pair_hair_gap=settings.auto_pair_hair_gap,
        hair_inci_gap_bonus=settings.hair_inci_gap_bonus,
        model_pair_min_score=settings.model_pair_min_score,
        embedding_min_similarity=settings.embedding_min_similarity,
        two_shot_enabled=settings.two_shot_enabled,
        tiebreak_enabled=settings.tiebreak_enabled,
        leftover_enabled=settings.leftover_enabled,
    )


def reason_key(reason: str) -> str:
    """Bucket a free-text singleton reason for the histogram."""
    lowered = reason.lower()
    if "model-pair rejected" in lowered:
        return "model_pair_rejected"
    if lowered.startswith("declined despite candidates"):
        return "declined_despite_candidates"
    if lowered.startswith("no candidates"):
        return "no_candidates"
    if "unparsable" in lowered:
        return "unparsable_response"
    if lowered.startswith("no matching product"):
        return "no_matching_product"
    return "other"


def build_metrics(
    run_id: str,
    features: dict[str, ImageFeatureRow],
    candidates: dict[str, list[CandidateScore]],
    pairs: list[Pair],
    products: list[Product],
    singletons: list[Singleton],
    settings: Settings,
    dropped: int = 0,
    two_shot: bool = False,
    duration_ms: int = 0,
) -> PairingMetrics:
    by_source = Counter(p.source for p in pairs)
    fronts = [f for f in features.values() if f.role == ImageRole.FRONT]

    totals = StageTotals(
        images=len(features),
        dropped=dropped,
        fronts=len(fronts),
        backs=sum(1 for f in features.values() if f.role == ImageRole.BACK),
        candidates=sum(len(c) for c in candidates.values()),
        auto_pairs=by_source[PairSource.AUTO],
        domain_auto_pairs=by_source[PairSource.DOMAIN_AUTO],
        model_pairs=by_source[PairSource.MODEL],
        global_pairs=by_source[PairSource.GLOBAL_SOLVER],
        leftover_pairs=by_source[PairSource.LLM_LEFTOVER],
        visual_pairs=by_source[PairSource.VISUAL],
        singletons=len(singletons),
        products=len(products),
        solo_products=sum(1 for p in products if p.is_solo),
        extras=sum(len(p.extras) for p in products),
    )

    paired_fronts = {p.front_url for p in pairs}
    by_brand: dict[str, BrandStats] = {}
    for front in fronts:
        stats = by_brand.setdefault(front.brand_norm or _UNKNOWN_BRAND, BrandStats())
        stats.fronts += 1
        if front.url in paired_fronts:
            stats.paired += 1
    for stats in by_brand.values():
        stats.pair_rate = round(stats.paired / stats.fronts, 2) if stats.fronts else 0.0

    reasons = Counter(reason_key(s.reason) for s in singletons)

    return PairingMetrics(
        engine_version=ENGINE_VERSION,
        run_id=run_id,
        two_shot=two_shot,
        totals=totals,
        by_brand=by_brand,
        reasons=dict(reasons),
        thresholds=threshold_snapshot(settings),
        duration_ms=duration_ms,
    )


def format_metrics_line(metrics: PairingMetrics) -> str:
    t = metrics.totals
    return (
        f"METRICS images={t.images} fronts={t.fronts} backs={t.backs} "
        f"candidates={t.candidates} autoPairs={t.auto_pairs} "
        f"domainAutoPairs={t.domain_auto_pairs} modelPairs={t.model_pairs} "
        f"globalPairs={t.global_pairs} leftoverPairs={t.leftover_pairs} "
        f"visualPairs={t.visual_pairs} products={t.products} singletons={t.singletons}"
    )
