# Copyright (c) 2026 Harsh Dwivedi
# Licensed under the Harsh Non-Commercial Attribution License (HNCAL) v1.0
# Commercial use requires written permission. See LICENSE for details.

"""
LabelPair — Output / Metrics Models
Defines the structure of the pairing result handed to listing generation,
plus the metrics object persisted to the evidence log.
"""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, Field

from labelpair.models.pairing import Pair, Product, Singleton


class ThresholdSnapshot(BaseModel):
    """Every threshold in force for one run — stored for reproducibility."""
    candidate_top_k: int
    min_pre_score: float
    auto_pair_score: float
    auto_pair_gap: float
    auto_pair_hair_score: float
    auto_pair_hair_gap: float
    hair_inci_gap_bonus: float
    model_pair_min_score: float
    embedding_min_similarity: float
    two_shot_enabled: bool
    tiebreak_enabled: bool
    leftover_enabled: bool


class StageTotals(BaseModel):
    images: int = 0
    dropped: int = 0
    fronts: int = 0
    backs: int = 0
    candidates: int = 0
    auto_pairs: int = 0
    domain_auto_pairs: int = 0
    model_pairs: int = 0
    global_pairs: int = 0
    leftover_pairs: int = 0
    visual_pairs: int = 0
    singletons: int = 0
    products: int = 0
    solo_products: int = 0
    extras: int = 0


class BrandStats(BaseModel):
    fronts: int = 0
    paired: int = 0
    pair_rate: float = 0.0


class PairingMetrics(BaseModel):
    engine_version: str
    run_id: str
    two_shot: bool = False
    totals: StageTotals = Field(default_factory=StageTotals)
    by_brand: dict[str, BrandStats] = Field(default_factory=dict)
    reasons: dict[str, int] = Field(default_factory=dict)
    thresholds: ThresholdSnapshot
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    duration_ms: int = 0


class PairingResult(BaseModel):
    """Complete output of one pairing batch."""
    engine_version: str
    pairs: list[Pair] = Field(default_factory=list)
    products: list[Product] = Field(default_factory=list)
    singletons: list[Singleton] = Field(default_factory=list)
    debug_summary: list[str] = Field(default_factory=list)
    metrics: PairingMetrics

    def assigned_urls(self) -> list[str]:
        """
        Every URL the result accounts for, one entry per placement.
        A well-formed result lists each input image exactly once.
        """
        urls: list[str] = []
        for p in self.pairs:
            urls.extend([p.front_url, p.back_url])
        for prod in self.products:
            if prod.is_solo:
                urls.append(prod.front_url)
            urls.extend(prod.extras)
        urls.extend(s.url for s in self.singletons)
        return urls

    def to_output(self) -> dict:
        """Serialise to the camelCase shape consumed by listing generation."""
        return {
            "engineVersion": self.engine_version,
            "pairs": [p.to_output() for p in self.pairs],
            "products": [p.to_output() for p in self.products],
            "singletons": [s.model_dump() for s in self.singletons],
            "debugSummary": list(self.debug_summary),
            "metrics": self.metrics.model_dump(mode="json"),
        }
