# Copyright (c) 2026 Harsh Dwivedi
# Licensed under the Harsh Non-Commercial Attribution License (HNCAL) v1.0
# Commercial use requires written permission. See LICENSE for details.

"""
LabelPair — Pairing Data Models
Candidate edges, accepted pairs, final product groupings and singletons.
"""

from __future__ import annotations

from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, Field

BrandFlag = Literal["equal", "mismatch", "unknownRescue", "distributorRescue", "unknown"]


class PairSource(str, Enum):
    """Which stage accepted a pair — part of the audit trail."""
    AUTO = "auto"
    DOMAIN_AUTO = "domain-auto"
    MODEL = "model"
    GLOBAL_SOLVER = "global-solver"
    LLM_LEFTOVER = "llm-leftover"
    VISUAL = "visual"
    SOLO = "solo"


class CandidateScore(BaseModel):
    """Directional front → back edge with its heuristic score breakdown."""
    back_url: str
    pre_score: float

    brand_match: bool = False
    brand_flag: BrandFlag = "unknown"
    prod_jaccard: float = Field(0.0, ge=0.0, le=1.0)
    var_jaccard: float = Field(0.0, ge=0.0, le=1.0)
    size_eq: bool = False
    pkg_match: bool = False
    packaging: str = "unknown"
    packaging_boost: float = 0.0
    cat_tail_overlap: bool = False
    cosmetic_back_cue: bool = False
    color_match: bool = False
    proximity_boost: float = 0.0
    barcode_boost: float = 0.0

    def evidence(self) -> list[str]:
        """Human-readable score breakdown, one signal per line."""
        return [
            f"brand={self.brand_flag}",
            f"packaging={self.packaging} boost={self.packaging_boost}",
            f"prodJac={self.prod_jaccard:.2f} varJac={self.var_jaccard:.2f}",
            f"sizeEq={self.size_eq} catTailOverlap={self.cat_tail_overlap}",
            f"cosmeticBackCue={self.cosmetic_back_cue} colorMatch={self.color_match}",
        ]


class Pair(BaseModel):
    """
    One accepted front/back match. A back_url appears in at most one Pair
    per pipeline run — enforced by PairingState.claim().
    """
    front_url: str
    back_url: str
    match_score: float = 0.0
    brand: str = ""
    product: str = ""
    variant: Optional[str] = None
    size_front: Optional[str] = None
    size_back: Optional[str] = None
    evidence: list[str] = Field(default_factory=list)
    confidence: float = Field(0.0, ge=0.0, le=1.0)
    source: PairSource
    # Machine-readable breakdown for heuristic stages
    breakdown: Optional[CandidateScore] = None

    def to_output(self) -> dict:
        return {
            "frontUrl": self.front_url,
            "backUrl": self.back_url,
            "matchScore": self.match_score,
            "brand": self.brand,
            "product": self.product,
            "variant": self.variant,
            "sizeFront": self.size_front,
            "sizeBack": self.size_back,
            "evidence": list(self.evidence),
            "confidence": self.confidence,
            "source": self.source.value,
        }


class Product(BaseModel):
    """
    Final grouping unit: a pair (or a solo front) plus extra angle shots.
    Only the extras/singleton resolver mutates extras after creation.
    """
    product_id: str
    front_url: str
    back_url: Optional[str] = None
    extras: list[str] = Field(default_factory=list)
    brand: str = ""
    product: str = ""
    variant: Optional[str] = None
    match_score: float = 0.0
    confidence: float = Field(0.0, ge=0.0, le=1.0)
    source: PairSource
    triggers: list[str] = Field(default_factory=list)

    @property
    def is_solo(self) -> bool:
        return self.back_url is None

    def image_urls(self) -> list[str]:
        urls = [self.front_url]
        if self.back_url:
            urls.append(self.back_url)
        return urls + list(self.extras)

    def to_output(self) -> dict:
        return {
            "productId": self.product_id,
            "frontUrl": self.front_url,
            "backUrl": self.back_url,
            "extras": list(self.extras),
            "evidence": {
                "brand": self.brand,
                "product": self.product,
                "variant": self.variant,
                "matchScore": self.match_score,
                "confidence": self.confidence,
                "source": self.source.value,
                "triggers": list(self.triggers),
            },
        }


class Singleton(BaseModel):
    """An image with no product assignment — surfaced for manual review."""
    url: str
    reason: str
