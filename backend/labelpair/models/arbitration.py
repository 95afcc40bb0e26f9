# Copyright (c) 2026 Harsh Dwivedi
# Licensed under the Harsh Non-Commercial Attribution License (HNCAL) v1.0
# Commercial use requires written permission. See LICENSE for details.

"""
LabelPair — LLM Response Schemas
Shapes the arbitration stages accept back from the LLM collaborator.
Both camelCase URL keys (frontUrl/backUrl) and short id keys
(frontId/backId) are accepted.
"""

from __future__ import annotations

from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class ModelPair(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    front: str = Field(validation_alias=AliasChoices("frontUrl", "frontId", "front"))
    back: str = Field(validation_alias=AliasChoices("backUrl", "backId", "back"))
    # Missing score counts as zero, so the pair is demoted
    match_score: float = Field(0.0, validation_alias=AliasChoices("matchScore", "match_score"))
    confidence: Optional[float] = None
    brand: Optional[str] = None
    product: Optional[str] = None
    variant: Optional[str] = None
    size_front: Optional[str] = Field(None, validation_alias=AliasChoices("sizeFront", "size_front"))
    size_back: Optional[str] = Field(None, validation_alias=AliasChoices("sizeBack", "size_back"))
    evidence: list[str] = Field(default_factory=list)


class ModelSingleton(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    url: str = Field(validation_alias=AliasChoices("url", "frontUrl", "frontId"))
    reason: str = ""


class TiebreakResponse(BaseModel):
    """Tie-breaker answer: a decision for every requested front."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    pairs: list[ModelPair] = Field(default_factory=list)
    singletons: list[ModelSingleton] = Field(default_factory=list)
    debug_summary: list[str] = Field(
        default_factory=list, validation_alias=AliasChoices("debugSummary", "debug_summary")
    )
    # False when the raw text could not be parsed at all
    parsed: bool = True

    @classmethod
    def unparsed(cls) -> "TiebreakResponse":
        return cls(parsed=False)


class LeftoverPair(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    front_id: str = Field(validation_alias=AliasChoices("frontId", "frontUrl", "front"))
    back_id: str = Field(validation_alias=AliasChoices("backId", "backUrl", "back"))


class LeftoverResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    pairs: list[LeftoverPair] = Field(default_factory=list)
