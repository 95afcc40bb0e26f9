# Copyright (c) 2026 Harsh Dwivedi
# Licensed under the Harsh Non-Commercial Attribution License (HNCAL) v1.0
# Commercial use requires written permission. See LICENSE for details.

"""
LabelPair — Image Feature Models
Pydantic models representing one photographed image through the
feature stage: raw vision record → normalised, comparable feature row.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class ImageRole(str, Enum):
    FRONT = "front"
    BACK = "back"
    OTHER = "other"


class PackagingHint(str, Enum):
    POUCH = "pouch"
    DROPPER_BOTTLE = "dropper-bottle"
    BOTTLE = "bottle"
    JAR = "jar"
    TUBE = "tube"
    TUB = "tub"
    BOX = "box"
    SACHET = "sachet"
    UNKNOWN = "unknown"


class VisionRecord(BaseModel):
    """
    One per-image record as produced by the upstream vision collaborator.
    Every field except url is a best-effort guess and may be missing.
    """
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    url: Optional[str] = None
    role: Optional[str] = None
    brand: Optional[str] = None
    product: Optional[str] = None
    variant: Optional[str] = None
    size: Optional[str] = None
    color: Optional[str] = Field(
        None, validation_alias=AliasChoices("color", "dominantColor")
    )
    packaging: Optional[str] = None
    category_path: Optional[str] = Field(
        None, validation_alias=AliasChoices("category_path", "categoryPath")
    )
    ocr_text: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("ocr_text", "ocrText", "textExtracted"),
    )
    visual_description: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("visual_description", "visualDescription"),
    )
    # Optional pre-grouping hint from the vision step
    group_id: Optional[str] = Field(
        None, validation_alias=AliasChoices("group_id", "groupId")
    )


class ImageFeatureRow(BaseModel):
    """
    Normalised features for a single image, keyed by its canonical URL.
    Frozen: the only role change (other → back) goes through
    promote_other_to_back(), which returns a new row.
    """
    model_config = ConfigDict(frozen=True)

    url: str = Field(..., description="Canonical identity key, unique per batch")
    source_url: str = Field("", description="URL as uploaded, reported in the result")
    role: ImageRole = ImageRole.OTHER
    original_role: ImageRole = Field(
        ImageRole.OTHER, description="Role reported by vision — never changes"
    )

    # ── Text signals ──
    brand_norm: str = Field("", description="Lower-cased core brand token")
    brand_raw: str = ""
    product_tokens: frozenset[str] = Field(default_factory=frozenset)
    variant_tokens: frozenset[str] = Field(default_factory=frozenset)
    size_canonical: Optional[str] = None
    text_extracted: str = Field("", description="Truncated OCR snippet")

    # ── Visual / category signals ──
    color_key: str = ""
    packaging_hint: PackagingHint = PackagingHint.UNKNOWN
    category_path: Optional[str] = None
    category_tail: str = ""

    group_id: Optional[str] = None

    @property
    def output_url(self) -> str:
        return self.source_url or self.url

    @property
    def is_front(self) -> bool:
        return self.role == ImageRole.FRONT

    @property
    def is_back(self) -> bool:
        return self.role == ImageRole.BACK

    @property
    def is_back_side(self) -> bool:
        """Eligible for the late back pools: back or other, never a former front."""
        return (
            self.role in (ImageRole.BACK, ImageRole.OTHER)
            and self.original_role != ImageRole.FRONT
        )

    def summary(self) -> dict:
        """Compact, JSON-safe view sent to the LLM collaborator."""
        return {
            "url": self.url,
            "role": self.role.value,
            "brand": self.brand_norm,
            "product": " ".join(sorted(self.product_tokens)),
            "variant": " ".join(sorted(self.variant_tokens)),
            "size": self.size_canonical,
            "packaging": self.packaging_hint.value,
            "categoryTail": self.category_tail,
            "color": self.color_key,
            "ocr": self.text_extracted,
        }
