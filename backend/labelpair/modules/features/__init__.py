# Copyright (c) 2026 Harsh Dwivedi
# Licensed under the Harsh Non-Commercial Attribution License (HNCAL) v1.0
# Commercial use requires written permission. See LICENSE for details.

"""
LabelPair — Feature Builder Module
Public API for vision-record normalisation and role transitions.
"""

from labelpair.modules.features.feature_builder import (
    build_feature_row,
    build_features,
    parse_role,
)
from labelpair.modules.features.normalizer import (
    canonical_url,
    canonicalize_size,
    category_tail,
    extract_packaging,
    normalize_brand,
    normalize_color,
    tokenize,
)
from labelpair.modules.features.role_promotion import (
    promote_lone_fronts,
    promote_other_to_back,
)

__all__ = [
    # Builder
    "build_features",
    "build_feature_row",
    "parse_role",
    # Normaliser
    "canonical_url",
    "normalize_brand",
    "tokenize",
    "canonicalize_size",
    "extract_packaging",
    "category_tail",
    "normalize_color",
    # Role transitions
    "promote_lone_fronts",
    "promote_other_to_back",
]
