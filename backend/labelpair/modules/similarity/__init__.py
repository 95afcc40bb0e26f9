# Copyright (c) 2026 Harsh Dwivedi
# Licensed under the Harsh Non-Commercial Attribution License (HNCAL) v1.0
# Commercial use requires written permission. See LICENSE for details.

"""
LabelPair — Similarity Module
Public API for embedding lookups and the visual confirmation stage.
"""

from labelpair.modules.similarity.embedding_client import (
    EmbeddingCache,
    EmbeddingClient,
    HTTPEmbeddingClient,
    cosine_similarity,
    l2_normalise,
)
from labelpair.modules.similarity.visual_confirm import confirm_visual_pairs

__all__ = [
    # Collaborator
    "EmbeddingClient",
    "HTTPEmbeddingClient",
    "EmbeddingCache",
    # Math
    "l2_normalise",
    "cosine_similarity",
    # Stage
    "confirm_visual_pairs",
]
