# Copyright (c) 2026 Harsh Dwivedi
# Licensed under the Harsh Non-Commercial Attribution License (HNCAL) v1.0
# Commercial use requires written permission. See LICENSE for details.

"""
LabelPair — Matching Module
Public API for heuristic candidate scoring, auto-pairing and the
two-shot global solver.
"""

from labelpair.modules.matching.auto_pairer import auto_pair, is_hair_cosmetic
from labelpair.modules.matching.candidate_generator import (
    build_candidates,
    compute_score,
    jaccard,
    score_all_pairs,
)
from labelpair.modules.matching.global_solver import (
    build_cost_matrix,
    is_two_shot,
    solve_two_shot,
)

__all__ = [
    # Scoring
    "compute_score",
    "jaccard",
    "build_candidates",
    "score_all_pairs",
    # Auto-pair
    "auto_pair",
    "is_hair_cosmetic",
    # Global solver
    "is_two_shot",
    "build_cost_matrix",
    "solve_two_shot",
]
