# Copyright (c) 2026 Harsh Dwivedi
# Licensed under the Harsh Non-Commercial Attribution License (HNCAL) v1.0
# Commercial use requires written permission. See LICENSE for details.

"""
LabelPair — Two-Shot Global Solver
Optimal one-to-one front/back assignment for clean "two-shot" batches
using the Hungarian algorithm (scipy.optimize.linear_sum_assignment).

A batch is two-shot when every image is a front or a back, and there are
as many fronts as backs (N > 0). In that case every image is known to have
a partner, so greedy top-K decisions are replaced by a global optimum over
the full front × back score matrix. Auto-pairing, tie-breaking, leftover
and visual stages are all skipped and no singletons are produced.

Cost formula:
  cost = max(score_matrix) − score

Minimising cost is equivalent to maximising total pre_score, and keeps
every cost non-negative.
"""

from __future__ import annotations

import numpy as np
from scipy.optimize import linear_sum_assignment

from labelpair.core.pairing_state import PairingState
from labelpair.models.features import ImageFeatureRow, ImageRole
from labelpair.models.pairing import Pair, PairSource
from labelpair.modules.matching.candidate_generator import score_all_pairs
from labelpair.utils.logger import get_logger

log = get_logger(__name__)

GLOBAL_SOLVER_CONFIDENCE = 0.98


def is_two_shot(features: dict[str, ImageFeatureRow]) -> bool:
    """fronts == backs > 0 and no image is anything else."""
    fronts = sum(1 for f in features.values() if f.role == ImageRole.FRONT)
    backs = sum(1 for f in features.values() if f.role == ImageRole.BACK)
    return fronts > 0 and fronts == backs and len(features) == fronts + backs


def build_cost_matrix(score_matrix: np.ndarray) -> np.ndarray:
    """Convert a score matrix (higher = better) to a non-negative cost matrix."""
    if score_matrix.size == 0:
        return score_matrix.copy()
    return score_matrix.max() - score_matrix


def solve_two_shot(
    features: dict[str, ImageFeatureRow],
    state: PairingState,
) -> list[Pair]:
    """
    Assign every front to exactly one back.

    Args:
        features: Two-shot feature collection (see is_two_shot)
        state:    Shared per-run state; every assignment is claimed on it

    Returns:
        N pairs tagged global-solver, ordered by front input order.
    """
    fronts = [f for f in features.values() if f.role == ImageRole.FRONT]
    backs = [f for f in features.values() if f.role == ImageRole.BACK]

    score_matrix, breakdowns = score_all_pairs(fronts, backs)
    cost_matrix = build_cost_matrix(score_matrix)

    log.info(
        "hungarian_start",
        n_fronts=len(fronts),
        n_backs=len(backs),
        cost_matrix_shape=cost_matrix.shape,
    )

    row_ind, col_ind = linear_sum_assignment(cost_matrix)

    log.info("hungarian_complete", assigned_pairs=len(row_ind))

    pairs: list[Pair] = []
    for row, col in zip(row_ind, col_ind):
        front = fronts[row]
        back = backs[col]
        breakdown = breakdowns[row][col]
        score = float(score_matrix[row, col])

        pair = Pair(
            front_url=front.url,
            back_url=back.url,
            match_score=round(score, 1),
            brand=front.brand_raw or front.brand_norm,
            product=" ".join(sorted(front.product_tokens)),
            variant=" ".join(sorted(front.variant_tokens)) or None,
            size_front=front.size_canonical,
            size_back=back.size_canonical,
            evidence=[
                f"GLOBAL-SOLVER: preScore={score:.2f}",
                f"assignmentCost={float(cost_matrix[row, col]):.2f}",
                *breakdown.evidence(),
            ],
            confidence=GLOBAL_SOLVER_CONFIDENCE,
            source=PairSource.GLOBAL_SOLVER,
            breakdown=breakdown,
        )
        state.claim(pair)
        pairs.append(pair)

    state.debug(f"Two-shot global solver assigned {len(pairs)} pairs")
    log.info(
        "global_solver_complete",
        pairs=len(pairs),
        total_score=round(float(score_matrix[row_ind, col_ind].sum()), 2),
    )

    return pairs
