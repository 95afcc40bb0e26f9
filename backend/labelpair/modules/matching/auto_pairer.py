# Copyright (c) 2026 Harsh Dwivedi
# Licensed under the Harsh Non-Commercial Attribution License (HNCAL) v1.0
# Commercial use requires written permission. See LICENSE for details.

"""
LabelPair — Auto-Pairer
Accepts unambiguous candidates outright, before any LLM is involved.

Two passes, in this order (the order is intentional: the general pass can
consume a back the cosmetic pass would have preferred):

  1. General pass — best.pre_score ≥ AUTO_PAIR_SCORE and
     gap ≥ AUTO_PAIR_GAP, where gap = best − runner-up (runner-up = −∞
     when the front has a single candidate). Both bounds inclusive.

  2. Hair/cosmetic pass — fronts whose category path matches the domain
     regex. Cosmetic backs rarely print brand or product name, so the
     absolute bar is lower (AUTO_PAIR_HAIR_SCORE) and the margin rule
     credits the INCI ingredient cue:
       gap + (HAIR_INCI_GAP_BONUS if best has the cue and runner-up lacks it)
         ≥ AUTO_PAIR_HAIR_GAP
     plus structural guards: bottle / dropper-bottle packaging, INCI cue on
     the best candidate, equal size or distinctive packaging, and a brand
     flag of equal or unknownRescue.

Both passes skip fronts already resolved and backs already used, and
claim accepted pairs on the shared PairingState.
"""

from __future__ import annotations

import re
from typing import Optional

from labelpair.config import Settings, get_settings
from labelpair.core.pairing_state import PairingState
from labelpair.models.features import ImageFeatureRow, PackagingHint
from labelpair.models.pairing import CandidateScore, Pair, PairSource
from labelpair.utils.logger import get_logger

log = get_logger(__name__)

AUTO_CONFIDENCE = 0.95
DOMAIN_AUTO_CONFIDENCE = 0.90

_HAIR_DOMAIN_RE = re.compile(r"hair|cosmetic|skin|styling|beauty", re.IGNORECASE)
_DISTINCTIVE_PACKAGING = {PackagingHint.BOTTLE.value, PackagingHint.DROPPER_BOTTLE.value}


def is_hair_cosmetic(front: ImageFeatureRow) -> bool:
    return bool(_HAIR_DOMAIN_RE.search(front.category_path or ""))


def _gap(best: CandidateScore, runner_up: Optional[CandidateScore]) -> float:
    if runner_up is None:
        return float("inf")
    return best.pre_score - runner_up.pre_score


def _format_gap(gap: float) -> str:
    return "inf" if gap == float("inf") else f"{gap:.2f}"


def _build_pair(
    front: ImageFeatureRow,
    back: Optional[ImageFeatureRow],
    best: CandidateScore,
    gap: float,
    source: PairSource,
    confidence: float,
    label: str,
) -> Pair:
    evidence = [
        f"{label}: preScore={best.pre_score:.2f}",
        f"gap={_format_gap(gap)}",
        *best.evidence(),
    ]
    return Pair(
        front_url=front.url,
        back_url=best.back_url,
        match_score=best.pre_score,
        brand=front.brand_raw or front.brand_norm,
        product=" ".join(sorted(front.product_tokens)),
        variant=" ".join(sorted(front.variant_tokens)) or None,
        size_front=front.size_canonical,
        size_back=back.size_canonical if back else None,
        evidence=evidence,
        confidence=confidence,
        source=source,
        breakdown=best,
    )


def _general_pass(
    candidates: dict[str, list[CandidateScore]],
    features: dict[str, ImageFeatureRow],
    state: PairingState,
    settings: Settings,
) -> list[Pair]:
    accepted: list[Pair] = []

    for front_url, cands in candidates.items():
        if state.is_front_resolved(front_url) or not cands:
            continue

        best = cands[0]
        runner_up = cands[1] if len(cands) > 1 else None
        gap = _gap(best, runner_up)

        if best.pre_score < settings.auto_pair_score or gap < settings.auto_pair_gap:
            continue
        if state.is_back_used(best.back_url):
            log.debug("autopair_back_taken", front=front_url, back=best.back_url)
            continue

        pair = _build_pair(
            features[front_url],
            features.get(best.back_url),
            best,
            gap,
            PairSource.AUTO,
            AUTO_CONFIDENCE,
            "AUTO-PAIRED",
        )
        state.claim(pair)
        accepted.append(pair)

        log.info(
            "autopair_accepted",
            front=front_url,
            back=best.back_url,
            score=best.pre_score,
            gap=_format_gap(gap),
        )

    return accepted


def _hair_pass(
    candidates: dict[str, list[CandidateScore]],
    features: dict[str, ImageFeatureRow],
    state: PairingState,
    settings: Settings,
) -> list[Pair]:
    accepted: list[Pair] = []

    for front_url, cands in candidates.items():
        if state.is_front_resolved(front_url):
            continue
        front = features[front_url]
        if not is_hair_cosmetic(front):
            continue

        viable = [c for c in cands if c.pre_score >= settings.auto_pair_hair_score]
        if not viable:
            continue

        best = viable[0]
        runner_up = viable[1] if len(viable) > 1 else None

        if best.packaging not in _DISTINCTIVE_PACKAGING:
            continue
        if not best.cosmetic_back_cue:
            continue
        # Bottle packaging is distinctive, so it stands in for size equality
        if not (best.size_eq or best.pkg_match):
            continue
        if best.brand_flag not in ("equal", "unknownRescue"):
            continue

        gap = _gap(best, runner_up)
        bonus = (
            settings.hair_inci_gap_bonus
            if runner_up is not None and not runner_up.cosmetic_back_cue
            else 0.0
        )
        if gap + bonus < settings.auto_pair_hair_gap:
            continue
        if state.is_back_used(best.back_url):
            continue

        pair = _build_pair(
            front,
            features.get(best.back_url),
            best,
            gap,
            PairSource.DOMAIN_AUTO,
            DOMAIN_AUTO_CONFIDENCE,
            "HAIR-AUTO-PAIRED",
        )
        state.claim(pair)
        accepted.append(pair)

        log.info(
            "autopair_hair_accepted",
            front=front_url,
            back=best.back_url,
            score=best.pre_score,
            gap=_format_gap(gap),
            inci_bonus=bonus,
        )

    return accepted


def auto_pair(
    candidates: dict[str, list[CandidateScore]],
    features: dict[str, ImageFeatureRow],
    state: PairingState,
    settings: Settings | None = None,
) -> list[Pair]:
    """
    Run both auto-pair passes over the candidate lists.

    Args:
        candidates: front_url → sorted candidate list (from build_candidates)
        features:   Feature collection
        state:      Shared per-run state; accepted pairs are claimed on it
        settings:   Thresholds. Defaults to the cached application settings

    Returns:
        Accepted pairs, general pass first, each in candidate order.
    """
    if settings is None:
        settings = get_settings()

    general = _general_pass(candidates, features, state, settings)
    hair = _hair_pass(candidates, features, state, settings)

    state.debug(f"Auto-paired {len(general)} general + {len(hair)} hair/cosmetic")
    log.info(
        "autopair_complete",
        general=len(general),
        hair=len(hair),
        remaining_fronts=sum(1 for f in candidates if not state.is_front_resolved(f)),
    )

    return general + hair
