# Copyright (c) 2026 Harsh Dwivedi
# Licensed under the Harsh Non-Commercial Attribution License (HNCAL) v1.0
# Commercial use requires written permission. See LICENSE for details.

"""
LabelPair — Candidate Generator
For every front image, scores every back/other image with a fixed
weighted sum of heuristic signals and keeps the top-K per front.

Score composition (weights are fixed configuration, not learned):
  +3.0  brand equality (both known)
  −1.0  brand mismatch (both known, no rescue applied)
  +2.0  product-token Jaccard ≥ 0.5   (+1.0 if ≥ 0.3)
  +1.0  variant-token Jaccard ≥ 0.5
  +1.0  canonical size equality
  +1.0  packaging equality (+1.5 pouch, +2.0 dropper-bottle)
  +1.0  category-tail overlap
  +1.0  unknown-brand rescue (one side unbranded, packaging + category agree)
  +1.5  distributor rescue (brands differ, strong product + packaging evidence)
  +0.5  cosmetic back cue (INCI / directions language on a real back)
  +1.5  dominant colour match (shade-insensitive)
  +0.5  filename / folder proximity
  +0.5  barcode on back for a front with a unique signature
  −2.0  role penalty when the back is not role=back (−0.5 with strong evidence)
  −2.0  category conflict (hair/cosmetic vs supplement/food)

Brand mismatch is a penalty, not a filter — OCR brand detection on back
labels is unreliable. Pure computation; identical inputs give identical
candidate lists regardless of worker count.
"""

from __future__ import annotations

import re
import time
from collections import Counter, defaultdict
from concurrent.futures import ThreadPoolExecutor

import numpy as np
from rapidfuzz.distance import Levenshtein

from labelpair.config import Settings, get_settings
from labelpair.models.features import ImageFeatureRow, ImageRole, PackagingHint
from labelpair.models.pairing import BrandFlag, CandidateScore
from labelpair.modules.features.normalizer import base_color, basename
from labelpair.modules.matching.auto_pairer import is_hair_cosmetic
from labelpair.utils.logger import get_logger

log = get_logger(__name__)

# ─── Signal weights ──────────────────────────────────────────────────────────
_W_BRAND = 3.0
_W_BRAND_MISMATCH = -1.0
_W_PROD_STRONG = 2.0
_W_PROD_WEAK = 1.0
_W_VARIANT = 1.0
_W_SIZE = 1.0
_W_CAT_TAIL = 1.0
_W_UNKNOWN_RESCUE = 1.0
_W_DISTRIBUTOR_RESCUE = 1.5
_W_COSMETIC_CUE = 0.5
_W_COLOR = 1.5
_W_PROXIMITY = 0.5
_W_BARCODE = 0.5
_W_ROLE_PENALTY = -2.0
_W_ROLE_PENALTY_SOFT = -0.5
_W_CATEGORY_CONFLICT = -2.0

# High-precision packaging types earn more than a generic match
_PACKAGING_BOOST: dict[PackagingHint, float] = {
    PackagingHint.DROPPER_BOTTLE: 2.0,
    PackagingHint.POUCH: 1.5,
}
_PACKAGING_BOOST_DEFAULT = 1.0

_PROD_STRONG_JACCARD = 0.5
_PROD_WEAK_JACCARD = 0.3
_VARIANT_JACCARD = 0.5

_HAIR_COSMETIC_RE = re.compile(r"hair|cosmetic|beauty", re.IGNORECASE)
_SUPPLEMENT_FOOD_RE = re.compile(r"supplement|food|beverage|vitamin|nutrition", re.IGNORECASE)
_COSMETIC_BACK_CUE_RE = re.compile(
    r"ingredients:|\binci\b|\baqua\b|\bparfum\b|phenoxyethanol|cetearyl|"
    r"avoid contact|\b(?:6|12|24)m\b|distributed by|apply.*hair",
    re.IGNORECASE,
)
_BARCODE_RE = re.compile(r"barcode|\bupc\b|\bean\b|\bgtin\b|product code", re.IGNORECASE)
_IMAGE_EXT_RE = re.compile(r"\.(jpe?g|png|webp|gif|heic)$", re.IGNORECASE)


# ─── Signal helpers ──────────────────────────────────────────────────────────

def jaccard(a: frozenset[str], b: frozenset[str]) -> float:
    """|A ∩ B| / |A ∪ B|; 0.0 when both sets are empty."""
    union = a | b
    if not union:
        return 0.0
    return len(a & b) / len(union)


def category_tail_overlap(tail_a: str, tail_b: str) -> bool:
    if not tail_a or not tail_b:
        return False
    tokens_a = set(tail_a.lower().split())
    tokens_b = set(tail_b.lower().split())
    tokens_a.discard(">")
    return bool(tokens_a & tokens_b)


def has_category_conflict(cat_a: str | None, cat_b: str | None) -> bool:
    if not cat_a or not cat_b:
        return False
    a_hair, b_hair = bool(_HAIR_COSMETIC_RE.search(cat_a)), bool(_HAIR_COSMETIC_RE.search(cat_b))
    a_supp, b_supp = bool(_SUPPLEMENT_FOOD_RE.search(cat_a)), bool(_SUPPLEMENT_FOOD_RE.search(cat_b))
    return (a_hair and b_supp) or (a_supp and b_hair)


def has_cosmetic_back_cue(text: str) -> bool:
    return bool(_COSMETIC_BACK_CUE_RE.search(text or ""))


def colors_match(color_a: str, color_b: str) -> bool:
    if not color_a or not color_b:
        return False
    return color_a == color_b or base_color(color_a) == base_color(color_b)


def _path_parts(url: str) -> tuple[str, str]:
    folder = url.rsplit("/", 1)[0] if "/" in url else ""
    stem = _IMAGE_EXT_RE.sub("", basename(url))
    return folder, stem


def proximity_boost(front_url: str, back_url: str) -> float:
    """Same folder, or filename stems within edit distance 2."""
    front_folder, front_stem = _path_parts(front_url)
    back_folder, back_stem = _path_parts(back_url)

    if front_folder and front_folder == back_folder:
        return _W_PROXIMITY
    if (
        len(front_stem) > 2
        and len(back_stem) > 2
        and Levenshtein.distance(front_stem, back_stem) <= 2
    ):
        return _W_PROXIMITY
    return 0.0


def front_signature(front: ImageFeatureRow) -> str:
    return f"{front.brand_norm}|{' '.join(sorted(front.product_tokens))}"


# ─── Scoring ─────────────────────────────────────────────────────────────────

def compute_score(
    front: ImageFeatureRow,
    back: ImageFeatureRow,
    front_is_unique: bool = False,
) -> CandidateScore:
    """Score one front → back edge. Pure: depends only on the two rows."""
    score = 0.0

    brand_known_both = bool(front.brand_norm) and bool(back.brand_norm)
    brand_match = brand_known_both and front.brand_norm == back.brand_norm
    if brand_match:
        score += _W_BRAND

    prod_jac = jaccard(front.product_tokens, back.product_tokens)
    if prod_jac >= _PROD_STRONG_JACCARD:
        score += _W_PROD_STRONG
    elif prod_jac >= _PROD_WEAK_JACCARD:
        score += _W_PROD_WEAK

    var_jac = jaccard(front.variant_tokens, back.variant_tokens)
    if var_jac >= _VARIANT_JACCARD:
        score += _W_VARIANT

    size_eq = (
        front.size_canonical is not None
        and back.size_canonical is not None
        and front.size_canonical == back.size_canonical
    )
    if size_eq:
        score += _W_SIZE

    pkg_match = (
        front.packaging_hint != PackagingHint.UNKNOWN
        and front.packaging_hint == back.packaging_hint
    )
    packaging_boost = 0.0
    if pkg_match:
        packaging_boost = _PACKAGING_BOOST.get(front.packaging_hint, _PACKAGING_BOOST_DEFAULT)
        score += packaging_boost

    cat_overlap = category_tail_overlap(front.category_tail, back.category_tail)
    if cat_overlap:
        score += _W_CAT_TAIL

    brand_flag: BrandFlag = "equal" if brand_match else "mismatch"

    # One side unbranded, but packaging and category agree (or category unknown)
    if not brand_known_both and pkg_match:
        category_ok = (
            not front.category_path
            or not back.category_path
            or cat_overlap
        )
        if category_ok:
            score += _W_UNKNOWN_RESCUE
            brand_flag = "unknownRescue"

    # Contract manufacturing: back names the distributor, not the brand
    if brand_known_both and not brand_match:
        if prod_jac >= _PROD_STRONG_JACCARD and (size_eq or cat_overlap) and pkg_match:
            score += _W_DISTRIBUTOR_RESCUE
            brand_flag = "distributorRescue"
        else:
            score += _W_BRAND_MISMATCH

    if not brand_known_both and brand_flag != "unknownRescue":
        brand_flag = "unknown"

    cosmetic_cue = has_cosmetic_back_cue(back.text_extracted)
    if cosmetic_cue and back.role == ImageRole.BACK:
        score += _W_COSMETIC_CUE

    color_match = colors_match(front.color_key, back.color_key)
    if color_match:
        score += _W_COLOR

    prox = proximity_boost(front.url, back.url)
    score += prox

    barcode = _W_BARCODE if front_is_unique and _BARCODE_RE.search(back.text_extracted or "") else 0.0
    score += barcode

    if front.role != ImageRole.FRONT or back.role != ImageRole.BACK:
        strong = color_match and (prod_jac >= 0.4 or size_eq) and pkg_match
        score += _W_ROLE_PENALTY_SOFT if strong else _W_ROLE_PENALTY

    if has_category_conflict(front.category_path, back.category_path):
        score += _W_CATEGORY_CONFLICT

    return CandidateScore(
        back_url=back.url,
        pre_score=round(score, 4),
        brand_match=brand_match,
        brand_flag=brand_flag,
        prod_jaccard=prod_jac,
        var_jaccard=var_jac,
        size_eq=size_eq,
        pkg_match=pkg_match,
        packaging=front.packaging_hint.value,
        packaging_boost=packaging_boost,
        cat_tail_overlap=cat_overlap,
        cosmetic_back_cue=cosmetic_cue,
        color_match=color_match,
        proximity_boost=prox,
        barcode_boost=barcode,
    )


def _sort_key(c: CandidateScore) -> tuple:
    # Descending score, then the documented tie-breakers, then URL for stability
    return (-c.pre_score, -c.prod_jaccard, not c.brand_match, not c.pkg_match, c.back_url)


def _fronts_and_backs(
    features: dict[str, ImageFeatureRow],
) -> tuple[list[ImageFeatureRow], list[ImageFeatureRow]]:
    fronts = [f for f in features.values() if f.role == ImageRole.FRONT]
    backs = [f for f in features.values() if f.role != ImageRole.FRONT]
    return fronts, backs


def _signature_counts(fronts: list[ImageFeatureRow]) -> Counter:
    return Counter(front_signature(f) for f in fronts)


def rank_candidates_for_front(
    front: ImageFeatureRow,
    backs: list[ImageFeatureRow],
    front_is_unique: bool,
    min_pre_score: float | None = None,
) -> list[CandidateScore]:
    """All scores for one front, sorted best-first (not truncated)."""
    scored = [compute_score(front, back, front_is_unique) for back in backs]
    if min_pre_score is not None:
        scored = [c for c in scored if c.pre_score >= min_pre_score]
    scored.sort(key=_sort_key)
    return scored


def build_candidates(
    features: dict[str, ImageFeatureRow],
    top_k: int | None = None,
    settings: Settings | None = None,
) -> dict[str, list[CandidateScore]]:
    """
    Build the top-K candidate list for every front.

    Args:
        features: Feature collection (roles already promoted)
        top_k:    Candidates kept per front. Defaults to config CANDIDATE_TOP_K (4).
        settings: Defaults to the cached application settings

    Returns:
        front_url → candidates sorted by pre_score descending.
        Fronts with no candidate above min_pre_score are omitted.
        Hair/cosmetic fronts use min(min_pre_score, auto_pair_hair_score)
        as their floor.
        Key order follows the feature collection order.
    """
    if settings is None:
        settings = get_settings()
    if top_k is None:
        top_k = settings.candidate_top_k

    fronts, backs = _fronts_and_backs(features)
    sig_counts = _signature_counts(fronts)

    log.info(
        "candidate_generation_start",
        fronts=len(fronts),
        backs=len(backs),
        top_k=top_k,
        workers=settings.candidate_workers,
    )

    def _rank(front: ImageFeatureRow) -> list[CandidateScore]:
        floor = settings.min_pre_score
        # The hair/cosmetic auto-pair bar sits below the general floor
        if is_hair_cosmetic(front):
            floor = min(floor, settings.auto_pair_hair_score)
        ranked = rank_candidates_for_front(
            front,
            backs,
            front_is_unique=sig_counts[front_signature(front)] == 1,
            min_pre_score=floor,
        )
        return ranked[:top_k]

    started = time.perf_counter()
    if settings.candidate_workers > 1 and len(fronts) > 1:
        with ThreadPoolExecutor(max_workers=settings.candidate_workers) as pool:
            ranked_lists = list(pool.map(_rank, fronts))
    else:
        ranked_lists = [_rank(f) for f in fronts]
    elapsed_ms = int((time.perf_counter() - started) * 1000)

    result: dict[str, list[CandidateScore]] = {}
    for front, ranked in zip(fronts, ranked_lists):
        if ranked:
            result[front.url] = ranked

    if elapsed_ms > settings.max_candidate_build_ms:
        log.warning(
            "candidate_generation_slow",
            elapsed_ms=elapsed_ms,
            threshold_ms=settings.max_candidate_build_ms,
        )

    # One back showing up under many fronts usually means weak signals
    back_fronts: dict[str, list[str]] = defaultdict(list)
    for front_url, cands in result.items():
        for c in cands:
            back_fronts[c.back_url].append(front_url)
    for back_url, front_urls in back_fronts.items():
        if len(front_urls) >= settings.max_back_front_ratio:
            log.warning(
                "candidate_back_overloaded",
                back=back_url,
                fronts=len(front_urls),
            )

    log.info(
        "candidate_generation_complete",
        fronts_with_candidates=len(result),
        total_candidates=sum(len(c) for c in result.values()),
        elapsed_ms=elapsed_ms,
    )

    return result


def score_all_pairs(
    fronts: list[ImageFeatureRow],
    backs: list[ImageFeatureRow],
) -> tuple[np.ndarray, list[list[CandidateScore]]]:
    """
    Full front × back score matrix — no threshold, no truncation.

    Returns:
        (score_matrix, breakdowns)
        score_matrix: (n_fronts, n_backs) float64 pre_scores
        breakdowns:   breakdowns[i][j] is the CandidateScore for front i, back j
    """
    sig_counts = _signature_counts(fronts)
    matrix = np.zeros((len(fronts), len(backs)), dtype=np.float64)
    breakdowns: list[list[CandidateScore]] = []

    for i, front in enumerate(fronts):
        unique = sig_counts[front_signature(front)] == 1
        row = [compute_score(front, back, unique) for back in backs]
        matrix[i, :] = [c.pre_score for c in row]
        breakdowns.append(row)

    return matrix, breakdowns
