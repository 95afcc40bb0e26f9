# Copyright (c) 2026 Harsh Dwivedi
# Licensed under the Harsh Non-Commercial Attribution License (HNCAL) v1.0
# Commercial use requires written permission. See LICENSE for details.

"""
Phase 4 auto-pairer tests.
Tests the general score+gap pass at its exact boundaries, the
hair/cosmetic relaxed pass, and the fixed general-then-hair ordering.
Candidate lists are built by hand so thresholds can be hit exactly.
"""

import pytest


def _settings(**overrides):
    from labelpair.config import Settings
    return Settings(_env_file=None, **overrides)


def _row(url: str, role: str = "back", category: str | None = None, brand: str = "acme"):
    from labelpair.models.features import ImageFeatureRow, ImageRole
    r = ImageRole(role)
    return ImageFeatureRow(url=url, role=r, original_role=r, brand_norm=brand,
                           brand_raw=brand.title(), category_path=category)


def _cand(back: str, score: float, **kw):
    from labelpair.models.pairing import CandidateScore
    return CandidateScore(back_url=back, pre_score=score, **kw)


def _features(*rows):
    return {r.url: r for r in rows}


# ─── General pass ────────────────────────────────────────────────────────────

def test_exact_thresholds_are_accepted():
    from labelpair.core.pairing_state import PairingState
    from labelpair.models.pairing import PairSource
    from labelpair.modules.matching import auto_pair

    features = _features(_row("f1", "front"), _row("b1"), _row("b2"))
    cands = {"f1": [_cand("b1", 4.0), _cand("b2", 3.0)]}
    state = PairingState()

    pairs = auto_pair(cands, features, state, _settings())

    assert len(pairs) == 1
    assert pairs[0].back_url == "b1"
    assert pairs[0].source == PairSource.AUTO
    assert pairs[0].confidence == 0.95
    assert pairs[0].evidence[0] == "AUTO-PAIRED: preScore=4.00"
    assert pairs[0].evidence[1] == "gap=1.00"
    assert state.is_back_used("b1")


@pytest.mark.parametrize("best,runner_up", [
    (3.0, None),   # one unit below score threshold
    (4.0, 4.0),    # gap one unit below gap threshold
    (5.0, 4.5),    # gap 0.5
])
def test_below_thresholds_are_not_accepted(best, runner_up):
    from labelpair.core.pairing_state import PairingState
    from labelpair.modules.matching import auto_pair

    features = _features(_row("f1", "front"), _row("b1"), _row("b2"))
    cands = [_cand("b1", best)]
    if runner_up is not None:
        cands.append(_cand("b2", runner_up))
    state = PairingState()

    assert auto_pair({"f1": cands}, features, state, _settings()) == []
    assert state.used_backs == set()


def test_single_candidate_gap_is_infinite():
    from labelpair.core.pairing_state import PairingState
    from labelpair.modules.matching import auto_pair

    features = _features(_row("f1", "front"), _row("b1"))
    pairs = auto_pair({"f1": [_cand("b1", 4.0)]}, features, PairingState(), _settings())
    assert len(pairs) == 1
    assert pairs[0].evidence[1] == "gap=inf"


def test_used_back_is_skipped():
    from labelpair.core.pairing_state import PairingState
    from labelpair.models.pairing import Pair, PairSource
    from labelpair.modules.matching import auto_pair

    features = _features(_row("f1", "front"), _row("b1"))
    state = PairingState()
    state.claim(Pair(front_url="fx", back_url="b1", source=PairSource.AUTO))

    assert auto_pair({"f1": [_cand("b1", 9.0)]}, features, state, _settings()) == []


def test_two_fronts_cannot_share_a_back():
    from labelpair.core.pairing_state import PairingState
    from labelpair.modules.matching import auto_pair

    features = _features(_row("f1", "front"), _row("f2", "front"), _row("b1"))
    cands = {"f1": [_cand("b1", 6.0)], "f2": [_cand("b1", 7.0)]}
    pairs = auto_pair(cands, features, PairingState(), _settings())

    assert [(p.front_url, p.back_url) for p in pairs] == [("f1", "b1")]


def test_thresholds_come_from_settings():
    from labelpair.core.pairing_state import PairingState
    from labelpair.modules.matching import auto_pair

    features = _features(_row("f1", "front"), _row("b1"))
    cands = {"f1": [_cand("b1", 4.0)]}
    strict = _settings(auto_pair_score=4.5)
    assert auto_pair(cands, features, PairingState(), strict) == []


def test_auto_pair_is_deterministic():
    from labelpair.core.pairing_state import PairingState
    from labelpair.modules.matching import auto_pair

    features = _features(_row("f1", "front"), _row("f2", "front"), _row("b1"), _row("b2"))
    cands = {"f1": [_cand("b1", 6.0), _cand("b2", 2.0)], "f2": [_cand("b2", 5.0)]}

    runs = [
        [p.model_dump() for p in auto_pair(cands, features, PairingState(), _settings())]
        for _ in range(3)
    ]
    assert runs[0] == runs[1] == runs[2]


# ─── Hair / cosmetic pass ────────────────────────────────────────────────────

_HAIR = "Beauty > Hair Care > Shampoo"


def _hair_cand(back: str, score: float, cue: bool = True, **kw):
    fields = dict(packaging="bottle", pkg_match=True, cosmetic_back_cue=cue,
                  brand_flag="unknownRescue")
    fields.update(kw)
    return _cand(back, score, **fields)


def test_hair_pass_accepts_with_inci_bonus():
    from labelpair.core.pairing_state import PairingState
    from labelpair.models.pairing import PairSource
    from labelpair.modules.matching import auto_pair

    features = _features(_row("f1", "front", _HAIR), _row("b1"), _row("b2"))
    # gap 0.2 + INCI bonus 0.5 ≥ 0.5
    cands = {"f1": [_hair_cand("b1", 2.0), _hair_cand("b2", 1.8, cue=False)]}

    pairs = auto_pair(cands, features, PairingState(), _settings())

    assert len(pairs) == 1
    assert pairs[0].source == PairSource.DOMAIN_AUTO
    assert pairs[0].confidence == 0.90
    assert pairs[0].evidence[0].startswith("HAIR-AUTO-PAIRED")


def test_hair_pass_needs_margin_without_bonus():
    from labelpair.core.pairing_state import PairingState
    from labelpair.modules.matching import auto_pair

    features = _features(_row("f1", "front", _HAIR), _row("b1"), _row("b2"))
    cands = {"f1": [_hair_cand("b1", 2.0), _hair_cand("b2", 1.8, cue=True)]}
    assert auto_pair(cands, features, PairingState(), _settings()) == []


def test_hair_pass_ignores_runner_up_below_hair_score():
    from labelpair.core.pairing_state import PairingState
    from labelpair.modules.matching import auto_pair

    features = _features(_row("f1", "front", _HAIR), _row("b1"), _row("b2"))
    # Runner-up under 1.5 is not viable, so the gap is infinite
    cands = {"f1": [_hair_cand("b1", 1.6), _hair_cand("b2", 1.4, cue=True)]}
    assert len(auto_pair(cands, features, PairingState(), _settings())) == 1


@pytest.mark.parametrize("override", [
    {"packaging": "jar"},
    {"cosmetic_back_cue": False},
    {"brand_flag": "mismatch"},
    {"pkg_match": False, "size_eq": False},
])
def test_hair_pass_guards(override):
    from labelpair.core.pairing_state import PairingState
    from labelpair.modules.matching import auto_pair

    features = _features(_row("f1", "front", _HAIR), _row("b1"))
    cand = _hair_cand("b1", 2.0)
    cand = cand.model_copy(update=override)
    assert auto_pair({"f1": [cand]}, features, PairingState(), _settings()) == []


def test_hair_pass_skips_non_cosmetic_categories():
    from labelpair.core.pairing_state import PairingState
    from labelpair.modules.matching import auto_pair

    features = _features(_row("f1", "front", "Health > Supplements"), _row("b1"))
    cands = {"f1": [_hair_cand("b1", 2.0)]}
    assert auto_pair(cands, features, PairingState(), _settings()) == []


def test_general_pass_runs_before_hair_pass():
    from labelpair.core.pairing_state import PairingState
    from labelpair.models.pairing import PairSource
    from labelpair.modules.matching import auto_pair

    features = _features(_row("h1", "front", _HAIR), _row("g1", "front"), _row("b1"))
    # The hair front comes first in candidate order but the general pass wins b1
    cands = {
        "h1": [_hair_cand("b1", 2.0)],
        "g1": [_cand("b1", 5.0)],
    }
    state = PairingState()
    pairs = auto_pair(cands, features, state, _settings())

    assert [(p.front_url, p.source) for p in pairs] == [("g1", PairSource.AUTO)]
    assert not state.is_front_resolved("h1")


def test_is_hair_cosmetic():
    from labelpair.modules.matching import is_hair_cosmetic
    assert is_hair_cosmetic(_row("f", "front", "Beauty > Skin Care"))
    assert is_hair_cosmetic(_row("f", "front", "Hair Styling Gel"))
    assert not is_hair_cosmetic(_row("f", "front", "Food > Snacks"))
    assert not is_hair_cosmetic(_row("f", "front", None))


# ─── Hair floor through build_candidates ─────────────────────────────────────

_INCI_FRONT = {
    "url": "hair_front.jpg", "role": "front", "brand": "Acme",
    "product": "Argan Shampoo", "packaging": "bottle", "categoryPath": "Beauty > Hair Care",
}
_INCI_BACK = {
    "url": "inci_back.jpg", "role": "back", "packaging": "pump bottle",
    "categoryPath": "Hair Supplements", "ocrText": "Ingredients: Aqua, Parfum",
}


def test_hair_front_keeps_candidates_below_general_floor():
    """pkg 1 + category 1 + unknown rescue 1 + INCI 0.5 − conflict 2 = 1.5"""
    from labelpair.core.pairing_state import PairingState
    from labelpair.models.pairing import PairSource
    from labelpair.modules.features import build_features
    from labelpair.modules.matching import auto_pair, build_candidates

    settings = _settings()
    features, _ = build_features([_INCI_FRONT, _INCI_BACK], settings)
    cands = build_candidates(features, settings=settings)

    assert [c.pre_score for c in cands["hair_front.jpg"]] == [pytest.approx(1.5)]

    pairs = auto_pair(cands, features, PairingState(), settings)
    assert [(p.back_url, p.source) for p in pairs] == [("inci_back.jpg", PairSource.DOMAIN_AUTO)]


def test_non_hair_front_uses_general_floor():
    from labelpair.modules.features import build_features
    from labelpair.modules.matching import build_candidates

    # Same 1.5 total with the conflict running the other way
    front = dict(_INCI_FRONT, categoryPath="Food > Pantry")
    back = dict(_INCI_BACK, categoryPath="Hair Pantry")
    settings = _settings()
    features, _ = build_features([front, back], settings)

    assert build_candidates(features, settings=settings) == {}
    assert build_candidates(features, settings=_settings(min_pre_score=1.5))["hair_front.jpg"]
