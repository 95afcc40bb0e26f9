# Copyright (c) 2026 Harsh Dwivedi
# Licensed under the Harsh Non-Commercial Attribution License (HNCAL) v1.0
# Commercial use requires written permission. See LICENSE for details.

"""
Phase 6 LLM arbitration tests.
Tests resilient JSON parsing, retry/backoff around the collaborator, the
tie-break contract (every violation kind plus demotion and declines) and
the id-based leftover pass.
All LLM traffic goes through deterministic fakes. No network required.
"""

import json
from types import SimpleNamespace

import pytest


def _settings(**overrides):
    from labelpair.config import Settings
    base = dict(llm_backoff_min_s=0, llm_backoff_max_s=0)
    base.update(overrides)
    return Settings(_env_file=None, **base)


def _features(records):
    from labelpair.modules.features import build_features
    features, _ = build_features(records, _settings())
    return features


def _cand(back: str, score: float):
    from labelpair.models.pairing import CandidateScore
    return CandidateScore(back_url=back, pre_score=score)


class _ScriptedLLM:
    """Returns queued responses in order; exceptions in the queue are raised."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def resolve(self, request):
        self.requests.append(request)
        item = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(item, BaseException):
            raise item
        return item


_VITAMIN = {"brand": "Acme", "product": "Vitamin C", "size": "60 count"}


def _tiebreak_fixture():
    """One front with two indistinguishable backs (gap 0)."""
    features = _features([
        dict(_VITAMIN, url="f1.jpg", role="front"),
        dict(_VITAMIN, url="b1.jpg", role="back"),
        dict(_VITAMIN, url="b2.jpg", role="back"),
    ])
    candidates = {"f1.jpg": [_cand("b1.jpg", 6.0), _cand("b2.jpg", 6.0)]}
    return features, candidates


def _validate(payload: dict, allowed=None, state=None):
    from labelpair.core.pairing_state import PairingState
    from labelpair.modules.arbitration import parse_tiebreak_response, validate_tiebreak_response

    features, _ = _tiebreak_fixture()
    allowed = allowed or {"f1.jpg": ["b1.jpg", "b2.jpg"]}
    response = parse_tiebreak_response(json.dumps(payload))
    return validate_tiebreak_response(
        response, allowed, state or PairingState(), features, _settings()
    )


# ─── Response parser ─────────────────────────────────────────────────────────

def test_parse_direct_json():
    from labelpair.modules.arbitration import parse_llm_json
    assert parse_llm_json('{"pairs": []}') == {"pairs": []}


def test_parse_fenced_json():
    from labelpair.modules.arbitration import parse_llm_json
    raw = 'Here you go:\n```json\n{"pairs": [{"frontUrl": "a"}]}\n```'
    assert parse_llm_json(raw) == {"pairs": [{"frontUrl": "a"}]}


def test_parse_prose_and_trailing_commas():
    from labelpair.modules.arbitration import parse_llm_json
    raw = 'Sure! {"pairs": [1, 2,], "singletons": [],} Hope that helps.'
    assert parse_llm_json(raw) == {"pairs": [1, 2], "singletons": []}


@pytest.mark.parametrize("raw", ["", "   ", "no json here", "{broken", "[1, 2, 3]", None])
def test_parse_unrecoverable_returns_none(raw):
    from labelpair.modules.arbitration import parse_llm_json
    assert parse_llm_json(raw) is None


# ─── Retry ───────────────────────────────────────────────────────────────────

def test_retry_recovers_from_transient_errors():
    from labelpair.modules.arbitration import LLMRequest, resolve_with_retry
    client = _ScriptedLLM(ConnectionError("reset"), TimeoutError("slow"), '{"ok": true}')
    text = resolve_with_retry(client, LLMRequest(system="s"), _settings(llm_max_attempts=3))
    assert text == '{"ok": true}'
    assert len(client.requests) == 3


def test_retry_exhaustion_raises_llm_unavailable():
    from labelpair.core.errors import LLMUnavailableError
    from labelpair.modules.arbitration import LLMRequest, resolve_with_retry
    client = _ScriptedLLM(ConnectionError("down"))
    with pytest.raises(LLMUnavailableError):
        resolve_with_retry(client, LLMRequest(system="s"), _settings(llm_max_attempts=2))
    assert len(client.requests) == 2


def test_non_transport_errors_are_not_retried():
    from labelpair.modules.arbitration import LLMRequest, resolve_with_retry
    client = _ScriptedLLM(ValueError("bug"))
    with pytest.raises(ValueError):
        resolve_with_retry(client, LLMRequest(system="s"), _settings(llm_max_attempts=3))
    assert len(client.requests) == 1


def test_openai_client_request_shape():
    from labelpair.modules.arbitration import LLMRequest, OpenAIChatClient

    captured = {}

    def create(**kwargs):
        captured.update(kwargs)
        message = SimpleNamespace(content='{"pairs": []}')
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])

    fake = SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))
    client = OpenAIChatClient(settings=_settings(llm_model="test-model"), client=fake)

    text = client.resolve(LLMRequest(system="sys", payload={"a": 1}))

    assert text == '{"pairs": []}'
    assert captured["model"] == "test-model"
    assert captured["temperature"] == 0
    assert captured["response_format"] == {"type": "json_object"}
    assert captured["messages"][0] == {"role": "system", "content": "sys"}
    assert '"a": 1' in captured["messages"][1]["content"]


# ─── Tie-break request ───────────────────────────────────────────────────────

def test_request_lists_open_candidates_only():
    from labelpair.core.pairing_state import PairingState
    from labelpair.models.pairing import Pair, PairSource
    from labelpair.modules.arbitration import build_tiebreak_request

    features, candidates = _tiebreak_fixture()
    state = PairingState()
    state.claim(Pair(front_url="fx.jpg", back_url="b1.jpg", source=PairSource.AUTO))

    request = build_tiebreak_request(candidates, features, state)

    assert request.allowed == {"f1.jpg": ["b2.jpg"]}
    payload = request.llm_request.payload
    assert payload["candidatesByFront"]["f1.jpg"] == [{"backUrl": "b2.jpg", "preScore": 6.0}]
    assert [img["url"] for img in payload["images"]] == ["f1.jpg", "b2.jpg"]


def test_request_notes_fronts_with_no_backs_left():
    from labelpair.core.pairing_state import PairingState
    from labelpair.models.pairing import Pair, PairSource
    from labelpair.modules.arbitration import build_tiebreak_request

    features, candidates = _tiebreak_fixture()
    state = PairingState()
    state.claim(Pair(front_url="fx.jpg", back_url="b1.jpg", source=PairSource.AUTO))
    state.claim(Pair(front_url="fy.jpg", back_url="b2.jpg", source=PairSource.AUTO))

    request = build_tiebreak_request(candidates, features, state)

    assert request.is_empty()
    assert state.pending_reasons["f1.jpg"] == "no candidates left after earlier stages"


# ─── Tie-break contract ──────────────────────────────────────────────────────

def test_valid_pair_is_accepted():
    from labelpair.models.pairing import PairSource
    outcome = _validate({"pairs": [{"frontUrl": "f1.jpg", "backUrl": "b2.jpg", "matchScore": 3.5}]})
    assert len(outcome.accepted) == 1
    pair = outcome.accepted[0]
    assert pair.back_url == "b2.jpg"
    assert pair.source == PairSource.MODEL
    assert pair.confidence == pytest.approx(1.0)
    assert pair.evidence[0] == "MODEL-PAIRED: matchScore=3.50"


def test_back_not_allowed_is_fatal():
    from labelpair.core.errors import ContractViolationError
    with pytest.raises(ContractViolationError) as exc:
        _validate({"pairs": [{"frontUrl": "f1.jpg", "backUrl": "b9.jpg", "matchScore": 5}]})
    assert exc.value.kind == "back-not-allowed"


def test_hallucinated_front_is_fatal():
    from labelpair.core.errors import ContractViolationError
    with pytest.raises(ContractViolationError) as exc:
        _validate({"pairs": [{"frontUrl": "ghost.jpg", "backUrl": "b1.jpg", "matchScore": 5}]})
    assert exc.value.kind == "hallucinated-front"


def test_back_reused_within_response_is_fatal():
    from labelpair.core.errors import ContractViolationError
    allowed = {"f1.jpg": ["b1.jpg", "b2.jpg"], "f2.jpg": ["b1.jpg"]}
    with pytest.raises(ContractViolationError) as exc:
        _validate({"pairs": [
            {"frontUrl": "f1.jpg", "backUrl": "b1.jpg", "matchScore": 5},
            {"frontUrl": "f2.jpg", "backUrl": "b1.jpg", "matchScore": 5},
        ]}, allowed=allowed)
    assert exc.value.kind == "back-reused"


def test_back_used_by_earlier_stage_is_fatal():
    from labelpair.core.errors import ContractViolationError
    from labelpair.core.pairing_state import PairingState
    from labelpair.models.pairing import Pair, PairSource

    state = PairingState()
    state.claim(Pair(front_url="fx.jpg", back_url="b1.jpg", source=PairSource.AUTO))
    with pytest.raises(ContractViolationError) as exc:
        _validate({"pairs": [{"frontUrl": "f1.jpg", "backUrl": "b1.jpg", "matchScore": 5}]},
                  state=state)
    assert exc.value.kind == "back-reused"


def test_duplicate_front_is_fatal():
    from labelpair.core.errors import ContractViolationError
    with pytest.raises(ContractViolationError) as exc:
        _validate({"pairs": [
            {"frontUrl": "f1.jpg", "backUrl": "b1.jpg", "matchScore": 5},
            {"frontUrl": "f1.jpg", "backUrl": "b2.jpg", "matchScore": 5},
        ]})
    assert exc.value.kind == "duplicate-front"


def test_missing_decision_is_fatal():
    from labelpair.core.errors import ContractViolationError
    with pytest.raises(ContractViolationError) as exc:
        _validate({"pairs": [], "singletons": []})
    assert exc.value.kind == "missing-decision"


def test_nonconforming_decline_reason_is_fatal():
    from labelpair.core.errors import ContractViolationError
    with pytest.raises(ContractViolationError) as exc:
        _validate({"singletons": [{"url": "f1.jpg", "reason": "not sure"}]})
    assert exc.value.kind == "nonconforming-reason"


def test_conforming_decline_is_recorded():
    outcome = _validate({"singletons": [
        {"url": "f1.jpg", "reason": "declined despite candidates (backs identical)"},
        {"url": "unrequested.jpg", "reason": "whatever"},
    ]})
    assert outcome.accepted == []
    assert outcome.declined == {"f1.jpg": "declined despite candidates (backs identical)"}


def test_low_score_pair_is_demoted():
    outcome = _validate({"pairs": [{"frontUrl": "f1.jpg", "backUrl": "b1.jpg", "matchScore": 2.1}]})
    assert outcome.accepted == []
    reason = outcome.demoted["f1.jpg"]
    assert reason.startswith("declined despite candidates")
    assert "score=2.10" in reason


def test_missing_match_score_is_demoted():
    outcome = _validate({"pairs": [{"frontUrl": "f1.jpg", "backUrl": "b1.jpg"}]})
    assert "score=0.00" in outcome.demoted["f1.jpg"]


# ─── run_tiebreak ────────────────────────────────────────────────────────────

def test_run_tiebreak_claims_model_pair():
    from labelpair.core.pairing_state import PairingState
    from labelpair.modules.arbitration import run_tiebreak

    features, candidates = _tiebreak_fixture()
    state = PairingState()
    raw = (
        "```json\n"
        '{"pairs": [{"frontUrl": "f1.jpg", "backUrl": "b2.jpg", "matchScore": 4.2,'
        ' "evidence": ["lot code matches"]}], "singletons": [],'
        ' "debugSummary": ["picked b2"]}\n```'
    )
    client = _ScriptedLLM(raw)

    outcome = run_tiebreak(candidates, features, state, client, _settings())

    assert [(p.front_url, p.back_url) for p in outcome.accepted] == [("f1.jpg", "b2.jpg")]
    assert state.is_back_used("b2.jpg")
    assert outcome.accepted[0].evidence[1] == "lot code matches"
    assert "[tiebreak] picked b2" in state.debug_summary
    assert client.requests[0].stage == "tiebreak"


def test_run_tiebreak_demotion_is_terminal():
    from labelpair.core.pairing_state import PairingState
    from labelpair.modules.arbitration import run_tiebreak

    features, candidates = _tiebreak_fixture()
    state = PairingState()
    client = _ScriptedLLM('{"pairs": [{"frontUrl": "f1.jpg", "backUrl": "b1.jpg", "matchScore": 2.1}]}')

    run_tiebreak(candidates, features, state, client, _settings())

    assert state.is_rejected("f1.jpg")
    assert not state.is_back_used("b1.jpg")
    assert "score=2.10" in state.rejected["f1.jpg"]


def test_run_tiebreak_unparsable_falls_through():
    from labelpair.core.pairing_state import PairingState
    from labelpair.modules.arbitration import run_tiebreak

    features, candidates = _tiebreak_fixture()
    state = PairingState()

    outcome = run_tiebreak(candidates, features, state, _ScriptedLLM("I cannot help"), _settings())

    assert outcome.parsed is False
    assert state.is_open_front("f1.jpg")
    assert state.pending_reasons["f1.jpg"] == "model response unparsable"


def test_run_tiebreak_violation_claims_nothing():
    from labelpair.core.errors import ContractViolationError
    from labelpair.core.pairing_state import PairingState
    from labelpair.modules.arbitration import run_tiebreak

    features, candidates = _tiebreak_fixture()
    state = PairingState()
    client = _ScriptedLLM('{"pairs": [{"frontUrl": "f1.jpg", "backUrl": "zz.jpg", "matchScore": 9}]}')

    with pytest.raises(ContractViolationError):
        run_tiebreak(candidates, features, state, client, _settings())
    assert state.pairs == []


def test_run_tiebreak_skips_call_when_nothing_open():
    from labelpair.core.pairing_state import PairingState
    from labelpair.modules.arbitration import run_tiebreak

    features, _ = _tiebreak_fixture()
    client = _ScriptedLLM("{}")
    outcome = run_tiebreak({}, features, PairingState(), client, _settings())
    assert outcome.accepted == []
    assert client.requests == []


# ─── Leftover resolver ───────────────────────────────────────────────────────

def _leftover_features():
    return _features([
        dict(_VITAMIN, url="f1.jpg", role="front"),
        {"url": "f2.jpg", "role": "front", "brand": "Zenith", "product": "Fish Oil"},
        dict(_VITAMIN, url="b1.jpg", role="back", ocrText="x" * 500),
        {"url": "b2.jpg", "role": "back", "brand": "Zenith"},
    ])


def test_leftover_request_uses_short_ids():
    from labelpair.core.pairing_state import PairingState
    from labelpair.modules.arbitration import build_leftover_request, collect_leftovers

    fronts, backs = collect_leftovers(_leftover_features(), PairingState())
    request, front_ids, back_ids = build_leftover_request(fronts, backs)

    assert front_ids == {"F1": "f1.jpg", "F2": "f2.jpg"}
    assert back_ids == {"B1": "b1.jpg", "B2": "b2.jpg"}
    assert request.stage == "leftover"
    assert len(request.payload["backs"][0]["ocrSummary"]) == 200


def test_leftover_pairs_valid_ids_and_drops_the_rest():
    from labelpair.core.pairing_state import PairingState
    from labelpair.models.pairing import PairSource
    from labelpair.modules.arbitration import resolve_leftovers

    state = PairingState()
    client = _ScriptedLLM(
        '{"pairs": ['
        '{"frontId": "F1", "backId": "B1"},'
        '{"frontId": "F9", "backId": "B2"},'
        '{"frontId": "F1", "backId": "B2"},'
        '{"frontId": "F2", "backId": "B1"}'
        ']}'
    )

    pairs = resolve_leftovers(_leftover_features(), state, client, _settings())

    assert [(p.front_url, p.back_url) for p in pairs] == [("f1.jpg", "b1.jpg")]
    assert pairs[0].source == PairSource.LLM_LEFTOVER
    assert pairs[0].confidence == 0.90
    assert pairs[0].match_score == 7.5
    assert pairs[0].evidence == ["LLM-LEFTOVER: F1->B1"]
    assert state.is_open_front("f2.jpg")


def test_leftover_skips_rejected_fronts():
    from labelpair.core.pairing_state import PairingState
    from labelpair.modules.arbitration import collect_leftovers

    state = PairingState()
    state.reject("f1.jpg", "declined despite candidates (model-pair rejected)")
    fronts, _ = collect_leftovers(_leftover_features(), state)
    assert [f.url for f in fronts] == ["f2.jpg"]


def test_leftover_llm_unavailable_is_not_fatal():
    from labelpair.core.pairing_state import PairingState
    from labelpair.modules.arbitration import resolve_leftovers

    state = PairingState()
    client = _ScriptedLLM(ConnectionError("down"))
    pairs = resolve_leftovers(_leftover_features(), state, client, _settings(llm_max_attempts=2))

    assert pairs == []
    assert len(client.requests) == 2
    assert "Leftover resolver skipped: LLM unavailable" in state.debug_summary


def test_leftover_unparsable_contributes_nothing():
    from labelpair.core.pairing_state import PairingState
    from labelpair.modules.arbitration import resolve_leftovers
    state = PairingState()
    assert resolve_leftovers(_leftover_features(), state, _ScriptedLLM("nope"), _settings()) == []
    assert state.pairs == []


def test_leftover_back_pool_includes_unclaimed_other_images():
    from labelpair.core.pairing_state import PairingState
    from labelpair.models.features import ImageRole
    from labelpair.modules.arbitration import collect_leftovers

    features = _features([
        dict(_VITAMIN, url="f1.jpg", role="front"),
        {"url": "label.jpg", "role": "other", "ocrText": "Supplement Facts"},
        {"url": "used.jpg", "role": "side"},
        {"url": "b1.jpg", "role": "back"},
        {"url": "demoted.jpg", "role": "front"},
    ])
    # A front that lost its role keeps original_role=front and stays out
    features["demoted.jpg"] = features["demoted.jpg"].model_copy(update={"role": ImageRole.OTHER})
    state = PairingState()
    state.used_backs.add("used.jpg")

    fronts, backs = collect_leftovers(features, state)

    assert [f.url for f in fronts] == ["f1.jpg"]
    assert [b.url for b in backs] == ["label.jpg", "b1.jpg"]
