# Copyright (c) 2026 Harsh Dwivedi
# Licensed under the Harsh Non-Commercial Attribution License (HNCAL) v1.0
# Commercial use requires written permission. See LICENSE for details.

"""
LabelPair — LLM Tie-Breaker
Delegates fronts the auto-pairer could not settle to the LLM, restricted
to each front's surviving candidate list, then validates the answer
against a strict contract.

Fatal (ContractViolationError, batch aborts):
  - pair names a front that was not requested      (hallucinated-front)
  - pair names a back outside that front's list    (back-not-allowed)
  - back used twice, or already used earlier       (back-reused)
  - front paired twice                             (duplicate-front)
  - decline whose reason does not start with
    "declined despite candidates"                   (nonconforming-reason)
  - requested front with no decision at all        (missing-decision)

Non-fatal:
  - matchScore below MODEL_PAIR_MIN_SCORE → the front becomes a terminal
    singleton with a reason citing the rejected score
  - unparsable text → treated as an empty, unparsed response; requested
    fronts fall through to the leftover resolver
"""

from __future__ import annotations

from dataclasses import dataclass, field

from pydantic import ValidationError

from labelpair.config import Settings, get_settings
from labelpair.core.errors import ContractViolationError
from labelpair.core.pairing_state import PairingState
from labelpair.models.arbitration import ModelPair, TiebreakResponse
from labelpair.models.features import ImageFeatureRow
from labelpair.models.pairing import CandidateScore, Pair, PairSource
from labelpair.modules.arbitration.llm_client import LLMClient, LLMRequest, resolve_with_retry
from labelpair.modules.arbitration.prompts import TIEBREAK_SYSTEM_PROMPT
from labelpair.modules.arbitration.response_parser import parse_llm_json
from labelpair.utils.logger import get_logger

log = get_logger(__name__)

DECLINE_PREFIX = "declined despite candidates"


@dataclass
class TiebreakRequest:
    """The fronts being arbitrated and the backs each may choose from."""
    allowed: dict[str, list[str]] = field(default_factory=dict)
    llm_request: LLMRequest | None = None

    @property
    def fronts(self) -> list[str]:
        return list(self.allowed)

    def is_empty(self) -> bool:
        return not self.allowed


@dataclass
class TiebreakOutcome:
    accepted: list[Pair] = field(default_factory=list)
    # front → reason for low-score rejections (terminal)
    demoted: dict[str, str] = field(default_factory=dict)
    # front → reason for explicit declines (fall through)
    declined: dict[str, str] = field(default_factory=dict)
    parsed: bool = True


# ─── Request ─────────────────────────────────────────────────────────────────

def build_tiebreak_request(
    candidates: dict[str, list[CandidateScore]],
    features: dict[str, ImageFeatureRow],
    state: PairingState,
) -> TiebreakRequest:
    """
    Collect unresolved fronts with their allowed backs (top-K minus used).
    Fronts left with no allowed back are not sent.
    """
    allowed: dict[str, list[str]] = {}
    scores: dict[str, list[dict]] = {}

    for front_url, cands in candidates.items():
        if not state.is_open_front(front_url):
            continue
        open_cands = [c for c in cands if not state.is_back_used(c.back_url)]
        if not open_cands:
            state.note_reason(front_url, "no candidates left after earlier stages")
            continue
        allowed[front_url] = [c.back_url for c in open_cands]
        scores[front_url] = [
            {"backUrl": c.back_url, "preScore": round(c.pre_score, 2)}
            for c in open_cands
        ]

    if not allowed:
        return TiebreakRequest()

    involved: list[str] = []
    for front_url, backs in allowed.items():
        for url in [front_url, *backs]:
            if url not in involved:
                involved.append(url)

    payload = {
        "images": [features[url].summary() for url in involved],
        "candidatesByFront": scores,
    }
    return TiebreakRequest(
        allowed=allowed,
        llm_request=LLMRequest(system=TIEBREAK_SYSTEM_PROMPT, payload=payload, stage="tiebreak"),
    )


def parse_tiebreak_response(raw: str) -> TiebreakResponse:
    data = parse_llm_json(raw)
    if data is None:
        return TiebreakResponse.unparsed()
    try:
        return TiebreakResponse.model_validate(data)
    except ValidationError as exc:
        log.warning("tiebreak_response_malformed", error=str(exc))
        return TiebreakResponse.unparsed()


# ─── Validation ──────────────────────────────────────────────────────────────

def _violation(kind: str, message: str) -> ContractViolationError:
    log.error("contract_violation", kind=kind, detail=message)
    return ContractViolationError(kind, message)


def _model_pair_to_pair(mp: ModelPair, features: dict[str, ImageFeatureRow]) -> Pair:
    front = features.get(mp.front)
    back = features.get(mp.back)
    confidence = mp.confidence
    if confidence is None:
        confidence = mp.match_score / 3.5
    confidence = min(1.0, max(0.0, confidence))

    return Pair(
        front_url=mp.front,
        back_url=mp.back,
        match_score=mp.match_score,
        brand=mp.brand or (front.brand_raw if front else ""),
        product=mp.product or (" ".join(sorted(front.product_tokens)) if front else ""),
        variant=mp.variant,
        size_front=mp.size_front or (front.size_canonical if front else None),
        size_back=mp.size_back or (back.size_canonical if back else None),
        evidence=[f"MODEL-PAIRED: matchScore={mp.match_score:.2f}", *mp.evidence],
        confidence=confidence,
        source=PairSource.MODEL,
    )


def validate_tiebreak_response(
    response: TiebreakResponse,
    allowed: dict[str, list[str]],
    state: PairingState,
    features: dict[str, ImageFeatureRow],
    settings: Settings | None = None,
) -> TiebreakOutcome:
    """
    Enforce the tie-break contract. Does not mutate state.

    Raises:
        ContractViolationError: on any structural breach (see module docstring)
    """
    if settings is None:
        settings = get_settings()

    outcome = TiebreakOutcome(parsed=response.parsed)
    if not response.parsed:
        log.warning("tiebreak_unparsed_fallthrough", fronts=len(allowed))
        return outcome

    backs_taken: set[str] = set()
    decided: set[str] = set()

    for mp in response.pairs:
        if mp.front not in allowed:
            raise _violation("hallucinated-front", f"front {mp.front} was not in the request")
        if mp.back not in allowed[mp.front]:
            raise _violation(
                "back-not-allowed",
                f"back {mp.back} is not an allowed candidate for front {mp.front}",
            )
        if mp.front in decided:
            raise _violation("duplicate-front", f"front {mp.front} was decided twice")

        if mp.match_score < settings.model_pair_min_score:
            reason = (
                f"{DECLINE_PREFIX} (model-pair rejected: "
                f"score={mp.match_score:.2f} < {settings.model_pair_min_score} threshold)"
            )
            outcome.demoted[mp.front] = reason
            decided.add(mp.front)
            log.info("model_pair_demoted", front=mp.front, back=mp.back, score=mp.match_score)
            continue

        if mp.back in backs_taken or state.is_back_used(mp.back):
            raise _violation("back-reused", f"back {mp.back} is already assigned")

        backs_taken.add(mp.back)
        decided.add(mp.front)
        outcome.accepted.append(_model_pair_to_pair(mp, features))

    for single in response.singletons:
        if single.url not in allowed:
            # Declines for images we never asked about carry no decision
            log.debug("tiebreak_singleton_ignored", url=single.url)
            continue
        if single.url in decided:
            continue
        if not single.reason.strip().lower().startswith(DECLINE_PREFIX):
            raise _violation(
                "nonconforming-reason",
                f"front {single.url} declined with reason {single.reason!r}",
            )
        outcome.declined[single.url] = single.reason.strip()
        decided.add(single.url)

    missing = [f for f in allowed if f not in decided]
    if missing:
        raise _violation("missing-decision", f"no decision for fronts {missing}")

    return outcome


# ─── Orchestration ───────────────────────────────────────────────────────────

def run_tiebreak(
    candidates: dict[str, list[CandidateScore]],
    features: dict[str, ImageFeatureRow],
    state: PairingState,
    client: LLMClient,
    settings: Settings | None = None,
) -> TiebreakOutcome:
    """
    build → call → parse → validate → claim.

    Raises:
        ContractViolationError: invalid response (nothing is claimed)
        LLMUnavailableError:    collaborator failed after retries
    """
    if settings is None:
        settings = get_settings()

    request = build_tiebreak_request(candidates, features, state)
    if request.is_empty():
        log.info("tiebreak_skipped", reason="no unresolved fronts with candidates")
        return TiebreakOutcome()

    log.info("tiebreak_start", fronts=len(request.allowed))
    raw = resolve_with_retry(client, request.llm_request, settings)
    response = parse_tiebreak_response(raw)
    outcome = validate_tiebreak_response(response, request.allowed, state, features, settings)

    for pair in outcome.accepted:
        state.claim(pair)
    for front_url, reason in outcome.demoted.items():
        state.reject(front_url, reason)
    for front_url, reason in outcome.declined.items():
        state.note_reason(front_url, reason)
    if not outcome.parsed:
        for front_url in request.fronts:
            state.note_reason(front_url, "model response unparsable")

    for line in response.debug_summary:
        state.debug(f"[tiebreak] {line}")
    state.debug(
        f"Tie-break: {len(outcome.accepted)} model pairs, "
        f"{len(outcome.demoted)} rejected, {len(outcome.declined)} declined"
    )
    log.info(
        "tiebreak_complete",
        accepted=len(outcome.accepted),
        demoted=len(outcome.demoted),
        declined=len(outcome.declined),
        parsed=outcome.parsed,
    )
    return outcome
