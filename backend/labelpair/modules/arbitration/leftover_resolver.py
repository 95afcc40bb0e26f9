# Copyright (c) 2026 Harsh Dwivedi
# Licensed under the Harsh Non-Commercial Attribution License (HNCAL) v1.0
# Commercial use requires written permission. See LICENSE for details.

"""
LabelPair — Leftover Resolver
One unconstrained LLM pass over whatever fronts and backs are still
unpaired. Images are sent under short ids (F1…, B1…) so the model
cannot echo back a malformed URL. There is no allowed-backs contract:
unknown ids and repeated ids are simply dropped.

The collaborator being unavailable is not fatal here; the stage logs and
contributes nothing.
"""

from __future__ import annotations

from pydantic import ValidationError

from labelpair.config import Settings, get_settings
from labelpair.core.errors import LLMUnavailableError
from labelpair.core.pairing_state import PairingState
from labelpair.models.arbitration import LeftoverResponse
from labelpair.models.features import ImageFeatureRow, ImageRole
from labelpair.models.pairing import Pair, PairSource
from labelpair.modules.arbitration.llm_client import LLMClient, LLMRequest, resolve_with_retry
from labelpair.modules.arbitration.prompts import LEFTOVER_SYSTEM_PROMPT
from labelpair.modules.arbitration.response_parser import parse_llm_json
from labelpair.utils.logger import get_logger

log = get_logger(__name__)

LEFTOVER_CONFIDENCE = 0.90
_OCR_SUMMARY_CHARS = 200


def collect_leftovers(
    features: dict[str, ImageFeatureRow],
    state: PairingState,
) -> tuple[list[ImageFeatureRow], list[ImageFeatureRow]]:
    """
    Open fronts and unused back-side images, in feature order. Unclaimed
    role=other images join the back pool; a demoted front never does.
    """
    fronts = [
        f for f in features.values()
        if f.role == ImageRole.FRONT and state.is_open_front(f.url)
    ]
    backs = [
        f for f in features.values()
        if f.is_back_side and not state.is_back_used(f.url)
    ]
    return fronts, backs


def _describe(row: ImageFeatureRow, image_id: str) -> dict:
    return {
        "id": image_id,
        "filename": row.url,
        "brand": row.brand_norm,
        "product": " ".join(sorted(row.product_tokens)),
        "size": row.size_canonical or "",
        "packaging": row.packaging_hint.value,
        "ocrSummary": row.text_extracted[:_OCR_SUMMARY_CHARS],
        "color": row.color_key,
    }


def build_leftover_request(
    fronts: list[ImageFeatureRow],
    backs: list[ImageFeatureRow],
) -> tuple[LLMRequest, dict[str, str], dict[str, str]]:
    """Returns (request, front id → url, back id → url)."""
    front_ids = {f"F{i + 1}": row.url for i, row in enumerate(fronts)}
    back_ids = {f"B{i + 1}": row.url for i, row in enumerate(backs)}
    payload = {
        "fronts": [_describe(row, f"F{i + 1}") for i, row in enumerate(fronts)],
        "backs": [_describe(row, f"B{i + 1}") for i, row in enumerate(backs)],
    }
    request = LLMRequest(system=LEFTOVER_SYSTEM_PROMPT, payload=payload, stage="leftover")
    return request, front_ids, back_ids


def resolve_leftovers(
    features: dict[str, ImageFeatureRow],
    state: PairingState,
    client: LLMClient,
    settings: Settings | None = None,
) -> list[Pair]:
    """
    Pair remaining fronts and backs with one unconstrained LLM call.

    Returns:
        Accepted pairs (already claimed on state), in response order.
    """
    if settings is None:
        settings = get_settings()

    fronts, backs = collect_leftovers(features, state)
    if not fronts or not backs:
        log.info("leftover_skipped", fronts=len(fronts), backs=len(backs))
        return []

    log.info("leftover_start", fronts=len(fronts), backs=len(backs))
    request, front_ids, back_ids = build_leftover_request(fronts, backs)

    try:
        raw = resolve_with_retry(client, request, settings)
    except LLMUnavailableError as exc:
        log.warning("leftover_llm_unavailable", error=str(exc))
        state.debug("Leftover resolver skipped: LLM unavailable")
        return []

    data = parse_llm_json(raw)
    if data is None:
        state.debug("Leftover resolver: response unparsable")
        return []
    try:
        response = LeftoverResponse.model_validate(data)
    except ValidationError as exc:
        log.warning("leftover_response_malformed", error=str(exc))
        return []

    accepted: list[Pair] = []
    for item in response.pairs:
        front_url = front_ids.get(item.front_id)
        back_url = back_ids.get(item.back_id)
        if front_url is None or back_url is None:
            log.warning("leftover_unknown_id", front_id=item.front_id, back_id=item.back_id)
            continue
        if not state.is_open_front(front_url) or state.is_back_used(back_url):
            log.warning("leftover_duplicate_id", front_id=item.front_id, back_id=item.back_id)
            continue

        front = features[front_url]
        back = features[back_url]
        pair = Pair(
            front_url=front_url,
            back_url=back_url,
            match_score=settings.leftover_match_score,
            brand=front.brand_raw or back.brand_raw,
            product=" ".join(sorted(front.product_tokens)),
            variant=" ".join(sorted(front.variant_tokens)) or None,
            size_front=front.size_canonical,
            size_back=back.size_canonical,
            evidence=[f"LLM-LEFTOVER: {item.front_id}->{item.back_id}"],
            confidence=LEFTOVER_CONFIDENCE,
            source=PairSource.LLM_LEFTOVER,
        )
        state.claim(pair)
        accepted.append(pair)

    state.debug(f"Leftover resolver paired {len(accepted)}")
    log.info("leftover_complete", pairs=len(accepted), proposed=len(response.pairs))
    return accepted
