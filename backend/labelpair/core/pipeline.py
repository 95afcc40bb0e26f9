# Copyright (c) 2026 Harsh Dwivedi
# Licensed under the Harsh Non-Commercial Attribution License (HNCAL) v1.0
# Commercial use requires written permission. See LICENSE for details.

"""
LabelPair — Pipeline Orchestrator
Wires all stages in their fixed dependency order. Each stage consumes the
used-backs / resolved-fronts state left by its predecessor, so the order
is a correctness requirement.

Execution order:
  1. Feature building + lone-front role promotion
  2. Two-shot check: clean batches go straight to the global solver
     (replaces 3–7)
  3. Candidate generation
  4. Auto-pairing (general, then hair/cosmetic)
  5. LLM tie-breaking           (needs an LLM client)
  6. LLM leftover resolution    (needs an LLM client)
  7. Visual confirmation        (needs an embedding client)
  8. Extras grouping + singleton resolution
  9. Metrics, uploaded-URL reporting + evidence log

Only contract violations and an unavailable tie-break LLM abort a run;
every other failure is absorbed by the stage that meets it.
"""

from __future__ import annotations

import time
import traceback
import uuid
from typing import Any, Iterable, Mapping, Optional

import structlog

from labelpair.config import ENGINE_VERSION, Settings, get_settings
from labelpair.core.errors import PairingError
from labelpair.core.evidence_log import write_evidence_log
from labelpair.core.metrics import build_metrics, format_metrics_line
from labelpair.core.pairing_state import PairingState
from labelpair.models.features import ImageFeatureRow, ImageRole, VisionRecord
from labelpair.models.output import PairingResult
from labelpair.modules.arbitration import LLMClient, resolve_leftovers, run_tiebreak
from labelpair.modules.features import build_features, promote_lone_fronts
from labelpair.modules.grouping import group_extras, resolve_singletons
from labelpair.modules.matching import auto_pair, build_candidates, is_two_shot, solve_two_shot
from labelpair.modules.similarity import EmbeddingCache, EmbeddingClient, confirm_visual_pairs
from labelpair.utils.logger import get_logger

log = get_logger(__name__)


def new_run_id() -> str:
    return uuid.uuid4().hex[:12]


def run_pairing(
    records: Iterable[VisionRecord | Mapping[str, Any]],
    llm_client: Optional[LLMClient] = None,
    embedding_client: Optional[EmbeddingClient] = None,
    settings: Settings | None = None,
    run_id: str | None = None,
) -> PairingResult:
    """
    Pair one batch of vision records.

    Args:
        records:          Vision records in upload order
        llm_client:       Tie-break / leftover collaborator. None skips both stages.
        embedding_client: Image-embedding collaborator. None skips visual confirmation.
        settings:         Defaults to the cached application settings
        run_id:           Audit id; generated when omitted

    Raises:
        ContractViolationError: tie-break response broke the contract
        LLMUnavailableError:    tie-break collaborator failed after retries
    """
    settings = settings or get_settings()
    run_id = run_id or new_run_id()
    structlog.contextvars.bind_contextvars(run_id=run_id)

    try:
        return _run(records, llm_client, embedding_client, settings, run_id)
    except Exception as exc:
        log.error(
            "pipeline_fatal_error",
            error=f"{type(exc).__name__}: {exc}",
            traceback=traceback.format_exc(),
        )
        raise
    finally:
        structlog.contextvars.unbind_contextvars("run_id")


def _run(
    records: Iterable[VisionRecord | Mapping[str, Any]],
    llm_client: Optional[LLMClient],
    embedding_client: Optional[EmbeddingClient],
    settings: Settings,
    run_id: str,
) -> PairingResult:
    started = time.perf_counter()
    state = PairingState()

    # ── Stage 1: Features ────────────────────────────────────────────────────
    log.info("stage_start", stage="features")
    features, dropped = build_features(records, settings)
    promoted = promote_lone_fronts(features)
    if promoted:
        state.debug(f"Promoted {len(promoted)} other → back")
    log.info("stage_complete", stage="features", images=len(features), promoted=len(promoted))

    two_shot = settings.two_shot_enabled and is_two_shot(features)
    candidates: dict = {}

    if two_shot:
        # ── Stage 2: Global solver ───────────────────────────────────────────
        log.info("stage_start", stage="global_solver")
        solve_two_shot(features, state)
        log.info("stage_complete", stage="global_solver", pairs=len(state.pairs))
    else:
        _run_heuristic_stages(features, state, llm_client, embedding_client, settings, candidates)

    # ── Stage 8: Products ────────────────────────────────────────────────────
    log.info("stage_start", stage="grouping")
    claimed = state.paired_urls()
    products = group_extras(state.pairs, features, claimed, settings)
    placed = claimed | {url for p in products for url in p.extras}
    leftovers = [f for f in features.values() if f.url not in placed]
    products, singletons = resolve_singletons(leftovers, products, state, settings)
    log.info(
        "stage_complete",
        stage="grouping",
        products=len(products),
        singletons=len(singletons),
    )

    # ── Stage 9: Metrics + evidence ──────────────────────────────────────────
    duration_ms = int((time.perf_counter() - started) * 1000)
    metrics = build_metrics(
        run_id=run_id,
        features=features,
        candidates=candidates,
        pairs=state.pairs,
        products=products,
        singletons=singletons,
        settings=settings,
        dropped=dropped,
        two_shot=two_shot,
        duration_ms=duration_ms,
    )
    metrics_line = format_metrics_line(metrics)
    state.debug(metrics_line)

    result = PairingResult(
        engine_version=ENGINE_VERSION,
        pairs=list(state.pairs),
        products=products,
        singletons=singletons,
        debug_summary=list(state.debug_summary),
        metrics=metrics,
    )
    result = report_source_urls(result, features)
    check_result(result, features)
    write_evidence_log(result, run_id, settings)

    log.info("pipeline_complete", summary=metrics_line, duration_ms=duration_ms)
    return result


def _run_heuristic_stages(
    features: dict[str, ImageFeatureRow],
    state: PairingState,
    llm_client: Optional[LLMClient],
    embedding_client: Optional[EmbeddingClient],
    settings: Settings,
    candidates: dict,
) -> None:
    # ── Stage 3: Candidates ──────────────────────────────────────────────────
    log.info("stage_start", stage="candidates")
    candidates.update(build_candidates(features, settings=settings))
    for front in features.values():
        if front.role == ImageRole.FRONT and front.url not in candidates:
            state.note_reason(front.url, f"no candidates ≥ {settings.min_pre_score}")
    log.info("stage_complete", stage="candidates", fronts_with_candidates=len(candidates))

    # ── Stage 4: Auto-pair ───────────────────────────────────────────────────
    log.info("stage_start", stage="auto_pair")
    auto = auto_pair(candidates, features, state, settings)
    log.info("stage_complete", stage="auto_pair", pairs=len(auto))

    # ── Stage 5: Tie-break ───────────────────────────────────────────────────
    if settings.tiebreak_enabled and llm_client is not None:
        log.info("stage_start", stage="tiebreak")
        outcome = run_tiebreak(candidates, features, state, llm_client, settings)
        log.info("stage_complete", stage="tiebreak", pairs=len(outcome.accepted))
    else:
        log.warning(
            "stage_skipped",
            stage="tiebreak",
            reason="disabled" if not settings.tiebreak_enabled else "no llm client",
        )
        for front_url in candidates:
            if state.is_open_front(front_url):
                state.note_reason(front_url, "unresolved after auto-pair (no model arbitration)")

    # ── Stage 6: Leftover ────────────────────────────────────────────────────
    if settings.leftover_enabled and llm_client is not None:
        log.info("stage_start", stage="leftover")
        leftover = resolve_leftovers(features, state, llm_client, settings)
        log.info("stage_complete", stage="leftover", pairs=len(leftover))
    else:
        log.info("stage_skipped", stage="leftover")

    # ── Stage 7: Visual confirmation ─────────────────────────────────────────
    if embedding_client is not None:
        log.info("stage_start", stage="visual_confirm")
        cache = EmbeddingCache(embedding_client)
        visual = confirm_visual_pairs(features, state, cache, settings)
        log.info("stage_complete", stage="visual_confirm", pairs=len(visual))


def check_result(result: PairingResult, features: dict[str, ImageFeatureRow]) -> None:
    """
    Every input image placed exactly once; no back in two pairs.

    Raises:
        PairingError: the result is internally inconsistent
    """
    backs = [p.back_url for p in result.pairs]
    if len(backs) != len(set(backs)):
        raise PairingError("back image used by more than one pair")

    placed = result.assigned_urls()
    if len(placed) != len(set(placed)):
        dupes = sorted({u for u in placed if placed.count(u) > 1})
        raise PairingError(f"images placed more than once: {dupes}")
    placed_set = set(placed)
    missing = [row.output_url for row in features.values() if row.output_url not in placed_set]
    if missing:
        raise PairingError(f"images without a decision: {missing}")


def report_source_urls(
    result: PairingResult,
    features: dict[str, ImageFeatureRow],
) -> PairingResult:
    """Swap canonical keys for the URLs the images were uploaded under."""
    source = {url: row.output_url for url, row in features.items()}

    def _src(url):
        return source.get(url, url)

    pairs = []
    for p in result.pairs:
        breakdown = p.breakdown
        if breakdown is not None:
            breakdown = breakdown.model_copy(update={"back_url": _src(breakdown.back_url)})
        pairs.append(p.model_copy(update={
            "front_url": _src(p.front_url),
            "back_url": _src(p.back_url),
            "breakdown": breakdown,
        }))
    products = [
        p.model_copy(update={
            "front_url": _src(p.front_url),
            "back_url": _src(p.back_url),
            "extras": [_src(u) for u in p.extras],
        })
        for p in result.products
    ]
    singletons = [s.model_copy(update={"url": _src(s.url)}) for s in result.singletons]

    return result.model_copy(update={
        "pairs": pairs,
        "products": products,
        "singletons": singletons,
    })
