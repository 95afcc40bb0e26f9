# Copyright (c) 2026 Harsh Dwivedi
# Licensed under the Harsh Non-Commercial Attribution License (HNCAL) v1.0
# Commercial use requires written permission. See LICENSE for details.

"""
LabelPair — Pairing State
Per-run accumulator threaded by reference through every pairing stage.

Lifecycle:
  - Created fresh by the pipeline orchestrator for each batch
  - Mutated by each stage in strict order (auto → tie-break → leftover → visual)
  - Read by the extras/singleton resolver and metrics builder
  - Discarded after the result is built (no cross-run state)

The used-backs set is the single enforcement point for the uniqueness
invariant: a back URL can be claimed by at most one Pair per run.
"""

from __future__ import annotations

from collections import Counter

from labelpair.core.errors import PairingError
from labelpair.models.pairing import Pair, PairSource
from labelpair.utils.logger import get_logger

log = get_logger(__name__)


class PairingState:
    """Mutable per-batch pairing state. Not shared across runs."""

    def __init__(self) -> None:
        self.used_backs: set[str] = set()
        self.resolved_fronts: set[str] = set()
        self.pairs: list[Pair] = []
        # Singleton reasons recorded by earlier stages, keyed by image URL
        self.pending_reasons: dict[str, str] = {}
        # Fronts whose model pair was rejected; terminal singletons
        self.rejected: dict[str, str] = {}
        self.debug_summary: list[str] = []

    # ── Queries ──────────────────────────────────────────────────────────────

    def is_back_used(self, url: str) -> bool:
        return url in self.used_backs

    def is_front_resolved(self, url: str) -> bool:
        return url in self.resolved_fronts

    def is_rejected(self, url: str) -> bool:
        return url in self.rejected

    def is_open_front(self, url: str) -> bool:
        """Still eligible for a later pairing stage."""
        return url not in self.resolved_fronts and url not in self.rejected

    def paired_urls(self) -> set[str]:
        return self.used_backs | self.resolved_fronts

    def pairs_from(self, *sources: PairSource) -> list[Pair]:
        return [p for p in self.pairs if p.source in sources]

    def source_counts(self) -> Counter:
        return Counter(p.source for p in self.pairs)

    # ── Mutation ─────────────────────────────────────────────────────────────

    def claim(self, pair: Pair) -> None:
        """
        Record an accepted pair, marking its back used and its front resolved.
        Raises PairingError if either side was already claimed — callers
        check availability first, so reaching this is a wiring bug.
        """
        if pair.back_url in self.used_backs:
            raise PairingError(
                f"back already used: back={pair.back_url} "
                f"(attempted by {pair.source.value} for front={pair.front_url})"
            )
        if pair.front_url in self.resolved_fronts:
            raise PairingError(
                f"front already resolved: front={pair.front_url} "
                f"(attempted by {pair.source.value})"
            )
        if pair.front_url == pair.back_url:
            raise PairingError(f"image paired with itself: {pair.front_url}")
        if pair.front_url in self.rejected:
            raise PairingError(f"front was rejected earlier: front={pair.front_url}")

        self.used_backs.add(pair.back_url)
        self.resolved_fronts.add(pair.front_url)
        self.pairs.append(pair)
        self.pending_reasons.pop(pair.front_url, None)
        self.pending_reasons.pop(pair.back_url, None)

        log.debug(
            "pair_claimed",
            source=pair.source.value,
            front=pair.front_url,
            back=pair.back_url,
            score=pair.match_score,
        )

    def note_reason(self, url: str, reason: str) -> None:
        """Remember why an image was left unpaired (latest reason wins)."""
        self.pending_reasons[url] = reason

    def reject(self, url: str, reason: str) -> None:
        """Close a front as a singleton; no later stage may pair it."""
        self.rejected[url] = reason
        self.pending_reasons[url] = reason
        log.info("front_rejected", front=url, reason=reason)

    def debug(self, line: str) -> None:
        self.debug_summary.append(line)
