# Copyright (c) 2026 Harsh Dwivedi
# Licensed under the Harsh Non-Commercial Attribution License (HNCAL) v1.0
# Commercial use requires written permission. See LICENSE for details.

"""
LabelPair — Application Configuration
All thresholds and collaborator settings are loaded from environment
variables with production defaults. Override via backend/.env or environment.

Scoring weights are NOT configured here — they live as fixed constants in
the candidate generator. Only acceptance thresholds are tunable.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

ENGINE_VERSION = "labelpair-1.0.0"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ─── Candidate Generator ─────────────────────────────────────────────────
    candidate_top_k: int = 4
    # Backs scoring below this never enter a candidate list
    min_pre_score: float = 2.0
    # 1 keeps per-front scoring on the calling thread
    candidate_workers: int = 1
    max_candidate_build_ms: int = 2000
    max_back_front_ratio: int = 3

    # ─── Auto-Pairer ─────────────────────────────────────────────────────────
    auto_pair_score: float = 4.0
    auto_pair_gap: float = 1.0
    # Hair / cosmetics backs often carry only an INCI list; also the
    # candidate floor for hair/cosmetic fronts when below min_pre_score
    auto_pair_hair_score: float = 1.5
    auto_pair_hair_gap: float = 0.5
    hair_inci_gap_bonus: float = 0.5

    # ─── Two-Shot Global Solver ──────────────────────────────────────────────
    two_shot_enabled: bool = True

    # ─── LLM Arbitration ─────────────────────────────────────────────────────
    tiebreak_enabled: bool = True
    leftover_enabled: bool = True
    model_pair_min_score: float = 3.0
    leftover_match_score: float = 7.5
    llm_model: str = "gpt-4o-mini"
    openai_api_key: Optional[str] = None
    llm_timeout_s: float = 60.0
    llm_max_attempts: int = 3
    llm_backoff_min_s: float = 1.0
    llm_backoff_max_s: float = 8.0

    # ─── Embedding Similarity ────────────────────────────────────────────────
    # Visual confirmation is skipped when no endpoint is configured
    embedding_api_url: Optional[str] = None
    embedding_api_token: Optional[str] = None
    embedding_min_similarity: float = 0.35
    embedding_timeout_s: float = 20.0

    # ─── Extras / Feature Prep ───────────────────────────────────────────────
    max_extras_per_product: int = 4
    ocr_snippet_chars: int = 400

    # ─── Evidence Log ────────────────────────────────────────────────────────
    evidence_log_dir: Optional[Path] = None

    # ─── Logging ─────────────────────────────────────────────────────────────
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # ─── Derived helpers ─────────────────────────────────────────────────────
    @property
    def visual_confirmation_enabled(self) -> bool:
        return bool(self.embedding_api_url)

    def run_log_dir(self, run_id: str) -> Optional[Path]:
        if self.evidence_log_dir is None:
            return None
        return self.evidence_log_dir / run_id


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached singleton Settings instance."""
    return Settings()
