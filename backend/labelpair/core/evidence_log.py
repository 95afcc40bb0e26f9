# Copyright (c) 2026 Harsh Dwivedi
# Licensed under the Harsh Non-Commercial Attribution License (HNCAL) v1.0
# Commercial use requires written permission. See LICENSE for details.

"""
LabelPair — Evidence Log
The only persisted side effect of a run. Scoped per run so concurrent
batches never collide.

Layout:
    {evidence_log_dir}/{run_id}/
        pairing_result.json
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

from labelpair.config import Settings, get_settings
from labelpair.models.output import PairingResult
from labelpair.utils.logger import get_logger

log = get_logger(__name__)

RESULT_FILENAME = "pairing_result.json"


def evidence_log_path(run_id: str, settings: Settings | None = None) -> Optional[Path]:
    settings = settings or get_settings()
    run_dir = settings.run_log_dir(run_id)
    return run_dir / RESULT_FILENAME if run_dir is not None else None


def write_evidence_log(
    result: PairingResult,
    run_id: str,
    settings: Settings | None = None,
) -> Optional[Path]:
    """
    Write the camelCase result for one run.

    Returns:
        Path written, or None when no evidence directory is configured.
    """
    path = evidence_log_path(run_id, settings)
    if path is None:
        return None

    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(result.to_output(), f, indent=2)

    log.info("evidence_log_written", path=str(path), pairs=len(result.pairs))
    return path


def read_evidence_log(path: Path) -> dict:
    with open(path, encoding="utf-8") as f:
        return json.load(f)
