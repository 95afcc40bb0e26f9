# Copyright (c) 2026 Harsh Dwivedi
# Licensed under the Harsh Non-Commercial Attribution License (HNCAL) v1.0
# Commercial use requires written permission. See LICENSE for details.

"""
LabelPair — Error Taxonomy
Only structural failures are exceptions. Ordinary data ambiguity
(low-confidence pairs, unparsable model text, images without a URL)
is absorbed by the stage that meets it and recorded as evidence.
"""

from __future__ import annotations


class PairingError(RuntimeError):
    """Base class for pipeline-level pairing failures."""


class ContractViolationError(PairingError):
    """
    Raised when the tie-breaker response breaks a structural guarantee:
    hallucinated front, back outside the allowed list, reused back,
    or a front without a decision. Aborts the batch.
    """

    def __init__(self, kind: str, message: str) -> None:
        super().__init__(f"contract violation ({kind}): {message}")
        self.kind = kind


class LLMUnavailableError(PairingError):
    """Raised when the LLM collaborator keeps failing after bounded retries."""
