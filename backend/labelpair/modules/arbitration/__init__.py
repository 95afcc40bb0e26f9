# Copyright (c) 2026 Harsh Dwivedi
# Licensed under the Harsh Non-Commercial Attribution License (HNCAL) v1.0
# Commercial use requires written permission. See LICENSE for details.

"""
LabelPair — Arbitration Module
Public API for the LLM-backed stages: constrained tie-breaking and the
unconstrained leftover pass.
"""

from labelpair.modules.arbitration.leftover_resolver import (
    build_leftover_request,
    collect_leftovers,
    resolve_leftovers,
)
from labelpair.modules.arbitration.llm_client import (
    LLMClient,
    LLMRequest,
    OpenAIChatClient,
    resolve_with_retry,
)
from labelpair.modules.arbitration.response_parser import clean_llm_text, parse_llm_json
from labelpair.modules.arbitration.tiebreaker import (
    DECLINE_PREFIX,
    TiebreakOutcome,
    TiebreakRequest,
    build_tiebreak_request,
    parse_tiebreak_response,
    run_tiebreak,
    validate_tiebreak_response,
)

__all__ = [
    # Collaborator
    "LLMClient",
    "LLMRequest",
    "OpenAIChatClient",
    "resolve_with_retry",
    # Parsing
    "parse_llm_json",
    "clean_llm_text",
    # Tie-breaker
    "DECLINE_PREFIX",
    "TiebreakRequest",
    "TiebreakOutcome",
    "build_tiebreak_request",
    "parse_tiebreak_response",
    "validate_tiebreak_response",
    "run_tiebreak",
    # Leftover
    "collect_leftovers",
    "build_leftover_request",
    "resolve_leftovers",
]
