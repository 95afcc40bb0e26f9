# Copyright (c) 2026 Harsh Dwivedi
# Licensed under the Harsh Non-Commercial Attribution License (HNCAL) v1.0
# Commercial use requires written permission. See LICENSE for details.

"""
LabelPair — LLM Response Parser
Malformed model text is data, not an exception. Parsing is:
  1. direct json.loads
  2. one cleaned re-parse (code fences, surrounding prose, trailing
     commas stripped; falls back to the largest balanced {...} block)
Anything still unparsable returns None and the caller treats the
response as empty.
"""

from __future__ import annotations

import json
import re
from typing import Optional

from labelpair.utils.logger import get_logger

log = get_logger(__name__)

_FENCE_RE = re.compile(r"```(?:json|JSON)?\s*(.*?)```", re.DOTALL)
_TRAILING_COMMA_OBJ_RE = re.compile(r",\s*}")
_TRAILING_COMMA_ARR_RE = re.compile(r",\s*]")


def _strip_fences(raw: str) -> str:
    match = _FENCE_RE.search(raw)
    return match.group(1) if match else raw


def _extract_json_block(raw: str) -> Optional[str]:
    """Largest balanced {...} block in the text."""
    depth = 0
    start_idx = None
    best_block = None
    best_len = 0

    for i, char in enumerate(raw):
        if char == "{":
            if depth == 0:
                start_idx = i
            depth += 1
        elif char == "}" and depth > 0:
            depth -= 1
            if depth == 0 and start_idx is not None:
                block = raw[start_idx:i + 1]
                if len(block) > best_len:
                    best_block = block
                    best_len = len(block)
                start_idx = None

    return best_block


def clean_llm_text(raw: str) -> str:
    """Remove formatting wrappers models commonly add around JSON."""
    text = _strip_fences(raw).strip()
    start = text.find("{")
    end = text.rfind("}")
    if start != -1 and end > start:
        text = text[start:end + 1]
    text = _TRAILING_COMMA_OBJ_RE.sub("}", text)
    text = _TRAILING_COMMA_ARR_RE.sub("]", text)
    return text


def _loads_object(text: str) -> Optional[dict]:
    try:
        value = json.loads(text)
    except json.JSONDecodeError:
        return None
    return value if isinstance(value, dict) else None


def parse_llm_json(raw: Optional[str]) -> Optional[dict]:
    """
    Parse one JSON object out of free-form model text.

    Returns:
        The decoded object, or None when no object can be recovered.
    """
    if not raw or not raw.strip():
        return None

    direct = _loads_object(raw)
    if direct is not None:
        return direct

    cleaned = clean_llm_text(raw)
    reparsed = _loads_object(cleaned)
    if reparsed is None:
        block = _extract_json_block(cleaned)
        if block:
            reparsed = _loads_object(block)

    if reparsed is None:
        log.warning("llm_response_unparsable", preview=raw[:120])
    else:
        log.debug("llm_response_reparsed")
    return reparsed
