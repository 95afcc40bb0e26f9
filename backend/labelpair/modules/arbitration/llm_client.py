# Copyright (c) 2026 Harsh Dwivedi
# Licensed under the Harsh Non-Commercial Attribution License (HNCAL) v1.0
# Commercial use requires written permission. See LICENSE for details.

"""
LabelPair — LLM Collaborator
Narrow interface between the arbitration stages and any chat model:

    client.resolve(LLMRequest) -> str

Tests substitute deterministic fakes; production uses OpenAIChatClient.
Retry with exponential backoff lives in exactly one place:
resolve_with_retry(). Transport failures that survive every attempt are
re-raised as LLMUnavailableError.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

import openai
from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from labelpair.config import Settings, get_settings
from labelpair.core.errors import LLMUnavailableError
from labelpair.utils.logger import get_logger

log = get_logger(__name__)

# Transport-level failures worth another attempt
RETRYABLE_ERRORS: tuple[type[BaseException], ...] = (
    openai.APIError,
    ConnectionError,
    TimeoutError,
)


@dataclass(frozen=True)
class LLMRequest:
    """System instruction + structured payload for one arbitration call."""
    system: str
    payload: dict[str, Any] = field(default_factory=dict)
    stage: str = "tiebreak"

    def user_content(self) -> str:
        return json.dumps(self.payload, indent=2, sort_keys=False)


@runtime_checkable
class LLMClient(Protocol):
    def resolve(self, request: LLMRequest) -> str:
        """Return the raw model text for one request."""
        ...


class OpenAIChatClient:
    """Chat-completions client: temperature 0, JSON-object response format."""

    def __init__(
        self,
        settings: Settings | None = None,
        client: openai.OpenAI | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self._client = client or openai.OpenAI(
            api_key=self.settings.openai_api_key,
            timeout=self.settings.llm_timeout_s,
            # Retries are handled by resolve_with_retry
            max_retries=0,
        )

    def resolve(self, request: LLMRequest) -> str:
        response = self._client.chat.completions.create(
            model=self.settings.llm_model,
            messages=[
                {"role": "system", "content": request.system},
                {"role": "user", "content": request.user_content()},
            ],
            temperature=0,
            response_format={"type": "json_object"},
        )
        if not response.choices:
            return ""
        return response.choices[0].message.content or ""


def _log_retry(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    log.warning(
        "llm_call_retry",
        attempt=retry_state.attempt_number,
        error=repr(exc),
        sleep_s=round(retry_state.next_action.sleep, 2) if retry_state.next_action else 0,
    )


def resolve_with_retry(
    client: LLMClient,
    request: LLMRequest,
    settings: Settings | None = None,
) -> str:
    """
    Call the collaborator with bounded retry and exponential backoff.

    Raises:
        LLMUnavailableError: every attempt failed with a retryable error
    """
    if settings is None:
        settings = get_settings()

    retryer = Retrying(
        stop=stop_after_attempt(settings.llm_max_attempts),
        wait=wait_exponential(
            multiplier=1,
            min=settings.llm_backoff_min_s,
            max=settings.llm_backoff_max_s,
        ),
        retry=retry_if_exception_type(RETRYABLE_ERRORS),
        before_sleep=_log_retry,
        reraise=True,
    )

    log.info("llm_call_start", stage=request.stage, model=settings.llm_model)
    try:
        text = retryer(client.resolve, request)
    except RETRYABLE_ERRORS as exc:
        log.error(
            "llm_unavailable",
            stage=request.stage,
            attempts=settings.llm_max_attempts,
            error=repr(exc),
        )
        raise LLMUnavailableError(
            f"LLM collaborator failed after {settings.llm_max_attempts} attempts "
            f"(stage={request.stage}): {exc}"
        ) from exc

    log.info("llm_call_complete", stage=request.stage, chars=len(text or ""))
    return text or ""
