"""
AI text correction and summarisation over a chain of chat models.

Each model is tried in order through `first_success`; every call is bounded
by a timeout and guarded by that model's circuit breaker. A correction is
only returned when it passes the output checks in `validation.py`.
"""

import logging
import math
import re
from functools import partial
from typing import Optional, Sequence

from core.metrics import record_correction
from pipeline.clients.llm_client import LLMClient
from pipeline.core.config import (
    CORRECTION_MAX_TOKENS,
    CORRECTION_TEMPERATURE,
    DEFAULT_THRESHOLDS,
    LLM_REQUEST_TIMEOUT_SECONDS,
    SUMMARY_CHUNK_CHARS,
    SUMMARY_TEMPERATURE,
    PipelineThresholds,
)
from pipeline.core.exceptions import CorrectionFailure, CorrectionRejected
from pipeline.correction.classifier import resolve_document_type
from pipeline.correction.prompts import (
    SUMMARY_MAX_TOKENS,
    build_correction_messages,
    build_summary_messages,
)
from pipeline.correction.validation import check_correction
from pipeline.resilience import (
    Attempt,
    CircuitBreaker,
    CircuitBreakerConfig,
    FallbackExhausted,
    first_success,
)

logger = logging.getLogger(__name__)

SENTENCE_BOUNDARY = re.compile(r"(?<=[.!?])\s+")


def _non_empty(text: str) -> bool:
    return bool(text and text.strip())


def chunk_text(text: str, max_chars: int = SUMMARY_CHUNK_CHARS) -> list[str]:
    """Split text on sentence boundaries into chunks of at most max_chars."""
    if len(text) <= max_chars:
        return [text]

    chunks: list[str] = []
    current = ""
    for sentence in SENTENCE_BOUNDARY.split(text):
        while len(sentence) > max_chars:
            if current:
                chunks.append(current)
                current = ""
            chunks.append(sentence[:max_chars])
            sentence = sentence[max_chars:]
        if current and len(current) + 1 + len(sentence) > max_chars:
            chunks.append(current)
            current = sentence
        else:
            current = f"{current} {sentence}" if current else sentence
    if current:
        chunks.append(current)
    return chunks


class TextCorrectionService:
    def __init__(
        self,
        llm_client: LLMClient,
        primary_model: str,
        fallback_models: Sequence[str] = (),
        timeout_seconds: float = LLM_REQUEST_TIMEOUT_SECONDS,
        thresholds: PipelineThresholds = DEFAULT_THRESHOLDS,
        breaker_config: Optional[CircuitBreakerConfig] = None,
        summary_chunk_chars: int = SUMMARY_CHUNK_CHARS,
    ):
        self.llm_client = llm_client
        self.models = list(dict.fromkeys([primary_model, *fallback_models]))
        self.timeout_seconds = timeout_seconds
        self.thresholds = thresholds
        self._breaker_config = breaker_config or CircuitBreakerConfig()
        self._breakers: dict[str, CircuitBreaker] = {}
        self.summary_chunk_chars = summary_chunk_chars

    def breaker_for(self, model: str) -> CircuitBreaker:
        breaker = self._breakers.get(model)
        if breaker is None:
            breaker = CircuitBreaker(f"LLM:{model}", self._breaker_config)
            self._breakers[model] = breaker
        return breaker

    def breaker_states(self) -> list[dict]:
        return [breaker.snapshot() for breaker in self._breakers.values()]

    async def _run_chain(
        self, messages: list[dict[str, str]], temperature: float, max_tokens: int
    ):
        attempts = [
            Attempt(
                model,
                partial(
                    self.breaker_for(model).call_async,
                    self.llm_client.complete,
                    model,
                    messages,
                    temperature=temperature,
                    max_tokens=max_tokens,
                ),
            )
            for model in self.models
        ]
        return await first_success(
            attempts, timeout_seconds=self.timeout_seconds, accept=_non_empty
        )

    async def correct(self, raw_text: str, document_type_hint: Optional[str] = None) -> str:
        """
        Clean OCR text with the first model that answers.

        Raises:
          CorrectionFailure: Every model failed, timed out or returned nothing.
          CorrectionRejected: A model answered but the output failed validation.
        """
        doc_type = resolve_document_type(raw_text, document_type_hint)
        messages = build_correction_messages(raw_text, doc_type)
        max_tokens = min(CORRECTION_MAX_TOKENS, math.ceil(len(raw_text) * 1.5))

        try:
            outcome = await self._run_chain(messages, CORRECTION_TEMPERATURE, max_tokens)
        except FallbackExhausted as e:
            record_correction("failed")
            logger.warning(f"Text correction failed on all {len(e.failures)} model(s)")
            raise CorrectionFailure(e.failures) from e

        corrected = outcome.value.strip()
        reason = check_correction(raw_text, corrected, self.thresholds)
        if reason is not None:
            record_correction("rejected")
            logger.warning(
                f"Correction from '{outcome.label}' rejected: {reason}",
                extra={"model": outcome.label},
            )
            raise CorrectionRejected(reason, model=outcome.label)

        record_correction("accepted")
        logger.info(
            f"Correction accepted from '{outcome.label}' "
            f"({len(raw_text)} -> {len(corrected)} chars, type={doc_type.value})",
            extra={"model": outcome.label},
        )
        return corrected

    async def summarize(self, text: str, summary_type: str = "auto") -> str:
        """
        Summarise text, chunking long inputs and summarising the chunk summaries.

        Raises:
          CorrectionFailure: No model produced a summary for some chunk.
        """
        chunks = chunk_text(text, self.summary_chunk_chars)
        if len(chunks) == 1:
            return await self._summarize_chunk(chunks[0], summary_type)

        logger.info(f"Summarising {len(chunks)} chunks")
        partials = [await self._summarize_chunk(chunk, summary_type) for chunk in chunks]
        return await self._summarize_chunk("\n\n".join(partials), summary_type)

    async def _summarize_chunk(self, text: str, summary_type: str) -> str:
        messages = build_summary_messages(text, summary_type)
        max_tokens = SUMMARY_MAX_TOKENS.get(summary_type, SUMMARY_MAX_TOKENS["auto"])
        try:
            outcome = await self._run_chain(messages, SUMMARY_TEMPERATURE, max_tokens)
        except FallbackExhausted as e:
            raise CorrectionFailure(e.failures) from e
        return outcome.value.strip()
