"""
Batch pipeline adapter.

Runs an uploaded recording through a non-streaming provider and merges
the outcome into a TranscriptionResult. Two vendor shapes are supported:

- two-step: speech-to-text, then chat-completion JSON extraction
- single-call: one multimodal request returning a labeled two-section text

A failed extraction never voids the transcription; the reservation is
simply None.
"""

import json
import re
import time
from dataclasses import dataclass
from datetime import date as Date
from typing import Callable, Optional, Protocol, Tuple

import structlog

from . import prompts
from .errors import ConfigurationError
from .metrics import start_session
from .models import PartialReservation, Provider, TranscriptionResult
from .pricing import PRICING_TABLE, PricingTable
from .token_counter import TokenUsage

logger = structlog.get_logger(__name__)

_CODE_FENCE = re.compile(r"^\s*```(?:json)?\s*(.*?)\s*```\s*$", re.DOTALL)
_TRANSCRIPTION_SECTION = re.compile(r"TRANSCRIPTION:\s*(.+?)(?=RESERVATION:|\Z)", re.DOTALL)
_RESERVATION_SECTION = re.compile(r"RESERVATION:\s*(\{.*?\})", re.DOTALL)


@dataclass(frozen=True)
class Completion:
    """Text returned by a vendor call plus its reported usage, if any."""
    content: str
    usage: Optional[TokenUsage] = None


class TwoStepClient(Protocol):
    """Vendor exposing separate transcription and chat endpoints."""

    async def transcribe(
        self, audio: bytes, *, language: str, prompt: str, mime_type: str
    ) -> str: ...

    async def complete(
        self, *, model: str, system: str, user: str, temperature: float
    ) -> Completion: ...


class MultimodalClient(Protocol):
    """Vendor accepting audio and instructions in one request."""

    async def generate(
        self,
        audio: bytes,
        *,
        model: str,
        instructions: str,
        temperature: float,
        mime_type: str,
    ) -> Completion: ...


def parse_reservation_json(content: str) -> Optional[PartialReservation]:
    """Parse a reservation JSON object out of a model reply.

    Returns:
        The parsed reservation, or None if the reply is not a JSON object
    """
    text = content or ""
    fenced = _CODE_FENCE.match(text)
    if fenced:
        text = fenced.group(1)
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        logger.warning("extraction_parse_failed", content_head=text[:200])
        return None
    if not isinstance(data, dict):
        logger.warning("extraction_not_an_object", content_head=text[:200])
        return None
    return PartialReservation.from_mapping(data)


def parse_labeled_response(content: str) -> Tuple[str, Optional[PartialReservation]]:
    """Split a "TRANSCRIPTION: ... RESERVATION: {...}" reply.

    A missing section leaves that part empty (transcription) or None
    (reservation).
    """
    transcription = ""
    reservation = None

    transcription_match = _TRANSCRIPTION_SECTION.search(content or "")
    if transcription_match:
        transcription = transcription_match.group(1).strip()

    reservation_match = _RESERVATION_SECTION.search(content or "")
    if reservation_match:
        reservation = parse_reservation_json(reservation_match.group(1))

    return transcription, reservation


class BatchPipeline:
    """Upload-once transcription and extraction for batch providers."""

    def __init__(
        self,
        openai_client: Optional[TwoStepClient] = None,
        gemini_client: Optional[MultimodalClient] = None,
        pricing: PricingTable = PRICING_TABLE,
        clock: Callable[[], float] = time.monotonic,
        today: Optional[Date] = None,
    ):
        self._openai = openai_client
        self._gemini = gemini_client
        self._pricing = pricing
        self._clock = clock
        self._today = today

    async def transcribe_and_extract(
        self,
        audio: bytes,
        provider: Provider,
        model: Optional[str] = None,
        mime_type: str = "audio/webm",
        audio_duration_ms: Optional[int] = None,
    ) -> TranscriptionResult:
        """Transcribe a recording and extract the reservation from it.

        Args:
            audio: Complete recording
            provider: Batch provider to use
            model: Extraction model, defaults to the provider's default
            mime_type: MIME type of the recording
            audio_duration_ms: Length of the recording, used for per-minute
                surcharges instead of wall-clock time when known

        Returns:
            TranscriptionResult with transcription, reservation and metrics

        Raises:
            ValueError: If audio is empty or provider is a live provider
            ConfigurationError: If no client is configured for provider
            TransportError: If a vendor call fails
        """
        if not audio:
            raise ValueError("audio is required and cannot be empty")
        if provider.is_live:
            raise ValueError(f"{provider.value} is a live provider, use a live session")

        model = model or self._pricing.default_model(provider)
        # Validate up front so an unknown model fails before any vendor call
        self._pricing.get_pricing(provider, model)

        tracker = start_session(self._clock)
        if provider is Provider.OPENAI:
            transcription, reservation, usage = await self._two_step(audio, model, mime_type)
        else:
            transcription, reservation, usage = await self._single_call(audio, model, mime_type)

        if usage is not None:
            tracker.record_tokens(usage.input_tokens, usage.output_tokens)
        metrics = tracker.finalize(
            self._pricing, provider, model, billed_duration_ms=audio_duration_ms
        )

        logger.info(
            "batch_pipeline_finished",
            provider=provider.value,
            model=model,
            extracted=reservation is not None,
            duration_ms=metrics.duration_ms,
        )
        return TranscriptionResult(
            text=transcription,
            provider=provider,
            model=model,
            metrics=metrics,
            reservation=reservation,
        )

    async def _two_step(self, audio: bytes, model: str, mime_type: str):
        if self._openai is None:
            raise ConfigurationError("OpenAI client is not configured")

        transcription = await self._openai.transcribe(
            audio,
            language=prompts.TRANSCRIPTION_LANGUAGE,
            prompt=prompts.VOCABULARY_HINT,
            mime_type=mime_type,
        )
        completion = await self._openai.complete(
            model=model,
            system=prompts.extraction_system_prompt(self._today),
            user=transcription,
            temperature=prompts.EXTRACTION_TEMPERATURE,
        )
        return transcription, parse_reservation_json(completion.content), completion.usage

    async def _single_call(self, audio: bytes, model: str, mime_type: str):
        if self._gemini is None:
            raise ConfigurationError("Gemini client is not configured")

        completion = await self._gemini.generate(
            audio,
            model=model,
            instructions=prompts.multimodal_instructions(self._today),
            temperature=prompts.EXTRACTION_TEMPERATURE,
            mime_type=mime_type,
        )
        transcription, reservation = parse_labeled_response(completion.content)
        return transcription, reservation, completion.usage
