"""
Unit tests for the batch pipeline adapter.

Vendor clients are replaced with in-memory fakes.
"""

import asyncio
from datetime import date

import pytest

from voice_reservations.core.errors import ConfigurationError, TransportError
from voice_reservations.core.extractor import extract_fields
from voice_reservations.core.models import PartialReservation, Provider
from voice_reservations.core.pipeline import (
    BatchPipeline,
    Completion,
    parse_labeled_response,
    parse_reservation_json,
)
from voice_reservations.core.token_counter import TokenUsage

TODAY = date(2026, 1, 15)
AUDIO = b"RIFF....WAVEfmt "


class FakeOpenAI:
    """Two-step client returning canned replies."""

    def __init__(self, transcription="", content="{}", usage=None, error=None):
        self.transcription = transcription
        self.content = content
        self.usage = usage
        self.error = error
        self.calls = []

    async def transcribe(self, audio, *, language, prompt, mime_type):
        self.calls.append(("transcribe", language, mime_type))
        if self.error is not None:
            raise self.error
        return self.transcription

    async def complete(self, *, model, system, user, temperature):
        self.calls.append(("complete", model, user, temperature))
        return Completion(self.content, self.usage)


class FakeGemini:
    """Multimodal client returning a canned reply."""

    def __init__(self, content="", usage=None):
        self.content = content
        self.usage = usage
        self.calls = []

    async def generate(self, audio, *, model, instructions, temperature, mime_type):
        self.calls.append((model, mime_type, instructions))
        return Completion(self.content, self.usage)


def run(pipeline, *args, **kwargs):
    return asyncio.run(pipeline.transcribe_and_extract(*args, **kwargs))


class TestParseReservationJson:
    """Test extraction reply parsing."""

    def test_plain_json(self):
        reservation = parse_reservation_json('{"clientName": "Jan Novák", "date": "2026-03-05"}')
        assert reservation == PartialReservation(client_name="Jan Novák", date="2026-03-05")

    def test_code_fenced_json(self):
        content = '```json\n{"clientName": "Jan Novák", "time": "14:00", "notes": ""}\n```'
        reservation = parse_reservation_json(content)
        assert reservation == PartialReservation(client_name="Jan Novák", time="14:00")

    def test_invalid_json_returns_none(self):
        assert parse_reservation_json("Omlouvám se, nerozumím.") is None

    def test_non_object_returns_none(self):
        assert parse_reservation_json('["Jan Novák"]') is None


class TestParseLabeledResponse:
    """Test two-section reply parsing."""

    def test_both_sections(self):
        content = (
            "TRANSCRIPTION: Rezervace pro Jana Nováka na pátek\n"
            'RESERVATION: {"clientName": "Jan Novák", "date": "2026-01-16"}'
        )
        transcription, reservation = parse_labeled_response(content)
        assert transcription == "Rezervace pro Jana Nováka na pátek"
        assert reservation.client_name == "Jan Novák"
        assert reservation.date == "2026-01-16"

    def test_missing_reservation_section(self):
        transcription, reservation = parse_labeled_response("TRANSCRIPTION: Dobrý den")
        assert transcription == "Dobrý den"
        assert reservation is None

    def test_unlabeled_reply(self):
        transcription, reservation = parse_labeled_response("Dobrý den")
        assert transcription == ""
        assert reservation is None


class TestBatchPipelineOpenAI:
    """Test the two-step path."""

    def test_end_to_end_scenario(self):
        client = FakeOpenAI(
            transcription="Rezervace pro Jana Nováka na 5. března",
            content='{"clientName": "Jan Novák", "date": "2026-03-05"}',
            usage=TokenUsage(input_tokens=200, output_tokens=30),
        )
        pipeline = BatchPipeline(openai_client=client, clock=lambda: 0.0, today=TODAY)

        result = run(pipeline, AUDIO, Provider.OPENAI)

        assert result.text == "Rezervace pro Jana Nováka na 5. března"
        assert result.provider is Provider.OPENAI
        assert result.model == "gpt-4o-mini"
        assert result.metrics is not None
        assert result.metrics.tokens_total == (
            result.metrics.tokens_input + result.metrics.tokens_output
        )

        heuristic = extract_fields(PartialReservation(), result.text, TODAY)
        assert heuristic.to_dict() == {"clientName": "Jana Nováka", "date": "2026-03-05"}

    def test_reservation_from_extraction_reply(self):
        client = FakeOpenAI(
            transcription="Rezervace pro Jana Nováka na 5. března",
            content='```json\n{"clientName": "Jan Novák", "date": "2026-03-05", "time": "10:00"}\n```',
        )
        pipeline = BatchPipeline(openai_client=client, clock=lambda: 0.0, today=TODAY)

        result = run(pipeline, AUDIO, Provider.OPENAI)

        assert result.reservation == PartialReservation(
            client_name="Jan Novák", date="2026-03-05", time="10:00"
        )

    def test_calls_use_czech_and_transcript(self):
        client = FakeOpenAI(transcription="pro Jana Nováka")
        pipeline = BatchPipeline(openai_client=client, clock=lambda: 0.0, today=TODAY)

        run(pipeline, AUDIO, Provider.OPENAI, model="gpt-4o", mime_type="audio/wav")

        assert client.calls[0] == ("transcribe", "cs", "audio/wav")
        assert client.calls[1] == ("complete", "gpt-4o", "pro Jana Nováka", 0.1)

    def test_unparseable_extraction_keeps_transcription(self):
        client = FakeOpenAI(transcription="Dobrý den", content="nevím")
        pipeline = BatchPipeline(openai_client=client, clock=lambda: 0.0, today=TODAY)

        result = run(pipeline, AUDIO, Provider.OPENAI)

        assert result.text == "Dobrý den"
        assert result.reservation is None

    def test_surcharge_billed_on_audio_duration(self):
        client = FakeOpenAI(
            transcription="x",
            usage=TokenUsage(input_tokens=200, output_tokens=30),
        )
        pipeline = BatchPipeline(openai_client=client, clock=lambda: 0.0, today=TODAY)

        result = run(pipeline, AUDIO, Provider.OPENAI, audio_duration_ms=60_000)

        # 200/1M * 0.15 + 30/1M * 0.60 + 1 min * 0.006
        assert result.metrics.estimated_cost_usd == 0.006048
        assert result.metrics.duration_ms == 0

    def test_missing_usage_still_returns_metrics(self):
        client = FakeOpenAI(transcription="x", usage=None)
        pipeline = BatchPipeline(openai_client=client, clock=lambda: 0.0, today=TODAY)

        result = run(pipeline, AUDIO, Provider.OPENAI)

        assert result.metrics.tokens_total == 0
        assert result.metrics.estimated_cost_usd == 0.0

    def test_transport_error_propagates(self):
        client = FakeOpenAI(error=TransportError("boom", provider="openai"))
        pipeline = BatchPipeline(openai_client=client, today=TODAY)

        with pytest.raises(TransportError, match="boom"):
            run(pipeline, AUDIO, Provider.OPENAI)


class TestBatchPipelineGemini:
    """Test the single-call path."""

    def test_single_call(self):
        client = FakeGemini(
            content=(
                "TRANSCRIPTION: Rezervace pro Jana Nováka na 5. března\n"
                'RESERVATION: {"clientName": "Jan Novák", "date": "2026-03-05"}'
            ),
            usage=TokenUsage(input_tokens=1000, output_tokens=100),
        )
        pipeline = BatchPipeline(gemini_client=client, clock=lambda: 0.0, today=TODAY)

        result = run(pipeline, AUDIO, Provider.GEMINI, mime_type="audio/webm")

        assert result.text == "Rezervace pro Jana Nováka na 5. března"
        assert result.reservation.client_name == "Jan Novák"
        assert result.model == "gemini-2.0-flash"
        assert result.metrics.tokens_total == 1100
        # 1000/1M * 0.075 + 100/1M * 0.30
        assert result.metrics.estimated_cost_usd == 0.000105
        model, mime_type, instructions = client.calls[0]
        assert model == "gemini-2.0-flash"
        assert mime_type == "audio/webm"
        assert "2026-01-15" in instructions


class TestBatchPipelineValidation:
    """Test argument and configuration errors."""

    def test_empty_audio_rejected(self):
        pipeline = BatchPipeline(openai_client=FakeOpenAI())
        with pytest.raises(ValueError, match="audio is required"):
            run(pipeline, b"", Provider.OPENAI)

    def test_live_provider_rejected(self):
        pipeline = BatchPipeline(gemini_client=FakeGemini())
        with pytest.raises(ValueError, match="live provider"):
            run(pipeline, AUDIO, Provider.GEMINI_LIVE)

    def test_unknown_model_rejected_before_vendor_call(self):
        client = FakeOpenAI()
        pipeline = BatchPipeline(openai_client=client)
        with pytest.raises(ValueError, match="Unsupported model"):
            run(pipeline, AUDIO, Provider.OPENAI, model="gpt-2")
        assert client.calls == []

    def test_missing_client_is_configuration_error(self):
        pipeline = BatchPipeline(openai_client=FakeOpenAI())
        with pytest.raises(ConfigurationError):
            run(pipeline, AUDIO, Provider.GEMINI)
