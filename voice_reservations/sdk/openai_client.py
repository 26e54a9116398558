"""
OpenAI batch client.

Speech-to-text and chat-completion extraction for the two-step batch
pipeline, on top of the official OpenAI SDK.
"""

from typing import Any, Optional

import structlog
from openai import AsyncOpenAI, OpenAIError

from ..core.errors import ConfigurationError, TransportError
from ..core.pipeline import Completion
from ..core.token_counter import TokenUsage
from .audio import extension_for

logger = structlog.get_logger(__name__)

TRANSCRIPTION_MODEL = "whisper-1"


class OpenAIBatchClient:
    """Transcribes recordings and extracts reservations through OpenAI.

    Vendor failures are re-raised as TransportError with the SDK error
    chained; nothing is retried.
    """

    def __init__(
        self,
        api_key: Optional[str],
        transcription_model: str = TRANSCRIPTION_MODEL,
        client: Optional[Any] = None,
    ):
        """Initialize the client.

        Args:
            api_key: OpenAI API key (required)
            transcription_model: Speech-to-text model
            client: Preconfigured AsyncOpenAI-compatible client

        Raises:
            ConfigurationError: If api_key is missing/empty
        """
        if not api_key or not api_key.strip():
            raise ConfigurationError("OPENAI_API_KEY not configured")
        self.transcription_model = transcription_model
        self.client = client or AsyncOpenAI(api_key=api_key)

    async def transcribe(
        self, audio: bytes, *, language: str, prompt: str, mime_type: str
    ) -> str:
        """Transcribe a full recording.

        Args:
            audio: Recording bytes
            language: Target language hint (ISO-639-1)
            prompt: Domain vocabulary hint
            mime_type: MIME type of the recording

        Returns:
            Transcript text
        """
        try:
            response = await self.client.audio.transcriptions.create(
                model=self.transcription_model,
                file=(f"audio{extension_for(mime_type)}", audio, mime_type),
                language=language,
                prompt=prompt,
            )
        except OpenAIError as e:
            logger.error("openai_transcription_failed", error=str(e))
            raise TransportError(f"OpenAI transcription failed: {e}", provider="openai") from e
        return response.text or ""

    async def complete(
        self, *, model: str, system: str, user: str, temperature: float
    ) -> Completion:
        """Run the extraction chat completion.

        Returns:
            Completion with the reply text and reported token usage
        """
        try:
            response = await self.client.chat.completions.create(
                model=model,
                messages=[
                    {"role": "system", "content": system},
                    {"role": "user", "content": user},
                ],
                temperature=temperature,
            )
        except OpenAIError as e:
            logger.error("openai_extraction_failed", model=model, error=str(e))
            raise TransportError(f"OpenAI extraction failed: {e}", provider="openai") from e

        if not response.choices:
            raise TransportError("OpenAI response contained no choices", provider="openai")
        content = response.choices[0].message.content or ""

        usage = None
        if response.usage:
            usage = TokenUsage().add(
                response.usage.prompt_tokens, response.usage.completion_tokens
            )
        return Completion(content=content, usage=usage)
