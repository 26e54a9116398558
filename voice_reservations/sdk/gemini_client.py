"""
Gemini multimodal client.

Sends a recording and instructions in a single generateContent request.
"""

import base64
from typing import Any, Dict, Optional

import httpx
import structlog

from ..core.errors import ConfigurationError, TransportError
from ..core.pipeline import Completion
from ..core.token_counter import TokenUsage

logger = structlog.get_logger(__name__)

GEMINI_API_BASE = "https://generativelanguage.googleapis.com/v1beta"


class GeminiClient:
    """Single-call audio transcription and extraction through Gemini."""

    def __init__(
        self,
        api_key: Optional[str],
        base_url: str = GEMINI_API_BASE,
        timeout: float = 60.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        if not api_key or not api_key.strip():
            raise ConfigurationError("GOOGLE_AI_API_KEY not configured")
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = http_client

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(self.timeout))
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()

    async def generate(
        self,
        audio: bytes,
        *,
        model: str,
        instructions: str,
        temperature: float,
        mime_type: str,
    ) -> Completion:
        """Send inline audio plus instructions and return the reply text."""
        payload = {
            "contents": [{
                "parts": [
                    {
                        "inlineData": {
                            "mimeType": mime_type,
                            "data": base64.b64encode(audio).decode("ascii"),
                        }
                    },
                    {"text": instructions},
                ]
            }],
            "generationConfig": {"temperature": temperature},
        }

        client = await self._get_client()
        try:
            response = await client.post(
                f"{self.base_url}/models/{model}:generateContent",
                params={"key": self.api_key},
                json=payload,
            )
        except httpx.HTTPError as e:
            logger.error("gemini_request_failed", model=model, error=type(e).__name__)
            raise TransportError(f"Gemini request failed: {type(e).__name__}", provider="gemini") from e

        if response.status_code >= 400:
            raise TransportError(
                f"Gemini API failed: {response.status_code} - {response.text[:500]}",
                provider="gemini",
            )

        try:
            data = response.json()
        except ValueError as e:
            raise TransportError("Gemini returned invalid JSON", provider="gemini") from e

        return Completion(content=_first_text(data), usage=_usage(data))


def _first_text(data: Dict[str, Any]) -> str:
    candidates = data.get("candidates") or []
    if not candidates:
        return ""
    parts = (candidates[0].get("content") or {}).get("parts") or []
    if not parts:
        return ""
    return parts[0].get("text") or ""


def _usage(data: Dict[str, Any]) -> Optional[TokenUsage]:
    metadata = data.get("usageMetadata")
    if not metadata:
        return None
    return TokenUsage().add(
        metadata.get("promptTokenCount"), metadata.get("candidatesTokenCount")
    )
