"""
Gemini Live streaming connector.

Opens a bidirectional websocket to the BidiGenerateContent service, sends
the session setup and streams base64 PCM frames. Inbound JSON messages
are mapped to channel events for the live session.
"""

import base64
import json
from datetime import date as Date
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Protocol

import httpx
import structlog
import websockets
from websockets.exceptions import ConnectionClosedOK, WebSocketException

from ..core.errors import ConfigurationError, TransportError
from ..core.models import Provider
from ..core.pricing import PRICING_TABLE
from ..core.prompts import live_system_instruction
from ..core.session import ChannelEvent, ModelText, SetupComplete, UsageReport

logger = structlog.get_logger(__name__)

LIVE_ENDPOINT = (
    "wss://generativelanguage.googleapis.com/ws/"
    "google.ai.generativelanguage.{version}.GenerativeService.BidiGenerateContent"
)
AUDIO_MIME_TYPE = "audio/pcm;rate=16000"
VOICE_NAME = "Aoede"


class CredentialProvider(Protocol):
    """Supplies the Google AI key at connect time."""

    async def get_key(self) -> str: ...


class StaticCredentialProvider:
    """Credential taken from local configuration."""

    def __init__(self, api_key: Optional[str]):
        self.api_key = api_key

    async def get_key(self) -> str:
        if not self.api_key:
            raise ConfigurationError("GOOGLE_AI_API_KEY not configured")
        return self.api_key


class HttpCredentialProvider:
    """Credential fetched from a server endpoint returning {"key": ...}."""

    def __init__(
        self,
        url: str,
        timeout: float = 10.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.url = url
        self.timeout = timeout
        self._client = http_client

    async def get_key(self) -> str:
        """Fetch the key.

        Raises:
            ConfigurationError: If the endpoint reports no key configured
            TransportError: If the endpoint cannot be reached
        """
        client = self._client or httpx.AsyncClient(timeout=httpx.Timeout(self.timeout))
        try:
            response = await client.get(self.url)
        except httpx.HTTPError as e:
            raise TransportError(
                f"Credential endpoint unreachable: {type(e).__name__}",
                provider=Provider.GEMINI_LIVE.value,
            ) from e
        finally:
            if self._client is None:
                await client.aclose()

        if response.status_code >= 400:
            raise ConfigurationError(
                f"Credential endpoint returned {response.status_code}"
            )
        try:
            key = response.json().get("key")
        except (ValueError, AttributeError):
            key = None
        if not key:
            raise ConfigurationError("GOOGLE_AI_API_KEY not configured")
        return key


def api_version_for(model: str) -> str:
    """Native-audio preview models are only served on v1alpha."""
    return "v1alpha" if "native-audio-preview" in model else "v1beta"


def build_setup_message(model: str, today: Optional[Date] = None) -> Dict[str, Any]:
    return {
        "setup": {
            "model": f"models/{model}",
            "generationConfig": {
                "responseModalities": ["AUDIO"],
                "speechConfig": {
                    "voiceConfig": {
                        "prebuiltVoiceConfig": {"voiceName": VOICE_NAME}
                    }
                },
            },
            "systemInstruction": {
                "parts": [{"text": live_system_instruction(today)}]
            },
        }
    }


def encode_audio_frame(frame: bytes) -> Dict[str, Any]:
    return {
        "realtimeInput": {
            "mediaChunks": [{
                "mimeType": AUDIO_MIME_TYPE,
                "data": base64.b64encode(frame).decode("ascii"),
            }]
        }
    }


class GeminiLiveChannel:
    """Websocket channel carrying JSON messages both ways."""

    def __init__(self, websocket: Any):
        self._ws = websocket

    async def send_json(self, message: Dict[str, Any]) -> None:
        try:
            await self._ws.send(json.dumps(message))
        except WebSocketException as e:
            raise TransportError(
                f"Gemini Live send failed: {e}", provider=Provider.GEMINI_LIVE.value
            ) from e

    async def send_audio(self, frame: bytes) -> None:
        await self.send_json(encode_audio_frame(frame))

    async def messages(self) -> AsyncIterator[Dict[str, Any]]:
        """Yield decoded inbound messages until the socket closes.

        Binary frames carry UTF-8 JSON. Frames that are not valid JSON are
        logged and skipped.
        """
        try:
            async for raw in self._ws:
                if isinstance(raw, bytes):
                    raw = raw.decode("utf-8", errors="replace")
                try:
                    message = json.loads(raw)
                except ValueError:
                    logger.warning("live_message_unparseable", size=len(raw))
                    continue
                if isinstance(message, dict):
                    yield message
        except ConnectionClosedOK:
            return
        except WebSocketException as e:
            raise TransportError(
                f"Gemini Live connection failed: {e}",
                provider=Provider.GEMINI_LIVE.value,
            ) from e

    async def close(self) -> None:
        await self._ws.close()


class GeminiLiveConnector:
    """Connector for Gemini Live sessions."""

    provider = Provider.GEMINI_LIVE

    def __init__(
        self,
        credentials: CredentialProvider,
        model: Optional[str] = None,
        today: Optional[Date] = None,
        connect: Callable[..., Any] = websockets.connect,
    ):
        """Initialize the connector.

        Args:
            credentials: Source of the Google AI key
            model: Live model id, defaults to the provider's default
            today: Date mentioned in the system instruction
            connect: Websocket connect function
        """
        self.credentials = credentials
        self.model = model or PRICING_TABLE.default_model(Provider.GEMINI_LIVE)
        self.today = today
        self._connect = connect

    async def connect(self) -> GeminiLiveChannel:
        """Fetch the key, open the socket and send the setup message.

        Raises:
            ConfigurationError: If no key is available
            TransportError: If the socket cannot be opened
        """
        key = await self.credentials.get_key()
        version = api_version_for(self.model)
        url = f"{LIVE_ENDPOINT.format(version=version)}?key={key}"

        try:
            websocket = await self._connect(url, max_size=None)
        except (OSError, WebSocketException) as e:
            raise TransportError(
                f"Gemini Live connection failed: {type(e).__name__}",
                provider=self.provider.value,
            ) from e

        logger.info("live_channel_opened", provider=self.provider.value,
                    model=self.model, api_version=version)
        channel = GeminiLiveChannel(websocket)
        await channel.send_json(build_setup_message(self.model, self.today))
        return channel

    def parse(self, message: Dict[str, Any]) -> List[ChannelEvent]:
        events: List[ChannelEvent] = []
        if "setupComplete" in message:
            events.append(SetupComplete())

        server_content = message.get("serverContent") or {}
        model_turn = server_content.get("modelTurn") or {}
        for part in model_turn.get("parts") or []:
            text = part.get("text")
            if text:
                events.append(ModelText(text))

        usage = message.get("usageMetadata")
        if usage:
            events.append(UsageReport(
                input_tokens=usage.get("promptTokenCount") or 0,
                output_tokens=usage.get("candidatesTokenCount") or 0,
            ))
        return events
