"""
OpenAI Realtime connector.

The realtime variant runs over a peer connection negotiated with an SDP
offer/answer exchange. An ephemeral session credential is minted first,
the offer is posted to the signaling endpoint with that credential, and
events then flow over the peer's data channel. The peer itself (media
track and data channel) is supplied by the caller.
"""

from dataclasses import dataclass
from datetime import date as Date
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Protocol

import httpx
import structlog

from ..core.errors import ConfigurationError, ReservationError, TransportError
from ..core.models import Provider
from ..core.pricing import PRICING_TABLE
from ..core.prompts import (
    REALTIME_TRANSCRIPTION_INSTRUCTIONS,
    TRANSCRIPTION_LANGUAGE,
    final_extraction_request,
    realtime_session_instructions,
)
from ..core.session import (
    ChannelEvent, ModelText, ServerError, SetupComplete, TranscriptText, UsageReport
)

logger = structlog.get_logger(__name__)

OPENAI_API_BASE = "https://api.openai.com/v1"
DEFAULT_VOICE = "alloy"
TRANSCRIPTION_MODEL = "whisper-1"


@dataclass(frozen=True)
class EphemeralSession:
    """Short-lived credential for one realtime connection."""
    client_secret: str
    session_id: Optional[str] = None


class RealtimePeer(Protocol):
    """Peer connection with a microphone track and an events data channel."""

    async def create_offer(self) -> str: ...

    async def accept_answer(self, sdp: str) -> None: ...

    async def send_event(self, event: Dict[str, Any]) -> None: ...

    async def send_audio(self, frame: bytes) -> None: ...

    def events(self) -> AsyncIterator[Dict[str, Any]]: ...

    async def close(self) -> None: ...


class RealtimeSessionClient:
    """Ephemeral-session and SDP signaling endpoints."""

    def __init__(
        self,
        api_key: Optional[str],
        base_url: str = OPENAI_API_BASE,
        timeout: float = 30.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
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

    async def _post(self, url: str, **kwargs) -> httpx.Response:
        client = await self._get_client()
        try:
            response = await client.post(url, **kwargs)
        except httpx.HTTPError as e:
            raise TransportError(
                f"OpenAI realtime request failed: {type(e).__name__}",
                provider=Provider.OPENAI_REALTIME.value,
            ) from e
        if response.status_code >= 400:
            raise TransportError(
                f"OpenAI realtime API failed: {response.status_code} - {response.text[:500]}",
                provider=Provider.OPENAI_REALTIME.value,
            )
        return response

    async def create_session(
        self, model: str, instructions: Optional[str] = None
    ) -> EphemeralSession:
        """Mint an ephemeral credential.

        The session defaults to the reservation assistant instructions.

        Raises:
            ConfigurationError: If no API key is configured
            TransportError: If the endpoint fails or the reply lacks a secret
        """
        if not self.api_key:
            raise ConfigurationError("OPENAI_API_KEY not configured")

        response = await self._post(
            f"{self.base_url}/realtime/sessions",
            headers={"Authorization": f"Bearer {self.api_key}"},
            json={
                "model": model,
                "voice": DEFAULT_VOICE,
                "instructions": instructions or realtime_session_instructions(),
            },
        )
        try:
            data = response.json()
            secret = data["client_secret"]["value"]
        except (ValueError, KeyError, TypeError) as e:
            raise TransportError(
                "Ephemeral session reply has no client secret",
                provider=Provider.OPENAI_REALTIME.value,
            ) from e
        return EphemeralSession(
            client_secret=secret,
            session_id=data.get("session_id") or data.get("id"),
        )

    async def exchange_sdp(self, offer_sdp: str, client_secret: str, model: str) -> str:
        """Post the SDP offer and return the answer SDP."""
        response = await self._post(
            f"{self.base_url}/realtime",
            params={"model": model},
            headers={
                "Authorization": f"Bearer {client_secret}",
                "Content-Type": "application/sdp",
            },
            content=offer_sdp.encode("utf-8"),
        )
        return response.text


def session_update_event() -> Dict[str, Any]:
    """Enable Czech input transcription on the session."""
    return {
        "type": "session.update",
        "session": {
            "instructions": REALTIME_TRANSCRIPTION_INSTRUCTIONS,
            "input_audio_transcription": {
                "model": TRANSCRIPTION_MODEL,
                "language": TRANSCRIPTION_LANGUAGE,
            },
        },
    }


def final_response_event(spoken: str) -> Dict[str, Any]:
    """Request a text-only reply carrying the reservation."""
    return {
        "type": "response.create",
        "response": {
            "modalities": ["text"],
            "instructions": final_extraction_request(spoken),
        },
    }


class RealtimeChannel:
    """Adapts a negotiated peer to the live channel interface."""

    def __init__(self, peer: RealtimePeer):
        self._peer = peer

    async def send_audio(self, frame: bytes) -> None:
        await self._peer.send_audio(frame)

    async def send_event(self, event: Dict[str, Any]) -> None:
        try:
            await self._peer.send_event(event)
        except ReservationError:
            raise
        except Exception as e:
            raise TransportError(
                f"Realtime data channel send failed: {type(e).__name__}",
                provider=Provider.OPENAI_REALTIME.value,
            ) from e

    def messages(self) -> AsyncIterator[Dict[str, Any]]:
        return self._peer.events()

    async def close(self) -> None:
        await self._peer.close()


class RealtimeConnector:
    """Connector for OpenAI Realtime sessions."""

    provider = Provider.OPENAI_REALTIME

    def __init__(
        self,
        sessions: RealtimeSessionClient,
        peer_factory: Callable[[], RealtimePeer],
        model: Optional[str] = None,
        today: Optional[Date] = None,
    ):
        self.sessions = sessions
        self.peer_factory = peer_factory
        self.model = model or PRICING_TABLE.default_model(Provider.OPENAI_REALTIME)
        self.today = today

    async def connect(self) -> RealtimeChannel:
        """Mint a credential, negotiate the peer and enable transcription.

        Raises:
            ConfigurationError: If no API key is configured
            TransportError: If signaling or the peer fails
        """
        session = await self.sessions.create_session(
            self.model, realtime_session_instructions(self.today)
        )
        peer = self.peer_factory()
        try:
            offer = await peer.create_offer()
            answer = await self.sessions.exchange_sdp(offer, session.client_secret, self.model)
            await peer.accept_answer(answer)
            await peer.send_event(session_update_event())
        except ReservationError:
            await peer.close()
            raise
        except Exception as e:
            await peer.close()
            raise TransportError(
                f"Realtime negotiation failed: {type(e).__name__}",
                provider=self.provider.value,
            ) from e
        logger.info("live_channel_opened", provider=self.provider.value,
                    model=self.model, session_id=session.session_id)
        return RealtimeChannel(peer)

    async def on_stop(self, channel: RealtimeChannel, spoken: str) -> None:
        """Ask for a final reply extracting the reservation from the user's speech."""
        await channel.send_event(final_response_event(spoken))

    def parse(self, message: Dict[str, Any]) -> List[ChannelEvent]:
        event_type = message.get("type")

        if event_type == "session.created":
            return [SetupComplete()]

        if event_type == "conversation.item.input_audio_transcription.completed":
            transcript = message.get("transcript")
            return [TranscriptText(transcript)] if transcript else []

        if event_type == "response.done":
            return _response_done_events(message.get("response") or {})

        if event_type == "error":
            error = message.get("error") or {}
            return [ServerError(error.get("message") or "unknown error")]

        return []


def _response_done_events(response: Dict[str, Any]) -> List[ChannelEvent]:
    events: List[ChannelEvent] = []
    for item in response.get("output") or []:
        for content in item.get("content") or []:
            text = content.get("transcript") or content.get("text")
            if text:
                events.append(ModelText(text))

    usage = response.get("usage")
    if usage:
        events.append(UsageReport(
            input_tokens=usage.get("input_tokens") or 0,
            output_tokens=usage.get("output_tokens") or 0,
        ))
    return events
