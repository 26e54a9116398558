"""
Live session state machine.

Drives one streaming connection through

    Idle -> Connecting -> Streaming -> Completing -> Closed

with Errored as an absorbing state reachable from Connecting and
Streaming. Inbound provider messages enter through handle_message(), the
single dispatch point; each message is parsed into channel events by the
provider connector and triggers at most one extractor call.

Everything runs on one event loop, so the state needs no locking. The
is_complete flag stops all processing once completion has fired.
"""

import asyncio
import time
from contextlib import suppress
from dataclasses import dataclass, field, replace
from datetime import date as Date
from enum import Enum
from typing import (
    Any, AsyncIterator, Callable, Dict, List, Optional, Protocol, Union
)

import structlog

from .errors import ConfigurationError, InvalidTransitionError, TransportError
from .extractor import extract_fields, is_complete
from .metrics import SessionMetricsTracker, start_session
from .models import PartialReservation, Provider, TranscriptionResult
from .names import normalize_full_name
from .pricing import PRICING_TABLE, PricingTable

logger = structlog.get_logger(__name__)


class SessionStatus(Enum):
    """Lifecycle states of a live session."""
    IDLE = "idle"
    CONNECTING = "connecting"
    STREAMING = "streaming"
    COMPLETING = "completing"
    CLOSED = "closed"
    ERRORED = "errored"


_TRANSITIONS = {
    SessionStatus.IDLE: {SessionStatus.CONNECTING, SessionStatus.CLOSED},
    SessionStatus.CONNECTING: {
        SessionStatus.STREAMING, SessionStatus.ERRORED, SessionStatus.CLOSED
    },
    SessionStatus.STREAMING: {SessionStatus.COMPLETING, SessionStatus.ERRORED},
    SessionStatus.COMPLETING: {SessionStatus.CLOSED},
    SessionStatus.CLOSED: set(),
    SessionStatus.ERRORED: set(),
}


# Events produced by provider connectors from raw channel messages

@dataclass(frozen=True)
class SetupComplete:
    """The provider acknowledged the session setup."""


@dataclass(frozen=True)
class TranscriptText:
    """Transcribed user speech; shown but not scanned for fields."""
    text: str


@dataclass(frozen=True)
class ModelText:
    """Model output text; appended to the transcript and scanned for fields."""
    text: str


@dataclass(frozen=True)
class UsageReport:
    """Token usage reported alongside a message."""
    input_tokens: int = 0
    output_tokens: int = 0


@dataclass(frozen=True)
class ServerError:
    """An error event reported in-band by the provider."""
    message: str


ChannelEvent = Union[SetupComplete, TranscriptText, ModelText, UsageReport, ServerError]


class LiveChannel(Protocol):
    """Bidirectional channel to a live provider."""

    async def send_audio(self, frame: bytes) -> None: ...

    def messages(self) -> AsyncIterator[Dict[str, Any]]: ...

    async def close(self) -> None: ...


class LiveConnector(Protocol):
    """Opens channels to one live provider and routes its messages."""

    provider: Provider
    model: str

    async def connect(self) -> LiveChannel:
        """Acquire a credential, open the channel and send the setup."""
        ...

    def parse(self, message: Dict[str, Any]) -> List[ChannelEvent]: ...

    # Connectors may also define
    #     async def on_stop(self, channel, spoken: str) -> None
    # to request one last model reply when the user stops the session.


class AudioSource(Protocol):
    """Exclusively owned audio capture device."""

    def frames(self) -> AsyncIterator[bytes]: ...

    async def close(self) -> None: ...


@dataclass
class SessionState:
    """Transient state of one live connection."""
    metrics: SessionMetricsTracker
    transcript: str = ""
    model_text: str = ""
    spoken: str = ""
    reservation: PartialReservation = field(default_factory=PartialReservation)
    is_complete: bool = False

    def append_transcript(self, text: str, separator: str = "") -> None:
        if not text:
            return
        self.transcript = f"{self.transcript}{separator}{text}" if self.transcript else text


class LiveSession:
    """One live reservation session over a provider channel.

    Callers either await run(), which connects and processes messages until
    the session closes, or drive connect()/handle_message()/stop() directly.
    """

    def __init__(
        self,
        connector: LiveConnector,
        audio: AudioSource,
        pricing: PricingTable = PRICING_TABLE,
        on_complete: Optional[Callable[[TranscriptionResult], None]] = None,
        on_error: Optional[Callable[[Exception], None]] = None,
        normalize_names: bool = False,
        clock: Callable[[], float] = time.monotonic,
        today: Optional[Date] = None,
        stop_grace: float = 2.0,
    ):
        """Initialize an idle session.

        Args:
            connector: Provider connector opening the channel
            audio: Audio source streamed once setup completes
            pricing: Pricing table used to finalize metrics
            on_complete: Called once with the result on completion
            on_error: Called with the error when the session fails
            normalize_names: Map genitive client names to the nominative
            clock: Monotonic clock for duration metrics
            today: Date supplying the year for extracted dates
            stop_grace: Seconds to wait for the final reply requested on stop
        """
        self._connector = connector
        self._audio = audio
        self._pricing = pricing
        self._on_complete = on_complete
        self._on_error = on_error
        self._normalize_names = normalize_names
        self._clock = clock
        self._today = today
        self._stop_grace = stop_grace

        self._status = SessionStatus.IDLE
        self._state = SessionState(metrics=SessionMetricsTracker(clock))
        self._channel: Optional[LiveChannel] = None
        self._audio_task: Optional[asyncio.Task] = None
        self._result: Optional[TranscriptionResult] = None
        self._final_reply: Optional[asyncio.Event] = None

    @property
    def status(self) -> SessionStatus:
        return self._status

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def result(self) -> Optional[TranscriptionResult]:
        return self._result

    def _transition(self, new_status: SessionStatus) -> None:
        if new_status not in _TRANSITIONS[self._status]:
            raise InvalidTransitionError(self._status.value, new_status.value)
        logger.info(
            "session_state_changed",
            provider=self._connector.provider.value,
            old=self._status.value,
            new=new_status.value,
        )
        self._status = new_status

    async def connect(self) -> None:
        """Open the provider channel and send the setup message.

        Raises:
            InvalidTransitionError: If the session is not idle
            ConfigurationError: If the provider credential is missing
        """
        if self._status is not SessionStatus.IDLE:
            raise InvalidTransitionError(self._status.value, "connect")
        self._transition(SessionStatus.CONNECTING)
        self._state = SessionState(metrics=start_session(self._clock))

        try:
            channel = await self._connector.connect()
        except ConfigurationError:
            await self._fail_quietly()
            raise
        except TransportError as e:
            await self._fail(e)
            return

        if self._status is not SessionStatus.CONNECTING:
            # Stopped while the handshake was pending
            await channel.close()
            return
        self._channel = channel

    async def run(self) -> Optional[TranscriptionResult]:
        """Connect and process inbound messages until the session ends.

        Returns:
            The completed result, or None if the session failed

        Raises:
            ConfigurationError: If the provider credential is missing
        """
        await self.connect()
        if self._channel is None:
            return self._result

        try:
            async for message in self._channel.messages():
                await self.handle_message(message)
                if self._status in (SessionStatus.CLOSED, SessionStatus.ERRORED):
                    break
            else:
                if self._status in (SessionStatus.CONNECTING, SessionStatus.STREAMING):
                    raise TransportError(
                        "Channel closed before the reservation was complete",
                        provider=self._connector.provider.value,
                    )
        except TransportError as e:
            await self._fail(e)
        return self._result

    async def handle_message(self, message: Dict[str, Any]) -> None:
        """Process one inbound provider message.

        Messages are handled strictly in arrival order. Anything arriving
        after completion or outside Connecting/Streaming is dropped.
        """
        if self._state.is_complete or self._status not in (
            SessionStatus.CONNECTING, SessionStatus.STREAMING
        ):
            logger.debug("live_message_dropped", status=self._status.value)
            return

        new_model_text: List[str] = []
        for event in self._connector.parse(message):
            if isinstance(event, SetupComplete):
                self._on_setup_complete()
            elif self._status is not SessionStatus.STREAMING:
                continue
            elif isinstance(event, UsageReport):
                self._state.metrics.record_tokens(event.input_tokens, event.output_tokens)
            elif isinstance(event, TranscriptText):
                self._state.append_transcript(event.text, separator=" ")
                self._state.spoken = " ".join(filter(None, (self._state.spoken, event.text)))
            elif isinstance(event, ModelText):
                self._state.append_transcript(event.text)
                new_model_text.append(event.text)
            elif isinstance(event, ServerError):
                logger.warning(
                    "live_provider_error",
                    provider=self._connector.provider.value,
                    error=event.message,
                )

        if new_model_text:
            self._state.model_text += "".join(new_model_text)
            self._state.reservation = extract_fields(
                self._state.reservation, self._state.model_text, self._today
            )
            if is_complete(self._state.reservation) and not self._state.is_complete:
                self._state.is_complete = True
                logger.info(
                    "reservation_complete",
                    provider=self._connector.provider.value,
                )
                await self._complete()
            if self._final_reply is not None:
                self._final_reply.set()

    async def stop(self) -> None:
        """User stop: tear the session down from any state.

        A streaming session completes with whatever data it has gathered.
        Connectors with an on_stop hook get one more reply, bounded by
        stop_grace, before the session completes.
        """
        if self._status is SessionStatus.STREAMING and not self._state.is_complete:
            await self._await_final_reply()
            if self._status is SessionStatus.STREAMING and not self._state.is_complete:
                self._state.is_complete = True
                await self._complete()
        elif self._status in (SessionStatus.IDLE, SessionStatus.CONNECTING):
            self._transition(SessionStatus.CLOSED)
            await self._release()

    async def _await_final_reply(self) -> None:
        request = getattr(self._connector, "on_stop", None)
        if request is None or self._channel is None or self._final_reply is not None:
            return
        self._final_reply = asyncio.Event()
        try:
            await request(self._channel, self._state.spoken)
        except TransportError as e:
            await self._fail(e)
            return
        with suppress(asyncio.TimeoutError):
            await asyncio.wait_for(self._final_reply.wait(), self._stop_grace)

    def _on_setup_complete(self) -> None:
        if self._status is not SessionStatus.CONNECTING:
            return
        self._transition(SessionStatus.STREAMING)
        self._audio_task = asyncio.ensure_future(self._pump_audio())

    async def _pump_audio(self) -> None:
        """Forward captured frames until completion or failure."""
        try:
            async for frame in self._audio.frames():
                if (
                    self._state.is_complete
                    or self._final_reply is not None
                    or self._status is not SessionStatus.STREAMING
                ):
                    break
                await self._channel.send_audio(frame)
        except TransportError as e:
            await self._fail(e)
        except OSError as e:
            await self._fail(TransportError(
                f"Audio capture failed: {e}",
                provider=self._connector.provider.value,
            ))

    async def _complete(self) -> None:
        """Finalize metrics, surface the result, then release resources."""
        self._transition(SessionStatus.COMPLETING)
        metrics = self._state.metrics.finalize(
            self._pricing, self._connector.provider, self._connector.model
        )

        reservation = self._state.reservation
        if self._normalize_names and reservation.client_name:
            reservation = replace(
                reservation, client_name=normalize_full_name(reservation.client_name)
            )

        self._result = TranscriptionResult(
            text=self._state.transcript,
            provider=self._connector.provider,
            model=self._connector.model,
            metrics=metrics,
            reservation=None if reservation.is_empty() else reservation,
        )
        if self._on_complete:
            self._on_complete(self._result)

        await self._release()
        self._transition(SessionStatus.CLOSED)

    async def _fail(self, error: Exception) -> None:
        """Move to Errored, release resources and notify the caller."""
        if self._status not in (SessionStatus.CONNECTING, SessionStatus.STREAMING):
            return
        logger.error(
            "live_session_failed",
            provider=self._connector.provider.value,
            status=self._status.value,
            error=str(error),
        )
        self._transition(SessionStatus.ERRORED)
        await self._release()
        if self._on_error:
            self._on_error(error)

    async def _fail_quietly(self) -> None:
        self._transition(SessionStatus.ERRORED)
        await self._release()

    async def _release(self) -> None:
        """Release the audio device and close the channel."""
        task, self._audio_task = self._audio_task, None
        if task is not None and task is not asyncio.current_task():
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task

        await self._audio.close()

        channel, self._channel = self._channel, None
        if channel is not None:
            await channel.close()
