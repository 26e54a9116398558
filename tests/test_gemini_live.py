"""
Unit tests for the Gemini Live connector.
"""

import asyncio
import base64
import json

import httpx
import pytest
from websockets.exceptions import ConnectionClosedError

from voice_reservations.core.errors import ConfigurationError, TransportError
from voice_reservations.core.session import ModelText, SetupComplete, UsageReport
from voice_reservations.sdk.gemini_live import (
    GeminiLiveChannel,
    GeminiLiveConnector,
    HttpCredentialProvider,
    StaticCredentialProvider,
    api_version_for,
    encode_audio_frame,
)


class FakeWebSocket:
    """Websocket replaying scripted frames."""

    def __init__(self, incoming=()):
        self.incoming = list(incoming)
        self.sent = []
        self.closed = False
        self.send_error = None

    async def send(self, data):
        if self.send_error is not None:
            raise self.send_error
        self.sent.append(data)

    def __aiter__(self):
        return self._frames()

    async def _frames(self):
        for item in self.incoming:
            if isinstance(item, Exception):
                raise item
            yield item

    async def close(self):
        self.closed = True


class TestCredentials:
    """Test credential providers."""

    def test_static_key(self):
        assert asyncio.run(StaticCredentialProvider("g-key").get_key()) == "g-key"

    def test_static_missing_key(self):
        with pytest.raises(ConfigurationError):
            asyncio.run(StaticCredentialProvider(None).get_key())

    def _http_provider(self, handler):
        http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return HttpCredentialProvider("http://localhost/api/gemini-key", http_client=http)

    def test_http_key(self):
        provider = self._http_provider(lambda request: httpx.Response(200, json={"key": "g-key"}))
        assert asyncio.run(provider.get_key()) == "g-key"

    def test_http_error_status_is_configuration_error(self):
        provider = self._http_provider(lambda request: httpx.Response(500, json={"error": "x"}))
        with pytest.raises(ConfigurationError, match="500"):
            asyncio.run(provider.get_key())

    def test_http_empty_key_is_configuration_error(self):
        provider = self._http_provider(lambda request: httpx.Response(200, json={"key": None}))
        with pytest.raises(ConfigurationError):
            asyncio.run(provider.get_key())

    def test_http_unreachable_is_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(TransportError):
            asyncio.run(self._http_provider(handler).get_key())


class TestGeminiLiveConnector:
    """Test connection setup and message parsing."""

    def test_api_version(self):
        assert api_version_for("gemini-2.0-flash-exp") == "v1beta"
        assert api_version_for("gemini-2.5-flash-native-audio-preview-09-2025") == "v1alpha"

    def test_connect_sends_setup(self):
        websocket = FakeWebSocket()
        calls = []

        async def fake_connect(url, **kwargs):
            calls.append((url, kwargs))
            return websocket

        connector = GeminiLiveConnector(
            StaticCredentialProvider("g-key"), connect=fake_connect
        )
        channel = asyncio.run(connector.connect())

        assert isinstance(channel, GeminiLiveChannel)
        url, kwargs = calls[0]
        assert "generativelanguage.v1beta.GenerativeService.BidiGenerateContent" in url
        assert url.endswith("?key=g-key")
        assert kwargs == {"max_size": None}

        setup = json.loads(websocket.sent[0])["setup"]
        assert setup["model"] == "models/gemini-2.0-flash-exp"
        assert setup["generationConfig"]["responseModalities"] == ["AUDIO"]
        voice = setup["generationConfig"]["speechConfig"]["voiceConfig"]
        assert voice["prebuiltVoiceConfig"]["voiceName"] == "Aoede"
        assert "česk" in setup["systemInstruction"]["parts"][0]["text"].lower()

    def test_native_audio_model_uses_v1alpha(self):
        calls = []

        async def fake_connect(url, **kwargs):
            calls.append(url)
            return FakeWebSocket()

        connector = GeminiLiveConnector(
            StaticCredentialProvider("g-key"),
            model="gemini-2.5-flash-native-audio-preview-09-2025",
            connect=fake_connect,
        )
        asyncio.run(connector.connect())

        assert ".v1alpha." in calls[0]

    def test_missing_key_fails_before_connecting(self):
        calls = []

        async def fake_connect(url, **kwargs):
            calls.append(url)
            return FakeWebSocket()

        connector = GeminiLiveConnector(StaticCredentialProvider(None), connect=fake_connect)
        with pytest.raises(ConfigurationError):
            asyncio.run(connector.connect())
        assert calls == []

    def test_connection_refused(self):
        async def fake_connect(url, **kwargs):
            raise OSError("connection refused")

        connector = GeminiLiveConnector(StaticCredentialProvider("g-key"), connect=fake_connect)
        with pytest.raises(TransportError):
            asyncio.run(connector.connect())

    def test_parse_setup_complete(self):
        connector = GeminiLiveConnector(StaticCredentialProvider("g-key"))
        assert connector.parse({"setupComplete": {}}) == [SetupComplete()]

    def test_parse_model_turn_and_usage(self):
        connector = GeminiLiveConnector(StaticCredentialProvider("g-key"))
        events = connector.parse({
            "serverContent": {
                "modelTurn": {"parts": [
                    {"text": "Rezervace pro "},
                    {"inlineData": {"mimeType": "audio/pcm", "data": "AAAA"}},
                    {"text": "Jana Nováka"},
                ]}
            },
            "usageMetadata": {"promptTokenCount": 300, "candidatesTokenCount": 20},
        })
        assert events == [
            ModelText("Rezervace pro "),
            ModelText("Jana Nováka"),
            UsageReport(input_tokens=300, output_tokens=20),
        ]

    def test_parse_unknown_message(self):
        connector = GeminiLiveConnector(StaticCredentialProvider("g-key"))
        assert connector.parse({"toolCall": {}}) == []


class TestGeminiLiveChannel:
    """Test the websocket channel."""

    def test_send_audio_frame(self):
        websocket = FakeWebSocket()
        asyncio.run(GeminiLiveChannel(websocket).send_audio(b"\x10\x20"))

        message = json.loads(websocket.sent[0])
        chunk = message["realtimeInput"]["mediaChunks"][0]
        assert chunk["mimeType"] == "audio/pcm;rate=16000"
        assert base64.b64decode(chunk["data"]) == b"\x10\x20"

    def test_encode_audio_frame(self):
        assert encode_audio_frame(b"") == {
            "realtimeInput": {"mediaChunks": [{"mimeType": "audio/pcm;rate=16000", "data": ""}]}
        }

    def test_messages_decode_binary_and_skip_invalid_json(self):
        websocket = FakeWebSocket([
            b'{"setupComplete": {}}',
            "not json",
            '{"serverContent": {"turnComplete": true}}',
            "[1, 2]",
        ])

        async def collect():
            return [m async for m in GeminiLiveChannel(websocket).messages()]

        assert asyncio.run(collect()) == [
            {"setupComplete": {}},
            {"serverContent": {"turnComplete": True}},
        ]

    def test_abnormal_close_is_transport_error(self):
        websocket = FakeWebSocket(['{"setupComplete": {}}', ConnectionClosedError(None, None)])

        async def collect():
            return [m async for m in GeminiLiveChannel(websocket).messages()]

        with pytest.raises(TransportError):
            asyncio.run(collect())

    def test_send_on_closed_socket_is_transport_error(self):
        websocket = FakeWebSocket()
        websocket.send_error = ConnectionClosedError(None, None)
        with pytest.raises(TransportError):
            asyncio.run(GeminiLiveChannel(websocket).send_audio(b"\x00\x00"))

    def test_close(self):
        websocket = FakeWebSocket()
        asyncio.run(GeminiLiveChannel(websocket).close())
        assert websocket.closed
