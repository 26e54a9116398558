"""
SDK for Voice Reservations.

Vendor clients and connectors used by the batch pipeline and live sessions.
"""

from .gemini_client import GeminiClient
from .gemini_live import GeminiLiveConnector, HttpCredentialProvider, StaticCredentialProvider
from .openai_client import OpenAIBatchClient
from .realtime import RealtimeConnector, RealtimeSessionClient

__all__ = [
    "GeminiClient",
    "GeminiLiveConnector",
    "HttpCredentialProvider",
    "OpenAIBatchClient",
    "RealtimeConnector",
    "RealtimeSessionClient",
    "StaticCredentialProvider",
]
