"""
Application settings.

Reads credentials, paths and logging options from environment variables.
"""

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from voice_reservations.core.errors import ConfigurationError

DEFAULT_DB_PATH = "voice_reservations.db"


@dataclass(frozen=True)
class Settings:
    """Runtime settings; secrets are never logged."""
    openai_api_key: Optional[str] = None
    google_api_key: Optional[str] = None
    db_path: str = DEFAULT_DB_PATH
    pricing_path: Optional[str] = None
    credential_url: Optional[str] = None
    log_level: str = "INFO"
    log_format: str = "console"

    def __post_init__(self):
        """Validate logging options."""
        if self.log_format not in ("console", "json"):
            raise ValueError("log_format must be 'console' or 'json'")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """Build settings from the environment.

        Args:
            environ: Mapping to read from (defaults to os.environ)
        """
        env = os.environ if environ is None else environ
        return cls(
            openai_api_key=_blank_to_none(env.get("OPENAI_API_KEY")),
            google_api_key=_blank_to_none(env.get("GOOGLE_AI_API_KEY")),
            db_path=env.get("VOICE_RESERVATIONS_DB") or DEFAULT_DB_PATH,
            pricing_path=_blank_to_none(env.get("VOICE_RESERVATIONS_PRICING")),
            credential_url=_blank_to_none(env.get("VOICE_RESERVATIONS_CREDENTIAL_URL")),
            log_level=(env.get("LOG_LEVEL") or "INFO").upper(),
            log_format=(env.get("LOG_FORMAT") or "console").lower(),
        )

    def require_openai_key(self) -> str:
        """Return the OpenAI key.

        Raises:
            ConfigurationError: If OPENAI_API_KEY is not configured
        """
        if not self.openai_api_key:
            raise ConfigurationError("OPENAI_API_KEY not configured")
        return self.openai_api_key

    def require_google_key(self) -> str:
        """Return the Google AI key.

        Raises:
            ConfigurationError: If GOOGLE_AI_API_KEY is not configured
        """
        if not self.google_api_key:
            raise ConfigurationError("GOOGLE_AI_API_KEY not configured")
        return self.google_api_key


def _blank_to_none(value: Optional[str]) -> Optional[str]:
    if value is None or not value.strip():
        return None
    return value.strip()
