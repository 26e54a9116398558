"""
Error taxonomy shared by the pipelines.

Configuration errors are fatal to the attempt and surface before any
connection is opened. Transport errors cover every vendor I/O failure.
Parse failures are handled locally and never raised.
"""

from typing import Optional


class ReservationError(Exception):
    """Base class for all voice reservation errors."""


class ConfigurationError(ReservationError):
    """Raised when a required credential or setting is missing."""


class TransportError(ReservationError):
    """Raised when a vendor endpoint or streaming channel fails."""

    def __init__(self, message: str, provider: Optional[str] = None):
        super().__init__(message)
        self.provider = provider


class InvalidTransitionError(ReservationError):
    """Raised when a live session is driven out of its state order."""

    def __init__(self, current: str, requested: str):
        super().__init__(f"Cannot {requested} while session is {current}")
        self.current = current
        self.requested = requested
