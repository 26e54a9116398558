"""
Domain models for reservation extraction.

Defines providers, the incrementally-built partial reservation, usage
metrics and the unified result returned by every pipeline.
"""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Dict, Mapping, Optional


class Provider(Enum):
    """Supported voice pipelines."""
    OPENAI = "openai"
    GEMINI = "gemini"
    OPENAI_REALTIME = "openai-realtime"
    GEMINI_LIVE = "gemini-live"

    @property
    def is_live(self) -> bool:
        """True for providers that stream over a persistent connection."""
        return self in (Provider.OPENAI_REALTIME, Provider.GEMINI_LIVE)


RESERVATION_FIELDS = ("client_name", "date", "time", "notes")

# JSON key used by vendors and the persisted store for each field
_JSON_KEYS = {
    "client_name": "clientName",
    "date": "date",
    "time": "time",
    "notes": "notes",
}


@dataclass(frozen=True)
class PartialReservation:
    """In-progress reservation data; any field may still be missing."""
    client_name: Optional[str] = None
    date: Optional[str] = None  # YYYY-MM-DD
    time: Optional[str] = None  # HH:MM
    notes: Optional[str] = None

    def merge(self, **updates: Optional[str]) -> "PartialReservation":
        """Return a copy with non-empty updates applied.

        Empty or missing values never clear a field that is already set.
        """
        changes = {key: value for key, value in updates.items() if value}
        if not changes:
            return self
        return replace(self, **changes)

    def is_empty(self) -> bool:
        return not any(getattr(self, name) for name in RESERVATION_FIELDS)

    def to_dict(self) -> Dict[str, str]:
        """Serialize set fields using the camelCase JSON keys."""
        return {
            _JSON_KEYS[name]: getattr(self, name)
            for name in RESERVATION_FIELDS
            if getattr(self, name)
        }

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "PartialReservation":
        """Build from a vendor JSON object, keeping only non-empty strings."""
        values = {}
        for name in RESERVATION_FIELDS:
            value = data.get(_JSON_KEYS[name])
            if isinstance(value, str) and value.strip():
                values[name] = value.strip()
        return cls(**values)


def apply_edits(
    reservation: PartialReservation,
    provider: Provider,
    **changes: Optional[str]
) -> PartialReservation:
    """Apply user edits to an unsaved reservation.

    Editing is only offered for batch providers; live results are saved
    exactly as extracted.

    Raises:
        ValueError: If provider is a live provider or a field is unknown
    """
    if provider.is_live:
        raise ValueError(f"Reservations from {provider.value} cannot be edited before save")
    unknown = set(changes) - set(RESERVATION_FIELDS)
    if unknown:
        raise ValueError(f"Unknown reservation fields: {sorted(unknown)}")
    return reservation.merge(**changes)


@dataclass(frozen=True)
class UsageMetrics:
    """Finalized usage and cost of one pipeline run."""
    duration_ms: int
    tokens_input: Optional[int] = None
    tokens_output: Optional[int] = None
    tokens_total: Optional[int] = None
    estimated_cost_usd: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"durationMs": self.duration_ms}
        if self.tokens_input is not None:
            data["tokensInput"] = self.tokens_input
        if self.tokens_output is not None:
            data["tokensOutput"] = self.tokens_output
        if self.tokens_total is not None:
            data["tokensTotal"] = self.tokens_total
        if self.estimated_cost_usd is not None:
            data["estimatedCostUsd"] = self.estimated_cost_usd
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "UsageMetrics":
        return cls(
            duration_ms=int(data["durationMs"]),
            tokens_input=data.get("tokensInput"),
            tokens_output=data.get("tokensOutput"),
            tokens_total=data.get("tokensTotal"),
            estimated_cost_usd=data.get("estimatedCostUsd"),
        )


@dataclass(frozen=True)
class TranscriptionResult:
    """Unified output of the batch and live pipelines."""
    text: str
    provider: Provider
    model: str
    metrics: UsageMetrics
    reservation: Optional[PartialReservation] = None
