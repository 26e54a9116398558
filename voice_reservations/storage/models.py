"""
Data models for storage layer.

Defines the persisted reservation record and its JSON layout.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional

from voice_reservations.core.models import PartialReservation, Provider, UsageMetrics

UNKNOWN_CLIENT = "Neznámý klient"


@dataclass(frozen=True)
class Reservation:
    """Saved reservation.

    Immutable once created; changes are made by replacing the whole record.
    """
    id: str
    client_name: str
    date: str
    provider: Provider
    created_at: str  # ISO-8601
    time: Optional[str] = None
    notes: Optional[str] = None
    metrics: Optional[UsageMetrics] = None

    @classmethod
    def create(
        cls,
        partial: Optional[PartialReservation],
        provider: Provider,
        metrics: Optional[UsageMetrics] = None,
        now: Optional[datetime] = None,
    ) -> "Reservation":
        """Create a record from extracted data on explicit save.

        Missing names and dates fall back to a placeholder name and today.
        """
        partial = partial or PartialReservation()
        now = now or datetime.now(timezone.utc)
        return cls(
            id=str(uuid.uuid4()),
            client_name=partial.client_name or UNKNOWN_CLIENT,
            date=partial.date or now.date().isoformat(),
            time=partial.time,
            notes=partial.notes,
            provider=provider,
            created_at=now.isoformat(),
            metrics=metrics,
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "clientName": self.client_name,
            "date": self.date,
            "provider": self.provider.value,
            "createdAt": self.created_at,
        }
        if self.time is not None:
            data["time"] = self.time
        if self.notes is not None:
            data["notes"] = self.notes
        if self.metrics is not None:
            data["metrics"] = self.metrics.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Reservation":
        """Rebuild a record from its stored JSON object.

        Raises:
            KeyError: If a mandatory key is missing
            ValueError: If the provider is unknown
        """
        metrics = data.get("metrics")
        return cls(
            id=data["id"],
            client_name=data["clientName"],
            date=data["date"],
            time=data.get("time"),
            notes=data.get("notes"),
            provider=Provider(data["provider"]),
            created_at=data["createdAt"],
            metrics=UsageMetrics.from_dict(metrics) if metrics else None,
        )
