"""
Repository pattern for data access.

Reservations persist client-locally as one JSON list under a single named
key, newest first. There is no schema versioning of the list.
"""

import json
from typing import List, Optional

import structlog

from .db import get_connection
from .models import Reservation

logger = structlog.get_logger(__name__)

RESERVATIONS_KEY = "reservations"


def initialize_schema(db_path: str = "voice_reservations.db") -> None:
    """Create the local_storage key/value table if it doesn't exist.

    Args:
        db_path: Path to SQLite database file
    """
    conn = get_connection(db_path)
    try:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS local_storage (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            )
        """)
        conn.commit()
    finally:
        conn.close()


def read_item(key: str, db_path: str = "voice_reservations.db") -> Optional[str]:
    """Read the raw value stored under key, or None if absent."""
    conn = get_connection(db_path)
    try:
        cursor = conn.execute("SELECT value FROM local_storage WHERE key = ?", (key,))
        row = cursor.fetchone()
        return row[0] if row else None
    finally:
        conn.close()


def write_item(key: str, value: str, db_path: str = "voice_reservations.db") -> None:
    """Store value under key, replacing any previous value atomically."""
    conn = get_connection(db_path)
    try:
        conn.execute(
            "INSERT OR REPLACE INTO local_storage (key, value) VALUES (?, ?)",
            (key, value)
        )
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


class ReservationRepository:
    """Repository for saved reservations.

    Every write replaces the whole serialized list, so the stored list is
    always a consistent snapshot.
    """

    def __init__(self, db_path: str = "voice_reservations.db", key: str = RESERVATIONS_KEY):
        """Initialize the repository and make sure the table exists.

        Args:
            db_path: Path to SQLite database file
            key: Storage key holding the reservation list
        """
        self.db_path = db_path
        self.key = key
        initialize_schema(db_path)

    def load(self) -> List[Reservation]:
        """Load all saved reservations, newest first."""
        raw = read_item(self.key, self.db_path)
        if raw is None:
            return []
        return [Reservation.from_dict(item) for item in json.loads(raw)]

    def save_all(self, reservations: List[Reservation]) -> None:
        """Persist the full list, replacing what is stored."""
        payload = json.dumps(
            [reservation.to_dict() for reservation in reservations],
            ensure_ascii=False
        )
        write_item(self.key, payload, self.db_path)

    def add(self, reservation: Reservation) -> None:
        """Save a new reservation at the front of the list.

        Raises:
            ValueError: If a reservation with the same id exists
        """
        reservations = self.load()
        if any(existing.id == reservation.id for existing in reservations):
            raise ValueError(f"Reservation already exists: {reservation.id}")
        self.save_all([reservation] + reservations)
        logger.info("reservation_saved", reservation_id=reservation.id,
                    provider=reservation.provider.value)

    def get(self, reservation_id: str) -> Optional[Reservation]:
        for reservation in self.load():
            if reservation.id == reservation_id:
                return reservation
        return None

    def replace(self, reservation: Reservation) -> None:
        """Replace a saved reservation as a whole.

        Raises:
            KeyError: If no reservation has the given id
        """
        reservations = self.load()
        for index, existing in enumerate(reservations):
            if existing.id == reservation.id:
                reservations[index] = reservation
                self.save_all(reservations)
                return
        raise KeyError(reservation.id)

    def delete(self, reservation_id: str) -> bool:
        """Delete a reservation.

        Returns:
            True if a reservation was removed
        """
        reservations = self.load()
        remaining = [r for r in reservations if r.id != reservation_id]
        if len(remaining) == len(reservations):
            return False
        self.save_all(remaining)
        logger.info("reservation_deleted", reservation_id=reservation_id)
        return True
