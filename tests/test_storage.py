"""
Unit tests for storage layer.

Tests schema creation, reservation records and the local list store.
"""

import json
import os
import tempfile
from datetime import datetime, timezone

import pytest

from voice_reservations.core.models import PartialReservation, Provider, UsageMetrics
from voice_reservations.storage.db import get_connection
from voice_reservations.storage.models import UNKNOWN_CLIENT, Reservation
from voice_reservations.storage.repository import (
    RESERVATIONS_KEY,
    ReservationRepository,
    initialize_schema,
    read_item,
    write_item,
)

NOW = datetime(2026, 3, 1, 9, 30, tzinfo=timezone.utc)


def make_reservation(name="Jan Novák", **kwargs):
    partial = PartialReservation(client_name=name, date="2026-03-05", time="10:00")
    return Reservation.create(partial, Provider.OPENAI, now=NOW, **kwargs)


class TestStorageSchema:
    """Test database schema creation and structure."""

    def test_schema_creation(self):
        """Verify table is created correctly."""
        with tempfile.TemporaryDirectory() as temp_dir:
            db_path = os.path.join(temp_dir, "test.db")
            initialize_schema(db_path)

            conn = get_connection(db_path)
            try:
                cursor = conn.execute("""
                    SELECT name FROM sqlite_master
                    WHERE type='table' AND name='local_storage'
                """)
                assert len(cursor.fetchall()) == 1
            finally:
                conn.close()

    def test_schema_creation_is_idempotent(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            db_path = os.path.join(temp_dir, "test.db")
            initialize_schema(db_path)
            initialize_schema(db_path)

    def test_parent_directories_are_created(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            db_path = os.path.join(temp_dir, "nested", "dir", "test.db")
            initialize_schema(db_path)
            assert os.path.exists(db_path)


class TestKeyValueItems:
    """Test raw item access."""

    def test_missing_item_is_none(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            db_path = os.path.join(temp_dir, "test.db")
            initialize_schema(db_path)
            assert read_item("absent", db_path) is None

    def test_write_replaces_value(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            db_path = os.path.join(temp_dir, "test.db")
            initialize_schema(db_path)
            write_item("k", "one", db_path)
            write_item("k", "two", db_path)
            assert read_item("k", db_path) == "two"


class TestReservationModel:
    """Test the persisted record."""

    def test_create_assigns_id_and_timestamp(self):
        reservation = make_reservation()
        assert reservation.id
        assert reservation.created_at == "2026-03-01T09:30:00+00:00"
        assert reservation.provider is Provider.OPENAI

    def test_create_ids_are_unique(self):
        assert make_reservation().id != make_reservation().id

    def test_create_defaults_missing_name_and_date(self):
        reservation = Reservation.create(PartialReservation(time="10:00"), Provider.GEMINI, now=NOW)
        assert reservation.client_name == UNKNOWN_CLIENT
        assert reservation.date == "2026-03-01"
        assert reservation.time == "10:00"

    def test_create_from_null_reservation(self):
        reservation = Reservation.create(None, Provider.GEMINI_LIVE, now=NOW)
        assert reservation.client_name == "Neznámý klient"

    def test_dict_round_trip(self):
        metrics = UsageMetrics(
            duration_ms=1500, tokens_input=10, tokens_output=5,
            tokens_total=15, estimated_cost_usd=0.000012,
        )
        reservation = make_reservation(metrics=metrics)
        assert Reservation.from_dict(reservation.to_dict()) == reservation

    def test_to_dict_layout(self):
        data = make_reservation().to_dict()
        assert data["clientName"] == "Jan Novák"
        assert data["provider"] == "openai"
        assert data["createdAt"] == "2026-03-01T09:30:00+00:00"
        assert "notes" not in data
        assert "metrics" not in data

    def test_from_dict_unknown_provider(self):
        data = make_reservation().to_dict()
        data["provider"] = "whisper"
        with pytest.raises(ValueError):
            Reservation.from_dict(data)


class TestReservationRepository:
    """Test the reservation list store."""

    def setup_method(self):
        """Set up test environment."""
        self.temp_dir = tempfile.mkdtemp()
        self.db_path = os.path.join(self.temp_dir, "test.db")
        self.repository = ReservationRepository(self.db_path)

    def teardown_method(self):
        """Clean up test environment."""
        import shutil
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_empty_store(self):
        assert self.repository.load() == []

    def test_add_prepends(self):
        first = make_reservation("Jan Novák")
        second = make_reservation("Eva Veselá")
        self.repository.add(first)
        self.repository.add(second)

        loaded = self.repository.load()
        assert [r.client_name for r in loaded] == ["Eva Veselá", "Jan Novák"]

    def test_duplicate_id_rejected(self):
        reservation = make_reservation()
        self.repository.add(reservation)
        with pytest.raises(ValueError, match="already exists"):
            self.repository.add(reservation)

    def test_persists_across_instances(self):
        reservation = make_reservation()
        self.repository.add(reservation)
        assert ReservationRepository(self.db_path).load() == [reservation]

    def test_stored_as_single_json_list(self):
        self.repository.add(make_reservation("Jan Novák"))
        raw = read_item(RESERVATIONS_KEY, self.db_path)
        data = json.loads(raw)
        assert isinstance(data, list)
        assert data[0]["clientName"] == "Jan Novák"
        assert "Novák" in raw

    def test_get(self):
        reservation = make_reservation()
        self.repository.add(reservation)
        assert self.repository.get(reservation.id) == reservation
        assert self.repository.get("missing") is None

    def test_replace(self):
        from dataclasses import replace
        reservation = make_reservation()
        self.repository.add(reservation)
        self.repository.replace(replace(reservation, notes="okno"))
        assert self.repository.get(reservation.id).notes == "okno"

    def test_replace_missing_raises(self):
        with pytest.raises(KeyError):
            self.repository.replace(make_reservation())

    def test_delete(self):
        keep = make_reservation("Jan Novák")
        drop = make_reservation("Eva Veselá")
        self.repository.add(keep)
        self.repository.add(drop)

        assert self.repository.delete(drop.id) is True
        assert self.repository.load() == [keep]

    def test_delete_missing_returns_false(self):
        assert self.repository.delete("missing") is False

    def test_separate_keys_are_independent(self):
        other = ReservationRepository(self.db_path, key="archive")
        self.repository.add(make_reservation())
        assert other.load() == []
