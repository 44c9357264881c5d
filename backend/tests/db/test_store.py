"""
Event Store Tests
=================

Tests for SQLAlchemyEventStore covering:
- Insert defaults and timezone handling
- Filter suffix operators and ordering
- Conditional update / delete row counts
- Atomic increment
- Upsert insert-or-update
- Error wrapping
"""

from datetime import datetime, timedelta, UTC

import pytest

from watchpost.core.exceptions import StoreError
from watchpost.db.store import SQLAlchemyEventStore


pytestmark = pytest.mark.unit

BASE_TIME = datetime(2026, 10, 1, 12, 0, tzinfo=UTC)


async def _seed_events(store: SQLAlchemyEventStore) -> None:
    for minutes, event_type, user_id in [
        (0, "login_success", "u1"),
        (5, "login_failure", "u1"),
        (10, "login_failure", "u2"),
        (15, "mfa_success", None),
    ]:
        await store.insert("auth_audit_log", {
            "event_type": event_type,
            "user_id": user_id,
            "event_data": {"severity": "low"},
            "created_at": BASE_TIME + timedelta(minutes=minutes),
        })


class TestInsert:
    """Tests for insert."""

    async def test_insert_returns_row_with_generated_id(self, store: SQLAlchemyEventStore):
        """Test that missing ids are generated by the model defaults."""
        # Act
        row = await store.insert("auth_audit_log", {
            "event_type": "login_success",
            "event_data": {"email": "user@example.com"},
            "created_at": BASE_TIME,
        })

        # Assert
        assert row["id"]
        assert row["event_type"] == "login_success"
        assert row["event_data"] == {"email": "user@example.com"}

    async def test_datetimes_come_back_as_aware_utc(self, store: SQLAlchemyEventStore):
        """Test that stored datetimes are returned timezone-aware."""
        # Act
        row = await store.insert("auth_audit_log", {"event_type": "login_success", "created_at": BASE_TIME})
        fetched = await store.get("auth_audit_log", {"id": row["id"]})

        # Assert
        assert fetched["created_at"].tzinfo is not None
        assert fetched["created_at"] == BASE_TIME

    async def test_unknown_table_raises_store_error(self, store: SQLAlchemyEventStore):
        """Test that an unknown table is rejected."""
        with pytest.raises(StoreError):
            await store.insert("no_such_table", {"id": "x"})

    async def test_unknown_column_raises_store_error(self, store: SQLAlchemyEventStore):
        """Test that an unknown column is rejected."""
        with pytest.raises(StoreError):
            await store.insert("auth_audit_log", {"event_type": "x", "nonsense": 1})

    async def test_integrity_error_is_wrapped(self, store: SQLAlchemyEventStore):
        """Test that driver errors surface as StoreError."""
        # Arrange
        await store.insert("profiles", {"id": "p1", "email": "dup@example.com"})

        # Act & Assert
        with pytest.raises(StoreError) as exc_info:
            await store.insert("profiles", {"id": "p2", "email": "dup@example.com"})
        assert exc_info.value.status_code == 503


class TestQuery:
    """Tests for query, count and get."""

    async def test_equality_and_range_filters(self, store: SQLAlchemyEventStore):
        """Test equality combined with a lower time bound."""
        # Arrange
        await _seed_events(store)

        # Act
        rows = await store.query(
            "auth_audit_log",
            {"event_type": "login_failure", "created_at__gte": BASE_TIME + timedelta(minutes=6)},
        )

        # Assert
        assert [row["user_id"] for row in rows] == ["u2"]

    async def test_in_filter(self, store: SQLAlchemyEventStore):
        """Test the __in operator."""
        await _seed_events(store)

        count = await store.count("auth_audit_log", {"event_type__in": ["login_success", "mfa_success"]})

        assert count == 2

    async def test_isnull_and_ne_filters(self, store: SQLAlchemyEventStore):
        """Test the __isnull and __ne operators."""
        await _seed_events(store)

        anonymous = await store.count("auth_audit_log", {"user_id__isnull": True})
        not_u1 = await store.count("auth_audit_log", {"user_id__ne": "u1"})

        assert anonymous == 1
        assert not_u1 == 1

    async def test_descending_order_and_limit(self, store: SQLAlchemyEventStore):
        """Test that a leading '-' sorts descending."""
        await _seed_events(store)

        rows = await store.query("auth_audit_log", order_by="-created_at", limit=2)

        assert [row["event_type"] for row in rows] == ["mfa_success", "login_failure"]
        assert rows[1]["user_id"] == "u2"

    async def test_unsupported_operator_raises(self, store: SQLAlchemyEventStore):
        """Test that an unknown suffix is rejected."""
        with pytest.raises(StoreError):
            await store.query("auth_audit_log", {"created_at__between": BASE_TIME})

    async def test_get_returns_none_when_missing(self, store: SQLAlchemyEventStore):
        """Test get on an empty result."""
        assert await store.get("profiles", {"email": "missing@example.com"}) is None


class TestWrites:
    """Tests for update, delete, increment and upsert."""

    async def test_conditional_update_reports_rowcount(self, store: SQLAlchemyEventStore):
        """Test that a conditional update succeeds only once."""
        # Arrange
        await store.insert("user_security", {"user_id": "u1"})
        row = await store.insert("mfa_backup_codes", {"user_id": "u1", "code_hash": "h", "used": False})

        # Act
        first = await store.update("mfa_backup_codes", {"id": row["id"], "used": False}, {"used": True})
        second = await store.update("mfa_backup_codes", {"id": row["id"], "used": False}, {"used": True})

        # Assert
        assert first == 1
        assert second == 0

    async def test_delete_reports_rowcount(self, store: SQLAlchemyEventStore):
        """Test that delete returns the number of removed rows."""
        await _seed_events(store)

        deleted = await store.delete("auth_audit_log", {"event_type": "login_failure"})

        assert deleted == 2
        assert await store.count("auth_audit_log") == 2

    async def test_increment_returns_new_value(self, store: SQLAlchemyEventStore):
        """Test the atomic counter increment."""
        # Arrange
        await store.insert("user_security", {"user_id": "u1"})

        # Act
        first = await store.increment("user_security", {"user_id": "u1"}, "failed_login_attempts")
        second = await store.increment("user_security", {"user_id": "u1"}, "failed_login_attempts")

        # Assert
        assert (first, second) == (1, 2)

    async def test_increment_missing_row_returns_none(self, store: SQLAlchemyEventStore):
        """Test increment when no row matches."""
        assert await store.increment("user_security", {"user_id": "ghost"}, "failed_login_attempts") is None

    async def test_upsert_inserts_then_updates(self, store: SQLAlchemyEventStore):
        """Test that upsert creates the row once and then updates it."""
        # Act
        created = await store.upsert("user_security", {"user_id": "u1", "mfa_secret": "a"}, keys=["user_id"])
        updated = await store.upsert("user_security", {"user_id": "u1", "mfa_secret": "b"}, keys=["user_id"])

        # Assert
        assert created["mfa_secret"] == "a"
        assert updated["mfa_secret"] == "b"
        assert await store.count("user_security") == 1

    async def test_upsert_with_only_keys_keeps_existing_values(self, store: SQLAlchemyEventStore):
        """Test insert-if-missing semantics."""
        # Arrange
        await store.insert("user_security", {"user_id": "u1", "failed_login_attempts": 3})

        # Act
        row = await store.upsert("user_security", {"user_id": "u1"}, keys=["user_id"])

        # Assert
        assert row["failed_login_attempts"] == 3

    async def test_ping(self, store: SQLAlchemyEventStore):
        """Test that ping succeeds on a live store."""
        await store.ping()
