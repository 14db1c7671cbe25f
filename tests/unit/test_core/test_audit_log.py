"""
Unit tests for audit module.

Tests that record changes are captured with their values and user.
"""

import pytest
from dataclasses import replace
from datetime import date, datetime
from decimal import Decimal

from bullion.core.audit import AuditLogger


@pytest.fixture
def audit_logger(db_connection):
    return AuditLogger(db_connection, user_id="owner")


class TestAuditLogCreation:
    """Tests for audit log creation."""

    def test_log_insert(self, audit_logger, db_connection):
        log_id = audit_logger.log_change(
            table_name="trades",
            record_id="t1",
            action="INSERT",
            new_values={"type": "buy", "total_amount": "5000"},
        )

        assert log_id > 0
        row = db_connection.execute("SELECT * FROM audit_log WHERE id = ?", (log_id,)).fetchone()
        assert row["action"] == "INSERT"
        assert row["user_id"] == "owner"
        assert row["old_values"] is None

    def test_invalid_action(self, audit_logger):
        with pytest.raises(ValueError):
            audit_logger.log_change("trades", "t1", "UPSERT")

    def test_record_history_in_order(self, audit_logger):
        audit_logger.log_change("trades", "t1", "INSERT", new_values={"total_amount": "100"})
        audit_logger.log_change(
            "trades", "t1", "UPDATE",
            old_values={"total_amount": "100"}, new_values={"total_amount": "150"},
            description="Edit trade t1",
        )
        audit_logger.log_change("trades", "t2", "INSERT", new_values={"total_amount": "1"})

        history = audit_logger.get_record_history("trades", "t1")

        assert [e.action for e in history] == ["INSERT", "UPDATE"]
        assert history[1].old_values == {"total_amount": "100"}
        assert history[1].new_values == {"total_amount": "150"}
        assert history[1].description == "Edit trade t1"
        assert isinstance(history[0].timestamp, datetime)

    def test_table_history_newest_first(self, audit_logger):
        for record_id in ("a", "b", "c"):
            audit_logger.log_change("merchants", record_id, "INSERT", new_values={"id": record_id})

        history = audit_logger.get_table_history("merchants", limit=2)

        assert [e.record_id for e in history] == ["c", "b"]


class TestStoreAuditTrail:
    """Store mutations leave a trail."""

    def test_update_logs_changed_fields_only(self, store, make_record):
        record = make_record("e1", "100", date(2024, 4, 1), description="Rent")
        store.append_record(record)

        store.update_record(replace(record, amount=Decimal("120")))

        history = store.audit.get_record_history("financial_records", "e1")

        assert [e.action for e in history] == ["INSERT", "UPDATE"]
        assert history[1].old_values == {"amount": "100"}
        assert history[1].new_values == {"amount": "120"}
        assert history[1].user_id == "tester"

    def test_delete_logs_old_values(self, store, make_record):
        store.append_record(make_record("e1", "100", date(2024, 4, 1)))

        store.delete_record("expense", "e1")

        history = store.audit.get_record_history("financial_records", "e1")
        assert history[-1].action == "DELETE"
        assert history[-1].old_values["amount"] == "100"
