"""
Audit logging for every record store mutation.

Captures table, record ID, action, old/new values, user and timestamp.
Entries are written on the caller's connection and committed with the
mutation they describe.
"""

import json
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional
import sqlite3


@dataclass
class AuditLogEntry:
    """One row of audit_log."""

    id: int
    table_name: str
    record_id: str
    action: str
    old_values: Optional[Dict[str, Any]]
    new_values: Optional[Dict[str, Any]]
    user_id: Optional[str]
    description: Optional[str]
    timestamp: datetime

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "AuditLogEntry":
        """Build from an audit_log row."""
        return cls(
            id=row["id"],
            table_name=row["table_name"],
            record_id=row["record_id"],
            action=row["action"],
            old_values=json.loads(row["old_values"]) if row["old_values"] else None,
            new_values=json.loads(row["new_values"]) if row["new_values"] else None,
            user_id=row["user_id"],
            description=row["description"],
            timestamp=datetime.fromisoformat(row["timestamp"]) if isinstance(row["timestamp"], str) else row["timestamp"],
        )


class AuditLogger:
    """
    Writes audit_log rows on the store's connection.

    The record store calls log_change inside its own transaction, so an
    entry and the change it describes commit or roll back together.
    """

    VALID_ACTIONS = ("INSERT", "UPDATE", "DELETE")

    def __init__(self, db_connection: sqlite3.Connection, user_id: str = None):
        self.conn = db_connection
        self.user_id = user_id

    def log_change(
        self,
        table_name: str,
        record_id: str,
        action: str,
        old_values: Dict[str, Any] = None,
        new_values: Dict[str, Any] = None,
        description: str = None,
    ) -> int:
        """
        Log a data change. Does not commit.

        Args:
            table_name: Store table the row lives in
            record_id: Row id
            action: INSERT, UPDATE or DELETE
            old_values: Row before the change
            new_values: Row after the change (only changed fields on UPDATE)
            description: The user action the change belongs to

        Returns:
            Audit log entry ID

        Raises:
            ValueError: If action is not valid
        """
        if action not in self.VALID_ACTIONS:
            raise ValueError(f"Invalid action: {action}. Must be one of {self.VALID_ACTIONS}")

        cursor = self.conn.execute(
            """
            INSERT INTO audit_log
            (table_name, record_id, action, old_values, new_values, user_id, description)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                table_name,
                record_id,
                action,
                json.dumps(old_values) if old_values else None,
                json.dumps(new_values) if new_values else None,
                self.user_id,
                description,
            ),
        )
        return cursor.lastrowid

    def get_record_history(self, table_name: str, record_id: str) -> List[AuditLogEntry]:
        """History of one row, oldest first."""
        cursor = self.conn.execute(
            """
            SELECT * FROM audit_log
            WHERE table_name = ? AND record_id = ?
            ORDER BY id ASC
            """,
            (table_name, record_id),
        )
        return [AuditLogEntry.from_row(row) for row in cursor.fetchall()]

    def get_table_history(self, table_name: str, limit: int = 100) -> List[AuditLogEntry]:
        """Most recent audit log entries for a table, newest first."""
        cursor = self.conn.execute(
            "SELECT * FROM audit_log WHERE table_name = ? ORDER BY id DESC LIMIT ?",
            (table_name, limit),
        )
        return [AuditLogEntry.from_row(row) for row in cursor.fetchall()]
