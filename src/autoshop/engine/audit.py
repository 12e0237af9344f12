"""Append-only audit trail for every mutation."""

import json
import logging
from typing import Any, Optional

from autoshop.database.connection import DatabaseConnection

logger = logging.getLogger(__name__)


def _snapshot(value: Any) -> Optional[str]:
    if value is None:
        return None
    if hasattr(value, "__dataclass_fields__"):
        value = {name: getattr(value, name)
                 for name in value.__dataclass_fields__}
    return json.dumps(value, default=str, sort_keys=True)


class AuditRecorder:
    """Writes audit_log rows without ever failing the caller.

    When given the caller's open connection the entry commits with the
    mutation it describes. The insert runs inside a savepoint so a
    failed write is undone on its own and the surrounding transaction
    carries on.
    """

    def __init__(self, db: DatabaseConnection):
        self.db = db

    def record(
        self, table_name: str, record_id: int, action: str,
        old: Any = None, new: Any = None, conn=None,
    ) -> Optional[int]:
        """Record one audit entry.

        Args:
            table_name: Table the mutated row lives in.
            record_id: Primary key of the mutated row.
            action: 'create', 'update' or 'delete'.
            old: Row state before the change (dict or dataclass).
            new: Row state after the change (dict or dataclass).
            conn: Open connection to join; a fresh one is used if None.

        Returns:
            The id of the audit entry, or None if recording failed.
        """
        try:
            old_data = _snapshot(old)
            new_data = _snapshot(new)
            if conn is None:
                with self.db.get_connection() as own_conn:
                    return self._insert(
                        own_conn, table_name, record_id, action,
                        old_data, new_data,
                    )
            return self._insert(
                conn, table_name, record_id, action, old_data, new_data,
            )
        except Exception:
            logger.warning(
                "Audit log failed for %s #%s (%s)",
                table_name, record_id, action, exc_info=True,
            )
            return None

    @staticmethod
    def _insert(conn, table_name, record_id, action, old_data, new_data):
        conn.execute("SAVEPOINT audit_entry")
        try:
            cursor = conn.execute(
                "INSERT INTO audit_log "
                "(table_name, record_id, action, old_data, new_data) "
                "VALUES (?, ?, ?, ?, ?)",
                (table_name, record_id, action, old_data, new_data),
            )
        except Exception:
            conn.execute("ROLLBACK TO SAVEPOINT audit_entry")
            raise
        finally:
            conn.execute("RELEASE SAVEPOINT audit_entry")
        return cursor.lastrowid
