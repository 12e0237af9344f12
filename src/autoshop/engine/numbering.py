"""Sequential human-readable job and invoice numbers."""

import logging
import re
import sqlite3
from datetime import datetime
from typing import Callable, Optional, TypeVar

from autoshop.database.models import ShopSettings

logger = logging.getLogger(__name__)

T = TypeVar("T")

# entity kind -> (table, number column, settings attribute)
_KINDS = {
    "job": ("jobs", "job_number", "job_prefix"),
    "invoice": ("invoices", "invoice_number", "invoice_prefix"),
}

_COUNTER_RE = re.compile(r"-(\d+)$")

MAX_ALLOCATION_ATTEMPTS = 5


class NumberingService:
    """Mints ``{PREFIX}-{YYYY}-{NNNN}`` identifiers.

    The counter continues from the highest number already issued for
    the prefix and year, so it restarts at 0001 each January. Callers
    must allocate inside a write-locked transaction (see
    ``DatabaseConnection.get_connection(immediate=True)``) and insert
    the row before committing; the UNIQUE constraints on the number
    columns back this up, and :meth:`allocate_with_retry` retries when
    one fires anyway.
    """

    def __init__(self, settings: ShopSettings,
                 clock: Callable[[], datetime] = datetime.now):
        self.settings = settings
        self.clock = clock

    def prefix_for(self, kind: str) -> str:
        if kind not in _KINDS:
            raise ValueError(f"Unknown numbering kind: {kind}")
        return getattr(self.settings, _KINDS[kind][2])

    def next(self, kind: str, conn) -> str:
        """Return the next unused number for ``kind`` ('job' or 'invoice')."""
        prefix = self.prefix_for(kind)
        table, column, _ = _KINDS[kind]
        year = self.clock().year
        stem = f"{prefix}-{year}-"

        # Zero-padded counters sort correctly as text up to 9999;
        # ordering by length first keeps 10000+ after 9999.
        row = conn.execute(
            f"SELECT {column} AS number FROM {table} "
            f"WHERE {column} LIKE ? "
            f"ORDER BY LENGTH({column}) DESC, {column} DESC LIMIT 1",
            (f"{stem}%",),
        ).fetchone()

        counter = 1
        if row:
            match = _COUNTER_RE.search(row["number"])
            if match:
                counter = int(match.group(1)) + 1
        return f"{stem}{counter:04d}"

    def allocate_with_retry(self, db, work: Callable[..., T],
                            attempts: Optional[int] = None) -> T:
        """Run ``work(conn)`` in a write-locked transaction, retrying
        when a number collides with one issued concurrently.

        ``work`` is expected to call :meth:`next` and insert the row.
        Integrity errors that are not about the number columns are
        re-raised untouched.
        """
        attempts = attempts or MAX_ALLOCATION_ATTEMPTS
        for attempt in range(1, attempts + 1):
            try:
                with db.get_connection(immediate=True) as conn:
                    return work(conn)
            except sqlite3.IntegrityError as e:
                message = str(e)
                if not any(col in message
                           for _, col, _ in _KINDS.values()):
                    raise
                if attempt == attempts:
                    raise
                logger.warning(
                    "Number collision (%s), retrying %d/%d",
                    message, attempt, attempts,
                )
        raise RuntimeError("unreachable")
