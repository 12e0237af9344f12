"""Job costing engine: service lines, parts, labor and the status machine."""

import logging
from typing import Optional

from autoshop.database.connection import DatabaseConnection
from autoshop.database.models import Job, ShopSettings
from autoshop.engine.audit import AuditRecorder
from autoshop.engine.commands import (
    CreateJobCommand,
    JobItemCommand,
    JobPartCommand,
    UpdateJobCommand,
)
from autoshop.engine.errors import (
    BusinessRuleError,
    InvalidTransitionError,
    NotFoundError,
)
from autoshop.engine.money import discounted_total, line_total, round_money
from autoshop.engine.numbering import NumberingService
from autoshop.engine.stock import StockLedger
from autoshop.utils.constants import REFERENCE_JOB, can_transition_job_status

logger = logging.getLogger(__name__)

# Columns an update may write directly; costs and timestamps are derived
_UPDATABLE_COLUMNS = (
    "status", "priority", "description", "diagnosis", "technician",
    "odometer_in", "estimated_completion", "labor_hours", "labor_rate",
    "warranty_until", "warranty_notes", "notes",
)


class JobCostingEngine:
    """Owns a job's lines and derived costs.

    After every mutation ``labor_cost == labor_hours * labor_rate``,
    ``parts_cost`` is the sum of the job's part lines and
    ``total_cost == labor_cost + parts_cost``. Service items are stored
    with their own totals but are billed separately and do not feed the
    job's cost columns.
    """

    def __init__(
        self, db: DatabaseConnection, stock: StockLedger,
        numbering: NumberingService, audit: AuditRecorder,
        settings: ShopSettings,
    ):
        self.db = db
        self.stock = stock
        self.numbering = numbering
        self.audit = audit
        self.settings = settings

    # ── Jobs ────────────────────────────────────────────────────

    def create_job(self, cmd: CreateJobCommand) -> int:
        """Open a pending job and mint its job number.

        Without an explicit rate the vehicle category's labor rate is
        used, falling back to the shop-wide rate.
        """

        def insert(conn) -> int:
            vehicle = conn.execute(
                "SELECT id, category FROM vehicles WHERE id = ?",
                (cmd.vehicle_id,),
            ).fetchone()
            if not vehicle:
                raise NotFoundError(f"Vehicle {cmd.vehicle_id} not found")

            rate = cmd.labor_rate
            if rate is None:
                rate = self.settings.labor_rate_for(vehicle["category"])
            labor_cost = round_money(cmd.labor_hours * rate)

            job_number = self.numbering.next("job", conn)
            cursor = conn.execute(
                "INSERT INTO jobs "
                "(job_number, vehicle_id, status, priority, description, "
                "diagnosis, technician, odometer_in, estimated_completion, "
                "labor_hours, labor_rate, labor_cost, parts_cost, total_cost, "
                "notes) "
                "VALUES (?, ?, 'pending', ?, ?, ?, ?, ?, ?, ?, ?, ?, 0, ?, ?)",
                (job_number, cmd.vehicle_id, cmd.priority, cmd.description,
                 cmd.diagnosis, cmd.technician, cmd.odometer_in,
                 cmd.estimated_completion, cmd.labor_hours, rate,
                 labor_cost, labor_cost, cmd.notes),
            )
            job_id = cursor.lastrowid
            self.audit.record("jobs", job_id, "create", None,
                              _job_row(conn, job_id), conn=conn)
            logger.info("Created job %s for vehicle #%d",
                        job_number, cmd.vehicle_id)
            return job_id

        return self.numbering.allocate_with_retry(self.db, insert)

    def update_job(self, job_id: int, cmd: UpdateJobCommand) -> Job:
        """Apply a partial update and return the updated job.

        The status change is checked against the transition table before
        anything is written. Labor cost is recomputed from the provided
        or existing hours and rate. ``started_at`` and ``completed_at``
        are stamped the first time the job enters in_progress and
        completed, and never overwritten afterwards.
        """
        changes = cmd.changes()
        with self.db.get_connection() as conn:
            old = self._require_job(conn, job_id)

            new_status = changes.get("status", old["status"])
            if not can_transition_job_status(old["status"], new_status):
                raise InvalidTransitionError(old["status"], new_status)
            if old["status"] == "invoiced" and (
                    "labor_hours" in changes or "labor_rate" in changes):
                raise BusinessRuleError(
                    f"Job {old['job_number']} is invoiced and its labor "
                    "can no longer change"
                )

            hours = changes.get("labor_hours", old["labor_hours"])
            rate = changes.get("labor_rate", old["labor_rate"])
            labor_cost = round_money(hours * rate)
            total_cost = round_money(labor_cost + old["parts_cost"])

            columns = [c for c in _UPDATABLE_COLUMNS if c in changes]
            assignments = [f"{c} = ?" for c in columns]
            params = [changes[c] for c in columns]
            assignments += [
                "labor_cost = ?",
                "total_cost = ?",
                "started_at = CASE WHEN ? = 'in_progress' "
                "AND started_at IS NULL THEN CURRENT_TIMESTAMP "
                "ELSE started_at END",
                "completed_at = CASE WHEN ? = 'completed' "
                "AND completed_at IS NULL THEN CURRENT_TIMESTAMP "
                "ELSE completed_at END",
            ]
            params += [labor_cost, total_cost, new_status, new_status]

            conn.execute(
                f"UPDATE jobs SET {', '.join(assignments)} WHERE id = ?",
                (*params, job_id),
            )
            new = _job_row(conn, job_id)
            self.audit.record("jobs", job_id, "update", old, new, conn=conn)

        if new_status != old["status"]:
            logger.info("Job %s: %s -> %s",
                        old["job_number"], old["status"], new_status)
        return Job(**new)

    def delete_job(self, job_id: int):
        """Delete a job that has not been billed.

        Inventory-backed parts go back to stock as 'in' movements before
        the job and its lines are removed.
        """
        with self.db.get_connection() as conn:
            old = self._require_job(conn, job_id)
            invoiced = conn.execute(
                "SELECT COUNT(*) AS cnt FROM invoices WHERE job_id = ?",
                (job_id,),
            ).fetchone()["cnt"]
            if invoiced or old["status"] == "invoiced":
                raise BusinessRuleError("Cannot delete an invoiced job")

            parts = conn.execute(
                "SELECT * FROM job_parts WHERE job_id = ? "
                "AND inventory_id IS NOT NULL",
                (job_id,),
            ).fetchall()
            for part in parts:
                self.stock.apply_movement(
                    part["inventory_id"], "in", part["quantity"],
                    REFERENCE_JOB, job_id,
                    f"Returned from deleted job {old['job_number']}",
                    conn=conn,
                )
            conn.execute("DELETE FROM jobs WHERE id = ?", (job_id,))
            self.audit.record("jobs", job_id, "delete", old, None, conn=conn)
        logger.info("Deleted job %s", old["job_number"])

    # ── Service items ───────────────────────────────────────────

    def add_service_item(self, job_id: int, cmd: JobItemCommand) -> int:
        total = discounted_total(cmd.quantity, cmd.unit_price,
                                 cmd.discount, cmd.discount_type)
        with self.db.get_connection() as conn:
            job = self._require_job(conn, job_id)
            self._require_editable(job)
            cursor = conn.execute(
                "INSERT INTO job_items "
                "(job_id, description, quantity, unit_price, discount, "
                "discount_type, total) VALUES (?, ?, ?, ?, ?, ?, ?)",
                (job_id, cmd.description, cmd.quantity, cmd.unit_price,
                 cmd.discount, cmd.discount_type, total),
            )
            item_id = cursor.lastrowid
            self.audit.record(
                "job_items", item_id, "create", None,
                _row(conn, "job_items", item_id), conn=conn,
            )
            return item_id

    def remove_service_item(self, job_id: int, item_id: int):
        with self.db.get_connection() as conn:
            job = self._require_job(conn, job_id)
            self._require_editable(job)
            old = conn.execute(
                "SELECT * FROM job_items WHERE id = ? AND job_id = ?",
                (item_id, job_id),
            ).fetchone()
            if not old:
                raise NotFoundError(
                    f"Service item {item_id} not found on job {job_id}"
                )
            conn.execute("DELETE FROM job_items WHERE id = ?", (item_id,))
            self.audit.record("job_items", item_id, "delete", dict(old),
                              None, conn=conn)

    # ── Parts ───────────────────────────────────────────────────

    def add_part(self, job_id: int, cmd: JobPartCommand) -> int:
        """Attach a part line and recompute the job's costs.

        A line drawn from inventory debits ``quantity`` units from the
        item in the same transaction, so stock and job cost move
        together or not at all.
        """
        total = line_total(cmd.quantity, cmd.unit_price)
        with self.db.get_connection() as conn:
            job = self._require_job(conn, job_id)
            self._require_editable(job)
            # Debit first: an unknown item fails before the line exists
            if cmd.inventory_id is not None:
                self.stock.apply_movement(
                    cmd.inventory_id, "out", cmd.quantity,
                    REFERENCE_JOB, job_id,
                    f"Used in job {job['job_number']}",
                    conn=conn,
                )
            cursor = conn.execute(
                "INSERT INTO job_parts "
                "(job_id, inventory_id, part_name, quantity, unit_price, total) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (job_id, cmd.inventory_id, cmd.part_name, cmd.quantity,
                 cmd.unit_price, total),
            )
            part_id = cursor.lastrowid
            self.audit.record(
                "job_parts", part_id, "create", None,
                _row(conn, "job_parts", part_id), conn=conn,
            )
            self._recompute_costs(conn, job)
        logger.info("Job %s: added %d x %s",
                    job["job_number"], cmd.quantity, cmd.part_name)
        return part_id

    def remove_part(self, job_id: int, part_id: int):
        """Detach a part line; inventory-backed lines return to stock."""
        with self.db.get_connection() as conn:
            job = self._require_job(conn, job_id)
            self._require_editable(job)
            old = conn.execute(
                "SELECT * FROM job_parts WHERE id = ? AND job_id = ?",
                (part_id, job_id),
            ).fetchone()
            if not old:
                raise NotFoundError(f"Part {part_id} not found on job {job_id}")
            if old["inventory_id"] is not None:
                self.stock.apply_movement(
                    old["inventory_id"], "in", old["quantity"],
                    REFERENCE_JOB, job_id,
                    f"Returned from job {job['job_number']}",
                    conn=conn,
                )
            conn.execute("DELETE FROM job_parts WHERE id = ?", (part_id,))
            self.audit.record("job_parts", part_id, "delete", dict(old),
                              None, conn=conn)
            self._recompute_costs(conn, job)

    # ── Internals ───────────────────────────────────────────────

    def _force_invoiced(self, conn, job_id: int):
        """Mark a job invoiced without the transition check.

        Reserved for the invoice reconciler, which calls it inside the
        transaction that creates the job's invoice.
        """
        old = self._require_job(conn, job_id)
        if old["status"] == "invoiced":
            return
        conn.execute(
            "UPDATE jobs SET status = 'invoiced' WHERE id = ?", (job_id,)
        )
        self.audit.record("jobs", job_id, "update", old,
                          _job_row(conn, job_id), conn=conn)
        logger.info("Job %s: %s -> invoiced (invoice created)",
                    old["job_number"], old["status"])

    def _recompute_costs(self, conn, job: dict):
        parts_cost = conn.execute(
            "SELECT COALESCE(SUM(total), 0) AS total FROM job_parts "
            "WHERE job_id = ?",
            (job["id"],),
        ).fetchone()["total"]
        parts_cost = round_money(parts_cost)
        labor_cost = round_money(job["labor_hours"] * job["labor_rate"])
        conn.execute(
            "UPDATE jobs SET labor_cost = ?, parts_cost = ?, total_cost = ? "
            "WHERE id = ?",
            (labor_cost, parts_cost, round_money(labor_cost + parts_cost),
             job["id"]),
        )
        self.audit.record("jobs", job["id"], "update", job,
                          _job_row(conn, job["id"]), conn=conn)

    @staticmethod
    def _require_job(conn, job_id: int) -> dict:
        job = _job_row(conn, job_id)
        if job is None:
            raise NotFoundError(f"Job {job_id} not found")
        return job

    @staticmethod
    def _require_editable(job: dict):
        if job["status"] == "invoiced":
            raise BusinessRuleError(
                f"Job {job['job_number']} is invoiced and can no longer change"
            )


def _row(conn, table: str, row_id: int) -> Optional[dict]:
    row = conn.execute(
        f"SELECT * FROM {table} WHERE id = ?", (row_id,)
    ).fetchone()
    return dict(row) if row else None


def _job_row(conn, job_id: int) -> Optional[dict]:
    return _row(conn, "jobs", job_id)
