"""Invoice creation and payment reconciliation."""

import logging
from typing import Optional

from autoshop.database.connection import DatabaseConnection
from autoshop.database.models import Invoice, Payment, ShopSettings
from autoshop.engine.audit import AuditRecorder
from autoshop.engine.commands import InvoiceCommand, PaymentCommand
from autoshop.engine.costing import JobCostingEngine
from autoshop.engine.errors import ConflictError, NotFoundError, ValidationError
from autoshop.engine.money import (
    balance_for,
    invoice_status_for,
    round_money,
    tax_for,
)
from autoshop.engine.numbering import NumberingService

logger = logging.getLogger(__name__)


class InvoiceReconciler:
    """Creates invoices and derives their balance and status from payments.

    ``balance == max(0, total - amount_paid)`` and the status follows the
    balance: paid once nothing is owed, partial while something has been
    paid, unpaid otherwise. ``amount_paid`` only grows, by appending
    payments; overpayment is accepted and the excess is not tracked.
    """

    def __init__(
        self, db: DatabaseConnection, costing: JobCostingEngine,
        numbering: NumberingService, audit: AuditRecorder,
        settings: ShopSettings,
    ):
        self.db = db
        self.costing = costing
        self.numbering = numbering
        self.audit = audit
        self.settings = settings

    def create_from_job(self, job_id: int,
                        due_date: Optional[str] = None,
                        notes: Optional[str] = None) -> int:
        """Bill a job at its current total and mark the job invoiced.

        Tax is charged at the shop tax rate of the injected settings.
        A job can be billed only once.
        """

        def insert(conn) -> int:
            job = conn.execute(
                "SELECT j.id, j.job_number, j.total_cost, v.customer_id "
                "FROM jobs j JOIN vehicles v ON j.vehicle_id = v.id "
                "WHERE j.id = ?",
                (job_id,),
            ).fetchone()
            if not job:
                raise NotFoundError(f"Job {job_id} not found")
            existing = conn.execute(
                "SELECT invoice_number FROM invoices WHERE job_id = ?",
                (job_id,),
            ).fetchone()
            if existing:
                raise ConflictError(
                    f"Job {job['job_number']} is already billed on "
                    f"invoice {existing['invoice_number']}"
                )

            subtotal = round_money(job["total_cost"])
            tax_rate = self.settings.tax_rate
            tax_amount = tax_for(subtotal, tax_rate)
            total = round_money(subtotal + tax_amount)

            invoice_id = self._insert_invoice(
                conn, job_id, job["customer_id"], subtotal, tax_rate,
                tax_amount, 0.0, total, due_date, notes,
            )
            self.costing._force_invoiced(conn, job_id)
            return invoice_id

        invoice_id = self.numbering.allocate_with_retry(self.db, insert)
        logger.info("Invoiced job #%d as invoice #%d", job_id, invoice_id)
        return invoice_id

    def create_ad_hoc(self, cmd: InvoiceCommand) -> int:
        """Invoice a customer directly, without a job."""
        gross = round_money(cmd.subtotal + tax_for(cmd.subtotal, cmd.tax_rate))
        if cmd.discount > gross:
            raise ValidationError(
                "Validation failed",
                ["Discount cannot exceed the invoice amount"],
            )

        def insert(conn) -> int:
            customer = conn.execute(
                "SELECT id FROM customers WHERE id = ?", (cmd.customer_id,)
            ).fetchone()
            if not customer:
                raise NotFoundError(f"Customer {cmd.customer_id} not found")

            subtotal = round_money(cmd.subtotal)
            tax_amount = tax_for(subtotal, cmd.tax_rate)
            discount = round_money(cmd.discount)
            total = round_money(subtotal + tax_amount - discount)
            return self._insert_invoice(
                conn, None, cmd.customer_id, subtotal, cmd.tax_rate,
                tax_amount, discount, total, cmd.due_date, cmd.notes,
            )

        invoice_id = self.numbering.allocate_with_retry(self.db, insert)
        logger.info("Created invoice #%d for customer #%d",
                    invoice_id, cmd.customer_id)
        return invoice_id

    def apply_payment(self, invoice_id: int, cmd: PaymentCommand) -> Payment:
        """Append a payment and re-derive the invoice's balance and status.

        ``paid_at`` is stamped the first time the invoice becomes paid.
        A repeated ``idempotency_key`` returns the payment recorded the
        first time and leaves the invoice untouched.
        """
        with self.db.get_connection(immediate=True) as conn:
            if cmd.idempotency_key:
                previous = conn.execute(
                    "SELECT * FROM payments WHERE idempotency_key = ?",
                    (cmd.idempotency_key,),
                ).fetchone()
                if previous:
                    if previous["invoice_id"] != invoice_id:
                        raise ConflictError(
                            "Idempotency key was already used for "
                            "another invoice"
                        )
                    logger.info("Duplicate payment request %s ignored",
                                cmd.idempotency_key)
                    return Payment(**dict(previous))

            old = _invoice_row(conn, invoice_id)
            if old is None:
                raise NotFoundError(f"Invoice {invoice_id} not found")

            amount = round_money(cmd.amount)
            cursor = conn.execute(
                "INSERT INTO payments "
                "(invoice_id, amount, payment_method, reference, notes, "
                "idempotency_key) VALUES (?, ?, ?, ?, ?, ?)",
                (invoice_id, amount, cmd.payment_method, cmd.reference,
                 cmd.notes, cmd.idempotency_key),
            )
            payment_id = cursor.lastrowid

            amount_paid = round_money(old["amount_paid"] + amount)
            balance = balance_for(old["total"], amount_paid)
            status = invoice_status_for(balance, amount_paid)
            conn.execute(
                "UPDATE invoices SET amount_paid = ?, balance = ?, "
                "status = ?, paid_at = CASE WHEN ? = 'paid' "
                "AND paid_at IS NULL THEN CURRENT_TIMESTAMP "
                "ELSE paid_at END WHERE id = ?",
                (amount_paid, balance, status, status, invoice_id),
            )

            payment = dict(conn.execute(
                "SELECT * FROM payments WHERE id = ?", (payment_id,)
            ).fetchone())
            self.audit.record("payments", payment_id, "create", None,
                              payment, conn=conn)
            self.audit.record("invoices", invoice_id, "update", old,
                              _invoice_row(conn, invoice_id), conn=conn)

        logger.info("Payment of %.2f on %s: balance %.2f (%s)",
                    amount, old["invoice_number"], balance, status)
        return Payment(**payment)

    def get_invoice(self, invoice_id: int) -> Invoice:
        with self.db.get_connection() as conn:
            row = _invoice_row(conn, invoice_id)
        if row is None:
            raise NotFoundError(f"Invoice {invoice_id} not found")
        return Invoice(**row)

    # ── Internals ───────────────────────────────────────────────

    def _insert_invoice(self, conn, job_id, customer_id, subtotal, tax_rate,
                        tax_amount, discount, total, due_date, notes) -> int:
        invoice_number = self.numbering.next("invoice", conn)
        cursor = conn.execute(
            "INSERT INTO invoices "
            "(invoice_number, job_id, customer_id, subtotal, tax_rate, "
            "tax_amount, discount, total, amount_paid, balance, status, "
            "due_date, notes) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, 0, ?, 'unpaid', ?, ?)",
            (invoice_number, job_id, customer_id, subtotal, tax_rate,
             tax_amount, discount, total, balance_for(total, 0),
             due_date, notes),
        )
        invoice_id = cursor.lastrowid
        self.audit.record("invoices", invoice_id, "create", None,
                          _invoice_row(conn, invoice_id), conn=conn)
        return invoice_id


def _invoice_row(conn, invoice_id: int) -> Optional[dict]:
    row = conn.execute(
        "SELECT * FROM invoices WHERE id = ?", (invoice_id,)
    ).fetchone()
    return dict(row) if row else None
