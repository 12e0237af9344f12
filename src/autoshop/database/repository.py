"""Repository layer: CRUD operations, read queries and reports.

Mutations that carry money or stock (jobs, parts, invoices, payments,
stock movements) live in ``autoshop.engine``; everything else is here.
"""

import logging
import sqlite3
from datetime import datetime, timezone
from typing import Optional

from autoshop.database.connection import DatabaseConnection
from autoshop.database.models import (
    AuditEntry,
    Customer,
    Expense,
    InventoryItem,
    Invoice,
    Job,
    JobItem,
    JobPart,
    Payment,
    ServiceReminder,
    ShopSettings,
    Supplier,
    User,
    Vehicle,
)
from autoshop.database.schema import DEFAULT_SETTINGS
from autoshop.engine.audit import AuditRecorder
from autoshop.engine.errors import (
    BusinessRuleError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from autoshop.io.validators import positive_number
from autoshop.security.auth import Principal, require_role
from autoshop.utils.constants import (
    OPEN_JOB_STATUSES,
    REMINDER_STATUSES,
    REVENUE_PERIODS,
)

logger = logging.getLogger(__name__)

_OPEN_STATUSES_SQL = ", ".join(f"'{s}'" for s in OPEN_JOB_STATUSES)

_NUMERIC_SETTINGS = ("tax_rate", "labor_rate")

# period -> SQL expression grouping payments.created_at
_REVENUE_GROUPING = {
    "daily": "DATE(created_at)",
    "weekly": "strftime('%Y-W%W', created_at)",
    "monthly": "strftime('%Y-%m', created_at)",
}


def _today() -> str:
    # SQLite CURRENT_TIMESTAMP is UTC; date filters use the same clock
    return datetime.now(timezone.utc).date().isoformat()


def _month_start() -> str:
    return datetime.now(timezone.utc).date().replace(day=1).isoformat()


class Repository:
    """Provides the non-engine database operations for the shop."""

    def __init__(self, db: DatabaseConnection,
                 audit: Optional[AuditRecorder] = None):
        self.db = db
        self.audit = audit or AuditRecorder(db)

    @staticmethod
    def _row(conn, table: str, row_id: int) -> Optional[dict]:
        row = conn.execute(
            f"SELECT * FROM {table} WHERE id = ?", (row_id,)
        ).fetchone()
        return dict(row) if row else None

    # ── Settings ────────────────────────────────────────────────

    def get_settings(self) -> dict:
        rows = self.db.execute("SELECT key, value FROM settings ORDER BY key")
        return {r["key"]: r["value"] for r in rows}

    def get_shop_settings(self) -> ShopSettings:
        """Frozen snapshot handed to the engines."""
        return ShopSettings.from_rows(self.get_settings())

    def update_settings(self, actor: Principal, values: dict) -> dict:
        """Write business settings (admin or above). Returns all settings."""
        require_role(actor, "admin")
        known = {key for key, _ in DEFAULT_SETTINGS}
        errors = []
        for key, value in values.items():
            if key not in known and not key.startswith("labor_rate_"):
                errors.append(f"Unknown setting '{key}'")
            elif key in _NUMERIC_SETTINGS or key.startswith("labor_rate_"):
                error = positive_number(value, key)
                if error is None and value in (None, ""):
                    error = f"{key} is required"
                if error:
                    errors.append(error)
        if errors:
            raise ValidationError("Validation failed", errors)

        old = self.get_settings()
        with self.db.get_connection() as conn:
            for key, value in values.items():
                conn.execute(
                    "INSERT INTO settings (key, value, updated_at) "
                    "VALUES (?, ?, CURRENT_TIMESTAMP) "
                    "ON CONFLICT(key) DO UPDATE SET value = excluded.value, "
                    "updated_at = CURRENT_TIMESTAMP",
                    (key, str(value)),
                )
            self.audit.record(
                "settings", 0, "update",
                {k: old.get(k) for k in values},
                {k: str(v) for k, v in values.items()},
                conn=conn,
            )
        logger.info("Settings updated by %s: %s",
                    actor.username or actor.id, ", ".join(sorted(values)))
        return self.get_settings()

    # ── Customers ───────────────────────────────────────────────

    _CUSTOMERS_SELECT = """
        SELECT c.*,
               (SELECT COUNT(*) FROM vehicles v
                WHERE v.customer_id = c.id) AS vehicle_count
        FROM customers c
    """

    def get_all_customers(self) -> list[Customer]:
        rows = self.db.execute(self._CUSTOMERS_SELECT + " ORDER BY c.name")
        return [Customer(**dict(r)) for r in rows]

    def search_customers(self, query: str) -> list[Customer]:
        """Search customers by name, phone or email."""
        if not query.strip():
            return self.get_all_customers()
        pattern = f"%{query.strip()}%"
        rows = self.db.execute(
            self._CUSTOMERS_SELECT + """
            WHERE c.name LIKE ? OR c.phone LIKE ? OR c.email LIKE ?
            ORDER BY c.name
        """, (pattern,) * 3)
        return [Customer(**dict(r)) for r in rows]

    def get_customer_by_id(self, customer_id: int) -> Optional[Customer]:
        rows = self.db.execute(
            self._CUSTOMERS_SELECT + " WHERE c.id = ?", (customer_id,)
        )
        return Customer(**dict(rows[0])) if rows else None

    def create_customer(self, customer: Customer) -> int:
        with self.db.get_connection() as conn:
            cursor = conn.execute(
                "INSERT INTO customers (name, phone, email, address, notes) "
                "VALUES (?, ?, ?, ?, ?)",
                (customer.name, customer.phone, customer.email,
                 customer.address, customer.notes),
            )
            customer_id = cursor.lastrowid
            self.audit.record("customers", customer_id, "create", None,
                              self._row(conn, "customers", customer_id),
                              conn=conn)
            return customer_id

    def update_customer(self, customer: Customer):
        with self.db.get_connection() as conn:
            old = self._row(conn, "customers", customer.id)
            if old is None:
                raise NotFoundError(f"Customer {customer.id} not found")
            conn.execute(
                "UPDATE customers SET name = ?, phone = ?, email = ?, "
                "address = ?, notes = ? WHERE id = ?",
                (customer.name, customer.phone, customer.email,
                 customer.address, customer.notes, customer.id),
            )
            self.audit.record("customers", customer.id, "update", old,
                              self._row(conn, "customers", customer.id),
                              conn=conn)

    def delete_customer(self, customer_id: int):
        """Delete a customer with no open work and no billing history.

        Their vehicles go with them.
        """
        with self.db.get_connection() as conn:
            old = self._row(conn, "customers", customer_id)
            if old is None:
                raise NotFoundError(f"Customer {customer_id} not found")
            counts = conn.execute(f"""
                SELECT
                    (SELECT COUNT(*) FROM jobs j
                     JOIN vehicles v ON j.vehicle_id = v.id
                     WHERE v.customer_id = ?
                       AND j.status IN ({_OPEN_STATUSES_SQL})) AS open_jobs,
                    (SELECT COUNT(*) FROM invoices
                     WHERE customer_id = ? AND status != 'paid')
                        AS unpaid_invoices,
                    (SELECT COUNT(*) FROM jobs j
                     JOIN vehicles v ON j.vehicle_id = v.id
                     WHERE v.customer_id = ?) AS all_jobs,
                    (SELECT COUNT(*) FROM invoices
                     WHERE customer_id = ?) AS all_invoices
            """, (customer_id,) * 4).fetchone()
            if counts["open_jobs"]:
                raise BusinessRuleError(
                    "Cannot delete a customer with open jobs"
                )
            if counts["unpaid_invoices"]:
                raise BusinessRuleError(
                    "Cannot delete a customer with unpaid invoices"
                )
            if counts["all_jobs"] or counts["all_invoices"]:
                raise BusinessRuleError(
                    "Cannot delete a customer with job or invoice history"
                )
            conn.execute("DELETE FROM customers WHERE id = ?", (customer_id,))
            self.audit.record("customers", customer_id, "delete", old, None,
                              conn=conn)
        logger.info("Deleted customer #%d (%s)", customer_id, old["name"])

    # ── Vehicles ────────────────────────────────────────────────

    _VEHICLES_SELECT = """
        SELECT v.*, c.name AS customer_name,
               COALESCE(c.phone, '') AS customer_phone
        FROM vehicles v
        JOIN customers c ON v.customer_id = c.id
    """

    def get_all_vehicles(self, customer_id: Optional[int] = None
                         ) -> list[Vehicle]:
        if customer_id is not None:
            rows = self.db.execute(
                self._VEHICLES_SELECT
                + " WHERE v.customer_id = ? ORDER BY v.plate_number",
                (customer_id,),
            )
        else:
            rows = self.db.execute(
                self._VEHICLES_SELECT + " ORDER BY v.plate_number"
            )
        return [Vehicle(**dict(r)) for r in rows]

    def search_vehicles(self, query: str) -> list[Vehicle]:
        """Search vehicles by plate, make, model, VIN or owner name."""
        if not query.strip():
            return self.get_all_vehicles()
        pattern = f"%{query.strip()}%"
        rows = self.db.execute(
            self._VEHICLES_SELECT + """
            WHERE v.plate_number LIKE ?
               OR v.make LIKE ?
               OR v.model LIKE ?
               OR COALESCE(v.vin, '') LIKE ?
               OR c.name LIKE ?
            ORDER BY v.plate_number
        """, (pattern,) * 5)
        return [Vehicle(**dict(r)) for r in rows]

    def get_vehicle_by_id(self, vehicle_id: int) -> Optional[Vehicle]:
        rows = self.db.execute(
            self._VEHICLES_SELECT + " WHERE v.id = ?", (vehicle_id,)
        )
        return Vehicle(**dict(rows[0])) if rows else None

    def create_vehicle(self, vehicle: Vehicle) -> int:
        try:
            with self.db.get_connection() as conn:
                owner = conn.execute(
                    "SELECT id FROM customers WHERE id = ?",
                    (vehicle.customer_id,),
                ).fetchone()
                if not owner:
                    raise NotFoundError(
                        f"Customer {vehicle.customer_id} not found"
                    )
                cursor = conn.execute(
                    "INSERT INTO vehicles "
                    "(customer_id, plate_number, make, model, year, vin, "
                    "color, engine_type, transmission, odometer, category, "
                    "notes) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    (vehicle.customer_id, vehicle.plate_number.upper(),
                     vehicle.make, vehicle.model, vehicle.year, vehicle.vin,
                     vehicle.color, vehicle.engine_type, vehicle.transmission,
                     vehicle.odometer, vehicle.category or "Asian",
                     vehicle.notes),
                )
                vehicle_id = cursor.lastrowid
                self.audit.record("vehicles", vehicle_id, "create", None,
                                  self._row(conn, "vehicles", vehicle_id),
                                  conn=conn)
                return vehicle_id
        except sqlite3.IntegrityError as e:
            if "UNIQUE" not in str(e):
                raise
            raise ConflictError(
                f"A vehicle with plate '{vehicle.plate_number}' already exists"
            ) from e

    def update_vehicle(self, vehicle: Vehicle):
        try:
            with self.db.get_connection() as conn:
                old = self._row(conn, "vehicles", vehicle.id)
                if old is None:
                    raise NotFoundError(f"Vehicle {vehicle.id} not found")
                conn.execute(
                    "UPDATE vehicles SET customer_id = ?, plate_number = ?, "
                    "make = ?, model = ?, year = ?, vin = ?, color = ?, "
                    "engine_type = ?, transmission = ?, odometer = ?, "
                    "category = ?, notes = ? WHERE id = ?",
                    (vehicle.customer_id, vehicle.plate_number.upper(),
                     vehicle.make, vehicle.model, vehicle.year, vehicle.vin,
                     vehicle.color, vehicle.engine_type, vehicle.transmission,
                     vehicle.odometer, vehicle.category or "Asian",
                     vehicle.notes, vehicle.id),
                )
                self.audit.record("vehicles", vehicle.id, "update", old,
                                  self._row(conn, "vehicles", vehicle.id),
                                  conn=conn)
        except sqlite3.IntegrityError as e:
            if "UNIQUE" not in str(e):
                raise
            raise ConflictError(
                f"A vehicle with plate '{vehicle.plate_number}' already exists"
            ) from e

    def delete_vehicle(self, vehicle_id: int):
        with self.db.get_connection() as conn:
            old = self._row(conn, "vehicles", vehicle_id)
            if old is None:
                raise NotFoundError(f"Vehicle {vehicle_id} not found")
            counts = conn.execute(f"""
                SELECT
                    COUNT(CASE WHEN status IN ({_OPEN_STATUSES_SQL})
                          THEN 1 END) AS open_jobs,
                    COUNT(*) AS all_jobs
                FROM jobs WHERE vehicle_id = ?
            """, (vehicle_id,)).fetchone()
            if counts["open_jobs"]:
                raise BusinessRuleError(
                    "Cannot delete a vehicle with open jobs"
                )
            if counts["all_jobs"]:
                raise BusinessRuleError(
                    "Cannot delete a vehicle with job history"
                )
            conn.execute("DELETE FROM vehicles WHERE id = ?", (vehicle_id,))
            self.audit.record("vehicles", vehicle_id, "delete", old, None,
                              conn=conn)

    # ── Suppliers ───────────────────────────────────────────────

    def get_all_suppliers(self) -> list[Supplier]:
        rows = self.db.execute("SELECT * FROM suppliers ORDER BY name")
        return [Supplier(**dict(r)) for r in rows]

    def get_supplier_by_id(self, supplier_id: int) -> Optional[Supplier]:
        rows = self.db.execute(
            "SELECT * FROM suppliers WHERE id = ?", (supplier_id,)
        )
        return Supplier(**dict(rows[0])) if rows else None

    def create_supplier(self, supplier: Supplier) -> int:
        with self.db.get_connection() as conn:
            cursor = conn.execute(
                "INSERT INTO suppliers "
                "(name, contact_person, phone, email, address, notes) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (supplier.name, supplier.contact_person, supplier.phone,
                 supplier.email, supplier.address, supplier.notes),
            )
            supplier_id = cursor.lastrowid
            self.audit.record("suppliers", supplier_id, "create", None,
                              self._row(conn, "suppliers", supplier_id),
                              conn=conn)
            return supplier_id

    def update_supplier(self, supplier: Supplier):
        with self.db.get_connection() as conn:
            old = self._row(conn, "suppliers", supplier.id)
            if old is None:
                raise NotFoundError(f"Supplier {supplier.id} not found")
            conn.execute(
                "UPDATE suppliers SET name = ?, contact_person = ?, "
                "phone = ?, email = ?, address = ?, notes = ? WHERE id = ?",
                (supplier.name, supplier.contact_person, supplier.phone,
                 supplier.email, supplier.address, supplier.notes,
                 supplier.id),
            )
            self.audit.record("suppliers", supplier.id, "update", old,
                              self._row(conn, "suppliers", supplier.id),
                              conn=conn)

    def delete_supplier(self, supplier_id: int):
        """Delete a supplier; its inventory items keep existing unlinked."""
        with self.db.get_connection() as conn:
            old = self._row(conn, "suppliers", supplier_id)
            if old is None:
                raise NotFoundError(f"Supplier {supplier_id} not found")
            conn.execute("DELETE FROM suppliers WHERE id = ?", (supplier_id,))
            self.audit.record("suppliers", supplier_id, "delete", old, None,
                              conn=conn)

    # ── Inventory (reads) ───────────────────────────────────────

    _INVENTORY_SELECT = """
        SELECT i.*, COALESCE(s.name, '') AS supplier_name
        FROM inventory i
        LEFT JOIN suppliers s ON i.supplier_id = s.id
    """

    def get_all_items(self, category: Optional[str] = None,
                      search: Optional[str] = None) -> list[InventoryItem]:
        conditions, params = [], []
        if category:
            conditions.append("i.category = ?")
            params.append(category)
        if search and search.strip():
            pattern = f"%{search.strip()}%"
            conditions.append(
                "(i.name LIKE ? OR COALESCE(i.sku, '') LIKE ? "
                "OR COALESCE(i.description, '') LIKE ?)"
            )
            params.extend([pattern] * 3)
        sql = self._INVENTORY_SELECT
        if conditions:
            sql += " WHERE " + " AND ".join(conditions)
        rows = self.db.execute(sql + " ORDER BY i.name", tuple(params))
        return [InventoryItem(**dict(r)) for r in rows]

    def get_item_by_id(self, item_id: int) -> Optional[InventoryItem]:
        rows = self.db.execute(
            self._INVENTORY_SELECT + " WHERE i.id = ?", (item_id,)
        )
        return InventoryItem(**dict(rows[0])) if rows else None

    def get_item_by_sku(self, sku: str) -> Optional[InventoryItem]:
        rows = self.db.execute(
            self._INVENTORY_SELECT + " WHERE i.sku = ?", (sku,)
        )
        return InventoryItem(**dict(rows[0])) if rows else None

    def get_low_stock_items(self) -> list[InventoryItem]:
        rows = self.db.execute(
            self._INVENTORY_SELECT + """
            WHERE i.quantity <= i.min_stock
            ORDER BY (i.min_stock - i.quantity) DESC, i.name
        """)
        return [InventoryItem(**dict(r)) for r in rows]

    def get_inventory_categories(self) -> list[str]:
        rows = self.db.execute(
            "SELECT DISTINCT category FROM inventory "
            "WHERE category IS NOT NULL AND category != '' ORDER BY category"
        )
        return [r["category"] for r in rows]

    # ── Jobs (reads) ────────────────────────────────────────────

    _JOBS_SELECT = """
        SELECT j.*, v.plate_number, v.make, v.model, v.customer_id,
               c.name AS customer_name
        FROM jobs j
        JOIN vehicles v ON j.vehicle_id = v.id
        JOIN customers c ON v.customer_id = c.id
    """

    def get_job(self, job_id: int) -> Optional[Job]:
        rows = self.db.execute(self._JOBS_SELECT + " WHERE j.id = ?",
                               (job_id,))
        return Job(**dict(rows[0])) if rows else None

    def get_job_detail(self, job_id: int) -> dict:
        """A job with its service items, parts and invoice (if any)."""
        job = self.get_job(job_id)
        if job is None:
            raise NotFoundError(f"Job {job_id} not found")
        invoices = self.db.execute(
            self._INVOICES_SELECT + " WHERE i.job_id = ?", (job_id,)
        )
        return {
            "job": job,
            "items": self.get_job_items(job_id),
            "parts": self.get_job_parts(job_id),
            "invoice": Invoice(**dict(invoices[0])) if invoices else None,
        }

    def list_jobs(self, status: Optional[str] = None,
                  search: Optional[str] = None,
                  vehicle_id: Optional[int] = None) -> list[Job]:
        conditions, params = [], []
        if status and status != "all":
            conditions.append("j.status = ?")
            params.append(status)
        if vehicle_id is not None:
            conditions.append("j.vehicle_id = ?")
            params.append(vehicle_id)
        if search and search.strip():
            pattern = f"%{search.strip()}%"
            conditions.append(
                "(j.job_number LIKE ? OR v.plate_number LIKE ? "
                "OR c.name LIKE ? OR COALESCE(j.description, '') LIKE ?)"
            )
            params.extend([pattern] * 4)
        sql = self._JOBS_SELECT
        if conditions:
            sql += " WHERE " + " AND ".join(conditions)
        rows = self.db.execute(sql + " ORDER BY j.created_at DESC, j.id DESC",
                               tuple(params))
        return [Job(**dict(r)) for r in rows]

    def get_job_items(self, job_id: int) -> list[JobItem]:
        rows = self.db.execute(
            "SELECT * FROM job_items WHERE job_id = ? ORDER BY id", (job_id,)
        )
        return [JobItem(**dict(r)) for r in rows]

    def get_job_parts(self, job_id: int) -> list[JobPart]:
        rows = self.db.execute("""
            SELECT jp.*, inv.sku
            FROM job_parts jp
            LEFT JOIN inventory inv ON jp.inventory_id = inv.id
            WHERE jp.job_id = ?
            ORDER BY jp.id
        """, (job_id,))
        return [JobPart(**dict(r)) for r in rows]

    # ── Invoices (reads) ────────────────────────────────────────

    _INVOICES_SELECT = """
        SELECT i.*, c.name AS customer_name, j.job_number
        FROM invoices i
        JOIN customers c ON i.customer_id = c.id
        LEFT JOIN jobs j ON i.job_id = j.id
    """

    def get_invoice_by_id(self, invoice_id: int) -> Optional[Invoice]:
        rows = self.db.execute(self._INVOICES_SELECT + " WHERE i.id = ?",
                               (invoice_id,))
        return Invoice(**dict(rows[0])) if rows else None

    def get_invoice_detail(self, invoice_id: int) -> dict:
        """An invoice with its payments and, for job invoices, the lines."""
        invoice = self.get_invoice_by_id(invoice_id)
        if invoice is None:
            raise NotFoundError(f"Invoice {invoice_id} not found")
        detail = {
            "invoice": invoice,
            "payments": self.get_payments(invoice_id),
            "items": [],
            "parts": [],
        }
        if invoice.job_id is not None:
            detail["items"] = self.get_job_items(invoice.job_id)
            detail["parts"] = self.get_job_parts(invoice.job_id)
        return detail

    def list_invoices(self, status: Optional[str] = None,
                      search: Optional[str] = None,
                      customer_id: Optional[int] = None) -> list[Invoice]:
        conditions, params = [], []
        if status and status != "all":
            conditions.append("i.status = ?")
            params.append(status)
        if customer_id is not None:
            conditions.append("i.customer_id = ?")
            params.append(customer_id)
        if search and search.strip():
            pattern = f"%{search.strip()}%"
            conditions.append(
                "(i.invoice_number LIKE ? OR c.name LIKE ? "
                "OR COALESCE(j.job_number, '') LIKE ?)"
            )
            params.extend([pattern] * 3)
        sql = self._INVOICES_SELECT
        if conditions:
            sql += " WHERE " + " AND ".join(conditions)
        rows = self.db.execute(sql + " ORDER BY i.created_at DESC, i.id DESC",
                               tuple(params))
        return [Invoice(**dict(r)) for r in rows]

    def get_overdue_invoices(self) -> list[Invoice]:
        """Invoices with money owed past their due date."""
        rows = self.db.execute(
            self._INVOICES_SELECT + """
            WHERE i.status != 'paid'
              AND i.due_date IS NOT NULL
              AND i.due_date < ?
            ORDER BY i.due_date
        """, (_today(),))
        return [Invoice(**dict(r)) for r in rows]

    def get_payments(self, invoice_id: int) -> list[Payment]:
        rows = self.db.execute(
            "SELECT * FROM payments WHERE invoice_id = ? ORDER BY id",
            (invoice_id,),
        )
        return [Payment(**dict(r)) for r in rows]

    # ── Expenses ────────────────────────────────────────────────

    def create_expense(self, expense: Expense) -> int:
        with self.db.get_connection() as conn:
            cursor = conn.execute(
                "INSERT INTO expenses "
                "(category, description, amount, payment_method, reference, "
                "expense_date) VALUES (?, ?, ?, ?, ?, COALESCE(?, CURRENT_DATE))",
                (expense.category, expense.description, expense.amount,
                 expense.payment_method, expense.reference,
                 expense.expense_date),
            )
            expense_id = cursor.lastrowid
            self.audit.record("expenses", expense_id, "create", None,
                              self._row(conn, "expenses", expense_id),
                              conn=conn)
            return expense_id

    def get_expenses(self, category: Optional[str] = None,
                     start_date: Optional[str] = None,
                     end_date: Optional[str] = None) -> list[Expense]:
        conditions, params = [], []
        if category:
            conditions.append("category = ?")
            params.append(category)
        if start_date:
            conditions.append("expense_date >= ?")
            params.append(start_date)
        if end_date:
            conditions.append("expense_date <= ?")
            params.append(end_date)
        sql = "SELECT * FROM expenses"
        if conditions:
            sql += " WHERE " + " AND ".join(conditions)
        rows = self.db.execute(sql + " ORDER BY expense_date DESC, id DESC",
                               tuple(params))
        return [Expense(**dict(r)) for r in rows]

    def get_expense_categories(self) -> list[str]:
        rows = self.db.execute(
            "SELECT DISTINCT category FROM expenses ORDER BY category"
        )
        return [r["category"] for r in rows]

    def delete_expense(self, expense_id: int):
        with self.db.get_connection() as conn:
            old = self._row(conn, "expenses", expense_id)
            if old is None:
                raise NotFoundError(f"Expense {expense_id} not found")
            conn.execute("DELETE FROM expenses WHERE id = ?", (expense_id,))
            self.audit.record("expenses", expense_id, "delete", old, None,
                              conn=conn)

    # ── Service reminders ───────────────────────────────────────

    _REMINDERS_SELECT = """
        SELECT sr.*, v.plate_number, v.make, v.model,
               v.odometer AS current_odometer,
               c.name AS customer_name, c.phone AS customer_phone
        FROM service_reminders sr
        JOIN vehicles v ON sr.vehicle_id = v.id
        JOIN customers c ON v.customer_id = c.id
    """

    def create_reminder(self, reminder: ServiceReminder) -> int:
        with self.db.get_connection() as conn:
            vehicle = conn.execute(
                "SELECT id FROM vehicles WHERE id = ?", (reminder.vehicle_id,)
            ).fetchone()
            if not vehicle:
                raise NotFoundError(f"Vehicle {reminder.vehicle_id} not found")
            cursor = conn.execute(
                "INSERT INTO service_reminders "
                "(vehicle_id, reminder_type, due_mileage, due_date, "
                "description) VALUES (?, ?, ?, ?, ?)",
                (reminder.vehicle_id, reminder.reminder_type,
                 reminder.due_mileage, reminder.due_date,
                 reminder.description),
            )
            reminder_id = cursor.lastrowid
            self.audit.record(
                "service_reminders", reminder_id, "create", None,
                self._row(conn, "service_reminders", reminder_id), conn=conn,
            )
            return reminder_id

    def update_reminder_status(self, reminder_id: int, status: str):
        """Move a reminder along; 'notified' stamps ``notified_at``."""
        if status not in REMINDER_STATUSES:
            raise ValidationError(
                "Validation failed",
                [f"Status must be one of: {', '.join(REMINDER_STATUSES)}"],
            )
        with self.db.get_connection() as conn:
            old = self._row(conn, "service_reminders", reminder_id)
            if old is None:
                raise NotFoundError(f"Reminder {reminder_id} not found")
            conn.execute(
                "UPDATE service_reminders SET status = ?, "
                "notified_at = CASE WHEN ? = 'notified' "
                "THEN CURRENT_TIMESTAMP ELSE notified_at END WHERE id = ?",
                (status, status, reminder_id),
            )
            self.audit.record(
                "service_reminders", reminder_id, "update", old,
                self._row(conn, "service_reminders", reminder_id), conn=conn,
            )

    def delete_reminder(self, reminder_id: int):
        with self.db.get_connection() as conn:
            old = self._row(conn, "service_reminders", reminder_id)
            if old is None:
                raise NotFoundError(f"Reminder {reminder_id} not found")
            conn.execute("DELETE FROM service_reminders WHERE id = ?",
                         (reminder_id,))
            self.audit.record("service_reminders", reminder_id, "delete",
                              old, None, conn=conn)

    def get_reminders(self, status: Optional[str] = None,
                      vehicle_id: Optional[int] = None
                      ) -> list[ServiceReminder]:
        conditions, params = [], []
        if status:
            conditions.append("sr.status = ?")
            params.append(status)
        if vehicle_id is not None:
            conditions.append("sr.vehicle_id = ?")
            params.append(vehicle_id)
        sql = self._REMINDERS_SELECT
        if conditions:
            sql += " WHERE " + " AND ".join(conditions)
        rows = self.db.execute(
            sql + " ORDER BY sr.due_date, sr.due_mileage", tuple(params)
        )
        return [ServiceReminder(**dict(r)) for r in rows]

    def get_due_reminders(self) -> list[ServiceReminder]:
        """Pending reminders whose date has come or mileage is reached."""
        rows = self.db.execute(
            self._REMINDERS_SELECT + """
            WHERE sr.status = 'pending'
              AND ((sr.due_date IS NOT NULL AND sr.due_date <= ?)
                   OR (sr.due_mileage IS NOT NULL
                       AND v.odometer >= sr.due_mileage))
            ORDER BY sr.due_date, sr.due_mileage
        """, (_today(),))
        return [ServiceReminder(**dict(r)) for r in rows]

    # ── Users ───────────────────────────────────────────────────

    @staticmethod
    def _public_user(row: Optional[dict]) -> Optional[dict]:
        """User row without the password hash, for the audit trail."""
        if row is None:
            return None
        return {k: v for k, v in row.items() if k != "password_hash"}

    def create_user(self, user: User) -> int:
        try:
            with self.db.get_connection() as conn:
                cursor = conn.execute(
                    "INSERT INTO users "
                    "(username, password_hash, name, role, is_active) "
                    "VALUES (?, ?, ?, ?, ?)",
                    (user.username, user.password_hash, user.name,
                     user.role, user.is_active),
                )
                user_id = cursor.lastrowid
                self.audit.record(
                    "users", user_id, "create", None,
                    self._public_user(self._row(conn, "users", user_id)),
                    conn=conn,
                )
                return user_id
        except sqlite3.IntegrityError as e:
            if "UNIQUE" not in str(e):
                raise
            raise ConflictError(
                f"Username '{user.username}' is already taken"
            ) from e

    def get_user_by_id(self, user_id: int) -> Optional[User]:
        rows = self.db.execute("SELECT * FROM users WHERE id = ?", (user_id,))
        return User(**dict(rows[0])) if rows else None

    def get_user_by_username(self, username: str) -> Optional[User]:
        rows = self.db.execute(
            "SELECT * FROM users WHERE username = ?", (username,)
        )
        return User(**dict(rows[0])) if rows else None

    def get_all_users(self, active_only: bool = False) -> list[User]:
        if active_only:
            rows = self.db.execute(
                "SELECT * FROM users WHERE is_active = 1 ORDER BY name"
            )
        else:
            rows = self.db.execute("SELECT * FROM users ORDER BY name")
        return [User(**dict(r)) for r in rows]

    def count_users(self) -> int:
        rows = self.db.execute("SELECT COUNT(*) AS cnt FROM users")
        return rows[0]["cnt"] if rows else 0

    def update_user(self, user: User):
        with self.db.get_connection() as conn:
            old = self._row(conn, "users", user.id)
            if old is None:
                raise NotFoundError(f"User {user.id} not found")
            conn.execute(
                "UPDATE users SET name = ?, role = ?, is_active = ? "
                "WHERE id = ?",
                (user.name, user.role, user.is_active, user.id),
            )
            self.audit.record(
                "users", user.id, "update", self._public_user(old),
                self._public_user(self._row(conn, "users", user.id)),
                conn=conn,
            )

    def set_password_hash(self, user_id: int, password_hash: str):
        with self.db.get_connection() as conn:
            conn.execute(
                "UPDATE users SET password_hash = ? WHERE id = ?",
                (password_hash, user_id),
            )
            self.audit.record("users", user_id, "update", None,
                              {"password_changed": True}, conn=conn)

    def touch_last_login(self, user_id: int):
        with self.db.get_connection() as conn:
            conn.execute(
                "UPDATE users SET last_login = CURRENT_TIMESTAMP WHERE id = ?",
                (user_id,),
            )

    # ── Reports ─────────────────────────────────────────────────

    def get_dashboard_stats(self) -> dict:
        rows = self.db.execute("""
            SELECT
                (SELECT COUNT(*) FROM jobs
                 WHERE DATE(created_at) = DATE('now')) AS jobs_today,
                (SELECT COUNT(*) FROM jobs
                 WHERE status = 'in_progress') AS jobs_in_progress,
                (SELECT COUNT(*) FROM jobs
                 WHERE status = 'pending') AS jobs_pending,
                (SELECT COUNT(*) FROM jobs
                 WHERE status = 'completed') AS jobs_completed,
                (SELECT COUNT(*) FROM customers) AS total_customers,
                (SELECT COUNT(*) FROM vehicles) AS total_vehicles,
                (SELECT COUNT(*) FROM inventory
                 WHERE quantity <= min_stock) AS low_stock_items,
                (SELECT COALESCE(SUM(amount), 0) FROM payments
                 WHERE DATE(created_at) = DATE('now')) AS revenue_today,
                (SELECT COALESCE(SUM(amount), 0) FROM payments
                 WHERE strftime('%Y-%m', created_at)
                     = strftime('%Y-%m', 'now')) AS revenue_this_month,
                (SELECT COUNT(*) FROM invoices
                 WHERE status != 'paid') AS unpaid_invoices,
                (SELECT COALESCE(SUM(balance), 0) FROM invoices
                 WHERE status != 'paid') AS unpaid_balance
        """)
        stats = dict(rows[0])
        recent = self.db.execute(
            self._JOBS_SELECT + " ORDER BY j.created_at DESC, j.id DESC LIMIT 5"
        )
        stats["recent_jobs"] = [Job(**dict(r)) for r in recent]
        return stats

    def get_revenue_report(self, period: str = "monthly") -> list[dict]:
        """Payments received per day/week/month, last 12 periods, oldest first."""
        if period not in REVENUE_PERIODS:
            raise ValidationError(
                "Validation failed",
                [f"Period must be one of: {', '.join(REVENUE_PERIODS)}"],
            )
        grouping = _REVENUE_GROUPING[period]
        rows = self.db.execute(f"""
            SELECT {grouping} AS period, SUM(amount) AS total
            FROM payments
            GROUP BY {grouping}
            ORDER BY period DESC
            LIMIT 12
        """)
        return [dict(r) for r in reversed(rows)]

    def get_summary_report(self, start_date: Optional[str] = None,
                           end_date: Optional[str] = None) -> dict:
        """Revenue, expenses, profit and activity between two dates.

        Defaults to the first of the current month through today.
        """
        start = start_date or _month_start()
        end = end_date or _today()
        rows = self.db.execute("""
            SELECT
                (SELECT COALESCE(SUM(amount), 0) FROM payments
                 WHERE DATE(created_at) BETWEEN ? AND ?) AS revenue,
                (SELECT COALESCE(SUM(amount), 0) FROM expenses
                 WHERE expense_date BETWEEN ? AND ?) AS expenses,
                (SELECT COUNT(*) FROM jobs
                 WHERE DATE(completed_at) BETWEEN ? AND ?) AS jobs_completed,
                (SELECT COUNT(*) FROM customers
                 WHERE DATE(created_at) BETWEEN ? AND ?) AS new_customers
        """, (start, end) * 4)
        summary = dict(rows[0])
        summary["profit"] = round(summary["revenue"] - summary["expenses"], 2)
        summary["period"] = {"start": start, "end": end}
        return summary

    def get_technician_report(self, start_date: Optional[str] = None,
                              end_date: Optional[str] = None) -> dict:
        start = start_date or _month_start()
        end = end_date or _today()
        rows = self.db.execute("""
            SELECT
                technician,
                COUNT(*) AS total_jobs,
                SUM(CASE WHEN status IN ('completed', 'invoiced')
                    THEN 1 ELSE 0 END) AS completed_jobs,
                SUM(labor_hours) AS total_hours,
                SUM(labor_cost) AS total_labor_revenue,
                SUM(total_cost) AS total_revenue,
                ROUND(AVG(julianday(completed_at) - julianday(created_at)), 1)
                    AS avg_completion_days
            FROM jobs
            WHERE technician IS NOT NULL AND technician != ''
              AND DATE(created_at) BETWEEN ? AND ?
            GROUP BY technician
            ORDER BY total_revenue DESC
        """, (start, end))
        return {
            "period": {"start": start, "end": end},
            "technicians": [dict(r) for r in rows],
        }

    def get_audit_log(self, table_name: Optional[str] = None,
                      record_id: Optional[int] = None,
                      limit: int = 100) -> list[AuditEntry]:
        conditions, params = [], []
        if table_name:
            conditions.append("table_name = ?")
            params.append(table_name)
        if record_id is not None:
            conditions.append("record_id = ?")
            params.append(record_id)
        sql = "SELECT * FROM audit_log"
        if conditions:
            sql += " WHERE " + " AND ".join(conditions)
        sql += " ORDER BY created_at DESC, id DESC LIMIT ?"
        params.append(limit)
        rows = self.db.execute(sql, tuple(params))
        return [AuditEntry(**dict(r)) for r in rows]
