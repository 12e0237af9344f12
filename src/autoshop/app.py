"""Application wiring: database, repository, engines and the error boundary.

``ShopApp`` is what a transport layer (HTTP handlers, a CLI, tests)
talks to. Its request methods take raw dicts, turn them into typed
commands and hand them to the engines; ``dispatch`` converts whatever
happens into an HTTP status and a JSON-ready payload.
"""

import logging
import sqlite3
from dataclasses import asdict, replace
from pathlib import Path
from typing import Any, Callable, Optional

from autoshop.config import Config
from autoshop.database.connection import DatabaseConnection
from autoshop.database.models import (
    Customer,
    Expense,
    InventoryItem,
    ServiceReminder,
    ShopSettings,
    Supplier,
    Vehicle,
)
from autoshop.database.repository import Repository
from autoshop.database.schema import initialize_database
from autoshop.engine.audit import AuditRecorder
from autoshop.engine.commands import (
    CreateJobCommand,
    CustomerCommand,
    ExpenseCommand,
    InventoryCommand,
    InvoiceCommand,
    JobItemCommand,
    JobPartCommand,
    PaymentCommand,
    ServiceReminderCommand,
    StockAdjustmentCommand,
    SupplierCommand,
    UpdateInventoryCommand,
    UpdateJobCommand,
    VehicleCommand,
)
from autoshop.engine.costing import JobCostingEngine
from autoshop.engine.errors import (
    ConflictError,
    InternalError,
    NotFoundError,
    ShopError,
)
from autoshop.engine.invoicing import InvoiceReconciler
from autoshop.engine.numbering import NumberingService
from autoshop.engine.stock import StockLedger
from autoshop.security.auth import (
    AccountService,
    CredentialService,
    Principal,
    require_role,
)

logger = logging.getLogger(__name__)


def configure_logging(level: Optional[str] = None):
    """Configure the root logger from ``Config.LOG_LEVEL``."""
    logging.basicConfig(
        level=getattr(logging, (level or Config.LOG_LEVEL).upper(),
                      logging.INFO),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


class ShopApp:
    """One shop backed by one SQLite database."""

    def __init__(
        self,
        db_path: str | Path | None = None,
        settings: Optional[ShopSettings] = None,
        jwt_secret: Optional[str] = None,
    ):
        self.db = DatabaseConnection(
            db_path or Config.DATABASE_PATH, timeout=Config.DB_BUSY_TIMEOUT,
        )
        initialize_database(self.db)
        self.audit = AuditRecorder(self.db)
        self.repo = Repository(self.db, self.audit)
        self.credentials = CredentialService(
            jwt_secret or Config.JWT_SECRET, Config.JWT_EXPIRES_HOURS,
        )
        self.accounts = AccountService(
            self.repo, self.credentials, Config.PASSWORD_MIN_LENGTH,
        )
        self._build_engines(settings or self.repo.get_shop_settings())

    def _build_engines(self, settings: ShopSettings):
        self.settings = settings
        self.numbering = NumberingService(settings)
        self.stock = StockLedger(self.db, self.audit)
        self.costing = JobCostingEngine(
            self.db, self.stock, self.numbering, self.audit, settings,
        )
        self.invoicing = InvoiceReconciler(
            self.db, self.costing, self.numbering, self.audit, settings,
        )

    def reload_settings(self):
        """Take a fresh settings snapshot; engines are rebuilt around it."""
        self._build_engines(self.repo.get_shop_settings())

    # ── Error boundary ──────────────────────────────────────────

    def dispatch(self, operation: Callable[..., Any], *args,
                 **kwargs) -> tuple[int, Any]:
        """Run ``operation`` and return ``(http_status, payload)``.

        Failures become the error envelope. Unexpected exceptions are
        logged with their traceback and answered with a 500 whose
        message is only revealed in development.
        """
        try:
            return 200, operation(*args, **kwargs)
        except ShopError as e:
            return e.http_status, e.to_envelope()
        except sqlite3.IntegrityError as e:
            if "UNIQUE" in str(e):
                error = ConflictError("Record already exists")
                return error.http_status, error.to_envelope()
            return self._internal_error(operation, e)
        except Exception as e:
            return self._internal_error(operation, e)

    @staticmethod
    def _internal_error(operation, exc: Exception) -> tuple[int, dict]:
        name = getattr(operation, "__name__", repr(operation))
        logger.error("Unhandled error in %s", name, exc_info=exc)
        if Config.is_development():
            error = InternalError(str(exc))
        else:
            error = InternalError()
        return error.http_status, error.to_envelope()

    # ── Authentication ──────────────────────────────────────────

    def login(self, username: str, password: str) -> dict:
        token, user = self.accounts.login(username, password)
        return {
            "token": token,
            "user": {"id": user.id, "username": user.username,
                     "name": user.name, "role": user.role},
        }

    def authenticate(self, token: Optional[str]) -> Principal:
        return self.credentials.verify(token)

    # ── Settings ────────────────────────────────────────────────

    def update_settings(self, actor: Principal, values: dict) -> dict:
        result = self.repo.update_settings(actor, values)
        self.reload_settings()
        return result

    # ── Customers, vehicles, suppliers ──────────────────────────

    def create_customer(self, data: dict) -> int:
        cmd = CustomerCommand.from_dict(data)
        return self.repo.create_customer(Customer(**asdict(cmd)))

    def update_customer(self, customer_id: int, data: dict):
        cmd = CustomerCommand.from_dict(data)
        self.repo.update_customer(Customer(id=customer_id, **asdict(cmd)))

    def create_vehicle(self, data: dict) -> int:
        cmd = VehicleCommand.from_dict(data)
        return self.repo.create_vehicle(Vehicle(**asdict(cmd)))

    def update_vehicle(self, vehicle_id: int, data: dict):
        cmd = VehicleCommand.from_dict(data)
        self.repo.update_vehicle(Vehicle(id=vehicle_id, **asdict(cmd)))

    def create_supplier(self, data: dict) -> int:
        cmd = SupplierCommand.from_dict(data)
        return self.repo.create_supplier(Supplier(**asdict(cmd)))

    # ── Inventory ───────────────────────────────────────────────

    def create_item(self, data: dict) -> int:
        cmd = InventoryCommand.from_dict(data)
        return self.stock.create_item(InventoryItem(**asdict(cmd)))

    def update_item(self, item_id: int, data: dict):
        cmd = UpdateInventoryCommand.from_dict(data)
        item = self.repo.get_item_by_id(item_id)
        if item is None:
            raise NotFoundError(f"Inventory item {item_id} not found")
        # Omitted fields, quantity included, keep their stored values
        self.stock.update_item(replace(item, **cmd.changes()))

    def adjust_stock(self, item_id: int, data: dict) -> Optional[int]:
        cmd = StockAdjustmentCommand.from_dict(data)
        return self.stock.adjust(item_id, cmd.delta, cmd.notes)

    # ── Jobs ────────────────────────────────────────────────────

    def create_job(self, data: dict) -> int:
        return self.costing.create_job(CreateJobCommand.from_dict(data))

    def update_job(self, job_id: int, data: dict):
        return self.costing.update_job(job_id, UpdateJobCommand.from_dict(data))

    def add_service_item(self, job_id: int, data: dict) -> int:
        return self.costing.add_service_item(
            job_id, JobItemCommand.from_dict(data),
        )

    def add_part(self, job_id: int, data: dict) -> int:
        return self.costing.add_part(job_id, JobPartCommand.from_dict(data))

    def remove_part(self, job_id: int, part_id: int):
        self.costing.remove_part(job_id, part_id)

    def remove_service_item(self, job_id: int, item_id: int):
        self.costing.remove_service_item(job_id, item_id)

    def delete_job(self, job_id: int):
        self.costing.delete_job(job_id)

    # ── Invoices ────────────────────────────────────────────────

    def create_invoice_from_job(self, job_id: int,
                                data: Optional[dict] = None) -> int:
        data = data or {}
        return self.invoicing.create_from_job(
            job_id, data.get("due_date"), data.get("notes"),
        )

    def create_invoice(self, data: dict) -> int:
        return self.invoicing.create_ad_hoc(InvoiceCommand.from_dict(data))

    def apply_payment(self, invoice_id: int, data: dict):
        return self.invoicing.apply_payment(
            invoice_id, PaymentCommand.from_dict(data),
        )

    # ── Expenses and reminders ──────────────────────────────────

    def create_expense(self, data: dict) -> int:
        cmd = ExpenseCommand.from_dict(data)
        return self.repo.create_expense(Expense(**asdict(cmd)))

    def create_reminder(self, data: dict) -> int:
        cmd = ServiceReminderCommand.from_dict(data)
        return self.repo.create_reminder(ServiceReminder(**asdict(cmd)))

    # ── Reports ─────────────────────────────────────────────────

    def revenue_report(self, actor: Principal, period: str = "monthly"):
        require_role(actor, "admin")
        return self.repo.get_revenue_report(period)

    def summary_report(self, actor: Principal,
                       start_date: Optional[str] = None,
                       end_date: Optional[str] = None) -> dict:
        require_role(actor, "admin")
        return self.repo.get_summary_report(start_date, end_date)
