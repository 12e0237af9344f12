"""Typed command objects for engine input.

Raw request bodies are turned into these with ``from_dict``, which runs
the entity's validation schema first and raises ``ValidationError`` with
every failing field. Engine methods only ever see the typed form.
"""

import types
import typing
from dataclasses import dataclass, fields
from typing import ClassVar, Optional

from autoshop.engine.errors import ValidationError
from autoshop.io.validators import SCHEMAS, validate


def _to_int(value) -> int:
    return int(float(value))


def _to_str(value) -> str:
    return str(value).strip()


_COERCE = {int: _to_int, float: float, str: _to_str}


def _base_type(annotation):
    """Unwrap ``Optional[X]`` / ``X | None`` to ``X``."""
    if typing.get_origin(annotation) in (typing.Union, types.UnionType):
        args = [a for a in typing.get_args(annotation) if a is not type(None)]
        return args[0] if len(args) == 1 else annotation
    return annotation


class _Command:
    schema: ClassVar[str] = ""
    partial: ClassVar[bool] = False

    @classmethod
    def from_dict(cls, data: dict):
        data = data or {}
        errors = validate(data, SCHEMAS[cls.schema], partial=cls.partial)
        errors.extend(cls._extra_errors(data))
        if errors:
            raise ValidationError("Validation failed", errors)

        kwargs = {}
        for f in fields(cls):
            value = data.get(f.name)
            if value is None or (isinstance(value, str) and not value.strip()):
                continue
            convert = _COERCE.get(_base_type(f.type))
            kwargs[f.name] = convert(value) if convert else value
        return cls(**kwargs)

    @classmethod
    def _extra_errors(cls, data: dict) -> list[str]:
        return []


@dataclass
class CustomerCommand(_Command):
    schema: ClassVar[str] = "customer"

    name: str = ""
    phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    notes: Optional[str] = None


@dataclass
class VehicleCommand(_Command):
    schema: ClassVar[str] = "vehicle"

    customer_id: int = 0
    plate_number: str = ""
    make: str = ""
    model: str = ""
    year: Optional[int] = None
    vin: Optional[str] = None
    color: Optional[str] = None
    engine_type: Optional[str] = None
    transmission: Optional[str] = None
    odometer: int = 0
    category: str = "Asian"
    notes: Optional[str] = None


@dataclass
class SupplierCommand(_Command):
    schema: ClassVar[str] = "supplier"

    name: str = ""
    contact_person: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    notes: Optional[str] = None


@dataclass
class InventoryCommand(_Command):
    schema: ClassVar[str] = "inventory"

    name: str = ""
    sku: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    quantity: int = 0
    min_stock: int = 5
    cost_price: float = 0.0
    sell_price: float = 0.0
    supplier_id: Optional[int] = None
    location: Optional[str] = None


@dataclass
class UpdateInventoryCommand(_Command):
    """Partial item update; fields left as None keep their stored value."""

    schema: ClassVar[str] = "inventory"
    partial: ClassVar[bool] = True

    name: Optional[str] = None
    sku: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    quantity: Optional[int] = None
    min_stock: Optional[int] = None
    cost_price: Optional[float] = None
    sell_price: Optional[float] = None
    supplier_id: Optional[int] = None
    location: Optional[str] = None

    def changes(self) -> dict:
        return {f.name: getattr(self, f.name) for f in fields(self)
                if getattr(self, f.name) is not None}


@dataclass
class StockAdjustmentCommand(_Command):
    """Manual stock correction: ``movement_type`` in/out by ``quantity``."""

    schema: ClassVar[str] = "stockAdjustment"

    movement_type: str = "in"
    quantity: int = 0
    notes: Optional[str] = None

    @classmethod
    def _extra_errors(cls, data: dict) -> list[str]:
        try:
            if float(data.get("quantity")) == 0:
                return ["Quantity must be greater than zero"]
        except (ValueError, TypeError):
            pass  # already reported by the schema
        return []

    @property
    def delta(self) -> int:
        return self.quantity if self.movement_type == "in" else -self.quantity


@dataclass
class CreateJobCommand(_Command):
    schema: ClassVar[str] = "job"

    vehicle_id: int = 0
    priority: str = "normal"
    description: Optional[str] = None
    diagnosis: Optional[str] = None
    technician: Optional[str] = None
    odometer_in: Optional[int] = None
    estimated_completion: Optional[str] = None
    labor_hours: float = 0.0
    labor_rate: Optional[float] = None  # None: vehicle category rate
    notes: Optional[str] = None

    @classmethod
    def _extra_errors(cls, data: dict) -> list[str]:
        if data.get("status") not in (None, "", "pending"):
            return ["New jobs always start as pending"]
        return []


@dataclass
class UpdateJobCommand(_Command):
    """Partial job update; fields left as None are not changed."""

    schema: ClassVar[str] = "job"
    partial: ClassVar[bool] = True

    status: Optional[str] = None
    priority: Optional[str] = None
    description: Optional[str] = None
    diagnosis: Optional[str] = None
    technician: Optional[str] = None
    odometer_in: Optional[int] = None
    estimated_completion: Optional[str] = None
    labor_hours: Optional[float] = None
    labor_rate: Optional[float] = None
    warranty_until: Optional[str] = None
    warranty_notes: Optional[str] = None
    notes: Optional[str] = None

    @classmethod
    def _extra_errors(cls, data: dict) -> list[str]:
        if "vehicle_id" in data:
            return ["A job cannot be moved to another vehicle"]
        return []

    def changes(self) -> dict:
        return {f.name: getattr(self, f.name) for f in fields(self)
                if getattr(self, f.name) is not None}


@dataclass
class JobItemCommand(_Command):
    schema: ClassVar[str] = "jobItem"

    description: str = ""
    quantity: float = 1.0
    unit_price: float = 0.0
    discount: float = 0.0
    discount_type: str = "fixed"


@dataclass
class JobPartCommand(_Command):
    schema: ClassVar[str] = "jobPart"

    part_name: str = ""
    quantity: int = 1
    unit_price: float = 0.0
    inventory_id: Optional[int] = None

    @classmethod
    def _extra_errors(cls, data: dict) -> list[str]:
        quantity = data.get("quantity")
        if quantity in (None, ""):
            return []
        try:
            ok = float(quantity).is_integer() and float(quantity) >= 1
        except (ValueError, TypeError):
            return []  # already reported by the schema
        return [] if ok else ["Quantity must be a whole number of at least 1"]


@dataclass
class InvoiceCommand(_Command):
    schema: ClassVar[str] = "invoice"

    customer_id: int = 0
    subtotal: float = 0.0
    tax_rate: float = 0.0
    discount: float = 0.0
    due_date: Optional[str] = None
    notes: Optional[str] = None


@dataclass
class PaymentCommand(_Command):
    schema: ClassVar[str] = "payment"

    amount: float = 0.0
    payment_method: str = "cash"
    reference: Optional[str] = None
    notes: Optional[str] = None
    idempotency_key: Optional[str] = None

    @classmethod
    def _extra_errors(cls, data: dict) -> list[str]:
        try:
            if float(data.get("amount")) == 0:
                return ["Amount must be greater than zero"]
        except (ValueError, TypeError):
            pass  # already reported by the schema
        return []


@dataclass
class ExpenseCommand(_Command):
    schema: ClassVar[str] = "expense"

    category: str = ""
    amount: float = 0.0
    description: Optional[str] = None
    payment_method: str = "cash"
    reference: Optional[str] = None
    expense_date: Optional[str] = None


@dataclass
class ServiceReminderCommand(_Command):
    schema: ClassVar[str] = "serviceReminder"

    vehicle_id: int = 0
    reminder_type: str = "time"
    due_mileage: Optional[int] = None
    due_date: Optional[str] = None
    description: Optional[str] = None
