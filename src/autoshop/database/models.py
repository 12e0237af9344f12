"""Data models for the database layer."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional


@dataclass
class Customer:
    id: Optional[int] = None
    name: str = ""
    phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    # Joined fields (not stored directly)
    vehicle_count: int = field(default=0, repr=False)


@dataclass
class Vehicle:
    id: Optional[int] = None
    customer_id: Optional[int] = None
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
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    # Joined fields (not stored directly)
    customer_name: str = field(default="", repr=False)
    customer_phone: str = field(default="", repr=False)

    @property
    def display_name(self) -> str:
        parts = [str(self.year) if self.year else "", self.make, self.model]
        label = " ".join(p for p in parts if p)
        return f"{self.plate_number} ({label})" if label else self.plate_number


@dataclass
class Supplier:
    id: Optional[int] = None
    name: str = ""
    contact_person: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass
class InventoryItem:
    id: Optional[int] = None
    sku: Optional[str] = None
    name: str = ""
    description: Optional[str] = None
    category: Optional[str] = None
    quantity: int = 0
    min_stock: int = 5
    cost_price: float = 0.0
    sell_price: float = 0.0
    supplier_id: Optional[int] = None
    location: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    # Joined fields (not stored directly)
    supplier_name: str = field(default="", repr=False)

    @property
    def is_low_stock(self) -> bool:
        return self.quantity <= self.min_stock

    @property
    def stock_value(self) -> float:
        return self.quantity * self.cost_price


@dataclass
class StockMovement:
    id: Optional[int] = None
    inventory_id: Optional[int] = None
    movement_type: str = "in"  # 'in' or 'out'
    quantity: int = 0          # always a positive magnitude
    reference_type: Optional[str] = None
    reference_id: Optional[int] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None

    @property
    def signed_quantity(self) -> int:
        return self.quantity if self.movement_type == "in" else -self.quantity


@dataclass
class Job:
    id: Optional[int] = None
    job_number: str = ""
    vehicle_id: Optional[int] = None
    status: str = "pending"
    priority: str = "normal"
    description: Optional[str] = None
    diagnosis: Optional[str] = None
    technician: Optional[str] = None
    odometer_in: Optional[int] = None
    estimated_completion: Optional[datetime] = None
    labor_hours: float = 0.0
    labor_rate: float = 0.0
    labor_cost: float = 0.0
    parts_cost: float = 0.0
    total_cost: float = 0.0
    warranty_until: Optional[str] = None
    warranty_notes: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    # Joined fields (not stored directly)
    plate_number: str = field(default="", repr=False)
    make: str = field(default="", repr=False)
    model: str = field(default="", repr=False)
    customer_id: Optional[int] = field(default=None, repr=False)
    customer_name: str = field(default="", repr=False)

    @property
    def is_open(self) -> bool:
        return self.status in ("pending", "in_progress")


@dataclass
class JobItem:
    id: Optional[int] = None
    job_id: Optional[int] = None
    description: str = ""
    quantity: float = 1.0
    unit_price: float = 0.0
    discount: float = 0.0
    discount_type: str = "fixed"  # 'fixed' or 'percent'
    total: float = 0.0


@dataclass
class JobPart:
    id: Optional[int] = None
    job_id: Optional[int] = None
    inventory_id: Optional[int] = None
    part_name: str = ""
    quantity: int = 1
    unit_price: float = 0.0
    total: float = 0.0
    # Joined fields (not stored directly)
    sku: Optional[str] = field(default=None, repr=False)


@dataclass
class Invoice:
    id: Optional[int] = None
    invoice_number: str = ""
    job_id: Optional[int] = None
    customer_id: Optional[int] = None
    subtotal: float = 0.0
    tax_rate: float = 0.0
    tax_amount: float = 0.0
    discount: float = 0.0
    total: float = 0.0
    amount_paid: float = 0.0
    balance: float = 0.0
    status: str = "unpaid"
    due_date: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    # Joined fields (not stored directly)
    customer_name: str = field(default="", repr=False)
    job_number: Optional[str] = field(default=None, repr=False)

    @property
    def is_paid(self) -> bool:
        return self.status == "paid"


@dataclass
class Payment:
    id: Optional[int] = None
    invoice_id: Optional[int] = None
    amount: float = 0.0
    payment_method: str = "cash"
    reference: Optional[str] = None
    notes: Optional[str] = None
    idempotency_key: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass
class Expense:
    id: Optional[int] = None
    category: str = ""
    description: Optional[str] = None
    amount: float = 0.0
    payment_method: str = "cash"
    reference: Optional[str] = None
    expense_date: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass
class ServiceReminder:
    id: Optional[int] = None
    vehicle_id: Optional[int] = None
    reminder_type: str = "time"  # 'mileage', 'time' or 'custom'
    due_mileage: Optional[int] = None
    due_date: Optional[str] = None
    description: Optional[str] = None
    status: str = "pending"
    notified_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    # Joined fields (not stored directly)
    plate_number: str = field(default="", repr=False)
    make: str = field(default="", repr=False)
    model: str = field(default="", repr=False)
    current_odometer: Optional[int] = field(default=None, repr=False)
    customer_name: str = field(default="", repr=False)
    customer_phone: Optional[str] = field(default=None, repr=False)


@dataclass
class AuditEntry:
    id: Optional[int] = None
    table_name: str = ""
    record_id: Optional[int] = None
    action: str = ""  # 'create', 'update' or 'delete'
    old_data: Optional[str] = None  # JSON snapshot
    new_data: Optional[str] = None  # JSON snapshot
    created_at: Optional[datetime] = None


@dataclass
class User:
    id: Optional[int] = None
    username: str = ""
    password_hash: str = field(default="", repr=False)
    name: str = ""
    role: str = "staff"
    is_active: int = 1
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    last_login: Optional[datetime] = None


@dataclass(frozen=True)
class ShopSettings:
    """Read-only snapshot of the shop's business settings.

    Taken once and handed to the numbering and invoicing engines so a
    settings change never lands halfway through a transaction.
    """

    business_name: str = "Knight Auto Works"
    currency: str = "LKR"
    tax_rate: float = 0.0
    labor_rate: float = 1500.0
    job_prefix: str = "KAW"
    invoice_prefix: str = "INV"
    category_labor_rates: dict = field(default_factory=dict)

    def labor_rate_for(self, category: Optional[str]) -> float:
        """Default labor rate for a vehicle category, else the shop rate."""
        if category:
            rate = self.category_labor_rates.get(category.lower())
            if rate is not None:
                return rate
        return self.labor_rate

    @classmethod
    def from_rows(cls, values: dict) -> "ShopSettings":
        """Build a snapshot from the key/value ``settings`` table."""
        category_rates = {}
        for key, value in values.items():
            if key.startswith("labor_rate_") and value not in (None, ""):
                category_rates[key[len("labor_rate_"):]] = float(value)
        return cls(
            business_name=values.get("business_name") or cls.business_name,
            currency=values.get("currency") or cls.currency,
            tax_rate=float(values.get("tax_rate") or 0),
            labor_rate=float(values.get("labor_rate") or cls.labor_rate),
            job_prefix=values.get("job_prefix") or cls.job_prefix,
            invoice_prefix=values.get("invoice_prefix") or cls.invoice_prefix,
            category_labor_rates=category_rates,
        )
