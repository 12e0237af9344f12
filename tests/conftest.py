"""Shared test fixtures."""

from datetime import datetime

import pytest

from autoshop.database.connection import DatabaseConnection
from autoshop.database.models import Customer, InventoryItem, ShopSettings, Vehicle
from autoshop.database.repository import Repository
from autoshop.database.schema import initialize_database
from autoshop.engine.audit import AuditRecorder
from autoshop.engine.costing import JobCostingEngine
from autoshop.engine.invoicing import InvoiceReconciler
from autoshop.engine.numbering import NumberingService
from autoshop.engine.stock import StockLedger


@pytest.fixture
def db_path(tmp_path):
    """Provide a temporary database path."""
    return tmp_path / "test.db"


@pytest.fixture
def db(db_path):
    """Provide an initialized database connection."""
    conn = DatabaseConnection(db_path)
    initialize_database(conn)
    return conn


@pytest.fixture
def audit(db):
    return AuditRecorder(db)


@pytest.fixture
def repo(db, audit):
    """Provide a repository with an initialized database."""
    return Repository(db, audit)


@pytest.fixture
def settings():
    """Fixed settings snapshot: 10% tax, KAW/INV prefixes."""
    return ShopSettings(
        business_name="Test Garage",
        currency="LKR",
        tax_rate=10.0,
        labor_rate=1500.0,
        job_prefix="KAW",
        invoice_prefix="INV",
        category_labor_rates={"asian": 1500.0, "european": 2500.0},
    )


@pytest.fixture
def numbering(settings):
    return NumberingService(settings, clock=lambda: datetime(2025, 3, 14))


@pytest.fixture
def stock(db, audit):
    return StockLedger(db, audit)


@pytest.fixture
def costing(db, stock, numbering, audit, settings):
    return JobCostingEngine(db, stock, numbering, audit, settings)


@pytest.fixture
def invoicing(db, costing, numbering, audit, settings):
    return InvoiceReconciler(db, costing, numbering, audit, settings)


@pytest.fixture
def shop(repo, stock):
    """A customer with an Asian and a European car, and a stocked part."""
    customer_id = repo.create_customer(
        Customer(name="Nimal Perera", phone="077 123 4567")
    )
    asian_id = repo.create_vehicle(Vehicle(
        customer_id=customer_id, plate_number="CAB-1234",
        make="Toyota", model="Corolla", year=2015, odometer=80000,
    ))
    european_id = repo.create_vehicle(Vehicle(
        customer_id=customer_id, plate_number="WP-5678",
        make="BMW", model="320i", category="European",
    ))
    item_id = stock.create_item(InventoryItem(
        sku="BRK-001", name="Brake pad set", category="Brakes",
        quantity=10, min_stock=3, cost_price=350.0, sell_price=500.0,
    ))
    return {
        "customer": customer_id,
        "vehicle": asian_id,
        "european_vehicle": european_id,
        "item": item_id,
    }
