"""Database schema definition, initialization, and seed data."""

import sqlite3

SCHEMA_VERSION = 1

# Each statement is a separate string to avoid executescript issues
_SCHEMA_STATEMENTS = [
    # Customers
    """CREATE TABLE IF NOT EXISTS customers (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        phone TEXT,
        email TEXT,
        address TEXT,
        notes TEXT,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )""",

    # Vehicles (category drives the default labor rate)
    """CREATE TABLE IF NOT EXISTS vehicles (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        customer_id INTEGER NOT NULL,
        plate_number TEXT NOT NULL UNIQUE,
        make TEXT NOT NULL,
        model TEXT NOT NULL,
        year INTEGER,
        vin TEXT,
        color TEXT,
        engine_type TEXT,
        transmission TEXT,
        odometer INTEGER DEFAULT 0,
        category TEXT DEFAULT 'Asian',
        notes TEXT,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY (customer_id) REFERENCES customers(id) ON DELETE CASCADE
    )""",

    # Suppliers
    """CREATE TABLE IF NOT EXISTS suppliers (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        contact_person TEXT,
        phone TEXT,
        email TEXT,
        address TEXT,
        notes TEXT,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )""",

    # Inventory (quantity has no floor; oversold stock goes negative)
    """CREATE TABLE IF NOT EXISTS inventory (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        sku TEXT UNIQUE,
        name TEXT NOT NULL,
        description TEXT,
        category TEXT,
        quantity INTEGER NOT NULL DEFAULT 0,
        min_stock INTEGER DEFAULT 5,
        cost_price REAL DEFAULT 0 CHECK (cost_price >= 0),
        sell_price REAL DEFAULT 0 CHECK (sell_price >= 0),
        supplier_id INTEGER,
        location TEXT,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY (supplier_id) REFERENCES suppliers(id) ON DELETE SET NULL
    )""",

    # Jobs / work orders
    """CREATE TABLE IF NOT EXISTS jobs (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        job_number TEXT NOT NULL UNIQUE,
        vehicle_id INTEGER NOT NULL,
        status TEXT NOT NULL DEFAULT 'pending'
            CHECK (status IN ('pending', 'in_progress', 'completed',
                              'invoiced', 'cancelled')),
        priority TEXT NOT NULL DEFAULT 'normal'
            CHECK (priority IN ('low', 'normal', 'high', 'urgent')),
        description TEXT,
        diagnosis TEXT,
        technician TEXT,
        odometer_in INTEGER,
        estimated_completion TIMESTAMP,
        labor_hours REAL NOT NULL DEFAULT 0 CHECK (labor_hours >= 0),
        labor_rate REAL NOT NULL DEFAULT 0 CHECK (labor_rate >= 0),
        labor_cost REAL NOT NULL DEFAULT 0,
        parts_cost REAL NOT NULL DEFAULT 0,
        total_cost REAL NOT NULL DEFAULT 0,
        warranty_until DATE,
        warranty_notes TEXT,
        notes TEXT,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        started_at TIMESTAMP,
        completed_at TIMESTAMP,
        FOREIGN KEY (vehicle_id) REFERENCES vehicles(id) ON DELETE RESTRICT
    )""",

    # Job items (service lines; not part of the job's total_cost)
    """CREATE TABLE IF NOT EXISTS job_items (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        job_id INTEGER NOT NULL,
        description TEXT NOT NULL,
        quantity REAL NOT NULL DEFAULT 1 CHECK (quantity >= 0),
        unit_price REAL NOT NULL DEFAULT 0 CHECK (unit_price >= 0),
        discount REAL NOT NULL DEFAULT 0 CHECK (discount >= 0),
        discount_type TEXT NOT NULL DEFAULT 'fixed'
            CHECK (discount_type IN ('fixed', 'percent')),
        total REAL NOT NULL DEFAULT 0,
        FOREIGN KEY (job_id) REFERENCES jobs(id) ON DELETE CASCADE
    )""",

    # Job parts (inventory_id is a weak reference)
    """CREATE TABLE IF NOT EXISTS job_parts (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        job_id INTEGER NOT NULL,
        inventory_id INTEGER,
        part_name TEXT NOT NULL,
        quantity INTEGER NOT NULL DEFAULT 1 CHECK (quantity >= 1),
        unit_price REAL NOT NULL DEFAULT 0 CHECK (unit_price >= 0),
        total REAL NOT NULL DEFAULT 0,
        FOREIGN KEY (job_id) REFERENCES jobs(id) ON DELETE CASCADE,
        FOREIGN KEY (inventory_id) REFERENCES inventory(id)
            ON DELETE SET NULL
    )""",

    # Stock movements (append-only, quantity is a positive magnitude)
    """CREATE TABLE IF NOT EXISTS stock_movements (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        inventory_id INTEGER NOT NULL,
        movement_type TEXT NOT NULL CHECK (movement_type IN ('in', 'out')),
        quantity INTEGER NOT NULL CHECK (quantity > 0),
        reference_type TEXT,
        reference_id INTEGER,
        notes TEXT,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY (inventory_id) REFERENCES inventory(id)
    )""",

    # Invoices
    """CREATE TABLE IF NOT EXISTS invoices (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        invoice_number TEXT NOT NULL UNIQUE,
        job_id INTEGER,
        customer_id INTEGER NOT NULL,
        subtotal REAL NOT NULL DEFAULT 0,
        tax_rate REAL NOT NULL DEFAULT 0,
        tax_amount REAL NOT NULL DEFAULT 0,
        discount REAL NOT NULL DEFAULT 0,
        total REAL NOT NULL DEFAULT 0,
        amount_paid REAL NOT NULL DEFAULT 0,
        balance REAL NOT NULL DEFAULT 0,
        status TEXT NOT NULL DEFAULT 'unpaid'
            CHECK (status IN ('unpaid', 'partial', 'paid')),
        due_date DATE,
        notes TEXT,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        paid_at TIMESTAMP,
        FOREIGN KEY (job_id) REFERENCES jobs(id),
        FOREIGN KEY (customer_id) REFERENCES customers(id)
    )""",

    # Payments (append-only)
    """CREATE TABLE IF NOT EXISTS payments (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        invoice_id INTEGER NOT NULL,
        amount REAL NOT NULL CHECK (amount > 0),
        payment_method TEXT NOT NULL DEFAULT 'cash'
            CHECK (payment_method IN ('cash', 'card', 'bank_transfer',
                                      'cheque', 'other')),
        reference TEXT,
        notes TEXT,
        idempotency_key TEXT UNIQUE,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY (invoice_id) REFERENCES invoices(id)
    )""",

    # Expenses
    """CREATE TABLE IF NOT EXISTS expenses (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        category TEXT NOT NULL,
        description TEXT,
        amount REAL NOT NULL CHECK (amount >= 0),
        payment_method TEXT DEFAULT 'cash',
        reference TEXT,
        expense_date DATE DEFAULT CURRENT_DATE,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )""",

    # Shop business settings (key/value)
    """CREATE TABLE IF NOT EXISTS settings (
        key TEXT PRIMARY KEY,
        value TEXT,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )""",

    # Audit log (append-only)
    """CREATE TABLE IF NOT EXISTS audit_log (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        table_name TEXT NOT NULL,
        record_id INTEGER NOT NULL,
        action TEXT NOT NULL CHECK (action IN ('create', 'update', 'delete')),
        old_data TEXT,
        new_data TEXT,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )""",

    # Service reminders
    """CREATE TABLE IF NOT EXISTS service_reminders (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        vehicle_id INTEGER NOT NULL,
        reminder_type TEXT NOT NULL
            CHECK (reminder_type IN ('mileage', 'time', 'custom')),
        due_mileage INTEGER,
        due_date DATE,
        description TEXT,
        status TEXT NOT NULL DEFAULT 'pending',
        notified_at TIMESTAMP,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY (vehicle_id) REFERENCES vehicles(id) ON DELETE CASCADE
    )""",

    # Users
    """CREATE TABLE IF NOT EXISTS users (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        username TEXT NOT NULL UNIQUE,
        password_hash TEXT NOT NULL,
        name TEXT NOT NULL,
        role TEXT NOT NULL DEFAULT 'staff'
            CHECK (role IN ('staff', 'admin', 'super_admin')),
        is_active INTEGER NOT NULL DEFAULT 1,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        last_login TIMESTAMP
    )""",

    # Schema version tracking
    """CREATE TABLE IF NOT EXISTS schema_version (
        version INTEGER PRIMARY KEY,
        applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )""",

    # Indexes
    "CREATE INDEX IF NOT EXISTS idx_vehicles_customer ON vehicles(customer_id)",
    "CREATE INDEX IF NOT EXISTS idx_vehicles_plate ON vehicles(plate_number)",
    "CREATE INDEX IF NOT EXISTS idx_jobs_vehicle ON jobs(vehicle_id)",
    "CREATE INDEX IF NOT EXISTS idx_jobs_status ON jobs(status)",
    "CREATE INDEX IF NOT EXISTS idx_job_items_job ON job_items(job_id)",
    "CREATE INDEX IF NOT EXISTS idx_job_parts_job ON job_parts(job_id)",
    "CREATE INDEX IF NOT EXISTS idx_inventory_sku ON inventory(sku)",
    "CREATE INDEX IF NOT EXISTS idx_movements_item "
    "ON stock_movements(inventory_id)",
    "CREATE INDEX IF NOT EXISTS idx_invoices_customer ON invoices(customer_id)",
    "CREATE INDEX IF NOT EXISTS idx_invoices_status ON invoices(status)",
    "CREATE INDEX IF NOT EXISTS idx_invoices_due_date ON invoices(due_date)",
    # At most one invoice per job
    "CREATE UNIQUE INDEX IF NOT EXISTS idx_invoices_job "
    "ON invoices(job_id) WHERE job_id IS NOT NULL",
    "CREATE INDEX IF NOT EXISTS idx_payments_invoice ON payments(invoice_id)",
    "CREATE INDEX IF NOT EXISTS idx_audit_table ON audit_log(table_name)",
    "CREATE INDEX IF NOT EXISTS idx_audit_record ON audit_log(record_id)",
    "CREATE INDEX IF NOT EXISTS idx_reminders_vehicle "
    "ON service_reminders(vehicle_id)",
    "CREATE INDEX IF NOT EXISTS idx_reminders_status "
    "ON service_reminders(status)",
    "CREATE INDEX IF NOT EXISTS idx_expenses_date ON expenses(expense_date)",

    # Timestamp triggers
    """CREATE TRIGGER IF NOT EXISTS update_customers_timestamp
    AFTER UPDATE ON customers
    WHEN NEW.updated_at = OLD.updated_at BEGIN
        UPDATE customers SET updated_at = CURRENT_TIMESTAMP WHERE id = NEW.id;
    END""",

    """CREATE TRIGGER IF NOT EXISTS update_vehicles_timestamp
    AFTER UPDATE ON vehicles
    WHEN NEW.updated_at = OLD.updated_at BEGIN
        UPDATE vehicles SET updated_at = CURRENT_TIMESTAMP WHERE id = NEW.id;
    END""",

    """CREATE TRIGGER IF NOT EXISTS update_inventory_timestamp
    AFTER UPDATE ON inventory
    WHEN NEW.updated_at = OLD.updated_at BEGIN
        UPDATE inventory SET updated_at = CURRENT_TIMESTAMP WHERE id = NEW.id;
    END""",

    """CREATE TRIGGER IF NOT EXISTS update_jobs_timestamp AFTER UPDATE ON jobs
    WHEN NEW.updated_at = OLD.updated_at BEGIN
        UPDATE jobs SET updated_at = CURRENT_TIMESTAMP WHERE id = NEW.id;
    END""",

    """CREATE TRIGGER IF NOT EXISTS update_users_timestamp AFTER UPDATE ON users
    WHEN NEW.updated_at = OLD.updated_at BEGIN
        UPDATE users SET updated_at = CURRENT_TIMESTAMP WHERE id = NEW.id;
    END""",

    f"INSERT OR IGNORE INTO schema_version (version) VALUES ({SCHEMA_VERSION})",
]

# Default shop settings; labor_rate_<category> overrides labor_rate
DEFAULT_SETTINGS = [
    ("business_name", "Knight Auto Works"),
    ("currency", "LKR"),
    ("currency_symbol", "Rs."),
    ("tax_rate", "0"),
    ("labor_rate", "1500"),
    ("labor_rate_asian", "1500"),
    ("labor_rate_european", "2500"),
    ("labor_rate_american", "2000"),
    ("labor_rate_indian", "1200"),
    ("job_prefix", "KAW"),
    ("invoice_prefix", "INV"),
]


def _get_schema_version(conn) -> int:
    """Get the current schema version, or 0 if no schema exists."""
    try:
        row = conn.execute(
            "SELECT MAX(version) as v FROM schema_version"
        ).fetchone()
        return row["v"] if row and row["v"] else 0
    except sqlite3.OperationalError:
        return 0


def initialize_database(db_connection):
    """Create all tables, indexes, triggers, and seed settings.

    Safe to call on every start: statements are idempotent and seeded
    settings never overwrite values an operator has changed.
    """
    with db_connection.get_connection() as conn:
        version = _get_schema_version(conn)

        if version < SCHEMA_VERSION:
            for stmt in _SCHEMA_STATEMENTS:
                conn.execute(stmt)

        for key, value in DEFAULT_SETTINGS:
            conn.execute(
                "INSERT OR IGNORE INTO settings (key, value) VALUES (?, ?)",
                (key, value),
            )
