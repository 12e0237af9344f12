"""Application-wide constants."""

APP_NAME = "AutoShop"
APP_VERSION = "1.0.0"

# Job statuses and the allowed moves between them
JOB_STATUSES = ["pending", "in_progress", "completed", "invoiced", "cancelled"]

JOB_STATUS_TRANSITIONS = {
    "pending": ["in_progress", "cancelled"],
    "in_progress": ["pending", "completed", "cancelled"],
    "completed": ["in_progress", "invoiced"],
    "invoiced": [],  # terminal
    "cancelled": ["pending"],
}

# Statuses that block deleting the job's vehicle or customer
OPEN_JOB_STATUSES = ["pending", "in_progress"]

JOB_PRIORITIES = ["low", "normal", "high", "urgent"]

DISCOUNT_TYPES = ["fixed", "percent"]

# Stock movements
MOVEMENT_TYPES = ["in", "out"]
REFERENCE_JOB = "job"
REFERENCE_MANUAL = "manual"

# Invoicing
INVOICE_STATUSES = ["unpaid", "partial", "paid"]
PAYMENT_METHODS = ["cash", "card", "bank_transfer", "cheque", "other"]

# Service reminders
REMINDER_TYPES = ["mileage", "time", "custom"]
REMINDER_STATUSES = ["pending", "notified", "completed", "dismissed"]

# Vehicles
VEHICLE_CATEGORIES = ["Asian", "European", "American", "Indian"]

# Audit
AUDIT_ACTIONS = ["create", "update", "delete"]

# ── Users & roles ────────────────────────────────────────────────
# Ordered by privilege level (lowest first)
USER_ROLES = ["staff", "admin", "super_admin"]

# Which account roles each role may create or edit
ROLE_MANAGES = {
    "super_admin": ["super_admin", "admin", "staff"],
    "admin": ["staff"],
    "staff": [],
}

# Revenue report groupings
REVENUE_PERIODS = ["daily", "weekly", "monthly"]


def can_transition_job_status(current: str, new: str) -> bool:
    """Whether a job may move from ``current`` to ``new`` status."""
    if current == new:
        return True
    return new in JOB_STATUS_TRANSITIONS.get(current, [])
