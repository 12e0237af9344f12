"""Field validation rules and per-entity schemas for incoming data.

Each rule returns an error string, or None when the value passes.
Rules other than ``required`` treat an empty value as valid so optional
fields may be omitted.
"""

import math
import re
from datetime import date, datetime

from autoshop.utils.constants import (
    DISCOUNT_TYPES,
    JOB_PRIORITIES,
    JOB_STATUSES,
    MOVEMENT_TYPES,
    PAYMENT_METHODS,
    REMINDER_TYPES,
)

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_PHONE_RE = re.compile(r"^[\d\s\-+()]{7,20}$")


def _is_empty(value) -> bool:
    return value is None or (isinstance(value, str) and value.strip() == "")


def required(value, field_name: str):
    if _is_empty(value):
        return f"{field_name} is required"
    return None


def email(value, field_name: str = "Email"):
    if _is_empty(value):
        return None
    if not _EMAIL_RE.match(str(value)):
        return f"{field_name} is not a valid email address"
    return None


def phone(value, field_name: str = "Phone"):
    if _is_empty(value):
        return None
    if not _PHONE_RE.match(str(value)):
        return f"{field_name} is not a valid phone number"
    return None


def positive_number(value, field_name: str):
    """Zero or greater."""
    if _is_empty(value):
        return None
    if isinstance(value, bool):
        return f"{field_name} must be a positive number"
    try:
        num = float(value)
    except (ValueError, TypeError):
        return f"{field_name} must be a positive number"
    if not math.isfinite(num) or num < 0:
        return f"{field_name} must be a positive number"
    return None


def integer(value, field_name: str):
    if _is_empty(value):
        return None
    if isinstance(value, bool):
        return f"{field_name} must be a whole number"
    try:
        num = float(value)
    except (ValueError, TypeError):
        return f"{field_name} must be a whole number"
    if not num.is_integer():
        return f"{field_name} must be a whole number"
    return None


def one_of(value, allowed: list, field_name: str):
    if _is_empty(value):
        return None
    if value not in allowed:
        return f"{field_name} must be one of: {', '.join(allowed)}"
    return None


def min_length(value, minimum: int, field_name: str):
    if _is_empty(value):
        return None
    if len(str(value).strip()) < minimum:
        return f"{field_name} must be at least {minimum} characters"
    return None


def valid_date(value, field_name: str = "Date"):
    if _is_empty(value) or isinstance(value, (date, datetime)):
        return None
    try:
        datetime.fromisoformat(str(value))
    except ValueError:
        return f"{field_name} is not a valid date"
    return None


SCHEMAS = {
    "customer": {
        "name": [lambda v: required(v, "Name"),
                 lambda v: min_length(v, 2, "Name")],
        "email": [lambda v: email(v)],
        "phone": [lambda v: phone(v)],
    },
    "vehicle": {
        "customer_id": [lambda v: required(v, "Customer"),
                        lambda v: integer(v, "Customer ID")],
        "plate_number": [lambda v: required(v, "Plate number"),
                         lambda v: min_length(v, 2, "Plate number")],
        "make": [lambda v: required(v, "Make")],
        "model": [lambda v: required(v, "Model")],
        "year": [lambda v: integer(v, "Year")],
        "odometer": [lambda v: positive_number(v, "Odometer")],
    },
    "job": {
        "vehicle_id": [lambda v: required(v, "Vehicle"),
                       lambda v: integer(v, "Vehicle ID")],
        "priority": [lambda v: one_of(v, JOB_PRIORITIES, "Priority")],
        "status": [lambda v: one_of(v, JOB_STATUSES, "Status")],
        "labor_hours": [lambda v: positive_number(v, "Labor hours")],
        "labor_rate": [lambda v: positive_number(v, "Labor rate")],
    },
    "inventory": {
        "name": [lambda v: required(v, "Name")],
        "quantity": [lambda v: integer(v, "Quantity"),
                     lambda v: positive_number(v, "Quantity")],
        "min_stock": [lambda v: integer(v, "Minimum stock")],
        "cost_price": [lambda v: positive_number(v, "Cost price")],
        "sell_price": [lambda v: positive_number(v, "Sell price")],
    },
    "stockAdjustment": {
        "movement_type": [
            lambda v: required(v, "Movement type"),
            lambda v: one_of(v, MOVEMENT_TYPES, "Movement type"),
        ],
        "quantity": [lambda v: required(v, "Quantity"),
                     lambda v: integer(v, "Quantity"),
                     lambda v: positive_number(v, "Quantity")],
    },
    "supplier": {
        "name": [lambda v: required(v, "Name")],
        "email": [lambda v: email(v)],
        "phone": [lambda v: phone(v)],
    },
    "invoice": {
        "customer_id": [lambda v: required(v, "Customer"),
                        lambda v: integer(v, "Customer ID")],
        "subtotal": [lambda v: positive_number(v, "Subtotal")],
        "tax_rate": [lambda v: positive_number(v, "Tax rate")],
        "discount": [lambda v: positive_number(v, "Discount")],
        "due_date": [lambda v: valid_date(v, "Due date")],
    },
    "payment": {
        "amount": [lambda v: required(v, "Amount"),
                   lambda v: positive_number(v, "Amount")],
        "payment_method": [
            lambda v: one_of(v, PAYMENT_METHODS, "Payment method"),
        ],
    },
    "expense": {
        "category": [lambda v: required(v, "Category")],
        "amount": [lambda v: required(v, "Amount"),
                   lambda v: positive_number(v, "Amount")],
        "expense_date": [lambda v: valid_date(v, "Expense date")],
    },
    "serviceReminder": {
        "vehicle_id": [lambda v: required(v, "Vehicle"),
                       lambda v: integer(v, "Vehicle ID")],
        "reminder_type": [
            lambda v: required(v, "Reminder type"),
            lambda v: one_of(v, REMINDER_TYPES, "Reminder type"),
        ],
        "due_mileage": [lambda v: positive_number(v, "Due mileage")],
        "due_date": [lambda v: valid_date(v, "Due date")],
    },
    "jobItem": {
        "description": [lambda v: required(v, "Description"),
                        lambda v: min_length(v, 2, "Description")],
        "quantity": [lambda v: positive_number(v, "Quantity")],
        "unit_price": [lambda v: positive_number(v, "Unit price")],
        "discount": [lambda v: positive_number(v, "Discount")],
        "discount_type": [
            lambda v: one_of(v, DISCOUNT_TYPES, "Discount type"),
        ],
    },
    "jobPart": {
        "part_name": [lambda v: required(v, "Part name")],
        "quantity": [lambda v: positive_number(v, "Quantity")],
        "unit_price": [lambda v: positive_number(v, "Unit price")],
        "inventory_id": [lambda v: integer(v, "Inventory ID")],
    },
}


def validate(data: dict, schema: dict, partial: bool = False) -> list[str]:
    """Check ``data`` against a schema. Returns list of error strings.

    Only the first failing rule of each field is reported. With
    ``partial=True`` fields absent from ``data`` are skipped, which is
    how updates that send a subset of fields are checked.
    """
    errors = []
    for field_name, rules in schema.items():
        if partial and field_name not in data:
            continue
        value = data.get(field_name)
        for rule in rules:
            error = rule(value)
            if error:
                errors.append(error)
                break
    return errors
