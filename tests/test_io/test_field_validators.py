"""Tests for field validation rules and entity schemas."""

import pytest

from autoshop.io.validators import (
    SCHEMAS,
    email,
    integer,
    min_length,
    one_of,
    phone,
    positive_number,
    required,
    valid_date,
    validate,
)


class TestRules:
    @pytest.mark.parametrize("value", [None, "", "   "])
    def test_required_rejects_empty(self, value):
        assert required(value, "Name") == "Name is required"

    def test_required_accepts_zero(self):
        assert required(0, "Amount") is None

    def test_email(self):
        assert email("nimal@example.lk") is None
        assert email("not-an-email") is not None
        assert email("") is None

    def test_phone(self):
        assert phone("+94 77 123-4567") is None
        assert phone("(011) 2345678") is None
        assert phone("12") is not None
        assert phone("call me") is not None

    def test_positive_number(self):
        assert positive_number(0, "Amount") is None
        assert positive_number("12.5", "Amount") is None
        assert positive_number(-1, "Amount") == "Amount must be a positive number"
        assert positive_number("abc", "Amount") is not None
        assert positive_number(True, "Amount") is not None

    @pytest.mark.parametrize("value", ["inf", "-inf", "1e999", float("inf")])
    def test_positive_number_rejects_infinity(self, value):
        assert positive_number(value, "Amount") == "Amount must be a positive number"

    def test_integer(self):
        assert integer("7", "Year") is None
        assert integer(7.0, "Year") is None
        assert integer(7.5, "Year") == "Year must be a whole number"

    def test_one_of(self):
        assert one_of("card", ["cash", "card"], "Method") is None
        assert one_of("iou", ["cash", "card"], "Method") == (
            "Method must be one of: cash, card"
        )

    def test_min_length_strips(self):
        assert min_length(" a ", 2, "Name") is not None
        assert min_length("ab", 2, "Name") is None

    def test_valid_date(self):
        assert valid_date("2025-03-14") is None
        assert valid_date("14/03/2025") == "Date is not a valid date"


class TestValidate:
    def test_first_failing_rule_per_field(self):
        errors = validate({"name": ""}, SCHEMAS["customer"])
        assert errors == ["Name is required"]

    def test_valid_customer(self):
        assert validate({"name": "Nimal", "email": "n@example.lk"},
                        SCHEMAS["customer"]) == []

    def test_partial_skips_absent_fields(self):
        assert validate({"priority": "high"}, SCHEMAS["job"],
                        partial=True) == []
        assert validate({"priority": "high"}, SCHEMAS["job"]) == [
            "Vehicle is required"
        ]

    def test_reminder_type_enum(self):
        errors = validate({"vehicle_id": 1, "reminder_type": "weekly"},
                          SCHEMAS["serviceReminder"])
        assert errors == ["Reminder type must be one of: mileage, time, custom"]

    def test_job_item_discount_type(self):
        errors = validate({"description": "Tune up", "discount_type": "bogo"},
                          SCHEMAS["jobItem"])
        assert errors == ["Discount type must be one of: fixed, percent"]

    def test_inventory_quantity_whole_and_non_negative(self):
        assert validate({"name": "Filter", "quantity": "-1"},
                        SCHEMAS["inventory"]) == [
            "Quantity must be a positive number"
        ]
        assert validate({"name": "Filter", "quantity": "1.5"},
                        SCHEMAS["inventory"]) == [
            "Quantity must be a whole number"
        ]
