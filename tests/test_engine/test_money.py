"""Tests for money arithmetic helpers."""

import pytest

from autoshop.engine.money import (
    balance_for,
    discounted_total,
    invoice_status_for,
    line_total,
    round_money,
    tax_for,
)


class TestRoundMoney:
    def test_rounds_half_up(self):
        assert round_money(2.675) == 2.68
        assert round_money(0.125) == 0.13

    def test_float_noise_removed(self):
        assert round_money(0.1 + 0.2) == 0.3

    def test_whole_numbers_unchanged(self):
        assert round_money(1500) == 1500.0


class TestDiscountedTotal:
    """Service line totals after discounts."""

    def test_percent_discount(self):
        assert discounted_total(2, 100, 10, "percent") == 180.0

    def test_fixed_discount(self):
        assert discounted_total(2, 100, 25, "fixed") == 175.0

    def test_no_discount(self):
        assert discounted_total(3, 33.33) == 99.99

    def test_never_below_zero(self):
        assert discounted_total(1, 50, 80, "fixed") == 0.0
        assert discounted_total(1, 50, 150, "percent") == 0.0


class TestInvoiceMath:
    def test_line_total(self):
        assert line_total(2, 500) == 1000.0

    def test_tax_is_a_percentage(self):
        assert tax_for(5000, 10) == 500.0
        assert tax_for(5000, 0) == 0.0

    def test_balance_floors_at_zero(self):
        assert balance_for(5500, 3000) == 2500.0
        assert balance_for(5500, 6000) == 0.0

    @pytest.mark.parametrize("balance,paid,expected", [
        (5500, 0, "unpaid"),
        (2500, 3000, "partial"),
        (0, 5500, "paid"),
        (0, 0, "paid"),
    ])
    def test_status_follows_balance(self, balance, paid, expected):
        assert invoice_status_for(balance, paid) == expected
