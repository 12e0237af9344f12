"""Money and quantity arithmetic shared by the engines."""

from decimal import ROUND_HALF_UP, Decimal

_CENT = Decimal("0.01")


def round_money(value: float) -> float:
    """Round half-up to two decimal places."""
    return float(Decimal(str(value)).quantize(_CENT, rounding=ROUND_HALF_UP))


def clamp_non_negative(value: float) -> float:
    return value if value > 0 else 0.0


def line_total(quantity: float, unit_price: float) -> float:
    return round_money(quantity * unit_price)


def discounted_total(quantity: float, unit_price: float,
                     discount: float = 0.0,
                     discount_type: str = "fixed") -> float:
    """Service line total after discount, never below zero.

    A ``percent`` discount takes that share of the line subtotal; a
    ``fixed`` discount is subtracted as-is.
    """
    subtotal = quantity * unit_price
    if discount_type == "percent":
        discount_amount = subtotal * discount / 100
    else:
        discount_amount = discount
    return round_money(clamp_non_negative(subtotal - discount_amount))


def tax_for(subtotal: float, tax_rate: float) -> float:
    """Tax on ``subtotal`` at ``tax_rate`` percent."""
    return round_money(subtotal * tax_rate / 100)


def balance_for(total: float, amount_paid: float) -> float:
    """Outstanding balance; overpayment floors at zero."""
    return round_money(clamp_non_negative(total - amount_paid))


def invoice_status_for(balance: float, amount_paid: float) -> str:
    if balance <= 0:
        return "paid"
    if amount_paid > 0:
        return "partial"
    return "unpaid"
