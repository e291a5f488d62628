# clinic_core/billing/calculator.py
"""
Money and tax arithmetic for billing reports.

Pure functions over Decimal. Every intermediate value is quantized to cents
(ROUND_HALF_UP) at the step where it is produced, so the same inputs always
yield the same outputs and the report invariants hold exactly:

    total   = subtotal + tax - discount
    tax     = round(subtotal * rate, 2)
    pending = max(total - paid, 0)
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Iterable, Mapping

from django.conf import settings

from clinic_core.billing.models import ReportStatus
from clinic_core.common.api.exceptions import ValidationError

CENT = Decimal("0.01")
ZERO = Decimal("0.00")
HALF = Decimal("0.5")


def to_money(value: Any, *, field: str = "amount") -> Decimal:
    """
    Coerce int/str/Decimal into a 2-decimal Decimal.
    Floats go through str() so 0.1 stays 0.10 rather than its binary expansion.
    """
    if isinstance(value, Decimal):
        d = value
    else:
        try:
            d = Decimal(str(value))
        except (InvalidOperation, TypeError, ValueError):
            raise ValidationError({field: f"Invalid amount: {value!r}"})
    if not d.is_finite():
        raise ValidationError({field: f"Invalid amount: {value!r}"})
    return d.quantize(CENT, rounding=ROUND_HALF_UP)


def tax_rate() -> Decimal:
    return Decimal(str(settings.BILLING.get("TAX_RATE", "0.16")))


@dataclass(frozen=True)
class Totals:
    subtotal: Decimal
    tax: Decimal
    discount: Decimal
    total: Decimal
    paid_amount: Decimal
    pending_amount: Decimal

    def as_fields(self) -> dict[str, Decimal]:
        return {
            "subtotal": self.subtotal,
            "tax": self.tax,
            "discount": self.discount,
            "total": self.total,
            "paid_amount": self.paid_amount,
            "pending_amount": self.pending_amount,
        }


def line_total(quantity: Any, unit_price: Any) -> Decimal:
    qty = to_money(quantity, field="quantity")
    price = to_money(unit_price, field="unit_price")
    if qty < 0:
        raise ValidationError({"quantity": "Quantity must be >= 0."})
    if price < 0:
        raise ValidationError({"unit_price": "Unit price must be >= 0."})
    return (qty * price).quantize(CENT, rounding=ROUND_HALF_UP)


def _line_value(line: Any, name: str) -> Any:
    if isinstance(line, Mapping):
        return line.get(name)
    return getattr(line, name)


def compute_subtotal(services: Iterable[Any]) -> Decimal:
    subtotal = ZERO
    for line in services:
        subtotal += line_total(_line_value(line, "quantity"), _line_value(line, "unit_price"))
    return subtotal.quantize(CENT)


def compute_tax(subtotal: Decimal, rate: Decimal | None = None) -> Decimal:
    r = tax_rate() if rate is None else Decimal(str(rate))
    if r < 0:
        raise ValidationError({"tax_rate": "Tax rate must be >= 0."})
    return (subtotal * r).quantize(CENT, rounding=ROUND_HALF_UP)


def pending_amount(total: Decimal, paid_amount: Decimal) -> Decimal:
    return max(to_money(total) - to_money(paid_amount), ZERO)


def compute_totals(
    services: Iterable[Any],
    discount: Any = ZERO,
    rate: Decimal | None = None,
    paid_amount: Any = ZERO,
) -> Totals:
    """
    `services` items may be model instances or dicts with quantity/unit_price.
    A zero-quantity line contributes nothing and is not an error.
    """
    subtotal = compute_subtotal(services)
    tax = compute_tax(subtotal, rate)

    disc = to_money(discount, field="discount")
    if disc < 0:
        raise ValidationError({"discount": "Discount must be >= 0."})
    if disc > subtotal + tax:
        raise ValidationError({"discount": "Discount cannot exceed subtotal plus tax."})

    paid = to_money(paid_amount, field="paid_amount")
    total = max(subtotal + tax - disc, ZERO)

    return Totals(
        subtotal=subtotal,
        tax=tax,
        discount=disc,
        total=total,
        paid_amount=paid,
        pending_amount=pending_amount(total, paid),
    )


def derive_settlement_status(total: Decimal, paid_amount: Decimal) -> str | None:
    """
    Settlement status implied by the balance, or None when nothing was paid yet.
    """
    if paid_amount <= 0:
        return None
    if pending_amount(total, paid_amount) == ZERO:
        return ReportStatus.PAID
    return ReportStatus.PARTIALLY_PAID


def quick_payment_options(pending: Any) -> list[dict[str, Any]]:
    """
    Suggested payment amounts for a balance. Derived on the fly, never stored.
    """
    balance = to_money(pending)
    if balance <= 0:
        return []

    cfg = settings.BILLING
    half_threshold = to_money(cfg.get("QUICK_PAYMENT_HALF_THRESHOLD", "200.00"))
    increment = to_money(cfg.get("QUICK_PAYMENT_INCREMENT", "500.00"))

    options: list[dict[str, Any]] = [{"key": "pay_all", "label": "Pay remaining balance", "amount": balance}]

    if balance > half_threshold:
        options.append(
            {
                "key": "half",
                "label": "50%",
                "amount": (balance * HALF).quantize(CENT, rounding=ROUND_HALF_UP),
            }
        )

    if ZERO < increment < balance:
        options.append({"key": "increment", "label": f"{increment}", "amount": increment})

    return options
