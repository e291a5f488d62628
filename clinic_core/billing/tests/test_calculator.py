# clinic_core/billing/tests/test_calculator.py
from decimal import Decimal

import pytest

from clinic_core.billing import calculator
from clinic_core.billing.models import ReportStatus
from clinic_core.common.api.exceptions import ValidationError


def test_single_service_at_sixteen_percent():
    totals = calculator.compute_totals([{"quantity": "1", "unit_price": "1000"}])

    assert totals.subtotal == Decimal("1000.00")
    assert totals.tax == Decimal("160.00")
    assert totals.discount == Decimal("0.00")
    assert totals.total == Decimal("1160.00")
    assert totals.pending_amount == Decimal("1160.00")


def test_lines_are_rounded_before_summing():
    totals = calculator.compute_totals(
        [
            {"quantity": "3", "unit_price": "19.99"},
            {"quantity": "0.5", "unit_price": "0.05"},  # 0.025 -> 0.03
        ]
    )

    assert totals.subtotal == Decimal("60.00")
    assert totals.tax == Decimal("9.60")
    assert totals.total == Decimal("69.60")


def test_tax_rounds_half_up_to_cents():
    assert calculator.compute_tax(Decimal("0.04")) == Decimal("0.01")  # 0.0064
    assert calculator.compute_tax(Decimal("0.03")) == Decimal("0.00")  # 0.0048
    assert calculator.compute_tax(Decimal("10.03")) == Decimal("1.60")  # 1.6048


def test_zero_quantity_line_contributes_nothing():
    totals = calculator.compute_totals(
        [
            {"quantity": "0", "unit_price": "850.00"},
            {"quantity": "2", "unit_price": "100.00"},
        ]
    )
    assert totals.subtotal == Decimal("200.00")


def test_empty_services_are_all_zero():
    totals = calculator.compute_totals([])
    assert totals.as_fields() == {
        "subtotal": Decimal("0.00"),
        "tax": Decimal("0.00"),
        "discount": Decimal("0.00"),
        "total": Decimal("0.00"),
        "paid_amount": Decimal("0.00"),
        "pending_amount": Decimal("0.00"),
    }


def test_discount_up_to_subtotal_plus_tax_is_allowed():
    totals = calculator.compute_totals([{"quantity": "1", "unit_price": "100"}], discount="116.00")
    assert totals.total == Decimal("0.00")

    totals = calculator.compute_totals([{"quantity": "1", "unit_price": "100"}], discount="16.00")
    assert totals.total == Decimal("100.00")


@pytest.mark.parametrize("discount", ["-0.01", "116.01"])
def test_discount_out_of_range_is_rejected(discount):
    with pytest.raises(ValidationError):
        calculator.compute_totals([{"quantity": "1", "unit_price": "100"}], discount=discount)


@pytest.mark.parametrize(
    "line",
    [
        {"quantity": "-1", "unit_price": "10"},
        {"quantity": "1", "unit_price": "-10"},
        {"quantity": "abc", "unit_price": "10"},
    ],
)
def test_malformed_lines_are_rejected(line):
    with pytest.raises(ValidationError):
        calculator.compute_totals([line])


def test_pending_amount_never_goes_negative():
    assert calculator.pending_amount(Decimal("100.00"), Decimal("150.00")) == Decimal("0.00")
    assert calculator.pending_amount(Decimal("100.00"), Decimal("40.00")) == Decimal("60.00")


def test_paid_amount_flows_into_pending():
    totals = calculator.compute_totals([{"quantity": "1", "unit_price": "1000"}], paid_amount="500")
    assert totals.paid_amount == Decimal("500.00")
    assert totals.pending_amount == Decimal("660.00")


def test_same_inputs_give_same_outputs():
    services = [{"quantity": "1.5", "unit_price": "333.33"}, {"quantity": "7", "unit_price": "0.1"}]
    first = calculator.compute_totals(services, discount="12.34")
    for _ in range(50):
        assert calculator.compute_totals(services, discount="12.34") == first


def test_floats_are_read_through_their_decimal_text():
    assert calculator.to_money(0.1) == Decimal("0.10")
    assert calculator.to_money(2.675) == Decimal("2.68")


def test_derive_settlement_status():
    assert calculator.derive_settlement_status(Decimal("100.00"), Decimal("0.00")) is None
    assert calculator.derive_settlement_status(Decimal("100.00"), Decimal("40.00")) == ReportStatus.PARTIALLY_PAID
    assert calculator.derive_settlement_status(Decimal("100.00"), Decimal("100.00")) == ReportStatus.PAID


def test_quick_payment_options_for_large_balance():
    options = calculator.quick_payment_options(Decimal("1160.00"))

    assert [o["key"] for o in options] == ["pay_all", "half", "increment"]
    assert options[0]["amount"] == Decimal("1160.00")
    assert options[1]["amount"] == Decimal("580.00")
    assert options[2]["amount"] == Decimal("500.00")


def test_quick_payment_half_is_rounded():
    options = {o["key"]: o["amount"] for o in calculator.quick_payment_options(Decimal("300.01"))}
    assert options == {"pay_all": Decimal("300.01"), "half": Decimal("150.01")}


def test_quick_payment_small_balance_only_offers_pay_all():
    options = calculator.quick_payment_options(Decimal("150.00"))
    assert options == [{"key": "pay_all", "label": "Pay remaining balance", "amount": Decimal("150.00")}]


def test_quick_payment_nothing_pending():
    assert calculator.quick_payment_options(Decimal("0.00")) == []
