from decimal import Decimal

import pytest

from crud.bills import compute_totals, format_bill_number
from exceptions import ValidationError
from schemas.bills import BillItemCreate
from utils.formatting import format_currency, to_money


def line(quantity, unit_price, description="Consultation"):
    return BillItemCreate(description=description, quantity=quantity, unit_price=Decimal(unit_price))


def test_two_lines_with_ten_percent_tax():
    totals = compute_totals([line(2, "10"), line(1, "5")], tax_percent=10, discount_percent=0)

    assert totals.subtotal == Decimal("25.00")
    assert totals.tax == Decimal("2.50")
    assert totals.discount == Decimal("0.00")
    assert totals.total == Decimal("27.50")
    assert [l.total for l in totals.items] == [Decimal("20.00"), Decimal("5.00")]


def test_discount_is_subtracted_from_subtotal_plus_tax():
    totals = compute_totals([line(1, "200")], tax_percent=5, discount_percent=10)

    assert totals.tax == Decimal("10.00")
    assert totals.discount == Decimal("20.00")
    assert totals.total == Decimal("190.00")


def test_amounts_round_half_up_to_cents():
    # 0.125 would become 0.12 under banker's rounding
    totals = compute_totals([line(1, "1.25")], tax_percent=10)

    assert totals.tax == Decimal("0.13")
    assert totals.total == Decimal("1.38")


def test_float_inputs_do_not_leak_binary_noise():
    totals = compute_totals([line(3, "0.10")], tax_percent=Decimal("12.5"))

    assert totals.subtotal == Decimal("0.30")
    assert totals.tax == Decimal("0.04")


def test_no_items_gives_zero_totals():
    totals = compute_totals([], tax_percent=18, discount_percent=5)

    assert totals.subtotal == Decimal("0.00")
    assert totals.total == Decimal("0.00")
    assert totals.items == []


@pytest.mark.parametrize("tax, discount", [(-1, 0), (0, 101), ("abc", 0)])
def test_out_of_range_percentages_are_rejected(tax, discount):
    with pytest.raises(ValidationError):
        compute_totals([line(1, "10")], tax_percent=tax, discount_percent=discount)


def test_bill_number_is_zero_padded():
    assert format_bill_number(1) == "BILL-000001"
    assert format_bill_number(1234567) == "BILL-1234567"


def test_money_helpers():
    assert to_money(None) == Decimal("0.00")
    assert to_money(2.675) == Decimal("2.68")
    assert format_currency(Decimal("1234.5"), symbol="₹") == "₹1,234.50"
    assert format_currency(Decimal("-3")) == "-3.00"
