# Overview: Pytest coverage for the pure pricing calculator and balance math.

from decimal import Decimal

import pytest

from clinicpos.errors import ValidationError
from clinicpos.services.payment_service import compute_balance
from clinicpos.services.pricing_service import (
    LineInput,
    price_document,
    price_line,
    round_money,
    totals_consistent,
)


D = Decimal


class TestRoundMoney:

    def test_rounds_half_up(self):
        assert round_money("2.345") == D("2.35")
        assert round_money("2.344") == D("2.34")
        assert round_money(0.1 + 0.2) == D("0.30")


class TestPriceLine:

    def test_plain_line(self):
        totals = price_line(LineInput(unit_price=D("50.00"), quantity=2))
        assert totals.gross == D("100.00")
        assert totals.discount_amount == D("0.00")
        assert totals.total == D("100.00")

    def test_percentage_discount(self):
        totals = price_line(LineInput(unit_price=D("19.99"), quantity=3, discount_percentage=D("15")))
        assert totals.gross == D("59.97")
        assert totals.discount_amount == D("9.00")
        assert totals.total == D("50.97")

    def test_explicit_amount_wins_over_percentage(self):
        totals = price_line(LineInput(
            unit_price=D("50.00"), quantity=2, discount_amount=D("5.00"), discount_percentage=D("50")
        ))
        assert totals.discount_amount == D("5.00")
        assert totals.discount_percentage == D("5.0000")

    def test_discount_above_line_amount_rejected(self):
        with pytest.raises(ValidationError):
            price_line(LineInput(unit_price=D("10.00"), quantity=1, discount_amount=D("10.01")))

    def test_quantity_must_be_positive(self):
        with pytest.raises(ValidationError) as exc:
            price_line(LineInput(unit_price=D("10.00"), quantity=0))
        assert exc.value.field == "quantity"


class TestPriceDocument:

    def test_tax_applies_after_discount(self):
        totals = price_document(
            [LineInput(unit_price=D("50.00"), quantity=2)],
            document_discount=D("10.00"),
            tax_rate=D("0.19"),
        )
        assert totals.subtotal == D("100.00")
        assert totals.discount_amount == D("10.00")
        assert totals.tax_amount == D("17.10")
        assert totals.total == D("107.10")
        assert totals_consistent(totals.subtotal, totals.discount_amount, totals.tax_amount, totals.total)

    def test_same_lines_same_totals(self):
        lines = [
            LineInput(unit_price=D("33.33"), quantity=3, discount_percentage=D("10")),
            LineInput(unit_price=D("120.00"), quantity=1),
        ]
        assert price_document(lines, tax_rate=D("0.19")) == price_document(list(lines), tax_rate=D("0.19"))

    def test_discount_cannot_exceed_subtotal(self):
        with pytest.raises(ValidationError):
            price_document([LineInput(unit_price=D("10.00"), quantity=1)], document_discount=D("11"), tax_rate=0)


class TestTotalsConsistent:

    def test_consistent(self):
        assert totals_consistent("100.00", "10.00", "19.00", "109.00")

    def test_inconsistent(self):
        assert not totals_consistent("100.00", "10.00", "19.00", "110.00")


class TestComputeBalance:

    def test_pending_partial_paid(self):
        assert compute_balance(D("109.00"), []).payment_status == "pending"

        partial = compute_balance(D("109.00"), [D("50.00")])
        assert (partial.amount_paid, partial.balance, partial.payment_status) == (D("50.00"), D("59.00"), "partial")

        paid = compute_balance(D("109.00"), [D("50.00"), D("59.00")])
        assert (paid.amount_paid, paid.balance, paid.payment_status) == (D("109.00"), D("0.00"), "paid")

    def test_order_independent(self):
        amounts = [D("10.10"), D("20.20"), D("0.01"), D("45.00")]
        assert compute_balance(D("100"), amounts) == compute_balance(D("100"), list(reversed(amounts)))

    def test_overpayment_is_negative_balance(self):
        state = compute_balance(D("100.00"), [D("120.00")])
        assert state.balance == D("-20.00")
        assert state.payment_status == "paid"
