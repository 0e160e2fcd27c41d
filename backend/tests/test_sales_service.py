# Overview: Pytest coverage for orders, sale registration and the sale lifecycle.

"""
Sales Tests

Covers:
1. Registering a sale from an order (items, totals, initial payments, lab order)
2. Lifecycle axis (complete / cancel) independent of payment status
3. Summary and stats
4. Orders derived from quotes (one conversion per quote)
"""

import warnings
from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy.exc import SAWarning

from clinicpos.errors import AlreadyConverted, InvalidStateTransition, NotFoundError, QuoteExpired, ValidationError
from clinicpos.extensions import db
from clinicpos.models import LaboratoryOrder, Order, Quote, Sale, SalePayment
from clinicpos.services import order_service, payment_service, quote_service, sales_service
from clinicpos.services.concurrency import unit_of_work
from clinicpos.time_utils import today

from conftest import ACTOR_ID, create_q1


D = Decimal


def _order(patient, *items, **extra) -> Order:
    payload = {"patient_id": patient.id, "items": list(items), **extra}
    with unit_of_work():
        order = order_service.create_order(payload, ACTOR_ID)
    return order


def _line(item_type, item_id, quantity=1):
    return {"item_type": item_type, "item_id": item_id, "quantity": quantity}


class TestCreateOrder:

    def test_priced_from_catalog(self, db_session, patient, product, lens):
        order = _order(patient, _line("product", product.id, 2), _line("lens", lens.id))

        assert order.order_number.startswith("ORD-")
        assert order.subtotal == D("220.00")
        assert order.tax_amount == D("41.80")
        assert order.total == D("261.80")
        assert order.status == "pending"
        assert order.payment_status == "pending"

    def test_unknown_laboratory(self, db_session, patient, product):
        with pytest.raises(NotFoundError):
            order_service.create_order(
                {"patient_id": patient.id, "laboratory_id": 55, "items": [_line("product", product.id)]},
                ACTOR_ID,
            )

    def test_terminal_status_is_final(self, db_session, patient, product):
        order = _order(patient, _line("product", product.id))
        with unit_of_work():
            order_service.update_order_status(order.id, "cancelled")

        with pytest.raises(InvalidStateTransition):
            order_service.update_order_status(order.id, "processing")


class TestCreateSaleFromOrder:

    def test_links_sale_without_orm_warnings(self, db_session, patient, product, lens, laboratory):
        order = _order(patient, _line("product", product.id), _line("lens", lens.id), laboratory_id=laboratory.id)

        with warnings.catch_warnings():
            warnings.simplefilter("error", SAWarning)
            with unit_of_work():
                sale = sales_service.create_sale_from_order(order.id, ACTOR_ID)

        assert [s.id for s in order_service.get_order(order.id).sales] == [sale.id]
        assert len(sale.items) == 2

    def test_copies_order_and_records_payments(self, db_session, patient, product):
        order = _order(patient, _line("product", product.id, 2))

        with unit_of_work():
            sale = sales_service.create_sale_from_order(
                order.id,
                ACTOR_ID,
                payments=[
                    {"amount": "50.00", "payment_method": "cash"},
                    {"amount": "20.00", "payment_method": "debit_card", "reference_number": "DB-77"},
                ],
            )

        sale = db.session.get(Sale, sale.id)
        assert sale.sale_number.startswith("SALE-")
        assert sale.order_id == order.id
        assert sale.total == order.total
        assert len(sale.items) == 1
        assert sale.amount_paid == D("70.00")
        assert sale.amount_paid + sale.balance == sale.total
        assert sale.payment_status == "partial"
        assert db.session.get(Order, order.id).payment_status == "partially-paid"

    def test_invalid_payment_writes_nothing(self, db_session, patient, product):
        order = _order(patient, _line("product", product.id))

        with pytest.raises(ValidationError):
            with unit_of_work():
                sales_service.create_sale_from_order(
                    order.id, ACTOR_ID, payments=[{"amount": "10.00", "payment_method": "credit_card"}]
                )

        assert db.session.query(Sale).count() == 0
        assert db.session.query(SalePayment).count() == 0

    def test_one_open_sale_per_order(self, db_session, patient, product):
        order = _order(patient, _line("product", product.id))
        with unit_of_work():
            sales_service.create_sale_from_order(order.id, ACTOR_ID)

        with pytest.raises(AlreadyConverted):
            sales_service.create_sale_from_order(order.id, ACTOR_ID)

    def test_cancelled_order_rejected(self, db_session, patient, product):
        order = _order(patient, _line("product", product.id))
        with unit_of_work():
            order_service.update_order_status(order.id, "cancelled")

        with pytest.raises(InvalidStateTransition):
            sales_service.create_sale_from_order(order.id, ACTOR_ID)

    def test_lens_order_with_laboratory_opens_lab_order(self, db_session, patient, lens, laboratory):
        order = _order(patient, _line("lens", lens.id), laboratory_id=laboratory.id)

        with unit_of_work():
            sale = sales_service.create_sale_from_order(order.id, ACTOR_ID)

        lab_orders = db.session.query(LaboratoryOrder).filter_by(sale_id=sale.id).all()
        assert len(lab_orders) == 1
        assert lab_orders[0].laboratory_id == laboratory.id
        assert lab_orders[0].order_id == order.id

    def test_product_only_order_opens_no_lab_order(self, db_session, patient, product, laboratory):
        order = _order(patient, _line("product", product.id), laboratory_id=laboratory.id)

        with unit_of_work():
            sales_service.create_sale_from_order(order.id, ACTOR_ID)

        assert db.session.query(LaboratoryOrder).count() == 0


class TestSaleLifecycle:

    def test_complete_does_not_require_payment(self, db_session, patient, product):
        order = _order(patient, _line("product", product.id))
        with unit_of_work():
            sale = sales_service.create_sale_from_order(order.id, ACTOR_ID)

        with unit_of_work():
            sales_service.complete_sale(sale.id)

        completed = db.session.get(Sale, sale.id)
        assert completed.status == "completed"
        assert completed.payment_status == "pending"
        assert completed.completed_at is not None

        with pytest.raises(InvalidStateTransition):
            sales_service.complete_sale(sale.id)

    def test_cancel_keeps_payments_and_cancels_order(self, db_session, patient, product):
        order = _order(patient, _line("product", product.id))
        with unit_of_work():
            sale = sales_service.create_sale_from_order(
                order.id, ACTOR_ID, payments=[{"amount": "10.00", "payment_method": "cash"}]
            )

        with unit_of_work():
            sales_service.cancel_sale(sale.id, ACTOR_ID)

        cancelled = db.session.get(Sale, sale.id)
        assert cancelled.status == "cancelled"
        assert cancelled.amount_paid == D("10.00")
        assert len(cancelled.payments) == 1
        assert db.session.get(Order, order.id).status == "cancelled"

        with pytest.raises(InvalidStateTransition):
            sales_service.cancel_sale(sale.id, ACTOR_ID)

    def test_unknown_sale(self, db_session):
        with pytest.raises(NotFoundError):
            sales_service.complete_sale(1000)


class TestSummaryAndStats:

    def test_summary_includes_everything(self, db_session, patient, product):
        order = _order(patient, _line("product", product.id))
        with unit_of_work():
            sale = sales_service.create_sale_from_order(
                order.id, ACTOR_ID, payments=[{"amount": "5.00", "payment_method": "cash"}]
            )
        with unit_of_work():
            payment_service.record_partial_payment(sale.id, "5.00", "cash", ACTOR_ID)

        summary = sales_service.get_sale_summary(sale.id)

        assert summary["sale_number"] == sale.sale_number
        assert len(summary["items"]) == 1
        assert len(summary["payments"]) == 1
        assert len(summary["partial_payments"]) == 1
        assert summary["lens_price_adjustments"]["count"] == 0
        assert summary["laboratory_orders"] == []

    def test_stats_grouped_by_payment_status(self, db_session, patient, product):
        paid_order = _order(patient, _line("product", product.id))
        open_order = _order(patient, _line("product", product.id))
        with unit_of_work():
            paid = sales_service.create_sale_from_order(paid_order.id, ACTOR_ID)
            sales_service.create_sale_from_order(open_order.id, ACTOR_ID)
        with unit_of_work():
            payment_service.record_sale_payment(paid.id, db.session.get(Sale, paid.id).total, "cash", ACTOR_ID)

        stats = sales_service.get_sale_stats()

        assert stats["total_sales"] == 2
        assert D(stats["paid_amount"]) == D("59.50")
        assert D(stats["pending_amount"]) == D("59.50")
        assert D(stats["partial_amount"]) == D("0")
        assert D(stats["total_amount"]) == D("119.00")


class TestCreateOrderFromQuote:

    def test_copies_quote_totals_and_items(self, db_session, patient, product, laboratory):
        quote = create_q1(patient, product)

        with unit_of_work():
            order = order_service.create_order_from_quote(quote.id, ACTOR_ID, laboratory_id=laboratory.id)

        assert order.order_number.startswith("ORD-")
        assert order.quote_id == quote.id
        assert order.laboratory_id == laboratory.id
        assert (order.subtotal, order.discount_amount, order.tax_amount, order.total) == (
            D("100.00"), D("10.00"), D("19.00"), D("109.00"),
        )
        assert [(i.item_id, i.quantity, i.price) for i in order.items] == [(product.id, 2, D("50.00"))]
        assert order.status == "pending"
        assert db.session.get(Quote, quote.id).status == "converted"

    def test_quote_yields_one_document(self, db_session, patient, product):
        quote = create_q1(patient, product)
        with unit_of_work():
            order_service.create_order_from_quote(quote.id, ACTOR_ID)

        with pytest.raises(AlreadyConverted):
            order_service.create_order_from_quote(quote.id, ACTOR_ID)
        with pytest.raises(AlreadyConverted):
            quote_service.convert_quote_to_sale(quote.id, ACTOR_ID)
        assert db.session.query(Order).filter_by(quote_id=quote.id).count() == 1

    def test_expired_quote_rejected(self, db_session, patient, product):
        quote = create_q1(patient, product)
        with unit_of_work():
            db.session.get(Quote, quote.id).expiration_date = today() - timedelta(days=1)

        with pytest.raises(QuoteExpired):
            order_service.create_order_from_quote(quote.id, ACTOR_ID)

    def test_rejected_quote_rejected(self, db_session, patient, product):
        quote = create_q1(patient, product)
        with unit_of_work():
            quote_service.update_quote_status(quote.id, "rejected")

        with pytest.raises(InvalidStateTransition):
            order_service.create_order_from_quote(quote.id, ACTOR_ID)

    def test_unknown_laboratory_leaves_quote_open(self, db_session, patient, product):
        quote = create_q1(patient, product)

        with pytest.raises(NotFoundError):
            with unit_of_work():
                order_service.create_order_from_quote(quote.id, ACTOR_ID, laboratory_id=404)

        assert db.session.get(Quote, quote.id).status == "pending"
        assert db.session.query(Order).count() == 0

    def test_order_from_quote_registers_a_sale(self, db_session, patient, product):
        quote = create_q1(patient, product)
        with unit_of_work():
            order = order_service.create_order_from_quote(quote.id, ACTOR_ID)

        with unit_of_work():
            sale = sales_service.create_sale_from_order(order.id, ACTOR_ID)

        assert sale.order_id == order.id
        assert sale.total == D("109.00")
        assert sale.balance == D("109.00")
