# Overview: Pytest coverage for lens price increases on a sale.

from decimal import Decimal

import pytest

from clinicpos.errors import NotFoundError, ValidationError
from clinicpos.extensions import db
from clinicpos.models import SaleLensPriceAdjustment
from clinicpos.services import price_adjustment_service, quote_service
from clinicpos.services.concurrency import unit_of_work
from clinicpos.services.price_adjustment_service import DuplicateAdjustment

from conftest import ACTOR_ID, create_q1


@pytest.fixture
def sale(db_session, patient, product):
    quote = create_q1(patient, product)
    with unit_of_work():
        sale = quote_service.convert_quote_to_sale(quote.id, ACTOR_ID)
    return sale


class TestCreateAdjustment:

    def test_records_increase_over_catalog(self, sale, lens):
        with unit_of_work():
            adjustment = price_adjustment_service.create_adjustment(
                sale.id, lens.id, "135.50", ACTOR_ID, reason="Custom tint"
            )

        adjustment = db.session.get(SaleLensPriceAdjustment, adjustment.id)
        assert adjustment.base_price == Decimal("120.00")
        assert adjustment.adjusted_price == Decimal("135.50")
        assert adjustment.adjustment_amount == Decimal("15.50")
        assert price_adjustment_service.effective_price(sale.id, lens.id) == Decimal("135.50")

    @pytest.mark.parametrize("price", ["120.00", "99.99"])
    def test_reductions_refused(self, sale, lens, price):
        with pytest.raises(ValidationError) as exc:
            price_adjustment_service.create_adjustment(sale.id, lens.id, price, ACTOR_ID)
        assert exc.value.field == "adjusted_price"

    def test_one_adjustment_per_lens_and_sale(self, sale, lens):
        with unit_of_work():
            price_adjustment_service.create_adjustment(sale.id, lens.id, "130.00", ACTOR_ID)

        with pytest.raises(DuplicateAdjustment):
            price_adjustment_service.create_adjustment(sale.id, lens.id, "140.00", ACTOR_ID)

    def test_unknown_sale_or_lens(self, sale, lens):
        with pytest.raises(NotFoundError):
            price_adjustment_service.create_adjustment(9999, lens.id, "130.00", ACTOR_ID)
        with pytest.raises(NotFoundError):
            price_adjustment_service.create_adjustment(sale.id, 9999, "130.00", ACTOR_ID)


class TestEffectivePriceAndSummary:

    def test_falls_back_to_catalog(self, sale, lens):
        assert price_adjustment_service.effective_price(sale.id, lens.id) == Decimal("120.00")

    def test_summary_and_remove(self, sale, lens):
        with unit_of_work():
            adjustment = price_adjustment_service.create_adjustment(sale.id, lens.id, "125.00", ACTOR_ID)

        summary = price_adjustment_service.adjustment_summary(sale.id)
        assert summary["count"] == 1
        assert summary["total_adjustment_amount"] == "5.00"

        with unit_of_work():
            price_adjustment_service.remove_adjustment(sale.id, adjustment.id)
        assert price_adjustment_service.adjustment_summary(sale.id)["count"] == 0

        with pytest.raises(NotFoundError):
            price_adjustment_service.remove_adjustment(sale.id, adjustment.id)
