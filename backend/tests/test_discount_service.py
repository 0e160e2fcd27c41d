# Overview: Pytest coverage for the discount approval workflow.

"""
Discount Approval Tests

Covers:
1. Frozen prices at request time (catalog changes do not leak in)
2. pending -> approved / rejected, exactly once
3. Derived validity (approved AND not expired), never stored
4. Applicability checks used by the line-item price floor
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from clinicpos.errors import DiscountExpired, InvalidStateTransition, NotFoundError, ValidationError
from clinicpos.extensions import db
from clinicpos.models import DiscountRequest
from clinicpos.services import catalog_service, discount_service
from clinicpos.services.catalog_service import LensRef, ProductRef
from clinicpos.time_utils import today

from conftest import ACTOR_ID, APPROVER_ID


def _request(ref, patient_id, pct="10", **kwargs):
    return discount_service.create_discount_request(ACTOR_ID, ref, pct, patient_id=patient_id, **kwargs)


def _approved(ref, patient_id, pct="10", **kwargs):
    discount = _request(ref, patient_id, pct, **kwargs)
    return discount_service.approve_discount_request(discount.id, APPROVER_ID)


class TestCreateDiscountRequest:

    def test_freezes_prices(self, db_session, patient, product):
        discount = _request(ProductRef(product.id), patient.id, "15")

        assert discount.status == "pending"
        assert discount.original_price == Decimal("50.00")
        assert discount.discounted_price == Decimal("42.50")

    def test_catalog_change_keeps_frozen_prices(self, db_session, patient, product):
        discount = _request(ProductRef(product.id), patient.id, "15")
        catalog_service.update_price(ProductRef(product.id), "80.00")
        db.session.refresh(discount)

        assert discount.original_price == Decimal("50.00")
        assert discount.discounted_price == Decimal("42.50")

    def test_discounted_price_rounds_half_up(self, db_session, patient, lens):
        discount = _request(LensRef(lens.id), patient.id, "33.33")
        # 120.00 * 66.67 / 100 = 80.004
        assert discount.discounted_price == Decimal("80.00")

    @pytest.mark.parametrize("pct", ["0", "-5", "100.01", "abc", None])
    def test_percentage_out_of_range(self, db_session, patient, product, pct):
        with pytest.raises(ValidationError) as exc:
            _request(ProductRef(product.id), patient.id, pct)
        assert exc.value.field == "discount_percentage"

    def test_full_discount_allowed(self, db_session, patient, product):
        assert _request(ProductRef(product.id), patient.id, "100").discounted_price == Decimal("0.00")

    def test_patient_required_unless_global(self, db_session, product):
        with pytest.raises(ValidationError):
            discount_service.create_discount_request(ACTOR_ID, ProductRef(product.id), "10")

        discount = discount_service.create_discount_request(ACTOR_ID, ProductRef(product.id), "10", is_global=True)
        assert discount.is_global is True

    def test_unknown_item(self, db_session, patient):
        with pytest.raises(NotFoundError):
            _request(ProductRef(9999), patient.id)

    def test_past_expiry_rejected(self, db_session, patient, product):
        with pytest.raises(ValidationError):
            _request(ProductRef(product.id), patient.id, expiry_date=today() - timedelta(days=1))


class TestApproval:

    def test_approve(self, db_session, patient, product):
        discount = _approved(ProductRef(product.id), patient.id)

        assert discount.status == "approved"
        assert discount.approved_by_user_id == APPROVER_ID
        assert discount.approved_at is not None

    def test_reject_records_reason(self, db_session, patient, product):
        discount = _request(ProductRef(product.id), patient.id)
        discount = discount_service.reject_discount_request(discount.id, APPROVER_ID, "Not eligible")

        assert discount.status == "rejected"
        assert discount.rejection_reason == "Not eligible"
        assert discount.rejected_at is not None

    def test_only_pending_can_move(self, db_session, patient, product):
        discount = _approved(ProductRef(product.id), patient.id)

        with pytest.raises(InvalidStateTransition):
            discount_service.approve_discount_request(discount.id, APPROVER_ID)
        with pytest.raises(InvalidStateTransition):
            discount_service.reject_discount_request(discount.id, APPROVER_ID)

    def test_withdraw_pending_by_requester(self, db_session, patient, product):
        discount = _request(ProductRef(product.id), patient.id)

        with pytest.raises(ValidationError):
            discount_service.withdraw_discount_request(discount.id, APPROVER_ID)

        discount_service.withdraw_discount_request(discount.id, ACTOR_ID)
        assert db.session.get(DiscountRequest, discount.id) is None


class TestValidity:

    def test_approved_and_expired_is_invalid(self, db_session, patient, product):
        discount = _approved(ProductRef(product.id), patient.id)
        discount.expiry_date = today() - timedelta(days=1)

        assert discount_service.is_valid(discount) is False

    def test_approved_without_expiry_is_valid(self, db_session, patient, product):
        discount = _approved(ProductRef(product.id), patient.id)
        discount.expiry_date = None

        assert discount_service.is_valid(discount) is True

    def test_expiry_day_itself_is_valid(self, db_session, patient, product):
        discount = _approved(ProductRef(product.id), patient.id, expiry_date=today())
        assert discount_service.is_valid(discount) is True

    def test_pending_is_invalid(self, db_session, patient, product):
        assert discount_service.is_valid(_request(ProductRef(product.id), patient.id)) is False


class TestActiveDiscounts:

    def test_patient_specific_first_then_highest(self, db_session, patient, other_patient, product):
        ref = ProductRef(product.id)
        global_big = discount_service.approve_discount_request(
            discount_service.create_discount_request(ACTOR_ID, ref, "30", is_global=True).id, APPROVER_ID
        )
        mine_small = _approved(ref, patient.id, "5")
        mine_big = _approved(ref, patient.id, "20")
        _approved(ref, other_patient.id, "50")
        _request(ref, patient.id, "40")

        active = discount_service.get_active_discounts(ref, patient.id)

        assert [d.id for d in active] == [mine_big.id, mine_small.id, global_big.id]
        assert discount_service.best_discount(ref, patient.id).id == mine_big.id

    def test_expired_excluded(self, db_session, patient, product):
        ref = ProductRef(product.id)
        discount = _approved(ref, patient.id)
        discount.expiry_date = today() - timedelta(days=2)
        db.session.flush()

        assert discount_service.get_active_discounts(ref, patient.id) == []
        assert discount_service.has_active_discount(ref, patient.id) is False

    def test_has_active_discount_is_derived(self, db_session, patient, product):
        ref = ProductRef(product.id)
        assert discount_service.has_active_discount(ref, patient.id) is False

        _approved(ref, patient.id)
        assert discount_service.has_active_discount(ref, patient.id) is True


class TestEnsureApplicable:

    def test_expired_approved_raises_discount_expired(self, db_session, patient, product):
        ref = ProductRef(product.id)
        discount = _approved(ref, patient.id)
        discount.expiry_date = today() - timedelta(days=1)

        with pytest.raises(DiscountExpired):
            discount_service.ensure_applicable(discount, ref, patient.id, Decimal("45.00"))

    def test_rejected_is_validation_error(self, db_session, patient, product):
        ref = ProductRef(product.id)
        discount = _request(ref, patient.id)
        discount_service.reject_discount_request(discount.id, APPROVER_ID)

        with pytest.raises(ValidationError):
            discount_service.ensure_applicable(discount, ref, patient.id, Decimal("45.00"))

    def test_other_patient_rejected(self, db_session, patient, other_patient, product):
        ref = ProductRef(product.id)
        discount = _approved(ref, patient.id)

        with pytest.raises(ValidationError):
            discount_service.ensure_applicable(discount, ref, other_patient.id, Decimal("45.00"))

    def test_other_item_rejected(self, db_session, patient, product, lens):
        discount = _approved(ProductRef(product.id), patient.id)

        with pytest.raises(ValidationError):
            discount_service.ensure_applicable(discount, LensRef(lens.id), patient.id, Decimal("45.00"))

    def test_below_discounted_price_rejected(self, db_session, patient, product):
        ref = ProductRef(product.id)
        discount = _approved(ref, patient.id, "10")

        assert discount_service.ensure_applicable(discount, ref, patient.id, Decimal("45.00")) is discount
        with pytest.raises(ValidationError):
            discount_service.ensure_applicable(discount, ref, patient.id, Decimal("44.99"))


class TestPriceFloor:

    def test_catalog_price_needs_no_discount(self, db_session, patient, product):
        assert discount_service.check_price_floor(ProductRef(product.id), patient.id, Decimal("50.00")) is None

    def test_below_catalog_without_discount_rejected(self, db_session, patient, product):
        with pytest.raises(ValidationError) as exc:
            discount_service.check_price_floor(ProductRef(product.id), patient.id, Decimal("49.99"))
        assert exc.value.field == "price"
