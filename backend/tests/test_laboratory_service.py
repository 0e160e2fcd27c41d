# Overview: Pytest coverage for laboratory orders and their status history.

import logging
from datetime import timedelta

import pytest

from clinicpos.errors import InvalidStateTransition, NotFoundError, ValidationError
from clinicpos.extensions import db
from clinicpos.models import LaboratoryOrder, LaboratoryOrderStatus
from clinicpos.services import laboratory_service, quote_service
from clinicpos.services.concurrency import unit_of_work
from clinicpos.time_utils import today

from conftest import ACTOR_ID, create_q1


def _create(laboratory, patient, **extra):
    payload = {"laboratory_id": laboratory.id, "patient_id": patient.id, **extra}
    with unit_of_work():
        lab_order = laboratory_service.create_laboratory_order(payload, ACTOR_ID)
    return lab_order


def _move(lab_order_id, status, notes=None):
    with unit_of_work():
        return laboratory_service.update_laboratory_order_status(lab_order_id, status, ACTOR_ID, notes)


class TestCreateLaboratoryOrder:

    def test_starts_pending_with_history(self, db_session, laboratory, patient):
        lab_order = _create(laboratory, patient)

        assert lab_order.order_number.startswith("LAB-")
        assert lab_order.status == "pending"
        assert lab_order.priority == "normal"
        history = laboratory_service.get_status_history(lab_order.id)
        assert [row.status for row in history] == ["pending"]

    def test_inactive_laboratory_rejected(self, db_session, laboratory, patient):
        laboratory.status = "inactive"
        db_session.commit()

        with pytest.raises(ValidationError) as exc:
            laboratory_service.create_laboratory_order(
                {"laboratory_id": laboratory.id, "patient_id": patient.id}, ACTOR_ID
            )
        assert exc.value.field == "laboratory_id"

    def test_unknown_priority(self, db_session, laboratory, patient):
        with pytest.raises(ValidationError):
            laboratory_service.create_laboratory_order(
                {"laboratory_id": laboratory.id, "patient_id": patient.id, "priority": "asap"}, ACTOR_ID
            )

    def test_estimated_date_in_past_rejected(self, db_session, laboratory, patient):
        with pytest.raises(ValidationError):
            laboratory_service.create_laboratory_order(
                {
                    "laboratory_id": laboratory.id,
                    "patient_id": patient.id,
                    "estimated_completion_date": (today() - timedelta(days=1)).isoformat(),
                },
                ACTOR_ID,
            )


class TestStatusUpdates:

    def test_each_change_appends_history(self, db_session, laboratory, patient):
        lab_order = _create(laboratory, patient)

        _move(lab_order.id, "in_process")
        _move(lab_order.id, "sent_to_lab", "Shipped with courier")
        _move(lab_order.id, "ready_for_delivery")

        history = laboratory_service.get_status_history(lab_order.id)
        assert [row.status for row in history] == ["pending", "in_process", "sent_to_lab", "ready_for_delivery"]
        assert history[2].notes == "Shipped with courier"
        assert db.session.get(LaboratoryOrder, lab_order.id).status == history[-1].status

    def test_repeating_status_writes_nothing(self, db_session, laboratory, patient):
        lab_order = _create(laboratory, patient)
        _move(lab_order.id, "in_process")
        _move(lab_order.id, "in_process")

        assert db.session.query(LaboratoryOrderStatus).filter_by(laboratory_order_id=lab_order.id).count() == 2

    def test_backward_move_accepted_with_warning(self, app, db_session, laboratory, patient, caplog):
        lab_order = _create(laboratory, patient)
        _move(lab_order.id, "sent_to_lab")

        with caplog.at_level(logging.WARNING, logger=app.logger.name):
            _move(lab_order.id, "in_process")

        assert db.session.get(LaboratoryOrder, lab_order.id).status == "in_process"
        assert "moved out of order" in caplog.text

    def test_delivered_sets_completion_date(self, db_session, laboratory, patient):
        lab_order = _create(laboratory, patient)
        _move(lab_order.id, "delivered")

        assert db.session.get(LaboratoryOrder, lab_order.id).completion_date == today()

    def test_unknown_status(self, db_session, laboratory, patient):
        lab_order = _create(laboratory, patient)
        with pytest.raises(ValidationError):
            laboratory_service.update_laboratory_order_status(lab_order.id, "lost", ACTOR_ID)


class TestDeleteLaboratoryOrder:

    def test_pending_can_be_deleted_with_history(self, db_session, laboratory, patient):
        lab_order = _create(laboratory, patient)

        with unit_of_work():
            laboratory_service.delete_laboratory_order(lab_order.id)

        assert db.session.get(LaboratoryOrder, lab_order.id) is None
        assert db.session.query(LaboratoryOrderStatus).count() == 0

    def test_work_in_progress_cannot_be_deleted(self, db_session, laboratory, patient):
        lab_order = _create(laboratory, patient)
        _move(lab_order.id, "sent_to_lab")

        with pytest.raises(InvalidStateTransition):
            laboratory_service.delete_laboratory_order(lab_order.id)

    def test_unknown(self, db_session):
        with pytest.raises(NotFoundError):
            laboratory_service.delete_laboratory_order(31337)


class TestStats:

    def test_counts_every_status_and_overdue(self, db_session, laboratory, patient):
        first = _create(laboratory, patient, estimated_completion_date=(today() + timedelta(days=3)).isoformat())
        _create(laboratory, patient)
        _move(first.id, "in_process")

        # Push the estimate into the past to make it overdue
        with unit_of_work():
            db.session.get(LaboratoryOrder, first.id).estimated_completion_date = today() - timedelta(days=1)

        stats = laboratory_service.laboratory_order_stats()

        assert stats["total"] == 2
        assert stats["pending"] == 1
        assert stats["in_process"] == 1
        assert stats["delivered"] == 0
        assert stats["cancelled"] == 0
        assert stats["overdue"] == 1


class TestFromSale:

    def test_returns_existing_order_for_sale(self, db_session, laboratory, patient, product):
        quote = create_q1(patient, product)
        with unit_of_work():
            sale = quote_service.convert_quote_to_sale(quote.id, ACTOR_ID)

        with unit_of_work():
            first = laboratory_service.create_laboratory_order_from_sale(sale.id, ACTOR_ID, laboratory_id=laboratory.id)
        with unit_of_work():
            second = laboratory_service.create_laboratory_order_from_sale(sale.id, ACTOR_ID, laboratory_id=laboratory.id)

        assert first.id == second.id
        assert db.session.query(LaboratoryOrder).filter_by(sale_id=sale.id).count() == 1

    def test_laboratory_required_without_order(self, db_session, patient, product):
        quote = create_q1(patient, product)
        with unit_of_work():
            sale = quote_service.convert_quote_to_sale(quote.id, ACTOR_ID)

        with pytest.raises(ValidationError) as exc:
            laboratory_service.create_laboratory_order_from_sale(sale.id, ACTOR_ID)
        assert exc.value.field == "laboratory_id"
