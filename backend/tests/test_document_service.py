# Overview: Pytest coverage for date-scoped document numbering.

from datetime import date

import pytest
from sqlalchemy.exc import OperationalError

from clinicpos.errors import StorageUnavailable
from clinicpos.extensions import db
from clinicpos.models import DocumentSequence
from clinicpos.services import document_service
from clinicpos.services.concurrency import unit_of_work
from clinicpos.services.document_service import (
    PREFIX_LAB,
    PREFIX_QUOTE,
    PREFIX_SALE,
    format_document_number,
    next_document_number,
    peek_next_number,
)


DAY = date(2026, 3, 14)


class TestNumberFormat:

    def test_format(self):
        assert format_document_number("SALE", DAY, 7) == "SALE-20260314-0007"

    def test_numbers_wider_than_padding_are_not_truncated(self):
        assert format_document_number("LAB", DAY, 12345) == "LAB-20260314-12345"


class TestNextDocumentNumber:

    def test_first_number_of_the_day_is_0001(self, db_session):
        assert next_document_number(PREFIX_QUOTE, DAY) == "QUOTE-20260314-0001"

    def test_many_allocations_are_distinct_and_dense(self, db_session):
        """M allocations for one prefix/day give 1..M with no gaps or duplicates."""
        with unit_of_work():
            numbers = [next_document_number(PREFIX_SALE, DAY) for _ in range(25)]

        sequence = [int(n.rsplit("-", 1)[1]) for n in numbers]
        assert sequence == list(range(1, 26))
        assert len(set(numbers)) == 25

    def test_prefixes_and_days_are_independent(self, db_session):
        assert next_document_number(PREFIX_SALE, DAY) == "SALE-20260314-0001"
        assert next_document_number(PREFIX_LAB, DAY) == "LAB-20260314-0001"
        assert next_document_number(PREFIX_SALE, date(2026, 3, 15)) == "SALE-20260315-0001"
        assert next_document_number(PREFIX_SALE, DAY) == "SALE-20260314-0002"

    def test_rolled_back_number_is_reused(self, db_session):
        """The counter lives in the caller's transaction, so rollback keeps the sequence dense."""
        with unit_of_work():
            next_document_number(PREFIX_QUOTE, DAY)

        with pytest.raises(RuntimeError):
            with unit_of_work():
                assert next_document_number(PREFIX_QUOTE, DAY) == "QUOTE-20260314-0002"
                raise RuntimeError("document creation failed")

        assert next_document_number(PREFIX_QUOTE, DAY) == "QUOTE-20260314-0002"

    def test_unknown_prefix_rejected(self, db_session):
        with pytest.raises(ValueError):
            next_document_number("INV", DAY)

    def test_unreachable_store_raises_storage_unavailable(self, db_session, monkeypatch):
        def _fail(prefix, scope_date):
            raise OperationalError("UPDATE document_sequences", {}, Exception("database is locked"))

        monkeypatch.setattr(document_service, "_bump", _fail)

        with pytest.raises(StorageUnavailable):
            next_document_number(PREFIX_SALE, DAY)
        assert db.session.query(DocumentSequence).count() == 0


class TestPeek:

    def test_peek_does_not_allocate(self, db_session):
        assert peek_next_number(PREFIX_SALE, DAY) == "SALE-20260314-0001"
        next_document_number(PREFIX_SALE, DAY)
        assert peek_next_number(PREFIX_SALE, DAY) == "SALE-20260314-0002"
        assert peek_next_number(PREFIX_SALE, DAY) == "SALE-20260314-0002"
