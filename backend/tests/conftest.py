"""
Pytest fixtures for clinicpos backend tests.

Provides an in-memory application, a clean database per test, the test
client and a small seeded catalog (patient, product, lens, laboratory,
warehouse with two locations).
"""

from decimal import Decimal

import pytest
from clinicpos import create_app
from clinicpos.extensions import db
from clinicpos.models import Laboratory, Lens, Patient, Product, Warehouse, WarehouseLocation
from clinicpos.services import quote_service
from clinicpos.services.concurrency import unit_of_work


ACTOR_ID = 7
APPROVER_ID = 9


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'TAX_RATE': Decimal("0.19"),
        'QUOTE_VALIDITY_DAYS': 30,
        'DB_RETRY_ATTEMPTS': 3,
        'DB_RETRY_BACKOFF': 0,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def patient(db_session):
    patient = Patient(first_name="Ana", last_name="Rojas", identification="11.111.111-1")
    db_session.add(patient)
    db_session.commit()
    return patient


@pytest.fixture(scope='function')
def other_patient(db_session):
    patient = Patient(first_name="Luis", last_name="Soto", identification="22.222.222-2")
    db_session.add(patient)
    db_session.commit()
    return patient


@pytest.fixture(scope='function')
def product(db_session):
    """Frame priced at 50.00."""
    product = Product(code="FRM-001", name="Acetate frame", price=Decimal("50.00"), cost=Decimal("20.00"))
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def lens(db_session):
    """Progressive lens priced at 120.00."""
    lens = Lens(
        code="LNS-PRG-01",
        name="Progressive 1.67",
        lens_type="progressive",
        material="polycarbonate",
        price=Decimal("120.00"),
        cost=Decimal("60.00"),
    )
    db_session.add(lens)
    db_session.commit()
    return lens


@pytest.fixture(scope='function')
def laboratory(db_session):
    laboratory = Laboratory(name="Optilab", contact_email="orders@optilab.test")
    db_session.add(laboratory)
    db_session.commit()
    return laboratory


@pytest.fixture(scope='function')
def locations(db_session):
    """Two locations (A: main shelf, B: display case) in one warehouse."""
    warehouse = Warehouse(name="Main store", code="MAIN")
    db_session.add(warehouse)
    db_session.flush()

    loc_a = WarehouseLocation(warehouse_id=warehouse.id, name="Main shelf", code="A")
    loc_b = WarehouseLocation(warehouse_id=warehouse.id, name="Display case", code="B")
    db_session.add_all([loc_a, loc_b])
    db_session.commit()
    return loc_a, loc_b


def actor_headers(actor_id: int = ACTOR_ID) -> dict:
    """Helper to create the acting-user header."""
    return {'X-User-Id': str(actor_id)}


@pytest.fixture(scope='function')
def headers():
    return actor_headers()


def q1_payload(patient_id, product_id) -> dict:
    """Quote Q1: one line 2 x 50.00, discount 10.00, tax 19.00, total 109.00."""
    return {
        "patient_id": patient_id,
        "items": [
            {"item_type": "product", "item_id": product_id, "quantity": 2, "price": "50.00", "total": "100.00"},
        ],
        "subtotal": "100.00",
        "discount": "10.00",
        "tax": "19.00",
        "total": "109.00",
    }


def create_q1(patient, product):
    """Create and commit quote Q1."""
    with unit_of_work():
        quote = quote_service.create_quote(q1_payload(patient.id, product.id), ACTOR_ID)
    return quote
