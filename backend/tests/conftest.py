"""
Pytest fixtures for erpcore backend tests.

Provides test database setup, a branch with units and products, credit
customers, and the test client.
"""

from decimal import Decimal

import pytest
from erpcore import create_app
from erpcore.extensions import db
from erpcore.models import ProductUom
from erpcore.models.credit import POLICY_BLOQUEO_TOTAL
from erpcore.services import branch_service, catalog_service, credit_service


ACTOR = "cashier-1"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'LEDGER_RETRY_BACKOFF': 0.0,
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
def branch(db_session):
    return branch_service.create_branch("MAT", "Materiales Centro")


@pytest.fixture(scope='function')
def other_branch(db_session):
    return branch_service.create_branch("CON", "Concretera Norte")


@pytest.fixture(scope='function')
def kg(db_session):
    return catalog_service.create_uom("kg", "Kilogramo")


@pytest.fixture(scope='function')
def bag(db_session):
    return catalog_service.create_uom("bulto", "Bulto")


@pytest.fixture(scope='function')
def pza(db_session):
    return catalog_service.create_uom("pza", "Pieza")


def make_cement(branch_id, kg, bag, barcode="7501000000017"):
    """Cement: counted in kg, bought in 50 kg bags, sold by the kg."""
    return catalog_service.create_product(
        branch_id=branch_id,
        barcode=barcode,
        name="Cemento gris",
        base_uom_id=kg.id,
        is_divisible=True,
        purchase_price_cents=300,
        wholesale_price_cents=450,
        retail_price_cents=500,
        min_stock=Decimal("20"),
        purchase_uom={"uom_id": bag.id, "factor_to_base": 50},
        sale_uoms=[{"uom_id": kg.id, "is_default_sale": True}],
    )


def mapping(product_id, uom_id) -> ProductUom:
    return db.session.query(ProductUom).filter_by(product_id=product_id, uom_id=uom_id).one()


@pytest.fixture(scope='function')
def cement(branch, kg, bag):
    return make_cement(branch.id, kg, bag)


@pytest.fixture(scope='function')
def cement_kg(cement, kg):
    return mapping(cement.id, kg.id)


@pytest.fixture(scope='function')
def cement_bag(cement, bag):
    return mapping(cement.id, bag.id)


@pytest.fixture(scope='function')
def brick(branch, pza):
    """Non-divisible product counted and sold in pieces."""
    return catalog_service.create_product(
        branch_id=branch.id,
        barcode="7501000000024",
        name="Ladrillo rojo",
        base_uom_id=pza.id,
        is_divisible=False,
        purchase_price_cents=200,
        retail_price_cents=350,
    )


@pytest.fixture(scope='function')
def brick_pza(brick, pza):
    return mapping(brick.id, pza.id)


@pytest.fixture(scope='function')
def customer(branch):
    """credit_limit 1000.00, 30 days, BLOQUEO_TOTAL, cash allowed when blocked."""
    return credit_service.create_customer(branch.id, {
        "name": "Constructora Lopez",
        "credit_limit_cents": 100000,
        "default_credit_days": 30,
        "policy": POLICY_BLOQUEO_TOTAL,
        "allow_cash_if_blocked": True,
    })
