"""
Checkout tests: a credit sale is one unit of work with its receivable.
"""

from datetime import date, timedelta
from decimal import Decimal

import pytest

from erpcore.extensions import db
from erpcore.models import CreditNote, InventoryTransaction
from erpcore.models.inventory import TX_SALE
from erpcore.services import checkout_service, credit_service, inventory_service
from erpcore.services.credit_service import REASON_LIMIT, REASON_OVERDUE, CreditBlockedError
from erpcore.services.inventory_service import InsufficientStockError

from conftest import ACTOR


TODAY = date(2026, 10, 19)


@pytest.fixture
def stocked(branch, cement, cement_bag):
    """Cement with 4 bags (200 kg) on hand."""
    inventory_service.post_purchase(
        branch.id,
        [{"product_id": cement.id, "product_uom_id": cement_bag.id, "qty": 4}],
        actor_id=ACTOR,
    )
    return cement


def kg_items(cement_kg, qty):
    return [{"product_id": cement_kg.product_id, "product_uom_id": cement_kg.id, "qty": qty}]


class TestCashSale:
    def test_cash_sale_posts_sale(self, branch, stocked, cement_kg):
        tx = checkout_service.record_cash_sale(
            branch.id, kg_items(cement_kg, 10), actor_id=ACTOR, customer_name="Mostrador"
        )

        assert tx.type == TX_SALE
        assert tx.customer_name == "Mostrador"
        assert tx.total_cents == 5000
        assert inventory_service.get_stock_balance(branch.id, stocked.id) == Decimal("190")


class TestCreditSale:
    def test_creates_note_linked_to_sale(self, branch, stocked, cement_kg, customer):
        tx, note = checkout_service.record_credit_sale(
            customer.id, kg_items(cement_kg, 20), actor_id=ACTOR, reference="OBRA-7", today=TODAY
        )

        assert tx.total_cents == 10000
        assert tx.customer_name == customer.name
        assert note.inventory_transaction_id == tx.id
        assert note.total_cents == 10000
        assert note.balance_cents == 10000
        assert note.due_date == TODAY + timedelta(days=30)
        assert inventory_service.get_stock_balance(branch.id, stocked.id) == Decimal("180")

    def test_credit_days_override(self, stocked, cement_kg, customer):
        _, note = checkout_service.record_credit_sale(
            customer.id, kg_items(cement_kg, 1), actor_id=ACTOR, credit_days=15, today=TODAY
        )

        assert note.credit_days_applied == 15

    def test_limit_block_rolls_back_the_sale(self, branch, stocked, cement_kg, customer):
        credit_service.update_customer(customer.id, {"credit_limit_cents": 4000})

        with pytest.raises(CreditBlockedError) as exc:
            checkout_service.record_credit_sale(
                customer.id, kg_items(cement_kg, 10), actor_id=ACTOR, today=TODAY
            )

        assert exc.value.http_status == 409
        assert exc.value.details["reason"] == REASON_LIMIT
        assert exc.value.details["decision"]["allow_cash"] is True
        assert inventory_service.get_stock_balance(branch.id, stocked.id) == Decimal("200")
        assert db.session.query(InventoryTransaction).filter_by(type=TX_SALE).count() == 0
        assert db.session.query(CreditNote).count() == 0

    def test_overdue_customer_is_blocked(self, branch, stocked, cement_kg, customer):
        credit_service.create_credit_note(
            customer.id, 500, 0, actor_id=ACTOR, issue_date=TODAY - timedelta(days=5)
        )

        with pytest.raises(CreditBlockedError) as exc:
            checkout_service.record_credit_sale(
                customer.id, kg_items(cement_kg, 1), actor_id=ACTOR, today=TODAY
            )

        assert exc.value.details["reason"] == REASON_OVERDUE
        assert db.session.query(CreditNote).count() == 1
        assert inventory_service.get_stock_balance(branch.id, stocked.id) == Decimal("200")

    def test_overdue_is_reported_before_a_shortage(self, branch, stocked, cement_kg, customer):
        credit_service.create_credit_note(
            customer.id, 500, 0, actor_id=ACTOR, issue_date=TODAY - timedelta(days=5)
        )

        with pytest.raises(CreditBlockedError) as exc:
            checkout_service.record_credit_sale(
                customer.id, kg_items(cement_kg, 201), actor_id=ACTOR, today=TODAY
            )

        assert exc.value.details["reason"] == REASON_OVERDUE
        assert exc.value.details["decision"]["overdue_notes"][0]["days_overdue"] == 5
        assert inventory_service.get_stock_balance(branch.id, stocked.id) == Decimal("200")

    def test_shortage_leaves_no_note(self, stocked, cement_kg, customer):
        with pytest.raises(InsufficientStockError):
            checkout_service.record_credit_sale(
                customer.id, kg_items(cement_kg, 201), actor_id=ACTOR, today=TODAY
            )

        assert db.session.query(CreditNote).count() == 0

    def test_second_sale_sees_first_balance(self, stocked, cement_kg, customer):
        credit_service.update_customer(customer.id, {"credit_limit_cents": 15000})
        checkout_service.record_credit_sale(customer.id, kg_items(cement_kg, 20), actor_id=ACTOR, today=TODAY)

        with pytest.raises(CreditBlockedError):
            checkout_service.record_credit_sale(customer.id, kg_items(cement_kg, 20), actor_id=ACTOR, today=TODAY)

        assert credit_service.evaluate(customer.id, 5000, TODAY).allowed is True
