"""
CLI tests: bootstrap, suppliers, audit listing and ledger maintenance commands.
"""

from decimal import Decimal

import pytest

from erpcore.extensions import db
from erpcore.models import Branch, Uom
from erpcore.services import branch_service, inventory_service
from erpcore.validation import NotFoundError

from conftest import ACTOR


def invoke(app, *args):
    return app.test_cli_runner().invoke(args=list(args))


class TestSystemCommands:
    def test_init_is_idempotent(self, app, db_session):
        first = invoke(app, "system", "init")
        second = invoke(app, "system", "init")

        assert first.exit_code == 0
        assert "PASS Created branch" in first.output
        assert "SKIP Branch MAIN already exists" in second.output
        assert db.session.query(Branch).count() == 1
        assert {u.code for u in db.session.query(Uom)} == {"kg", "pza", "bulto", "m3"}


class TestBranchCommands:
    def test_suppliers(self, app, branch):
        result = invoke(app, "branches", "add-supplier", "--branch-id", str(branch.id), "--name", "Cementos del Norte")
        listing = invoke(app, "branches", "suppliers", "--branch-id", str(branch.id))

        assert "PASS Created supplier" in result.output
        assert "Cementos del Norte" in listing.output

    def test_supplier_for_missing_branch(self, app, db_session):
        result = invoke(app, "branches", "add-supplier", "--branch-id", "999", "--name", "Nadie")

        assert "FAIL" in result.output

    def test_audit_listing(self, app, branch, cement, cement_bag):
        inventory_service.post_purchase(
            branch.id,
            [{"product_id": cement.id, "product_uom_id": cement_bag.id, "qty": 1}],
            actor_id=ACTOR,
            reference="FAC-100",
        )

        result = invoke(app, "branches", "audit", "--branch-id", str(branch.id))

        assert "inventory.purchase_posted" in result.output
        assert ACTOR in result.output
        assert "FAC-100" in result.output


class TestInventoryCommands:
    def test_verify_passes_on_consistent_ledger(self, app, branch, cement, cement_bag):
        inventory_service.post_purchase(
            branch.id,
            [{"product_id": cement.id, "product_uom_id": cement_bag.id, "qty": 2}],
            actor_id=ACTOR,
        )

        result = invoke(app, "inventory", "verify", "--branch-id", str(branch.id))

        assert result.exit_code == 0
        assert "0 failing" in result.output

    def test_clear_purchases(self, app, branch, cement, cement_bag):
        inventory_service.post_purchase(
            branch.id,
            [{"product_id": cement.id, "product_uom_id": cement_bag.id, "qty": 2}],
            actor_id=ACTOR,
        )

        result = invoke(
            app, "inventory", "clear-purchases", "--branch-id", str(branch.id), "--actor", "admin", "--yes"
        )

        assert result.exit_code == 0
        assert "Deleted 1 purchase" in result.output
        assert inventory_service.get_stock_balance(branch.id, cement.id) == Decimal("0")


class TestSuppliersOnPurchases:
    def test_purchase_records_supplier(self, branch, cement, cement_bag):
        supplier = branch_service.create_supplier(branch.id, "Cementos del Norte", phone="555-0101")

        tx = inventory_service.post_purchase(
            branch.id,
            [{"product_id": cement.id, "product_uom_id": cement_bag.id, "qty": 1}],
            actor_id=ACTOR,
            supplier_id=supplier.id,
        )

        assert tx.supplier_id == supplier.id
        assert [s.id for s in branch_service.list_suppliers(branch.id)] == [supplier.id]

    def test_supplier_of_another_branch(self, branch, other_branch, cement, cement_bag):
        supplier = branch_service.create_supplier(other_branch.id, "Agregados Sur")

        with pytest.raises(NotFoundError):
            inventory_service.post_purchase(
                branch.id,
                [{"product_id": cement.id, "product_uom_id": cement_bag.id, "qty": 1}],
                actor_id=ACTOR,
                supplier_id=supplier.id,
            )
        assert inventory_service.get_stock_balance(branch.id, cement.id) == Decimal("0")
