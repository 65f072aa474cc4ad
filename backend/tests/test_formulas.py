"""
Concrete formula tests.
"""

from decimal import Decimal

import pytest

from erpcore.models.inventory import TX_ADJUST
from erpcore.services import formula_service, inventory_service
from erpcore.services.inventory_service import InsufficientStockError
from erpcore.validation import ConflictError, NotFoundError, ValidationError

from conftest import ACTOR


@pytest.fixture
def mix(branch, cement, brick):
    return formula_service.create_formula(
        branch.id,
        "f'c 200",
        [
            {"product_id": cement.id, "qty_base_per_m3": "350"},
            {"product_id": brick.id, "qty_base_per_m3": 4},
        ],
        description="Mezcla de prueba",
    )


class TestCreateFormula:
    def test_components_are_stored(self, mix, cement):
        assert [c.product_id for c in mix.components][0] == cement.id
        assert mix.components[0].qty_base_per_m3 == Decimal("350")

    def test_duplicate_name(self, branch, mix, cement):
        with pytest.raises(ConflictError):
            formula_service.create_formula(branch.id, "f'c 200", [{"product_id": cement.id, "qty_base_per_m3": 1}])

    def test_duplicate_component(self, branch, cement):
        with pytest.raises(ValidationError):
            formula_service.create_formula(
                branch.id,
                "doble",
                [
                    {"product_id": cement.id, "qty_base_per_m3": 1},
                    {"product_id": cement.id, "qty_base_per_m3": 2},
                ],
            )

    def test_empty_components(self, branch):
        with pytest.raises(ValidationError):
            formula_service.create_formula(branch.id, "vacia", [])

    def test_product_of_another_branch(self, other_branch, cement):
        with pytest.raises(ValidationError):
            formula_service.create_formula(other_branch.id, "ajena", [{"product_id": cement.id, "qty_base_per_m3": 1}])

    def test_listed_by_branch(self, branch, other_branch, mix):
        assert [f.id for f in formula_service.list_formulas(branch.id)] == [mix.id]
        assert formula_service.list_formulas(other_branch.id) == []


class TestConsumeFormula:
    def test_items_scale_with_volume(self, mix, cement_kg, brick_pza):
        items = formula_service.build_formula_items(mix.id, "1.5")

        assert items == [
            {"product_id": cement_kg.product_id, "product_uom_id": cement_kg.id, "qty": Decimal("525.0000")},
            {"product_id": brick_pza.product_id, "product_uom_id": brick_pza.id, "qty": Decimal("6.0000")},
        ]

    def test_consume_posts_one_adjustment(self, branch, mix, cement, cement_bag, brick, brick_pza):
        inventory_service.post_purchase(
            branch.id,
            [
                {"product_id": cement.id, "product_uom_id": cement_bag.id, "qty": 20},
                {"product_id": brick.id, "product_uom_id": brick_pza.id, "qty": 10},
            ],
            actor_id=ACTOR,
        )

        tx = formula_service.consume_formula(branch.id, mix.id, 2, actor_id=ACTOR, reference="OLLA-3")

        assert tx.type == TX_ADJUST
        assert tx.direction == "OUT"
        assert len(tx.items) == 2
        assert "f'c 200" in tx.notes
        assert inventory_service.get_stock_balance(branch.id, cement.id) == Decimal("300")
        assert inventory_service.get_stock_balance(branch.id, brick.id) == Decimal("2")

    def test_consume_without_stock_changes_nothing(self, branch, mix, cement, cement_bag):
        inventory_service.post_purchase(
            branch.id,
            [{"product_id": cement.id, "product_uom_id": cement_bag.id, "qty": 20}],
            actor_id=ACTOR,
        )

        with pytest.raises(InsufficientStockError):
            formula_service.consume_formula(branch.id, mix.id, 1, actor_id=ACTOR)

        assert inventory_service.get_stock_balance(branch.id, cement.id) == Decimal("1000")

    def test_formula_of_another_branch(self, other_branch, mix):
        with pytest.raises(NotFoundError):
            formula_service.consume_formula(other_branch.id, mix.id, 1, actor_id=ACTOR)

    def test_volume_must_be_positive(self, mix):
        with pytest.raises(ValidationError):
            formula_service.build_formula_items(mix.id, 0)
