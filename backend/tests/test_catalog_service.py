"""
Catalog tests: unit mappings, defaults, conversion and pricing.
"""

from decimal import Decimal

import pytest

from erpcore.extensions import db
from erpcore.models import Product, ProductUom, StockBalance
from erpcore.models.catalog import UOM_PURPOSE_BOTH, UOM_PURPOSE_PURCHASE, UOM_PURPOSE_SALE
from erpcore.services import catalog_service, inventory_service
from erpcore.services.catalog_service import InvalidPurposeError
from erpcore.validation import ConflictError, NotFoundError, ValidationError

from conftest import ACTOR, make_cement


class TestUnits:
    def test_duplicate_code(self, kg):
        with pytest.raises(ConflictError):
            catalog_service.create_uom("kg", "Kilo otra vez")

    def test_blank_code(self, db_session):
        with pytest.raises(ValidationError):
            catalog_service.create_uom(" ", "Nada")


class TestCreateProduct:
    def test_mappings_and_defaults(self, cement, cement_kg, cement_bag):
        assert cement_kg.purpose == UOM_PURPOSE_BOTH
        assert cement_kg.factor_to_base == Decimal("1")
        assert cement_bag.purpose == UOM_PURPOSE_PURCHASE
        assert cement_bag.factor_to_base == Decimal("50")

        assert catalog_service.default_purchase_uom(cement.id).id == cement_bag.id
        assert catalog_service.default_sale_uom(cement.id).id == cement_kg.id

    def test_starts_with_zero_stock_row(self, branch, cement):
        row = db.session.query(StockBalance).filter_by(branch_id=branch.id, product_id=cement.id).one()
        assert row.qty_base == Decimal("0")

    def test_duplicate_barcode_in_branch(self, branch, kg, bag, cement):
        with pytest.raises(ConflictError):
            make_cement(branch.id, kg, bag)
        assert db.session.query(Product).count() == 1

    def test_same_barcode_in_other_branch(self, other_branch, kg, bag, cement):
        twin = make_cement(other_branch.id, kg, bag)

        assert twin.barcode == cement.barcode
        assert twin.id != cement.id

    def test_non_positive_factor(self, branch, kg, bag):
        with pytest.raises(ValidationError):
            catalog_service.create_product(
                branch_id=branch.id,
                barcode="123",
                name="Arena",
                base_uom_id=kg.id,
                purchase_uom={"uom_id": bag.id, "factor_to_base": 0},
            )
        assert db.session.query(ProductUom).count() == 0

    def test_unit_used_to_buy_and_sell_becomes_both(self, branch, kg, bag):
        product = catalog_service.create_product(
            branch_id=branch.id,
            barcode="7501000000031",
            name="Cal hidratada",
            base_uom_id=kg.id,
            is_divisible=True,
            purchase_uom={"uom_id": bag.id, "factor_to_base": 25},
            sale_uoms=[{"uom_id": bag.id, "factor_to_base": 25, "is_default_sale": True}],
        )

        bag_mapping = db.session.query(ProductUom).filter_by(product_id=product.id, uom_id=bag.id).one()
        assert bag_mapping.purpose == UOM_PURPOSE_BOTH
        assert product.default_sale_uom_id == bag_mapping.id
        assert product.default_purchase_uom_id == bag_mapping.id

    def test_two_default_sale_units(self, branch, kg, bag, pza):
        with pytest.raises(ValidationError):
            catalog_service.create_product(
                branch_id=branch.id,
                barcode="999",
                name="Varilla",
                base_uom_id=kg.id,
                sale_uoms=[
                    {"uom_id": bag.id, "factor_to_base": 10, "is_default_sale": True},
                    {"uom_id": pza.id, "factor_to_base": 2, "is_default_sale": True},
                ],
            )


class TestUnitMappings:
    def test_add_sale_unit(self, cement, pza):
        mapping = catalog_service.add_product_uom(cement.id, pza.id, "0.5", UOM_PURPOSE_SALE)

        assert [m.id for m in catalog_service.list_sale_uoms(cement.id)] == [
            catalog_service.default_sale_uom(cement.id).id,
            mapping.id,
        ]

    def test_add_same_unit_twice(self, cement, bag):
        with pytest.raises(ConflictError):
            catalog_service.add_product_uom(cement.id, bag.id, 40, UOM_PURPOSE_PURCHASE)

    def test_bad_purpose(self, cement, pza):
        with pytest.raises(ValidationError):
            catalog_service.add_product_uom(cement.id, pza.id, 1, "GIFT")

    def test_base_factor_is_fixed(self, cement, cement_kg):
        with pytest.raises(ValidationError):
            catalog_service.update_product_uom_factor(cement.id, cement_kg.id, 2)

    def test_default_replaces_previous(self, cement, cement_kg, pza):
        pieces = catalog_service.add_product_uom(cement.id, pza.id, 25, UOM_PURPOSE_SALE)

        catalog_service.set_default_sale_uom(cement.id, pieces.id)

        assert catalog_service.default_sale_uom(cement.id).id == pieces.id
        assert not catalog_service.resolve_uom(cement.id, cement_kg.id).is_default_sale

    def test_purchase_only_unit_cannot_be_sale_default(self, cement, cement_bag):
        with pytest.raises(InvalidPurposeError):
            catalog_service.set_default_sale_uom(cement.id, cement_bag.id)

    def test_default_is_inferred_from_single_candidate(self, brick, brick_pza):
        assert catalog_service.default_sale_uom(brick.id).id == brick_pza.id


class TestConversionAndPricing:
    def test_convert_between_units(self, cement, cement_kg, cement_bag):
        assert catalog_service.convert_qty(cement.id, 2, cement_bag.id, cement_kg.id) == Decimal("100")
        assert catalog_service.convert_qty(cement.id, 25, cement_kg.id, cement_bag.id) == Decimal("0.5")

    def test_convert_with_foreign_mapping(self, cement, cement_kg, brick_pza):
        with pytest.raises(NotFoundError):
            catalog_service.convert_qty(cement.id, 1, cement_kg.id, brick_pza.id)

    def test_price_scales_with_factor(self, cement, cement_kg, cement_bag):
        assert catalog_service.price_for_uom(cement.id, cement_kg.id) == 500
        assert catalog_service.price_for_uom(cement.id, cement_bag.id, "PURCHASE") == 15000
        assert catalog_service.price_for_uom(cement.id, cement_bag.id, "WHOLESALE") == 22500

    def test_unknown_tier(self, cement, cement_kg):
        with pytest.raises(ValidationError):
            catalog_service.price_for_uom(cement.id, cement_kg.id, "VIP")


class TestDeleteProduct:
    def test_unused_product_is_deleted(self, cement):
        assert catalog_service.delete_product(cement.id) == "deleted"
        assert catalog_service.get_product(cement.id) is None
        assert db.session.query(ProductUom).count() == 0

    def test_product_with_history_is_deactivated(self, branch, cement, cement_bag):
        inventory_service.post_purchase(
            branch.id,
            [{"product_id": cement.id, "product_uom_id": cement_bag.id, "qty": 1}],
            actor_id=ACTOR,
        )

        assert catalog_service.delete_product(cement.id) == "deactivated"
        product = catalog_service.get_product(cement.id)
        assert product is not None
        assert product.is_active is False
        assert inventory_service.get_stock_balance(branch.id, cement.id) == Decimal("50")


class TestCategoriesAndBrands:
    def test_create_and_list(self, db_session):
        catalog_service.create_category("Cementos")
        catalog_service.create_category("Agregados")
        catalog_service.create_brand("Cemex")

        assert [c.name for c in catalog_service.list_categories()] == ["Agregados", "Cementos"]
        assert [b.name for b in catalog_service.list_brands()] == ["Cemex"]

    def test_duplicate_name(self, db_session):
        catalog_service.create_category("Cementos")

        with pytest.raises(ConflictError):
            catalog_service.create_category(" Cementos ")

    def test_blank_name(self, db_session):
        with pytest.raises(ValidationError):
            catalog_service.create_brand("  ")

    def test_product_with_unknown_category(self, branch, kg):
        with pytest.raises(NotFoundError):
            catalog_service.create_product(
                branch_id=branch.id,
                barcode="7501000000055",
                name="Grava",
                base_uom_id=kg.id,
                category_id=4242,
            )
        assert db.session.query(Product).count() == 0


class TestUpdateProduct:
    def test_master_data(self, cement):
        category = catalog_service.create_category("Cementos")
        brand = catalog_service.create_brand("Cemex")
        version = cement.version_id

        product = catalog_service.update_product(cement.id, {
            "name": " Cemento gris CPC 30R ",
            "sku": "CEM-30R",
            "description": "Bulto de 50 kg",
            "barcode": "7501000000062",
            "is_divisible": False,
            "category_id": category.id,
            "brand_id": brand.id,
        })

        assert product.name == "Cemento gris CPC 30R"
        assert product.sku == "CEM-30R"
        assert product.barcode == "7501000000062"
        assert product.is_divisible is False
        assert product.category_id == category.id
        assert product.brand_id == brand.id
        assert product.version_id > version

    def test_barcode_of_another_product(self, cement, brick):
        with pytest.raises(ConflictError):
            catalog_service.update_product(cement.id, {"barcode": brick.barcode})
        assert catalog_service.get_product(cement.id).barcode == "7501000000017"

    def test_base_unit_is_not_editable(self, cement, bag):
        with pytest.raises(ValidationError):
            catalog_service.update_product(cement.id, {"base_uom_id": bag.id})

    def test_unknown_brand(self, cement):
        with pytest.raises(NotFoundError):
            catalog_service.update_product(cement.id, {"brand_id": 4242})

    def test_negative_min_stock(self, cement):
        with pytest.raises(ValidationError):
            catalog_service.update_product(cement.id, {"min_stock": "-1"})

    def test_empty_payload(self, cement):
        with pytest.raises(ValidationError):
            catalog_service.update_product(cement.id, {})

    def test_units_are_merged_and_history_keeps_its_factor(self, branch, cement, cement_kg, cement_bag, pza):
        tx = inventory_service.post_purchase(
            branch.id,
            [{"product_id": cement.id, "product_uom_id": cement_bag.id, "qty": 1}],
            actor_id=ACTOR,
        )

        product = catalog_service.update_product(cement.id, {
            "purchase_uom": {"uom_id": cement_bag.uom_id, "factor_to_base": 40},
            "sale_uoms": [{"uom_id": pza.id, "factor_to_base": "2.5", "is_default_sale": True}],
        })

        mappings = {m.uom_id: m for m in catalog_service.list_product_uoms(cement.id)}
        assert set(mappings) == {cement_kg.uom_id, cement_bag.uom_id, pza.id}
        assert mappings[cement_bag.uom_id].id == cement_bag.id
        assert mappings[cement_bag.uom_id].factor_to_base == Decimal("40")
        assert mappings[pza.id].purpose == UOM_PURPOSE_SALE
        assert product.default_sale_uom_id == mappings[pza.id].id
        assert product.default_purchase_uom_id == cement_bag.id

        assert tx.items[0].factor_used == Decimal("50")
        assert inventory_service.get_stock_balance(branch.id, cement.id) == Decimal("50")

    def test_purposes_only_widen(self, cement, cement_bag):
        catalog_service.update_product(cement.id, {"sale_uoms": [{"uom_id": cement_bag.uom_id, "factor_to_base": 50}]})

        assert catalog_service.resolve_uom(cement.id, cement_bag.id).purpose == UOM_PURPOSE_BOTH
        assert catalog_service.default_purchase_uom(cement.id).id == cement_bag.id


class TestUnitPayloadShape:
    def test_sale_unit_entry_must_be_an_object(self, branch, kg):
        with pytest.raises(ValidationError):
            catalog_service.create_product(
                branch_id=branch.id,
                barcode="7501000000079",
                name="Arena",
                base_uom_id=kg.id,
                sale_uoms=[str(kg.id)],
            )

    def test_purchase_unit_must_be_an_object(self, branch, kg):
        with pytest.raises(ValidationError):
            catalog_service.create_product(
                branch_id=branch.id,
                barcode="7501000000079",
                name="Arena",
                base_uom_id=kg.id,
                purchase_uom="bulto",
            )

    def test_string_id_of_base_unit_is_the_base_unit(self, branch, kg):
        product = catalog_service.create_product(
            branch_id=branch.id,
            barcode="7501000000079",
            name="Arena",
            base_uom_id=kg.id,
            purchase_uom={"uom_id": str(kg.id), "factor_to_base": 1},
            sale_uoms=[{"uom_id": str(kg.id), "is_default_sale": True}],
        )

        only = db.session.query(ProductUom).filter_by(product_id=product.id).one()
        assert only.uom_id == kg.id
        assert product.default_purchase_uom_id == only.id
        assert product.default_sale_uom_id == only.id

    def test_non_numeric_unit_id(self, branch, kg):
        with pytest.raises(ValidationError):
            catalog_service.create_product(
                branch_id=branch.id,
                barcode="7501000000079",
                name="Arena",
                base_uom_id=kg.id,
                sale_uoms=[{"uom_id": "kg", "factor_to_base": 1}],
            )
