"""
HTTP tests: status codes, error envelopes and the X-Actor-Id requirement.
"""

from decimal import Decimal

from erpcore.models.credit import POLICY_BLOQUEO_PARCIAL

from conftest import ACTOR


HEADERS = {"X-Actor-Id": ACTOR}


def purchase_body(branch, cement, cement_bag, bags):
    return {
        "branch_id": branch.id,
        "items": [{"product_id": cement.id, "product_uom_id": cement_bag.id, "qty": bags}],
    }


def sale_body(branch, cement, cement_kg, qty):
    return {
        "branch_id": branch.id,
        "items": [{"product_id": cement.id, "product_uom_id": cement_kg.id, "qty": qty}],
    }


class TestSystemRoutes:
    def test_health(self, client, db_session):
        resp = client.get("/api/system/health")

        assert resp.status_code == 200
        assert resp.json["status"] == "healthy"
        assert resp.json["checks"]["database"]["details"]["branches"] == 0


class TestActorHeader:
    def test_missing_header(self, client, branch, cement, cement_bag):
        resp = client.post("/api/inventory/purchases", json=purchase_body(branch, cement, cement_bag, 1))

        assert resp.status_code == 400
        assert resp.json["code"] == "VALIDATION"

    def test_blank_header(self, client, branch, cement, cement_bag):
        resp = client.post(
            "/api/inventory/purchases",
            json=purchase_body(branch, cement, cement_bag, 1),
            headers={"X-Actor-Id": "   "},
        )
        assert resp.status_code == 400

    def test_overlong_header(self, client, branch, cement, cement_bag):
        resp = client.post(
            "/api/inventory/purchases",
            json=purchase_body(branch, cement, cement_bag, 1),
            headers={"X-Actor-Id": "x" * 65},
        )
        assert resp.status_code == 400

    def test_reads_do_not_need_actor(self, client, branch, cement):
        resp = client.get(f"/api/inventory/stock/{branch.id}/{cement.id}")

        assert resp.status_code == 200
        assert Decimal(resp.json["qty_base"]) == Decimal("0")


class TestInventoryRoutes:
    def test_purchase_then_sale(self, client, branch, cement, cement_bag, cement_kg):
        resp = client.post("/api/inventory/purchases", json=purchase_body(branch, cement, cement_bag, 2), headers=HEADERS)

        assert resp.status_code == 201
        tx = resp.json["transaction"]
        assert tx["type"] == "PURCHASE"
        assert tx["created_by"] == ACTOR
        assert Decimal(tx["items"][0]["factor_used"]) == Decimal("50")
        assert Decimal(resp.json["stock"][0]["qty_base"]) == Decimal("100")

        resp = client.post("/api/inventory/sales", json=sale_body(branch, cement, cement_kg, 30), headers=HEADERS)

        assert resp.status_code == 201
        assert Decimal(resp.json["stock"][0]["qty_base"]) == Decimal("70")

    def test_insufficient_stock_is_409(self, client, branch, cement, cement_bag, cement_kg):
        client.post("/api/inventory/purchases", json=purchase_body(branch, cement, cement_bag, 2), headers=HEADERS)

        resp = client.post("/api/inventory/sales", json=sale_body(branch, cement, cement_kg, 150), headers=HEADERS)

        assert resp.status_code == 409
        assert resp.json["code"] == "INSUFFICIENT_STOCK"
        assert resp.json["details"]["product_id"] == cement.id
        assert Decimal(resp.json["details"]["available"]) == Decimal("100")
        assert Decimal(resp.json["details"]["requested"]) == Decimal("150")

        stock = client.get(f"/api/inventory/stock/{branch.id}/{cement.id}")
        assert Decimal(stock.json["qty_base"]) == Decimal("100")

    def test_invalid_purpose_is_400(self, client, branch, cement, cement_bag):
        resp = client.post("/api/inventory/sales", json=sale_body(branch, cement, cement_bag, 1), headers=HEADERS)

        assert resp.status_code == 400
        assert resp.json["code"] == "INVALID_PURPOSE"

    def test_missing_items_is_400(self, client, branch):
        resp = client.post("/api/inventory/sales", json={"branch_id": branch.id}, headers=HEADERS)

        assert resp.status_code == 400

    def test_unknown_mapping_is_404(self, client, branch, cement):
        body = {"branch_id": branch.id, "items": [{"product_id": cement.id, "product_uom_id": 9999, "qty": 1}]}

        resp = client.post("/api/inventory/purchases", json=body, headers=HEADERS)

        assert resp.status_code == 404

    def test_adjustment_needs_direction(self, client, branch, cement, cement_kg):
        resp = client.post("/api/inventory/adjustments", json=sale_body(branch, cement, cement_kg, 1), headers=HEADERS)

        assert resp.status_code == 400

    def test_list_and_get_transactions(self, client, branch, cement, cement_bag):
        created = client.post(
            "/api/inventory/purchases", json=purchase_body(branch, cement, cement_bag, 1), headers=HEADERS
        ).json["transaction"]

        listing = client.get(f"/api/inventory/transactions?branch_id={branch.id}&type=purchase")
        single = client.get(f"/api/inventory/transactions/{created['id']}")
        missing = client.get("/api/inventory/transactions/424242")

        assert [t["id"] for t in listing.json["transactions"]] == [created["id"]]
        assert single.json["transaction"]["id"] == created["id"]
        assert missing.status_code == 404

    def test_verify(self, client, branch, cement, cement_bag):
        client.post("/api/inventory/purchases", json=purchase_body(branch, cement, cement_bag, 1), headers=HEADERS)

        resp = client.get(f"/api/inventory/verify/{branch.id}")

        assert resp.status_code == 200
        assert resp.json["ok"] is True


class TestCatalogRoutes:
    def test_create_product(self, client, branch, kg, bag):
        resp = client.post(
            "/api/catalog/products",
            json={
                "branch_id": branch.id,
                "barcode": "7501000000048",
                "name": "Mortero",
                "base_uom_id": kg.id,
                "is_divisible": True,
                "retail_price_cents": 400,
                "purchase_uom": {"uom_id": bag.id, "factor_to_base": 40},
            },
            headers=HEADERS,
        )

        assert resp.status_code == 201
        assert len(resp.json["uoms"]) == 2

    def test_duplicate_barcode_is_409(self, client, branch, kg, cement):
        resp = client.post(
            "/api/catalog/products",
            json={"branch_id": branch.id, "barcode": cement.barcode, "name": "Otro", "base_uom_id": kg.id},
            headers=HEADERS,
        )

        assert resp.status_code == 409

    def test_lookup_by_barcode(self, client, branch, cement):
        found = client.get(f"/api/catalog/products/by-barcode?branch_id={branch.id}&barcode={cement.barcode}")
        missing = client.get(f"/api/catalog/products/by-barcode?branch_id={branch.id}&barcode=000")

        assert found.json["product"]["id"] == cement.id
        assert missing.status_code == 404

    def test_convert_and_price(self, client, cement, cement_kg, cement_bag):
        conv = client.get(
            f"/api/catalog/products/{cement.id}/convert?qty=3&from_uom_id={cement_bag.id}&to_uom_id={cement_kg.id}"
        )
        price = client.get(f"/api/catalog/products/{cement.id}/price?product_uom_id={cement_bag.id}&tier=purchase")

        assert Decimal(conv.json["qty"]) == Decimal("150")
        assert price.json["unit_price_cents"] == 15000

    def test_categories_and_brands(self, client, db_session):
        created = client.post("/api/catalog/categories", json={"name": "Cementos"}, headers=HEADERS)
        duplicate = client.post("/api/catalog/categories", json={"name": "Cementos"}, headers=HEADERS)
        brand = client.post("/api/catalog/brands", json={"name": "Cemex"}, headers=HEADERS)

        assert created.status_code == 201
        assert duplicate.status_code == 409
        assert brand.status_code == 201
        assert [c["name"] for c in client.get("/api/catalog/categories").json["categories"]] == ["Cementos"]
        assert [b["name"] for b in client.get("/api/catalog/brands").json["brands"]] == ["Cemex"]

    def test_update_product(self, client, cement, pza):
        category_id = client.post(
            "/api/catalog/categories", json={"name": "Cementos"}, headers=HEADERS
        ).json["category"]["id"]

        resp = client.patch(
            f"/api/catalog/products/{cement.id}",
            json={"name": "Cemento CPC 30R", "category_id": category_id,
                  "sale_uoms": [{"uom_id": pza.id, "factor_to_base": 2}]},
            headers=HEADERS,
        )

        assert resp.status_code == 200
        assert resp.json["product"]["name"] == "Cemento CPC 30R"
        assert resp.json["product"]["category_id"] == category_id
        assert len(resp.json["uoms"]) == 3

    def test_update_product_rejects_branch_change(self, client, cement, other_branch):
        resp = client.patch(f"/api/catalog/products/{cement.id}", json={"branch_id": other_branch.id}, headers=HEADERS)

        assert resp.status_code == 400

    def test_malformed_sale_unit_is_400(self, client, branch, kg):
        resp = client.post(
            "/api/catalog/products",
            json={"branch_id": branch.id, "barcode": "7501000000086", "name": "Grava",
                  "base_uom_id": kg.id, "sale_uoms": ["kg"]},
            headers=HEADERS,
        )

        assert resp.status_code == 400
        assert resp.json["code"] == "VALIDATION"


class TestCreditRoutes:
    def test_evaluate(self, client, customer):
        resp = client.post("/api/credit/evaluate", json={"customer_id": customer.id, "sale_total_cents": 200000})

        assert resp.status_code == 200
        assert resp.json["decision"]["allowed"] is False
        assert resp.json["decision"]["reason"] == "LIMITE"

    def test_bad_date_is_400(self, client, customer):
        resp = client.post(
            "/api/credit/evaluate",
            json={"customer_id": customer.id, "sale_total_cents": 1, "today": "19/10/2026"},
        )

        assert resp.status_code == 400

    def test_create_customer(self, client, branch):
        resp = client.post(
            "/api/credit/customers",
            json={"branch_id": branch.id, "name": "Ferreteria Sol", "credit_limit_cents": 50000,
                  "policy": POLICY_BLOQUEO_PARCIAL},
            headers=HEADERS,
        )

        assert resp.status_code == 201
        assert resp.json["customer"]["policy"] == POLICY_BLOQUEO_PARCIAL

    def test_credit_sale_and_payment(self, client, branch, cement, cement_bag, cement_kg, customer):
        client.post("/api/inventory/purchases", json=purchase_body(branch, cement, cement_bag, 2), headers=HEADERS)

        sale = client.post(
            "/api/checkout/credit",
            json={"customer_id": customer.id, "items": sale_body(branch, cement, cement_kg, 20)["items"],
                  "today": "2026-10-19"},
            headers=HEADERS,
        )
        assert sale.status_code == 201
        note = sale.json["note"]
        assert note["inventory_transaction_id"] == sale.json["transaction"]["id"]
        assert note["due_date"] == "2026-11-18"

        paid = client.post(
            "/api/credit/payments",
            json={"payments": [
                {"note_id": note["id"], "amount_cents": note["total_cents"], "method": "EFECTIVO"},
                {"note_id": note["id"], "amount_cents": 1, "method": "EFECTIVO"},
            ]},
            headers=HEADERS,
        )
        assert paid.status_code == 200
        assert len(paid.json["applied"]) == 1
        assert paid.json["rejected"][0]["code"] == "EXCEEDS_BALANCE"

        summary = client.get(f"/api/credit/customers/{customer.id}/summary?today=2026-10-19")
        assert summary.json["balance_cents"] == 0
        assert summary.json["notes"][0]["status"] == "PAGADA"

    def test_blocked_credit_sale_is_409(self, client, branch, cement, cement_bag, cement_kg, customer):
        client.post("/api/inventory/purchases", json=purchase_body(branch, cement, cement_bag, 40), headers=HEADERS)

        resp = client.post(
            "/api/checkout/credit",
            json={"customer_id": customer.id, "items": sale_body(branch, cement, cement_kg, 300)["items"]},
            headers=HEADERS,
        )

        assert resp.status_code == 409
        assert resp.json["code"] == "CREDIT_BLOCKED"
        assert resp.json["details"]["decision"]["allow_cash"] is True


class TestFormulaRoutes:
    def test_create_and_consume(self, client, branch, cement, cement_bag):
        client.post("/api/inventory/purchases", json=purchase_body(branch, cement, cement_bag, 10), headers=HEADERS)

        created = client.post(
            "/api/formulas/",
            json={"branch_id": branch.id, "name": "f'c 150",
                  "components": [{"product_id": cement.id, "qty_base_per_m3": 300}]},
            headers=HEADERS,
        )
        assert created.status_code == 201
        formula_id = created.json["formula"]["id"]

        listing = client.get(f"/api/formulas/?branch_id={branch.id}")
        assert [f["id"] for f in listing.json["formulas"]] == [formula_id]

        consumed = client.post(
            f"/api/formulas/{formula_id}/consume",
            json={"branch_id": branch.id, "volume_m3": "0.5"},
            headers=HEADERS,
        )
        assert consumed.status_code == 201
        assert consumed.json["transaction"]["type"] == "ADJUST"

        stock = client.get(f"/api/inventory/stock/{branch.id}/{cement.id}")
        assert Decimal(stock.json["qty_base"]) == Decimal("350")

        short = client.post(
            f"/api/formulas/{formula_id}/consume",
            json={"branch_id": branch.id, "volume_m3": 2},
            headers=HEADERS,
        )
        assert short.status_code == 409
