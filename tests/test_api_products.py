"""Tests for the /api/products endpoints."""

from decimal import Decimal

import pytest

from jewelstore.models import AuditLog, Product


def ring_payload(gold, **overrides):
    payload = {
        "name": "Classic Band",
        "sku": "cb-001",
        "metalComposition": [
            {
                "metal": gold.id,
                "variantIndex": 1,
                "variantName": "22K Gold",
                "weightInGrams": 5,
                "wastagePercentage": 3,
                "makingCharges": 500,
                "makingChargeType": "flat",
            }
        ],
        "gstPercentage": 3,
    }
    payload.update(overrides)
    return payload


class TestCreateProduct:
    def test_prices_are_derived(self, admin_client, gold):
        resp = admin_client.post("/api/products", json=ring_payload(gold, calculatedPrice=1, finalPrice=1))

        assert resp.status_code == 201
        data = resp.get_json()
        assert data["calculatedPrice"] == 37116.05
        assert data["finalPrice"] == 37116.05
        assert data["sku"] == "CB-001"
        assert data["slug"] == "classic-band"
        assert data["metalComposition"][0]["variantName"] == "22K Gold"

    def test_with_percentage_discount(self, admin_client, gold):
        resp = admin_client.post(
            "/api/products", json=ring_payload(gold, discount={"type": "percentage", "value": 10})
        )
        assert resp.status_code == 201
        assert resp.get_json()["finalPrice"] == 33404.44

    def test_variant_name_defaults_to_catalog_label(self, admin_client, gold):
        payload = ring_payload(gold)
        del payload["metalComposition"][0]["variantName"]
        resp = admin_client.post("/api/products", json=payload)
        assert resp.get_json()["metalComposition"][0]["variantName"] == "22K Gold"

    def test_gemstone_product(self, admin_client, diamond):
        resp = admin_client.post(
            "/api/products",
            json={
                "name": "Solitaire",
                "sku": "SOL-1",
                "gemstoneComposition": [
                    {"gemstone": diamond.id, "variantIndex": 0, "totalCaratWeight": 0.5, "stoneCharges": 1200}
                ],
            },
        )
        assert resp.status_code == 201
        assert resp.get_json()["finalPrice"] == 26986

    def test_dangling_reference_saves_nothing(self, admin_client, gold):
        payload = ring_payload(gold)
        payload["metalComposition"][0]["variantIndex"] = 9

        resp = admin_client.post("/api/products", json=payload)

        assert resp.status_code == 422
        assert "variant index 9" in resp.get_json()["error"]
        assert Product.query.count() == 0

    def test_unknown_metal(self, admin_client, gold):
        payload = ring_payload(gold)
        payload["metalComposition"][0]["metal"] = 4242
        resp = admin_client.post("/api/products", json=payload)
        assert resp.status_code == 422
        assert resp.get_json()["error"] == "Metal not found: 4242"

    def test_duplicate_sku(self, admin_client, gold):
        assert admin_client.post("/api/products", json=ring_payload(gold)).status_code == 201
        resp = admin_client.post("/api/products", json=ring_payload(gold, name="Other"))
        assert resp.status_code == 409

    def test_duplicate_name_gets_unique_slug(self, admin_client, gold):
        admin_client.post("/api/products", json=ring_payload(gold))
        resp = admin_client.post("/api/products", json=ring_payload(gold, sku="cb-002"))
        assert resp.get_json()["slug"] == "classic-band-1"

    @pytest.mark.parametrize(
        "overrides, field",
        [
            ({"metalComposition": []}, "metalComposition"),
            ({"discount": {"type": "percentage", "value": 150}}, "discount.value"),
            ({"discount": {"type": "bogus", "value": 1}}, "discount.type"),
            ({"gstPercentage": "abc"}, "gstPercentage"),
            ({"sku": ""}, "sku"),
        ],
    )
    def test_validation_errors(self, admin_client, gold, overrides, field):
        resp = admin_client.post("/api/products", json=ring_payload(gold, **overrides))
        assert resp.status_code == 400
        assert resp.get_json()["field"] == field

    def test_negative_weight_rejected(self, admin_client, gold):
        payload = ring_payload(gold)
        payload["metalComposition"][0]["weightInGrams"] = -1
        resp = admin_client.post("/api/products", json=payload)
        assert resp.status_code == 400
        assert resp.get_json()["field"] == "metalComposition[0].weightInGrams"

    def test_requires_admin(self, client, gold):
        assert client.post("/api/products", json=ring_payload(gold)).status_code == 401

    def test_create_is_audited(self, admin_client, gold):
        resp = admin_client.post("/api/products", json=ring_payload(gold))
        entry = AuditLog.query.filter_by(entity_type="Product", action="CREATE").one()
        assert entry.entity_id == resp.get_json()["id"]
        assert entry.email_snapshot == "admin@example.com"


class TestUpdateProduct:
    @pytest.fixture
    def product_id(self, admin_client, gold):
        return admin_client.post("/api/products", json=ring_payload(gold)).get_json()["id"]

    def test_partial_update_reprices(self, admin_client, product_id):
        resp = admin_client.put(f"/api/products/{product_id}", json={"gstPercentage": 0})
        assert resp.status_code == 200
        assert resp.get_json()["finalPrice"] == 36035

    def test_discount_can_be_added_and_removed(self, admin_client, product_id):
        resp = admin_client.put(f"/api/products/{product_id}", json={"discount": {"type": "flat", "value": 116.05}})
        assert resp.get_json()["finalPrice"] == 37000

        resp = admin_client.put(f"/api/products/{product_id}", json={"discount": None})
        assert resp.get_json()["finalPrice"] == 37116.05
        assert resp.get_json()["discount"] is None

    def test_rename_regenerates_slug(self, admin_client, product_id):
        resp = admin_client.put(f"/api/products/{product_id}", json={"name": "Heritage Band"})
        assert resp.get_json()["slug"] == "heritage-band"

    def test_dangling_reference_leaves_product_untouched(self, admin_client, gold, product_id):
        resp = admin_client.put(
            f"/api/products/{product_id}",
            json={"name": "Renamed", "metalComposition": [{"metal": gold.id, "variantIndex": 12, "weightInGrams": 1}]},
        )
        assert resp.status_code == 422

        data = admin_client.get(f"/api/products/{product_id}").get_json()
        assert data["name"] == "Classic Band"
        assert data["finalPrice"] == 37116.05

    def test_cannot_remove_all_composition(self, admin_client, product_id):
        resp = admin_client.put(f"/api/products/{product_id}", json={"metalComposition": []})
        assert resp.status_code == 400

    def test_sku_conflict(self, admin_client, gold, product_id):
        admin_client.post("/api/products", json=ring_payload(gold, sku="OTHER-1", name="Other"))
        resp = admin_client.put(f"/api/products/{product_id}", json={"sku": "other-1"})
        assert resp.status_code == 409

    def test_missing_product(self, admin_client):
        assert admin_client.put("/api/products/999", json={"name": "x"}).status_code == 404


class TestStoredComposition:
    def test_input_is_stored_at_column_scale(self, admin_client, gold):
        payload = ring_payload(gold)
        payload["metalComposition"][0].update(weightInGrams=5.1234, makingCharges=500.005, wastagePercentage=2.345)

        resp = admin_client.post("/api/products", json=payload)

        assert resp.status_code == 201
        line = resp.get_json()["metalComposition"][0]
        assert line["weightInGrams"] == 5.123
        assert line["makingCharges"] == 500.01
        assert line["wastagePercentage"] == 2.35

        # the price saved at create time is what a recalculation from the stored row gives
        data = admin_client.post("/api/prices/recalculate", json={"dryRun": True}).get_json()
        assert data["processed"] == 1
        assert data["pricesChanged"] == 0

    def test_line_inherits_metal_defaults(self, admin_client, db, gold):
        gold.default_wastage_percentage = Decimal("8")
        db.session.commit()
        payload = ring_payload(gold)
        for key in ("wastagePercentage", "makingCharges", "makingChargeType"):
            del payload["metalComposition"][0][key]

        resp = admin_client.post("/api/products", json=payload)

        assert resp.status_code == 201
        data = resp.get_json()
        line = data["metalComposition"][0]
        assert line["wastagePercentage"] == 8
        assert line["makingCharges"] == 500
        assert line["makingChargeType"] == "flat"
        # 34500 + 2760 wastage + 500 making = 37760, + 1132.80 GST
        assert data["finalPrice"] == 38892.8

        db.session.expire_all()
        stored = db.session.get(Product, data["id"]).metal_composition[0]
        assert stored.wastage_percentage == Decimal("8")

    def test_explicit_line_value_wins(self, admin_client, db, gold):
        gold.default_wastage_percentage = Decimal("8")
        db.session.commit()

        resp = admin_client.post("/api/products", json=ring_payload(gold))

        assert resp.get_json()["metalComposition"][0]["wastagePercentage"] == 3
        assert resp.get_json()["finalPrice"] == 37116.05

    def test_update_inherits_metal_defaults(self, admin_client, db, gold):
        product_id = admin_client.post("/api/products", json=ring_payload(gold)).get_json()["id"]
        gold.default_wastage_percentage = Decimal("8")
        db.session.commit()

        resp = admin_client.put(
            f"/api/products/{product_id}",
            json={"metalComposition": [{"metal": gold.id, "variantIndex": 1, "weightInGrams": 5}]},
        )

        assert resp.status_code == 200
        assert resp.get_json()["metalComposition"][0]["wastagePercentage"] == 8
        assert resp.get_json()["finalPrice"] == 38892.8


class TestDeleteProduct:
    def test_delete(self, admin_client, gold):
        product_id = admin_client.post("/api/products", json=ring_payload(gold)).get_json()["id"]

        assert admin_client.delete(f"/api/products/{product_id}").status_code == 200
        assert admin_client.get(f"/api/products/{product_id}").status_code == 404
        assert AuditLog.query.filter_by(entity_type="Product", action="DELETE").count() == 1


class TestListProducts:
    @pytest.fixture
    def catalog(self, gold, diamond, make_product):
        make_product(name="Alpha", metals=[(gold.id, 1, "5")], final_price="37116.05", is_featured=True)
        make_product(name="Bravo", metals=[(gold.id, 2, "2")], final_price="12000")
        make_product(name="Charlie", gemstones=[(diamond.id, 0, "0.5")], final_price="26986")
        make_product(name="Hidden", metals=[(gold.id, 1, "1")], final_price="100", is_active=False)

    def names(self, resp):
        return [p["name"] for p in resp.get_json()["data"]]

    def test_only_active_products(self, client, catalog):
        resp = client.get("/api/products?sort=name_asc")
        assert self.names(resp) == ["Alpha", "Bravo", "Charlie"]
        assert resp.get_json()["pagination"]["total"] == 3

    def test_sort_by_price(self, client, catalog):
        assert self.names(client.get("/api/products?sort=price_asc")) == ["Bravo", "Charlie", "Alpha"]
        assert self.names(client.get("/api/products?sort=price_desc")) == ["Alpha", "Charlie", "Bravo"]

    def test_price_range(self, client, catalog):
        resp = client.get("/api/products?minPrice=20000&maxPrice=30000")
        assert self.names(resp) == ["Charlie"]

    def test_material_filters(self, client, catalog, gold, diamond):
        assert sorted(self.names(client.get(f"/api/products?metal={gold.id}"))) == ["Alpha", "Bravo"]
        assert self.names(client.get(f"/api/products?gemstone={diamond.id}")) == ["Charlie"]

    def test_featured(self, client, catalog):
        assert self.names(client.get("/api/products?featured=true")) == ["Alpha"]

    def test_pagination(self, client, catalog):
        data = client.get("/api/products?sort=name_asc&limit=2&page=2").get_json()
        assert [p["name"] for p in data["data"]] == ["Charlie"]
        assert data["pagination"] == {
            "page": 2, "limit": 2, "total": 3, "totalPages": 2, "hasNext": False, "hasPrev": True,
        }

    def test_limit_is_capped(self, client, catalog):
        assert client.get("/api/products?limit=101").status_code == 400

    def test_unknown_sort(self, client, catalog):
        assert client.get("/api/products?sort=random").status_code == 400

    def test_product_detail_has_totals(self, client, catalog):
        product = Product.query.filter_by(name="Alpha").one()
        data = client.get(f"/api/products/{product.id}").get_json()
        assert data["totalWeightGrams"] == 5
        assert data["finalPrice"] == 37116.05
        assert Decimal(str(data["gstPercentage"])) == Decimal("3")
