"""
Product catalog tests.

Verifies:
- Role gates (INVTEAM writes, INVTEAM/DLTEAM reads, ADMIN has neither)
- SKU uniqueness and field validation
- Category / damaged / perishable / expiry queries
- Quantity adjustment is ledgered and never drives stock negative
- Products with history cannot be deleted
"""

from conftest import ledger_rows, make_product, product_state


def _create(client, headers, **overrides):
    payload = {"sku": "SKU-100", "name": "Blue Kettle", "category": "electronics"}
    payload.update(overrides)
    return client.post("/api/products", json=payload, headers=headers)


class TestProductAccess:

    def test_inventory_team_creates_product(self, client, invteam):
        resp = _create(client, invteam["headers"], quantity=3, perishable=True, expiry_date="2030-01-31")
        assert resp.status_code == 201
        data = resp.get_json()["data"]
        assert data["sku"] == "SKU-100"
        assert data["category"] == "ELECTRONICS"
        assert data["quantity"] == 3
        assert data["damaged"] is False
        assert data["expiry_date"] == "2030-01-31"

    def test_delivery_team_cannot_write(self, client, agent):
        assert _create(client, agent["headers"]).status_code == 403

    def test_admin_is_not_inventory_team(self, client, admin):
        assert _create(client, admin["headers"]).status_code == 403
        assert client.get("/api/products", headers=admin["headers"]).status_code == 403

    def test_delivery_team_can_read(self, client, agent, widget):
        resp = client.get(f"/api/products/{widget}", headers=agent["headers"])
        assert resp.status_code == 200
        assert resp.get_json()["data"]["name"] == "Widget"

    def test_requires_authentication(self, client):
        assert client.get("/api/products").status_code == 401


class TestProductValidation:

    def test_duplicate_sku(self, client, invteam):
        assert _create(client, invteam["headers"]).status_code == 201
        resp = _create(client, invteam["headers"], name="Other")
        assert resp.status_code == 409

    def test_field_rules(self, client, invteam):
        resp = _create(client, invteam["headers"], sku="AB", name="X", category="WEAPONS", quantity=-1)
        assert resp.status_code == 400
        assert set(resp.get_json()["errors"]) >= {"sku", "name"}

    def test_business_rules(self, client, invteam):
        resp = _create(client, invteam["headers"], category="WEAPONS", quantity=-1)
        assert resp.status_code == 400
        assert set(resp.get_json()["errors"]) == {"category", "quantity"}

    def test_unknown_fields_rejected(self, client, invteam):
        resp = _create(client, invteam["headers"], price_cents=100)
        assert resp.status_code == 400
        assert "price_cents" in resp.get_json()["errors"]

    def test_required_fields(self, client, invteam):
        resp = client.post("/api/products", json={}, headers=invteam["headers"])
        assert resp.status_code == 400
        assert set(resp.get_json()["errors"]) == {"sku", "name"}


class TestProductQueries:

    def test_not_found_message(self, client, invteam):
        resp = client.get("/api/products/999", headers=invteam["headers"])
        assert resp.status_code == 404
        assert resp.get_json()["message"] == "Product not found with id : '999'"

    def test_get_by_sku(self, client, invteam, widget):
        resp = client.get("/api/products/sku/WID-001", headers=invteam["headers"])
        assert resp.status_code == 200
        assert resp.get_json()["data"]["id"] == widget
        assert client.get("/api/products/sku/NOPE", headers=invteam["headers"]).status_code == 404

    def test_list_paginated(self, app, client, invteam):
        for i in range(5):
            make_product(app, f"P-{i:03d}", name=f"Item {i}")
        resp = client.get("/api/products?page=2&per_page=2", headers=invteam["headers"])
        data = resp.get_json()["data"]
        assert [p["name"] for p in data["items"]] == ["Item 2", "Item 3"]
        assert data["pagination"]["total"] == 5
        assert data["pagination"]["has_next"] is True

        everything = client.get("/api/products", headers=invteam["headers"]).get_json()["data"]
        assert everything["count"] == 5

    def test_by_category(self, client, invteam, widget, gadget):
        resp = client.get("/api/products/category/toys", headers=invteam["headers"])
        assert [p["id"] for p in resp.get_json()["data"]] == [gadget]
        assert client.get("/api/products/category/nope", headers=invteam["headers"]).status_code == 400

    def test_damaged_and_perishable(self, app, client, invteam, widget):
        broken = make_product(app, "BRK-001", damaged=True)
        milk = make_product(app, "MLK-001", perishable=True)

        damaged = client.get("/api/products/damaged", headers=invteam["headers"]).get_json()["data"]
        perishable = client.get("/api/products/perishable", headers=invteam["headers"]).get_json()["data"]
        assert [p["id"] for p in damaged] == [broken]
        assert [p["id"] for p in perishable] == [milk]

    def test_expiry_queries(self, app, client, invteam):
        from datetime import date

        early = make_product(app, "EXP-001", name="A early", expiry_date=date(2030, 1, 10))
        late = make_product(app, "EXP-002", name="B late", expiry_date=date(2030, 3, 1))
        make_product(app, "EXP-003", name="C never")

        before = client.get("/api/products/expiring-before?date=2030-02-01", headers=invteam["headers"])
        assert [p["id"] for p in before.get_json()["data"]] == [early]

        between = client.get(
            "/api/products/expiring-between?start_date=2030-01-10&end_date=2030-03-01",
            headers=invteam["headers"],
        )
        assert [p["id"] for p in between.get_json()["data"]] == [early, late]

        reversed_range = client.get(
            "/api/products/expiring-between?start_date=2030-03-01&end_date=2030-01-01",
            headers=invteam["headers"],
        )
        assert reversed_range.status_code == 400

        bad = client.get("/api/products/expiring-before?date=tomorrow", headers=invteam["headers"])
        assert bad.status_code == 400
        assert "date" in bad.get_json()["errors"]


class TestProductUpdates:

    def test_partial_update(self, app, client, invteam, widget):
        resp = client.put(
            f"/api/products/{widget}",
            json={"description": "Now with lid", "perishable": True},
            headers=invteam["headers"],
        )
        assert resp.status_code == 200
        state = product_state(app, widget)
        assert state["description"] == "Now with lid"
        assert state["perishable"] is True
        assert state["name"] == "Widget"

    def test_update_to_taken_sku(self, client, invteam, widget, gadget):
        resp = client.put(f"/api/products/{widget}", json={"sku": "GAD-001"}, headers=invteam["headers"])
        assert resp.status_code == 409

    def test_adjust_quantity_is_ledgered(self, app, client, invteam, widget):
        resp = client.patch(f"/api/products/{widget}/quantity?quantity_change=-4", headers=invteam["headers"])
        assert resp.status_code == 200
        assert resp.get_json()["data"]["quantity"] == 6

        rows = ledger_rows(app, product_id=widget)
        assert len(rows) == 1
        assert rows[0]["type"] == "ADJUSTMENT"
        assert rows[0]["quantity"] == -4
        assert rows[0]["user_id"] == invteam["id"]

    def test_adjust_below_zero_rejected(self, app, client, invteam, widget):
        resp = client.patch(f"/api/products/{widget}/quantity?quantity_change=-11", headers=invteam["headers"])
        assert resp.status_code == 400
        assert resp.get_json()["message"] == "Cannot reduce quantity below zero"
        assert product_state(app, widget)["quantity"] == 10
        assert ledger_rows(app, product_id=widget) == []

    def test_adjust_requires_integer(self, client, invteam, widget):
        resp = client.patch(f"/api/products/{widget}/quantity?quantity_change=abc", headers=invteam["headers"])
        assert resp.status_code == 400


class TestProductDelete:

    def test_delete_without_history(self, app, client, invteam):
        pid = make_product(app, "DEL-001")
        resp = client.delete(f"/api/products/{pid}", headers=invteam["headers"])
        assert resp.status_code == 200
        assert client.get(f"/api/products/{pid}", headers=invteam["headers"]).status_code == 404

    def test_delete_with_ledger_history(self, client, invteam, widget):
        client.patch(f"/api/products/{widget}/quantity?quantity_change=1", headers=invteam["headers"])
        resp = client.delete(f"/api/products/{widget}", headers=invteam["headers"])
        assert resp.status_code == 409
