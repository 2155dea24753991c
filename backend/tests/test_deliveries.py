"""
Delivery tests.

Verifies:
- Assignment writes the delivery, its items and one STOCK_OUT per item atomically
- The status lifecycle (allowed transitions only, delivered_at stamped once)
- Agents can only act on their own deliveries
- Returned / damaged items go back into stock when a delivery comes back
- Inventory-team queries
"""

import pytest

from dlvery.extensions import db
from dlvery.models import Delivery
from dlvery.services.delivery_service import can_transition
from dlvery.time_utils import today

from conftest import ledger_rows, product_state


def _assign(client, headers, agent_id, items, **extra):
    payload = {
        "delivery_agent_id": agent_id,
        "customer_name": "Jane Customer",
        "customer_address": "1 Main St",
        "customer_phone": "+15551234567",
        "items": items,
    }
    payload.update(extra)
    return client.post("/api/invteam/deliveries", json=payload, headers=headers)


@pytest.fixture()
def delivery(client, invteam, agent, widget, gadget):
    """A PENDING delivery to `agent`: 3 widgets, 2 gadgets."""
    resp = _assign(
        client, invteam["headers"], agent["id"],
        [{"sku": "WID-001", "quantity": 3}, {"product_id": gadget, "quantity": 2}],
        scheduled_date=today().isoformat(),
        priority="high",
    )
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()["data"]


def _put(client, headers, delivery_id, action, **payload):
    return client.put(f"/api/dlteam/deliveries/{delivery_id}/{action}", json=payload, headers=headers)


@pytest.mark.parametrize(
    "current,new,allowed",
    [
        ("PENDING", "IN_TRANSIT", True),
        ("PENDING", "DELIVERED", False),
        ("IN_TRANSIT", "PARTIALLY_DELIVERED", True),
        ("DOOR_LOCK", "IN_TRANSIT", True),
        ("DOOR_LOCK", "DELIVERED", False),
        ("DELIVERED", "RETURNED", False),
        ("RETURNED", "IN_TRANSIT", False),
    ],
)
def test_transition_table(current, new, allowed):
    assert can_transition(current, new) is allowed


class TestAssignment:

    def test_assignment_takes_stock(self, app, delivery, agent, widget, gadget):
        assert delivery["status"] == "PENDING"
        assert delivery["priority"] == "HIGH"
        assert delivery["delivery_agent_id"] == agent["id"]
        assert [(i["sku"], i["product_name"], i["quantity"]) for i in delivery["items"]] == [
            ("WID-001", "Widget", 3),
            ("GAD-001", "Gadget", 2),
        ]

        assert product_state(app, widget)["quantity"] == 7
        assert product_state(app, gadget)["quantity"] == 3

        rows = ledger_rows(app, delivery_id=delivery["id"])
        assert [(r["type"], r["sku"], r["quantity"]) for r in rows] == [
            ("STOCK_OUT", "WID-001", 3),
            ("STOCK_OUT", "GAD-001", 2),
        ]
        assert all(r["notes"] == f"Assigned for delivery #{delivery['id']}" for r in rows)
        assert all(r["user_id"] == agent["id"] for r in rows)

    def test_insufficient_stock_rolls_back_everything(self, app, client, invteam, agent, widget, gadget):
        resp = _assign(
            client, invteam["headers"], agent["id"],
            [{"sku": "WID-001", "quantity": 3}, {"sku": "GAD-001", "quantity": 6}],
        )
        assert resp.status_code == 400
        assert resp.get_json()["message"] == "Cannot reduce quantity below zero"

        assert product_state(app, widget)["quantity"] == 10
        assert product_state(app, gadget)["quantity"] == 5
        assert ledger_rows(app) == []
        with app.app_context():
            assert db.session.query(Delivery).count() == 0

    def test_unknown_product(self, client, invteam, agent):
        resp = _assign(client, invteam["headers"], agent["id"], [{"sku": "NOPE-1", "quantity": 1}])
        assert resp.status_code == 404

    def test_agent_must_be_delivery_team(self, client, invteam, widget):
        resp = _assign(client, invteam["headers"], invteam["id"], [{"sku": "WID-001", "quantity": 1}])
        assert resp.status_code == 400
        assert "delivery_agent_id" in resp.get_json()["errors"]

        resp = _assign(client, invteam["headers"], 999, [{"sku": "WID-001", "quantity": 1}])
        assert resp.status_code == 404

    def test_new_delivery_must_be_pending(self, client, invteam, agent, widget):
        resp = _assign(
            client, invteam["headers"], agent["id"],
            [{"sku": "WID-001", "quantity": 1}], status="IN_TRANSIT",
        )
        assert resp.status_code == 400

    def test_item_validation(self, client, invteam, agent):
        resp = _assign(client, invteam["headers"], agent["id"], [{"quantity": 0}])
        assert resp.status_code == 400
        assert set(resp.get_json()["errors"]) == {"items[0].sku", "items[0].quantity"}

        resp = _assign(client, invteam["headers"], agent["id"], [])
        assert resp.status_code == 400

    def test_item_flags_must_be_booleans(self, app, client, invteam, agent, widget):
        resp = _assign(
            client, invteam["headers"], agent["id"],
            [{"sku": "WID-001", "quantity": 2, "damaged": "false", "returned": 1}],
        )
        assert resp.status_code == 400
        assert set(resp.get_json()["errors"]) == {"items[0].damaged", "items[0].returned"}
        assert product_state(app, widget)["quantity"] == 10

    @pytest.mark.parametrize(
        "items,field",
        [
            ([{"sku": "WID-001", "quantity": 2}, {"sku": "WID-001", "quantity": 3}], "items[1].sku"),
            ([{"product_id": "widget", "quantity": 2}], "items[0].product_id"),
        ],
    )
    def test_item_references_validated(self, app, client, invteam, agent, widget, items, field):
        resp = _assign(client, invteam["headers"], agent["id"], items)
        assert resp.status_code == 400
        assert field in resp.get_json()["errors"]
        assert product_state(app, widget)["quantity"] == 10
        assert ledger_rows(app) == []

    def test_same_product_by_sku_and_id_rejected(self, app, client, invteam, agent, widget):
        resp = _assign(
            client, invteam["headers"], agent["id"],
            [{"sku": "WID-001", "quantity": 2}, {"product_id": widget, "quantity": 3}],
        )
        assert resp.status_code == 400
        assert "items[1].sku" in resp.get_json()["errors"]
        assert product_state(app, widget)["quantity"] == 10
        assert ledger_rows(app) == []
        with app.app_context():
            assert db.session.query(Delivery).count() == 0

    def test_delivery_team_cannot_assign(self, client, agent, widget):
        resp = _assign(client, agent["headers"], agent["id"], [{"sku": "WID-001", "quantity": 1}])
        assert resp.status_code == 403


class TestLifecycle:

    def test_start_then_complete(self, app, client, agent, delivery):
        h = agent["headers"]
        started = _put(client, h, delivery["id"], "start")
        assert started.status_code == 200
        assert started.get_json()["data"]["status"] == "IN_TRANSIT"

        no_signature = _put(client, h, delivery["id"], "complete", customer_name="Jane")
        assert no_signature.status_code == 400

        done = _put(client, h, delivery["id"], "complete", customer_name="Jane C.", customer_signature="data:image/png;base64,AAA")
        assert done.status_code == 200
        data = done.get_json()["data"]
        assert data["status"] == "DELIVERED"
        assert data["customer_name"] == "Jane C."
        assert data["delivered_at"] is not None

        again = _put(client, h, delivery["id"], "complete", customer_signature="x")
        assert again.status_code == 409
        refreshed = client.get(f"/api/dlteam/deliveries/{delivery['id']}", headers=h).get_json()["data"]
        assert refreshed["delivered_at"] == data["delivered_at"]

    def test_complete_accepts_query_parameters(self, client, agent, delivery):
        h = agent["headers"]
        _put(client, h, delivery["id"], "start")
        resp = client.put(
            f"/api/dlteam/deliveries/{delivery['id']}/complete?customer_name=Jane&customer_signature=sig",
            headers=h,
        )
        assert resp.status_code == 200
        assert resp.get_json()["data"]["customer_signature"] == "sig"

    def test_cannot_skip_in_transit(self, client, agent, delivery):
        resp = _put(client, agent["headers"], delivery["id"], "complete", customer_signature="sig")
        assert resp.status_code == 409
        resp = _put(client, agent["headers"], delivery["id"], "status", status="RETURNED")
        assert resp.status_code == 409

    def test_door_lock_retry(self, client, agent, delivery):
        h = agent["headers"]
        _put(client, h, delivery["id"], "start")
        locked = _put(client, h, delivery["id"], "door-lock", notes="Nobody home")
        assert locked.get_json()["data"]["status"] == "DOOR_LOCK"
        assert locked.get_json()["data"]["notes"] == "Nobody home"

        retry = _put(client, h, delivery["id"], "start")
        assert retry.get_json()["data"]["status"] == "IN_TRANSIT"

    def test_invalid_status_value(self, client, agent, delivery):
        resp = _put(client, agent["headers"], delivery["id"], "status", status="LOST")
        assert resp.status_code == 400


class TestOwnership:

    @pytest.mark.parametrize(
        "action,payload",
        [
            ("start", {}),
            ("complete", {"customer_signature": "sig"}),
            ("door-lock", {"notes": "n/a"}),
            ("status", {"status": "IN_TRANSIT"}),
            ("items", {"items": [{"sku": "WID-001", "damaged": True}]}),
        ],
    )
    def test_other_agent_cannot_mutate(self, app, client, other_agent, delivery, action, payload):
        resp = _put(client, other_agent["headers"], delivery["id"], action, **payload)
        assert resp.status_code == 403

        with app.app_context():
            stored = db.session.get(Delivery, delivery["id"])
            assert stored.status == "PENDING"
            assert not any(item.damaged for item in stored.items)

    @pytest.mark.parametrize(
        "action,payload",
        [
            ("complete", {}),
            ("status", {"status": "TELEPORTED"}),
            ("door-lock", {"notes": 42}),
            ("items", {"items": [{"sku": "WID-001", "damaged": "yes"}]}),
        ],
    )
    def test_other_agent_gets_forbidden_before_payload_errors(self, client, other_agent, delivery, action, payload):
        resp = _put(client, other_agent["headers"], delivery["id"], action, **payload)
        assert resp.status_code == 403

    def test_other_agent_cannot_view(self, client, other_agent, delivery):
        resp = client.get(f"/api/dlteam/deliveries/{delivery['id']}", headers=other_agent["headers"])
        assert resp.status_code == 403

    def test_inventory_team_cannot_use_agent_routes(self, client, invteam, delivery):
        assert _put(client, invteam["headers"], delivery["id"], "start").status_code == 403


class TestRestocking:

    def test_returned_and_damaged_items_come_back(self, app, client, agent, delivery, widget, gadget):
        h = agent["headers"]
        flagged = _put(client, h, delivery["id"], "items", items=[
            {"sku": "WID-001", "returned": True},
            {"sku": "GAD-001", "damaged": True},
        ])
        assert flagged.status_code == 200

        _put(client, h, delivery["id"], "start")
        resp = _put(client, h, delivery["id"], "status", status="RETURNED", notes="Refused")
        assert resp.status_code == 200

        assert product_state(app, widget)["quantity"] == 10
        assert product_state(app, widget)["damaged"] is False
        assert product_state(app, gadget)["quantity"] == 5
        assert product_state(app, gadget)["damaged"] is True

        rows = ledger_rows(app, delivery_id=delivery["id"])
        back = [(r["type"], r["sku"], r["quantity"], r["notes"]) for r in rows[2:]]
        assert back == [
            ("RETURN", "WID-001", 3, f"Returned from delivery #{delivery['id']}"),
            ("DAMAGED", "GAD-001", 2, f"Returned from delivery #{delivery['id']} (Damaged)"),
        ]

    def test_partial_delivery_restocks_only_flagged(self, app, client, agent, delivery, widget, gadget):
        h = agent["headers"]
        _put(client, h, delivery["id"], "items", items=[{"sku": "WID-001", "returned": True}])
        _put(client, h, delivery["id"], "start")
        _put(client, h, delivery["id"], "status", status="PARTIALLY_DELIVERED")

        assert product_state(app, widget)["quantity"] == 10
        assert product_state(app, gadget)["quantity"] == 3

    def test_delivered_does_not_restock(self, app, client, agent, delivery, widget):
        h = agent["headers"]
        _put(client, h, delivery["id"], "items", items=[{"sku": "WID-001", "returned": True}])
        _put(client, h, delivery["id"], "start")
        _put(client, h, delivery["id"], "complete", customer_signature="sig")
        assert product_state(app, widget)["quantity"] == 7

    def test_items_frozen_after_terminal_status(self, client, agent, delivery):
        h = agent["headers"]
        _put(client, h, delivery["id"], "start")
        _put(client, h, delivery["id"], "status", status="DAMAGED")
        resp = _put(client, h, delivery["id"], "items", items=[{"sku": "WID-001", "damaged": True}])
        assert resp.status_code == 409

    def test_unknown_item_sku(self, client, agent, delivery):
        resp = _put(client, agent["headers"], delivery["id"], "items", items=[{"sku": "OTHER", "damaged": True}])
        assert resp.status_code == 400


class TestQueries:

    def test_agent_views(self, client, agent, other_agent, delivery):
        h = agent["headers"]
        assert [d["id"] for d in client.get("/api/dlteam/deliveries/my", headers=h).get_json()["data"]] == [delivery["id"]]
        assert len(client.get("/api/dlteam/deliveries/my/today", headers=h).get_json()["data"]) == 1
        assert len(client.get("/api/dlteam/deliveries/my/pending", headers=h).get_json()["data"]) == 1
        assert client.get("/api/dlteam/deliveries/my", headers=other_agent["headers"]).get_json()["data"] == []

        _put(client, h, delivery["id"], "start")
        assert client.get("/api/dlteam/deliveries/my/pending", headers=h).get_json()["data"] == []

    def test_inventory_team_views(self, client, invteam, agent, delivery):
        h = invteam["headers"]
        base = "/api/invteam/deliveries"
        day = today().isoformat()

        assert client.get(f"{base}/{delivery['id']}", headers=h).status_code == 200
        assert client.get(f"{base}/999", headers=h).status_code == 404
        assert len(client.get(base, headers=h).get_json()["data"]) == 1
        assert len(client.get(f"{base}/agent/{agent['id']}", headers=h).get_json()["data"]) == 1
        assert len(client.get(f"{base}/status/pending", headers=h).get_json()["data"]) == 1
        assert client.get(f"{base}/status/DELIVERED", headers=h).get_json()["data"] == []
        assert len(client.get(f"{base}/date/{day}", headers=h).get_json()["data"]) == 1
        assert len(client.get(f"{base}/date-range?start_date={day}&end_date={day}", headers=h).get_json()["data"]) == 1
        assert len(client.get(f"{base}/sku/GAD-001", headers=h).get_json()["data"]) == 1
        assert client.get(f"{base}/sku/NONE", headers=h).get_json()["data"] == []
        assert client.get(f"{base}/damaged", headers=h).get_json()["data"] == []
        assert client.get(f"{base}/date/not-a-date", headers=h).status_code == 400

    def test_damaged_query_after_flagging(self, client, invteam, agent, delivery):
        _put(client, agent["headers"], delivery["id"], "items", items=[{"sku": "GAD-001", "damaged": True}])
        rows = client.get("/api/invteam/deliveries/damaged", headers=invteam["headers"]).get_json()["data"]
        assert [d["id"] for d in rows] == [delivery["id"]]

    def test_delivery_ledger_listing(self, client, invteam, delivery):
        rows = client.get(
            f"/api/inventory/transactions/delivery/{delivery['id']}", headers=invteam["headers"],
        ).get_json()["data"]
        assert {r["type"] for r in rows} == {"STOCK_OUT"}
        assert len(rows) == 2
