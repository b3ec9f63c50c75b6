"""Tests for the order lifecycle: creation, items, status transitions, listing."""

from datetime import timedelta
from decimal import Decimal

from sqlmodel import select

from pos_api.models import BranchTable, Order, OrderItem, Product, utcnow


def _table_status(db_session, table_id):
    db_session.expire_all()
    return db_session.get(BranchTable, table_id).status


# ============== Order creation ==============

class TestCreateOrder:
    def test_create_order_totals_and_occupies_table(self, client, pos_setup, db_session):
        res = client.post("/orders", json={
            "branch_id": pos_setup["branch_id"],
            "table_id": pos_setup["table_id"],
            "items": [
                {"product_id": pos_setup["coffee_id"], "quantity": 2},
                {"product_id": pos_setup["spring_rolls_id"], "quantity": 1},
            ],
        })
        assert res.status_code == 201
        body = res.json()
        assert body["success"] is True
        assert body["message"] == "Order created successfully"
        order = body["data"]
        assert order["total_amount"] == "10.00"
        assert order["status"] == "pending"
        assert order["version"] == 1
        assert order["table"]["table_number"] == "T1"
        assert [item["unit_price"] for item in order["items"]] == ["2.50", "5.00"]
        assert [item["line_total"] for item in order["items"]] == ["5.00", "5.00"]
        assert order["items"][0]["product"]["name"] == "Coffee"
        assert _table_status(db_session, pos_setup["table_id"]) == "occupied"

    def test_create_order_without_table(self, create_order, pos_setup):
        order = create_order(table_id=None)
        assert order["table_id"] is None
        assert order["table"] is None
        assert order["total_amount"] == "10.00"

    def test_initial_status_can_be_given(self, create_order):
        order = create_order(status="preparing")
        assert order["status"] == "preparing"

    def test_total_is_rounded_once_for_the_whole_order(self, client, pos_setup, db_session):
        third = Product(branch_id=pos_setup["branch_id"], name="Mint", price=Decimal("0.33"))
        db_session.add(third)
        db_session.commit()
        res = client.post("/orders", json={
            "branch_id": pos_setup["branch_id"],
            "items": [{"product_id": third.id, "quantity": 3}],
        })
        assert res.status_code == 201
        assert res.json()["data"]["total_amount"] == "0.99"

    def test_missing_items_rejected(self, client, pos_setup):
        res = client.post("/orders", json={"branch_id": pos_setup["branch_id"], "items": []})
        assert res.status_code == 400
        assert res.json() == {"success": False, "error": "Branch ID and items are required"}

    def test_missing_branch_rejected(self, client, pos_setup):
        res = client.post("/orders", json={"items": [{"product_id": pos_setup["coffee_id"], "quantity": 1}]})
        assert res.status_code == 400

    def test_unknown_branch_is_not_found(self, client, pos_setup):
        res = client.post("/orders", json={
            "branch_id": 99999,
            "items": [{"product_id": pos_setup["coffee_id"], "quantity": 1}],
        })
        assert res.status_code == 404
        assert res.json()["error"] == "Branch not found"

    def test_unknown_table_is_not_found(self, client, pos_setup):
        res = client.post("/orders", json={
            "branch_id": pos_setup["branch_id"],
            "table_id": 99999,
            "items": [{"product_id": pos_setup["coffee_id"], "quantity": 1}],
        })
        assert res.status_code == 404
        assert res.json()["error"] == "Table not found"

    def test_table_of_another_branch_rejected(self, client, pos_setup):
        res = client.post("/orders", json={
            "branch_id": pos_setup["branch_id"],
            "table_id": pos_setup["uptown_table_id"],
            "items": [{"product_id": pos_setup["coffee_id"], "quantity": 1}],
        })
        assert res.status_code == 400

    def test_non_positive_quantity_rejected(self, client, pos_setup):
        res = client.post("/orders", json={
            "branch_id": pos_setup["branch_id"],
            "items": [{"product_id": pos_setup["coffee_id"], "quantity": 0}],
        })
        assert res.status_code == 400
        assert "quantity > 0" in res.json()["error"]

    def test_unknown_product_is_not_found(self, client, pos_setup):
        res = client.post("/orders", json={
            "branch_id": pos_setup["branch_id"],
            "items": [{"product_id": 99999, "quantity": 1}],
        })
        assert res.status_code == 404
        assert res.json()["error"] == "Product with ID 99999 not found"

    def test_product_of_another_branch_is_not_found(self, client, pos_setup):
        res = client.post("/orders", json={
            "branch_id": pos_setup["branch_id"],
            "items": [{"product_id": pos_setup["uptown_tea_id"], "quantity": 1}],
        })
        assert res.status_code == 404

    def test_product_marked_unavailable_can_still_be_ordered(self, client, pos_setup):
        res = client.post("/orders", json={
            "branch_id": pos_setup["branch_id"],
            "items": [{"product_id": pos_setup["seasonal_id"], "quantity": 1}],
        })
        assert res.status_code == 201
        assert res.json()["data"]["total_amount"] == "9.90"

    def test_invalid_initial_status_rejected(self, client, pos_setup):
        res = client.post("/orders", json={
            "branch_id": pos_setup["branch_id"],
            "items": [{"product_id": pos_setup["coffee_id"], "quantity": 1}],
            "status": "delivered",
        })
        assert res.status_code == 400
        assert res.json()["error"].startswith("Invalid status")

    def test_failed_item_leaves_nothing_behind(self, client, pos_setup, db_session):
        res = client.post("/orders", json={
            "branch_id": pos_setup["branch_id"],
            "table_id": pos_setup["table_id"],
            "items": [
                {"product_id": pos_setup["coffee_id"], "quantity": 2},
                {"product_id": 99999, "quantity": 1},
            ],
        })
        assert res.status_code == 404
        assert db_session.exec(select(Order)).all() == []
        assert db_session.exec(select(OrderItem)).all() == []
        assert _table_status(db_session, pos_setup["table_id"]) == "available"


# ============== Adding items ==============

class TestAddItem:
    def test_add_item_updates_total_and_version(self, client, create_order, pos_setup):
        order = create_order()
        res = client.post(f"/orders/{order['id']}/items", json={
            "product_id": pos_setup["coffee_id"],
            "quantity": 3,
        })
        assert res.status_code == 201
        data = res.json()["data"]
        assert data["total_amount"] == "17.50"
        assert len(data["items"]) == 3
        assert data["version"] == 2

    def test_adding_same_item_twice_creates_two_lines(self, client, create_order, pos_setup):
        order = create_order(items=[{"product_id": pos_setup["coffee_id"], "quantity": 1}])
        payload = {"product_id": pos_setup["spring_rolls_id"], "quantity": 1}
        client.post(f"/orders/{order['id']}/items", json=payload)
        res = client.post(f"/orders/{order['id']}/items", json=payload)
        data = res.json()["data"]
        assert len(data["items"]) == 3
        assert data["total_amount"] == "12.50"

    def test_price_snapshot_survives_price_change(self, client, create_order, pos_setup, db_session):
        order = create_order()
        coffee = db_session.get(Product, pos_setup["coffee_id"])
        coffee.price = Decimal("4.00")
        db_session.add(coffee)
        db_session.commit()

        res = client.post(f"/orders/{order['id']}/items", json={
            "product_id": pos_setup["coffee_id"],
            "quantity": 1,
        })
        data = res.json()["data"]
        assert [item["unit_price"] for item in data["items"]] == ["2.50", "5.00", "4.00"]
        assert data["total_amount"] == "14.00"

    def test_add_item_to_cancelled_order_rejected(self, client, create_order, pos_setup, db_session):
        order = create_order()
        client.put(f"/orders/{order['id']}/status", json={"status": "cancelled"})

        res = client.post(f"/orders/{order['id']}/items", json={
            "product_id": pos_setup["coffee_id"],
            "quantity": 1,
        })
        assert res.status_code == 400
        assert res.json()["error"] == "Cannot add items to paid or cancelled orders"
        db_session.expire_all()
        stored = db_session.get(Order, order["id"])
        assert len(stored.items) == 2
        assert stored.total_amount == Decimal("10.00")

    def test_add_item_to_paid_order_rejected(self, client, create_order, pos_setup):
        order = create_order()
        client.post("/payments", json={"order_id": order["id"], "amount": "10.00", "method": "cash"})
        res = client.post(f"/orders/{order['id']}/items", json={
            "product_id": pos_setup["coffee_id"],
            "quantity": 1,
        })
        assert res.status_code == 400

    def test_add_item_validation(self, client, create_order, pos_setup):
        order = create_order()
        res = client.post(f"/orders/{order['id']}/items", json={
            "product_id": pos_setup["coffee_id"],
            "quantity": -1,
        })
        assert res.status_code == 400

    def test_add_item_unknown_order(self, client, pos_setup):
        res = client.post("/orders/99999/items", json={"product_id": pos_setup["coffee_id"], "quantity": 1})
        assert res.status_code == 404

    def test_add_item_unknown_product(self, client, create_order):
        order = create_order()
        res = client.post(f"/orders/{order['id']}/items", json={"product_id": 99999, "quantity": 1})
        assert res.status_code == 404

    def test_add_item_marked_unavailable(self, client, create_order, pos_setup):
        order = create_order()
        res = client.post(f"/orders/{order['id']}/items", json={
            "product_id": pos_setup["seasonal_id"],
            "quantity": 1,
        })
        assert res.status_code == 201
        assert res.json()["data"]["total_amount"] == "19.90"

    def test_stale_version_conflicts(self, client, create_order, pos_setup):
        order = create_order()
        client.post(f"/orders/{order['id']}/items", json={
            "product_id": pos_setup["coffee_id"],
            "quantity": 1,
            "version": 1,
        })
        res = client.post(f"/orders/{order['id']}/items", json={
            "product_id": pos_setup["coffee_id"],
            "quantity": 1,
            "version": 1,
        })
        assert res.status_code == 409
        assert "version" in res.json()["error"]


# ============== Status transitions ==============

class TestUpdateStatus:
    def test_walk_through_kitchen_states(self, client, create_order):
        order = create_order()
        for new_status in ("preparing", "ready", "served"):
            res = client.put(f"/orders/{order['id']}/status", json={"status": new_status})
            assert res.status_code == 200
            assert res.json()["data"]["status"] == new_status

    def test_unknown_status_rejected_and_order_unchanged(self, client, create_order):
        order = create_order()
        res = client.put(f"/orders/{order['id']}/status", json={"status": "eaten"})
        assert res.status_code == 400
        assert "pending, preparing, ready, served, paid, cancelled" in res.json()["error"]
        res = client.get(f"/orders/{order['id']}")
        assert res.json()["data"]["status"] == "pending"
        assert res.json()["data"]["version"] == 1

    def test_missing_status_rejected(self, client, create_order):
        order = create_order()
        res = client.put(f"/orders/{order['id']}/status", json={})
        assert res.status_code == 400
        assert res.json()["error"] == "Status is required"

    def test_cancel_releases_table(self, client, create_order, pos_setup, db_session):
        order = create_order()
        assert _table_status(db_session, pos_setup["table_id"]) == "occupied"
        res = client.put(f"/orders/{order['id']}/status", json={"status": "cancelled"})
        assert res.status_code == 200
        assert _table_status(db_session, pos_setup["table_id"]) == "available"

    def test_paid_via_status_releases_table(self, client, create_order, pos_setup, db_session):
        order = create_order()
        client.put(f"/orders/{order['id']}/status", json={"status": "paid"})
        assert _table_status(db_session, pos_setup["table_id"]) == "available"

    def test_status_version_precondition(self, client, create_order):
        order = create_order()
        res = client.put(f"/orders/{order['id']}/status", json={"status": "preparing", "version": 5})
        assert res.status_code == 409
        res = client.put(f"/orders/{order['id']}/status", json={"status": "preparing", "version": 1})
        assert res.status_code == 200
        assert res.json()["data"]["version"] == 2

    def test_unknown_order(self, client):
        res = client.put("/orders/99999/status", json={"status": "ready"})
        assert res.status_code == 404


# ============== Listing ==============

class TestListOrders:
    def test_newest_first_with_pagination(self, client, create_order, db_session):
        first = create_order(table_id=None)
        second = create_order(table_id=None)
        stored = db_session.get(Order, first["id"])
        stored.order_date = utcnow() - timedelta(hours=2)
        db_session.add(stored)
        db_session.commit()

        res = client.get("/orders", params={"limit": 1, "offset": 0})
        body = res.json()
        assert body["count"] == 2
        assert body["pagination"] == {"total": 2, "limit": 1, "offset": 0, "pages": 2}
        assert [order["id"] for order in body["data"]] == [second["id"]]

        res = client.get("/orders", params={"limit": 1, "offset": 1})
        assert [order["id"] for order in res.json()["data"]] == [first["id"]]

    def test_filters(self, client, create_order, pos_setup):
        seated = create_order()
        takeaway = create_order(table_id=None)
        client.put(f"/orders/{takeaway['id']}/status", json={"status": "ready"})

        res = client.get("/orders", params={"status": "ready"})
        assert [order["id"] for order in res.json()["data"]] == [takeaway["id"]]
        res = client.get("/orders", params={"table_id": pos_setup["table_id"]})
        assert [order["id"] for order in res.json()["data"]] == [seated["id"]]
        res = client.get("/orders", params={"branch_id": pos_setup["uptown_branch_id"]})
        assert res.json()["count"] == 0

    def test_date_range(self, client, create_order):
        create_order()
        today = utcnow().date()
        res = client.get("/orders", params={"date_from": today.isoformat(), "date_to": today.isoformat()})
        assert res.json()["count"] == 1
        tomorrow = (today + timedelta(days=1)).isoformat()
        res = client.get("/orders", params={"date_from": tomorrow})
        assert res.json()["count"] == 0

    def test_invalid_date(self, client):
        res = client.get("/orders", params={"date_from": "yesterday"})
        assert res.status_code == 400

    def test_company_scope(self, client, create_order, pos_setup):
        create_order()
        res = client.get("/orders", headers={"X-Company-Id": str(pos_setup["company_id"])})
        assert res.json()["count"] == 1
        res = client.get("/orders", headers={"X-Company-Id": str(pos_setup["other_company_id"])})
        assert res.json()["count"] == 0

    def test_get_order_outside_scope_is_not_found(self, client, create_order, pos_setup):
        order = create_order()
        res = client.get(f"/orders/{order['id']}", headers={"X-Company-Id": str(pos_setup["other_company_id"])})
        assert res.status_code == 404

    def test_get_order_includes_payments(self, client, create_order):
        order = create_order()
        client.post("/payments", json={"order_id": order["id"], "amount": "4.00", "method": "card"})
        res = client.get(f"/orders/{order['id']}")
        data = res.json()["data"]
        assert [payment["amount"] for payment in data["payments"]] == ["4.00"]

    def test_branch_orders(self, client, create_order, pos_setup):
        create_order()
        res = client.get(f"/branches/{pos_setup['branch_id']}/orders")
        assert res.status_code == 200
        assert res.json()["count"] == 1
        res = client.get(f"/branches/{pos_setup['branch_id']}/orders", params={"date": utcnow().date().isoformat()})
        assert res.json()["count"] == 1
        res = client.get("/branches/99999/orders")
        assert res.status_code == 404

    def test_export_csv(self, client, create_order):
        order = create_order()
        res = client.get("/orders/export")
        assert res.status_code == 200
        assert res.headers["content-type"].startswith("text/csv")
        lines = res.text.strip().splitlines()
        assert lines[0] == "id,branch_id,table_number,status,total_amount,paid_amount,order_date"
        assert lines[1].startswith(f"{order['id']},")
        assert ",T1,pending,10.00,0.00," in lines[1]
