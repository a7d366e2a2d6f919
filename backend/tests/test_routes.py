# Overview: Pytest coverage for the JSON API.

from datetime import timedelta

from freshpos.extensions import db
from freshpos.models import Sale


def _create_product(client, today, **overrides):
    payload = {
        "type": "Tomatoes",
        "price": 150,
        "weight": 10,
        "stock_alert": 2,
        "expiry_date": (today + timedelta(days=30)).isoformat(),
    }
    payload.update(overrides)
    response = client.post("/api/products", json=payload)
    assert response.status_code == 201, response.json
    return response.json


class TestSystemRoutes:
    def test_health(self, client, db_session):
        response = client.get("/api/health")
        assert response.status_code == 200
        assert response.json["status"] == "healthy"

    def test_cors_for_allowed_origin(self, client, db_session):
        response = client.get("/api/health", headers={"Origin": "http://localhost:5173"})
        assert response.headers["Access-Control-Allow-Origin"] == "http://localhost:5173"

        response = client.get("/api/health", headers={"Origin": "http://evil.example"})
        assert "Access-Control-Allow-Origin" not in response.headers


class TestProductRoutes:
    def test_create_list_get(self, client, db_session, today):
        created = _create_product(client, today, category_name="Veg")
        assert created["weight"] == 10.0
        assert created["status"] == "fresh"

        listed = client.get("/api/products").json
        assert listed["count"] == 1
        assert listed["items"][0]["category_name"] == "Veg"

        fetched = client.get(f"/api/products/{created['product_id']}")
        assert fetched.status_code == 200
        assert fetched.json["type"] == "Tomatoes"

    def test_create_invalid_lists_violations(self, client, db_session):
        response = client.post("/api/products", json={"price": "x"})
        assert response.status_code == 400
        rules = {(v["field"], v["rule"]) for v in response.json["details"]["violations"]}
        assert ("type", "required") in rules
        assert ("price", "invalid") in rules

    def test_update_rejects_weight(self, client, db_session, today):
        created = _create_product(client, today)
        response = client.put(f"/api/products/{created['product_id']}", json={"weight": 99})
        assert response.status_code == 400
        assert response.json["details"]["violations"][0]["rule"] == "immutable"

    def test_huge_price_is_validation_error(self, client, db_session, today):
        response = client.post("/api/products", json={
            "type": "Saffron", "price": 1e30, "expiry_date": (today + timedelta(days=30)).isoformat(),
        })
        assert response.status_code == 400
        assert response.json["details"]["violations"][0]["rule"] == "invalid"

    def test_missing_product(self, client, db_session):
        assert client.get("/api/products/404").status_code == 404
        assert client.delete("/api/products/404").status_code == 404

    def test_soft_delete_and_restore(self, client, db_session, today):
        created = _create_product(client, today)
        pid = created["product_id"]

        assert client.delete(f"/api/products/{pid}").status_code == 200
        assert client.get("/api/products").json["count"] == 0
        assert client.get("/api/products?include_deleted=true").json["count"] == 1

        restored = client.post(f"/api/products/{pid}/restore")
        assert restored.json["is_deleted"] is False

    def test_alerts_and_refresh(self, client, db_session, today):
        _create_product(client, today, type="Milk", expiry_date=(today + timedelta(days=2)).isoformat())
        alerts = client.get("/api/products/alerts").json
        assert [p["type"] for p in alerts["expiring"]] == ["Milk"]

        refreshed = client.post("/api/products/refresh-status").json
        assert refreshed["checked"] == 1


class TestCategoryRoutes:
    def test_crud(self, client, db_session):
        created = client.post("/api/categories", json={"category_name": "Dairy"})
        assert created.status_code == 201
        cid = created.json["category_id"]

        assert client.post("/api/categories", json={"category_name": "dairy"}).status_code == 409
        assert client.put(f"/api/categories/{cid}", json={"category_name": "Cheese"}).json["category_name"] == "Cheese"
        assert client.get("/api/categories").json["count"] == 1
        assert client.delete(f"/api/categories/{cid}").status_code == 200

    def test_delete_in_use(self, client, db_session, today):
        created = _create_product(client, today, category_name="Fruit")
        response = client.delete(f"/api/categories/{created['category_id']}")
        assert response.status_code == 409


class TestInventoryRoutes:
    def test_adjust_and_balance(self, client, db_session, today):
        pid = _create_product(client, today)["product_id"]

        response = client.post("/api/inventory/adjustments", json={
            "product_id": pid, "reason": "add", "quantity_change": 2.5, "notes": "Delivery",
        })
        assert response.status_code == 201
        assert response.json["new_weight"] == 12.5

        balance = client.get(f"/api/inventory/{pid}/balance").json
        assert balance == {"product_id": pid, "weight": 12.5, "replayed_weight": 12.5, "consistent": True}

        history = client.get(f"/api/inventory/adjustments?product_id={pid}").json
        assert history["count"] == 2

    def test_overdraw_is_conflict(self, client, db_session, today):
        pid = _create_product(client, today, weight=1)["product_id"]
        response = client.post("/api/inventory/adjustments", json={
            "product_id": pid, "reason": "remove", "quantity_change": -2,
        })
        assert response.status_code == 409
        assert response.json["details"]["items"][0]["available"] == 1.0

    def test_huge_add_is_validation_error(self, client, db_session, today):
        pid = _create_product(client, today)["product_id"]
        response = client.post("/api/inventory/adjustments", json={
            "product_id": pid, "reason": "add", "quantity_change": 1e16,
        })
        assert response.status_code == 400
        assert response.json["details"]["violations"][0]["rule"] == "max"
        assert client.get(f"/api/inventory/{pid}/balance").json["weight"] == 10.0

    def test_wrong_sign_is_validation_error(self, client, db_session, today):
        pid = _create_product(client, today)["product_id"]
        response = client.post("/api/inventory/adjustments", json={
            "product_id": pid, "reason": "remove", "quantity_change": 2,
        })
        assert response.status_code == 400


class TestSaleRoutes:
    def _cart(self, client, today):
        a = _create_product(client, today, type="Apples", price=150)["product_id"]
        b = _create_product(client, today, type="Cherries", price=200)["product_id"]
        return [
            {"product_id": a, "quantity": 2, "price_per_kg": 150},
            {"product_id": b, "quantity": 1.5, "price_per_kg": 200},
        ]

    def test_validate_then_complete(self, client, db_session, today):
        items = self._cart(client, today)

        dry = client.post("/api/sales/validate", json={"items": items, "discount": 10, "amount_paid": 600})
        assert dry.status_code == 200
        assert dry.json["ok"] is True
        assert dry.json["total_amount"] == 540.0

        response = client.post("/api/sales", json={"items": items, "discount": 10, "amount_paid": 600})
        assert response.status_code == 201
        assert response.json["receipt_no"] == "RCP-000001"
        assert response.json["total_amount"] == 540.0
        assert response.json["change_amount"] == 60.0
        assert len(response.json["sale"]["items"]) == 2

        sale_id = response.json["sale"]["sale_id"]
        fetched = client.get(f"/api/sales/{sale_id}").json
        assert fetched["receipt_no"] == "RCP-000001"
        assert client.get("/api/sales?receipt_no=RCP").json["count"] == 1

    def test_underpaid_sale(self, client, db_session, today):
        items = self._cart(client, today)
        response = client.post("/api/sales", json={"items": items, "discount": 10, "amount_paid": 500})
        assert response.status_code == 400
        rules = [v["rule"] for v in response.json["details"]["violations"]]
        assert "sufficient_payment" in rules
        assert db.session.query(Sale).count() == 0

    def test_shortage_is_conflict(self, client, db_session, today):
        pid = _create_product(client, today, weight=1)["product_id"]
        response = client.post("/api/sales", json={
            "items": [{"product_id": pid, "quantity": 3}], "amount_paid": 1000,
        })
        assert response.status_code == 409
        assert response.json["details"]["items"] == [{"product_id": pid, "requested": 3.0, "available": 1.0}]

    def test_huge_numbers_are_rejected_with_details(self, client, db_session, today):
        items = self._cart(client, today)

        dry = client.post("/api/sales/validate", json={"items": items, "amount_paid": 1e30})
        assert dry.status_code == 200
        assert dry.json["ok"] is False

        items[0]["quantity"] = 1e30
        response = client.post("/api/sales", json={"items": items, "amount_paid": 1000})
        assert response.status_code == 400
        fields = [v["field"] for v in response.json["details"]["violations"]]
        assert "items[0].quantity" in fields
        assert db.session.query(Sale).count() == 0

    def test_body_must_be_object(self, client, db_session):
        for path in ("/api/sales", "/api/sales/validate"):
            response = client.post(path, json=[1])
            assert response.status_code == 400
            assert response.json["details"]["violations"][0]["rule"] == "json_object"

    def test_bad_date_filter(self, client, db_session):
        assert client.get("/api/sales?start_date=nope").status_code == 400

    def test_unknown_sale(self, client, db_session):
        assert client.get("/api/sales/77").status_code == 404


class TestReportRoutes:
    def test_reports_and_dashboard(self, client, db_session, today):
        _create_product(client, today, weight=1, stock_alert=2)

        sales = client.get("/api/reports?type=sales")
        assert sales.status_code == 200
        assert len(sales.json["daily"]) == 30

        low = client.get("/api/reports?type=low_stock").json
        assert low["summary"]["product_count"] == 1

        assert client.get("/api/reports?type=profit").status_code == 400
        assert client.get("/api/reports?type=sales&start_date=bad").status_code == 400

        dashboard = client.get("/api/dashboard")
        assert dashboard.status_code == 200
        assert dashboard.json["low_stock_count"] == 1
