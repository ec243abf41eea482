"""Operator cart over HTTP: session scoping, scan draining and checkout."""

import pytest

from scanpos.extensions import get_receipts
from scanpos.models import MobileSale, Product, Sale


class TestSessionRequired:
    @pytest.mark.parametrize("method,path", [
        ("get", "/api/cart"),
        ("post", "/api/cart/items"),
        ("post", "/api/cart/scans/drain"),
        ("post", "/api/cart/checkout"),
        ("delete", "/api/cart"),
    ])
    def test_missing_session_is_401(self, client, method, path):
        resp = getattr(client, method)(path, json={})
        assert resp.status_code == 401
        assert resp.get_json()["success"] is False

    def test_carts_are_per_session(self, client, products):
        client.post("/api/cart/items", json={"code": "RAP001"}, headers={"X-Session-Id": "a"})
        other = client.get("/api/cart", headers={"X-Session-Id": "b"}).get_json()
        assert other["cart"]["items"] == []


class TestCartItems:
    def test_add_by_code_merges(self, client, products, session_headers):
        client.post("/api/cart/items", json={"code": "RAP001"}, headers=session_headers)
        resp = client.post("/api/cart/items", json={"product_id": "RAPIDENE-001", "quantity": 2},
                           headers=session_headers)
        assert resp.status_code == 200
        cart = resp.get_json()["cart"]
        assert len(cart["items"]) == 1
        assert cart["items"][0]["quantity"] == 3
        assert cart["totals"]["total"] == 450.0

    def test_unknown_product_is_404(self, client, products, session_headers):
        resp = client.post("/api/cart/items", json={"code": "NOPE"}, headers=session_headers)
        assert resp.status_code == 404

    def test_out_of_stock_is_400(self, client, products, session_headers):
        resp = client.post("/api/cart/items", json={"code": "BREAD-01"}, headers=session_headers)
        assert resp.status_code == 400
        assert "out of stock" in resp.get_json()["error"]

    @pytest.mark.parametrize("body", [{}, {"code": "RAP001", "quantity": 0}, {"code": "RAP001", "quantity": "x"}])
    def test_bad_input_is_400(self, client, products, session_headers, body):
        resp = client.post("/api/cart/items", json=body, headers=session_headers)
        assert resp.status_code == 400

    def test_update_and_remove(self, client, products, session_headers):
        client.post("/api/cart/items", json={"code": "RAP001"}, headers=session_headers)
        client.post("/api/cart/items", json={"code": "MILK1L"}, headers=session_headers)

        resp = client.patch("/api/cart/items/RAPIDENE-001", json={"quantity": 4}, headers=session_headers)
        assert resp.get_json()["cart"]["totals"]["item_count"] == 5

        resp = client.patch("/api/cart/items/MILK-1L", json={"quantity": 0}, headers=session_headers)
        assert [i["product_id"] for i in resp.get_json()["cart"]["items"]] == ["RAPIDENE-001"]

        resp = client.delete("/api/cart/items/RAPIDENE-001", headers=session_headers)
        assert resp.get_json()["cart"]["items"] == []

    def test_update_missing_line_is_404(self, client, products, session_headers):
        resp = client.patch("/api/cart/items/RAPIDENE-001", json={"quantity": 2}, headers=session_headers)
        assert resp.status_code == 404

    def test_cancel_last_and_clear(self, client, products, session_headers):
        client.post("/api/cart/items", json={"code": "RAP001"}, headers=session_headers)
        client.post("/api/cart/items", json={"code": "MILK1L"}, headers=session_headers)

        body = client.post("/api/cart/cancel-last", headers=session_headers).get_json()
        assert body["removed"]["product_id"] == "MILK-1L"
        assert len(body["cart"]["items"]) == 1

        body = client.delete("/api/cart", headers=session_headers).get_json()
        assert body["cart"]["items"] == []

        body = client.post("/api/cart/cancel-last", headers=session_headers).get_json()
        assert body["removed"] is None


class TestDrainScans:
    def test_scans_become_cart_lines(self, client, products, session_headers):
        client.post("/api/scan", json={"payload": "PROD:RAP001|NAME:Rapidene"})
        client.post("/api/scan", json={"payload": "Rapidene|150|2026-01|2027-01|RAPIDENE-001"})
        client.post("/api/scan", json={"payload": "UNKNOWN-CODE"})
        client.post("/api/scan", json={"payload": "NAME: Bread\nCODE: BRD01"})

        resp = client.post("/api/cart/scans/drain", headers=session_headers)
        assert resp.status_code == 200
        body = resp.get_json()

        assert len(body["scans"]["added"]) == 2
        assert [f["code"] for f in body["scans"]["failed"]] == ["UNKNOWN-CODE", "BRD01"]
        assert body["cart"]["items"][0]["quantity"] == 2

        # Already delivered
        again = client.post("/api/cart/scans/drain", headers=session_headers).get_json()
        assert again["scans"]["count"] == 0


class TestCheckout:
    def test_checkout_records_sale_and_clears_cart(self, client, products, session_headers, outbox, db_session):
        client.post("/api/cart/items", json={"code": "RAP001", "quantity": 2}, headers=session_headers)
        client.post("/api/cart/items", json={"code": "MILK1L"}, headers=session_headers)

        resp = client.post("/api/cart/checkout",
                           json={"customer_email": "buyer@example.com", "customer_name": "Nimal"},
                           headers=session_headers)
        assert resp.status_code == 201
        body = resp.get_json()
        assert body["success"] is True
        assert body["receipt_sent"] is True
        assert body["warnings"] == []
        assert body["sale"]["total_amount"] == 750.0
        assert body["sale"]["operator_id"] == "operator-session-1"

        sale_id = body["sale_id"]
        assert db_session.get(Sale, sale_id) is not None
        assert db_session.get(MobileSale, sale_id) is not None
        assert db_session.get(Product, "RAPIDENE-001").quantity == 8
        assert outbox[0]["to"] == "buyer@example.com"

        cart = client.get("/api/cart", headers=session_headers).get_json()["cart"]
        assert cart["items"] == []

    def test_receipt_crash_still_records_sale_and_clears_cart(self, client, products, session_headers,
                                                              db_session, monkeypatch):
        def boom(to_email, params):
            raise KeyError("template_id")

        monkeypatch.setattr(get_receipts().sender, "send", boom)
        client.post("/api/cart/items", json={"code": "MILK1L"}, headers=session_headers)

        resp = client.post("/api/cart/checkout", json={"customer_email": "buyer@example.com"},
                           headers=session_headers)
        assert resp.status_code == 201
        body = resp.get_json()
        assert body["receipt_sent"] is False
        assert [w["step"] for w in body["warnings"]] == ["receipt"]
        assert db_session.query(Sale).count() == 1

        cart = client.get("/api/cart", headers=session_headers).get_json()["cart"]
        assert cart["items"] == []

    def test_empty_cart_checkout_is_400(self, client, session_headers, db_session):
        resp = client.post("/api/cart/checkout", json={"customer_email": "buyer@example.com"},
                           headers=session_headers)
        assert resp.status_code == 400
        assert resp.get_json()["field"] == "items"
        assert db_session.query(Sale).count() == 0

    def test_invalid_email_keeps_cart(self, client, products, session_headers, db_session):
        client.post("/api/cart/items", json={"code": "RAP001"}, headers=session_headers)
        resp = client.post("/api/cart/checkout", json={"customer_email": "nope"}, headers=session_headers)
        assert resp.status_code == 400
        assert resp.get_json()["field"] == "customer_email"

        cart = client.get("/api/cart", headers=session_headers).get_json()["cart"]
        assert len(cart["items"]) == 1
        assert db_session.query(Sale).count() == 0


class TestSalesRoutes:
    def _checkout(self, client, session_headers):
        client.post("/api/cart/items", json={"code": "MILK1L"}, headers=session_headers)
        return client.post("/api/cart/checkout", json={"customer_email": "buyer@example.com"},
                           headers=session_headers).get_json()["sale_id"]

    def test_list_and_detail(self, client, products, session_headers):
        sale_id = self._checkout(client, session_headers)

        listing = client.get("/api/sales").get_json()
        assert listing["count"] == 1
        assert listing["sales"][0]["sale_id"] == sale_id

        detail = client.get(f"/api/sales/{sale_id}").get_json()
        assert detail["sale"]["items"][0]["product_id"] == "MILK-1L"

    def test_unknown_sale_is_404(self, client, db_session):
        assert client.get("/api/sales/sale_missing").status_code == 404

    def test_analytics_today(self, client, products, session_headers):
        self._checkout(client, session_headers)
        body = client.get("/api/sales/analytics?timeframe=today").get_json()
        assert body["analytics"]["transaction_count"] == 1
        assert body["analytics"]["total_sales"] == 450.0
        assert body["analytics"]["total_profit"] == 70.0

    def test_bad_timeframe_is_400(self, client, db_session):
        assert client.get("/api/sales?timeframe=decade").status_code == 400
        assert client.get("/api/sales/analytics?timeframe=all").status_code == 400


class TestProductRoutes:
    def test_create_list_and_lookup(self, client, db_session):
        resp = client.post("/api/products", json={"id": "TEA-100", "name": "Ceylon Tea", "price": 380,
                                                  "quantity": 5})
        assert resp.status_code == 200
        assert resp.get_json()["product"]["price"] == 380.0

        listing = client.get("/api/products").get_json()
        assert [p["id"] for p in listing["products"]] == ["TEA-100"]

        found = client.get("/api/products/lookup/tea-100").get_json()
        assert found["product"]["name"] == "Ceylon Tea"

    def test_invalid_product_is_400(self, client, db_session):
        resp = client.post("/api/products", json={"id": "TEA-100", "price": 380})
        assert resp.status_code == 400
        assert resp.get_json()["field"] == "name"

    def test_duplicate_product_code_is_409(self, client, products):
        resp = client.post("/api/products", json={"id": "MILK-2L", "name": "Fresh Milk 2L", "price": 800,
                                                  "product_code": "MILK1L"})
        assert resp.status_code == 409

    def test_lookup_out_of_stock(self, client, products):
        assert client.get("/api/products/lookup/BREAD-01").status_code == 400
        assert client.get("/api/products/lookup/BREAD-01?in_stock=0").status_code == 200
        assert client.get("/api/products/lookup/NOPE").status_code == 404
