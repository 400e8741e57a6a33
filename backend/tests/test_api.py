"""
HTTP API tests.

Verifies:
- Unauthenticated requests return 401, wrong roles 403
- Error bodies carry {"error", "details"} with the right status
- Billing, stock and storefront flows end to end through the API
"""

import re

import pytest

from conftest import PASSWORD, bill_payload
from shopledger.extensions import db
from shopledger.models import Bill, CustomerOrder, Product


def _stock(product_id: int) -> int:
    db.session.expire_all()
    return db.session.query(Product.current_stock).filter_by(id=product_id).scalar()


class TestUnauthenticatedAccess:
    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/v1/auth/me"),
            ("GET", "/api/v1/admin/employees"),
            ("GET", "/api/v1/inventory/products"),
            ("POST", "/api/v1/inventory/stock"),
            ("POST", "/api/v1/billing/bills"),
            ("GET", "/api/v1/billing/bills"),
            ("GET", "/api/v1/manager/orders"),
            ("POST", "/api/v1/manager/settings/discount"),
        ],
    )
    def test_requires_auth(self, client, db_session, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"

    def test_garbage_token(self, client, db_session):
        resp = client.get("/api/v1/auth/me", headers={"Authorization": "Bearer nope"})
        assert resp.status_code == 401


class TestRoleChecks:
    def test_biller_cannot_add_stock(self, client, biller_headers, product):
        resp = client.post("/api/v1/inventory/stock", headers=biller_headers,
                           json={"product_id": product.id, "quantity": 5})
        assert resp.status_code == 403
        assert "inventory" in resp.json["required_roles"]

    def test_inventory_cannot_bill(self, client, inventory_headers, product):
        resp = client.post("/api/v1/billing/bills", headers=inventory_headers, json=bill_payload([(product, 1)]))
        assert resp.status_code == 403

    def test_biller_cannot_cancel(self, client, biller_headers):
        resp = client.post("/api/v1/billing/bills/1/cancel", headers=biller_headers, json={})
        assert resp.status_code == 403

    def test_manager_cannot_manage_employees(self, client, manager_headers):
        assert client.get("/api/v1/admin/employees", headers=manager_headers).status_code == 403

    def test_every_employee_reads_catalogue(self, client, biller_headers, product):
        resp = client.get("/api/v1/inventory/products", headers=biller_headers)
        assert resp.status_code == 200
        assert resp.json["items"][0]["id"] == product.id


class TestAuth:
    def test_login_and_me(self, client, biller_user):
        resp = client.post("/api/v1/auth/login", json={"employee_id": biller_user.employee_id, "password": PASSWORD})
        assert resp.status_code == 200
        assert len(resp.json["token"]) == 64
        assert resp.json["user"]["employee_id"] == biller_user.employee_id

        me = client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {resp.json['token']}"})
        assert me.json["user"]["role"] == "biller"

    def test_bad_credentials(self, client, biller_user):
        resp = client.post("/api/v1/auth/login", json={"employee_id": biller_user.employee_id, "password": "x"})
        assert resp.status_code == 401
        assert resp.json["error"] == "Invalid credentials"

    def test_logout_invalidates_token(self, client, biller_headers):
        assert client.post("/api/v1/auth/logout", headers=biller_headers).status_code == 200
        assert client.get("/api/v1/auth/me", headers=biller_headers).status_code == 401


class TestBillingApi:
    def test_create_bill(self, client, biller_headers, product):
        resp = client.post("/api/v1/billing/bills", headers=biller_headers, json=bill_payload([(product, 2)]))

        assert resp.status_code == 201
        bill = resp.json["bill"]
        assert re.match(r"^B-\d{8}-\d{5}$", bill["bill_no"])
        assert bill["items"][0]["unit_price_cents"] == 5000
        assert _stock(product.id) == 3

    def test_flat_totals_accepted(self, client, biller_headers, product):
        payload = bill_payload([(product, 1)])
        body = {"items": payload["items"], "payment_mode": "card", **payload["totals"]}

        resp = client.post("/api/v1/billing/bills", headers=biller_headers, json=body)

        assert resp.status_code == 201
        assert resp.json["bill"]["payment_mode"] == "CARD"

    def test_insufficient_stock_is_409_with_details(self, client, biller_headers, product):
        resp = client.post("/api/v1/billing/bills", headers=biller_headers, json=bill_payload([(product, 6)]))

        assert resp.status_code == 409
        details = resp.json["details"]
        assert details["product_id"] == product.id
        assert details["requested_quantity"] == 6
        assert details["available"] == 5
        assert details["item_index"] == 0
        assert _stock(product.id) == 5
        assert db.session.query(Bill).count() == 0

    def test_huge_quantity_is_400_not_500(self, client, biller_headers, product):
        payload = bill_payload([(product, 1)])
        payload["items"][0]["quantity"] = 10 ** 20

        resp = client.post("/api/v1/billing/bills", headers=biller_headers, json=payload)

        assert resp.status_code == 400
        assert resp.json["details"]["item_index"] == 0
        assert _stock(product.id) == 5

    def test_validation_error_is_400(self, client, biller_headers, product):
        resp = client.post("/api/v1/billing/bills", headers=biller_headers,
                           json=bill_payload([(product, 1)], payment_mode="BARTER"))
        assert resp.status_code == 400
        assert resp.json["details"]["field"] == "payment_mode"

    def test_missing_bill_is_404(self, client, biller_headers):
        resp = client.get("/api/v1/billing/bills/999", headers=biller_headers)
        assert resp.status_code == 404
        assert resp.json["error"] == "Bill not found"

    def test_manager_cancels_bill(self, client, biller_headers, manager_headers, product):
        created = client.post("/api/v1/billing/bills", headers=biller_headers, json=bill_payload([(product, 2)]))
        bill_id = created.json["bill"]["id"]

        resp = client.post(f"/api/v1/billing/bills/{bill_id}/cancel", headers=manager_headers,
                           json={"reason": "Wrong items"})

        assert resp.status_code == 200
        assert resp.json["bill"]["status"] == "CANCELLED"
        assert _stock(product.id) == 5

        again = client.post(f"/api/v1/billing/bills/{bill_id}/cancel", headers=manager_headers, json={})
        assert again.status_code == 409

    def test_next_bill_no_preview(self, client, biller_headers, product):
        preview = client.get("/api/v1/billing/next-bill-no", headers=biller_headers).json["bill_no"]
        created = client.post("/api/v1/billing/bills", headers=biller_headers, json=bill_payload([(product, 1)]))
        assert created.json["bill"]["bill_no"] == preview

    def test_counter_cannot_grant_customer_discount(self, client, biller_headers):
        resp = client.post("/api/v1/billing/customers", headers=biller_headers,
                           json={"name": "Ravi", "mobile": "9876543210", "discount_bps": 5000})
        assert resp.status_code == 201
        assert resp.json["customer"]["discount_bps"] == 0

    def test_resolve_discounts(self, client, biller_headers, manager_headers):
        client.post("/api/v1/manager/settings/discount", headers=manager_headers, json={"percentage_bps": 1000})

        resp = client.get("/api/v1/billing/discounts/resolve?total_cents=5000", headers=biller_headers)

        assert resp.status_code == 200
        assert resp.json["global_bps"] == 1000
        assert resp.json["rule_bps"] == 0


class TestInventoryApi:
    def test_add_stock(self, client, inventory_headers, product):
        resp = client.post("/api/v1/inventory/stock", headers=inventory_headers,
                           json={"product_id": product.id, "quantity": 7, "note": "Supplier delivery"})

        assert resp.status_code == 201
        assert resp.json["product"]["current_stock"] == 12
        assert resp.json["entry"]["quantity_added"] == 7

    @pytest.mark.parametrize("quantity", [0, -3, 1.5, "lots"])
    def test_add_stock_rejects_bad_quantity(self, client, inventory_headers, product, quantity):
        resp = client.post("/api/v1/inventory/stock", headers=inventory_headers,
                           json={"product_id": product.id, "quantity": quantity})
        assert resp.status_code == 400
        assert _stock(product.id) == 5

    def test_add_stock_rejects_huge_quantity(self, client, inventory_headers, product):
        resp = client.post("/api/v1/inventory/stock", headers=inventory_headers,
                           json={"product_id": product.id, "quantity": 10 ** 20})
        assert resp.status_code == 400
        assert resp.json["details"]["field"] == "quantity"
        assert _stock(product.id) == 5

    def test_create_product_rejects_direct_stock(self, client, inventory_headers):
        resp = client.post("/api/v1/inventory/products", headers=inventory_headers,
                           json={"name": "Shampoo", "brand": "Acme", "unit_price_cents": 1200, "current_stock": 99})
        assert resp.status_code == 400
        assert resp.json["details"]["field"] == "current_stock"

    def test_reconcile(self, client, inventory_headers, product):
        resp = client.get(f"/api/v1/inventory/products/{product.id}/reconcile", headers=inventory_headers)
        assert resp.status_code == 200
        assert resp.json["drift"] == 0
        assert resp.json["expected_stock"] == 5


class TestStorefront:
    def test_public_catalogue_hides_internal_fields(self, client, product):
        resp = client.get("/api/v1/public/products")
        assert resp.status_code == 200
        item = resp.json["items"][0]
        assert item["name"] == "Soap"
        assert "current_stock" not in item

    def test_submit_order(self, client, product):
        resp = client.post("/api/v1/public/orders", json={
            "customer_name": "Meera",
            "customer_mobile": "9876543210",
            "items": [{"product_id": product.id, "quantity": 2}],
        })

        assert resp.status_code == 201
        assert re.match(r"^ORD-\d{8}-\d{5}$", resp.json["order_no"])
        assert resp.json["whatsapp_url"].startswith("https://wa.me/919876543210?text=")
        assert _stock(product.id) == 5
        assert db.session.query(CustomerOrder).count() == 1

    def test_submit_order_validation(self, client, db_session):
        resp = client.post("/api/v1/public/orders", json={"customer_name": "Meera", "items": []})
        assert resp.status_code == 400


class TestSystem:
    def test_ping(self, client):
        assert client.get("/ping").json == {"message": "pong"}

    def test_health(self, client, setup_roles):
        resp = client.get("/api/v1/health")
        assert resp.status_code == 200
        assert resp.json["status"] == "healthy"
        assert resp.json["checks"]["ledger"]["details"]["negative_stock_products"] == 0

    def test_unknown_route_is_json_404(self, client):
        resp = client.get("/api/v1/nowhere")
        assert resp.status_code == 404
        assert "error" in resp.json
