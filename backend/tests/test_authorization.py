"""
Authorization tests.

Verifies:
- Unauthenticated requests return 401
- Cashier role denied register provisioning and balance corrections (403)
- Admin role can perform privileged operations
- Login, logout and token revocation
"""

import pytest

from retailpos.services.auth_service import create_user


# =============================================================================
# UNAUTHENTICATED ACCESS (401)
# =============================================================================


class TestUnauthenticatedAccess:
    """All protected endpoints return 401 without a token."""

    @pytest.mark.parametrize(
        "method,path",
        [
            ("POST", "/api/pos/sale"),
            ("GET", "/api/pos/sales"),
            ("GET", "/api/pos/summary/today"),
            ("GET", "/api/pos/sale/1"),
            ("GET", "/api/pos/sale/1/transactions"),
            ("GET", "/api/pos/transactions/history"),
            ("POST", "/api/cash-register"),
            ("GET", "/api/cash-register"),
            ("GET", "/api/cash-register/available"),
            ("GET", "/api/cash-register/transactions"),
            ("POST", "/api/cash-register/open"),
            ("POST", "/api/cash-register/close"),
            ("POST", "/api/cash-register/1/cash-in"),
            ("POST", "/api/cash-register/1/cash-out"),
            ("POST", "/api/cash-register/1/adjust"),
            ("POST", "/api/cash-register/1/maintenance"),
            ("GET", "/api/cash-register/1/variance-report"),
            ("GET", "/api/auth/me"),
        ],
    )
    def test_requires_auth(self, client, setup_roles, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"
        assert resp.json["error"] == "Authentication required"

    def test_invalid_token(self, client, setup_roles):
        resp = client.get("/api/pos/sales", headers={"Authorization": "Bearer not-a-real-token"})

        assert resp.status_code == 401
        assert resp.json["error"] == "Invalid or expired token"


# =============================================================================
# CASHIER DENIED PRIVILEGED OPERATIONS (403)
# =============================================================================


class TestCashierDenied:
    """Cashier role cannot provision or correct registers."""

    def test_cannot_create_register(self, client, cashier_headers, branch):
        resp = client.post(
            "/api/cash-register", json={"branch_id": branch.id, "name": "Till 9"}, headers=cashier_headers
        )

        assert resp.status_code == 403
        assert resp.json["required_permission"] == "cash_register.manage"

    def test_cannot_adjust(self, client, cashier_headers, open_register):
        resp = client.post(
            f"/api/cash-register/{open_register.id}/adjust",
            json={"amount_cents": 100, "adjustment_type": "increase", "description": "x"},
            headers=cashier_headers,
        )
        assert resp.status_code == 403

    def test_cannot_toggle_maintenance(self, client, cashier_headers, register):
        resp = client.post(
            f"/api/cash-register/{register.id}/maintenance", json={"enabled": True}, headers=cashier_headers
        )
        assert resp.status_code == 403

    def test_user_without_role_cannot_sell(self, client, setup_roles, branch):
        create_user("temp", "Password123!", branch_id=branch.id)
        login = client.post("/api/auth/login", json={"username": "temp", "password": "Password123!"})
        headers = {"Authorization": f"Bearer {login.json['token']}"}

        resp = client.post("/api/pos/sale", json={}, headers=headers)

        assert resp.status_code == 403
        assert resp.json["required_permission"] == "sale.create"


class TestAdminAllowed:

    def test_admin_can_create_register(self, client, admin_headers, branch):
        resp = client.post(
            "/api/cash-register", json={"branch_id": branch.id, "name": "Till 9"}, headers=admin_headers
        )
        assert resp.status_code == 201

    def test_admin_can_sell(self, client, admin_headers, stocked, branch, product, open_register):
        resp = client.post(
            "/api/pos/sale",
            json={
                "items": [{"product_id": product.id, "warehouse_id": stocked.id, "quantity": 1}],
                "branch_id": branch.id,
                "payment_method": "cash",
                "paid_amount_cents": 100,
                "cash_register_id": open_register.id,
            },
            headers=admin_headers,
        )
        assert resp.status_code == 201


# =============================================================================
# LOGIN / LOGOUT
# =============================================================================


class TestLogin:

    def test_login_returns_token_and_permissions(self, client, cashier_user):
        resp = client.post("/api/auth/login", json={"username": "cashier", "password": "Password123!"})

        assert resp.status_code == 200
        assert resp.json["token"]
        assert resp.json["permissions"] == ["sale.create", "sale.view"]

    def test_wrong_password(self, client, cashier_user):
        resp = client.post("/api/auth/login", json={"username": "cashier", "password": "Wrong123!"})

        assert resp.status_code == 401
        assert resp.json["error"] == "Invalid credentials"

    def test_missing_fields(self, client, setup_roles):
        resp = client.post("/api/auth/login", json={"username": "cashier"})
        assert resp.status_code == 400

    def test_me(self, client, admin_headers):
        resp = client.get("/api/auth/me", headers=admin_headers)

        assert resp.status_code == 200
        assert resp.json["user"]["username"] == "admin"
        assert "cash_register.manage" in resp.json["permissions"]

    def test_logout_revokes_token(self, client, cashier_user):
        token = client.post(
            "/api/auth/login", json={"username": "cashier", "password": "Password123!"}
        ).json["token"]
        headers = {"Authorization": f"Bearer {token}"}

        assert client.post("/api/auth/logout", headers=headers).status_code == 200
        assert client.get("/api/auth/me", headers=headers).status_code == 401


class TestHealth:

    def test_healthy_when_initialized(self, client, setup_roles):
        resp = client.get("/api/health")

        assert resp.status_code == 200
        assert resp.json["status"] == "healthy"
        assert set(resp.json["checks"]) == {"database", "auth_service", "ledger"}

    def test_degraded_without_chart_of_accounts(self, client, db_session):
        resp = client.get("/api/health")

        assert resp.status_code == 200
        assert resp.json["status"] == "degraded"
