"""
Authorization tests.

Verifies:
- Unauthenticated requests return 401
- MEMBER accounts have no back-office access (403)
- STAFF is denied destructive and administrative operations (403)
- ADMIN can perform privileged operations
- Health and version endpoints are public
"""

import pytest


PROTECTED_ENDPOINTS = [
    ("GET", "/api/enquiries"),
    ("POST", "/api/enquiries"),
    ("GET", "/api/enquiries/open"),
    ("DELETE", "/api/enquiries/1"),
    ("POST", "/api/enquiries/1/convert"),
    ("GET", "/api/memberships"),
    ("GET", "/api/memberships/stats"),
    ("POST", "/api/memberships/1/payment"),
    ("PUT", "/api/memberships/1/renew"),
    ("DELETE", "/api/memberships/1"),
    ("GET", "/api/plans"),
    ("POST", "/api/plans"),
    ("GET", "/api/receipts"),
    ("GET", "/api/receipts/1/download"),
    ("GET", "/api/activity"),
    ("DELETE", "/api/activity/clear-old"),
    ("GET", "/api/reports/sales"),
    ("GET", "/api/reports/sales/export"),
    ("GET", "/api/users"),
    ("GET", "/api/system/notifications"),
    ("GET", "/api/auth/me"),
]


# =============================================================================
# UNAUTHENTICATED ACCESS (401)
# =============================================================================


class TestUnauthenticatedAccess:
    """All protected endpoints return 401 without a token."""

    @pytest.mark.parametrize("method,path", PROTECTED_ENDPOINTS)
    def test_requires_auth(self, client, db_session, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"

    def test_garbage_token_rejected(self, client, db_session):
        resp = client.get("/api/enquiries", headers={"Authorization": "Bearer not-a-token"})
        assert resp.status_code == 401
        assert resp.json["error"] == "Invalid or expired token"


# =============================================================================
# MEMBER ACCOUNTS (403)
# =============================================================================


class TestMemberDenied:
    """MEMBER role holds no back-office permissions."""

    @pytest.mark.parametrize(
        "path",
        ["/api/enquiries", "/api/memberships", "/api/plans", "/api/receipts", "/api/activity", "/api/reports/sales"],
    )
    def test_cannot_read(self, client, member_headers, path):
        resp = client.get(path, headers=member_headers)
        assert resp.status_code == 403
        assert resp.json["error"] == "Permission denied"

    def test_can_read_own_profile(self, client, member_headers):
        resp = client.get("/api/auth/me", headers=member_headers)
        assert resp.status_code == 200
        assert resp.json["permissions"] == []


# =============================================================================
# STAFF DENIED HIGH-RISK OPERATIONS (403)
# =============================================================================


class TestStaffDeniedHighRisk:
    """Front desk staff cannot delete records or administer the system."""

    def test_cannot_delete_membership(self, client, staff_headers, membership):
        resp = client.delete(f"/api/memberships/{membership.id}", headers=staff_headers)
        assert resp.status_code == 403
        assert resp.json["required_permission"] == "DELETE_MEMBERSHIPS"

    def test_cannot_delete_enquiry(self, client, staff_headers, enquiry):
        resp = client.delete(f"/api/enquiries/{enquiry.id}", headers=staff_headers)
        assert resp.json["required_permission"] == "DELETE_ENQUIRIES"

    def test_cannot_manage_plans(self, client, staff_headers):
        resp = client.post(
            "/api/plans",
            json={"plan_name": "Evil", "duration_in_months": 1, "price_cents": 1},
            headers=staff_headers,
        )
        assert resp.status_code == 403
        assert resp.json["required_permission"] == "MANAGE_PLANS"

    def test_cannot_manage_users(self, client, staff_headers):
        resp = client.post(
            "/api/users",
            json={"username": "x", "email": "x@x.com", "password": "P@ssw0rd123!"},
            headers=staff_headers,
        )
        assert resp.status_code == 403

    @pytest.mark.parametrize(
        "path",
        ["/api/memberships/export", "/api/reports/sales/export", "/api/reports/enquiries/export"],
    )
    def test_cannot_export(self, client, staff_headers, path):
        resp = client.get(path, headers=staff_headers)
        assert resp.status_code == 403
        assert resp.json["required_permission"] == "EXPORT_DATA"

    def test_cannot_view_dispatcher(self, client, staff_headers):
        assert client.get("/api/system/notifications", headers=staff_headers).status_code == 403

    def test_can_run_front_desk(self, client, staff_headers, membership):
        assert client.get("/api/memberships/pending-payments", headers=staff_headers).status_code == 200
        resp = client.post(
            f"/api/memberships/{membership.id}/payment",
            json={"amount_cents": 1000},
            headers=staff_headers,
        )
        assert resp.status_code == 201


# =============================================================================
# ADMIN CAN PERFORM PRIVILEGED OPERATIONS (200)
# =============================================================================


class TestAdminAccess:
    """Admin role can perform privileged operations."""

    def test_can_list_users(self, client, admin_headers):
        resp = client.get("/api/users", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json["count"] == 1

    def test_can_delete_membership(self, client, admin_headers, membership):
        assert client.delete(f"/api/memberships/{membership.id}", headers=admin_headers).status_code == 200

    def test_has_every_permission(self, client, admin_headers):
        permissions = client.get("/api/auth/me", headers=admin_headers).json["permissions"]
        assert "SYSTEM_ADMIN" in permissions
        assert "MANAGE_USERS" in permissions
        assert "DELETE_RECEIPTS" in permissions


# =============================================================================
# PUBLIC ENDPOINTS: NO AUTH REQUIRED
# =============================================================================


class TestPublicEndpoints:
    """System health and version endpoints are public."""

    def test_health(self, client, db_session):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json["checks"]["database"]["status"] == "healthy"

    def test_version(self, client, db_session):
        resp = client.get("/api/version")
        assert resp.status_code == 200
        assert resp.json["api_version"] == "1.0.0"
