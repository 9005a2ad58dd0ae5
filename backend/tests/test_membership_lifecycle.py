"""
Membership lifecycle tests.

Verifies:
- Enquiry conversion (initial payment, receipt, history, duplicate guard)
- Renewal and upgrade replace the paid amount and restart the term
- Manual inactive toggle overrides the date-derived status
- Deleting a membership removes its receipts and frees the enquiry
- Status views and stats
"""

from datetime import datetime, timedelta

import pytest

from app.models import (
    Activity,
    Enquiry,
    EnquiryHistory,
    MembersMembership,
    PaymentReceipt,
)
from app.models.memberships import STATUS_ACTIVE, STATUS_EXPIRED, STATUS_EXPIRING_SOON
from app.services import membership_service
from app.time_utils import utcnow


def _activity_types(db_session):
    return [a.activity_type for a in db_session.query(Activity).order_by(Activity.id).all()]


# =============================================================================
# DERIVED PROPERTIES
# =============================================================================


class TestDerivedProperties:
    """end_date, remaining and is_active are computed, never stored."""

    def test_end_date_clamps_to_month_end(self):
        m = MembersMembership(start_date=datetime(2024, 1, 31), duration_in_months=1)
        assert m.end_date == datetime(2024, 2, 29)

    def test_remaining_is_total_minus_paid(self):
        m = MembersMembership(total_amount_cents=120000, paid_amount_cents=30000)
        assert m.remaining_amount_cents == 90000
        m.paid_amount_cents = 120000
        assert m.remaining_amount_cents == 0
        assert m.is_fully_paid

    def test_is_active_requires_flag_and_future_end(self):
        now = datetime(2025, 6, 1)
        m = MembersMembership(start_date=datetime(2025, 1, 1), duration_in_months=12, is_inactive=False)
        assert m.is_active_at(now)
        m.is_inactive = True
        assert not m.is_active_at(now)
        m.is_inactive = False
        assert not m.is_active_at(datetime(2026, 1, 1))

    def test_classify_status_boundaries(self):
        now = datetime(2025, 6, 1)
        m = MembersMembership(start_date=datetime(2024, 6, 1), duration_in_months=12)
        # end_date == now is not in the past yet
        assert membership_service.classify_status(m, now) == STATUS_EXPIRING_SOON
        assert membership_service.classify_status(m, now + timedelta(seconds=1)) == STATUS_EXPIRED
        assert membership_service.classify_status(m, now - timedelta(days=30)) == STATUS_EXPIRING_SOON
        assert membership_service.classify_status(m, now - timedelta(days=31)) == STATUS_ACTIVE

    def test_classify_ignores_inactive_flag(self):
        now = datetime(2025, 6, 1)
        m = MembersMembership(start_date=datetime(2025, 5, 1), duration_in_months=12, is_inactive=True)
        assert membership_service.classify_status(m, now) == STATUS_ACTIVE


# =============================================================================
# CONVERSION
# =============================================================================


class TestConversion:
    """POST /api/enquiries/<id>/convert"""

    def test_convert_with_partial_payment(self, client, db_session, staff_headers, enquiry, annual_plan):
        resp = client.post(
            f"/api/enquiries/{enquiry.id}/convert",
            json={"membership_plan_id": annual_plan.id, "paid_amount_cents": 30000},
            headers=staff_headers,
        )
        assert resp.status_code == 201, resp.json
        data = resp.json
        assert data["total_amount_cents"] == 120000
        assert data["paid_amount_cents"] == 30000
        assert data["remaining_amount_cents"] == 90000
        assert data["duration_in_months"] == 12
        assert data["is_active"] is True
        assert data["status"] == STATUS_ACTIVE
        assert data["payment_status"] == "Partial"
        assert data["next_payment_due_date"] is not None
        assert data["created_by"] == "Sam Staff"

        db_session.expire_all()
        converted = db_session.get(Enquiry, enquiry.id)
        assert converted.is_converted is True
        assert converted.converted_at is not None

        receipts = db_session.query(PaymentReceipt).all()
        assert len(receipts) == 1
        receipt = receipts[0]
        assert receipt.amount_paid_cents == 30000
        assert receipt.previous_paid_cents == 0
        assert receipt.payment_method == "Cash"
        assert receipt.notes == "Initial membership payment"
        assert receipt.receipt_number.startswith(f"REC-{utcnow().year}-")

        history = db_session.query(EnquiryHistory).filter_by(enquiry_id=enquiry.id).all()
        assert [h.action_taken for h in history] == ["MEMBERSHIP_TAKEN"]
        assert history[0].notes.startswith("Converted to membership on ")

        types = _activity_types(db_session)
        assert "EnquiryConverted" in types
        assert "PaymentReceived" in types
        # Sync notifications: welcome email, WhatsApp greeting, receipt email
        assert "Email" in types
        assert "WhatsApp" in types
        assert "EmailReceipt" in types

    def test_convert_without_payment_issues_no_receipt(self, client, db_session, staff_headers, enquiry, annual_plan):
        resp = client.post(
            f"/api/enquiries/{enquiry.id}/convert",
            json={"membership_plan_id": annual_plan.id, "paid_amount_cents": 0},
            headers=staff_headers,
        )
        assert resp.status_code == 201
        assert resp.json["payment_status"] == "Unpaid"
        assert resp.json["next_payment_due_date"] is not None
        assert db_session.query(PaymentReceipt).count() == 0
        assert "PaymentReceived" not in _activity_types(db_session)

    def test_convert_fully_paid_clears_due_date(self, client, staff_headers, enquiry, annual_plan):
        resp = client.post(
            f"/api/enquiries/{enquiry.id}/convert",
            json={"membership_plan_id": annual_plan.id, "paid_amount_cents": 120000},
            headers=staff_headers,
        )
        assert resp.status_code == 201
        assert resp.json["remaining_amount_cents"] == 0
        assert resp.json["next_payment_due_date"] is None
        assert resp.json["payment_status"] == "Fully Paid"

    def test_convert_twice_conflicts(self, client, db_session, staff_headers, enquiry, annual_plan):
        body = {"membership_plan_id": annual_plan.id, "paid_amount_cents": 0}
        assert client.post(f"/api/enquiries/{enquiry.id}/convert", json=body, headers=staff_headers).status_code == 201

        resp = client.post(f"/api/enquiries/{enquiry.id}/convert", json=body, headers=staff_headers)
        assert resp.status_code == 409
        assert db_session.query(MembersMembership).count() == 1

    def test_overpaid_conversion_rejected(self, client, db_session, staff_headers, enquiry, annual_plan):
        resp = client.post(
            f"/api/enquiries/{enquiry.id}/convert",
            json={"membership_plan_id": annual_plan.id, "paid_amount_cents": 120001},
            headers=staff_headers,
        )
        assert resp.status_code == 400
        assert db_session.query(MembersMembership).count() == 0
        assert db_session.get(Enquiry, enquiry.id).is_converted is False

    def test_inactive_plan_rejected(self, client, staff_headers, enquiry, plan_factory):
        plan = plan_factory(name="Retired", is_active=False)
        resp = client.post(
            f"/api/enquiries/{enquiry.id}/convert",
            json={"membership_plan_id": plan.id, "paid_amount_cents": 0},
            headers=staff_headers,
        )
        assert resp.status_code == 400

    def test_missing_plan_and_enquiry(self, client, staff_headers, enquiry, annual_plan):
        resp = client.post(
            f"/api/enquiries/{enquiry.id}/convert",
            json={"membership_plan_id": 9999, "paid_amount_cents": 0},
            headers=staff_headers,
        )
        assert resp.status_code == 404

        resp = client.post(
            "/api/enquiries/9999/convert",
            json={"membership_plan_id": annual_plan.id, "paid_amount_cents": 0},
            headers=staff_headers,
        )
        assert resp.status_code == 404

    def test_direct_create_uses_same_rules(self, client, db_session, staff_headers, enquiry, annual_plan):
        resp = client.post(
            "/api/memberships",
            json={"enquiry_id": enquiry.id, "membership_plan_id": annual_plan.id, "paid_amount_cents": 5000},
            headers=staff_headers,
        )
        assert resp.status_code == 201
        assert resp.json["paid_amount_cents"] == 5000
        assert "MembershipCreated" in _activity_types(db_session)

        again = client.post(
            "/api/memberships",
            json={"enquiry_id": enquiry.id, "membership_plan_id": annual_plan.id},
            headers=staff_headers,
        )
        assert again.status_code == 409

    def test_plan_edit_does_not_change_running_term(self, db_session, membership, annual_plan):
        annual_plan.price_cents = 150000
        annual_plan.duration_in_months = 6
        db_session.commit()

        refreshed = membership_service.get_membership(membership.id)
        assert refreshed.total_amount_cents == 120000
        assert refreshed.duration_in_months == 12


# =============================================================================
# RENEW / UPGRADE
# =============================================================================


class TestRenewAndUpgrade:

    def test_renew_replaces_paid_and_restarts_term(self, client, db_session, staff_headers, membership):
        membership.start_date = utcnow() - timedelta(days=200)
        db_session.commit()
        activity_count = db_session.query(Activity).count()

        resp = client.put(
            f"/api/memberships/{membership.id}/renew",
            json={"paid_amount_cents": 120000},
            headers=staff_headers,
        )
        assert resp.status_code == 200, resp.json
        data = resp.json
        assert data["paid_amount_cents"] == 120000
        assert data["remaining_amount_cents"] == 0
        assert data["next_payment_due_date"] is None

        renewed = db_session.get(MembersMembership, membership.id)
        assert utcnow() - renewed.start_date < timedelta(minutes=1)
        # Renewal is not written to the activity feed
        assert db_session.query(Activity).count() == activity_count

    def test_renew_uses_current_plan_price(self, client, db_session, staff_headers, membership, annual_plan):
        annual_plan.price_cents = 99000
        db_session.commit()

        resp = client.put(
            f"/api/memberships/{membership.id}/renew",
            json={"paid_amount_cents": 0},
            headers=staff_headers,
        )
        assert resp.status_code == 200
        assert resp.json["total_amount_cents"] == 99000
        assert resp.json["next_payment_due_date"] is not None

    def test_renew_overpaid_rejected(self, client, db_session, staff_headers, membership):
        resp = client.put(
            f"/api/memberships/{membership.id}/renew",
            json={"paid_amount_cents": 120001},
            headers=staff_headers,
        )
        assert resp.status_code == 400
        assert db_session.get(MembersMembership, membership.id).paid_amount_cents == 0

    def test_upgrade_switches_plan_and_discards_prior_payment(
        self, client, db_session, staff_headers, enquiry, annual_plan, plan_factory
    ):
        membership = membership_service.convert_enquiry(
            enquiry.id, membership_plan_id=annual_plan.id, paid_amount_cents=60000, created_by="pytest"
        )
        premium = plan_factory(name="Premium", months=24, price_cents=200000, plan_type="Custom")

        resp = client.put(
            f"/api/memberships/{membership.id}/upgrade",
            json={"new_plan_id": premium.id, "paid_amount_cents": 10000},
            headers=staff_headers,
        )
        assert resp.status_code == 200, resp.json
        data = resp.json
        assert data["membership_plan_id"] == premium.id
        assert data["plan_name"] == "Premium"
        assert data["total_amount_cents"] == 200000
        assert data["paid_amount_cents"] == 10000
        assert data["duration_in_months"] == 24
        assert data["next_payment_due_date"] is not None

        upgraded = db_session.query(Activity).filter_by(activity_type="MembershipUpgraded").one()
        assert upgraded.description == "Membership upgraded from Annual to Premium"

    def test_upgrade_to_inactive_or_missing_plan(self, client, staff_headers, membership, plan_factory):
        retired = plan_factory(name="Retired", is_active=False)
        resp = client.put(
            f"/api/memberships/{membership.id}/upgrade",
            json={"new_plan_id": retired.id, "paid_amount_cents": 0},
            headers=staff_headers,
        )
        assert resp.status_code == 400

        resp = client.put(
            f"/api/memberships/{membership.id}/upgrade",
            json={"new_plan_id": 9999, "paid_amount_cents": 0},
            headers=staff_headers,
        )
        assert resp.status_code == 404

    def test_upgrade_missing_membership(self, client, staff_headers, annual_plan):
        resp = client.put(
            "/api/memberships/9999/upgrade",
            json={"new_plan_id": annual_plan.id, "paid_amount_cents": 0},
            headers=staff_headers,
        )
        assert resp.status_code == 404


# =============================================================================
# TOGGLE / DELETE
# =============================================================================


class TestToggleAndDelete:

    def test_toggle_inactive_takes_effect_immediately(self, client, db_session, staff_headers, membership):
        resp = client.put(
            f"/api/memberships/{membership.id}/toggle-status",
            json={"is_inactive": True},
            headers=staff_headers,
        )
        assert resp.status_code == 200
        assert resp.json["is_inactive"] is True
        assert resp.json["is_active"] is False
        # Date-derived status is independent of the override
        assert resp.json["status"] == STATUS_ACTIVE
        assert "MembershipDeactivated" in _activity_types(db_session)

        resp = client.put(
            f"/api/memberships/{membership.id}/toggle-status",
            json={"is_inactive": False},
            headers=staff_headers,
        )
        assert resp.json["is_active"] is True
        assert "MembershipActivated" in _activity_types(db_session)

    def test_toggle_requires_boolean(self, client, staff_headers, membership):
        resp = client.put(
            f"/api/memberships/{membership.id}/toggle-status",
            json={"is_inactive": "yes"},
            headers=staff_headers,
        )
        assert resp.status_code == 400

    def test_delete_removes_all_receipts(self, client, db_session, admin_headers, enquiry, annual_plan):
        membership = membership_service.convert_enquiry(
            enquiry.id, membership_plan_id=annual_plan.id, paid_amount_cents=10000, created_by="pytest"
        )
        for amount in (20000, 30000):
            resp = client.post(
                f"/api/memberships/{membership.id}/payment",
                json={"amount_cents": amount},
                headers=admin_headers,
            )
            assert resp.status_code == 201
        assert db_session.query(PaymentReceipt).filter_by(members_membership_id=membership.id).count() == 3

        resp = client.delete(f"/api/memberships/{membership.id}", headers=admin_headers)
        assert resp.status_code == 200

        db_session.expire_all()
        assert db_session.get(MembersMembership, membership.id) is None
        assert db_session.query(PaymentReceipt).count() == 0
        assert db_session.get(Enquiry, enquiry.id).is_converted is False

        deleted = db_session.query(Activity).filter_by(activity_type="MembershipDeleted").one()
        assert "Receipts removed: 3" in deleted.message_content

    def test_enquiry_can_be_deleted_after_membership_delete(self, client, admin_headers, membership, enquiry):
        resp = client.delete(f"/api/enquiries/{enquiry.id}", headers=admin_headers)
        assert resp.status_code == 409

        assert client.delete(f"/api/memberships/{membership.id}", headers=admin_headers).status_code == 200
        assert client.delete(f"/api/enquiries/{enquiry.id}", headers=admin_headers).status_code == 200

    def test_delete_missing_membership(self, client, admin_headers):
        assert client.delete("/api/memberships/9999", headers=admin_headers).status_code == 404


# =============================================================================
# STATUS VIEWS AND STATS
# =============================================================================


@pytest.fixture
def mixed_memberships(db_session, enquiry_factory, annual_plan, monthly_plan):
    """One active, one expiring soon, one expired, one with an overdue balance."""
    now = utcnow()

    def convert(idx, plan, paid):
        e = enquiry_factory(first=f"Member{idx}", email=f"m{idx}@example.com", phone=f"555000{idx:04d}")
        return membership_service.convert_enquiry(
            e.id, membership_plan_id=plan.id, paid_amount_cents=paid, created_by="pytest"
        )

    active = convert(1, annual_plan, 120000)

    expiring = convert(2, monthly_plan, 5000)
    expiring.start_date = now - timedelta(days=20)

    expired = convert(3, annual_plan, 120000)
    expired.start_date = now - timedelta(days=400)

    overdue = convert(4, annual_plan, 20000)
    overdue.next_payment_due_date = now - timedelta(days=1)

    db_session.commit()
    return {"active": active, "expiring": expiring, "expired": expired, "overdue": overdue}


class TestStatusViews:

    def _ids(self, resp):
        assert resp.status_code == 200
        return {item["id"] for item in resp.json["items"]}

    def test_active_expired_expiring(self, client, staff_headers, mixed_memberships):
        m = mixed_memberships
        active = self._ids(client.get("/api/memberships/active", headers=staff_headers))
        assert active == {m["active"].id, m["expiring"].id, m["overdue"].id}

        expired = self._ids(client.get("/api/memberships/expired", headers=staff_headers))
        assert expired == {m["expired"].id}

        expiring = self._ids(client.get("/api/memberships/expiring-soon", headers=staff_headers))
        assert expiring == {m["expiring"].id}

    def test_pending_payments(self, client, staff_headers, mixed_memberships):
        pending = self._ids(client.get("/api/memberships/pending-payments", headers=staff_headers))
        assert pending == {mixed_memberships["overdue"].id}

    def test_stats(self, client, staff_headers, mixed_memberships):
        resp = client.get("/api/memberships/stats", headers=staff_headers)
        assert resp.status_code == 200
        stats = resp.json
        assert stats["total_memberships"] == 4
        assert stats["active_memberships"] == 3
        assert stats["expired_memberships"] == 1
        assert stats["expiring_soon"] == 1
        assert stats["pending_payments"] == 1
        assert stats["total_revenue_cents"] == 120000 + 5000 + 120000 + 20000
        assert stats["outstanding_cents"] == 100000

    def test_memberships_for_enquiry(self, client, staff_headers, membership, enquiry):
        resp = client.get(f"/api/memberships/enquiry/{enquiry.id}", headers=staff_headers)
        assert resp.status_code == 200
        assert resp.json["count"] == 1
        assert resp.json["items"][0]["member_name"] == "Jane Doe"

        assert client.get("/api/memberships/enquiry/9999", headers=staff_headers).status_code == 404

    def test_get_membership(self, client, staff_headers, membership):
        resp = client.get(f"/api/memberships/{membership.id}", headers=staff_headers)
        assert resp.status_code == 200
        assert resp.json["plan_name"] == "Annual"
        assert client.get("/api/memberships/9999", headers=staff_headers).status_code == 404
