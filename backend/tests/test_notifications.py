"""
Notification tests.

Verifies:
- Conversion and payment notifications land in the activity feed
- Delivery failures never fail the business operation
- Transient transport errors are retried
- A full dispatcher queue drops jobs and records why
"""

import httpx
import pytest

from app.models import Activity, PaymentReceipt
from app.services import notification_service, payment_service
from app.services.notification_service import NotificationError, dispatcher


def _response(status_code):
    return httpx.Response(status_code, request=httpx.Request("POST", "https://example.test"))


class TestSyncDelivery:

    def test_conversion_notifications(self, client, db_session, staff_headers, enquiry, annual_plan):
        resp = client.post(
            f"/api/enquiries/{enquiry.id}/convert",
            json={"membership_plan_id": annual_plan.id, "paid_amount_cents": 10000},
            headers=staff_headers,
        )
        assert resp.status_code == 201

        email = db_session.query(Activity).filter_by(activity_type="Email").one()
        assert email.is_successful is True
        assert email.recipient_contact == "jane@example.com"
        assert email.performed_by == "Sam Staff"

        whatsapp = db_session.query(Activity).filter_by(activity_type="WhatsApp").one()
        assert whatsapp.description.endswith("(simulated)")
        assert whatsapp.recipient_contact == "5550001111"

        receipt_mail = db_session.query(Activity).filter_by(activity_type="EmailReceipt").one()
        assert receipt_mail.is_successful is True

        receipt = db_session.query(PaymentReceipt).one()
        assert receipt.email_sent is True
        assert receipt.email_sent_at is not None

        assert dispatcher.stats()["sent"] == 1

    def test_payment_sends_receipt(self, db_session, membership):
        result = payment_service.process_payment(membership.id, amount_cents=5000, received_by="pytest")
        db_session.expire_all()
        assert db_session.get(PaymentReceipt, result.receipt.id).email_sent is True


class TestDeliveryFailures:

    def test_missing_email_config_does_not_fail_payment(self, client, app, db_session, staff_headers, membership, monkeypatch):
        monkeypatch.setitem(app.config, "EMAIL_TEST_MODE", False)
        monkeypatch.setitem(app.config, "POSTMARK_SERVER_TOKEN", None)

        resp = client.post(
            f"/api/memberships/{membership.id}/payment",
            json={"amount_cents": 5000},
            headers=staff_headers,
        )
        assert resp.status_code == 201

        failed = (
            db_session.query(Activity)
            .filter_by(activity_type="EmailReceipt", is_successful=False)
            .one()
        )
        assert "POSTMARK_SERVER_TOKEN" in failed.error_message

        receipt = db_session.get(PaymentReceipt, resp.json["receipt_id"])
        assert receipt.email_sent is False
        assert membership.paid_amount_cents == 5000

    def test_crashing_job_is_counted(self, db_session, membership, monkeypatch):
        def boom(*args, **kwargs):
            raise RuntimeError("template exploded")

        monkeypatch.setattr(notification_service, "send_receipt_email", boom)

        result = payment_service.process_payment(membership.id, amount_cents=5000, received_by="pytest")
        assert result.receipt is not None
        assert dispatcher.stats()["failed"] == 1


class TestTransport:

    def test_transient_errors(self):
        assert notification_service._is_transient(httpx.ConnectError("refused"))
        assert notification_service._is_transient(httpx.ReadTimeout("slow"))
        for status in (429, 500, 503):
            err = httpx.HTTPStatusError("x", request=_response(status).request, response=_response(status))
            assert notification_service._is_transient(err)
        err = httpx.HTTPStatusError("x", request=_response(400).request, response=_response(400))
        assert not notification_service._is_transient(err)
        assert not notification_service._is_transient(NotificationError("config"))

    def test_postmark_send_retries_transient_failures(self, app, monkeypatch):
        calls = []

        def flaky_post(url, headers=None, json=None, timeout=None):
            calls.append(json)
            if len(calls) < 3:
                raise httpx.ConnectError("refused")
            return _response(200)

        monkeypatch.setitem(app.config, "EMAIL_TEST_MODE", False)
        monkeypatch.setitem(app.config, "POSTMARK_SERVER_TOKEN", "server-token")
        monkeypatch.setattr(notification_service.httpx, "post", flaky_post)

        with app.app_context():
            notification_service._deliver(notification_service.send_email, "a@b.com", "Hi", "<p>Hi</p>")

        assert len(calls) == 3
        assert calls[-1]["To"] == "a@b.com"
        assert calls[-1]["MessageStream"] == "outbound"

    def test_client_errors_are_not_retried(self, app, monkeypatch):
        calls = []

        def rejecting_post(url, headers=None, json=None, timeout=None):
            calls.append(url)
            return _response(422)

        monkeypatch.setitem(app.config, "EMAIL_TEST_MODE", False)
        monkeypatch.setitem(app.config, "POSTMARK_SERVER_TOKEN", "server-token")
        monkeypatch.setattr(notification_service.httpx, "post", rejecting_post)

        with app.app_context():
            with pytest.raises(httpx.HTTPStatusError):
                notification_service._deliver(notification_service.send_email, "a@b.com", "Hi", "<p>Hi</p>")

        assert len(calls) == 1

    def test_whatsapp_requires_credentials_when_enabled(self, app, monkeypatch):
        monkeypatch.setitem(app.config, "WHATSAPP_ENABLED", True)
        monkeypatch.setitem(app.config, "WHATSAPP_TOKEN", None)
        with app.app_context():
            with pytest.raises(NotificationError):
                notification_service.send_whatsapp_text("5550001111", "hello")


class TestDispatcherBackpressure:

    def test_full_queue_drops_and_records(self, app, db_session, monkeypatch):
        monkeypatch.setitem(app.config, "NOTIFICATIONS_SYNC", False)
        monkeypatch.setitem(app.config, "NOTIFICATION_MAX_PENDING", 0)

        queued = dispatcher.submit(lambda: True, description="test job")
        assert queued is False
        assert dispatcher.stats()["dropped"] == 1

        dropped = db_session.query(Activity).filter_by(activity_type="NotificationDropped").one()
        assert dropped.is_successful is False
        assert dropped.description == "Notification dropped: test job"
        assert "queue full" in dropped.error_message

    def test_stats_endpoint(self, client, db_session, admin_headers, staff_headers, membership):
        resp = client.get("/api/system/notifications", headers=admin_headers)
        assert resp.status_code == 200
        assert set(resp.json) >= {"queued", "sent", "failed", "dropped", "pending", "running"}
        assert resp.json["pending"] == 0

        assert client.get("/api/system/notifications", headers=staff_headers).status_code == 403
