"""
Installment payment tests.

Verifies:
- The $1200 / 12 month scenario end to end
- Rejected payments leave no receipt, no activity and no balance change
- Due date rule (exact final payment clears it)
- Receipt numbers are unique and sequential per year
- transaction_id / Idempotency-Key replays do not double-charge
- Racing payments never push paid past total; lost races end in 409
"""

import threading
from datetime import timedelta

import pytest
from sqlalchemy.orm.exc import StaleDataError

from app import create_app
from app.extensions import db
from app.models import Activity, Enquiry, MembersMembership, MembershipPlan, PaymentReceipt, ReceiptSequence
from app.services import payment_service, receipt_service, membership_service, concurrency
from app.services.concurrency import CONCURRENT_UPDATE_MESSAGE, run_with_retry
from app.services.notification_service import dispatcher
from app.validation import ValidationError, ConflictError, NotFoundError, MAX_AMOUNT_CENTS
from app.time_utils import utcnow, add_months


def _pay(client, headers, membership_id, amount, **extra):
    return client.post(
        f"/api/memberships/{membership_id}/payment",
        json={"amount_cents": amount, **extra},
        headers=headers,
    )


# =============================================================================
# SCENARIO
# =============================================================================


class TestAnnualPlanScenario:
    """Plan $1200/12mo, convert with $300, pay $900, then $1 more."""

    def test_full_scenario(self, client, db_session, staff_headers, enquiry, annual_plan):
        resp = client.post(
            f"/api/enquiries/{enquiry.id}/convert",
            json={"membership_plan_id": annual_plan.id, "paid_amount_cents": 30000},
            headers=staff_headers,
        )
        assert resp.status_code == 201
        membership_id = resp.json["id"]
        assert resp.json["total_amount_cents"] == 120000
        assert resp.json["remaining_amount_cents"] == 90000

        m = db_session.get(MembersMembership, membership_id)
        expected_due = add_months(m.start_date, 1)
        assert abs(m.next_payment_due_date - expected_due) < timedelta(minutes=1)

        resp = _pay(client, staff_headers, membership_id, 90000, payment_method="Card")
        assert resp.status_code == 201, resp.json
        data = resp.json
        assert data["remaining_amount_cents"] == 0
        assert data["is_fully_paid"] is True
        assert data["next_payment_due_date"] is None
        assert data["payment_amount_cents"] == 90000
        assert data["duplicate"] is False

        receipt = db_session.get(PaymentReceipt, data["receipt_id"])
        assert receipt.receipt_number == data["receipt_number"]
        assert receipt.previous_paid_cents == 30000
        assert receipt.amount_paid_cents == 90000
        assert receipt.remaining_amount_cents == 0
        assert receipt.payment_method == "Card"
        assert receipt.received_by == "Sam Staff"

        resp = _pay(client, staff_headers, membership_id, 100)
        assert resp.status_code == 400
        assert resp.json["error"] == "Payment amount cannot exceed remaining amount"

        db_session.expire_all()
        m = db_session.get(MembersMembership, membership_id)
        assert m.paid_amount_cents == 120000
        assert 0 <= m.paid_amount_cents <= m.total_amount_cents


# =============================================================================
# VALIDATION
# =============================================================================


class TestPaymentValidation:

    @pytest.mark.parametrize("amount", [0, -500])
    def test_non_positive_amount_rejected(self, client, db_session, staff_headers, membership, amount):
        activity_count = db_session.query(Activity).count()

        resp = _pay(client, staff_headers, membership.id, amount)
        assert resp.status_code == 400
        assert resp.json["error"] == "amount_cents must be > 0"

        assert db_session.query(PaymentReceipt).count() == 0
        assert db_session.query(Activity).count() == activity_count
        assert db_session.get(MembersMembership, membership.id).paid_amount_cents == 0

    def test_overpayment_rejected_without_side_effects(self, client, db_session, staff_headers, membership):
        activity_count = db_session.query(Activity).count()

        resp = _pay(client, staff_headers, membership.id, 120001)
        assert resp.status_code == 400

        assert db_session.query(PaymentReceipt).count() == 0
        assert db_session.query(Activity).count() == activity_count
        assert db_session.query(ReceiptSequence).count() == 0
        assert db_session.get(MembersMembership, membership.id).paid_amount_cents == 0

    def test_missing_amount(self, client, staff_headers, membership):
        resp = client.post(f"/api/memberships/{membership.id}/payment", json={}, headers=staff_headers)
        assert resp.status_code == 400

    def test_decimal_amount_rejected(self, client, staff_headers, membership):
        resp = _pay(client, staff_headers, membership.id, 10.5)
        assert resp.status_code == 400

    def test_amount_above_global_cap_names_the_cap(self, client, staff_headers, membership):
        resp = _pay(client, staff_headers, membership.id, MAX_AMOUNT_CENTS + 1)
        assert resp.status_code == 400
        assert resp.json["error"].startswith(f"amount_cents cannot exceed {MAX_AMOUNT_CENTS}")

    def test_negative_paid_amount_on_conversion(self, db_session, enquiry, annual_plan):
        with pytest.raises(ValidationError, match="paid_amount_cents must be >= 0"):
            membership_service.convert_enquiry(
                enquiry.id, membership_plan_id=annual_plan.id, paid_amount_cents=-1, created_by="pytest"
            )

    def test_unknown_method_rejected(self, client, staff_headers, membership):
        resp = _pay(client, staff_headers, membership.id, 1000, payment_method="Bitcoin")
        assert resp.status_code == 400

    def test_method_is_case_insensitive(self, client, db_session, staff_headers, membership):
        resp = _pay(client, staff_headers, membership.id, 1000, payment_method="upi")
        assert resp.status_code == 201
        assert db_session.get(PaymentReceipt, resp.json["receipt_id"]).payment_method == "UPI"

    def test_missing_membership(self, client, staff_headers):
        resp = _pay(client, staff_headers, 9999, 1000)
        assert resp.status_code == 404


# =============================================================================
# DUE DATE AND INVARIANTS
# =============================================================================


class TestDueDate:

    def test_partial_payment_sets_due_date_one_month_out(self, db_session, membership):
        before = utcnow()
        result = payment_service.process_payment(membership.id, amount_cents=10000, received_by="pytest")
        due = result.membership.next_payment_due_date
        assert due is not None
        assert add_months(before, 1) - timedelta(seconds=5) <= due <= add_months(utcnow(), 1)

    def test_exact_remaining_clears_due_date(self, db_session, membership):
        payment_service.process_payment(membership.id, amount_cents=20000, received_by="pytest")
        result = payment_service.process_payment(membership.id, amount_cents=100000, received_by="pytest")
        assert result.membership.remaining_amount_cents == 0
        assert result.membership.next_payment_due_date is None

    def test_paid_never_exceeds_total(self, db_session, membership):
        for amount in (50000, 50000, 20000):
            payment_service.process_payment(membership.id, amount_cents=amount, received_by="pytest")
        with pytest.raises(ValidationError):
            payment_service.process_payment(membership.id, amount_cents=1, received_by="pytest")
        m = db_session.get(MembersMembership, membership.id)
        assert m.paid_amount_cents == m.total_amount_cents == 120000

    def test_service_raises_not_found(self, db_session):
        with pytest.raises(NotFoundError):
            payment_service.process_payment(9999, amount_cents=100, received_by="pytest")

    def test_payment_activity_recorded(self, db_session, membership):
        result = payment_service.process_payment(
            membership.id, amount_cents=25000, payment_method="Cash", received_by="Front Desk"
        )
        activity = (
            db_session.query(Activity)
            .filter_by(activity_type="PaymentReceived", entity_id=membership.id)
            .one()
        )
        assert activity.performed_by == "Front Desk"
        assert result.receipt.receipt_number in activity.message_content
        assert "Remaining: $950.00" in activity.message_content


# =============================================================================
# RECEIPT NUMBERING
# =============================================================================


class TestReceiptNumbering:

    def test_numbers_are_sequential_per_year(self, db_session, membership):
        numbers = [
            payment_service.process_payment(membership.id, amount_cents=1000, received_by="pytest").receipt.receipt_number
            for _ in range(3)
        ]
        year = utcnow().year
        assert numbers == [f"REC-{year}-00001", f"REC-{year}-00002", f"REC-{year}-00003"]

    def test_numbers_not_reused_after_delete(self, db_session, membership):
        first = payment_service.process_payment(membership.id, amount_cents=1000, received_by="pytest").receipt
        receipt_service.delete_receipt(first.id, deleted_by="pytest")
        second = payment_service.process_payment(membership.id, amount_cents=1000, received_by="pytest").receipt
        assert second.receipt_number.endswith("-00002")

    def test_sequence_is_per_year(self, db_session):
        assert receipt_service.next_receipt_number(2030) == "REC-2030-00001"
        assert receipt_service.next_receipt_number(2031) == "REC-2031-00001"
        assert receipt_service.next_receipt_number(2030) == "REC-2030-00002"
        db_session.rollback()


# =============================================================================
# IDEMPOTENCY
# =============================================================================


class TestIdempotency:

    def test_repeated_transaction_id_does_not_double_charge(self, client, db_session, staff_headers, membership):
        first = _pay(client, staff_headers, membership.id, 30000, transaction_id="TX-100")
        assert first.status_code == 201

        replay = _pay(client, staff_headers, membership.id, 30000, transaction_id="TX-100")
        assert replay.status_code == 200
        assert replay.json["duplicate"] is True
        assert replay.json["receipt_number"] == first.json["receipt_number"]

        assert db_session.get(MembersMembership, membership.id).paid_amount_cents == 30000
        assert db_session.query(PaymentReceipt).count() == 1
        assert db_session.query(Activity).filter_by(activity_type="PaymentReceived").count() == 1

    def test_idempotency_key_header(self, client, db_session, staff_headers, membership):
        headers = {**staff_headers, "Idempotency-Key": "retry-abc"}
        assert _pay(client, headers, membership.id, 5000).status_code == 201
        replay = _pay(client, headers, membership.id, 5000)
        assert replay.status_code == 200
        assert replay.json["duplicate"] is True
        assert db_session.get(MembersMembership, membership.id).paid_amount_cents == 5000

    def test_reused_transaction_id_with_other_amount_conflicts(self, db_session, membership):
        payment_service.process_payment(membership.id, amount_cents=5000, transaction_id="TX-9", received_by="pytest")
        with pytest.raises(ConflictError):
            payment_service.process_payment(membership.id, amount_cents=6000, transaction_id="TX-9", received_by="pytest")

    def test_same_transaction_id_on_other_membership_is_independent(
        self, db_session, membership, enquiry_factory, annual_plan
    ):
        other_enquiry = enquiry_factory(first="John", email="john@example.com", phone="5550002222")
        other = membership_service.convert_enquiry(
            other_enquiry.id, membership_plan_id=annual_plan.id, paid_amount_cents=0, created_by="pytest"
        )
        a = payment_service.process_payment(membership.id, amount_cents=5000, transaction_id="TX-1", received_by="pytest")
        b = payment_service.process_payment(other.id, amount_cents=5000, transaction_id="TX-1", received_by="pytest")
        assert not a.duplicate and not b.duplicate
        assert a.receipt.id != b.receipt.id


# =============================================================================
# CONCURRENT PAYMENTS
# =============================================================================


@pytest.fixture
def file_app(app, tmp_path):
    """Separate app on a file database so threads share real connections."""
    file_app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'race.db'}",
        'SQLALCHEMY_ENGINE_OPTIONS': {'connect_args': {'check_same_thread': False, 'timeout': 10}},
        'NOTIFICATIONS_SYNC': True,
        'EMAIL_TEST_MODE': True,
        'WHATSAPP_ENABLED': False,
    })
    with file_app.app_context():
        db.create_all()

    yield file_app

    with file_app.app_context():
        db.drop_all()
        db.engine.dispose()
    # The dispatcher is process-wide; hand it back to the suite's app
    dispatcher.init_app(app)


def _seed_half_paid_membership(file_app) -> int:
    with file_app.app_context():
        plan = MembershipPlan(
            plan_name="Annual", plan_type="Yearly", duration_in_months=12, price_cents=120000,
            is_active=True, created_by="pytest", created_at=utcnow(),
        )
        enquiry = Enquiry(
            first_name="Jane", last_name="Doe", email="jane@example.com", phone="5550001111",
            is_converted=False, created_by="pytest", created_at=utcnow(),
        )
        db.session.add_all([plan, enquiry])
        db.session.commit()
        membership = membership_service.convert_enquiry(
            enquiry.id, membership_plan_id=plan.id, paid_amount_cents=30000, created_by="pytest"
        )
        return membership.id


class TestConcurrentPayments:

    def test_racing_payments_cannot_overshoot_total(self, file_app):
        membership_id = _seed_half_paid_membership(file_app)
        barrier = threading.Barrier(2)
        outcomes = []
        outcomes_lock = threading.Lock()

        def pay():
            with file_app.app_context():
                barrier.wait()
                try:
                    payment_service.process_payment(membership_id, amount_cents=90000, received_by="pytest")
                    outcome = "ok"
                except (ValidationError, ConflictError) as e:
                    outcome = type(e).__name__
                with outcomes_lock:
                    outcomes.append(outcome)

        threads = [threading.Thread(target=pay) for _ in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=30)

        assert outcomes.count("ok") == 1
        assert len(outcomes) == 2

        with file_app.app_context():
            membership = db.session.get(MembersMembership, membership_id)
            assert membership.paid_amount_cents == 120000
            assert membership.paid_amount_cents <= membership.total_amount_cents
            assert db.session.query(PaymentReceipt).count() == 2

    def test_retries_exhausted_raise_conflict(self, db_session):
        calls = []

        def always_stale():
            calls.append(1)
            raise StaleDataError("version mismatch")

        with pytest.raises(ConflictError, match=CONCURRENT_UPDATE_MESSAGE):
            run_with_retry(always_stale, attempts=3, backoff_base=0)
        assert len(calls) == 3

    def test_retry_recovers_after_one_lost_race(self, db_session):
        calls = []

        def stale_once():
            calls.append(1)
            if len(calls) == 1:
                raise StaleDataError("version mismatch")
            return "done"

        assert run_with_retry(stale_once, backoff_base=0) == "done"
        assert len(calls) == 2

    def test_business_errors_are_not_retried(self, db_session):
        calls = []

        def rejects():
            calls.append(1)
            raise ValidationError("nope")

        with pytest.raises(ValidationError):
            run_with_retry(rejects, backoff_base=0)
        assert len(calls) == 1

    def test_payment_returns_409_when_membership_keeps_changing(
        self, client, db_session, staff_headers, membership, monkeypatch
    ):
        def stale(*args, **kwargs):
            raise StaleDataError("version mismatch")

        monkeypatch.setattr(receipt_service, "issue_receipt", stale)
        monkeypatch.setattr(concurrency.time, "sleep", lambda _: None)

        resp = _pay(client, staff_headers, membership.id, 5000)
        assert resp.status_code == 409
        assert resp.json["error"] == CONCURRENT_UPDATE_MESSAGE

        db_session.expire_all()
        assert db_session.get(MembersMembership, membership.id).paid_amount_cents == 0
        assert db_session.query(PaymentReceipt).count() == 0
