# Overview: Service-layer operations for the membership lifecycle; conversion, renewal, upgrade, status and stats.

"""
Membership Lifecycle Service

WHY: A membership binds a converted enquiry to a plan and tracks how much of
the fee has been paid. This module owns every transition of that record.

LIFECYCLE:
- convert_enquiry / create_membership: new term starting now, total from the
  plan, optional initial payment with its own receipt
- process_payment: see payment_service
- renew_membership: restart the term from now at the plan's current price;
  paid amount is replaced, not added; no activity entry
- upgrade_membership: switch plan and restart the term; paid amount replaced
- toggle_status: manual inactive override, dates and amounts untouched
- delete_membership: removes the membership and its receipts

STATUS (derived, never stored):
- is_active = not is_inactive and end_date > now
- classify: Expired / Expiring Soon (30 days) / Active by date only
"""

from __future__ import annotations

from datetime import datetime

from ..extensions import db
from ..models import (
    Enquiry,
    EnquiryHistory,
    MembershipPlan,
    MembersMembership,
    ActivityType,
    EntityType,
)
from ..models.memberships import STATUS_EXPIRED, STATUS_EXPIRING_SOON
from ..validation import ValidationError, ConflictError, NotFoundError, coerce_int, parse_amount_cents
from app.time_utils import utcnow
from .activity_service import record_activity
from .concurrency import lock_for_update, run_with_retry
from .enquiry_service import append_history
from .payment_service import next_due_date, record_payment_activity, INITIAL_PAYMENT_NOTE, METHOD_CASH
from . import receipt_service
from . import notification_service


# =============================================================================
# LOOKUPS
# =============================================================================

def get_membership(membership_id: int) -> MembersMembership:
    membership = db.session.get(MembersMembership, membership_id)
    if not membership:
        raise NotFoundError(f"Membership {membership_id} not found")
    return membership


def _get_plan(plan_id) -> MembershipPlan:
    if plan_id is None:
        raise ValidationError("membership_plan_id is required")
    plan = db.session.get(MembershipPlan, coerce_int(plan_id, "membership_plan_id"))
    if not plan:
        raise NotFoundError(f"Membership plan {plan_id} not found")
    return plan


def _get_enquiry(enquiry_id) -> Enquiry:
    if enquiry_id is None:
        raise ValidationError("enquiry_id is required")
    enquiry = db.session.get(Enquiry, coerce_int(enquiry_id, "enquiry_id"))
    if not enquiry:
        raise NotFoundError(f"Enquiry {enquiry_id} not found")
    return enquiry


def _paid_within(paid_amount_cents, total_cents: int) -> int:
    paid = parse_amount_cents(paid_amount_cents, "paid_amount_cents", allow_zero=True)
    if paid > total_cents:
        raise ValidationError("Paid amount cannot exceed total amount")
    return paid


def _lock_membership(membership_id: int) -> MembersMembership:
    membership = lock_for_update(
        db.session.query(MembersMembership).filter_by(id=membership_id)
    ).first()
    if not membership:
        raise NotFoundError(f"Membership {membership_id} not found")
    return membership


# =============================================================================
# CREATION
# =============================================================================

def _open_membership(
    *,
    enquiry_id,
    membership_plan_id,
    paid_amount_cents,
    created_by: str | None,
    activity_type: ActivityType,
) -> tuple[MembersMembership, int | None]:
    enquiry = _get_enquiry(enquiry_id)
    plan = _get_plan(membership_plan_id)

    if not plan.is_active:
        raise ValidationError(f"Membership plan '{plan.plan_name}' is not active")

    existing = db.session.query(MembersMembership.id).filter_by(enquiry_id=enquiry.id).first()
    if enquiry.is_converted or existing:
        raise ConflictError("Enquiry has already been converted to a member")

    paid = _paid_within(paid_amount_cents, plan.price_cents)
    now = utcnow()

    membership = MembersMembership(
        enquiry_id=enquiry.id,
        membership_plan_id=plan.id,
        start_date=now,
        duration_in_months=plan.duration_in_months,
        total_amount_cents=plan.price_cents,
        paid_amount_cents=paid,
        next_payment_due_date=next_due_date(plan.price_cents - paid, now),
        is_inactive=False,
        created_by=created_by,
        created_at=now,
    )
    db.session.add(membership)

    enquiry.is_converted = True
    enquiry.converted_at = now
    enquiry.updated_by = created_by
    enquiry.updated_at = now
    append_history(
        enquiry,
        EnquiryHistory.ACTION_MEMBERSHIP_TAKEN,
        modified_by=created_by,
        membership_taken_at=now,
    )
    db.session.flush()

    if activity_type == ActivityType.ENQUIRY_CONVERTED:
        description = f"Enquiry {enquiry.full_name} converted to member on plan {plan.plan_name}"
    else:
        description = f"Membership created for {enquiry.full_name} on plan {plan.plan_name}"
    record_activity(
        activity_type,
        description,
        entity_type=EntityType.MEMBER,
        entity_id=membership.id,
        recipient_name=enquiry.full_name,
        recipient_contact=enquiry.email,
        message_content=(
            f"Plan: {plan.plan_name}, Total: {receipt_service.format_money(plan.price_cents)}, "
            f"Paid: {receipt_service.format_money(paid)}"
        ),
        performed_by=created_by,
    )

    receipt_id = None
    if paid > 0:
        receipt = receipt_service.issue_receipt(
            membership,
            amount_cents=paid,
            previous_paid_cents=0,
            payment_method=METHOD_CASH,
            transaction_id=None,
            notes=INITIAL_PAYMENT_NOTE,
            received_by=created_by,
            paid_at=now,
        )
        record_payment_activity(membership, receipt, created_by)
        receipt_id = receipt.id

    db.session.commit()
    return membership, receipt_id


def convert_enquiry(
    enquiry_id: int,
    *,
    membership_plan_id,
    paid_amount_cents,
    created_by: str | None,
) -> MembersMembership:
    """
    Turn an enquiry into a paying member.

    Raises:
        NotFoundError: enquiry or plan missing
        ConflictError: enquiry already converted / already has a membership
        ValidationError: inactive plan, paid amount outside [0, price]
    """
    membership, receipt_id = run_with_retry(
        lambda: _open_membership(
            enquiry_id=enquiry_id,
            membership_plan_id=membership_plan_id,
            paid_amount_cents=paid_amount_cents,
            created_by=created_by,
            activity_type=ActivityType.ENQUIRY_CONVERTED,
        )
    )
    notification_service.notify_membership_created(membership.id, receipt_id, created_by)
    return membership


def create_membership(payload: dict, *, created_by: str | None) -> MembersMembership:
    """Direct creation (POST /api/memberships); same rules as conversion."""
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    membership, receipt_id = run_with_retry(
        lambda: _open_membership(
            enquiry_id=payload.get("enquiry_id"),
            membership_plan_id=payload.get("membership_plan_id"),
            paid_amount_cents=payload.get("paid_amount_cents", 0),
            created_by=created_by,
            activity_type=ActivityType.MEMBERSHIP_CREATED,
        )
    )
    notification_service.notify_membership_created(membership.id, receipt_id, created_by)
    return membership


# =============================================================================
# TRANSITIONS
# =============================================================================

def renew_membership(membership_id: int, *, paid_amount_cents, updated_by: str | None) -> MembersMembership:
    """
    Start a fresh full-length term from today at the plan's current price.

    Unused days of the previous term are discarded and paid_amount_cents is
    replaced by the input.
    """
    def _op() -> MembersMembership:
        membership = _lock_membership(membership_id)
        plan = membership.plan
        if not plan:
            raise NotFoundError(f"Membership plan {membership.membership_plan_id} not found")

        paid = _paid_within(paid_amount_cents, plan.price_cents)
        now = utcnow()

        membership.start_date = now
        membership.duration_in_months = plan.duration_in_months
        membership.total_amount_cents = plan.price_cents
        membership.paid_amount_cents = paid
        membership.next_payment_due_date = next_due_date(plan.price_cents - paid, now)
        membership.updated_by = updated_by
        membership.updated_at = now

        db.session.commit()
        return membership

    return run_with_retry(_op)


def upgrade_membership(
    membership_id: int,
    *,
    new_plan_id,
    paid_amount_cents,
    updated_by: str | None,
) -> MembersMembership:
    """Switch to another plan and restart the term; prior payments are not carried over."""
    def _op() -> MembersMembership:
        membership = _lock_membership(membership_id)
        new_plan = _get_plan(new_plan_id)
        if not new_plan.is_active:
            raise ValidationError(f"Membership plan '{new_plan.plan_name}' is not active")

        paid = _paid_within(paid_amount_cents, new_plan.price_cents)
        old_plan_name = membership.plan.plan_name if membership.plan else "Unknown"
        now = utcnow()

        membership.membership_plan_id = new_plan.id
        membership.plan = new_plan
        membership.start_date = now
        membership.duration_in_months = new_plan.duration_in_months
        membership.total_amount_cents = new_plan.price_cents
        membership.paid_amount_cents = paid
        membership.next_payment_due_date = next_due_date(new_plan.price_cents - paid, now)
        membership.updated_by = updated_by
        membership.updated_at = now

        enquiry = membership.enquiry
        record_activity(
            ActivityType.MEMBERSHIP_UPGRADED,
            f"Membership upgraded from {old_plan_name} to {new_plan.plan_name}",
            entity_type=EntityType.MEMBER,
            entity_id=membership.id,
            recipient_name=enquiry.full_name if enquiry else None,
            recipient_contact=enquiry.email if enquiry else None,
            message_content=(
                f"New Total: {receipt_service.format_money(new_plan.price_cents)}, "
                f"Paid: {receipt_service.format_money(paid)}, "
                f"Remaining: {receipt_service.format_money(new_plan.price_cents - paid)}"
            ),
            performed_by=updated_by,
        )

        db.session.commit()
        return membership

    return run_with_retry(_op)


def toggle_status(membership_id: int, *, is_inactive, updated_by: str | None) -> MembersMembership:
    """Set the manual inactive override. Dates and amounts are not touched."""
    if not isinstance(is_inactive, bool):
        raise ValidationError("is_inactive must be a boolean")

    def _op() -> MembersMembership:
        membership = _lock_membership(membership_id)
        now = utcnow()
        membership.is_inactive = is_inactive
        membership.updated_by = updated_by
        membership.updated_at = now

        enquiry = membership.enquiry
        name = enquiry.full_name if enquiry else f"membership {membership.id}"
        if is_inactive:
            kind, verb = ActivityType.MEMBERSHIP_DEACTIVATED, "deactivated"
        else:
            kind, verb = ActivityType.MEMBERSHIP_ACTIVATED, "activated"
        record_activity(
            kind,
            f"Membership for {name} {verb}",
            entity_type=EntityType.MEMBER,
            entity_id=membership.id,
            recipient_name=enquiry.full_name if enquiry else None,
            performed_by=updated_by,
        )

        db.session.commit()
        return membership

    return run_with_retry(_op)


def delete_membership(membership_id: int, *, deleted_by: str | None) -> None:
    """
    Remove a membership and all of its receipts.

    The enquiry's converted flag is cleared so the enquiry can be converted
    again or deleted.
    """
    def _op() -> None:
        membership = _lock_membership(membership_id)
        enquiry = membership.enquiry
        receipt_count = len(membership.receipts)
        snapshot = (
            f"Total: {receipt_service.format_money(membership.total_amount_cents)}, "
            f"Paid: {receipt_service.format_money(membership.paid_amount_cents)}, "
            f"Remaining: {receipt_service.format_money(membership.remaining_amount_cents)}, "
            f"Receipts removed: {receipt_count}"
        )
        name = enquiry.full_name if enquiry else f"membership {membership.id}"
        entity_id = membership.id

        db.session.delete(membership)
        db.session.flush()

        if enquiry is not None:
            remaining = db.session.query(MembersMembership.id).filter_by(enquiry_id=enquiry.id).first()
            if not remaining:
                enquiry.is_converted = False
                enquiry.converted_at = None
                enquiry.updated_by = deleted_by
                enquiry.updated_at = utcnow()

        record_activity(
            ActivityType.MEMBERSHIP_DELETED,
            f"Membership for {name} deleted",
            entity_type=EntityType.MEMBER,
            entity_id=entity_id,
            recipient_name=enquiry.full_name if enquiry else None,
            message_content=snapshot,
            performed_by=deleted_by,
        )
        db.session.commit()

    run_with_retry(_op)


# =============================================================================
# STATUS VIEWS
# =============================================================================

def classify_status(membership: MembersMembership, now: datetime | None = None) -> str:
    """Expired / Expiring Soon / Active, by dates only."""
    return membership.status_at(now or utcnow())


def _all() -> list[MembersMembership]:
    return (
        db.session.query(MembersMembership)
        .order_by(MembersMembership.created_at.desc(), MembersMembership.id.desc())
        .all()
    )


def list_memberships() -> list[MembersMembership]:
    return _all()


def memberships_for_enquiry(enquiry_id: int) -> list[MembersMembership]:
    _get_enquiry(enquiry_id)
    return (
        db.session.query(MembersMembership)
        .filter_by(enquiry_id=enquiry_id)
        .order_by(MembersMembership.created_at.desc())
        .all()
    )


def active_memberships(now: datetime | None = None) -> list[MembersMembership]:
    now = now or utcnow()
    return [m for m in _all() if m.is_active_at(now)]


def expired_memberships(now: datetime | None = None) -> list[MembersMembership]:
    now = now or utcnow()
    return [m for m in _all() if m.status_at(now) == STATUS_EXPIRED]


def expiring_soon_memberships(now: datetime | None = None) -> list[MembersMembership]:
    now = now or utcnow()
    return [m for m in _all() if m.status_at(now) == STATUS_EXPIRING_SOON]


def pending_payment_memberships(now: datetime | None = None) -> list[MembersMembership]:
    """Balance outstanding and the due date has arrived."""
    now = now or utcnow()
    return (
        db.session.query(MembersMembership)
        .filter(
            MembersMembership.paid_amount_cents < MembersMembership.total_amount_cents,
            MembersMembership.next_payment_due_date.isnot(None),
            MembersMembership.next_payment_due_date <= now,
        )
        .order_by(MembersMembership.next_payment_due_date.asc())
        .all()
    )


def get_stats(now: datetime | None = None) -> dict:
    now = now or utcnow()
    memberships = _all()
    return {
        "total_memberships": len(memberships),
        "active_memberships": sum(1 for m in memberships if m.is_active_at(now)),
        "expired_memberships": sum(1 for m in memberships if m.status_at(now) == STATUS_EXPIRED),
        "expiring_soon": sum(1 for m in memberships if m.status_at(now) == STATUS_EXPIRING_SOON),
        "pending_payments": sum(1 for m in memberships if m.remaining_amount_cents > 0),
        "total_revenue_cents": sum(m.paid_amount_cents for m in memberships),
        "outstanding_cents": sum(m.remaining_amount_cents for m in memberships),
    }
