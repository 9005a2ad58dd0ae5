# Overview: Service-layer operations for membership installment payments; encapsulates business logic and database work.

"""
Membership Payment Service

WHY: A membership fee is paid in installments. Each payment moves
paid_amount_cents towards total_amount_cents and produces exactly one
receipt and one PaymentReceived activity.

INVARIANTS:
- 0 <= paid_amount_cents <= total_amount_cents after every payment
- amount <= 0 or amount > remaining is rejected before anything is written
- next_payment_due_date is now + 1 month while a balance remains, else None

CONCURRENCY:
- The membership row is locked (SELECT ... FOR UPDATE) and the remaining
  balance is re-checked inside run_with_retry, so two concurrent payments
  cannot both pass validation against the same balance.
- version_id on the membership turns a lost update into StaleDataError,
  which is retried and finally surfaced as a 409.
- A transaction_id (or Idempotency-Key header) already recorded on the same
  membership returns the original receipt instead of charging twice.
"""

from __future__ import annotations

from dataclasses import dataclass

from ..extensions import db
from ..models import MembersMembership, PaymentReceipt, ActivityType, EntityType
from ..validation import ValidationError, ConflictError, NotFoundError, parse_amount_cents
from app.time_utils import utcnow, add_months, to_utc_z
from .activity_service import record_activity
from .concurrency import lock_for_update, run_with_retry
from . import receipt_service
from . import notification_service


# =============================================================================
# PAYMENT METHODS (CONSTANTS)
# =============================================================================

METHOD_CASH = "Cash"
METHOD_CARD = "Card"
METHOD_UPI = "UPI"
METHOD_BANK_TRANSFER = "BankTransfer"
METHOD_CHEQUE = "Cheque"
METHOD_OTHER = "Other"

VALID_PAYMENT_METHODS = [
    METHOD_CASH,
    METHOD_CARD,
    METHOD_UPI,
    METHOD_BANK_TRANSFER,
    METHOD_CHEQUE,
    METHOD_OTHER,
]

INITIAL_PAYMENT_NOTE = "Initial membership payment"


@dataclass
class PaymentResult:
    membership: MembersMembership
    receipt: PaymentReceipt
    duplicate: bool = False

    def to_dict(self) -> dict:
        membership = self.membership
        return {
            "message": "Payment already recorded" if self.duplicate else "Payment processed successfully",
            "members_membership_id": membership.id,
            "payment_amount_cents": self.receipt.amount_paid_cents,
            "remaining_amount_cents": membership.remaining_amount_cents,
            "is_fully_paid": membership.is_fully_paid,
            "next_payment_due_date": to_utc_z(membership.next_payment_due_date),
            "receipt_number": self.receipt.receipt_number,
            "receipt_id": self.receipt.id,
            "duplicate": self.duplicate,
        }


def next_due_date(remaining_cents: int, now):
    """Due date rule shared by payment, conversion, renewal and upgrade."""
    return add_months(now, 1) if remaining_cents > 0 else None


def record_payment_activity(membership: MembersMembership, receipt: PaymentReceipt, performed_by: str | None) -> None:
    fmt = receipt_service.format_money
    enquiry = membership.enquiry
    member_name = enquiry.full_name if enquiry else receipt.member_name
    record_activity(
        ActivityType.PAYMENT_RECEIVED,
        f"Payment of {fmt(receipt.amount_paid_cents)} received from {member_name}",
        entity_type=EntityType.MEMBER,
        entity_id=membership.id,
        recipient_name=member_name,
        recipient_contact=enquiry.email if enquiry else receipt.member_email,
        message_content=(
            f"Receipt: {receipt.receipt_number}, "
            f"Payment: {fmt(receipt.amount_paid_cents)}, "
            f"Total Paid: {fmt(membership.paid_amount_cents)}, "
            f"Remaining: {fmt(membership.remaining_amount_cents)}, "
            f"Method: {receipt.payment_method}"
        ),
        performed_by=performed_by,
    )


def _normalize_method(payment_method: str | None) -> str:
    if payment_method is None or str(payment_method).strip() == "":
        return METHOD_CASH
    method = str(payment_method).strip()
    for valid in VALID_PAYMENT_METHODS:
        if method.lower() == valid.lower():
            return valid
    raise ValidationError(f"Invalid payment method: {method}. Must be one of {VALID_PAYMENT_METHODS}")


def process_payment(
    membership_id: int,
    *,
    amount_cents,
    payment_method: str | None = None,
    transaction_id: str | None = None,
    notes: str | None = None,
    received_by: str | None = None,
) -> PaymentResult:
    """
    Apply one installment payment to a membership.

    Raises:
        NotFoundError: membership does not exist
        ValidationError: amount <= 0, amount > remaining, bad method
        ConflictError: transaction_id reused with a different amount, or
            the membership kept changing underneath us
    """
    amount = parse_amount_cents(amount_cents, "amount_cents")

    method = _normalize_method(payment_method)
    transaction_id = (transaction_id or "").strip() or None
    if transaction_id and len(transaction_id) > 100:
        raise ValidationError("transaction_id exceeds max length 100")
    notes = (notes or "").strip() or None
    if notes and len(notes) > 500:
        raise ValidationError("notes exceeds max length 500")

    def _op() -> PaymentResult:
        membership = lock_for_update(
            db.session.query(MembersMembership).filter_by(id=membership_id)
        ).first()
        if not membership:
            raise NotFoundError(f"Membership {membership_id} not found")

        if transaction_id:
            existing = receipt_service.find_by_transaction(membership.id, transaction_id)
            if existing:
                if existing.amount_paid_cents != amount:
                    raise ConflictError(
                        f"transaction_id '{transaction_id}' was already used for a different amount"
                    )
                return PaymentResult(membership=membership, receipt=existing, duplicate=True)

        if amount > membership.remaining_amount_cents:
            raise ValidationError("Payment amount cannot exceed remaining amount")

        now = utcnow()
        previous_paid = membership.paid_amount_cents
        membership.paid_amount_cents = previous_paid + amount
        membership.next_payment_due_date = next_due_date(membership.remaining_amount_cents, now)
        membership.updated_by = received_by
        membership.updated_at = now

        receipt = receipt_service.issue_receipt(
            membership,
            amount_cents=amount,
            previous_paid_cents=previous_paid,
            payment_method=method,
            transaction_id=transaction_id,
            notes=notes,
            received_by=received_by,
            paid_at=now,
        )
        record_payment_activity(membership, receipt, received_by)

        db.session.commit()
        return PaymentResult(membership=membership, receipt=receipt)

    result = run_with_retry(_op)

    if not result.duplicate:
        notification_service.notify_payment_received(result.receipt.id, received_by)

    return result
