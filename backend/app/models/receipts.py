from __future__ import annotations

from ..extensions import db
from app.time_utils import to_utc_z


class PaymentReceipt(db.Model):
    """
    Immutable snapshot of one payment event.

    WHY: Member, contact and plan names are denormalized so a receipt stays
    readable after the enquiry or plan is edited. Only html_content (cache)
    and email_sent / email_sent_at (async backfill) change after insert.
    """
    __tablename__ = "payment_receipts"
    __table_args__ = (
        db.Index("ix_payment_receipts_membership_date", "members_membership_id", "payment_date"),
        db.Index("ix_payment_receipts_transaction", "members_membership_id", "transaction_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    receipt_number = db.Column(db.String(50), nullable=False, unique=True, index=True)
    members_membership_id = db.Column(
        db.Integer,
        db.ForeignKey("members_memberships.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    amount_paid_cents = db.Column(db.Integer, nullable=False)
    payment_method = db.Column(db.String(50), nullable=False, default="Cash")
    transaction_id = db.Column(db.String(100), nullable=True)

    # Running totals at the time of payment
    total_amount_cents = db.Column(db.Integer, nullable=False)
    previous_paid_cents = db.Column(db.Integer, nullable=False)
    remaining_amount_cents = db.Column(db.Integer, nullable=False)

    notes = db.Column(db.String(500), nullable=True)
    payment_date = db.Column(db.DateTime(timezone=True), nullable=False)
    received_by = db.Column(db.String(255), nullable=True)

    member_name = db.Column(db.String(200), nullable=True)
    member_email = db.Column(db.String(255), nullable=True)
    member_phone = db.Column(db.String(32), nullable=True)
    plan_name = db.Column(db.String(100), nullable=True)

    html_content = db.Column(db.Text, nullable=True)

    email_sent = db.Column(db.Boolean, nullable=False, default=False)
    email_sent_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    membership = db.relationship("MembersMembership", back_populates="receipts")

    @property
    def total_paid_cents(self) -> int:
        return self.previous_paid_cents + self.amount_paid_cents

    def to_dict(self, *, include_html: bool = False) -> dict:
        data = {
            "id": self.id,
            "receipt_number": self.receipt_number,
            "members_membership_id": self.members_membership_id,
            "amount_paid_cents": self.amount_paid_cents,
            "payment_method": self.payment_method,
            "transaction_id": self.transaction_id,
            "total_amount_cents": self.total_amount_cents,
            "previous_paid_cents": self.previous_paid_cents,
            "total_paid_cents": self.total_paid_cents,
            "remaining_amount_cents": self.remaining_amount_cents,
            "notes": self.notes,
            "payment_date": to_utc_z(self.payment_date),
            "received_by": self.received_by,
            "member_name": self.member_name,
            "member_email": self.member_email,
            "member_phone": self.member_phone,
            "plan_name": self.plan_name,
            "email_sent": self.email_sent,
            "email_sent_at": to_utc_z(self.email_sent_at),
            "created_at": to_utc_z(self.created_at),
        }
        if include_html:
            data["html_content"] = self.html_content
        return data


class ReceiptSequence(db.Model):
    """
    Atomic per-year receipt number sequence.

    WHY: Counting existing receipts to pick the next number races under
    concurrent payments and reuses numbers after deletes.
    """
    __tablename__ = "receipt_sequences"
    __table_args__ = (
        db.UniqueConstraint("year", name="uq_receipt_sequences_year"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    year = db.Column(db.Integer, nullable=False)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "year": self.year,
            "next_number": self.next_number,
            "updated_at": to_utc_z(self.updated_at),
        }
