from __future__ import annotations

from datetime import datetime, timedelta

from ..extensions import db
from app.time_utils import add_months, to_utc_z, utcnow


EXPIRING_SOON_WINDOW = timedelta(days=30)

STATUS_EXPIRED = "Expired"
STATUS_EXPIRING_SOON = "Expiring Soon"
STATUS_ACTIVE = "Active"


class MembershipPlan(db.Model):
    """
    Named pricing tier.

    WHY: Plans are soft-deleted (is_active = False). Historical memberships
    keep referencing the plan row by id.
    """
    __tablename__ = "membership_plans"
    __table_args__ = (
        db.Index("ix_membership_plans_active_name", "is_active", "plan_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    plan_name = db.Column(db.String(100), nullable=False)
    plan_type = db.Column(db.String(16), nullable=False, default="Monthly")
    duration_in_months = db.Column(db.Integer, nullable=False)
    price_cents = db.Column(db.Integer, nullable=False)
    description = db.Column(db.Text, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_by = db.Column(db.String(255), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_by = db.Column(db.String(255), nullable=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<MembershipPlan id={self.id} name={self.plan_name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "plan_name": self.plan_name,
            "plan_type": self.plan_type,
            "duration_in_months": self.duration_in_months,
            "price_cents": self.price_cents,
            "description": self.description,
            "is_active": self.is_active,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
            "updated_by": self.updated_by,
            "updated_at": to_utc_z(self.updated_at),
        }


class MembersMembership(db.Model):
    """
    The contract between a converted enquiry and a plan, with payment tracking.

    DERIVED (never stored):
    - end_date = start_date + duration_in_months calendar months
    - remaining_amount_cents = total_amount_cents - paid_amount_cents
    - is_active = not is_inactive and end_date > now

    duration_in_months and total_amount_cents are snapshots taken from the
    plan at creation, renewal and upgrade. Later plan edits do not change
    a running term.

    CONCURRENCY: version_id is an optimistic lock. A write based on a
    stale read raises StaleDataError instead of silently overwriting.
    """
    __tablename__ = "members_memberships"
    __table_args__ = (
        db.CheckConstraint("paid_amount_cents >= 0", name="ck_members_memberships_paid_non_negative"),
        db.CheckConstraint(
            "paid_amount_cents <= total_amount_cents",
            name="ck_members_memberships_paid_within_total",
        ),
        db.Index("ix_members_memberships_due", "next_payment_due_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    enquiry_id = db.Column(db.Integer, db.ForeignKey("enquiries.id"), nullable=False, index=True)
    membership_plan_id = db.Column(db.Integer, db.ForeignKey("membership_plans.id"), nullable=False, index=True)

    start_date = db.Column(db.DateTime(timezone=True), nullable=False)
    duration_in_months = db.Column(db.Integer, nullable=False)
    total_amount_cents = db.Column(db.Integer, nullable=False)
    paid_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    next_payment_due_date = db.Column(db.DateTime(timezone=True), nullable=True)

    # Manual override, combined with the date-derived expiry in is_active
    is_inactive = db.Column(db.Boolean, nullable=False, default=False)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_by = db.Column(db.String(255), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_by = db.Column(db.String(255), nullable=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True)

    enquiry = db.relationship("Enquiry", backref=db.backref("memberships", lazy=True))
    plan = db.relationship("MembershipPlan", backref=db.backref("memberships", lazy=True))
    receipts = db.relationship(
        "PaymentReceipt",
        back_populates="membership",
        cascade="all, delete-orphan",
        lazy=True,
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<MembersMembership id={self.id} enquiry_id={self.enquiry_id} plan_id={self.membership_plan_id}>"

    @property
    def end_date(self) -> datetime:
        return add_months(self.start_date, self.duration_in_months)

    @property
    def remaining_amount_cents(self) -> int:
        return self.total_amount_cents - self.paid_amount_cents

    @property
    def is_fully_paid(self) -> bool:
        return self.remaining_amount_cents <= 0

    def is_active_at(self, now: datetime) -> bool:
        return not self.is_inactive and self.end_date > now

    @property
    def is_active(self) -> bool:
        return self.is_active_at(utcnow())

    def status_at(self, now: datetime) -> str:
        """Date-only classification; the manual inactive flag is not consulted."""
        end = self.end_date
        if end < now:
            return STATUS_EXPIRED
        if end <= now + EXPIRING_SOON_WINDOW:
            return STATUS_EXPIRING_SOON
        return STATUS_ACTIVE

    def payment_status(self) -> str:
        if self.remaining_amount_cents <= 0:
            return "Fully Paid"
        if self.paid_amount_cents > 0:
            return "Partial"
        return "Unpaid"

    def to_dict(self, *, now: datetime | None = None) -> dict:
        now = now or utcnow()
        enquiry = self.enquiry
        plan = self.plan
        return {
            "id": self.id,
            "enquiry_id": self.enquiry_id,
            "membership_plan_id": self.membership_plan_id,
            "member_name": enquiry.full_name if enquiry else None,
            "member_email": enquiry.email if enquiry else None,
            "member_phone": enquiry.phone if enquiry else None,
            "plan_name": plan.plan_name if plan else None,
            "start_date": to_utc_z(self.start_date),
            "end_date": to_utc_z(self.end_date),
            "duration_in_months": self.duration_in_months,
            "total_amount_cents": self.total_amount_cents,
            "paid_amount_cents": self.paid_amount_cents,
            "remaining_amount_cents": self.remaining_amount_cents,
            "next_payment_due_date": to_utc_z(self.next_payment_due_date),
            "is_inactive": self.is_inactive,
            "is_active": self.is_active_at(now),
            "status": self.status_at(now),
            "payment_status": self.payment_status(),
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
            "updated_by": self.updated_by,
            "updated_at": to_utc_z(self.updated_at),
        }
