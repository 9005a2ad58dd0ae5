# Overview: Service-layer operations for sales reporting over memberships sold in a date window.

from __future__ import annotations

from datetime import datetime

from app.extensions import db
from app.models import MembersMembership
from app.time_utils import parse_iso_datetime, utcnow, to_utc_z, add_months
from app.validation import ValidationError


class ReportError(ValidationError):
    """Raised when report parameters are invalid."""
    pass


def _parse_range(start: str | None, end: str | None) -> tuple[datetime, datetime]:
    """Defaults: one month back from now, up to now."""
    try:
        start_dt = parse_iso_datetime(start) if start else None
        end_dt = parse_iso_datetime(end) if end else None
    except ValueError:
        raise ReportError("start and end must be ISO-8601 datetimes")

    end_dt = end_dt or utcnow()
    start_dt = start_dt or add_months(end_dt, -1)
    if start_dt > end_dt:
        raise ReportError("start must be before end")
    return start_dt, end_dt


def _report(start_dt: datetime, end_dt: datetime, *, end_inclusive: bool = True) -> dict:
    upper = MembersMembership.created_at <= end_dt if end_inclusive else MembersMembership.created_at < end_dt
    memberships = (
        db.session.query(MembersMembership)
        .filter(MembersMembership.created_at >= start_dt, upper)
        .order_by(MembersMembership.created_at.asc(), MembersMembership.id.asc())
        .all()
    )

    total_sales = sum(m.total_amount_cents for m in memberships)
    collected = sum(m.paid_amount_cents for m in memberships)
    count = len(memberships)

    return {
        "start": to_utc_z(start_dt),
        "end": to_utc_z(end_dt),
        "total_memberships": count,
        "total_sales_cents": total_sales,
        "total_collected_cents": collected,
        "pending_amount_cents": total_sales - collected,
        "average_ticket_cents": total_sales // count if count else 0,
        "items": [
            {
                "members_membership_id": m.id,
                "member_name": m.enquiry.full_name if m.enquiry else None,
                "plan_name": m.plan.plan_name if m.plan else None,
                "created_at": to_utc_z(m.created_at),
                "total_amount_cents": m.total_amount_cents,
                "paid_amount_cents": m.paid_amount_cents,
                "remaining_amount_cents": m.remaining_amount_cents,
                "payment_status": m.payment_status(),
            }
            for m in memberships
        ],
    }


def sales_report(*, start: str | None = None, end: str | None = None) -> dict:
    start_dt, end_dt = _parse_range(start, end)
    return _report(start_dt, end_dt)


def sales_last_months(months: int) -> dict:
    end_dt = utcnow()
    return _report(add_months(end_dt, -months), end_dt)


def monthly_sales(year: int, month: int) -> dict:
    """Calendar month in UTC; the first instant of the next month is excluded."""
    if month < 1 or month > 12:
        raise ReportError("month must be between 1 and 12")
    if year < 1900 or year > 9999:
        raise ReportError("year is out of range")
    start_dt = datetime(year, month, 1)
    return _report(start_dt, add_months(start_dt, 1), end_inclusive=False)
