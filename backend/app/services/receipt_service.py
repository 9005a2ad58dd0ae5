# Overview: Service-layer operations for payment receipts; numbering, HTML/PDF rendering and retrieval.

"""
Payment Receipt Service

WHY: A receipt is the durable, human-readable proof of one payment event.
It snapshots names and running totals at payment time, so later edits to the
enquiry or plan never change what a printed receipt says.

DESIGN:
- Receipt numbers: REC-{yyyy}-{nnnnn}, allocated from ReceiptSequence inside
  the payment transaction (atomic UPDATE, one row per year)
- HTML is the primary rendering and is cached on the receipt row
- PDF is derived from the same HTML with WeasyPrint; when PDF rendering
  fails the download falls back to HTML and the activity log records
  which format was served
"""

from __future__ import annotations

import io
from dataclasses import dataclass
from datetime import datetime
from html import escape

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import PaymentReceipt, ReceiptSequence, MembersMembership, ActivityType, EntityType
from ..validation import NotFoundError
from .activity_service import record_activity
from app.time_utils import utcnow


RECEIPT_PREFIX = "REC"
RECEIPT_PAD = 5


@dataclass
class ReceiptDocument:
    """What the download endpoint actually serves."""
    content: bytes
    mimetype: str
    filename: str
    format: str  # "PDF" or "HTML"
    error: str | None = None


def format_money(cents: int, symbol: str | None = None) -> str:
    if symbol is None:
        symbol = current_app.config.get("CURRENCY_SYMBOL", "$")
    sign = "-" if cents < 0 else ""
    return f"{sign}{symbol}{abs(cents) / 100:,.2f}"


# =============================================================================
# NUMBERING
# =============================================================================

def next_receipt_number(year: int) -> str:
    """
    Allocate the next receipt number for a calendar year.

    Runs inside the caller's transaction; the sequence row is locked by the
    UPDATE until that transaction ends.
    """
    stmt = (
        update(ReceiptSequence)
        .where(ReceiptSequence.year == year)
        .values(next_number=ReceiptSequence.next_number + 1)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        current = (
            db.session.query(ReceiptSequence.next_number)
            .filter_by(year=year)
            .scalar()
        )
        number = current - 1
    else:
        nested = db.session.begin_nested()
        try:
            db.session.add(ReceiptSequence(year=year, next_number=2))
            nested.commit()
            number = 1
        except IntegrityError:
            # Another transaction created the row first
            nested.rollback()
            db.session.execute(stmt)
            current = (
                db.session.query(ReceiptSequence.next_number)
                .filter_by(year=year)
                .scalar()
            )
            number = current - 1

    return f"{RECEIPT_PREFIX}-{year:04d}-{number:0{RECEIPT_PAD}d}"


# =============================================================================
# ISSUING
# =============================================================================

def issue_receipt(
    membership: MembersMembership,
    *,
    amount_cents: int,
    previous_paid_cents: int,
    payment_method: str,
    transaction_id: str | None,
    notes: str | None,
    received_by: str | None,
    paid_at: datetime,
) -> PaymentReceipt:
    """
    Create the receipt for a payment that has already been applied to
    `membership`. The caller owns the transaction.
    """
    enquiry = membership.enquiry
    plan = membership.plan

    receipt = PaymentReceipt(
        receipt_number=next_receipt_number(paid_at.year),
        members_membership_id=membership.id,
        amount_paid_cents=amount_cents,
        payment_method=payment_method,
        transaction_id=transaction_id,
        total_amount_cents=membership.total_amount_cents,
        previous_paid_cents=previous_paid_cents,
        remaining_amount_cents=membership.total_amount_cents - (previous_paid_cents + amount_cents),
        notes=notes,
        payment_date=paid_at,
        received_by=received_by,
        member_name=enquiry.full_name if enquiry else None,
        member_email=enquiry.email if enquiry else None,
        member_phone=enquiry.phone if enquiry else None,
        plan_name=plan.plan_name if plan else None,
        created_at=paid_at,
    )
    receipt.html_content = render_receipt_html(receipt)
    db.session.add(receipt)
    db.session.flush()
    return receipt


# =============================================================================
# RENDERING
# =============================================================================

def render_receipt_html(receipt: PaymentReceipt, *, gym_name: str | None = None, currency: str | None = None) -> str:
    """
    Render a receipt snapshot as a standalone HTML document.

    Pure: reads only the receipt's own fields. All user-provided text is
    escaped.
    """
    cfg = current_app.config
    gym_name = escape(gym_name or cfg.get("GYM_NAME", "Our Gym"))
    currency = currency if currency is not None else cfg.get("CURRENCY_SYMBOL", "$")

    def money(cents: int) -> str:
        return escape(format_money(cents, currency))

    number = escape(receipt.receipt_number or "")
    paid_on = receipt.payment_date.strftime("%d %b %Y, %H:%M UTC") if receipt.payment_date else ""
    total_paid = (receipt.previous_paid_cents or 0) + (receipt.amount_paid_cents or 0)
    remaining = receipt.remaining_amount_cents or 0
    remaining_color = "#dc3545" if remaining > 0 else "#28a745"

    transaction_row = ""
    if receipt.transaction_id:
        transaction_row = (
            "<tr><td class='label'>Transaction ID</td>"
            f"<td class='value'>{escape(receipt.transaction_id)}</td></tr>"
        )

    notes_section = ""
    if receipt.notes:
        notes_section = (
            "<div class='section'><div class='section-title'>Notes</div>"
            f"<p>{escape(receipt.notes)}</p></div>"
        )

    thank_you = "Thank you for your payment!"
    if remaining <= 0:
        thank_you += " Your membership is fully paid."

    return f"""<!DOCTYPE html>
<html>
<head>
    <meta charset="UTF-8">
    <title>Payment Receipt - {number}</title>
    <style>
        body {{ font-family: Arial, sans-serif; color: #333; margin: 0; padding: 20px; }}
        .container {{ max-width: 700px; margin: 0 auto; border: 1px solid #ddd; padding: 30px; }}
        .header {{ text-align: center; border-bottom: 3px solid #4F46E5; padding-bottom: 15px; }}
        .header h1 {{ margin: 0; color: #4F46E5; }}
        .receipt-number {{ text-align: center; font-weight: bold; margin: 20px 0; }}
        .amount {{ text-align: center; font-size: 32px; font-weight: bold; color: #28a745; margin: 10px 0 25px; }}
        .section {{ margin: 20px 0; }}
        .section-title {{ font-weight: bold; border-bottom: 1px solid #eee; padding-bottom: 5px; margin-bottom: 10px; }}
        table {{ width: 100%; border-collapse: collapse; }}
        td {{ padding: 6px 0; }}
        .label {{ color: #666; }}
        .value {{ text-align: right; font-weight: bold; }}
        .thank-you {{ text-align: center; margin-top: 30px; padding: 15px; background: #f0fdf4; border-radius: 6px; }}
    </style>
</head>
<body>
    <div class="container">
        <div class="header">
            <h1>{gym_name}</h1>
            <p>Payment Receipt</p>
        </div>

        <div class="receipt-number">Receipt No: {number}</div>
        <div class="amount">{money(receipt.amount_paid_cents or 0)}</div>

        <div class="section">
            <div class="section-title">Member Details</div>
            <table>
                <tr><td class='label'>Name</td><td class='value'>{escape(receipt.member_name or "")}</td></tr>
                <tr><td class='label'>Email</td><td class='value'>{escape(receipt.member_email or "")}</td></tr>
                <tr><td class='label'>Phone</td><td class='value'>{escape(receipt.member_phone or "")}</td></tr>
                <tr><td class='label'>Plan</td><td class='value'>{escape(receipt.plan_name or "")}</td></tr>
            </table>
        </div>

        <div class="section">
            <div class="section-title">Payment Details</div>
            <table>
                <tr><td class='label'>Payment Date</td><td class='value'>{escape(paid_on)}</td></tr>
                <tr><td class='label'>Payment Method</td><td class='value'>{escape(receipt.payment_method or "")}</td></tr>
                {transaction_row}
                <tr><td class='label'>Received By</td><td class='value'>{escape(receipt.received_by or "")}</td></tr>
            </table>
        </div>

        <div class="section">
            <div class="section-title">Payment Summary</div>
            <table>
                <tr><td class='label'>Total Membership Fee</td><td class='value'>{money(receipt.total_amount_cents or 0)}</td></tr>
                <tr><td class='label'>Previously Paid</td><td class='value'>{money(receipt.previous_paid_cents or 0)}</td></tr>
                <tr><td class='label'>This Payment</td><td class='value' style='color: #28a745;'>{money(receipt.amount_paid_cents or 0)}</td></tr>
                <tr><td class='label'>Total Paid</td><td class='value'>{money(total_paid)}</td></tr>
                <tr><td class='label'>Remaining Balance</td><td class='value' style='color: {remaining_color};'>{money(remaining)}</td></tr>
            </table>
        </div>

        {notes_section}

        <div class="thank-you">{thank_you}</div>
    </div>
</body>
</html>"""


def render_receipt_pdf(html_content: str) -> bytes:
    """
    Convert receipt HTML to PDF bytes.

    WeasyPrint needs native Pango/Cairo libraries; it is imported here so a
    host without them still serves HTML receipts. Any failure propagates.
    """
    from weasyprint import HTML

    pdf_buffer = io.BytesIO()
    HTML(string=html_content).write_pdf(pdf_buffer)
    return pdf_buffer.getvalue()


# =============================================================================
# QUERIES
# =============================================================================

def get_receipt(receipt_id: int) -> PaymentReceipt:
    receipt = db.session.get(PaymentReceipt, receipt_id)
    if not receipt:
        raise NotFoundError(f"Receipt {receipt_id} not found")
    return receipt


def receipts_for_membership(membership_id: int) -> list[PaymentReceipt]:
    if not db.session.get(MembersMembership, membership_id):
        raise NotFoundError(f"Membership {membership_id} not found")
    return (
        db.session.query(PaymentReceipt)
        .filter_by(members_membership_id=membership_id)
        .order_by(PaymentReceipt.payment_date.desc(), PaymentReceipt.id.desc())
        .all()
    )


def list_receipts() -> list[PaymentReceipt]:
    return (
        db.session.query(PaymentReceipt)
        .order_by(PaymentReceipt.payment_date.desc(), PaymentReceipt.id.desc())
        .all()
    )


def find_by_transaction(membership_id: int, transaction_id: str) -> PaymentReceipt | None:
    return (
        db.session.query(PaymentReceipt)
        .filter_by(members_membership_id=membership_id, transaction_id=transaction_id)
        .first()
    )


# =============================================================================
# VIEW / DOWNLOAD
# =============================================================================

def get_receipt_html(receipt_id: int, *, viewed_by: str | None) -> str:
    """Cached HTML; generated and stored the first time it is missing."""
    receipt = get_receipt(receipt_id)
    if not receipt.html_content:
        receipt.html_content = render_receipt_html(receipt)
        db.session.commit()

    record_activity(
        ActivityType.RECEIPT_VIEWED,
        f"Receipt {receipt.receipt_number} viewed",
        entity_type=EntityType.RECEIPT,
        entity_id=receipt.id,
        recipient_name=receipt.member_name,
        performed_by=viewed_by,
        commit=True,
    )
    return receipt.html_content


def download_receipt(receipt_id: int, *, downloaded_by: str | None) -> ReceiptDocument:
    """
    PDF when it renders, HTML otherwise. Either way the activity feed
    records what was served.
    """
    receipt = get_receipt(receipt_id)
    html_content = receipt.html_content or render_receipt_html(receipt)
    base_name = f"Receipt_{receipt.receipt_number}"

    try:
        pdf_bytes = render_receipt_pdf(html_content)
        document = ReceiptDocument(
            content=pdf_bytes,
            mimetype="application/pdf",
            filename=f"{base_name}.pdf",
            format="PDF",
        )
        description = f"Receipt {receipt.receipt_number} downloaded. Format: PDF"
    except Exception as exc:
        current_app.logger.exception("PDF generation failed for receipt %s", receipt.receipt_number)
        document = ReceiptDocument(
            content=html_content.encode("utf-8"),
            mimetype="text/html",
            filename=f"{base_name}.html",
            format="HTML",
            error=str(exc),
        )
        description = f"Receipt {receipt.receipt_number} downloaded. Format: HTML (PDF generation failed)"

    record_activity(
        ActivityType.RECEIPT_DOWNLOADED,
        description,
        entity_type=EntityType.RECEIPT,
        entity_id=receipt.id,
        recipient_name=receipt.member_name,
        error_message=document.error,
        performed_by=downloaded_by,
        commit=True,
    )
    return document


# =============================================================================
# MUTATIONS
# =============================================================================

def mark_email_sent(receipt_id: int) -> None:
    receipt = db.session.get(PaymentReceipt, receipt_id)
    if not receipt:
        return
    receipt.email_sent = True
    receipt.email_sent_at = utcnow()
    db.session.commit()


def delete_receipt(receipt_id: int, *, deleted_by: str | None) -> None:
    """
    Admin-only removal of a single receipt. The membership's paid amount
    is not changed; this is a paperwork correction.
    """
    receipt = get_receipt(receipt_id)
    number = receipt.receipt_number
    membership_id = receipt.members_membership_id
    db.session.delete(receipt)
    record_activity(
        ActivityType.RECEIPT_DELETED,
        f"Receipt {number} deleted",
        entity_type=EntityType.MEMBER,
        entity_id=membership_id,
        performed_by=deleted_by,
    )
    db.session.commit()
