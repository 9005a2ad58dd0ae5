# Overview: Excel exports (members, enquiries, sales report) built with openpyxl.

from __future__ import annotations

import io

from openpyxl import Workbook
from openpyxl.styles import Font

from app.models import MembersMembership
from app.time_utils import utcnow
from . import enquiry_service, reporting_service
from .membership_service import list_memberships


XLSX_MIMETYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

MEMBER_HEADERS = [
    "Membership ID",
    "Member Name",
    "Email",
    "Phone",
    "Plan",
    "Start Date",
    "End Date",
    "Total Amount",
    "Paid Amount",
    "Remaining Amount",
    "Payment Status",
    "Membership Status",
    "Inactive",
    "Next Payment Due",
]

ENQUIRY_HEADERS = [
    "Enquiry ID",
    "First Name",
    "Last Name",
    "Email",
    "Phone",
    "WhatsApp",
    "City",
    "Gender",
    "Date of Birth",
    "Occupation",
    "Converted",
    "Created At",
]

SALES_HEADERS = [
    "Membership ID",
    "Member Name",
    "Plan",
    "Created At",
    "Total Amount",
    "Paid Amount",
    "Remaining Amount",
    "Payment Status",
]


def _money(cents: int | None) -> float | None:
    return None if cents is None else round(cents / 100, 2)


def _date(dt) -> str | None:
    return dt.strftime("%Y-%m-%d") if dt else None


def _workbook(title: str, headers: list[str], rows) -> bytes:
    wb = Workbook()
    ws = wb.active
    ws.title = title
    ws.append(headers)
    for cell in ws[1]:
        cell.font = Font(bold=True)
    for row in rows:
        ws.append(row)
    ws.freeze_panes = "A2"

    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


def _member_row(m: MembersMembership, now) -> list:
    enquiry = m.enquiry
    return [
        m.id,
        enquiry.full_name if enquiry else None,
        enquiry.email if enquiry else None,
        enquiry.phone if enquiry else None,
        m.plan.plan_name if m.plan else None,
        _date(m.start_date),
        _date(m.end_date),
        _money(m.total_amount_cents),
        _money(m.paid_amount_cents),
        _money(m.remaining_amount_cents),
        m.payment_status(),
        m.status_at(now),
        "Yes" if m.is_inactive else "No",
        _date(m.next_payment_due_date),
    ]


def export_members() -> tuple[bytes, str]:
    now = utcnow()
    rows = [_member_row(m, now) for m in list_memberships()]
    filename = f"Members_{now:%Y%m%d_%H%M%S}.xlsx"
    return _workbook("Members", MEMBER_HEADERS, rows), filename


def export_enquiries() -> tuple[bytes, str]:
    now = utcnow()
    rows = [
        [
            e.id,
            e.first_name,
            e.last_name,
            e.email,
            e.phone,
            "Yes" if e.is_whatsapp_number else "No",
            e.city,
            e.gender,
            _date(e.date_of_birth),
            e.occupation,
            "Yes" if e.is_converted else "No",
            _date(e.created_at),
        ]
        for e in enquiry_service.list_enquiries()
    ]
    filename = f"Enquiries_{now:%Y%m%d_%H%M%S}.xlsx"
    return _workbook("Enquiries", ENQUIRY_HEADERS, rows), filename


def export_sales(*, start: str | None = None, end: str | None = None) -> tuple[bytes, str]:
    report = reporting_service.sales_report(start=start, end=end)
    rows = [
        [
            item["members_membership_id"],
            item["member_name"],
            item["plan_name"],
            item["created_at"],
            _money(item["total_amount_cents"]),
            _money(item["paid_amount_cents"]),
            _money(item["remaining_amount_cents"]),
            item["payment_status"],
        ]
        for item in report["items"]
    ]
    rows.append([])
    rows.append(["Total Memberships", report["total_memberships"]])
    rows.append(["Total Sales", _money(report["total_sales_cents"])])
    rows.append(["Total Collected", _money(report["total_collected_cents"])])
    rows.append(["Pending Amount", _money(report["pending_amount_cents"])])
    rows.append(["Average Ticket", _money(report["average_ticket_cents"])])

    filename = f"SalesReport_{utcnow():%Y%m%d_%H%M%S}.xlsx"
    return _workbook("SalesReport", SALES_HEADERS, rows), filename
