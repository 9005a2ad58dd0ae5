# Overview: Flask API routes for sales reports and Excel exports.

"""
Report routes.

SECURITY: Reports require VIEW_REPORTS, spreadsheet exports require EXPORT_DATA.
"""

import io

from flask import Blueprint, request, jsonify, current_app, send_file

from ..decorators import require_auth, require_permission
from ..services import reporting_service, export_service
from ..validation import ValidationError


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


def _xlsx(content: bytes, filename: str):
    return send_file(
        io.BytesIO(content),
        mimetype=export_service.XLSX_MIMETYPE,
        as_attachment=True,
        download_name=filename,
    )


@reports_bp.get("/sales")
@require_auth
@require_permission("VIEW_REPORTS")
def sales_report_route():
    """
    Memberships sold in a window.

    Query params:
    - start: ISO-8601 datetime (default one month before end)
    - end: ISO-8601 datetime (default now)
    """
    try:
        return reporting_service.sales_report(
            start=request.args.get("start"),
            end=request.args.get("end"),
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400


@reports_bp.get("/sales/last-3-months")
@require_auth
@require_permission("VIEW_REPORTS")
def sales_last_3_months_route():
    return reporting_service.sales_last_months(3)


@reports_bp.get("/sales/last-6-months")
@require_auth
@require_permission("VIEW_REPORTS")
def sales_last_6_months_route():
    return reporting_service.sales_last_months(6)


@reports_bp.get("/sales/monthly/<int:year>/<int:month>")
@require_auth
@require_permission("VIEW_REPORTS")
def monthly_sales_route(year: int, month: int):
    try:
        return reporting_service.monthly_sales(year, month)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400


@reports_bp.get("/sales/export")
@require_auth
@require_permission("EXPORT_DATA")
def export_sales_route():
    try:
        content, filename = export_service.export_sales(
            start=request.args.get("start"),
            end=request.args.get("end"),
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to export sales report")
        return jsonify({"error": "Internal server error"}), 500
    return _xlsx(content, filename)


@reports_bp.get("/enquiries/export")
@require_auth
@require_permission("EXPORT_DATA")
def export_enquiries_route():
    try:
        content, filename = export_service.export_enquiries()
    except Exception:
        current_app.logger.exception("Failed to export enquiries")
        return jsonify({"error": "Internal server error"}), 500
    return _xlsx(content, filename)
