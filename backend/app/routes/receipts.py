# Overview: Flask API routes for payment receipts; listing, HTML view, PDF download and resend.

"""
Receipt routes.

SECURITY: Reads require VIEW_RECEIPTS, delete requires DELETE_RECEIPTS.
Viewing and downloading are recorded in the activity feed.
"""

import io

from flask import Blueprint, Response, jsonify, current_app, send_file

from ..decorators import require_auth, require_permission, current_actor
from ..services import receipt_service, notification_service
from ..validation import NotFoundError


receipts_bp = Blueprint("receipts", __name__, url_prefix="/api/receipts")


def _items(rows):
    return {"items": [r.to_dict() for r in rows], "count": len(rows)}


@receipts_bp.get("")
@require_auth
@require_permission("VIEW_RECEIPTS")
def list_receipts_route():
    return _items(receipt_service.list_receipts())


@receipts_bp.get("/member/<int:membership_id>")
@require_auth
@require_permission("VIEW_RECEIPTS")
def receipts_for_membership_route(membership_id: int):
    """Newest payment first."""
    try:
        return _items(receipt_service.receipts_for_membership(membership_id))
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404


@receipts_bp.get("/<int:receipt_id>")
@require_auth
@require_permission("VIEW_RECEIPTS")
def get_receipt_route(receipt_id: int):
    try:
        return receipt_service.get_receipt(receipt_id).to_dict()
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404


@receipts_bp.get("/<int:receipt_id>/html")
@require_auth
@require_permission("VIEW_RECEIPTS")
def receipt_html_route(receipt_id: int):
    try:
        html_content = receipt_service.get_receipt_html(receipt_id, viewed_by=current_actor())
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to render receipt %s", receipt_id)
        return jsonify({"error": "Internal server error"}), 500
    return Response(html_content, mimetype="text/html")


@receipts_bp.get("/<int:receipt_id>/download")
@require_auth
@require_permission("VIEW_RECEIPTS")
def download_receipt_route(receipt_id: int):
    """
    PDF attachment. When PDF rendering fails the HTML receipt is served
    instead and X-Receipt-Format says which one the client got.
    """
    try:
        document = receipt_service.download_receipt(receipt_id, downloaded_by=current_actor())
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to download receipt %s", receipt_id)
        return jsonify({"error": "Internal server error"}), 500

    response = send_file(
        io.BytesIO(document.content),
        mimetype=document.mimetype,
        as_attachment=True,
        download_name=document.filename,
    )
    response.headers["X-Receipt-Format"] = document.format
    return response


@receipts_bp.post("/<int:receipt_id>/resend")
@require_auth
@require_permission("VIEW_RECEIPTS")
def resend_receipt_route(receipt_id: int):
    """Queue the receipt email again."""
    try:
        receipt = receipt_service.get_receipt(receipt_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    queued = notification_service.notify_payment_received(receipt.id, current_actor())
    return jsonify({"queued": queued, "receipt_number": receipt.receipt_number}), 202


@receipts_bp.delete("/<int:receipt_id>")
@require_auth
@require_permission("DELETE_RECEIPTS")
def delete_receipt_route(receipt_id: int):
    try:
        receipt_service.delete_receipt(receipt_id, deleted_by=current_actor())
        return {"ok": True}, 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to delete receipt %s", receipt_id)
        return jsonify({"error": "Internal server error"}), 500
