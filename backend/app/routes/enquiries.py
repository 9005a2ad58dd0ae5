# Overview: Flask API routes for enquiry operations; parses input and returns JSON responses.

"""
Enquiry routes.

SECURITY: All routes require authentication.
- Read operations require VIEW_ENQUIRIES
- Create/update/convert require MANAGE_ENQUIRIES (convert also MANAGE_MEMBERSHIPS)
- Delete requires DELETE_ENQUIRIES
"""

from flask import Blueprint, request, jsonify, current_app

from ..decorators import require_auth, require_permission, current_actor
from ..services import enquiry_service, membership_service
from ..validation import ValidationError, ConflictError, NotFoundError


enquiries_bp = Blueprint("enquiries", __name__, url_prefix="/api/enquiries")


def _items(rows):
    return {"items": [r.to_dict() for r in rows], "count": len(rows)}


@enquiries_bp.get("")
@require_auth
@require_permission("VIEW_ENQUIRIES")
def list_enquiries_route():
    return _items(enquiry_service.list_enquiries())


@enquiries_bp.get("/open")
@require_auth
@require_permission("VIEW_ENQUIRIES")
def open_enquiries_route():
    """Enquiries not yet converted to a membership."""
    return _items(enquiry_service.list_enquiries(converted=False))


@enquiries_bp.get("/closed")
@require_auth
@require_permission("VIEW_ENQUIRIES")
def closed_enquiries_route():
    return _items(enquiry_service.list_enquiries(converted=True))


@enquiries_bp.get("/search")
@require_auth
@require_permission("VIEW_ENQUIRIES")
def search_enquiries_route():
    """Query params: q (matches name, email or phone)."""
    try:
        return _items(enquiry_service.search_enquiries(request.args.get("q")))
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400


@enquiries_bp.get("/<int:enquiry_id>")
@require_auth
@require_permission("VIEW_ENQUIRIES")
def get_enquiry_route(enquiry_id: int):
    try:
        return enquiry_service.get_enquiry(enquiry_id).to_dict()
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404


@enquiries_bp.post("")
@require_auth
@require_permission("MANAGE_ENQUIRIES")
def create_enquiry_route():
    payload = request.get_json(silent=True) or {}
    try:
        enquiry = enquiry_service.create_enquiry(payload, created_by=current_actor())
        return enquiry.to_dict(), 201
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to create enquiry")
        return jsonify({"error": "Internal server error"}), 500


@enquiries_bp.put("/<int:enquiry_id>")
@require_auth
@require_permission("MANAGE_ENQUIRIES")
def update_enquiry_route(enquiry_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        enquiry = enquiry_service.update_enquiry(enquiry_id, payload, updated_by=current_actor())
        return enquiry.to_dict()
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to update enquiry")
        return jsonify({"error": "Internal server error"}), 500


@enquiries_bp.delete("/<int:enquiry_id>")
@require_auth
@require_permission("DELETE_ENQUIRIES")
def delete_enquiry_route(enquiry_id: int):
    try:
        enquiry_service.delete_enquiry(enquiry_id, deleted_by=current_actor())
        return {"ok": True}, 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to delete enquiry")
        return jsonify({"error": "Internal server error"}), 500


@enquiries_bp.get("/<int:enquiry_id>/history")
@require_auth
@require_permission("VIEW_ENQUIRIES")
def enquiry_history_route(enquiry_id: int):
    """Newest first. Still available after the enquiry is deleted."""
    try:
        return _items(enquiry_service.enquiry_history(enquiry_id))
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404


@enquiries_bp.post("/<int:enquiry_id>/convert")
@require_auth
@require_permission("MANAGE_MEMBERSHIPS")
def convert_enquiry_route(enquiry_id: int):
    """
    Convert an enquiry into a membership.

    Request body:
    {
        "membership_plan_id": 1,
        "paid_amount_cents": 50000    // 0 <= paid <= plan price
    }

    A non-zero initial payment issues the first receipt. The welcome
    email, WhatsApp greeting and receipt email are queued after commit.
    """
    payload = request.get_json(silent=True) or {}
    try:
        membership = membership_service.convert_enquiry(
            enquiry_id,
            membership_plan_id=payload.get("membership_plan_id"),
            paid_amount_cents=payload.get("paid_amount_cents", 0),
            created_by=current_actor(),
        )
        return membership.to_dict(), 201
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to convert enquiry %s", enquiry_id)
        return jsonify({"error": "Internal server error"}), 500
