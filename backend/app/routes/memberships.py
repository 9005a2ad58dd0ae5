# Overview: Flask API routes for membership lifecycle and payments; parses input and returns JSON responses.

"""
Membership routes.

SECURITY: All routes require authentication.
- Reads require VIEW_MEMBERSHIPS
- Create, renew, upgrade and toggle-status require MANAGE_MEMBERSHIPS
- Payments require PROCESS_PAYMENTS
- Delete requires DELETE_MEMBERSHIPS
- Export requires EXPORT_DATA

The acting user is always taken from the session, never from the body.
"""

import io

from flask import Blueprint, request, jsonify, current_app, send_file

from ..decorators import require_auth, require_permission, current_actor
from ..services import membership_service, payment_service, export_service
from ..validation import ValidationError, ConflictError, NotFoundError
from app.time_utils import utcnow


memberships_bp = Blueprint("memberships", __name__, url_prefix="/api/memberships")


def _items(rows):
    now = utcnow()
    return {"items": [r.to_dict(now=now) for r in rows], "count": len(rows)}


def _error_response(e: Exception):
    if isinstance(e, NotFoundError):
        return jsonify({"error": str(e)}), 404
    if isinstance(e, ConflictError):
        return jsonify({"error": str(e)}), 409
    return jsonify({"error": str(e)}), 400


# =============================================================================
# READS
# =============================================================================

@memberships_bp.get("")
@require_auth
@require_permission("VIEW_MEMBERSHIPS")
def list_memberships_route():
    return _items(membership_service.list_memberships())


@memberships_bp.get("/active")
@require_auth
@require_permission("VIEW_MEMBERSHIPS")
def active_memberships_route():
    return _items(membership_service.active_memberships())


@memberships_bp.get("/expired")
@require_auth
@require_permission("VIEW_MEMBERSHIPS")
def expired_memberships_route():
    return _items(membership_service.expired_memberships())


@memberships_bp.get("/expiring-soon")
@require_auth
@require_permission("VIEW_MEMBERSHIPS")
def expiring_soon_route():
    """Term ends within the next 30 days."""
    return _items(membership_service.expiring_soon_memberships())


@memberships_bp.get("/pending-payments")
@require_auth
@require_permission("VIEW_MEMBERSHIPS")
def pending_payments_route():
    """Outstanding balance with the due date reached."""
    return _items(membership_service.pending_payment_memberships())


@memberships_bp.get("/stats")
@require_auth
@require_permission("VIEW_MEMBERSHIPS")
def membership_stats_route():
    return membership_service.get_stats()


@memberships_bp.get("/export")
@require_auth
@require_permission("EXPORT_DATA")
def export_members_route():
    try:
        content, filename = export_service.export_members()
    except Exception:
        current_app.logger.exception("Failed to export members")
        return jsonify({"error": "Internal server error"}), 500
    return send_file(
        io.BytesIO(content),
        mimetype=export_service.XLSX_MIMETYPE,
        as_attachment=True,
        download_name=filename,
    )


@memberships_bp.get("/enquiry/<int:enquiry_id>")
@require_auth
@require_permission("VIEW_MEMBERSHIPS")
def memberships_for_enquiry_route(enquiry_id: int):
    try:
        return _items(membership_service.memberships_for_enquiry(enquiry_id))
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404


@memberships_bp.get("/<int:membership_id>")
@require_auth
@require_permission("VIEW_MEMBERSHIPS")
def get_membership_route(membership_id: int):
    try:
        return membership_service.get_membership(membership_id).to_dict()
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404


# =============================================================================
# MUTATIONS
# =============================================================================

@memberships_bp.post("")
@require_auth
@require_permission("MANAGE_MEMBERSHIPS")
def create_membership_route():
    """
    Request body:
    {
        "enquiry_id": 1,
        "membership_plan_id": 2,
        "paid_amount_cents": 0
    }
    """
    payload = request.get_json(silent=True) or {}
    try:
        membership = membership_service.create_membership(payload, created_by=current_actor())
        return membership.to_dict(), 201
    except (ValidationError, ConflictError, NotFoundError) as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create membership")
        return jsonify({"error": "Internal server error"}), 500


@memberships_bp.post("/<int:membership_id>/payment")
@require_auth
@require_permission("PROCESS_PAYMENTS")
def process_payment_route(membership_id: int):
    """
    Record an installment payment.

    Request body:
    {
        "amount_cents": 30000,          // required, 0 < amount <= remaining
        "payment_method": "Cash",       // Cash | Card | UPI | BankTransfer | Cheque | Other
        "transaction_id": "TX-1",       // optional; doubles as idempotency key
        "notes": "..."
    }

    An Idempotency-Key header is used when transaction_id is absent.
    Replaying the same key returns the original receipt with duplicate=true.
    """
    payload = request.get_json(silent=True) or {}
    transaction_id = payload.get("transaction_id") or request.headers.get("Idempotency-Key")
    try:
        result = payment_service.process_payment(
            membership_id,
            amount_cents=payload.get("amount_cents"),
            payment_method=payload.get("payment_method"),
            transaction_id=transaction_id,
            notes=payload.get("notes"),
            received_by=current_actor(),
        )
        return result.to_dict(), 200 if result.duplicate else 201
    except (ValidationError, ConflictError, NotFoundError) as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to process payment for membership %s", membership_id)
        return jsonify({"error": "Internal server error"}), 500


@memberships_bp.put("/<int:membership_id>/renew")
@require_auth
@require_permission("MANAGE_MEMBERSHIPS")
def renew_membership_route(membership_id: int):
    """Request body: {"paid_amount_cents": 0}. Restarts the term today."""
    payload = request.get_json(silent=True) or {}
    try:
        membership = membership_service.renew_membership(
            membership_id,
            paid_amount_cents=payload.get("paid_amount_cents", 0),
            updated_by=current_actor(),
        )
        return membership.to_dict()
    except (ValidationError, ConflictError, NotFoundError) as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to renew membership %s", membership_id)
        return jsonify({"error": "Internal server error"}), 500


@memberships_bp.put("/<int:membership_id>/upgrade")
@require_auth
@require_permission("MANAGE_MEMBERSHIPS")
def upgrade_membership_route(membership_id: int):
    """Request body: {"new_plan_id": 3, "paid_amount_cents": 0}."""
    payload = request.get_json(silent=True) or {}
    try:
        membership = membership_service.upgrade_membership(
            membership_id,
            new_plan_id=payload.get("new_plan_id"),
            paid_amount_cents=payload.get("paid_amount_cents", 0),
            updated_by=current_actor(),
        )
        return membership.to_dict()
    except (ValidationError, ConflictError, NotFoundError) as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to upgrade membership %s", membership_id)
        return jsonify({"error": "Internal server error"}), 500


@memberships_bp.put("/<int:membership_id>/toggle-status")
@require_auth
@require_permission("MANAGE_MEMBERSHIPS")
def toggle_status_route(membership_id: int):
    """Request body: {"is_inactive": true}."""
    payload = request.get_json(silent=True) or {}
    try:
        membership = membership_service.toggle_status(
            membership_id,
            is_inactive=payload.get("is_inactive"),
            updated_by=current_actor(),
        )
        return membership.to_dict()
    except (ValidationError, ConflictError, NotFoundError) as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to toggle membership %s", membership_id)
        return jsonify({"error": "Internal server error"}), 500


@memberships_bp.delete("/<int:membership_id>")
@require_auth
@require_permission("DELETE_MEMBERSHIPS")
def delete_membership_route(membership_id: int):
    """Deletes the membership and every receipt issued for it."""
    try:
        membership_service.delete_membership(membership_id, deleted_by=current_actor())
        return {"ok": True}, 200
    except (ValidationError, ConflictError, NotFoundError) as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete membership %s", membership_id)
        return jsonify({"error": "Internal server error"}), 500
