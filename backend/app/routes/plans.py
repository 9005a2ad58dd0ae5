# Overview: Flask API routes for membership plan operations; parses input and returns JSON responses.

"""
Membership plan routes.

SECURITY: Reads require VIEW_PLANS; create, update, deactivate and
activate require MANAGE_PLANS.
"""

from flask import Blueprint, request, jsonify, current_app

from ..decorators import require_auth, require_permission, current_actor
from ..services import plan_service
from ..validation import ValidationError, NotFoundError


plans_bp = Blueprint("plans", __name__, url_prefix="/api/plans")


def _items(rows):
    return {"items": [r.to_dict() for r in rows], "count": len(rows)}


@plans_bp.get("")
@require_auth
@require_permission("VIEW_PLANS")
def list_plans_route():
    """
    Active plans ordered by name.

    Query params:
    - include_inactive: bool (default false)
    """
    include_inactive = request.args.get("include_inactive", "false").lower() == "true"
    return _items(plan_service.list_plans(include_inactive=include_inactive))


@plans_bp.get("/active")
@require_auth
@require_permission("VIEW_PLANS")
def active_plans_route():
    """Active plans ordered by price, cheapest first."""
    return _items(plan_service.active_plans_by_price())


@plans_bp.get("/type/<plan_type>")
@require_auth
@require_permission("VIEW_PLANS")
def plans_by_type_route(plan_type: str):
    try:
        return _items(plan_service.plans_by_type(plan_type))
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400


@plans_bp.get("/stats")
@require_auth
@require_permission("VIEW_PLANS")
def plan_stats_route():
    return plan_service.get_stats()


@plans_bp.get("/<int:plan_id>")
@require_auth
@require_permission("VIEW_PLANS")
def get_plan_route(plan_id: int):
    try:
        return plan_service.get_plan(plan_id).to_dict()
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404


@plans_bp.get("/<int:plan_id>/members")
@require_auth
@require_permission("VIEW_MEMBERSHIPS")
def plan_members_route(plan_id: int):
    try:
        return _items(plan_service.plan_members(plan_id))
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404


@plans_bp.post("")
@require_auth
@require_permission("MANAGE_PLANS")
def create_plan_route():
    """
    Request body:
    {
        "plan_name": "Annual",
        "plan_type": "Yearly",          // Monthly | Quarterly | Yearly | Custom
        "duration_in_months": 12,       // 1..24
        "price_cents": 120000,          // > 0
        "description": "..."
    }
    """
    payload = request.get_json(silent=True) or {}
    try:
        plan = plan_service.create_plan(payload, created_by=current_actor())
        return plan.to_dict(), 201
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to create membership plan")
        return jsonify({"error": "Internal server error"}), 500


@plans_bp.put("/<int:plan_id>")
@require_auth
@require_permission("MANAGE_PLANS")
def update_plan_route(plan_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        return plan_service.update_plan(plan_id, payload, updated_by=current_actor()).to_dict()
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to update membership plan")
        return jsonify({"error": "Internal server error"}), 500


@plans_bp.delete("/<int:plan_id>")
@require_auth
@require_permission("MANAGE_PLANS")
def deactivate_plan_route(plan_id: int):
    """Soft delete: the plan is hidden from new sales, memberships keep it."""
    try:
        return plan_service.deactivate_plan(plan_id, updated_by=current_actor()).to_dict()
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to deactivate membership plan")
        return jsonify({"error": "Internal server error"}), 500


@plans_bp.put("/<int:plan_id>/activate")
@require_auth
@require_permission("MANAGE_PLANS")
def activate_plan_route(plan_id: int):
    try:
        return plan_service.activate_plan(plan_id, updated_by=current_actor()).to_dict()
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to activate membership plan")
        return jsonify({"error": "Internal server error"}), 500
