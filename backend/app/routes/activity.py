# Overview: Flask API routes for the activity feed; parses input and returns JSON responses.

"""
Activity feed routes.

SECURITY:
- Reads require VIEW_ACTIVITY
- Manual entries require LOG_ACTIVITY
- Delete and retention purge require MANAGE_ACTIVITY
"""

from flask import Blueprint, request, jsonify, current_app

from ..decorators import require_auth, require_permission, current_actor
from ..services import activity_service
from ..validation import ValidationError, NotFoundError


activity_bp = Blueprint("activity", __name__, url_prefix="/api/activity")


def _items(rows):
    return {"items": [r.to_dict() for r in rows], "count": len(rows)}


@activity_bp.get("")
@require_auth
@require_permission("VIEW_ACTIVITY")
def list_activities_route():
    """
    Query params:
    - limit: int (default 100, max 1000)
    - activity_type: str (one of the known activity kinds)
    - entity_type: str
    """
    try:
        rows = activity_service.list_activities(
            limit=request.args.get("limit"),
            activity_type=request.args.get("activity_type"),
            entity_type=request.args.get("entity_type"),
        )
        return _items(rows)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400


@activity_bp.get("/recent")
@require_auth
@require_permission("VIEW_ACTIVITY")
def recent_activities_route():
    try:
        return _items(activity_service.recent_activities(request.args.get("limit")))
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400


@activity_bp.get("/entity/<entity_type>/<int:entity_id>")
@require_auth
@require_permission("VIEW_ACTIVITY")
def entity_activities_route(entity_type: str, entity_id: int):
    try:
        return _items(activity_service.activities_for_entity(entity_type, entity_id))
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400


@activity_bp.get("/stats")
@require_auth
@require_permission("VIEW_ACTIVITY")
def activity_stats_route():
    return activity_service.get_stats()


@activity_bp.post("")
@require_auth
@require_permission("LOG_ACTIVITY")
def create_activity_route():
    """
    Request body:
    {
        "activity_type": "Manual",     // must be a known activity kind
        "description": "Called member about renewal",
        "entity_type": "Member",
        "entity_id": 4
    }
    """
    payload = request.get_json(silent=True) or {}
    try:
        activity = activity_service.create_manual_activity(payload, performed_by=current_actor())
        return activity.to_dict(), 201
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to create activity")
        return jsonify({"error": "Internal server error"}), 500


@activity_bp.delete("/clear-old")
@require_auth
@require_permission("MANAGE_ACTIVITY")
def clear_old_activities_route():
    """Query params: days_old (default ACTIVITY_RETENTION_DAYS)."""
    default_days = current_app.config.get("ACTIVITY_RETENTION_DAYS", 90)
    days_old = request.args.get("days_old", default_days, type=int)
    try:
        deleted = activity_service.purge_older_than(days_old)
        return {"deleted": deleted, "days_old": days_old}
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400


@activity_bp.delete("/<int:activity_id>")
@require_auth
@require_permission("MANAGE_ACTIVITY")
def delete_activity_route(activity_id: int):
    try:
        activity_service.delete_activity(activity_id)
        return {"ok": True}, 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
