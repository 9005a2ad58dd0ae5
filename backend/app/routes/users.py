# Overview: Flask API routes for user administration; parses input and returns JSON responses.

"""
User administration routes.

SECURITY: Every route requires MANAGE_USERS (ADMIN role).
"""

from flask import Blueprint, request, jsonify, current_app

from ..decorators import require_auth, require_permission, current_actor
from ..services import auth_service, session_service
from ..services.auth_service import PasswordValidationError
from ..validation import ValidationError, ConflictError, NotFoundError


users_bp = Blueprint("users", __name__, url_prefix="/api/users")


@users_bp.get("")
@require_auth
@require_permission("MANAGE_USERS")
def list_users_route():
    """
    Query params:
    - include_inactive: bool (default true)
    """
    include_inactive = request.args.get("include_inactive", "true").lower() != "false"
    users = auth_service.list_users(include_inactive=include_inactive)
    return jsonify({"users": [u.to_dict() for u in users], "count": len(users)})


@users_bp.get("/<int:user_id>")
@require_auth
@require_permission("MANAGE_USERS")
def get_user_route(user_id: int):
    try:
        return jsonify({"user": auth_service.get_user(user_id).to_dict()})
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404


@users_bp.post("")
@require_auth
@require_permission("MANAGE_USERS")
def create_user_route():
    """
    Create a staff, admin or member account.

    Request body:
    {
        "username": "frontdesk",
        "email": "frontdesk@gym.com",
        "password": "Str0ng!Pass",
        "role": "STAFF",           // ADMIN | STAFF | MEMBER
        "first_name": "...", "last_name": "...", "phone": "..."
    }
    """
    data = request.get_json(silent=True) or {}
    try:
        user = auth_service.create_user(
            data.get("username"),
            data.get("email"),
            data.get("password"),
            role=data.get("role"),
            first_name=data.get("first_name"),
            last_name=data.get("last_name"),
            phone=data.get("phone"),
            created_by=current_actor(),
        )
        return jsonify({"user": user.to_dict()}), 201
    except PasswordValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to create user")
        return jsonify({"error": "Internal server error"}), 500


@users_bp.put("/<int:user_id>")
@require_auth
@require_permission("MANAGE_USERS")
def update_user_route(user_id: int):
    data = request.get_json(silent=True) or {}
    try:
        user = auth_service.update_user(user_id, data)
        if not user.is_active:
            session_service.revoke_all_user_sessions(user.id, reason="User account deactivated")
        return jsonify({"user": user.to_dict()})
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to update user")
        return jsonify({"error": "Internal server error"}), 500


@users_bp.post("/<int:user_id>/deactivate")
@require_auth
@require_permission("MANAGE_USERS")
def deactivate_user_route(user_id: int):
    """Deactivate the account and end all of its sessions."""
    try:
        user = auth_service.deactivate_user(user_id)
        revoked = session_service.revoke_all_user_sessions(user.id, reason="User account deactivated")
        return jsonify({"user": user.to_dict(), "sessions_revoked": revoked})
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to deactivate user")
        return jsonify({"error": "Internal server error"}), 500
