# Overview: Flask API routes for user management; parses input and returns JSON responses.

# backend/aromalab/routes/users.py
"""
User management routes (administrators only).

Provides endpoints for:
- Listing users
- Creating users (email, name, password, role)
- Changing role, name, email, password or active flag
- Deleting users

The last administrator can never be removed or demoted.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..models import USER_ROLES
from ..services import auth_service, session_service, activity_service
from ..services.auth_service import PasswordValidationError
from ..decorators import require_auth, require_admin

users_bp = Blueprint("users", __name__, url_prefix="/api/users")

USER_PATCH_FIELDS = {"name", "email", "role", "password", "is_active"}


@users_bp.get("")
@require_auth
@require_admin
def list_users():
    users = auth_service.list_users()
    return jsonify({"users": [u.to_dict() for u in users], "count": len(users)})


@users_bp.post("")
@require_auth
@require_admin
def create_user():
    """
    Create a new user.

    Request body:
    - email: str (required)
    - name: str (required)
    - password: str (required)
    - role: admin | user (default user)
    """
    data = request.get_json(silent=True) or {}
    email = data.get("email")
    name = data.get("name")
    password = data.get("password")
    role = data.get("role", "user")

    if not all([email, name, password]):
        return jsonify({"error": "email, name and password are required"}), 400
    if role not in USER_ROLES:
        return jsonify({"error": f"role must be one of: {', '.join(USER_ROLES)}"}), 400

    try:
        user = auth_service.create_user(email=email, password=password, name=name, role=role)
    except PasswordValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ValueError as e:
        return jsonify({"error": str(e)}), 409

    activity_service.log_activity(
        g.session_context,
        action=activity_service.ACTION_CREATE,
        entity="user",
        entity_id=user.id,
        details=f"Utilisateur {user.email} créé avec le rôle {user.role}",
    )
    return jsonify({"user": user.to_dict()}), 201


@users_bp.patch("/<int:user_id>")
@require_auth
@require_admin
def update_user(user_id: int):
    data = request.get_json(silent=True) or {}

    unknown = set(data) - USER_PATCH_FIELDS
    if unknown:
        return jsonify({"error": f"Field not allowed: {', '.join(sorted(unknown))}"}), 400

    previous = auth_service.get_user(user_id)
    previous_role = previous.role if previous else None

    try:
        user = auth_service.update_user(user_id, data)
    except PasswordValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ValueError as e:
        return jsonify({"error": str(e)}), 409

    if user is None:
        return jsonify({"error": "User not found"}), 404

    if not user.is_active or "password" in data:
        session_service.revoke_all_user_sessions(user.id, reason="Account updated by administrator")

    if "role" in data and data["role"] != previous_role:
        details = f"Rôle de {user.email} changé en {user.role}"
    else:
        details = f"Utilisateur {user.email} modifié"
    activity_service.log_activity(
        g.session_context,
        action=activity_service.ACTION_UPDATE,
        entity="user",
        entity_id=user.id,
        details=details,
    )
    return jsonify({"user": user.to_dict()})


@users_bp.delete("/<int:user_id>")
@require_auth
@require_admin
def delete_user(user_id: int):
    if user_id == g.current_user.id:
        return jsonify({"error": "You cannot delete your own account"}), 409

    user = auth_service.get_user(user_id)
    if user is None:
        return jsonify({"error": "User not found"}), 404
    email = user.email

    try:
        auth_service.delete_user(user_id)
    except ValueError as e:
        return jsonify({"error": str(e)}), 409

    current_app.logger.info("User %s deleted by %s", email, g.current_user.id)
    activity_service.log_activity(
        g.session_context,
        action=activity_service.ACTION_DELETE,
        entity="user",
        entity_id=user_id,
        details=f"Utilisateur {email} supprimé",
    )
    return jsonify({"deleted": True})
