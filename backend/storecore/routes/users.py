# Overview: Flask API routes for staff accounts; owners and managers only.

from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth, require_role
from ..models.auth import ROLE_MANAGER, ROLE_OWNER
from ..services import auth_service
from .helpers import arg_bool, json_body

users_bp = Blueprint("users", __name__, url_prefix="/api/users")


@users_bp.get("")
@require_auth
@require_role(ROLE_OWNER, ROLE_MANAGER)
def list_users_route():
    """
    Query params:
    - include_inactive: bool (default false)
    - role, search
    """
    users = auth_service.list_users(
        include_inactive=bool(arg_bool("include_inactive", False)),
        role=request.args.get("role"),
        search=request.args.get("search"),
    )
    return jsonify({"users": [u.to_dict() for u in users], "count": len(users)}), 200


@users_bp.get("/<int:user_id>")
@require_auth
@require_role(ROLE_OWNER, ROLE_MANAGER)
def get_user_route(user_id: int):
    return jsonify({"user": auth_service.get_user(user_id).to_dict()}), 200


@users_bp.post("")
@require_auth
@require_role(ROLE_OWNER, ROLE_MANAGER)
def create_user_route():
    data = json_body()
    user = auth_service.create_user(
        username=data.get("username"),
        name=data.get("name"),
        password=data.get("password"),
        role=data.get("role"),
        actor_user_id=g.current_user.id,
    )
    return jsonify({"user": user.to_dict()}), 201


@users_bp.patch("/<int:user_id>")
@require_auth
@require_role(ROLE_OWNER, ROLE_MANAGER)
def update_user_route(user_id: int):
    """Request body (all optional): name, role."""
    user = auth_service.update_user(user_id, json_body(), actor=g.current_user)
    return jsonify({"user": user.to_dict()}), 200


@users_bp.post("/<int:user_id>/deactivate")
@require_auth
@require_role(ROLE_OWNER)
def deactivate_user_route(user_id: int):
    """Sets is_active=False and revokes every session; the account is kept for history."""
    user, revoked = auth_service.set_user_active(user_id, False, actor=g.current_user)
    return jsonify({"user": user.to_dict(), "sessions_revoked": revoked}), 200


@users_bp.post("/<int:user_id>/reactivate")
@require_auth
@require_role(ROLE_OWNER)
def reactivate_user_route(user_id: int):
    user, _ = auth_service.set_user_active(user_id, True, actor=g.current_user)
    return jsonify({"user": user.to_dict()}), 200


@users_bp.post("/<int:user_id>/reset-password")
@require_auth
@require_role(ROLE_OWNER, ROLE_MANAGER)
def reset_password_route(user_id: int):
    revoked = auth_service.reset_password(user_id, json_body().get("password"), actor=g.current_user)
    return jsonify({"message": "Password reset", "sessions_revoked": revoked}), 200
