# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

from flask import Blueprint, g, jsonify

from ..decorators import require_auth
from ..errors import ValidationError
from ..services import auth_service, session_service
from .helpers import json_body

auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/login")
def login_route():
    """
    Authenticate user and create session token.

    Token must be included as "Authorization: Bearer <token>" on protected routes.
    """
    data = json_body()
    username = data.get("username")
    password = data.get("password")
    if not username or not password:
        raise ValidationError("username and password are required")

    user = auth_service.authenticate(username, password)
    session, token = session_service.create_session(user.id)
    return jsonify({
        "user": user.to_dict(),
        "token": token,
        "expires_at": session.expires_at.isoformat() + "Z",
    }), 200


@auth_bp.post("/logout")
@require_auth
def logout_route():
    session_service.revoke_session(g.session_token)
    return jsonify({"message": "Logged out"}), 200


@auth_bp.get("/me")
@require_auth
def me_route():
    return jsonify({"user": g.current_user.to_dict()}), 200
