# Overview: Request authentication and role decorators for API routes.

from functools import wraps

from flask import g, request

from .errors import AuthenticationError, PermissionDeniedError
from .services import session_service


def _bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    return auth_header.split(" ", 1)[1].strip() or None


def require_auth(f):
    """
    Require a valid bearer session.

    Sets g.current_user (the authenticated User) and g.session_token.
    Raises AuthenticationError (401) if the header is missing, the token is
    invalid or expired, or the user is deactivated.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = _bearer_token()
        if not token:
            raise AuthenticationError("Authentication required")

        user = session_service.validate_session(token)
        if not user:
            raise AuthenticationError("Invalid or expired token")

        g.current_user = user
        g.session_token = token
        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles: str):
    """Must be stacked under @require_auth."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            user = getattr(g, "current_user", None)
            if user is None:
                raise AuthenticationError("Authentication required")
            if user.role not in roles:
                raise PermissionDeniedError(
                    "Permission denied",
                    {"required_roles": list(roles), "role": user.role, "resource": request.path},
                )
            return f(*args, **kwargs)

        return decorated_function

    return decorator
