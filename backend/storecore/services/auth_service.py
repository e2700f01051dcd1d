# Overview: Service-layer operations for auth; user accounts and password checks.

"""
Authentication Service

WHY: Every stock movement, sale and audit entry names its actor, so every
mutating request runs as an authenticated user.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor from BCRYPT_ROUNDS, 12 by default)
- Minimum 8 characters, at least one letter and one digit
- Session tokens managed separately (see session_service.py)
"""

import re

import bcrypt
from flask import current_app
from sqlalchemy import or_

from ..errors import AuthenticationError, ConflictError, NotFoundError, PermissionDeniedError, ValidationError
from ..extensions import db
from ..models import User
from ..models.auth import ROLE_OWNER, VALID_ROLES
from ..time_utils import utcnow
from ..validation import optional_text, require_choice
from . import session_service
from .audit_service import record_audit
from .concurrency import lock_for_update, unit_of_work

USERNAME_RE = re.compile(r"^[A-Za-z0-9_.-]{3,64}$")


def validate_password_strength(password: str) -> None:
    if not isinstance(password, str) or len(password) < 8:
        raise ValidationError("Password must be at least 8 characters long", field="password")
    if not re.search(r"[A-Za-z]", password) or not re.search(r"\d", password):
        raise ValidationError("Password must contain a letter and a digit", field="password")


def hash_password(password: str) -> str:
    rounds = current_app.config.get("BCRYPT_ROUNDS", 12)
    hashed = bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds))
    return hashed.decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Timing-safe via bcrypt.checkpw."""
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Malformed hash in the database
        return False


def create_user(*, username: str, name: str, password: str, role: str, actor_user_id: int | None = None) -> User:
    if not isinstance(username, str) or not USERNAME_RE.match(username.strip()):
        raise ValidationError("username must be 3-64 letters, digits, '.', '_' or '-'", field="username")
    username = username.strip()
    name = optional_text(name, "name")
    if not name:
        raise ValidationError("name is required", field="name")
    role = require_choice(role, VALID_ROLES, "role")
    validate_password_strength(password)

    with unit_of_work():
        actor = db.session.get(User, actor_user_id) if actor_user_id is not None else None
        if actor is not None and actor.role != ROLE_OWNER and role == ROLE_OWNER:
            raise PermissionDeniedError("Only an owner can create owner accounts", {"role": actor.role})
        if db.session.query(User.id).filter(User.username == username).first():
            raise ConflictError(f"Username {username!r} is taken", {"field": "username"})
        user = User(username=username, name=name, password_hash=hash_password(password), role=role)
        db.session.add(user)
        db.session.flush()
        record_audit(
            actor_user_id=actor_user_id,
            action="CREATE_USER",
            entity="User",
            entity_id=user.id,
            details={"username": username, "role": role},
        )
    return user


def authenticate(username: str, password: str) -> User:
    """Returns the active user or raises AuthenticationError (same message for every failure)."""
    user = db.session.query(User).filter(User.username == (username or "").strip()).first()
    if not user or not user.is_active or not verify_password(password, user.password_hash):
        current_app.logger.info("Failed login for username %r", username)
        raise AuthenticationError("Invalid username or password")

    user.last_login_at = utcnow()
    db.session.commit()
    return user


def list_users(*, include_inactive: bool = False, role: str | None = None, search: str | None = None) -> list[User]:
    q = db.session.query(User)
    if not include_inactive:
        q = q.filter(User.is_active.is_(True))
    if role:
        q = q.filter(User.role == require_choice(role, VALID_ROLES, "role"))
    if search:
        like = f"%{search.strip()}%"
        q = q.filter(or_(User.username.ilike(like), User.name.ilike(like)))
    return q.order_by(User.username).all()


def get_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if not user:
        raise NotFoundError("User", user_id)
    return user


def _guard_owner_accounts(actor: User, target: User, new_role: str | None = None) -> None:
    """Only an owner may touch an owner account or hand out the owner role."""
    if actor.role == ROLE_OWNER:
        return
    if target.role == ROLE_OWNER or new_role == ROLE_OWNER:
        raise PermissionDeniedError(
            "Only an owner can manage owner accounts",
            {"role": actor.role, "user_id": target.id},
        )


def update_user(user_id: int, patch: dict, *, actor: User) -> User:
    unknown = set(patch) - {"name", "role"}
    if unknown:
        field = sorted(unknown)[0]
        raise ValidationError(f"Field not allowed: {field}", field=field)
    fields = {}
    if "name" in patch:
        fields["name"] = optional_text(patch["name"], "name")
        if not fields["name"]:
            raise ValidationError("name is required", field="name")
    if "role" in patch:
        fields["role"] = require_choice(patch["role"], VALID_ROLES, "role")

    with unit_of_work():
        user = lock_for_update(db.session.query(User).filter(User.id == user_id)).first()
        if not user:
            raise NotFoundError("User", user_id)
        _guard_owner_accounts(actor, user, fields.get("role"))
        if user.id == actor.id and fields.get("role", user.role) != user.role:
            raise ValidationError("Cannot change your own role", field="role")

        changed = {}
        for key, value in fields.items():
            if getattr(user, key) != value:
                changed[key] = value
                setattr(user, key, value)

        if changed:
            record_audit(
                actor_user_id=actor.id,
                action="UPDATE_USER",
                entity="User",
                entity_id=user.id,
                details=changed,
            )
    return user


def set_user_active(user_id: int, active: bool, *, actor: User) -> tuple[User, int]:
    """
    Deactivate or reactivate an account. Users are never deleted: sales,
    stock movements and audit entries keep pointing at them.

    Deactivation revokes every session. Returns (user, sessions_revoked).
    """
    with unit_of_work():
        user = lock_for_update(db.session.query(User).filter(User.id == user_id)).first()
        if not user:
            raise NotFoundError("User", user_id)
        _guard_owner_accounts(actor, user)
        if user.id == actor.id:
            raise ValidationError("Cannot change your own account status", field="is_active")
        if user.is_active == active:
            state = "active" if active else "deactivated"
            raise ConflictError(f"User is already {state}", {"user_id": user.id, "is_active": user.is_active})

        user.is_active = active
        revoked = 0 if active else session_service.revoke_all_user_sessions(user.id)
        record_audit(
            actor_user_id=actor.id,
            action="REACTIVATE_USER" if active else "DEACTIVATE_USER",
            entity="User",
            entity_id=user.id,
            details={"username": user.username, "sessions_revoked": revoked},
        )
    return user, revoked


def reset_password(user_id: int, new_password: str, *, actor: User) -> int:
    """Sets a new password and signs the user out everywhere; returns sessions revoked."""
    validate_password_strength(new_password)
    with unit_of_work():
        user = lock_for_update(db.session.query(User).filter(User.id == user_id)).first()
        if not user:
            raise NotFoundError("User", user_id)
        _guard_owner_accounts(actor, user)
        user.password_hash = hash_password(new_password)
        revoked = session_service.revoke_all_user_sessions(user.id)
        record_audit(
            actor_user_id=actor.id,
            action="RESET_PASSWORD",
            entity="User",
            entity_id=user.id,
            details={"sessions_revoked": revoked},
        )
    return revoked
