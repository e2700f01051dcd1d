# Overview: Typed error taxonomy shared by services and the HTTP layer.

"""
Every error the core raises carries:
- kind: stable machine-readable category (used by clients to pick a message)
- message: human-readable summary
- details: structured context (offending field/entity, numeric values)

HTTP mapping is centralized in register_error_handlers(); services never
build responses themselves.
"""

from __future__ import annotations

from decimal import Decimal

from flask import jsonify
from werkzeug.exceptions import HTTPException


class CoreError(Exception):
    """Base class for errors returned to callers as typed results."""

    kind = "error"
    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "message": self.message,
            "details": jsonable(self.details),
        }


class ValidationError(CoreError):
    """400-level input problem; raised before any lookup or write."""

    kind = "validation_error"
    status_code = 400

    def __init__(self, message: str, field: str | None = None, details: dict | None = None):
        merged = dict(details or {})
        if field is not None:
            merged.setdefault("field", field)
        super().__init__(message, merged)
        self.field = field


class NotFoundError(CoreError):
    kind = "not_found"
    status_code = 404

    def __init__(self, entity: str, entity_id, message: str | None = None):
        super().__init__(
            message or f"{entity} {entity_id} not found",
            {"entity": entity, "entity_id": entity_id},
        )
        self.entity = entity
        self.entity_id = entity_id


class InsufficientStockError(CoreError):
    """Business rule: a movement would take stock below zero."""

    kind = "insufficient_stock"
    status_code = 409

    def __init__(
        self,
        *,
        product_id: int,
        available: Decimal,
        requested: Decimal,
        product_name: str | None = None,
    ):
        label = product_name or f"product {product_id}"
        super().__init__(
            f"Insufficient stock for {label}",
            {
                "product_id": product_id,
                "product_name": product_name,
                "available": available,
                "requested": requested,
            },
        )
        self.product_id = product_id
        self.available = available
        self.requested = requested


class ConflictError(CoreError):
    """409-level business rule conflict (duplicate key, double void, overpayment)."""

    kind = "conflict"
    status_code = 409


class ImmutableRecordError(ConflictError):
    """Attempt to update or delete an append-only record."""

    kind = "immutable_record"


class PersistenceError(CoreError):
    """Underlying store failure; the unit of work has been rolled back."""

    kind = "persistence_error"
    status_code = 500


class AuthenticationError(CoreError):
    kind = "authentication_required"
    status_code = 401


class PermissionDeniedError(CoreError):
    kind = "permission_denied"
    status_code = 403


class DeviceError(CoreError):
    """Scale or printer unreachable or returned an unusable reading."""

    kind = "device_error"
    status_code = 502


def jsonable(value):
    if isinstance(value, Decimal):
        return format_quantity(value)
    if isinstance(value, dict):
        return {k: jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [jsonable(v) for v in value]
    return value


def format_quantity(value: Decimal | None) -> str | None:
    """Render a quantity without trailing zeros ("4", "1.25")."""
    if value is None:
        return None
    normalized = value.normalize()
    if normalized == normalized.to_integral():
        return str(normalized.quantize(Decimal(1)))
    return format(normalized, "f")


def register_error_handlers(app) -> None:
    @app.errorhandler(CoreError)
    def _handle_core_error(exc: CoreError):
        if isinstance(exc, PersistenceError):
            app.logger.error("Persistence failure: %s", exc.message)
        return jsonify({"error": exc.to_dict()}), exc.status_code

    @app.errorhandler(404)
    def _handle_404(_exc):
        return jsonify({"error": {"kind": "not_found", "message": "Resource not found", "details": {}}}), 404

    @app.errorhandler(405)
    def _handle_405(_exc):
        return jsonify({"error": {"kind": "method_not_allowed", "message": "Method not allowed", "details": {}}}), 405

    @app.errorhandler(Exception)
    def _handle_unexpected(exc: Exception):
        if isinstance(exc, HTTPException):
            body = {"kind": "http_error", "message": exc.description or exc.name, "details": {}}
            return jsonify({"error": body}), exc.code
        app.logger.exception("Unhandled error")
        return jsonify({"error": {"kind": "internal_error", "message": "Internal server error", "details": {}}}), 500
