# Overview: Flask API routes for the stock ledger, alerts and reconciliation.

from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth, require_role
from ..errors import jsonable
from ..models.auth import ROLE_INVENTORY_STAFF, ROLE_MANAGER, ROLE_OWNER
from ..models.ledger import ALERT_ACTIVE, ALERT_RESOLVED, MOVEMENT_TYPES
from ..services import stock_ledger
from ..validation import require_choice
from .helpers import arg_datetime, arg_int, json_body

inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.get("/ledger")
@require_auth
def list_ledger_route():
    """
    Query params: product_id, movement_type, reference_type, reference,
    start, end (ISO-8601), limit, cursor (from the previous page).
    """
    movement_type = request.args.get("movement_type")
    if movement_type:
        movement_type = require_choice(movement_type, MOVEMENT_TYPES, "movement_type")
    entries, next_cursor = stock_ledger.list_ledger_entries(
        product_id=arg_int("product_id"),
        movement_type=movement_type,
        reference_type=request.args.get("reference_type"),
        reference=request.args.get("reference"),
        start=arg_datetime("start"),
        end=arg_datetime("end"),
        limit=arg_int("limit", 100),
        cursor=arg_int("cursor"),
    )
    return jsonify({"entries": [e.to_dict() for e in entries], "next_cursor": next_cursor}), 200


@inventory_bp.get("/alerts")
@require_auth
def list_alerts_route():
    status = request.args.get("status", ALERT_ACTIVE)
    if status.upper() == "ALL":
        status = None
    else:
        status = require_choice(status, [ALERT_ACTIVE, ALERT_RESOLVED], "status")
    alerts = stock_ledger.list_stock_alerts(status=status, product_id=arg_int("product_id"))
    return jsonify({"alerts": [a.to_dict() for a in alerts]}), 200


@inventory_bp.post("/alerts/<int:alert_id>/resolve")
@require_auth
@require_role(ROLE_OWNER, ROLE_MANAGER, ROLE_INVENTORY_STAFF)
def resolve_alert_route(alert_id: int):
    data = json_body()
    alert = stock_ledger.resolve_alert(alert_id, actor_user_id=g.current_user.id, note=data.get("note"))
    return jsonify({"alert": alert.to_dict()}), 200


@inventory_bp.get("/reconcile/<int:product_id>")
@require_auth
@require_role(ROLE_OWNER, ROLE_MANAGER)
def reconcile_route(product_id: int):
    report = stock_ledger.reconcile_product(product_id)
    return jsonify({"report": jsonable(report)}), 200
