# Overview: Flask API routes for purchasing and supplier payments.

from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth, require_role
from ..errors import ValidationError
from ..models.auth import ROLE_INVENTORY_STAFF, ROLE_MANAGER, ROLE_OWNER
from ..services import purchase_service
from ..time_utils import parse_iso_datetime
from .helpers import arg_int, json_body, page_args, paginated

purchases_bp = Blueprint("purchases", __name__, url_prefix="/api/purchases")

PURCHASING_ROLES = (ROLE_OWNER, ROLE_MANAGER, ROLE_INVENTORY_STAFF)


@purchases_bp.post("")
@require_auth
@require_role(*PURCHASING_ROLES)
def create_purchase_route():
    """
    Receive goods from a supplier.

    Requires: OWNER, MANAGER or INVENTORY_STAFF
    """
    data = json_body()
    purchase_date = None
    if data.get("purchase_date"):
        try:
            purchase_date = parse_iso_datetime(str(data["purchase_date"]))
        except ValueError:
            raise ValidationError("purchase_date must be an ISO-8601 datetime", field="purchase_date")

    purchase = purchase_service.create_purchase(
        supplier_id=data.get("supplier_id"),
        lines=data.get("lines"),
        discount_cents=data.get("discount_cents", 0),
        tax_cents=data.get("tax_cents", 0),
        payment_status=data.get("payment_status") or "PENDING",
        payment_method=data.get("payment_method"),
        invoice_no=data.get("invoice_no"),
        purchase_date=purchase_date,
        notes=data.get("notes"),
        actor_user_id=g.current_user.id,
    )
    return jsonify({"purchase": purchase.to_dict(include_lines=True)}), 201


@purchases_bp.get("")
@require_auth
@require_role(*PURCHASING_ROLES)
def list_purchases_route():
    page, per_page = page_args()
    items, total = purchase_service.list_purchases(
        supplier_id=arg_int("supplier_id"),
        payment_status=request.args.get("payment_status"),
        page=page,
        per_page=per_page,
    )
    return jsonify(paginated(items, total, page, per_page, "purchases")), 200


@purchases_bp.get("/<int:purchase_id>")
@require_auth
@require_role(*PURCHASING_ROLES)
def get_purchase_route(purchase_id: int):
    return jsonify({"purchase": purchase_service.get_purchase(purchase_id).to_dict(include_lines=True)}), 200


@purchases_bp.post("/<int:purchase_id>/payments")
@require_auth
@require_role(ROLE_OWNER, ROLE_MANAGER)
def add_payment_route(purchase_id: int):
    data = json_body()
    payment = purchase_service.add_supplier_payment(
        purchase_id,
        amount_cents=data.get("amount_cents"),
        payment_method=data.get("payment_method"),
        reference_no=data.get("reference_no"),
        notes=data.get("notes"),
        actor_user_id=g.current_user.id,
    )
    purchase = purchase_service.get_purchase(purchase_id)
    return jsonify({"payment": payment.to_dict(), "purchase": purchase.to_dict()}), 201
