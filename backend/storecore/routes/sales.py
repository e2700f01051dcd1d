# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_role
from ..models.auth import ROLE_CASHIER, ROLE_MANAGER, ROLE_OWNER
from ..services import compensation_service, device_service, sales_service
from ..services.settings_service import resolve_store_settings
from .helpers import arg_datetime, arg_int, json_body, page_args, paginated

sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")

SELLING_ROLES = (ROLE_OWNER, ROLE_MANAGER, ROLE_CASHIER)


@sales_bp.post("")
@require_auth
@require_role(*SELLING_ROLES)
def create_sale_route():
    """
    Create a committed sale.

    Requires: OWNER, MANAGER or CASHIER
    Body: lines[{product_id, quantity | weight, unit_price_cents?}],
    payment_method, discount_cents?, customer_id?, customer_name?,
    customer_phone?, payment_reference?, notes?
    """
    data = json_body()
    sale = sales_service.create_sale(
        lines=data.get("lines"),
        payment_method=data.get("payment_method"),
        discount_cents=data.get("discount_cents", 0),
        customer_id=data.get("customer_id"),
        customer_name=data.get("customer_name"),
        customer_phone=data.get("customer_phone"),
        payment_reference=data.get("payment_reference"),
        notes=data.get("notes"),
        actor_user_id=g.current_user.id,
        settings=resolve_store_settings(),
    )
    current_app.logger.info("Sale %s created by user %s", sale.invoice_no, g.current_user.id)
    return jsonify({"sale": sale.to_dict(include_lines=True)}), 201


@sales_bp.get("")
@require_auth
def list_sales_route():
    page, per_page = page_args()
    items, total = sales_service.list_sales(
        status=request.args.get("status"),
        payment_method=request.args.get("payment_method"),
        customer_id=arg_int("customer_id"),
        start=arg_datetime("start"),
        end=arg_datetime("end"),
        search=request.args.get("search"),
        page=page,
        per_page=per_page,
    )
    return jsonify(paginated(items, total, page, per_page, "sales")), 200


@sales_bp.get("/<int:sale_id>")
@require_auth
def get_sale_route(sale_id: int):
    return jsonify({"sale": sales_service.get_sale(sale_id).to_dict(include_lines=True)}), 200


@sales_bp.get("/invoice/<string:invoice_no>")
@require_auth
def get_sale_by_invoice_route(invoice_no: str):
    return jsonify({"sale": sales_service.get_sale_by_invoice(invoice_no).to_dict(include_lines=True)}), 200


@sales_bp.post("/<int:sale_id>/void")
@require_auth
@require_role(ROLE_OWNER, ROLE_MANAGER)
def void_sale_route(sale_id: int):
    """
    Void a sale: restores stock, reverses customer stats, voids payments.

    Requires: OWNER or MANAGER
    """
    data = json_body()
    sale = compensation_service.void_sale(sale_id, reason=data.get("reason"), actor_user_id=g.current_user.id)
    current_app.logger.info("Sale %s voided by user %s", sale.invoice_no, g.current_user.id)
    return jsonify({"sale": sale.to_dict(include_lines=True)}), 200


@sales_bp.post("/<int:sale_id>/receipt")
@require_auth
@require_role(*SELLING_ROLES)
def print_receipt_route(sale_id: int):
    sale = sales_service.get_sale(sale_id)
    job = device_service.print_sale_receipt(sale)
    return jsonify({"job": job}), 200
