# Overview: Flask API routes for customer master data.

from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth, require_role
from ..models.auth import ROLE_CASHIER, ROLE_MANAGER, ROLE_OWNER
from ..services import customer_service
from .helpers import json_body, page_args, paginated

customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


@customers_bp.get("")
@require_auth
def list_customers_route():
    page, per_page = page_args()
    items, total = customer_service.list_customers(search=request.args.get("search"), page=page, per_page=per_page)
    return jsonify(paginated(items, total, page, per_page, "customers")), 200


@customers_bp.post("")
@require_auth
def create_customer_route():
    data = json_body()
    customer = customer_service.create_customer(
        name=data.get("name"),
        phone=data.get("phone"),
        email=data.get("email"),
        actor_user_id=g.current_user.id,
    )
    return jsonify({"customer": customer.to_dict()}), 201


@customers_bp.get("/<int:customer_id>")
@require_auth
def get_customer_route(customer_id: int):
    return jsonify({"customer": customer_service.get_customer(customer_id).to_dict()}), 200


@customers_bp.patch("/<int:customer_id>")
@require_auth
@require_role(ROLE_OWNER, ROLE_MANAGER, ROLE_CASHIER)
def update_customer_route(customer_id: int):
    """Request body (all optional): name, phone, email, is_active."""
    customer = customer_service.update_customer(customer_id, json_body(), actor_user_id=g.current_user.id)
    return jsonify({"customer": customer.to_dict()}), 200


@customers_bp.get("/<int:customer_id>/transactions")
@require_auth
def customer_transactions_route(customer_id: int):
    sales = customer_service.list_customer_sales(customer_id)
    return jsonify({"sales": [s.to_dict() for s in sales]}), 200
