# Overview: Flask API routes for supplier master data.

from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth, require_role
from ..models.auth import ROLE_INVENTORY_STAFF, ROLE_MANAGER, ROLE_OWNER
from ..services import supplier_service
from .helpers import arg_bool, json_body

suppliers_bp = Blueprint("suppliers", __name__, url_prefix="/api/suppliers")


@suppliers_bp.get("")
@require_auth
@require_role(ROLE_OWNER, ROLE_MANAGER, ROLE_INVENTORY_STAFF)
def list_suppliers_route():
    suppliers = supplier_service.list_suppliers(search=request.args.get("search"), active=arg_bool("active", True))
    return jsonify({"suppliers": [s.to_dict() for s in suppliers]}), 200


@suppliers_bp.post("")
@require_auth
@require_role(ROLE_OWNER, ROLE_MANAGER)
def create_supplier_route():
    data = json_body()
    supplier = supplier_service.create_supplier(
        name=data.get("name"),
        phone=data.get("phone"),
        email=data.get("email"),
        address=data.get("address"),
        tax_number=data.get("tax_number"),
        payment_terms=data.get("payment_terms"),
        opening_balance_cents=data.get("opening_balance_cents", 0),
        actor_user_id=g.current_user.id,
    )
    return jsonify({"supplier": supplier.to_dict()}), 201


@suppliers_bp.get("/<int:supplier_id>")
@require_auth
@require_role(ROLE_OWNER, ROLE_MANAGER, ROLE_INVENTORY_STAFF)
def get_supplier_route(supplier_id: int):
    return jsonify({"supplier": supplier_service.get_supplier(supplier_id).to_dict()}), 200


@suppliers_bp.patch("/<int:supplier_id>")
@require_auth
@require_role(ROLE_OWNER, ROLE_MANAGER, ROLE_INVENTORY_STAFF)
def update_supplier_route(supplier_id: int):
    """Balances are not editable here; they move through purchases and supplier payments."""
    supplier = supplier_service.update_supplier(supplier_id, json_body(), actor_user_id=g.current_user.id)
    return jsonify({"supplier": supplier.to_dict()}), 200
