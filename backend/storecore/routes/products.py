# Overview: Flask API routes for catalog operations; parses input and returns JSON responses.

from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth, require_role
from ..models import Product
from ..models.auth import ROLE_INVENTORY_STAFF, ROLE_MANAGER, ROLE_OWNER
from ..services import catalog_service, inventory_service
from ..validation import ModelValidationPolicy, validate_payload
from .helpers import arg_bool, arg_int, json_body, page_args, paginated

products_bp = Blueprint("products", __name__, url_prefix="/api")

CATALOG_ROLES = (ROLE_OWNER, ROLE_MANAGER, ROLE_INVENTORY_STAFF)

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields=set(catalog_service.PRODUCT_FIELDS),
    required_on_create=set(catalog_service.PRODUCT_REQUIRED),
)


@products_bp.get("/products")
@require_auth
def list_products_route():
    page, per_page = page_args()
    items, total = catalog_service.list_products(
        active=arg_bool("active"),
        search=request.args.get("search"),
        category_id=arg_int("category_id"),
        low_stock=bool(arg_bool("low_stock", False)),
        page=page,
        per_page=per_page,
    )
    return jsonify(paginated(items, total, page, per_page, "products")), 200


@products_bp.post("/products")
@require_auth
@require_role(*CATALOG_ROLES)
def create_product_route():
    """
    Create a product. Optional "opening_stock" is booked through the stock ledger.

    Requires: OWNER, MANAGER or INVENTORY_STAFF
    """
    data = json_body()
    opening_stock = data.pop("opening_stock", None)
    fields = validate_payload(model=Product, payload=data, policy=PRODUCT_POLICY, partial=False)
    product = catalog_service.create_product(fields, actor_user_id=g.current_user.id, opening_stock=opening_stock)
    return jsonify({"product": product.to_dict()}), 201


@products_bp.get("/products/<int:product_id>")
@require_auth
def get_product_route(product_id: int):
    return jsonify({"product": catalog_service.get_product(product_id).to_dict()}), 200


@products_bp.get("/products/barcode/<string:barcode>")
@require_auth
def get_product_by_barcode_route(barcode: str):
    return jsonify({"product": catalog_service.get_product_by_barcode(barcode).to_dict()}), 200


@products_bp.patch("/products/<int:product_id>")
@require_auth
@require_role(*CATALOG_ROLES)
def update_product_route(product_id: int):
    """Administrative edit. current_stock is rejected; use /stock."""
    patch = validate_payload(model=Product, payload=json_body(), policy=PRODUCT_POLICY, partial=True)
    product = catalog_service.update_product(product_id, patch, actor_user_id=g.current_user.id)
    return jsonify({"product": product.to_dict()}), 200


@products_bp.post("/products/<int:product_id>/stock")
@require_auth
@require_role(*CATALOG_ROLES)
def adjust_stock_route(product_id: int):
    """
    Direct stock adjustment.

    Body: {"mode": "ADD"|"REMOVE"|"SET"|"WASTE", "quantity": ..., "notes": ...}
    """
    data = json_body()
    product = inventory_service.adjust_stock(
        product_id,
        quantity=data.get("quantity"),
        mode=data.get("mode"),
        notes=data.get("notes"),
        actor_user_id=g.current_user.id,
    )
    return jsonify({"product": product.to_dict()}), 200


@products_bp.get("/categories")
@require_auth
def list_categories_route():
    active_only = arg_bool("active_only", True)
    categories = catalog_service.list_categories(active_only=active_only)
    return jsonify({"categories": [c.to_dict() for c in categories]}), 200


@products_bp.post("/categories")
@require_auth
@require_role(*CATALOG_ROLES)
def create_category_route():
    data = json_body()
    category = catalog_service.create_category(
        data.get("name"),
        data.get("description"),
        actor_user_id=g.current_user.id,
    )
    return jsonify({"category": category.to_dict()}), 201


@products_bp.get("/categories/<int:category_id>")
@require_auth
def get_category_route(category_id: int):
    return jsonify({"category": catalog_service.get_category(category_id).to_dict()}), 200


@products_bp.patch("/categories/<int:category_id>")
@require_auth
@require_role(ROLE_OWNER, ROLE_MANAGER)
def update_category_route(category_id: int):
    category = catalog_service.update_category(category_id, json_body(), actor_user_id=g.current_user.id)
    return jsonify({"category": category.to_dict()}), 200
