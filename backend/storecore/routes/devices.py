# Overview: Flask API routes for point-of-sale devices.

from flask import Blueprint, jsonify

from ..decorators import require_auth
from ..services import device_service

devices_bp = Blueprint("devices", __name__, url_prefix="/api/devices")


@devices_bp.get("/scale/read")
@require_auth
def read_scale_route():
    """Current scale reading; pass it back as a sale line's "weight"."""
    reading = device_service.get_devices().scale.read_weight()
    return jsonify({"reading": reading.to_dict()}), 200
