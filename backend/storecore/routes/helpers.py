# Overview: Shared request parsing for API routes.

from flask import request

from ..errors import ValidationError
from ..time_utils import parse_iso_datetime
from ..validation import parse_int


def json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")
    return data


def arg_int(name: str, default=None):
    raw = request.args.get(name)
    if raw is None or raw == "":
        return default
    return parse_int(raw, name)


def arg_bool(name: str, default=None):
    raw = request.args.get(name)
    if raw is None or raw == "":
        return default
    lowered = raw.strip().lower()
    if lowered in ("1", "true", "yes"):
        return True
    if lowered in ("0", "false", "no"):
        return False
    raise ValidationError(f"{name} must be true or false", field=name)


def arg_datetime(name: str):
    raw = request.args.get(name)
    try:
        return parse_iso_datetime(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an ISO-8601 datetime", field=name)


def page_args() -> tuple[int, int]:
    return arg_int("page", 1), arg_int("per_page", 50)


def paginated(items, total: int, page: int, per_page: int, key: str) -> dict:
    return {
        key: [item.to_dict() for item in items],
        "pagination": {"page": page, "per_page": per_page, "total": total},
    }
