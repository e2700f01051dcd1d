# Overview: Scale and receipt printer interfaces with fake and gateway implementations.

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

import httpx
from flask import current_app

from ..errors import DeviceError, ValidationError, format_quantity
from ..models.catalog import UNIT_GRAM, UNIT_KG
from ..time_utils import parse_iso_datetime, to_utc_z, utcnow
from ..validation import parse_quantity

EXTENSION_KEY = "storecore.devices"

# grams per unit
_WEIGHT_FACTORS = {UNIT_KG: Decimal("1000"), UNIT_GRAM: Decimal("1")}
_UNIT_ALIASES = {"KG": UNIT_KG, "KGS": UNIT_KG, "G": UNIT_GRAM, "GM": UNIT_GRAM, "GRAM": UNIT_GRAM, "GRAMS": UNIT_GRAM}


def normalize_weight_unit(value) -> str:
    unit = _UNIT_ALIASES.get(str(value or "").strip().upper())
    if unit is None:
        raise ValidationError("weight unit must be KG or GRAM", field="weight.unit")
    return unit


@dataclass(frozen=True)
class WeightReading:
    """
    A single scale reading attached to a sale line.

    The reading is authoritative once captured: the sale engine converts
    net into the product's unit and uses it as the line quantity.
    """
    gross: Decimal
    tare: Decimal
    net: Decimal
    unit: str
    measured_at: datetime
    scale_ref: str | None = None

    @classmethod
    def from_dict(cls, data) -> "WeightReading":
        if not isinstance(data, dict):
            raise ValidationError("weight must be an object", field="weight")
        unit = normalize_weight_unit(data.get("unit"))
        gross = parse_quantity(data.get("gross"), "weight.gross")
        tare = parse_quantity(data.get("tare") or 0, "weight.tare", allow_zero=True)
        net = gross - tare
        if net <= 0:
            raise ValidationError("weight net (gross - tare) must be > 0", field="weight.net")
        if data.get("net") is not None and parse_quantity(data["net"], "weight.net") != net:
            raise ValidationError("weight net must equal gross - tare", field="weight.net")

        measured_at = utcnow()
        if data.get("measured_at"):
            try:
                measured_at = parse_iso_datetime(str(data["measured_at"]))
            except ValueError:
                raise ValidationError("weight.measured_at must be an ISO-8601 datetime", field="weight.measured_at")

        scale_ref = data.get("scale_ref")
        return cls(
            gross=gross,
            tare=tare,
            net=net,
            unit=unit,
            measured_at=measured_at,
            scale_ref=str(scale_ref)[:64] if scale_ref else None,
        )

    def net_in(self, product_unit: str) -> Decimal:
        """Net weight expressed in product_unit (KG or GRAM)."""
        if product_unit not in _WEIGHT_FACTORS:
            raise ValidationError(
                f"Product sold by {product_unit} cannot take a weighed line",
                field="weight",
                details={"product_unit": product_unit},
            )
        grams = self.net * _WEIGHT_FACTORS[self.unit]
        return (grams / _WEIGHT_FACTORS[product_unit]).quantize(Decimal("0.001"))

    def to_dict(self) -> dict:
        return {
            "gross": format_quantity(self.gross),
            "tare": format_quantity(self.tare),
            "net": format_quantity(self.net),
            "unit": self.unit,
            "measured_at": to_utc_z(self.measured_at),
            "scale_ref": self.scale_ref,
        }


class Scale:
    def read_weight(self) -> WeightReading:
        raise NotImplementedError


class ReceiptPrinter:
    def print_receipt(self, receipt: dict) -> dict:
        """Print a rendered receipt; returns {"job_id", "status"}."""
        raise NotImplementedError


class FakeScale(Scale):
    """
    Deterministic scale for development and tests.

    Queued readings are returned in order; once empty, the default
    reading is returned every time.
    """

    def __init__(self, default: WeightReading | None = None, scale_ref: str = "FAKE-SCALE-1"):
        self.scale_ref = scale_ref
        self.default = default or WeightReading(
            gross=Decimal("1.250"),
            tare=Decimal("0.050"),
            net=Decimal("1.200"),
            unit=UNIT_KG,
            measured_at=datetime(2024, 1, 1),
            scale_ref=scale_ref,
        )
        self._queue: deque[WeightReading] = deque()

    def queue_reading(self, reading: WeightReading) -> None:
        self._queue.append(reading)

    def read_weight(self) -> WeightReading:
        if self._queue:
            return self._queue.popleft()
        return self.default


class FakeReceiptPrinter(ReceiptPrinter):
    def __init__(self):
        self.jobs: list[dict] = []

    def print_receipt(self, receipt: dict) -> dict:
        self.jobs.append(receipt)
        return {"job_id": f"fake-{len(self.jobs)}", "status": "PRINTED"}


class _GatewayClient:
    def __init__(self, base_url: str, timeout: float, client: httpx.Client | None = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.client = client

    def request(self, method: str, path: str, **kwargs) -> dict:
        url = f"{self.base_url}{path}"
        try:
            if self.client is not None:
                response = self.client.request(method, url, timeout=self.timeout, **kwargs)
            else:
                response = httpx.request(method, url, timeout=self.timeout, **kwargs)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPError as exc:
            current_app.logger.warning("Device gateway %s %s failed: %s", method, url, exc)
            raise DeviceError("Device gateway unavailable", {"url": url, "error": type(exc).__name__}) from exc
        except ValueError as exc:
            raise DeviceError("Device gateway returned invalid JSON", {"url": url}) from exc


class GatewayScale(Scale):
    """Reads the scale through the device gateway: GET /scale/weight."""

    def __init__(self, base_url: str, timeout: float = 5.0, client: httpx.Client | None = None):
        self.gateway = _GatewayClient(base_url, timeout, client)

    def read_weight(self) -> WeightReading:
        data = self.gateway.request("GET", "/scale/weight")
        if data.get("stable") is False:
            raise DeviceError("Scale reading is not stable", {"reading": data})
        try:
            return WeightReading.from_dict(data)
        except ValidationError as exc:
            raise DeviceError("Scale returned an unusable reading", {"reading": data, "problem": exc.message}) from exc


class GatewayReceiptPrinter(ReceiptPrinter):
    """Prints through the device gateway: POST /printer/receipts."""

    def __init__(self, base_url: str, timeout: float = 5.0, client: httpx.Client | None = None):
        self.gateway = _GatewayClient(base_url, timeout, client)

    def print_receipt(self, receipt: dict) -> dict:
        data = self.gateway.request("POST", "/printer/receipts", json=receipt)
        return {"job_id": data.get("job_id"), "status": data.get("status", "QUEUED")}


@dataclass
class DeviceRegistry:
    scale: Scale
    printer: ReceiptPrinter


def init_devices(app) -> DeviceRegistry:
    backend = (app.config.get("DEVICE_BACKEND") or "fake").lower()
    if backend == "gateway":
        url = app.config["DEVICE_GATEWAY_URL"]
        timeout = app.config.get("DEVICE_GATEWAY_TIMEOUT", 5.0)
        registry = DeviceRegistry(scale=GatewayScale(url, timeout), printer=GatewayReceiptPrinter(url, timeout))
    elif backend == "fake":
        registry = DeviceRegistry(scale=FakeScale(), printer=FakeReceiptPrinter())
    else:
        raise RuntimeError(f"Unknown DEVICE_BACKEND: {backend}")
    app.extensions[EXTENSION_KEY] = registry
    app.logger.info("Device backend: %s", backend)
    return registry


def get_devices() -> DeviceRegistry:
    registry = current_app.extensions.get(EXTENSION_KEY)
    if registry is None:
        registry = init_devices(current_app)
    return registry


def build_receipt(sale) -> dict:
    """Receipt payload for a committed sale (read-only)."""
    return {
        "invoice_no": sale.invoice_no,
        "status": sale.status,
        "created_at": to_utc_z(sale.created_at),
        "customer_name": sale.customer_name,
        "lines": [
            {
                "sku": line.product.sku,
                "name": line.product.name,
                "quantity": format_quantity(line.quantity),
                "unit": line.product.unit,
                "unit_price_cents": line.unit_price_cents,
                "line_total_cents": line.line_total_cents,
                "tax_cents": line.tax_cents,
            }
            for line in sale.lines
        ],
        "subtotal_cents": sale.subtotal_cents,
        "discount_cents": sale.discount_cents,
        "tax_cents": sale.tax_cents,
        "total_cents": sale.total_cents,
        "payment_method": sale.payment_method,
    }


def print_sale_receipt(sale) -> dict:
    return get_devices().printer.print_receipt(build_receipt(sale))
