# Overview: Integer-cent arithmetic helpers.

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

BPS_DENOMINATOR = 10_000


def round_cents(value: Decimal) -> int:
    """Round a fractional cent amount half-up to whole cents."""
    return int(value.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def line_total_cents(unit_price_cents: int, quantity: Decimal) -> int:
    return round_cents(Decimal(unit_price_cents) * quantity)


def tax_cents(amount_cents: int, rate_bps: int) -> int:
    if not rate_bps:
        return 0
    return round_cents(Decimal(amount_cents) * Decimal(rate_bps) / BPS_DENOMINATOR)


def loyalty_points(total_cents: int, spend_per_point_cents: int) -> int:
    """One point per full spend_per_point_cents spent; floor, never negative."""
    if spend_per_point_cents <= 0 or total_cents <= 0:
        return 0
    return total_cents // spend_per_point_cents
