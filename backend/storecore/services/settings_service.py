# Overview: Store policy snapshot passed into the engines.

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app


@dataclass(frozen=True)
class StoreSettings:
    """
    Policy values an engine needs for one operation.

    Resolved once per request and passed in, so an operation never sees
    the policy change halfway through.
    """
    tax_rate_bps: int = 0
    loyalty_spend_per_point_cents: int = 10_000


def resolve_store_settings(config=None) -> StoreSettings:
    cfg = config if config is not None else current_app.config
    return StoreSettings(
        tax_rate_bps=int(cfg.get("STORE_TAX_RATE_BPS", 0)),
        loyalty_spend_per_point_cents=int(cfg.get("LOYALTY_SPEND_PER_POINT_CENTS", 10_000)),
    )
