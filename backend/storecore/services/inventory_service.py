# Overview: Direct stock adjustment routed through the stock ledger.

from __future__ import annotations

from ..errors import NotFoundError, format_quantity
from ..extensions import db
from ..models import Product
from ..models.ledger import MOVEMENT_ADJUSTMENT, MOVEMENT_PURCHASE, MOVEMENT_SALE, MOVEMENT_WASTAGE
from ..validation import optional_text, parse_quantity, require_choice
from .audit_service import record_audit
from .concurrency import lock_for_update, run_with_retry, unit_of_work
from .notification_service import dispatch_alerts
from .stock_ledger import apply_movement

ADJUST_ADD = "ADD"
ADJUST_REMOVE = "REMOVE"
ADJUST_SET = "SET"
ADJUST_WASTE = "WASTE"

ADJUST_MODES = [ADJUST_ADD, ADJUST_REMOVE, ADJUST_SET, ADJUST_WASTE]

# mode -> (movement type, sign); SET derives its delta from the target
_MODE_MOVEMENTS = {
    ADJUST_ADD: (MOVEMENT_PURCHASE, 1),
    ADJUST_REMOVE: (MOVEMENT_SALE, -1),
    ADJUST_WASTE: (MOVEMENT_WASTAGE, -1),
}


def adjust_stock(
    product_id: int,
    *,
    quantity,
    mode: str,
    actor_user_id: int,
    notes: str | None = None,
) -> Product:
    """
    ADD/REMOVE/WASTE move stock by quantity; SET moves it to quantity.

    REMOVE and WASTE fail with InsufficientStockError rather than going
    negative. SET to the current value records nothing.
    """
    mode = require_choice(mode, ADJUST_MODES, "mode")
    qty = parse_quantity(quantity, "quantity", allow_zero=(mode == ADJUST_SET))
    notes = optional_text(notes, "notes")

    def _op():
        raised = []
        with unit_of_work():
            product = lock_for_update(db.session.query(Product).filter(Product.id == product_id)).first()
            if not product:
                raise NotFoundError("Product", product_id)

            before = product.current_stock
            if mode == ADJUST_SET:
                movement_type, delta = MOVEMENT_ADJUSTMENT, qty - before
            else:
                movement_type, sign = _MODE_MOVEMENTS[mode]
                delta = qty * sign

            if delta == 0:
                return product, raised

            movement = apply_movement(
                product_id=product.id,
                movement_type=movement_type,
                quantity=delta,
                actor_user_id=actor_user_id,
                reference_type="adjustment",
                reference=mode,
                notes=notes or f"Manual stock {mode.lower()}",
            )
            raised.extend(movement.raised)

            record_audit(
                actor_user_id=actor_user_id,
                action="ADJUST_STOCK",
                entity="Product",
                entity_id=product.id,
                details={
                    "mode": mode,
                    "quantity": format_quantity(qty),
                    "before": format_quantity(before),
                    "after": format_quantity(movement.entry.after_stock),
                    "notes": notes,
                },
            )
        return movement.product, raised

    product, raised = run_with_retry(_op)
    dispatch_alerts(raised)
    return product
