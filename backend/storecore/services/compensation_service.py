# Overview: Compensation engine; voids a committed sale in one unit of work.

from __future__ import annotations

from ..errors import ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Customer, Product, Sale
from ..models.ledger import MOVEMENT_RETURN
from ..models.sales import PAYMENT_STATUS_VOIDED, SALE_STATUS_CANCELLED
from ..time_utils import to_utc_z, utcnow
from .audit_service import record_audit
from .concurrency import lock_for_update, run_with_retry, unit_of_work
from .notification_service import dispatch_alerts
from .stock_ledger import apply_movement

"""
Void Invariants (authoritative)

- A void never deletes the sale, its lines or its payments; it changes
  status and compensates side effects.
- Every line is returned to stock through apply_movement(RETURN), so
  snapshots and alerts follow the same rules as any other movement.
- Customer order count, spend and loyalty points are reversed by exactly
  what the sale added (loyalty_points_earned is stored on the sale).
- Voiding a CANCELLED sale is a ConflictError, never a no-op.
"""


def void_sale(sale_id: int, *, reason: str, actor_user_id: int) -> Sale:
    if not isinstance(reason, str) or not reason.strip():
        raise ValidationError("reason is required", field="reason")
    reason = reason.strip()
    if len(reason) > 255:
        raise ValidationError("reason exceeds max length 255", field="reason")

    def _op():
        raised = []
        with unit_of_work():
            sale = lock_for_update(db.session.query(Sale).filter(Sale.id == sale_id)).first()
            if not sale:
                raise NotFoundError("Sale", sale_id)
            if sale.status == SALE_STATUS_CANCELLED:
                raise ConflictError(
                    "Sale is already cancelled",
                    {
                        "sale_id": sale.id,
                        "invoice_no": sale.invoice_no,
                        "voided_at": to_utc_z(sale.voided_at) if sale.voided_at else None,
                    },
                )

            now = utcnow()
            sale.status = SALE_STATUS_CANCELLED
            sale.voided_by_user_id = actor_user_id
            sale.voided_at = now
            sale.void_reason = reason

            # Same product lock order as create_sale
            ids = sorted({line.product_id for line in sale.lines})
            lock_for_update(db.session.query(Product).filter(Product.id.in_(ids)).order_by(Product.id)).all()

            for line in sale.lines:
                movement = apply_movement(
                    product_id=line.product_id,
                    movement_type=MOVEMENT_RETURN,
                    quantity=line.quantity,
                    actor_user_id=actor_user_id,
                    reference_type="sale",
                    reference=str(sale.id),
                    notes=f"Sale {sale.invoice_no} voided: {reason}"[:255],
                )
                raised.extend(movement.raised)

            for payment in sale.payments:
                if payment.status != PAYMENT_STATUS_VOIDED:
                    payment.status = PAYMENT_STATUS_VOIDED
                    payment.voided_by_user_id = actor_user_id
                    payment.voided_at = now

            if sale.customer_id is not None:
                customer = lock_for_update(db.session.query(Customer).filter(Customer.id == sale.customer_id)).first()
                if customer:
                    customer.total_orders -= 1
                    customer.total_spent_cents -= sale.total_cents
                    customer.loyalty_points -= sale.loyalty_points_earned

            record_audit(
                actor_user_id=actor_user_id,
                action="VOID_SALE",
                entity="Sale",
                entity_id=sale.id,
                details={
                    "invoice_no": sale.invoice_no,
                    "reason": reason,
                    "total_cents": sale.total_cents,
                    "lines": len(sale.lines),
                },
            )
        return sale, raised

    sale, raised = run_with_retry(_op)
    dispatch_alerts(raised)
    return sale
