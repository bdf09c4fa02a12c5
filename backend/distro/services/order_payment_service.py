# Overview: Service-layer operations for direct per-order payments (order remaining balance).

"""
Direct Order Payments

A second, narrower ledger: payments recorded against one order reduce that
order's remaining_amount_cents only. They do not change Shop.total_debt_cents
and the shop ledger does not change remaining_amount_cents; the two balances
are tracked independently.
"""

from __future__ import annotations

from ..extensions import db
from ..models import Order, OrderTransaction, User
from ..money import format_cents, sub_cents
from ..time_utils import utcnow
from ..validation import BusinessRuleError, NotFoundError, ValidationError, require_choice, optional_text
from .concurrency import begin_write_transaction, lock_for_update, run_with_retry

PAYMENT_TYPE_CASH = "CASH"
PAYMENT_TYPE_CARD = "CARD"
VALID_PAYMENT_TYPES = {PAYMENT_TYPE_CASH, PAYMENT_TYPE_CARD}


def record_order_payment(
    order_id: int,
    user_id: int,
    amount_cents: int,
    payment_type: str,
    comment: str | None = None,
    distributor_id: int | None = None,
) -> dict:
    """
    Pay part of an order directly.

    Raises:
        ValidationError: non-positive amount or unknown payment type
        NotFoundError: unknown order (or another distributor's) or user
        BusinessRuleError: amount exceeds the order's remaining amount
    """
    if amount_cents <= 0:
        raise ValidationError("Payment amount must be greater than 0")
    payment_type = require_choice(payment_type, "payment_type", VALID_PAYMENT_TYPES)
    comment = optional_text(comment, "comment")

    def _op():
        begin_write_transaction()
        query = db.session.query(Order).filter_by(id=order_id)
        if distributor_id is not None:
            query = query.filter_by(distributor_id=distributor_id)
        order = lock_for_update(query).first()
        if not order:
            raise NotFoundError("Order not found", details={"order_id": order_id})

        if not db.session.get(User, user_id):
            raise NotFoundError("User not found", details={"user_id": user_id})

        remaining = order.remaining_amount_cents
        if amount_cents > remaining:
            raise BusinessRuleError(
                f"Payment cannot exceed remaining amount ({format_cents(remaining)})",
                details={"remaining_amount_cents": remaining, "requested_cents": amount_cents},
            )

        trx = OrderTransaction(
            order_id=order.id,
            user_id=user_id,
            amount_cents=amount_cents,
            payment_type=payment_type,
            comment=comment,
            created_at=utcnow(),
        )
        db.session.add(trx)
        order.remaining_amount_cents = sub_cents(remaining, amount_cents)

        db.session.commit()
        return order, trx

    order, trx = run_with_retry(_op)
    return {"transaction": trx.to_dict(), "order": order.to_dict()}


def list_order_payments(order_id: int, distributor_id: int | None = None) -> list[OrderTransaction]:
    query = db.session.query(Order).filter_by(id=order_id)
    if distributor_id is not None:
        query = query.filter_by(distributor_id=distributor_id)
    if not query.first():
        raise NotFoundError("Order not found", details={"order_id": order_id})

    return (
        db.session.query(OrderTransaction)
        .filter_by(order_id=order_id)
        .order_by(OrderTransaction.created_at.asc(), OrderTransaction.id.asc())
        .all()
    )
