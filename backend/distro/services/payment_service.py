# Overview: Service-layer operations for shop payments and debt adjustments.

"""
Payment / Debt Adjustment Engine

WHY: Shops buy on account. Their running debt moves down when a payment is
received, up when historical debt is back-filled, and to an exact value when
a distributor corrects it. Every move writes one immutable LedgerEntry.

DESIGN PRINCIPLES:
- Signed amounts: positive entry = payment, negative entry = debt added
- A payment can never exceed the current debt (rejected, not clamped)
- Corrections always leave an entry, even a zero-delta one
- Notifications go out after commit and never fail the operation
"""

from __future__ import annotations

from sqlalchemy import func

from ..extensions import db, notifier
from ..models import LedgerEntry, Shop, User
from ..models.ledger import (
    KIND_CASH,
    KIND_MANUAL_DEBT,
    PAYMENT_METHODS,
)
from ..money import format_cents
from ..validation import BusinessRuleError, ValidationError, require_choice, optional_text
from .concurrency import begin_write_transaction, run_with_retry
from .ledger_service import apply_debt_change, set_debt
from .notification_service import EVENT_PAYMENT_RECEIVED, EVENT_MANUAL_DEBT_ADDED
from .tenant_service import require_distributor, require_shop_for_distributor, require_receiver

DEFAULT_MANUAL_DEBT_NOTE = "Historical debt added"
DEFAULT_HISTORY_LIMIT = 50
DEFAULT_LEDGER_LIMIT = 100


def _result(entry: LedgerEntry, distributor: User, previous_cents: int, new_cents: int, message: str) -> dict:
    return {
        "entry": entry.to_dict(),
        "user": distributor.to_dict(),
        "previous_debt_cents": previous_cents,
        "previous_debt": format_cents(previous_cents),
        "new_debt_cents": new_cents,
        "new_debt": format_cents(new_cents),
        "message": message,
    }


def _event_payload(shop: Shop, result: dict) -> dict:
    return {
        "shop": {"id": shop.id, "name": shop.name},
        "entry": result["entry"],
        "previous_debt": result["previous_debt"],
        "new_debt": result["new_debt"],
    }


# =============================================================================
# LEDGER MUTATIONS
# =============================================================================

def record_payment(
    distributor_id: int,
    shop_id: int,
    amount_cents: int,
    method: str = KIND_CASH,
    received_by: int | None = None,
    notes: str | None = None,
) -> dict:
    """
    Receive a payment from a shop.

    Raises:
        ValidationError: non-positive amount, unknown method, foreign receiver
        NotFoundError: unknown distributor, or shop not owned by it
        BusinessRuleError: amount exceeds the shop's current debt
    """
    if amount_cents <= 0:
        raise ValidationError("Payment amount must be greater than 0")
    method = require_choice(method, "payment_method", PAYMENT_METHODS, default=KIND_CASH)
    notes = optional_text(notes, "notes")

    def _op():
        begin_write_transaction()
        distributor = require_distributor(distributor_id)
        shop = require_shop_for_distributor(shop_id, distributor_id, lock=True)
        receiver_id = require_receiver(received_by, distributor_id).id if received_by else distributor.id

        current = shop.total_debt_cents or 0
        if amount_cents > current:
            raise BusinessRuleError(
                f"Payment amount ({format_cents(amount_cents)}) exceeds total debt ({format_cents(current)})",
                details={"amount_cents": amount_cents, "current_debt_cents": current},
            )

        entry = apply_debt_change(
            shop,
            debt_delta_cents=-amount_cents,
            kind=method,
            distributor_id=distributor.id,
            received_by_user_id=receiver_id,
            note=notes,
        )
        db.session.commit()
        return shop, _result(entry, distributor, current, shop.total_debt_cents, "Payment received successfully")

    shop, result = run_with_retry(_op)
    notifier.notify(shop.chat_id, EVENT_PAYMENT_RECEIVED, lambda: _event_payload(shop, result))
    return result


def add_manual_debt(
    distributor_id: int,
    shop_id: int,
    debt_amount_cents: int,
    notes: str | None = None,
) -> dict:
    """
    Back-fill debt that predates the system. No upper bound.
    """
    if debt_amount_cents <= 0:
        raise ValidationError("Debt amount must be greater than 0")
    notes = optional_text(notes, "notes") or DEFAULT_MANUAL_DEBT_NOTE

    def _op():
        begin_write_transaction()
        distributor = require_distributor(distributor_id)
        shop = require_shop_for_distributor(shop_id, distributor_id, lock=True)

        current = shop.total_debt_cents or 0
        entry = apply_debt_change(
            shop,
            debt_delta_cents=debt_amount_cents,
            kind=KIND_MANUAL_DEBT,
            distributor_id=distributor.id,
            received_by_user_id=distributor.id,
            note=notes,
        )
        db.session.commit()
        result = _result(entry, distributor, current, shop.total_debt_cents, "Manual debt added successfully")
        result["added_amount_cents"] = debt_amount_cents
        result["added_amount"] = format_cents(debt_amount_cents)
        return shop, result

    shop, result = run_with_retry(_op)
    notifier.notify(shop.chat_id, EVENT_MANUAL_DEBT_ADDED, lambda: _event_payload(shop, result))
    return result


def set_exact_debt(
    distributor_id: int,
    shop_id: int,
    debt_amount_cents: int,
    notes: str | None = None,
) -> dict:
    """
    Correction tool: set the debt to exactly `debt_amount_cents`.

    The entry carries -(target - current), so replaying the ledger still
    lands on the new balance.
    """
    if debt_amount_cents < 0:
        raise ValidationError("Debt amount cannot be negative")
    notes = optional_text(notes, "notes")

    def _op():
        begin_write_transaction()
        distributor = require_distributor(distributor_id)
        shop = require_shop_for_distributor(shop_id, distributor_id, lock=True)

        current = shop.total_debt_cents or 0
        entry, delta = set_debt(
            shop,
            debt_amount_cents,
            distributor_id=distributor.id,
            received_by_user_id=distributor.id,
            note=notes,
        )
        db.session.commit()
        result = _result(entry, distributor, current, shop.total_debt_cents, "Debt amount set successfully")
        result["adjustment_cents"] = delta
        result["adjustment"] = format_cents(delta)
        return result

    return run_with_retry(_op)


# =============================================================================
# READ SIDE
# =============================================================================

def get_shop_debt(distributor_id: int, shop_id: int) -> Shop:
    return require_shop_for_distributor(shop_id, distributor_id)


def get_debt_history(distributor_id: int, shop_id: int, limit: int = DEFAULT_HISTORY_LIMIT) -> dict:
    """Ledger entries for one shop, newest first, with the current balance."""
    shop = require_shop_for_distributor(shop_id, distributor_id)
    entries = (
        db.session.query(LedgerEntry)
        .filter_by(shop_id=shop.id, distributor_id=distributor_id)
        .order_by(LedgerEntry.created_at.desc(), LedgerEntry.id.desc())
        .limit(limit)
        .all()
    )
    return {
        "shop_id": shop.id,
        "shop_name": shop.name,
        "current_debt_cents": shop.total_debt_cents,
        "current_debt": format_cents(shop.total_debt_cents),
        "history": [entry.to_dict() for entry in entries],
    }


def get_payment_stats(distributor_id: int, shop_id: int) -> dict:
    """
    Payments received vs current debt for one shop.

    total_paid counts only payment entries (cash/card/transfer); orders,
    manual debt and adjustments are excluded.
    """
    shop = require_shop_for_distributor(shop_id, distributor_id)
    total_paid, payment_count = (
        db.session.query(
            func.coalesce(func.sum(LedgerEntry.amount_cents), 0),
            func.count(LedgerEntry.id),
        )
        .filter(
            LedgerEntry.shop_id == shop.id,
            LedgerEntry.distributor_id == distributor_id,
            LedgerEntry.kind.in_(PAYMENT_METHODS),
        )
        .one()
    )
    entry_count = (
        db.session.query(func.count(LedgerEntry.id))
        .filter(LedgerEntry.shop_id == shop.id, LedgerEntry.distributor_id == distributor_id)
        .scalar()
    )
    return {
        "shop_id": shop.id,
        "shop_name": shop.name,
        "total_paid_cents": int(total_paid),
        "total_paid": format_cents(int(total_paid)),
        "payment_count": int(payment_count),
        "entry_count": int(entry_count),
        "current_debt_cents": shop.total_debt_cents,
        "current_debt": format_cents(shop.total_debt_cents),
    }


def list_shops_with_debt(distributor_id: int) -> list[Shop]:
    return (
        db.session.query(Shop)
        .filter(Shop.distributor_id == distributor_id)
        .order_by(Shop.total_debt_cents.desc(), Shop.id.asc())
        .all()
    )


def list_ledger(distributor_id: int | None, limit: int = DEFAULT_LEDGER_LIMIT) -> list[LedgerEntry]:
    """Latest entries of one distributor, or of the whole platform when None."""
    query = db.session.query(LedgerEntry)
    if distributor_id is not None:
        query = query.filter(LedgerEntry.distributor_id == distributor_id)
    return query.order_by(LedgerEntry.created_at.desc(), LedgerEntry.id.desc()).limit(limit).all()
