# Overview: Service-layer operations for the shop debt ledger; the only writer of Shop.total_debt_cents.

from __future__ import annotations

from sqlalchemy import func

from ..extensions import db
from ..models import LedgerEntry, Shop
from ..models.ledger import KIND_DEBT_ADJUSTMENT, VALID_KINDS
from ..money import add_cents, sub_cents, format_cents
from ..time_utils import utcnow
"""
Shop Debt Ledger Invariants (authoritative)

- Shop.total_debt_cents changes only through apply_debt_change().
- Every change appends exactly one LedgerEntry in the same transaction.
- Sign convention: entry.amount_cents == -debt_delta_cents.
- Replaying a shop's entries reproduces its balance:
      total_debt_cents == -SUM(amount_cents)
- Callers hold the shop row lock (lock_for_update) and commit themselves.
"""


def apply_debt_change(
    shop: Shop,
    *,
    debt_delta_cents: int,
    kind: str,
    distributor_id: int,
    received_by_user_id: int | None = None,
    order_id: int | None = None,
    note: str | None = None,
) -> LedgerEntry:
    """
    Move a shop's running debt by `debt_delta_cents` and record why.

    Positive delta = shop owes more. Does not commit.
    """
    if kind not in VALID_KINDS:
        raise ValueError(f"Unknown ledger entry kind: {kind}")
    new_balance = add_cents(shop.total_debt_cents or 0, debt_delta_cents)

    entry = LedgerEntry(
        distributor_id=distributor_id,
        shop_id=shop.id,
        amount_cents=-int(debt_delta_cents),
        kind=kind,
        balance_after_cents=new_balance,
        received_by_user_id=received_by_user_id,
        order_id=order_id,
        note=note,
        created_at=utcnow(),
    )
    shop.total_debt_cents = new_balance

    db.session.add(entry)
    db.session.flush()  # ensures entry.id is assigned without committing
    return entry


def set_debt(
    shop: Shop,
    target_cents: int,
    *,
    distributor_id: int,
    received_by_user_id: int | None = None,
    note: str | None = None,
) -> tuple[LedgerEntry, int]:
    """
    Correct a shop's debt to exactly `target_cents`.

    Always writes an entry, even when the delta is zero, so the correction
    itself stays auditable. Returns (entry, delta).
    """
    previous = shop.total_debt_cents or 0
    delta = sub_cents(target_cents, previous)
    if note is None:
        note = f"Debt corrected: {format_cents(previous)} -> {format_cents(target_cents)}"
    entry = apply_debt_change(
        shop,
        debt_delta_cents=delta,
        kind=KIND_DEBT_ADJUSTMENT,
        distributor_id=distributor_id,
        received_by_user_id=received_by_user_id,
        note=note,
    )
    return entry, delta


def replay_shop_debt(shop_id: int) -> int:
    """Debt implied by the ledger alone: -SUM(amount_cents)."""
    total = (
        db.session.query(func.coalesce(func.sum(LedgerEntry.amount_cents), 0))
        .filter(LedgerEntry.shop_id == shop_id)
        .scalar()
    )
    return -int(total or 0)


def reconcile_shop(shop: Shop) -> dict:
    replayed = replay_shop_debt(shop.id)
    stored = shop.total_debt_cents or 0
    return {
        "shop_id": shop.id,
        "shop_name": shop.name,
        "distributor_id": shop.distributor_id,
        "stored_debt_cents": stored,
        "replayed_debt_cents": replayed,
        "difference_cents": stored - replayed,
        "consistent": stored == replayed,
    }


def reconcile_distributor(distributor_id: int | None = None) -> dict:
    """
    Check the ledger invariant for every shop of a distributor (or the platform).

    Read-only; mismatches are reported, never fixed up.
    """
    ledger_totals = dict(
        db.session.query(LedgerEntry.shop_id, func.sum(LedgerEntry.amount_cents))
        .group_by(LedgerEntry.shop_id)
        .all()
    )

    query = db.session.query(Shop)
    if distributor_id is not None:
        query = query.filter(Shop.distributor_id == distributor_id)

    checked = 0
    mismatches = []
    for shop in query.order_by(Shop.id).all():
        checked += 1
        replayed = -int(ledger_totals.get(shop.id) or 0)
        stored = shop.total_debt_cents or 0
        if stored != replayed:
            mismatches.append({
                "shop_id": shop.id,
                "shop_name": shop.name,
                "distributor_id": shop.distributor_id,
                "stored_debt_cents": stored,
                "replayed_debt_cents": replayed,
                "difference_cents": stored - replayed,
            })

    return {
        "distributor_id": distributor_id,
        "shops_checked": checked,
        "mismatches": mismatches,
        "consistent": not mismatches,
    }
