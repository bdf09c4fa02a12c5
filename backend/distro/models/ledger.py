from __future__ import annotations

from sqlalchemy import event

from ..extensions import db
from distro.money import format_cents
from distro.time_utils import to_utc_z

# Entry kinds. Payments are positive (debt goes down); everything that adds
# debt is negative; adjustments carry the sign of the correction.
KIND_CASH = "cash"
KIND_CARD = "card"
KIND_TRANSFER = "transfer"
KIND_MANUAL_DEBT = "manual_debt"
KIND_DEBT_ADJUSTMENT = "debt_adjustment"
KIND_ORDER = "order"

PAYMENT_METHODS = {KIND_CASH, KIND_CARD, KIND_TRANSFER}
VALID_KINDS = PAYMENT_METHODS | {KIND_MANUAL_DEBT, KIND_DEBT_ADJUSTMENT, KIND_ORDER}


class LedgerEntryImmutableError(Exception):
    """Raised when code tries to modify or delete a persisted ledger entry."""


class LedgerEntry(db.Model):
    """
    Immutable signed record of one change to a shop's debt.

    Shop debt ledger invariants:
    - amount_cents > 0 reduces debt (payment received)
    - amount_cents < 0 increases debt (order, manual debt, upward adjustment)
    - Shop.total_debt_cents == -SUM(amount_cents) over the shop's entries
    - balance_after_cents is the shop balance right after this entry
    - Rows are append-only: never updated, never deleted
    """
    __tablename__ = "ledger_entries"
    __table_args__ = (
        db.Index("ix_ledger_entries_shop_created", "shop_id", "created_at"),
        db.Index("ix_ledger_entries_distributor_created", "distributor_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    distributor_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id"), nullable=False)

    amount_cents = db.Column(db.BigInteger, nullable=False)
    kind = db.Column(db.String(32), nullable=False, index=True)
    balance_after_cents = db.Column(db.BigInteger, nullable=False)

    received_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True, index=True)
    note = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    shop = db.relationship("Shop", backref=db.backref("ledger_entries", lazy="dynamic"))
    received_by = db.relationship("User", foreign_keys=[received_by_user_id])

    @property
    def entry_type(self) -> str:
        if self.kind == KIND_ORDER:
            return "order"
        if self.kind == KIND_DEBT_ADJUSTMENT:
            return "adjustment"
        return "debt_added" if self.amount_cents < 0 else "payment_received"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "distributor_id": self.distributor_id,
            "shop_id": self.shop_id,
            "amount_cents": self.amount_cents,
            "amount": format_cents(self.amount_cents),
            "display_amount": format_cents(abs(self.amount_cents)),
            "kind": self.kind,
            "type": self.entry_type,
            "balance_after_cents": self.balance_after_cents,
            "received_by_user_id": self.received_by_user_id,
            "received_by_name": self.received_by.name if self.received_by else None,
            "order_id": self.order_id,
            "note": self.note,
            "created_at": to_utc_z(self.created_at),
        }


@event.listens_for(LedgerEntry, "before_update")
def _reject_entry_update(mapper, connection, target):
    raise LedgerEntryImmutableError(f"Ledger entry {target.id} is append-only")


@event.listens_for(LedgerEntry, "before_delete")
def _reject_entry_delete(mapper, connection, target):
    raise LedgerEntryImmutableError(f"Ledger entry {target.id} is append-only")
