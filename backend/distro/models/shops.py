from __future__ import annotations

from ..extensions import db
from distro.money import format_cents
from distro.time_utils import to_utc_z


class Shop(db.Model):
    """
    Customer account of a distributor.

    total_debt_cents is a denormalized running balance. It is written only by
    ledger_service.apply_debt_change, which appends the matching LedgerEntry
    in the same transaction, so replaying the shop's entries always
    reproduces it.
    """
    __tablename__ = "shops"
    __table_args__ = (
        db.Index("ix_shops_distributor_debt", "distributor_id", "total_debt_cents"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    distributor_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    name = db.Column(db.String(150), nullable=False)
    owner_name = db.Column(db.String(100), nullable=True)
    phone = db.Column(db.String(20), nullable=True)
    address = db.Column(db.Text, nullable=True)

    # Notification channel (Telegram chat id); None means "do not notify"
    chat_id = db.Column(db.String(64), nullable=True, index=True)

    total_debt_cents = db.Column(db.BigInteger, nullable=False, default=0)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    distributor = db.relationship("User", backref=db.backref("shops", lazy=True))

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Shop id={self.id} name={self.name!r} debt={self.total_debt_cents}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "distributor_id": self.distributor_id,
            "name": self.name,
            "owner_name": self.owner_name,
            "phone": self.phone,
            "address": self.address,
            "has_channel": bool(self.chat_id),
            "total_debt_cents": self.total_debt_cents,
            "total_debt": format_cents(self.total_debt_cents),
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
        }
