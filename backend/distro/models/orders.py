from __future__ import annotations

from ..extensions import db
from distro.money import format_cents, line_total_cents
from distro.time_utils import to_utc_z

ORDER_STATUS_PENDING = "pending"
ORDER_STATUS_DELIVERED = "delivered"
VALID_ORDER_STATUSES = {ORDER_STATUS_PENDING, ORDER_STATUS_DELIVERED}


class Order(db.Model):
    """
    On-account sale to a shop.

    Created atomically with its items; afterwards only `status`/`delivered_at`
    and `remaining_amount_cents` (via OrderTransaction) ever change.
    remaining_amount_cents is a per-order ledger independent of
    Shop.total_debt_cents.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.CheckConstraint("remaining_amount_cents >= 0", name="ck_orders_remaining_non_negative"),
        db.Index("ix_orders_shop_remaining_created", "shop_id", "remaining_amount_cents", "created_at"),
        db.Index("ix_orders_distributor_status", "distributor_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    distributor_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id"), nullable=False, index=True)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    total_price_cents = db.Column(db.BigInteger, nullable=False)
    remaining_amount_cents = db.Column(db.BigInteger, nullable=False)

    status = db.Column(db.String(30), nullable=False, default=ORDER_STATUS_PENDING)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    delivered_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    shop = db.relationship("Shop", backref=db.backref("orders", lazy=True))
    distributor = db.relationship("User", foreign_keys=[distributor_id])
    created_by = db.relationship("User", foreign_keys=[created_by_user_id])
    items = db.relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
        lazy=True,
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Order id={self.id} shop_id={self.shop_id} status={self.status}>"

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "distributor_id": self.distributor_id,
            "shop_id": self.shop_id,
            "created_by_user_id": self.created_by_user_id,
            "total_price_cents": self.total_price_cents,
            "total_price": format_cents(self.total_price_cents),
            "remaining_amount_cents": self.remaining_amount_cents,
            "remaining_amount": format_cents(self.remaining_amount_cents),
            "paid_amount_cents": self.total_price_cents - self.remaining_amount_cents,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
            "delivered_at": to_utc_z(self.delivered_at) if self.delivered_at else None,
            "version_id": self.version_id,
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class OrderItem(db.Model):
    """Order line. price_at_time_cents is a snapshot and never changes."""
    __tablename__ = "order_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_order_items_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    price_at_time_cents = db.Column(db.BigInteger, nullable=False)

    order = db.relationship("Order", back_populates="items")
    product = db.relationship("Product")

    @property
    def subtotal_cents(self) -> int:
        return line_total_cents(self.price_at_time_cents, self.quantity)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "quantity": self.quantity,
            "price_at_time_cents": self.price_at_time_cents,
            "price_at_time": format_cents(self.price_at_time_cents),
            "subtotal_cents": self.subtotal_cents,
            "subtotal": format_cents(self.subtotal_cents),
        }


class OrderTransaction(db.Model):
    """
    Direct payment against one order's remaining_amount_cents.

    Append-only; does not touch the shop-level debt ledger.
    """
    __tablename__ = "order_transactions"
    __table_args__ = (
        db.CheckConstraint("amount_cents > 0", name="ck_order_transactions_amount_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    amount_cents = db.Column(db.BigInteger, nullable=False)
    payment_type = db.Column(db.String(16), nullable=False)  # CASH, CARD
    comment = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    order = db.relationship("Order", backref=db.backref("transactions", lazy=True))
    user = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "user_id": self.user_id,
            "amount_cents": self.amount_cents,
            "amount": format_cents(self.amount_cents),
            "payment_type": self.payment_type,
            "comment": self.comment,
            "created_at": to_utc_z(self.created_at),
        }
