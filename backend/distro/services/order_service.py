# Overview: Service-layer operations for orders; stock reservation, price snapshots and on-account debt.

"""
Order Engine

An order is an on-account sale: placing it reserves stock, snapshots each
product's price, and raises the shop's running debt by the order total.

PLACEMENT INVARIANTS:
- All-or-nothing: stock decrements, order + item rows and the debt ledger
  entry commit together or not at all.
- Stock is re-read under lock inside the transaction; it never goes negative.
- priceAtTime is copied from the product at validation time and never
  follows later price changes.
- Totals are summed in integer cents.
- The shop notification is sent after commit and cannot fail the order.
"""

from __future__ import annotations

from ..extensions import db, notifier
from ..models import Order, OrderItem, Product
from ..models.ledger import KIND_ORDER
from ..models.orders import ORDER_STATUS_PENDING, ORDER_STATUS_DELIVERED, VALID_ORDER_STATUSES
from ..money import format_cents, line_total_cents, sum_cents
from ..time_utils import utcnow
from ..validation import ValidationError, NotFoundError, BusinessRuleError, require_positive_int
from .concurrency import begin_write_transaction, lock_for_update, run_with_retry
from .ledger_service import apply_debt_change
from .notification_service import EVENT_ORDER_CREATED, EVENT_ORDER_DELIVERED
from .tenant_service import require_distributor, require_shop_for_distributor


def normalize_items(items) -> list[dict]:
    """Validate the request shape before any database work."""
    if not items or not isinstance(items, (list, tuple)):
        raise ValidationError("Order must contain at least one item")

    lines = []
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            raise ValidationError(f"items[{index}] must be an object")
        lines.append({
            "product_id": require_positive_int(item.get("product_id"), f"items[{index}].product_id"),
            "quantity": require_positive_int(item.get("quantity"), f"items[{index}].quantity"),
        })
    return lines


def _lock_products(product_ids: list[int], distributor_id: int) -> dict[int, Product]:
    # Locks are taken in id order so two orders over the same products
    # cannot deadlock each other.
    rows = lock_for_update(
        db.session.query(Product)
        .filter(Product.id.in_(product_ids), Product.distributor_id == distributor_id)
        .order_by(Product.id)
    ).all()
    return {product.id: product for product in rows}


def place_order(distributor_id: int, shop_id: int, items, actor_user_id: int | None = None) -> dict:
    """
    Create an order, reserve stock and add its total to the shop's debt.

    Returns the order (with items) plus the shop's previous and new debt.

    Raises:
        ValidationError: empty/malformed items, unknown product id
        NotFoundError: unknown distributor or shop
        BusinessRuleError: quantity exceeds available stock
    """
    lines = normalize_items(items)

    def _op():
        begin_write_transaction()

        distributor = require_distributor(distributor_id)
        shop = require_shop_for_distributor(shop_id, distributor_id, lock=True)

        product_ids = sorted({line["product_id"] for line in lines})
        products = _lock_products(product_ids, distributor_id)

        for line in lines:
            if line["product_id"] not in products:
                raise ValidationError(
                    f"Product not found: {line['product_id']}",
                    details={"product_id": line["product_id"]},
                )

        order_items = []
        subtotals = []
        for line in lines:
            product = products[line["product_id"]]
            quantity = line["quantity"]

            if quantity > product.stock:
                raise BusinessRuleError(
                    f"Not enough stock for product {product.id}. Available: {product.stock}",
                    details={
                        "product_id": product.id,
                        "requested_quantity": quantity,
                        "available": product.stock,
                    },
                )

            subtotals.append(line_total_cents(product.price_cents, quantity))
            order_items.append(OrderItem(
                product_id=product.id,
                quantity=quantity,
                price_at_time_cents=product.price_cents,
            ))
            product.stock -= quantity

        total_cents = sum_cents(subtotals)
        now = utcnow()

        order = Order(
            distributor_id=distributor.id,
            shop_id=shop.id,
            created_by_user_id=actor_user_id or distributor.id,
            total_price_cents=total_cents,
            remaining_amount_cents=total_cents,
            status=ORDER_STATUS_PENDING,
            created_at=now,
            items=order_items,
        )
        db.session.add(order)
        db.session.flush()

        previous_debt = shop.total_debt_cents or 0
        entry = apply_debt_change(
            shop,
            debt_delta_cents=total_cents,
            kind=KIND_ORDER,
            distributor_id=distributor.id,
            received_by_user_id=actor_user_id or distributor.id,
            order_id=order.id,
            note=f"Order #{order.id}",
        )

        db.session.commit()
        return order, entry, previous_debt

    order, entry, previous_debt = run_with_retry(_op)

    result = {
        "order": order.to_dict(include_items=True),
        "ledger_entry": entry.to_dict(),
        "previous_debt_cents": previous_debt,
        "previous_debt": format_cents(previous_debt),
        "new_debt_cents": order.shop.total_debt_cents,
        "new_debt": format_cents(order.shop.total_debt_cents),
    }
    notifier.notify(order.shop.chat_id, EVENT_ORDER_CREATED, lambda: _order_event_payload(order, result["order"]))
    return result


def _order_event_payload(order: Order, order_data: dict) -> dict:
    actor = order.created_by or order.distributor
    order_data = dict(order_data)
    order_data["paid_amount"] = format_cents(order.total_price_cents - order.remaining_amount_cents)
    if "items" not in order_data:
        order_data["items"] = [item.to_dict() for item in order.items]
    return {
        "order": order_data,
        "shop": {"id": order.shop.id, "name": order.shop.name},
        "actor": {"id": actor.id, "name": actor.name, "phone": actor.phone} if actor else None,
    }


def _get_order_scoped(order_id: int, distributor_id: int | None, *, lock: bool = False) -> Order:
    query = db.session.query(Order).filter_by(id=order_id)
    if distributor_id is not None:
        query = query.filter_by(distributor_id=distributor_id)
    if lock:
        query = lock_for_update(query)
    order = query.first()
    if not order:
        raise NotFoundError(f"Order with ID {order_id} not found", details={"order_id": order_id})
    return order


def mark_delivered(order_id: int, distributor_id: int | None = None) -> dict:
    """
    Transition pending -> delivered and stamp delivered_at.

    Calling it again on a delivered order changes nothing and does not
    notify a second time.
    """
    def _op():
        begin_write_transaction()
        order = _get_order_scoped(order_id, distributor_id, lock=True)
        if order.status == ORDER_STATUS_DELIVERED:
            return order, False

        order.status = ORDER_STATUS_DELIVERED
        order.delivered_at = utcnow()
        db.session.commit()
        return order, True

    order, changed = run_with_retry(_op)
    data = order.to_dict(include_items=True)
    if changed:
        notifier.notify(order.shop.chat_id, EVENT_ORDER_DELIVERED, lambda: _order_event_payload(order, data))
    return {"order": data, "changed": changed}


def get_order(order_id: int, distributor_id: int | None = None) -> Order:
    return _get_order_scoped(order_id, distributor_id)


def list_orders(distributor_id: int | None, shop_id: int | None = None, status: str | None = None) -> list[Order]:
    query = db.session.query(Order)
    if distributor_id is not None:
        query = query.filter(Order.distributor_id == distributor_id)
    if shop_id is not None:
        query = query.filter(Order.shop_id == shop_id)
    if status:
        if status not in VALID_ORDER_STATUSES:
            raise ValidationError(f"status must be one of {sorted(VALID_ORDER_STATUSES)}")
        query = query.filter(Order.status == status)
    return query.order_by(Order.created_at.desc(), Order.id.desc()).all()

