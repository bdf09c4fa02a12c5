# Overview: Flask API routes for orders and direct order payments; parses input and returns JSON responses.

# backend/distro/routes/orders.py
"""
Order API Routes

- Place an order (stock reservation + on-account debt)
- Mark an order delivered
- Record and list direct payments against one order
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth, require_role
from ..money import to_cents
from ..services import order_service, order_payment_service
from ..validation import ServiceError, optional_int, require_int


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")

STAFF_ROLES = ("distributor", "employee", "admin")


def _scope() -> int | None:
    """Admins see every distributor's orders; everyone else only their own."""
    return None if g.role == "admin" else g.distributor_id


@orders_bp.post("")
@require_auth
@require_role("distributor", "employee")
def place_order_route():
    """
    Place an order for a shop.

    Request body:
    {
        "shop_id": 3,
        "items": [{"product_id": 1, "quantity": 2}, ...]
    }

    Returns:
        201: Order with items and the shop's previous/new debt
        400: Invalid items, unknown product, insufficient stock
        404: Unknown shop
        409: Concurrent modification, retry
    """
    try:
        data = request.get_json(silent=True) or {}
        shop_id = require_int(data.get("shop_id"), "shop_id")

        result = order_service.place_order(
            distributor_id=g.distributor_id,
            shop_id=shop_id,
            items=data.get("items"),
            actor_user_id=g.current_user.id,
        )
        return jsonify(result), 201

    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to place order")
        return jsonify({"error": "internal_error", "message": "Internal server error"}), 500


@orders_bp.get("")
@require_auth
@require_role(*STAFF_ROLES)
def list_orders_route():
    try:
        orders = order_service.list_orders(
            _scope(),
            shop_id=optional_int(request.args.get("shop_id"), "shop_id"),
            status=request.args.get("status"),
        )
        return jsonify({"orders": [o.to_dict() for o in orders]}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code


@orders_bp.get("/<int:order_id>")
@require_auth
@require_role(*STAFF_ROLES)
def get_order_route(order_id: int):
    try:
        order = order_service.get_order(order_id, _scope())
        return jsonify({"order": order.to_dict(include_items=True)}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code


@orders_bp.patch("/<int:order_id>/deliver")
@require_auth
@require_role(*STAFF_ROLES)
def deliver_order_route(order_id: int):
    """Mark an order delivered. Repeating the call is a no-op."""
    try:
        result = order_service.mark_delivered(order_id, _scope())
        return jsonify(result), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to mark order delivered")
        return jsonify({"error": "internal_error", "message": "Internal server error"}), 500


@orders_bp.post("/<int:order_id>/transactions")
@require_auth
@require_role(*STAFF_ROLES)
def add_order_payment_route(order_id: int):
    """
    Pay part of one order directly. Does not change the shop's debt.

    Request body:
    {
        "amount": "5000.00",
        "payment_type": "CASH",
        "comment": "paid at delivery"
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        result = order_payment_service.record_order_payment(
            order_id=order_id,
            user_id=g.current_user.id,
            amount_cents=to_cents(data.get("amount"), "amount"),
            payment_type=data.get("payment_type"),
            comment=data.get("comment"),
            distributor_id=_scope(),
        )
        return jsonify(result), 201

    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to record order payment")
        return jsonify({"error": "internal_error", "message": "Internal server error"}), 500


@orders_bp.get("/<int:order_id>/transactions")
@require_auth
@require_role(*STAFF_ROLES)
def list_order_payments_route(order_id: int):
    try:
        transactions = order_payment_service.list_order_payments(order_id, _scope())
        return jsonify({"order_id": order_id, "transactions": [t.to_dict() for t in transactions]}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
