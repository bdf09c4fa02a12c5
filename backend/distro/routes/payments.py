# Overview: Flask API routes for shop payments and debt adjustments; parses input and returns JSON responses.

# backend/distro/routes/payments.py
"""
Shop Payment / Debt API Routes

- Receive a payment (reduces shop debt, cannot exceed it)
- Add historical (pre-system) debt
- Set a shop's debt to an exact value (correction, audited)
- Read debt, ledger history and payment stats
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth, require_role
from ..money import to_cents
from ..services import payment_service
from ..validation import ServiceError, optional_int, require_int


payments_bp = Blueprint("payments", __name__, url_prefix="/api/payments")

DISTRIBUTOR_ROLES = ("distributor", "employee")


def _limit(default: int) -> int:
    limit = optional_int(request.args.get("limit"), "limit")
    return max(1, min(limit, 500)) if limit else default


# =============================================================================
# LEDGER MUTATIONS
# =============================================================================

@payments_bp.post("")
@require_auth
@require_role(*DISTRIBUTOR_ROLES)
def record_payment_route():
    """
    Receive a payment from a shop.

    Request body:
    {
        "shop_id": 3,
        "amount": "21000.00",
        "payment_method": "cash",   (cash, card, transfer; default cash)
        "received_by": 7,           (optional, distributor or its employee)
        "notes": "..."              (optional)
    }

    Returns:
        201: Ledger entry with previous/new debt
        400: Invalid input or amount exceeds current debt
        404: Shop not found for this distributor
    """
    try:
        data = request.get_json(silent=True) or {}
        received_by = optional_int(data.get("received_by"), "received_by")
        if received_by is None and g.role == "employee":
            received_by = g.current_user.id

        result = payment_service.record_payment(
            distributor_id=g.distributor_id,
            shop_id=require_int(data.get("shop_id"), "shop_id"),
            amount_cents=to_cents(data.get("amount"), "amount"),
            method=data.get("payment_method"),
            received_by=received_by,
            notes=data.get("notes"),
        )
        return jsonify(result), 201

    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to record payment")
        return jsonify({"error": "internal_error", "message": "Internal server error"}), 500


@payments_bp.post("/manual-debt")
@require_auth
@require_role(*DISTRIBUTOR_ROLES)
def add_manual_debt_route():
    """
    Add debt that predates the system.

    Request body: {"shop_id": 3, "debt_amount": "5000", "notes": "pre-system balance"}
    """
    try:
        data = request.get_json(silent=True) or {}
        result = payment_service.add_manual_debt(
            distributor_id=g.distributor_id,
            shop_id=require_int(data.get("shop_id"), "shop_id"),
            debt_amount_cents=to_cents(data.get("debt_amount"), "debt_amount"),
            notes=data.get("notes"),
        )
        return jsonify(result), 201

    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to add manual debt")
        return jsonify({"error": "internal_error", "message": "Internal server error"}), 500


@payments_bp.post("/set-debt")
@require_auth
@require_role("distributor")
def set_exact_debt_route():
    """
    Set a shop's debt to an exact amount. Distributor only.

    Request body: {"shop_id": 3, "debt_amount": "3000", "notes": "..."}
    """
    try:
        data = request.get_json(silent=True) or {}
        result = payment_service.set_exact_debt(
            distributor_id=g.distributor_id,
            shop_id=require_int(data.get("shop_id"), "shop_id"),
            debt_amount_cents=to_cents(data.get("debt_amount"), "debt_amount"),
            notes=data.get("notes"),
        )
        return jsonify(result), 200

    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to set exact debt")
        return jsonify({"error": "internal_error", "message": "Internal server error"}), 500


# =============================================================================
# QUERIES
# =============================================================================

@payments_bp.get("")
@require_auth
@require_role(*DISTRIBUTOR_ROLES)
def list_ledger_route():
    try:
        entries = payment_service.list_ledger(g.distributor_id, limit=_limit(payment_service.DEFAULT_LEDGER_LIMIT))
        return jsonify({"entries": [e.to_dict() for e in entries]}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code


@payments_bp.get("/shops-with-debt")
@require_auth
@require_role(*DISTRIBUTOR_ROLES)
def shops_with_debt_route():
    shops = payment_service.list_shops_with_debt(g.distributor_id)
    return jsonify({"shops": [s.to_dict() for s in shops]}), 200


@payments_bp.get("/shops/<int:shop_id>/debt")
@require_auth
@require_role(*DISTRIBUTOR_ROLES)
def shop_debt_route(shop_id: int):
    try:
        shop = payment_service.get_shop_debt(g.distributor_id, shop_id)
        return jsonify({"shop": shop.to_dict()}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code


@payments_bp.get("/shops/<int:shop_id>/history")
@require_auth
@require_role(*DISTRIBUTOR_ROLES)
def debt_history_route(shop_id: int):
    try:
        history = payment_service.get_debt_history(
            g.distributor_id, shop_id, limit=_limit(payment_service.DEFAULT_HISTORY_LIMIT)
        )
        return jsonify(history), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code


@payments_bp.get("/shops/<int:shop_id>/stats")
@require_auth
@require_role(*DISTRIBUTOR_ROLES)
def payment_stats_route(shop_id: int):
    try:
        return jsonify(payment_service.get_payment_stats(g.distributor_id, shop_id)), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
