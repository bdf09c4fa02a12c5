# Overview: Flask API routes for debt aging and ledger reconciliation (distributor and admin views).

from flask import Blueprint, request, jsonify, g

from ..decorators import require_auth, require_role
from ..services import aging_service, ledger_service, payment_service
from ..time_utils import parse_iso_datetime, utcnow
from ..validation import ServiceError, ValidationError, optional_int


debt_bp = Blueprint("debt", __name__, url_prefix="/api/debt")
admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")


def _as_of():
    raw = request.args.get("as_of")
    if not raw:
        return utcnow()
    try:
        return parse_iso_datetime(raw)
    except ValueError:
        raise ValidationError("as_of must be an ISO-8601 datetime")


@debt_bp.get("/aging")
@require_auth
@require_role("distributor", "employee")
def distributor_aging_route():
    """Debt aging for the caller's shops (0-7, 7-30, 30-60, 60+ days by default)."""
    try:
        return jsonify(aging_service.get_debt_aging(g.distributor_id, now=_as_of())), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code


@debt_bp.get("/reconcile")
@require_auth
@require_role("distributor")
def distributor_reconcile_route():
    return jsonify(ledger_service.reconcile_distributor(g.distributor_id)), 200


@admin_bp.get("/debt/aging")
@require_auth
@require_role("admin")
def platform_aging_route():
    """Platform-wide debt aging (0-30, 30-60, 60+ days by default)."""
    try:
        return jsonify(aging_service.get_debt_aging(None, now=_as_of())), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code


@admin_bp.get("/payments")
@require_auth
@require_role("admin")
def platform_ledger_route():
    try:
        limit = optional_int(request.args.get("limit"), "limit") or payment_service.DEFAULT_LEDGER_LIMIT
        entries = payment_service.list_ledger(None, limit=max(1, min(limit, 500)))
        return jsonify({"entries": [e.to_dict() for e in entries]}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code


@admin_bp.get("/ledger/reconcile")
@require_auth
@require_role("admin")
def platform_reconcile_route():
    try:
        distributor_id = optional_int(request.args.get("distributor_id"), "distributor_id")
        return jsonify(ledger_service.reconcile_distributor(distributor_id)), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
