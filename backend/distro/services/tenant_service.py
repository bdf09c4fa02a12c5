"""
Multi-Tenant Service: Distributor Scoping Helpers

Every shop, product, order and ledger entry belongs to exactly one
distributor. Lookups that take a client-supplied id are always filtered by
the acting distributor; a foreign-tenant id is reported exactly like a
missing one so existence is never revealed.
"""

from __future__ import annotations

from ..extensions import db
from ..models import User, Employee, Shop
from ..models.accounts import ROLE_DISTRIBUTOR, ROLE_EMPLOYEE
from ..validation import NotFoundError, ValidationError
from .concurrency import lock_for_update


def resolve_distributor_id(user: User) -> int | None:
    """
    Distributor a user acts for: itself, its employer, or None for admins.
    """
    if user.role == ROLE_DISTRIBUTOR:
        return user.id
    if user.role == ROLE_EMPLOYEE:
        link = db.session.query(Employee).filter_by(user_id=user.id).first()
        return link.distributor_id if link else None
    return None


def require_distributor(distributor_id: int) -> User:
    distributor = (
        db.session.query(User)
        .filter_by(id=distributor_id, role=ROLE_DISTRIBUTOR)
        .first()
    )
    if not distributor:
        raise NotFoundError("Distributor not found", details={"distributor_id": distributor_id})
    return distributor


def require_shop_for_distributor(shop_id: int, distributor_id: int, *, lock: bool = False) -> Shop:
    """
    Load a shop owned by the distributor.

    With lock=True the row is selected FOR UPDATE; call inside the
    transaction that will change the shop's balance.
    """
    query = db.session.query(Shop).filter_by(id=shop_id, distributor_id=distributor_id)
    if lock:
        query = lock_for_update(query)
    shop = query.first()
    if not shop:
        raise NotFoundError(
            "Shop not found or does not belong to you",
            details={"shop_id": shop_id},
        )
    return shop


def require_receiver(user_id: int, distributor_id: int) -> User:
    """
    A payment may only be received by the distributor or one of its employees.
    """
    if user_id == distributor_id:
        return db.session.get(User, user_id)
    link = (
        db.session.query(Employee)
        .filter_by(user_id=user_id, distributor_id=distributor_id)
        .first()
    )
    if not link:
        raise ValidationError(
            "received_by must be the distributor or one of its employees",
            details={"received_by": user_id},
        )
    return link.user
