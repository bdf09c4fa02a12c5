# Overview: Read-side debt aging over the shop ledger; pure bucketing driven by an injected clock.

from __future__ import annotations

from datetime import datetime
from typing import Iterable, Sequence

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import Order, Shop
from ..money import format_cents, sum_cents
from ..time_utils import days_ago, to_naive_utc, to_utc_z, utcnow
from ..validation import ValidationError

DISTRIBUTOR_AGING_BOUNDARIES = (7, 30, 60)
PLATFORM_AGING_BOUNDARIES = (30, 60)

SCOPE_DISTRIBUTOR = "distributor"
SCOPE_PLATFORM = "platform"


def build_buckets(boundaries: Sequence[int]) -> list[dict]:
    """
    (7, 30, 60) -> 0-7, 7-30, 30-60, 60+ day buckets.

    A shop whose debt is exactly N days old falls in the bucket that ends at N.
    """
    days = [int(d) for d in boundaries]
    if not days or any(d <= 0 for d in days) or days != sorted(set(days)):
        raise ValidationError(
            "Aging boundaries must be strictly increasing positive day counts",
            details={"boundaries": list(boundaries)},
        )

    buckets = []
    lower = 0
    for upper in days:
        buckets.append({"key": f"{lower}-{upper}", "min_days": lower, "max_days": upper})
        lower = upper
    buckets.append({"key": f"{lower}+", "min_days": lower, "max_days": None})
    return buckets


def classify(age_date: datetime, now: datetime, buckets: list[dict]) -> int:
    """Index of the bucket an age date falls in, relative to `now`."""
    age_date = to_naive_utc(age_date)
    for index, bucket in enumerate(buckets):
        if bucket["max_days"] is None or age_date >= days_ago(now, bucket["max_days"]):
            return index
    return len(buckets) - 1


def bucket_shops(rows: Iterable[dict], now: datetime, boundaries: Sequence[int]) -> list[dict]:
    """
    Pure aggregation: rows carry `age_date` and `total_debt_cents`.

    Returns buckets with count, summed debt and the rows in each.
    """
    buckets = build_buckets(boundaries)
    grouped: list[list[dict]] = [[] for _ in buckets]
    for row in rows:
        grouped[classify(row["age_date"], now, buckets)].append(row)

    for bucket, members in zip(buckets, grouped):
        total = sum_cents(row["total_debt_cents"] for row in members)
        bucket["count"] = len(members)
        bucket["total_cents"] = total
        bucket["total"] = format_cents(total)
        bucket["shops"] = members
    return buckets


def _oldest_unpaid_order_dates(shop_ids: list[int]) -> dict[int, datetime]:
    if not shop_ids:
        return {}
    rows = (
        db.session.query(Order.shop_id, func.min(Order.created_at))
        .filter(Order.shop_id.in_(shop_ids), Order.remaining_amount_cents > 0)
        .group_by(Order.shop_id)
        .all()
    )
    return {shop_id: oldest for shop_id, oldest in rows}


def _configured_boundaries(scope: str) -> tuple[int, ...]:
    if scope == SCOPE_PLATFORM:
        return tuple(current_app.config.get("ADMIN_DEBT_AGING_BUCKETS", PLATFORM_AGING_BOUNDARIES))
    return tuple(current_app.config.get("DEBT_AGING_BUCKETS", DISTRIBUTOR_AGING_BOUNDARIES))


def get_debt_aging(
    distributor_id: int | None = None,
    *,
    now: datetime | None = None,
    boundaries: Sequence[int] | None = None,
) -> dict:
    """
    Bucket shops with positive debt by how long the debt has been open.

    Age is measured from the shop's oldest order that still has a remaining
    amount, falling back to the shop's creation date. distributor_id=None
    gives the platform-wide view, which has its own boundary set.
    """
    scope = SCOPE_PLATFORM if distributor_id is None else SCOPE_DISTRIBUTOR
    now = to_naive_utc(now) if now is not None else utcnow()
    if boundaries is None:
        boundaries = _configured_boundaries(scope)

    query = db.session.query(Shop).filter(Shop.total_debt_cents > 0)
    if distributor_id is not None:
        query = query.filter(Shop.distributor_id == distributor_id)
    shops = query.order_by(Shop.id).all()

    oldest = _oldest_unpaid_order_dates([shop.id for shop in shops])
    rows = []
    for shop in shops:
        age_date = oldest.get(shop.id) or shop.created_at
        rows.append({
            "id": shop.id,
            "name": shop.name,
            "owner_name": shop.owner_name,
            "phone": shop.phone,
            "distributor_id": shop.distributor_id,
            "total_debt_cents": shop.total_debt_cents,
            "total_debt": format_cents(shop.total_debt_cents),
            "age_date": age_date,
        })

    buckets = bucket_shops(rows, now, boundaries)
    for bucket in buckets:
        for row in bucket["shops"]:
            row["age_date"] = to_utc_z(row["age_date"])

    total = sum_cents(bucket["total_cents"] for bucket in buckets)
    return {
        "scope": scope,
        "distributor_id": distributor_id,
        "as_of": to_utc_z(now),
        "boundaries": list(boundaries),
        "buckets": buckets,
        "shop_count": len(rows),
        "total_cents": total,
        "total": format_cents(total),
    }
