# Overview: Pytest coverage for debt aging buckets.

"""
Debt Aging Tests

All cases run against a fixed clock; nothing here depends on the real date.
"""

from datetime import datetime, timedelta

import pytest
from distro.models import Order, Shop
from distro.services import aging_service
from distro.services.aging_service import build_buckets, bucket_shops
from distro.validation import ValidationError

NOW = datetime(2026, 10, 19, 12, 0)


def _row(days_old, debt_cents, **extra):
    return {"age_date": NOW - timedelta(days=days_old), "total_debt_cents": debt_cents, **extra}


def _indebted_shop(db_session, distributor, name, debt_cents, created_days_ago):
    shop = Shop(
        distributor_id=distributor.id,
        name=name,
        total_debt_cents=debt_cents,
        created_at=NOW - timedelta(days=created_days_ago),
    )
    db_session.add(shop)
    db_session.commit()
    return shop


class TestBuckets:
    def test_distributor_boundaries(self):
        keys = [b["key"] for b in build_buckets((7, 30, 60))]
        assert keys == ["0-7", "7-30", "30-60", "60+"]

    def test_platform_boundaries(self):
        keys = [b["key"] for b in build_buckets((30, 60))]
        assert keys == ["0-30", "30-60", "60+"]

    @pytest.mark.parametrize("boundaries", [(), (30, 7), (0, 30), (7, 7, 30)])
    def test_invalid_boundaries(self, boundaries):
        with pytest.raises(ValidationError):
            build_buckets(boundaries)

    @pytest.mark.parametrize("days_old, expected", [
        (0, "0-7"),
        (7, "0-7"),
        (8, "7-30"),
        (30, "7-30"),
        (45, "30-60"),
        (60, "30-60"),
        (61, "60+"),
        (400, "60+"),
    ])
    def test_exact_boundary_belongs_to_lower_bucket(self, days_old, expected):
        buckets = bucket_shops([_row(days_old, 100)], NOW, (7, 30, 60))
        assert [b["key"] for b in buckets if b["count"]] == [expected]

    def test_bucket_totals_sum_to_whole(self):
        rows = [_row(1, 100_00), _row(10, 250_00), _row(10, 50_00), _row(90, 1_00)]

        buckets = bucket_shops(rows, NOW, (7, 30, 60))

        assert [b["count"] for b in buckets] == [1, 2, 0, 1]
        assert sum(b["total_cents"] for b in buckets) == 401_00
        assert buckets[1]["total"] == "300.00"


class TestGetDebtAging:
    def test_uses_oldest_unpaid_order(self, db_session, distributor):
        shop = _indebted_shop(db_session, distributor, "Old Shop", 500_00, created_days_ago=200)
        for days, remaining in ((40, 100_00), (3, 400_00), (90, 0)):
            db_session.add(Order(
                distributor_id=distributor.id,
                shop_id=shop.id,
                total_price_cents=400_00,
                remaining_amount_cents=remaining,
                created_at=NOW - timedelta(days=days),
            ))
        db_session.commit()

        report = aging_service.get_debt_aging(distributor.id, now=NOW)

        by_key = {b["key"]: b for b in report["buckets"]}
        assert by_key["30-60"]["count"] == 1
        assert by_key["30-60"]["shops"][0]["id"] == shop.id
        assert report["scope"] == "distributor"
        assert report["as_of"] == "2026-10-19T12:00:00Z"

    def test_falls_back_to_shop_creation(self, db_session, distributor):
        _indebted_shop(db_session, distributor, "New Shop", 100_00, created_days_ago=2)
        _indebted_shop(db_session, distributor, "Legacy Shop", 900_00, created_days_ago=100)

        report = aging_service.get_debt_aging(distributor.id, now=NOW)

        by_key = {b["key"]: b for b in report["buckets"]}
        assert by_key["0-7"]["total_cents"] == 100_00
        assert by_key["60+"]["total_cents"] == 900_00
        assert report["total_cents"] == 1000_00
        assert report["shop_count"] == 2

    def test_shops_without_debt_excluded(self, db_session, distributor, shop):
        report = aging_service.get_debt_aging(distributor.id, now=NOW)
        assert report["shop_count"] == 0
        assert report["total"] == "0.00"

    def test_platform_view_spans_distributors(self, db_session, distributor, other_distributor):
        _indebted_shop(db_session, distributor, "A", 100_00, created_days_ago=10)
        _indebted_shop(db_session, other_distributor, "B", 200_00, created_days_ago=45)

        report = aging_service.get_debt_aging(None, now=NOW)

        assert report["scope"] == "platform"
        assert report["boundaries"] == [30, 60]
        assert [b["count"] for b in report["buckets"]] == [1, 1, 0]

    def test_distributor_view_is_scoped(self, db_session, distributor, other_distributor):
        _indebted_shop(db_session, other_distributor, "B", 200_00, created_days_ago=45)
        report = aging_service.get_debt_aging(distributor.id, now=NOW)
        assert report["shop_count"] == 0

    def test_configured_boundaries(self, app, db_session, distributor):
        _indebted_shop(db_session, distributor, "A", 100_00, created_days_ago=10)
        original = app.config["DEBT_AGING_BUCKETS"]
        app.config["DEBT_AGING_BUCKETS"] = (14,)
        try:
            report = aging_service.get_debt_aging(distributor.id, now=NOW)
        finally:
            app.config["DEBT_AGING_BUCKETS"] = original

        assert [b["key"] for b in report["buckets"]] == ["0-14", "14+"]
        assert report["buckets"][0]["count"] == 1
