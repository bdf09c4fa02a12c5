# Overview: Pytest coverage for the shop debt ledger invariant and reconciliation.

"""
Ledger Invariant Tests

For every shop, at every point: total_debt_cents == -SUM(amount_cents).
Entries are append-only; reconciliation reports drift without fixing it.
"""

import pytest
from distro.extensions import db
from distro.models import LedgerEntry, Shop
from distro.models.ledger import LedgerEntryImmutableError
from distro.services import order_service, payment_service
from distro.validation import BusinessRuleError
from distro.services.ledger_service import (
    apply_debt_change,
    reconcile_distributor,
    reconcile_shop,
    replay_shop_debt,
    set_debt,
)


def _assert_consistent(shop):
    assert shop.total_debt_cents == replay_shop_debt(shop.id)
    last = (
        db.session.query(LedgerEntry).filter_by(shop_id=shop.id)
        .order_by(LedgerEntry.id.desc())
        .first()
    )
    if last is not None:
        assert last.balance_after_cents == shop.total_debt_cents


class TestInvariant:
    def test_mixed_sequence_stays_consistent(self, db_session, distributor, employee, shop, products, notifications):
        oil, sugar = products

        order_service.place_order(distributor.id, shop.id, [{"product_id": oil.id, "quantity": 2}])
        _assert_consistent(shop)
        payment_service.record_payment(distributor.id, shop.id, 5000_00, received_by=employee.id)
        _assert_consistent(shop)
        payment_service.add_manual_debt(distributor.id, shop.id, 1234_56)
        _assert_consistent(shop)
        order_service.place_order(distributor.id, shop.id, [{"product_id": sugar.id, "quantity": 3}])
        _assert_consistent(shop)
        payment_service.set_exact_debt(distributor.id, shop.id, 10_00)
        _assert_consistent(shop)
        payment_service.record_payment(distributor.id, shop.id, 10_00, method="transfer")
        _assert_consistent(shop)

        assert shop.total_debt_cents == 0
        assert reconcile_shop(shop)["consistent"] is True

    def test_rejected_operations_leave_no_entries(self, db_session, distributor, shop, products, notifications):
        oil, _ = products
        with pytest.raises(BusinessRuleError):
            order_service.place_order(distributor.id, shop.id, [{"product_id": oil.id, "quantity": 50}])
        with pytest.raises(BusinessRuleError):
            payment_service.record_payment(distributor.id, shop.id, 1_00)

        assert db_session.query(LedgerEntry).count() == 0
        _assert_consistent(shop)

    def test_apply_debt_change_sign_convention(self, db_session, distributor, shop):
        entry = apply_debt_change(shop, debt_delta_cents=700_00, kind="manual_debt", distributor_id=distributor.id)
        db_session.commit()

        assert entry.amount_cents == -700_00
        assert entry.balance_after_cents == 700_00
        assert shop.total_debt_cents == 700_00

    def test_set_debt_default_note(self, db_session, distributor, shop):
        entry, delta = set_debt(shop, 250_00, distributor_id=distributor.id)
        db_session.commit()

        assert delta == 250_00
        assert entry.note == "Debt corrected: 0.00 -> 250.00"


class TestAppendOnly:
    def test_update_rejected(self, db_session, distributor, shop, notifications):
        payment_service.add_manual_debt(distributor.id, shop.id, 100_00)
        entry = db_session.query(LedgerEntry).one()

        entry.note = "rewritten"
        with pytest.raises(LedgerEntryImmutableError):
            db_session.commit()
        db_session.rollback()

        assert db_session.query(LedgerEntry).one().note == payment_service.DEFAULT_MANUAL_DEBT_NOTE

    def test_delete_rejected(self, db_session, distributor, shop, notifications):
        payment_service.add_manual_debt(distributor.id, shop.id, 100_00)
        entry = db_session.query(LedgerEntry).one()

        db_session.delete(entry)
        with pytest.raises(LedgerEntryImmutableError):
            db_session.commit()
        db_session.rollback()

        assert db_session.query(LedgerEntry).count() == 1


class TestReconcile:
    def test_clean_ledger(self, db_session, distributor, shop, silent_shop, notifications):
        payment_service.add_manual_debt(distributor.id, shop.id, 100_00)

        report = reconcile_distributor(distributor.id)

        assert report["consistent"] is True
        assert report["shops_checked"] == 2
        assert report["mismatches"] == []

    def test_drift_is_reported_not_fixed(self, db_session, distributor, shop, notifications):
        payment_service.add_manual_debt(distributor.id, shop.id, 100_00)
        # Simulate a write that bypassed the ledger.
        shop.total_debt_cents = 150_00
        db_session.commit()

        report = reconcile_distributor(distributor.id)

        assert report["consistent"] is False
        assert report["mismatches"] == [{
            "shop_id": shop.id,
            "shop_name": shop.name,
            "distributor_id": distributor.id,
            "stored_debt_cents": 150_00,
            "replayed_debt_cents": 100_00,
            "difference_cents": 50_00,
        }]
        assert db_session.get(Shop, shop.id).total_debt_cents == 150_00

    def test_platform_scope(self, db_session, distributor, shop, foreign_shop):
        report = reconcile_distributor(None)
        assert report["distributor_id"] is None
        assert report["shops_checked"] == 2
