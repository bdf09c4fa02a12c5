# Overview: Pytest coverage for shop payments, manual debt and exact-debt corrections.

import pytest
from distro.models import LedgerEntry, Shop
from distro.models.ledger import KIND_CASH, KIND_CARD, KIND_MANUAL_DEBT, KIND_DEBT_ADJUSTMENT
from distro.services import order_service, payment_service
from distro.services.ledger_service import replay_shop_debt
from distro.services.notification_service import EVENT_PAYMENT_RECEIVED, EVENT_MANUAL_DEBT_ADDED
from distro.validation import ValidationError, NotFoundError, BusinessRuleError


@pytest.fixture
def indebted_shop(db_session, distributor, shop, products, notifications):
    """Shop owing 21000.00 from one order (2 x oil, 1 x sugar)."""
    oil, sugar = products
    order_service.place_order(distributor.id, shop.id, [
        {"product_id": oil.id, "quantity": 2},
        {"product_id": sugar.id, "quantity": 1},
    ])
    return shop


class TestRecordPayment:
    def test_full_payment_clears_debt(self, db_session, distributor, indebted_shop, notifications):
        result = payment_service.record_payment(distributor.id, indebted_shop.id, 21000_00)

        assert result["previous_debt_cents"] == 21000_00
        assert result["new_debt_cents"] == 0
        assert result["entry"]["amount_cents"] == 21000_00
        assert result["entry"]["kind"] == KIND_CASH
        assert result["entry"]["type"] == "payment_received"
        assert result["entry"]["received_by_user_id"] == distributor.id

        entries = db_session.query(LedgerEntry).filter_by(shop_id=indebted_shop.id).all()
        assert len(entries) == 2
        assert -sum(e.amount_cents for e in entries) == 0
        assert db_session.get(Shop, indebted_shop.id).total_debt_cents == 0

    def test_partial_payment(self, db_session, distributor, indebted_shop, notifications):
        result = payment_service.record_payment(distributor.id, indebted_shop.id, 1000_50, method=KIND_CARD)
        assert result["new_debt"] == "19999.50"
        assert result["entry"]["balance_after_cents"] == 19999_50

    def test_payment_on_zero_debt_rejected(self, db_session, distributor, shop, notifications):
        with pytest.raises(BusinessRuleError, match="exceeds total debt"):
            payment_service.record_payment(distributor.id, shop.id, 100_00)

        assert shop.total_debt_cents == 0
        assert db_session.query(LedgerEntry).count() == 0
        assert notifications.sent == []

    def test_overpayment_rejected(self, db_session, distributor, indebted_shop, notifications):
        with pytest.raises(BusinessRuleError):
            payment_service.record_payment(distributor.id, indebted_shop.id, 21000_01)
        assert indebted_shop.total_debt_cents == 21000_00

    @pytest.mark.parametrize("amount", [0, -500])
    def test_non_positive_amount_rejected(self, db_session, distributor, indebted_shop, amount):
        with pytest.raises(ValidationError):
            payment_service.record_payment(distributor.id, indebted_shop.id, amount)

    def test_unknown_method_rejected(self, db_session, distributor, indebted_shop):
        with pytest.raises(ValidationError):
            payment_service.record_payment(distributor.id, indebted_shop.id, 100, method="barter")

    def test_foreign_shop_not_found(self, db_session, other_distributor, indebted_shop):
        with pytest.raises(NotFoundError):
            payment_service.record_payment(other_distributor.id, indebted_shop.id, 100)
        assert indebted_shop.total_debt_cents == 21000_00

    def test_employee_can_receive(self, db_session, distributor, employee, indebted_shop, notifications):
        result = payment_service.record_payment(
            distributor.id, indebted_shop.id, 500_00, received_by=employee.id
        )
        assert result["entry"]["received_by_user_id"] == employee.id
        assert result["entry"]["received_by_name"] == "Agent A"

    def test_foreign_receiver_rejected(self, db_session, distributor, other_distributor, indebted_shop):
        with pytest.raises(ValidationError):
            payment_service.record_payment(
                distributor.id, indebted_shop.id, 500_00, received_by=other_distributor.id
            )
        assert indebted_shop.total_debt_cents == 21000_00

    def test_shop_is_notified(self, db_session, distributor, indebted_shop, notifications):
        payment_service.record_payment(distributor.id, indebted_shop.id, 1000_00)
        channel, kind, payload = notifications.sent[-1]
        assert channel == "1001"
        assert kind == EVENT_PAYMENT_RECEIVED
        assert payload["new_debt"] == "20000.00"


    def test_payload_failure_does_not_fail_payment(self, db_session, distributor, indebted_shop, notifications, monkeypatch):
        def broken_payload(shop, result):
            raise KeyError("entry")

        monkeypatch.setattr(payment_service, "_event_payload", broken_payload)
        sent_before = len(notifications.sent)

        result = payment_service.record_payment(distributor.id, indebted_shop.id, 1000_00)

        assert result["new_debt_cents"] == 20000_00
        assert db_session.get(Shop, indebted_shop.id).total_debt_cents == 20000_00
        assert len(notifications.sent) == sent_before


class TestManualDebt:
    def test_adds_historical_debt(self, db_session, distributor, shop, notifications):
        result = payment_service.add_manual_debt(distributor.id, shop.id, 5000_00, notes="pre-system balance")

        assert result["new_debt_cents"] == 5000_00
        assert result["added_amount_cents"] == 5000_00
        assert result["entry"]["amount_cents"] == -5000_00
        assert result["entry"]["kind"] == KIND_MANUAL_DEBT
        assert result["entry"]["type"] == "debt_added"
        assert result["entry"]["note"] == "pre-system balance"
        assert notifications.kinds() == [EVENT_MANUAL_DEBT_ADDED]

    def test_default_note(self, db_session, distributor, shop, notifications):
        result = payment_service.add_manual_debt(distributor.id, shop.id, 1_00)
        assert result["entry"]["note"] == payment_service.DEFAULT_MANUAL_DEBT_NOTE

    def test_zero_rejected(self, db_session, distributor, shop):
        with pytest.raises(ValidationError):
            payment_service.add_manual_debt(distributor.id, shop.id, 0)


class TestSetExactDebt:
    def test_correction_downwards(self, db_session, distributor, shop, notifications):
        payment_service.add_manual_debt(distributor.id, shop.id, 5000_00)

        result = payment_service.set_exact_debt(distributor.id, shop.id, 3000_00)

        assert result["entry"]["amount_cents"] == 2000_00
        assert result["entry"]["kind"] == KIND_DEBT_ADJUSTMENT
        assert result["entry"]["type"] == "adjustment"
        assert result["adjustment_cents"] == -2000_00
        assert shop.total_debt_cents == 3000_00
        assert replay_shop_debt(shop.id) == 3000_00

    def test_correction_upwards(self, db_session, distributor, shop, notifications):
        result = payment_service.set_exact_debt(distributor.id, shop.id, 750_00)
        assert result["entry"]["amount_cents"] == -750_00
        assert shop.total_debt_cents == 750_00

    def test_same_value_still_leaves_entry(self, db_session, distributor, shop, notifications):
        payment_service.add_manual_debt(distributor.id, shop.id, 5000_00)

        result = payment_service.set_exact_debt(distributor.id, shop.id, 5000_00)

        assert result["entry"]["amount_cents"] == 0
        assert db_session.query(LedgerEntry).filter_by(shop_id=shop.id).count() == 2

    def test_does_not_notify(self, db_session, distributor, shop, notifications):
        payment_service.set_exact_debt(distributor.id, shop.id, 100_00)
        assert notifications.sent == []

    def test_negative_rejected(self, db_session, distributor, shop):
        with pytest.raises(ValidationError):
            payment_service.set_exact_debt(distributor.id, shop.id, -1)


class TestReadSide:
    def test_history_newest_first(self, db_session, distributor, indebted_shop, notifications):
        payment_service.record_payment(distributor.id, indebted_shop.id, 1000_00)
        payment_service.add_manual_debt(distributor.id, indebted_shop.id, 200_00)

        history = payment_service.get_debt_history(distributor.id, indebted_shop.id)

        assert history["current_debt_cents"] == 20200_00
        assert [h["kind"] for h in history["history"]] == [KIND_MANUAL_DEBT, KIND_CASH, "order"]

    def test_history_limit(self, db_session, distributor, indebted_shop, notifications):
        payment_service.record_payment(distributor.id, indebted_shop.id, 1000_00)
        history = payment_service.get_debt_history(distributor.id, indebted_shop.id, limit=1)
        assert len(history["history"]) == 1

    def test_stats_count_only_payments(self, db_session, distributor, indebted_shop, notifications):
        payment_service.record_payment(distributor.id, indebted_shop.id, 1000_00)
        payment_service.record_payment(distributor.id, indebted_shop.id, 500_00, method="transfer")
        payment_service.add_manual_debt(distributor.id, indebted_shop.id, 300_00)

        stats = payment_service.get_payment_stats(distributor.id, indebted_shop.id)

        assert stats["total_paid_cents"] == 1500_00
        assert stats["payment_count"] == 2
        assert stats["entry_count"] == 4
        assert stats["current_debt_cents"] == 19800_00

    def test_shops_with_debt_ordered(self, db_session, distributor, indebted_shop, silent_shop, notifications):
        shops = payment_service.list_shops_with_debt(distributor.id)
        assert [s.id for s in shops] == [indebted_shop.id, silent_shop.id]

    def test_ledger_scoped_to_distributor(self, db_session, distributor, other_distributor, indebted_shop, foreign_shop, notifications):
        payment_service.add_manual_debt(other_distributor.id, foreign_shop.id, 100_00)

        own = payment_service.list_ledger(distributor.id)
        platform = payment_service.list_ledger(None)

        assert {e.distributor_id for e in own} == {distributor.id}
        assert len(platform) == 2
