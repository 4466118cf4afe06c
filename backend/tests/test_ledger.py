"""
Stock ledger tests.

Verifies:
- Appends update the projection in the same transaction
- Decrements floor at zero and record the shortfall (clamp policy)
- The reject policy refuses decrements that would go negative
- Rejected appends leave ledger, projection, outbox and notifications untouched
- Notifications reach subscribers only after commit
"""

from datetime import timedelta

import pytest

from stockroom.errors import AuthorizationError, NotFoundError, ValidationError
from stockroom.models import Notification, OutboxEntry, StockMovement, StoreStock
from stockroom.models.communications import OUTBOX_KIND_STOCK_MOVEMENT
from stockroom.services import inventory_service, ledger_service, notification_service
from stockroom.time_utils import utcnow


def _append(store, article, actor, movement_type, quantity, **kwargs):
    return ledger_service.append(
        store_id=store.id,
        article_id=article.id,
        movement_type=movement_type,
        quantity=quantity,
        actor_id=actor.id,
        **kwargs,
    )


def _counts(db_session):
    return (
        db_session.query(StockMovement).count(),
        db_session.query(StoreStock).count(),
        db_session.query(OutboxEntry).count(),
        db_session.query(Notification).count(),
    )


# =============================================================================
# FOLD
# =============================================================================


class TestApplyMovement:

    def test_inbound_adds(self):
        assert ledger_service.apply_movement(5, "in", 3) == (8, 0)
        assert ledger_service.apply_movement(0, "transfer_in", 4) == (4, 0)

    def test_outbound_subtracts(self):
        assert ledger_service.apply_movement(5, "out", 3) == (2, 0)
        assert ledger_service.apply_movement(5, "transfer_out", 5) == (0, 0)

    def test_outbound_floors_at_zero(self):
        assert ledger_service.apply_movement(3, "out", 10) == (0, 7)

    def test_fold_is_stepwise(self):
        class M:
            def __init__(self, movement_type, quantity):
                self.movement_type = movement_type
                self.quantity = quantity

        # in 5, out 10 (floors at 0), in 3 -> 3, not the naive sum -2
        assert inventory_service.fold_movements([M("in", 5), M("out", 10), M("in", 3)]) == 3


# =============================================================================
# APPEND
# =============================================================================


class TestAppend:

    def test_in_then_out_updates_projection(self, manager, store_a, article):
        first = _append(store_a, article, manager, "in", 20, notes="Delivery")
        assert first.previous_stock == 0
        assert first.new_stock == 20
        assert first.performed_by_user_id == manager.id
        assert first.notes == "Delivery"

        second = _append(store_a, article, manager, "out", 8)
        assert second.previous_stock == 20
        assert second.new_stock == 12
        assert second.shortfall == 0

        assert inventory_service.get_on_hand(store_a.id, article.id) == 12

    def test_stores_are_independent(self, manager, store_a, store_b, article):
        _append(store_a, article, manager, "in", 7)
        _append(store_b, article, manager, "in", 4)
        assert inventory_service.get_on_hand(store_a.id, article.id) == 7
        assert inventory_service.get_on_hand(store_b.id, article.id) == 4
        assert inventory_service.get_article_stock(article.id) == 11

    def test_decrement_below_zero_is_clamped(self, manager, store_a, article):
        _append(store_a, article, manager, "in", 3)
        movement = _append(store_a, article, manager, "out", 10)

        assert movement.quantity == 10
        assert movement.previous_stock == 3
        assert movement.new_stock == 0
        assert movement.shortfall == 7
        assert inventory_service.get_on_hand(store_a.id, article.id) == 0

    def test_conservation_with_shortfall(self, manager, store_a, article):
        _append(store_a, article, manager, "in", 5)
        _append(store_a, article, manager, "out", 9)
        _append(store_a, article, manager, "in", 6)
        _append(store_a, article, manager, "out", 2)

        movements = ledger_service.get_movements(store_id=store_a.id, article_id=article.id)
        signed = sum(m.signed_quantity for m in movements)
        shortfall = sum(m.shortfall for m in movements)
        on_hand = inventory_service.get_on_hand(store_a.id, article.id)

        assert on_hand == 4
        assert on_hand == signed + shortfall
        assert on_hand == inventory_service.fold_movements(movements)

    def test_reject_policy_refuses_negative(self, reject_policy, db_session, manager, store_a, article):
        _append(store_a, article, manager, "in", 3)
        before = _counts(db_session)

        with pytest.raises(ValidationError, match="Insufficient stock"):
            _append(store_a, article, manager, "out", 4)

        assert _counts(db_session) == before
        assert inventory_service.get_on_hand(store_a.id, article.id) == 3

    def test_successful_append_enqueues_sync(self, db_session, manager, store_a, article):
        movement = _append(store_a, article, manager, "in", 2)
        entries = db_session.query(OutboxEntry).all()
        assert len(entries) == 1
        assert entries[0].kind == OUTBOX_KIND_STOCK_MOVEMENT
        assert entries[0].payload_data["id"] == movement.id
        assert entries[0].payload_data["quantity"] == 2


# =============================================================================
# REJECTED APPENDS
# =============================================================================


class TestRejectedAppend:

    def test_unauthorized_actor_writes_nothing(self, db_session, notifications, clerk, store_a, article):
        with pytest.raises(AuthorizationError):
            _append(store_a, article, clerk, "in", 5)
        assert _counts(db_session) == (0, 0, 0, 0)
        assert notifications == []

    def test_other_store_writes_nothing(self, db_session, store_a_manager, store_b, article):
        with pytest.raises(AuthorizationError):
            _append(store_b, article, store_a_manager, "in", 5)
        assert _counts(db_session) == (0, 0, 0, 0)

    def test_failure_after_write_rolls_back(self, monkeypatch, db_session, manager, store_a, article):
        def broken_alert(*args, **kwargs):
            raise RuntimeError("sink unavailable")

        monkeypatch.setattr(notification_service, "add_alert", broken_alert)
        with pytest.raises(RuntimeError):
            _append(store_a, article, manager, "in", 5)

        db_session.commit()
        assert _counts(db_session) == (0, 0, 0, 0)
        assert inventory_service.get_on_hand(store_a.id, article.id) == 0

    @pytest.mark.parametrize("quantity", [0, -3, 1.5, "4", True])
    def test_bad_quantity(self, db_session, manager, store_a, article, quantity):
        with pytest.raises(ValidationError):
            _append(store_a, article, manager, "in", quantity)
        assert _counts(db_session) == (0, 0, 0, 0)

    def test_bad_movement_type(self, db_session, manager, store_a, article):
        with pytest.raises(ValidationError):
            _append(store_a, article, manager, "adjust", 1)
        assert _counts(db_session) == (0, 0, 0, 0)

    def test_inactive_article(self, db_session, manager, store_a, retired_article):
        with pytest.raises(ValidationError, match="inactive"):
            _append(store_a, retired_article, manager, "in", 1)
        assert _counts(db_session) == (0, 0, 0, 0)

    def test_unknown_article(self, db_session, manager, store_a):
        with pytest.raises(NotFoundError):
            ledger_service.append(
                store_id=store_a.id, article_id=9999, movement_type="in", quantity=1, actor_id=manager.id
            )

    def test_inactive_store(self, superadmin, closed_store, article):
        with pytest.raises(ValidationError, match="inactive"):
            _append(closed_store, article, superadmin, "in", 1)


# =============================================================================
# NOTIFICATIONS
# =============================================================================


class TestAppendNotifications:

    def test_subscriber_hears_committed_append(self, db_session, notifications, manager, store_a, article):
        _append(store_a, article, manager, "in", 4)
        assert len(notifications) == 1
        assert notifications[0]["type"] == "info"
        assert notifications[0]["title"] == "Stock in"
        assert notifications[0]["store_id"] == store_a.id
        assert "Espresso beans" in notifications[0]["message"]
        assert db_session.query(Notification).count() == 1

    def test_clamped_append_warns(self, notifications, manager, store_a, article):
        _append(store_a, article, manager, "out", 2)
        assert notifications[-1]["type"] == "warning"
        assert "unaccounted" in notifications[-1]["message"]

    def test_broken_subscriber_does_not_undo_write(self, manager, store_a, article):
        from stockroom.services import notification_service

        def _boom(payload):
            raise RuntimeError("subscriber down")

        unsubscribe = notification_service.subscribe(_boom)
        try:
            _append(store_a, article, manager, "in", 1)
        finally:
            unsubscribe()
        assert inventory_service.get_on_hand(store_a.id, article.id) == 1


# =============================================================================
# READS
# =============================================================================


class TestGetMovements:

    def test_ordered_by_creation(self, manager, store_a, store_b, article, loose_article):
        a = _append(store_a, article, manager, "in", 1)
        b = _append(store_b, article, manager, "in", 2)
        c = _append(store_a, loose_article, manager, "in", 3)
        d = _append(store_a, article, manager, "out", 1)

        assert [m.id for m in ledger_service.get_movements()] == [a.id, b.id, c.id, d.id]
        assert [m.id for m in ledger_service.get_movements(store_id=store_a.id)] == [a.id, c.id, d.id]
        assert [m.id for m in ledger_service.get_movements(article_id=article.id)] == [a.id, b.id, d.id]
        assert [m.id for m in ledger_service.get_movements(movement_type="out")] == [d.id]
        assert [m.id for m in ledger_service.get_movements(limit=2)] == [a.id, b.id]

    def test_time_window(self, manager, store_a, article):
        movement = _append(store_a, article, manager, "in", 1)
        future = utcnow() + timedelta(hours=1)
        past = utcnow() - timedelta(hours=1)

        assert ledger_service.get_movements(since=future) == []
        assert [m.id for m in ledger_service.get_movements(since=past, until=future)] == [movement.id]

    def test_invalid_filters(self, db_session):
        with pytest.raises(ValidationError):
            ledger_service.get_movements(movement_type="sideways")
        with pytest.raises(ValidationError):
            ledger_service.get_movements(since="not-a-date")
