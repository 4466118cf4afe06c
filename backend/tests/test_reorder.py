"""
Replenishment tests.

Verifies:
- Suggested quantities top stock up to min_stock * multiplier
- Only keys strictly below threshold are suggested, most urgent first
- process_reorder creates one DRAFT order per supplier
- Purchase order lifecycle and receipt into the ledger
"""

import pytest

from stockroom.errors import AuthorizationError, NotFoundError, ValidationError
from stockroom.models import PurchaseOrder
from stockroom.services import inventory_service, ledger_service, reorder_service


def _stock_in(store, article, actor, quantity):
    ledger_service.append(
        store_id=store.id,
        article_id=article.id,
        movement_type="in",
        quantity=quantity,
        actor_id=actor.id,
    )


def _stock_out(store, article, actor, quantity):
    ledger_service.append(
        store_id=store.id,
        article_id=article.id,
        movement_type="out",
        quantity=quantity,
        actor_id=actor.id,
    )


# =============================================================================
# SUGGESTIONS
# =============================================================================


class TestSuggestedQuantity:

    @pytest.mark.parametrize("stock, min_stock, expected", [
        (0, 10, 30),
        (8, 10, 22),
        (29, 10, 1),
        (30, 10, 0),
        (45, 10, 0),
    ])
    def test_default_multiplier(self, stock, min_stock, expected):
        assert reorder_service.suggested_quantity(stock, min_stock) == expected

    def test_fractional_target_rounds_up(self):
        assert reorder_service.suggested_quantity(1, 3, 2.5) == 7


class TestSuggestAll:

    def test_only_below_threshold(self, manager, store_a, article, loose_article):
        _stock_in(store_a, article, manager, 12)      # LOW tier, not below min
        _stock_in(store_a, loose_article, manager, 4)  # below min 5

        suggestions = reorder_service.suggest_all(store_a.id)
        assert [s.article_id for s in suggestions] == [loose_article.id]
        assert suggestions[0].suggested_quantity == 11
        assert suggestions[0].estimated_cost_cents == 11 * 200
        assert suggestions[0].supplier_name is None

    def test_most_urgent_first(self, manager, store_a, article, loose_article):
        _stock_in(store_a, article, manager, 8)        # warning
        _stock_in(store_a, loose_article, manager, 1)  # critical

        suggestions = reorder_service.suggest_all(store_a.id)
        assert [(s.article_id, s.level) for s in suggestions] == [
            (loose_article.id, "critical"),
            (article.id, "warning"),
        ]
        espresso = suggestions[1]
        assert espresso.current_stock == 8
        assert espresso.min_stock == 10
        assert espresso.suggested_quantity == 22
        assert espresso.unit_cost_cents == 1100
        assert espresso.estimated_cost_cents == 22 * 1100
        assert espresso.supplier_name == "Roastery Co"

    def test_same_level_sorted_by_stockout(self, manager, store_a, article, loose_article, sell):
        _stock_in(store_a, article, manager, 9)
        _stock_in(store_a, loose_article, manager, 4)
        sell(loose_article, 60, store=store_a)

        suggestions = reorder_service.suggest_all(store_a.id)
        assert [s.article_id for s in suggestions] == [loose_article.id, article.id]
        assert suggestions[0].days_until_stockout == 2
        assert suggestions[1].days_until_stockout is None

    def test_drained_key_suggests_full_target(self, manager, store_a, article):
        _stock_in(store_a, article, manager, 3)
        _stock_out(store_a, article, manager, 3)
        suggestion = reorder_service.suggest_all(store_a.id)[0]
        assert suggestion.level == "critical"
        assert suggestion.suggested_quantity == 30

    def test_multiplier_from_config(self, app, monkeypatch, manager, store_a, article):
        monkeypatch.setitem(app.config, "REORDER_TARGET_MULTIPLIER", 2)
        _stock_in(store_a, article, manager, 8)
        assert reorder_service.suggest_all(store_a.id)[0].suggested_quantity == 12

    def test_inactive_store(self, closed_store):
        with pytest.raises(ValidationError):
            reorder_service.suggest_all(closed_store.id)


# =============================================================================
# PROCESS REORDER
# =============================================================================


class TestProcessReorder:

    def test_one_draft_per_supplier(self, notifications, manager, store_a, article, loose_article):
        _stock_in(store_a, article, manager, 8)
        _stock_in(store_a, loose_article, manager, 1)
        notifications.clear()

        orders = reorder_service.process_reorder(store_id=store_a.id, actor_id=manager.id)

        assert [o.supplier_name for o in orders] == ["Roastery Co", None]
        assert [o.document_number for o in orders] == [
            f"PO-{store_a.id:03d}-0001",
            f"PO-{store_a.id:03d}-0002",
        ]
        assert all(o.status == "DRAFT" for o in orders)
        assert all(o.created_by_user_id == manager.id for o in orders)

        roastery, unassigned = orders
        assert [(l.article_id, l.quantity) for l in roastery.lines] == [(article.id, 22)]
        assert roastery.total_cost_cents == 22 * 1100
        assert [(l.article_id, l.quantity) for l in unassigned.lines] == [(loose_article.id, 14)]
        assert unassigned.total_cost_cents == 14 * 200
        assert "without an assigned supplier" in unassigned.notes

        assert [n["title"] for n in notifications] == ["Reorder created"]

    def test_numbers_continue_across_runs(self, manager, store_a, article):
        _stock_in(store_a, article, manager, 1)
        first = reorder_service.process_reorder(store_id=store_a.id, actor_id=manager.id)
        second = reorder_service.process_reorder(store_id=store_a.id, actor_id=manager.id)
        assert first[0].document_number.endswith("-0001")
        assert second[0].document_number.endswith("-0002")

    def test_restrict_to_articles(self, manager, store_a, article, loose_article):
        _stock_in(store_a, article, manager, 8)
        _stock_in(store_a, loose_article, manager, 1)
        orders = reorder_service.process_reorder(
            store_id=store_a.id, actor_id=manager.id, article_ids=[loose_article.id]
        )
        assert len(orders) == 1
        assert orders[0].supplier_name is None

    def test_nothing_to_reorder(self, db_session, manager, store_a, article):
        _stock_in(store_a, article, manager, 50)
        with pytest.raises(ValidationError, match="No articles need reordering"):
            reorder_service.process_reorder(store_id=store_a.id, actor_id=manager.id)
        assert db_session.query(PurchaseOrder).count() == 0

    def test_requires_manage_stock(self, db_session, manager, clerk, store_a, article):
        _stock_in(store_a, article, manager, 1)
        with pytest.raises(AuthorizationError):
            reorder_service.process_reorder(store_id=store_a.id, actor_id=clerk.id)
        assert db_session.query(PurchaseOrder).count() == 0


# =============================================================================
# PURCHASE ORDER LIFECYCLE
# =============================================================================


class TestPurchaseOrderLifecycle:

    @pytest.fixture
    def draft(self, manager, store_a, article):
        _stock_in(store_a, article, manager, 8)
        return reorder_service.process_reorder(store_id=store_a.id, actor_id=manager.id)[0]

    def test_submit_then_receive(self, notifications, manager, store_a, article, draft):
        po = reorder_service.submit_purchase_order(draft.id, manager.id)
        assert po.status == "SUBMITTED"
        assert po.submitted_by_user_id == manager.id
        assert po.submitted_at is not None

        po = reorder_service.receive_purchase_order(po.id, manager.id)
        assert po.status == "RECEIVED"
        assert po.received_by_user_id == manager.id
        assert inventory_service.get_on_hand(store_a.id, article.id) == 30

        movements = ledger_service.get_movements(reference_id=po.document_number)
        assert [(m.movement_type, m.quantity) for m in movements] == [("in", 22)]
        assert movements[0].reference_type == "purchase_order"
        assert po.lines[0].in_movement_id == movements[0].id
        assert notifications[-1]["title"] == "Purchase order received"

    def test_cannot_receive_draft(self, manager, draft):
        with pytest.raises(ValidationError, match="DRAFT"):
            reorder_service.receive_purchase_order(draft.id, manager.id)

    def test_cannot_submit_twice(self, manager, draft):
        reorder_service.submit_purchase_order(draft.id, manager.id)
        with pytest.raises(ValidationError):
            reorder_service.submit_purchase_order(draft.id, manager.id)

    def test_cancel_with_reason(self, manager, draft):
        po = reorder_service.cancel_purchase_order(draft.id, manager.id, reason="Supplier closed")
        assert po.status == "CANCELLED"
        assert po.cancellation_reason == "Supplier closed"
        assert po.cancelled_by_user_id == manager.id

    def test_cannot_cancel_received(self, manager, draft):
        reorder_service.submit_purchase_order(draft.id, manager.id)
        reorder_service.receive_purchase_order(draft.id, manager.id)
        with pytest.raises(ValidationError):
            reorder_service.cancel_purchase_order(draft.id, manager.id)

    def test_transitions_require_manage_stock(self, clerk, draft):
        with pytest.raises(AuthorizationError):
            reorder_service.submit_purchase_order(draft.id, clerk.id)
        with pytest.raises(AuthorizationError):
            reorder_service.cancel_purchase_order(draft.id, clerk.id)

    def test_lookup_and_listing(self, manager, store_a, store_b, article, draft):
        _stock_in(store_b, article, manager, 2)
        other = reorder_service.process_reorder(store_id=store_b.id, actor_id=manager.id)[0]

        assert reorder_service.get_purchase_order(draft.id).id == draft.id
        assert [o.id for o in reorder_service.list_purchase_orders()] == [other.id, draft.id]
        assert [o.id for o in reorder_service.list_purchase_orders(store_id=store_a.id)] == [draft.id]
        assert reorder_service.list_purchase_orders(status="RECEIVED") == []

        with pytest.raises(NotFoundError):
            reorder_service.get_purchase_order(424242)
        with pytest.raises(ValidationError):
            reorder_service.list_purchase_orders(status="LOST")
