# Overview: Pytest coverage for the stock ledger.

"""
Stock ledger tests.

Covers:
- Opening stock is an 'add' adjustment
- Manual add/remove with sign rules
- Overdraw rejection leaves nothing behind
- Batch decrement is all-or-nothing and reports every shortage
- Replayed history equals the cached weight
"""

from decimal import Decimal

import pytest

from freshpos.errors import InsufficientStock, NotFoundError, ValidationError
from freshpos.extensions import db
from freshpos.models import Product, StockAdjustment
from freshpos.services import catalog_service, ledger_service
from freshpos.validation import MAX_GRAMS


def _weight(product_id):
    return db.session.query(Product.weight_grams).filter_by(id=product_id).scalar()


def _adjustment_count(product_id):
    return db.session.query(StockAdjustment).filter_by(product_id=product_id).count()


class TestOpeningStock:
    def test_initial_weight_is_recorded_as_add(self, make_product):
        view = make_product(weight=12.5)

        rows = ledger_service.list_adjustments(product_id=view.product_id)
        assert len(rows) == 1
        assert rows[0].reason == "add"
        assert rows[0].quantity_change_grams == 12500
        assert rows[0].notes == "Initial stock"
        assert _weight(view.product_id) == 12500

    def test_zero_initial_weight_writes_no_row(self, make_product):
        view = make_product(weight=0)
        assert _adjustment_count(view.product_id) == 0
        assert ledger_service.verify_balance(view.product_id)["consistent"] is True


class TestManualAdjustments:
    def test_add_increases_weight(self, make_product):
        view = make_product(weight=10)
        result = ledger_service.adjust(
            product_id=view.product_id, reason="add", quantity_change_grams=2500, notes="Delivery"
        )
        assert result.new_weight_grams == 12500
        assert result.to_dict()["new_weight"] == 12.5
        assert result.adjustment.balance_after_grams == 12500
        assert _weight(view.product_id) == 12500

    def test_remove_decreases_weight(self, make_product):
        view = make_product(weight=10)
        ledger_service.adjust(product_id=view.product_id, reason="remove", quantity_change_grams=-4000)
        assert ledger_service.balance_of(view.product_id) == Decimal("6.000")

    def test_remove_to_exactly_zero(self, make_product):
        view = make_product(weight=3)
        result = ledger_service.adjust(product_id=view.product_id, reason="remove", quantity_change_grams=-3000)
        assert result.new_weight_grams == 0

    def test_overdraw_rejected_without_side_effects(self, make_product):
        view = make_product(weight=5)
        before = _adjustment_count(view.product_id)

        with pytest.raises(InsufficientStock) as excinfo:
            ledger_service.adjust(product_id=view.product_id, reason="remove", quantity_change_grams=-8000)

        assert excinfo.value.items == [{"product_id": view.product_id, "requested": 8.0, "available": 5.0}]
        assert _weight(view.product_id) == 5000
        assert _adjustment_count(view.product_id) == before

    @pytest.mark.parametrize("reason,delta,rule", [
        ("add", -100, "positive_for_add"),
        ("add", 0, "positive_for_add"),
        ("remove", 100, "negative_for_remove"),
        ("sale", -100, "invalid_reason"),
        ("spoilage", -100, "invalid_reason"),
    ])
    def test_sign_and_reason_rules(self, make_product, reason, delta, rule):
        view = make_product(weight=5)
        with pytest.raises(ValidationError) as excinfo:
            ledger_service.adjust(product_id=view.product_id, reason=reason, quantity_change_grams=delta)
        assert excinfo.value.violations[0].rule == rule
        assert _weight(view.product_id) == 5000

    def test_add_cannot_exceed_stock_cap(self, make_product):
        view = make_product(weight=10)
        with pytest.raises(ValidationError) as excinfo:
            ledger_service.adjust(
                product_id=view.product_id, reason="add", quantity_change_grams=MAX_GRAMS
            )
        assert excinfo.value.violations[0].rule == "max"
        assert _weight(view.product_id) == 10000
        assert _adjustment_count(view.product_id) == 1

    def test_unknown_product(self, db_session):
        with pytest.raises(NotFoundError):
            ledger_service.adjust(product_id=999, reason="add", quantity_change_grams=100)

    def test_deleted_product_rejected(self, make_product):
        view = make_product(weight=5)
        catalog_service.soft_delete(view.product_id)
        with pytest.raises(ValidationError) as excinfo:
            ledger_service.adjust(product_id=view.product_id, reason="add", quantity_change_grams=100)
        assert excinfo.value.violations[0].rule == "product_deleted"


class TestBatch:
    def test_batch_decrements_every_product(self, make_product):
        a = make_product(type="Apples", weight=10)
        b = make_product(type="Pears", weight=4)

        result = ledger_service.reserve_and_commit_batch([
            {"product_id": a.product_id, "quantity_grams": 2000},
            {"product_id": b.product_id, "quantity_grams": 1500},
        ])

        assert [adj.reason for adj in result.adjustments] == ["sale", "sale"]
        assert result.new_weights_grams == {a.product_id: 8000, b.product_id: 2500}

    def test_same_product_twice_is_checked_in_aggregate(self, make_product):
        a = make_product(weight=3)
        with pytest.raises(InsufficientStock) as excinfo:
            ledger_service.reserve_and_commit_batch([
                {"product_id": a.product_id, "quantity_grams": 2000},
                {"product_id": a.product_id, "quantity_grams": 2000},
            ])
        assert excinfo.value.items[0]["requested"] == 4.0
        assert _weight(a.product_id) == 3000

    def test_any_shortage_aborts_whole_batch(self, make_product):
        a = make_product(type="Apples", weight=10)
        b = make_product(type="Pears", weight=1)
        c = make_product(type="Plums", weight=0.5)

        with pytest.raises(InsufficientStock) as excinfo:
            ledger_service.reserve_and_commit_batch([
                {"product_id": a.product_id, "quantity_grams": 2000},
                {"product_id": b.product_id, "quantity_grams": 1500},
                {"product_id": c.product_id, "quantity_grams": 1000},
            ])

        short = {item["product_id"] for item in excinfo.value.items}
        assert short == {b.product_id, c.product_id}
        assert _weight(a.product_id) == 10000
        assert _weight(b.product_id) == 1000
        assert _adjustment_count(a.product_id) == 1

    def test_empty_batch_rejected(self, db_session):
        with pytest.raises(ValidationError):
            ledger_service.reserve_and_commit_batch([])

    def test_missing_product(self, make_product):
        a = make_product(weight=10)
        with pytest.raises(NotFoundError):
            ledger_service.reserve_and_commit_batch([
                {"product_id": a.product_id, "quantity_grams": 100},
                {"product_id": 999, "quantity_grams": 100},
            ])
        assert _weight(a.product_id) == 10000


class TestReplay:
    def test_replay_matches_weight_after_mixed_history(self, make_product):
        view = make_product(weight=10)
        pid = view.product_id
        ledger_service.adjust(product_id=pid, reason="add", quantity_change_grams=1250)
        ledger_service.adjust(product_id=pid, reason="remove", quantity_change_grams=-500)
        ledger_service.reserve_and_commit_batch([{"product_id": pid, "quantity_grams": 3333}])

        assert ledger_service.replay_balance(pid) == Decimal("7.417")
        assert ledger_service.verify_balance(pid) == {
            "product_id": pid,
            "weight": 7.417,
            "replayed_weight": 7.417,
            "consistent": True,
        }
        assert ledger_service.verify_all_balances() == []

    def test_drift_is_detected(self, make_product):
        view = make_product(weight=10)
        db.session.query(Product).filter_by(id=view.product_id).update({"weight_grams": 9000})
        db.session.commit()

        drifted = ledger_service.verify_all_balances()
        assert [r["product_id"] for r in drifted] == [view.product_id]
        assert drifted[0]["consistent"] is False

    def test_adjustments_listed_newest_first(self, make_product):
        view = make_product(weight=10)
        ledger_service.adjust(product_id=view.product_id, reason="add", quantity_change_grams=100)
        rows = ledger_service.list_adjustments(product_id=view.product_id)
        assert [r.quantity_change_grams for r in rows] == [100, 10000]
