# Overview: Pytest coverage for the sale transaction engine.

"""
Sale transaction tests.

Covers:
- Monetary reconciliation (subtotal, discount, total, change)
- Every violation is collected by validate()
- Commit atomicity: a failed deduction leaves no Sale, no items, no decrements
- Receipt numbering
- State transitions
"""

from datetime import timedelta

import pytest

from freshpos.errors import InsufficientStock, ValidationError
from freshpos.extensions import db
from freshpos.models import Product, Sale, SaleItem, StockAdjustment
from freshpos.services import catalog_service, ledger_service, sales_service
from freshpos.services.sales_service import (
    BUILDING,
    COMMITTED,
    REJECTED,
    SaleError,
    SaleTransaction,
)


def _rules(violations):
    return {(v.field, v.rule) for v in violations}


@pytest.fixture
def produce(make_product):
    apples = make_product(type="Apples", price=150, weight=10)
    cherries = make_product(type="Cherries", price=200, weight=5)
    return apples, cherries


@pytest.fixture
def cart(produce):
    apples, cherries = produce
    return [
        {"product_id": apples.product_id, "quantity": 2.0, "price_per_kg": 150},
        {"product_id": cherries.product_id, "quantity": 1.5, "price_per_kg": 200},
    ]


class TestMonetaryReconciliation:
    def test_validate_reports_totals(self, cart):
        result = sales_service.validate_sale(cart, discount=10, amount_paid=600)
        assert result.ok is True
        data = result.to_dict()
        assert data["subtotal"] == 600.0
        assert data["discount_amount"] == 60.0
        assert data["total_amount"] == 540.0
        assert data["change_amount"] == 60.0

    def test_commit_persists_amounts_and_items(self, cart, produce):
        apples, cherries = produce
        sale = sales_service.complete_sale(cart, discount=10, amount_paid=600)

        assert sale.subtotal_cents == 60000
        assert sale.discount_bps == 1000
        assert sale.discount_amount_cents == 6000
        assert sale.total_amount_cents == 54000
        assert sale.change_amount_cents == 6000
        assert sale.receipt_no == "RCP-000001"

        items = sale.items
        assert [(i.product_id, i.quantity_grams, i.line_total_cents) for i in items] == [
            (apples.product_id, 2000, 30000),
            (cherries.product_id, 1500, 30000),
        ]
        assert catalog_service.get_product(apples.product_id).weight_grams == 8000
        assert catalog_service.get_product(cherries.product_id).weight_grams == 3500

    def test_underpayment_rejected(self, cart, produce):
        apples, _ = produce
        with pytest.raises(ValidationError) as excinfo:
            sales_service.complete_sale(cart, discount=10, amount_paid=500)
        assert ("amount_paid", "sufficient_payment") in _rules(excinfo.value.violations)
        assert db.session.query(Sale).count() == 0
        assert catalog_service.get_product(apples.product_id).weight_grams == 10000

    def test_exact_payment_gives_zero_change(self, cart):
        sale = sales_service.complete_sale(cart, discount=10, amount_paid="540.00")
        assert sale.change_amount_cents == 0

    def test_rounding_happens_once(self, make_product):
        p = make_product(type="Saffron", price=0.99, weight=1)
        # 0.333 kg x 0.99 = 0.32967 -> 0.33
        result = sales_service.validate_sale(
            [{"product_id": p.product_id, "quantity": 0.333}], discount=0, amount_paid=1
        )
        assert result.totals.total_cents == 33


class TestValidationCollectsEverything:
    def test_empty_cart(self, db_session):
        result = sales_service.validate_sale([], discount=0, amount_paid=0)
        assert result.ok is False
        assert ("items", "non_empty") in _rules(result.violations)

    def test_many_violations_at_once(self, make_product, today):
        expired = make_product(type="Old milk", expiry_date=(today - timedelta(days=1)).isoformat())
        gone = make_product(type="Gone")
        catalog_service.soft_delete(gone.product_id)
        low = make_product(type="Low", weight=1, price=10)

        result = sales_service.validate_sale(
            [
                {"product_id": expired.product_id, "quantity": 1},
                {"product_id": gone.product_id, "quantity": 1},
                {"product_id": low.product_id, "quantity": 2, "price_per_kg": 9},
                {"product_id": 999, "quantity": 1},
                {"product_id": low.product_id, "quantity": 0},
            ],
            discount=150,
            amount_paid=None,
        )

        rules = _rules(result.violations)
        assert ("items[0].product_id", "product_expired") in rules
        assert ("items[1].product_id", "product_deleted") in rules
        assert ("items[2].price_per_kg", "price_changed") in rules
        assert ("items[3].product_id", "exists") in rules
        assert ("items[4].quantity", "positive") in rules
        assert ("items", "insufficient_stock") in rules
        assert ("discount", "range") in rules
        assert ("amount_paid", "required") in rules

    def test_unreadable_lines_reported_with_positions(self, produce):
        apples, _ = produce
        result = sales_service.validate_sale(
            [{"product_id": "abc", "quantity": 1}, {"product_id": apples.product_id, "quantity": "1.0001"}],
            amount_paid=100,
        )
        rules = _rules(result.violations)
        assert ("items[0].product_id", "invalid") in rules
        assert ("items[1].quantity", "invalid") in rules

    def test_huge_numbers_are_violations(self, produce):
        apples, _ = produce
        result = sales_service.validate_sale(
            [{"product_id": apples.product_id, "quantity": 1e30}, {"product_id": apples.product_id, "quantity": 5e9}],
            discount=1e30,
            amount_paid=1e13,
        )
        rules = _rules(result.violations)
        assert ("items[0].quantity", "invalid") in rules
        assert ("items[1].quantity", "max") in rules
        assert ("discount", "invalid") in rules
        assert ("amount_paid", "max") in rules
        assert ("items", "insufficient_stock") not in rules

    def test_huge_quantity_rejected_before_anything_is_written(self, produce):
        apples, _ = produce
        with pytest.raises(ValidationError):
            sales_service.complete_sale([{"product_id": apples.product_id, "quantity": 5e9}], amount_paid=100)
        assert db.session.query(Sale).count() == 0

    def test_full_discount_rejected(self, cart):
        result = sales_service.validate_sale(cart, discount=100, amount_paid=0)
        assert ("total", "positive") in _rules(result.violations)

    def test_validate_writes_nothing(self, cart):
        sales_service.validate_sale(cart, discount=0, amount_paid=1000)
        assert db.session.query(Sale).count() == 0
        assert db.session.query(StockAdjustment).filter_by(reason="sale").count() == 0


class TestCommitAtomicity:
    def test_shortage_at_commit_leaves_nothing(self, produce):
        apples, cherries = produce
        # Another till sold the cherries after this cart was built
        ledger_service.adjust(product_id=cherries.product_id, reason="remove", quantity_change_grams=-4000)

        with pytest.raises(InsufficientStock) as excinfo:
            sales_service.complete_sale(
                [
                    {"product_id": apples.product_id, "quantity": 2},
                    {"product_id": cherries.product_id, "quantity": 1.5},
                ],
                discount=0,
                amount_paid=1000,
            )

        assert excinfo.value.items == [{"product_id": cherries.product_id, "requested": 1.5, "available": 1.0}]
        assert db.session.query(Sale).count() == 0
        assert db.session.query(SaleItem).count() == 0
        assert db.session.query(StockAdjustment).filter_by(reason="sale").count() == 0
        assert db.session.get(Product, apples.product_id).weight_grams == 10000
        assert ledger_service.verify_all_balances() == []

    def test_sale_adjustments_link_to_sale(self, cart):
        sale = sales_service.complete_sale(cart, discount=0, amount_paid=600)
        rows = db.session.query(StockAdjustment).filter_by(reason="sale").all()
        assert {r.sale_id for r in rows} == {sale.id}
        assert {i.adjustment_id for i in sale.items} == {r.id for r in rows}
        assert all(r.notes == f"Sale {sale.receipt_no}" for r in rows)

    def test_receipt_numbers_increase(self, cart):
        first = sales_service.complete_sale(cart[:1], discount=0, amount_paid=300)
        second = sales_service.complete_sale(cart[:1], discount=0, amount_paid=300)
        assert (first.receipt_no, second.receipt_no) == ("RCP-000001", "RCP-000002")

    def test_price_snapshot_survives_price_change(self, cart, produce):
        apples, _ = produce
        sale = sales_service.complete_sale(cart[:1], discount=0, amount_paid=300)
        catalog_service.update_product(apples.product_id, {"price": 999})
        assert sales_service.get_sale(sale.id).items[0].price_per_kg_cents == 15000


class TestStateMachine:
    def test_happy_path(self, produce):
        apples, _ = produce
        tx = SaleTransaction()
        assert tx.state == BUILDING
        tx.add_line(apples.product_id, 1000)
        tx.commit(discount=0, amount_paid=150)
        assert tx.state == COMMITTED
        assert tx.sale.total_amount_cents == 15000

    def test_rejected_is_terminal(self, produce):
        apples, _ = produce
        tx = SaleTransaction()
        tx.add_line(apples.product_id, 1000)
        assert tx.validate(discount=0, amount_paid=1).ok is False
        assert tx.state == REJECTED
        with pytest.raises(SaleError):
            tx.add_line(apples.product_id, 1000)
        with pytest.raises(SaleError):
            tx.validate(discount=0, amount_paid=150)

    def test_commit_failure_rejects(self, produce):
        apples, _ = produce
        tx = SaleTransaction()
        tx.add_line(apples.product_id, 50000)
        with pytest.raises(InsufficientStock):
            tx.commit(discount=0, amount_paid=10000)
        assert tx.state == REJECTED


class TestQueries:
    def test_list_and_filter(self, cart, today):
        sale = sales_service.complete_sale(cart[:1], discount=0, amount_paid=300)
        assert [s.id for s in sales_service.list_sales(start_date=today, end_date=today)] == [sale.id]
        assert sales_service.list_sales(start_date=today + timedelta(days=1)) == []
        assert [s.id for s in sales_service.list_sales(receipt_no="000001")] == [sale.id]
