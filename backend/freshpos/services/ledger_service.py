# Overview: Stock ledger; the single writer of product quantity-on-hand.

"""
FreshPOS Stock Ledger Invariants (authoritative)

- StockAdjustment rows are append-only; corrections are new rows.
- Product.weight_grams is a cached balance: for every product,
  SUM(quantity_change_grams) over its adjustments == weight_grams.
- The cache and its adjustment row are written in the same DB transaction,
  only here.
- On-hand quantity may never go negative. A decrement that would overdraw is
  rejected with InsufficientStock and leaves nothing behind; it is never
  clamped to zero.
- Writers hold the product's lock (hold_product_locks) from the balance
  re-read until commit. Batches lock in ascending product_id order.
- Business failures are never retried here; retrying is the caller's call.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from flask import current_app
from sqlalchemy import func

from ..errors import InsufficientStock, NotFoundError, ValidationError, Violation
from ..extensions import db
from ..models import Product, StockAdjustment, REASON_ADD, REASON_REMOVE, REASON_SALE
from ..units import grams_to_kg, as_json_number
from ..validation import MAX_GRAMS
from freshpos.time_utils import utcnow
from .concurrency import hold_product_locks, lock_for_update, run_with_retry

MANUAL_REASONS = (REASON_ADD, REASON_REMOVE)


@dataclass
class AdjustmentResult:
    adjustment: StockAdjustment
    new_weight_grams: int

    def to_dict(self) -> dict:
        return {
            "adjustment": self.adjustment.to_dict(),
            "new_weight": as_json_number(grams_to_kg(self.new_weight_grams)),
        }


@dataclass
class BatchResult:
    adjustments: list[StockAdjustment] = field(default_factory=list)
    new_weights_grams: dict[int, int] = field(default_factory=dict)


def load_locked_products(product_ids) -> dict[int, Product]:
    """
    Re-read products from the DB (not the identity map) under row locks.

    Call only while holding hold_product_locks for the same ids.
    """
    rows = (
        lock_for_update(
            db.session.query(Product)
            .filter(Product.id.in_(sorted(set(product_ids))))
            .order_by(Product.id.asc())
        )
        .populate_existing()
        .all()
    )
    return {p.id: p for p in rows}


def _append(product: Product, reason: str, delta_grams: int, notes: str | None, sale_id: int | None) -> StockAdjustment:
    new_balance = product.weight_grams + delta_grams
    adj = StockAdjustment(
        product_id=product.id,
        reason=reason,
        quantity_change_grams=delta_grams,
        balance_after_grams=new_balance,
        notes=notes,
        sale_id=sale_id,
        adjustment_date=utcnow(),
    )
    product.weight_grams = new_balance
    db.session.add(adj)
    return adj


def _check_manual(reason: str, delta_grams: int) -> None:
    violations = []
    if reason not in MANUAL_REASONS:
        violations.append(Violation("reason", "invalid_reason", "reason must be add or remove", reason))
    elif reason == REASON_ADD and delta_grams <= 0:
        violations.append(Violation("quantity_change", "positive_for_add", "quantity_change must be > 0 for add", as_json_number(grams_to_kg(delta_grams))))
    elif reason == REASON_REMOVE and delta_grams >= 0:
        violations.append(Violation("quantity_change", "negative_for_remove", "quantity_change must be < 0 for remove", as_json_number(grams_to_kg(delta_grams))))
    if violations:
        raise ValidationError("Invalid stock adjustment", violations)


def record_initial_stock(product: Product, grams: int) -> StockAdjustment | None:
    """
    Opening balance for a product created in the current (uncommitted) transaction.

    The caller owns the transaction; the product is not yet visible to other
    writers so no lock is needed.
    """
    product.weight_grams = 0
    if grams <= 0:
        return None
    adj = _append(product, REASON_ADD, grams, "Initial stock", None)
    db.session.flush()
    return adj


def adjust(*, product_id: int, reason: str, quantity_change_grams: int, notes: str | None = None) -> AdjustmentResult:
    """
    Apply a signed manual stock change (add > 0, remove < 0).

    The balance is re-read under the product lock; the UI's copy of the
    product is never trusted for the non-negativity check.
    """
    _check_manual(reason, quantity_change_grams)

    def _op():
        with hold_product_locks([product_id]):
            product = load_locked_products([product_id]).get(product_id)
            if product is None:
                raise NotFoundError("Product not found", {"product_id": product_id})
            if product.is_deleted:
                raise ValidationError.single(
                    "product_id", "product_deleted", "Cannot adjust stock of a deleted product", product_id
                )

            if product.weight_grams + quantity_change_grams < 0:
                raise InsufficientStock(
                    f"Not enough stock to remove. Current stock: {grams_to_kg(product.weight_grams)} kg",
                    items=[{
                        "product_id": product_id,
                        "requested": as_json_number(grams_to_kg(-quantity_change_grams)),
                        "available": as_json_number(grams_to_kg(product.weight_grams)),
                    }],
                )
            if product.weight_grams + quantity_change_grams > MAX_GRAMS:
                raise ValidationError.single(
                    "quantity_change", "max", "Resulting stock would be unrealistically large",
                    as_json_number(grams_to_kg(quantity_change_grams)),
                )

            adj = _append(product, reason, quantity_change_grams, notes, None)
            new_weight = product.weight_grams
            db.session.commit()
            current_app.logger.info(
                "Stock adjusted product_id=%s reason=%s change_g=%s balance_g=%s",
                product_id, reason, quantity_change_grams, new_weight,
            )
            return AdjustmentResult(adjustment=adj, new_weight_grams=new_weight)

    return run_with_retry(_op)


def _apply_batch(items: list[dict], *, sale_id: int | None, notes: str | None) -> BatchResult:
    product_ids = [item["product_id"] for item in items]
    products = load_locked_products(product_ids)

    missing = sorted({pid for pid in product_ids if pid not in products})
    if missing:
        raise NotFoundError("Product not found", {"product_ids": missing})

    requested: dict[int, int] = {}
    for item in items:
        requested[item["product_id"]] = requested.get(item["product_id"], 0) + item["quantity_grams"]

    shortages = [
        {
            "product_id": pid,
            "requested": as_json_number(grams_to_kg(qty)),
            "available": as_json_number(grams_to_kg(products[pid].weight_grams)),
        }
        for pid, qty in sorted(requested.items())
        if products[pid].weight_grams < qty
    ]
    if shortages:
        raise InsufficientStock("Insufficient stock to complete sale", items=shortages)

    result = BatchResult()
    for item in items:
        product = products[item["product_id"]]
        result.adjustments.append(_append(product, REASON_SALE, -item["quantity_grams"], notes, sale_id))
    db.session.flush()
    result.new_weights_grams = {pid: products[pid].weight_grams for pid in requested}
    return result


def reserve_and_commit_batch(
    items: list[dict],
    *,
    sale_id: int | None = None,
    notes: str | None = None,
    commit: bool = True,
) -> BatchResult:
    """
    All-or-nothing decrement of several products for one sale.

    items: [{"product_id": int, "quantity_grams": int > 0}]. One 'sale'
    adjustment row is written per item. Every product's current balance is
    checked against the total requested for it before anything is written;
    any shortage raises InsufficientStock listing every short product.

    commit=False: the caller owns the transaction (and its retry); the
    adjustments are flushed, not committed. The sale engine uses this to write
    Sale/SaleItem rows in the same transaction.
    """
    if not items:
        raise ValidationError.single("items", "non_empty", "At least one item is required")
    for item in items:
        if item["quantity_grams"] <= 0:
            raise ValidationError.single(
                "quantity", "positive", "Quantity must be greater than 0", as_json_number(grams_to_kg(item["quantity_grams"]))
            )

    product_ids = [item["product_id"] for item in items]

    if not commit:
        with hold_product_locks(product_ids):
            return _apply_batch(items, sale_id=sale_id, notes=notes)

    def _op():
        with hold_product_locks(product_ids):
            result = _apply_batch(items, sale_id=sale_id, notes=notes)
            db.session.commit()
            return result

    return run_with_retry(_op)


def balance_of(product_id: int) -> Decimal:
    """Current quantity on hand in kg."""
    grams = db.session.query(Product.weight_grams).filter(Product.id == product_id).scalar()
    if grams is None:
        raise NotFoundError("Product not found", {"product_id": product_id})
    return grams_to_kg(grams)


def replay_balance_grams(product_id: int) -> int:
    q = db.session.query(
        func.coalesce(func.sum(StockAdjustment.quantity_change_grams), 0)
    ).filter(StockAdjustment.product_id == product_id)
    return int(q.scalar() or 0)


def replay_balance(product_id: int) -> Decimal:
    """Balance rebuilt from the adjustment history, in kg."""
    return grams_to_kg(replay_balance_grams(product_id))


def verify_balance(product_id: int) -> dict:
    """Compare the cached balance with the replayed history."""
    product = db.session.query(Product).filter_by(id=product_id).first()
    if product is None:
        raise NotFoundError("Product not found", {"product_id": product_id})
    replayed = replay_balance_grams(product_id)
    return {
        "product_id": product_id,
        "weight": as_json_number(grams_to_kg(product.weight_grams)),
        "replayed_weight": as_json_number(grams_to_kg(replayed)),
        "consistent": replayed == product.weight_grams,
    }


def verify_all_balances() -> list[dict]:
    """Drifted products only; an empty list means the ledger reconciles."""
    ids = [pid for (pid,) in db.session.query(Product.id).order_by(Product.id.asc()).all()]
    return [r for r in (verify_balance(pid) for pid in ids) if not r["consistent"]]


def list_adjustments(*, product_id: int | None = None, reason: str | None = None, limit: int = 200) -> list[StockAdjustment]:
    q = db.session.query(StockAdjustment)
    if product_id is not None:
        if db.session.query(Product.id).filter_by(id=product_id).first() is None:
            raise NotFoundError("Product not found", {"product_id": product_id})
        q = q.filter(StockAdjustment.product_id == product_id)
    if reason:
        q = q.filter(StockAdjustment.reason == reason)
    return q.order_by(
        StockAdjustment.adjustment_date.desc(),
        StockAdjustment.id.desc(),
    ).limit(limit).all()
