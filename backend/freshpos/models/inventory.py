from __future__ import annotations

from ..extensions import db
from ..units import grams_to_kg, as_json_number
from freshpos.time_utils import to_utc_z, utcnow

REASON_ADD = "add"
REASON_REMOVE = "remove"
REASON_SALE = "sale"

ADJUSTMENT_REASONS = (REASON_ADD, REASON_REMOVE, REASON_SALE)


class StockAdjustment(db.Model):
    """
    Append-only stock ledger row.

    Replaying quantity_change_grams for a product from zero yields the
    product's current weight_grams. Rows are never updated or deleted;
    corrections are new rows.
    """
    __tablename__ = "stock_adjustments"
    __table_args__ = (
        db.CheckConstraint("quantity_change_grams <> 0", name="ck_stock_adj_nonzero"),
        db.CheckConstraint("balance_after_grams >= 0", name="ck_stock_adj_balance_non_negative"),
        db.Index("ix_stock_adj_product_date", "product_id", "adjustment_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    reason = db.Column(db.String(16), nullable=False, index=True)
    quantity_change_grams = db.Column(db.Integer, nullable=False)
    balance_after_grams = db.Column(db.Integer, nullable=False)

    notes = db.Column(db.String(255), nullable=True)

    # Set for reason='sale'; links the decrement to its sale document
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True, index=True)

    adjustment_date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "adjustment_id": self.id,
            "product_id": self.product_id,
            "product_type": self.product.type if self.product else None,
            "reason": self.reason,
            "quantity_change": as_json_number(grams_to_kg(self.quantity_change_grams)),
            "balance_after": as_json_number(grams_to_kg(self.balance_after_grams)),
            "notes": self.notes,
            "sale_id": self.sale_id,
            "adjustment_date": to_utc_z(self.adjustment_date),
        }
