from __future__ import annotations

from ..extensions import db
from ..units import grams_to_kg, cents_to_money, bps_to_percent, as_json_number
from freshpos.time_utils import to_utc_z, utcnow


class Sale(db.Model):
    """
    Committed sale. Immutable once written.

    A Sale row only exists if every one of its items' stock was deducted by the
    ledger in the same DB transaction (see sales_service.SaleTransaction.commit).
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.UniqueConstraint("receipt_no", name="uq_sales_receipt_no"),
        db.CheckConstraint("change_amount_cents >= 0", name="ck_sales_change_non_negative"),
        db.CheckConstraint("discount_bps >= 0 AND discount_bps <= 10000", name="ck_sales_discount_range"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable receipt number (e.g., "RCP-000123")
    receipt_no = db.Column(db.String(64), nullable=False)

    # All amounts in cents; discount in basis points (1050 = 10.50 %)
    subtotal_cents = db.Column(db.Integer, nullable=False)
    discount_bps = db.Column(db.Integer, nullable=False, default=0)
    discount_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    total_amount_cents = db.Column(db.Integer, nullable=False)
    amount_paid_cents = db.Column(db.Integer, nullable=False)
    change_amount_cents = db.Column(db.Integer, nullable=False)

    sale_date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "sale_id": self.id,
            "receipt_no": self.receipt_no,
            "subtotal": as_json_number(cents_to_money(self.subtotal_cents)),
            "discount": as_json_number(bps_to_percent(self.discount_bps)),
            "discount_amount": as_json_number(cents_to_money(self.discount_amount_cents)),
            "total_amount": as_json_number(cents_to_money(self.total_amount_cents)),
            "amount_paid": as_json_number(cents_to_money(self.amount_paid_cents)),
            "change_amount": as_json_number(cents_to_money(self.change_amount_cents)),
            "sale_date": to_utc_z(self.sale_date),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class SaleItem(db.Model):
    """Line item of a committed sale; price_per_kg is a snapshot taken at commit."""
    __tablename__ = "sale_items"
    __table_args__ = (
        db.CheckConstraint("quantity_grams > 0", name="ck_sale_items_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity_grams = db.Column(db.Integer, nullable=False)
    price_per_kg_cents = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.Integer, nullable=False)

    # The ledger row that deducted this item's stock
    adjustment_id = db.Column(db.Integer, db.ForeignKey("stock_adjustments.id"), nullable=False)

    sale = db.relationship(
        "Sale",
        backref=db.backref("items", lazy=True, order_by="SaleItem.id"),
    )
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "sale_item_id": self.id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "type": self.product.type if self.product else None,
            "quantity": as_json_number(grams_to_kg(self.quantity_grams)),
            "price_per_kg": as_json_number(cents_to_money(self.price_per_kg_cents)),
            "line_total": as_json_number(cents_to_money(self.line_total_cents)),
            "adjustment_id": self.adjustment_id,
        }
