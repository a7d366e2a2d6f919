from __future__ import annotations

from ..extensions import db


class Category(db.Model):
    __tablename__ = "categories"
    __table_args__ = (
        db.UniqueConstraint("category_name", name="uq_categories_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    category_name = db.Column(db.String(100), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<Category id={self.id} name={self.category_name!r}>"

    def to_dict(self) -> dict:
        return {
            "category_id": self.id,
            "category_name": self.category_name,
        }


class Product(db.Model):
    """
    Perishable product sold by weight.

    OWNERSHIP:
    - weight_grams is owned by the stock ledger (services/ledger_service.py).
      It is a cached balance of the product's StockAdjustment rows and is only
      written by the ledger, in the same DB transaction as the adjustment row.
    - status is a cached projection of expiry_date (see expiry.classify). It is
      written at creation, on expiry_date change, and by
      catalog_service.recompute_statuses. Reads compute it live.
    - Everything else is descriptive and owned by the catalog.

    Products are soft-deleted (is_deleted) and never hard-deleted: sale items
    and adjustments keep referencing them.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("weight_grams >= 0", name="ck_products_weight_non_negative"),
        db.CheckConstraint("price_cents > 0", name="ck_products_price_positive"),
        db.Index("ix_products_deleted_type", "is_deleted", "type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    type = db.Column(db.String(255), nullable=False)
    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=True, index=True)
    supplier = db.Column(db.String(255), nullable=True)

    # Authoritative storage in cents per kg / grams (API speaks kg and currency)
    price_cents = db.Column(db.Integer, nullable=False)
    weight_grams = db.Column(db.Integer, nullable=False, default=0)
    stock_alert_grams = db.Column(db.Integer, nullable=False)

    expiry_date = db.Column(db.Date, nullable=False, index=True)
    status = db.Column(db.String(16), nullable=False, default="fresh", index=True)

    is_deleted = db.Column(db.Boolean, nullable=False, default=False)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    category = db.relationship("Category", backref=db.backref("products", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} type={self.type!r} weight_grams={self.weight_grams}>"
