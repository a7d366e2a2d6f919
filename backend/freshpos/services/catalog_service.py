# backend/freshpos/services/catalog_service.py
"""
Product catalog: descriptive product data composed with live stock and status.

OWNERSHIP:
- Descriptive attributes (type, category, supplier, price, stock_alert,
  expiry_date, is_deleted) are written here.
- weight is written only by the ledger. It can be given once, at creation,
  where it becomes an opening 'add' adjustment; updates reject it.
- status is recomputed from expiry_date; recompute_statuses() is the single
  bulk writer, and reads compute it live so a stale cache is never shown.

Derived views (low_stock / out_of_stock / expiring_soon) are pure filters over a
snapshot; callers accept that the snapshot may be stale by display time.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date

from flask import current_app

from ..errors import ConflictError, NotFoundError, ValidationError, Violation
from ..expiry import EXPIRED, EXPIRING, classify
from ..extensions import db
from ..models import Category, Product
from ..units import grams_to_kg, cents_to_money, kg_to_grams, as_json_number
from ..validation import (
    CATEGORY_POLICY,
    PRODUCT_POLICY,
    enforce_rules_product,
    to_product_columns,
    validate_payload,
)
from freshpos.time_utils import business_today
from . import ledger_service
from .concurrency import hold_product_locks, run_with_retry


@dataclass(frozen=True)
class ProductView:
    """Read model of a product: descriptive data plus live weight and status."""
    product_id: int
    type: str
    category_id: int | None
    category_name: str | None
    supplier: str | None
    price_cents: int
    weight_grams: int
    stock_alert_grams: int
    expiry_date: date
    status: str
    is_deleted: bool

    @classmethod
    def from_product(cls, p: Product, today: date, window_days: int) -> "ProductView":
        return cls(
            product_id=p.id,
            type=p.type,
            category_id=p.category_id,
            category_name=p.category.category_name if p.category else None,
            supplier=p.supplier,
            price_cents=p.price_cents,
            weight_grams=p.weight_grams,
            stock_alert_grams=p.stock_alert_grams,
            expiry_date=p.expiry_date,
            status=classify(p.expiry_date, today, window_days),
            is_deleted=p.is_deleted,
        )

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "type": self.type,
            "category_id": self.category_id,
            "category_name": self.category_name,
            "supplier": self.supplier,
            "price": as_json_number(cents_to_money(self.price_cents)),
            "weight": as_json_number(grams_to_kg(self.weight_grams)),
            "stock_alert": as_json_number(grams_to_kg(self.stock_alert_grams)),
            "expiry_date": self.expiry_date.isoformat(),
            "status": self.status,
            "is_deleted": self.is_deleted,
        }


def warning_window_days() -> int:
    return int(current_app.config.get("EXPIRY_WARNING_DAYS", 7))


def _default_stock_alert_grams() -> int:
    return kg_to_grams(current_app.config.get("DEFAULT_STOCK_ALERT_KG", "10.00"))


def _get_product(product_id: int) -> Product:
    p = db.session.query(Product).filter(Product.id == product_id).first()
    if p is None:
        raise NotFoundError("Product not found", {"product_id": product_id})
    return p


# =============================================================================
# Views
# =============================================================================

def list_products(
    *,
    include_deleted: bool = False,
    category_id: int | None = None,
    today: date | None = None,
) -> list[ProductView]:
    today = today or business_today()
    window = warning_window_days()

    q = db.session.query(Product)
    if not include_deleted:
        q = q.filter(Product.is_deleted.is_(False))
    if category_id is not None:
        q = q.filter(Product.category_id == category_id)

    products = q.order_by(Product.type.asc(), Product.id.asc()).all()
    return [ProductView.from_product(p, today, window) for p in products]


def get_product(product_id: int, *, today: date | None = None) -> ProductView:
    return ProductView.from_product(_get_product(product_id), today or business_today(), warning_window_days())


def low_stock(views: list[ProductView]) -> list[ProductView]:
    return [v for v in views if 0 < v.weight_grams <= v.stock_alert_grams]


def out_of_stock(views: list[ProductView]) -> list[ProductView]:
    return [v for v in views if v.weight_grams == 0]


def expiring_soon(views: list[ProductView]) -> list[ProductView]:
    return [v for v in views if v.status == EXPIRING]


def expired(views: list[ProductView]) -> list[ProductView]:
    return [v for v in views if v.status == EXPIRED]


def inventory_alerts(*, today: date | None = None) -> dict:
    """Alert banners over active products."""
    views = list_products(include_deleted=False, today=today)
    return {
        "low_stock": [v.to_dict() for v in low_stock(views)],
        "out_of_stock": [v.to_dict() for v in out_of_stock(views)],
        "expiring": [v.to_dict() for v in expiring_soon(views)],
        "expired": [v.to_dict() for v in expired(views)],
    }


# =============================================================================
# Categories
# =============================================================================

def list_categories() -> list[Category]:
    return db.session.query(Category).order_by(Category.category_name.asc()).all()


def _category_name_taken(name: str, exclude_id: int | None = None) -> bool:
    q = db.session.query(Category.id).filter(db.func.lower(Category.category_name) == name.lower())
    if exclude_id is not None:
        q = q.filter(Category.id != exclude_id)
    return q.first() is not None


def create_category(payload: dict) -> Category:
    patch = validate_payload(payload=payload, policy=CATEGORY_POLICY, partial=False, message="Invalid category")

    def _op():
        if _category_name_taken(patch["category_name"]):
            raise ConflictError("Category with this name already exists", {"category_name": patch["category_name"]})
        c = Category(category_name=patch["category_name"])
        db.session.add(c)
        db.session.commit()
        return c

    return run_with_retry(_op)


def update_category(category_id: int, payload: dict) -> Category:
    patch = validate_payload(payload=payload, policy=CATEGORY_POLICY, partial=False, message="Invalid category")

    def _op():
        c = db.session.query(Category).filter_by(id=category_id).first()
        if c is None:
            raise NotFoundError("Category not found", {"category_id": category_id})
        if _category_name_taken(patch["category_name"], exclude_id=category_id):
            raise ConflictError("Category with this name already exists", {"category_name": patch["category_name"]})
        c.category_name = patch["category_name"]
        db.session.commit()
        return c

    return run_with_retry(_op)


def delete_category(category_id: int) -> None:
    def _op():
        c = db.session.query(Category).filter_by(id=category_id).first()
        if c is None:
            raise NotFoundError("Category not found", {"category_id": category_id})
        in_use = db.session.query(Product.id).filter(Product.category_id == category_id).count()
        if in_use:
            raise ConflictError(
                "Cannot delete category because it is used by products",
                {"category_id": category_id, "product_count": in_use},
            )
        db.session.delete(c)
        db.session.commit()

    run_with_retry(_op)


def _resolve_category(patch: dict) -> None:
    """
    category_id wins; otherwise category_name finds or creates a category.

    Mutates patch in place: category_name is consumed, category_id set.
    """
    name = patch.pop("category_name", None)
    if patch.get("category_id") is not None:
        if db.session.query(Category.id).filter_by(id=patch["category_id"]).first() is None:
            raise ValidationError.single("category_id", "exists", "Category does not exist", patch["category_id"])
        return
    if name:
        existing = (
            db.session.query(Category)
            .filter(db.func.lower(Category.category_name) == name.lower())
            .first()
        )
        if existing is None:
            existing = Category(category_name=name)
            db.session.add(existing)
            db.session.flush()
        patch["category_id"] = existing.id


# =============================================================================
# Products
# =============================================================================

def create_product(payload: dict) -> ProductView:
    """
    Create a product; an initial weight is booked through the ledger so that
    the adjustment history replays to the opening balance.
    """
    patch = validate_payload(payload=payload, policy=PRODUCT_POLICY, partial=False, message="Invalid product")
    columns = to_product_columns(patch)
    enforce_rules_product(columns)

    if columns.get("stock_alert_grams") is None:
        columns["stock_alert_grams"] = _default_stock_alert_grams()
    opening_grams = columns.pop("weight_grams", 0)

    def _op():
        cat_patch = {"category_id": columns.get("category_id"), "category_name": patch.get("category_name")}
        _resolve_category(cat_patch)

        p = Product(**{**columns, "category_id": cat_patch.get("category_id")})
        p.status = classify(p.expiry_date, business_today(), warning_window_days())
        p.is_deleted = False
        p.weight_grams = 0
        db.session.add(p)
        db.session.flush()  # ensure p.id exists before the ledger entry

        ledger_service.record_initial_stock(p, opening_grams)
        db.session.commit()
        current_app.logger.info("Product created product_id=%s type=%r opening_g=%s", p.id, p.type, opening_grams)
        return p.id

    product_id = run_with_retry(_op)
    return get_product(product_id)


def update_product(product_id: int, payload: dict) -> ProductView:
    """
    Update descriptive attributes. weight is immutable here: quantity changes
    go through ledger_service.adjust.
    """
    patch = validate_payload(payload=payload, policy=PRODUCT_POLICY, partial=True, message="Invalid product")
    columns = to_product_columns(patch)
    enforce_rules_product(columns)
    if "stock_alert_grams" in columns and columns["stock_alert_grams"] is None:
        raise ValidationError("Invalid product", [Violation("stock_alert", "not_null", "stock_alert cannot be null")])

    def _op():
        with hold_product_locks([product_id]):
            p = _get_product(product_id)
            values = dict(columns)

            if "category_id" in patch or "category_name" in patch:
                cat_patch = {"category_id": columns.get("category_id"), "category_name": patch.get("category_name")}
                _resolve_category(cat_patch)
                values["category_id"] = cat_patch.get("category_id")

            for column, value in values.items():
                setattr(p, column, value)
            if "expiry_date" in columns:
                p.status = classify(p.expiry_date, business_today(), warning_window_days())

            db.session.commit()

    run_with_retry(_op)
    return get_product(product_id)


def _set_deleted(product_id: int, deleted: bool) -> ProductView:
    def _op():
        with hold_product_locks([product_id]):
            p = _get_product(product_id)
            if p.is_deleted != deleted:
                p.is_deleted = deleted
                db.session.commit()
                current_app.logger.info("Product %s product_id=%s", "deleted" if deleted else "restored", product_id)

    run_with_retry(_op)
    return get_product(product_id)


def soft_delete(product_id: int) -> ProductView:
    """Hide a product from active views. Stock and history are untouched."""
    return _set_deleted(product_id, True)


def restore(product_id: int) -> ProductView:
    return _set_deleted(product_id, False)


def recompute_statuses(*, today: date | None = None) -> dict:
    """
    Re-run the classifier over active products and persist changed statuses.

    Idempotent: a second run with the same date updates nothing.
    """
    today = today or business_today()
    window = warning_window_days()

    def _op():
        products = db.session.query(Product).filter(Product.is_deleted.is_(False)).all()
        updated = 0
        for p in products:
            status = classify(p.expiry_date, today, window)
            if p.status != status:
                p.status = status
                updated += 1
        db.session.commit()
        return {"checked": len(products), "updated": updated, "as_of": today.isoformat()}

    result = run_with_retry(_op)
    current_app.logger.info("Statuses refreshed checked=%s updated=%s", result["checked"], result["updated"])
    return result

