# Overview: Read-only rollups over committed sales and the stock ledger.

from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal

from flask import current_app
from sqlalchemy import func

from ..errors import ValidationError, Violation
from ..extensions import db
from ..models import Product, Sale, SaleItem, StockAdjustment, ADJUSTMENT_REASONS, REASON_ADD, REASON_REMOVE, REASON_SALE
from ..units import as_json_number, cents_to_money, grams_to_kg, line_amount, round_money
from freshpos.time_utils import business_today, day_bounds, parse_iso_date

DEFAULT_WINDOW_DAYS = 30
REPORT_TYPES = ("sales", "adjustments", "inventory", "low_stock")


def _kg(grams) -> float:
    return as_json_number(grams_to_kg(int(grams or 0)))


def _money(cents) -> float:
    return as_json_number(cents_to_money(int(cents or 0)))


def _parse_day(name: str, value) -> date | None:
    if value is None or isinstance(value, date):
        return value
    try:
        return parse_iso_date(value)
    except ValueError:
        raise ValidationError.single(name, "invalid", f"{name} must be an ISO-8601 date (YYYY-MM-DD)", value)


def _parse_range(start, end, *, today: date | None = None) -> tuple[date, date]:
    """
    Inclusive [start, end] window. Missing bounds default to the last
    DEFAULT_WINDOW_DAYS days ending today.
    """
    violations = []
    try:
        start_d = _parse_day("start_date", start)
    except ValidationError as exc:
        violations.extend(exc.violations)
        start_d = None
    try:
        end_d = _parse_day("end_date", end)
    except ValidationError as exc:
        violations.extend(exc.violations)
        end_d = None
    if violations:
        raise ValidationError("Invalid report window", violations)

    end_d = end_d or today or business_today()
    start_d = start_d or end_d - timedelta(days=DEFAULT_WINDOW_DAYS - 1)
    if start_d > end_d:
        raise ValidationError(
            "Invalid report window",
            [Violation("start_date", "before_end", "start_date must be on or before end_date", start_d.isoformat())],
        )
    return start_d, end_d


def _days(start: date, end: date) -> list[date]:
    return [start + timedelta(days=i) for i in range((end - start).days + 1)]


def _day_key(value) -> str:
    # func.date() yields a string on SQLite and a date elsewhere
    return value.isoformat() if isinstance(value, date) else str(value)[:10]


def _window_payload(start: date, end: date) -> dict:
    return {"start_date": start.isoformat(), "end_date": end.isoformat()}


def _top_limit() -> int:
    return int(current_app.config.get("TOP_PRODUCTS_LIMIT", 10))


# =============================================================================
# Sales
# =============================================================================

def _top_products(lo, hi, *, category_id=None, product_id=None, limit: int = 10) -> list[dict]:
    query = db.session.query(
        Product.id.label("product_id"),
        Product.type.label("type"),
        func.coalesce(func.sum(SaleItem.quantity_grams), 0).label("quantity_grams"),
        func.coalesce(func.sum(SaleItem.line_total_cents), 0).label("gross_cents"),
    ).join(SaleItem, SaleItem.product_id == Product.id).join(
        Sale, SaleItem.sale_id == Sale.id
    ).filter(
        Sale.sale_date >= lo,
        Sale.sale_date < hi,
    )
    if category_id is not None:
        query = query.filter(Product.category_id == category_id)
    if product_id is not None:
        query = query.filter(Product.id == product_id)

    rows = (
        query.group_by(Product.id, Product.type)
        .order_by(func.sum(SaleItem.quantity_grams).desc(), Product.id.asc())
        .limit(limit)
        .all()
    )
    return [
        {
            "product_id": row.product_id,
            "type": row.type,
            "quantity": _kg(row.quantity_grams),
            "gross_sales": _money(row.gross_cents),
        }
        for row in rows
    ]


def _sales_totals_unfiltered(lo, hi) -> tuple[dict, dict[str, Decimal]]:
    summary_row = db.session.query(
        func.count(Sale.id).label("sales_count"),
        func.coalesce(func.sum(Sale.subtotal_cents), 0).label("subtotal_cents"),
        func.coalesce(func.sum(Sale.discount_amount_cents), 0).label("discount_cents"),
        func.coalesce(func.sum(Sale.total_amount_cents), 0).label("revenue_cents"),
    ).filter(Sale.sale_date >= lo, Sale.sale_date < hi).one()

    day_expr = func.date(Sale.sale_date)
    daily_rows = db.session.query(
        day_expr.label("day"),
        func.coalesce(func.sum(Sale.total_amount_cents), 0).label("revenue_cents"),
    ).filter(
        Sale.sale_date >= lo, Sale.sale_date < hi
    ).group_by(day_expr).all()

    summary = {
        "sales_count": int(summary_row.sales_count or 0),
        "subtotal": _money(summary_row.subtotal_cents),
        "discount_amount": _money(summary_row.discount_cents),
        "revenue": _money(summary_row.revenue_cents),
    }
    daily = {_day_key(row.day): cents_to_money(int(row.revenue_cents or 0)) for row in daily_rows}
    return summary, daily


def _sales_totals_filtered(lo, hi, *, category_id=None, product_id=None) -> tuple[dict, dict[str, Decimal]]:
    """
    Revenue of the matching line items only. Each line is discounted at its
    sale's rate; rounding happens once per sum, not per line.
    """
    query = db.session.query(
        Sale.id,
        Sale.sale_date,
        Sale.discount_bps,
        SaleItem.quantity_grams,
        SaleItem.price_per_kg_cents,
    ).join(SaleItem, SaleItem.sale_id == Sale.id).join(
        Product, SaleItem.product_id == Product.id
    ).filter(Sale.sale_date >= lo, Sale.sale_date < hi)
    if category_id is not None:
        query = query.filter(Product.category_id == category_id)
    if product_id is not None:
        query = query.filter(Product.id == product_id)

    sale_ids = set()
    subtotal = Decimal(0)
    revenue = Decimal(0)
    daily: dict[str, Decimal] = {}
    for sale_id, sale_date, discount_bps, quantity_grams, price_cents in query.all():
        gross = line_amount(quantity_grams, price_cents)
        net = gross * (Decimal(10_000 - discount_bps) / 10_000)
        sale_ids.add(sale_id)
        subtotal += gross
        revenue += net
        key = sale_date.date().isoformat()
        daily[key] = daily.get(key, Decimal(0)) + net

    summary = {
        "sales_count": len(sale_ids),
        "subtotal": as_json_number(round_money(subtotal)),
        "discount_amount": as_json_number(round_money(subtotal) - round_money(revenue)),
        "revenue": as_json_number(round_money(revenue)),
    }
    return summary, {k: round_money(v) for k, v in daily.items()}


def sales_report(
    *,
    start_date=None,
    end_date=None,
    category_id: int | None = None,
    product_id: int | None = None,
    today: date | None = None,
) -> dict:
    """
    Sales summary, a zero-filled daily revenue series and top products by
    quantity over an inclusive date window.
    """
    start, end = _parse_range(start_date, end_date, today=today)
    lo, hi = day_bounds(start, end)

    if category_id is None and product_id is None:
        summary, daily = _sales_totals_unfiltered(lo, hi)
    else:
        summary, daily = _sales_totals_filtered(lo, hi, category_id=category_id, product_id=product_id)

    return {
        "type": "sales",
        **_window_payload(start, end),
        "filters": {"category_id": category_id, "product_id": product_id},
        "summary": summary,
        "daily": [
            {"date": d.isoformat(), "revenue": as_json_number(daily.get(d.isoformat(), Decimal("0.00")))}
            for d in _days(start, end)
        ],
        "top_products": _top_products(
            lo, hi, category_id=category_id, product_id=product_id, limit=_top_limit()
        ),
    }


# =============================================================================
# Stock movements
# =============================================================================

def adjustments_report(
    *,
    start_date=None,
    end_date=None,
    category_id: int | None = None,
    product_id: int | None = None,
    reason: str | None = None,
    today: date | None = None,
) -> dict:
    """Ledger movements in the window; sales are reported apart from manual removals."""
    if reason is not None and reason not in ADJUSTMENT_REASONS:
        raise ValidationError.single("reason", "invalid_reason", "reason must be add, remove or sale", reason)
    start, end = _parse_range(start_date, end_date, today=today)
    lo, hi = day_bounds(start, end)

    query = db.session.query(StockAdjustment).join(
        Product, StockAdjustment.product_id == Product.id
    ).filter(
        StockAdjustment.adjustment_date >= lo,
        StockAdjustment.adjustment_date < hi,
    )
    if category_id is not None:
        query = query.filter(Product.category_id == category_id)
    if product_id is not None:
        query = query.filter(StockAdjustment.product_id == product_id)
    if reason:
        query = query.filter(StockAdjustment.reason == reason)

    rows = query.order_by(StockAdjustment.adjustment_date.desc(), StockAdjustment.id.desc()).all()

    added = removed = sold = 0
    counts = {REASON_ADD: 0, REASON_REMOVE: 0, REASON_SALE: 0}
    for adj in rows:
        counts[adj.reason] = counts.get(adj.reason, 0) + 1
        if adj.reason == REASON_SALE:
            sold += -adj.quantity_change_grams
        elif adj.quantity_change_grams > 0:
            added += adj.quantity_change_grams
        else:
            removed += -adj.quantity_change_grams

    return {
        "type": "adjustments",
        **_window_payload(start, end),
        "filters": {"category_id": category_id, "product_id": product_id, "reason": reason},
        "summary": {
            "adjustment_count": len(rows),
            "total_added": _kg(added),
            "total_removed": _kg(removed),
            "total_sold": _kg(sold),
            "net_change": _kg(added - removed - sold),
            "by_reason": counts,
        },
        "rows": [adj.to_dict() for adj in rows],
    }


# =============================================================================
# Stock on hand
# =============================================================================

def _active_products(category_id: int | None = None):
    query = db.session.query(Product).filter(Product.is_deleted.is_(False))
    if category_id is not None:
        query = query.filter(Product.category_id == category_id)
    return query


def _inventory_row(p: Product) -> dict:
    return {
        "product_id": p.id,
        "type": p.type,
        "category_name": p.category.category_name if p.category else None,
        "weight": _kg(p.weight_grams),
        "price": _money(p.price_cents),
        "stock_alert": _kg(p.stock_alert_grams),
        "inventory_value": as_json_number(round_money(line_amount(p.weight_grams, p.price_cents))),
        "expiry_date": p.expiry_date.isoformat(),
    }


def inventory_report(*, category_id: int | None = None) -> dict:
    """Current snapshot of active products and their value at list price."""
    products = _active_products(category_id).order_by(Product.type.asc(), Product.id.asc()).all()

    total_grams = 0
    total_value = Decimal(0)
    low = 0
    for p in products:
        total_grams += p.weight_grams
        total_value += line_amount(p.weight_grams, p.price_cents)
        if p.weight_grams <= p.stock_alert_grams:
            low += 1

    return {
        "type": "inventory",
        "filters": {"category_id": category_id},
        "summary": {
            "product_count": len(products),
            "total_weight": _kg(total_grams),
            "total_value": as_json_number(round_money(total_value)),
            "low_stock_count": low,
        },
        "rows": [_inventory_row(p) for p in products],
    }


def low_stock_report(*, category_id: int | None = None) -> dict:
    """Active products at or below their alert level, largest deficit first."""
    products = _active_products(category_id).filter(
        Product.weight_grams <= Product.stock_alert_grams
    ).all()
    products.sort(key=lambda p: (p.weight_grams - p.stock_alert_grams, p.id))

    rows = []
    for p in products:
        row = _inventory_row(p)
        row["deficit"] = _kg(p.stock_alert_grams - p.weight_grams)
        rows.append(row)

    return {
        "type": "low_stock",
        "filters": {"category_id": category_id},
        "summary": {"product_count": len(rows)},
        "rows": rows,
    }


def build_report(report_type: str, **params) -> dict:
    """Dispatch for GET /api/reports?type=..."""
    if report_type == "sales":
        params.pop("reason", None)
        return sales_report(**params)
    if report_type == "adjustments":
        return adjustments_report(**params)
    if report_type in ("inventory", "low_stock"):
        fn = inventory_report if report_type == "inventory" else low_stock_report
        return fn(category_id=params.get("category_id"))
    raise ValidationError.single(
        "type", "invalid", f"type must be one of: {', '.join(REPORT_TYPES)}", report_type
    )


# =============================================================================
# Dashboard
# =============================================================================

def dashboard_summary(*, today: date | None = None) -> dict:
    today = today or business_today()
    lo, hi = day_bounds(today, today)

    product_count = _active_products().count()
    low_stock_count = _active_products().filter(Product.weight_grams <= Product.stock_alert_grams).count()

    today_row = db.session.query(
        func.count(Sale.id),
        func.coalesce(func.sum(Sale.total_amount_cents), 0),
    ).filter(Sale.sale_date >= lo, Sale.sale_date < hi).one()

    inventory = inventory_report()
    week = sales_report(start_date=today - timedelta(days=6), end_date=today, today=today)
    month_lo, month_hi = day_bounds(today - timedelta(days=DEFAULT_WINDOW_DAYS - 1), today)

    return {
        "as_of": today.isoformat(),
        "product_count": product_count,
        "low_stock_count": low_stock_count,
        "today_sales_count": int(today_row[0] or 0),
        "today_sales_amount": _money(today_row[1]),
        "inventory_value": inventory["summary"]["total_value"],
        "last_7_days": week["daily"],
        "top_products": _top_products(month_lo, month_hi, limit=5),
        "low_stock_items": low_stock_report()["rows"],
    }
