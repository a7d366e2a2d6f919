# Overview: Flask API routes for sales; parses input and returns JSON responses.

# backend/freshpos/routes/sales.py
"""
Sales API routes.

Body for validate and complete:
    {"items": [{"product_id", "quantity", "price_per_kg"}], "discount", "amount_paid"}

quantity is in kg, discount in percent, money in currency units.
"""

from flask import Blueprint, current_app, request

from ..errors import FreshPOSError, ValidationError
from ..services import sales_service
from freshpos.time_utils import parse_iso_date


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


def _read_cart():
    data = request.get_json(silent=True)
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValidationError.single("body", "json_object", "Invalid JSON payload")
    return data.get("items"), data.get("discount", 0), data.get("amount_paid")


@sales_bp.post("/validate")
def validate_sale_route():
    """
    Dry run: every violation of the cart, with totals when they can be computed.

    Always 200; "ok" tells the client whether the sale would be accepted.
    """
    try:
        items, discount, amount_paid = _read_cart()
        result = sales_service.validate_sale(items, discount, amount_paid)
        return result.to_dict(), 200
    except FreshPOSError as e:
        return e.to_dict(), e.status_code
    except Exception:
        current_app.logger.exception("Failed to validate sale")
        return {"error": "Internal server error"}, 500


@sales_bp.post("")
def complete_sale_route():
    """
    Commit a sale.

    201 {receipt_no, total_amount, change_amount, sale}; 400 lists every
    violation; 409 lists every short product with its current stock.
    """
    try:
        items, discount, amount_paid = _read_cart()
        sale = sales_service.complete_sale(items, discount, amount_paid)
        data = sale.to_dict(include_items=True)
        return {
            "receipt_no": data["receipt_no"],
            "total_amount": data["total_amount"],
            "change_amount": data["change_amount"],
            "sale": data,
        }, 201
    except FreshPOSError as e:
        return e.to_dict(), e.status_code
    except Exception:
        current_app.logger.exception("Failed to complete sale")
        return {"error": "Internal server error"}, 500


@sales_bp.get("")
def list_sales_route():
    """
    Query params:
    - start_date, end_date: YYYY-MM-DD, inclusive (optional)
    - receipt_no: substring match (optional)
    """
    try:
        start_date = parse_iso_date(request.args.get("start_date"))
        end_date = parse_iso_date(request.args.get("end_date"))
    except ValueError:
        return {"error": "start_date and end_date must be YYYY-MM-DD"}, 400

    try:
        sales = sales_service.list_sales(
            start_date=start_date,
            end_date=end_date,
            receipt_no=request.args.get("receipt_no"),
        )
        items = [s.to_dict() for s in sales]
        return {"items": items, "count": len(items)}, 200
    except Exception:
        current_app.logger.exception("Failed to list sales")
        return {"error": "Internal server error"}, 500


@sales_bp.get("/<int:sale_id>")
def get_sale_route(sale_id: int):
    try:
        return sales_service.get_sale(sale_id).to_dict(include_items=True), 200
    except FreshPOSError as e:
        return e.to_dict(), e.status_code
