# backend/freshpos/routes/inventory.py
"""
Stock ledger routes.

Quantities are in kg (up to 3 decimals). quantity_change is signed:
positive for reason "add", negative for reason "remove". Sales write their
own 'sale' adjustments and are not accepted here.
"""
from flask import Blueprint, current_app, request

from ..errors import FreshPOSError
from ..services import ledger_service
from ..validation import ADJUSTMENT_POLICY, validate_payload


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")

MAX_LIST_LIMIT = 1000


@inventory_bp.post("/adjustments")
def create_adjustment_route():
    """
    Record a manual stock adjustment.

    Returns 201 {adjustment, new_weight}; 409 with the available quantity
    when a removal would take stock below zero.
    """
    payload = request.get_json(silent=True)

    try:
        patch = validate_payload(
            payload=payload,
            policy=ADJUSTMENT_POLICY,
            partial=False,
            message="Invalid stock adjustment",
        )
        result = ledger_service.adjust(
            product_id=patch["product_id"],
            reason=patch["reason"],
            quantity_change_grams=patch["quantity_change"],
            notes=patch.get("notes"),
        )
        return result.to_dict(), 201
    except FreshPOSError as e:
        return e.to_dict(), e.status_code
    except Exception:
        current_app.logger.exception("Failed to record stock adjustment")
        return {"error": "Internal server error"}, 500


@inventory_bp.get("/adjustments")
def list_adjustments_route():
    """
    Adjustment history, newest first.

    Query params:
    - product_id: int (optional)
    - reason: add | remove | sale (optional)
    - limit: int (optional, default 200, max 1000)
    """
    product_id = request.args.get("product_id", type=int)
    reason = request.args.get("reason") or None
    limit = request.args.get("limit", 200, type=int)
    limit = max(1, min(limit, MAX_LIST_LIMIT))

    try:
        rows = ledger_service.list_adjustments(product_id=product_id, reason=reason, limit=limit)
        items = [r.to_dict() for r in rows]
        return {"items": items, "count": len(items)}, 200
    except FreshPOSError as e:
        return e.to_dict(), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list stock adjustments")
        return {"error": "Internal server error"}, 500


@inventory_bp.get("/<int:product_id>/balance")
def balance_route(product_id: int):
    """Cached weight next to the balance replayed from the ledger."""
    try:
        return ledger_service.verify_balance(product_id), 200
    except FreshPOSError as e:
        return e.to_dict(), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load stock balance")
        return {"error": "Internal server error"}, 500
