# Overview: Flask API routes for product operations; parses input and returns JSON responses.

# backend/freshpos/routes/products.py
"""
Product catalog routes.

weight is read-only after creation: stock changes go through
POST /api/inventory/adjustments or a sale.
"""
from flask import Blueprint, current_app, request

from ..errors import FreshPOSError
from ..services import catalog_service

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
def list_products():
    """
    List products with live weight and expiry status.

    Query params:
    - include_deleted: "true" to include soft-deleted products (default false)
    - category_id: int (optional)
    """
    include_deleted = request.args.get("include_deleted", "false").lower() == "true"
    category_id = request.args.get("category_id", type=int)

    try:
        views = catalog_service.list_products(include_deleted=include_deleted, category_id=category_id)
        items = [v.to_dict() for v in views]
        return {"items": items, "count": len(items)}, 200
    except Exception:
        current_app.logger.exception("Failed to list products")
        return {"error": "Internal server error"}, 500


@products_bp.get("/alerts")
def product_alerts():
    """Low-stock, out-of-stock, expiring and expired products."""
    try:
        return catalog_service.inventory_alerts(), 200
    except Exception:
        current_app.logger.exception("Failed to load product alerts")
        return {"error": "Internal server error"}, 500


@products_bp.post("/refresh-status")
def refresh_status():
    try:
        return catalog_service.recompute_statuses(), 200
    except FreshPOSError as e:
        return e.to_dict(), e.status_code
    except Exception:
        current_app.logger.exception("Failed to refresh product statuses")
        return {"error": "Internal server error"}, 500


@products_bp.get("/<int:product_id>")
def get_product(product_id: int):
    try:
        return catalog_service.get_product(product_id).to_dict(), 200
    except FreshPOSError as e:
        return e.to_dict(), e.status_code


@products_bp.post("")
def create_product_route():
    """
    Create a product.

    An initial weight is booked as an 'add' adjustment. Either category_id or
    category_name may be given; an unknown category_name is created.
    """
    payload = request.get_json(silent=True)

    try:
        created = catalog_service.create_product(payload)
        return created.to_dict(), 201
    except FreshPOSError as e:
        return e.to_dict(), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create product")
        return {"error": "Internal server error"}, 500


@products_bp.put("/<int:product_id>")
def update_product_route(product_id: int):
    """Update descriptive attributes. A weight field is rejected."""
    payload = request.get_json(silent=True)

    try:
        updated = catalog_service.update_product(product_id, payload)
        return updated.to_dict(), 200
    except FreshPOSError as e:
        return e.to_dict(), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update product")
        return {"error": "Internal server error"}, 500


@products_bp.delete("/<int:product_id>")
def delete_product_route(product_id: int):
    """Soft delete. Stock and adjustment history are kept."""
    try:
        deleted = catalog_service.soft_delete(product_id)
        return {"ok": True, "product": deleted.to_dict()}, 200
    except FreshPOSError as e:
        return e.to_dict(), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete product")
        return {"error": "Internal server error"}, 500


@products_bp.post("/<int:product_id>/restore")
def restore_product_route(product_id: int):
    try:
        return catalog_service.restore(product_id).to_dict(), 200
    except FreshPOSError as e:
        return e.to_dict(), e.status_code
    except Exception:
        current_app.logger.exception("Failed to restore product")
        return {"error": "Internal server error"}, 500
