# Overview: Flask API routes for product categories.

from flask import Blueprint, current_app, request

from ..errors import FreshPOSError
from ..services import catalog_service

categories_bp = Blueprint("categories", __name__, url_prefix="/api/categories")


@categories_bp.get("")
def list_categories():
    items = [c.to_dict() for c in catalog_service.list_categories()]
    return {"items": items, "count": len(items)}, 200


@categories_bp.post("")
def create_category_route():
    payload = request.get_json(silent=True)

    try:
        return catalog_service.create_category(payload).to_dict(), 201
    except FreshPOSError as e:
        return e.to_dict(), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create category")
        return {"error": "Internal server error"}, 500


@categories_bp.put("/<int:category_id>")
def update_category_route(category_id: int):
    payload = request.get_json(silent=True)

    try:
        return catalog_service.update_category(category_id, payload).to_dict(), 200
    except FreshPOSError as e:
        return e.to_dict(), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update category")
        return {"error": "Internal server error"}, 500


@categories_bp.delete("/<int:category_id>")
def delete_category_route(category_id: int):
    """Refused with 409 while any product, deleted or not, references the category."""
    try:
        catalog_service.delete_category(category_id)
        return {"ok": True}, 200
    except FreshPOSError as e:
        return e.to_dict(), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete category")
        return {"error": "Internal server error"}, 500
