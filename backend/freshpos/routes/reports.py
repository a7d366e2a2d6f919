from flask import Blueprint, current_app, jsonify, request

from freshpos.errors import FreshPOSError
from freshpos.services import reporting_service


reports_bp = Blueprint("reports", __name__, url_prefix="/api")


@reports_bp.get("/reports")
def report():
    """
    GET /api/reports?type=sales|adjustments|inventory|low_stock

    Optional: start_date, end_date (YYYY-MM-DD, default last 30 days),
    category_id, product_id, reason (adjustments only).
    """
    report_type = request.args.get("type", "sales")

    try:
        result = reporting_service.build_report(
            report_type,
            start_date=request.args.get("start_date") or None,
            end_date=request.args.get("end_date") or None,
            category_id=request.args.get("category_id", type=int),
            product_id=request.args.get("product_id", type=int),
            reason=request.args.get("reason") or None,
        )
        return jsonify(result), 200
    except FreshPOSError as exc:
        return jsonify(exc.to_dict()), exc.status_code
    except Exception:
        current_app.logger.exception("Failed to build %s report", report_type)
        return jsonify({"error": "Internal server error"}), 500


@reports_bp.get("/dashboard")
def dashboard():
    try:
        return jsonify(reporting_service.dashboard_summary()), 200
    except Exception:
        current_app.logger.exception("Failed to build dashboard")
        return jsonify({"error": "Internal server error"}), 500
