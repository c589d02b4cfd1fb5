# Overview: Flask API routes for POS sales; parses input and returns JSON responses.

"""
POS Sale API Routes

DESIGN:
- Routes only parse input and shape output; settlement lives in pos_service
- The operator is always g.current_user, passed explicitly to the service

SECURITY:
- sale.create to settle a sale
- sale.view for every read
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_permission
from ..services import pos_service
from ..services.pos_service import PosSaleRequest
from .responses import SERVICE_ERRORS, error_response, json_body, query_datetime


pos_bp = Blueprint("pos", __name__, url_prefix="/api/pos")


@pos_bp.post("/sale")
@require_auth
@require_permission("sale.create")
def create_sale_route():
    """
    Settle a cart into a sale.

    Request body:
    {
        "items": [{"product_id": 1, "warehouse_id": 1, "quantity": 2, "discount_cents": 0}],
        "branch_id": 1,
        "customer_id": 5,                 (optional)
        "discount_type": "percentage",    (optional, fixed|percentage)
        "discount": 10,                   (optional, cents or percent)
        "tax_percentage": 5,              (optional)
        "payment_method": "cash",
        "paid_amount_cents": 18900,
        "account_code": "ASSET.CASH",     (optional)
        "cash_register_id": 1             (required for cash)
    }
    """
    try:
        sale_request = PosSaleRequest.from_payload(json_body())
        sale = pos_service.create_pos_sale(sale_request, g.current_user.id)
        return jsonify({"sale": sale.to_dict(include_relations=True)}), 201
    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create POS sale")
        return jsonify({"error": "Internal server error"}), 500


@pos_bp.get("/sales")
@require_auth
@require_permission("sale.view")
def list_sales_route():
    """Paginated completed POS sales, newest first."""
    try:
        result = pos_service.list_pos_sales(
            page=request.args.get("page", type=int),
            limit=request.args.get("limit", type=int),
        )
        return jsonify(result), 200
    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list POS sales")
        return jsonify({"error": "Internal server error"}), 500


@pos_bp.get("/summary/today")
@require_auth
@require_permission("sale.view")
def today_summary_route():
    try:
        summary = pos_service.get_today_summary(branch_id=request.args.get("branch_id", type=int))
        return jsonify(summary), 200
    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to build today's POS summary")
        return jsonify({"error": "Internal server error"}), 500


@pos_bp.get("/sale/<int:sale_id>")
@require_auth
@require_permission("sale.view")
def get_sale_route(sale_id: int):
    try:
        sale = pos_service.get_sale(sale_id)
        return jsonify({"sale": sale.to_dict(include_relations=True)}), 200
    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load sale %s", sale_id)
        return jsonify({"error": "Internal server error"}), 500


@pos_bp.get("/sale/<int:sale_id>/transactions")
@require_auth
@require_permission("sale.view")
def sale_transactions_route(sale_id: int):
    """Journal postings (sale and sale_cogs) of one sale with their entries."""
    try:
        transactions = pos_service.get_sale_transactions(sale_id)
        return jsonify({"sale_id": sale_id, "transactions": transactions}), 200
    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load transactions for sale %s", sale_id)
        return jsonify({"error": "Internal server error"}), 500


@pos_bp.get("/transactions/history")
@require_auth
@require_permission("sale.view")
def transaction_history_route():
    """
    POS sale history.

    Query params: page, limit, branch_id, start_date, end_date (ISO dates;
    a bare end_date includes that whole day)
    """
    try:
        result = pos_service.get_transaction_history(
            page=request.args.get("page", type=int),
            limit=request.args.get("limit", type=int),
            branch_id=request.args.get("branch_id", type=int),
            start=query_datetime("start_date"),
            end=query_datetime("end_date", end_of_day=True),
        )
        return jsonify(result), 200
    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load POS transaction history")
        return jsonify({"error": "Internal server error"}), 500
