# Overview: Flask API routes for cash register operations; parses input and returns JSON responses.

"""
Cash Register API Routes

WHY: Drawer accountability. Cashiers open and close their drawer and move
cash in and out; managers provision registers, adjust balances and take
drawers out of service.

SECURITY:
- sale.create for open/close and cash-in/cash-out
- cash_register.manage for provisioning, adjustments and maintenance
- sale.view for reads and variance reports

Money fields are integer cents.
"""

from datetime import date

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_permission
from ..enums import AdjustmentDirection, CashRegisterTransactionType
from ..services import register_service, variance_service
from ..validation import (
    ValidationError,
    optional_text,
    parse_enum,
    require_cents,
    require_int,
)
from .responses import SERVICE_ERRORS, error_response, json_body


cash_register_bp = Blueprint("cash_register", __name__, url_prefix="/api/cash-register")


def _transaction_type_arg():
    raw = request.args.get("transaction_type")
    if not raw:
        return None
    return parse_enum(CashRegisterTransactionType, raw, "transaction_type")


def _description(data: dict):
    # "notes" is accepted as an alias of "description"
    return optional_text(data, "description", max_length=1000) or optional_text(data, "notes", max_length=1000)


# =============================================================================
# PROVISIONING & LOOKUPS
# =============================================================================

@cash_register_bp.post("")
@cash_register_bp.post("/")
@require_auth
@require_permission("cash_register.manage")
def create_cash_register_route():
    """
    Request body:
    {
        "branch_id": 1,
        "name": "Front Counter",
        "description": "Main till"   (optional)
    }
    """
    try:
        data = json_body()
        register = register_service.create_cash_register(
            branch_id=require_int(data, "branch_id"),
            name=data.get("name") or "",
            description=optional_text(data, "description", max_length=1000),
        )
        return jsonify({"cash_register": register.to_dict()}), 201
    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create cash register")
        return jsonify({"error": "Internal server error"}), 500


@cash_register_bp.get("")
@cash_register_bp.get("/")
@require_auth
@require_permission("sale.view")
def list_cash_registers_route():
    registers = register_service.list_cash_registers(branch_id=request.args.get("branch_id", type=int))
    return jsonify({"cash_registers": [r.to_dict() for r in registers]}), 200


@cash_register_bp.get("/available")
@require_auth
@require_permission("sale.view")
def list_available_route():
    """Open registers that can take sales."""
    registers = register_service.list_available_registers(branch_id=request.args.get("branch_id", type=int))
    return jsonify({"cash_registers": [r.to_dict() for r in registers]}), 200


@cash_register_bp.get("/transactions")
@require_auth
@require_permission("sale.view")
def list_all_transactions_route():
    try:
        result = register_service.get_all_transactions(
            page=request.args.get("page", type=int),
            limit=request.args.get("limit", type=int),
            transaction_type=_transaction_type_arg(),
            branch_id=request.args.get("branch_id", type=int),
        )
        return jsonify(result), 200
    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list cash register transactions")
        return jsonify({"error": "Internal server error"}), 500


@cash_register_bp.get("/<int:register_id>")
@require_auth
@require_permission("sale.view")
def get_cash_register_route(register_id: int):
    try:
        register = register_service.get_cash_register(register_id)
        return jsonify({"cash_register": register.to_dict()}), 200
    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load cash register")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# LIFECYCLE
# =============================================================================

@cash_register_bp.post("/open")
@require_auth
@require_permission("sale.create")
def open_route():
    """
    Request body:
    {
        "cash_register_id": 1,
        "opening_balance_cents": 100000,   (optional, default 0)
        "notes": "Morning shift"           (optional)
    }
    """
    try:
        data = json_body()
        register, session = register_service.open_register(
            require_int(data, "cash_register_id"),
            g.current_user.id,
            opening_balance_cents=require_cents(data, "opening_balance_cents", default=0),
            notes=optional_text(data, "notes", max_length=1000),
        )
        return jsonify({"cash_register": register.to_dict(), "session": session.to_dict()}), 200
    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to open cash register")
        return jsonify({"error": "Internal server error"}), 500


@cash_register_bp.post("/close")
@require_auth
@require_permission("sale.create")
def close_route():
    """
    Request body:
    {
        "cash_register_id": 1,
        "actual_amount_cents": 110000,
        "notes": "Counted twice"   (optional)
    }
    """
    try:
        data = json_body()
        register, session = register_service.close_register(
            require_int(data, "cash_register_id"),
            g.current_user.id,
            actual_amount_cents=require_cents(data, "actual_amount_cents"),
            notes=optional_text(data, "notes", max_length=1000),
        )
        return jsonify({
            "cash_register": register.to_dict(),
            "session": session.to_dict(),
            "expected_amount_cents": session.expected_amount_cents,
            "actual_amount_cents": session.actual_amount_cents,
            "variance_cents": session.variance_cents,
        }), 200
    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to close cash register")
        return jsonify({"error": "Internal server error"}), 500


@cash_register_bp.post("/<int:register_id>/maintenance")
@require_auth
@require_permission("cash_register.manage")
def maintenance_route(register_id: int):
    """Request body: {"enabled": true}"""
    try:
        data = json_body()
        enabled = data.get("enabled")
        if not isinstance(enabled, bool):
            raise ValidationError("enabled must be true or false")
        register = register_service.set_maintenance(register_id, enabled)
        return jsonify({"cash_register": register.to_dict()}), 200
    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to change maintenance mode of cash register %s", register_id)
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# CASH MOVEMENTS
# =============================================================================

@cash_register_bp.post("/<int:register_id>/cash-in")
@require_auth
@require_permission("sale.create")
def cash_in_route(register_id: int):
    """Request body: {"amount_cents": 5000, "description": "Float top-up"}"""
    try:
        data = json_body()
        register, tx = register_service.cash_in(
            register_id,
            require_cents(data, "amount_cents", positive=True),
            g.current_user.id,
            description=_description(data),
            reference_no=optional_text(data, "reference_no", max_length=100),
        )
        return jsonify({"cash_register": register.to_dict(), "transaction": tx.to_dict()}), 200
    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed cash-in on cash register %s", register_id)
        return jsonify({"error": "Internal server error"}), 500


@cash_register_bp.post("/<int:register_id>/cash-out")
@require_auth
@require_permission("sale.create")
def cash_out_route(register_id: int):
    """Request body: {"amount_cents": 5000, "description": "Supplier payment"}"""
    try:
        data = json_body()
        register, tx = register_service.cash_out(
            register_id,
            require_cents(data, "amount_cents", positive=True),
            g.current_user.id,
            description=_description(data),
            reference_no=optional_text(data, "reference_no", max_length=100),
        )
        return jsonify({"cash_register": register.to_dict(), "transaction": tx.to_dict()}), 200
    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed cash-out on cash register %s", register_id)
        return jsonify({"error": "Internal server error"}), 500


@cash_register_bp.post("/<int:register_id>/adjust")
@require_auth
@require_permission("cash_register.manage")
def adjust_route(register_id: int):
    """
    Request body:
    {
        "amount_cents": 500,
        "adjustment_type": "increase" | "decrease",
        "description": "Miscounted float"
    }
    """
    try:
        data = json_body()
        description = _description(data)
        if not description:
            raise ValidationError("description is required")
        register, tx = register_service.adjust_balance(
            register_id,
            require_cents(data, "amount_cents", positive=True),
            parse_enum(AdjustmentDirection, data.get("adjustment_type"), "adjustment_type"),
            g.current_user.id,
            description=description,
        )
        return jsonify({"cash_register": register.to_dict(), "transaction": tx.to_dict()}), 200
    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed adjustment on cash register %s", register_id)
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# READS
# =============================================================================

@cash_register_bp.get("/<int:register_id>/transactions")
@require_auth
@require_permission("sale.view")
def list_transactions_route(register_id: int):
    try:
        result = register_service.get_transactions(
            register_id,
            page=request.args.get("page", type=int),
            limit=request.args.get("limit", type=int),
            transaction_type=_transaction_type_arg(),
        )
        return jsonify(result), 200
    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list transactions of cash register %s", register_id)
        return jsonify({"error": "Internal server error"}), 500


@cash_register_bp.get("/<int:register_id>/summary")
@require_auth
@require_permission("sale.view")
def summary_route(register_id: int):
    """Query params: date (YYYY-MM-DD, default today UTC)"""
    try:
        raw_date = request.args.get("date")
        day = None
        if raw_date:
            try:
                day = date.fromisoformat(raw_date)
            except ValueError:
                raise ValidationError("date must be YYYY-MM-DD")
        summary = register_service.get_register_summary(register_id, day)
        return jsonify(summary), 200
    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to summarize cash register %s", register_id)
        return jsonify({"error": "Internal server error"}), 500


@cash_register_bp.get("/<int:register_id>/variance-report")
@require_auth
@require_permission("sale.view")
def variance_report_route(register_id: int):
    """Query params: session_id (optional, defaults to the latest closed session)"""
    try:
        report = variance_service.get_variance_report(
            register_id, session_id=request.args.get("session_id", type=int)
        )
        return jsonify(report), 200
    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to build variance report for cash register %s", register_id)
        return jsonify({"error": "Internal server error"}), 500
