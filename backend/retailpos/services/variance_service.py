"""
Variance Reporter

Reconciles what a closed session should have held against what was counted.

INVARIANT: variance == actual - (opening + total_in - total_out)

The report is derived only from the session's append-only transaction log, so
it can be rebuilt at any time with the same result. Nothing here writes.
"""

from __future__ import annotations

from ..extensions import db
from ..models import CashRegisterSession, CashRegisterTransaction
from ..enums import AdjustmentDirection, CashRegisterTransactionType, SessionStatus
from ..time_utils import to_utc_z
from ..validation import NotFoundError, PreconditionError
from .register_service import get_cash_register


def _status(variance: int) -> str:
    if variance == 0:
        return "balanced"
    return "overage" if variance > 0 else "shortage"


def build_variance_report(session: CashRegisterSession, transactions: list[CashRegisterTransaction]) -> dict:
    """Pure aggregation of a closed session and its transactions."""
    sales = cash_in = adjustments_in = 0
    refunds = cash_out = adjustments_out = 0
    by_type = {tx_type.value: 0 for tx_type in CashRegisterTransactionType}

    for tx in transactions:
        tx_type = CashRegisterTransactionType(tx.transaction_type)
        by_type[tx_type.value] += 1
        amount = tx.amount_cents
        if tx_type == CashRegisterTransactionType.SALE:
            sales += amount
        elif tx_type == CashRegisterTransactionType.CASH_IN:
            cash_in += amount
        elif tx_type == CashRegisterTransactionType.REFUND:
            refunds += amount
        elif tx_type == CashRegisterTransactionType.CASH_OUT:
            cash_out += amount
        elif tx_type == CashRegisterTransactionType.ADJUSTMENT:
            if tx.direction == AdjustmentDirection.DECREASE.value:
                adjustments_out += amount
            else:
                adjustments_in += amount

    total_in = sales + cash_in + adjustments_in
    total_out = refunds + cash_out + adjustments_out
    opening = session.opening_balance_cents or 0
    expected = opening + total_in - total_out
    counted = session.actual_amount_cents or 0
    variance = counted - expected

    return {
        "cash_register_id": session.cash_register_id,
        "session_id": session.id,
        "opened_at": to_utc_z(session.opened_at),
        "closed_at": to_utc_z(session.closed_at),
        "opening_balance_cents": opening,
        "expected_balance_cents": expected,
        "counted_balance_cents": counted,
        "variance_cents": variance,
        "status": _status(variance),
        "cash_in": {
            "sales_cents": sales,
            "cash_in_cents": cash_in,
            "adjustments_cents": adjustments_in,
            "total_cents": total_in,
        },
        "cash_out": {
            "refunds_cents": refunds,
            "cash_out_cents": cash_out,
            "adjustments_cents": adjustments_out,
            "total_cents": total_out,
        },
        "transactions_summary": {
            "count": len(transactions),
            "by_type": by_type,
        },
    }


def get_variance_report(register_id: int, session_id: int | None = None) -> dict:
    """
    Variance report for one closed session, by default the most recent one.

    Raises:
        NotFoundError: unknown register, unknown session, or nothing closed yet
        PreconditionError: the requested session is still open
    """
    get_cash_register(register_id)

    if session_id is not None:
        session = (
            db.session.query(CashRegisterSession)
            .filter_by(id=session_id, cash_register_id=register_id)
            .first()
        )
        if not session:
            raise NotFoundError(f"Session {session_id} not found for cash register {register_id}")
        if session.status != SessionStatus.CLOSED.value:
            raise PreconditionError(
                "Variance report is only available for closed sessions",
                {"cash_register_id": register_id, "session_id": session.id},
            )
    else:
        session = (
            db.session.query(CashRegisterSession)
            .filter_by(cash_register_id=register_id, status=SessionStatus.CLOSED.value)
            .order_by(CashRegisterSession.id.desc())
            .first()
        )
        if not session:
            raise NotFoundError(f"Cash register {register_id} has no closed session")

    transactions = (
        db.session.query(CashRegisterTransaction)
        .filter_by(session_id=session.id)
        .order_by(CashRegisterTransaction.id.asc())
        .all()
    )
    return build_variance_report(session, transactions)
