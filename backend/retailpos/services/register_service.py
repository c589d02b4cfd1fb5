"""
Cash Register State Machine

WHY: A drawer must always be explainable. Every cent that enters or leaves it
is an append-only CashRegisterTransaction, and each transaction records the
balance right after it, so a closed shift can be audited line by line.

DESIGN PRINCIPLES:
- Lifecycle closed -> open -> closed, repeatable; maintenance only from closed
- One CashRegisterSession per open/close cycle, immutable once closed
- Every mutation locks the register row (FOR UPDATE + version_id) and runs as
  a single DB transaction, retried on lost updates
- current_balance never goes negative
"""

from __future__ import annotations

from datetime import date

from flask import current_app

from ..extensions import db
from ..models import Branch, CashRegister, CashRegisterSession, CashRegisterTransaction
from ..enums import (
    AdjustmentDirection,
    CashRegisterStatus,
    CashRegisterTransactionType,
    INFLOW_TRANSACTION_TYPES,
    OUTFLOW_TRANSACTION_TYPES,
    PaymentMethod,
    SessionStatus,
)
from ..time_utils import day_bounds, utcnow
from ..validation import (
    ConsistencyError,
    NotFoundError,
    PreconditionError,
    ValidationError,
    MAX_AMOUNT_CENTS,
)
from .concurrency import lock_for_update, run_with_retry
from .pagination import paginate


class CashRegisterNotOpenError(PreconditionError):
    """Operation requires an open register."""


class RegisterAlreadyOpenError(PreconditionError):
    """Open attempted on a register that is already open."""


class InsufficientCashError(PreconditionError):
    """Outflow larger than the cash currently in the drawer."""


class RunningBalanceMismatchError(ConsistencyError):
    """Stored balance disagrees with the balance derived from the transaction log."""


# =============================================================================
# HELPERS
# =============================================================================

def signed_amount(tx: CashRegisterTransaction) -> int:
    """
    Effect of one movement on the drawer balance.

    opening_balance and closing_balance rows are snapshots, not movements,
    so they contribute 0.
    """
    tx_type = CashRegisterTransactionType(tx.transaction_type)
    if tx_type in INFLOW_TRANSACTION_TYPES:
        return tx.amount_cents
    if tx_type in OUTFLOW_TRANSACTION_TYPES:
        return -tx.amount_cents
    if tx_type == CashRegisterTransactionType.ADJUSTMENT:
        if tx.direction == AdjustmentDirection.DECREASE.value:
            return -tx.amount_cents
        return tx.amount_cents
    return 0


def _require_amount(amount_cents, field: str = "amount") -> int:
    if isinstance(amount_cents, bool) or not isinstance(amount_cents, int):
        raise ValidationError(f"{field} must be an integer number of cents")
    if amount_cents <= 0:
        raise ValidationError(f"{field} must be greater than 0")
    if amount_cents > MAX_AMOUNT_CENTS:
        raise ValidationError(f"{field} cannot exceed {MAX_AMOUNT_CENTS}")
    return amount_cents


def _load_locked(register_id: int) -> CashRegister:
    register = lock_for_update(db.session.query(CashRegister).filter_by(id=register_id)).first()
    if not register:
        raise NotFoundError(f"Cash register {register_id} not found")
    return register


def _require_open(register: CashRegister) -> None:
    if register.status != CashRegisterStatus.OPEN.value:
        raise CashRegisterNotOpenError(
            "Cash register is not open",
            {"cash_register_id": register.id, "status": register.status},
        )


def get_open_session(register_id: int) -> CashRegisterSession | None:
    return (
        db.session.query(CashRegisterSession)
        .filter_by(cash_register_id=register_id, status=SessionStatus.OPEN.value)
        .order_by(CashRegisterSession.id.desc())
        .first()
    )


def _require_session(register: CashRegister) -> CashRegisterSession:
    session = get_open_session(register.id)
    if session is None:
        raise ConsistencyError(f"Cash register {register.id} is open without an open session")
    return session


def _post(
    register: CashRegister,
    session: CashRegisterSession,
    tx_type: CashRegisterTransactionType,
    amount_cents: int,
    user_id: int,
    *,
    running_balance_cents: int,
    direction: AdjustmentDirection | None = None,
    sale_id: int | None = None,
    description: str | None = None,
    reference_no: str | None = None,
) -> CashRegisterTransaction:
    tx = CashRegisterTransaction(
        cash_register_id=register.id,
        session_id=session.id,
        transaction_type=tx_type.value,
        amount_cents=amount_cents,
        direction=direction.value if direction else None,
        payment_method=PaymentMethod.CASH.value,
        running_balance_cents=running_balance_cents,
        sale_id=sale_id,
        user_id=user_id,
        description=description,
        reference_no=reference_no,
    )
    db.session.add(tx)
    return tx


def _apply_movement(
    register: CashRegister,
    tx_type: CashRegisterTransactionType,
    amount_cents: int,
    user_id: int,
    *,
    direction: AdjustmentDirection | None = None,
    sale_id: int | None = None,
    description: str | None = None,
    reference_no: str | None = None,
) -> CashRegisterTransaction:
    """Move cash in or out of an open, already-locked register."""
    _require_open(register)
    session = _require_session(register)

    outflow = tx_type in OUTFLOW_TRANSACTION_TYPES or direction == AdjustmentDirection.DECREASE
    current = register.current_balance_cents or 0
    if outflow:
        if amount_cents > current:
            raise InsufficientCashError(
                "Insufficient cash in register",
                {"cash_register_id": register.id, "current_balance_cents": current, "requested_cents": amount_cents},
            )
        new_balance = current - amount_cents
    else:
        new_balance = current + amount_cents
        if new_balance > MAX_AMOUNT_CENTS:
            raise ValidationError(f"Register balance cannot exceed {MAX_AMOUNT_CENTS}")

    register.current_balance_cents = new_balance
    tx = _post(
        register,
        session,
        tx_type,
        amount_cents,
        user_id,
        running_balance_cents=new_balance,
        direction=direction,
        sale_id=sale_id,
        description=description,
        reference_no=reference_no,
    )
    db.session.flush()
    return tx


def derive_balance_from_log(session: CashRegisterSession) -> int:
    """Opening balance plus every signed movement posted in the session."""
    transactions = (
        db.session.query(CashRegisterTransaction)
        .filter_by(session_id=session.id)
        .order_by(CashRegisterTransaction.id.asc())
        .all()
    )
    return (session.opening_balance_cents or 0) + sum(signed_amount(tx) for tx in transactions)


# =============================================================================
# PROVISIONING & LOOKUPS
# =============================================================================

def create_cash_register(branch_id: int, name: str, description: str | None = None) -> CashRegister:
    """Create a register in the closed state. Names are unique per branch."""
    name = (name or "").strip()
    if not name:
        raise ValidationError("name is required")
    if not db.session.get(Branch, branch_id):
        raise NotFoundError(f"Branch {branch_id} not found")

    existing = db.session.query(CashRegister).filter_by(branch_id=branch_id, name=name).first()
    if existing:
        raise PreconditionError(
            f"Cash register '{name}' already exists in this branch",
            {"cash_register_id": existing.id},
        )

    register = CashRegister(
        branch_id=branch_id,
        name=name,
        description=description,
        status=CashRegisterStatus.CLOSED.value,
        opening_balance_cents=0,
        current_balance_cents=0,
    )
    db.session.add(register)
    db.session.commit()
    return register


def get_cash_register(register_id: int) -> CashRegister:
    register = db.session.get(CashRegister, register_id)
    if not register:
        raise NotFoundError(f"Cash register {register_id} not found")
    return register


def list_cash_registers(branch_id: int | None = None) -> list[CashRegister]:
    query = db.session.query(CashRegister)
    if branch_id is not None:
        query = query.filter_by(branch_id=branch_id)
    return query.order_by(CashRegister.branch_id.asc(), CashRegister.name.asc()).all()


def list_available_registers(branch_id: int | None = None) -> list[CashRegister]:
    """Registers that can take sales right now."""
    query = db.session.query(CashRegister).filter_by(status=CashRegisterStatus.OPEN.value)
    if branch_id is not None:
        query = query.filter_by(branch_id=branch_id)
    return query.order_by(CashRegister.name.asc()).all()


# =============================================================================
# LIFECYCLE
# =============================================================================

def open_register(
    register_id: int,
    user_id: int,
    opening_balance_cents: int = 0,
    notes: str | None = None,
) -> tuple[CashRegister, CashRegisterSession]:
    """
    Open a closed register and start a new session.

    Clears the previous close figures and posts an opening_balance row whose
    running balance is the opening amount.

    Raises:
        RegisterAlreadyOpenError: register is open
        PreconditionError: register is in maintenance
    """
    if isinstance(opening_balance_cents, bool) or not isinstance(opening_balance_cents, int):
        raise ValidationError("opening_balance must be an integer number of cents")
    if opening_balance_cents < 0:
        raise ValidationError("opening_balance must be >= 0")
    if opening_balance_cents > MAX_AMOUNT_CENTS:
        raise ValidationError(f"opening_balance cannot exceed {MAX_AMOUNT_CENTS}")

    def _op():
        register = _load_locked(register_id)
        if register.status == CashRegisterStatus.OPEN.value:
            raise RegisterAlreadyOpenError(
                "Cash register is already open", {"cash_register_id": register.id}
            )
        if register.status == CashRegisterStatus.MAINTENANCE.value:
            raise PreconditionError(
                "Cash register is under maintenance", {"cash_register_id": register.id}
            )

        now = utcnow()
        register.status = CashRegisterStatus.OPEN.value
        register.opening_balance_cents = opening_balance_cents
        register.current_balance_cents = opening_balance_cents
        register.opened_by_user_id = user_id
        register.opened_at = now
        register.expected_amount_cents = None
        register.actual_amount_cents = None
        register.variance_cents = None
        register.closed_by_user_id = None
        register.closed_at = None
        register.notes = notes

        session = CashRegisterSession(
            cash_register_id=register.id,
            status=SessionStatus.OPEN.value,
            opening_balance_cents=opening_balance_cents,
            opened_by_user_id=user_id,
            opened_at=now,
            notes=notes,
        )
        db.session.add(session)
        db.session.flush()

        _post(
            register,
            session,
            CashRegisterTransactionType.OPENING_BALANCE,
            opening_balance_cents,
            user_id,
            running_balance_cents=opening_balance_cents,
            description="Opening balance",
        )
        db.session.commit()
        return register, session

    register, session = run_with_retry(_op)
    current_app.logger.info(
        "Cash register %s opened by user %s with %s cents", register.id, user_id, opening_balance_cents
    )
    return register, session


def close_register(
    register_id: int,
    user_id: int,
    actual_amount_cents: int,
    notes: str | None = None,
) -> tuple[CashRegister, CashRegisterSession]:
    """
    Close an open register against the physically counted cash.

    expected = current balance; variance = actual - expected (positive is an
    overage, negative a shortage). The counted amount becomes the new
    balance, absorbing the variance.

    Raises:
        CashRegisterNotOpenError: register is not open
        RunningBalanceMismatchError: stored balance disagrees with the log
    """
    if isinstance(actual_amount_cents, bool) or not isinstance(actual_amount_cents, int):
        raise ValidationError("actual_amount must be an integer number of cents")
    if actual_amount_cents < 0:
        raise ValidationError("actual_amount must be >= 0")
    if actual_amount_cents > MAX_AMOUNT_CENTS:
        raise ValidationError(f"actual_amount cannot exceed {MAX_AMOUNT_CENTS}")

    def _op():
        register = _load_locked(register_id)
        _require_open(register)
        session = _require_session(register)

        expected = register.current_balance_cents or 0
        derived = derive_balance_from_log(session)
        if derived != expected:
            current_app.logger.error(
                "Cash register %s balance %s disagrees with transaction log %s",
                register.id, expected, derived,
            )
            raise RunningBalanceMismatchError(
                f"Cash register {register.id} balance {expected} does not match transaction log {derived}"
            )

        variance = actual_amount_cents - expected
        now = utcnow()

        _post(
            register,
            session,
            CashRegisterTransactionType.CLOSING_BALANCE,
            actual_amount_cents,
            user_id,
            running_balance_cents=actual_amount_cents,
            description="Closing balance",
        )

        register.status = CashRegisterStatus.CLOSED.value
        register.expected_amount_cents = expected
        register.actual_amount_cents = actual_amount_cents
        register.variance_cents = variance
        register.current_balance_cents = actual_amount_cents
        register.closed_by_user_id = user_id
        register.closed_at = now
        if notes is not None:
            register.notes = notes

        session.status = SessionStatus.CLOSED.value
        session.expected_amount_cents = expected
        session.actual_amount_cents = actual_amount_cents
        session.variance_cents = variance
        session.closed_by_user_id = user_id
        session.closed_at = now
        if notes is not None:
            session.notes = notes

        db.session.commit()
        return register, session

    register, session = run_with_retry(_op)
    current_app.logger.info(
        "Cash register %s closed by user %s: expected=%s actual=%s variance=%s",
        register.id, user_id, session.expected_amount_cents, session.actual_amount_cents, session.variance_cents,
    )
    return register, session


def set_maintenance(register_id: int, enabled: bool) -> CashRegister:
    """
    Move a closed register into maintenance or back to closed.

    An open register must be closed first; repeating the current state is a no-op.
    """
    def _op():
        register = _load_locked(register_id)
        target = CashRegisterStatus.MAINTENANCE if enabled else CashRegisterStatus.CLOSED

        if register.status == target.value:
            return register
        if register.status == CashRegisterStatus.OPEN.value:
            raise PreconditionError(
                "Close the cash register before changing maintenance mode",
                {"cash_register_id": register.id, "status": register.status},
            )

        register.status = target.value
        db.session.commit()
        return register

    return run_with_retry(_op)


# =============================================================================
# CASH MOVEMENTS
# =============================================================================

def cash_in(
    register_id: int,
    amount_cents: int,
    user_id: int,
    description: str | None = None,
    reference_no: str | None = None,
) -> tuple[CashRegister, CashRegisterTransaction]:
    _require_amount(amount_cents)

    def _op():
        register = _load_locked(register_id)
        tx = _apply_movement(
            register, CashRegisterTransactionType.CASH_IN, amount_cents, user_id,
            description=description, reference_no=reference_no,
        )
        db.session.commit()
        return register, tx

    return run_with_retry(_op)


def cash_out(
    register_id: int,
    amount_cents: int,
    user_id: int,
    description: str | None = None,
    reference_no: str | None = None,
) -> tuple[CashRegister, CashRegisterTransaction]:
    """Remove cash from the drawer. Rejected when it would overdraw the drawer."""
    _require_amount(amount_cents)

    def _op():
        register = _load_locked(register_id)
        tx = _apply_movement(
            register, CashRegisterTransactionType.CASH_OUT, amount_cents, user_id,
            description=description, reference_no=reference_no,
        )
        db.session.commit()
        return register, tx

    return run_with_retry(_op)


def adjust_balance(
    register_id: int,
    amount_cents: int,
    direction: AdjustmentDirection,
    user_id: int,
    description: str | None = None,
) -> tuple[CashRegister, CashRegisterTransaction]:
    """Correction posting tagged as an adjustment; decreases obey the same floor as cash_out."""
    _require_amount(amount_cents)
    direction = AdjustmentDirection(direction)

    def _op():
        register = _load_locked(register_id)
        tx = _apply_movement(
            register, CashRegisterTransactionType.ADJUSTMENT, amount_cents, user_id,
            direction=direction, description=description,
        )
        db.session.commit()
        return register, tx

    return run_with_retry(_op)


def record_sale_transaction(sale, register_id: int, user_id: int) -> CashRegisterTransaction | None:
    """
    Add the cash-tendered part of a sale to the drawer.

    Runs inside the settlement transaction and never commits. Returns None
    when the sale carried no cash.
    """
    cash_cents = sum(
        payment.amount_cents for payment in sale.payments
        if payment.method == PaymentMethod.CASH.value
    )
    if cash_cents <= 0:
        return None

    register = _load_locked(register_id)
    return _apply_movement(
        register,
        CashRegisterTransactionType.SALE,
        cash_cents,
        user_id,
        sale_id=sale.id,
        description=f"Sale {sale.invoice_no}",
        reference_no=sale.invoice_no,
    )


def record_refund_transaction(
    sale,
    register_id: int,
    amount_cents: int,
    user_id: int,
    *,
    description: str | None = None,
) -> CashRegisterTransaction:
    """Pay cash back to a customer for a sale; rejected if the drawer cannot cover it."""
    _require_amount(amount_cents)

    def _op():
        register = _load_locked(register_id)
        tx = _apply_movement(
            register,
            CashRegisterTransactionType.REFUND,
            amount_cents,
            user_id,
            sale_id=sale.id,
            description=description or f"Refund for {sale.invoice_no}",
            reference_no=sale.invoice_no,
        )
        db.session.commit()
        return tx

    return run_with_retry(_op)


# =============================================================================
# READS
# =============================================================================

def get_transactions(
    register_id: int,
    page: int | None = None,
    limit: int | None = None,
    transaction_type: CashRegisterTransactionType | None = None,
) -> dict:
    get_cash_register(register_id)
    query = db.session.query(CashRegisterTransaction).filter_by(cash_register_id=register_id)
    if transaction_type is not None:
        query = query.filter_by(transaction_type=transaction_type.value)
    query = query.order_by(CashRegisterTransaction.id.desc())
    return paginate(query, page, limit)


def get_all_transactions(
    page: int | None = None,
    limit: int | None = None,
    transaction_type: CashRegisterTransactionType | None = None,
    branch_id: int | None = None,
) -> dict:
    query = db.session.query(CashRegisterTransaction)
    if branch_id is not None:
        query = query.join(CashRegister, CashRegister.id == CashRegisterTransaction.cash_register_id).filter(
            CashRegister.branch_id == branch_id
        )
    if transaction_type is not None:
        query = query.filter(CashRegisterTransaction.transaction_type == transaction_type.value)
    query = query.order_by(CashRegisterTransaction.id.desc())
    return paginate(query, page, limit)


def get_register_summary(register_id: int, day: date | None = None) -> dict:
    """
    Daily drawer summary for one register.

    opening_balance is the first opening posting of the day and
    closing_balance the last closing posting; without them the register's
    stored figures are used.
    """
    register = get_cash_register(register_id)
    day = day or utcnow().date()
    start, end = day_bounds(day)

    transactions = (
        db.session.query(CashRegisterTransaction)
        .filter(
            CashRegisterTransaction.cash_register_id == register_id,
            CashRegisterTransaction.created_at >= start,
            CashRegisterTransaction.created_at < end,
        )
        .order_by(CashRegisterTransaction.id.asc())
        .all()
    )

    totals = {tx_type: 0 for tx_type in CashRegisterTransactionType}
    adjustments_in = 0
    adjustments_out = 0
    opening = None
    closing = None
    for tx in transactions:
        tx_type = CashRegisterTransactionType(tx.transaction_type)
        totals[tx_type] += tx.amount_cents
        if tx_type == CashRegisterTransactionType.OPENING_BALANCE and opening is None:
            opening = tx.amount_cents
        elif tx_type == CashRegisterTransactionType.CLOSING_BALANCE:
            closing = tx.amount_cents
        elif tx_type == CashRegisterTransactionType.ADJUSTMENT:
            if tx.direction == AdjustmentDirection.DECREASE.value:
                adjustments_out += tx.amount_cents
            else:
                adjustments_in += tx.amount_cents

    return {
        "cash_register_id": register.id,
        "date": day.isoformat(),
        "status": register.status,
        "opening_balance_cents": opening if opening is not None else register.opening_balance_cents,
        "total_sales_cents": totals[CashRegisterTransactionType.SALE],
        "total_refunds_cents": totals[CashRegisterTransactionType.REFUND],
        "cash_in_cents": totals[CashRegisterTransactionType.CASH_IN],
        "cash_out_cents": totals[CashRegisterTransactionType.CASH_OUT],
        "adjustments_in_cents": adjustments_in,
        "adjustments_out_cents": adjustments_out,
        "closing_balance_cents": closing if closing is not None else register.current_balance_cents,
        "transactions": len(transactions),
    }
