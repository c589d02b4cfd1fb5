"""
Cash register lifecycle and cash movement tests.
"""

import pytest

from retailpos.models import CashRegister, CashRegisterSession, CashRegisterTransaction
from retailpos.services import register_service
from retailpos.services.register_service import (
    CashRegisterNotOpenError,
    InsufficientCashError,
    RegisterAlreadyOpenError,
    RunningBalanceMismatchError,
)
from retailpos.validation import NotFoundError, PreconditionError, ValidationError


def transaction_types(register_id):
    rows = (
        CashRegisterTransaction.query
        .filter_by(cash_register_id=register_id)
        .order_by(CashRegisterTransaction.id.asc())
        .all()
    )
    return [row.transaction_type for row in rows]


# =============================================================================
# PROVISIONING
# =============================================================================

class TestProvisioning:

    def test_new_register_is_closed_and_empty(self, db_session, register):
        assert register.status == "closed"
        assert register.current_balance_cents == 0

    def test_duplicate_name_in_branch_rejected(self, db_session, branch, register):
        with pytest.raises(PreconditionError, match="already exists in this branch"):
            register_service.create_cash_register(branch.id, "Front Counter")

    def test_same_name_in_other_branch_allowed(self, db_session, register, other_branch):
        other = register_service.create_cash_register(other_branch.id, "Front Counter")
        assert other.id != register.id

    def test_unknown_branch(self, db_session):
        with pytest.raises(NotFoundError):
            register_service.create_cash_register(999999, "Till")

    def test_blank_name(self, db_session, branch):
        with pytest.raises(ValidationError):
            register_service.create_cash_register(branch.id, "   ")

    def test_available_registers_only_lists_open(self, db_session, branch, open_register):
        register_service.create_cash_register(branch.id, "Back Counter")

        available = register_service.list_available_registers(branch.id)
        assert [r.id for r in available] == [open_register.id]
        assert len(register_service.list_cash_registers(branch.id)) == 2


# =============================================================================
# LIFECYCLE
# =============================================================================

class TestOpenClose:

    def test_open_sets_balance_and_starts_session(self, db_session, register, cashier_user):
        opened, session = register_service.open_register(register.id, cashier_user.id, 1000, notes="Morning")

        assert opened.status == "open"
        assert opened.opening_balance_cents == 1000
        assert opened.current_balance_cents == 1000
        assert opened.opened_by_user_id == cashier_user.id
        assert session.status == "open"
        assert session.opening_balance_cents == 1000

        tx = CashRegisterTransaction.query.filter_by(session_id=session.id).one()
        assert tx.transaction_type == "opening_balance"
        assert tx.running_balance_cents == 1000

    def test_open_twice_rejected(self, db_session, open_register, cashier_user):
        with pytest.raises(RegisterAlreadyOpenError, match="Cash register is already open"):
            register_service.open_register(open_register.id, cashier_user.id, 500)

        assert CashRegisterSession.query.filter_by(cash_register_id=open_register.id).count() == 1

    def test_negative_opening_balance(self, db_session, register, cashier_user):
        with pytest.raises(ValidationError):
            register_service.open_register(register.id, cashier_user.id, -1)

    def test_close_records_shortage(self, db_session, open_register, cashier_user):
        closed, session = register_service.close_register(open_register.id, cashier_user.id, 950)

        assert closed.status == "closed"
        assert closed.expected_amount_cents == 1000
        assert closed.actual_amount_cents == 950
        assert closed.variance_cents == -50
        assert closed.current_balance_cents == 950
        assert session.status == "closed"
        assert session.variance_cents == -50
        assert transaction_types(open_register.id) == ["opening_balance", "closing_balance"]

    def test_close_records_overage(self, db_session, open_register, cashier_user):
        closed, _session = register_service.close_register(open_register.id, cashier_user.id, 1020)
        assert closed.variance_cents == 20

    def test_close_when_closed_rejected(self, db_session, register, cashier_user):
        with pytest.raises(CashRegisterNotOpenError, match="Cash register is not open"):
            register_service.close_register(register.id, cashier_user.id, 0)

    def test_reopen_clears_previous_close(self, db_session, open_register, cashier_user):
        register_service.close_register(open_register.id, cashier_user.id, 900)
        reopened, session = register_service.open_register(open_register.id, cashier_user.id, 900)

        assert reopened.status == "open"
        assert reopened.variance_cents is None
        assert reopened.expected_amount_cents is None
        assert reopened.closed_at is None
        assert CashRegisterSession.query.filter_by(cash_register_id=open_register.id).count() == 2
        assert session.status == "open"

    def test_close_detects_tampered_balance(self, db_session, open_register, cashier_user):
        register = db_session.get(CashRegister, open_register.id)
        register.current_balance_cents = 5000
        db_session.commit()

        with pytest.raises(RunningBalanceMismatchError):
            register_service.close_register(open_register.id, cashier_user.id, 5000)

        register = db_session.get(CashRegister, open_register.id)
        assert register.status == "open"
        assert "closing_balance" not in transaction_types(open_register.id)


class TestMaintenance:

    def test_maintenance_blocks_open(self, db_session, register, cashier_user):
        register_service.set_maintenance(register.id, True)

        with pytest.raises(PreconditionError, match="under maintenance"):
            register_service.open_register(register.id, cashier_user.id, 100)

    def test_back_to_closed_then_open(self, db_session, register, cashier_user):
        register_service.set_maintenance(register.id, True)
        restored = register_service.set_maintenance(register.id, False)
        assert restored.status == "closed"

        opened, _session = register_service.open_register(register.id, cashier_user.id, 100)
        assert opened.status == "open"

    def test_repeating_state_is_noop(self, db_session, register):
        register_service.set_maintenance(register.id, True)
        again = register_service.set_maintenance(register.id, True)
        assert again.status == "maintenance"

    def test_open_register_cannot_enter_maintenance(self, db_session, open_register):
        with pytest.raises(PreconditionError, match="Close the cash register"):
            register_service.set_maintenance(open_register.id, True)


# =============================================================================
# CASH MOVEMENTS
# =============================================================================

class TestCashMovements:

    def test_cash_in_and_out(self, db_session, open_register, cashier_user):
        _reg, tx_in = register_service.cash_in(open_register.id, 250, cashier_user.id, description="Float top-up")
        reg, tx_out = register_service.cash_out(open_register.id, 400, cashier_user.id, reference_no="PAY-1")

        assert tx_in.running_balance_cents == 1250
        assert tx_out.running_balance_cents == 850
        assert tx_out.reference_no == "PAY-1"
        assert reg.current_balance_cents == 850

    def test_cash_out_exceeding_drawer_rejected(self, db_session, register, cashier_user):
        register_service.open_register(register.id, cashier_user.id, 300)

        with pytest.raises(InsufficientCashError, match="Insufficient cash in register") as exc_info:
            register_service.cash_out(register.id, 500, cashier_user.id)

        assert exc_info.value.details["current_balance_cents"] == 300
        assert db_session.get(CashRegister, register.id).current_balance_cents == 300
        assert transaction_types(register.id) == ["opening_balance"]

    def test_cash_out_of_entire_drawer_allowed(self, db_session, open_register, cashier_user):
        reg, _tx = register_service.cash_out(open_register.id, 1000, cashier_user.id)
        assert reg.current_balance_cents == 0

    @pytest.mark.parametrize("amount", [0, -10, 1.5, True])
    def test_invalid_amounts(self, db_session, open_register, cashier_user, amount):
        with pytest.raises(ValidationError):
            register_service.cash_in(open_register.id, amount, cashier_user.id)

    def test_movements_require_open_register(self, db_session, register, cashier_user):
        with pytest.raises(CashRegisterNotOpenError):
            register_service.cash_in(register.id, 100, cashier_user.id)

    def test_adjustments(self, db_session, open_register, cashier_user):
        register_service.adjust_balance(open_register.id, 30, "increase", cashier_user.id, description="Found coins")
        reg, tx = register_service.adjust_balance(open_register.id, 80, "decrease", cashier_user.id, description="Miscount")

        assert tx.direction == "decrease"
        assert reg.current_balance_cents == 950

    def test_decrease_adjustment_obeys_floor(self, db_session, open_register, cashier_user):
        with pytest.raises(InsufficientCashError):
            register_service.adjust_balance(open_register.id, 1001, "decrease", cashier_user.id)

    def test_unknown_register(self, db_session, cashier_user):
        with pytest.raises(NotFoundError):
            register_service.cash_in(999999, 100, cashier_user.id)


class TestBalanceConsistency:

    def test_balance_matches_transaction_log(self, db_session, open_register, cashier_user):
        register_service.cash_in(open_register.id, 500, cashier_user.id)
        register_service.cash_out(open_register.id, 200, cashier_user.id)
        register_service.adjust_balance(open_register.id, 15, "decrease", cashier_user.id)
        register_service.adjust_balance(open_register.id, 40, "increase", cashier_user.id)

        register = db_session.get(CashRegister, open_register.id)
        session = register_service.get_open_session(register.id)
        assert register.current_balance_cents == 1325
        assert register_service.derive_balance_from_log(session) == register.current_balance_cents

        last = (
            CashRegisterTransaction.query
            .filter_by(cash_register_id=register.id)
            .order_by(CashRegisterTransaction.id.desc())
            .first()
        )
        assert last.running_balance_cents == register.current_balance_cents


class TestSummary:

    def test_daily_summary(self, db_session, open_register, cashier_user):
        register_service.cash_in(open_register.id, 500, cashier_user.id)
        register_service.cash_out(open_register.id, 200, cashier_user.id)
        register_service.adjust_balance(open_register.id, 25, "increase", cashier_user.id)
        register_service.close_register(open_register.id, cashier_user.id, 1300)

        summary = register_service.get_register_summary(open_register.id)

        assert summary["opening_balance_cents"] == 1000
        assert summary["cash_in_cents"] == 500
        assert summary["cash_out_cents"] == 200
        assert summary["adjustments_in_cents"] == 25
        assert summary["adjustments_out_cents"] == 0
        assert summary["closing_balance_cents"] == 1300
        assert summary["transactions"] == 5
        assert summary["status"] == "closed"

    def test_transactions_are_paginated_newest_first(self, db_session, open_register, cashier_user):
        for amount in (10, 20, 30):
            register_service.cash_in(open_register.id, amount, cashier_user.id)

        page = register_service.get_transactions(open_register.id, page=1, limit=2)

        assert page["meta"] == {"total": 4, "page": 1, "limit": 2, "totalPages": 2}
        assert [row["amount_cents"] for row in page["data"]] == [30, 20]
