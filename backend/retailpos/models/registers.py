from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


class CashRegister(db.Model):
    """
    Physical cash drawer.

    LIFECYCLE: closed -> open -> closed (repeatable). maintenance is only
    reachable from closed and blocks every cash operation.

    INVARIANT: current_balance_cents == opening_balance_cents + signed sum of the
    transactions posted since the last open.

    DESIGN: version_id gives optimistic locking on top of SELECT ... FOR UPDATE,
    so concurrent sales cannot lose balance updates.
    """
    __tablename__ = "cash_registers"
    __table_args__ = (
        db.UniqueConstraint("branch_id", "name", name="uq_cash_registers_branch_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.Text, nullable=True)

    status = db.Column(db.String(16), nullable=False, default="closed", index=True)  # closed, open, maintenance

    opening_balance_cents = db.Column(db.Integer, nullable=False, default=0)
    current_balance_cents = db.Column(db.Integer, nullable=False, default=0)

    # Set at close time
    expected_amount_cents = db.Column(db.Integer, nullable=True)
    actual_amount_cents = db.Column(db.Integer, nullable=True)
    variance_cents = db.Column(db.Integer, nullable=True)  # actual - expected

    opened_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    opened_at = db.Column(db.DateTime(timezone=True), nullable=True)
    closed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    closed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    branch = db.relationship("Branch", backref=db.backref("cash_registers", lazy=True))
    opened_by = db.relationship("User", foreign_keys=[opened_by_user_id])
    closed_by = db.relationship("User", foreign_keys=[closed_by_user_id])
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "name": self.name,
            "description": self.description,
            "status": self.status,
            "opening_balance_cents": self.opening_balance_cents,
            "current_balance_cents": self.current_balance_cents,
            "expected_amount_cents": self.expected_amount_cents,
            "actual_amount_cents": self.actual_amount_cents,
            "variance_cents": self.variance_cents,
            "opened_by_user_id": self.opened_by_user_id,
            "opened_at": to_utc_z(self.opened_at),
            "closed_by_user_id": self.closed_by_user_id,
            "closed_at": to_utc_z(self.closed_at),
            "notes": self.notes,
            "version_id": self.version_id,
        }


class CashRegisterSession(db.Model):
    """
    Closing record for one open/close cycle of a register.

    IMMUTABLE once status is closed. Variance reports are always scoped to one
    session, so reports for past shifts stay reproducible after the register
    reopens.
    """
    __tablename__ = "cash_register_sessions"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    cash_register_id = db.Column(db.Integer, db.ForeignKey("cash_registers.id"), nullable=False, index=True)
    status = db.Column(db.String(16), nullable=False, default="open", index=True)  # open, closed

    opening_balance_cents = db.Column(db.Integer, nullable=False, default=0)
    expected_amount_cents = db.Column(db.Integer, nullable=True)
    actual_amount_cents = db.Column(db.Integer, nullable=True)
    variance_cents = db.Column(db.Integer, nullable=True)

    opened_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    opened_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    closed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    closed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    cash_register = db.relationship("CashRegister", backref=db.backref("sessions", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "cash_register_id": self.cash_register_id,
            "status": self.status,
            "opening_balance_cents": self.opening_balance_cents,
            "expected_amount_cents": self.expected_amount_cents,
            "actual_amount_cents": self.actual_amount_cents,
            "variance_cents": self.variance_cents,
            "opened_by_user_id": self.opened_by_user_id,
            "opened_at": to_utc_z(self.opened_at),
            "closed_by_user_id": self.closed_by_user_id,
            "closed_at": to_utc_z(self.closed_at),
            "notes": self.notes,
        }


class CashRegisterTransaction(db.Model):
    """
    Append-only drawer posting.

    amount_cents is never negative; direction comes from transaction_type
    (and from `direction` for adjustments). running_balance_cents is the
    register balance immediately after this posting, so rows must be read in
    id order.
    """
    __tablename__ = "cash_register_transactions"
    __table_args__ = (
        db.Index("ix_cash_register_tx_register_created", "cash_register_id", "created_at"),
        db.CheckConstraint("amount_cents >= 0", name="ck_cash_register_tx_amount_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    cash_register_id = db.Column(db.Integer, db.ForeignKey("cash_registers.id"), nullable=False, index=True)
    session_id = db.Column(db.Integer, db.ForeignKey("cash_register_sessions.id"), nullable=False, index=True)

    transaction_type = db.Column(db.String(20), nullable=False, index=True)
    amount_cents = db.Column(db.Integer, nullable=False)
    direction = db.Column(db.String(10), nullable=True)  # increase/decrease, adjustments only
    payment_method = db.Column(db.String(16), nullable=False, default="cash")
    running_balance_cents = db.Column(db.Integer, nullable=False)

    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)

    description = db.Column(db.Text, nullable=True)
    reference_no = db.Column(db.String(100), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    cash_register = db.relationship("CashRegister", backref=db.backref("transactions", lazy="dynamic"))
    session = db.relationship("CashRegisterSession", backref=db.backref("transactions", lazy=True, order_by="CashRegisterTransaction.id"))
    sale = db.relationship("Sale")
    user = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "cash_register_id": self.cash_register_id,
            "session_id": self.session_id,
            "transaction_type": self.transaction_type,
            "amount_cents": self.amount_cents,
            "direction": self.direction,
            "payment_method": self.payment_method,
            "running_balance_cents": self.running_balance_cents,
            "sale_id": self.sale_id,
            "user_id": self.user_id,
            "description": self.description,
            "reference_no": self.reference_no,
            "created_at": to_utc_z(self.created_at),
        }
