from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


class Account(db.Model):
    """Chart-of-accounts entry, addressed by a dotted code such as ASSET.CASH."""
    __tablename__ = "accounts"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(64), nullable=False, unique=True, index=True)
    name = db.Column(db.String(128), nullable=False)
    type = db.Column(db.String(16), nullable=False)  # asset, liability, equity, income, expense

    def to_dict(self) -> dict:
        return {"id": self.id, "code": self.code, "name": self.name, "type": self.type}


class AccountTransaction(db.Model):
    """
    Balanced journal posting for one economic event.

    INVARIANT: sum(entries.debit_cents) == sum(entries.credit_cents).
    Linked to its source document by (reference_type, reference_id), not owned by it.
    Immutable once written.
    """
    __tablename__ = "account_transactions"
    __table_args__ = (
        db.Index("ix_account_tx_reference", "reference_type", "reference_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    reference_type = db.Column(db.String(32), nullable=False)
    reference_id = db.Column(db.Integer, nullable=False)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    entries = db.relationship(
        "TransactionEntry", back_populates="transaction", lazy=True, order_by="TransactionEntry.id"
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "reference_type": self.reference_type,
            "reference_id": self.reference_id,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "entries": [entry.to_dict() for entry in self.entries],
        }


class TransactionEntry(db.Model):
    __tablename__ = "transaction_entries"
    __table_args__ = (
        db.CheckConstraint("debit_cents >= 0 AND credit_cents >= 0", name="ck_entries_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    transaction_id = db.Column(db.Integer, db.ForeignKey("account_transactions.id"), nullable=False, index=True)
    account_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=False, index=True)
    debit_cents = db.Column(db.Integer, nullable=False, default=0)
    credit_cents = db.Column(db.Integer, nullable=False, default=0)
    narration = db.Column(db.String(255), nullable=True)

    transaction = db.relationship("AccountTransaction", back_populates="entries")
    account = db.relationship("Account")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "account_code": self.account.code if self.account else "N/A",
            "account_name": self.account.name if self.account else "N/A",
            "debit_cents": self.debit_cents,
            "credit_cents": self.credit_cents,
            "narration": self.narration,
        }
