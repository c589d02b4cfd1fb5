# Overview: Double-entry journal posting; every economic event becomes one balanced AccountTransaction.

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import func

from ..extensions import db
from ..models import Account, AccountTransaction, TransactionEntry
from ..validation import ConsistencyError, PreconditionError, ValidationError

"""
Journal Invariants (authoritative)

- sum(debit_cents) == sum(credit_cents) for every AccountTransaction.
- Entries are written in the caller's DB transaction; nothing here commits.
- Postings are immutable. Corrections are new postings, never edits.
"""


# Chart of accounts required by sale settlement: (code, name, type)
DEFAULT_ACCOUNTS = (
    ("ASSET.CASH", "Cash in Hand", "asset"),
    ("ASSET.BANK", "Bank", "asset"),
    ("ASSET.MOBILE", "Mobile Wallet", "asset"),
    ("ASSET.ACCOUNTS_RECEIVABLE", "Accounts Receivable", "asset"),
    ("ASSET.INVENTORY", "Inventory", "asset"),
    ("LIABILITY.OUTPUT_VAT", "Output VAT Payable", "liability"),
    ("INCOME.SALES", "Sales Revenue", "income"),
    ("EXPENSE.SALES_DISCOUNT", "Sales Discount", "expense"),
    ("EXPENSE.COGS", "Cost of Goods Sold", "expense"),
)


class LedgerImbalanceError(ConsistencyError):
    """Debits and credits of a posting do not match."""


class AccountNotFoundError(PreconditionError):
    """Posting references an account code missing from the chart of accounts."""


@dataclass(frozen=True)
class JournalLine:
    account_code: str
    debit_cents: int = 0
    credit_cents: int = 0
    narration: str | None = None


def ensure_default_accounts() -> int:
    """
    Create any missing default accounts. Safe to call repeatedly.

    Returns the number of accounts created.
    """
    existing = {code for (code,) in db.session.query(Account.code).all()}
    created = 0
    for code, name, account_type in DEFAULT_ACCOUNTS:
        if code in existing:
            continue
        db.session.add(Account(code=code, name=name, type=account_type))
        created += 1
    db.session.flush()
    return created


def get_account(code: str) -> Account:
    account = db.session.query(Account).filter_by(code=code).first()
    if not account:
        raise AccountNotFoundError(f"Account {code} not found", {"account_code": code})
    return account


def post_transaction(
    *,
    reference_type: str,
    reference_id: int,
    lines: list[JournalLine],
    created_by_user_id: int | None = None,
) -> AccountTransaction:
    """
    Persist a balanced journal posting.

    Zero-amount lines are dropped. The remaining lines must balance exactly;
    an imbalance is an internal bug, never a user error, so it is raised as
    LedgerImbalanceError (a ConsistencyError) and the caller's transaction
    is expected to roll back.
    """
    if not reference_type:
        raise ValidationError("reference_type is required")

    for line in lines:
        if line.debit_cents < 0 or line.credit_cents < 0:
            raise LedgerImbalanceError(f"Negative journal amount on {line.account_code}")
        if line.debit_cents and line.credit_cents:
            raise LedgerImbalanceError(f"Journal line on {line.account_code} is both debit and credit")

    effective = [line for line in lines if line.debit_cents or line.credit_cents]
    if not effective:
        raise LedgerImbalanceError(f"{reference_type} {reference_id} has no journal amounts")

    total_debit = sum(line.debit_cents for line in effective)
    total_credit = sum(line.credit_cents for line in effective)
    if total_debit != total_credit:
        raise LedgerImbalanceError(
            f"{reference_type} {reference_id} is unbalanced: debit {total_debit} != credit {total_credit}"
        )

    transaction = AccountTransaction(
        reference_type=reference_type,
        reference_id=reference_id,
        created_by_user_id=created_by_user_id,
    )
    db.session.add(transaction)
    db.session.flush()

    for line in effective:
        account = get_account(line.account_code)
        db.session.add(TransactionEntry(
            transaction_id=transaction.id,
            account_id=account.id,
            debit_cents=line.debit_cents,
            credit_cents=line.credit_cents,
            narration=line.narration,
        ))
    db.session.flush()
    return transaction


def get_transactions_for_reference(reference_types: list[str], reference_id: int) -> list[AccountTransaction]:
    return (
        db.session.query(AccountTransaction)
        .filter(
            AccountTransaction.reference_type.in_(reference_types),
            AccountTransaction.reference_id == reference_id,
        )
        .order_by(AccountTransaction.id.asc())
        .all()
    )


def get_account_balance(code: str) -> int:
    """Debit-positive balance of an account across all postings."""
    account = get_account(code)
    debit, credit = (
        db.session.query(
            func.coalesce(func.sum(TransactionEntry.debit_cents), 0),
            func.coalesce(func.sum(TransactionEntry.credit_cents), 0),
        )
        .filter(TransactionEntry.account_id == account.id)
        .one()
    )
    return int(debit) - int(credit)
