# Overview: Atomic per-day invoice number allocation for sales.

from __future__ import annotations

from datetime import date

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import InvoiceSequence
from ..time_utils import utcnow


INVOICE_PREFIX = "INV"
INVOICE_PAD = 4


def _sequence_key(day: date) -> str:
    return f"{INVOICE_PREFIX}-{day.strftime('%Y%m%d')}"


def _bump(sequence_key: str) -> int | None:
    stmt = (
        update(InvoiceSequence)
        .where(InvoiceSequence.sequence_key == sequence_key)
        .values(next_number=InvoiceSequence.next_number + 1)
    )
    result = db.session.execute(stmt)
    if not result.rowcount:
        return None
    current = (
        db.session.query(InvoiceSequence.next_number)
        .filter_by(sequence_key=sequence_key)
        .scalar()
    )
    return current - 1


def next_invoice_number(day: date | None = None) -> str:
    """
    Allocate the next invoice number for a day, e.g. INV-20260114-0001.

    Runs inside the caller's transaction: if the settlement rolls back, the
    number is released with it. The counter row is bumped with a single
    UPDATE ... SET next_number = next_number + 1, so two concurrent
    settlements can never observe the same value.
    """
    day = day or utcnow().date()
    sequence_key = _sequence_key(day)

    number = _bump(sequence_key)
    if number is None:
        # First invoice of the day. A concurrent insert of the same key loses
        # on the unique constraint and falls back to the UPDATE path.
        try:
            with db.session.begin_nested():
                db.session.add(InvoiceSequence(sequence_key=sequence_key, next_number=2))
            number = 1
        except IntegrityError:
            number = _bump(sequence_key)
            if number is None:
                raise

    return f"{sequence_key}-{number:0{INVOICE_PAD}d}"
