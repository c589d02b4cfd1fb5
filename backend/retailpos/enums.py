# Overview: Shared enumerations for pricing, settlement and cash register rules.

from __future__ import annotations

from enum import Enum


class PaymentMethod(str, Enum):
    CASH = "cash"
    BANK = "bank"
    MOBILE = "mobile"
    CARD = "card"


class DiscountType(str, Enum):
    FIXED = "fixed"
    PERCENTAGE = "percentage"


class SaleStatus(str, Enum):
    DRAFT = "draft"
    PENDING = "pending"
    COMPLETED = "completed"
    HELD = "held"
    REFUNDED = "refunded"
    PARTIAL_REFUND = "partial_refund"
    CANCELLED = "cancelled"


class SaleType(str, Enum):
    POS = "pos"
    REGULAR = "regular"


class CashRegisterStatus(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    MAINTENANCE = "maintenance"


class CashRegisterTransactionType(str, Enum):
    OPENING_BALANCE = "opening_balance"
    SALE = "sale"
    CASH_IN = "cash_in"
    CASH_OUT = "cash_out"
    REFUND = "refund"
    ADJUSTMENT = "adjustment"
    CLOSING_BALANCE = "closing_balance"


class AdjustmentDirection(str, Enum):
    INCREASE = "increase"
    DECREASE = "decrease"


class StockMovementType(str, Enum):
    IN = "IN"
    OUT = "OUT"


class SessionStatus(str, Enum):
    OPEN = "open"
    CLOSED = "closed"


# Transaction types that add cash to the drawer / remove it. Adjustments depend on direction.
INFLOW_TRANSACTION_TYPES = frozenset({
    CashRegisterTransactionType.SALE,
    CashRegisterTransactionType.CASH_IN,
})
OUTFLOW_TRANSACTION_TYPES = frozenset({
    CashRegisterTransactionType.CASH_OUT,
    CashRegisterTransactionType.REFUND,
})
