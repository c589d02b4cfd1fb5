"""
Sale Settlement Orchestrator

WHY: A POS checkout touches five things at once: the sale document, stock,
the journal, the invoice counter and (for cash) the drawer. Either all of
them change or none do; a caller never sees a sale id for a half-applied
checkout.

ORDER (inside one DB transaction, retried on lost updates):
1. Resolve branch; for cash, lock the register and require it open
2. Snapshot prices, resolve the customer group discount, price the cart
3. Check stock for every (product, warehouse) pair
4. Persist Sale + SaleItems + SalePayment with a per-day invoice number
5. Decrement stock and write OUT movements
6. Post the "sale" journal (and "sale_cogs" when enabled)
7. Record cash in the drawer
8. Commit
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import (
    Branch,
    CashRegister,
    Customer,
    Product,
    Sale,
    SaleItem,
    SalePayment,
    Warehouse,
)
from ..enums import DiscountType, PaymentMethod, SaleStatus, SaleType, CashRegisterStatus
from ..time_utils import day_bounds, utcnow
from ..validation import (
    NotFoundError,
    PreconditionError,
    ValidationError,
    optional_int,
    optional_text,
    parse_enum,
    parse_percentage,
    require_cents,
    require_int,
)
from .concurrency import lock_for_update, run_with_retry
from .document_service import next_invoice_number
from .inventory_service import check_availability, decrement_stock, get_unit_cost_cents
from .ledger_service import JournalLine, get_transactions_for_reference, post_transaction
from .pagination import paginate
from .pricing_service import CartLine, PriceBreakdown, price_cart, validate_paid_amount
from .register_service import CashRegisterNotOpenError, record_sale_transaction


# Ledger account debited when a payment leg carries no explicit account_code
DEFAULT_PAYMENT_ACCOUNTS = {
    PaymentMethod.CASH: "ASSET.CASH",
    PaymentMethod.BANK: "ASSET.BANK",
    PaymentMethod.CARD: "ASSET.BANK",
    PaymentMethod.MOBILE: "ASSET.MOBILE",
}

SALE_REFERENCE = "sale"
SALE_COGS_REFERENCE = "sale_cogs"


@dataclass(frozen=True)
class PosItem:
    product_id: int
    warehouse_id: int
    quantity: int
    discount_cents: int = 0


@dataclass(frozen=True)
class PosSaleRequest:
    items: tuple[PosItem, ...]
    branch_id: int
    payment_method: PaymentMethod
    paid_amount_cents: int
    customer_id: int | None = None
    discount_type: DiscountType = DiscountType.FIXED
    discount: Decimal = Decimal("0")
    tax_percentage: Decimal = Decimal("0")
    account_code: str | None = None
    cash_register_id: int | None = None
    reference: str | None = None

    @classmethod
    def from_payload(cls, payload: dict) -> "PosSaleRequest":
        """Parse a JSON body. Raises ValidationError on malformed input."""
        if not isinstance(payload, dict):
            raise ValidationError("Request body must be a JSON object")

        raw_items = payload.get("items")
        if not isinstance(raw_items, list) or not raw_items:
            raise ValidationError("At least one item is required")

        items = []
        for index, raw in enumerate(raw_items):
            if not isinstance(raw, dict):
                raise ValidationError(f"items[{index}] must be an object")
            items.append(PosItem(
                product_id=require_int(raw, "product_id"),
                warehouse_id=require_int(raw, "warehouse_id"),
                # quantity <= 0 is rejected by the pricing engine
                quantity=require_int(raw, "quantity"),
                discount_cents=require_cents(raw, "discount_cents", default=0),
            ))

        discount_type = parse_enum(DiscountType, payload.get("discount_type"), "discount_type", default=DiscountType.FIXED)
        if discount_type == DiscountType.PERCENTAGE:
            discount = parse_percentage(payload.get("discount"), "discount")
        else:
            discount = Decimal(require_cents(payload, "discount", default=0))

        return cls(
            items=tuple(items),
            branch_id=require_int(payload, "branch_id"),
            payment_method=parse_enum(PaymentMethod, payload.get("payment_method"), "payment_method"),
            paid_amount_cents=require_cents(payload, "paid_amount_cents"),
            customer_id=optional_int(payload, "customer_id"),
            discount_type=discount_type,
            discount=discount,
            tax_percentage=parse_percentage(payload.get("tax_percentage"), "tax_percentage"),
            account_code=optional_text(payload, "account_code", max_length=64),
            cash_register_id=optional_int(payload, "cash_register_id"),
            reference=optional_text(payload, "reference", max_length=128),
        )


# =============================================================================
# SETTLEMENT
# =============================================================================

def _sale_register(register_id: int, branch_id: int, payment_method: PaymentMethod) -> CashRegister:
    """
    Cash sales lock the drawer and need it open. Other tenders only record
    which till rang the sale up, so the drawer's state does not matter.
    """
    is_cash = payment_method == PaymentMethod.CASH
    query = db.session.query(CashRegister).filter_by(id=register_id)
    if is_cash:
        query = lock_for_update(query)
    register = query.first()
    if not register:
        raise NotFoundError(f"Cash register {register_id} not found")
    if is_cash and register.status != CashRegisterStatus.OPEN.value:
        raise CashRegisterNotOpenError(
            "Cash register is not open",
            {"cash_register_id": register.id, "status": register.status},
        )
    if register.branch_id != branch_id:
        raise PreconditionError(
            "Cash register does not belong to this branch",
            {"cash_register_id": register.id, "branch_id": branch_id},
        )
    return register


def _group_discount_percentage(customer_id: int | None) -> tuple[Customer | None, Decimal]:
    """Walk-in customers and customers without an active group get no group discount."""
    if customer_id is None:
        return None, Decimal("0")
    customer = db.session.get(Customer, customer_id)
    if not customer:
        raise NotFoundError(f"Customer {customer_id} not found")
    if not customer.is_active:
        raise PreconditionError(f"Customer {customer_id} is not active", {"customer_id": customer_id})
    group = customer.group
    if group is None or not group.is_active:
        return customer, Decimal("0")
    return customer, Decimal(str(group.discount_percentage or 0))


def _snapshot_line(item: PosItem, branch_id: int) -> CartLine:
    product = db.session.get(Product, item.product_id)
    if not product:
        raise NotFoundError(f"Product {item.product_id} not found")
    if not product.is_active:
        raise PreconditionError(f"Product {product.name} is not active", {"product_id": product.id})
    if product.price_cents is None:
        raise PreconditionError(f"Product {product.name} has no selling price", {"product_id": product.id})

    warehouse = db.session.get(Warehouse, item.warehouse_id)
    if not warehouse:
        raise NotFoundError(f"Warehouse {item.warehouse_id} not found")
    if warehouse.branch_id != branch_id:
        raise PreconditionError(
            "Warehouse does not belong to this branch",
            {"warehouse_id": warehouse.id, "branch_id": branch_id},
        )

    return CartLine(
        product_id=product.id,
        warehouse_id=warehouse.id,
        quantity=item.quantity,
        unit_price_cents=int(product.price_cents),
        discount_cents=item.discount_cents,
    )


def _sale_journal(sale: Sale, breakdown: PriceBreakdown, payment_account: str) -> list[JournalLine]:
    """
    Dr payment account (paid) + Dr receivable (due) + Dr sales discount
    = Cr sales (subtotal) + Cr output VAT (tax)
    """
    narration = f"Sale {sale.invoice_no}"
    return [
        JournalLine(payment_account, debit_cents=sale.paid_amount_cents, narration=f"{narration} payment"),
        JournalLine("ASSET.ACCOUNTS_RECEIVABLE", debit_cents=sale.due_cents, narration=f"{narration} amount due"),
        JournalLine("EXPENSE.SALES_DISCOUNT", debit_cents=breakdown.total_discount_cents, narration=f"{narration} discount"),
        JournalLine("INCOME.SALES", credit_cents=breakdown.subtotal_cents, narration=narration),
        JournalLine("LIABILITY.OUTPUT_VAT", credit_cents=breakdown.tax_cents, narration=f"{narration} VAT"),
    ]


def create_pos_sale(request: PosSaleRequest, operator_id: int) -> Sale:
    """
    Settle a POS cart into a persisted sale.

    Raises:
        ValidationError: malformed cart, missing cash register for cash,
            overpayment (OverpaymentRejected)
        CashRegisterNotOpenError / InsufficientStockError / PreconditionError
        NotFoundError: unknown branch, register, customer, product or warehouse
        LedgerImbalanceError: internal bug, the whole settlement rolls back
        ConcurrencyConflict: lost updates persisted after every retry
    """
    if request.payment_method == PaymentMethod.CASH and request.cash_register_id is None:
        raise ValidationError("Cash register ID is required for cash payments")

    def _op() -> Sale:
        branch = db.session.get(Branch, request.branch_id)
        if not branch:
            raise NotFoundError(f"Branch {request.branch_id} not found")
        if not branch.is_active:
            raise PreconditionError(f"Branch {branch.id} is not active", {"branch_id": branch.id})

        register = None
        if request.cash_register_id is not None:
            register = _sale_register(request.cash_register_id, branch.id, request.payment_method)

        customer, group_pct = _group_discount_percentage(request.customer_id)
        lines = [_snapshot_line(item, branch.id) for item in request.items]

        breakdown = price_cart(
            lines,
            discount_type=request.discount_type,
            discount_value=request.discount,
            tax_percentage=request.tax_percentage,
            group_discount_percentage=group_pct,
        )
        due = validate_paid_amount(breakdown, request.paid_amount_cents)

        check_availability(lines)

        invoice_no = next_invoice_number()
        sale = Sale(
            invoice_no=invoice_no,
            branch_id=branch.id,
            customer_id=customer.id if customer else None,
            cash_register_id=register.id if register else None,
            subtotal_cents=breakdown.subtotal_cents,
            manual_discount_cents=breakdown.manual_discount_cents,
            group_discount_cents=breakdown.group_discount_cents,
            discount_cents=breakdown.total_discount_cents,
            tax_cents=breakdown.tax_cents,
            total_cents=breakdown.total_cents,
            paid_amount_cents=request.paid_amount_cents,
            status=(SaleStatus.COMPLETED if due <= 0 else SaleStatus.HELD).value,
            sale_type=SaleType.POS.value,
            served_by_user_id=operator_id,
            created_by_user_id=operator_id,
        )
        db.session.add(sale)
        db.session.flush()

        total_cost = 0
        for priced in breakdown.lines:
            unit_cost = get_unit_cost_cents(priced.product_id)
            movement = decrement_stock(
                product_id=priced.product_id,
                warehouse_id=priced.warehouse_id,
                quantity=priced.quantity,
                reference=invoice_no,
                user_id=operator_id,
            )
            sale.items.append(SaleItem(
                product_id=priced.product_id,
                warehouse_id=priced.warehouse_id,
                quantity=priced.quantity,
                unit_price_cents=priced.unit_price_cents,
                discount_cents=priced.discount_cents,
                tax_cents=priced.tax_cents,
                line_total_cents=priced.line_total_cents,
                unit_cost_cents=unit_cost,
                stock_movement_id=movement.id,
            ))
            total_cost += unit_cost * priced.quantity

        payment_account = request.account_code or DEFAULT_PAYMENT_ACCOUNTS[request.payment_method]
        if request.paid_amount_cents > 0:
            sale.payments.append(SalePayment(
                method=request.payment_method.value,
                amount_cents=request.paid_amount_cents,
                account_code=payment_account,
                reference=request.reference,
            ))
        db.session.flush()

        # A fully free cart (zero prices, zero tax) has nothing to journal
        if breakdown.amount_with_tax_cents > 0:
            post_transaction(
                reference_type=SALE_REFERENCE,
                reference_id=sale.id,
                lines=_sale_journal(sale, breakdown, payment_account),
                created_by_user_id=operator_id,
            )

        if current_app.config.get("COGS_POSTING_ENABLED", True) and total_cost > 0:
            post_transaction(
                reference_type=SALE_COGS_REFERENCE,
                reference_id=sale.id,
                lines=[
                    JournalLine("EXPENSE.COGS", debit_cents=total_cost, narration=f"Cost of sale {invoice_no}"),
                    JournalLine("ASSET.INVENTORY", credit_cents=total_cost, narration=f"Stock out {invoice_no}"),
                ],
                created_by_user_id=operator_id,
            )

        if register is not None and request.payment_method == PaymentMethod.CASH:
            record_sale_transaction(sale, register.id, operator_id)

        db.session.commit()
        return sale

    sale = run_with_retry(_op)
    current_app.logger.info(
        "POS sale %s settled by user %s: total=%s paid=%s status=%s",
        sale.invoice_no, operator_id, sale.total_cents, sale.paid_amount_cents, sale.status,
    )
    return sale


# =============================================================================
# QUERIES
# =============================================================================

def get_sale(sale_id: int) -> Sale:
    sale = db.session.get(Sale, sale_id)
    if not sale:
        raise NotFoundError(f"Sale {sale_id} not found")
    return sale


def get_sale_transactions(sale_id: int) -> list[dict]:
    """Journal postings of a sale, revenue first, then cost of goods."""
    get_sale(sale_id)
    transactions = get_transactions_for_reference([SALE_REFERENCE, SALE_COGS_REFERENCE], sale_id)
    return [tx.to_dict() for tx in transactions]


def list_pos_sales(page: int | None = None, limit: int | None = None) -> dict:
    query = (
        db.session.query(Sale)
        .filter(Sale.sale_type == SaleType.POS.value, Sale.status == SaleStatus.COMPLETED.value)
        .order_by(Sale.created_at.desc(), Sale.id.desc())
    )
    return paginate(query, page, limit)


def get_today_summary(branch_id: int | None = None) -> dict:
    """
    Completed POS sales of the current UTC day with a tender breakdown.

    bank and card tenders are both reported under "card".
    """
    today = utcnow().date()
    start, end = day_bounds(today)

    sales_query = db.session.query(
        func.count(Sale.id), func.coalesce(func.sum(Sale.total_cents), 0)
    ).filter(
        Sale.sale_type == SaleType.POS.value,
        Sale.status == SaleStatus.COMPLETED.value,
        Sale.created_at >= start,
        Sale.created_at < end,
    )
    payments_query = db.session.query(
        SalePayment.method, func.coalesce(func.sum(SalePayment.amount_cents), 0)
    ).join(Sale, Sale.id == SalePayment.sale_id).filter(
        Sale.sale_type == SaleType.POS.value,
        Sale.status == SaleStatus.COMPLETED.value,
        Sale.created_at >= start,
        Sale.created_at < end,
    )
    if branch_id is not None:
        sales_query = sales_query.filter(Sale.branch_id == branch_id)
        payments_query = payments_query.filter(Sale.branch_id == branch_id)

    count, revenue = sales_query.one()

    breakdown = defaultdict(int)
    for method, amount in payments_query.group_by(SalePayment.method).all():
        bucket = "card" if method in (PaymentMethod.BANK.value, PaymentMethod.CARD.value) else method
        breakdown[bucket] += int(amount)

    return {
        "date": today.isoformat(),
        "branch_id": branch_id,
        "total_sales": int(count),
        "total_revenue_cents": int(revenue),
        "payment_breakdown": {
            "cash": breakdown["cash"],
            "card": breakdown["card"],
            "mobile": breakdown["mobile"],
        },
    }


def get_transaction_history(
    page: int | None = None,
    limit: int | None = None,
    branch_id: int | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
) -> dict:
    """POS sales of any status, newest first, within [start, end)."""
    query = db.session.query(Sale).filter(Sale.sale_type == SaleType.POS.value)
    if branch_id is not None:
        query = query.filter(Sale.branch_id == branch_id)
    if start is not None:
        query = query.filter(Sale.created_at >= start)
    if end is not None:
        query = query.filter(Sale.created_at < end)
    if start is not None and end is not None and end <= start:
        raise ValidationError("end_date must be after start_date")

    query = query.order_by(Sale.created_at.desc(), Sale.id.desc())
    return paginate(query, page, limit, serialize=lambda sale: sale.to_dict(include_relations=True))
