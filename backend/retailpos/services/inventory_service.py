# Overview: Service-layer operations for inventory; availability checks, stock receipt and sale decrements.

from __future__ import annotations

from collections import OrderedDict

from sqlalchemy import func, update

from ..extensions import db
from ..models import InventoryBalance, Product, StockMovement, Warehouse
from ..enums import StockMovementType
from ..validation import NotFoundError, PreconditionError, ValidationError
from .concurrency import lock_for_update, run_with_retry

"""
Inventory Invariants (authoritative)

- available = quantity - sold_quantity per (product, warehouse), never negative.
- Sales increment sold_quantity only through an atomic UPDATE guarded by
  "available >= requested"; a zero rowcount means another settlement won the race.
- Every change writes a StockMovement (IN for receipts, OUT for sales).
- Weighted average cost (WAC) is computed from IN movements that carry a unit
  cost, as sum(qty * unit_cost) / sum(qty) with half-up rounding to the cent.
"""


class InsufficientStockError(PreconditionError):
    """Requested quantity exceeds what is available in the warehouse."""


def _insufficient(product_id: int, warehouse_id: int, requested: int, available: int) -> InsufficientStockError:
    product = db.session.get(Product, product_id)
    name = product.name if product else f"product {product_id}"
    return InsufficientStockError(
        f"Insufficient stock for {name}. Only {max(available, 0)} units available in stock",
        {
            "product_id": product_id,
            "warehouse_id": warehouse_id,
            "requested": requested,
            "available": max(available, 0),
        },
    )


def get_balance(product_id: int, warehouse_id: int) -> InventoryBalance | None:
    return (
        db.session.query(InventoryBalance)
        .filter_by(product_id=product_id, warehouse_id=warehouse_id)
        .populate_existing()
        .first()
    )


def get_available_quantity(product_id: int, warehouse_id: int) -> int:
    balance = get_balance(product_id, warehouse_id)
    return balance.available_quantity if balance else 0


def check_availability(lines) -> None:
    """
    Confirm every (product, warehouse) pair can cover the requested quantity.

    Quantities are aggregated across lines first, so a cart listing the same
    product twice cannot slip past the check. Any shortfall rejects the whole
    cart; there is no partial fulfillment.
    """
    requested: OrderedDict[tuple[int, int], int] = OrderedDict()
    for line in lines:
        key = (line.product_id, line.warehouse_id)
        requested[key] = requested.get(key, 0) + line.quantity

    for (product_id, warehouse_id), quantity in requested.items():
        available = get_available_quantity(product_id, warehouse_id)
        if available < quantity:
            raise _insufficient(product_id, warehouse_id, quantity, available)


def decrement_stock(
    *,
    product_id: int,
    warehouse_id: int,
    quantity: int,
    reference: str | None = None,
    user_id: int | None = None,
) -> StockMovement:
    """
    Consume stock for a sale inside the caller's transaction.

    The floor check and the increment happen in one UPDATE statement, so two
    concurrent carts can never both take the last unit.
    """
    if quantity <= 0:
        raise ValidationError("quantity must be greater than 0")

    stmt = (
        update(InventoryBalance)
        .where(
            InventoryBalance.product_id == product_id,
            InventoryBalance.warehouse_id == warehouse_id,
            (InventoryBalance.quantity - InventoryBalance.sold_quantity) >= quantity,
        )
        .values(sold_quantity=InventoryBalance.sold_quantity + quantity)
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    if result.rowcount != 1:
        raise _insufficient(product_id, warehouse_id, quantity, get_available_quantity(product_id, warehouse_id))

    movement = StockMovement(
        product_id=product_id,
        warehouse_id=warehouse_id,
        type=StockMovementType.OUT.value,
        quantity=quantity,
        reference=reference,
        created_by_user_id=user_id,
    )
    db.session.add(movement)
    db.session.flush()
    return movement


def receive_stock(
    *,
    product_id: int,
    warehouse_id: int,
    quantity: int,
    unit_cost_cents: int | None = None,
    user_id: int | None = None,
    note: str | None = None,
    reference: str | None = None,
    commit: bool = True,
) -> StockMovement:
    """
    Add received units to a warehouse and record an IN movement.

    unit_cost_cents feeds the weighted average cost used for COGS postings;
    receipts without a cost do not move the average.
    """
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise ValidationError("quantity must be a positive integer")
    if unit_cost_cents is not None and unit_cost_cents < 0:
        raise ValidationError("unit_cost_cents must be >= 0")

    def _op():
        if not db.session.get(Product, product_id):
            raise NotFoundError(f"Product {product_id} not found")
        if not db.session.get(Warehouse, warehouse_id):
            raise NotFoundError(f"Warehouse {warehouse_id} not found")

        balance = lock_for_update(
            db.session.query(InventoryBalance).filter_by(product_id=product_id, warehouse_id=warehouse_id)
        ).first()
        if balance is None:
            balance = InventoryBalance(product_id=product_id, warehouse_id=warehouse_id, quantity=0, sold_quantity=0)
            db.session.add(balance)
        balance.quantity = (balance.quantity or 0) + quantity

        movement = StockMovement(
            product_id=product_id,
            warehouse_id=warehouse_id,
            type=StockMovementType.IN.value,
            quantity=quantity,
            unit_cost_cents=unit_cost_cents,
            note=note,
            reference=reference,
            created_by_user_id=user_id,
        )
        db.session.add(movement)
        db.session.flush()
        if commit:
            db.session.commit()
        return movement

    if not commit:
        return _op()
    return run_with_retry(_op)


def get_weighted_average_cost_cents(product_id: int) -> int | None:
    """WAC across all costed IN movements of a product, or None without any."""
    row = db.session.query(
        func.coalesce(func.sum(StockMovement.quantity), 0).label("units"),
        func.coalesce(func.sum(StockMovement.quantity * StockMovement.unit_cost_cents), 0).label("cost"),
    ).filter(
        StockMovement.product_id == product_id,
        StockMovement.type == StockMovementType.IN.value,
        StockMovement.unit_cost_cents.isnot(None),
    ).one()

    total_units = int(row.units or 0)
    if total_units <= 0:
        return None
    total_cost = int(row.cost or 0)
    # nearest-cent rounding (half-up)
    return (total_cost + (total_units // 2)) // total_units


def get_unit_cost_cents(product_id: int) -> int:
    """
    Historical unit cost for COGS: WAC of receipts, else the product's
    purchase cost, else 0 (no COGS is posted for zero-cost goods).
    """
    wac = get_weighted_average_cost_cents(product_id)
    if wac is not None:
        return wac
    product = db.session.get(Product, product_id)
    if product and product.cost_cents:
        return int(product.cost_cents)
    return 0
