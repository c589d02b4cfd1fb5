"""
Pricing Engine

Turns a cart into subtotal, tax, discounts and total. Pure: no database access,
no hidden state, so identical inputs always give identical outputs.

ORDER OF OPERATIONS (fixed business rule, not reorderable):
1. subtotal        = sum(quantity * unit_price - item_discount)
2. tax             = subtotal * tax% / 100
   amount_with_tax = subtotal + tax
3. group_discount  = amount_with_tax * group% / 100
4. manual_discount = fixed value, or amount_with_tax * value% / 100
   (both discounts are computed on amount_with_tax; they do not compound)
5. total_discount  = group_discount + manual_discount
6. total           = amount_with_tax - total_discount
7. due             = total - paid   (paid > total is rejected)

All money is integer cents. Percentage results are rounded half-up to the cent.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP

from ..enums import DiscountType
from ..validation import ValidationError, MAX_AMOUNT_CENTS


class OverpaymentRejected(ValidationError):
    """Paid amount is larger than the sale total."""


@dataclass(frozen=True)
class CartLine:
    product_id: int
    warehouse_id: int
    quantity: int
    unit_price_cents: int
    discount_cents: int = 0


@dataclass(frozen=True)
class LinePricing:
    product_id: int
    warehouse_id: int
    quantity: int
    unit_price_cents: int
    gross_cents: int
    discount_cents: int
    net_cents: int
    tax_cents: int
    line_total_cents: int


@dataclass(frozen=True)
class PriceBreakdown:
    lines: tuple[LinePricing, ...]
    subtotal_cents: int
    tax_cents: int
    amount_with_tax_cents: int
    group_discount_cents: int
    manual_discount_cents: int
    total_discount_cents: int
    total_cents: int

    def due_cents(self, paid_amount_cents: int) -> int:
        return self.total_cents - paid_amount_cents


def percent_of(amount_cents: int, percentage: Decimal) -> int:
    """amount * percentage / 100, rounded half-up to a whole cent."""
    value = Decimal(amount_cents) * Decimal(percentage) / Decimal(100)
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _validate_line(index: int, line: CartLine) -> None:
    label = f"items[{index}]"
    if isinstance(line.quantity, bool) or not isinstance(line.quantity, int):
        raise ValidationError(f"{label}.quantity must be an integer")
    if line.quantity <= 0:
        raise ValidationError(f"{label}.quantity must be greater than 0")
    if line.unit_price_cents is None or line.unit_price_cents < 0:
        raise ValidationError(f"{label}.unit_price_cents must be >= 0")
    if line.discount_cents < 0:
        raise ValidationError(f"{label}.discount cannot be negative")


def _allocate_tax(nets: list[int], total_tax: int, tax_percentage: Decimal) -> list[int]:
    # Every line but the last gets its own rounded share; the last absorbs rounding
    shares = [percent_of(net, tax_percentage) for net in nets[:-1]]
    shares.append(total_tax - sum(shares))
    return shares


def price_cart(
    lines: list[CartLine],
    *,
    discount_type: DiscountType = DiscountType.FIXED,
    discount_value: Decimal | int = 0,
    tax_percentage: Decimal | int = 0,
    group_discount_percentage: Decimal | int = 0,
) -> PriceBreakdown:
    """
    Compute the full price breakdown of a cart.

    discount_value is cents for DiscountType.FIXED and a percentage for
    DiscountType.PERCENTAGE. group_discount_percentage is 0 for walk-in
    customers or customers without an active group.

    Raises:
        ValidationError: empty cart, quantity <= 0, negative amounts,
            percentages over 100, or discounts larger than the sale amount
    """
    if not lines:
        raise ValidationError("At least one item is required")

    tax_percentage = Decimal(tax_percentage)
    group_discount_percentage = Decimal(group_discount_percentage)
    discount_value = Decimal(discount_value)

    if tax_percentage < 0:
        raise ValidationError("tax_percentage cannot be negative")
    if not Decimal(0) <= group_discount_percentage <= Decimal(100):
        raise ValidationError("group discount percentage must be between 0 and 100")
    if discount_value < 0:
        raise ValidationError("discount cannot be negative")

    grosses: list[int] = []
    nets: list[int] = []
    for index, line in enumerate(lines):
        _validate_line(index, line)
        gross = line.quantity * line.unit_price_cents
        if line.discount_cents > gross:
            raise ValidationError(f"items[{index}].discount cannot exceed the line amount")
        grosses.append(gross)
        nets.append(gross - line.discount_cents)

    subtotal = sum(nets)
    tax = percent_of(subtotal, tax_percentage)
    amount_with_tax = subtotal + tax

    group_discount = percent_of(amount_with_tax, group_discount_percentage)

    if discount_type == DiscountType.PERCENTAGE:
        if discount_value > 100:
            raise ValidationError("discount percentage cannot exceed 100")
        manual_discount = percent_of(amount_with_tax, discount_value)
    else:
        if discount_value != discount_value.to_integral_value():
            raise ValidationError("fixed discount must be a whole number of cents")
        manual_discount = int(discount_value)

    total_discount = group_discount + manual_discount
    if total_discount > amount_with_tax:
        raise ValidationError("Discount cannot exceed the sale amount")

    total = amount_with_tax - total_discount
    if total > MAX_AMOUNT_CENTS:
        raise ValidationError(f"Sale total cannot exceed {MAX_AMOUNT_CENTS}")

    line_taxes = _allocate_tax(nets, tax, tax_percentage)
    priced = tuple(
        LinePricing(
            product_id=line.product_id,
            warehouse_id=line.warehouse_id,
            quantity=line.quantity,
            unit_price_cents=line.unit_price_cents,
            gross_cents=gross,
            discount_cents=line.discount_cents,
            net_cents=net,
            tax_cents=line_tax,
            line_total_cents=net + line_tax,
        )
        for line, gross, net, line_tax in zip(lines, grosses, nets, line_taxes)
    )

    return PriceBreakdown(
        lines=priced,
        subtotal_cents=subtotal,
        tax_cents=tax,
        amount_with_tax_cents=amount_with_tax,
        group_discount_cents=group_discount,
        manual_discount_cents=manual_discount,
        total_discount_cents=total_discount,
        total_cents=total,
    )


def validate_paid_amount(breakdown: PriceBreakdown, paid_amount_cents: int) -> int:
    """Return the amount still due; reject negative payments and overpayment."""
    if paid_amount_cents < 0:
        raise ValidationError("paid_amount_cents cannot be negative")
    if paid_amount_cents > breakdown.total_cents:
        raise OverpaymentRejected(
            f"Paid amount ({paid_amount_cents}) cannot exceed the sale total ({breakdown.total_cents})"
        )
    return breakdown.due_cents(paid_amount_cents)
