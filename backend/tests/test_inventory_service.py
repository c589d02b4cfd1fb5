"""
Stock receipt, availability and cost tests.
"""

from datetime import date

import pytest

from retailpos.models import StockMovement
from retailpos.services import inventory_service
from retailpos.services.document_service import next_invoice_number
from retailpos.services.inventory_service import InsufficientStockError
from retailpos.services.pricing_service import CartLine
from retailpos.validation import NotFoundError, ValidationError


def cart_line(product, warehouse, quantity):
    return CartLine(product_id=product.id, warehouse_id=warehouse.id, quantity=quantity, unit_price_cents=100)


class TestReceiveStock:

    def test_receipt_creates_balance_and_in_movement(self, db_session, product, warehouse):
        movement = inventory_service.receive_stock(
            product_id=product.id, warehouse_id=warehouse.id, quantity=5, unit_cost_cents=40, note="Opening stock"
        )

        assert movement.type == "IN"
        assert movement.unit_cost_cents == 40
        assert inventory_service.get_available_quantity(product.id, warehouse.id) == 5

    def test_receipts_accumulate(self, db_session, product, warehouse):
        inventory_service.receive_stock(product_id=product.id, warehouse_id=warehouse.id, quantity=5)
        inventory_service.receive_stock(product_id=product.id, warehouse_id=warehouse.id, quantity=7)

        balance = inventory_service.get_balance(product.id, warehouse.id)
        assert balance.quantity == 12
        assert balance.sold_quantity == 0

    @pytest.mark.parametrize("quantity", [0, -3, True])
    def test_invalid_quantity(self, db_session, product, warehouse, quantity):
        with pytest.raises(ValidationError):
            inventory_service.receive_stock(product_id=product.id, warehouse_id=warehouse.id, quantity=quantity)

    def test_unknown_product(self, db_session, warehouse):
        with pytest.raises(NotFoundError):
            inventory_service.receive_stock(product_id=999999, warehouse_id=warehouse.id, quantity=1)

    def test_unknown_warehouse(self, db_session, product):
        with pytest.raises(NotFoundError):
            inventory_service.receive_stock(product_id=product.id, warehouse_id=999999, quantity=1)


class TestAvailability:

    def test_no_balance_means_zero(self, db_session, product, warehouse):
        assert inventory_service.get_available_quantity(product.id, warehouse.id) == 0

    def test_enough_stock_passes(self, db_session, product, warehouse, stocked):
        inventory_service.check_availability([cart_line(product, warehouse, 10)])

    def test_shortfall_reports_available(self, db_session, product, warehouse, stocked):
        with pytest.raises(InsufficientStockError) as exc_info:
            inventory_service.check_availability([cart_line(product, warehouse, 11)])

        assert "Insufficient stock for Notebook. Only 10 units available in stock" in str(exc_info.value)
        assert exc_info.value.details["available"] == 10
        assert exc_info.value.details["requested"] == 11

    def test_quantities_aggregated_across_lines(self, db_session, product, warehouse, stocked):
        with pytest.raises(InsufficientStockError):
            inventory_service.check_availability([
                cart_line(product, warehouse, 6),
                cart_line(product, warehouse, 6),
            ])


class TestDecrementStock:

    def test_decrement_writes_out_movement(self, db_session, product, warehouse, stocked):
        movement = inventory_service.decrement_stock(
            product_id=product.id, warehouse_id=warehouse.id, quantity=4, reference="INV-TEST"
        )
        db_session.commit()

        assert movement.type == "OUT"
        assert movement.reference == "INV-TEST"
        balance = inventory_service.get_balance(product.id, warehouse.id)
        assert balance.sold_quantity == 4
        assert balance.available_quantity == 6

    def test_decrement_never_goes_below_zero(self, db_session, product, warehouse, stocked):
        inventory_service.decrement_stock(product_id=product.id, warehouse_id=warehouse.id, quantity=10)

        with pytest.raises(InsufficientStockError, match="Only 0 units available"):
            inventory_service.decrement_stock(product_id=product.id, warehouse_id=warehouse.id, quantity=1)
        db_session.rollback()

        out_movements = db_session.query(StockMovement).filter_by(type="OUT").count()
        assert out_movements == 0


class TestUnitCost:

    def test_weighted_average_of_receipts(self, db_session, product, warehouse):
        inventory_service.receive_stock(product_id=product.id, warehouse_id=warehouse.id, quantity=10, unit_cost_cents=60)
        inventory_service.receive_stock(product_id=product.id, warehouse_id=warehouse.id, quantity=10, unit_cost_cents=80)

        assert inventory_service.get_weighted_average_cost_cents(product.id) == 70

    def test_weighted_average_rounds_half_up(self, db_session, product, warehouse):
        inventory_service.receive_stock(product_id=product.id, warehouse_id=warehouse.id, quantity=1, unit_cost_cents=10)
        inventory_service.receive_stock(product_id=product.id, warehouse_id=warehouse.id, quantity=1, unit_cost_cents=11)

        assert inventory_service.get_weighted_average_cost_cents(product.id) == 11

    def test_uncosted_receipts_ignored(self, db_session, product, warehouse):
        inventory_service.receive_stock(product_id=product.id, warehouse_id=warehouse.id, quantity=4, unit_cost_cents=30)
        inventory_service.receive_stock(product_id=product.id, warehouse_id=warehouse.id, quantity=100)

        assert inventory_service.get_unit_cost_cents(product.id) == 30

    def test_falls_back_to_product_cost(self, db_session, product, warehouse):
        inventory_service.receive_stock(product_id=product.id, warehouse_id=warehouse.id, quantity=4)

        assert inventory_service.get_weighted_average_cost_cents(product.id) is None
        assert inventory_service.get_unit_cost_cents(product.id) == 50

    def test_zero_without_any_cost(self, db_session, product_b):
        assert inventory_service.get_unit_cost_cents(product_b.id) == 0


class TestInvoiceNumbers:

    def test_sequence_per_day(self, db_session):
        day = date(2026, 1, 14)

        assert next_invoice_number(day) == "INV-20260114-0001"
        assert next_invoice_number(day) == "INV-20260114-0002"
        assert next_invoice_number(date(2026, 1, 15)) == "INV-20260115-0001"
        assert next_invoice_number(day) == "INV-20260114-0003"

    def test_rolled_back_number_is_reused(self, db_session):
        day = date(2026, 2, 1)
        next_invoice_number(day)
        db_session.commit()

        assert next_invoice_number(day) == "INV-20260201-0002"
        db_session.rollback()

        assert next_invoice_number(day) == "INV-20260201-0002"
