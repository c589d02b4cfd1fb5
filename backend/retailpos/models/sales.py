from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


class Sale(db.Model):
    """
    Finalized sale document.

    Created in one piece by sale settlement together with its items, payments,
    stock movements and journal postings. Never partially persisted.

    INVARIANT: total = subtotal - manual_discount - group_discount + tax
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.UniqueConstraint("invoice_no", name="uq_sales_invoice_no"),
        db.Index("ix_sales_type_status_created", "sale_type", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    invoice_no = db.Column(db.String(32), nullable=False)

    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)
    cash_register_id = db.Column(db.Integer, db.ForeignKey("cash_registers.id"), nullable=True, index=True)

    # Amounts (all in cents)
    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    manual_discount_cents = db.Column(db.Integer, nullable=False, default=0)
    group_discount_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)  # manual + group
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)
    paid_amount_cents = db.Column(db.Integer, nullable=False, default=0)

    status = db.Column(db.String(16), nullable=False, default="draft", index=True)
    sale_type = db.Column(db.String(16), nullable=False, default="regular", index=True)

    served_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    branch = db.relationship("Branch")
    customer = db.relationship("Customer")
    served_by = db.relationship("User", foreign_keys=[served_by_user_id])
    created_by = db.relationship("User", foreign_keys=[created_by_user_id])
    items = db.relationship(
        "SaleItem", back_populates="sale", lazy=True, order_by="SaleItem.id", cascade="all, delete-orphan"
    )
    payments = db.relationship(
        "SalePayment", back_populates="sale", lazy=True, order_by="SalePayment.id", cascade="all, delete-orphan"
    )

    @property
    def due_cents(self) -> int:
        return int(self.total_cents or 0) - int(self.paid_amount_cents or 0)

    def to_dict(self, *, include_relations: bool = False) -> dict:
        data = {
            "id": self.id,
            "invoice_no": self.invoice_no,
            "branch_id": self.branch_id,
            "customer_id": self.customer_id,
            "cash_register_id": self.cash_register_id,
            "subtotal_cents": self.subtotal_cents,
            "manual_discount_cents": self.manual_discount_cents,
            "group_discount_cents": self.group_discount_cents,
            "discount_cents": self.discount_cents,
            "tax_cents": self.tax_cents,
            "total_cents": self.total_cents,
            "paid_amount_cents": self.paid_amount_cents,
            "due_cents": self.due_cents,
            "status": self.status,
            "sale_type": self.sale_type,
            "served_by_user_id": self.served_by_user_id,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_relations:
            data["items"] = [item.to_dict() for item in self.items]
            data["payments"] = [payment.to_dict() for payment in self.payments]
            data["customer"] = self.customer.to_dict() if self.customer else None
            data["branch"] = self.branch.to_dict() if self.branch else None
        return data


class SaleItem(db.Model):
    """
    One sale line. unit_price_cents and unit_cost_cents are snapshots taken at
    sale time, never the live product values.
    """
    __tablename__ = "sale_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_sale_items_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    warehouse_id = db.Column(db.Integer, db.ForeignKey("warehouses.id"), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    line_total_cents = db.Column(db.Integer, nullable=False)
    unit_cost_cents = db.Column(db.Integer, nullable=True)

    stock_movement_id = db.Column(db.Integer, db.ForeignKey("stock_movements.id"), nullable=True)

    sale = db.relationship("Sale", back_populates="items")
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "warehouse_id": self.warehouse_id,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "discount_cents": self.discount_cents,
            "tax_cents": self.tax_cents,
            "line_total_cents": self.line_total_cents,
            "unit_cost_cents": self.unit_cost_cents,
            "stock_movement_id": self.stock_movement_id,
        }


class SalePayment(db.Model):
    """
    One tender leg of a sale. account_code is the ledger account debited for it.
    """
    __tablename__ = "sale_payments"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)

    method = db.Column(db.String(16), nullable=False, index=True)  # cash, bank, mobile, card
    amount_cents = db.Column(db.Integer, nullable=False)
    account_code = db.Column(db.String(64), nullable=False)
    reference = db.Column(db.String(128), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    sale = db.relationship("Sale", back_populates="payments")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "method": self.method,
            "amount_cents": self.amount_cents,
            "account_code": self.account_code,
            "reference": self.reference,
            "created_at": to_utc_z(self.created_at),
        }


class InvoiceSequence(db.Model):
    """
    Atomic per-day invoice counters (sequence_key is e.g. "INV-20260114").

    Prevents two concurrent settlements from allocating the same invoice number.
    """
    __tablename__ = "invoice_sequences"
    __table_args__ = (
        db.UniqueConstraint("sequence_key", name="uq_invoice_sequences_key"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sequence_key = db.Column(db.String(32), nullable=False)
    next_number = db.Column(db.Integer, nullable=False, default=1)
