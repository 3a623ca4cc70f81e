from __future__ import annotations

from ..extensions import db
from app.time_utils import to_utc_z, utcnow


# =============================================================================
# PAYMENT METHODS / STATUS (CONSTANTS)
# =============================================================================

PAYMENT_METHOD_CASH = "CASH"
PAYMENT_METHOD_CARD = "CARD"
PAYMENT_METHOD_TRANSFER = "TRANSFER"
PAYMENT_METHOD_CREDIT = "CREDIT"

VALID_PAYMENT_METHODS = [
    PAYMENT_METHOD_CASH,
    PAYMENT_METHOD_CARD,
    PAYMENT_METHOD_TRANSFER,
    PAYMENT_METHOD_CREDIT,
]

# Money received against an account can never itself be credit
VALID_RECEIPT_METHODS = [
    PAYMENT_METHOD_CASH,
    PAYMENT_METHOD_CARD,
    PAYMENT_METHOD_TRANSFER,
]

PAYMENT_STATUS_PENDING = "PENDING"
PAYMENT_STATUS_PARTIAL = "PARTIAL"
PAYMENT_STATUS_PAID = "PAID"

OUTSTANDING_STATUSES = (PAYMENT_STATUS_PENDING, PAYMENT_STATUS_PARTIAL)


class Sale(db.Model):
    """
    Sale document and its receivable balance.

    Created once by sales_service.process_sale; afterwards only the
    payment columns change, through conditional updates in
    payment_service. Sales are never physically deleted.

    BALANCE INVARIANTS (integer cents, exact):
    - amount_paid_cents + remaining_balance_cents == total_cents
    - remaining_balance_cents >= 0
    - payment_status PAID iff remaining == 0, PENDING iff paid == 0,
      PARTIAL otherwise
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.UniqueConstraint("org_id", "folio", name="uq_sales_org_folio"),
        db.CheckConstraint("remaining_balance_cents >= 0", name="ck_sales_remaining_non_negative"),
        db.CheckConstraint(
            "amount_paid_cents + remaining_balance_cents = total_cents",
            name="ck_sales_balance_consistent",
        ),
        # Outstanding-sales scans (FIFO allocation, alerts)
        db.Index("ix_sales_org_customer_status_created", "org_id", "customer_id", "payment_status", "created_at"),
        db.Index("ix_sales_org_status_due", "org_id", "payment_status", "due_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)

    # Human-readable, tenant-unique identifier (e.g., "V-20260114-000123")
    folio = db.Column(db.String(64), nullable=False)

    status = db.Column(db.String(16), nullable=False, default="COMPLETED", index=True)
    payment_method = db.Column(db.String(16), nullable=False)  # CASH, CARD, TRANSFER, CREDIT

    # All amounts in cents
    subtotal_cents = db.Column(db.Integer, nullable=False)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False)
    amount_paid_cents = db.Column(db.Integer, nullable=False, default=0)
    remaining_balance_cents = db.Column(db.Integer, nullable=False, default=0)
    payment_status = db.Column(db.String(16), nullable=False, default="PENDING", index=True)  # PENDING, PARTIAL, PAID

    due_date = db.Column(db.DateTime(timezone=True), nullable=True, index=True)
    notes = db.Column(db.String(500), nullable=True)

    created_by_user_id = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    customer = db.relationship("Customer", backref=db.backref("sales", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "customer_id": self.customer_id,
            "folio": self.folio,
            "status": self.status,
            "payment_method": self.payment_method,
            "subtotal_cents": self.subtotal_cents,
            "tax_cents": self.tax_cents,
            "total_cents": self.total_cents,
            "amount_paid_cents": self.amount_paid_cents,
            "remaining_balance_cents": self.remaining_balance_cents,
            "payment_status": self.payment_status,
            "due_date": to_utc_z(self.due_date) if self.due_date else None,
            "notes": self.notes,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }

class SaleItem(db.Model):
    """Individual line items on a sale. Immutable once created."""
    __tablename__ = "sale_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_sale_items_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.Integer, nullable=False)

    sale = db.relationship("Sale", backref=db.backref("items", lazy=True, order_by="SaleItem.id"))
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "line_total_cents": self.line_total_cents,
        }
