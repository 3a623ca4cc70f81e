from __future__ import annotations

from ..extensions import db
from app.time_utils import to_utc_z, utcnow


class Customer(db.Model):
    """
    Customer account with a credit line.

    MULTI-TENANT: Customers are scoped to organizations via org_id.

    current_debt_cents is an incrementally maintained aggregate:
    - increased by CREDIT sales (guarded against credit_limit_cents)
    - decreased by received payments (floored at zero)
    It should equal the sum of remaining_balance_cents over the customer's
    outstanding CREDIT sales; customer_service.reconcile_customer_debt
    recomputes it from source rows when it drifts.
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.UniqueConstraint("org_id", "email", name="uq_customers_org_email"),
        db.CheckConstraint("current_debt_cents >= 0", name="ck_customers_debt_non_negative"),
        db.CheckConstraint("credit_limit_cents >= 0", name="ck_customers_limit_non_negative"),
        db.Index("ix_customers_org_active", "org_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(32), nullable=True)

    credit_limit_cents = db.Column(db.Integer, nullable=False, default=0)
    current_debt_cents = db.Column(db.Integer, nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    organization = db.relationship("Organization", backref=db.backref("customers", lazy=True))

    @property
    def available_credit_cents(self) -> int:
        return self.credit_limit_cents - self.current_debt_cents

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "credit_limit_cents": self.credit_limit_cents,
            "current_debt_cents": self.current_debt_cents,
            "available_credit_cents": self.available_credit_cents,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class CustomerPayment(db.Model):
    """
    Append-only ledger of money received from a customer.

    sale_id NULL means an advance (unallocated) payment. For a CREDIT
    sale, SUM(amount_cents) of its rows equals Sale.amount_paid_cents
    (non-credit sales are settled at checkout and have no rows).

    IMMUTABLE: Records are never updated or deleted.
    """
    __tablename__ = "customer_payments"
    __table_args__ = (
        db.CheckConstraint("amount_cents > 0", name="ck_customer_payments_amount_positive"),
        db.Index("ix_customer_payments_org_customer_date", "org_id", "customer_id", "payment_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True, index=True)

    amount_cents = db.Column(db.Integer, nullable=False)
    payment_method = db.Column(db.String(16), nullable=False)  # CASH, CARD, TRANSFER
    payment_date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    reference = db.Column(db.String(128), nullable=True)
    notes = db.Column(db.String(500), nullable=True)

    created_by_user_id = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    customer = db.relationship("Customer", backref=db.backref("payments", lazy=True))
    sale = db.relationship("Sale", backref=db.backref("customer_payments", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "customer_id": self.customer_id,
            "sale_id": self.sale_id,
            "amount_cents": self.amount_cents,
            "payment_method": self.payment_method,
            "payment_date": to_utc_z(self.payment_date),
            "reference": self.reference,
            "notes": self.notes,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }
