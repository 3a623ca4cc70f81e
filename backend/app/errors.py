# Overview: Typed error taxonomy raised by the receivables ledger services.

"""
Ledger Errors

Every error carries a human message plus a ``details`` dict with the
structured fields a caller needs (amounts are integer cents). Any of
these aborts the enclosing transaction; nothing is partially committed.

Text formatting for end users belongs to the API layer.
"""

from __future__ import annotations


class LedgerError(Exception):
    """Base class for receivables ledger errors."""

    code = "LEDGER_ERROR"
    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"error": self.message, "code": self.code, "details": self.details}


class ValidationError(LedgerError, ValueError):
    """Malformed input, rejected before any transaction opens."""

    code = "VALIDATION_ERROR"


class NotFoundError(LedgerError):
    """Entity missing or owned by another tenant (same error for both)."""

    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, entity: str, entity_id):
        super().__init__(
            f"{entity} not found",
            details={"entity": entity, "id": entity_id},
        )


class InsufficientStockError(LedgerError):
    code = "INSUFFICIENT_STOCK"
    status_code = 409

    def __init__(self, product_id: int, available: int, requested: int):
        super().__init__(
            f"Insufficient stock for product {product_id}",
            details={
                "product_id": product_id,
                "available": available,
                "requested": requested,
            },
        )
        self.product_id = product_id
        self.available = available
        self.requested = requested


class CreditLimitExceededError(LedgerError):
    code = "CREDIT_LIMIT_EXCEEDED"
    status_code = 409

    def __init__(self, limit_cents: int, current_debt_cents: int, attempted_cents: int):
        super().__init__(
            "Credit limit exceeded",
            details={
                "limit_cents": limit_cents,
                "current_debt_cents": current_debt_cents,
                "attempted_cents": attempted_cents,
            },
        )
        self.limit_cents = limit_cents
        self.current_debt_cents = current_debt_cents
        self.attempted_cents = attempted_cents


class ExcessPaymentError(LedgerError):
    code = "EXCESS_PAYMENT"

    def __init__(self, remaining_balance_cents: int, amount_cents: int):
        super().__init__(
            "Payment amount exceeds remaining balance",
            details={
                "remaining_balance_cents": remaining_balance_cents,
                "amount_cents": amount_cents,
            },
        )
        self.remaining_balance_cents = remaining_balance_cents
        self.amount_cents = amount_cents


class ConcurrencyConflictError(LedgerError):
    """
    A conditional update matched zero rows because another writer won.

    Callers may resubmit with a fresh read; the core never retries.
    """

    code = "CONCURRENCY_CONFLICT"
    status_code = 409
