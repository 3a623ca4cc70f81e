from .tenancy import Organization
from .inventory import Product
from .customers import Customer, CustomerPayment
from .sales import (
    Sale,
    SaleItem,
    PAYMENT_METHOD_CASH,
    PAYMENT_METHOD_CARD,
    PAYMENT_METHOD_TRANSFER,
    PAYMENT_METHOD_CREDIT,
    VALID_PAYMENT_METHODS,
    VALID_RECEIPT_METHODS,
    PAYMENT_STATUS_PENDING,
    PAYMENT_STATUS_PARTIAL,
    PAYMENT_STATUS_PAID,
    OUTSTANDING_STATUSES,
)
from .documents import DocumentSequence

__all__ = [
    'Organization',
    'Product',
    'Customer', 'CustomerPayment',
    'Sale', 'SaleItem',
    'DocumentSequence',
]
