"""Data loaders feeding the customer analytics engine."""
from .store_loader import (
    get_customer_orders,
    load_customers,
    load_store_dataset,
    normalize_line_items,
    parse_amount,
    parse_datetime,
)

__all__ = [
    'get_customer_orders',
    'load_customers',
    'load_store_dataset',
    'normalize_line_items',
    'parse_amount',
    'parse_datetime',
]
