"""StoreOps - Database Models"""

from .store import (
    CustomerRecord,
    OrderRecord,
    ProductRecord,
    CustomerAcquisitionRecord,
    CustomerRFMRecord,
)

__all__ = [
    "CustomerRecord",
    "OrderRecord",
    "ProductRecord",
    "CustomerAcquisitionRecord",
    "CustomerRFMRecord",
]
