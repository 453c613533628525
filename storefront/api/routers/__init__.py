from . import cart
from . import coupons
from . import inventory
from . import orders

__all__ = [
    "cart",
    "coupons",
    "inventory",
    "orders",
]
