from __future__ import annotations

from decimal import Decimal

from storefront.domain.money import quantize, to_decimal
from storefront.models.product import Product, ProductVariant


def _current(price, sale_price) -> Decimal:
    price = to_decimal(price)
    if sale_price is not None and to_decimal(sale_price) < price:
        return quantize(sale_price)
    return quantize(price)


def current_price(product: Product, variant: ProductVariant | None = None) -> Decimal:
    """Price applicable to carts and orders.

    A sale price wins only when it is lower than the regular price. Variants
    without their own price fall back to the product.
    """
    if variant is not None and variant.price is not None:
        return _current(variant.price, variant.sale_price)
    return _current(product.price, product.sale_price)


def effective_weight(product: Product, variant: ProductVariant | None = None) -> Decimal:
    if variant is not None and variant.weight is not None:
        return to_decimal(variant.weight)
    return to_decimal(product.weight)
