"""
Calculadora de totales del pedido. Función pura: mismas entradas, mismo
resultado; no lee ni escribe estado.
"""

from decimal import Decimal
from typing import Optional

from pydantic import BaseModel

from comanda.common.money import to_money, ZERO
from comanda.modules.catalog.schemas import Cart
from comanda.modules.coupons.schemas import CouponApplication


class Totals(BaseModel):
    model_config = {"frozen": True}

    monetary_subtotal: Decimal
    points_required: int
    delivery_fee_applied: Decimal
    manual_discount: Decimal
    coupon_discount: Decimal
    discount_applied: Decimal
    payable_total: Decimal


def compute_totals(
    cart: Cart,
    is_delivery: bool,
    delivery_fee: Decimal = ZERO,
    manual_discount: Decimal = ZERO,
    coupon: Optional[CouponApplication] = None,
) -> Totals:
    subtotal = cart.monetary_subtotal

    fee = to_money(delivery_fee) if is_delivery else ZERO
    if is_delivery and coupon is not None and coupon.free_shipping:
        fee = ZERO

    manual = max(to_money(manual_discount), ZERO)
    coupon_discount = to_money(coupon.discount_amount) if coupon else ZERO
    discount = to_money(manual + coupon_discount)

    payable = max(to_money(subtotal - discount + fee), ZERO)

    return Totals(
        monetary_subtotal=subtotal,
        points_required=cart.points_required,
        delivery_fee_applied=fee,
        manual_discount=manual,
        coupon_discount=coupon_discount,
        discount_applied=discount,
        payable_total=payable
    )
