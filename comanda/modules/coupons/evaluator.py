"""
Evaluador de cupones: función pura sobre (cupón, carrito, uso previo, ahora).
No reserva usos; el tope se vuelve a controlar al registrar el uso.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from comanda.common.money import to_money, ZERO
from comanda.modules.catalog.schemas import Cart
from comanda.modules.coupons.models import CouponKind, DiscountType
from comanda.modules.coupons.schemas import (
    CouponApplication, CouponDecision, CouponRejection, CouponSnapshot
)


def normalize_code(code: str) -> str:
    return (code or "").strip().upper()


def _aware(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def eligible_subtotal(coupon: CouponSnapshot, cart: Cart) -> Decimal:
    if coupon.kind == CouponKind.PRODUCT:
        allowed = set(coupon.applicable_products)
        return to_money(sum(
            (line.monetary_subtotal for line in cart.lines if str(line.product_id) in allowed),
            ZERO
        ))
    return cart.monetary_subtotal


def compute_discount(coupon: CouponSnapshot, base: Decimal) -> Decimal:
    if coupon.kind == CouponKind.FREE_SHIPPING or base <= 0:
        return ZERO
    if coupon.discount_type == DiscountType.PERCENT:
        return to_money(base * coupon.discount_value / Decimal("100"))
    return to_money(min(coupon.discount_value, base))


def evaluate_coupon(
    coupon: Optional[CouponSnapshot],
    cart: Cart,
    now: datetime,
    customer_already_used: bool = False,
) -> CouponDecision:
    if coupon is None:
        return CouponDecision.rejected(CouponRejection.NOT_FOUND)
    if not coupon.is_active:
        return CouponDecision.rejected(CouponRejection.INACTIVE)
    if coupon.expires_at is not None and _aware(coupon.expires_at) < _aware(now):
        return CouponDecision.rejected(CouponRejection.EXPIRED)
    if coupon.max_uses is not None and coupon.current_uses >= coupon.max_uses:
        return CouponDecision.rejected(CouponRejection.USAGE_LIMIT_REACHED)
    if customer_already_used:
        return CouponDecision.rejected(CouponRejection.ALREADY_USED)

    base = eligible_subtotal(coupon, cart)
    if coupon.kind == CouponKind.PRODUCT and base <= 0:
        return CouponDecision.rejected(CouponRejection.PRODUCT_NOT_ELIGIBLE)
    if coupon.min_order_value is not None and cart.monetary_subtotal < coupon.min_order_value:
        return CouponDecision.rejected(CouponRejection.BELOW_MINIMUM)

    return CouponDecision(application=CouponApplication(
        coupon_id=coupon.id,
        code=coupon.code,
        discount_amount=compute_discount(coupon, base),
        free_shipping=coupon.free_shipping or coupon.kind == CouponKind.FREE_SHIPPING
    ))
