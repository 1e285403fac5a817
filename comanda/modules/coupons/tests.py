"""
Tests de cupones

- Evaluador puro: orden de rechazos, base elegible, envío gratis
- Servicio: reserva atómica bajo tope y registro de uso sobre el tope
"""

import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

from sqlalchemy import select

from comanda.modules.catalog.schemas import Cart, CartLine
from comanda.modules.coupons.evaluator import compute_discount, evaluate_coupon, normalize_code
from comanda.modules.coupons.models import Coupon, CouponKind, CouponUse, DiscountType
from comanda.modules.coupons.schemas import CouponApplication, CouponRejection, CouponSnapshot
from comanda.modules.coupons.service import CouponService

NOW = datetime(2026, 3, 10, 15, 0, tzinfo=timezone.utc)


def line(price="25.00", qty=2, product_id=None, redeemed=False):
    return CartLine(
        product_id=product_id or uuid4(),
        product_name="Açaí 500ml",
        unit_price=Decimal(price),
        quantity=qty,
        redeemed_with_points=redeemed,
        points_cost=50 if redeemed else 0
    )


def snapshot(**overrides):
    data = dict(
        id=uuid4(),
        code="PROMO10",
        kind=CouponKind.TOTAL,
        discount_type=DiscountType.PERCENT,
        discount_value=Decimal("10"),
    )
    data.update(overrides)
    return CouponSnapshot(**data)


class TestCouponEvaluator:
    """Evaluación pura del cupón contra el carrito"""

    def test_missing_coupon(self):
        decision = evaluate_coupon(None, Cart(lines=[line()]), NOW)
        assert decision.rejection == CouponRejection.NOT_FOUND
        assert decision.message == "Cupom não encontrado"

    def test_percent_discount_on_subtotal(self):
        decision = evaluate_coupon(snapshot(), Cart(lines=[line()]), NOW)
        assert decision.accepted
        assert decision.application.discount_amount == Decimal("5.00")
        assert decision.application.free_shipping is False

    def test_fixed_discount_capped_at_base(self):
        coupon = snapshot(discount_type=DiscountType.FIXED, discount_value=Decimal("80"))
        decision = evaluate_coupon(coupon, Cart(lines=[line()]), NOW)
        assert decision.application.discount_amount == Decimal("50.00")

    def test_rejection_order_inactive_before_expired(self):
        coupon = snapshot(is_active=False, expires_at=NOW - timedelta(days=1))
        assert evaluate_coupon(coupon, Cart(lines=[line()]), NOW).rejection == CouponRejection.INACTIVE

    def test_expired(self):
        coupon = snapshot(expires_at=NOW - timedelta(minutes=1))
        assert evaluate_coupon(coupon, Cart(lines=[line()]), NOW).rejection == CouponRejection.EXPIRED

    def test_naive_expiry_compared_as_utc(self):
        coupon = snapshot(expires_at=datetime(2026, 3, 10, 16, 0))
        assert evaluate_coupon(coupon, Cart(lines=[line()]), NOW).accepted

    def test_usage_limit(self):
        coupon = snapshot(max_uses=3, current_uses=3)
        assert evaluate_coupon(coupon, Cart(lines=[line()]), NOW).rejection == CouponRejection.USAGE_LIMIT_REACHED

    def test_already_used_by_customer(self):
        decision = evaluate_coupon(snapshot(), Cart(lines=[line()]), NOW, customer_already_used=True)
        assert decision.rejection == CouponRejection.ALREADY_USED

    def test_minimum_uses_monetary_subtotal(self):
        coupon = snapshot(min_order_value=Decimal("60"))
        cart = Cart(lines=[line(), line(redeemed=True)])
        assert evaluate_coupon(coupon, cart, NOW).rejection == CouponRejection.BELOW_MINIMUM

    def test_product_coupon_only_discounts_listed_products(self):
        listed = uuid4()
        coupon = snapshot(kind=CouponKind.PRODUCT, discount_value=Decimal("50"), applicable_products=[listed])
        cart = Cart(lines=[line(price="8.00", qty=1, product_id=listed), line(price="30.00", qty=1)])
        assert evaluate_coupon(coupon, cart, NOW).application.discount_amount == Decimal("4.00")

    def test_product_coupon_without_eligible_lines(self):
        coupon = snapshot(kind=CouponKind.PRODUCT, applicable_products=[uuid4()])
        decision = evaluate_coupon(coupon, Cart(lines=[line()]), NOW)
        assert decision.rejection == CouponRejection.PRODUCT_NOT_ELIGIBLE

    def test_free_shipping_kind_has_no_discount(self):
        coupon = snapshot(kind=CouponKind.FREE_SHIPPING, discount_value=Decimal("0"))
        application = evaluate_coupon(coupon, Cart(lines=[line()]), NOW).application
        assert application.free_shipping is True
        assert application.discount_amount == Decimal("0.00")

    def test_helpers(self):
        assert normalize_code("  promo10 ") == "PROMO10"
        assert compute_discount(snapshot(), Decimal("0")) == Decimal("0.00")


class TestCouponService:
    """Reserva de usos y registro contra la base"""

    def test_lookup_is_case_insensitive(self, run_db, seed, store_id):
        async def scenario(db):
            await seed.coupon(db, store_id, code="FRETE")
            found = await CouponService(db).find(store_id, " frete ")
            assert found is not None
            assert found.code == "FRETE"

        run_db(scenario)

    def test_claim_respects_ceiling(self, run_db, seed, store_id):
        async def scenario(db):
            coupon = await seed.coupon(db, store_id, max_uses=1)
            service = CouponService(db)
            assert await service.claim(store_id, coupon.id) is True
            assert await service.claim(store_id, coupon.id) is False

            await service.release(store_id, coupon.id)
            uses = await db.execute(select(Coupon.current_uses).where(Coupon.id == coupon.id))
            assert uses.scalar_one() == 0

        run_db(scenario)

    def test_register_use_over_ceiling_is_flagged(self, run_db, seed, store_id):
        async def scenario(db):
            coupon = await seed.coupon(db, store_id, max_uses=1, current_uses=1)
            application = CouponApplication(coupon_id=coupon.id, code=coupon.code, discount_amount=Decimal("3.00"))
            order_id = uuid4()

            over = await CouponService(db).register_use(
                store_id, application, order_id=order_id, customer_id=None,
                customer_phone="11987654321", already_claimed=False
            )
            assert over is True

            uses = await db.execute(select(Coupon.current_uses).where(Coupon.id == coupon.id))
            assert uses.scalar_one() == 2
            row = (await db.execute(select(CouponUse).where(CouponUse.order_id == order_id))).scalar_one()
            assert row.over_ceiling is True
            assert row.discount_applied == Decimal("3.00")

        run_db(scenario)

    def test_customer_usage_by_phone(self, run_db, seed, store_id):
        async def scenario(db):
            coupon = await seed.coupon(db, store_id)
            service = CouponService(db)
            application = CouponApplication(coupon_id=coupon.id, code=coupon.code)
            await service.register_use(
                store_id, application, order_id=uuid4(), customer_id=None,
                customer_phone="11987654321", already_claimed=False
            )
            assert await service.customer_has_used(store_id, coupon.id, "11987654321") is True
            assert await service.customer_has_used(store_id, coupon.id, "21999990000") is False
            assert await service.customer_has_used(store_id, coupon.id, None) is False

            cart = Cart(lines=[line()])
            decision = await service.evaluate(store_id, "promo10", cart, "11987654321", NOW)
            assert decision.rejection == CouponRejection.ALREADY_USED

        run_db(scenario)
