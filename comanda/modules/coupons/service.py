"""
Servicios de cupones

- evaluate: busca el cupón por código normalizado y delega en el evaluador
- claim / release: reserva atómica de un uso bajo el tope (modo hard)
- register_use: fila de uso ligada al pedido confirmado
"""

import logging
from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import select, update, func, or_
from sqlalchemy.ext.asyncio import AsyncSession

from comanda.modules.catalog.schemas import Cart
from comanda.modules.coupons.evaluator import evaluate_coupon, normalize_code
from comanda.modules.coupons.models import Coupon, CouponUse
from comanda.modules.coupons.schemas import CouponApplication, CouponDecision, CouponSnapshot

logger = logging.getLogger(__name__)


class CouponService:

    def __init__(self, db: AsyncSession):
        self.db = db

    async def find(self, store_id: UUID, code: str) -> Optional[CouponSnapshot]:
        result = await self.db.execute(
            select(Coupon)
            .where(Coupon.store_id == store_id, Coupon.code == normalize_code(code))
            .execution_options(populate_existing=True)
        )
        coupon = result.scalar_one_or_none()
        return CouponSnapshot.model_validate(coupon) if coupon else None

    async def customer_has_used(self, store_id: UUID, coupon_id: UUID, phone: Optional[str]) -> bool:
        if not phone:
            return False
        result = await self.db.execute(
            select(func.count(CouponUse.id)).where(
                CouponUse.store_id == store_id,
                CouponUse.coupon_id == coupon_id,
                CouponUse.customer_phone == phone
            )
        )
        return result.scalar_one() > 0

    async def evaluate(
        self, store_id: UUID, code: str, cart: Cart, customer_phone: Optional[str], now: datetime
    ) -> CouponDecision:
        coupon = await self.find(store_id, code)
        already_used = False
        if coupon is not None:
            already_used = await self.customer_has_used(store_id, coupon.id, customer_phone)
        return evaluate_coupon(coupon, cart, now=now, customer_already_used=already_used)

    async def claim(self, store_id: UUID, coupon_id: UUID) -> bool:
        """Incrementa current_uses sólo si queda cupo. False = tope alcanzado."""
        result = await self.db.execute(
            update(Coupon)
            .where(
                Coupon.id == coupon_id,
                Coupon.store_id == store_id,
                or_(Coupon.max_uses.is_(None), Coupon.current_uses < Coupon.max_uses)
            )
            .values(current_uses=Coupon.current_uses + 1)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        return result.rowcount == 1

    async def release(self, store_id: UUID, coupon_id: UUID) -> None:
        await self.db.execute(
            update(Coupon)
            .where(Coupon.id == coupon_id, Coupon.store_id == store_id, Coupon.current_uses > 0)
            .values(current_uses=Coupon.current_uses - 1)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()

    async def register_use(
        self,
        store_id: UUID,
        application: CouponApplication,
        order_id: UUID,
        customer_id: Optional[UUID],
        customer_phone: Optional[str],
        already_claimed: bool
    ) -> bool:
        """
        Registra el uso del cupón para un pedido ya confirmado.
        Devuelve True si el uso quedó por encima del tope (sólo posible
        cuando no hubo reserva previa).
        """
        over_ceiling = False
        if not already_claimed:
            result = await self.db.execute(
                update(Coupon)
                .where(
                    Coupon.id == application.coupon_id,
                    Coupon.store_id == store_id,
                    or_(Coupon.max_uses.is_(None), Coupon.current_uses < Coupon.max_uses)
                )
                .values(current_uses=Coupon.current_uses + 1)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                # El pedido ya existe: el uso se registra igual y queda marcado
                over_ceiling = True
                await self.db.execute(
                    update(Coupon)
                    .where(Coupon.id == application.coupon_id, Coupon.store_id == store_id)
                    .values(current_uses=Coupon.current_uses + 1)
                    .execution_options(synchronize_session=False)
                )
                logger.warning(f"Coupon {application.code} used above its ceiling by order {order_id}")

        self.db.add(CouponUse(
            store_id=store_id,
            coupon_id=application.coupon_id,
            order_id=order_id,
            customer_id=customer_id,
            customer_phone=customer_phone,
            discount_applied=application.discount_amount,
            over_ceiling=over_ceiling
        ))
        await self.db.commit()
        return over_ceiling
