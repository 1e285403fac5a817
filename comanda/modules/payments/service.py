"""
Lectura de medios de pago configurados por la tienda.
"""

from typing import Dict, List, Optional, Set
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from comanda.modules.payments.models import CardMachine, PaymentMethodConfig
from comanda.modules.payments.schemas import CustomMethod


class PaymentMethodService:

    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_active(self, store_id: UUID, channel: Optional[str] = None) -> List[PaymentMethodConfig]:
        result = await self.db.execute(
            select(PaymentMethodConfig)
            .where(PaymentMethodConfig.store_id == store_id, PaymentMethodConfig.is_active == True)
            .order_by(PaymentMethodConfig.is_default.desc(), PaymentMethodConfig.name)
        )
        methods = result.scalars().all()
        if channel:
            methods = [m for m in methods if not m.allowed_channels or channel in m.allowed_channels]
        return methods

    async def custom_methods(self, store_id: UUID, ids: List[UUID]) -> Dict[UUID, CustomMethod]:
        if not ids:
            return {}
        result = await self.db.execute(
            select(PaymentMethodConfig).where(
                PaymentMethodConfig.store_id == store_id,
                PaymentMethodConfig.id.in_(ids),
                PaymentMethodConfig.is_active == True
            )
        )
        return {m.id: CustomMethod.model_validate(m) for m in result.scalars().all()}

    async def active_card_machines(self, store_id: UUID, ids: List[UUID]) -> Set[UUID]:
        """IDs de maquininhas activas de la tienda entre los informados."""
        if not ids:
            return set()
        result = await self.db.execute(
            select(CardMachine.id).where(
                CardMachine.store_id == store_id,
                CardMachine.id.in_(ids),
                CardMachine.is_active == True
            )
        )
        return set(result.scalars().all())
