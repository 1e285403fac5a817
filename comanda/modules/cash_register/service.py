"""
Servicios de negocio para sesiones de caja

Implementa:
- Apertura (una sesión abierta por tienda)
- Consulta de la sesión abierta
- Cierre con arqueo: efectivo esperado = fondo inicial + ventas en dinheiro
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from comanda.common.money import to_money, ZERO
from comanda.modules.cash_register.models import CashRegisterSession
from comanda.modules.cash_register.schemas import (
    CashRegisterClose, CashRegisterOpen, CashRegisterOut, CashRegisterSummary
)
from comanda.modules.orders.models import Order, OrderStatus
from comanda.modules.payments.schemas import FIXED_LABELS, FixedMethodCode

logger = logging.getLogger(__name__)


class CashRegisterService:
    """Servicio para gestión de sesiones de caja"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_open_session(self, store_id: UUID) -> Optional[CashRegisterSession]:
        result = await self.db.execute(
            select(CashRegisterSession).where(
                CashRegisterSession.store_id == store_id,
                CashRegisterSession.closed_at.is_(None)
            )
        )
        return result.scalar_one_or_none()

    async def open_session(self, data: CashRegisterOpen, store_id: UUID, user_id: UUID) -> CashRegisterSession:
        """Abrir caja"""
        try:
            if await self.get_open_session(store_id):
                raise HTTPException(
                    status_code=status.HTTP_409_CONFLICT,
                    detail="Já existe um caixa aberto nesta loja"
                )

            session = CashRegisterSession(
                store_id=store_id,
                opened_at=datetime.now(timezone.utc),
                opening_amount=to_money(data.opening_amount),
                opened_by=user_id,
                opening_notes=data.opening_notes
            )
            self.db.add(session)
            await self.db.commit()
            await self.db.refresh(session)

            logger.info(f"Cash register {session.id} opened in store {store_id} by {user_id}")
            return session

        except HTTPException:
            raise
        except IntegrityError:
            await self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Já existe um caixa aberto nesta loja"
            )
        except Exception as e:
            await self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Erro interno do servidor: {str(e)}"
            )

    async def close_session(
        self, session_id: UUID, data: CashRegisterClose, store_id: UUID, user_id: UUID
    ) -> CashRegisterSummary:
        """Cerrar caja con arqueo"""
        try:
            session = await self._get(session_id, store_id)
            if not session.is_open:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="O caixa já está fechado"
                )

            session.closing_amount = to_money(data.closing_amount)
            session.closing_notes = data.closing_notes
            session.closed_by = user_id
            session.closed_at = datetime.now(timezone.utc)
            await self.db.commit()
            await self.db.refresh(session)

            logger.info(f"Cash register {session.id} closed in store {store_id} by {user_id}")
            return await self.summary(session)

        except HTTPException:
            raise
        except Exception as e:
            await self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Erro interno do servidor: {str(e)}"
            )

    async def summary(self, session: CashRegisterSession) -> CashRegisterSummary:
        result = await self.db.execute(
            select(Order).where(
                Order.store_id == session.store_id,
                Order.cash_register_id == session.id
            )
        )
        orders = result.scalars().all()

        delivered = [o for o in orders if o.status == OrderStatus.DELIVERED]
        cancelled = [o for o in orders if o.status == OrderStatus.CANCELLED]
        cash_label = FIXED_LABELS[FixedMethodCode.CASH]

        cash_sales = ZERO
        for order in delivered:
            for name, amount in zip(order.payment_methods or [], order.payment_amounts or []):
                if name == cash_label:
                    cash_sales += Decimal(str(amount))

        expected_cash = to_money(session.opening_amount + cash_sales)
        difference = None
        if session.closing_amount is not None:
            difference = to_money(session.closing_amount - expected_cash)

        return CashRegisterSummary(
            session=CashRegisterOut.model_validate(session),
            delivered_orders=len(delivered),
            cancelled_orders=len(cancelled),
            open_orders=len(orders) - len(delivered) - len(cancelled),
            sales_total=to_money(sum((o.total for o in delivered), ZERO)),
            cash_sales=to_money(cash_sales),
            expected_cash=expected_cash,
            difference=difference
        )

    async def _get(self, session_id: UUID, store_id: UUID) -> CashRegisterSession:
        result = await self.db.execute(
            select(CashRegisterSession).where(
                CashRegisterSession.id == session_id,
                CashRegisterSession.store_id == store_id
            )
        )
        session = result.scalar_one_or_none()
        if not session:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Caixa não encontrado"
            )
        return session
