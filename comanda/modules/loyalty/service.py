"""
Servicio del libro de fidelidad

- redeem: débito condicional del saldo + fila REDEEM, en una sola transacción
- earn: crédito del saldo + fila EARN
- refund_order_redemptions: devuelve los puntos canjeados de un pedido cancelado
- statement: saldo cacheado vs. suma del libro (conciliación)
"""

import logging
import math
from decimal import Decimal
from typing import Iterable, Optional, Tuple
from uuid import UUID

from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession

from comanda.modules.customers.models import Customer
from comanda.modules.loyalty.models import LoyaltyTransaction, LoyaltyTransactionType, LoyaltyReason
from comanda.modules.loyalty.schemas import LoyaltyStatement, LoyaltyTransactionOut

logger = logging.getLogger(__name__)


def calculate_earned_points(lines: Iterable[Tuple[Decimal, Decimal]]) -> int:
    """Suma floor(subtotal * tasa) de cada línea (subtotal, puntos por real)."""
    total = 0
    for subtotal, rate in lines:
        if not subtotal or not rate or subtotal <= 0 or rate <= 0:
            continue
        total += math.floor(Decimal(subtotal) * Decimal(rate))
    return total


class LoyaltyLedgerService:

    def __init__(self, db: AsyncSession):
        self.db = db

    async def redeem(
        self,
        store_id: UUID,
        customer_id: UUID,
        points: int,
        order_id: Optional[UUID] = None,
        description: Optional[str] = None
    ) -> bool:
        """
        Debita `points` del saldo sólo si alcanza. Devuelve False si el saldo
        cambió y ya no cubre el canje; en ese caso no se escribe nada.
        """
        if points <= 0:
            return True

        result = await self.db.execute(
            update(Customer)
            .where(
                Customer.id == customer_id,
                Customer.store_id == store_id,
                Customer.points >= points
            )
            .values(points=Customer.points - points)
            .execution_options(synchronize_session="fetch")
        )
        if result.rowcount != 1:
            logger.warning(f"Redeem of {points} points rejected for customer {customer_id}: insufficient balance")
            return False

        self.db.add(LoyaltyTransaction(
            store_id=store_id,
            customer_id=customer_id,
            order_id=order_id,
            points=-points,
            transaction_type=LoyaltyTransactionType.REDEEM,
            reason=LoyaltyReason.ORDER_REDEEM,
            description=description
        ))
        await self.db.commit()
        return True

    async def earn(
        self,
        store_id: UUID,
        customer_id: UUID,
        points: int,
        reason: LoyaltyReason,
        order_id: Optional[UUID] = None,
        description: Optional[str] = None
    ) -> Optional[LoyaltyTransaction]:
        if points <= 0:
            return None

        await self.db.execute(
            update(Customer)
            .where(Customer.id == customer_id, Customer.store_id == store_id)
            .values(points=Customer.points + points)
            .execution_options(synchronize_session="fetch")
        )
        entry = LoyaltyTransaction(
            store_id=store_id,
            customer_id=customer_id,
            order_id=order_id,
            points=points,
            transaction_type=LoyaltyTransactionType.EARN,
            reason=reason,
            description=description
        )
        self.db.add(entry)
        await self.db.commit()
        return entry

    async def refund_order_redemptions(
        self, store_id: UUID, customer_id: UUID, order_id: UUID, order_number: str
    ) -> int:
        """Devuelve los puntos canjeados en el pedido. Idempotente por pedido."""
        already = await self.db.execute(
            select(func.count(LoyaltyTransaction.id)).where(
                LoyaltyTransaction.store_id == store_id,
                LoyaltyTransaction.order_id == order_id,
                LoyaltyTransaction.reason == LoyaltyReason.CANCELLATION_REFUND
            )
        )
        if already.scalar_one() > 0:
            return 0

        redeemed = await self.db.execute(
            select(func.coalesce(func.sum(LoyaltyTransaction.points), 0)).where(
                LoyaltyTransaction.store_id == store_id,
                LoyaltyTransaction.order_id == order_id,
                LoyaltyTransaction.transaction_type == LoyaltyTransactionType.REDEEM
            )
        )
        points = abs(int(redeemed.scalar_one()))
        if points == 0:
            return 0

        await self.earn(
            store_id,
            customer_id,
            points,
            reason=LoyaltyReason.CANCELLATION_REFUND,
            order_id=order_id,
            description=f"Pontos devolvidos por cancelamento do pedido {order_number}"
        )
        logger.info(f"Refunded {points} points to customer {customer_id} for cancelled order {order_number}")
        return points

    async def statement(self, store_id: UUID, customer: Customer) -> LoyaltyStatement:
        result = await self.db.execute(
            select(LoyaltyTransaction)
            .where(LoyaltyTransaction.store_id == store_id, LoyaltyTransaction.customer_id == customer.id)
            .order_by(LoyaltyTransaction.created_at.desc())
        )
        transactions = result.scalars().all()
        ledger_balance = sum(t.points for t in transactions)
        if ledger_balance != customer.points:
            logger.warning(
                f"Loyalty balance mismatch for customer {customer.id}: cached {customer.points}, ledger {ledger_balance}"
            )
        return LoyaltyStatement(
            customer_id=customer.id,
            cached_balance=customer.points,
            ledger_balance=ledger_balance,
            is_consistent=ledger_balance == customer.points,
            transactions=[LoyaltyTransactionOut.model_validate(t) for t in transactions]
        )
