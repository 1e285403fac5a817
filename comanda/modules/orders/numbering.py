"""
Numeración secuencial de pedidos por tienda y prefijo de canal (PDV-000042).
"""

from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from comanda.modules.orders.models import OrderSequence


async def ensure_sequence(db: AsyncSession, store_id: UUID, prefix: str) -> None:
    result = await db.execute(
        select(OrderSequence.id).where(OrderSequence.store_id == store_id, OrderSequence.prefix == prefix)
    )
    if result.first() is not None:
        return
    db.add(OrderSequence(store_id=store_id, prefix=prefix, current_number=0))
    try:
        await db.commit()
    except IntegrityError:
        # Creada por otra request
        await db.rollback()


async def next_order_number(db: AsyncSession, store_id: UUID, prefix: str) -> str:
    """
    Incrementa la secuencia dentro de la transacción en curso; el lock de fila
    se mantiene hasta el commit del pedido.
    """
    await db.execute(
        update(OrderSequence)
        .where(OrderSequence.store_id == store_id, OrderSequence.prefix == prefix)
        .values(current_number=OrderSequence.current_number + 1)
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(
        select(OrderSequence.current_number).where(
            OrderSequence.store_id == store_id, OrderSequence.prefix == prefix
        )
    )
    return f"{prefix}-{result.scalar_one():06d}"
