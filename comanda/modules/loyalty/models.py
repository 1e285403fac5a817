"""
Libro de fidelidad (append-only)

Cada movimiento de puntos genera una fila firmada:
- EARN: crédito (positivo) por compra entregada o devolución por cancelación
- REDEEM: débito (negativo) por canje en el pedido

El saldo vive cacheado en customers.points y se actualiza en la misma
transacción de base de datos que la fila del libro.
"""

from comanda.database.database import Base
from sqlalchemy import Column, String, Integer, ForeignKey, Enum
from sqlalchemy.dialects.postgresql import UUID
from uuid import uuid4
from comanda.common.mixins import StoreMixin, TimestampMixin
import enum


# ===== ENUMS =====

class LoyaltyTransactionType(enum.Enum):
    EARN = "earn"
    REDEEM = "redeem"


class LoyaltyReason(enum.Enum):
    ORDER_REDEEM = "order_redeem"            # Canje al confirmar el pedido
    ORDER_DELIVERED = "order_delivered"      # Acumulación al entregar
    CANCELLATION_REFUND = "cancellation_refund"
    MANUAL_ADJUSTMENT = "manual_adjustment"


# ===== MODELOS =====

class LoyaltyTransaction(Base, StoreMixin, TimestampMixin):
    __tablename__ = "loyalty_transactions"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    customer_id = Column(UUID(as_uuid=True), ForeignKey("customers.id"), nullable=False, index=True)
    order_id = Column(UUID(as_uuid=True), ForeignKey("orders.id"), nullable=True, index=True)
    points = Column(Integer, nullable=False)
    transaction_type = Column(Enum(LoyaltyTransactionType), nullable=False, index=True)
    reason = Column(Enum(LoyaltyReason), nullable=False)
    description = Column(String(255), nullable=True)
