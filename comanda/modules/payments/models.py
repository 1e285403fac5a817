"""
Configuración de medios de pago de la tienda

- PaymentMethodConfig: medios personalizados (vale-refeição, fiado...) con
  los canales donde se ofrecen
- CardMachine: maquininhas de tarjeta con sus tasas
"""

from comanda.database.database import Base
from sqlalchemy import Column, String, Boolean, ForeignKey, Numeric, JSON, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from uuid import uuid4
from comanda.common.mixins import StoreMixin, TimestampMixin


class CardMachine(Base, StoreMixin, TimestampMixin):
    __tablename__ = "card_machines"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    name = Column(String(80), nullable=False)
    debit_fee = Column(Numeric(5, 2), nullable=False, default=0)
    credit_fee = Column(Numeric(5, 2), nullable=False, default=0)
    installment_fees = Column(JSON, nullable=False, default=dict)
    is_active = Column(Boolean, default=True, nullable=False)


class PaymentMethodConfig(Base, StoreMixin, TimestampMixin):
    __tablename__ = "payment_methods"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    name = Column(String(80), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    is_default = Column(Boolean, default=False, nullable=False)
    allowed_channels = Column(JSON, nullable=False, default=list)
    requires_card_machine = Column(Boolean, default=False, nullable=False)
    card_machine_id = Column(UUID(as_uuid=True), ForeignKey("card_machines.id"), nullable=True)

    __table_args__ = (
        UniqueConstraint("store_id", "name", name="uq_payment_methods_store_name"),
    )
