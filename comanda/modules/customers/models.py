"""
Modelos SQLAlchemy de clientes

- Customer: cliente identificado por teléfono dentro de la tienda.
  `points` es el saldo de fidelidad cacheado; el libro de transacciones
  (loyalty_transactions) es la fuente de auditoría.
- CustomerAddress: libreta de direcciones guardadas para delivery
"""

from comanda.database.database import Base
from sqlalchemy import Column, String, Integer, ForeignKey, UniqueConstraint, CheckConstraint
from sqlalchemy.dialects.postgresql import UUID
from uuid import uuid4
from comanda.common.mixins import StoreMixin, TimestampMixin


class Customer(Base, StoreMixin, TimestampMixin):
    __tablename__ = "customers"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    name = Column(String(150), nullable=False)
    phone = Column(String(20), nullable=False)
    points = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint("store_id", "phone", name="uq_customers_store_phone"),
        CheckConstraint("points >= 0", name="ck_customers_points_non_negative"),
    )


class CustomerAddress(Base, StoreMixin, TimestampMixin):
    __tablename__ = "customer_addresses"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    customer_id = Column(UUID(as_uuid=True), ForeignKey("customers.id"), nullable=False, index=True)
    name = Column(String(60), nullable=False, default="Principal")
    address = Column(String(255), nullable=False)
    number = Column(String(20), nullable=True)
    neighborhood = Column(String(120), nullable=False)
    reference = Column(String(255), nullable=True)
    cep = Column(String(9), nullable=True)
