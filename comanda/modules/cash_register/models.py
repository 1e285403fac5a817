"""
Sesiones de caja

Una sesión está abierta mientras closed_at es NULL. Sólo puede existir una
sesión abierta por tienda (índice único parcial).
"""

from comanda.database.database import Base
from sqlalchemy import Column, DateTime, Numeric, Text, Index, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func
from uuid import uuid4
from comanda.common.mixins import StoreMixin, TimestampMixin


class CashRegisterSession(Base, StoreMixin, TimestampMixin):
    __tablename__ = "cash_register_sessions"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    opened_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    closed_at = Column(DateTime(timezone=True), nullable=True)

    opening_amount = Column(Numeric(15, 2), nullable=False, default=0)
    closing_amount = Column(Numeric(15, 2), nullable=True)

    opened_by = Column(UUID(as_uuid=True), nullable=False)
    closed_by = Column(UUID(as_uuid=True), nullable=True)
    opening_notes = Column(Text, nullable=True)
    closing_notes = Column(Text, nullable=True)

    __table_args__ = (
        Index(
            "uq_cash_register_sessions_open_store",
            "store_id",
            unique=True,
            postgresql_where=text("closed_at IS NULL"),
            sqlite_where=text("closed_at IS NULL"),
        ),
    )

    @property
    def is_open(self) -> bool:
        return self.closed_at is None
