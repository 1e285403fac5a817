"""
Horarios de atención de la tienda

- StoreOperatingHour: regla semanal (day_of_week 0 = domingo ... 6 = sábado)
- StoreSpecialDay: excepción para una fecha concreta; reemplaza la regla semanal
"""

from comanda.database.database import Base
from sqlalchemy import Column, String, Boolean, Integer, Date, Time, UniqueConstraint, CheckConstraint
from sqlalchemy.dialects.postgresql import UUID
from uuid import uuid4
from comanda.common.mixins import StoreMixin, TimestampMixin


class StoreOperatingHour(Base, StoreMixin, TimestampMixin):
    __tablename__ = "store_operating_hours"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    day_of_week = Column(Integer, nullable=False)
    is_open = Column(Boolean, default=True, nullable=False)
    open_time = Column(Time, nullable=True)
    close_time = Column(Time, nullable=True)

    __table_args__ = (
        UniqueConstraint("store_id", "day_of_week", name="uq_operating_hours_store_day"),
        CheckConstraint("day_of_week BETWEEN 0 AND 6", name="ck_operating_hours_day_range"),
    )


class StoreSpecialDay(Base, StoreMixin, TimestampMixin):
    __tablename__ = "store_special_days"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    date = Column(Date, nullable=False)
    is_open = Column(Boolean, default=False, nullable=False)
    open_time = Column(Time, nullable=True)
    close_time = Column(Time, nullable=True)
    description = Column(String(120), nullable=True)

    __table_args__ = (
        UniqueConstraint("store_id", "date", name="uq_special_days_store_date"),
    )
