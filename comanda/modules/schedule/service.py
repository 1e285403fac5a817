"""
Carga de horarios de la tienda para la puerta de disponibilidad.
"""

from datetime import date, timedelta
from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from comanda.core.config import settings
from comanda.modules.schedule.models import StoreOperatingHour, StoreSpecialDay
from comanda.modules.schedule.schemas import ScheduleRule, ScheduleSnapshot


class ScheduleService:

    def __init__(self, db: AsyncSession):
        self.db = db

    async def snapshot(self, store_id: UUID, start: date, horizon_days: Optional[int] = None) -> ScheduleSnapshot:
        """Reglas semanales + excepciones entre `start` y el horizonte."""
        horizon = settings.SCHEDULE_HORIZON_DAYS if horizon_days is None else horizon_days

        weekly_result = await self.db.execute(
            select(StoreOperatingHour).where(StoreOperatingHour.store_id == store_id)
        )
        special_result = await self.db.execute(
            select(StoreSpecialDay).where(
                StoreSpecialDay.store_id == store_id,
                StoreSpecialDay.date >= start,
                StoreSpecialDay.date <= start + timedelta(days=horizon)
            )
        )

        return ScheduleSnapshot(
            weekly={row.day_of_week: ScheduleRule.model_validate(row) for row in weekly_result.scalars().all()},
            overrides={row.date: ScheduleRule.model_validate(row) for row in special_result.scalars().all()}
        )
