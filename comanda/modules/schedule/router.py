from fastapi import APIRouter, Query
from datetime import date, time
from typing import Optional

from comanda.common.clock import store_now
from comanda.core.config import settings
from comanda.dependencies.dbDependecies import async_db_dependency
from comanda.dependencies.storeDependencies import StoreId
from comanda.modules.schedule.gate import check_availability, next_open_date
from comanda.modules.schedule.schemas import Availability, NextOpenDate
from comanda.modules.schedule.service import ScheduleService

schedule_router = APIRouter(prefix="/schedule", tags=["Schedule"])


@schedule_router.get("/availability", response_model=Availability)
async def get_availability(
    store_id: StoreId,
    db: async_db_dependency,
    day: Optional[date] = Query(None, alias="date", description="Data desejada (padrão: hoje)"),
    at: Optional[time] = Query(None, alias="time", description="Horário desejado (padrão: agora)")
):
    now = store_now()
    target = day or now.date()
    snapshot = await ScheduleService(db).snapshot(store_id, target, horizon_days=0)
    return check_availability(snapshot, target, at, now)


@schedule_router.get("/next-open-date", response_model=NextOpenDate)
async def get_next_open_date(store_id: StoreId, db: async_db_dependency):
    """Primeira data aberta a partir de hoje dentro do horizonte configurado."""
    today = store_now().date()
    horizon = settings.SCHEDULE_HORIZON_DAYS
    snapshot = await ScheduleService(db).snapshot(store_id, today, horizon_days=horizon)
    return next_open_date(snapshot, today, horizon_days=horizon)
