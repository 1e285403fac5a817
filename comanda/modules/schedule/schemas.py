from pydantic import BaseModel
import datetime as dt
from datetime import date, time
from typing import Optional, Dict
from enum import Enum


class AvailabilityReason(str, Enum):
    DATE_CLOSED = "date_closed"
    OUTSIDE_HOURS = "outside_hours"


AVAILABILITY_MESSAGES = {
    AvailabilityReason.DATE_CLOSED: "A loja não abre nesta data",
    AvailabilityReason.OUTSIDE_HOURS: "Horário fora do funcionamento da loja",
}


class ScheduleRule(BaseModel):
    model_config = {"frozen": True, "from_attributes": True}

    is_open: bool
    open_time: Optional[time] = None
    close_time: Optional[time] = None


class ScheduleSnapshot(BaseModel):
    """Reglas semanales (0 = domingo) y excepciones por fecha."""
    model_config = {"frozen": True}

    weekly: Dict[int, ScheduleRule] = {}
    overrides: Dict[date, ScheduleRule] = {}


class Availability(BaseModel):
    is_open: bool
    reason: Optional[AvailabilityReason] = None
    message: Optional[str] = None
    open_time: Optional[time] = None
    close_time: Optional[time] = None


class NextOpenDate(BaseModel):
    date: Optional[dt.date] = None
    open_time: Optional[time] = None
    close_time: Optional[time] = None
