"""
Puerta de disponibilidad: decide si la tienda atiende en una fecha/hora.

La excepción de la fecha reemplaza la regla semanal. La ventana es
exclusiva en ambos extremos; una ventana con cierre anterior a la apertura
cruza la medianoche. Un día abierto sin apertura o cierre no atiende.
"""

from datetime import date, datetime, time, timedelta
from typing import Optional

from comanda.modules.schedule.schemas import (
    AVAILABILITY_MESSAGES, Availability, AvailabilityReason, NextOpenDate,
    ScheduleRule, ScheduleSnapshot
)


def day_of_week(day: date) -> int:
    """0 = domingo ... 6 = sábado"""
    return (day.weekday() + 1) % 7


def rule_for(snapshot: ScheduleSnapshot, day: date) -> Optional[ScheduleRule]:
    if day in snapshot.overrides:
        return snapshot.overrides[day]
    return snapshot.weekly.get(day_of_week(day))


def is_date_open(snapshot: ScheduleSnapshot, day: date) -> bool:
    rule = rule_for(snapshot, day)
    return bool(rule and rule.is_open)


def _within(rule: ScheduleRule, moment: time) -> bool:
    if rule.open_time is None or rule.close_time is None:
        return False
    if rule.open_time < rule.close_time:
        return rule.open_time < moment < rule.close_time
    return moment > rule.open_time or moment < rule.close_time


def _closed(reason: AvailabilityReason, rule: Optional[ScheduleRule] = None) -> Availability:
    return Availability(
        is_open=False,
        reason=reason,
        message=AVAILABILITY_MESSAGES[reason],
        open_time=rule.open_time if rule else None,
        close_time=rule.close_time if rule else None
    )


def check_availability(
    snapshot: ScheduleSnapshot,
    day: date,
    at_time: Optional[time],
    now: datetime
) -> Availability:
    rule = rule_for(snapshot, day)
    if rule is None or not rule.is_open:
        return _closed(AvailabilityReason.DATE_CLOSED, rule)

    if at_time is None:
        # Sin horario elegido sólo vale "ahora", y sólo si la fecha es hoy
        if day != now.date():
            return _closed(AvailabilityReason.OUTSIDE_HOURS, rule)
        at_time = now.time().replace(tzinfo=None)

    if not _within(rule, at_time):
        return _closed(AvailabilityReason.OUTSIDE_HOURS, rule)

    return Availability(is_open=True, open_time=rule.open_time, close_time=rule.close_time)


def next_open_date(snapshot: ScheduleSnapshot, today: date, horizon_days: int = 30) -> NextOpenDate:
    for offset in range(horizon_days + 1):
        candidate = today + timedelta(days=offset)
        rule = rule_for(snapshot, candidate)
        if rule and rule.is_open:
            return NextOpenDate(date=candidate, open_time=rule.open_time, close_time=rule.close_time)
    return NextOpenDate()
