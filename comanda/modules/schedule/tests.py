"""
Tests de la puerta de disponibilidad y de la próxima fecha abierta
"""

from datetime import date, datetime, time, timedelta
from zoneinfo import ZoneInfo

from comanda.modules.schedule.gate import check_availability, day_of_week, is_date_open, next_open_date
from comanda.modules.schedule.schemas import AvailabilityReason, ScheduleRule, ScheduleSnapshot
from comanda.modules.schedule.service import ScheduleService

TZ = ZoneInfo("America/Sao_Paulo")
TUESDAY = date(2026, 3, 10)
NOON = datetime(2026, 3, 10, 12, 0, tzinfo=TZ)

DAY_RULE = ScheduleRule(is_open=True, open_time=time(8, 0), close_time=time(22, 0))
CLOSED = ScheduleRule(is_open=False)


def every_day(rule=DAY_RULE, closed=()):
    return ScheduleSnapshot(weekly={d: (CLOSED if d in closed else rule) for d in range(7)})


class TestDayOfWeek:
    def test_sunday_is_zero(self):
        assert day_of_week(date(2026, 3, 8)) == 0
        assert day_of_week(TUESDAY) == 2
        assert day_of_week(date(2026, 3, 14)) == 6


class TestAvailability:

    def test_open_inside_window(self):
        result = check_availability(every_day(), TUESDAY, time(13, 0), NOON)
        assert result.is_open
        assert result.reason is None

    def test_window_is_exclusive_at_both_ends(self):
        assert not check_availability(every_day(), TUESDAY, time(8, 0), NOON).is_open
        assert not check_availability(every_day(), TUESDAY, time(22, 0), NOON).is_open

    def test_closed_weekday(self):
        result = check_availability(every_day(closed=(2,)), TUESDAY, time(13, 0), NOON)
        assert result.reason == AvailabilityReason.DATE_CLOSED
        assert result.message == "A loja não abre nesta data"

    def test_missing_rule_means_closed(self):
        result = check_availability(ScheduleSnapshot(), TUESDAY, time(13, 0), NOON)
        assert result.reason == AvailabilityReason.DATE_CLOSED

    def test_open_day_without_hours_is_outside_hours(self):
        for rule in (
            ScheduleRule(is_open=True),
            ScheduleRule(is_open=True, open_time=time(8, 0)),
            ScheduleRule(is_open=True, close_time=time(22, 0)),
        ):
            result = check_availability(every_day(rule=rule), TUESDAY, time(3, 0), NOON)
            assert not result.is_open
            assert result.reason == AvailabilityReason.OUTSIDE_HOURS

    def test_override_replaces_weekly_rule(self):
        snapshot = ScheduleSnapshot(weekly=every_day().weekly, overrides={TUESDAY: CLOSED})
        assert not is_date_open(snapshot, TUESDAY)
        assert is_date_open(snapshot, TUESDAY + timedelta(days=1))

    def test_override_opens_closed_day(self):
        sunday = date(2026, 3, 15)
        special = ScheduleRule(is_open=True, open_time=time(10, 0), close_time=time(14, 0))
        snapshot = ScheduleSnapshot(weekly=every_day(closed=(0,)).weekly, overrides={sunday: special})
        assert check_availability(snapshot, sunday, time(11, 0), NOON).is_open

    def test_without_time_uses_now_only_for_today(self):
        assert check_availability(every_day(), TUESDAY, None, NOON).is_open
        tomorrow = check_availability(every_day(), TUESDAY + timedelta(days=1), None, NOON)
        assert tomorrow.reason == AvailabilityReason.OUTSIDE_HOURS

    def test_overnight_window(self):
        late = ScheduleRule(is_open=True, open_time=time(18, 0), close_time=time(2, 0))
        snapshot = every_day(rule=late)
        assert check_availability(snapshot, TUESDAY, time(23, 30), NOON).is_open
        assert check_availability(snapshot, TUESDAY, time(1, 0), NOON).is_open
        assert not check_availability(snapshot, TUESDAY, time(12, 0), NOON).is_open


class TestNextOpenDate:

    def test_today_when_open(self):
        assert next_open_date(every_day(), TUESDAY).date == TUESDAY

    def test_skips_closed_days(self):
        # Cerrado martes y miércoles
        result = next_open_date(every_day(closed=(2, 3)), TUESDAY)
        assert result.date == date(2026, 3, 12)
        assert result.open_time == time(8, 0)

    def test_nothing_within_horizon(self):
        result = next_open_date(every_day(closed=tuple(range(7))), TUESDAY, horizon_days=30)
        assert result.date is None


class TestScheduleService:

    def test_snapshot_loads_weekly_and_overrides(self, run_db, seed, store_id):
        async def scenario(db):
            await seed.weekly_hours(db, store_id, closed_days=(0,))
            await seed.special_day(db, store_id, TUESDAY, is_open=False, description="Feriado")
            await seed.special_day(db, store_id, TUESDAY + timedelta(days=60), is_open=False)

            snapshot = await ScheduleService(db).snapshot(store_id, TUESDAY, horizon_days=30)
            assert len(snapshot.weekly) == 7
            assert list(snapshot.overrides) == [TUESDAY]
            assert not is_date_open(snapshot, TUESDAY)
            assert next_open_date(snapshot, TUESDAY).date == TUESDAY + timedelta(days=1)

        run_db(scenario)
