import datetime as dt

import pytest

from vetclinic.adapters.datetime_helpers import (
    SystemClock,
    add_minutes,
    combine_local,
    date_to_long,
    from_minutes,
    resolve_timezone,
    time_to_12h,
    to_minutes,
)


class TestMinuteArithmetic:
    @pytest.mark.parametrize(
        ("time", "minutes"),
        [(dt.time(0, 0), 0), (dt.time(9, 30), 570), (dt.time(23, 59), 1439)],
        ids=["midnight", "morning", "last-minute"],
    )
    def test_round_trips(self, time: dt.time, minutes: int) -> None:
        assert to_minutes(time) == minutes
        assert from_minutes(minutes) == time

    def test_end_of_day_is_clamped(self) -> None:
        assert from_minutes(1440) == dt.time(23, 59)

    def test_add_minutes(self) -> None:
        assert add_minutes(dt.time(10, 45), 90) == dt.time(12, 15)


class TestDateToLong:
    """Converts dt.date → long date string for message bodies."""

    @pytest.mark.parametrize(
        ("date", "expected"),
        [
            (dt.date(2026, 3, 22), "Sunday, March 22, 2026"),
            (dt.date(2026, 1, 5), "Monday, January 5, 2026"),
            (dt.date(2028, 2, 29), "Tuesday, February 29, 2028"),
        ],
        ids=["standard", "single-digit-day", "leap-day"],
    )
    def test_formats_correctly(self, date: dt.date, expected: str) -> None:
        assert date_to_long(date) == expected


class TestTimeTo12h:
    @pytest.mark.parametrize(
        ("time", "expected"),
        [
            (dt.time(14, 30), "2:30 PM"),
            (dt.time(9, 0), "9:00 AM"),
            (dt.time(12, 0), "12:00 PM"),
            (dt.time(0, 0), "12:00 AM"),
        ],
        ids=["afternoon", "morning", "noon", "midnight"],
    )
    def test_formats_correctly(self, time: dt.time, expected: str) -> None:
        assert time_to_12h(time) == expected


class TestTimezones:
    def test_invalid_name_falls_back_to_utc(self) -> None:
        assert resolve_timezone("Mars/Olympus_Mons") == dt.timezone.utc

    def test_combine_local_attaches_zone(self) -> None:
        tz = dt.timezone(dt.timedelta(hours=-5))

        combined = combine_local(dt.date(2026, 3, 23), dt.time(9), tz)

        assert combined.utcoffset() == dt.timedelta(hours=-5)
        assert combined.astimezone(dt.timezone.utc).hour == 14

    def test_system_clock_is_aware(self) -> None:
        tz = dt.timezone(dt.timedelta(hours=-5))

        assert SystemClock(tz).now().utcoffset() == dt.timedelta(hours=-5)
