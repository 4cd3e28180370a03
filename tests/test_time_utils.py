from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
import unittest

from shiftplan.errors import ApiError
from shiftplan.services.time_utils import (
    duration_minutes,
    hhmm_to_minutes,
    intervals_overlap,
    local_date,
    local_datetime_to_instant,
    minute_of_day,
    normalize_instant,
    parse_hhmm,
    week_window,
    weekday_index,
)

ISTANBUL = 180


class TimeUtilsTests(unittest.TestCase):
    def test_local_wall_time_converts_to_utc_instant(self) -> None:
        value = local_datetime_to_instant(date(2026, 1, 5), "08:00", ISTANBUL)
        self.assertEqual(value, datetime(2026, 1, 5, 5, 0, tzinfo=timezone.utc))

    def test_local_midnight_belongs_to_previous_utc_day(self) -> None:
        value = local_datetime_to_instant(date(2026, 1, 5), "00:00", ISTANBUL)
        self.assertEqual(value, datetime(2026, 1, 4, 21, 0, tzinfo=timezone.utc))
        self.assertEqual(local_date(value, ISTANBUL), date(2026, 1, 5))
        self.assertEqual(minute_of_day(value, ISTANBUL), 0)

    def test_naive_input_is_read_as_local_time(self) -> None:
        value = normalize_instant(datetime(2026, 1, 5, 8, 0), ISTANBUL)
        self.assertEqual(value, datetime(2026, 1, 5, 5, 0, tzinfo=timezone.utc))

    def test_aware_input_keeps_its_instant(self) -> None:
        source = datetime(2026, 1, 5, 8, 0, tzinfo=timezone(timedelta(hours=1)))
        self.assertEqual(normalize_instant(source, ISTANBUL), datetime(2026, 1, 5, 7, 0, tzinfo=timezone.utc))

    def test_weekday_index_starts_on_sunday(self) -> None:
        self.assertEqual(weekday_index(date(2026, 1, 4)), 0)
        self.assertEqual(weekday_index(date(2026, 1, 5)), 1)
        self.assertEqual(weekday_index(date(2026, 1, 6)), 2)
        self.assertEqual(weekday_index(date(2026, 1, 10)), 6)

    def test_parse_hhmm_rejects_malformed_values(self) -> None:
        self.assertEqual(hhmm_to_minutes("13:45"), 13 * 60 + 45)
        for raw in ("24:00", "7:30", "12:60", "noon"):
            with self.assertRaises(ApiError) as ctx:
                parse_hhmm(raw)
            self.assertEqual(ctx.exception.code, "INVALID_TIME_FORMAT")

    def test_overlap_is_symmetric_and_half_open(self) -> None:
        cases = [
            (8, 16, 10, 18, True),
            (8, 16, 16, 20, False),
            (8, 16, 9, 10, True),
            (8, 9, 12, 13, False),
        ]
        for a, b, c, d, expected in cases:
            self.assertEqual(intervals_overlap(a, b, c, d), expected)
            self.assertEqual(intervals_overlap(c, d, a, b), expected)

    def test_week_window_spans_seven_local_days(self) -> None:
        start, end = week_window(date(2026, 1, 5), ISTANBUL)
        self.assertEqual(start, datetime(2026, 1, 4, 21, 0, tzinfo=timezone.utc))
        self.assertEqual(end - start, timedelta(days=7))

    def test_duration_minutes_floors_partial_minutes(self) -> None:
        start = datetime(2026, 1, 5, 8, 0, tzinfo=timezone.utc)
        self.assertEqual(duration_minutes(start, start + timedelta(hours=2, seconds=59)), 120)


if __name__ == "__main__":
    unittest.main()
