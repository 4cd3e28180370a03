from __future__ import annotations

from datetime import date, datetime, timezone
import unittest

from db_support import add_block, add_employee, make_session

from shiftplan.errors import ApiError
from shiftplan.models import AvailabilityBlock, AvailabilityType
from shiftplan.services.availability import (
    DayWindow,
    FindingSeverity,
    evaluate_block,
    find_availability_conflicts,
    resolve_findings,
    split_into_day_windows,
)

ISTANBUL = 180
MONDAY = date(2026, 1, 5)


def _block(block_type: AvailabilityType, day_of_week: int = 1, start: str | None = None, end: str | None = None, **kwargs):
    return AvailabilityBlock(
        id=7,
        employee_id=1,
        type=block_type,
        day_of_week=day_of_week,
        start_time=start,
        end_time=end,
        **kwargs,
    )


class DayWindowSplitTests(unittest.TestCase):
    def test_same_day_shift_is_one_window(self) -> None:
        windows = split_into_day_windows(
            datetime(2026, 1, 5, 5, 0, tzinfo=timezone.utc),
            datetime(2026, 1, 5, 13, 0, tzinfo=timezone.utc),
            ISTANBUL,
        )
        self.assertEqual(len(windows), 1)
        self.assertEqual((windows[0].start_minute, windows[0].end_minute), (8 * 60, 16 * 60))
        self.assertEqual(windows[0].day_of_week, 1)

    def test_cross_midnight_shift_is_split_per_local_day(self) -> None:
        # Monday 22:00 to Tuesday 06:00 local time.
        windows = split_into_day_windows(
            datetime(2026, 1, 5, 19, 0, tzinfo=timezone.utc),
            datetime(2026, 1, 6, 3, 0, tzinfo=timezone.utc),
            ISTANBUL,
        )
        self.assertEqual(
            [(w.on_date, w.start_minute, w.end_minute) for w in windows],
            [(date(2026, 1, 5), 22 * 60, 1440), (date(2026, 1, 6), 0, 6 * 60)],
        )

    def test_shift_ending_at_local_midnight_does_not_touch_next_day(self) -> None:
        windows = split_into_day_windows(
            datetime(2026, 1, 5, 15, 0, tzinfo=timezone.utc),
            datetime(2026, 1, 5, 21, 0, tzinfo=timezone.utc),
            ISTANBUL,
        )
        self.assertEqual(len(windows), 1)
        self.assertEqual(windows[0].end_minute, 1440)


class BlockEvaluationTests(unittest.TestCase):
    def test_unavailable_block_blocks_overlapping_window(self) -> None:
        window = DayWindow("day 1", MONDAY, 8 * 60, 16 * 60)
        finding = evaluate_block(_block(AvailabilityType.UNAVAILABLE, start="12:00", end="14:00"), window)
        self.assertIsNotNone(finding)
        self.assertEqual(finding.severity, FindingSeverity.BLOCKING)

    def test_block_without_times_covers_whole_day(self) -> None:
        window = DayWindow("day 1", MONDAY, 23 * 60, 1440)
        finding = evaluate_block(_block(AvailabilityType.PREFER_NOT), window)
        self.assertEqual(finding.severity, FindingSeverity.ADVISORY)

    def test_touching_block_is_ignored(self) -> None:
        window = DayWindow("day 1", MONDAY, 8 * 60, 12 * 60)
        self.assertIsNone(evaluate_block(_block(AvailabilityType.UNAVAILABLE, start="12:00", end="18:00"), window))

    def test_other_weekday_is_ignored(self) -> None:
        window = DayWindow("day 1", MONDAY, 8 * 60, 16 * 60)
        self.assertIsNone(evaluate_block(_block(AvailabilityType.UNAVAILABLE, day_of_week=2), window))

    def test_block_outside_its_date_range_is_ignored(self) -> None:
        window = DayWindow("day 1", MONDAY, 8 * 60, 16 * 60)
        block = _block(AvailabilityType.UNAVAILABLE, start_date=date(2026, 2, 1))
        self.assertIsNone(evaluate_block(block, window))

    def test_available_only_flags_window_leaving_the_interval(self) -> None:
        block = _block(AvailabilityType.AVAILABLE_ONLY, start="09:00", end="17:00")
        inside = DayWindow("day 1", MONDAY, 10 * 60, 12 * 60)
        straddling = DayWindow("day 1", MONDAY, 8 * 60, 12 * 60)
        self.assertIsNone(evaluate_block(block, inside))
        self.assertEqual(evaluate_block(block, straddling).severity, FindingSeverity.BOUNDARY)

    def test_available_only_ignores_windows_that_do_not_touch_the_interval(self) -> None:
        block = _block(AvailabilityType.AVAILABLE_ONLY, start="09:00", end="17:00")
        evening = DayWindow("day 1", MONDAY, 18 * 60, 20 * 60)
        self.assertIsNone(evaluate_block(block, evening))


class ResolveFindingsTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session()
        self.employee = add_employee(self.db, "Ayse")

    def tearDown(self) -> None:
        self.db.close()

    def test_unavailable_conflict_raises_without_override(self) -> None:
        add_block(self.db, self.employee, AvailabilityType.UNAVAILABLE, 2)
        findings = find_availability_conflicts(
            self.db,
            employee_id=self.employee.id,
            start=datetime(2026, 1, 6, 6, 0, tzinfo=timezone.utc),
            end=datetime(2026, 1, 6, 10, 0, tzinfo=timezone.utc),
            offset_minutes=ISTANBUL,
        )
        self.assertEqual(len(findings), 1)
        with self.assertRaises(ApiError) as ctx:
            resolve_findings(findings, force_override=False)
        self.assertEqual(ctx.exception.code, "UNAVAILABLE_CONFLICT")
        self.assertEqual(ctx.exception.status_code, 422)

        warnings = resolve_findings(findings, force_override=True)
        self.assertEqual(len(warnings), 1)
        self.assertIn("Tuesday", warnings[0])

    def test_prefer_not_only_warns(self) -> None:
        add_block(self.db, self.employee, AvailabilityType.PREFER_NOT, 1, "06:00", "10:00")
        findings = find_availability_conflicts(
            self.db,
            employee_id=self.employee.id,
            start=datetime(2026, 1, 5, 5, 0, tzinfo=timezone.utc),
            end=datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc),
            offset_minutes=ISTANBUL,
        )
        warnings = resolve_findings(findings, force_override=False)
        self.assertEqual(len(warnings), 1)
        self.assertIn("prefers not", warnings[0])

    def test_second_day_of_cross_midnight_shift_is_checked(self) -> None:
        add_block(self.db, self.employee, AvailabilityType.UNAVAILABLE, 2, "00:00", "04:00")
        findings = find_availability_conflicts(
            self.db,
            employee_id=self.employee.id,
            start=datetime(2026, 1, 5, 19, 0, tzinfo=timezone.utc),
            end=datetime(2026, 1, 6, 3, 0, tzinfo=timezone.utc),
            offset_minutes=ISTANBUL,
        )
        self.assertEqual([item.window.label for item in findings], ["day 2"])


if __name__ == "__main__":
    unittest.main()
