from __future__ import annotations

from datetime import datetime, timezone
import unittest

from db_support import ADMIN, add_employee, add_shift, employee_actor, make_session

from shiftplan.errors import ApiError
from shiftplan.models import TimeEntryStatus
from shiftplan.schemas import TimeEntryCheckIn, TimeEntryCheckOut
from shiftplan.scope import EmployeeScope
from shiftplan.services.time_entries import check_in, check_out, list_time_entries

ISTANBUL = 180


def _utc(day: int, hour: int, minute: int = 0) -> datetime:
    return datetime(2026, 1, day, hour, minute, tzinfo=timezone.utc)


class TimeEntryTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session()
        self.employee = add_employee(self.db, "Derya")
        self.actor = employee_actor(self.employee)

    def tearDown(self) -> None:
        self.db.close()

    def _check_in(self, at: datetime, **kwargs):  # type: ignore[no-untyped-def]
        return check_in(
            self.db,
            TimeEntryCheckIn(check_in_at=at, **kwargs),
            actor=self.actor,
            offset_minutes=ISTANBUL,
        )

    def test_check_in_then_out_closes_entry(self) -> None:
        entry = self._check_in(_utc(5, 5))
        self.assertEqual(entry.status, TimeEntryStatus.OPEN)
        self.assertEqual(entry.employee_id, self.employee.id)

        closed = check_out(
            self.db,
            entry.id,
            TimeEntryCheckOut(check_out_at=_utc(5, 13, 30)),
            actor=self.actor,
            offset_minutes=ISTANBUL,
        )
        self.assertEqual(closed.status, TimeEntryStatus.CLOSED)
        self.assertEqual(closed.check_out_at, _utc(5, 13, 30))

    def test_second_open_entry_is_rejected(self) -> None:
        first = self._check_in(_utc(5, 5))
        with self.assertRaises(ApiError) as ctx:
            self._check_in(_utc(5, 6))
        self.assertEqual(ctx.exception.code, "ALREADY_CHECKED_IN")
        self.assertEqual(ctx.exception.details["time_entry_id"], first.id)

    def test_check_out_must_follow_check_in(self) -> None:
        entry = self._check_in(_utc(5, 5))
        with self.assertRaises(ApiError) as ctx:
            check_out(self.db, entry.id, TimeEntryCheckOut(check_out_at=_utc(5, 5)), actor=self.actor)
        self.assertEqual(ctx.exception.code, "INVALID_CHECKOUT")

    def test_closed_entry_cannot_be_checked_out_again(self) -> None:
        entry = self._check_in(_utc(5, 5))
        check_out(self.db, entry.id, TimeEntryCheckOut(check_out_at=_utc(5, 13)), actor=self.actor)
        with self.assertRaises(ApiError) as ctx:
            check_out(self.db, entry.id, TimeEntryCheckOut(check_out_at=_utc(5, 14)), actor=self.actor)
        self.assertEqual(ctx.exception.code, "ENTRY_NOT_OPEN")

    def test_naive_check_in_is_local_time(self) -> None:
        entry = self._check_in(datetime(2026, 1, 5, 8, 0))
        self.assertEqual(entry.check_in_at, _utc(5, 5))

    def test_employee_cannot_check_in_for_colleague(self) -> None:
        colleague = add_employee(self.db, "Eren")
        with self.assertRaises(ApiError) as ctx:
            self._check_in(_utc(5, 5), employee_id=colleague.id)
        self.assertEqual(ctx.exception.code, "FORBIDDEN")

    def test_shift_must_belong_to_employee(self) -> None:
        colleague = add_employee(self.db, "Eren")
        foreign = add_shift(self.db, colleague, _utc(5, 5), _utc(5, 13))
        with self.assertRaises(ApiError) as ctx:
            self._check_in(_utc(5, 5), shift_id=foreign.id)
        self.assertEqual(ctx.exception.code, "SHIFT_NOT_FOUND")

    def test_out_of_scope_entry_is_reported_missing(self) -> None:
        colleague = add_employee(self.db, "Eren", department="Bar")
        entry = check_in(
            self.db,
            TimeEntryCheckIn(employee_id=colleague.id, check_in_at=_utc(5, 5)),
            actor=ADMIN,
        )
        scope = EmployeeScope(type="self", employee_id=self.employee.id)
        with self.assertRaises(ApiError) as ctx:
            check_out(self.db, entry.id, TimeEntryCheckOut(check_out_at=_utc(5, 9)), actor=self.actor, scope=scope)
        self.assertEqual(ctx.exception.code, "TIME_ENTRY_NOT_FOUND")

        self.assertEqual(list_time_entries(self.db, scope=scope), [])
        self.assertEqual(len(list_time_entries(self.db, start=_utc(5, 0), end=_utc(6, 0))), 1)

    def test_naive_list_bounds_are_local_time(self) -> None:
        entry = self._check_in(_utc(5, 5))

        rows = list_time_entries(
            self.db,
            start=datetime(2026, 1, 5, 8, 0),
            end=datetime(2026, 1, 5, 8, 1),
            offset_minutes=ISTANBUL,
        )
        self.assertEqual([item.id for item in rows], [entry.id])

        earlier = list_time_entries(self.db, end=datetime(2026, 1, 5, 8, 0), offset_minutes=ISTANBUL)
        self.assertEqual(earlier, [])


if __name__ == "__main__":
    unittest.main()
