from __future__ import annotations

from datetime import date, datetime, timezone
import unittest

from db_support import (
    ADMIN,
    add_balance,
    add_employee,
    add_leave_type,
    add_shift,
    employee_actor,
    make_session,
    manager_for,
)

from shiftplan.errors import ApiError
from shiftplan.models import (
    AuditLog,
    LeaveBalance,
    LeaveRequest,
    LeaveRequestStatus,
    LeaveUnit,
    Shift,
    ShiftEvent,
    ShiftStatus,
)
from shiftplan.schemas import LeaveRequestCreate, LeaveRequestStatusUpdate
from shiftplan.services.leave_requests import (
    approve_leave_request,
    create_leave_request,
    list_leave_requests,
    reject_leave_request,
    remove_leave_request,
    update_leave_status,
)

ISTANBUL = 180


def _utc(day: int, hour: int) -> datetime:
    return datetime(2026, 1, day, hour, 0, tzinfo=timezone.utc)


class LeaveRequestCreateTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session()
        self.employee = add_employee(self.db, "Burak")
        self.actor = employee_actor(self.employee)
        add_leave_type(self.db, "ANNUAL")
        add_leave_type(self.db, "UNPAID", is_paid=False)
        add_balance(self.db, self.employee, accrued_minutes=6720)

    def tearDown(self) -> None:
        self.db.close()

    def _create(self, **kwargs) -> LeaveRequest:  # type: ignore[no-untyped-def]
        payload = LeaveRequestCreate(**kwargs)
        return create_leave_request(self.db, payload, actor=self.actor, offset_minutes=ISTANBUL)

    def test_fifteen_day_request_exceeds_fourteen_day_balance(self) -> None:
        with self.assertRaises(ApiError) as ctx:
            self._create(leave_code="ANNUAL", start_date=date(2026, 3, 2), end_date=date(2026, 3, 16))
        self.assertEqual(ctx.exception.code, "LEAVE_BALANCE_INSUFFICIENT")
        self.assertEqual(ctx.exception.details["remaining_minutes"], 6720)
        self.assertEqual(ctx.exception.details["required_minutes"], 7200)
        self.assertEqual(ctx.exception.details["shortfall_minutes"], 480)
        self.assertEqual(self.db.query(LeaveRequest).count(), 0)

    def test_day_request_spans_local_midnights(self) -> None:
        leave = self._create(leave_code="ANNUAL", start_date=date(2026, 1, 6), end_date=date(2026, 1, 7))
        self.assertEqual(leave.status, LeaveRequestStatus.PENDING)
        self.assertEqual(leave.start_at, _utc(5, 21))
        self.assertEqual(leave.end_at, _utc(7, 21))
        self.assertEqual(leave.employee_id, self.employee.id)

    def test_half_day_uses_default_morning_window(self) -> None:
        leave = self._create(
            leave_code="ANNUAL",
            unit=LeaveUnit.HALF_DAY,
            start_date=date(2026, 1, 6),
            end_date=date(2026, 1, 6),
        )
        self.assertEqual(leave.start_at, _utc(6, 6))
        self.assertEqual(leave.end_at, _utc(6, 10))

    def test_partial_day_units_must_stay_on_one_date(self) -> None:
        with self.assertRaises(ApiError) as ctx:
            self._create(
                leave_code="ANNUAL",
                unit=LeaveUnit.HALF_DAY,
                start_date=date(2026, 1, 6),
                end_date=date(2026, 1, 7),
            )
        self.assertEqual(ctx.exception.code, "INVALID_DATE_RANGE")

    def test_hour_unit_requires_ordered_times(self) -> None:
        with self.assertRaises(ApiError) as ctx:
            self._create(leave_code="ANNUAL", unit=LeaveUnit.HOUR, start_date=date(2026, 1, 6), end_date=date(2026, 1, 6))
        self.assertEqual(ctx.exception.code, "INVALID_TIME_RANGE")

        with self.assertRaises(ApiError) as ctx:
            self._create(
                leave_code="ANNUAL",
                unit=LeaveUnit.HOUR,
                start_date=date(2026, 1, 6),
                end_date=date(2026, 1, 6),
                start_time="15:00",
                end_time="14:00",
            )
        self.assertEqual(ctx.exception.code, "INVALID_TIME_RANGE")

    def test_reversed_dates_are_rejected(self) -> None:
        with self.assertRaises(ApiError) as ctx:
            self._create(leave_code="ANNUAL", start_date=date(2026, 1, 7), end_date=date(2026, 1, 6))
        self.assertEqual(ctx.exception.code, "INVALID_DATE_RANGE")

    def test_overlapping_request_is_rejected(self) -> None:
        self._create(leave_code="ANNUAL", start_date=date(2026, 1, 6), end_date=date(2026, 1, 7))
        with self.assertRaises(ApiError) as ctx:
            self._create(leave_code="UNPAID", start_date=date(2026, 1, 7), end_date=date(2026, 1, 9))
        self.assertEqual(ctx.exception.code, "LEAVE_OVERLAP")
        self.assertEqual(ctx.exception.status_code, 409)

    def test_unpaid_leave_skips_the_ledger(self) -> None:
        leave = self._create(leave_code="UNPAID", start_date=date(2026, 6, 1), end_date=date(2026, 6, 30))
        self.assertEqual(leave.leave_code, "UNPAID")

    def test_unknown_leave_type_is_not_found(self) -> None:
        with self.assertRaises(ApiError) as ctx:
            self._create(leave_code="STUDY", start_date=date(2026, 1, 6), end_date=date(2026, 1, 6))
        self.assertEqual(ctx.exception.code, "LEAVE_TYPE_NOT_FOUND")

    def test_employee_cannot_file_for_someone_else(self) -> None:
        other = add_employee(self.db, "Deniz")
        with self.assertRaises(ApiError) as ctx:
            self._create(
                leave_code="UNPAID",
                start_date=date(2026, 1, 6),
                end_date=date(2026, 1, 6),
                employee_id=other.id,
            )
        self.assertEqual(ctx.exception.code, "FORBIDDEN")


class LeaveApprovalTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session()
        self.employee = add_employee(self.db, "Ece", department="Kitchen")
        self.manager = add_employee(self.db, "Murat", department="Kitchen")
        self.outsider = add_employee(self.db, "Ozan", department="Bar")
        add_leave_type(self.db, "ANNUAL")
        self.balance = add_balance(self.db, self.employee, accrued_minutes=6720)
        self.leave = create_leave_request(
            self.db,
            LeaveRequestCreate(leave_code="ANNUAL", start_date=date(2026, 1, 6), end_date=date(2026, 1, 7)),
            actor=employee_actor(self.employee),
            offset_minutes=ISTANBUL,
        )

    def tearDown(self) -> None:
        self.db.close()

    def test_approval_debits_ledger_and_cancels_overlapping_shifts(self) -> None:
        # The leave covers [Jan 5 21:00Z, Jan 7 21:00Z).
        before_leave = add_shift(self.db, self.employee, _utc(5, 13), _utc(5, 18))
        crosses_into_leave = add_shift(self.db, self.employee, _utc(5, 18), _utc(5, 23), status=ShiftStatus.DRAFT)
        inside_leave = add_shift(self.db, self.employee, _utc(6, 6), _utc(6, 14), status=ShiftStatus.ACKNOWLEDGED)
        already_cancelled = add_shift(self.db, self.employee, _utc(7, 6), _utc(7, 14), status=ShiftStatus.CANCELLED)
        starts_at_leave_end = add_shift(self.db, self.employee, _utc(7, 21), _utc(8, 3))
        colleague_shift = add_shift(self.db, self.manager, _utc(6, 6), _utc(6, 14))

        result = approve_leave_request(
            self.db,
            self.leave.id,
            actor=manager_for(self.manager),
            manager_note="Enjoy",
        )

        self.assertEqual(result.request.status, LeaveRequestStatus.APPROVED)
        self.assertEqual(result.request.manager_note, "Enjoy")
        self.assertIsNotNone(result.request.approved_at)
        self.assertEqual(sorted(result.cancelled_shift_ids), sorted([crosses_into_leave.id, inside_leave.id]))

        self.assertEqual(self.db.get(LeaveBalance, self.balance.id).used_minutes, 960)
        for shift_id in result.cancelled_shift_ids:
            shift = self.db.get(Shift, shift_id)
            self.assertEqual(shift.status, ShiftStatus.CANCELLED)
            self.assertFalse(shift.is_active)
            self.assertEqual(shift.cancelled_by_leave_request_id, self.leave.id)
        for untouched in (before_leave, starts_at_leave_end, colleague_shift):
            self.assertEqual(self.db.get(Shift, untouched.id).status, ShiftStatus.PUBLISHED)
        self.assertIsNone(self.db.get(Shift, already_cancelled.id).cancelled_by_leave_request_id)

        events = self.db.query(ShiftEvent).filter(ShiftEvent.event_type == "LEAVE_CANCELLED").all()
        self.assertEqual(len(events), 2)
        audit = self.db.query(AuditLog).filter(AuditLog.action == "LEAVE_REQUEST_APPROVED").one()
        self.assertEqual(audit.details["cancelled_shift_count"], 2)

    def test_insufficient_balance_at_approval_changes_nothing(self) -> None:
        shift = add_shift(self.db, self.employee, _utc(6, 6), _utc(6, 14))
        balance = self.db.get(LeaveBalance, self.balance.id)
        balance.used_minutes = 6000
        self.db.commit()

        with self.assertRaises(ApiError) as ctx:
            approve_leave_request(self.db, self.leave.id, actor=ADMIN)
        self.assertEqual(ctx.exception.code, "LEAVE_BALANCE_INSUFFICIENT")
        self.assertEqual(ctx.exception.details["remaining_minutes"], 720)

        self.assertEqual(self.db.get(LeaveBalance, self.balance.id).used_minutes, 6000)
        self.assertEqual(self.db.get(LeaveRequest, self.leave.id).status, LeaveRequestStatus.PENDING)
        self.assertEqual(self.db.get(Shift, shift.id).status, ShiftStatus.PUBLISHED)
        self.assertEqual(self.db.query(ShiftEvent).count(), 0)

    def test_approval_debits_the_year_of_the_start_date(self) -> None:
        next_year = add_balance(self.db, self.employee, year=2027, accrued_minutes=960)
        # Local midnight at +10:00 falls on 2026-12-31 in UTC and at +03:00.
        leave = create_leave_request(
            self.db,
            LeaveRequestCreate(leave_code="ANNUAL", start_date=date(2027, 1, 1), end_date=date(2027, 1, 1)),
            actor=employee_actor(self.employee),
            offset_minutes=600,
        )

        approve_leave_request(self.db, leave.id, actor=ADMIN)

        self.assertEqual(self.db.get(LeaveBalance, next_year.id).used_minutes, 480)
        self.assertEqual(self.db.get(LeaveBalance, self.balance.id).used_minutes, 0)
        audit = self.db.query(AuditLog).filter(AuditLog.action == "LEAVE_REQUEST_APPROVED").one()
        self.assertEqual(audit.details["year"], 2027)

    def test_manager_from_other_department_is_forbidden(self) -> None:
        with self.assertRaises(ApiError) as ctx:
            approve_leave_request(self.db, self.leave.id, actor=manager_for(self.outsider))
        self.assertEqual(ctx.exception.code, "FORBIDDEN")

    def test_approving_twice_is_invalid(self) -> None:
        approve_leave_request(self.db, self.leave.id, actor=ADMIN)
        with self.assertRaises(ApiError) as ctx:
            approve_leave_request(self.db, self.leave.id, actor=ADMIN)
        self.assertEqual(ctx.exception.code, "INVALID_STATUS")
        self.assertEqual(self.db.get(LeaveBalance, self.balance.id).used_minutes, 960)

    def test_status_update_routes_to_approval(self) -> None:
        result = update_leave_status(
            self.db,
            self.leave.id,
            LeaveRequestStatusUpdate(status=LeaveRequestStatus.APPROVED),
            actor=ADMIN,
        )
        self.assertEqual(result.request.status, LeaveRequestStatus.APPROVED)

        with self.assertRaises(ApiError) as ctx:
            update_leave_status(
                self.db,
                self.leave.id,
                LeaveRequestStatusUpdate(status=LeaveRequestStatus.CANCELLED),
                actor=ADMIN,
            )
        self.assertEqual(ctx.exception.code, "INVALID_STATUS")

    def test_employee_may_only_cancel_own_pending_request(self) -> None:
        with self.assertRaises(ApiError) as ctx:
            update_leave_status(
                self.db,
                self.leave.id,
                LeaveRequestStatusUpdate(status=LeaveRequestStatus.APPROVED),
                actor=employee_actor(self.employee),
            )
        self.assertEqual(ctx.exception.code, "FORBIDDEN")

        result = update_leave_status(
            self.db,
            self.leave.id,
            LeaveRequestStatusUpdate(status=LeaveRequestStatus.CANCELLED),
            actor=employee_actor(self.employee),
        )
        self.assertEqual(result.request.status, LeaveRequestStatus.CANCELLED)
        self.assertIsNotNone(result.request.cancelled_at)

    def test_reject_sets_note_and_timestamp(self) -> None:
        result = reject_leave_request(self.db, self.leave.id, actor=manager_for(self.manager), manager_note="Busy week")
        self.assertEqual(result.request.status, LeaveRequestStatus.REJECTED)
        self.assertEqual(result.request.manager_note, "Busy week")
        self.assertIsNotNone(result.request.rejected_at)
        self.assertEqual(self.db.get(LeaveBalance, self.balance.id).used_minutes, 0)

    def test_remove_rules(self) -> None:
        with self.assertRaises(ApiError) as ctx:
            remove_leave_request(self.db, self.leave.id, actor=employee_actor(self.outsider))
        self.assertEqual(ctx.exception.code, "FORBIDDEN")

        remove_leave_request(self.db, self.leave.id, actor=employee_actor(self.employee))
        self.assertIsNone(self.db.get(LeaveRequest, self.leave.id))

    def test_list_filters_by_status(self) -> None:
        rows = list_leave_requests(self.db, status=LeaveRequestStatus.PENDING)
        self.assertEqual([item.id for item in rows], [self.leave.id])


if __name__ == "__main__":
    unittest.main()
