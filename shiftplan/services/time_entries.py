from __future__ import annotations

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from shiftplan.db import atomic
from shiftplan.errors import ApiError, forbidden, not_found
from shiftplan.models import Shift, TimeEntry, TimeEntryStatus
from shiftplan.schemas import TimeEntryCheckIn, TimeEntryCheckOut
from shiftplan.scope import ALL_EMPLOYEES, EmployeeScope, ensure_employee_in_scope, restrict_to_scope
from shiftplan.security import Actor
from shiftplan.services.shifts import lock_employee
from shiftplan.services.time_utils import normalize_instant
from shiftplan.settings import get_schedule_offset_minutes


def _resolve_offset(offset_minutes: int | None) -> int:
    return get_schedule_offset_minutes() if offset_minutes is None else offset_minutes


def check_in(
    db: Session,
    payload: TimeEntryCheckIn,
    *,
    actor: Actor,
    scope: EmployeeScope = ALL_EMPLOYEES,
    offset_minutes: int | None = None,
) -> TimeEntry:
    if actor.is_employee:
        if actor.employee_id is None:
            raise forbidden("Employee scope is missing")
        if payload.employee_id is not None and payload.employee_id != actor.employee_id:
            raise forbidden("You can only check in for yourself")
        employee_id = actor.employee_id
    elif payload.employee_id is not None:
        employee_id = payload.employee_id
    elif actor.employee_id is not None:
        employee_id = actor.employee_id
    else:
        raise ApiError(status_code=400, code="BAD_REQUEST", message="employee_id is required")

    check_in_at = normalize_instant(payload.check_in_at, _resolve_offset(offset_minutes))

    with atomic(db):
        employee = lock_employee(db, employee_id)
        ensure_employee_in_scope(scope, employee, message="You can only record time for employees in your scope")

        if payload.shift_id is not None:
            shift = db.get(Shift, payload.shift_id)
            if shift is None or shift.employee_id != employee.id:
                raise not_found("SHIFT_NOT_FOUND", "Shift not found")

        open_entry = db.scalar(
            select(TimeEntry.id).where(
                TimeEntry.employee_id == employee.id,
                TimeEntry.status == TimeEntryStatus.OPEN,
            )
        )
        if open_entry is not None:
            raise ApiError(
                status_code=409,
                code="ALREADY_CHECKED_IN",
                message="Employee already has an open time entry",
                details={"time_entry_id": open_entry},
            )

        entry = TimeEntry(
            employee_id=employee.id,
            shift_id=payload.shift_id,
            check_in_at=check_in_at,
            status=TimeEntryStatus.OPEN,
            source=payload.source,
        )
        db.add(entry)

    db.refresh(entry)
    return entry


def check_out(
    db: Session,
    entry_id: int,
    payload: TimeEntryCheckOut,
    *,
    actor: Actor,
    scope: EmployeeScope = ALL_EMPLOYEES,
    offset_minutes: int | None = None,
) -> TimeEntry:
    check_out_at = normalize_instant(payload.check_out_at, _resolve_offset(offset_minutes))

    with atomic(db):
        entry = db.scalar(select(TimeEntry).where(TimeEntry.id == entry_id).with_for_update())
        if entry is None or not scope.allows(entry.employee):
            raise not_found("TIME_ENTRY_NOT_FOUND", "Time entry not found")
        if entry.status != TimeEntryStatus.OPEN:
            raise ApiError(status_code=400, code="ENTRY_NOT_OPEN", message="Time entry is already closed")
        if check_out_at <= entry.check_in_at:
            raise ApiError(status_code=400, code="INVALID_CHECKOUT", message="check_out_at must be after check_in_at")

        entry.check_out_at = check_out_at
        entry.status = TimeEntryStatus.CLOSED

    return entry


def list_time_entries(
    db: Session,
    *,
    scope: EmployeeScope = ALL_EMPLOYEES,
    employee_id: int | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    offset_minutes: int | None = None,
) -> list[TimeEntry]:
    stmt = restrict_to_scope(select(TimeEntry), scope, TimeEntry.employee_id)
    if employee_id is not None:
        stmt = stmt.where(TimeEntry.employee_id == employee_id)
    offset = _resolve_offset(offset_minutes)
    if start is not None:
        stmt = stmt.where(TimeEntry.check_in_at >= normalize_instant(start, offset))
    if end is not None:
        stmt = stmt.where(TimeEntry.check_in_at < normalize_instant(end, offset))
    return list(db.scalars(stmt.order_by(TimeEntry.check_in_at.desc(), TimeEntry.id.desc())).all())
