from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone

from sqlalchemy import select
from sqlalchemy.orm import Session

from shiftplan.audit import record_audit
from shiftplan.db import atomic
from shiftplan.errors import ApiError, forbidden, invalid_status, not_found
from shiftplan.models import (
    ACTIVE_SHIFT_STATUSES,
    BLOCKING_LEAVE_STATUSES,
    Employee,
    LeaveRequest,
    LeaveRequestStatus,
    LeaveUnit,
    Shift,
    ShiftStatus,
)
from shiftplan.schemas import LeaveRequestCreate, LeaveRequestStatusUpdate
from shiftplan.scope import ALL_EMPLOYEES, EmployeeScope, restrict_to_scope
from shiftplan.security import Actor
from shiftplan.services.leave_balances import (
    consume_balance,
    find_balance,
    insufficient_balance_error,
    remaining_minutes,
)
from shiftplan.services.leave_types import get_leave_type
from shiftplan.services.shifts import lock_employee, record_shift_event
from shiftplan.services.time_utils import (
    duration_minutes,
    local_datetime_to_instant,
    local_midnight,
)
from shiftplan.settings import get_schedule_offset_minutes, get_settings

logger = logging.getLogger("shiftplan.leaves")


@dataclass(frozen=True, slots=True)
class LeaveWindow:
    start_at: datetime
    end_at: datetime


@dataclass(slots=True)
class LeaveStatusResult:
    request: LeaveRequest
    cancelled_shift_ids: list[int] = field(default_factory=list)


def _resolve_offset(offset_minutes: int | None) -> int:
    return get_schedule_offset_minutes() if offset_minutes is None else offset_minutes


def leave_minutes(unit: LeaveUnit, *, start_date: date, end_date: date, start_at: datetime, end_at: datetime) -> int:
    """Minutes charged to the ledger; whole days cost one working day each."""
    if unit == LeaveUnit.DAY:
        return ((end_date - start_date).days + 1) * get_settings().leave_day_minutes
    return duration_minutes(start_at, end_at)


def resolve_leave_window(payload: LeaveRequestCreate, *, offset_minutes: int) -> LeaveWindow:
    """Turn the local dates/times of a request into absolute instants."""
    if payload.start_date > payload.end_date:
        raise ApiError(
            status_code=400,
            code="INVALID_DATE_RANGE",
            message="start_date cannot be after end_date",
        )

    if payload.unit == LeaveUnit.DAY:
        start_at = local_midnight(payload.start_date, offset_minutes)
        end_at = local_midnight(payload.end_date + timedelta(days=1), offset_minutes)
        return LeaveWindow(start_at=start_at, end_at=end_at)

    if payload.start_date != payload.end_date:
        raise ApiError(
            status_code=400,
            code="INVALID_DATE_RANGE",
            message=f"{payload.unit.value} leave must start and end on the same date",
        )

    if payload.unit == LeaveUnit.HALF_DAY:
        settings = get_settings()
        start_time = payload.start_time or settings.half_day_start_local
        end_time = payload.end_time or settings.half_day_end_local
    else:
        if not payload.start_time or not payload.end_time:
            raise ApiError(
                status_code=400,
                code="INVALID_TIME_RANGE",
                message="HOUR leave requires start_time and end_time",
            )
        start_time = payload.start_time
        end_time = payload.end_time

    start_at = local_datetime_to_instant(payload.start_date, start_time, offset_minutes)
    end_at = local_datetime_to_instant(payload.end_date, end_time, offset_minutes)
    if start_at >= end_at:
        raise ApiError(status_code=400, code="INVALID_TIME_RANGE", message="start_time must be before end_time")
    return LeaveWindow(start_at=start_at, end_at=end_at)


def find_overlapping_request(
    db: Session,
    *,
    employee_id: int,
    start_at: datetime,
    end_at: datetime,
    exclude_request_id: int | None = None,
) -> LeaveRequest | None:
    stmt = select(LeaveRequest).where(
        LeaveRequest.employee_id == employee_id,
        LeaveRequest.status.in_(BLOCKING_LEAVE_STATUSES),
        LeaveRequest.start_at < end_at,
        LeaveRequest.end_at > start_at,
    )
    if exclude_request_id is not None:
        stmt = stmt.where(LeaveRequest.id != exclude_request_id)
    return db.scalar(stmt.limit(1))


def _overlap_error(existing: LeaveRequest) -> ApiError:
    return ApiError(
        status_code=409,
        code="LEAVE_OVERLAP",
        message="Leave request overlaps an existing pending or approved request",
        details={"conflicting_request_id": existing.id},
    )


def _ensure_manager_department(db: Session, actor: Actor, employee: Employee) -> None:
    manager = db.get(Employee, actor.employee_id) if actor.employee_id is not None else None
    if manager is None or not manager.department or manager.department != employee.department:
        raise forbidden("You can only manage leaves in your department")


def _resolve_requesting_employee_id(payload: LeaveRequestCreate, actor: Actor) -> int:
    if actor.is_employee or payload.employee_id is None:
        if actor.employee_id is None:
            raise ApiError(
                status_code=400,
                code="BAD_REQUEST",
                message="User is not linked to an employee profile",
            )
        if payload.employee_id is not None and payload.employee_id != actor.employee_id:
            raise forbidden("You can only request leave for yourself")
        return actor.employee_id
    return payload.employee_id


def create_leave_request(
    db: Session,
    payload: LeaveRequestCreate,
    *,
    actor: Actor,
    scope: EmployeeScope = ALL_EMPLOYEES,
    offset_minutes: int | None = None,
) -> LeaveRequest:
    offset = _resolve_offset(offset_minutes)
    employee_id = _resolve_requesting_employee_id(payload, actor)
    leave_type = get_leave_type(db, payload.leave_code)
    window = resolve_leave_window(payload, offset_minutes=offset)
    required = leave_minutes(
        payload.unit,
        start_date=payload.start_date,
        end_date=payload.end_date,
        start_at=window.start_at,
        end_at=window.end_at,
    )
    year = payload.start_date.year

    with atomic(db):
        employee = lock_employee(db, employee_id)
        if not scope.allows(employee):
            raise forbidden("You can only request leave for employees in your scope")

        if leave_type.is_paid:
            balance = find_balance(db, employee_id=employee_id, leave_code=leave_type.code, year=year)
            remaining = remaining_minutes(balance) if balance is not None else 0
            if remaining < required:
                raise insufficient_balance_error(remaining=remaining, required=required)

        existing = find_overlapping_request(
            db,
            employee_id=employee_id,
            start_at=window.start_at,
            end_at=window.end_at,
        )
        if existing is not None:
            raise _overlap_error(existing)

        leave = LeaveRequest(
            employee_id=employee_id,
            leave_code=leave_type.code,
            unit=payload.unit,
            start_date=payload.start_date,
            end_date=payload.end_date,
            start_at=window.start_at,
            end_at=window.end_at,
            status=LeaveRequestStatus.PENDING,
            reason=payload.reason,
        )
        db.add(leave)
        db.flush()
        record_audit(
            db,
            actor=actor,
            action="LEAVE_REQUEST_CREATED",
            entity_type="leave_request",
            entity_id=str(leave.id),
            details={"employee_id": employee_id, "leave_code": leave_type.code, "leave_minutes": required},
        )

    db.refresh(leave)
    return leave


def list_leave_requests(
    db: Session,
    *,
    scope: EmployeeScope = ALL_EMPLOYEES,
    status: LeaveRequestStatus | None = None,
    employee_id: int | None = None,
) -> list[LeaveRequest]:
    stmt = restrict_to_scope(select(LeaveRequest), scope, LeaveRequest.employee_id)
    if status is not None:
        stmt = stmt.where(LeaveRequest.status == status)
    if employee_id is not None:
        stmt = stmt.where(LeaveRequest.employee_id == employee_id)
    return list(db.scalars(stmt.order_by(LeaveRequest.created_at.desc(), LeaveRequest.id.desc())).all())


def _load_for_update(db: Session, request_id: int) -> LeaveRequest:
    leave = db.scalar(select(LeaveRequest).where(LeaveRequest.id == request_id).with_for_update())
    if leave is None:
        raise not_found("NOT_FOUND", "Leave request not found")
    return leave


def cancel_shifts_for_leave(db: Session, leave: LeaveRequest, *, actor: Actor) -> list[int]:
    """Cancel every active shift of the employee that overlaps the leave interval."""
    shifts = db.scalars(
        select(Shift)
        .where(
            Shift.employee_id == leave.employee_id,
            Shift.is_active.is_(True),
            Shift.status.in_(ACTIVE_SHIFT_STATUSES),
            Shift.start_time < leave.end_at,
            Shift.end_time > leave.start_at,
        )
        .order_by(Shift.start_time.asc())
        .with_for_update()
    ).all()

    cancelled_ids: list[int] = []
    for shift in shifts:
        previous_status = shift.status
        shift.status = ShiftStatus.CANCELLED
        shift.is_active = False
        shift.cancelled_by_leave_request_id = leave.id
        record_shift_event(
            db,
            shift,
            event_type="LEAVE_CANCELLED",
            actor=actor,
            from_status=previous_status,
            to_status=ShiftStatus.CANCELLED,
            details={"leave_request_id": leave.id, "leave_code": leave.leave_code},
        )
        cancelled_ids.append(shift.id)
    return cancelled_ids


def approve_leave_request(
    db: Session,
    request_id: int,
    *,
    actor: Actor,
    manager_note: str | None = None,
) -> LeaveStatusResult:
    """Approve, debit the ledger and cancel overlapping shifts as one unit of work."""
    if actor.is_employee:
        raise forbidden("Employees cannot approve leave requests")

    with atomic(db):
        leave = _load_for_update(db, request_id)
        if leave.status != LeaveRequestStatus.PENDING:
            raise invalid_status("Only PENDING leave requests can be approved")

        employee = leave.employee
        if actor.is_manager:
            _ensure_manager_department(db, actor, employee)

        required = leave_minutes(
            leave.unit,
            start_date=leave.start_date,
            end_date=leave.end_date,
            start_at=leave.start_at,
            end_at=leave.end_at,
        )
        year = leave.start_date.year
        debited = 0
        if leave.leave_type.is_paid:
            balance = find_balance(
                db,
                employee_id=leave.employee_id,
                leave_code=leave.leave_code,
                year=year,
                for_update=True,
            )
            consume_balance(balance, required)
            debited = required

        leave.status = LeaveRequestStatus.APPROVED
        leave.manager_note = manager_note
        leave.approved_at = datetime.now(timezone.utc)
        leave.approved_by = actor.user_id

        cancelled_shift_ids = cancel_shifts_for_leave(db, leave, actor=actor)

        record_audit(
            db,
            actor=actor,
            action="LEAVE_REQUEST_APPROVED",
            entity_type="leave_request",
            entity_id=str(leave.id),
            details={
                "employee_id": leave.employee_id,
                "leave_code": leave.leave_code,
                "leave_minutes": required,
                "debited_minutes": debited,
                "year": year,
                "cancelled_shift_count": len(cancelled_shift_ids),
                "cancelled_shift_ids": cancelled_shift_ids,
            },
        )

    logger.info(
        "leave_request_approved",
        extra={
            "leave_request_id": leave.id,
            "employee_id": leave.employee_id,
            "actor_id": actor.user_id,
            "cancelled_shift_count": len(cancelled_shift_ids),
        },
    )
    return LeaveStatusResult(request=leave, cancelled_shift_ids=cancelled_shift_ids)


def reject_leave_request(
    db: Session,
    request_id: int,
    *,
    actor: Actor,
    manager_note: str | None = None,
) -> LeaveStatusResult:
    if actor.is_employee:
        raise forbidden("Employees cannot reject leave requests")

    with atomic(db):
        leave = _load_for_update(db, request_id)
        if leave.status != LeaveRequestStatus.PENDING:
            raise invalid_status("Only PENDING leave requests can be rejected")
        if actor.is_manager:
            _ensure_manager_department(db, actor, leave.employee)

        leave.status = LeaveRequestStatus.REJECTED
        leave.manager_note = manager_note
        leave.rejected_at = datetime.now(timezone.utc)
        record_audit(
            db,
            actor=actor,
            action="LEAVE_REQUEST_REJECTED",
            entity_type="leave_request",
            entity_id=str(leave.id),
            details={"employee_id": leave.employee_id},
        )
    return LeaveStatusResult(request=leave)


def _cancel_own_request(db: Session, request_id: int, *, actor: Actor) -> LeaveStatusResult:
    with atomic(db):
        leave = _load_for_update(db, request_id)
        if leave.employee_id != actor.employee_id or leave.status != LeaveRequestStatus.PENDING:
            raise forbidden("Employees can only cancel their own pending requests")
        leave.status = LeaveRequestStatus.CANCELLED
        leave.cancelled_at = datetime.now(timezone.utc)
        record_audit(
            db,
            actor=actor,
            action="LEAVE_REQUEST_CANCELLED",
            entity_type="leave_request",
            entity_id=str(leave.id),
        )
    return LeaveStatusResult(request=leave)


def update_leave_status(
    db: Session,
    request_id: int,
    payload: LeaveRequestStatusUpdate,
    *,
    actor: Actor,
) -> LeaveStatusResult:
    leave = db.get(LeaveRequest, request_id)
    if leave is None:
        raise not_found("NOT_FOUND", "Leave request not found")

    if actor.is_employee:
        if payload.status != LeaveRequestStatus.CANCELLED:
            raise forbidden("Employees can only cancel their own pending requests")
        return _cancel_own_request(db, request_id, actor=actor)

    if actor.is_manager:
        _ensure_manager_department(db, actor, leave.employee)

    if payload.status == LeaveRequestStatus.APPROVED:
        return approve_leave_request(
            db,
            request_id,
            actor=actor,
            manager_note=payload.manager_note,
        )
    if payload.status == LeaveRequestStatus.REJECTED:
        return reject_leave_request(db, request_id, actor=actor, manager_note=payload.manager_note)

    with atomic(db):
        leave = _load_for_update(db, request_id)
        if leave.status == LeaveRequestStatus.APPROVED:
            raise invalid_status("Approved leave requests cannot change status")
        if payload.status in BLOCKING_LEAVE_STATUSES:
            existing = find_overlapping_request(
                db,
                employee_id=leave.employee_id,
                start_at=leave.start_at,
                end_at=leave.end_at,
                exclude_request_id=leave.id,
            )
            if existing is not None:
                raise _overlap_error(existing)

        previous_status = leave.status
        leave.status = payload.status
        if payload.manager_note is not None:
            leave.manager_note = payload.manager_note
        if payload.status == LeaveRequestStatus.CANCELLED:
            leave.cancelled_at = datetime.now(timezone.utc)
        record_audit(
            db,
            actor=actor,
            action="LEAVE_REQUEST_STATUS_UPDATED",
            entity_type="leave_request",
            entity_id=str(leave.id),
            details={"from_status": previous_status.value, "to_status": payload.status.value},
        )
    return LeaveStatusResult(request=leave)


def remove_leave_request(db: Session, request_id: int, *, actor: Actor) -> None:
    with atomic(db):
        leave = _load_for_update(db, request_id)
        if not actor.is_admin:
            if leave.employee_id != actor.employee_id or leave.status != LeaveRequestStatus.PENDING:
                raise forbidden("Only admins can delete non-pending or other employees' leave requests")
        record_audit(
            db,
            actor=actor,
            action="LEAVE_REQUEST_DELETED",
            entity_type="leave_request",
            entity_id=str(leave.id),
            details={"employee_id": leave.employee_id, "status": leave.status.value},
        )
        db.delete(leave)
