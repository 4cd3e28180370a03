from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from shiftplan.db import atomic
from shiftplan.errors import ApiError, forbidden, invalid_status, not_found
from shiftplan.models import Employee, Shift, ShiftEvent, ShiftStatus
from shiftplan.schemas import ShiftCreate, ShiftUpdate
from shiftplan.scope import ALL_EMPLOYEES, EmployeeScope, ensure_employee_in_scope, restrict_to_scope
from shiftplan.security import Actor
from shiftplan.services.availability import find_availability_conflicts, resolve_findings
from shiftplan.services.time_utils import normalize_instant, week_window
from shiftplan.settings import get_schedule_offset_minutes

logger = logging.getLogger("shiftplan.shifts")


@dataclass(slots=True)
class ShiftResult:
    shift: Shift
    warnings: list[str] = field(default_factory=list)


@dataclass(slots=True)
class BulkCreateResult:
    created: list[ShiftResult] = field(default_factory=list)
    failed: list[dict[str, Any]] = field(default_factory=list)


@dataclass(slots=True)
class CopyWeekResult:
    created: list[Shift] = field(default_factory=list)
    errors: list[dict[str, Any]] = field(default_factory=list)

    @property
    def skipped(self) -> int:
        return len(self.errors)


def _resolve_offset(offset_minutes: int | None) -> int:
    return get_schedule_offset_minutes() if offset_minutes is None else offset_minutes


def _overlap_error(conflicting: Shift) -> ApiError:
    return ApiError(
        status_code=409,
        code="SHIFT_OVERLAP",
        message="Shift overlaps another shift",
        details={"conflicting_shift_id": conflicting.id},
    )


def lock_employee(db: Session, employee_id: int) -> Employee:
    """Load the employee row FOR UPDATE so writes for one employee serialize."""
    employee = db.scalar(select(Employee).where(Employee.id == employee_id).with_for_update())
    if employee is None:
        raise not_found("EMPLOYEE_NOT_FOUND", "Employee not found")
    return employee


def find_overlapping_shift(
    db: Session,
    *,
    employee_id: int,
    start: datetime,
    end: datetime,
    exclude_shift_id: int | None = None,
) -> Shift | None:
    stmt = select(Shift).where(
        Shift.employee_id == employee_id,
        Shift.status != ShiftStatus.CANCELLED,
        Shift.start_time < end,
        Shift.end_time > start,
    )
    if exclude_shift_id is not None:
        stmt = stmt.where(Shift.id != exclude_shift_id)
    return db.scalar(stmt.order_by(Shift.start_time.asc()).limit(1))


def validate_shift_slot(
    db: Session,
    *,
    employee_id: int,
    start: datetime,
    end: datetime,
    force_override: bool,
    offset_minutes: int,
    exclude_shift_id: int | None = None,
) -> list[str]:
    if start >= end:
        raise ApiError(status_code=400, code="INVALID_TIME_RANGE", message="start_time must be before end_time")

    conflicting = find_overlapping_shift(
        db,
        employee_id=employee_id,
        start=start,
        end=end,
        exclude_shift_id=exclude_shift_id,
    )
    if conflicting is not None:
        raise _overlap_error(conflicting)

    findings = find_availability_conflicts(
        db,
        employee_id=employee_id,
        start=start,
        end=end,
        offset_minutes=offset_minutes,
    )
    return resolve_findings(findings, force_override=force_override)


def record_shift_event(
    db: Session,
    shift: Shift,
    *,
    event_type: str,
    actor: Actor,
    from_status: ShiftStatus | None = None,
    to_status: ShiftStatus | None = None,
    details: dict[str, Any] | None = None,
) -> ShiftEvent:
    event = ShiftEvent(
        shift_id=shift.id,
        event_type=event_type,
        from_status=from_status,
        to_status=to_status,
        actor_id=actor.user_id,
        details=details or {},
    )
    db.add(event)
    return event


def create_shift(
    db: Session,
    payload: ShiftCreate,
    *,
    actor: Actor,
    scope: EmployeeScope = ALL_EMPLOYEES,
    offset_minutes: int | None = None,
) -> ShiftResult:
    offset = _resolve_offset(offset_minutes)
    start = normalize_instant(payload.start_time, offset)
    end = normalize_instant(payload.end_time, offset)
    if start >= end:
        raise ApiError(status_code=400, code="INVALID_TIME_RANGE", message="start_time must be before end_time")

    try:
        with atomic(db):
            employee = lock_employee(db, payload.employee_id)
            ensure_employee_in_scope(scope, employee, message="You can only schedule employees in your scope")
            warnings = validate_shift_slot(
                db,
                employee_id=employee.id,
                start=start,
                end=end,
                force_override=payload.force_override,
                offset_minutes=offset,
            )
            shift = Shift(
                employee_id=employee.id,
                start_time=start,
                end_time=end,
                note=payload.note,
                status=ShiftStatus.PUBLISHED,
                is_active=True,
            )
            db.add(shift)
            db.flush()
            record_shift_event(
                db,
                shift,
                event_type="CREATED",
                actor=actor,
                to_status=ShiftStatus.PUBLISHED,
                details={"warnings": warnings, "force_override": payload.force_override},
            )
    except IntegrityError as exc:
        raise ApiError(status_code=409, code="SHIFT_OVERLAP", message="Shift overlaps another shift") from exc

    db.refresh(shift)
    return ShiftResult(shift=shift, warnings=warnings)


def get_shift(db: Session, shift_id: int, *, scope: EmployeeScope = ALL_EMPLOYEES) -> Shift:
    shift = db.get(Shift, shift_id)
    # Out-of-scope shifts are reported as missing so their existence is not disclosed.
    if shift is None or not scope.allows(shift.employee):
        raise not_found("SHIFT_NOT_FOUND", "Shift not found")
    return shift


def _get_shift_for_update(db: Session, shift_id: int, scope: EmployeeScope) -> Shift:
    shift = db.scalar(select(Shift).where(Shift.id == shift_id).with_for_update())
    if shift is None or not scope.allows(shift.employee):
        raise not_found("SHIFT_NOT_FOUND", "Shift not found")
    return shift


def list_shifts(
    db: Session,
    *,
    scope: EmployeeScope = ALL_EMPLOYEES,
    employee_id: int | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    status: ShiftStatus | None = None,
    offset_minutes: int | None = None,
) -> list[Shift]:
    if scope.type == "self" and employee_id is not None and employee_id != scope.employee_id:
        raise forbidden("You can only access your own shifts")

    stmt = restrict_to_scope(select(Shift), scope, Shift.employee_id)
    if employee_id is not None:
        stmt = stmt.where(Shift.employee_id == employee_id)
    if status is not None:
        stmt = stmt.where(Shift.status == status)
    offset = _resolve_offset(offset_minutes)
    if start is not None:
        stmt = stmt.where(Shift.start_time >= normalize_instant(start, offset))
    if end is not None:
        stmt = stmt.where(Shift.start_time <= normalize_instant(end, offset))
    return list(db.scalars(stmt.order_by(Shift.start_time.asc(), Shift.id.asc())).all())


def update_shift(
    db: Session,
    shift_id: int,
    payload: ShiftUpdate,
    *,
    actor: Actor,
    scope: EmployeeScope = ALL_EMPLOYEES,
    offset_minutes: int | None = None,
) -> ShiftResult:
    offset = _resolve_offset(offset_minutes)

    try:
        with atomic(db):
            shift = _get_shift_for_update(db, shift_id, scope)
            if shift.status == ShiftStatus.CANCELLED:
                raise invalid_status("Cancelled shifts cannot be updated")

            employee_id = payload.employee_id or shift.employee_id
            start = normalize_instant(payload.start_time, offset) if payload.start_time else shift.start_time
            end = normalize_instant(payload.end_time, offset) if payload.end_time else shift.end_time

            employee = lock_employee(db, employee_id)
            ensure_employee_in_scope(scope, employee, message="You can only schedule employees in your scope")
            warnings = validate_shift_slot(
                db,
                employee_id=employee_id,
                start=start,
                end=end,
                force_override=payload.force_override,
                offset_minutes=offset,
                exclude_shift_id=shift.id,
            )

            previous = {
                "employee_id": shift.employee_id,
                "start_time": shift.start_time.isoformat(),
                "end_time": shift.end_time.isoformat(),
            }
            shift.employee_id = employee_id
            shift.start_time = start
            shift.end_time = end
            if "note" in payload.model_fields_set:
                shift.note = payload.note
            record_shift_event(
                db,
                shift,
                event_type="UPDATED",
                actor=actor,
                from_status=shift.status,
                to_status=shift.status,
                details={"previous": previous, "warnings": warnings},
            )
    except IntegrityError as exc:
        raise ApiError(status_code=409, code="SHIFT_OVERLAP", message="Shift overlaps another shift") from exc

    db.refresh(shift)
    return ShiftResult(shift=shift, warnings=warnings)


def cancel_shift(
    db: Session,
    shift_id: int,
    *,
    actor: Actor,
    scope: EmployeeScope = ALL_EMPLOYEES,
) -> Shift:
    with atomic(db):
        shift = _get_shift_for_update(db, shift_id, scope)
        previous_status = shift.status
        shift.status = ShiftStatus.CANCELLED
        record_shift_event(
            db,
            shift,
            event_type="CANCELLED",
            actor=actor,
            from_status=previous_status,
            to_status=ShiftStatus.CANCELLED,
        )
    return shift


def acknowledge_shift(
    db: Session,
    shift_id: int,
    *,
    actor: Actor,
    scope: EmployeeScope = ALL_EMPLOYEES,
) -> Shift:
    with atomic(db):
        shift = _get_shift_for_update(db, shift_id, scope)
        if actor.is_employee and actor.employee_id != shift.employee_id:
            raise forbidden("You can only acknowledge your own shifts")
        if shift.status != ShiftStatus.PUBLISHED:
            raise invalid_status("Only PUBLISHED shifts can be acknowledged")
        shift.status = ShiftStatus.ACKNOWLEDGED
        record_shift_event(
            db,
            shift,
            event_type="ACKNOWLEDGED",
            actor=actor,
            from_status=ShiftStatus.PUBLISHED,
            to_status=ShiftStatus.ACKNOWLEDGED,
        )
    return shift


def bulk_create_shifts(
    db: Session,
    payloads: list[ShiftCreate],
    *,
    actor: Actor,
    scope: EmployeeScope = ALL_EMPLOYEES,
    offset_minutes: int | None = None,
) -> BulkCreateResult:
    result = BulkCreateResult()
    for index, payload in enumerate(payloads):
        try:
            created = create_shift(db, payload, actor=actor, scope=scope, offset_minutes=offset_minutes)
        except ApiError as exc:
            result.failed.append({"index": index, "code": exc.code, "reason": exc.message})
            continue
        except SQLAlchemyError:
            db.rollback()
            logger.exception("shift_bulk_create_item_failed", extra={"index": index})
            result.failed.append({"index": index, "code": "INTERNAL_ERROR", "reason": "Shift could not be saved"})
            continue
        result.created.append(created)

    logger.info(
        "shift_bulk_create_finished",
        extra={"actor_id": actor.user_id, "created": len(result.created), "failed": len(result.failed)},
    )
    return result


def _copied_status(status: ShiftStatus) -> ShiftStatus:
    # Acknowledgement belongs to the source week only.
    if status == ShiftStatus.ACKNOWLEDGED:
        return ShiftStatus.PUBLISHED
    return status


def copy_week(
    db: Session,
    *,
    source_week_start: date,
    target_week_start: date,
    actor: Actor,
    scope: EmployeeScope = ALL_EMPLOYEES,
    offset_minutes: int | None = None,
) -> CopyWeekResult:
    offset = _resolve_offset(offset_minutes)
    source_start, source_end = week_window(source_week_start, offset)
    target_start, _ = week_window(target_week_start, offset)
    delta = target_start - source_start

    stmt = select(Shift).where(
        Shift.start_time >= source_start,
        Shift.start_time < source_end,
        Shift.status != ShiftStatus.CANCELLED,
    )
    stmt = restrict_to_scope(stmt, scope, Shift.employee_id)
    source_shifts = list(db.scalars(stmt.order_by(Shift.start_time.asc(), Shift.id.asc())).all())

    result = CopyWeekResult()
    for source in source_shifts:
        target_start_time = source.start_time + delta
        target_end_time = source.end_time + delta
        try:
            with atomic(db):
                lock_employee(db, source.employee_id)
                conflicting = find_overlapping_shift(
                    db,
                    employee_id=source.employee_id,
                    start=target_start_time,
                    end=target_end_time,
                )
                if conflicting is not None:
                    raise _overlap_error(conflicting)
                copied = Shift(
                    employee_id=source.employee_id,
                    start_time=target_start_time,
                    end_time=target_end_time,
                    note=source.note,
                    status=_copied_status(source.status),
                    is_active=True,
                )
                db.add(copied)
                db.flush()
                record_shift_event(
                    db,
                    copied,
                    event_type="COPIED",
                    actor=actor,
                    to_status=copied.status,
                    details={"source_shift_id": source.id},
                )
        except ApiError as exc:
            reason = "Target overlap exists" if exc.code == "SHIFT_OVERLAP" else exc.message
            result.errors.append({"shift_id": source.id, "reason": reason})
            continue
        except IntegrityError:
            result.errors.append({"shift_id": source.id, "reason": "Target overlap exists"})
            continue
        result.created.append(copied)

    logger.info(
        "shift_copy_week_finished",
        extra={
            "actor_id": actor.user_id,
            "source_week_start": source_week_start.isoformat(),
            "target_week_start": target_week_start.isoformat(),
            "created": len(result.created),
            "skipped": result.skipped,
        },
    )
    return result
