from __future__ import annotations

import logging
from collections import defaultdict
from datetime import date

from sqlalchemy import select
from sqlalchemy.orm import Session

from shiftplan.audit import record_audit
from shiftplan.db import atomic
from shiftplan.models import (
    Employee,
    OvertimeRecord,
    OvertimeStrategy,
    Shift,
    ShiftStatus,
    TimeEntry,
    TimeEntryStatus,
)
from shiftplan.schemas import OvertimeReport, OvertimeRow
from shiftplan.scope import ALL_EMPLOYEES, EmployeeScope, restrict_to_scope
from shiftplan.security import Actor
from shiftplan.services.overtime_calc import estimate_weekly_pay, split_weekly_minutes
from shiftplan.services.time_utils import duration_minutes, week_window
from shiftplan.settings import get_schedule_offset_minutes, get_settings

logger = logging.getLogger("shiftplan.overtime")


def _planned_minutes_by_employee(db: Session, employee_ids: list[int], start, end) -> dict[int, int]:  # type: ignore[no-untyped-def]
    totals: dict[int, int] = defaultdict(int)
    if not employee_ids:
        return totals
    shifts = db.scalars(
        select(Shift).where(
            Shift.employee_id.in_(employee_ids),
            Shift.start_time >= start,
            Shift.start_time < end,
            Shift.status != ShiftStatus.CANCELLED,
            Shift.is_active.is_(True),
        )
    ).all()
    for shift in shifts:
        totals[shift.employee_id] += duration_minutes(shift.start_time, shift.end_time)
    return totals


def _actual_minutes_by_employee(db: Session, employee_ids: list[int], start, end) -> dict[int, int]:  # type: ignore[no-untyped-def]
    totals: dict[int, int] = defaultdict(int)
    if not employee_ids:
        return totals
    entries = db.scalars(
        select(TimeEntry).where(
            TimeEntry.employee_id.in_(employee_ids),
            TimeEntry.check_in_at >= start,
            TimeEntry.check_in_at < end,
            TimeEntry.status == TimeEntryStatus.CLOSED,
        )
    ).all()
    for entry in entries:
        if entry.check_out_at is None:
            continue
        totals[entry.employee_id] += duration_minutes(entry.check_in_at, entry.check_out_at)
    return totals


def calculate_weekly_overtime(
    db: Session,
    *,
    week_start: date,
    strategy: OvertimeStrategy,
    employee_id: int | None = None,
    department: str | None = None,
    scope: EmployeeScope = ALL_EMPLOYEES,
    offset_minutes: int | None = None,
) -> OvertimeReport:
    settings = get_settings()
    offset = get_schedule_offset_minutes() if offset_minutes is None else offset_minutes
    start, end = week_window(week_start, offset)

    stmt = restrict_to_scope(select(Employee), scope, Employee.id)
    if employee_id is not None:
        stmt = stmt.where(Employee.id == employee_id)
    if department is not None:
        stmt = stmt.where(Employee.department == department)
    employees = list(db.scalars(stmt.order_by(Employee.id.asc())).all())
    employee_ids = [item.id for item in employees]

    if strategy == OvertimeStrategy.PLANNED:
        totals = _planned_minutes_by_employee(db, employee_ids, start, end)
    else:
        totals = _actual_minutes_by_employee(db, employee_ids, start, end)

    rows: list[OvertimeRow] = []
    for employee in employees:
        weekly_hours = employee.max_weekly_hours
        if weekly_hours is None:
            weekly_hours = settings.default_max_weekly_hours
        split = split_weekly_minutes(totals.get(employee.id, 0), weekly_hours * 60)
        rows.append(
            OvertimeRow(
                employee_id=employee.id,
                full_name=employee.full_name,
                week_start=week_start,
                strategy=strategy,
                total_minutes=split.total_minutes,
                regular_minutes=split.regular_minutes,
                overtime_minutes=split.overtime_minutes,
                overtime_multiplier=settings.overtime_multiplier,
                estimated_pay=estimate_weekly_pay(
                    regular_minutes=split.regular_minutes,
                    overtime_minutes=split.overtime_minutes,
                    hourly_rate=employee.hourly_rate,
                    multiplier=settings.overtime_multiplier,
                ),
            )
        )

    return OvertimeReport(week_start=week_start, strategy=strategy, rows=rows)


def recalculate_weekly_overtime(
    db: Session,
    *,
    week_start: date,
    strategy: OvertimeStrategy,
    actor: Actor,
    scope: EmployeeScope = ALL_EMPLOYEES,
    offset_minutes: int | None = None,
) -> list[OvertimeRow]:
    report = calculate_weekly_overtime(
        db,
        week_start=week_start,
        strategy=strategy,
        scope=scope,
        offset_minutes=offset_minutes,
    )

    with atomic(db):
        existing = {
            record.employee_id: record
            for record in db.scalars(
                select(OvertimeRecord)
                .where(
                    OvertimeRecord.week_start == week_start,
                    OvertimeRecord.strategy == strategy,
                )
                .with_for_update()
            ).all()
        }
        for row in report.rows:
            record = existing.get(row.employee_id)
            if record is None:
                record = OvertimeRecord(employee_id=row.employee_id, week_start=week_start, strategy=strategy)
                db.add(record)
            # Only the column belonging to this strategy is written.
            if strategy == OvertimeStrategy.PLANNED:
                record.planned_minutes = row.total_minutes
            else:
                record.actual_minutes = row.total_minutes
            record.regular_minutes = row.regular_minutes
            record.overtime_minutes = row.overtime_minutes
            record.overtime_multiplier = row.overtime_multiplier
            record.estimated_pay = row.estimated_pay

        record_audit(
            db,
            actor=actor,
            action="OVERTIME_RECALCULATED",
            entity_type="overtime_record",
            details={"week_start": week_start.isoformat(), "strategy": strategy.value, "count": len(report.rows)},
        )

    logger.info(
        "overtime_recalculated",
        extra={
            "week_start": week_start.isoformat(),
            "strategy": strategy.value,
            "count": len(report.rows),
            "actor_id": actor.user_id,
        },
    )
    return report.rows
