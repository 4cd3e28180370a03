from datetime import date, datetime

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from shiftplan.db import get_db
from shiftplan.models import OvertimeStrategy
from shiftplan.schemas import (
    OvertimeRecalculateRequest,
    OvertimeRecalculateResponse,
    OvertimeReport,
    TimeEntryCheckIn,
    TimeEntryCheckOut,
    TimeEntryRead,
)
from shiftplan.scope import resolve_employee_scope
from shiftplan.security import Actor, Role, get_current_actor, require_roles
from shiftplan.services.overtime import calculate_weekly_overtime, recalculate_weekly_overtime
from shiftplan.services.time_entries import check_in, check_out, list_time_entries
from shiftplan.settings import get_schedule_offset_minutes

router = APIRouter(tags=["time-tracking"])


@router.get("/api/time-entries", response_model=list[TimeEntryRead])
def list_time_entries_endpoint(
    employee_id: int | None = Query(default=None, ge=1),
    start: datetime | None = Query(default=None),
    end: datetime | None = Query(default=None),
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
) -> list[TimeEntryRead]:
    return list_time_entries(
        db,
        scope=resolve_employee_scope(db, actor),
        employee_id=employee_id,
        start=start,
        end=end,
        offset_minutes=get_schedule_offset_minutes(),
    )


@router.post("/api/time-entries", response_model=TimeEntryRead, status_code=status.HTTP_201_CREATED)
def check_in_endpoint(
    payload: TimeEntryCheckIn,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
) -> TimeEntryRead:
    return check_in(
        db,
        payload,
        actor=actor,
        scope=resolve_employee_scope(db, actor),
        offset_minutes=get_schedule_offset_minutes(),
    )


@router.post("/api/time-entries/{entry_id}/check-out", response_model=TimeEntryRead)
def check_out_endpoint(
    entry_id: int,
    payload: TimeEntryCheckOut,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
) -> TimeEntryRead:
    return check_out(
        db,
        entry_id,
        payload,
        actor=actor,
        scope=resolve_employee_scope(db, actor),
        offset_minutes=get_schedule_offset_minutes(),
    )


@router.get("/api/overtime", response_model=OvertimeReport)
def overtime_report_endpoint(
    week_start: date = Query(),
    strategy: OvertimeStrategy = Query(default=OvertimeStrategy.PLANNED),
    employee_id: int | None = Query(default=None, ge=1),
    department: str | None = Query(default=None, max_length=255),
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
) -> OvertimeReport:
    return calculate_weekly_overtime(
        db,
        week_start=week_start,
        strategy=strategy,
        employee_id=employee_id,
        department=department,
        scope=resolve_employee_scope(db, actor),
        offset_minutes=get_schedule_offset_minutes(),
    )


@router.post("/api/overtime/recalculate", response_model=OvertimeRecalculateResponse)
def recalculate_overtime_endpoint(
    payload: OvertimeRecalculateRequest,
    actor: Actor = Depends(require_roles(Role.ADMIN)),
    db: Session = Depends(get_db),
) -> OvertimeRecalculateResponse:
    rows = recalculate_weekly_overtime(
        db,
        week_start=payload.week_start,
        strategy=payload.strategy,
        actor=actor,
        offset_minutes=get_schedule_offset_minutes(),
    )
    return OvertimeRecalculateResponse(count=len(rows), rows=rows)
