from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import date, datetime
from typing import Callable

from sqlalchemy import select
from sqlalchemy.orm import Session

from shiftplan.errors import ApiError, forbidden, not_found
from shiftplan.models import AvailabilityBlock, AvailabilityType, Employee
from shiftplan.schemas import AvailabilityBlockCreate
from shiftplan.security import Actor
from shiftplan.services.time_utils import (
    MINUTES_PER_DAY,
    hhmm_to_minutes,
    intervals_overlap,
    local_date,
    minute_of_day,
    weekday_index,
)

_WEEKDAY_NAMES = ("Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday")


class FindingSeverity(str, enum.Enum):
    BLOCKING = "BLOCKING"
    ADVISORY = "ADVISORY"
    BOUNDARY = "BOUNDARY"


@dataclass(frozen=True, slots=True)
class DayWindow:
    """The part of a shift that falls on one local calendar day."""

    label: str
    on_date: date
    start_minute: int
    end_minute: int

    @property
    def day_of_week(self) -> int:
        return weekday_index(self.on_date)

    @property
    def display_name(self) -> str:
        return f"{self.label} ({_WEEKDAY_NAMES[self.day_of_week]} {self.on_date.isoformat()})"


@dataclass(frozen=True, slots=True)
class AvailabilityFinding:
    block_id: int | None
    block_type: AvailabilityType
    severity: FindingSeverity
    window: DayWindow
    note: str | None = None


def split_into_day_windows(start: datetime, end: datetime, offset_minutes: int) -> list[DayWindow]:
    start_date = local_date(start, offset_minutes)
    end_date = local_date(end, offset_minutes)
    start_minute = minute_of_day(start, offset_minutes)
    end_minute = minute_of_day(end, offset_minutes)

    if end_date == start_date:
        return [DayWindow("day 1", start_date, start_minute, end_minute)]

    windows = [DayWindow("day 1", start_date, start_minute, MINUTES_PER_DAY)]
    # A shift ending exactly at local midnight never touches the next day.
    if end_minute > 0:
        windows.append(DayWindow("day 2", end_date, 0, end_minute))
    return windows


def block_minute_range(block: AvailabilityBlock) -> tuple[int, int]:
    if not block.start_time or not block.end_time:
        return 0, MINUTES_PER_DAY
    return hhmm_to_minutes(block.start_time), hhmm_to_minutes(block.end_time)


def block_applies_on(block: AvailabilityBlock, on_date: date) -> bool:
    if block.start_date is not None and on_date < block.start_date:
        return False
    if block.end_date is not None and on_date > block.end_date:
        return False
    return True


def _evaluate_unavailable(block: AvailabilityBlock, window: DayWindow) -> FindingSeverity | None:
    return FindingSeverity.BLOCKING


def _evaluate_prefer_not(block: AvailabilityBlock, window: DayWindow) -> FindingSeverity | None:
    return FindingSeverity.ADVISORY


def _evaluate_available_only(block: AvailabilityBlock, window: DayWindow) -> FindingSeverity | None:
    block_start, block_end = block_minute_range(block)
    if window.start_minute >= block_start and window.end_minute <= block_end:
        return None
    return FindingSeverity.BOUNDARY


_EVALUATORS: dict[AvailabilityType, Callable[[AvailabilityBlock, DayWindow], FindingSeverity | None]] = {
    AvailabilityType.UNAVAILABLE: _evaluate_unavailable,
    AvailabilityType.PREFER_NOT: _evaluate_prefer_not,
    AvailabilityType.AVAILABLE_ONLY: _evaluate_available_only,
}


def evaluate_block(block: AvailabilityBlock, window: DayWindow) -> AvailabilityFinding | None:
    if block.day_of_week != window.day_of_week:
        return None
    if not block_applies_on(block, window.on_date):
        return None

    block_start, block_end = block_minute_range(block)
    if not intervals_overlap(window.start_minute, window.end_minute, block_start, block_end):
        return None

    severity = _EVALUATORS[block.type](block, window)
    if severity is None:
        return None
    return AvailabilityFinding(
        block_id=block.id,
        block_type=block.type,
        severity=severity,
        window=window,
        note=block.note,
    )


def match_blocks(blocks: list[AvailabilityBlock], window: DayWindow) -> list[AvailabilityFinding]:
    findings: list[AvailabilityFinding] = []
    for block in blocks:
        finding = evaluate_block(block, window)
        if finding is not None:
            findings.append(finding)
    return findings


def list_blocks_for_day(db: Session, *, employee_id: int, day_of_week: int) -> list[AvailabilityBlock]:
    return list(
        db.scalars(
            select(AvailabilityBlock)
            .where(
                AvailabilityBlock.employee_id == employee_id,
                AvailabilityBlock.day_of_week == day_of_week,
            )
            .order_by(AvailabilityBlock.id.asc())
        ).all()
    )


def find_availability_conflicts(
    db: Session,
    *,
    employee_id: int,
    start: datetime,
    end: datetime,
    offset_minutes: int,
) -> list[AvailabilityFinding]:
    findings: list[AvailabilityFinding] = []
    for window in split_into_day_windows(start, end, offset_minutes):
        blocks = list_blocks_for_day(db, employee_id=employee_id, day_of_week=window.day_of_week)
        findings.extend(match_blocks(blocks, window))
    return findings


def resolve_findings(findings: list[AvailabilityFinding], *, force_override: bool) -> list[str]:
    """Turn findings into warnings, or raise when one blocks and no override was given."""
    warnings: list[str] = []
    for finding in findings:
        where = finding.window.display_name
        if finding.severity == FindingSeverity.BLOCKING:
            if not force_override:
                raise ApiError(
                    status_code=422,
                    code="UNAVAILABLE_CONFLICT",
                    message=f"Shift conflicts with an UNAVAILABLE block on {where}",
                    details={"block_id": finding.block_id, "day": finding.window.label},
                )
            warnings.append(f"UNAVAILABLE block overridden on {where}")
        elif finding.severity == FindingSeverity.BOUNDARY:
            if not force_override:
                raise ApiError(
                    status_code=422,
                    code="AVAILABLE_ONLY_CONFLICT",
                    message=f"Shift must stay within the AVAILABLE_ONLY interval on {where}",
                    details={"block_id": finding.block_id, "day": finding.window.label},
                )
            warnings.append(f"AVAILABLE_ONLY rule overridden on {where}")
        else:
            warnings.append(f"Employee prefers not to work on {where}")
    return warnings


def create_availability_block(db: Session, payload: AvailabilityBlockCreate, *, actor: Actor) -> AvailabilityBlock:
    if actor.is_employee and actor.employee_id != payload.employee_id:
        raise forbidden("You can only manage your own availability")

    if db.get(Employee, payload.employee_id) is None:
        raise not_found("EMPLOYEE_NOT_FOUND", "Employee not found")

    if (payload.start_time is None) != (payload.end_time is None):
        raise ApiError(
            status_code=400,
            code="INVALID_TIME_RANGE",
            message="start_time and end_time must be provided together",
        )
    if payload.start_time and payload.end_time and hhmm_to_minutes(payload.start_time) >= hhmm_to_minutes(payload.end_time):
        raise ApiError(status_code=400, code="INVALID_TIME_RANGE", message="start_time must be before end_time")
    if payload.start_date and payload.end_date and payload.start_date > payload.end_date:
        raise ApiError(status_code=400, code="INVALID_DATE_RANGE", message="start_date must not be after end_date")

    block = AvailabilityBlock(
        employee_id=payload.employee_id,
        type=payload.type,
        day_of_week=payload.day_of_week,
        start_time=payload.start_time,
        end_time=payload.end_time,
        start_date=payload.start_date,
        end_date=payload.end_date,
        note=payload.note,
    )
    db.add(block)
    db.commit()
    db.refresh(block)
    return block


def list_availability_blocks(
    db: Session,
    *,
    employee_id: int | None = None,
    day_of_week: int | None = None,
) -> list[AvailabilityBlock]:
    stmt = select(AvailabilityBlock).order_by(
        AvailabilityBlock.day_of_week.asc(),
        AvailabilityBlock.start_time.asc(),
        AvailabilityBlock.id.asc(),
    )
    if employee_id is not None:
        stmt = stmt.where(AvailabilityBlock.employee_id == employee_id)
    if day_of_week is not None:
        stmt = stmt.where(AvailabilityBlock.day_of_week == day_of_week)
    return list(db.scalars(stmt).all())


def delete_availability_block(db: Session, block_id: int, *, actor: Actor) -> None:
    block = db.get(AvailabilityBlock, block_id)
    if block is None:
        raise not_found("AVAILABILITY_NOT_FOUND", "Availability not found")
    if actor.is_employee and actor.employee_id != block.employee_id:
        raise forbidden("You can only delete your own availability")
    db.delete(block)
    db.commit()
