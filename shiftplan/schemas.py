from datetime import date, datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from shiftplan.models import (
    AvailabilityType,
    LeaveRequestStatus,
    LeaveUnit,
    OvertimeStrategy,
    ShiftStatus,
    SwapRequestStatus,
    TimeEntrySource,
    TimeEntryStatus,
)

HHMM_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"


class ShiftCreate(BaseModel):
    employee_id: int = Field(ge=1)
    start_time: datetime
    end_time: datetime
    note: str | None = Field(default=None, max_length=1000)
    force_override: bool = False


class ShiftUpdate(BaseModel):
    employee_id: int | None = Field(default=None, ge=1)
    start_time: datetime | None = None
    end_time: datetime | None = None
    note: str | None = Field(default=None, max_length=1000)
    force_override: bool = False


class ShiftRead(BaseModel):
    id: int
    employee_id: int
    start_time: datetime
    end_time: datetime
    status: ShiftStatus
    is_active: bool
    note: str | None = None
    cancelled_by_leave_request_id: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class ShiftWithWarningsRead(ShiftRead):
    warnings: list[str] = Field(default_factory=list)


class BulkShiftCreateRequest(BaseModel):
    shifts: list[ShiftCreate] = Field(min_length=1, max_length=500)


class BulkShiftFailure(BaseModel):
    index: int
    code: str
    reason: str


class BulkShiftCreateResponse(BaseModel):
    created: int
    errors: int
    shifts: list[ShiftWithWarningsRead]
    failed: list[BulkShiftFailure]


class CopyWeekRequest(BaseModel):
    source_week_start: date
    target_week_start: date

    @model_validator(mode="after")
    def _distinct_weeks(self) -> "CopyWeekRequest":
        if self.source_week_start == self.target_week_start:
            raise ValueError("target_week_start must differ from source_week_start")
        return self


class CopyWeekError(BaseModel):
    shift_id: int
    reason: str


class CopyWeekResponse(BaseModel):
    created: int
    skipped: int
    errors: list[CopyWeekError]
    shifts: list[ShiftRead]


class AvailabilityBlockCreate(BaseModel):
    employee_id: int = Field(ge=1)
    type: AvailabilityType
    day_of_week: int = Field(ge=0, le=6)
    start_time: str | None = Field(default=None, pattern=HHMM_PATTERN)
    end_time: str | None = Field(default=None, pattern=HHMM_PATTERN)
    start_date: date | None = None
    end_date: date | None = None
    note: str | None = Field(default=None, max_length=1000)


class AvailabilityBlockRead(BaseModel):
    id: int
    employee_id: int
    type: AvailabilityType
    day_of_week: int
    start_time: str | None = None
    end_time: str | None = None
    start_date: date | None = None
    end_date: date | None = None
    note: str | None = None

    model_config = ConfigDict(from_attributes=True)


class LeaveTypeRead(BaseModel):
    code: str
    name: str
    is_paid: bool
    requires_document: bool
    annual_entitlement_days: int | None = None

    model_config = ConfigDict(from_attributes=True)


class LeaveTypeUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    annual_entitlement_days: int | None = Field(default=None, ge=0, le=60)
    requires_document: bool | None = None


class LeaveBalanceRead(BaseModel):
    id: int
    employee_id: int
    leave_code: str
    year: int
    accrued_minutes: int
    carry_minutes: int
    adjusted_minutes: int
    used_minutes: int
    remaining_minutes: int


class LeaveBalanceAdjustRequest(BaseModel):
    employee_id: int = Field(ge=1)
    leave_code: str = Field(min_length=1, max_length=64)
    year: int = Field(ge=2000)
    delta_minutes: int
    reason: str = Field(min_length=1, max_length=1000)


class LeaveRequestCreate(BaseModel):
    leave_code: str = Field(min_length=1, max_length=64)
    unit: LeaveUnit = LeaveUnit.DAY
    start_date: date
    end_date: date
    start_time: str | None = Field(default=None, pattern=HHMM_PATTERN)
    end_time: str | None = Field(default=None, pattern=HHMM_PATTERN)
    reason: str | None = Field(default=None, max_length=1000)
    employee_id: int | None = Field(default=None, ge=1)


class LeaveRequestStatusUpdate(BaseModel):
    status: LeaveRequestStatus
    manager_note: str | None = Field(default=None, max_length=1000)


class LeaveRequestRead(BaseModel):
    id: int
    employee_id: int
    leave_code: str
    unit: LeaveUnit
    start_date: date
    end_date: date
    start_at: datetime
    end_at: datetime
    status: LeaveRequestStatus
    reason: str | None = None
    manager_note: str | None = None
    approved_at: datetime | None = None
    approved_by: str | None = None
    rejected_at: datetime | None = None
    cancelled_at: datetime | None = None
    created_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class LeaveRequestStatusResponse(BaseModel):
    request: LeaveRequestRead
    cancelled_shift_ids: list[int] = Field(default_factory=list)


class SwapRequestCreate(BaseModel):
    shift_id: int = Field(ge=1)
    target_employee_id: int | None = Field(default=None, ge=1)


class SwapRequestApprove(BaseModel):
    target_employee_id: int | None = Field(default=None, ge=1)


class SwapRequestRead(BaseModel):
    id: int
    shift_id: int
    requester_id: int
    target_employee_id: int | None = None
    status: SwapRequestStatus
    new_shift_id: int | None = None
    resolved_at: datetime | None = None
    resolved_by: str | None = None
    created_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class SwapApprovalResponse(BaseModel):
    request: SwapRequestRead
    new_shift: ShiftRead


class TimeEntryCheckIn(BaseModel):
    employee_id: int | None = Field(default=None, ge=1)
    check_in_at: datetime
    shift_id: int | None = Field(default=None, ge=1)
    source: TimeEntrySource = TimeEntrySource.MANUAL


class TimeEntryCheckOut(BaseModel):
    check_out_at: datetime


class TimeEntryRead(BaseModel):
    id: int
    employee_id: int
    shift_id: int | None = None
    check_in_at: datetime
    check_out_at: datetime | None = None
    status: TimeEntryStatus
    source: TimeEntrySource

    model_config = ConfigDict(from_attributes=True)


class OvertimeRow(BaseModel):
    employee_id: int
    full_name: str
    week_start: date
    strategy: OvertimeStrategy
    total_minutes: int
    regular_minutes: int
    overtime_minutes: int
    overtime_multiplier: float
    estimated_pay: Decimal


class OvertimeReport(BaseModel):
    week_start: date
    strategy: OvertimeStrategy
    rows: list[OvertimeRow]


class OvertimeRecalculateRequest(BaseModel):
    week_start: date
    strategy: OvertimeStrategy


class OvertimeRecalculateResponse(BaseModel):
    success: Literal[True] = True
    count: int
    rows: list[OvertimeRow]
