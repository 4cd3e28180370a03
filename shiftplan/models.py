from __future__ import annotations

import enum
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    Boolean,
    Date,
    Enum,
    Float,
    ForeignKey,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from shiftplan.db import Base, JSONType, UTCDateTime


class ShiftStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    PUBLISHED = "PUBLISHED"
    ACKNOWLEDGED = "ACKNOWLEDGED"
    SWAPPED = "SWAPPED"
    CANCELLED = "CANCELLED"


# Statuses of shifts the employee is still expected to work.
ACTIVE_SHIFT_STATUSES: tuple[ShiftStatus, ...] = (
    ShiftStatus.DRAFT,
    ShiftStatus.PUBLISHED,
    ShiftStatus.ACKNOWLEDGED,
)


class AvailabilityType(str, enum.Enum):
    UNAVAILABLE = "UNAVAILABLE"
    PREFER_NOT = "PREFER_NOT"
    AVAILABLE_ONLY = "AVAILABLE_ONLY"


class LeaveUnit(str, enum.Enum):
    DAY = "DAY"
    HALF_DAY = "HALF_DAY"
    HOUR = "HOUR"


class LeaveRequestStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"


BLOCKING_LEAVE_STATUSES: tuple[LeaveRequestStatus, ...] = (
    LeaveRequestStatus.PENDING,
    LeaveRequestStatus.APPROVED,
)


class SwapRequestStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class TimeEntryStatus(str, enum.Enum):
    OPEN = "OPEN"
    CLOSED = "CLOSED"


class TimeEntrySource(str, enum.Enum):
    MANUAL = "MANUAL"
    DEVICE = "DEVICE"


class OvertimeStrategy(str, enum.Enum):
    PLANNED = "PLANNED"
    ACTUAL = "ACTUAL"


class Employee(Base):
    __tablename__ = "employees"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    department: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    hourly_rate: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    max_weekly_hours: Mapped[int] = mapped_column(Integer, nullable=False, default=45, server_default=text("45"))
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=text("true"))
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    shifts: Mapped[list[Shift]] = relationship(back_populates="employee")
    availability_blocks: Mapped[list[AvailabilityBlock]] = relationship(back_populates="employee")
    leave_balances: Mapped[list[LeaveBalance]] = relationship(back_populates="employee")
    leave_requests: Mapped[list[LeaveRequest]] = relationship(back_populates="employee")
    time_entries: Mapped[list[TimeEntry]] = relationship(back_populates="employee")


class Shift(Base):
    __tablename__ = "shifts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    employee_id: Mapped[int] = mapped_column(
        ForeignKey("employees.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    start_time: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, index=True)
    end_time: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    status: Mapped[ShiftStatus] = mapped_column(
        Enum(ShiftStatus, name="shift_status"),
        nullable=False,
        default=ShiftStatus.PUBLISHED,
        server_default=text("'PUBLISHED'"),
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=text("true"))
    note: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    cancelled_by_leave_request_id: Mapped[int | None] = mapped_column(
        ForeignKey("leave_requests.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    employee: Mapped[Employee] = relationship(back_populates="shifts")
    events: Mapped[list[ShiftEvent]] = relationship(
        back_populates="shift",
        cascade="all, delete-orphan",
        order_by="ShiftEvent.id",
    )


class ShiftEvent(Base):
    __tablename__ = "shift_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    shift_id: Mapped[int] = mapped_column(
        ForeignKey("shifts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    event_type: Mapped[str] = mapped_column(String(64), nullable=False)
    from_status: Mapped[ShiftStatus | None] = mapped_column(
        Enum(ShiftStatus, name="shift_status"),
        nullable=True,
    )
    to_status: Mapped[ShiftStatus | None] = mapped_column(
        Enum(ShiftStatus, name="shift_status"),
        nullable=True,
    )
    actor_id: Mapped[str] = mapped_column(String(255), nullable=False)
    details: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    shift: Mapped[Shift] = relationship(back_populates="events")


class AvailabilityBlock(Base):
    __tablename__ = "availability_blocks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    employee_id: Mapped[int] = mapped_column(
        ForeignKey("employees.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    type: Mapped[AvailabilityType] = mapped_column(
        Enum(AvailabilityType, name="availability_type"),
        nullable=False,
    )
    day_of_week: Mapped[int] = mapped_column(Integer, nullable=False)
    start_time: Mapped[str | None] = mapped_column(String(5), nullable=True)
    end_time: Mapped[str | None] = mapped_column(String(5), nullable=True)
    start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    note: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    employee: Mapped[Employee] = relationship(back_populates="availability_blocks")


class LeaveType(Base):
    __tablename__ = "leave_types"

    code: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    is_paid: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=text("true"))
    requires_document: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=text("false"),
    )
    annual_entitlement_days: Mapped[int | None] = mapped_column(Integer, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
        onupdate=lambda: datetime.now(timezone.utc),
    )


class LeaveBalance(Base):
    __tablename__ = "leave_balances"
    __table_args__ = (
        UniqueConstraint("employee_id", "leave_code", "year", name="uq_leave_balances_employee_code_year"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    employee_id: Mapped[int] = mapped_column(
        ForeignKey("employees.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    leave_code: Mapped[str] = mapped_column(
        ForeignKey("leave_types.code", ondelete="RESTRICT"),
        nullable=False,
    )
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    accrued_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))
    carry_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))
    adjusted_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))
    used_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    employee: Mapped[Employee] = relationship(back_populates="leave_balances")
    leave_type: Mapped[LeaveType] = relationship()


class LeaveRequest(Base):
    __tablename__ = "leave_requests"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    employee_id: Mapped[int] = mapped_column(
        ForeignKey("employees.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    leave_code: Mapped[str] = mapped_column(
        ForeignKey("leave_types.code", ondelete="RESTRICT"),
        nullable=False,
    )
    unit: Mapped[LeaveUnit] = mapped_column(
        Enum(LeaveUnit, name="leave_unit"),
        nullable=False,
        default=LeaveUnit.DAY,
        server_default=text("'DAY'"),
    )
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    start_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, index=True)
    end_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    status: Mapped[LeaveRequestStatus] = mapped_column(
        Enum(LeaveRequestStatus, name="leave_request_status"),
        nullable=False,
        default=LeaveRequestStatus.PENDING,
        server_default=text("'PENDING'"),
    )
    reason: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    manager_note: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    approved_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    rejected_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    employee: Mapped[Employee] = relationship(back_populates="leave_requests")
    leave_type: Mapped[LeaveType] = relationship()


class SwapRequest(Base):
    __tablename__ = "swap_requests"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    shift_id: Mapped[int] = mapped_column(
        ForeignKey("shifts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    requester_id: Mapped[int] = mapped_column(
        ForeignKey("employees.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    target_employee_id: Mapped[int | None] = mapped_column(
        ForeignKey("employees.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    status: Mapped[SwapRequestStatus] = mapped_column(
        Enum(SwapRequestStatus, name="swap_request_status"),
        nullable=False,
        default=SwapRequestStatus.PENDING,
        server_default=text("'PENDING'"),
    )
    new_shift_id: Mapped[int | None] = mapped_column(
        ForeignKey("shifts.id", ondelete="SET NULL"),
        nullable=True,
    )
    resolved_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    resolved_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    shift: Mapped[Shift] = relationship(foreign_keys=[shift_id])
    new_shift: Mapped[Shift | None] = relationship(foreign_keys=[new_shift_id])
    requester: Mapped[Employee] = relationship(foreign_keys=[requester_id])
    target_employee: Mapped[Employee | None] = relationship(foreign_keys=[target_employee_id])


class TimeEntry(Base):
    __tablename__ = "time_entries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    employee_id: Mapped[int] = mapped_column(
        ForeignKey("employees.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    shift_id: Mapped[int | None] = mapped_column(
        ForeignKey("shifts.id", ondelete="SET NULL"),
        nullable=True,
    )
    check_in_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, index=True)
    check_out_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    status: Mapped[TimeEntryStatus] = mapped_column(
        Enum(TimeEntryStatus, name="time_entry_status"),
        nullable=False,
        default=TimeEntryStatus.OPEN,
        server_default=text("'OPEN'"),
    )
    source: Mapped[TimeEntrySource] = mapped_column(
        Enum(TimeEntrySource, name="time_entry_source"),
        nullable=False,
        default=TimeEntrySource.MANUAL,
        server_default=text("'MANUAL'"),
    )
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    employee: Mapped[Employee] = relationship(back_populates="time_entries")


class OvertimeRecord(Base):
    __tablename__ = "overtime_records"
    __table_args__ = (
        UniqueConstraint(
            "employee_id",
            "week_start",
            "strategy",
            name="uq_overtime_records_employee_week_strategy",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    employee_id: Mapped[int] = mapped_column(
        ForeignKey("employees.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    week_start: Mapped[date] = mapped_column(Date, nullable=False)
    strategy: Mapped[OvertimeStrategy] = mapped_column(
        Enum(OvertimeStrategy, name="overtime_strategy"),
        nullable=False,
    )
    planned_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))
    actual_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))
    regular_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))
    overtime_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))
    overtime_multiplier: Mapped[float] = mapped_column(Float, nullable=False, default=1.5)
    estimated_pay: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    ts_utc: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, index=True)
    actor_id: Mapped[str] = mapped_column(String(255), nullable=False)
    actor_role: Mapped[str] = mapped_column(String(32), nullable=False)
    action: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    entity_type: Mapped[str | None] = mapped_column(String(100), nullable=True)
    entity_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    details: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
