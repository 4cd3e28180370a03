from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from shiftplan.db import Base
from shiftplan.models import (
    AvailabilityBlock,
    AvailabilityType,
    Employee,
    LeaveBalance,
    LeaveType,
    Shift,
    ShiftStatus,
)
from shiftplan.security import Actor, Role

ADMIN = Actor(user_id="admin-1", role=Role.ADMIN)


def make_session() -> Session:
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    factory = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    return factory()


def manager_for(employee: Employee) -> Actor:
    return Actor(user_id=f"manager-{employee.id}", role=Role.MANAGER, employee_id=employee.id)


def employee_actor(employee: Employee) -> Actor:
    return Actor(user_id=f"user-{employee.id}", role=Role.EMPLOYEE, employee_id=employee.id)


def add_employee(
    db: Session,
    full_name: str,
    *,
    department: str | None = "Kitchen",
    hourly_rate: str | None = "20.00",
    max_weekly_hours: int = 45,
) -> Employee:
    employee = Employee(
        full_name=full_name,
        department=department,
        hourly_rate=Decimal(hourly_rate) if hourly_rate is not None else None,
        max_weekly_hours=max_weekly_hours,
        is_active=True,
    )
    db.add(employee)
    db.commit()
    return employee


def add_leave_type(db: Session, code: str = "ANNUAL", *, is_paid: bool = True) -> LeaveType:
    leave_type = LeaveType(code=code, name=code.title(), is_paid=is_paid, requires_document=False)
    db.add(leave_type)
    db.commit()
    return leave_type


def add_balance(
    db: Session,
    employee: Employee,
    *,
    leave_code: str = "ANNUAL",
    year: int = 2026,
    accrued_minutes: int = 0,
    carry_minutes: int = 0,
    adjusted_minutes: int = 0,
    used_minutes: int = 0,
) -> LeaveBalance:
    balance = LeaveBalance(
        employee_id=employee.id,
        leave_code=leave_code,
        year=year,
        accrued_minutes=accrued_minutes,
        carry_minutes=carry_minutes,
        adjusted_minutes=adjusted_minutes,
        used_minutes=used_minutes,
    )
    db.add(balance)
    db.commit()
    return balance


def add_shift(
    db: Session,
    employee: Employee,
    start: datetime,
    end: datetime,
    *,
    status: ShiftStatus = ShiftStatus.PUBLISHED,
) -> Shift:
    shift = Shift(
        employee_id=employee.id,
        start_time=start,
        end_time=end,
        status=status,
        is_active=status != ShiftStatus.CANCELLED,
    )
    db.add(shift)
    db.commit()
    return shift


def add_block(
    db: Session,
    employee: Employee,
    block_type: AvailabilityType,
    day_of_week: int,
    start_time: str | None = None,
    end_time: str | None = None,
) -> AvailabilityBlock:
    block = AvailabilityBlock(
        employee_id=employee.id,
        type=block_type,
        day_of_week=day_of_week,
        start_time=start_time,
        end_time=end_time,
    )
    db.add(block)
    db.commit()
    return block
