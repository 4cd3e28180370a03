from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.orm import Session

from shiftplan.audit import record_audit
from shiftplan.db import atomic
from shiftplan.errors import ApiError, forbidden, not_found
from shiftplan.models import Employee, LeaveBalance
from shiftplan.schemas import LeaveBalanceAdjustRequest
from shiftplan.scope import ALL_EMPLOYEES, EmployeeScope, ensure_employee_in_scope, restrict_to_scope
from shiftplan.security import Actor


@dataclass(frozen=True, slots=True)
class BalanceView:
    balance: LeaveBalance
    remaining_minutes: int


def remaining_minutes(balance: LeaveBalance) -> int:
    # Signed sum; carry may legitimately be negative, so nothing is clamped.
    return balance.accrued_minutes + balance.carry_minutes + balance.adjusted_minutes - balance.used_minutes


def insufficient_balance_error(*, remaining: int, required: int) -> ApiError:
    return ApiError(
        status_code=422,
        code="LEAVE_BALANCE_INSUFFICIENT",
        message="Leave balance is insufficient",
        details={
            "remaining_minutes": remaining,
            "required_minutes": required,
            "shortfall_minutes": required - remaining,
        },
    )


def find_balance(
    db: Session,
    *,
    employee_id: int,
    leave_code: str,
    year: int,
    for_update: bool = False,
) -> LeaveBalance | None:
    stmt = select(LeaveBalance).where(
        LeaveBalance.employee_id == employee_id,
        LeaveBalance.leave_code == leave_code,
        LeaveBalance.year == year,
    )
    if for_update:
        stmt = stmt.with_for_update()
    return db.scalar(stmt)


def consume_balance(balance: LeaveBalance | None, minutes: int) -> None:
    """Debit ``minutes`` from the ledger, refusing to go below zero."""
    remaining = remaining_minutes(balance) if balance is not None else 0
    if balance is None or remaining < minutes:
        raise insufficient_balance_error(remaining=remaining, required=minutes)
    balance.used_minutes = balance.used_minutes + minutes


def list_balances(
    db: Session,
    *,
    scope: EmployeeScope = ALL_EMPLOYEES,
    employee_id: int | None = None,
    year: int | None = None,
) -> list[BalanceView]:
    stmt = select(LeaveBalance)
    if employee_id is not None:
        employee = db.get(Employee, employee_id)
        if employee is None:
            raise not_found("EMPLOYEE_NOT_FOUND", "Employee not found")
        if not scope.allows(employee):
            raise forbidden("You cannot access leave balances outside your scope")
        stmt = stmt.where(LeaveBalance.employee_id == employee_id)
    else:
        stmt = restrict_to_scope(stmt, scope, LeaveBalance.employee_id)
    if year is not None:
        stmt = stmt.where(LeaveBalance.year == year)

    balances = db.scalars(
        stmt.order_by(LeaveBalance.year.desc(), LeaveBalance.leave_code.asc(), LeaveBalance.employee_id.asc())
    ).all()
    return [BalanceView(balance=item, remaining_minutes=remaining_minutes(item)) for item in balances]


def adjust_balance(
    db: Session,
    payload: LeaveBalanceAdjustRequest,
    *,
    actor: Actor,
    scope: EmployeeScope = ALL_EMPLOYEES,
) -> BalanceView:
    with atomic(db):
        employee = db.get(Employee, payload.employee_id)
        if employee is not None:
            ensure_employee_in_scope(scope, employee, message="You can only adjust balances within your department")
        balance = find_balance(
            db,
            employee_id=payload.employee_id,
            leave_code=payload.leave_code,
            year=payload.year,
            for_update=True,
        )
        if balance is None:
            raise not_found("LEAVE_BALANCE_NOT_FOUND", "Leave balance not found")

        new_adjusted = balance.adjusted_minutes + payload.delta_minutes
        remaining_after = balance.accrued_minutes + balance.carry_minutes + new_adjusted - balance.used_minutes
        if remaining_after < 0:
            raise ApiError(
                status_code=422,
                code="NEGATIVE_BALANCE",
                message="Balance cannot be negative after the adjustment",
                details={
                    "remaining_minutes": remaining_minutes(balance),
                    "delta_minutes": payload.delta_minutes,
                },
            )

        balance.adjusted_minutes = new_adjusted
        record_audit(
            db,
            actor=actor,
            action="LEAVE_BALANCE_ADJUST",
            entity_type="leave_balance",
            entity_id=str(balance.id),
            details={
                "delta_minutes": payload.delta_minutes,
                "reason": payload.reason,
                "new_remaining": remaining_after,
            },
        )

    return BalanceView(balance=balance, remaining_minutes=remaining_after)
