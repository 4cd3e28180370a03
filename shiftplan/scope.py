from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from sqlalchemy import Select, select
from sqlalchemy.orm import Session

from shiftplan.errors import forbidden
from shiftplan.models import Employee
from shiftplan.security import Actor

ScopeType = Literal["all", "self", "department"]


@dataclass(frozen=True, slots=True)
class EmployeeScope:
    type: ScopeType
    employee_id: int | None = None
    department: str | None = None

    def allows(self, employee: Employee) -> bool:
        if self.type == "all":
            return True
        if self.type == "department":
            return employee.department is not None and employee.department == self.department
        return employee.id == self.employee_id


ALL_EMPLOYEES = EmployeeScope(type="all")


def resolve_employee_scope(db: Session, actor: Actor | None) -> EmployeeScope:
    if actor is None or actor.is_admin:
        return ALL_EMPLOYEES

    if actor.employee_id is None:
        raise forbidden("Employee scope is missing")

    if actor.is_manager:
        manager = db.get(Employee, actor.employee_id)
        if manager is not None and manager.department:
            return EmployeeScope(type="department", employee_id=actor.employee_id, department=manager.department)

    return EmployeeScope(type="self", employee_id=actor.employee_id)


def restrict_to_scope(stmt: Select, scope: EmployeeScope, employee_column) -> Select:  # type: ignore[no-untyped-def]
    """Limit ``stmt`` to rows whose ``employee_column`` falls inside ``scope``."""
    if scope.type == "self":
        return stmt.where(employee_column == scope.employee_id)
    if scope.type == "department":
        department_ids = select(Employee.id).where(Employee.department == scope.department)
        return stmt.where(employee_column.in_(department_ids))
    return stmt


def ensure_employee_in_scope(scope: EmployeeScope, employee: Employee, *, message: str) -> None:
    if not scope.allows(employee):
        raise forbidden(message)
