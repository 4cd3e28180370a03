from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from shiftplan.audit import log_audit
from shiftplan.db import get_db
from shiftplan.models import LeaveRequestStatus
from shiftplan.schemas import (
    LeaveBalanceAdjustRequest,
    LeaveBalanceRead,
    LeaveRequestCreate,
    LeaveRequestRead,
    LeaveRequestStatusResponse,
    LeaveRequestStatusUpdate,
    LeaveTypeRead,
    LeaveTypeUpdate,
)
from shiftplan.scope import resolve_employee_scope
from shiftplan.security import Actor, Role, get_current_actor, require_roles
from shiftplan.services.leave_balances import BalanceView, adjust_balance, list_balances
from shiftplan.services.leave_requests import (
    create_leave_request,
    list_leave_requests,
    remove_leave_request,
    update_leave_status,
)
from shiftplan.services.leave_types import list_leave_types, update_leave_type
from shiftplan.settings import get_schedule_offset_minutes

router = APIRouter(tags=["leaves"])


def _balance_read(view: BalanceView) -> LeaveBalanceRead:
    balance = view.balance
    return LeaveBalanceRead(
        id=balance.id,
        employee_id=balance.employee_id,
        leave_code=balance.leave_code,
        year=balance.year,
        accrued_minutes=balance.accrued_minutes,
        carry_minutes=balance.carry_minutes,
        adjusted_minutes=balance.adjusted_minutes,
        used_minutes=balance.used_minutes,
        remaining_minutes=view.remaining_minutes,
    )


@router.get("/api/leave-types", response_model=list[LeaveTypeRead])
def list_leave_types_endpoint(
    _actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
) -> list[LeaveTypeRead]:
    return list_leave_types(db)


@router.patch("/api/leave-types/{code}", response_model=LeaveTypeRead)
def update_leave_type_endpoint(
    code: str,
    payload: LeaveTypeUpdate,
    request: Request,
    actor: Actor = Depends(require_roles(Role.ADMIN)),
    db: Session = Depends(get_db),
) -> LeaveTypeRead:
    leave_type = update_leave_type(db, code, payload)
    log_audit(
        db,
        actor=actor,
        action="LEAVE_TYPE_UPDATED",
        entity_type="leave_type",
        entity_id=leave_type.code,
        details=payload.model_dump(exclude_unset=True),
        request_id=getattr(request.state, "request_id", None),
    )
    return leave_type


@router.get("/api/leave-balances", response_model=list[LeaveBalanceRead])
def list_leave_balances_endpoint(
    employee_id: int | None = Query(default=None, ge=1),
    year: int | None = Query(default=None, ge=2000),
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
) -> list[LeaveBalanceRead]:
    views = list_balances(db, scope=resolve_employee_scope(db, actor), employee_id=employee_id, year=year)
    return [_balance_read(view) for view in views]


@router.post("/api/leave-balances/adjust", response_model=LeaveBalanceRead)
def adjust_leave_balance_endpoint(
    payload: LeaveBalanceAdjustRequest,
    actor: Actor = Depends(require_roles(Role.ADMIN, Role.MANAGER)),
    db: Session = Depends(get_db),
) -> LeaveBalanceRead:
    view = adjust_balance(db, payload, actor=actor, scope=resolve_employee_scope(db, actor))
    return _balance_read(view)


@router.get("/api/leave-requests", response_model=list[LeaveRequestRead])
def list_leave_requests_endpoint(
    request_status: LeaveRequestStatus | None = Query(default=None, alias="status"),
    employee_id: int | None = Query(default=None, ge=1),
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
) -> list[LeaveRequestRead]:
    return list_leave_requests(
        db,
        scope=resolve_employee_scope(db, actor),
        status=request_status,
        employee_id=employee_id,
    )


@router.post("/api/leave-requests", response_model=LeaveRequestRead, status_code=status.HTTP_201_CREATED)
def create_leave_request_endpoint(
    payload: LeaveRequestCreate,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
) -> LeaveRequestRead:
    return create_leave_request(
        db,
        payload,
        actor=actor,
        scope=resolve_employee_scope(db, actor),
        offset_minutes=get_schedule_offset_minutes(),
    )


@router.patch("/api/leave-requests/{request_id}/status", response_model=LeaveRequestStatusResponse)
def update_leave_request_status_endpoint(
    request_id: int,
    payload: LeaveRequestStatusUpdate,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
) -> LeaveRequestStatusResponse:
    result = update_leave_status(
        db,
        request_id,
        payload,
        actor=actor,
    )
    return LeaveRequestStatusResponse(
        request=LeaveRequestRead.model_validate(result.request),
        cancelled_shift_ids=result.cancelled_shift_ids,
    )


@router.delete("/api/leave-requests/{request_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_leave_request_endpoint(
    request_id: int,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
) -> None:
    remove_leave_request(db, request_id, actor=actor)
