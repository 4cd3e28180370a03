from datetime import datetime

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from shiftplan.audit import log_audit
from shiftplan.db import get_db
from shiftplan.models import ShiftStatus, SwapRequestStatus
from shiftplan.schemas import (
    AvailabilityBlockCreate,
    AvailabilityBlockRead,
    BulkShiftCreateRequest,
    BulkShiftCreateResponse,
    BulkShiftFailure,
    CopyWeekError,
    CopyWeekRequest,
    CopyWeekResponse,
    ShiftCreate,
    ShiftRead,
    ShiftUpdate,
    ShiftWithWarningsRead,
    SwapApprovalResponse,
    SwapRequestApprove,
    SwapRequestCreate,
    SwapRequestRead,
)
from shiftplan.scope import resolve_employee_scope
from shiftplan.security import Actor, Role, get_current_actor, require_roles
from shiftplan.services.availability import (
    create_availability_block,
    delete_availability_block,
    list_availability_blocks,
)
from shiftplan.services.shifts import (
    ShiftResult,
    acknowledge_shift,
    bulk_create_shifts,
    cancel_shift,
    copy_week,
    create_shift,
    get_shift,
    list_shifts,
    update_shift,
)
from shiftplan.services.swap_requests import (
    approve_swap_request,
    create_swap_request,
    list_swap_requests,
    reject_swap_request,
)
from shiftplan.settings import get_schedule_offset_minutes

router = APIRouter(tags=["schedule"])

require_planner = require_roles(Role.ADMIN, Role.MANAGER)


def _with_warnings(result: ShiftResult) -> ShiftWithWarningsRead:
    return ShiftWithWarningsRead.model_validate(result.shift).model_copy(update={"warnings": result.warnings})


@router.get("/api/shifts", response_model=list[ShiftRead])
def list_shifts_endpoint(
    employee_id: int | None = Query(default=None, ge=1),
    start: datetime | None = Query(default=None),
    end: datetime | None = Query(default=None),
    shift_status: ShiftStatus | None = Query(default=None, alias="status"),
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
) -> list[ShiftRead]:
    return list_shifts(
        db,
        scope=resolve_employee_scope(db, actor),
        employee_id=employee_id,
        start=start,
        end=end,
        status=shift_status,
        offset_minutes=get_schedule_offset_minutes(),
    )


@router.post("/api/shifts", response_model=ShiftWithWarningsRead, status_code=status.HTTP_201_CREATED)
def create_shift_endpoint(
    payload: ShiftCreate,
    actor: Actor = Depends(require_planner),
    db: Session = Depends(get_db),
) -> ShiftWithWarningsRead:
    result = create_shift(
        db,
        payload,
        actor=actor,
        scope=resolve_employee_scope(db, actor),
        offset_minutes=get_schedule_offset_minutes(),
    )
    return _with_warnings(result)


@router.post("/api/shifts/bulk", response_model=BulkShiftCreateResponse)
def bulk_create_shifts_endpoint(
    payload: BulkShiftCreateRequest,
    actor: Actor = Depends(require_planner),
    db: Session = Depends(get_db),
) -> BulkShiftCreateResponse:
    result = bulk_create_shifts(
        db,
        payload.shifts,
        actor=actor,
        scope=resolve_employee_scope(db, actor),
        offset_minutes=get_schedule_offset_minutes(),
    )
    return BulkShiftCreateResponse(
        created=len(result.created),
        errors=len(result.failed),
        shifts=[_with_warnings(item) for item in result.created],
        failed=[BulkShiftFailure(**item) for item in result.failed],
    )


@router.post("/api/shifts/copy-week", response_model=CopyWeekResponse)
def copy_week_endpoint(
    payload: CopyWeekRequest,
    actor: Actor = Depends(require_planner),
    db: Session = Depends(get_db),
) -> CopyWeekResponse:
    result = copy_week(
        db,
        source_week_start=payload.source_week_start,
        target_week_start=payload.target_week_start,
        actor=actor,
        scope=resolve_employee_scope(db, actor),
        offset_minutes=get_schedule_offset_minutes(),
    )
    return CopyWeekResponse(
        created=len(result.created),
        skipped=result.skipped,
        errors=[CopyWeekError(**item) for item in result.errors],
        shifts=[ShiftRead.model_validate(item) for item in result.created],
    )


@router.get("/api/shifts/{shift_id}", response_model=ShiftRead)
def get_shift_endpoint(
    shift_id: int,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
) -> ShiftRead:
    return get_shift(db, shift_id, scope=resolve_employee_scope(db, actor))


@router.patch("/api/shifts/{shift_id}", response_model=ShiftWithWarningsRead)
def update_shift_endpoint(
    shift_id: int,
    payload: ShiftUpdate,
    actor: Actor = Depends(require_planner),
    db: Session = Depends(get_db),
) -> ShiftWithWarningsRead:
    result = update_shift(
        db,
        shift_id,
        payload,
        actor=actor,
        scope=resolve_employee_scope(db, actor),
        offset_minutes=get_schedule_offset_minutes(),
    )
    return _with_warnings(result)


@router.post("/api/shifts/{shift_id}/cancel", response_model=ShiftRead)
def cancel_shift_endpoint(
    shift_id: int,
    actor: Actor = Depends(require_planner),
    db: Session = Depends(get_db),
) -> ShiftRead:
    return cancel_shift(db, shift_id, actor=actor, scope=resolve_employee_scope(db, actor))


@router.post("/api/shifts/{shift_id}/acknowledge", response_model=ShiftRead)
def acknowledge_shift_endpoint(
    shift_id: int,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
) -> ShiftRead:
    return acknowledge_shift(db, shift_id, actor=actor, scope=resolve_employee_scope(db, actor))


@router.get("/api/availability", response_model=list[AvailabilityBlockRead])
def list_availability_endpoint(
    employee_id: int | None = Query(default=None, ge=1),
    day_of_week: int | None = Query(default=None, ge=0, le=6),
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
) -> list[AvailabilityBlockRead]:
    scope = resolve_employee_scope(db, actor)
    if scope.type == "self":
        employee_id = scope.employee_id
    return list_availability_blocks(db, employee_id=employee_id, day_of_week=day_of_week)


@router.post("/api/availability", response_model=AvailabilityBlockRead, status_code=status.HTTP_201_CREATED)
def create_availability_endpoint(
    payload: AvailabilityBlockCreate,
    request: Request,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
) -> AvailabilityBlockRead:
    block = create_availability_block(db, payload, actor=actor)
    log_audit(
        db,
        actor=actor,
        action="AVAILABILITY_CREATED",
        entity_type="availability_block",
        entity_id=str(block.id),
        details={"employee_id": block.employee_id, "type": block.type.value, "day_of_week": block.day_of_week},
        request_id=getattr(request.state, "request_id", None),
    )
    return block


@router.delete("/api/availability/{block_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_availability_endpoint(
    block_id: int,
    request: Request,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
) -> None:
    delete_availability_block(db, block_id, actor=actor)
    log_audit(
        db,
        actor=actor,
        action="AVAILABILITY_DELETED",
        entity_type="availability_block",
        entity_id=str(block_id),
        request_id=getattr(request.state, "request_id", None),
    )


@router.get("/api/swap-requests", response_model=list[SwapRequestRead])
def list_swap_requests_endpoint(
    swap_status: SwapRequestStatus | None = Query(default=None, alias="status"),
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
) -> list[SwapRequestRead]:
    return list_swap_requests(db, scope=resolve_employee_scope(db, actor), status=swap_status)


@router.post("/api/swap-requests", response_model=SwapRequestRead, status_code=status.HTTP_201_CREATED)
def create_swap_request_endpoint(
    payload: SwapRequestCreate,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
) -> SwapRequestRead:
    return create_swap_request(db, payload, actor=actor)


@router.post("/api/swap-requests/{swap_id}/approve", response_model=SwapApprovalResponse)
def approve_swap_request_endpoint(
    swap_id: int,
    payload: SwapRequestApprove | None = None,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
) -> SwapApprovalResponse:
    result = approve_swap_request(
        db,
        swap_id,
        actor=actor,
        target_employee_id=payload.target_employee_id if payload is not None else None,
    )
    return SwapApprovalResponse(
        request=SwapRequestRead.model_validate(result.request),
        new_shift=ShiftRead.model_validate(result.new_shift),
    )


@router.post("/api/swap-requests/{swap_id}/reject", response_model=SwapRequestRead)
def reject_swap_request_endpoint(
    swap_id: int,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
) -> SwapRequestRead:
    return reject_swap_request(db, swap_id, actor=actor)
