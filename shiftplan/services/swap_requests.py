from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from shiftplan.audit import record_audit
from shiftplan.db import atomic
from shiftplan.errors import ApiError, forbidden, invalid_status, not_found
from shiftplan.models import Employee, Shift, ShiftStatus, SwapRequest, SwapRequestStatus
from shiftplan.schemas import SwapRequestCreate
from shiftplan.scope import ALL_EMPLOYEES, EmployeeScope, restrict_to_scope
from shiftplan.security import Actor
from shiftplan.services.shifts import find_overlapping_shift, lock_employee, record_shift_event

logger = logging.getLogger("shiftplan.swaps")

_SWAPPABLE_STATUSES = (ShiftStatus.PUBLISHED, ShiftStatus.ACKNOWLEDGED)


@dataclass(slots=True)
class SwapApproval:
    request: SwapRequest
    new_shift: Shift


def _same_department(left: Employee | None, right: Employee | None) -> bool:
    if left is None or right is None:
        return False
    return bool(left.department) and left.department == right.department


def _load_pending_for_update(db: Session, swap_id: int) -> SwapRequest:
    swap = db.scalar(select(SwapRequest).where(SwapRequest.id == swap_id).with_for_update())
    if swap is None:
        raise not_found("NOT_FOUND", "Swap request not found")
    if swap.status != SwapRequestStatus.PENDING:
        raise invalid_status("Only PENDING swap requests can be resolved")
    return swap


def create_swap_request(db: Session, payload: SwapRequestCreate, *, actor: Actor) -> SwapRequest:
    if actor.is_employee and actor.employee_id is None:
        raise forbidden("Employee scope is missing")

    with atomic(db):
        shift = db.scalar(select(Shift).where(Shift.id == payload.shift_id).with_for_update())
        if shift is None:
            raise not_found("SHIFT_NOT_FOUND", "Shift not found")
        if actor.is_employee and shift.employee_id != actor.employee_id:
            raise forbidden("You can only request to swap your own shifts")
        if shift.status not in _SWAPPABLE_STATUSES:
            raise invalid_status("Only PUBLISHED or ACKNOWLEDGED shifts can be swapped")

        requester = shift.employee
        if payload.target_employee_id is not None:
            if payload.target_employee_id == requester.id:
                raise ApiError(status_code=400, code="BAD_REQUEST", message="A shift cannot be swapped with its owner")
            target = db.get(Employee, payload.target_employee_id)
            if target is None:
                raise not_found("EMPLOYEE_NOT_FOUND", "Target employee not found")
            if not _same_department(requester, target):
                raise forbidden("Target employee must be in the same department")

        existing = db.scalar(
            select(SwapRequest.id).where(
                SwapRequest.shift_id == shift.id,
                SwapRequest.status == SwapRequestStatus.PENDING,
            )
        )
        if existing is not None:
            raise ApiError(
                status_code=409,
                code="SWAP_ALREADY_PENDING",
                message="A pending swap request already exists for this shift",
                details={"swap_request_id": existing},
            )

        swap = SwapRequest(
            shift_id=shift.id,
            requester_id=requester.id,
            target_employee_id=payload.target_employee_id,
            status=SwapRequestStatus.PENDING,
        )
        db.add(swap)
        db.flush()
        record_audit(
            db,
            actor=actor,
            action="SWAP_REQUEST_CREATED",
            entity_type="swap_request",
            entity_id=str(swap.id),
            details={"shift_id": shift.id, "target_employee_id": payload.target_employee_id},
        )

    db.refresh(swap)
    return swap


def list_swap_requests(
    db: Session,
    *,
    scope: EmployeeScope = ALL_EMPLOYEES,
    status: SwapRequestStatus | None = None,
) -> list[SwapRequest]:
    stmt = select(SwapRequest)
    if scope.type == "self":
        stmt = stmt.where(
            (SwapRequest.requester_id == scope.employee_id) | (SwapRequest.target_employee_id == scope.employee_id)
        )
    else:
        stmt = restrict_to_scope(stmt, scope, SwapRequest.requester_id)
    if status is not None:
        stmt = stmt.where(SwapRequest.status == status)
    return list(db.scalars(stmt.order_by(SwapRequest.created_at.desc(), SwapRequest.id.desc())).all())


def _resolve_target_id(swap: SwapRequest, supplied_target_id: int | None, actor: Actor) -> int:
    if swap.target_employee_id is not None:
        return swap.target_employee_id
    if supplied_target_id is not None:
        return supplied_target_id
    if actor.is_employee and actor.employee_id is not None:
        return actor.employee_id
    raise ApiError(
        status_code=400,
        code="BAD_REQUEST",
        message="Target employee must be defined before the swap can be approved",
    )


def _authorize_approval(db: Session, swap: SwapRequest, target_id: int, actor: Actor) -> None:
    if actor.is_admin:
        return
    if actor.is_manager:
        manager = db.get(Employee, actor.employee_id) if actor.employee_id is not None else None
        if not _same_department(manager, swap.requester):
            raise forbidden("You can only approve swaps in your department")
        return
    if target_id != actor.employee_id:
        raise forbidden("You are not the designated target for this swap")


def approve_swap_request(
    db: Session,
    swap_id: int,
    *,
    actor: Actor,
    target_employee_id: int | None = None,
) -> SwapApproval:
    """Hand the shift to the target: original becomes SWAPPED and a PUBLISHED copy is created."""
    try:
        with atomic(db):
            swap = _load_pending_for_update(db, swap_id)
            target_id = _resolve_target_id(swap, target_employee_id, actor)
            if target_id == swap.requester_id:
                raise ApiError(status_code=400, code="BAD_REQUEST", message="A shift cannot be swapped with its owner")
            _authorize_approval(db, swap, target_id, actor)

            target = lock_employee(db, target_id)
            if not _same_department(target, swap.requester):
                raise forbidden("Target employee must be in the same department")

            original = db.scalar(select(Shift).where(Shift.id == swap.shift_id).with_for_update())
            if original is None:
                raise not_found("SHIFT_NOT_FOUND", "Shift not found")
            if original.status not in _SWAPPABLE_STATUSES:
                raise invalid_status("Only PUBLISHED or ACKNOWLEDGED shifts can be swapped")

            conflicting = find_overlapping_shift(
                db,
                employee_id=target.id,
                start=original.start_time,
                end=original.end_time,
            )
            if conflicting is not None:
                raise ApiError(
                    status_code=409,
                    code="SHIFT_OVERLAP",
                    message="Target employee already has an overlapping shift",
                    details={"conflicting_shift_id": conflicting.id},
                )

            previous_status = original.status
            original.status = ShiftStatus.SWAPPED
            new_shift = Shift(
                employee_id=target.id,
                start_time=original.start_time,
                end_time=original.end_time,
                note=f"Swapped from employee {swap.requester_id}",
                status=ShiftStatus.PUBLISHED,
                is_active=True,
            )
            db.add(new_shift)
            db.flush()

            swap.status = SwapRequestStatus.APPROVED
            swap.target_employee_id = target.id
            swap.new_shift_id = new_shift.id
            swap.resolved_at = datetime.now(timezone.utc)
            swap.resolved_by = actor.user_id

            record_shift_event(
                db,
                original,
                event_type="SWAPPED",
                actor=actor,
                from_status=previous_status,
                to_status=ShiftStatus.SWAPPED,
                details={"swap_request_id": swap.id, "new_shift_id": new_shift.id, "target_employee_id": target.id},
            )
            record_shift_event(
                db,
                new_shift,
                event_type="CREATED",
                actor=actor,
                to_status=ShiftStatus.PUBLISHED,
                details={"swap_request_id": swap.id, "source_shift_id": original.id},
            )
            record_audit(
                db,
                actor=actor,
                action="SWAP_REQUEST_APPROVED",
                entity_type="swap_request",
                entity_id=str(swap.id),
                details={
                    "shift_id": original.id,
                    "new_shift_id": new_shift.id,
                    "requester_id": swap.requester_id,
                    "target_employee_id": target.id,
                },
            )
    except IntegrityError as exc:
        raise ApiError(status_code=409, code="SHIFT_OVERLAP", message="Target employee already has an overlapping shift") from exc

    logger.info(
        "swap_request_approved",
        extra={
            "swap_request_id": swap.id,
            "shift_id": original.id,
            "new_shift_id": new_shift.id,
            "actor_id": actor.user_id,
        },
    )
    return SwapApproval(request=swap, new_shift=new_shift)


def reject_swap_request(db: Session, swap_id: int, *, actor: Actor) -> SwapRequest:
    with atomic(db):
        swap = _load_pending_for_update(db, swap_id)
        if actor.is_manager:
            manager = db.get(Employee, actor.employee_id) if actor.employee_id is not None else None
            if not _same_department(manager, swap.requester):
                raise forbidden("You can only reject swaps in your department")
        elif actor.is_employee:
            parties = {swap.requester_id, swap.target_employee_id}
            if actor.employee_id is None or actor.employee_id not in parties:
                raise forbidden("You are not a party to this swap")

        swap.status = SwapRequestStatus.REJECTED
        swap.resolved_at = datetime.now(timezone.utc)
        swap.resolved_by = actor.user_id
        record_audit(
            db,
            actor=actor,
            action="SWAP_REQUEST_REJECTED",
            entity_type="swap_request",
            entity_id=str(swap.id),
            details={"shift_id": swap.shift_id},
        )
    return swap
