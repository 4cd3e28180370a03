from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from shiftplan.errors import not_found
from shiftplan.models import LeaveType
from shiftplan.schemas import LeaveTypeUpdate


def list_leave_types(db: Session) -> list[LeaveType]:
    return list(db.scalars(select(LeaveType).order_by(LeaveType.code.asc())).all())


def get_leave_type(db: Session, code: str) -> LeaveType:
    leave_type = db.get(LeaveType, code)
    if leave_type is None:
        raise not_found("LEAVE_TYPE_NOT_FOUND", "Leave type not found")
    return leave_type


def update_leave_type(db: Session, code: str, payload: LeaveTypeUpdate) -> LeaveType:
    leave_type = get_leave_type(db, code)
    # The code is the stable identifier; only descriptive fields change.
    for field_name in payload.model_fields_set:
        value = getattr(payload, field_name)
        if field_name in {"name", "requires_document"} and value is None:
            continue
        setattr(leave_type, field_name, value)
    db.commit()
    db.refresh(leave_type)
    return leave_type
