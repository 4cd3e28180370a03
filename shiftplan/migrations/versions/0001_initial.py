"""Initial scheduling schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-03-02 09:00:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "0001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

shift_status = postgresql.ENUM(
    "DRAFT",
    "PUBLISHED",
    "ACKNOWLEDGED",
    "SWAPPED",
    "CANCELLED",
    name="shift_status",
    create_type=False,
)
availability_type = postgresql.ENUM(
    "UNAVAILABLE",
    "PREFER_NOT",
    "AVAILABLE_ONLY",
    name="availability_type",
    create_type=False,
)
leave_unit = postgresql.ENUM("DAY", "HALF_DAY", "HOUR", name="leave_unit", create_type=False)
leave_request_status = postgresql.ENUM(
    "PENDING",
    "APPROVED",
    "REJECTED",
    "CANCELLED",
    name="leave_request_status",
    create_type=False,
)
swap_request_status = postgresql.ENUM(
    "PENDING",
    "APPROVED",
    "REJECTED",
    name="swap_request_status",
    create_type=False,
)
time_entry_status = postgresql.ENUM("OPEN", "CLOSED", name="time_entry_status", create_type=False)
time_entry_source = postgresql.ENUM("MANUAL", "DEVICE", name="time_entry_source", create_type=False)
overtime_strategy = postgresql.ENUM("PLANNED", "ACTUAL", name="overtime_strategy", create_type=False)

_ENUMS = (
    shift_status,
    availability_type,
    leave_unit,
    leave_request_status,
    swap_request_status,
    time_entry_status,
    time_entry_source,
    overtime_strategy,
)


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at",
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.text("CURRENT_TIMESTAMP"),
    )


def _updated_at() -> sa.Column:
    return sa.Column(
        "updated_at",
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.text("CURRENT_TIMESTAMP"),
    )


def upgrade() -> None:
    bind = op.get_bind()
    for enum_type in _ENUMS:
        enum_type.create(bind, checkfirst=True)
    op.execute("CREATE EXTENSION IF NOT EXISTS btree_gist")

    op.create_table(
        "employees",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("full_name", sa.String(length=255), nullable=False),
        sa.Column("department", sa.String(length=255), nullable=True),
        sa.Column("hourly_rate", sa.Numeric(10, 2), nullable=True),
        sa.Column("max_weekly_hours", sa.Integer(), nullable=False, server_default=sa.text("45")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        _created_at(),
    )
    op.create_index("ix_employees_department", "employees", ["department"], unique=False)

    op.create_table(
        "leave_types",
        sa.Column("code", sa.String(length=64), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("is_paid", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("requires_document", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("annual_entitlement_days", sa.Integer(), nullable=True),
        _updated_at(),
    )

    op.create_table(
        "leave_requests",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("employee_id", sa.Integer(), nullable=False),
        sa.Column("leave_code", sa.String(length=64), nullable=False),
        sa.Column("unit", leave_unit, nullable=False, server_default=sa.text("'DAY'")),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("start_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", leave_request_status, nullable=False, server_default=sa.text("'PENDING'")),
        sa.Column("reason", sa.String(length=1000), nullable=True),
        sa.Column("manager_note", sa.String(length=1000), nullable=True),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("approved_by", sa.String(length=255), nullable=True),
        sa.Column("rejected_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        _updated_at(),
        sa.ForeignKeyConstraint(["employee_id"], ["employees.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["leave_code"], ["leave_types.code"], ondelete="RESTRICT"),
        sa.CheckConstraint("start_at < end_at", name="ck_leave_requests_interval"),
    )
    op.create_index("ix_leave_requests_employee_id", "leave_requests", ["employee_id"], unique=False)
    op.create_index("ix_leave_requests_start_at", "leave_requests", ["start_at"], unique=False)
    op.execute(
        """
        ALTER TABLE leave_requests
        ADD CONSTRAINT ex_leave_requests_no_overlap
        EXCLUDE USING gist (
          employee_id WITH =,
          tstzrange(start_at, end_at, '[)') WITH &&
        )
        WHERE (status IN ('PENDING', 'APPROVED'))
        """
    )

    op.create_table(
        "shifts",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("employee_id", sa.Integer(), nullable=False),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", shift_status, nullable=False, server_default=sa.text("'PUBLISHED'")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("note", sa.String(length=1000), nullable=True),
        sa.Column("cancelled_by_leave_request_id", sa.Integer(), nullable=True),
        _created_at(),
        _updated_at(),
        sa.ForeignKeyConstraint(["employee_id"], ["employees.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["cancelled_by_leave_request_id"], ["leave_requests.id"], ondelete="SET NULL"),
        sa.CheckConstraint("start_time < end_time", name="ck_shifts_interval"),
    )
    op.create_index("ix_shifts_employee_id", "shifts", ["employee_id"], unique=False)
    op.create_index("ix_shifts_start_time", "shifts", ["start_time"], unique=False)
    op.create_index(
        "ix_shifts_cancelled_by_leave_request_id",
        "shifts",
        ["cancelled_by_leave_request_id"],
        unique=False,
    )
    op.execute(
        """
        ALTER TABLE shifts
        ADD CONSTRAINT ex_shifts_no_overlap
        EXCLUDE USING gist (
          employee_id WITH =,
          tstzrange(start_time, end_time, '[)') WITH &&
        )
        WHERE (status <> 'CANCELLED')
        """
    )

    op.create_table(
        "shift_events",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("shift_id", sa.Integer(), nullable=False),
        sa.Column("event_type", sa.String(length=64), nullable=False),
        sa.Column("from_status", shift_status, nullable=True),
        sa.Column("to_status", shift_status, nullable=True),
        sa.Column("actor_id", sa.String(length=255), nullable=False),
        sa.Column("details", postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default=sa.text("'{}'::jsonb")),
        _created_at(),
        sa.ForeignKeyConstraint(["shift_id"], ["shifts.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_shift_events_shift_id", "shift_events", ["shift_id"], unique=False)

    op.create_table(
        "availability_blocks",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("employee_id", sa.Integer(), nullable=False),
        sa.Column("type", availability_type, nullable=False),
        sa.Column("day_of_week", sa.Integer(), nullable=False),
        sa.Column("start_time", sa.String(length=5), nullable=True),
        sa.Column("end_time", sa.String(length=5), nullable=True),
        sa.Column("start_date", sa.Date(), nullable=True),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.Column("note", sa.String(length=1000), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(["employee_id"], ["employees.id"], ondelete="CASCADE"),
        sa.CheckConstraint("day_of_week BETWEEN 0 AND 6", name="ck_availability_blocks_day_of_week"),
    )
    op.create_index("ix_availability_blocks_employee_id", "availability_blocks", ["employee_id"], unique=False)

    op.create_table(
        "leave_balances",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("employee_id", sa.Integer(), nullable=False),
        sa.Column("leave_code", sa.String(length=64), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("accrued_minutes", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("carry_minutes", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("adjusted_minutes", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("used_minutes", sa.Integer(), nullable=False, server_default=sa.text("0")),
        _updated_at(),
        sa.ForeignKeyConstraint(["employee_id"], ["employees.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["leave_code"], ["leave_types.code"], ondelete="RESTRICT"),
        sa.UniqueConstraint("employee_id", "leave_code", "year", name="uq_leave_balances_employee_code_year"),
    )
    op.create_index("ix_leave_balances_employee_id", "leave_balances", ["employee_id"], unique=False)

    op.create_table(
        "swap_requests",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("shift_id", sa.Integer(), nullable=False),
        sa.Column("requester_id", sa.Integer(), nullable=False),
        sa.Column("target_employee_id", sa.Integer(), nullable=True),
        sa.Column("status", swap_request_status, nullable=False, server_default=sa.text("'PENDING'")),
        sa.Column("new_shift_id", sa.Integer(), nullable=True),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("resolved_by", sa.String(length=255), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(["shift_id"], ["shifts.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["requester_id"], ["employees.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["target_employee_id"], ["employees.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["new_shift_id"], ["shifts.id"], ondelete="SET NULL"),
    )
    op.create_index("ix_swap_requests_shift_id", "swap_requests", ["shift_id"], unique=False)
    op.create_index("ix_swap_requests_requester_id", "swap_requests", ["requester_id"], unique=False)
    op.create_index("ix_swap_requests_target_employee_id", "swap_requests", ["target_employee_id"], unique=False)
    op.create_index(
        "uq_swap_requests_pending_shift",
        "swap_requests",
        ["shift_id"],
        unique=True,
        postgresql_where=sa.text("status = 'PENDING'"),
    )

    op.create_table(
        "time_entries",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("employee_id", sa.Integer(), nullable=False),
        sa.Column("shift_id", sa.Integer(), nullable=True),
        sa.Column("check_in_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("check_out_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("status", time_entry_status, nullable=False, server_default=sa.text("'OPEN'")),
        sa.Column("source", time_entry_source, nullable=False, server_default=sa.text("'MANUAL'")),
        _created_at(),
        sa.ForeignKeyConstraint(["employee_id"], ["employees.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["shift_id"], ["shifts.id"], ondelete="SET NULL"),
    )
    op.create_index("ix_time_entries_employee_id", "time_entries", ["employee_id"], unique=False)
    op.create_index("ix_time_entries_check_in_at", "time_entries", ["check_in_at"], unique=False)
    op.create_index(
        "uq_time_entries_open_employee",
        "time_entries",
        ["employee_id"],
        unique=True,
        postgresql_where=sa.text("status = 'OPEN'"),
    )

    op.create_table(
        "overtime_records",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("employee_id", sa.Integer(), nullable=False),
        sa.Column("week_start", sa.Date(), nullable=False),
        sa.Column("strategy", overtime_strategy, nullable=False),
        sa.Column("planned_minutes", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("actual_minutes", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("regular_minutes", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("overtime_minutes", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("overtime_multiplier", sa.Float(), nullable=False, server_default=sa.text("1.5")),
        sa.Column("estimated_pay", sa.Numeric(12, 2), nullable=False, server_default=sa.text("0")),
        _updated_at(),
        sa.ForeignKeyConstraint(["employee_id"], ["employees.id"], ondelete="CASCADE"),
        sa.UniqueConstraint(
            "employee_id",
            "week_start",
            "strategy",
            name="uq_overtime_records_employee_week_strategy",
        ),
    )
    op.create_index("ix_overtime_records_employee_id", "overtime_records", ["employee_id"], unique=False)

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("ts_utc", sa.DateTime(timezone=True), nullable=False),
        sa.Column("actor_id", sa.String(length=255), nullable=False),
        sa.Column("actor_role", sa.String(length=32), nullable=False),
        sa.Column("action", sa.String(length=100), nullable=False),
        sa.Column("entity_type", sa.String(length=100), nullable=True),
        sa.Column("entity_id", sa.String(length=100), nullable=True),
        sa.Column("success", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("details", postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default=sa.text("'{}'::jsonb")),
    )
    op.create_index("ix_audit_logs_ts_utc", "audit_logs", ["ts_utc"], unique=False)
    op.create_index("ix_audit_logs_action", "audit_logs", ["action"], unique=False)

    op.bulk_insert(
        sa.table(
            "leave_types",
            sa.column("code", sa.String()),
            sa.column("name", sa.String()),
            sa.column("is_paid", sa.Boolean()),
            sa.column("requires_document", sa.Boolean()),
            sa.column("annual_entitlement_days", sa.Integer()),
        ),
        [
            {"code": "ANNUAL", "name": "Annual leave", "is_paid": True, "requires_document": False, "annual_entitlement_days": 14},
            {"code": "SICK", "name": "Sick leave", "is_paid": True, "requires_document": True, "annual_entitlement_days": None},
            {"code": "UNPAID", "name": "Unpaid leave", "is_paid": False, "requires_document": False, "annual_entitlement_days": None},
        ],
    )


def downgrade() -> None:
    op.drop_table("audit_logs")
    op.drop_table("overtime_records")
    op.drop_table("time_entries")
    op.drop_table("swap_requests")
    op.drop_table("leave_balances")
    op.drop_table("availability_blocks")
    op.drop_table("shift_events")
    op.drop_table("shifts")
    op.drop_table("leave_requests")
    op.drop_table("leave_types")
    op.drop_table("employees")

    bind = op.get_bind()
    for enum_type in reversed(_ENUMS):
        enum_type.drop(bind, checkfirst=True)
