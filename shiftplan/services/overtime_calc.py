from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

_CENT = Decimal("0.01")


@dataclass(frozen=True)
class WeeklySplit:
    total_minutes: int
    regular_minutes: int
    overtime_minutes: int


def split_weekly_minutes(total_minutes: int, cap_minutes: int) -> WeeklySplit:
    safe_total = max(0, total_minutes)
    safe_cap = max(0, cap_minutes)
    regular = min(safe_total, safe_cap)
    return WeeklySplit(
        total_minutes=safe_total,
        regular_minutes=regular,
        overtime_minutes=safe_total - regular,
    )


def estimate_weekly_pay(
    *,
    regular_minutes: int,
    overtime_minutes: int,
    hourly_rate: Decimal | None,
    multiplier: float,
) -> Decimal:
    """Regular minutes at the hourly rate plus overtime at ``multiplier``, rounded half-up to cents."""
    rate = hourly_rate if hourly_rate is not None else Decimal("0")
    per_minute = Decimal(rate) / 60
    pay = regular_minutes * per_minute + overtime_minutes * per_minute * Decimal(str(multiplier))
    return pay.quantize(_CENT, rounding=ROUND_HALF_UP)
