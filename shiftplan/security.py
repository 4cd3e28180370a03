from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any, Callable

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from shiftplan.errors import ApiError
from shiftplan.settings import get_settings

bearer_scheme = HTTPBearer(auto_error=False)


class Role(str, enum.Enum):
    ADMIN = "ADMIN"
    MANAGER = "MANAGER"
    EMPLOYEE = "EMPLOYEE"


@dataclass(frozen=True, slots=True)
class Actor:
    user_id: str
    role: Role
    employee_id: int | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    @property
    def is_manager(self) -> bool:
        return self.role == Role.MANAGER

    @property
    def is_employee(self) -> bool:
        return self.role == Role.EMPLOYEE


SYSTEM_ACTOR = Actor(user_id="system", role=Role.ADMIN)


def decode_access_token(token: str) -> dict[str, Any]:
    settings = get_settings()
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=["HS256"],
            audience=settings.jwt_audience,
            issuer=settings.jwt_issuer,
            options={"require_sub": True, "require_exp": True},
        )
    except JWTError as exc:
        raise ApiError(status_code=401, code="INVALID_TOKEN", message="Token is invalid.") from exc

    subject = payload.get("sub")
    if not isinstance(subject, str) or not subject:
        raise ApiError(status_code=401, code="INVALID_TOKEN", message="Token subject is invalid.")
    return payload


def actor_from_claims(claims: dict[str, Any]) -> Actor:
    try:
        role = Role(str(claims.get("role") or "").upper())
    except ValueError as exc:
        raise ApiError(status_code=403, code="FORBIDDEN", message="Unknown role.") from exc

    raw_employee_id = claims.get("employee_id")
    employee_id: int | None = None
    if raw_employee_id not in (None, ""):
        try:
            employee_id = int(raw_employee_id)
        except (TypeError, ValueError) as exc:
            raise ApiError(status_code=401, code="INVALID_TOKEN", message="Token employee is invalid.") from exc

    return Actor(user_id=str(claims["sub"]), role=role, employee_id=employee_id)


def get_current_actor(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> Actor:
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise ApiError(status_code=401, code="INVALID_TOKEN", message="Missing bearer token.")

    actor = actor_from_claims(decode_access_token(credentials.credentials))
    request.state.actor = actor.role.value
    request.state.actor_id = actor.user_id
    return actor


def require_roles(*roles: Role) -> Callable[..., Actor]:
    allowed = frozenset(roles)

    def _dependency(actor: Actor = Depends(get_current_actor)) -> Actor:
        if actor.role not in allowed:
            raise ApiError(status_code=403, code="FORBIDDEN", message="Insufficient permissions.")
        return actor

    return _dependency
