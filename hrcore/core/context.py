"""
Request-scoped actor context.

Effective role and scope are resolved once per request (from the
authenticated gateway headers or an explicit test harness) and passed to
services by parameter. Services never inspect the environment to decide
who is acting.
"""
import enum
from dataclasses import dataclass
from typing import Iterable, Optional

from hrcore.core.exceptions import ForbiddenError


class UserRole(str, enum.Enum):
    STAFF = "STAFF"
    MANAGER = "MANAGER"
    HR = "HR"
    ADMIN = "ADMIN"


@dataclass(frozen=True)
class RequestContext:
    actor_id: str
    role: UserRole
    employee_id: Optional[int] = None

    def has_role(self, roles: Iterable[str]) -> bool:
        return self.role.value in set(roles)

    def require_role(self, roles: Iterable[str], action: str = "perform this action") -> None:
        roles = list(roles)
        if not self.has_role(roles):
            raise ForbiddenError(f"Role {self.role.value} may not {action}. Required roles: {roles}")

    def is_owner_of(self, employee_id: int) -> bool:
        return self.employee_id is not None and self.employee_id == employee_id
