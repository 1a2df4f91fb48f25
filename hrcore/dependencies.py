"""
Request context dependency.

Authentication happens upstream (gateway / identity provider); this
service trusts the forwarded identity headers and resolves them once per
request into a RequestContext that routers hand to the service layer.
"""
import logging
from typing import Optional

from fastapi import Header, HTTPException, status

from hrcore.core.context import RequestContext, UserRole

logger = logging.getLogger(__name__)


def get_request_context(
    x_actor_id: Optional[str] = Header(default=None),
    x_actor_role: Optional[str] = Header(default=None),
    x_employee_id: Optional[str] = Header(default=None),
) -> RequestContext:
    """Builds the acting user's context from X-Actor-Id, X-Actor-Role and X-Employee-Id."""
    if not x_actor_id:
        logger.warning("Authentication failed: missing actor id")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-Actor-Id header",
        )

    try:
        role = UserRole((x_actor_role or "").upper())
    except ValueError:
        logger.warning(f"Authentication failed: unknown role {x_actor_role!r}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing or unknown X-Actor-Role header",
        )

    employee_id = None
    if x_employee_id:
        try:
            employee_id = int(x_employee_id)
        except ValueError:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="X-Employee-Id must be an integer",
            )

    return RequestContext(actor_id=x_actor_id, role=role, employee_id=employee_id)
