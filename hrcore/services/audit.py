from typing import Any, Optional

from hrcore.core.context import RequestContext
from hrcore.models.audit_log import AuditLog
from hrcore.services.base import BaseService


def _sanitize(obj: Any) -> Any:
    """Make nested values JSON-safe (pydantic models, enums, decimals, dates)."""
    if hasattr(obj, "model_dump"):
        return obj.model_dump(mode="json")
    if isinstance(obj, dict):
        return {k: _sanitize(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_sanitize(i) for i in obj]
    if hasattr(obj, "value") and isinstance(getattr(obj, "value"), str):
        return obj.value
    if obj is None or isinstance(obj, (str, int, float, bool)):
        return obj
    return str(obj)


class AuditService(BaseService):
    def log_action(
        self,
        action: str,
        entity_type: str,
        entity_id: Any,
        ctx: Optional[RequestContext],
        old_value: Optional[dict] = None,
        new_value: Optional[dict] = None,
    ) -> AuditLog:
        """
        Append an audit entry to the current transaction.

        Does NOT commit: the entry must land or vanish together with the
        change it describes, so the caller's commit/rollback decides.
        """
        entry = AuditLog(
            actor_id=ctx.actor_id if ctx else None,
            actor_role=ctx.role.value if ctx else "system",
            action=action,
            entity_type=entity_type,
            entity_id=str(entity_id) if entity_id is not None else None,
            old_value=_sanitize(old_value),
            new_value=_sanitize(new_value),
        )
        self.db.add(entry)
        self.db.flush()
        return entry

    def log_reset(self, entity_type: str, entity_id: Any, ctx: RequestContext, previous_status: str, reason: Optional[str] = None) -> AuditLog:
        new_value = {"status": "PENDING"}
        if reason:
            new_value["reason"] = reason
        return self.log_action(
            action="RESET_TO_PENDING",
            entity_type=entity_type,
            entity_id=entity_id,
            ctx=ctx,
            old_value={"status": previous_status},
            new_value=new_value,
        )
