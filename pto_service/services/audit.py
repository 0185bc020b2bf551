from decimal import Decimal
from datetime import date, datetime
from typing import Any, Optional

from pto_service.models.audit_log import AuditLog
from pto_service.models.user import User
from pto_service.services.base import BaseService


def _sanitize(obj: Any) -> Any:
    """Make nested values JSON-column safe."""
    if hasattr(obj, "model_dump"):
        return obj.model_dump(mode="json")
    if isinstance(obj, dict):
        return {k: _sanitize(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple, set)):
        return [_sanitize(i) for i in obj]
    if isinstance(obj, Decimal):
        return float(obj)
    if isinstance(obj, (date, datetime)):
        return obj.isoformat()
    return obj


class AuditService(BaseService):
    def log_action(
        self,
        action: str,
        entity_type: str,
        entity_id: Optional[int],
        actor: Optional[User],
        details: dict,
        before_state: Optional[dict] = None,
        after_state: Optional[dict] = None
    ) -> AuditLog:
        """
        Append an audit row to the current unit of work.

        Not committed here: the row lands or rolls back together with the
        action it describes.
        """
        role = None
        if actor is not None:
            role = actor.role.value if hasattr(actor.role, "value") else actor.role
        db_log = AuditLog(
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            user_id=actor.id if actor else None,
            user_role=role or "system",
            details=_sanitize(details),
            before_state=_sanitize(before_state),
            after_state=_sanitize(after_state)
        )
        self.db.add(db_log)
        return db_log

    @staticmethod
    def log(db, *args, **kwargs):
        return AuditService(db).log_action(*args, **kwargs)
