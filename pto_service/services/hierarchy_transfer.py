from typing import Optional

from sqlalchemy import func

from pto_service.core.exceptions import ValidationError
from pto_service.models.pto_request import ApprovalStatus, PtoApproval, PtoRequest, RequestStatus
from pto_service.models.user import User
from pto_service.services.audit import AuditService
from pto_service.services.base import BaseService, run_atomic
from pto_service.services.identity import IdentityDirectory


class HierarchyTransferService(BaseService):
    """Keeps pending approval chains in step with reporting-line changes."""

    def __init__(self, db, clock=None):
        super().__init__(db, clock)
        self.identity = IdentityDirectory(db, clock)
        self.audit = AuditService(db, clock)

    def _pending_requests(self, user_id: int):
        return self.db.query(PtoRequest).filter(
            PtoRequest.user_id == user_id,
            PtoRequest.status == RequestStatus.PENDING.value
        ).with_for_update().populate_existing().all()

    def _has_pending(self, request_id: int, approver_id: int) -> bool:
        return self.db.query(PtoApproval).filter(
            PtoApproval.pto_request_id == request_id,
            PtoApproval.approver_id == approver_id,
            PtoApproval.status == ApprovalStatus.PENDING.value
        ).first() is not None

    def _move_for_user(self, user_id: int, old_manager_id: Optional[int], new_manager_id: int) -> int:
        moved = 0
        now = self.now()
        for request in self._pending_requests(user_id):
            if new_manager_id == request.user_id:
                continue
            already_pending = self._has_pending(request.id, new_manager_id)

            if old_manager_id:
                rows = self.db.query(PtoApproval).filter(
                    PtoApproval.pto_request_id == request.id,
                    PtoApproval.approver_id == old_manager_id,
                    PtoApproval.status == ApprovalStatus.PENDING.value
                ).all()
                for row in rows:
                    if already_pending:
                        row.status = ApprovalStatus.CANCELLED.value
                        row.responded_at = now
                        row.comments = f"Superseded by manager change to user {new_manager_id}"
                    else:
                        row.approver_id = new_manager_id
                        already_pending = True
                    moved += 1
            elif not already_pending:
                max_level = self.db.query(func.max(PtoApproval.level)).filter(
                    PtoApproval.pto_request_id == request.id
                ).scalar() or 0
                level = max_level + 1
                request.approvals.append(PtoApproval(
                    approver_id=new_manager_id,
                    level=level,
                    sequence=1,
                    status=ApprovalStatus.PENDING.value,
                ))
                moved += 1
            request.last_action_at = now
        self.db.flush()
        return moved

    def transfer_on_manager_change(self, user_id: int, old_manager_id: Optional[int],
                                   new_manager_id: Optional[int], actor: Optional[User] = None) -> dict:
        """Route the user's pending approvals from their old manager to the new one."""
        if not new_manager_id:
            return {"transferred": 0}
        return run_atomic(self.db, self._transfer_on_manager_change, user_id, old_manager_id, new_manager_id, actor)

    def _transfer_on_manager_change(self, user_id, old_manager_id, new_manager_id, actor) -> dict:
        user = self.identity.get_user(user_id)
        self.identity.get_user(new_manager_id)
        moved = self._move_for_user(user.id, old_manager_id, new_manager_id)
        self.audit.log_action(
            action="pto_approvals_transferred",
            entity_type="user",
            entity_id=user.id,
            actor=actor,
            details={"old_manager_id": old_manager_id, "new_manager_id": new_manager_id, "transferred": moved},
        )
        self.log_info(
            f"Moved {moved} approval(s) for user {user.id} from manager {old_manager_id} to {new_manager_id}"
        )
        return {"transferred": moved}

    def transfer_all_pending(self, from_user_id: int, to_user_id: int, actor: Optional[User] = None) -> dict:
        if from_user_id == to_user_id:
            raise ValidationError("Source and target approver must differ.")
        return run_atomic(self.db, self._transfer_all_pending, from_user_id, to_user_id, actor)

    def _transfer_all_pending(self, from_user_id, to_user_id, actor) -> dict:
        self.identity.get_user(to_user_id)
        rows = self.db.query(PtoApproval).join(PtoRequest).filter(
            PtoApproval.approver_id == from_user_id,
            PtoApproval.status == ApprovalStatus.PENDING.value,
            PtoRequest.status == RequestStatus.PENDING.value,
        ).all()
        now = self.now()
        moved = 0
        for row in rows:
            request = row.pto_request
            # The target cannot approve their own request
            if request.user_id == to_user_id:
                continue
            if self._has_pending(request.id, to_user_id):
                row.status = ApprovalStatus.CANCELLED.value
                row.responded_at = now
                row.comments = f"Superseded by transfer to user {to_user_id}"
            else:
                row.approver_id = to_user_id
            request.last_action_at = now
            moved += 1
        self.db.flush()
        self.audit.log_action(
            action="pto_approvals_transferred",
            entity_type="user",
            entity_id=from_user_id,
            actor=actor,
            details={"from_user_id": from_user_id, "to_user_id": to_user_id, "transferred": moved},
        )
        self.log_info(f"Transferred {moved} pending approval(s) from user {from_user_id} to {to_user_id}")
        return {"transferred": moved}
