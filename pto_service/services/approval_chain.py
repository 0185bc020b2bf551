"""
Approval chain construction and evaluation.

Levels and sequences order the chain for display only; a request is
complete as soon as none of its approval rows is pending.
"""
from typing import List, Optional, Set, Tuple

from pto_service.core.config import settings
from pto_service.core.exceptions import ConfigurationError
from pto_service.models.pto_request import PtoApproval, PtoRequest, ApprovalStatus, RequestStatus
from pto_service.models.pto_type import PtoType
from pto_service.models.user import User
from pto_service.services.base import BaseService
from pto_service.services.identity import IdentityDirectory


class ApprovalChainBuilder(BaseService):
    def __init__(self, db, clock=None):
        super().__init__(db, clock)
        self.identity = IdentityDirectory(db, clock)

    def _specific_approvers(self, pto_type: PtoType) -> List[User]:
        ids = pto_type.approver_ids
        if not ids:
            return []
        found = {
            u.id: u for u in self.db.query(User).filter(User.id.in_(ids), User.is_active == True).all()
        }
        missing = [i for i in ids if i not in found]
        if missing:
            self.log_warning(f"PTO type {pto_type.code} lists unknown or inactive approvers: {missing}")
        return [found[i] for i in ids if i in found]

    def _fallback_approver(self) -> Optional[User]:
        approver_id = settings.pto.fallback_approver_id
        if approver_id is None:
            return None
        return self.db.query(User).filter(User.id == approver_id, User.is_active == True).first()

    def resolve(self, requester: User, pto_type: PtoType) -> List[Tuple[User, int, int]]:
        """(approver, level, sequence) triples for a new request."""
        chain: List[Tuple[User, int, int]] = []
        seen: Set[int] = {requester.id}

        def add(user: Optional[User], level: int, sequence: int) -> bool:
            if user is None or user.id in seen:
                return False
            seen.add(user.id)
            chain.append((user, level, sequence))
            return True

        if not pto_type.multi_level_approval:
            manager = self.identity.manager_of(requester)
            if manager is None:
                manager = self._fallback_approver()
                if manager is not None:
                    self.log_info(f"User {requester.id} has no manager; routing to fallback approver {manager.id}")
            add(manager, 1, 1)

        elif pto_type.disable_hierarchy_approval:
            sequence = 1
            for approver in self._specific_approvers(pto_type):
                if add(approver, 1, sequence):
                    sequence += 1

        else:
            level = 0
            for manager in self.identity.management_chain(requester, settings.pto.max_hierarchy_levels):
                if add(manager, level + 1, 1):
                    level += 1
            sequence = 1
            for approver in self._specific_approvers(pto_type):
                if add(approver, level + 1, sequence):
                    sequence += 1

        if not chain:
            raise ConfigurationError(
                f"No approvers could be resolved for {requester.display_name} on PTO type '{pto_type.name}'.",
                details={
                    "user_id": requester.id,
                    "pto_type_id": pto_type.id,
                    "multi_level_approval": pto_type.multi_level_approval,
                    "disable_hierarchy_approval": pto_type.disable_hierarchy_approval,
                },
            )
        return chain

    def create_chain(self, request: PtoRequest) -> List[PtoApproval]:
        requester = request.user or self.identity.get_user(request.user_id)
        pto_type = request.pto_type or self.db.get(PtoType, request.pto_type_id)
        approvals = []
        for approver, level, sequence in self.resolve(requester, pto_type):
            approval = PtoApproval(
                approver_id=approver.id,
                level=level,
                sequence=sequence,
                status=ApprovalStatus.PENDING.value,
            )
            request.approvals.append(approval)
            approvals.append(approval)
        self.db.flush()
        self.log_info(
            f"Approval chain for {request.request_number}: {[a.approver_id for a in approvals]}",
            pto_request_id=request.id,
        )
        return approvals

    # ---- evaluation ----------------------------------------------------

    def pending_row(self, request_id: int, approver_id: int) -> Optional[PtoApproval]:
        return self.db.query(PtoApproval).filter(
            PtoApproval.pto_request_id == request_id,
            PtoApproval.approver_id == approver_id,
            PtoApproval.status == ApprovalStatus.PENDING.value
        ).order_by(PtoApproval.level, PtoApproval.sequence).first()

    def pending_rows(self, request_id: int) -> List[PtoApproval]:
        return self.db.query(PtoApproval).filter(
            PtoApproval.pto_request_id == request_id,
            PtoApproval.status == ApprovalStatus.PENDING.value
        ).all()

    def is_complete(self, request: PtoRequest) -> bool:
        return not self.pending_rows(request.id)

    def cancel_pending(self, request_id: int, when) -> int:
        rows = self.pending_rows(request_id)
        for row in rows:
            row.status = ApprovalStatus.CANCELLED.value
            row.responded_at = when
        self.db.flush()
        return len(rows)

    def approver_ids(self, request_id: int) -> Set[int]:
        return {
            a.approver_id for a in
            self.db.query(PtoApproval).filter(PtoApproval.pto_request_id == request_id).all()
        }

    def pending_for(self, approver_id: int) -> List[PtoRequest]:
        awaiting = self.db.query(PtoApproval.pto_request_id).filter(
            PtoApproval.approver_id == approver_id,
            PtoApproval.status == ApprovalStatus.PENDING.value
        )
        return self.db.query(PtoRequest).filter(
            PtoRequest.id.in_(awaiting),
            PtoRequest.status == RequestStatus.PENDING.value
        ).order_by(PtoRequest.start_date, PtoRequest.id).all()
