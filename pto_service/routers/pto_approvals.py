from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from pto_service.core.schemas import ApiResponse
from pto_service.database import get_db
from pto_service.models.user import User
from pto_service.routers.auth_deps import get_current_user, require_admin
from pto_service.schemas.pto_request import ApprovalTransfer, ManagerChange, PtoRequestResponse
from pto_service.services.approval_chain import ApprovalChainBuilder
from pto_service.services.hierarchy_transfer import HierarchyTransferService

router = APIRouter(prefix="/pto-approvals", tags=["pto-approvals"])


@router.get("/pending", response_model=ApiResponse[List[PtoRequestResponse]])
def list_pending_approvals(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Requests waiting on the current user's decision."""
    requests = ApprovalChainBuilder(db).pending_for(current_user.id)
    data = [PtoRequestResponse.model_validate(r) for r in requests]
    return ApiResponse.ok(data, metadata={"count": len(data)})


@router.post("/transfer", response_model=ApiResponse[dict])
def transfer_pending_approvals(
    payload: ApprovalTransfer,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin())
):
    result = HierarchyTransferService(db).transfer_all_pending(
        payload.from_user_id, payload.to_user_id, actor=current_user
    )
    return ApiResponse.ok(result)


@router.post("/manager-change", response_model=ApiResponse[dict])
def apply_manager_change(
    payload: ManagerChange,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin())
):
    """Called by the identity provider after a reporting-line change."""
    result = HierarchyTransferService(db).transfer_on_manager_change(
        payload.user_id, payload.old_manager_id, payload.new_manager_id, actor=current_user
    )
    return ApiResponse.ok(result)
